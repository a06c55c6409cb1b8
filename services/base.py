from contextlib import asynccontextmanager
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession
from core.exceptions import StorageError
from core.logger import logger


class DbService:
    def __init__(self, db: AsyncSession):
        self.db = db

    @asynccontextmanager
    async def storage(self, operation: str):
        """Roll back and re-raise database failures as StorageError."""
        try:
            yield
        except SQLAlchemyError as e:
            logger.error("Storage operation failed", operation=operation, error=str(e))
            try:
                await self.db.rollback()
            except SQLAlchemyError as rollback_error:
                logger.error("Rollback failed", operation=operation, error=str(rollback_error))
            raise StorageError(operation) from e
