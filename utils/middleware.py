from typing import Any, Awaitable, Callable, Dict, Optional
from aiogram import BaseMiddleware, types
from aiogram.types import TelegramObject
from redis.asyncio import Redis
from redis.exceptions import LockError, RedisError
from db.session import AsyncSessionLocal
from constants.messages import Messages
from core.config import settings
from core.logger import logger
from services.conversation import ConversationEngine
from utils.transport import TelegramTransport

LOCK_KEY = "quiztest:lock:{identity}"


class DbSessionMiddleware(BaseMiddleware):
    """Opens one database session per update and builds the conversation engine on top of it."""

    def __init__(self, session_factory=AsyncSessionLocal):
        self.session_factory = session_factory

    async def __call__(
        self,
        handler: Callable[[TelegramObject, Dict[str, Any]], Awaitable[Any]],
        event: TelegramObject,
        data: Dict[str, Any],
    ) -> Any:
        async with self.session_factory() as session:
            data["db"] = session
            data["conversation"] = ConversationEngine(
                session,
                TelegramTransport(data["bot"]),
                data["question_bank"],
                notifier=data.get("notifier"),
            )
            return await handler(event, data)


def _event_identity(event: TelegramObject) -> Optional[int]:
    if isinstance(event, types.Update):
        event = event.event
    user = getattr(event, "from_user", None)
    return user.id if user else None


class IdentityLockMiddleware(BaseMiddleware):
    """
    Serializes updates of the same user across workers with a Redis lock.

    Two presses arriving together would otherwise both read the same
    question pointer; with the lock the second one sees the advanced
    pointer and is rejected as stale.
    """

    def __init__(self, redis: Redis, timeout: float = None, wait: float = None):
        self.redis = redis
        self.timeout = settings.IDENTITY_LOCK_TIMEOUT_SECONDS if timeout is None else timeout
        self.wait = settings.IDENTITY_LOCK_WAIT_SECONDS if wait is None else wait

    async def __call__(
        self,
        handler: Callable[[TelegramObject, Dict[str, Any]], Awaitable[Any]],
        event: TelegramObject,
        data: Dict[str, Any],
    ) -> Any:
        identity = _event_identity(event)
        if identity is None:
            return await handler(event, data)

        lock = self.redis.lock(LOCK_KEY.format(identity=identity), timeout=self.timeout, blocking_timeout=self.wait)
        try:
            acquired = await lock.acquire()
        except RedisError as e:
            logger.error("Identity lock unavailable", identity=identity, error=str(e))
            acquired = False
        if not acquired:
            logger.warning("Identity lock not acquired", identity=identity, wait=self.wait)
            await self._reject(event)
            return None

        try:
            return await handler(event, data)
        finally:
            try:
                await lock.release()
            except LockError as e:
                logger.warning("Identity lock expired before release", identity=identity, error=str(e))

    async def _reject(self, event: TelegramObject):
        if isinstance(event, types.Update):
            event = event.event
        text = Messages.get("BUSY", settings.LANGUAGE)
        if isinstance(event, types.CallbackQuery):
            await event.answer(text)
        elif isinstance(event, types.Message):
            await event.answer(text)
