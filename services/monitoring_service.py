from datetime import timedelta
from typing import Callable, Optional

from aiogram.exceptions import TelegramAPIError
from sqlalchemy import select, func
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from constants.messages import Messages
from core.config import settings
from core.logger import logger
from db.session import AsyncSessionLocal
from models.base import utcnow
from models.state import ConversationState, STATE_TESTING
from utils.transport import Transport


async def count_stalled_sessions(db: AsyncSession, hours: int) -> int:
    threshold = utcnow() - timedelta(hours=hours)
    result = await db.execute(
        select(func.count(ConversationState.identity)).filter(
            ConversationState.state == STATE_TESTING,
            ConversationState.updated_at < threshold,
        )
    )
    return result.scalar_one()


async def report_stalled_sessions(
    transport: Optional[Transport],
    session_factory: Callable[[], AsyncSession] = AsyncSessionLocal,
    hours: Optional[int] = None,
) -> int:
    """
    Periodic read-only scan for tests that were started but not answered for a while.

    Nothing is expired or modified: users can always resume with /start.
    The count goes to the log and, when any exist, to the admin chats.
    """
    hours = settings.STALLED_SESSION_HOURS if hours is None else hours
    try:
        async with session_factory() as db:
            stalled = await count_stalled_sessions(db, hours)
    except SQLAlchemyError as e:
        logger.error("Monitor: stalled session scan failed", error=str(e))
        return 0

    logger.info("Monitor: stalled session scan completed", stalled=stalled, hours=hours)
    if not stalled or transport is None:
        return stalled

    text = Messages.get("STALLED_REPORT", settings.LANGUAGE).format(hours=hours, count=stalled)
    for chat_id in settings.admin_chat_ids:
        try:
            await transport.send_text(chat_id, text)
        except TelegramAPIError as e:
            logger.error("Monitor: failed to report to admin chat", chat_id=chat_id, error=str(e))
    return stalled
