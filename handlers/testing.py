from aiogram import Router, types, F
from aiogram.exceptions import TelegramAPIError
from aiogram.filters import CommandStart

from handlers.common import choice_event_from_callback
from services.conversation import ConversationEngine
from core.logger import logger

router = Router()
# The test is taken in a private chat only
router.message.filter(F.chat.type == "private")


@router.message(CommandStart())
async def cmd_start(message: types.Message, conversation: ConversationEngine):
    logger.info("Begin requested", identity=message.from_user.id)
    try:
        await conversation.handle_begin(message.from_user.id, message.chat.id)
    except TelegramAPIError as e:
        logger.error("Failed to deliver begin reply", identity=message.from_user.id, error=str(e))


@router.callback_query(F.data)
async def handle_choice(callback: types.CallbackQuery, conversation: ConversationEngine):
    event = choice_event_from_callback(callback)
    try:
        await conversation.handle_choice(event)
    except TelegramAPIError as e:
        logger.error("Failed to deliver choice reply", identity=event.identity, data=event.data, error=str(e))


@router.message(F.text, ~F.text.startswith("/"))
async def handle_text(message: types.Message, conversation: ConversationEngine):
    try:
        await conversation.handle_text(message.from_user.id, message.chat.id, message.text)
    except TelegramAPIError as e:
        logger.error("Failed to deliver text reply", identity=message.from_user.id, error=str(e))
