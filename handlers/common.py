from aiogram import types, Bot
from aiogram.exceptions import TelegramAPIError

from core.logger import logger
from utils.transport import ChoiceEvent

BOT_COMMANDS = {
    "UK": [types.BotCommand(command="start", description="Розпочати тестування")],
    "EN": [types.BotCommand(command="start", description="Start the test")],
}


async def set_bot_commands(bot: Bot, lang: str):
    commands = BOT_COMMANDS.get(lang.upper(), BOT_COMMANDS["EN"])
    try:
        await bot.set_my_commands(commands, scope=types.BotCommandScopeAllPrivateChats())
    except TelegramAPIError as e:
        logger.error("Failed to set bot commands", error=str(e))


def choice_event_from_callback(callback: types.CallbackQuery) -> ChoiceEvent:
    message = callback.message
    # Inaccessible (very old) messages still carry the chat but cannot be edited
    message_id = message.message_id if isinstance(message, types.Message) else None
    chat_id = message.chat.id if message else callback.from_user.id
    return ChoiceEvent(
        identity=callback.from_user.id,
        chat_id=chat_id,
        data=callback.data or "",
        event_id=callback.id,
        message_id=message_id,
    )
