from dataclasses import dataclass
from typing import Optional, Protocol, Sequence

from aiogram import Bot
from aiogram.exceptions import TelegramAPIError
from aiogram.utils.keyboard import InlineKeyboardBuilder

from core.logger import logger


@dataclass(frozen=True)
class Choice:
    text: str
    data: str


@dataclass(frozen=True)
class ChoiceEvent:
    """A button press: who pressed it, where, what it encodes and how to acknowledge it."""
    identity: int
    chat_id: int
    data: str
    event_id: str
    message_id: Optional[int] = None


class Transport(Protocol):
    async def send_text(self, chat_id: int, text: str, choices: Optional[Sequence[Choice]] = None, html: bool = False): ...

    async def acknowledge(self, event_id: str, text: Optional[str] = None): ...

    async def clear_choices(self, chat_id: int, message_id: int): ...


class TelegramTransport:
    """Transport backed by the aiogram Bot. Choices become one inline button per row."""

    def __init__(self, bot: Bot):
        self.bot = bot

    async def send_text(self, chat_id: int, text: str, choices: Optional[Sequence[Choice]] = None, html: bool = False):
        markup = None
        if choices:
            builder = InlineKeyboardBuilder()
            for choice in choices:
                builder.button(text=choice.text, callback_data=choice.data)
            builder.adjust(1)
            markup = builder.as_markup()
        await self.bot.send_message(chat_id, text, reply_markup=markup, parse_mode="HTML" if html else None)

    async def acknowledge(self, event_id: str, text: Optional[str] = None):
        try:
            await self.bot.answer_callback_query(event_id, text=text)
        except TelegramAPIError as e:
            # Query expired while waiting for the identity lock; the press is still processed
            logger.warning("Failed to answer callback query", event_id=event_id, error=str(e))

    async def clear_choices(self, chat_id: int, message_id: int):
        try:
            await self.bot.edit_message_reply_markup(chat_id=chat_id, message_id=message_id, reply_markup=None)
        except TelegramAPIError as e:
            # Message too old or already edited; the answer itself is stored
            logger.warning("Failed to remove answer buttons", chat_id=chat_id, message_id=message_id, error=str(e))
