"""Telegram notification adapter — implements NotificationPort.

Wraps a telegram.Bot instance to satisfy the NotificationPort protocol.
Nudges carry three inline buttons whose callback data is
"<action>:<nudge_id>".
"""

from __future__ import annotations

import logging

from telegram import Bot, InlineKeyboardButton, InlineKeyboardMarkup
from telegram.constants import ParseMode

logger = logging.getLogger(__name__)


def nudge_keyboard(nudge_id: str) -> InlineKeyboardMarkup:
    return InlineKeyboardMarkup([
        [
            InlineKeyboardButton("On it! 💪", callback_data=f"on_it:{nudge_id}"),
            InlineKeyboardButton("Snooze 1h ⏰", callback_data=f"snooze_1h:{nudge_id}"),
        ],
        [
            InlineKeyboardButton("Busy today 😅", callback_data=f"busy_today:{nudge_id}"),
        ],
    ])


class TelegramNotifier:
    """Telegram implementation of NotificationPort."""

    def __init__(self, bot: Bot) -> None:
        self._bot = bot

    async def send_message(self, chat_id: str, text: str) -> None:
        await self._bot.send_message(chat_id=chat_id, text=text, parse_mode=ParseMode.MARKDOWN)

    async def send_nudge(self, chat_id: str, nudge_id: str, text: str) -> str:
        message = await self._bot.send_message(
            chat_id=chat_id,
            text=text,
            parse_mode=ParseMode.MARKDOWN,
            reply_markup=nudge_keyboard(nudge_id),
        )
        logger.debug("Nudge %s delivered as message %s", nudge_id, message.message_id)
        return str(message.message_id)

    async def answer_callback(self, callback_id: str, text: str | None = None) -> None:
        await self._bot.answer_callback_query(callback_query_id=callback_id, text=text)
