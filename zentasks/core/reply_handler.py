"""
Zen Tasks — Nudge Reply Handling.

Turns inbound Telegram updates into nudge responses:

- Button presses carry "<action>:<nudge_id>" and map onto a fixed outcome.
- Free-text messages are attributed to the user's latest unanswered nudge
  and classified by the LLM.

Messages from unknown chats, or with no open nudge to answer, are ignored.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, timedelta
from enum import Enum
from typing import TYPE_CHECKING

from zentasks.core.decisions import SentimentResult
from zentasks.core.prompts import sentiment_prompt
from zentasks.core.time_context import resolve_timezone, to_iso, utc_now
from zentasks.data.models import NudgeStatus, Sentiment

if TYPE_CHECKING:
    from datetime import tzinfo

    from zentasks.data.db import NudgeDB, UserDB
    from zentasks.data.models import Nudge, User
    from zentasks.ports.llm_port import LLMPort
    from zentasks.ports.notification_port import NotificationPort

logger = logging.getLogger(__name__)

BUSY_PAUSE_HOUR = 21


class ButtonAction(str, Enum):
    ON_IT = "on_it"
    SNOOZE_1H = "snooze_1h"
    BUSY_TODAY = "busy_today"


@dataclass(frozen=True)
class ButtonOutcome:
    sentiment: Sentiment
    status: NudgeStatus
    ack: str
    pause_for_today: bool = False


BUTTON_OUTCOMES: dict[ButtonAction, ButtonOutcome] = {
    ButtonAction.ON_IT: ButtonOutcome(
        Sentiment.POSITIVE, NudgeStatus.ACCEPTED, "Awesome, you've got this! 💪",
    ),
    ButtonAction.SNOOZE_1H: ButtonOutcome(
        Sentiment.NEUTRAL, NudgeStatus.DISMISSED, "No worries, I'll check back in an hour ⏰",
    ),
    ButtonAction.BUSY_TODAY: ButtonOutcome(
        Sentiment.BUSY, NudgeStatus.DISMISSED,
        "Got it! I'll leave you alone for the rest of today 😌",
        pause_for_today=True,
    ),
}


def parse_callback_data(data: str | None) -> tuple[ButtonAction, str] | None:
    """Split "<action>:<nudge_id>"; None for malformed or unknown actions."""
    if not data or ":" not in data:
        logger.error("Invalid callback_data format: %r", data)
        return None
    action, nudge_id = data.split(":", 1)
    try:
        return ButtonAction(action), nudge_id
    except ValueError:
        logger.warning("Unknown callback action: %r", action)
        return None


def busy_pause_until(now: datetime, tz: tzinfo) -> datetime:
    """21:00 local today, or 21:00 tomorrow if that moment has passed."""
    local = now.astimezone(tz)
    target = local.replace(hour=BUSY_PAUSE_HOUR, minute=0, second=0, microsecond=0)
    if target <= local:
        target = (local + timedelta(days=1)).replace(
            hour=BUSY_PAUSE_HOUR, minute=0, second=0, microsecond=0,
        )
    return target


class ReplyCorrelator:
    """Maps a chat identity to its user and their latest unanswered nudge."""

    def __init__(self, user_db: UserDB, nudge_db: NudgeDB) -> None:
        self._users = user_db
        self._nudges = nudge_db

    def find_user(self, chat_id: str) -> User | None:
        return self._users.find_by_chat_id(chat_id)

    def find_target(self, chat_id: str) -> tuple[User, Nudge] | None:
        user = self.find_user(chat_id)
        if user is None:
            logger.info("No user found for chat_id %s", chat_id)
            return None
        nudge = self._nudges.latest_unresponded(user.id)
        if nudge is None:
            logger.info("No unresponded nudge found for user %s", user.id)
            return None
        return user, nudge


class ReplyHandler:
    """Handles Telegram webhook updates that answer nudges."""

    def __init__(
        self,
        user_db: UserDB,
        nudge_db: NudgeDB,
        llm: LLMPort,
        notifier: NotificationPort,
        default_timezone: str = "UTC",
    ) -> None:
        self._users = user_db
        self._nudges = nudge_db
        self._llm = llm
        self._notifier = notifier
        self._correlator = ReplyCorrelator(user_db, nudge_db)
        self._default_tz = default_timezone

    async def handle_update(self, update: dict, now: datetime | None = None) -> None:
        """Route a raw Telegram update. Other update types are ignored."""
        now = now or utc_now()
        if update.get("callback_query"):
            await self.handle_button(update["callback_query"], now)
            return

        message = update.get("message") or {}
        if message.get("text"):
            await self.handle_text(message, now)

    async def handle_button(self, callback_query: dict, now: datetime | None = None) -> None:
        now = now or utc_now()
        parsed = parse_callback_data(callback_query.get("data"))
        if parsed is None:
            return

        action, nudge_id = parsed
        outcome = BUTTON_OUTCOMES[action]
        chat_id = str(callback_query["message"]["chat"]["id"])

        self._nudges.record_response(
            nudge_id,
            responded_at=now,
            sentiment=outcome.sentiment.value,
            status=outcome.status.value,
        )

        if outcome.pause_for_today:
            user = self._correlator.find_user(chat_id)
            if user is not None:
                tz = resolve_timezone(user.timezone, self._default_tz)
                self._users.set_nudge_paused_until(user.id, to_iso(busy_pause_until(now, tz)))

        await self._notifier.answer_callback(str(callback_query["id"]))
        await self._notifier.send_message(chat_id, outcome.ack)

    async def handle_text(self, message: dict, now: datetime | None = None) -> None:
        now = now or utc_now()
        chat_id = str(message["chat"]["id"])
        text = message.get("text") or ""

        target = self._correlator.find_target(chat_id)
        if target is None:
            return
        user, nudge = target

        data = await self._llm.complete_json(
            sentiment_prompt(text, nudge.message_text), text, max_tokens=512,
        )
        result = SentimentResult.from_llm(data)

        self._nudges.record_response(
            nudge.id,
            responded_at=now,
            sentiment=result.sentiment.value,
            response_text=text,
        )

        if result.pause_hours > 0:
            paused_until = now + timedelta(hours=result.pause_hours)
            self._users.set_nudge_paused_until(user.id, to_iso(paused_until))

        await self._notifier.send_message(chat_id, result.brief_ack)
