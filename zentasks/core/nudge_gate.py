"""Nudge eligibility gate — pure policy.

Decides from a user's pause state and today's nudge history whether the
periodic job may try to nudge them on this tick. The checks run in order
and the first failing one wins.

No I/O: this module only transforms data.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime

from zentasks.core.time_context import parse_timestamp
from zentasks.data.models import Nudge, Sentiment, User

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class NudgePolicy:
    """Thresholds for the periodic nudge job."""

    window_hours: int = 2
    min_slot_minutes: int = 15
    max_unanswered: int = 2
    cooldown_minutes: int = 60
    dedup_minutes: int = 10

    @classmethod
    def from_settings(cls) -> NudgePolicy:
        from zentasks.config import settings

        return cls(
            window_hours=settings.NUDGE_WINDOW_HOURS,
            min_slot_minutes=settings.NUDGE_MIN_SLOT_MINUTES,
            max_unanswered=settings.NUDGE_MAX_UNANSWERED,
            cooldown_minutes=settings.NUDGE_COOLDOWN_MINUTES,
            dedup_minutes=settings.NUDGE_DEDUP_MINUTES,
        )


@dataclass
class NudgeContext:
    """Today's nudge history, summarized for the matcher prompt."""

    todays_nudge_count: int
    unanswered_count: int
    last_nudge_minutes_ago: float | None = None
    last_sentiment: str | None = None
    can_send_more: bool = True


@dataclass
class GateDecision:
    """Outcome of the gate: either a skip reason or a context to proceed with."""

    skip_reason: str | None = None
    context: NudgeContext | None = None

    @property
    def eligible(self) -> bool:
        return self.skip_reason is None


def _minutes_since(timestamp: str | None, now: datetime) -> float | None:
    created = parse_timestamp(timestamp)
    if created is None:
        return None
    return (now - created).total_seconds() / 60


def is_paused(user: User, now: datetime) -> bool:
    paused_until = parse_timestamp(user.nudge_paused_until)
    return paused_until is not None and paused_until > now


class NudgeGate:
    """Ordered, short-circuiting eligibility checks for one user and tick."""

    def __init__(self, policy: NudgePolicy | None = None) -> None:
        self._policy = policy or NudgePolicy()

    def evaluate(
        self, user: User, todays_nudges: list[Nudge], now: datetime,
    ) -> GateDecision:
        """Apply the pause, cap, cooldown and busy checks.

        Args:
            user: The user being considered.
            todays_nudges: Nudges created since local midnight, newest first.
            now: Current time (aware).
        """
        if is_paused(user, now):
            return GateDecision(skip_reason=f"paused until {user.nudge_paused_until}")

        unanswered = sum(1 for n in todays_nudges if n.is_unanswered)
        if unanswered >= self._policy.max_unanswered:
            return GateDecision(skip_reason=f"{unanswered} unanswered nudges today")

        latest = todays_nudges[0] if todays_nudges else None
        minutes_ago = _minutes_since(latest.created_at, now) if latest else None

        if unanswered == 1 and latest is not None:
            if minutes_ago is not None and minutes_ago < self._policy.cooldown_minutes:
                return GateDecision(
                    skip_reason=f"last nudge only {int(minutes_ago)} min ago",
                )

        if latest is not None and latest.ai_sentiment == Sentiment.BUSY.value:
            return GateDecision(skip_reason="last reply said busy")

        return GateDecision(
            context=NudgeContext(
                todays_nudge_count=len(todays_nudges),
                unanswered_count=unanswered,
                last_nudge_minutes_ago=round(minutes_ago, 1) if minutes_ago is not None else None,
                last_sentiment=latest.ai_sentiment if latest else None,
            ),
        )
