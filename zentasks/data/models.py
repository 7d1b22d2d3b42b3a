"""
Zen Tasks — Data Models.

Users, their tasks, and the nudges sent about those tasks. All three persist
in SQLite; calendar data is never stored, only read on demand.
"""

from __future__ import annotations

from dataclasses import asdict, dataclass, field
from enum import Enum


class TaskStatus(str, Enum):
    PENDING = "pending"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    DELETED = "deleted"


class EnergyLevel(str, Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"


class NudgeStatus(str, Enum):
    SENT = "sent"
    ACCEPTED = "accepted"
    DISMISSED = "dismissed"
    EXPIRED = "expired"


class Sentiment(str, Enum):
    POSITIVE = "positive"
    NEUTRAL = "neutral"
    BUSY = "busy"
    DISMISSIVE = "dismissive"
    UNKNOWN = "unknown"

    @classmethod
    def parse(cls, value: object) -> Sentiment:
        """Map free-form text onto a member; anything else is UNKNOWN."""
        if isinstance(value, str):
            try:
                return cls(value.strip().lower())
            except ValueError:
                pass
        return cls.UNKNOWN


ACTIVE_STATUSES = (TaskStatus.PENDING, TaskStatus.IN_PROGRESS)


@dataclass
class User:
    """A person whose to-do list this backend manages."""

    id: str
    display_name: str
    timezone: str = "UTC"
    telegram_chat_id: str | None = None
    email: str | None = None
    nudge_paused_until: str | None = None   # ISO timestamp
    created_at: str = ""
    updated_at: str = ""


@dataclass
class Task:
    """A single to-do item.

    Never physically deleted: "deleted" is a status value.
    """

    id: str
    user_id: str
    title: str
    raw_input: str = ""
    description: str | None = None
    urgency: int = 3                       # 1-5
    importance: int = 3                    # 1-5
    due_date: str | None = None            # ISO timestamp
    estimated_minutes: int | None = None
    energy_level: str = EnergyLevel.MEDIUM.value
    can_be_split: bool = False
    recurrence: str | None = None
    location: str | None = None
    depends_on: str | None = None          # task id
    tags: list[str] = field(default_factory=list)
    status: str = TaskStatus.PENDING.value
    snoozed_until: str | None = None       # ISO timestamp, caller-supplied
    follow_up_at: str | None = None        # ISO timestamp
    ai_conversation: list = field(default_factory=list)
    created_at: str = ""
    updated_at: str = ""

    def to_dict(self) -> dict:
        return asdict(self)


@dataclass
class Nudge:
    """A proactive reminder about one task, with acknowledgment tracking."""

    id: str
    user_id: str
    task_id: str
    message_text: str
    channel: str = "telegram"
    calendar_slot: dict | None = None      # {"start", "end", "duration_minutes"}
    status: str = NudgeStatus.SENT.value
    responded_at: str | None = None
    response_text: str | None = None
    ai_sentiment: str | None = None
    telegram_msg_id: str | None = None
    created_at: str = ""
    updated_at: str = ""

    @property
    def is_unanswered(self) -> bool:
        return self.status == NudgeStatus.SENT.value and not self.responded_at
