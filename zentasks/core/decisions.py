"""
Zen Tasks — Typed AI decisions.

The LLM answers in free-form JSON. Everything it says is funnelled into one
of the closed sets below before any state changes:

- task-agent turns → one AgentDecision variant (or UnknownAction)
- nudge matching   → NudgeMatch
- reply sentiment  → SentimentResult
"""

from __future__ import annotations

import logging
import math
from enum import Enum
from typing import Any

from pydantic import BaseModel, ValidationError, field_validator

from zentasks.core.llm import IncompleteResponseError, LLMParseError
from zentasks.data.models import EnergyLevel, Sentiment

logger = logging.getLogger(__name__)


class AgentAction(str, Enum):
    CREATE = "create"
    COMPLETE = "complete"
    START = "start"
    DELETE = "delete"
    SNOOZE = "snooze"
    SUGGEST = "suggest"
    CLARIFY = "clarify"
    UNKNOWN = "unknown"


def _coerce_int(v: Any) -> int | None:
    """Best-effort int from LLM output ("4", 4.0, 4); None otherwise."""
    if v is None or isinstance(v, bool):
        return None
    try:
        return int(float(v))
    except (TypeError, ValueError, OverflowError):
        return None


# ---------------------------------------------------------------------------
# Task agent decisions
# ---------------------------------------------------------------------------


class TaskDraft(BaseModel):
    """One task the agent wants to create. All fields are optional."""

    title: str | None = None
    description: str | None = None
    urgency: int | None = None
    importance: int | None = None
    estimated_minutes: int | None = None
    due_date: str | None = None
    location: str | None = None
    tags: list[str] = []
    energy_level: str | None = None
    can_be_split: bool | None = None
    recurrence: str | None = None
    depends_on_title: str | None = None

    @field_validator("urgency", "importance", "estimated_minutes", mode="before")
    @classmethod
    def parse_number(cls, v: Any) -> int | None:
        return _coerce_int(v)

    @field_validator("tags", mode="before")
    @classmethod
    def parse_tags(cls, v: Any) -> list[str]:
        if isinstance(v, list):
            return [str(t) for t in v if t is not None]
        if isinstance(v, str) and v.strip():
            return [v.strip()]
        return []

    @field_validator("energy_level", mode="before")
    @classmethod
    def parse_energy(cls, v: Any) -> str | None:
        if isinstance(v, str) and v.strip().lower() in {e.value for e in EnergyLevel}:
            return v.strip().lower()
        return None


class _AgentDecision(BaseModel):
    reply: str | None = None
    replies: list[str] | None = None

    @property
    def reply_texts(self) -> list[str]:
        if self.replies:
            return list(self.replies)
        if self.reply:
            return [self.reply]
        return []


class CreateTasks(_AgentDecision):
    action: AgentAction = AgentAction.CREATE
    tasks: list[TaskDraft] = []


class CompleteTask(_AgentDecision):
    action: AgentAction = AgentAction.COMPLETE
    task_id: str | None = None


class StartTask(_AgentDecision):
    action: AgentAction = AgentAction.START
    task_id: str | None = None
    follow_up_minutes: int | None = None

    @field_validator("follow_up_minutes", mode="before")
    @classmethod
    def parse_minutes(cls, v: Any) -> int | None:
        return _coerce_int(v)


class DeleteTask(_AgentDecision):
    action: AgentAction = AgentAction.DELETE
    task_id: str | None = None


class SnoozeTask(_AgentDecision):
    action: AgentAction = AgentAction.SNOOZE
    task_id: str | None = None
    snoozed_until: str | None = None


class Suggest(_AgentDecision):
    action: AgentAction = AgentAction.SUGGEST
    task_id: str | None = None


class Clarify(_AgentDecision):
    action: AgentAction = AgentAction.CLARIFY


class UnknownAction(_AgentDecision):
    action: AgentAction = AgentAction.UNKNOWN
    raw_action: str | None = None


AgentDecision = (
    CreateTasks | CompleteTask | StartTask | DeleteTask | SnoozeTask
    | Suggest | Clarify | UnknownAction
)

_DECISION_TYPES: dict[AgentAction, type[_AgentDecision]] = {
    AgentAction.CREATE: CreateTasks,
    AgentAction.COMPLETE: CompleteTask,
    AgentAction.START: StartTask,
    AgentAction.DELETE: DeleteTask,
    AgentAction.SNOOZE: SnoozeTask,
    AgentAction.SUGGEST: Suggest,
    AgentAction.CLARIFY: Clarify,
}


def parse_agent_decision(data: Any) -> AgentDecision:
    """Instantiate a task-agent reply into its typed variant.

    Raises LLMParseError if ``data`` is not a JSON object. Unrecognized or
    malformed actions become UnknownAction.
    """
    if not isinstance(data, dict):
        raise LLMParseError(f"Expected a JSON object, got {type(data).__name__}")

    raw_action = data.get("action")
    reply_fields = {k: data.get(k) for k in ("reply", "replies")}
    try:
        action = AgentAction(str(raw_action).strip().lower())
    except ValueError:
        action = AgentAction.UNKNOWN

    model = _DECISION_TYPES.get(action)
    if model is None:
        logger.warning("LLM returned unknown action: '%s'", raw_action)
        return _unknown(raw_action, reply_fields)

    payload = {k: v for k, v in data.items() if k != "action"}
    try:
        return model(**payload)
    except ValidationError as exc:
        logger.warning("LLM returned malformed '%s' action: %s", action.value, exc)
        return _unknown(raw_action, reply_fields)


def _unknown(raw_action: Any, reply_fields: dict) -> UnknownAction:
    replies = reply_fields.get("replies")
    reply = reply_fields.get("reply")
    return UnknownAction(
        raw_action=str(raw_action) if raw_action is not None else None,
        reply=reply if isinstance(reply, str) else None,
        replies=[r for r in replies if isinstance(r, str)] if isinstance(replies, list) else None,
    )


# ---------------------------------------------------------------------------
# Nudge matching
# ---------------------------------------------------------------------------


class NudgeMatch(BaseModel):
    """The task and message the matcher picked for a free slot."""

    task_id: str
    message: str
    slot: dict | None = None
    task_title: str | None = None
    reason: str | None = None

    @classmethod
    def from_llm(cls, data: Any, valid_task_ids: set[str] | None = None) -> NudgeMatch:
        """Validate a matcher reply.

        Raises LLMParseError for non-objects and IncompleteResponseError when
        no usable task/message pair was returned.
        """
        if not isinstance(data, dict):
            raise LLMParseError(f"Expected a JSON object, got {type(data).__name__}")

        task_id = data.get("task_id")
        message = data.get("message")
        if not task_id or not message:
            raise IncompleteResponseError("Matcher returned no task or message")
        if valid_task_ids is not None and str(task_id) not in valid_task_ids:
            raise IncompleteResponseError(f"Matcher picked unknown task {task_id!r}")

        slot = data.get("slot")
        return cls(
            task_id=str(task_id),
            message=str(message),
            slot=slot if isinstance(slot, dict) else None,
            task_title=data.get("task_title"),
            reason=data.get("reason"),
        )


# ---------------------------------------------------------------------------
# Sentiment
# ---------------------------------------------------------------------------

_DEFAULT_ACK = "Thanks for letting me know!"
MAX_PAUSE_HOURS = 24 * 7


class SentimentResult(BaseModel):
    sentiment: Sentiment
    pause_hours: float = 0
    brief_ack: str = _DEFAULT_ACK

    @classmethod
    def from_llm(cls, data: Any) -> SentimentResult:
        if not isinstance(data, dict):
            raise LLMParseError(f"Expected a JSON object, got {type(data).__name__}")

        sentiment = Sentiment.parse(data.get("sentiment"))
        if sentiment is Sentiment.UNKNOWN:
            logger.warning("LLM returned unknown sentiment: '%s'", data.get("sentiment"))

        try:
            pause_hours = float(data.get("pause_hours") or 0)
        except (TypeError, ValueError, OverflowError):
            pause_hours = 0.0
        if math.isnan(pause_hours):
            pause_hours = 0.0
        pause_hours = min(MAX_PAUSE_HOURS, max(0.0, pause_hours))

        ack = data.get("brief_ack")
        return cls(
            sentiment=sentiment,
            pause_hours=pause_hours,
            brief_ack=ack if isinstance(ack, str) and ack.strip() else _DEFAULT_ACK,
        )
