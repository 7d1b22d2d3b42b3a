"""
Zen Tasks — Chat Task Agent.

One conversational turn: gather the user's active tasks, upcoming calendar
events and time context, ask the LLM for exactly one decision, and apply
that decision to the task store.

The dispatcher is a pure mapping from decision to writes; the decision
itself always comes from the LLM.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import TYPE_CHECKING

from zentasks.core.decisions import (
    AgentDecision,
    Clarify,
    CompleteTask,
    CreateTasks,
    DeleteTask,
    SnoozeTask,
    StartTask,
    Suggest,
    TaskDraft,
    UnknownAction,
    parse_agent_decision,
)
from zentasks.core.prompts import task_agent_prompt
from zentasks.core.time_context import (
    get_time_context,
    parse_timestamp,
    resolve_timezone,
    to_iso,
    utc_now,
)
from zentasks.data.models import EnergyLevel, TaskStatus
from zentasks.ports.calendar_port import CalendarError

if TYPE_CHECKING:
    from zentasks.data.db import TaskDB
    from zentasks.data.models import Task
    from zentasks.ports.calendar_port import CalendarPort
    from zentasks.ports.llm_port import LLMPort

logger = logging.getLogger(__name__)

DEFAULT_FOLLOW_UP_MINUTES = 30
FALLBACK_REPLY = "I'm having trouble processing that right now. Could you try again?"


def clamp_scale(value: int | None, default: int = 3) -> int:
    """Clamp an urgency/importance value onto the 1-5 scale."""
    if value is None:
        return default
    return max(1, min(5, value))


@dataclass
class AgentReply:
    """What the chat UI receives for one turn."""

    replies: list[str] = field(default_factory=list)
    done: bool = False

    def to_dict(self) -> dict:
        return {"replies": self.replies, "done": self.done}


class TaskAgent:
    """Applies LLM task-agent decisions to the task store."""

    def __init__(
        self,
        task_db: TaskDB,
        calendar: CalendarPort,
        llm: LLMPort,
        timezone: str = "UTC",
        lookahead_days: int = 60,
        snooze_max_days: int = 365,
    ) -> None:
        self._tasks = task_db
        self._calendar = calendar
        self._llm = llm
        self._tz = resolve_timezone(timezone)
        self._lookahead_days = lookahead_days
        self._snooze_max_days = snooze_max_days

    # ------------------------------------------------------------------
    # Public: one chat turn
    # ------------------------------------------------------------------

    async def handle_message(
        self,
        user_id: str,
        message: str,
        history: list | None = None,
        mode: str = "chat",
        now: datetime | None = None,
    ) -> AgentReply:
        """Run one conversational turn.

        Raises on store or LLM failure; the route turns that into a
        fallback apology.
        """
        now = now or utc_now()
        history = history or []

        active_tasks = self._tasks.get_active_tasks(user_id, now)

        try:
            events = await self._calendar.get_upcoming_events(self._lookahead_days)
        except CalendarError as exc:
            logger.warning("Calendar fetch failed, continuing without: %s", exc)
            events = []

        system_prompt = task_agent_prompt(
            mode, history, message, active_tasks, events,
            get_time_context(now.astimezone(self._tz)),
        )
        data = await self._llm.complete_json(system_prompt, message, max_tokens=4096)
        decision = parse_agent_decision(data)

        done = self.apply(decision, user_id, message, history, active_tasks, now)
        return AgentReply(replies=decision.reply_texts, done=done)

    # ------------------------------------------------------------------
    # Dispatcher
    # ------------------------------------------------------------------

    def apply(
        self,
        decision: AgentDecision,
        user_id: str,
        message: str = "",
        history: list | None = None,
        active_tasks: list[Task] | None = None,
        now: datetime | None = None,
    ) -> bool:
        """Write the effects of ``decision``. Returns the turn's ``done`` flag."""
        now = now or utc_now()

        if isinstance(decision, CreateTasks):
            self._create_tasks(decision.tasks, user_id, message, history or [], active_tasks or [])
            return True

        if isinstance(decision, CompleteTask):
            self._update(decision.task_id, {"status": TaskStatus.COMPLETED.value})
            return True

        if isinstance(decision, StartTask):
            minutes = decision.follow_up_minutes or DEFAULT_FOLLOW_UP_MINUTES
            self._update(decision.task_id, {
                "status": TaskStatus.IN_PROGRESS.value,
                "follow_up_at": to_iso(now + timedelta(minutes=minutes)),
            })
            return True

        if isinstance(decision, DeleteTask):
            self._update(decision.task_id, {"status": TaskStatus.DELETED.value})
            return True

        if isinstance(decision, SnoozeTask):
            snoozed_until = self._validate_snooze(decision.snoozed_until, now)
            if snoozed_until is not None:
                self._update(decision.task_id, {"snoozed_until": snoozed_until})
            return True

        if isinstance(decision, (Suggest, Clarify)):
            return False

        if isinstance(decision, UnknownAction):
            logger.warning("Ignoring unknown agent action: %r", decision.raw_action)
            return False

        raise TypeError(f"Unhandled decision type: {type(decision).__name__}")

    def _update(self, task_id: str | None, fields: dict) -> None:
        if not task_id:
            logger.warning("Agent action without task_id: %s", fields)
            return
        if self._tasks.update_task(task_id, fields) is None:
            logger.warning("Agent referenced missing task %s", task_id)

    def _validate_snooze(self, snoozed_until: str | None, now: datetime) -> str | None:
        """Return the value to store, or None when it is unusable.

        Parseable values are kept verbatim unless they lie beyond the
        configured horizon, in which case they are clamped to it.
        """
        parsed = parse_timestamp(snoozed_until)
        if parsed is None:
            logger.warning("Ignoring unparseable snoozed_until: %r", snoozed_until)
            return None
        horizon = now + timedelta(days=self._snooze_max_days)
        if parsed > horizon:
            logger.warning("Clamping snoozed_until %s to %s", snoozed_until, horizon)
            return to_iso(horizon)
        return snoozed_until

    def _create_tasks(
        self,
        drafts: list[TaskDraft],
        user_id: str,
        message: str,
        history: list,
        active_tasks: list[Task],
    ) -> list[Task]:
        known_titles = {t.title.strip().lower(): t.id for t in active_tasks}
        created: list[Task] = []

        for draft in drafts:
            depends_on = None
            if draft.depends_on_title:
                depends_on = known_titles.get(draft.depends_on_title.strip().lower())
                if depends_on is None:
                    logger.info("Dependency '%s' not found", draft.depends_on_title)

            task = self._tasks.add_task(
                user_id=user_id,
                title=draft.title or message,
                raw_input=message,
                description=draft.description,
                urgency=clamp_scale(draft.urgency),
                importance=clamp_scale(draft.importance),
                estimated_minutes=draft.estimated_minutes,
                due_date=draft.due_date,
                location=draft.location,
                tags=draft.tags,
                energy_level=draft.energy_level or EnergyLevel.MEDIUM.value,
                can_be_split=bool(draft.can_be_split),
                recurrence=draft.recurrence,
                depends_on=depends_on,
                status=TaskStatus.PENDING.value,
                ai_conversation=history,
            )
            known_titles[task.title.strip().lower()] = task.id
            created.append(task)

        return created
