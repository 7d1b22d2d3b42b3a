"""
Zen Tasks — Periodic Nudge Job.

On every tick, walks all users with a Telegram chat and, for each one that
passes the eligibility gate, looks for a free slot in the next couple of
hours, asks the LLM to pick a task for it, and sends the nudge.

This module is provider-agnostic: it depends on CalendarPort,
NotificationPort and LLMPort protocols, not on specific implementations.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import TYPE_CHECKING

from zentasks.core.decisions import NudgeMatch
from zentasks.core.free_slots import CalendarSlot, busy_periods_from_raw, find_free_slots
from zentasks.core.llm import IncompleteResponseError
from zentasks.core.nudge_gate import NudgeGate, NudgePolicy
from zentasks.core.prompts import nudge_match_prompt
from zentasks.core.time_context import (
    get_time_context,
    local_midnight,
    parse_timestamp,
    resolve_timezone,
    utc_now,
)
from zentasks.data.models import NudgeStatus
from zentasks.ports.calendar_port import CalendarError

if TYPE_CHECKING:
    from zentasks.data.db import NudgeDB, TaskDB, UserDB
    from zentasks.data.models import User
    from zentasks.ports.calendar_port import CalendarPort
    from zentasks.ports.llm_port import LLMPort
    from zentasks.ports.notification_port import NotificationPort

logger = logging.getLogger(__name__)


@dataclass
class NudgeTickReport:
    """Counts for one run of the job."""

    nudges_sent: int = 0
    users_processed: int = 0
    errors: list[str] = field(default_factory=list)

    def to_dict(self) -> dict:
        body: dict = {
            "nudges_sent": self.nudges_sent,
            "users_processed": self.users_processed,
        }
        if self.errors:
            body["errors"] = self.errors
        return body


async def fetch_free_slots(
    calendar: CalendarPort,
    now: datetime,
    policy: NudgePolicy,
) -> list[CalendarSlot]:
    """Free slots in the policy window. Calendar failure means "no busy time"."""
    window_end = now + timedelta(hours=policy.window_hours)
    try:
        raw_busy = await calendar.get_busy_periods(now, window_end)
    except CalendarError as exc:
        logger.warning("Free/busy lookup failed, assuming a free calendar: %s", exc)
        raw_busy = []
    return find_free_slots(
        busy_periods_from_raw(raw_busy), window_end, policy.min_slot_minutes, now=now,
    )


class NudgeScheduler:
    """Runs one nudge tick across all users, strictly one user at a time."""

    def __init__(
        self,
        user_db: UserDB,
        task_db: TaskDB,
        nudge_db: NudgeDB,
        calendar: CalendarPort,
        llm: LLMPort,
        notifier: NotificationPort,
        policy: NudgePolicy | None = None,
        default_timezone: str = "UTC",
    ) -> None:
        self._users = user_db
        self._tasks = task_db
        self._nudges = nudge_db
        self._calendar = calendar
        self._llm = llm
        self._notifier = notifier
        self._policy = policy or NudgePolicy()
        self._gate = NudgeGate(self._policy)
        self._default_tz = default_timezone

    async def run(self, now: datetime | None = None) -> NudgeTickReport:
        """Process every nudgeable user; per-user failures are collected.

        Raises only if the user list itself cannot be read.
        """
        now = now or utc_now()
        report = NudgeTickReport()

        for user in self._users.list_nudgeable_users():
            report.users_processed += 1
            try:
                if await self._process_user(user, now):
                    report.nudges_sent += 1
            except Exception as exc:
                logger.error("Error processing user %s: %s", user.id, exc)
                report.errors.append(f"User {user.id}: {exc}")

        logger.info(
            "Nudge tick done: %d sent, %d users, %d errors",
            report.nudges_sent, report.users_processed, len(report.errors),
        )
        return report

    async def _process_user(self, user: User, now: datetime) -> bool:
        """Run the full pipeline for one user. Returns True if a nudge went out."""
        tz = resolve_timezone(user.timezone, self._default_tz)
        todays_nudges = self._nudges.nudges_since(user.id, local_midnight(now, tz))

        decision = self._gate.evaluate(user, todays_nudges, now)
        if not decision.eligible:
            logger.info("User %s skipped: %s", user.id, decision.skip_reason)
            return False

        free_slots = await fetch_free_slots(self._calendar, now, self._policy)
        if not free_slots:
            logger.info("User %s skipped: no free slots", user.id)
            return False

        active_tasks = self._tasks.get_active_tasks(user.id, now)
        if not active_tasks:
            logger.info("User %s skipped: no active tasks", user.id)
            return False

        data = await self._llm.complete_json(
            nudge_match_prompt(
                free_slots, active_tasks, decision.context,
                get_time_context(now.astimezone(tz)),
            ),
            "Match a task to a free slot",
            max_tokens=1024,
        )
        try:
            match = NudgeMatch.from_llm(data, valid_task_ids={t.id for t in active_tasks})
        except IncompleteResponseError as exc:
            logger.info("User %s skipped: %s", user.id, exc)
            return False

        if self._recently_nudged(user, now):
            logger.info("User %s skipped: nudged by an overlapping run", user.id)
            return False

        nudge = self._nudges.add_nudge(
            user_id=user.id,
            task_id=match.task_id,
            message_text=match.message,
            calendar_slot=match.slot or free_slots[0].to_dict(),
            created_at=now,
        )
        try:
            message_id = await self._notifier.send_nudge(user.telegram_chat_id, nudge.id, match.message)
        except Exception:
            # An undelivered nudge must not count as unanswered or take replies
            self._nudges.set_status(nudge.id, NudgeStatus.EXPIRED.value)
            logger.warning("Nudge %s for user %s was not delivered; marked expired", nudge.id, user.id)
            raise
        self._nudges.set_message_id(nudge.id, message_id)

        logger.info("Sent nudge to user %s: %s", user.id, match.message)
        return True

    def _recently_nudged(self, user: User, now: datetime) -> bool:
        """Re-read the latest nudge right before inserting a new one."""
        if self._policy.dedup_minutes <= 0:
            return False
        latest = self._nudges.latest_for_user(user.id)
        if latest is None or latest.status == NudgeStatus.EXPIRED.value:
            return False
        created = parse_timestamp(latest.created_at)
        if created is None:
            return False
        return now - created < timedelta(minutes=self._policy.dedup_minutes)
