"""Tests for zentasks.core.nudge_scheduler — the periodic nudge job.

Stores are real temp SQLite files; calendar, LLM and Telegram are fakes so
the tests can count external calls.
"""

from datetime import datetime, timedelta, timezone

import pytest

from zentasks.core.llm import LLMParseError
from zentasks.core.nudge_gate import NudgePolicy
from zentasks.core.nudge_scheduler import NudgeScheduler, NudgeTickReport, fetch_free_slots
from zentasks.core.time_context import to_iso
from zentasks.ports.calendar_port import CalendarError

NOW = datetime(2025, 1, 15, 10, 0, tzinfo=timezone.utc)


@pytest.fixture
def scheduler(user_db, task_db, nudge_db, calendar, llm, notifier):
    return NudgeScheduler(user_db, task_db, nudge_db, calendar, llm, notifier, NudgePolicy())


def _match(task_id: str, message: str = "Got 30 minutes? Knock out the report!") -> dict:
    return {"task_id": task_id, "task_title": "Report", "message": message}


class TestFetchFreeSlots:
    @pytest.mark.asyncio
    async def test_queries_policy_window(self, calendar):
        slots = await fetch_free_slots(calendar, NOW, NudgePolicy(window_hours=2))
        calendar.get_busy_periods.assert_awaited_once_with(NOW, NOW + timedelta(hours=2))
        assert [s.duration_minutes for s in slots] == [120]

    @pytest.mark.asyncio
    async def test_calendar_failure_means_free(self, calendar):
        calendar.get_busy_periods.side_effect = CalendarError("boom")
        slots = await fetch_free_slots(calendar, NOW, NudgePolicy())
        assert len(slots) == 1

    @pytest.mark.asyncio
    async def test_fully_booked(self, calendar):
        calendar.get_busy_periods.return_value = [
            {"start": to_iso(NOW - timedelta(hours=1)), "end": to_iso(NOW + timedelta(hours=3))},
        ]
        assert await fetch_free_slots(calendar, NOW, NudgePolicy()) == []


class TestNudgeTickReport:
    def test_errors_omitted_when_empty(self):
        assert NudgeTickReport(1, 2).to_dict() == {"nudges_sent": 1, "users_processed": 2}

    def test_errors_included(self):
        body = NudgeTickReport(0, 1, ["User u1: boom"]).to_dict()
        assert body["errors"] == ["User u1: boom"]


class TestNudgeScheduler:
    @pytest.mark.asyncio
    async def test_sends_nudge(self, scheduler, user_db, task_db, nudge_db, llm, notifier):
        user = user_db.add_user("Dana", telegram_chat_id="12345")
        task = task_db.add_task(user.id, "Report")
        llm.complete_json.return_value = _match(task.id)

        report = await scheduler.run(now=NOW)

        assert report.to_dict() == {"nudges_sent": 1, "users_processed": 1}
        nudge = nudge_db.latest_for_user(user.id)
        assert nudge.task_id == task.id
        assert nudge.status == "sent"
        assert nudge.telegram_msg_id == "777"
        assert nudge.created_at == to_iso(NOW)
        assert nudge.calendar_slot["duration_minutes"] == 120
        notifier.send_nudge.assert_awaited_once_with("12345", nudge.id, nudge.message_text)

    @pytest.mark.asyncio
    async def test_llm_slot_is_kept(self, scheduler, user_db, task_db, nudge_db, llm):
        user = user_db.add_user("Dana", telegram_chat_id="12345")
        task = task_db.add_task(user.id, "Report")
        slot = {"start": "2025-01-15T10:00:00Z", "end": "2025-01-15T10:30:00Z"}
        llm.complete_json.return_value = {**_match(task.id), "slot": slot}

        await scheduler.run(now=NOW)
        assert nudge_db.latest_for_user(user.id).calendar_slot == slot

    @pytest.mark.asyncio
    async def test_paused_user_makes_no_external_calls(
        self, scheduler, user_db, task_db, calendar, llm, notifier,
    ):
        user = user_db.add_user("Dana", telegram_chat_id="12345")
        task_db.add_task(user.id, "Report")
        user_db.set_nudge_paused_until(user.id, to_iso(NOW + timedelta(hours=2)))

        report = await scheduler.run(now=NOW)

        assert report.nudges_sent == 0
        assert report.users_processed == 1
        calendar.get_busy_periods.assert_not_called()
        llm.complete_json.assert_not_called()
        notifier.send_nudge.assert_not_called()

    @pytest.mark.asyncio
    async def test_two_unanswered_stops_before_calendar(
        self, scheduler, user_db, task_db, nudge_db, calendar, llm,
    ):
        user = user_db.add_user("Dana", telegram_chat_id="12345")
        task = task_db.add_task(user.id, "Report")
        nudge_db.add_nudge(user.id, task.id, "one", created_at=NOW - timedelta(hours=3))
        nudge_db.add_nudge(user.id, task.id, "two", created_at=NOW - timedelta(hours=2))

        report = await scheduler.run(now=NOW)

        assert report.nudges_sent == 0
        calendar.get_busy_periods.assert_not_called()
        llm.complete_json.assert_not_called()

    @pytest.mark.asyncio
    async def test_yesterdays_nudges_do_not_count(self, scheduler, user_db, task_db, nudge_db, llm):
        user = user_db.add_user("Dana", telegram_chat_id="12345")
        task = task_db.add_task(user.id, "Report")
        nudge_db.add_nudge(user.id, task.id, "one", created_at=NOW - timedelta(days=1, hours=2))
        nudge_db.add_nudge(user.id, task.id, "two", created_at=NOW - timedelta(days=1, hours=1))
        llm.complete_json.return_value = _match(task.id)

        assert (await scheduler.run(now=NOW)).nudges_sent == 1

    @pytest.mark.asyncio
    async def test_no_free_slots_skips_llm(self, scheduler, user_db, task_db, calendar, llm):
        user = user_db.add_user("Dana", telegram_chat_id="12345")
        task_db.add_task(user.id, "Report")
        calendar.get_busy_periods.return_value = [
            {"start": to_iso(NOW), "end": to_iso(NOW + timedelta(hours=2))},
        ]

        report = await scheduler.run(now=NOW)

        assert report.nudges_sent == 0
        llm.complete_json.assert_not_called()

    @pytest.mark.asyncio
    async def test_no_active_tasks_skips_llm(self, scheduler, user_db, llm):
        user_db.add_user("Dana", telegram_chat_id="12345")
        assert (await scheduler.run(now=NOW)).nudges_sent == 0
        llm.complete_json.assert_not_called()

    @pytest.mark.asyncio
    async def test_incomplete_match_is_a_skip(self, scheduler, user_db, task_db, nudge_db, llm, notifier):
        user = user_db.add_user("Dana", telegram_chat_id="12345")
        task_db.add_task(user.id, "Report")
        llm.complete_json.return_value = {"task_id": None, "message": ""}

        report = await scheduler.run(now=NOW)

        assert report.to_dict() == {"nudges_sent": 0, "users_processed": 1}
        assert nudge_db.latest_for_user(user.id) is None
        notifier.send_nudge.assert_not_called()

    @pytest.mark.asyncio
    async def test_invented_task_id_is_a_skip(self, scheduler, user_db, task_db, nudge_db, llm):
        user = user_db.add_user("Dana", telegram_chat_id="12345")
        task_db.add_task(user.id, "Report")
        llm.complete_json.return_value = _match("not-a-real-task")

        assert (await scheduler.run(now=NOW)).nudges_sent == 0
        assert nudge_db.latest_for_user(user.id) is None

    @pytest.mark.asyncio
    async def test_errors_are_collected_per_user(self, scheduler, user_db, task_db, llm):
        broken = user_db.add_user("Broken", telegram_chat_id="1")
        fine = user_db.add_user("Fine", telegram_chat_id="2")
        task_db.add_task(broken.id, "A")
        fine_task = task_db.add_task(fine.id, "B")
        llm.complete_json.side_effect = [LLMParseError("garbage"), _match(fine_task.id)]

        report = await scheduler.run(now=NOW)

        assert report.nudges_sent == 1
        assert report.users_processed == 2
        assert report.errors == [f"User {broken.id}: garbage"]

    @pytest.mark.asyncio
    async def test_send_failure_is_collected(self, scheduler, user_db, task_db, nudge_db, llm, notifier):
        user = user_db.add_user("Dana", telegram_chat_id="12345")
        task = task_db.add_task(user.id, "Report")
        llm.complete_json.return_value = _match(task.id)
        notifier.send_nudge.side_effect = RuntimeError("Forbidden: bot was blocked")

        report = await scheduler.run(now=NOW)

        assert report.nudges_sent == 0
        assert "bot was blocked" in report.errors[0]
        assert nudge_db.latest_unresponded(user.id) is None
        failed = nudge_db.latest_for_user(user.id)
        assert failed.status == "expired"
        assert failed.telegram_msg_id is None

    @pytest.mark.asyncio
    async def test_failed_sends_do_not_block_later_ticks(
        self, scheduler, user_db, task_db, nudge_db, llm, notifier,
    ):
        user = user_db.add_user("Dana", telegram_chat_id="12345")
        task = task_db.add_task(user.id, "Report")
        llm.complete_json.return_value = _match(task.id)
        notifier.send_nudge.side_effect = RuntimeError("Timed out")

        await scheduler.run(now=NOW - timedelta(minutes=30))
        await scheduler.run(now=NOW - timedelta(minutes=15))
        notifier.send_nudge.side_effect = None
        report = await scheduler.run(now=NOW)

        assert report.nudges_sent == 1
        assert notifier.send_nudge.await_count == 3
        assert nudge_db.latest_unresponded(user.id).created_at == to_iso(NOW)

    @pytest.mark.asyncio
    async def test_recent_nudge_from_overlapping_run_is_not_duplicated(
        self, scheduler, user_db, task_db, nudge_db, llm, notifier,
    ):
        user = user_db.add_user("Dana", telegram_chat_id="12345")
        task = task_db.add_task(user.id, "Report")
        # answered, so the gate lets it through, but it is only 2 minutes old
        recent = nudge_db.add_nudge(user.id, task.id, "hi", created_at=NOW - timedelta(minutes=2))
        nudge_db.record_response(recent.id, NOW, "positive", status="accepted")
        llm.complete_json.return_value = _match(task.id)

        report = await scheduler.run(now=NOW)

        assert report.nudges_sent == 0
        notifier.send_nudge.assert_not_called()

    @pytest.mark.asyncio
    async def test_users_without_chat_are_not_processed(self, scheduler, user_db):
        user_db.add_user("No telegram")
        report = await scheduler.run(now=NOW)
        assert report.users_processed == 0
