"""Tests for zentasks.core.decisions — typed LLM replies."""

import pytest

from zentasks.core.decisions import (
    MAX_PAUSE_HOURS,
    AgentAction,
    Clarify,
    CompleteTask,
    CreateTasks,
    NudgeMatch,
    SentimentResult,
    SnoozeTask,
    StartTask,
    UnknownAction,
    parse_agent_decision,
)
from zentasks.core.llm import IncompleteResponseError, LLMParseError
from zentasks.data.models import Sentiment


class TestParseAgentDecision:
    def test_create_with_tasks(self):
        decision = parse_agent_decision({
            "action": "create",
            "reply": "Added!",
            "tasks": [{"title": "Buy milk", "urgency": "4", "tags": "errand", "energy_level": "LOW"}],
        })
        assert isinstance(decision, CreateTasks)
        draft = decision.tasks[0]
        assert draft.title == "Buy milk"
        assert draft.urgency == 4
        assert draft.tags == ["errand"]
        assert draft.energy_level == "low"

    def test_unknown_energy_level_is_dropped(self):
        decision = parse_agent_decision({
            "action": "create", "tasks": [{"title": "x", "energy_level": "extreme"}],
        })
        assert decision.tasks[0].energy_level is None

    def test_complete(self):
        decision = parse_agent_decision({"action": "complete", "task_id": "t1", "reply": "Nice"})
        assert isinstance(decision, CompleteTask)
        assert decision.task_id == "t1"

    def test_start_coerces_minutes(self):
        decision = parse_agent_decision({"action": "start", "task_id": "t1", "follow_up_minutes": "45"})
        assert isinstance(decision, StartTask)
        assert decision.follow_up_minutes == 45

    def test_action_is_case_insensitive(self):
        assert isinstance(parse_agent_decision({"action": " Snooze "}), SnoozeTask)

    def test_clarify(self):
        decision = parse_agent_decision({"action": "clarify", "reply": "Which one?"})
        assert isinstance(decision, Clarify)
        assert decision.action is AgentAction.CLARIFY

    def test_unknown_action_keeps_reply(self):
        decision = parse_agent_decision({"action": "teleport", "reply": "Whoosh"})
        assert isinstance(decision, UnknownAction)
        assert decision.raw_action == "teleport"
        assert decision.reply_texts == ["Whoosh"]

    def test_missing_action_is_unknown(self):
        assert isinstance(parse_agent_decision({"reply": "hi"}), UnknownAction)

    def test_malformed_payload_is_unknown(self):
        decision = parse_agent_decision({"action": "create", "tasks": "not a list", "reply": "ok"})
        assert isinstance(decision, UnknownAction)
        assert decision.reply_texts == ["ok"]

    def test_non_object_raises(self):
        with pytest.raises(LLMParseError):
            parse_agent_decision(["create"])

    def test_replies_take_precedence_over_reply(self):
        decision = parse_agent_decision({
            "action": "clarify", "reply": "single", "replies": ["one", "two"],
        })
        assert decision.reply_texts == ["one", "two"]

    def test_no_reply_at_all(self):
        assert parse_agent_decision({"action": "clarify"}).reply_texts == []


class TestNudgeMatch:
    def test_valid_match(self):
        match = NudgeMatch.from_llm(
            {"task_id": "t1", "message": "Go!", "slot": {"start": "a", "end": "b"}},
            valid_task_ids={"t1"},
        )
        assert match.task_id == "t1"
        assert match.slot == {"start": "a", "end": "b"}

    @pytest.mark.parametrize(
        "data",
        [{"message": "Go!"}, {"task_id": "t1"}, {"task_id": "", "message": "Go!"}],
    )
    def test_incomplete_match(self, data):
        with pytest.raises(IncompleteResponseError):
            NudgeMatch.from_llm(data)

    def test_unknown_task_id_is_incomplete(self):
        with pytest.raises(IncompleteResponseError):
            NudgeMatch.from_llm({"task_id": "invented", "message": "Go!"}, valid_task_ids={"t1"})

    def test_non_object_raises_parse_error(self):
        with pytest.raises(LLMParseError):
            NudgeMatch.from_llm("t1")

    def test_non_dict_slot_is_dropped(self):
        assert NudgeMatch.from_llm({"task_id": "t1", "message": "m", "slot": "soon"}).slot is None


class TestSentimentResult:
    def test_busy_with_pause(self):
        result = SentimentResult.from_llm(
            {"sentiment": "busy", "pause_hours": 3, "brief_ack": "Got it"},
        )
        assert result.sentiment is Sentiment.BUSY
        assert result.pause_hours == 3
        assert result.brief_ack == "Got it"

    def test_unrecognized_sentiment_is_unknown(self):
        assert SentimentResult.from_llm({"sentiment": "ecstatic"}).sentiment is Sentiment.UNKNOWN

    def test_negative_or_garbage_pause_is_zero(self):
        assert SentimentResult.from_llm({"sentiment": "busy", "pause_hours": -2}).pause_hours == 0
        assert SentimentResult.from_llm({"sentiment": "busy", "pause_hours": "lots"}).pause_hours == 0
        assert SentimentResult.from_llm({"sentiment": "busy", "pause_hours": "nan"}).pause_hours == 0

    @pytest.mark.parametrize("hours", [1e9, float("inf"), "Infinity", 169])
    def test_pause_is_capped_at_one_week(self, hours):
        result = SentimentResult.from_llm({"sentiment": "busy", "pause_hours": hours})
        assert result.pause_hours == MAX_PAUSE_HOURS == 168

    def test_missing_ack_gets_default(self):
        assert SentimentResult.from_llm({"sentiment": "positive"}).brief_ack == "Thanks for letting me know!"

    def test_non_object_raises(self):
        with pytest.raises(LLMParseError):
            SentimentResult.from_llm(None)
