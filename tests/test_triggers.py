"""Tests for npc_agency.triggers — world trigger evaluation and firing."""

import json

import pytest

from npc_agency.models import Npc, StoryState, TriggerState, WorldTrigger
from npc_agency.storage import Storage
from npc_agency.triggers import (
    TriggerEngine,
    check_requires,
    create_message,
    evaluate,
    mark_fired,
)

TODAY = "020-1105"


def _trigger(**fields) -> WorldTrigger:
    return WorldTrigger.model_validate({"id": "t1", **fields})


def _npc(*triggers: dict) -> Npc:
    return Npc.model_validate({"id": "patron-1", "name": "Anders", "triggers": list(triggers)})


# ── check_requires ──────────────────────────────────────────


def test_requires_empty():
    assert check_requires([], []).should_fire
    assert check_requires(None, []).should_fire


def test_requires_positive():
    assert check_requires(["a"], ["a"]).should_fire
    result = check_requires(["a"], [])
    assert not result.should_fire
    assert result.reason == "Required beat 'a' not complete"


def test_requires_negated():
    assert check_requires(["!x"], []).should_fire
    result = check_requires(["!x"], ["x"])
    assert not result.should_fire
    assert result.reason == "Required beat 'x' already complete"


def test_requires_first_failure_reported():
    result = check_requires(["a", "!b", "c"], ["a", "b"])
    assert "'b' already complete" in result.reason


# ── evaluate ────────────────────────────────────────────────


class TestEvaluate:
    def test_beat_condition(self) -> None:
        trigger = _trigger(condition={"type": "beat", "beat": "arrival"})
        assert evaluate(trigger, StoryState(completed_beats=["arrival"]), TriggerState(), TODAY).should_fire
        assert not evaluate(trigger, StoryState(), TriggerState(), TODAY).should_fire

    def test_flag_condition_strict(self) -> None:
        trigger = _trigger(condition={"type": "flag", "flag": "cargo_lost", "value": True})
        assert evaluate(trigger, StoryState(flags={"cargo_lost": True}), TriggerState(), TODAY).should_fire
        assert not evaluate(trigger, StoryState(flags={"cargo_lost": 1}), TriggerState(), TODAY).should_fire

    def test_time_condition_fires_after_threshold(self) -> None:
        trigger = _trigger(condition={"type": "time", "after_beat": "arrival", "days": 3})
        state = StoryState(completed_beats=["arrival"], beat_timestamps={"arrival": "017-1105"})
        assert evaluate(trigger, state, TriggerState(), "020-1105").should_fire
        assert not evaluate(trigger, state, TriggerState(), "019-1105").should_fire

    def test_time_condition_hours(self) -> None:
        trigger = _trigger(condition={"type": "time", "after_beat": "arrival", "hours": 24})
        state = StoryState(completed_beats=["arrival"], beat_timestamps={"arrival": "019-1105"})
        assert evaluate(trigger, state, TriggerState(), "020-1105").should_fire

    def test_time_condition_missing_timestamp(self) -> None:
        trigger = _trigger(condition={"type": "time", "after_beat": "arrival", "days": 0})
        state = StoryState(completed_beats=["arrival"])
        result = evaluate(trigger, state, TriggerState(), TODAY)
        assert not result.should_fire
        assert result.reason == "Missing date information"

    def test_time_condition_missing_date(self) -> None:
        trigger = _trigger(condition={"type": "time", "after_beat": "arrival"})
        state = StoryState(completed_beats=["arrival"], beat_timestamps={"arrival": "017-1105"})
        assert not evaluate(trigger, state, TriggerState(), None).should_fire

    def test_time_condition_reference_beat_incomplete(self) -> None:
        trigger = _trigger(condition={"type": "time", "after_beat": "arrival"})
        state = StoryState(beat_timestamps={"arrival": "017-1105"})
        assert not evaluate(trigger, state, TriggerState(), TODAY).should_fire

    def test_once_already_fired(self) -> None:
        trigger = _trigger(once=True, condition={"type": "beat", "beat": "arrival"})
        fired = TriggerState()
        mark_fired("t1", fired)
        result = evaluate(trigger, StoryState(completed_beats=["arrival"]), fired, TODAY)
        assert not result.should_fire
        assert result.reason == "Already fired (once)"

    def test_repeatable_ignores_fired_history(self) -> None:
        trigger = _trigger(once=False, condition={"type": "beat", "beat": "arrival"})
        fired = TriggerState(fired={"t1": True})
        assert evaluate(trigger, StoryState(completed_beats=["arrival"]), fired, TODAY).should_fire

    def test_requires_checked_before_condition(self) -> None:
        trigger = _trigger(requires=["!x"], condition={"type": "beat", "beat": "arrival"})
        assert evaluate(trigger, StoryState(completed_beats=["arrival"]), TriggerState(), TODAY).should_fire
        blocked = StoryState(completed_beats=["arrival", "x"])
        assert not evaluate(trigger, blocked, TriggerState(), TODAY).should_fire

    def test_unknown_condition_type_rejected(self) -> None:
        with pytest.raises(ValueError):
            _trigger(condition={"type": "moon-phase"})


# ── create_message ──────────────────────────────────────────


def test_create_message_uses_body():
    trigger = _trigger(
        condition={"type": "beat", "beat": "a"},
        message={"subject": "Job offer", "body": "Meet me."},
    )
    msg = create_message(_npc(), "alex", trigger)
    assert msg.from_npc == "patron-1"
    assert msg.to == "alex"
    assert msg.subject == "Job offer"
    assert msg.body == "Meet me."
    assert msg.type == "npc-initiated"
    assert msg.trigger_id == "t1"
    assert msg.id


def test_create_message_renders_template():
    trigger = _trigger(
        condition={"type": "beat", "beat": "a"},
        message={"template": "{{npc.name}} to {{to}}: fuel at {{flags.fuel}}"},
    )
    msg = create_message(_npc(), "alex", trigger, StoryState(flags={"fuel": 40}))
    assert msg.body == "Anders to alex: fuel at 40"
    assert msg.subject == "Message"


def test_create_message_bad_template_sent_raw():
    trigger = _trigger(
        condition={"type": "beat", "beat": "a"},
        message={"template": "{{/if}}"},
    )
    msg = create_message(_npc(), "alex", trigger)
    assert msg.body == "{{/if}}"


def test_create_message_empty():
    msg = create_message(_npc(), "broadcast", _trigger(condition={"type": "beat", "beat": "a"}))
    assert msg.body == ""


# ── TriggerEngine ───────────────────────────────────────────


class TestTriggerEngine:
    def test_once_fires_only_on_first_tick(self) -> None:
        engine = TriggerEngine()
        npc = _npc({"id": "welcome", "once": True, "condition": {"type": "beat", "beat": "arrival"}})
        state = StoryState(completed_beats=["arrival"])
        assert len(engine.process([npc], state, TODAY)) == 1
        assert engine.process([npc], state, TODAY) == []
        assert engine.trigger_state.fired == {"welcome": True}

    def test_repeatable_fires_every_tick(self) -> None:
        engine = TriggerEngine()
        npc = _npc({"id": "nag", "condition": {"type": "flag", "flag": "unpaid", "value": True}})
        state = StoryState(flags={"unpaid": True})
        assert len(engine.process([npc], state, TODAY)) == 1
        assert len(engine.process([npc], state, TODAY)) == 1
        assert engine.trigger_state.fired == {}

    def test_negated_requirement_stops_firing(self) -> None:
        engine = TriggerEngine()
        npc = _npc({"id": "warn", "requires": ["!x"], "condition": {"type": "beat", "beat": "start"}})
        state = StoryState(completed_beats=["start"])
        assert len(engine.process([npc], state, TODAY)) == 1
        state.complete_beat("x")
        assert engine.process([npc], state, TODAY) == []

    def test_one_message_per_target(self) -> None:
        engine = TriggerEngine()
        npc = _npc({
            "id": "invite", "target_pcs": ["alex", "sam"],
            "condition": {"type": "beat", "beat": "start"},
        })
        messages = engine.process([npc], StoryState(completed_beats=["start"]), TODAY)
        assert [m.to for m in messages] == ["alex", "sam"]

    def test_broadcast_by_default(self) -> None:
        engine = TriggerEngine()
        npc = _npc({"id": "news", "condition": {"type": "beat", "beat": "start"}})
        messages = engine.process([npc], StoryState(completed_beats=["start"]), TODAY)
        assert [m.to for m in messages] == ["broadcast"]

    def test_empty_targets_send_nothing(self) -> None:
        engine = TriggerEngine()
        npc = _npc({
            "id": "silent", "once": True, "target_pcs": [],
            "condition": {"type": "beat", "beat": "start"},
        })
        assert engine.process([npc], StoryState(completed_beats=["start"]), TODAY) == []
        assert engine.trigger_state.fired == {"silent": True}

    def test_null_targets_broadcast(self) -> None:
        trigger = _trigger(target_pcs=None, condition={"type": "beat", "beat": "a"})
        assert trigger.target_pcs == ["broadcast"]

    def test_npcs_processed_in_order(self) -> None:
        engine = TriggerEngine()
        a = Npc.model_validate({"id": "a", "triggers": [{"id": "ta", "condition": {"type": "beat", "beat": "s"}}]})
        b = Npc.model_validate({"id": "b", "triggers": [{"id": "tb", "condition": {"type": "beat", "beat": "s"}}]})
        messages = engine.process([b, None, Npc(id="quiet"), a], StoryState(completed_beats=["s"]), TODAY)
        assert [m.from_npc for m in messages] == ["b", "a"]

    def test_fired_history_persisted(self, storage: Storage) -> None:
        npc = _npc({"id": "welcome", "once": True, "condition": {"type": "beat", "beat": "arrival"}})
        state = StoryState(completed_beats=["arrival"])
        TriggerEngine(storage).process([npc], state, TODAY)

        # A fresh engine over the same storage remembers the firing
        assert TriggerEngine(storage).process([npc], state, TODAY) == []
        saved = json.loads((storage.base_path / "state" / "trigger-state.json").read_text())
        assert saved == {"fired": {"welcome": True}, "scheduled": []}

    def test_scheduled_preserved(self, storage: Storage) -> None:
        storage.save_trigger_state(TriggerState(scheduled=[{"id": "later"}]))
        npc = _npc({"id": "welcome", "once": True, "condition": {"type": "beat", "beat": "a"}})
        TriggerEngine(storage).process([npc], StoryState(completed_beats=["a"]), TODAY)
        assert storage.load_trigger_state().scheduled == [{"id": "later"}]

    def test_corrupt_state_file_degrades_to_empty(self, storage: Storage) -> None:
        (storage.base_path / "state" / "trigger-state.json").write_text("{not json")
        npc = _npc({"id": "welcome", "once": True, "condition": {"type": "beat", "beat": "a"}})
        messages = TriggerEngine(storage).process([npc], StoryState(completed_beats=["a"]), TODAY)
        assert len(messages) == 1

    def test_reset(self) -> None:
        engine = TriggerEngine()
        npc = _npc({"id": "welcome", "once": True, "condition": {"type": "beat", "beat": "a"}})
        state = StoryState(completed_beats=["a"])
        engine.process([npc], state, TODAY)
        engine.reset("welcome")
        assert len(engine.process([npc], state, TODAY)) == 1

    def test_absent_inputs(self) -> None:
        engine = TriggerEngine()
        assert engine.process(None, StoryState(), TODAY) == []
        npc = _npc({"id": "x", "condition": {"type": "beat", "beat": "a"}})
        assert engine.process([npc], None, TODAY) == []
