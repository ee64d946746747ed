import json

from npc_agency.models import Npc, StoryState, TimedAction, TimedActionState, TriggerState
from npc_agency.storage import Storage


# ── Trigger state ───────────────────────────────────────────


def test_trigger_state_missing_file(storage: Storage):
    state = storage.load_trigger_state()
    assert state.fired == {}
    assert state.scheduled == []


def test_trigger_state_round_trip(storage: Storage):
    assert storage.save_trigger_state(TriggerState(fired={"welcome": True}))
    assert storage.load_trigger_state().fired == {"welcome": True}


def test_trigger_state_malformed(storage: Storage):
    (storage.base_path / "state" / "trigger-state.json").write_text('{"fired": [1, 2]}')
    assert storage.load_trigger_state().fired == {}


def test_write_failure_returns_false(storage: Storage):
    # A directory where the file should be makes the write fail
    (storage.base_path / "state" / "trigger-state.json").mkdir()
    assert storage.save_trigger_state(TriggerState(fired={"x": True})) is False


# ── Timed actions / story state ─────────────────────────────


def test_timed_actions_persisted(storage: Storage):
    state = TimedActionState(actions=[
        TimedAction(id="scan", npc_id="op", duration_hours=5, hours_remaining=5),
    ])
    storage.save_timed_actions(state)
    saved = json.loads((storage.base_path / "state" / "timed-actions.json").read_text())
    assert saved["actions"][0]["id"] == "scan"
    assert storage.load_timed_actions().actions[0].hours_remaining == 5


def test_story_state_persisted(storage: Storage):
    state = StoryState(flags={"fuel": 40}, completed_beats=["arrival"], game_date="010-1105")
    storage.save_story_state(state)
    loaded = storage.load_story_state()
    assert loaded.flags == {"fuel": 40}
    assert loaded.completed_beats == ["arrival"]
    assert loaded.game_date == "010-1105"


# ── NPCs ────────────────────────────────────────────────────


def test_npcs_missing_file(storage: Storage):
    assert storage.get_npcs() == []


def test_npcs_round_trip(storage: Storage):
    npcs = [Npc.model_validate({
        "id": "chief", "role": "engineer",
        "goals": [{"id": "repair", "actions": ["repair-system"], "last_acted": "001-1105"}],
    })]
    storage.save_npcs(npcs)
    [loaded] = storage.get_npcs()
    assert loaded.id == "chief"
    assert loaded.goals[0].last_acted == "001-1105"


def test_npcs_invalid_file(storage: Storage):
    (storage.base_path / "npcs.json").write_text('{"not": "a list"}')
    assert storage.get_npcs() == []
