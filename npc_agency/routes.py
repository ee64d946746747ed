"""FastAPI endpoints under /api.

The engine lives on app.state. Requests that omit NPCs or story state fall
back to what is stored in the data directory, and write it back afterwards
so goal cooldowns and effects carry over to the next call. The tick response
always includes the NPCs with their updated goal dates, for hosts that send
them inline.
"""

from fastapi import APIRouter, HTTPException, Query, Request
from pydantic import BaseModel

from npc_agency.config import build_registry, get_config, update_config
from npc_agency.engine import Engine
from npc_agency.models import Npc, StoryState, TimedActionDefinition

router = APIRouter()


class TickBody(BaseModel):
    npcs: list[Npc] | None = None
    story_state: StoryState | None = None
    current_date: str | None = None


class StartTimedActionBody(BaseModel):
    definition: TimedActionDefinition
    current_date: str | None = None


class AdvanceBody(BaseModel):
    hours: float
    story_state: StoryState | None = None


def _engine(request: Request) -> Engine:
    return request.app.state.engine


@router.get("/health")
def health():
    return {"status": "ok"}


# ── Ticks ─────────────────────────────────────────────────


@router.post("/tick")
def run_tick(body: TickBody, request: Request):
    """Run agency and triggers once."""
    engine = _engine(request)
    storage = engine.storage

    npcs = body.npcs
    if npcs is None:
        npcs = storage.get_npcs() if storage else []
    story_state = body.story_state
    if story_state is None:
        story_state = storage.load_story_state() if storage else StoryState()
    current_date = body.current_date or story_state.game_date

    result = engine.run_tick(npcs, story_state, current_date)

    if storage is not None:
        if body.npcs is None:
            storage.save_npcs(npcs)
        if body.story_state is None:
            storage.save_story_state(story_state)
    return {
        **result.model_dump(),
        "npcs": [n.model_dump() for n in npcs],
        "story_state": story_state.model_dump(),
    }


# ── Timed actions ─────────────────────────────────────────


@router.get("/timed-actions")
def list_timed_actions(request: Request, npc_id: str | None = None):
    return [a.model_dump() for a in _engine(request).scheduler.active(npc_id)]


@router.post("/timed-actions", status_code=201)
def start_timed_action(body: StartTimedActionBody, request: Request):
    action = _engine(request).start_timed_action(body.definition, body.current_date)
    if action is None:
        raise HTTPException(400, "Timed action could not be started")
    return action.model_dump()


@router.post("/timed-actions/advance")
def advance_timed_actions(body: AdvanceBody, request: Request):
    engine = _engine(request)
    storage = engine.storage
    story_state = body.story_state
    if story_state is None:
        story_state = storage.load_story_state() if storage else StoryState()

    completed = engine.advance_timed_actions(story_state, body.hours)

    if storage is not None and body.story_state is None:
        storage.save_story_state(story_state)
    return {
        "completed": [c.model_dump() for c in completed],
        "story_state": story_state.model_dump(),
    }


@router.delete("/timed-actions")
def purge_timed_actions(request: Request, ids: list[str] | None = Query(None)):
    """Forget completed and cancelled actions (all, or just `ids`)."""
    return {"purged": _engine(request).purge_timed_actions(ids)}


@router.get("/timed-actions/{action_id}")
def get_timed_action(action_id: str, request: Request):
    progress = _engine(request).scheduler.progress(action_id)
    if progress is None:
        raise HTTPException(404, "Timed action not found")
    return progress.model_dump()


@router.delete("/timed-actions/{action_id}")
def cancel_timed_action(action_id: str, request: Request):
    action = _engine(request).cancel_timed_action(action_id)
    if action is None:
        raise HTTPException(404, "Timed action not found")
    return action.model_dump()


# ── Triggers ──────────────────────────────────────────────


@router.get("/triggers/fired")
def get_fired_triggers(request: Request):
    return _engine(request).triggers.trigger_state.model_dump()


@router.delete("/triggers/fired")
def reset_fired_triggers(request: Request, trigger_id: str | None = None):
    """Forget fired history so once-only triggers can fire again."""
    engine = _engine(request)
    engine.triggers.reset(trigger_id)
    return engine.triggers.trigger_state.model_dump()


# ── Settings ──────────────────────────────────────────────


@router.get("/settings")
def get_settings(request: Request):
    return get_config(request.app.state.data_dir)


@router.patch("/settings")
def update_settings(body: dict, request: Request):
    """Partial merge into config.json; the engine picks it up for the next tick."""
    config = update_config(request.app.state.data_dir, body)
    _engine(request).reconfigure(build_registry(config), config["persist_timed_actions"])
    return config
