"""JSON file storage for scheduler state.

All state is stored in flat JSON files under a configurable base directory.
There is no database or ORM. Reads and writes go through plain helper
methods that load and dump JSON.

Directory layout:

    {base}/
      config.json               ← settings (see npc_agency.config)
      npcs.json                 ← list of Npc definitions from the persona loader
      state/
        story-state.json        ← host-owned StoryState snapshot
        trigger-state.json      ← {"fired": {...}, "scheduled": [...]}
        timed-actions.json      ← {"actions": [...]}

Persistence never takes the simulation down: a file that is missing,
unreadable or malformed loads as an empty default, and a failed write is
logged while the engine carries on in memory.
"""

from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Any, TypeVar

from pydantic import BaseModel, TypeAdapter, ValidationError

from npc_agency.models import Npc, StoryState, TimedActionState, TriggerState

logger = logging.getLogger(__name__)

ModelT = TypeVar("ModelT", bound=BaseModel)

_npc_list = TypeAdapter(list[Npc])


class Storage:
    def __init__(self, base_path: Path) -> None:
        self._base = base_path
        self._state_dir = base_path / "state"
        try:
            self._state_dir.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            logger.warning("Could not create %s: %s", self._state_dir, e)

    @property
    def base_path(self) -> Path:
        return self._base

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    def _read_json(self, path: Path) -> Any:
        return json.loads(path.read_text())

    def _write_json(self, path: Path, data: Any) -> bool:
        try:
            path.parent.mkdir(parents=True, exist_ok=True)
            path.write_text(json.dumps(data, indent=2))
        except OSError as e:
            logger.warning("Could not write %s: %s; keeping state in memory", path, e)
            return False
        return True

    def _load_model(self, path: Path, model: type[ModelT]) -> ModelT:
        if not path.is_file():
            return model()
        try:
            return model.model_validate(self._read_json(path))
        except (OSError, json.JSONDecodeError, ValidationError) as e:
            logger.warning("Could not load %s: %s; using empty default", path, e)
            return model()

    # ------------------------------------------------------------------
    # Trigger state
    # ------------------------------------------------------------------

    def load_trigger_state(self) -> TriggerState:
        return self._load_model(self._state_dir / "trigger-state.json", TriggerState)

    def save_trigger_state(self, state: TriggerState) -> bool:
        return self._write_json(
            self._state_dir / "trigger-state.json", state.model_dump(mode="json")
        )

    # ------------------------------------------------------------------
    # Timed actions
    # ------------------------------------------------------------------

    def load_timed_actions(self) -> TimedActionState:
        return self._load_model(self._state_dir / "timed-actions.json", TimedActionState)

    def save_timed_actions(self, state: TimedActionState) -> bool:
        return self._write_json(
            self._state_dir / "timed-actions.json", state.model_dump(mode="json")
        )

    # ------------------------------------------------------------------
    # Story state (host-owned; stored here only for the launcher and API)
    # ------------------------------------------------------------------

    def load_story_state(self) -> StoryState:
        return self._load_model(self._state_dir / "story-state.json", StoryState)

    def save_story_state(self, state: StoryState) -> bool:
        return self._write_json(
            self._state_dir / "story-state.json", state.model_dump(mode="json")
        )

    # ------------------------------------------------------------------
    # NPC definitions
    # ------------------------------------------------------------------

    def get_npcs(self) -> list[Npc]:
        path = self._base / "npcs.json"
        if not path.is_file():
            return []
        try:
            return _npc_list.validate_python(self._read_json(path))
        except (OSError, json.JSONDecodeError, ValidationError) as e:
            logger.warning("Could not load %s: %s; no NPCs loaded", path, e)
            return []

    def save_npcs(self, npcs: list[Npc]) -> bool:
        """Write NPCs back, e.g. to keep goal last_acted dates across runs."""
        return self._write_json(
            self._base / "npcs.json", [n.model_dump(mode="json") for n in npcs]
        )
