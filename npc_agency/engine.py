"""Engine — the host-facing entry point that runs one simulated tick.

Tick flow (run_tick):
  1. Agency: every NPC with goals gets one chance to act (agency.py).
  2. Triggers: every NPC's world triggers are evaluated and fired
     (triggers.py); fired history is persisted after the pass.
  3. Return agency results and trigger messages.

Timed actions advance separately (advance_timed_actions) because the host
decides how many hours a tick represents.

The engine is single-threaded and not re-entrant: one tick at a time, and
any outside change to story state or NPCs must happen between ticks.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable

from npc_agency.agency import AgencyCoordinator
from npc_agency.capabilities import CapabilityRegistry
from npc_agency.executor import ActionExecutor, RegistryExecutor
from npc_agency.models import (
    CompletionRecord,
    Npc,
    StoryState,
    TickResult,
    TimedAction,
    TimedActionDefinition,
)
from npc_agency.storage import Storage
from npc_agency.timed_actions import TimedActionScheduler
from npc_agency.triggers import TriggerEngine

logger = logging.getLogger(__name__)


class Engine:
    """Composes the agency coordinator, trigger engine and timed-action scheduler.

    Args:
        registry:               Capability registry. Defaults to the built-ins.
        executor:               Action executor. Defaults to RegistryExecutor.default().
        storage:                Persists trigger and timed-action state. None
                                keeps everything in memory.
        persist_timed_actions:  Write timed-action state after each change.
    """

    def __init__(
        self,
        registry: CapabilityRegistry | None = None,
        executor: ActionExecutor | None = None,
        storage: Storage | None = None,
        persist_timed_actions: bool = True,
    ) -> None:
        self.registry = registry or CapabilityRegistry.default()
        self.executor = executor or RegistryExecutor.default()
        self.storage = storage
        self.agency = AgencyCoordinator(self.registry, self.executor)
        self.triggers = TriggerEngine(storage)
        self.scheduler = TimedActionScheduler()
        self._persist_timed = persist_timed_actions and storage is not None
        if storage is not None:
            self.scheduler.restore(storage.load_timed_actions())

    def run_tick(
        self,
        npcs: Iterable[Npc | None] | None,
        story_state: StoryState | None,
        current_date: str | None,
    ) -> TickResult:
        """Run agency then triggers for one tick."""
        npc_list = list(npcs or [])
        agency_results = self.agency.process_all(npc_list, story_state, current_date)
        messages = self.triggers.process(npc_list, story_state, current_date)
        logger.info(
            "tick %s: %d agency results, %d trigger messages",
            current_date, len(agency_results), len(messages),
        )
        return TickResult(agency_results=agency_results, trigger_messages=messages)

    # ------------------------------------------------------------------
    # Timed actions
    # ------------------------------------------------------------------

    def _save_timed(self) -> None:
        if self._persist_timed:
            self.storage.save_timed_actions(self.scheduler.snapshot())

    def start_timed_action(
        self,
        definition: TimedActionDefinition | dict | None,
        current_date: str | None,
    ) -> TimedAction | None:
        action = self.scheduler.start(definition, current_date)
        if action is not None:
            self._save_timed()
        return action

    def advance_timed_actions(
        self, story_state: StoryState | None, hours_elapsed: float
    ) -> list[CompletionRecord]:
        completed = self.scheduler.advance(story_state, hours_elapsed)
        self._save_timed()
        return completed

    def cancel_timed_action(self, action_id: str | None) -> TimedAction | None:
        action = self.scheduler.cancel(action_id)
        if action is not None:
            self._save_timed()
        return action

    def purge_timed_actions(self, action_ids: Iterable[str] | None = None) -> int:
        """Forget completed and cancelled actions. Returns how many were dropped."""
        count = self.scheduler.purge(action_ids)
        logger.info("purged %d resolved timed actions", count)
        return count

    # ------------------------------------------------------------------
    # Configuration
    # ------------------------------------------------------------------

    def reconfigure(self, registry: CapabilityRegistry, persist_timed_actions: bool) -> None:
        """Swap in a new registry and persistence setting between ticks."""
        self.registry = registry
        self.agency.registry = registry
        self._persist_timed = persist_timed_actions and self.storage is not None
