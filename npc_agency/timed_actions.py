"""Timed actions — long-running NPC tasks with deferred effects.

A timed action is started with a duration (hours and days add up) and a
list of effects. Each tick the host advances every active action by the
elapsed hours; when an action's remaining time reaches zero its effects are
applied to story state, exactly once, in declared order:

    set        flags[flag] = value
    increment  flags[flag] = flags.get(flag, 0) + amount
    decrement  flags[flag] = flags.get(flag, 0) - amount

Cancelling an active action is immediate and final; its effects are never
applied. Completed and cancelled actions leave the active set but remain
queryable through progress() / is_complete() until the host purges them.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable
from datetime import datetime, timezone

from pydantic import ValidationError

from npc_agency.game_date import add_hours
from npc_agency.models import (
    CompletionRecord,
    Effect,
    StoryState,
    TimedAction,
    TimedActionDefinition,
    TimedActionProgress,
    TimedActionState,
)

logger = logging.getLogger(__name__)


def _number(value: object) -> int | float:
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        return value
    return 0


def apply_effect(effect: Effect, story_state: StoryState | None) -> None:
    """Apply a single deferred effect to story state in place."""
    if story_state is None:
        return
    flags = story_state.flags
    if effect.type != "modify-flag":
        logger.warning("Unknown effect type %r, skipped", effect.type)
        return

    if effect.operation == "set":
        flags[effect.flag] = effect.value
    elif effect.operation == "increment":
        flags[effect.flag] = _number(flags.get(effect.flag)) + effect.amount
    elif effect.operation == "decrement":
        flags[effect.flag] = _number(flags.get(effect.flag)) - effect.amount


class TimedActionScheduler:
    """Tracks in-flight timed actions and advances them tick by tick."""

    def __init__(self) -> None:
        self._actions: list[TimedAction] = []
        self._resolved: dict[str, TimedAction] = {}

    def _find(self, action_id: str) -> TimedAction | None:
        for action in self._actions:
            if action.id == action_id:
                return action
        return None

    def start(
        self,
        definition: TimedActionDefinition | dict | None,
        current_date: str | None,
    ) -> TimedAction | None:
        """Begin tracking an action. Returns None for absent/invalid definitions."""
        if not definition:
            return None
        if isinstance(definition, dict):
            try:
                definition = TimedActionDefinition.model_validate(definition)
            except ValidationError as e:
                logger.warning("Invalid timed action definition: %s", e)
                return None
        if not definition.id:
            return None

        existing = self._find(definition.id)
        if existing is not None:
            if existing.status == "active":
                logger.warning("Timed action %s already running, not restarted", definition.id)
                return existing
            # Resolved leftover from a restored snapshot.
            self._actions.remove(existing)

        hours = definition.duration.total_hours
        action = TimedAction(
            id=definition.id,
            npc_id=definition.npc_id,
            started_at=current_date or datetime.now(timezone.utc).isoformat(),
            completes_at=add_hours(current_date, hours),
            duration_hours=hours,
            hours_elapsed=0,
            hours_remaining=hours,
            effects=list(definition.effects),
            status="active",
        )
        self._resolved.pop(action.id, None)
        self._actions.append(action)
        logger.info(
            "timed action %s started for npc %s (%sh)", action.id, action.npc_id, hours
        )
        return action

    def advance(
        self, story_state: StoryState | None, hours_elapsed: float
    ) -> list[CompletionRecord]:
        """Advance every active action; complete and apply effects where due."""
        results: list[CompletionRecord] = []

        for action in self._actions:
            if action.status != "active":
                continue

            action.hours_elapsed += hours_elapsed
            action.hours_remaining = max(0, action.duration_hours - action.hours_elapsed)
            if action.hours_remaining > 0:
                continue

            action.status = "completed"
            for effect in action.effects:
                apply_effect(effect, story_state)

            logger.info("timed action %s completed", action.id)
            results.append(CompletionRecord(
                id=action.id,
                npc_id=action.npc_id,
                message=f"Action {action.id} completed",
            ))
            self._resolved[action.id] = action

        self._actions = [a for a in self._actions if a.status == "active"]
        return results

    def cancel(self, action_id: str | None) -> TimedAction | None:
        """Cancel an active action. Returns None if it is not active."""
        if not action_id:
            return None
        action = self._find(action_id)
        if action is None or action.status != "active":
            return None

        action.status = "cancelled"
        self._actions.remove(action)
        self._resolved[action.id] = action
        logger.info("timed action %s cancelled", action.id)
        return action

    def active(self, npc_id: str | None = None) -> list[TimedAction]:
        return [
            a for a in self._actions
            if a.status == "active" and (npc_id is None or a.npc_id == npc_id)
        ]

    def get(self, action_id: str | None) -> TimedAction | None:
        if not action_id:
            return None
        return self._find(action_id) or self._resolved.get(action_id)

    def progress(self, action_id: str | None) -> TimedActionProgress | None:
        action = self.get(action_id)
        if action is None:
            return None

        if action.duration_hours > 0:
            percent = min(100, round(action.hours_elapsed / action.duration_hours * 100))
        else:
            percent = 100

        return TimedActionProgress(
            id=action.id,
            npc_id=action.npc_id,
            hours_elapsed=action.hours_elapsed,
            hours_remaining=action.hours_remaining,
            percent_complete=percent,
            status=action.status,
        )

    def is_complete(self, action_id: str | None) -> bool:
        action = self.get(action_id)
        return action is not None and action.status == "completed"

    def purge(self, action_ids: Iterable[str] | None = None) -> int:
        """Drop resolved actions (all, or just the given ids). Returns how many."""
        if action_ids is None:
            count = len(self._resolved)
            self._resolved.clear()
            return count
        count = 0
        for action_id in action_ids:
            if self._resolved.pop(action_id, None) is not None:
                count += 1
        return count

    # ------------------------------------------------------------------
    # Persistence
    # ------------------------------------------------------------------

    def snapshot(self) -> TimedActionState:
        return TimedActionState(actions=[a.model_copy(deep=True) for a in self._actions])

    def restore(self, state: TimedActionState) -> None:
        """Replace tracked actions with a snapshot, whatever their status.

        Restored completed or cancelled actions are tracked but never
        advanced or listed as active. Hosts should not persist them.
        """
        self._actions = list(state.actions)
        self._resolved.clear()
