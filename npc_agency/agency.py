"""Agency coordinator — decides what each NPC does on its own this tick.

Per-NPC flow:
  1. Candidate goals = active goals whose trigger holds, sorted by priority.
  2. The first goal that should act now (trigger + cooldown) is the one
     the NPC works on this tick. Lower-priority goals are not considered.
  3. Its first candidate action the NPC is capable of is executed.
       no performable action → "unauthorized" (reported, not skipped)
       executor success      → "completed"
       executor failure      → "failed"
     Either way the goal's last_acted is stamped with the current date, so
     a failing action still respects its cooldown.
  4. Nothing eligible → "no-action".

Across NPCs: one sequential pass in the order given, no re-evaluation. An
NPC does not see what another NPC did earlier in the same tick except
through whatever the executor wrote into story state.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable

from npc_agency.capabilities import CapabilityRegistry
from npc_agency.executor import ActionExecutor
from npc_agency.goals import (
    active_goals,
    by_priority,
    goal_actions,
    is_triggered,
    should_act_now,
    update_goal_status,
)
from npc_agency.models import (
    ActionContext,
    ActionRequest,
    AgencyResult,
    Goal,
    Npc,
    StoryState,
)

logger = logging.getLogger(__name__)


class AgencyCoordinator:
    """Ties goals, capabilities and the action executor together.

    Args:
        registry: Capability registry used to authorise actions.
        executor: Callable that carries out the chosen action.
    """

    def __init__(self, registry: CapabilityRegistry, executor: ActionExecutor) -> None:
        self.registry = registry
        self.executor = executor

    def evaluate_goals(self, npc: Npc | None, story_state: StoryState | None) -> list[Goal]:
        """Goals the NPC could work on right now, most urgent first."""
        if npc is None:
            return []
        candidates = active_goals(npc, story_state)
        triggered = [g for g in candidates if is_triggered(g, story_state)]
        return by_priority(triggered)

    def select_action(self, goal: Goal | None, npc: Npc | None) -> ActionRequest | None:
        """First of the goal's actions, in declared order, the NPC can perform."""
        if goal is None or npc is None:
            return None
        for action_id in goal_actions(goal):
            if self.registry.can_perform(npc, action_id):
                return ActionRequest(id=action_id)
        return None

    def process_npc(
        self,
        npc: Npc | None,
        story_state: StoryState | None,
        current_date: str | None,
    ) -> AgencyResult:
        if npc is None:
            return AgencyResult(npc_id=None, status="invalid", skipped=True)

        for goal in self.evaluate_goals(npc, story_state):
            if not should_act_now(goal, story_state, current_date):
                continue

            action = self.select_action(goal, npc)
            if action is None:
                actions = goal_actions(goal)
                if actions:
                    logger.info(
                        "npc %s lacks capability for goal %s (%s)",
                        npc.id, goal.id, ", ".join(actions),
                    )
                    return AgencyResult(
                        npc_id=npc.id,
                        status="unauthorized",
                        message=f"NPC lacks capability for {actions[0]}",
                    )
                # A goal with no candidate actions has nothing to do.
                continue

            context = ActionContext(
                npc=npc,
                story_state=story_state if story_state is not None else StoryState(),
                current_date=current_date,
            )
            result = self.executor(action, context)
            update_goal_status(npc, goal.id, goal.status, current_date)

            logger.info(
                "npc %s goal=%s action=%s success=%s",
                npc.id, goal.id, action.id, result.success,
            )
            return AgencyResult(
                npc_id=npc.id,
                action=action.id,
                success=result.success,
                status="completed" if result.success else "failed",
                message=result.message,
            )

        logger.debug("npc %s has nothing to act on", npc.id)
        return AgencyResult(npc_id=npc.id, status="no-action", skipped=True)

    def process_all(
        self,
        npcs: Iterable[Npc | None] | None,
        story_state: StoryState | None,
        current_date: str | None,
    ) -> list[AgencyResult]:
        """Run every NPC once. Only actions taken and authorisation failures are returned."""
        if not npcs:
            return []

        results = []
        for npc in npcs:
            if npc is None or not npc.goals:
                continue
            result = self.process_npc(npc, story_state, current_date)
            if result.action or result.status == "unauthorized":
                results.append(result)
        return results
