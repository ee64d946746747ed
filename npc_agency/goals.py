"""Goal lifecycle tracking — triggers, eligibility, priority and cooldowns.

Goal status:
  active      always a candidate
  background  a candidate only while its trigger holds
  completed   never a candidate; goals are never deleted, only completed

Triggers:
  {"flag": "threat_detected", "value": true}       strict equality
  {"flag": "damage_level", "value": {"gt": 0}}     gt / gte / lt / lte
  {"beat": "arrival"}                              beat is complete
  absent                                           always triggered

Cooldown gate: once a goal has acted, it may act again only after
`cooldown` hours (or days × 24) have elapsed, boundary inclusive.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable

from npc_agency.game_date import hours_between
from npc_agency.models import (
    BeatTrigger,
    Comparison,
    FlagTrigger,
    FlagValue,
    Goal,
    GoalStatus,
    Npc,
    StoryState,
)

logger = logging.getLogger(__name__)

# Sorts after every explicit priority.
_LEAST_URGENT = float("inf")


def _is_number(value: object) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool)


def flag_equals(actual: FlagValue, expected: FlagValue) -> bool:
    """Equality without coercion: True != 1, "1" != 1, but 1 == 1.0."""
    if _is_number(actual) and _is_number(expected):
        return actual == expected
    return type(actual) is type(expected) and actual == expected


def _compare(actual: FlagValue, comparison: Comparison) -> bool:
    if not _is_number(actual):
        return False
    if comparison.gt is not None:
        return actual > comparison.gt
    if comparison.gte is not None:
        return actual >= comparison.gte
    if comparison.lt is not None:
        return actual < comparison.lt
    if comparison.lte is not None:
        return actual <= comparison.lte
    return False


def is_triggered(goal: Goal | None, story_state: StoryState | None) -> bool:
    """Whether the goal's trigger condition currently holds."""
    if goal is None:
        return False
    trigger = goal.trigger
    if trigger is None:
        return True
    if story_state is None:
        return False

    if isinstance(trigger, FlagTrigger):
        actual = story_state.flags.get(trigger.flag)
        if isinstance(trigger.value, Comparison):
            return _compare(actual, trigger.value)
        return flag_equals(actual, trigger.value)

    if isinstance(trigger, BeatTrigger):
        return trigger.beat in story_state.completed_beats

    return True


def active_goals(npc: Npc | None, story_state: StoryState | None) -> list[Goal]:
    """Candidate goals in the NPC's declared order (not priority-sorted)."""
    if npc is None:
        return []
    result = []
    for goal in npc.goals:
        if goal.status == "completed":
            continue
        if goal.status == "active":
            result.append(goal)
        elif goal.status == "background" and is_triggered(goal, story_state):
            result.append(goal)
    return result


def by_priority(goals: Iterable[Goal] | None) -> list[Goal]:
    """Stable ascending sort; goals without a priority go last."""
    if not goals:
        return []
    return sorted(
        goals,
        key=lambda g: _LEAST_URGENT if g.priority is None else g.priority,
    )


def should_act_now(
    goal: Goal | None, story_state: StoryState | None, current_date: str | None
) -> bool:
    if goal is None or goal.status == "completed":
        return False
    if not is_triggered(goal, story_state):
        return False

    if goal.cooldown is not None and goal.last_acted:
        elapsed = hours_between(goal.last_acted, current_date)
        if elapsed < goal.cooldown.total_hours:
            logger.debug(
                "goal %s cooling down (%dh of %dh)",
                goal.id, elapsed, goal.cooldown.total_hours,
            )
            return False

    return True


def goal_actions(goal: Goal | None) -> list[str]:
    if goal is None:
        return []
    return goal.actions


def update_goal_status(
    npc: Npc | None,
    goal_id: str,
    status: GoalStatus,
    date: str | None = None,
) -> Goal | None:
    """Set a goal's status in place; stamp last_acted when a date is given."""
    if npc is None:
        return None
    for goal in npc.goals:
        if goal.id == goal_id:
            goal.status = status
            if date:
                goal.last_acted = date
            return goal
    return None
