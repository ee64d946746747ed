"""Action executor — carries out the action the agency coordinator picked.

The coordinator injects an executor callable matching the protocol:

    def __call__(self, action: ActionRequest, context: ActionContext) -> ActionResult: ...

`context` carries the acting NPC, the shared story state and the current
in-game date. Executors may mutate `context.story_state`; the coordinator
never inspects those side effects, it only reports success and message.

One implementation is provided:

    RegistryExecutor: dispatches on action id to registered handler
                      functions. `RegistryExecutor.default()` comes with
                      the built-in ship-crew handlers.

Tests use a MagicMock or a bare RegistryExecutor instead.
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from typing import Protocol

from npc_agency.models import ActionContext, ActionRequest, ActionResult

logger = logging.getLogger(__name__)

Handler = Callable[[ActionRequest, ActionContext], ActionResult]


# ---------------------------------------------------------------------------
# Protocol: every executor implementation must match this signature
# ---------------------------------------------------------------------------

class ActionExecutor(Protocol):
    def __call__(self, action: ActionRequest, context: ActionContext) -> ActionResult: ...


# ---------------------------------------------------------------------------
# RegistryExecutor: pluggable per-action handlers
# ---------------------------------------------------------------------------

class RegistryExecutor:
    """Looks up a handler by action id and runs it.

    Unknown actions and handler exceptions become failure results, so a
    misbehaving handler costs one NPC its action for the tick and nothing
    more.
    """

    def __init__(self) -> None:
        self._handlers: dict[str, Handler] = {}

    @classmethod
    def default(cls) -> RegistryExecutor:
        executor = cls()
        for action_id, handler in BUILTIN_HANDLERS.items():
            executor.register(action_id, handler)
        return executor

    def register(self, action_id: str | None, handler: Handler) -> None:
        if not action_id:
            return
        self._handlers[action_id] = handler

    def get(self, action_id: str | None) -> Handler | None:
        if not action_id:
            return None
        return self._handlers.get(action_id)

    def __call__(self, action: ActionRequest, context: ActionContext) -> ActionResult:
        handler = self.get(action.id)
        if handler is None:
            return ActionResult.fail(f"Unknown action: {action.id}")

        try:
            result = handler(action, context)
        except Exception as e:
            logger.warning("Action %s raised for npc %s: %s", action.id, context.npc.id, e)
            return ActionResult.fail(f"Action failed: {e}")

        logger.debug("action %s npc=%s success=%s", action.id, context.npc.id, result.success)
        return result


# ---------------------------------------------------------------------------
# ActionError: raised by handlers for expected failures
# ---------------------------------------------------------------------------

class ActionError(RuntimeError):
    """Raised by a handler when the action cannot be carried out."""


# ---------------------------------------------------------------------------
# Built-in handlers
# ---------------------------------------------------------------------------

def _repair_system(action: ActionRequest, context: ActionContext) -> ActionResult:
    """Reduce damage_level by one, never below zero."""
    flags = context.story_state.flags
    damage = flags.get("damage_level") or 0
    if not isinstance(damage, (int, float)) or isinstance(damage, bool):
        raise ActionError(f"damage_level is not a number: {damage!r}")
    if damage <= 0:
        return ActionResult.ok("No damage to repair", {"damage_level": 0})

    flags["damage_level"] = max(0, damage - 1)
    name = context.npc.name or "Engineer"
    return ActionResult.ok(
        f"{name} completed repairs. Damage reduced to {flags['damage_level']}.",
        {"damage_level": flags["damage_level"]},
    )


def _execute_jump(action: ActionRequest, context: ActionContext) -> ActionResult:
    destination = action.params.get("destination", "unknown")
    flags = context.story_state.flags
    flags["in_jump"] = True
    flags["jump_destination"] = destination
    return ActionResult.ok(
        f"Jump initiated to {destination}. ETA: 1 week.",
        {"destination": destination},
    )


def _send_message(action: ActionRequest, context: ActionContext) -> ActionResult:
    name = context.npc.name or "NPC"
    return ActionResult.ok(
        f"Message from {name} queued for delivery.",
        {
            "queued": True,
            "target_pc": action.params.get("target_pc"),
            "message": action.params.get("message", ""),
        },
    )


def _announce(verb: str, fallback: str) -> Handler:
    """Handler that only reports the NPC did something."""

    def handler(action: ActionRequest, context: ActionContext) -> ActionResult:
        return ActionResult.ok(f"{context.npc.name or fallback} {verb}.")

    return handler


BUILTIN_HANDLERS: dict[str, Handler] = {
    "repair-system": _repair_system,
    "execute-jump": _execute_jump,
    "send-message": _send_message,
    "fire-weapons": _announce("engaged weapons", "Gunner"),
    "alert-crew": _announce("alerted the crew", "Crew member"),
    "monitor-sensors": _announce("is monitoring sensors", "Crew member"),
    "check-systems": _announce("checked ship systems", "Engineer"),
}
