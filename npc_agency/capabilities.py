"""Role-based capability registry for NPC actions.

An NPC's capability set is the union of the tags granted by its role and
any per-NPC overrides. Each registered action declares the tags it
requires; an NPC may perform it only if it holds every one of them.

Registries are plain objects. Build one per simulation so independent
simulations in the same process never share registered actions.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable, Mapping

from pydantic import ValidationError

from npc_agency.models import ActionDefinition, Npc

logger = logging.getLogger(__name__)

ROLE_CAPABILITIES: dict[str, tuple[str, ...]] = {
    "captain": ("can_command", "can_navigate"),
    "pilot": ("can_navigate", "can_dock"),
    "astrogator": ("can_navigate", "can_plot_jump"),
    "engineer": ("can_repair", "can_refuel"),
    "gunner": ("can_fire", "can_target"),
    "medic": ("can_heal",),
    "patron": ("can_message", "can_hire"),
    "narrator": ("can_narrate", "can_advance_time"),
}

BUILTIN_ACTIONS: tuple[ActionDefinition, ...] = (
    ActionDefinition(id="repair-system", required_capabilities=["can_repair"]),
    ActionDefinition(id="check-systems", required_capabilities=["can_repair"]),
    ActionDefinition(id="fire-weapons", required_capabilities=["can_fire", "can_target"]),
    ActionDefinition(id="alert-crew"),  # anyone
    ActionDefinition(id="recommend-evasion"),
    ActionDefinition(id="monitor-sensors"),
    ActionDefinition(id="send-message", required_capabilities=["can_message"]),
    ActionDefinition(id="calibrate-targeting", required_capabilities=["can_target"]),
    ActionDefinition(id="repair-weapons", required_capabilities=["can_repair"]),
)


class CapabilityRegistry:
    """Role → capability table plus the action definition registry.

    Args:
        role_capabilities: Role table to start from. Defaults to
                           ROLE_CAPABILITIES. Copied, never shared.
    """

    def __init__(
        self, role_capabilities: Mapping[str, Iterable[str]] | None = None
    ) -> None:
        source = ROLE_CAPABILITIES if role_capabilities is None else role_capabilities
        self._roles: dict[str, tuple[str, ...]] = {
            role: tuple(caps) for role, caps in source.items()
        }
        self._actions: dict[str, ActionDefinition] = {}

    @classmethod
    def default(cls) -> CapabilityRegistry:
        """A fresh registry with the built-in role table and actions."""
        registry = cls()
        for definition in BUILTIN_ACTIONS:
            registry.register_action(definition.id, definition)
        return registry

    # ------------------------------------------------------------------
    # Roles
    # ------------------------------------------------------------------

    def add_role_capabilities(self, role: str, capabilities: Iterable[str]) -> None:
        """Extend a role's tag set (creating the role if unknown)."""
        merged = list(self._roles.get(role, ()))
        for cap in capabilities:
            if cap not in merged:
                merged.append(cap)
        self._roles[role] = tuple(merged)

    def role_capabilities(self, role: str | None) -> tuple[str, ...]:
        if not role:
            return ()
        return self._roles.get(role, ())

    def capabilities_of(self, npc: Npc | None) -> list[str]:
        """Role tags followed by override tags, deduplicated, in first-seen order."""
        if npc is None:
            return []
        caps: dict[str, None] = {}
        for cap in self.role_capabilities(npc.role):
            caps[cap] = None
        for cap in npc.capabilities:
            caps[cap] = None
        return list(caps)

    def has_capability(self, npc: Npc | None, capability: str | None) -> bool:
        if npc is None or not capability:
            return False
        return capability in self.capabilities_of(npc)

    # ------------------------------------------------------------------
    # Actions
    # ------------------------------------------------------------------

    def register_action(
        self, action_id: str | None, definition: ActionDefinition | dict
    ) -> None:
        """Upsert an action definition. Last write wins."""
        if not action_id:
            return
        if isinstance(definition, dict):
            try:
                definition = ActionDefinition.model_validate({"id": action_id, **definition})
            except ValidationError as e:
                logger.warning("Invalid action definition %r: %s", action_id, e)
                return
        if action_id in self._actions:
            logger.debug("Replacing action definition %r", action_id)
        self._actions[action_id] = definition

    def get_action(self, action_id: str | None) -> ActionDefinition | None:
        if not action_id:
            return None
        return self._actions.get(action_id)

    def action_ids(self) -> list[str]:
        return list(self._actions)

    def can_perform(self, npc: Npc | None, action_id: str | None) -> bool:
        """True iff the action is known and the NPC holds ALL required tags."""
        if npc is None or not action_id:
            return False
        action = self.get_action(action_id)
        if action is None:
            return False
        if not action.required_capabilities:
            return True
        held = set(self.capabilities_of(npc))
        return all(cap in held for cap in action.required_capabilities)
