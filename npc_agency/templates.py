"""Handlebars rendering for NPC-initiated message templates.

A trigger's message may carry a `template` instead of a fixed `body`:

    "{{npc.name}} here. Meet me at the docks, {{to}}. Fuel is at {{flags.fuel}}."

Available variables: npc (id, name, role), to, flags, date, trigger_id.
"""

from collections.abc import Callable
from typing import Any

import pybars

from npc_agency.models import Npc, StoryState


_compiler = pybars.Compiler()
_cache: dict[str, Callable] = {}


class TemplateError(Exception):
    """Raised when a Handlebars template fails to compile or render."""


def _helper_default(this, value, fallback):
    """{{default flags.fuel "unknown"}}: fallback for missing values."""
    if value is None or value == "":
        return fallback
    return value


_HELPERS: dict[str, Callable] = {
    "default": _helper_default,
}


def render_template(template_str: str, context: dict[str, Any]) -> str:
    """Compile and render a Handlebars template with the given context.

    Templates are cached by source string to avoid recompilation.
    """
    try:
        compiled = _cache.get(template_str)
        if compiled is None:
            compiled = _compiler.compile(template_str)
            _cache[template_str] = compiled
        # pybars returns its own strlist type; NpcMessage.body wants a plain str.
        return str(compiled(context, helpers=_HELPERS))
    except Exception as e:
        raise TemplateError(f"Template error: {e}") from e


def build_message_context(
    npc: Npc,
    to: str,
    story_state: StoryState,
    date: str | None,
    trigger_id: str,
) -> dict[str, Any]:
    """Assemble template variables for one trigger message."""
    return {
        "npc": {"id": npc.id, "name": npc.name or npc.id, "role": npc.role or ""},
        "to": to,
        "flags": dict(story_state.flags),
        "date": date or "",
        "trigger_id": trigger_id,
    }
