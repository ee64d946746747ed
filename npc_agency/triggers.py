"""NPC-initiated world triggers — narrative events fired from story state.

Evaluation order for each trigger:
  1. once + already fired          → skip
  2. requires                      → every beat listed must be complete,
                                     every "!beat" must NOT be complete
  3. condition
       beat  fires when the beat is complete
       flag  fires when the flag strictly equals the expected value
       time  fires when `days`/`hours` have passed since `after_beat`
             completed (per story_state.beat_timestamps); a missing
             timestamp or date never fires

A firing trigger produces one message per target PC, or a single
"broadcast" message. Fired history is loaded before the pass and saved once
after all NPCs are processed; a crash mid-pass can lose that tick's marks,
so delivery is at-least-once.
"""

from __future__ import annotations

import logging
import uuid
from collections.abc import Iterable
from datetime import datetime, timezone
from typing import NamedTuple, assert_never

from npc_agency.game_date import hours_between, parse_date
from npc_agency.goals import flag_equals
from npc_agency.models import (
    BeatCondition,
    FlagCondition,
    Npc,
    NpcMessage,
    StoryState,
    TimeCondition,
    TriggerState,
    WorldTrigger,
)
from npc_agency.storage import Storage
from npc_agency.templates import TemplateError, build_message_context, render_template

logger = logging.getLogger(__name__)

NEGATION_PREFIX = "!"


class TriggerEvaluation(NamedTuple):
    should_fire: bool
    reason: str


def has_fired(trigger_id: str, trigger_state: TriggerState) -> bool:
    return trigger_state.fired.get(trigger_id) is True


def mark_fired(trigger_id: str, trigger_state: TriggerState) -> None:
    trigger_state.fired[trigger_id] = True


def check_requires(
    requires: Iterable[str] | None, completed_beats: list[str]
) -> TriggerEvaluation:
    """Check beat prerequisites. The first failing entry supplies the reason."""
    for req in requires or ():
        if req.startswith(NEGATION_PREFIX):
            beat_id = req[len(NEGATION_PREFIX):]
            if beat_id in completed_beats:
                return TriggerEvaluation(False, f"Required beat '{beat_id}' already complete")
        elif req not in completed_beats:
            return TriggerEvaluation(False, f"Required beat '{req}' not complete")
    return TriggerEvaluation(True, "")


def _evaluate_time(
    condition: TimeCondition, story_state: StoryState, current_date: str | None
) -> TriggerEvaluation:
    beat_id = condition.after_beat
    if beat_id not in story_state.completed_beats:
        return TriggerEvaluation(False, f"Reference beat '{beat_id}' not complete")

    completed_at = story_state.beat_timestamps.get(beat_id)
    if parse_date(completed_at) is None or parse_date(current_date) is None:
        return TriggerEvaluation(False, "Missing date information")

    elapsed = hours_between(completed_at, current_date)
    required = condition.threshold_hours
    if elapsed >= required:
        return TriggerEvaluation(True, f"{elapsed}h elapsed (required: {required}h)")
    return TriggerEvaluation(False, f"Only {elapsed}h elapsed (required: {required}h)")


def evaluate(
    trigger: WorldTrigger,
    story_state: StoryState,
    trigger_state: TriggerState,
    current_date: str | None,
) -> TriggerEvaluation:
    if trigger.once and has_fired(trigger.id, trigger_state):
        return TriggerEvaluation(False, "Already fired (once)")

    completed = story_state.completed_beats
    requirements = check_requires(trigger.requires, completed)
    if not requirements.should_fire:
        return requirements

    condition = trigger.condition
    if isinstance(condition, BeatCondition):
        if condition.beat in completed:
            return TriggerEvaluation(True, f"Beat '{condition.beat}' complete")
        return TriggerEvaluation(False, f"Beat '{condition.beat}' not complete")

    if isinstance(condition, TimeCondition):
        return _evaluate_time(condition, story_state, current_date)

    if isinstance(condition, FlagCondition):
        current = story_state.flags.get(condition.flag)
        if flag_equals(current, condition.value):
            return TriggerEvaluation(True, f"Flag '{condition.flag}' matches {condition.value!r}")
        return TriggerEvaluation(
            False,
            f"Flag '{condition.flag}' is {current!r}, expected {condition.value!r}",
        )

    assert_never(condition)


def create_message(
    npc: Npc,
    to: str,
    trigger: WorldTrigger,
    story_state: StoryState | None = None,
    current_date: str | None = None,
) -> NpcMessage:
    outline = trigger.message
    body = outline.body
    if body is None and outline.template:
        context = build_message_context(
            npc, to, story_state or StoryState(), current_date, trigger.id
        )
        try:
            body = render_template(outline.template, context)
        except TemplateError as e:
            logger.warning("Trigger %s: %s; sending raw template", trigger.id, e)
            body = outline.template

    return NpcMessage(
        id=uuid.uuid4().hex,
        from_npc=npc.id,
        to=to,
        subject=outline.subject,
        body=body or "",
        trigger_id=trigger.id,
        timestamp=datetime.now(timezone.utc).isoformat(),
    )


class TriggerEngine:
    """Evaluates every NPC's world triggers once per tick.

    Args:
        storage: Where fired history is persisted. Without one (or when a
                 write fails) history lives in memory for this run.
    """

    def __init__(self, storage: Storage | None = None) -> None:
        self._storage = storage
        self._state = storage.load_trigger_state() if storage else TriggerState()
        self._unsaved = False

    @property
    def trigger_state(self) -> TriggerState:
        return self._state

    def _load(self) -> TriggerState:
        if self._storage is None or self._unsaved:
            return self._state
        return self._storage.load_trigger_state()

    def _save(self, state: TriggerState) -> None:
        self._state = state
        if self._storage is not None:
            self._unsaved = not self._storage.save_trigger_state(state)

    def process(
        self,
        npcs: Iterable[Npc | None] | None,
        story_state: StoryState | None,
        current_date: str | None,
    ) -> list[NpcMessage]:
        """Evaluate all triggers and return the messages to deliver."""
        if not npcs:
            return []
        state = story_state if story_state is not None else StoryState()
        trigger_state = self._load()
        messages: list[NpcMessage] = []

        for npc in npcs:
            if npc is None or not npc.triggers:
                continue
            for trigger in npc.triggers:
                result = evaluate(trigger, state, trigger_state, current_date)
                if not result.should_fire:
                    logger.debug("trigger %s held: %s", trigger.id, result.reason)
                    continue

                logger.info("trigger %s fired for npc %s: %s", trigger.id, npc.id, result.reason)
                for to in trigger.target_pcs:
                    messages.append(create_message(npc, to, trigger, state, current_date))
                if trigger.once:
                    mark_fired(trigger.id, trigger_state)

        self._save(trigger_state)
        return messages

    def reset(self, trigger_id: str | None = None) -> None:
        """Forget fired history for one trigger, or for all of them."""
        state = self._load()
        if trigger_id is None:
            state.fired.clear()
        else:
            state.fired.pop(trigger_id, None)
        self._save(state)
