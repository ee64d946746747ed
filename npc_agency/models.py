"""Core domain models.

Every component of the scheduler (goals, agency, triggers, timed actions)
operates on these types. Pydantic is used for validation and serialisation
at every data boundary: NPC definitions arriving from the persona loader,
persisted trigger / timed-action state, and results handed back to the host.
"""

from __future__ import annotations

from typing import Annotated, Any, Literal

from pydantic import BaseModel, Field, field_validator

FlagValue = bool | int | float | str | None

GoalStatus = Literal["active", "background", "completed"]

TimedActionStatus = Literal["active", "completed", "cancelled"]

AgencyStatus = Literal[
    "completed",
    "failed",
    "unauthorized",
    "no-action",
    "invalid",
]

BROADCAST = "broadcast"


# ---------------------------------------------------------------------------
# Story state, owned by the host, shared by every component
# ---------------------------------------------------------------------------

class StoryState(BaseModel):
    """Shared, host-owned story state: flags, beat history and the date."""

    flags: dict[str, FlagValue] = Field(default_factory=dict)
    completed_beats: list[str] = Field(default_factory=list)
    beat_timestamps: dict[str, str] = Field(default_factory=dict)
    game_date: str | None = None

    def complete_beat(self, beat_id: str, date: str | None = None) -> bool:
        """Record a beat as complete. Returns False if it already was."""
        if beat_id in self.completed_beats:
            return False
        self.completed_beats.append(beat_id)
        if date:
            self.beat_timestamps[beat_id] = date
        return True


# ---------------------------------------------------------------------------
# Goals
# ---------------------------------------------------------------------------

class Comparison(BaseModel):
    """Relational threshold for a flag trigger. First present key wins."""

    gt: float | None = None
    gte: float | None = None
    lt: float | None = None
    lte: float | None = None


class FlagTrigger(BaseModel):
    flag: str
    value: Comparison | FlagValue = None


class BeatTrigger(BaseModel):
    beat: str


GoalTrigger = FlagTrigger | BeatTrigger


class Cooldown(BaseModel):
    hours: int | None = None
    days: int | None = None

    @property
    def total_hours(self) -> int:
        if self.hours:
            return self.hours
        if self.days:
            return self.days * 24
        return 0


class Goal(BaseModel):
    """A unit of NPC intent. Lower priority number = more urgent."""

    id: str
    priority: int | None = None
    status: GoalStatus = "active"
    trigger: GoalTrigger | None = None
    cooldown: Cooldown | None = None
    last_acted: str | None = None  # DDD-YYYY
    actions: list[str] = Field(default_factory=list)


# ---------------------------------------------------------------------------
# World triggers
# ---------------------------------------------------------------------------

class BeatCondition(BaseModel):
    type: Literal["beat"] = "beat"
    beat: str


class TimeCondition(BaseModel):
    """Fires once `days`/`hours` have passed since `after_beat` completed."""

    type: Literal["time"] = "time"
    after_beat: str
    days: int = 0
    hours: int = 0

    @property
    def threshold_hours(self) -> int:
        return self.days * 24 + self.hours


class FlagCondition(BaseModel):
    type: Literal["flag"] = "flag"
    flag: str
    value: FlagValue = None


TriggerCondition = Annotated[
    BeatCondition | TimeCondition | FlagCondition,
    Field(discriminator="type"),
]


class TriggerMessage(BaseModel):
    subject: str = "Message"
    body: str | None = None
    template: str | None = None  # Handlebars, used when body is absent


class WorldTrigger(BaseModel):
    """An NPC-authored narrative trigger.

    `requires` entries prefixed with "!" must NOT be complete. Fired history
    lives in TriggerState, not here, so definitions can be reloaded freely.
    """

    id: str
    condition: TriggerCondition
    requires: list[str] = Field(default_factory=list)
    once: bool = False
    target_pcs: list[str] = Field(default_factory=lambda: [BROADCAST])
    message: TriggerMessage = Field(default_factory=TriggerMessage)

    @field_validator("target_pcs", mode="before")
    @classmethod
    def _null_targets_broadcast(cls, value: Any) -> Any:
        # An explicit [] addresses nobody; only a missing list broadcasts.
        return [BROADCAST] if value is None else value


class TriggerState(BaseModel):
    """Persisted fired-history. `scheduled` is reserved and passed through."""

    fired: dict[str, bool] = Field(default_factory=dict)
    scheduled: list[Any] = Field(default_factory=list)


class NpcMessage(BaseModel):
    """An unsolicited message produced by a fired world trigger."""

    id: str
    from_npc: str
    to: str  # pc id or "broadcast"
    subject: str
    body: str
    type: Literal["npc-initiated"] = "npc-initiated"
    trigger_id: str
    timestamp: str


# ---------------------------------------------------------------------------
# NPCs and actions
# ---------------------------------------------------------------------------

class Npc(BaseModel):
    """The slice of a persona definition the scheduler cares about."""

    id: str
    name: str = ""
    role: str | None = None
    capabilities: list[str] = Field(default_factory=list)  # per-NPC overrides
    goals: list[Goal] = Field(default_factory=list)
    triggers: list[WorldTrigger] = Field(default_factory=list)


class ActionDefinition(BaseModel):
    id: str
    required_capabilities: list[str] = Field(default_factory=list)


class ActionRequest(BaseModel):
    id: str
    params: dict[str, Any] = Field(default_factory=dict)


class ActionContext(BaseModel):
    npc: Npc
    story_state: StoryState
    current_date: str | None = None


class ActionResult(BaseModel):
    success: bool
    message: str = ""
    data: dict[str, Any] | None = None

    @classmethod
    def ok(cls, message: str, data: dict[str, Any] | None = None) -> ActionResult:
        return cls(success=True, message=message, data=data)

    @classmethod
    def fail(cls, message: str, data: dict[str, Any] | None = None) -> ActionResult:
        return cls(success=False, message=message, data=data)


class AgencyResult(BaseModel):
    """Outcome of one NPC's agency pass for one tick."""

    npc_id: str | None
    action: str | None = None
    success: bool = False
    status: AgencyStatus
    message: str = ""
    skipped: bool = False


# ---------------------------------------------------------------------------
# Timed actions
# ---------------------------------------------------------------------------

class Effect(BaseModel):
    """A deferred story-state change applied when a timed action completes."""

    type: Literal["modify-flag"] = "modify-flag"
    flag: str
    operation: Literal["set", "increment", "decrement"]
    value: FlagValue = None  # used by "set"
    amount: int | float = 1  # used by "increment" / "decrement"


class Duration(BaseModel):
    hours: int = 0
    days: int = 0

    @property
    def total_hours(self) -> int:
        return self.hours + self.days * 24


class TimedActionDefinition(BaseModel):
    id: str
    npc_id: str | None = None
    duration: Duration = Field(default_factory=Duration)
    effects: list[Effect] = Field(default_factory=list)


class TimedAction(BaseModel):
    id: str
    npc_id: str | None = None
    started_at: str | None = None
    completes_at: str | None = None
    duration_hours: float = 0
    hours_elapsed: float = 0
    hours_remaining: float = 0
    effects: list[Effect] = Field(default_factory=list)
    status: TimedActionStatus = "active"


class TimedActionProgress(BaseModel):
    id: str
    npc_id: str | None
    hours_elapsed: float
    hours_remaining: float
    percent_complete: int
    status: TimedActionStatus


class CompletionRecord(BaseModel):
    id: str
    npc_id: str | None
    status: Literal["completed"] = "completed"
    message: str


class TimedActionState(BaseModel):
    actions: list[TimedAction] = Field(default_factory=list)


# ---------------------------------------------------------------------------
# Tick output
# ---------------------------------------------------------------------------

class TickResult(BaseModel):
    agency_results: list[AgencyResult] = Field(default_factory=list)
    trigger_messages: list[NpcMessage] = Field(default_factory=list)
