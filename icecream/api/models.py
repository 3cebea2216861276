from __future__ import annotations

import zlib
from collections.abc import Iterator
from datetime import UTC, datetime
from enum import StrEnum
from typing import Annotated, Any, Literal

from pydantic import BaseModel, ConfigDict, Field, field_serializer, field_validator, model_validator

from icecream.config import DEFAULT_MAX_TURNS
from icecream.core.pulse import (
    CityField,
    CityPulse,
    FamilyImpact,
    GlobalField,
    GlobalPulse,
    NeighborhoodField,
    NeighborhoodPulse,
    PulseField,
    PulseVector,
)


def utcnow() -> datetime:
    return datetime.now(tz=UTC)


def session_seed(session_id: str) -> int:
    """Stable seed for snapshots written before `seed` was stored."""

    return zlib.crc32(session_id.encode("utf-8"))


class GamePhase(StrEnum):
    plan = "plan"
    pulse_update = "pulse_update"
    event = "event"
    decision = "decision"
    consequence = "consequence"


class EffectMode(StrEnum):
    instant = "instant"
    per_turn = "per_turn"


class NeighborhoodEventKind(StrEnum):
    audit = "Audit"
    checkpoint = "Checkpoint"
    raid_rumor = "RaidRumor"
    meeting = "Meeting"
    detention = "Detention"


ENFORCEMENT_KINDS = frozenset(
    {
        NeighborhoodEventKind.audit,
        NeighborhoodEventKind.checkpoint,
        NeighborhoodEventKind.raid_rumor,
        NeighborhoodEventKind.detention,
    }
)


class GlobalEventCategory(StrEnum):
    executive = "Executive"
    judicial = "Judicial"
    media = "Media"
    security = "Security"


class CityEventCategory(StrEnum):
    policy = "Policy"
    budget = "Budget"
    infrastructure = "Infrastructure"
    media = "Media"


class EventTarget(StrEnum):
    family = "Family"
    employer = "Employer"
    school = "School"
    block = "Block"


# ---------------------------------------------------------------------------
# Decisions
# ---------------------------------------------------------------------------


class UnlockConditions(BaseModel):
    """Gate on a choice. All present predicates must hold; list predicates are OR."""

    min_turn: int | None = Field(default=None, ge=1)
    max_stress: float | None = None
    min_cohesion: float | None = None
    min_trust_network: float | None = None
    max_visibility: float | None = None
    # At least one of these choice ids appears in an earlier ChoiceRecord.
    required_choices: list[str] = Field(default_factory=list)
    # At least one of these tags is in GameState.rights_knowledge.
    rights_knowledge: list[str] = Field(default_factory=list)


class Choice(BaseModel):
    id: str = Field(..., min_length=1)
    label: str
    description: str = ""

    # Keys may name any pulse or family field; each key maps to exactly one layer.
    effects: dict[PulseField, float] = Field(default_factory=dict)

    unlock_conditions: UnlockConditions | None = None

    # Rights-knowledge tags learned by picking this choice.
    grants_knowledge: list[str] = Field(default_factory=list)

    # Narrative follow-up lines for the UI.
    consequences: list[str] = Field(default_factory=list)


class Decision(BaseModel):
    id: str = Field(..., min_length=1)
    title: str
    narrative: str = ""
    choices: list[Choice] = Field(..., min_length=1)
    multi_select: bool = False

    # Idle advances left before the decision expires on its own.
    urgency: int | None = Field(default=None, ge=0)

    trigger_event_id: str | None = None

    @field_validator("choices")
    @classmethod
    def _unique_choice_ids(cls, choices: list[Choice]) -> list[Choice]:
        ids = [c.id for c in choices]
        if len(ids) != len(set(ids)):
            raise ValueError(f"Duplicate choice ids in decision: {ids}")
        return choices

    def choice(self, choice_id: str) -> Choice | None:
        return next((c for c in self.choices if c.id == choice_id), None)


class ChoiceRecord(BaseModel):
    model_config = ConfigDict(frozen=True)

    turn: int
    decision_id: str
    choice_ids: tuple[str, ...] = ()
    effects: dict[str, float] = Field(default_factory=dict)

    # True when the decision ran out of urgency without an answer.
    expired: bool = False


# ---------------------------------------------------------------------------
# Event templates
# ---------------------------------------------------------------------------


class _TriggerBase(BaseModel):
    min_turn: int | None = Field(default=None, ge=1)
    max_turn: int | None = Field(default=None, ge=1)

    def holds(self, pulse: PulseVector, turn: int) -> bool:
        if self.min_turn is not None and turn < self.min_turn:
            return False
        if self.max_turn is not None and turn > self.max_turn:
            return False
        at_least: dict[str, float] = getattr(self, "at_least")
        at_most: dict[str, float] = getattr(self, "at_most")
        if any(getattr(pulse, name) < bound for name, bound in at_least.items()):
            return False
        return all(getattr(pulse, name) <= bound for name, bound in at_most.items())


class GlobalTrigger(_TriggerBase):
    at_least: dict[GlobalField, float] = Field(default_factory=dict)
    at_most: dict[GlobalField, float] = Field(default_factory=dict)


class CityTrigger(_TriggerBase):
    at_least: dict[CityField, float] = Field(default_factory=dict)
    at_most: dict[CityField, float] = Field(default_factory=dict)


class NeighborhoodTrigger(_TriggerBase):
    at_least: dict[NeighborhoodField, float] = Field(default_factory=dict)
    at_most: dict[NeighborhoodField, float] = Field(default_factory=dict)


class _EventTemplateBase(BaseModel):
    id: str = Field(..., min_length=1)
    title: str
    description: str = ""
    weight: float = Field(default=1.0, ge=0)

    mode: EffectMode = EffectMode.instant
    # Turns the event stays active after the firing turn; 0 means one-shot.
    duration: int = Field(default=0, ge=0)

    decision: Decision | None = None

    @model_validator(mode="after")
    def _per_turn_needs_duration(self) -> "_EventTemplateBase":
        if self.mode == EffectMode.per_turn and self.duration == 0:
            raise ValueError(f"per_turn template {self.id!r} must declare duration > 0")
        return self


class GlobalEventTemplate(_EventTemplateBase):
    scope: Literal["global"] = "global"
    category: GlobalEventCategory | None = None
    trigger: GlobalTrigger = Field(default_factory=GlobalTrigger)
    effects: dict[GlobalField, float] = Field(default_factory=dict)

    # Rolled once per firing; effects are multiplied by it.
    magnitude_range: tuple[int, int] = (1, 1)

    @field_validator("magnitude_range")
    @classmethod
    def _ordered_magnitude(cls, value: tuple[int, int]) -> tuple[int, int]:
        lo, hi = value
        if lo < 0 or hi < lo:
            raise ValueError(f"Invalid magnitude_range: {value}")
        return value


class CityEventTemplate(_EventTemplateBase):
    scope: Literal["city"] = "city"
    category: CityEventCategory | None = None
    trigger: CityTrigger = Field(default_factory=CityTrigger)
    effects: dict[CityField, float] = Field(default_factory=dict)


class NeighborhoodEventTemplate(_EventTemplateBase):
    scope: Literal["neighborhood"] = "neighborhood"
    kind: NeighborhoodEventKind
    trigger: NeighborhoodTrigger = Field(default_factory=NeighborhoodTrigger)
    effects: dict[NeighborhoodField, float] = Field(default_factory=dict)
    severity_range: tuple[int, int] = (1, 1)
    targets: list[EventTarget] = Field(default_factory=lambda: [EventTarget.family])

    @field_validator("severity_range")
    @classmethod
    def _ordered_severity(cls, value: tuple[int, int]) -> tuple[int, int]:
        lo, hi = value
        if not 1 <= lo <= hi <= 5:
            raise ValueError(f"Invalid severity_range: {value}")
        return value


EventTemplate = Annotated[
    GlobalEventTemplate | CityEventTemplate | NeighborhoodEventTemplate,
    Field(discriminator="scope"),
]

EventScope = Literal["global", "city", "neighborhood"]


class ActiveEvent(BaseModel):
    id: str
    template: EventTemplate
    start_turn: int = Field(..., ge=1)
    remaining_turns: int = Field(..., ge=0)
    magnitude: float = 1.0
    severity: int | None = None
    target: EventTarget | None = None
    neighborhood_id: str | None = None

    @property
    def scope(self) -> EventScope:
        return self.template.scope

    @property
    def effects(self) -> dict[str, float]:
        return {name: value * self.magnitude for name, value in self.template.effects.items()}


class ActiveEvents(BaseModel):
    global_events: list[ActiveEvent] = Field(default_factory=list)
    city_events: list[ActiveEvent] = Field(default_factory=list)
    neighborhood_events: list[ActiveEvent] = Field(default_factory=list)

    def for_scope(self, scope: EventScope) -> list[ActiveEvent]:
        return getattr(self, f"{scope}_events")

    def all(self) -> Iterator[ActiveEvent]:
        yield from self.global_events
        yield from self.city_events
        yield from self.neighborhood_events


# ---------------------------------------------------------------------------
# Endings
# ---------------------------------------------------------------------------


class VictoryType(StrEnum):
    sanctuary = "sanctuary"
    outlast = "outlast"
    transform = "transform"


class Victory(BaseModel):
    type: Literal["victory"] = "victory"
    victory_type: VictoryType
    turn: int


class Failure(BaseModel):
    type: Literal["failure"] = "failure"
    reason: str
    turn: int


Ending = Annotated[Victory | Failure, Field(discriminator="type")]


# ---------------------------------------------------------------------------
# Reference data (content) and per-session state
# ---------------------------------------------------------------------------


class NeighborhoodProfile(BaseModel):
    id: str = Field(..., min_length=1)
    name: str
    description: str = ""
    pulse: NeighborhoodPulse = Field(default_factory=NeighborhoodPulse)
    event_pool: list[NeighborhoodEventTemplate] = Field(default_factory=list)


class CityProfile(BaseModel):
    id: str = Field(..., min_length=1)
    name: str
    # State / region abbreviation.
    state: str = ""
    overview: str = ""
    pulse: CityPulse = Field(default_factory=CityPulse)
    neighborhoods: list[NeighborhoodProfile] = Field(..., min_length=1)
    event_pool: list[CityEventTemplate] = Field(default_factory=list)
    # News-driven events that only exist for this city.
    special_events: list[CityEventTemplate] = Field(default_factory=list)
    playability_rationale: str = ""

    @field_validator("neighborhoods")
    @classmethod
    def _unique_neighborhood_ids(cls, hoods: list[NeighborhoodProfile]) -> list[NeighborhoodProfile]:
        ids = [n.id for n in hoods]
        if len(ids) != len(set(ids)):
            raise ValueError(f"Duplicate neighborhood ids: {ids}")
        return hoods

    def neighborhood(self, neighborhood_id: str) -> NeighborhoodProfile | None:
        return next((n for n in self.neighborhoods if n.id == neighborhood_id), None)


class NeighborhoodState(BaseModel):
    id: str
    name: str
    description: str = ""
    pulse: NeighborhoodPulse = Field(default_factory=NeighborhoodPulse)


class CityState(BaseModel):
    id: str
    name: str
    region: str = ""
    pulse: CityPulse = Field(default_factory=CityPulse)
    neighborhoods: list[NeighborhoodState] = Field(default_factory=list)
    current_neighborhood_id: str | None = None

    def neighborhood(self, neighborhood_id: str) -> NeighborhoodState | None:
        return next((n for n in self.neighborhoods if n.id == neighborhood_id), None)

    def current_neighborhood(self) -> NeighborhoodState | None:
        if self.current_neighborhood_id is None:
            return None
        return self.neighborhood(self.current_neighborhood_id)


class GameState(BaseModel):
    # Older snapshots may carry fields we no longer know about.
    model_config = ConfigDict(extra="ignore")

    session_id: str = Field(..., min_length=1)
    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)

    turn: int = Field(default=1, ge=1)
    phase: GamePhase = GamePhase.plan
    max_turns: int = Field(default=DEFAULT_MAX_TURNS, ge=1)

    # For reproducible event rolls.
    seed: int

    global_pulse: GlobalPulse = Field(default_factory=GlobalPulse)
    city: CityState
    family: FamilyImpact = Field(default_factory=FamilyImpact)
    active_events: ActiveEvents = Field(default_factory=ActiveEvents)

    current_decision: Decision | None = None
    choice_history: list[ChoiceRecord] = Field(default_factory=list)
    rights_knowledge: set[str] = Field(default_factory=set)

    ending: Ending | None = None

    @model_validator(mode="before")
    @classmethod
    def _default_seed(cls, data: Any) -> Any:
        if isinstance(data, dict) and data.get("seed") is None and data.get("session_id"):
            data = {**data, "seed": session_seed(str(data["session_id"]))}
        return data

    @field_serializer("rights_knowledge")
    def _sorted_knowledge(self, value: set[str]) -> list[str]:
        return sorted(value)

    @property
    def is_ended(self) -> bool:
        return self.ending is not None


class TurnContext(BaseModel):
    """Template pools available to one advance."""

    global_templates: list[GlobalEventTemplate] = Field(default_factory=list)
    city_templates: list[CityEventTemplate] = Field(default_factory=list)
    neighborhood_templates: list[NeighborhoodEventTemplate] = Field(default_factory=list)


# ---------------------------------------------------------------------------
# HTTP request / response shapes
# ---------------------------------------------------------------------------


class SessionCreateRequest(BaseModel):
    city_id: str = Field(..., min_length=1)
    neighborhood_id: str | None = None
    max_turns: int | None = Field(default=None, ge=1, le=1000)
    seed: int | None = None


class ChooseRequest(BaseModel):
    choice_ids: list[str]


class SessionIdResponse(BaseModel):
    session_id: str


class SessionSummary(BaseModel):
    session_id: str
    city_id: str
    city_name: str
    turn: int
    phase: GamePhase
    ended: bool
    updated_at: datetime


class SessionListResponse(BaseModel):
    sessions: list[SessionSummary]


class TurnResponse(BaseModel):
    state: GameState
    phase_completed: GamePhase | None = None
    new_events: list[ActiveEvent] = Field(default_factory=list)
    decision: Decision | None = None
    effects_applied: dict[str, float] = Field(default_factory=dict)
    ending: Ending | None = None
    changed: bool = True
    steps: int = 1


class ChoiceStatus(BaseModel):
    choice: Choice
    unlocked: bool
    failing: list[str] = Field(default_factory=list)


class DecisionResponse(BaseModel):
    decision: Decision | None = None
    choices: list[ChoiceStatus] = Field(default_factory=list)


class NeighborhoodSummary(BaseModel):
    id: str
    name: str
    description: str = ""


class CitySummary(BaseModel):
    id: str
    name: str
    state: str
    neighborhoods: list[NeighborhoodSummary]


class CityListResponse(BaseModel):
    cities: list[CitySummary]


class DeleteAllResponse(BaseModel):
    deleted: int
