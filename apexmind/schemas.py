"""
Pydantic schemas for the agent decision engine.

All data structures exchanged between the engine components are defined here.

Design Philosophy:
- One record per concept (context, decision, memory, pattern, usage)
- Closed vocabularies as Literal types so invalid values never enter the engine
- Pydantic validation doubles as the completeness check for decisions coming
  back from the inference boundary
- Everything round-trips through model_dump(mode="json") / model_validate
"""

from __future__ import annotations

from datetime import datetime
from typing import Annotated, Dict, Generic, List, Literal, Optional, TypeVar, Union

from pydantic import BaseModel, ConfigDict, Field, model_validator


# ============================================================================
# Vocabularies
# ============================================================================

Personality = Literal["methodical", "theatrical", "vengeful", "philosophical", "meta"]
PERSONALITIES: tuple[Personality, ...] = (
    "methodical",
    "theatrical",
    "vengeful",
    "philosophical",
    "meta",
)

Action = Literal["hunt", "stalk", "ambush", "retreat", "taunt", "investigate", "patrol"]
ACTIONS: tuple[Action, ...] = (
    "hunt",
    "stalk",
    "ambush",
    "retreat",
    "taunt",
    "investigate",
    "patrol",
)

TimeOfDay = Literal["dawn", "day", "dusk", "night"]
Weather = Literal["calm", "stormy", "foggy"]

Relationship = Literal["neutral", "favorite-target", "nemesis", "respected", "rival"]

# Encounter events recorded against an (agent, opponent) pair. "hunt" means a
# successful hunt; every event counts as one encounter.
EncounterEvent = Literal["encounter", "hunt", "escape", "taunt"]

Mode = Literal["real", "cached", "mock"]
UsageCategory = Literal["agent", "dialogue", "commentary"]
Priority = Literal["high", "medium", "low"]

CommentaryStyle = Literal["documentary", "sports", "horror", "comedic"]
CommentaryIntensity = Literal["calm", "building", "intense", "climactic"]


# ============================================================================
# Context Schemas
# ============================================================================


class Point(BaseModel):
    """2D position in world units."""

    model_config = ConfigDict(frozen=True)

    x: float
    y: float

    def distance_to(self, other: "Point") -> float:
        return ((self.x - other.x) ** 2 + (self.y - other.y) ** 2) ** 0.5


class Opponent(BaseModel):
    """A human-controlled participant visible to the agent this cycle."""

    model_config = ConfigDict(frozen=True)

    id: str = Field(..., description="Stable opponent identifier")
    name: str = Field(..., description="Display name used in prompts and monologues")
    position: Point
    health: float = Field(..., ge=0, le=100)
    speed: float = Field(0.0, ge=0)
    # The hazard zone is where the agent can reach opponents (the water).
    in_zone: bool = Field(False, description="Whether the opponent is inside the hazard zone")


# ============================================================================
# Memory Schemas
# ============================================================================


class _PatternBase(BaseModel):
    confidence: float = Field(0.5, ge=0.0, le=1.0)


class CircularMovementPattern(_PatternBase):
    """Opponent keeps orbiting a fixed point; the centre is an intercept spot."""

    type: Literal["circular-movement"] = "circular-movement"
    center: Point
    radius: float = Field(..., ge=0)


class HidingSpotPattern(_PatternBase):
    """Opponent repeatedly retreats to the same location."""

    type: Literal["hiding-spot"] = "hiding-spot"
    position: Point


class EscapeRoutePattern(_PatternBase):
    """Opponent escapes along a recurring path."""

    type: Literal["escape-route"] = "escape-route"
    path: List[Point] = Field(default_factory=list)


# Closed tagged union keyed by ``type``.
Pattern = Annotated[
    Union[CircularMovementPattern, HidingSpotPattern, EscapeRoutePattern],
    Field(discriminator="type"),
]


class NotableMoment(BaseModel):
    """A memorable beat in the agent's history with an opponent."""

    description: str = Field(..., min_length=1)
    intensity: float = Field(..., ge=0.0, le=10.0)
    timestamp: datetime


class OpponentMemory(BaseModel):
    """Relationship record for one (agent, opponent) pair.

    Created on first encounter, mutated on every encounter event, never deleted
    during a session. Relationship is a derived classification refreshed by the
    memory store after each event (see ``apexmind.memory.classify``).
    """

    agent_id: str
    opponent_id: str
    opponent_name: Optional[str] = None
    encounters: int = Field(0, ge=0)
    successful_hunts: int = Field(0, ge=0)
    escapes: int = Field(0, ge=0)
    patterns: List[Pattern] = Field(default_factory=list)
    relationship: Relationship = "neutral"
    notable_moments: List[NotableMoment] = Field(default_factory=list)
    first_encounter: datetime
    last_encounter: datetime
    total_sessions: int = Field(1, ge=0)

    @property
    def hunt_rate(self) -> float:
        return self.successful_hunts / self.encounters if self.encounters else 0.0

    @property
    def escape_rate(self) -> float:
        return self.escapes / self.encounters if self.encounters else 0.0

    def pattern(self, pattern_type: str) -> Optional[Pattern]:
        for pattern in self.patterns:
            if pattern.type == pattern_type:
                return pattern
        return None


class DecisionContext(BaseModel):
    """Immutable snapshot handed to the engine for one decision request.

    ``memories`` carries the agent's current relationship records so that every
    component reading the context (fingerprinting, synthesis, prompts) sees the
    same history the caller decided with.
    """

    model_config = ConfigDict(frozen=True)

    agent_id: str = Field("agent", description="Agent identifier (one request in flight per agent)")
    opponents: List[Opponent] = Field(default_factory=list)
    agent_position: Point
    agent_health: float = Field(..., ge=0, le=100)
    personality: Personality
    time_of_day: TimeOfDay = "day"
    weather: Weather = "calm"
    recent_events: List[str] = Field(default_factory=list)
    memories: List[OpponentMemory] = Field(default_factory=list)
    # Optional gauges consulted by personality biases (0-100).
    hunger: float = Field(0.0, ge=0, le=100)
    rage: float = Field(0.0, ge=0, le=100)

    def opponent(self, opponent_id: str) -> Optional[Opponent]:
        for opponent in self.opponents:
            if opponent.id == opponent_id:
                return opponent
        return None

    def in_zone(self) -> List[Opponent]:
        return [opponent for opponent in self.opponents if opponent.in_zone]

    def memory_for(self, opponent_id: str) -> Optional[OpponentMemory]:
        for memory in self.memories:
            if memory.opponent_id == opponent_id:
                return memory
        return None


# ============================================================================
# Decision Schemas
# ============================================================================


class Decision(BaseModel):
    """What the agent does next.

    Every decision returned by the engine is schema-complete regardless of the
    path (inference, cache, local synthesis) that produced it. ``target_id`` and
    ``destination`` may only be missing when no opponent is eligible.
    """

    action: Action
    target_id: Optional[str] = Field(None, description="Opponent being targeted, if any")
    destination: Optional[Point] = Field(None, description="Where the agent is heading")
    monologue: str = Field(..., min_length=1, description="In-character inner monologue")
    confidence: float = Field(..., ge=0.0, le=1.0)
    reasoning: str = Field(..., min_length=1, description="Tactical explanation")

    @model_validator(mode="after")
    def _target_needs_destination(self) -> "Decision":
        if self.target_id is not None and self.destination is None:
            raise ValueError("destination is required when target_id is set")
        return self


class SituationAnalysis(BaseModel):
    """Result of classifying the current situation."""

    situation: Literal[
        "critical_health",
        "wounded_target",
        "revenge_opportunity",
        "target_rich",
        "investigate",
        "patrol",
    ]
    priority: Priority
    suggested_action: Action


# ============================================================================
# Cache Schemas
# ============================================================================

PayloadT = TypeVar("PayloadT")


class ContextFingerprint(BaseModel):
    """Coarse, comparable digest of a decision context."""

    model_config = ConfigDict(frozen=True)

    opponent_count: int
    in_zone_count: int
    agent_health_bucket: int
    time_of_day: TimeOfDay
    weather: Weather
    has_grudge_target: bool
    avg_opponent_health_bucket: int

    def serialize(self) -> str:
        """Stable string form used as the stored cache fingerprint."""
        return self.model_dump_json()


class CachedResponse(BaseModel, Generic[PayloadT]):
    """A stored response plus its reuse bookkeeping."""

    payload: PayloadT
    fingerprint: str
    timestamp: float = Field(..., description="Clock seconds when the entry was written")
    use_count: int = Field(0, ge=0)
    quality: float = Field(0.7, ge=0.0, le=1.0)


class CacheStats(BaseModel):
    decisions: int = 0
    dialogue: int = 0
    taunts: int = 0
    total_uses: int = 0
    avg_quality: float = 0.0


# ============================================================================
# Usage Schemas
# ============================================================================


class UsageStats(BaseModel):
    """Inference usage inside the rolling budget window."""

    per_category: Dict[str, int] = Field(
        default_factory=lambda: {"agent": 0, "dialogue": 0, "commentary": 0}
    )
    total_calls: int = 0
    window_start: float = Field(..., description="Clock seconds when the window opened")
    current_mode: Mode = "real"
    remaining: int = 0
