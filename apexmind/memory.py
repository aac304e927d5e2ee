"""
Per-opponent relationship memory.

The memory store keeps one ``OpponentMemory`` per (agent, opponent) pair and
writes every change through a ``PersistenceStrategy``. Classification and
grudge scoring are plain functions so the synthesizer, the cache fingerprint
and tests can all use them without a store instance.

Key responsibilities:
- Count encounters, successful hunts and escapes
- Merge observed behaviour patterns and reinforce them from outcomes
- Keep the most intense notable moments
- Classify the relationship with one canonical rule table
- Detect exploitable movement patterns from trailing position samples
"""

from __future__ import annotations

import time
from collections import deque
from datetime import datetime, timezone
from typing import Any, Deque, Dict, List, Optional, Sequence, Tuple

from .logging_utils import log_deterministic
from .persistence import InMemoryPersistence, PersistenceStrategy
from .scheduling import Clock
from .schemas import (
    CircularMovementPattern,
    EncounterEvent,
    NotableMoment,
    OpponentMemory,
    Pattern,
    Point,
    Relationship,
)


MAX_PATTERNS = 5
MAX_NOTABLE_MOMENTS = 10
PATTERN_REINFORCEMENT = 0.1
PATTERN_PENALTY = 0.15
# Squared world units; radial distances varying less than this read as an orbit.
CIRCULAR_VARIANCE_THRESHOLD = 100.0
MIN_MOVEMENT_SAMPLES = 5
POSITION_WINDOW = 10
OBSERVED_PATTERN_CONFIDENCE = 0.7


# ============================================================================
# Pure rules
# ============================================================================


def classify(memory: OpponentMemory) -> Relationship:
    """Return the relationship for ``memory``.

    Rules are evaluated in priority order; each is gated by an encounter count
    so early impressions don't over-commit:

    1. fewer than 3 encounters -> neutral
    2. hunt rate > 0.7 -> favorite-target
    3. escape rate > 0.7 -> nemesis
    4. more than 10 encounters and escape rate > 0.5 -> respected
    5. more than 5 encounters, hunt rate < 0.3 and escape rate < 0.3 -> rival
    6. otherwise neutral
    """

    if memory.encounters < 3:
        return "neutral"

    hunt_rate = memory.hunt_rate
    escape_rate = memory.escape_rate

    if hunt_rate > 0.7:
        return "favorite-target"
    if escape_rate > 0.7:
        return "nemesis"
    if memory.encounters > 10 and escape_rate > 0.5:
        return "respected"
    if memory.encounters > 5 and hunt_rate < 0.3 and escape_rate < 0.3:
        return "rival"
    return "neutral"


def grudge_level(memory: OpponentMemory) -> float:
    """Return how much the agent resents this opponent, on a 0-10 scale."""

    if memory.relationship == "nemesis":
        return 10.0
    if memory.relationship == "rival":
        return 7.0
    if memory.relationship == "respected":
        return 5.0

    moments = memory.notable_moments
    avg_intensity = sum(m.intensity for m in moments) / len(moments) if moments else 0.0
    return min(10.0, memory.escape_rate * 5 + avg_intensity * 0.5)


def merge_pattern(
    patterns: Sequence[Pattern],
    incoming: Pattern,
    *,
    max_patterns: int = MAX_PATTERNS,
) -> List[Pattern]:
    """Merge ``incoming`` into ``patterns`` and return the new list.

    A repeated pattern type gains confidence (+0.1, capped at 1) and takes the
    incoming payload; a new type is appended. When the list is full the
    least-confident pattern makes room.
    """

    merged: List[Pattern] = list(patterns)
    for index, existing in enumerate(merged):
        if existing.type == incoming.type:
            confidence = min(1.0, existing.confidence + PATTERN_REINFORCEMENT)
            merged[index] = incoming.model_copy(update={"confidence": confidence})
            return merged

    if len(merged) >= max_patterns:
        weakest = min(range(len(merged)), key=lambda i: merged[i].confidence)
        merged.pop(weakest)
    merged.append(incoming)
    return merged


def retain_notable_moments(
    moments: Sequence[NotableMoment],
    moment: NotableMoment,
    *,
    limit: int = MAX_NOTABLE_MOMENTS,
) -> List[NotableMoment]:
    """Append ``moment`` and keep only the ``limit`` most intense ones."""

    combined = list(moments) + [moment]
    # sorted() is stable, so equally intense moments keep their age order.
    return sorted(combined, key=lambda m: m.intensity, reverse=True)[:limit]


def adjust_confidence(confidence: float, correct: bool) -> float:
    """Reinforce (+0.1) or penalise (-0.15) a pattern after validating a prediction."""

    adjustment = PATTERN_REINFORCEMENT if correct else -PATTERN_PENALTY
    return max(0.0, min(1.0, confidence + adjustment))


def detect_circular_movement(
    samples: Sequence[Point],
    *,
    variance_threshold: float = CIRCULAR_VARIANCE_THRESHOLD,
    confidence: float = OBSERVED_PATTERN_CONFIDENCE,
) -> Optional[CircularMovementPattern]:
    """Detect an opponent orbiting a fixed point.

    Computes the centroid of the samples and the mean radial distance from it.
    When the radial distances barely vary the opponent is moving in a circle,
    which makes the centre a predictable intercept point.
    """

    if len(samples) < MIN_MOVEMENT_SAMPLES:
        return None

    count = len(samples)
    center_x = sum(p.x for p in samples) / count
    center_y = sum(p.y for p in samples) / count
    center = Point(x=center_x, y=center_y)

    distances = [p.distance_to(center) for p in samples]
    radius = sum(distances) / count
    variance = sum((d - radius) ** 2 for d in distances) / count

    if variance >= variance_threshold:
        return None

    return CircularMovementPattern(center=center, radius=radius, confidence=confidence)


# ============================================================================
# Store
# ============================================================================


class MemoryStore:
    """Relationship memory for every (agent, opponent) pair seen this process.

    Records handed out by the store are copies; only the store's own methods
    mutate stored state, and every mutation is written through to the
    persistence backend.
    """

    def __init__(
        self,
        persistence: Optional[PersistenceStrategy] = None,
        *,
        clock: Clock = time.time,
    ) -> None:
        self.persistence = persistence or InMemoryPersistence()
        self.clock = clock
        self._records: Dict[str, Dict[str, OpponentMemory]] = {}
        self._positions: Dict[Tuple[str, str], Deque[Point]] = {}

    def _now(self) -> datetime:
        return datetime.fromtimestamp(self.clock(), tz=timezone.utc)

    # Reads ---------------------------------------------------------------

    def get(self, agent_id: str, opponent_id: str) -> Optional[OpponentMemory]:
        record = self._records.get(agent_id, {}).get(opponent_id)
        return record.model_copy(deep=True) if record is not None else None

    def memories_for(self, agent_id: str) -> List[OpponentMemory]:
        """Return copies of every memory the agent holds (for building contexts)."""

        return [m.model_copy(deep=True) for m in self._records.get(agent_id, {}).values()]

    def grudge_levels(self, agent_id: str) -> List[Tuple[str, float]]:
        """Return ``(opponent_id, grudge)`` pairs, most resented first."""

        grudges = [
            (opponent_id, grudge_level(memory))
            for opponent_id, memory in self._records.get(agent_id, {}).items()
        ]
        return sorted(grudges, key=lambda item: item[1], reverse=True)

    def find_patterns(
        self, agent_id: str, pattern_type: str, threshold: float = 0.6
    ) -> List[Tuple[str, Pattern]]:
        """Return every confident pattern of ``pattern_type`` across opponents."""

        found: List[Tuple[str, Pattern]] = []
        for opponent_id, memory in self._records.get(agent_id, {}).items():
            for pattern in memory.patterns:
                if pattern.type == pattern_type and pattern.confidence >= threshold:
                    found.append((opponent_id, pattern.model_copy(deep=True)))
        return found

    def summary(self, agent_id: str) -> Optional[Dict[str, Any]]:
        """Aggregate statistics across every opponent the agent remembers."""

        memories = list(self._records.get(agent_id, {}).values())
        if not memories:
            return None

        total_hunts = sum(m.successful_hunts for m in memories)
        total_escapes = sum(m.escapes for m in memories)
        relationships: Dict[str, int] = {}
        pattern_types: List[str] = []
        for memory in memories:
            relationships[memory.relationship] = relationships.get(memory.relationship, 0) + 1
            for pattern in memory.patterns:
                if pattern.type not in pattern_types:
                    pattern_types.append(pattern.type)

        most_memorable = max(memories, key=lambda m: len(m.notable_moments))
        return {
            "total_memories": len(memories),
            "total_hunts": total_hunts,
            "total_escapes": total_escapes,
            "total_encounters": sum(m.encounters for m in memories),
            "success_rate": total_hunts / (total_hunts + total_escapes or 1),
            "relationships": relationships,
            "pattern_types": pattern_types,
            "most_memorable_opponent": most_memorable.opponent_id,
        }

    # Writes --------------------------------------------------------------

    async def load(self, agent_id: str) -> List[OpponentMemory]:
        """Load an agent's memories at session start.

        Each loaded record counts one more session played against that opponent.
        """

        loaded = await self.persistence.load_memories(agent_id)
        records = self._records.setdefault(agent_id, {})
        for memory in loaded:
            memory.total_sessions += 1
            records[memory.opponent_id] = memory
            await self.persistence.upsert_memory(agent_id, memory.opponent_id, memory)

        log_deterministic(f"[Memory] Loaded {len(loaded)} memories for agent '{agent_id}'")
        return self.memories_for(agent_id)

    async def record_encounter(
        self,
        agent_id: str,
        opponent_id: str,
        event: EncounterEvent,
        pattern: Optional[Pattern] = None,
        notable_moment: Optional[NotableMoment | Dict[str, Any]] = None,
        *,
        opponent_name: Optional[str] = None,
    ) -> OpponentMemory:
        """Apply one encounter event and return the updated record."""

        now = self._now()
        records = self._records.setdefault(agent_id, {})
        memory = records.get(opponent_id)
        if memory is None:
            memory = OpponentMemory(
                agent_id=agent_id,
                opponent_id=opponent_id,
                opponent_name=opponent_name,
                first_encounter=now,
                last_encounter=now,
            )
            records[opponent_id] = memory
        elif opponent_name:
            memory.opponent_name = opponent_name

        memory.encounters += 1
        memory.last_encounter = now
        if event == "hunt":
            memory.successful_hunts += 1
        elif event == "escape":
            memory.escapes += 1

        if pattern is not None:
            memory.patterns = merge_pattern(memory.patterns, pattern)

        if notable_moment is not None:
            if isinstance(notable_moment, dict):
                notable_moment = NotableMoment.model_validate({"timestamp": now, **notable_moment})
            memory.notable_moments = retain_notable_moments(memory.notable_moments, notable_moment)

        memory.relationship = classify(memory)

        await self.persistence.upsert_memory(agent_id, opponent_id, memory)
        log_deterministic(
            f"[Memory] {agent_id} vs {opponent_id}: {event} "
            f"(encounters={memory.encounters}, relationship={memory.relationship})"
        )
        return memory.model_copy(deep=True)

    async def validate_pattern(
        self,
        agent_id: str,
        opponent_id: str,
        pattern_type: str,
        correct: bool,
    ) -> Optional[OpponentMemory]:
        """Adjust a pattern's confidence after checking a prediction against reality."""

        memory = self._records.get(agent_id, {}).get(opponent_id)
        if memory is None:
            return None

        for index, pattern in enumerate(memory.patterns):
            if pattern.type == pattern_type:
                memory.patterns[index] = pattern.model_copy(
                    update={"confidence": adjust_confidence(pattern.confidence, correct)}
                )
                await self.persistence.upsert_memory(agent_id, opponent_id, memory)
                break

        return memory.model_copy(deep=True)

    async def observe_position(
        self,
        agent_id: str,
        opponent_id: str,
        position: Point,
    ) -> Optional[CircularMovementPattern]:
        """Track an opponent's position and merge any detected movement pattern.

        Only the trailing ``POSITION_WINDOW`` samples are kept. Detection runs
        once at least ``MIN_MOVEMENT_SAMPLES`` are available. Observing does not
        count as an encounter; patterns are stored only for opponents the agent
        has already met.
        """

        samples = self._positions.setdefault(
            (agent_id, opponent_id), deque(maxlen=POSITION_WINDOW)
        )
        samples.append(position)

        detected = detect_circular_movement(list(samples))
        if detected is None:
            return None

        memory = self._records.get(agent_id, {}).get(opponent_id)
        if memory is not None:
            memory.patterns = merge_pattern(memory.patterns, detected)
            await self.persistence.upsert_memory(agent_id, opponent_id, memory)
        return detected

    def clear(self) -> None:
        """Forget every in-process record (persistence is left untouched)."""

        self._records.clear()
        self._positions.clear()
