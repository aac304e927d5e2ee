"""Tests for relationship classification, grudges and the memory store."""

from __future__ import annotations

import contextlib
import io
import math
from datetime import datetime, timezone

import pytest

from apexmind.memory import (
    MemoryStore,
    classify,
    detect_circular_movement,
    grudge_level,
    merge_pattern,
    retain_notable_moments,
)
from apexmind.persistence import InMemoryPersistence
from apexmind.schemas import (
    CircularMovementPattern,
    HidingSpotPattern,
    NotableMoment,
    OpponentMemory,
    Point,
)


EPOCH = datetime(2024, 6, 1, tzinfo=timezone.utc)


class FakeClock:
    def __init__(self, now: float = 1_700_000_000.0) -> None:
        self.now = now

    def __call__(self) -> float:
        return self.now


def make_memory(encounters=0, hunts=0, escapes=0, relationship="neutral", moments=()) -> OpponentMemory:
    return OpponentMemory(
        agent_id="shark",
        opponent_id="p1",
        encounters=encounters,
        successful_hunts=hunts,
        escapes=escapes,
        relationship=relationship,
        notable_moments=[
            NotableMoment(description=f"moment {i}", intensity=value, timestamp=EPOCH)
            for i, value in enumerate(moments)
        ],
        first_encounter=EPOCH,
        last_encounter=EPOCH,
    )


def circle(center=(100.0, 100.0), radius=50.0, count=8):
    return [
        Point(
            x=center[0] + radius * math.cos(2 * math.pi * i / count),
            y=center[1] + radius * math.sin(2 * math.pi * i / count),
        )
        for i in range(count)
    ]


# ----------------------------------------------------------------------------
# Classification
# ----------------------------------------------------------------------------


@pytest.mark.parametrize(
    ("encounters", "hunts", "escapes", "expected"),
    [
        (2, 0, 2, "neutral"),  # too few encounters to judge
        (4, 3, 0, "favorite-target"),
        (8, 0, 6, "nemesis"),
        (12, 0, 7, "respected"),
        (6, 1, 1, "rival"),
        (10, 4, 4, "neutral"),
    ],
)
def test_classify_branches(encounters, hunts, escapes, expected):
    assert classify(make_memory(encounters, hunts, escapes)) == expected


def test_classify_priority_order():
    # High escape rate beats the respected rule even with many encounters.
    assert classify(make_memory(12, 0, 9)) == "nemesis"
    # High hunt rate beats everything below it.
    assert classify(make_memory(20, 15, 0)) == "favorite-target"


def test_grudge_for_fixed_relationships():
    assert grudge_level(make_memory(relationship="nemesis")) == 10
    assert grudge_level(make_memory(relationship="rival")) == 7
    assert grudge_level(make_memory(relationship="respected")) == 5


def test_grudge_from_escapes_and_moments():
    memory = make_memory(encounters=2, escapes=2, moments=(6,))
    assert grudge_level(memory) == pytest.approx(8.0)

    capped = make_memory(encounters=2, escapes=2, moments=(10, 10))
    assert grudge_level(capped) == 10

    assert grudge_level(make_memory()) == 0


# ----------------------------------------------------------------------------
# Patterns and moments
# ----------------------------------------------------------------------------


def test_merge_pattern_reinforces_existing_type():
    first = CircularMovementPattern(center=Point(x=0, y=0), radius=10, confidence=0.5)
    second = CircularMovementPattern(center=Point(x=5, y=5), radius=12, confidence=0.3)

    merged = merge_pattern(merge_pattern([], first), second)

    assert len(merged) == 1
    assert merged[0].confidence == pytest.approx(0.6)
    assert merged[0].center == Point(x=5, y=5)


def test_merge_pattern_caps_confidence_and_appends_new_types():
    strong = CircularMovementPattern(center=Point(x=0, y=0), radius=10, confidence=0.95)
    merged = merge_pattern([strong], strong)
    assert merged[0].confidence == 1.0

    merged = merge_pattern(merged, HidingSpotPattern(position=Point(x=1, y=2)))
    assert [p.type for p in merged] == ["circular-movement", "hiding-spot"]


def test_merge_pattern_replaces_weakest_when_full():
    patterns = [
        CircularMovementPattern(center=Point(x=0, y=0), radius=1, confidence=0.9),
        HidingSpotPattern(position=Point(x=0, y=0), confidence=0.2),
    ]
    merged = merge_pattern(patterns[:1], patterns[1], max_patterns=1)
    assert [p.type for p in merged] == ["hiding-spot"]


def test_notable_moments_keep_top_ten():
    moments = []
    for intensity in range(12):
        moments = retain_notable_moments(
            moments, NotableMoment(description=f"beat {intensity}", intensity=intensity % 11, timestamp=EPOCH)
        )

    assert len(moments) == 10
    assert [m.intensity for m in moments][:3] == [10, 9, 8]
    assert min(m.intensity for m in moments) >= 1


def test_detects_circular_movement():
    pattern = detect_circular_movement(circle())

    assert pattern is not None
    assert pattern.center.x == pytest.approx(100)
    assert pattern.center.y == pytest.approx(100)
    assert pattern.radius == pytest.approx(50)
    assert pattern.confidence == pytest.approx(0.7)


def test_circular_detection_needs_five_samples_and_low_variance():
    assert detect_circular_movement(circle(count=4)) is None

    erratic = [Point(x=0, y=0), Point(x=300, y=10), Point(x=5, y=400), Point(x=90, y=2), Point(x=600, y=600)]
    assert detect_circular_movement(erratic) is None


# ----------------------------------------------------------------------------
# Store
# ----------------------------------------------------------------------------


@pytest.mark.asyncio
async def test_record_encounter_creates_and_updates():
    persistence = InMemoryPersistence()
    store = MemoryStore(persistence, clock=FakeClock())

    with contextlib.redirect_stdout(io.StringIO()):
        first = await store.record_encounter("shark", "p1", "encounter", opponent_name="Pat")
        await store.record_encounter("shark", "p1", "hunt")
        latest = await store.record_encounter("shark", "p1", "hunt")

    assert first.encounters == 1
    assert first.opponent_name == "Pat"
    assert latest.encounters == 3
    assert latest.successful_hunts == 2
    assert latest.relationship == "neutral"

    with contextlib.redirect_stdout(io.StringIO()):
        latest = await store.record_encounter("shark", "p1", "hunt")
    assert latest.relationship == "favorite-target"
    assert persistence.memories["shark"]["p1"].encounters == 4


@pytest.mark.asyncio
async def test_escapes_build_a_nemesis():
    store = MemoryStore(clock=FakeClock())
    with contextlib.redirect_stdout(io.StringIO()):
        for _ in range(3):
            memory = await store.record_encounter("shark", "p2", "escape")

    assert memory.escapes == 3
    assert memory.relationship == "nemesis"
    assert grudge_level(memory) == 10


@pytest.mark.asyncio
async def test_record_encounter_merges_pattern_and_moment():
    clock = FakeClock()
    store = MemoryStore(clock=clock)
    pattern = HidingSpotPattern(position=Point(x=10, y=10), confidence=0.5)

    with contextlib.redirect_stdout(io.StringIO()):
        await store.record_encounter("shark", "p1", "taunt", pattern=pattern)
        memory = await store.record_encounter(
            "shark",
            "p1",
            "escape",
            pattern=pattern,
            notable_moment={"description": "Dove under the pier", "intensity": 7},
        )

    assert memory.encounters == 2
    assert memory.pattern("hiding-spot").confidence == pytest.approx(0.6)
    assert memory.notable_moments[0].description == "Dove under the pier"
    assert memory.notable_moments[0].timestamp == datetime.fromtimestamp(clock.now, tz=timezone.utc)


@pytest.mark.asyncio
async def test_get_returns_copies():
    store = MemoryStore(clock=FakeClock())
    with contextlib.redirect_stdout(io.StringIO()):
        await store.record_encounter("shark", "p1", "encounter")

    copy = store.get("shark", "p1")
    copy.encounters = 50

    assert store.get("shark", "p1").encounters == 1
    assert store.get("shark", "missing") is None
    assert [m.opponent_id for m in store.memories_for("shark")] == ["p1"]


@pytest.mark.asyncio
async def test_validate_pattern_adjusts_confidence():
    store = MemoryStore(clock=FakeClock())
    pattern = CircularMovementPattern(center=Point(x=0, y=0), radius=20, confidence=0.1)
    with contextlib.redirect_stdout(io.StringIO()):
        await store.record_encounter("shark", "p1", "encounter", pattern=pattern)

    memory = await store.validate_pattern("shark", "p1", "circular-movement", correct=True)
    assert memory.pattern("circular-movement").confidence == pytest.approx(0.2)

    memory = await store.validate_pattern("shark", "p1", "circular-movement", correct=False)
    assert memory.pattern("circular-movement").confidence == pytest.approx(0.05)

    memory = await store.validate_pattern("shark", "p1", "circular-movement", correct=False)
    assert memory.pattern("circular-movement").confidence == 0.0

    assert await store.validate_pattern("shark", "nobody", "circular-movement", correct=True) is None


@pytest.mark.asyncio
async def test_observe_position_detects_without_counting_encounters():
    store = MemoryStore(clock=FakeClock())
    with contextlib.redirect_stdout(io.StringIO()):
        await store.record_encounter("shark", "p1", "encounter")

    detected = None
    for point in circle(count=6):
        detected = await store.observe_position("shark", "p1", point)

    assert isinstance(detected, CircularMovementPattern)
    memory = store.get("shark", "p1")
    assert memory.encounters == 1
    assert memory.pattern("circular-movement") is not None


@pytest.mark.asyncio
async def test_observe_position_for_unknown_opponent_stores_nothing():
    store = MemoryStore(clock=FakeClock())

    results = [await store.observe_position("shark", "ghost", point) for point in circle(count=5)]

    assert results[:4] == [None, None, None, None]
    assert results[4] is not None
    assert store.get("shark", "ghost") is None


@pytest.mark.asyncio
async def test_load_counts_a_new_session():
    persistence = InMemoryPersistence()
    await persistence.upsert_memory("shark", "p1", make_memory(encounters=4, hunts=1))

    store = MemoryStore(persistence, clock=FakeClock())
    with contextlib.redirect_stdout(io.StringIO()):
        loaded = await store.load("shark")

    assert [m.total_sessions for m in loaded] == [2]
    assert persistence.memories["shark"]["p1"].total_sessions == 2
    assert store.get("shark", "p1").encounters == 4


@pytest.mark.asyncio
async def test_find_patterns_and_summary():
    store = MemoryStore(clock=FakeClock())
    strong = HidingSpotPattern(position=Point(x=1, y=1), confidence=0.8)
    weak = HidingSpotPattern(position=Point(x=2, y=2), confidence=0.3)

    with contextlib.redirect_stdout(io.StringIO()):
        await store.record_encounter("shark", "p1", "hunt", pattern=strong)
        await store.record_encounter("shark", "p2", "escape", pattern=weak)
        await store.record_encounter(
            "shark", "p2", "escape", notable_moment={"description": "Close call", "intensity": 4}
        )

    found = store.find_patterns("shark", "hiding-spot")
    assert [opponent_id for opponent_id, _ in found] == ["p1"]

    summary = store.summary("shark")
    assert summary["total_memories"] == 2
    assert summary["total_hunts"] == 1
    assert summary["total_escapes"] == 2
    assert summary["success_rate"] == pytest.approx(1 / 3)
    assert summary["pattern_types"] == ["hiding-spot"]
    assert summary["most_memorable_opponent"] == "p2"
    assert store.summary("nobody") is None


@pytest.mark.asyncio
async def test_grudge_levels_sorted_and_clear():
    store = MemoryStore(clock=FakeClock())
    with contextlib.redirect_stdout(io.StringIO()):
        await store.record_encounter("shark", "calm", "hunt")
        for _ in range(3):
            await store.record_encounter("shark", "slippery", "escape")

    levels = store.grudge_levels("shark")
    assert levels[0] == ("slippery", 10)
    assert levels[-1][0] == "calm"

    store.clear()
    assert store.memories_for("shark") == []
