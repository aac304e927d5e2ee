"""Tests for local decision synthesis, streamed thoughts, taunts, dialogue and commentary."""

from __future__ import annotations

import random
from datetime import datetime, timezone

import pytest

from apexmind.personalities import (
    COMMENTARY_LINES,
    NIGHT_CLAUSE,
    PERSONALITY_PROFILES,
    RETREAT_PREFIX,
    SPEAKER_PROFILES,
    STORM_CLAUSE,
    TAUNT_PATTERNS,
    WOUNDED_CLAUSE,
)
from apexmind.schemas import (
    ACTIONS,
    PERSONALITIES,
    CircularMovementPattern,
    DecisionContext,
    NotableMoment,
    Opponent,
    OpponentMemory,
    Point,
)
from apexmind.synthesizer import DecisionSynthesizer


EPOCH = datetime(2024, 6, 1, tzinfo=timezone.utc)


class HighRandom(random.Random):
    """Random whose ``random()`` always lands above one half."""

    def random(self) -> float:
        return 0.9


def opponent(opponent_id: str, *, x: float = 300, y: float = 0, health: float = 80, in_zone: bool = True) -> Opponent:
    return Opponent(
        id=opponent_id,
        name=opponent_id.title(),
        position=Point(x=x, y=y),
        health=health,
        speed=2,
        in_zone=in_zone,
    )


def context(opponents=(), *, personality="methodical", agent_health: float = 80, memories=(), **kwargs) -> DecisionContext:
    return DecisionContext(
        opponents=list(opponents),
        agent_position=Point(x=0, y=0),
        agent_health=agent_health,
        personality=personality,
        memories=list(memories),
        **kwargs,
    )


def memory(opponent_id: str, *, encounters=0, hunts=0, escapes=0, relationship="neutral", moments=(), patterns=()) -> OpponentMemory:
    return OpponentMemory(
        agent_id="agent",
        opponent_id=opponent_id,
        encounters=encounters,
        successful_hunts=hunts,
        escapes=escapes,
        relationship=relationship,
        notable_moments=[
            NotableMoment(description="Got away", intensity=value, timestamp=EPOCH) for value in moments
        ],
        patterns=list(patterns),
        first_encounter=EPOCH,
        last_encounter=EPOCH,
    )


@pytest.fixture
def synthesizer() -> DecisionSynthesizer:
    return DecisionSynthesizer(rng=random.Random(42), chunk_delay=0)


# ----------------------------------------------------------------------------
# Situation analysis
# ----------------------------------------------------------------------------


def test_analysis_cascade(synthesizer):
    assert synthesizer.analyze(context(agent_health=20)).situation == "critical_health"
    assert synthesizer.analyze(context([opponent("a", health=40)])).situation == "wounded_target"
    assert (
        synthesizer.analyze(
            context([opponent("a")], memories=[memory("a", encounters=3, escapes=3, relationship="nemesis")])
        ).situation
        == "revenge_opportunity"
    )
    many = [opponent(f"p{i}", x=100 + i) for i in range(3)]
    assert synthesizer.analyze(context(many)).situation == "target_rich"
    assert synthesizer.analyze(context([opponent("a")])).situation == "investigate"
    assert synthesizer.analyze(context([opponent("a", in_zone=False)])).situation == "patrol"


def test_wounded_opponent_outside_zone_is_ignored(synthesizer):
    analysis = synthesizer.analyze(context([opponent("a", health=10, in_zone=False)]))
    assert analysis.situation == "patrol"
    assert analysis.priority == "low"


# ----------------------------------------------------------------------------
# Synthesis
# ----------------------------------------------------------------------------


@pytest.mark.parametrize("personality", PERSONALITIES)
@pytest.mark.parametrize(
    "opponents, agent_health",
    [
        ((), 90),
        ((opponent("a", health=30),), 80),
        ((opponent("a", x=40), opponent("b", x=60), opponent("c", x=90)), 80),
        ((opponent("a", in_zone=False),), 55),
        ((opponent("a"),), 10),
    ],
)
def test_every_personality_returns_a_complete_decision(personality, opponents, agent_health):
    synthesizer = DecisionSynthesizer(rng=random.Random(1), chunk_delay=0)

    decision = synthesizer.synthesize(context(opponents, personality=personality, agent_health=agent_health))

    assert decision.action in ACTIONS
    assert 0.0 <= decision.confidence <= 1.0
    assert decision.monologue
    assert decision.reasoning
    assert decision.destination is not None
    if decision.target_id is not None:
        assert decision.target_id in {o.id for o in opponents}


@pytest.mark.parametrize("personality", PERSONALITIES)
def test_critical_health_always_retreats(personality):
    synthesizer = DecisionSynthesizer(rng=random.Random(3), chunk_delay=0)

    decision = synthesizer.synthesize(
        context([opponent("a", x=100, health=20)], personality=personality, agent_health=20)
    )

    assert decision.action == "retreat"
    assert decision.target_id is None
    assert decision.destination == Point(x=-200, y=0)
    assert decision.monologue.startswith(RETREAT_PREFIX)
    assert decision.confidence == pytest.approx(0.8)


def test_methodical_hunts_wounded_target(synthesizer):
    weak = opponent("weak", health=40, x=250)
    decision = synthesizer.synthesize(context([opponent("healthy", x=50), weak]))

    assert decision.action == "hunt"
    assert decision.target_id == "weak"
    assert decision.destination == weak.position
    assert decision.confidence >= 0.6


def test_methodical_hunts_lone_bleeding_opponent(synthesizer):
    decision = synthesizer.synthesize(context([opponent("p1", health=20)]))

    assert decision.action == "hunt"
    assert decision.target_id == "p1"
    assert decision.confidence >= 0.6


def test_methodical_stalks_when_nothing_is_urgent(synthesizer):
    decision = synthesizer.synthesize(context([opponent("a")]))

    assert decision.action == "stalk"
    assert decision.target_id == "a"
    assert decision.confidence == pytest.approx(0.4)
    assert decision.reasoning == PERSONALITY_PROFILES["methodical"].bias_reasoning["stalk"]


def test_grudge_raises_confidence(synthesizer):
    grudge = memory("slippery", encounters=2, escapes=2, moments=(6,))
    decision = synthesizer.synthesize(context([opponent("slippery", x=400)], memories=[grudge]))

    assert decision.action == "hunt"
    assert decision.target_id == "slippery"
    assert decision.confidence > 0.5
    assert decision.confidence == pytest.approx(0.9)


@pytest.mark.parametrize("personality", PERSONALITIES)
def test_grudge_target_is_hunted_by_every_personality(personality):
    synthesizer = DecisionSynthesizer(rng=random.Random(2), chunk_delay=0)
    grudge = memory("slippery", encounters=2, escapes=2, moments=(6,))

    decision = synthesizer.synthesize(
        context([opponent("slippery", x=50, health=90)], personality=personality, memories=[grudge])
    )

    assert decision.action == "hunt"
    assert decision.target_id == "slippery"
    assert decision.confidence > 0.5


@pytest.mark.parametrize("personality", PERSONALITIES)
def test_wounded_target_is_hunted_by_every_personality(personality):
    synthesizer = DecisionSynthesizer(rng=random.Random(2), chunk_delay=0)

    decision = synthesizer.synthesize(
        context([opponent("weak", x=50, health=40)], personality=personality)
    )

    assert decision.action == "hunt"
    assert decision.target_id == "weak"
    assert decision.confidence >= 0.6


def test_vengeful_prefers_grudge_over_wounded(synthesizer):
    nemesis = memory("old_foe", encounters=4, escapes=4, relationship="nemesis")
    decision = synthesizer.synthesize(
        context(
            [opponent("weak", health=35, x=50), opponent("old_foe", x=500)],
            personality="vengeful",
            memories=[nemesis],
        )
    )

    assert decision.action == "hunt"
    assert decision.target_id == "old_foe"
    assert decision.reasoning == PERSONALITY_PROFILES["vengeful"].bias_reasoning["hunt"]
    assert decision.monologue.startswith("You again.")


def test_vengeful_rage_forces_hunt(synthesizer):
    decision = synthesizer.synthesize(context([opponent("a")], personality="vengeful", rage=85))
    assert decision.action == "hunt"
    assert decision.target_id == "a"


def test_philosophical_ambushes_at_pattern_center(synthesizer):
    orbit = CircularMovementPattern(center=Point(x=50, y=60), radius=30, confidence=0.7)
    decision = synthesizer.synthesize(
        context(
            [opponent("circler", x=80, y=60)],
            personality="philosophical",
            memories=[memory("circler", patterns=[orbit])],
        )
    )

    assert decision.action == "ambush"
    assert decision.target_id == "circler"
    assert decision.destination == Point(x=50, y=60)


def test_philosophical_ignores_weak_patterns(synthesizer):
    orbit = CircularMovementPattern(center=Point(x=50, y=60), radius=30, confidence=0.5)
    decision = synthesizer.synthesize(
        context(
            [opponent("circler", x=80, y=60)],
            personality="philosophical",
            memories=[memory("circler", patterns=[orbit])],
        )
    )
    assert decision.action == "investigate"


def test_meta_hunger_turns_investigation_into_hunt(synthesizer):
    decision = synthesizer.synthesize(context([opponent("a")], personality="meta", hunger=85))

    assert decision.action == "hunt"
    assert decision.reasoning == PERSONALITY_PROFILES["meta"].bias_reasoning["hunger"]


def test_theatrical_taunts_close_targets(synthesizer):
    close = synthesizer.synthesize(context([opponent("a", x=60)], personality="theatrical"))
    far = synthesizer.synthesize(context([opponent("a", x=600)], personality="theatrical"))

    assert close.action == "taunt"
    assert far.action == "investigate"


def test_starving_agent_stops_investigating(synthesizer):
    decision = synthesizer.synthesize(context([opponent("a")], personality="philosophical", hunger=95))
    assert decision.action == "hunt"


def test_empty_context_patrols_in_place(synthesizer):
    decision = synthesizer.synthesize(context())

    assert decision.action == "patrol"
    assert decision.target_id is None
    assert decision.destination == Point(x=0, y=0)
    assert decision.confidence == pytest.approx(0.4)


def test_familiar_opponent_gets_memory_line(synthesizer):
    familiar = memory("regular", encounters=6, hunts=1, escapes=1, relationship="rival")
    decision = synthesizer.synthesize(context([opponent("regular")], memories=[familiar]))

    assert decision.target_id == "regular"
    assert decision.monologue.startswith("We meet again, Regular. Like old times.")


# ----------------------------------------------------------------------------
# Streaming thoughts
# ----------------------------------------------------------------------------


def test_compose_thought_adds_situational_clauses(synthesizer):
    text = synthesizer.compose_thought(
        context(agent_health=40, weather="stormy", time_of_day="night"), "hunt"
    )
    expected = " ".join(
        [WOUNDED_CLAUSE, STORM_CLAUSE, NIGHT_CLAUSE, PERSONALITY_PROFILES["methodical"].thoughts[0]]
    )
    assert text == expected


def test_compose_thought_after_retreat(synthesizer):
    text = synthesizer.compose_thought(context(personality="meta"), "retreat")
    assert text == f"{RETREAT_PREFIX} {PERSONALITY_PROFILES['meta'].thoughts[1]}"


@pytest.mark.asyncio
async def test_stream_thought_yields_word_chunks(synthesizer):
    ctx = context(personality="philosophical", weather="foggy")
    expected = synthesizer.compose_thought(ctx, "hunt")

    chunks = [chunk async for chunk in synthesizer.stream_thought(ctx, "hunt")]

    assert all(chunk.endswith(" ") for chunk in chunks)
    assert len(chunks) == len(expected.split())
    assert "".join(chunks).strip() == expected


@pytest.mark.asyncio
async def test_stream_thought_sleeps_between_chunks_only(monkeypatch):
    delays = []

    async def fake_sleep(delay):
        delays.append(delay)

    monkeypatch.setattr("apexmind.synthesizer.asyncio.sleep", fake_sleep)
    synthesizer = DecisionSynthesizer(rng=random.Random(0), chunk_delay=0.05)

    chunks = [chunk async for chunk in synthesizer.stream_thought(context(), "hunt")]

    assert delays == [0.05] * (len(chunks) - 1)


@pytest.mark.asyncio
async def test_stream_thought_can_be_closed_early(synthesizer):
    stream = synthesizer.stream_thought(context(), "hunt")
    first = await stream.__anext__()
    await stream.aclose()

    assert first.endswith(" ")
    with pytest.raises(StopAsyncIteration):
        await stream.__anext__()


# ----------------------------------------------------------------------------
# Taunts and dialogue
# ----------------------------------------------------------------------------


def test_taunt_prefers_blood_in_the_water():
    synthesizer = DecisionSynthesizer(rng=HighRandom(5), chunk_delay=0)
    taunt = synthesizer.taunt_for(context([opponent("a", health=10)]), "opponent_escaped")
    assert taunt in TAUNT_PATTERNS["opponent_low_health"]


def test_taunt_uses_trigger_pool(synthesizer):
    assert synthesizer.taunt_for(context(), "opponent_escaped") in TAUNT_PATTERNS["opponent_escaped"]
    assert synthesizer.taunt_for(context(), "shark_damaged") in TAUNT_PATTERNS["agent_damaged"]


def test_taunt_falls_back_to_situation_then_personality(synthesizer):
    crowd = [opponent(f"p{i}") for i in range(3)]
    assert synthesizer.taunt_for(context(crowd), "idle") in TAUNT_PATTERNS["multiple_targets"]
    assert synthesizer.taunt_for(context([opponent("a")]), "idle") in TAUNT_PATTERNS["opponent_in_zone"]
    assert (
        synthesizer.taunt_for(context(personality="vengeful"), "idle")
        in PERSONALITY_PROFILES["vengeful"].taunts
    )


def test_dialogue_for_known_speaker(synthesizer):
    surfer = SPEAKER_PROFILES["surfer"]

    assert synthesizer.dialogue_for("surfer", "greeting") in surfer.greetings
    assert synthesizer.dialogue_for("surfer", "player_death") == surfer.reactions["player_death"]
    assert synthesizer.dialogue_for("surfer", "small_talk") in surfer.dialogue


def test_dialogue_for_unknown_speaker(synthesizer):
    assert synthesizer.dialogue_for("lifeguard", "greeting") == "That's interesting..."


# ----------------------------------------------------------------------------
# Commentary
# ----------------------------------------------------------------------------


class PickAt(random.Random):
    """Random whose ``choice()`` always returns the same position."""

    def __init__(self, index: int) -> None:
        super().__init__(0)
        self.index = index

    def choice(self, seq):
        return seq[self.index]


def test_commentary_on_attack_names_the_predator():
    synthesizer = DecisionSynthesizer(rng=PickAt(0), chunk_delay=0)

    line = synthesizer.commentary_for("documentary", "intense", "shark attack on Pat")

    assert line == "The hunt is on! The predator commits to its attack with devastating precision."


def test_commentary_on_escape_turns_strike_into_miss():
    synthesizer = DecisionSynthesizer(rng=PickAt(-1), chunk_delay=0)

    line = synthesizer.commentary_for("documentary", "intense", "swimmer escape")

    assert line == "The water erupts as nature's perfect predator misses!"


def test_commentary_keeps_line_for_other_events():
    synthesizer = DecisionSynthesizer(rng=PickAt(0), chunk_delay=0)

    assert synthesizer.commentary_for("sports", "building", "round start") == COMMENTARY_LINES["sports"]["building"][0]


def test_commentary_for_unknown_style_or_intensity(synthesizer):
    assert synthesizer.commentary_for("opera", "calm", "round start") == "The drama unfolds..."
    assert synthesizer.commentary_for("horror", "apocalyptic", "round start") == "The drama unfolds..."


@pytest.mark.asyncio
async def test_stream_words_splits_any_text(synthesizer):
    chunks = [chunk async for chunk in synthesizer.stream_words("Something watches  from the depths.")]

    assert chunks == ["Something ", "watches ", "from ", "the ", "depths. "]
