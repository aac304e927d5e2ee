"""
Local decision synthesizer.

Produces a complete, in-character ``Decision`` from the context alone. This is
the engine's floor: it never calls out, never raises for a valid context, and
is what every failed live-inference path falls back to.

Flow:
1. ``analyze`` classifies the situation with an ordered rule cascade.
2. A target is chosen (wounded, then grudge, then nearest).
3. The personality's tactical bias may adjust action and target.
4. Monologue and reasoning lines are drawn from the personality tables.
"""

from __future__ import annotations

import asyncio
import random
import re
from dataclasses import dataclass
from typing import AsyncIterator, List, Optional, Tuple

from .config import Config
from .memory import grudge_level
from .personalities import (
    BIAS_EXPLOIT_NUMBERS,
    BIAS_GRUDGE_FIRST,
    BIAS_PATIENT_STALK,
    BIAS_PATTERN_AMBUSH,
    BIAS_SHOWBOAT,
    COMMENTARY_LINES,
    NIGHT_CLAUSE,
    RETREAT_PREFIX,
    STORM_CLAUSE,
    TAUNT_PATTERNS,
    TRIGGER_TAUNTS,
    WOUNDED_CLAUSE,
    profile_for,
    speaker_for,
)
from .schemas import (
    Action,
    Decision,
    DecisionContext,
    Opponent,
    OpponentMemory,
    Point,
    Priority,
    SituationAnalysis,
)


CRITICAL_HEALTH = 30
WOUNDED_HEALTH = 50
REVENGE_GRUDGE = 6
TARGET_RICH_COUNT = 2
SHOWBOAT_RANGE = 100.0
RAGE_THRESHOLD = 70
META_HUNGER_THRESHOLD = 80
STARVING_HUNGER = 90
PATTERN_CONFIDENCE = 0.6
RETREAT_DISTANCE = 200.0
REMEMBERED_ENCOUNTERS = 2
GRUDGE_CONFIDENCE_STEP = 0.05
MAX_GRUDGE_CONFIDENCE = 0.9
LOW_HEALTH_TAUNT = 30

PRIORITY_CONFIDENCE = {"high": 0.8, "medium": 0.6, "low": 0.4}

_SHARK_WORD = re.compile("shark", re.IGNORECASE)
_STRIKES_WORD = re.compile("strikes", re.IGNORECASE)


@dataclass
class _Plan:
    """Working state while a decision is assembled."""

    action: Action
    priority: Priority
    target: Optional[Opponent] = None
    destination: Optional[Point] = None
    grudge: float = 0.0
    grudge_driven: bool = False
    bias_reasoning: Optional[str] = None


def present_grudges(context: DecisionContext) -> List[Tuple[Opponent, float]]:
    """Return ``(opponent, grudge)`` for remembered opponents who are present, highest first."""

    found: List[Tuple[Opponent, float]] = []
    for memory in context.memories:
        opponent = context.opponent(memory.opponent_id)
        if opponent is not None:
            found.append((opponent, grudge_level(memory)))
    return sorted(found, key=lambda item: item[1], reverse=True)


def memory_line(memory: OpponentMemory, name: str) -> str:
    """Monologue opener for an opponent the agent has met before."""

    if grudge_level(memory) > 7:
        return "You again. I've been waiting for this."
    if memory.encounters > 5:
        return f"We meet again, {name}. Like old times."
    if memory.relationship == "favorite-target":
        return f"Back for more, {name}? You never learn."
    if memory.escapes > memory.successful_hunts:
        return "Slippery one. Not this time."
    return "I remember you..."


class DecisionSynthesizer:
    """Rule cascade plus personality tables; always returns a valid decision."""

    def __init__(
        self,
        *,
        rng: Optional[random.Random] = None,
        chunk_delay: Optional[float] = None,
    ) -> None:
        self.rng = rng or random.Random()
        self.chunk_delay = (
            Config.THOUGHT_CHUNK_DELAY_SECONDS if chunk_delay is None else chunk_delay
        )

    # ------------------------------------------------------------------
    # Situation analysis
    # ------------------------------------------------------------------

    def analyze(self, context: DecisionContext) -> SituationAnalysis:
        """Classify the situation; first matching rule wins."""

        if context.agent_health < CRITICAL_HEALTH:
            return SituationAnalysis(
                situation="critical_health", priority="high", suggested_action="retreat"
            )

        in_zone = context.in_zone()
        if any(opponent.health < WOUNDED_HEALTH for opponent in in_zone):
            return SituationAnalysis(
                situation="wounded_target", priority="high", suggested_action="hunt"
            )

        grudges = present_grudges(context)
        if grudges and grudges[0][1] > REVENGE_GRUDGE:
            return SituationAnalysis(
                situation="revenge_opportunity", priority="high", suggested_action="hunt"
            )

        if len(in_zone) > TARGET_RICH_COUNT:
            return SituationAnalysis(
                situation="target_rich", priority="medium", suggested_action="ambush"
            )

        if in_zone:
            return SituationAnalysis(
                situation="investigate", priority="low", suggested_action="investigate"
            )
        return SituationAnalysis(situation="patrol", priority="low", suggested_action="patrol")

    # ------------------------------------------------------------------
    # Targeting
    # ------------------------------------------------------------------

    def _select_target(self, context: DecisionContext, plan: _Plan) -> None:
        in_zone = context.in_zone()

        wounded = [opponent for opponent in in_zone if opponent.health < WOUNDED_HEALTH]
        if wounded:
            plan.target = min(wounded, key=lambda opponent: opponent.health)
            return

        grudges = present_grudges(context)
        if grudges and grudges[0][1] > REVENGE_GRUDGE:
            plan.target, plan.grudge = grudges[0]
            plan.grudge_driven = True
            return

        if in_zone:
            plan.target = min(
                in_zone, key=lambda opponent: opponent.position.distance_to(context.agent_position)
            )

    @staticmethod
    def _retreat_destination(context: DecisionContext) -> Point:
        """Head directly away from the centroid of in-zone opponents."""

        in_zone = context.in_zone()
        origin = context.agent_position
        if not in_zone:
            return origin

        center_x = sum(opponent.position.x for opponent in in_zone) / len(in_zone)
        center_y = sum(opponent.position.y for opponent in in_zone) / len(in_zone)
        dx, dy = origin.x - center_x, origin.y - center_y
        length = (dx * dx + dy * dy) ** 0.5
        if length == 0:
            return origin
        return Point(
            x=origin.x + dx / length * RETREAT_DISTANCE,
            y=origin.y + dy / length * RETREAT_DISTANCE,
        )

    # ------------------------------------------------------------------
    # Personality bias
    # ------------------------------------------------------------------

    def _apply_bias(self, context: DecisionContext, plan: _Plan) -> None:
        if plan.action == "retreat":
            return

        profile = profile_for(context.personality)
        bias = profile.bias

        if bias == BIAS_GRUDGE_FIRST:
            grudges = present_grudges(context)
            if grudges and grudges[0][1] > REVENGE_GRUDGE:
                plan.target, plan.grudge = grudges[0]
                plan.grudge_driven = True
                plan.action = "hunt"
                plan.bias_reasoning = profile.bias_reasoning.get("hunt")
            elif plan.target is not None and context.rage > RAGE_THRESHOLD:
                plan.action = "hunt"
                plan.bias_reasoning = profile.bias_reasoning.get("hunt")

        elif bias == BIAS_PATIENT_STALK:
            if plan.priority == "low" and plan.target is not None:
                plan.action = "stalk"
                plan.bias_reasoning = profile.bias_reasoning.get("stalk")

        elif bias == BIAS_SHOWBOAT:
            # Showing off never replaces an urgent hunt.
            if (
                plan.priority != "high"
                and plan.target is not None
                and plan.target.position.distance_to(context.agent_position) <= SHOWBOAT_RANGE
            ):
                plan.action = "taunt"
                plan.bias_reasoning = profile.bias_reasoning.get("taunt")

        elif bias == BIAS_PATTERN_AMBUSH:
            for memory in context.memories:
                opponent = context.opponent(memory.opponent_id)
                pattern = memory.pattern("circular-movement")
                if opponent is None or pattern is None or pattern.confidence < PATTERN_CONFIDENCE:
                    continue
                plan.action = "ambush"
                plan.target = opponent
                plan.destination = pattern.center
                plan.grudge_driven = False
                plan.bias_reasoning = profile.bias_reasoning.get("ambush")
                break

        elif bias == BIAS_EXPLOIT_NUMBERS:
            if plan.target is not None and plan.target.health < WOUNDED_HEALTH:
                plan.action = "hunt"
                plan.bias_reasoning = profile.bias_reasoning.get("low_health")
            elif plan.target is not None and context.hunger > META_HUNGER_THRESHOLD:
                plan.action = "hunt"
                plan.bias_reasoning = profile.bias_reasoning.get("hunger")

        if (
            context.hunger > STARVING_HUNGER
            and plan.target is not None
            and plan.action in ("patrol", "investigate")
        ):
            plan.action = "hunt"

    # ------------------------------------------------------------------
    # Synthesis
    # ------------------------------------------------------------------

    def synthesize(self, context: DecisionContext) -> Decision:
        """Build a complete decision for ``context`` without any external call."""

        analysis = self.analyze(context)
        profile = profile_for(context.personality)
        plan = _Plan(action=analysis.suggested_action, priority=analysis.priority)

        if plan.action == "retreat":
            plan.destination = self._retreat_destination(context)
        else:
            self._select_target(context, plan)
            self._apply_bias(context, plan)
            if plan.target is not None and plan.destination is None:
                plan.destination = plan.target.position
            elif plan.target is None:
                plan.destination = context.agent_position

        confidence = PRIORITY_CONFIDENCE[plan.priority]
        if plan.grudge_driven:
            confidence = min(MAX_GRUDGE_CONFIDENCE, confidence + GRUDGE_CONFIDENCE_STEP * plan.grudge)
        confidence = max(0.0, min(1.0, confidence))

        monologue = self.rng.choice(profile.thoughts)
        if plan.action == "retreat":
            monologue = f"{RETREAT_PREFIX} {monologue}"
        elif plan.target is not None:
            memory = context.memory_for(plan.target.id)
            if memory is not None and memory.encounters > REMEMBERED_ENCOUNTERS:
                monologue = f"{memory_line(memory, plan.target.name)} {monologue}"

        reasoning = plan.bias_reasoning or self.rng.choice(profile.reasoning_for(plan.action))

        return Decision(
            action=plan.action,
            target_id=plan.target.id if plan.target is not None else None,
            destination=plan.destination,
            monologue=monologue,
            confidence=confidence,
            reasoning=reasoning,
        )

    # ------------------------------------------------------------------
    # Streaming thoughts
    # ------------------------------------------------------------------

    def compose_thought(self, context: DecisionContext, last_action: str) -> str:
        """Situational clauses followed by one in-character line."""

        profile = profile_for(context.personality)
        clauses: List[str] = []
        if context.agent_health < WOUNDED_HEALTH:
            clauses.append(WOUNDED_CLAUSE)
        if context.weather == "stormy":
            clauses.append(STORM_CLAUSE)
        if context.time_of_day == "night":
            clauses.append(NIGHT_CLAUSE)

        if "hunt" in last_action:
            line = profile.thoughts[0]
        elif "retreat" in last_action:
            line = f"{RETREAT_PREFIX} {profile.thoughts[1]}"
        else:
            line = self.rng.choice(profile.thoughts)

        return " ".join(clauses + [line])

    async def stream_thought(
        self, context: DecisionContext, last_action: str
    ) -> AsyncIterator[str]:
        """Yield the thought word by word with a fixed delay between chunks.

        Each call produces a fresh, finite stream. Closing the generator early
        (``aclose()`` or breaking out of ``async for``) stops it before the next
        delay, so nothing is left scheduled.
        """

        async for chunk in self.stream_words(self.compose_thought(context, last_action)):
            yield chunk

    async def stream_words(self, text: str) -> AsyncIterator[str]:
        """Yield ``text`` one word at a time, ``chunk_delay`` apart."""

        words = text.split()
        for index, word in enumerate(words):
            yield f"{word} "
            if index < len(words) - 1 and self.chunk_delay > 0:
                await asyncio.sleep(self.chunk_delay)

    # ------------------------------------------------------------------
    # Taunts, dialogue and commentary
    # ------------------------------------------------------------------

    def taunt_for(self, context: DecisionContext, trigger: str) -> str:
        """Pick a taunt from the situation pools, falling back to the personality's own."""

        low_health = [o for o in context.opponents if o.health < LOW_HEALTH_TAUNT]
        if low_health and self.rng.random() > 0.5:
            return self.rng.choice(TAUNT_PATTERNS["opponent_low_health"])

        pool = TRIGGER_TAUNTS.get(trigger)
        if pool is not None:
            return self.rng.choice(TAUNT_PATTERNS[pool])

        in_zone = context.in_zone()
        if len(in_zone) > TARGET_RICH_COUNT:
            return self.rng.choice(TAUNT_PATTERNS["multiple_targets"])
        if in_zone:
            return self.rng.choice(TAUNT_PATTERNS["opponent_in_zone"])

        return self.rng.choice(profile_for(context.personality).taunts)

    def dialogue_for(self, speaker: str, trigger: str) -> str:
        """Line for a bystander ``speaker`` reacting to ``trigger``.

        ``greeting`` picks a greeting, a known reaction trigger returns that
        reaction, anything else draws general dialogue.
        """

        profile = speaker_for(speaker)
        if profile is None:
            return "That's interesting..."

        if trigger == "greeting":
            return self.rng.choice(profile.greetings)
        reaction = profile.reactions.get(trigger)
        if reaction is not None:
            return reaction
        return self.rng.choice(profile.dialogue)

    def commentary_for(self, style: str, intensity: str, event: str) -> str:
        """Narrator line for ``event`` in the given style and intensity."""

        lines = COMMENTARY_LINES.get(style, {}).get(intensity)
        if not lines:
            return "The drama unfolds..."

        line = self.rng.choice(lines)
        if "attack" in event:
            line = _SHARK_WORD.sub("predator", line, count=1)
        elif "escape" in event:
            line = _STRIKES_WORD.sub("misses", line, count=1)
        return line
