"""
Decision engine façade.

Single entry point the game calls into. Fully decoupled: the inference client,
persistence backend, clock and RNG are all injected, and every shared service
(cache, mode controller, memory store) is an explicit handle that can be
passed in or cleared.

Per decision request:
1. Drop the request if one is already in flight for this agent
2. Ask the mode controller for real / cached / mock
3. Try the cache (cached and mock modes)
4. Call the inference boundary under a mandatory timeout (real mode)
5. On any live-path failure, synthesize locally and cache at reduced quality
"""

from __future__ import annotations

import asyncio
import random
import time
from typing import AsyncIterator, Dict, List, Optional, Sequence, Set

from .cache import ResponseCache, repair_target
from .config import Config
from .inference import (
    MALFORMED_RESPONSE_ERRORS,
    InferenceClient,
    InferenceError,
    parse_decision,
    parse_text,
)
from .logging_utils import log_deterministic, log_error, log_info, log_llm, log_success, log_warning
from .memory import MemoryStore
from .persistence import PersistenceStrategy
from .prompts import (
    DEFAULT_PROMPTS,
    PromptLibrary,
    render_commentary_prompt,
    render_decide_prompt,
    render_dialogue_prompt,
    render_taunt_prompt,
)
from .scheduling import Clock, TaskScheduler
from .schemas import (
    CircularMovementPattern,
    CommentaryIntensity,
    CommentaryStyle,
    Decision,
    DecisionContext,
    EncounterEvent,
    NotableMoment,
    OpponentMemory,
    Pattern,
    Point,
    UsageStats,
)
from .synthesizer import DecisionSynthesizer
from .usage import ModeController


REAL_QUALITY = 0.9
LOCAL_QUALITY = 0.7
FALLBACK_QUALITY = 0.5
CACHED_TAUNT_PROBABILITY = 0.7
USAGE_WINDOW_CHECK_SECONDS = 60.0


class DecisionEngine:
    """Decides what the agent does next and manages the inference budget.

    Notes
    -----
    * ``make_decision`` never raises for a valid context: timeouts, transport
      errors and malformed answers all resolve through local synthesis.
    * Maintenance (cache sweeps, usage-window rollover) runs from ``tick``.
    """

    def __init__(
        self,
        *,
        inference: Optional[InferenceClient] = None,
        cache: Optional[ResponseCache] = None,
        modes: Optional[ModeController] = None,
        memory: Optional[MemoryStore] = None,
        synthesizer: Optional[DecisionSynthesizer] = None,
        persistence: Optional[PersistenceStrategy] = None,
        prompts: PromptLibrary = DEFAULT_PROMPTS,
        timeout: Optional[float] = None,
        clock: Clock = time.time,
        rng: Optional[random.Random] = None,
    ) -> None:
        self.clock = clock
        self.rng = rng or random.Random()
        self.inference = inference
        self.prompts = prompts
        self.timeout = Config.INFERENCE_TIMEOUT_SECONDS if timeout is None else timeout

        self.cache = cache or ResponseCache(clock=clock, rng=self.rng)
        self.modes = modes or ModeController(self.cache, clock=clock, rng=self.rng)
        self.memory = memory or MemoryStore(persistence, clock=clock)
        self.synthesizer = synthesizer or DecisionSynthesizer(rng=self.rng)

        self.scheduler = TaskScheduler(clock=clock)
        self.scheduler.every("cache-sweep", self.cache.cleanup_interval_seconds, self.cache.sweep)
        self.scheduler.every("usage-window", USAGE_WINDOW_CHECK_SECONDS, self.modes.check_window)

        self._in_flight: Set[str] = set()
        self._last_decisions: Dict[str, Decision] = {}

    # ------------------------------------------------------------------
    # Decisions
    # ------------------------------------------------------------------

    async def make_decision(self, context: DecisionContext) -> Optional[Decision]:
        """Return the agent's next decision, or ``None`` if one is already pending."""

        agent_id = context.agent_id
        if agent_id in self._in_flight:
            log_warning(f"[Engine] Decision already in flight for '{agent_id}'; trigger dropped")
            return None

        self._in_flight.add(agent_id)
        try:
            decision = await self._decide(context)
        finally:
            self._in_flight.discard(agent_id)

        self._last_decisions[agent_id] = decision
        return decision

    async def _decide(self, context: DecisionContext) -> Decision:
        personality = context.personality
        mode = self.modes.determine_mode()
        self.modes.update_current_mode(mode)
        log_deterministic(f"[Engine] Deciding for '{context.agent_id}' in {mode} mode")

        if mode in ("cached", "mock"):
            cached = self.cache.get_decision(personality, context)
            if cached is not None:
                log_deterministic("[Engine] Using cached decision")
                return cached
            log_info("[Engine] No reusable cached decision")

        if mode == "mock":
            decision = self.synthesizer.synthesize(context)
            self.cache.cache_decision(personality, context, decision, LOCAL_QUALITY)
            return decision

        try:
            decision = await self._infer_decision(context)
        except asyncio.CancelledError:
            raise
        except MALFORMED_RESPONSE_ERRORS as exc:
            log_error(f"[Engine] Malformed decision response, synthesizing locally: {exc}")
            return self._fallback_decision(context)
        except Exception as exc:
            # Transport errors and timeouts never reach the caller.
            log_error(f"[Engine] Inference failed ({type(exc).__name__}), synthesizing locally: {exc}")
            return self._fallback_decision(context)

        self.cache.cache_decision(personality, context, decision, REAL_QUALITY)
        log_success(f"[Engine] Live decision: {decision.action}")
        return decision

    async def _infer_decision(self, context: DecisionContext) -> Decision:
        if self.inference is None:
            raise InferenceError("no inference client configured")

        prompt = render_decide_prompt(context, self.prompts)
        self.modes.track_usage("agent")
        log_llm(f"[Engine] Requesting decision for '{context.agent_id}'")
        raw = await asyncio.wait_for(self.inference.infer("decide", prompt), timeout=self.timeout)
        # Answers naming an absent opponent are retargeted like reused ones.
        return repair_target(parse_decision(raw), context)

    def _fallback_decision(self, context: DecisionContext) -> Decision:
        decision = self.synthesizer.synthesize(context)
        self.cache.cache_decision(context.personality, context, decision, FALLBACK_QUALITY)
        return decision

    def last_decision(self, agent_id: str) -> Optional[Decision]:
        return self._last_decisions.get(agent_id)

    # ------------------------------------------------------------------
    # Thoughts and spoken lines
    # ------------------------------------------------------------------

    def stream_thought(self, context: DecisionContext, last_action: str) -> AsyncIterator[str]:
        """Stream the agent's inner monologue word by word.

        Thoughts are presentation only, so they are always produced locally
        and never spend inference budget. Close the returned generator to stop
        it early.
        """

        return self.synthesizer.stream_thought(context, last_action)

    async def generate_taunt(self, context: DecisionContext, trigger: str) -> str:
        personality = context.personality
        mode = self.modes.determine_mode()
        self.modes.update_current_mode(mode)

        cached = self.cache.get_taunt(personality, trigger)
        if cached is not None and self.rng.random() < CACHED_TAUNT_PROBABILITY:
            log_deterministic("[Engine] Using cached taunt")
            return cached

        if mode == "mock":
            taunt = self.synthesizer.taunt_for(context, trigger)
            self.cache.cache_taunt(personality, trigger, taunt, LOCAL_QUALITY)
            return taunt

        try:
            if self.inference is None:
                raise InferenceError("no inference client configured")
            prompt = render_taunt_prompt(context, trigger, self.prompts)
            self.modes.track_usage("agent")
            raw = await asyncio.wait_for(
                self.inference.infer("generate-taunt", prompt), timeout=self.timeout
            )
            taunt = parse_text(raw)
        except asyncio.CancelledError:
            raise
        except Exception as exc:
            log_error(f"[Engine] Taunt generation failed, using local taunt: {exc}")
            taunt = self.synthesizer.taunt_for(context, trigger)
            self.cache.cache_taunt(personality, trigger, taunt, FALLBACK_QUALITY)
            return taunt

        self.cache.cache_taunt(personality, trigger, taunt, REAL_QUALITY)
        return taunt

    async def generate_dialogue(
        self, speaker: str, trigger: str, context: Optional[DecisionContext] = None
    ) -> str:
        """A bystander's line reacting to ``trigger`` (``greeting`` for greetings)."""

        mode = self.modes.determine_mode()
        self.modes.update_current_mode(mode)

        if mode in ("cached", "mock"):
            cached = self.cache.get_dialogue(speaker, trigger)
            if cached is not None:
                log_deterministic(f"[Engine] Using cached {speaker} line")
                return cached

        if mode == "mock":
            line = self.synthesizer.dialogue_for(speaker, trigger)
            self.cache.cache_dialogue(speaker, trigger, line, LOCAL_QUALITY)
            return line

        try:
            if self.inference is None:
                raise InferenceError("no inference client configured")
            prompt = render_dialogue_prompt(speaker, trigger, context, self.prompts)
            self.modes.track_usage("dialogue")
            raw = await asyncio.wait_for(
                self.inference.infer("generate-dialogue", prompt), timeout=self.timeout
            )
            line = parse_text(raw)
        except asyncio.CancelledError:
            raise
        except Exception as exc:
            log_error(f"[Engine] Dialogue generation failed, using local line: {exc}")
            line = self.synthesizer.dialogue_for(speaker, trigger)
            self.cache.cache_dialogue(speaker, trigger, line, FALLBACK_QUALITY)
            return line

        self.cache.cache_dialogue(speaker, trigger, line, REAL_QUALITY)
        return line

    async def generate_commentary(
        self,
        event: str,
        players: Sequence[str] = (),
        *,
        agent_health: float = 100.0,
        intensity: CommentaryIntensity = "calm",
        style: CommentaryStyle = "documentary",
    ) -> str:
        """Narrator line for a spectator feed.

        Commentary is never cached: cached and mock modes both narrate locally.
        """

        mode = self.modes.determine_mode()
        self.modes.update_current_mode(mode)

        if mode in ("cached", "mock"):
            log_deterministic(f"[Engine] Local {style} commentary ({mode} mode)")
            return self.synthesizer.commentary_for(style, intensity, event)

        try:
            if self.inference is None:
                raise InferenceError("no inference client configured")
            prompt = render_commentary_prompt(
                event, players, agent_health, intensity, style, self.prompts
            )
            self.modes.track_usage("commentary")
            raw = await asyncio.wait_for(
                self.inference.infer("generate-commentary", prompt), timeout=self.timeout
            )
            return parse_text(raw)
        except asyncio.CancelledError:
            raise
        except Exception as exc:
            log_error(f"[Engine] Commentary generation failed, narrating locally: {exc}")
            return self.synthesizer.commentary_for(style, intensity, event)

    async def stream_commentary(
        self,
        event: str,
        players: Sequence[str] = (),
        *,
        agent_health: float = 100.0,
        intensity: CommentaryIntensity = "calm",
        style: CommentaryStyle = "documentary",
    ) -> AsyncIterator[str]:
        """Word-by-word stream of ``generate_commentary``'s line."""

        line = await self.generate_commentary(
            event, players, agent_health=agent_health, intensity=intensity, style=style
        )
        async for chunk in self.synthesizer.stream_words(line):
            yield chunk

    # ------------------------------------------------------------------
    # Memory
    # ------------------------------------------------------------------

    async def start_session(self, agent_id: str) -> List[OpponentMemory]:
        """Load the agent's stored memories; call once per game session."""

        return await self.memory.load(agent_id)

    async def record_encounter(
        self,
        agent_id: str,
        opponent_id: str,
        event: EncounterEvent,
        pattern: Optional[Pattern] = None,
        notable_moment: Optional[NotableMoment] = None,
        *,
        opponent_name: Optional[str] = None,
    ) -> OpponentMemory:
        return await self.memory.record_encounter(
            agent_id,
            opponent_id,
            event,
            pattern,
            notable_moment,
            opponent_name=opponent_name,
        )

    async def observe_position(
        self, agent_id: str, opponent_id: str, position: Point
    ) -> Optional[CircularMovementPattern]:
        return await self.memory.observe_position(agent_id, opponent_id, position)

    async def validate_pattern(
        self, agent_id: str, opponent_id: str, pattern_type: str, correct: bool
    ) -> Optional[OpponentMemory]:
        return await self.memory.validate_pattern(agent_id, opponent_id, pattern_type, correct)

    # ------------------------------------------------------------------
    # Maintenance and introspection
    # ------------------------------------------------------------------

    def tick(self, now: Optional[float] = None) -> List[str]:
        """Run due maintenance tasks; call from the game's update loop."""

        return self.scheduler.run_due(now)

    def get_usage_stats(self) -> UsageStats:
        return self.modes.get_usage_stats()

    def clear(self) -> None:
        """Reset every shared service (game restart, test isolation)."""

        self.cache.clear()
        self.modes.reset()
        self.memory.clear()
        self._last_decisions.clear()

