"""
Context-similarity response cache.

Stores previously generated decisions, dialogue lines and taunts so that the
engine can answer from cache when a new request is "close enough" to an old
one. Three independent stores are kept:

- decisions keyed by personality, matched on a coarse context fingerprint
- dialogue keyed by ``speaker:trigger``, drawn by weighted lottery
- taunts keyed by ``personality:trigger``, drawn by weighted lottery

Each key holds at most ``max_entries`` responses. Entries expire after
``duration_seconds``; maintenance is self-throttled to once per
``cleanup_interval_seconds`` per key, and can also be driven for every key
through ``sweep()``.
"""

from __future__ import annotations

import random
import time
from dataclasses import dataclass, field
from typing import Any, Dict, List, Literal, Optional, Tuple

from .config import Config
from .logging_utils import log_deterministic
from .memory import grudge_level
from .scheduling import Clock
from .schemas import (
    CachedResponse,
    CacheStats,
    ContextFingerprint,
    Decision,
    DecisionContext,
    Personality,
)


CacheKind = Literal["decision", "dialogue", "taunt"]
CACHE_KINDS: tuple[CacheKind, ...] = ("decision", "dialogue", "taunt")

DEFAULT_QUALITY = 0.7
GRUDGE_FINGERPRINT_THRESHOLD = 5.0
# Fraction of the larger value two numeric buckets may differ by for half credit.
NUMERIC_TOLERANCE = 0.2
MIN_FRESHNESS = 0.3
MIN_LOTTERY_QUALITY = 0.5


# ============================================================================
# Fingerprinting
# ============================================================================


def fingerprint(context: DecisionContext) -> ContextFingerprint:
    """Reduce a context to the coarse features that matter for reuse."""

    opponents = context.opponents
    present = {opponent.id for opponent in opponents}
    has_grudge_target = any(
        memory.opponent_id in present and grudge_level(memory) > GRUDGE_FINGERPRINT_THRESHOLD
        for memory in context.memories
    )

    if opponents:
        avg_health = sum(opponent.health for opponent in opponents) / len(opponents)
        avg_health_bucket = int(avg_health // 10) * 10
    else:
        avg_health_bucket = 0

    return ContextFingerprint(
        opponent_count=len(opponents),
        in_zone_count=len(context.in_zone()),
        agent_health_bucket=int(context.agent_health // 20) * 20,
        time_of_day=context.time_of_day,
        weather=context.weather,
        has_grudge_target=has_grudge_target,
        avg_opponent_health_bucket=avg_health_bucket,
    )


def _numbers_close(a: float, b: float) -> bool:
    return abs(a - b) <= NUMERIC_TOLERANCE * max(abs(a), abs(b))


def similarity(a: ContextFingerprint, b: ContextFingerprint) -> float:
    """Fraction of matching fingerprint fields, in [0, 1].

    Equal fields score 1. Numeric fields that differ earn half credit when
    they are within ``NUMERIC_TOLERANCE`` of each other. Booleans and strings
    are categorical.
    """

    left = a.model_dump()
    right = b.model_dump()

    score = 0.0
    for name, value in left.items():
        other = right[name]
        if value == other:
            score += 1.0
        elif (
            isinstance(value, (int, float))
            and isinstance(other, (int, float))
            and not isinstance(value, bool)
            and not isinstance(other, bool)
            and _numbers_close(value, other)
        ):
            score += 0.5

    return score / len(left) if left else 0.0


def meets_threshold(score: float, threshold: float) -> bool:
    return score >= threshold


# ============================================================================
# Cache
# ============================================================================


@dataclass
class CacheBucket:
    """All responses stored under one key."""

    responses: List[CachedResponse[Any]] = field(default_factory=list)
    last_cleanup: float = 0.0


class ResponseCache:
    """Reuse previous responses when the situation is similar enough.

    Notes
    -----
    * Decisions returned from the cache are copies; stale target references are
      repaired against the requesting context.
    * Clock and RNG are injectable so tests control expiry and lottery draws.
    """

    def __init__(
        self,
        *,
        duration_seconds: Optional[float] = None,
        similarity_threshold: Optional[float] = None,
        max_entries: Optional[int] = None,
        cleanup_interval_seconds: Optional[float] = None,
        clock: Clock = time.time,
        rng: Optional[random.Random] = None,
    ) -> None:
        self.duration_seconds = (
            Config.CACHE_DURATION_SECONDS if duration_seconds is None else duration_seconds
        )
        self.similarity_threshold = (
            Config.CACHE_SIMILARITY_THRESHOLD
            if similarity_threshold is None
            else similarity_threshold
        )
        self.max_entries = Config.MAX_CACHE_ENTRIES if max_entries is None else max_entries
        self.cleanup_interval_seconds = (
            Config.CACHE_CLEANUP_INTERVAL_SECONDS
            if cleanup_interval_seconds is None
            else cleanup_interval_seconds
        )
        self.clock = clock
        self.rng = rng or random.Random()
        self._stores: Dict[CacheKind, Dict[str, CacheBucket]] = {kind: {} for kind in CACHE_KINDS}

    # Maintenance ---------------------------------------------------------

    def _expired(self, entry: CachedResponse[Any], now: float) -> bool:
        return now - entry.timestamp >= self.duration_seconds

    def _cleanup(self, bucket: CacheBucket, now: float, *, force: bool = False) -> None:
        if not force and now - bucket.last_cleanup < self.cleanup_interval_seconds:
            return

        # Rebuild rather than mutate in place.
        kept = [entry for entry in bucket.responses if not self._expired(entry, now)]
        kept.sort(key=lambda entry: entry.quality, reverse=True)
        bucket.responses = kept[: self.max_entries]
        bucket.last_cleanup = now

    def sweep(self, now: Optional[float] = None) -> int:
        """Run maintenance on every key and return how many entries were dropped."""

        now = self.clock() if now is None else now
        dropped = 0
        for store in self._stores.values():
            for key in list(store):
                bucket = store[key]
                before = len(bucket.responses)
                self._cleanup(bucket, now, force=True)
                dropped += before - len(bucket.responses)
                if not bucket.responses:
                    del store[key]

        if dropped:
            log_deterministic(f"[Cache] Sweep dropped {dropped} expired entries")
        return dropped

    # Generic contract ----------------------------------------------------

    def cache(
        self,
        kind: CacheKind,
        key: str,
        response: Any,
        quality: float = DEFAULT_QUALITY,
        context: Optional[DecisionContext] = None,
    ) -> CachedResponse[Any]:
        """Store ``response`` under ``key``.

        Decisions are fingerprinted against ``context``; dialogue and taunts use
        the key itself as their fingerprint.
        """

        if kind == "decision":
            if context is None:
                raise ValueError("decision entries need the context they were made in")
            entry: CachedResponse[Any] = CachedResponse[Decision](
                payload=response.model_copy(deep=True),
                fingerprint=fingerprint(context).serialize(),
                timestamp=self.clock(),
                quality=_clamp(quality),
            )
        else:
            entry = CachedResponse[str](
                payload=response,
                fingerprint=key,
                timestamp=self.clock(),
                quality=_clamp(quality),
            )

        now = entry.timestamp
        store = self._stores[kind]
        bucket = store.get(key)
        if bucket is None:
            bucket = CacheBucket(last_cleanup=now)
            store[key] = bucket

        bucket.responses = bucket.responses + [entry]
        if len(bucket.responses) > self.max_entries:
            weakest = min(bucket.responses, key=lambda candidate: candidate.quality)
            bucket.responses = [candidate for candidate in bucket.responses if candidate is not weakest]

        self._cleanup(bucket, now)
        return entry

    def get(
        self,
        kind: CacheKind,
        key: str,
        context: Optional[DecisionContext] = None,
    ) -> Optional[Any]:
        """Return a reusable response for ``key`` or ``None`` on a miss."""

        bucket = self._stores[kind].get(key)
        if bucket is None or not bucket.responses:
            return None

        if kind == "decision":
            if context is None:
                raise ValueError("decision lookups need the requesting context")
            return self._select_decision(bucket, context)
        return self._draw(bucket)

    def _select_decision(
        self, bucket: CacheBucket, context: DecisionContext
    ) -> Optional[Decision]:
        now = self.clock()
        current = fingerprint(context)

        best: Optional[Tuple[float, CachedResponse[Any]]] = None
        for entry in bucket.responses:
            score = similarity(current, ContextFingerprint.model_validate_json(entry.fingerprint))
            freshness = 1 - (now - entry.timestamp) / self.duration_seconds
            if not meets_threshold(score, self.similarity_threshold) or freshness <= MIN_FRESHNESS:
                continue

            ranking = entry.quality * 0.5 + score * 0.3 + freshness * 0.2
            if best is None or ranking > best[0]:
                best = (ranking, entry)

        if best is None:
            return None

        selected = best[1]
        selected.use_count += 1
        return repair_target(selected.payload.model_copy(deep=True), context)

    def _draw(self, bucket: CacheBucket) -> Optional[str]:
        now = self.clock()
        valid = [
            entry
            for entry in bucket.responses
            if not self._expired(entry, now) and entry.quality > MIN_LOTTERY_QUALITY
        ]
        if not valid:
            return None

        # Favour good lines, but penalise repetition so draws stay varied.
        weights = [entry.quality / (entry.use_count + 1) for entry in valid]
        selected = self.rng.choices(valid, weights=weights, k=1)[0]
        selected.use_count += 1
        return selected.payload

    def update_quality(
        self, kind: CacheKind, key: str, response: Any, new_quality: float
    ) -> bool:
        """Blend feedback into a stored response's quality.

        Returns ``True`` when a matching response was found.
        """

        bucket = self._stores[kind].get(key)
        if bucket is None:
            return False

        for entry in bucket.responses:
            if entry.payload == response:
                blended = (entry.quality * entry.use_count + new_quality) / (entry.use_count + 1)
                entry.quality = _clamp(blended)
                return True
        return False

    # Typed wrappers ------------------------------------------------------

    def cache_decision(
        self,
        personality: Personality,
        context: DecisionContext,
        decision: Decision,
        quality: float = DEFAULT_QUALITY,
    ) -> CachedResponse[Any]:
        return self.cache("decision", personality, decision, quality, context)

    def get_decision(self, personality: Personality, context: DecisionContext) -> Optional[Decision]:
        return self.get("decision", personality, context)

    def cache_taunt(
        self, personality: Personality, trigger: str, taunt: str, quality: float = DEFAULT_QUALITY
    ) -> CachedResponse[Any]:
        return self.cache("taunt", f"{personality}:{trigger}", taunt, quality)

    def get_taunt(self, personality: Personality, trigger: str) -> Optional[str]:
        return self.get("taunt", f"{personality}:{trigger}")

    def cache_dialogue(
        self, speaker: str, trigger: str, line: str, quality: float = DEFAULT_QUALITY
    ) -> CachedResponse[Any]:
        return self.cache("dialogue", f"{speaker}:{trigger}", line, quality)

    def get_dialogue(self, speaker: str, trigger: str) -> Optional[str]:
        return self.get("dialogue", f"{speaker}:{trigger}")

    # Introspection -------------------------------------------------------

    def decision_quality(self) -> Tuple[int, float]:
        """Return ``(count, average quality)`` over every stored decision."""

        qualities = [
            entry.quality
            for bucket in self._stores["decision"].values()
            for entry in bucket.responses
        ]
        if not qualities:
            return 0, 0.0
        return len(qualities), sum(qualities) / len(qualities)

    def stats(self) -> CacheStats:
        counts = {
            kind: sum(len(bucket.responses) for bucket in self._stores[kind].values())
            for kind in CACHE_KINDS
        }
        entries = [
            entry
            for store in self._stores.values()
            for bucket in store.values()
            for entry in bucket.responses
        ]
        return CacheStats(
            decisions=counts["decision"],
            dialogue=counts["dialogue"],
            taunts=counts["taunt"],
            total_uses=sum(entry.use_count for entry in entries),
            avg_quality=sum(entry.quality for entry in entries) / len(entries) if entries else 0.0,
        )

    def clear(self) -> None:
        for store in self._stores.values():
            store.clear()


def repair_target(decision: Decision, context: DecisionContext) -> Decision:
    """Point a reused decision at an opponent who is actually present.

    A target that left is replaced by the first in-zone opponent; with nobody
    in the zone, target and destination are dropped.
    """

    if decision.target_id is None or context.opponent(decision.target_id) is not None:
        return decision

    in_zone = context.in_zone()
    if in_zone:
        replacement = in_zone[0]
        return decision.model_copy(
            update={"target_id": replacement.id, "destination": replacement.position}
        )
    return decision.model_copy(update={"target_id": None, "destination": None})


def _clamp(value: float) -> float:
    return max(0.0, min(1.0, value))
