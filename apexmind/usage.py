"""
Budget-constrained mode controller.

Chooses, per request, whether the engine calls the live inference service
(``real``), reuses a cached response (``cached``) or synthesizes locally
(``mock``). Usage is counted per category inside a rolling window; once the
window's budget is spent every request degrades to ``mock`` until the window
rolls over.
"""

from __future__ import annotations

import random
import time
from typing import Dict, Optional

from .cache import ResponseCache
from .config import Config
from .logging_utils import log_info, log_warning
from .scheduling import Clock
from .schemas import Mode, UsageCategory, UsageStats


# Warn while this few calls (or fewer) remain in the window.
LOW_BUDGET_WARNING = 10
# The cache must hold more decisions than this before cached mode is considered.
MIN_CACHED_DECISIONS = 10


class ModeController:
    """Tracks inference usage and picks a mode for each request.

    Notes
    -----
    * ``determine_mode`` checks the window first, so an expired window is reset
      before the budget is compared.
    * A window reset clears counters but keeps ``current_mode``.
    """

    def __init__(
        self,
        cache: Optional[ResponseCache] = None,
        *,
        free_tier_limit: Optional[int] = None,
        force_mock: Optional[bool] = None,
        window_seconds: Optional[float] = None,
        quality_threshold: Optional[float] = None,
        cached_probability: Optional[float] = None,
        clock: Clock = time.time,
        rng: Optional[random.Random] = None,
    ) -> None:
        self.cache = cache
        self.free_tier_limit = Config.FREE_TIER_LIMIT if free_tier_limit is None else free_tier_limit
        self.force_mock = Config.FORCE_MOCK_MODE if force_mock is None else force_mock
        self.window_seconds = Config.USAGE_WINDOW_SECONDS if window_seconds is None else window_seconds
        self.quality_threshold = (
            Config.MOCK_QUALITY_THRESHOLD if quality_threshold is None else quality_threshold
        )
        self.cached_probability = (
            Config.CACHED_MODE_PROBABILITY if cached_probability is None else cached_probability
        )
        self.clock = clock
        self.rng = rng or random.Random()
        self._stats = self._fresh_stats()

    def _fresh_stats(self, current_mode: Mode = "real") -> UsageStats:
        return UsageStats(window_start=self.clock(), current_mode=current_mode)

    def check_window(self, now: Optional[float] = None) -> bool:
        """Restart the usage window once it has run its full length.

        Returns ``True`` when a reset happened.
        """

        now = self.clock() if now is None else now
        if now - self._stats.window_start <= self.window_seconds:
            return False

        self._stats = UsageStats(window_start=now, current_mode=self._stats.current_mode)
        log_info("[Usage] Usage window reset")
        return True

    def determine_mode(self) -> Mode:
        self.check_window()

        if self.force_mock:
            return "mock"

        if self._stats.total_calls >= self.free_tier_limit:
            return "mock"

        if self.cache is not None:
            count, avg_quality = self.cache.decision_quality()
            if count > MIN_CACHED_DECISIONS and avg_quality > self.quality_threshold:
                # Spend the budget more slowly while the cache is good.
                if self.rng.random() < self.cached_probability:
                    return "cached"

        return "real"

    def track_usage(self, category: UsageCategory) -> None:
        """Count one live inference call against the budget."""

        counts: Dict[str, int] = self._stats.per_category
        counts[category] = counts.get(category, 0) + 1
        self._stats.total_calls += 1

        remaining = self.free_tier_limit - self._stats.total_calls
        if 0 < remaining <= LOW_BUDGET_WARNING:
            log_warning(f"[Usage] Only {remaining} inference calls remaining before local synthesis")
        elif remaining == 0:
            log_info("[Usage] Inference budget reached, switching to local synthesis")

    def get_usage_stats(self) -> UsageStats:
        self.check_window()
        stats = self._stats.model_copy(deep=True)
        stats.remaining = max(0, self.free_tier_limit - stats.total_calls)
        return stats

    def update_current_mode(self, mode: Mode) -> None:
        self._stats.current_mode = mode

    @property
    def current_mode(self) -> Mode:
        return self._stats.current_mode

    def reset(self) -> None:
        """Forget all usage (test isolation)."""

        self._stats = self._fresh_stats()
