"""Backoff policy used by retry loops."""
from __future__ import annotations

import random
from dataclasses import dataclass
from typing import Callable

from topic_browser.core.config import Settings


@dataclass(frozen=True)
class ExponentialBackoff:
    """Exponential delays with optional jitter and a hard elapsed-time ceiling.

    ``next_delay(n)`` is ``initial_interval * multiplier ** n`` capped at
    ``max_interval``, then spread by ``±jitter`` of itself. ``exhausted`` turns
    true once ``max_elapsed`` seconds have passed since the first attempt.
    """

    initial_interval: float = 0.1
    multiplier: float = 2.0
    max_interval: float = 1.0
    max_elapsed: float = 5.0
    jitter: float = 0.5

    def __post_init__(self) -> None:
        if self.initial_interval <= 0 or self.max_interval <= 0:
            raise ValueError("backoff intervals must be positive")
        if self.multiplier < 1.0:
            raise ValueError("backoff multiplier must be >= 1")
        if not 0 <= self.jitter < 1:
            raise ValueError("backoff jitter must be in [0, 1)")

    @classmethod
    def for_delete_confirmation(cls, settings: Settings) -> "ExponentialBackoff":
        return cls(
            initial_interval=settings.delete_confirm_initial_interval_sec,
            multiplier=settings.delete_confirm_multiplier,
            max_interval=settings.delete_confirm_max_interval_sec,
            max_elapsed=settings.delete_confirm_max_elapsed_sec,
            jitter=settings.delete_confirm_jitter,
        )

    def next_delay(self, attempt: int, rand: Callable[[], float] = random.random) -> float:
        """Seconds to wait after the zero-based ``attempt`` failed."""
        base = min(self.max_interval, self.initial_interval * self.multiplier ** attempt)
        if not self.jitter:
            return base
        spread = base * self.jitter
        return base - spread + 2 * spread * rand()

    def exhausted(self, elapsed: float) -> bool:
        return elapsed >= self.max_elapsed
