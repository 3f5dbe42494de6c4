"""
beatreactor - Transient Trigger
Hard-edged, rate-limited one-shot pulse fired on fast level rises.

Unlike the envelope smoothers this is deliberately binary: the multiplier
snaps to its active value, holds for a fixed duration and snaps back.
"""

import math
from collections import deque
from typing import Optional

from config import TransientTriggerConfig
from logging_utils import log_event


class RateLimiter:
    """Sliding-window trigger limiter with a cooldown once the limit is hit.

    All times are monotonic milliseconds.
    """

    def __init__(self, window_ms: float = 500.0, limit: int = 4, cooldown_ms: float = 500.0):
        self.window_ms = window_ms
        self.limit = limit
        self.cooldown_ms = cooldown_ms
        self._times: deque = deque()
        self.cooldown_until = 0.0

    def in_cooldown(self, now_ms: float) -> bool:
        return now_ms < self.cooldown_until

    def allow(self, now_ms: float) -> bool:
        """True if a trigger may fire now. Hitting the limit starts the cooldown."""
        if self.in_cooldown(now_ms):
            return False

        window_start = now_ms - self.window_ms
        while self._times and self._times[0] <= window_start:
            self._times.popleft()

        if len(self._times) >= self.limit:
            self.cooldown_until = now_ms + self.cooldown_ms
            log_event("DEBUG", "Trigger", "Rate limit reached, cooling down",
                      count=len(self._times), until_ms=f"{self.cooldown_until:.0f}")
            return False
        return True

    def record(self, now_ms: float) -> None:
        self._times.append(now_ms)

    def reset(self) -> None:
        self._times.clear()
        self.cooldown_until = 0.0


class TransientTriggerPolicy:
    """Binary pulse: idle multiplier normally, active multiplier for ``duration_ms`` after a trigger."""

    def __init__(self, config: Optional[TransientTriggerConfig] = None):
        self.config = config or TransientTriggerConfig()
        cfg = self.config
        self.limiter = RateLimiter(cfg.rate_limit_window_ms, cfg.rate_limit, cfg.cooldown_ms)
        self.multiplier = cfg.idle_multiplier
        self.previous_level = 0.0
        self.is_active = False
        self._started_ms = 0.0

    def update(self, level: float, now_ms: float) -> float:
        """Advance one frame and return the current multiplier.

        Levels outside [0, 1] (or non-numeric) are logged and the frame is skipped.
        """
        if (isinstance(level, bool) or not isinstance(level, (int, float))
                or not math.isfinite(level) or level < 0.0 or level > 1.0):
            log_event("WARNING", "Trigger", "Invalid level ignored", input_level=level)
            return self.multiplier
        if not isinstance(now_ms, (int, float)) or not math.isfinite(now_ms):
            log_event("WARNING", "Trigger", "Invalid timestamp ignored", now_ms=now_ms)
            return self.multiplier

        cfg = self.config
        if self.is_active and now_ms - self._started_ms >= cfg.duration_ms:
            self.multiplier = cfg.idle_multiplier
            self.is_active = False

        change = level - self.previous_level
        if (level > cfg.threshold
                and change > cfg.change_threshold
                and not self.is_active
                and self.limiter.allow(now_ms)):
            self.is_active = True
            self._started_ms = now_ms
            self.multiplier = cfg.active_multiplier
            self.limiter.record(now_ms)
            log_event("DEBUG", "Trigger", "Transient fired", input_level=f"{level:.3f}",
                      change=f"{change:.3f}")

        self.previous_level = level
        return self.multiplier

    def get_multiplier(self) -> float:
        return self.multiplier

    def reset(self) -> None:
        self.multiplier = self.config.idle_multiplier
        self.previous_level = 0.0
        self.is_active = False
        self._started_ms = 0.0
        self.limiter.reset()
