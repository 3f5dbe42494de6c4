"""
beatreactor - Audio Reactivity Manager
Per-parameter audio reactivity: source lookup, tempo-relative smoothing,
legacy invert/strength knobs, bezier response shaping and the three output
modes (additive, interpolation, speed accumulation).

State is keyed by the caller's parameter key, so one manager can serve any
number of parameters. Nothing here is global; an engine owns its manager.
"""

import math
from typing import Dict, Optional

from audio_sources import BandSample, get_audio_value
from bezier_curve import BezierCache, BezierResponseCurve
from config import ReactivityConfig, ReactivityMode
from logging_utils import log_event
from tempo_smoothing import (
    DEFAULT_ATTACK_FALLBACK_S,
    DEFAULT_RELEASE_FALLBACK_S,
    EnvelopeSmoother,
)

SPEED_APPROACH_RATE = 3.0   # Per second, toward a higher target speed
SPEED_DECAY_RATE = 0.5      # Speed units per second back toward start when silent


def _clamp01(value: float) -> float:
    return max(0.0, min(1.0, value))


class AudioReactivityManager:
    """Owns smoothing, speed accumulation and curve-cache state for reactive parameters."""

    def __init__(self, cache: Optional[BezierCache] = None):
        self._smoothing: Dict[str, EnvelopeSmoother] = {}
        self._speed: Dict[str, float] = {}
        self._last_output: Dict[str, float] = {}
        self.bezier_cache = cache if cache is not None else BezierCache()

    # -- internals ---------------------------------------------------------

    def _level(self, key: str, sample: Optional[BandSample],
               config: ReactivityConfig, dt: float) -> float:
        """Source value, smoothed when attack/release notes are set. None sample = silence."""
        raw = get_audio_value(sample, config.source)
        if not config.is_smoothed:
            return raw

        state_key = f"{key}_{config.source.value}"
        smoother = self._smoothing.get(state_key)
        if smoother is None:
            smoother = EnvelopeSmoother(0.0)
            self._smoothing[state_key] = smoother

        bpm = sample.estimated_bpm if sample is not None else 0.0
        return smoother.update_tempo(
            raw, dt, bpm,
            config.attack_note, config.release_note,
            DEFAULT_ATTACK_FALLBACK_S, DEFAULT_RELEASE_FALLBACK_S,
        )

    def _shape(self, value: float, config: ReactivityConfig) -> float:
        if config.curve is None:
            return value
        return BezierResponseCurve(config.curve, self.bezier_cache).solve(value)

    # -- public API ----------------------------------------------------------

    def get_smoothed_value(self, key: str, sample: Optional[BandSample],
                           config: ReactivityConfig, dt: float) -> float:
        """Processed 0-1 level for a parameter.

        Order: source -> smoothing -> invert -> strength -> curve -> mode mapping
        -> clamp. A non-finite intermediate returns the last good output.
        """
        value = self._level(key, sample, config, dt)

        if config.invert:
            value = 1.0 - value
        if config.strength is not None:
            value = value * config.strength

        value = self._shape(value, config)

        if config.mode != ReactivityMode.INTERPOLATION:
            if config.min is not None or config.max is not None:
                lo = config.min if config.min is not None else 0.0
                hi = config.max if config.max is not None else 1.0
                value = lo + value * (hi - lo)

        if not math.isfinite(value):
            last = self._last_output.get(key, 0.0)
            log_event("WARNING", "Reactivity", "Non-finite value, holding last output",
                      key=key, last=f"{last:.4f}")
            return last

        value = _clamp01(value)
        self._last_output[key] = value
        return value

    def get_interpolated_value(self, key: str, sample: Optional[BandSample],
                               config: ReactivityConfig, dt: float,
                               min_value: float, max_value: float) -> float:
        level = self.get_smoothed_value(key, sample, config, dt)
        return min_value + level * (max_value - min_value)

    def get_accumulated_speed(self, key: str, sample: Optional[BandSample],
                              config: ReactivityConfig, dt: float,
                              start_value: float, target_value: float) -> float:
        """Speed that only moves forward while audio is present.

        The accumulator approaches the audio-driven target speed but never
        decreases toward a lower one. Without audio it decays back toward
        ``start_value``. It never drops below ``start_value``.
        """
        if not (dt > 0) or not math.isfinite(dt):
            dt = 0.0
        state_key = f"{key}_speed"
        current = self._speed.get(state_key, start_value)

        if sample is None:
            if current > start_value:
                current = max(start_value, current - SPEED_DECAY_RATE * dt)
                self._speed[state_key] = current
                return current
            return start_value

        level = self._level(key, sample, config, dt)
        level = self._shape(level, config)
        if not math.isfinite(level):
            level = 0.0

        target_speed = start_value + level * (target_value - start_value)
        if target_speed > current:
            change = (target_speed - current) * SPEED_APPROACH_RATE * dt
            current = min(target_value, current + change)
        current = max(start_value, current)

        self._speed[state_key] = current
        return current

    def get_parameter_value(self, key: str, sample: Optional[BandSample],
                            config: ReactivityConfig, dt: float,
                            base_value: float) -> float:
        """Final parameter value for the config's mode.

        interpolation and speed map between start/target (falling back to
        min/max, then to ``base_value``). additive adds the level to ``base_value``.
        """
        if config.mode == ReactivityMode.ADDITIVE:
            return base_value + self.get_smoothed_value(key, sample, config, dt)

        start = config.start_value if config.start_value is not None else config.min
        target = config.target_value if config.target_value is not None else config.max
        start = base_value if start is None else start
        target = base_value if target is None else target

        if config.mode == ReactivityMode.SPEED:
            return self.get_accumulated_speed(key, sample, config, dt, start, target)
        return self.get_interpolated_value(key, sample, config, dt, start, target)

    def reset(self, prefix: str) -> None:
        """Drop all smoothing and speed state whose key starts with ``prefix``."""
        for store in (self._smoothing, self._speed, self._last_output):
            for state_key in [k for k in store if k.startswith(prefix)]:
                del store[state_key]

    def reset_all(self) -> None:
        self._smoothing.clear()
        self._speed.clear()
        self._last_output.clear()
        self.bezier_cache.clear()
