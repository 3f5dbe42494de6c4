"""
beatreactor - Time Offset
A single, globally shared time offset that drifts forward while the music is
loud and relaxes back to zero when it is quiet.

Hysteresis: once an offset has built up, a lower threshold is used to keep
accumulating, so levels hovering around one boundary do not flip between
accumulate and decay every frame.
"""

import math
from typing import Optional

from audio_sources import BandSample, get_audio_value
from bezier_curve import BezierResponseCurve
from config import TimeOffsetConfig
from logging_utils import log_event
from tempo_smoothing import SMOOTHING_PRESETS, EnvelopeSmoother


class TimeOffsetManager:
    """Hysteretic loudness accumulator with tempo-smoothed output."""

    def __init__(self, config: Optional[TimeOffsetConfig] = None):
        self.config = config or TimeOffsetConfig()
        self.time_offset = 0.0
        self._smoother = EnvelopeSmoother(0.0)
        self._curve = BezierResponseCurve(self.config.curve)
        preset = SMOOTHING_PRESETS.get(self.config.smoothing_preset)
        if preset is None:
            log_event("WARNING", "TimeOffset", "Unknown smoothing preset, using timeOffset",
                      preset=self.config.smoothing_preset)
            preset = SMOOTHING_PRESETS["timeOffset"]
        self._preset = preset
        self.loudness_animation_enabled = self.config.enabled

    def set_loudness_animation_enabled(self, enabled: bool) -> None:
        self.loudness_animation_enabled = bool(enabled)

    def get_easing_factor(self, level: float) -> float:
        """Accumulation multiplier (0-1) for a trigger level, via the configured curve."""
        return self._curve.solve(level)

    def _decay(self, dt: float) -> None:
        decay = self.time_offset * self.config.decay_rate * dt
        self.time_offset = max(0.0, self.time_offset - decay)

    def update(self, sample: Optional[BandSample], dt: float) -> None:
        """Advance one frame. An invalid dt skips the frame."""
        if isinstance(dt, bool) or not isinstance(dt, (int, float)) or not (dt > 0) or not math.isfinite(dt):
            log_event("WARNING", "TimeOffset", "Invalid delta time, frame skipped", dt=dt)
            return

        cfg = self.config
        level = get_audio_value(sample, cfg.source)

        if self.loudness_animation_enabled:
            threshold = (cfg.decay_threshold if self.time_offset > cfg.active_offset_epsilon
                         else cfg.accumulate_threshold)
            if level > threshold:
                easing = self.get_easing_factor(level)
                accumulation = level * cfg.accumulation_rate * dt * easing
                self.time_offset = min(self.time_offset + accumulation, cfg.max_offset)
            else:
                self._decay(dt)
        else:
            self._decay(dt)

        bpm = sample.estimated_bpm if sample is not None else 0.0
        preset = self._preset
        self._smoother.update_tempo(
            self.time_offset, dt, bpm,
            preset.attack_note, preset.release_note,
            preset.attack_fallback_s, preset.release_fallback_s,
        )

    def get_smoothed_offset(self) -> float:
        return self._smoother.value

    def reset(self) -> None:
        self.time_offset = 0.0
        self._smoother.reset(0.0)
