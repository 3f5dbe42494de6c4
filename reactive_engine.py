"""
beatreactor - Reactive Engine
One value owning every reactive component, driven once per frame.

Frame order: beat detection first, then everything that reads beats or BPM
(time offset, transient trigger, ripples, reactive parameters). Frame
durations for the performance controller are fed separately, after the frame
they measure has completed.
"""

import time
from dataclasses import dataclass
from typing import Callable, Optional

from audio_reactivity import AudioReactivityManager
from audio_sources import BandSample, get_audio_value
from beat_detector import BeatDetector, BeatEvent, BeatFrame
from config import EngineConfig, ReactivityConfig
from logging_utils import log_event, set_log_level
from performance_monitor import PerformanceMetrics, PerformanceMonitor
from ripple_tracker import RippleData, RippleTracker
from time_offset import TimeOffsetManager
from transient_trigger import TransientTriggerPolicy


@dataclass
class EngineFrame:
    """Frame-coherent outputs of one process_frame call"""
    now_ms: float
    beat: BeatFrame
    sample: Optional[BandSample]    # Input sample extended with this frame's beat data
    time_offset: float              # Tempo-smoothed offset
    raw_time_offset: float
    trigger_multiplier: float
    ripples: RippleData


class ReactiveEngine:
    """Registry of beat detection, reactivity, time offset, trigger, ripple and performance state."""

    def __init__(self, config: Optional[EngineConfig] = None,
                 beat_callback: Optional[Callable[[BeatEvent], None]] = None):
        self.config = config or EngineConfig()
        set_log_level(self.config.log_level)
        self.beat_callback = beat_callback

        self.beat_detector = BeatDetector(self.config.beat)
        self.reactivity = AudioReactivityManager()
        self.time_offset = TimeOffsetManager(self.config.time_offset)
        self.performance = PerformanceMonitor(self.config.performance)
        self.trigger = TransientTriggerPolicy(self.config.trigger)
        self.ripples = RippleTracker(self.config.ripple)

        self._sample: Optional[BandSample] = None
        self.frame_count = 0
        self._disposed = False
        log_event("INFO", "Engine", "Reactive engine ready", log_level=self.config.log_level)

    @property
    def current_sample(self) -> Optional[BandSample]:
        return self._sample

    def process_frame(self, sample: Optional[BandSample], dt: float,
                      now_ms: Optional[float] = None) -> EngineFrame:
        """Run one frame. ``dt`` is seconds since the last frame, ``now_ms`` monotonic ms."""
        if self._disposed:
            raise RuntimeError("ReactiveEngine used after dispose()")
        if now_ms is None:
            now_ms = time.monotonic() * 1000.0

        beat = self.beat_detector.detect(sample, now_ms)
        self._sample = sample.with_beats(beat) if sample is not None else None

        self.time_offset.update(self._sample, dt)

        level = get_audio_value(self._sample, self.config.trigger_source)
        trigger_multiplier = self.trigger.update(level, now_ms)

        for event in beat.events:
            self.ripples.add_event(event)
            if self.beat_callback is not None:
                self.beat_callback(event)

        self.frame_count += 1
        return EngineFrame(
            now_ms=now_ms,
            beat=beat,
            sample=self._sample,
            time_offset=self.time_offset.get_smoothed_offset(),
            raw_time_offset=self.time_offset.time_offset,
            trigger_multiplier=trigger_multiplier,
            ripples=self.ripples.get_ripple_data(now_ms),
        )

    def parameter_value(self, key: str, config: ReactivityConfig, dt: float,
                        base_value: float = 0.0) -> float:
        """Value for a reactive parameter, read from the current frame's sample."""
        return self.reactivity.get_parameter_value(key, self._sample, config, dt, base_value)

    def record_frame_duration(self, duration_ms: float,
                              on_quality_change: Optional[Callable[[float], None]] = None
                              ) -> Optional[PerformanceMetrics]:
        return self.performance.record_frame(duration_ms, on_quality_change)

    def set_metadata_bpm(self, bpm) -> bool:
        return self.beat_detector.set_metadata_bpm(bpm)

    def get_estimated_bpm(self) -> float:
        return self.beat_detector.get_estimated_bpm()

    def reset(self) -> None:
        """Track change: clear beat, tempo, reactivity, offset, trigger and ripple state."""
        self.beat_detector.reset()
        self.reactivity.reset_all()
        self.time_offset.reset()
        self.trigger.reset()
        self.ripples.reset()
        self._sample = None
        log_event("INFO", "Engine", "State reset")

    def dispose(self) -> None:
        if self._disposed:
            return
        self.reset()
        self.performance.reset()
        self._disposed = True
        log_event("INFO", "Engine", "Disposed", frames=self.frame_count)
