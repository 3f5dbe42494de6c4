"""
beatreactor - Beat Detector
Per-band beat detection (bass / mid / treble) with a parallel legacy
bass-only estimator that tracks BPM.

All timestamps are monotonic milliseconds supplied by the caller. Beat times
reported to consumers are seconds since the band's last beat.
"""

import math
import time
from dataclasses import dataclass, field
from typing import Dict, List, Optional

from audio_sources import BandSample, finite_or_zero
from config import BeatDetectionConfig
from logging_utils import log_event

BANDS = ("bass", "mid", "treble")


@dataclass
class BeatEvent:
    """A detected beat; lives for the frame it was detected in"""
    band: str               # 'bass', 'mid' or 'treble'
    timestamp_ms: float     # Detection time (monotonic ms)
    intensity: float        # 0.0-1.0
    stereo: float           # Band stereo position frozen at detection time


@dataclass
class BandBeatState:
    """Continuously updated beat state for one band"""
    beat_time: float = 0.0        # Seconds since last beat (0 when stale)
    intensity: float = 0.0        # Intensity of the last beat (0 when stale)
    stereo: float = 0.0           # Stereo position frozen at the last beat
    last_beat_ms: Optional[float] = None
    previous_value: float = 0.0   # Band value on the previous frame


@dataclass
class BeatFrame:
    """Everything the detector produced for one frame"""
    bands: Dict[str, BandBeatState]
    beat_time: float
    intensity: float
    estimated_bpm: float
    events: List[BeatEvent] = field(default_factory=list)


class GlobalBeatEstimator:
    """
    Legacy global beat tracker driven by bass only.

    Fires when bass rises well above its smoothed level and estimates BPM from
    beat-to-beat intervals, unless a metadata BPM has been supplied.
    """

    def __init__(self, config: Optional[BeatDetectionConfig] = None):
        self.config = config or BeatDetectionConfig()
        self.beat_time = 0.0
        self.intensity = 0.0
        self.last_beat_ms: Optional[float] = None
        self.estimated_bpm = 0.0
        self.metadata_bpm = 0.0

    @property
    def has_metadata_bpm(self) -> bool:
        return self.metadata_bpm > 0

    def set_metadata_bpm(self, bpm) -> bool:
        """Lock the tempo to track metadata. Returns False when rejected."""
        cfg = self.config
        if self.has_metadata_bpm:
            if bpm != self.metadata_bpm:
                log_event("DEBUG", "Beat", "Metadata BPM already set, ignoring",
                          current=f"{self.metadata_bpm:.1f}", requested=bpm)
            return False
        if (isinstance(bpm, bool) or not isinstance(bpm, (int, float))
                or not (0 < bpm <= cfg.max_metadata_bpm)):
            log_event("WARNING", "Beat", "Invalid metadata BPM ignored", bpm=bpm)
            return False
        self.metadata_bpm = float(bpm)
        self.estimated_bpm = float(bpm)
        log_event("INFO", "Beat", "Using metadata BPM", bpm=f"{self.metadata_bpm:.1f}")
        return True

    def update(self, bass: float, smoothed_bass: float, now_ms: float) -> bool:
        """Advance one frame. Returns True when a global beat fired."""
        cfg = self.config
        min_interval = cfg.min_beat_interval_ms

        if self.last_beat_ms is not None:
            self.beat_time = (now_ms - self.last_beat_ms) / 1000.0
            if self.beat_time > cfg.beat_timeout_s:
                self.beat_time = 0.0
                self.intensity = 0.0
        else:
            self.beat_time = 0.0

        threshold = smoothed_bass * cfg.global_threshold_ratio
        interval_ok = self.last_beat_ms is None or (now_ms - self.last_beat_ms) >= min_interval
        if not (bass > threshold and bass > cfg.global_min_level and interval_ok):
            return False

        previous_beat_ms = self.last_beat_ms
        self.last_beat_ms = now_ms
        self.intensity = min(bass / cfg.global_intensity_ref, 1.0)
        self.beat_time = 0.0

        if not self.has_metadata_bpm and previous_beat_ms is not None:
            self._update_bpm((now_ms - previous_beat_ms) / 1000.0)
        return True

    def _update_bpm(self, interval_s: float) -> None:
        cfg = self.config
        if not (cfg.bpm_min_interval_s < interval_s < cfg.bpm_max_interval_s):
            return
        instant_bpm = 60.0 / interval_s
        if self.estimated_bpm == 0:
            self.estimated_bpm = instant_bpm
        else:
            self.estimated_bpm = (self.estimated_bpm * cfg.bpm_smoothing
                                  + instant_bpm * (1.0 - cfg.bpm_smoothing))

    def reset(self) -> None:
        self.beat_time = 0.0
        self.intensity = 0.0
        self.last_beat_ms = None
        self.estimated_bpm = 0.0
        self.metadata_bpm = 0.0


class BeatDetector:
    """
    Multi-band beat detector.

    A band fires when its value clears both a peak-relative threshold and the
    band's minimum, has risen sharply since the previous frame, and the band's
    refractory interval has elapsed. The global bass estimator runs alongside
    and owns the BPM estimate.
    """

    def __init__(self, config: Optional[BeatDetectionConfig] = None):
        self.config = config or BeatDetectionConfig()
        self.bands: Dict[str, BandBeatState] = {name: BandBeatState() for name in BANDS}
        self.global_estimator = GlobalBeatEstimator(self.config)
        self._last_override = None

    def _min_threshold(self, band: str) -> float:
        cfg = self.config
        if band == "bass":
            return cfg.bass_min_threshold
        if band == "mid":
            return cfg.mid_min_threshold
        return cfg.treble_min_threshold

    # -- tempo ---------------------------------------------------------------

    def set_metadata_bpm(self, bpm) -> bool:
        return self.global_estimator.set_metadata_bpm(bpm)

    def get_metadata_bpm(self) -> float:
        return self.global_estimator.metadata_bpm

    def get_estimated_bpm(self) -> float:
        return self.global_estimator.estimated_bpm

    # -- detection -----------------------------------------------------------

    def detect_band(self, band: str, value: float, peak: float, stereo: float,
                    now_ms: float) -> Optional[BeatEvent]:
        """Update one band's state; return a BeatEvent if it fired this frame."""
        cfg = self.config
        state = self.bands[band]
        min_threshold = self._min_threshold(band)
        threshold = max(peak * cfg.peak_threshold_ratio, min_threshold)

        if state.last_beat_ms is not None:
            state.beat_time = (now_ms - state.last_beat_ms) / 1000.0
            if state.beat_time > cfg.beat_timeout_s:
                state.beat_time = 0.0
                state.intensity = 0.0
        else:
            state.beat_time = 0.0

        dynamic_change = value - state.previous_value
        interval_ok = (state.last_beat_ms is None
                       or (now_ms - state.last_beat_ms) >= cfg.min_beat_interval_ms)

        event = None
        if (value > threshold and value > min_threshold and interval_ok
                and dynamic_change > cfg.dynamic_change_threshold):
            intensity = min(value * cfg.intensity_gain, 1.0)
            state.last_beat_ms = now_ms
            state.beat_time = 0.0
            state.intensity = intensity
            state.stereo = stereo
            event = BeatEvent(band=band, timestamp_ms=now_ms, intensity=intensity, stereo=stereo)
            log_event("DEBUG", "Beat", f"{band} beat", value=f"{value:.3f}",
                      threshold=f"{threshold:.3f}", intensity=f"{intensity:.2f}")

        state.previous_value = value
        return event

    def detect(self, sample: Optional[BandSample], now_ms: Optional[float] = None) -> BeatFrame:
        """Run all bands and the global estimator for one frame."""
        if now_ms is None:
            now_ms = time.monotonic() * 1000.0
        if sample is None:
            sample = BandSample()

        override = sample.bpm_override
        if isinstance(override, float) and not math.isfinite(override):
            if self._last_override != "non-finite":
                self._last_override = "non-finite"
                log_event("WARNING", "Beat", "Non-finite BPM override ignored", bpm=override)
            override = None
        if override is not None and override != self._last_override:
            self._last_override = override
            if not self.global_estimator.has_metadata_bpm:
                self.set_metadata_bpm(override)

        events: List[BeatEvent] = []
        for band, value, peak, stereo in (
            ("bass", sample.bass, sample.peak_bass, sample.bass_stereo),
            ("mid", sample.mid, sample.peak_mid, sample.mid_stereo),
            ("treble", sample.treble, sample.peak_treble, sample.treble_stereo),
        ):
            event = self.detect_band(band, finite_or_zero(value), finite_or_zero(peak),
                                     finite_or_zero(stereo), now_ms)
            if event is not None:
                events.append(event)

        self.global_estimator.update(finite_or_zero(sample.bass),
                                     finite_or_zero(sample.smoothed_bass), now_ms)
        return self.snapshot(events)

    def snapshot(self, events: Optional[List[BeatEvent]] = None) -> BeatFrame:
        est = self.global_estimator
        return BeatFrame(
            bands={name: BandBeatState(**vars(state)) for name, state in self.bands.items()},
            beat_time=est.beat_time,
            intensity=est.intensity,
            estimated_bpm=est.estimated_bpm,
            events=list(events or []),
        )

    def reset(self) -> None:
        """Clear all beat and tempo state (track change)."""
        self.bands = {name: BandBeatState() for name in BANDS}
        self.global_estimator.reset()
        self._last_override = None
