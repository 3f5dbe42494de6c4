"""
beatreactor - Ripple Tracker
Turns per-band BeatEvents into a bounded set of expanding ripples and packs
them into fixed-size arrays for the rendering collaborator.

Times are monotonic milliseconds, ages and lifetimes are seconds.
"""

from dataclasses import dataclass
from typing import List, Optional

import numpy as np

from beat_detector import BeatEvent
from config import RippleConfig
from logging_utils import log_event
from transient_trigger import RateLimiter


@dataclass(frozen=True)
class _BandGeometry:
    width: float
    min_radius: float
    base_max_radius: float
    intensity_multiplier: float


_DEFAULT_GEOMETRY = _BandGeometry(width=0.05, min_radius=0.0, base_max_radius=1.3, intensity_multiplier=0.8)
_BAND_GEOMETRY = {
    "bass": _BandGeometry(width=0.15, min_radius=0.0, base_max_radius=0.88, intensity_multiplier=0.65),
    "treble": _BandGeometry(width=0.07, min_radius=0.0, base_max_radius=0.5, intensity_multiplier=0.55),
}

# Vertical placement: bass sinks lower the harder it hits, treble sits high
BASS_BASE_Y = -0.15
BASS_MAX_Y = -0.4
TREBLE_Y = 0.25
LIFETIME_PADDING_S = 0.1


@dataclass
class Ripple:
    start_ms: float
    center_x: float           # Stereo position of the beat
    center_y: float
    intensity: float
    width: float
    min_radius: float
    max_radius: float
    intensity_multiplier: float
    lifetime_s: float
    band: str = "mid"


@dataclass
class RippleData:
    """Fixed-size arrays; only the first ``count`` slots are populated"""
    centers: np.ndarray                 # (max_count, 2)
    times: np.ndarray                   # Age in seconds
    intensities: np.ndarray
    widths: np.ndarray
    min_radii: np.ndarray
    max_radii: np.ndarray
    intensity_multipliers: np.ndarray
    active: np.ndarray
    count: int


class RippleTracker:
    """Event-driven ripple bookkeeping with rate limiting and a capacity cap."""

    def __init__(self, config: Optional[RippleConfig] = None):
        self.config = config or RippleConfig()
        cfg = self.config
        self.max_count = cfg.max_count
        self.ripples: List[Ripple] = []
        self.limiter = RateLimiter(cfg.rate_limit_window_ms, cfg.rate_limit, cfg.cooldown_ms)

    def add_event(self, event: BeatEvent) -> bool:
        return self.add_ripple(event.timestamp_ms, event.stereo, event.intensity, event.band)

    def add_ripple(self, start_ms: float, stereo: float, intensity: float, band: str = "mid") -> bool:
        """Create a ripple; returns False when rate limited."""
        if not self.limiter.allow(start_ms):
            return False

        self.update(start_ms)
        if len(self.ripples) >= self.max_count:
            self.ripples.pop(0)
        self.limiter.record(start_ms)

        intensity = float(np.clip(intensity, 0.0, 1.0))
        geometry = _BAND_GEOMETRY.get(band, _DEFAULT_GEOMETRY)
        if band == "bass":
            center_y = BASS_BASE_Y + (BASS_MAX_Y - BASS_BASE_Y) * intensity
        elif band == "treble":
            center_y = TREBLE_Y
        else:
            center_y = 0.0

        max_radius = geometry.base_max_radius * (0.5 + intensity * 0.5)
        lifetime_s = (max_radius - geometry.min_radius) / self.config.speed + LIFETIME_PADDING_S

        self.ripples.append(Ripple(
            start_ms=start_ms,
            center_x=stereo,
            center_y=center_y,
            intensity=intensity,
            width=geometry.width,
            min_radius=geometry.min_radius,
            max_radius=max_radius,
            intensity_multiplier=geometry.intensity_multiplier,
            lifetime_s=lifetime_s,
            band=band,
        ))
        log_event("DEBUG", "Ripple", f"{band} ripple", intensity=f"{intensity:.2f}",
                  lifetime_s=f"{lifetime_s:.2f}", count=len(self.ripples))
        return True

    def update(self, now_ms: float) -> None:
        """Drop ripples older than their lifetime."""
        self.ripples = [
            r for r in self.ripples
            if (now_ms - r.start_ms) / 1000.0 <= r.lifetime_s
        ]

    def get_ripple_data(self, now_ms: float) -> RippleData:
        self.update(now_ms)
        n = self.max_count
        data = RippleData(
            centers=np.zeros((n, 2), dtype=np.float32),
            times=np.zeros(n, dtype=np.float32),
            intensities=np.zeros(n, dtype=np.float32),
            widths=np.zeros(n, dtype=np.float32),
            min_radii=np.zeros(n, dtype=np.float32),
            max_radii=np.zeros(n, dtype=np.float32),
            intensity_multipliers=np.zeros(n, dtype=np.float32),
            active=np.zeros(n, dtype=np.float32),
            count=min(len(self.ripples), n),
        )
        for i, ripple in enumerate(self.ripples[:n]):
            data.centers[i] = (ripple.center_x, ripple.center_y)
            data.times[i] = (now_ms - ripple.start_ms) / 1000.0
            data.intensities[i] = ripple.intensity
            data.widths[i] = ripple.width
            data.min_radii[i] = ripple.min_radius
            data.max_radii[i] = ripple.max_radius
            data.intensity_multipliers[i] = ripple.intensity_multiplier
            data.active[i] = 1.0
        return data

    def reset(self) -> None:
        self.ripples = []
        self.limiter.reset()
