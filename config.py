# beatreactor Configuration
# All default values and tunables, supplied in memory by the caller

from dataclasses import dataclass, field, fields, is_dataclass, replace
from enum import Enum
from typing import Optional

from audio_sources import AudioSource
from bezier_curve import CubicBezier
from logging_utils import log_event


class ReactivityMode(str, Enum):
    """How a reactive parameter turns its 0-1 level into an output"""
    ADDITIVE = "additive"            # Legacy: optional min/max remap, clamped to 0-1
    INTERPOLATION = "interpolation"  # 0-1 level, caller interpolates start/target
    SPEED = "speed"                  # Never-decreasing accumulated speed

    @classmethod
    def parse(cls, value) -> "ReactivityMode":
        if isinstance(value, cls):
            return value
        if value is None:
            return cls.ADDITIVE
        try:
            return cls(str(value).lower())
        except ValueError:
            raise ValueError(f"Unknown reactivity mode: {value!r}") from None


@dataclass(frozen=True)
class ReactivityConfig:
    """Per-parameter audio reactivity settings (immutable, supplied externally)"""
    source: AudioSource = AudioSource.VOLUME
    attack_note: Optional[float] = None    # Musical fraction 1/256..1 (None = no smoothing)
    release_note: Optional[float] = None   # Musical fraction 1/256..1
    curve: Optional[CubicBezier] = None    # Response curve (None = linear, uncurved)
    mode: ReactivityMode = ReactivityMode.ADDITIVE
    invert: bool = False                   # Legacy: value = 1 - value
    strength: Optional[float] = None       # Legacy: value *= strength
    min: Optional[float] = None            # Legacy additive remap lower bound
    max: Optional[float] = None            # Legacy additive remap upper bound
    start_value: Optional[float] = None    # Output when silent (interpolation/speed)
    target_value: Optional[float] = None   # Output at full level (interpolation/speed)

    @property
    def is_smoothed(self) -> bool:
        return bool(self.attack_note) or bool(self.release_note)


@dataclass
class BeatDetectionConfig:
    """Per-band beat detection and legacy BPM estimation"""
    bass_min_threshold: float = 0.08       # Minimum bass level to fire a beat
    mid_min_threshold: float = 0.05        # Minimum mid level to fire a beat
    treble_min_threshold: float = 0.05     # Minimum treble level to fire a beat
    dynamic_change_threshold: float = 0.07 # Required rise since previous frame
    peak_threshold_ratio: float = 0.85     # Dynamic threshold = peak * this
    min_beat_interval_ms: float = 160.0    # Refractory period per band (300 BPM max)
    beat_timeout_s: float = 2.0            # Beat time/intensity decay to 0 after this
    intensity_gain: float = 1.5            # intensity = min(value * gain, 1)

    # Legacy global (bass-only) estimator
    global_threshold_ratio: float = 1.4    # Fire when bass > smoothed_bass * this
    global_min_level: float = 0.15         # Absolute bass floor for the global path
    global_intensity_ref: float = 0.8      # intensity = min(bass / ref, 1)
    bpm_min_interval_s: float = 0.1        # Intervals outside (min, max) are ignored
    bpm_max_interval_s: float = 2.0
    bpm_smoothing: float = 0.7             # new = old * this + instant * (1 - this)
    max_metadata_bpm: float = 300.0        # Metadata BPM above this is rejected


@dataclass
class TimeOffsetConfig:
    """Loudness-driven time offset accumulator"""
    enabled: bool = True                   # loudness animation flag (False = always decay)
    source: AudioSource = AudioSource.VOLUME
    accumulation_rate: float = 0.5         # Offset units per second at full level
    decay_rate: float = 0.3                # Proportional decay per second
    max_offset: float = 5.0
    accumulate_threshold: float = 0.12     # Level needed to start accumulating (offset ~ 0)
    decay_threshold: float = 0.08          # Level below which an accumulated offset decays
    active_offset_epsilon: float = 0.01    # Offset above this counts as "accumulated"
    curve: CubicBezier = field(default_factory=lambda: CubicBezier(0.9, 0.0, 0.8, 1.0))
    smoothing_preset: str = "timeOffset"   # Key into tempo_smoothing.SMOOTHING_PRESETS


@dataclass
class PerformanceConfig:
    """Adaptive quality / target FPS controller"""
    enabled: bool = True
    initial_quality: float = 1.0           # 0.5 - 1.0
    min_target_fps: float = 30.0
    max_target_fps: float = 60.0
    target_fps: Optional[float] = None     # None = start at min_target_fps
    enable_adaptive_fps: bool = True
    frame_history_size: int = 30           # Frames in the rolling window
    early_check_frames: int = 10           # First early quality check while the window fills
    early_check_interval: int = 5          # Early checks every N frames after that
    quality_step: float = 0.1
    min_quality: float = 0.5
    degrade_ratio: float = 0.8             # Reduce quality below target * this
    upgrade_ratio: float = 1.15            # "Good" frame: fps >= target * this
    downgrade_ratio: float = 0.85          # "Bad" frame: fps < target * this
    frames_for_upgrade: int = 30
    frames_for_downgrade: int = 15
    max_resolution_width: int = 2560
    max_resolution_height: int = 1440
    max_dpr: float = 2.0


@dataclass
class TransientTriggerConfig:
    """Hard-edged one-shot pulse on fast rises"""
    threshold: float = 0.25                # Level needed to fire
    change_threshold: float = 0.12         # Rise since previous frame needed to fire
    duration_ms: float = 100.0             # How long the pulse is held
    active_multiplier: float = 2.0         # Multiplier while pulsing
    idle_multiplier: float = 1.0
    rate_limit_window_ms: float = 500.0
    rate_limit: int = 4                    # Max triggers inside the window
    cooldown_ms: float = 500.0             # Lockout after hitting the limit


@dataclass
class RippleConfig:
    """Beat-driven ripple bookkeeping"""
    max_count: int = 12
    default_lifetime_s: float = 2.0
    rate_limit_window_ms: float = 500.0
    rate_limit: int = 9
    cooldown_ms: float = 300.0
    default_width: float = 0.05
    speed: float = 0.3                     # Radius units per second


@dataclass
class EngineConfig:
    """Master configuration"""
    beat: BeatDetectionConfig = field(default_factory=BeatDetectionConfig)
    time_offset: TimeOffsetConfig = field(default_factory=TimeOffsetConfig)
    performance: PerformanceConfig = field(default_factory=PerformanceConfig)
    trigger: TransientTriggerConfig = field(default_factory=TransientTriggerConfig)
    ripple: RippleConfig = field(default_factory=RippleConfig)
    trigger_source: AudioSource = AudioSource.VOLUME
    log_level: str = "INFO"                # Logging level (DEBUG/INFO/WARNING/ERROR)


def _coerce_enum(enum_cls, value):
    if isinstance(value, enum_cls):
        return value
    if hasattr(enum_cls, "parse"):
        return enum_cls.parse(value)
    try:
        return enum_cls(value)
    except ValueError:
        return enum_cls[value]


def apply_dict_to_dataclass(target, data) -> None:
    """Recursively apply values from a dict onto a dataclass instance.
    Unknown keys are ignored; Enum fields are coerced when possible; frozen
    nested dataclasses are rebuilt with the new values."""
    if not isinstance(data, dict):
        return

    for key, value in data.items():
        if not hasattr(target, key):
            continue

        current = getattr(target, key)

        if is_dataclass(current) and isinstance(value, dict):
            if current.__dataclass_params__.frozen:
                known = {f.name for f in fields(current)}
                updates = {k: v for k, v in value.items() if k in known}
                try:
                    setattr(target, key, replace(current, **updates))
                except (TypeError, ValueError) as e:
                    log_event("WARNING", "Config", "Could not rebuild nested value, keeping default",
                              key=key, error=e)
            else:
                apply_dict_to_dataclass(current, value)
            continue

        if isinstance(current, Enum):
            try:
                setattr(target, key, _coerce_enum(current.__class__, value))
            except (KeyError, ValueError):
                log_event("WARNING", "Config",
                          f"Could not convert {key} to {current.__class__.__name__}, keeping default",
                          value=value)
            continue

        setattr(target, key, value)


def engine_config_from_dict(data: dict) -> EngineConfig:
    """Build an EngineConfig from a (possibly partial) nested dict."""
    config = EngineConfig()
    apply_dict_to_dataclass(config, data)
    return config


# Default config instance
DEFAULT_CONFIG = EngineConfig()
