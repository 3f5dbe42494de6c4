"""
beatreactor - Audio sources
The per-frame band snapshot handed over by the frequency analyser, and the
named metrics a reactive parameter can follow.
"""

import math
from dataclasses import dataclass, field, replace
from enum import Enum
from typing import Callable, Dict, Optional

import numpy as np

DEFAULT_BIN_COUNT = 10


class AudioSource(str, Enum):
    """Every metric a reactive parameter can be driven by"""
    VOLUME = "volume"
    BASS = "bass"
    MID = "mid"
    TREBLE = "treble"

    # Custom frequency bins, smoothed
    FREQ1 = "freq1"
    FREQ2 = "freq2"
    FREQ3 = "freq3"
    FREQ4 = "freq4"
    FREQ5 = "freq5"
    FREQ6 = "freq6"
    FREQ7 = "freq7"
    FREQ8 = "freq8"
    FREQ9 = "freq9"
    FREQ10 = "freq10"

    # Custom frequency bins, raw
    FREQ1_RAW = "freq1Raw"
    FREQ2_RAW = "freq2Raw"
    FREQ3_RAW = "freq3Raw"
    FREQ4_RAW = "freq4Raw"
    FREQ5_RAW = "freq5Raw"
    FREQ6_RAW = "freq6Raw"
    FREQ7_RAW = "freq7Raw"
    FREQ8_RAW = "freq8Raw"
    FREQ9_RAW = "freq9Raw"
    FREQ10_RAW = "freq10Raw"

    SMOOTHED_BASS = "smoothedBass"
    SMOOTHED_MID = "smoothedMid"
    SMOOTHED_TREBLE = "smoothedTreble"

    PEAK_VOLUME = "peakVolume"
    PEAK_BASS = "peakBass"
    PEAK_MID = "peakMid"
    PEAK_TREBLE = "peakTreble"

    BEAT_INTENSITY = "beatIntensity"
    BEAT_INTENSITY_BASS = "beatIntensityBass"
    BEAT_INTENSITY_MID = "beatIntensityMid"
    BEAT_INTENSITY_TREBLE = "beatIntensityTreble"

    BASS_STEREO = "bassStereo"
    MID_STEREO = "midStereo"
    TREBLE_STEREO = "trebleStereo"

    FREQUENCY_SPREAD = "frequencySpread"
    BASS_ONSET = "bassOnset"
    MID_ONSET = "midOnset"
    TREBLE_ONSET = "trebleOnset"

    LOW_BASS = "lowBass"
    MID_BASS = "midBass"
    LOW_MID = "lowMid"
    HIGH_MID = "highMid"
    PRESENCE = "presence"

    BEAT_PHASE = "beatPhase"
    BEAT_ANTICIPATION = "beatAnticipation"

    ENERGY = "energy"
    HIGH_ENERGY = "highEnergy"
    LOW_ENERGY = "lowEnergy"

    @classmethod
    def parse(cls, value) -> "AudioSource":
        """Resolve a source from its identifier ('beatIntensityBass') or member name."""
        if isinstance(value, cls):
            return value
        try:
            return cls(value)
        except ValueError:
            pass
        try:
            return cls[str(value).upper()]
        except KeyError:
            raise ValueError(f"Unknown audio source: {value!r}") from None


@dataclass(frozen=True, eq=False)
class BandSample:
    """Per-frame band energies from the analysis collaborator (read-only)"""
    volume: float = 0.0
    bass: float = 0.0
    mid: float = 0.0
    treble: float = 0.0

    smoothed_bass: float = 0.0
    smoothed_mid: float = 0.0
    smoothed_treble: float = 0.0

    freq_bins: np.ndarray = field(default_factory=lambda: np.zeros(DEFAULT_BIN_COUNT, dtype=np.float32))
    smoothed_freq_bins: np.ndarray = field(default_factory=lambda: np.zeros(DEFAULT_BIN_COUNT, dtype=np.float32))

    bass_stereo: float = 0.0      # -1 (left) .. 1 (right)
    mid_stereo: float = 0.0
    treble_stereo: float = 0.0

    peak_volume: float = 0.0      # Decaying peak trackers
    peak_bass: float = 0.0
    peak_mid: float = 0.0
    peak_treble: float = 0.0

    frequency_spread: float = 0.0
    bass_onset: float = 0.0
    mid_onset: float = 0.0
    treble_onset: float = 0.0
    low_bass: float = 0.0
    mid_bass: float = 0.0
    low_mid: float = 0.0
    high_mid: float = 0.0
    presence: float = 0.0
    beat_phase: float = 0.0
    beat_anticipation: float = 0.0
    energy: float = 0.0
    high_energy: float = 0.0
    low_energy: float = 0.0

    bpm_override: Optional[float] = None  # Track metadata BPM, when known

    # Filled in by the engine from the beat detector's output for this frame
    beat_intensity: float = 0.0
    beat_intensity_bass: float = 0.0
    beat_intensity_mid: float = 0.0
    beat_intensity_treble: float = 0.0
    estimated_bpm: float = 0.0

    def with_beats(self, beat_frame) -> "BandSample":
        """Copy of this sample carrying the beat detector's frame-coherent output."""
        return replace(
            self,
            beat_intensity=beat_frame.intensity,
            beat_intensity_bass=beat_frame.bands["bass"].intensity,
            beat_intensity_mid=beat_frame.bands["mid"].intensity,
            beat_intensity_treble=beat_frame.bands["treble"].intensity,
            estimated_bpm=beat_frame.estimated_bpm,
        )


def finite_or_zero(value) -> float:
    """Malformed readings (None, NaN, inf, non-numeric) count as silence."""
    if value is None:
        return 0.0
    try:
        value = float(value)
    except (TypeError, ValueError):
        return 0.0
    return value if math.isfinite(value) else 0.0


def _bin(name: str, index: int) -> Callable[[BandSample], float]:
    def read(sample: BandSample) -> float:
        bins = getattr(sample, name)
        if bins is None or index >= len(bins):
            return 0.0
        return finite_or_zero(bins[index])
    return read


def _attr(name: str) -> Callable[[BandSample], float]:
    return lambda sample: finite_or_zero(getattr(sample, name))


_ACCESSORS: Dict[AudioSource, Callable[[BandSample], float]] = {
    AudioSource.VOLUME: _attr("volume"),
    AudioSource.BASS: _attr("bass"),
    AudioSource.MID: _attr("mid"),
    AudioSource.TREBLE: _attr("treble"),
    AudioSource.SMOOTHED_BASS: _attr("smoothed_bass"),
    AudioSource.SMOOTHED_MID: _attr("smoothed_mid"),
    AudioSource.SMOOTHED_TREBLE: _attr("smoothed_treble"),
    AudioSource.PEAK_VOLUME: _attr("peak_volume"),
    AudioSource.PEAK_BASS: _attr("peak_bass"),
    AudioSource.PEAK_MID: _attr("peak_mid"),
    AudioSource.PEAK_TREBLE: _attr("peak_treble"),
    AudioSource.BEAT_INTENSITY: _attr("beat_intensity"),
    AudioSource.BEAT_INTENSITY_BASS: _attr("beat_intensity_bass"),
    AudioSource.BEAT_INTENSITY_MID: _attr("beat_intensity_mid"),
    AudioSource.BEAT_INTENSITY_TREBLE: _attr("beat_intensity_treble"),
    AudioSource.BASS_STEREO: _attr("bass_stereo"),
    AudioSource.MID_STEREO: _attr("mid_stereo"),
    AudioSource.TREBLE_STEREO: _attr("treble_stereo"),
    AudioSource.FREQUENCY_SPREAD: _attr("frequency_spread"),
    AudioSource.BASS_ONSET: _attr("bass_onset"),
    AudioSource.MID_ONSET: _attr("mid_onset"),
    AudioSource.TREBLE_ONSET: _attr("treble_onset"),
    AudioSource.LOW_BASS: _attr("low_bass"),
    AudioSource.MID_BASS: _attr("mid_bass"),
    AudioSource.LOW_MID: _attr("low_mid"),
    AudioSource.HIGH_MID: _attr("high_mid"),
    AudioSource.PRESENCE: _attr("presence"),
    AudioSource.BEAT_PHASE: _attr("beat_phase"),
    AudioSource.BEAT_ANTICIPATION: _attr("beat_anticipation"),
    AudioSource.ENERGY: _attr("energy"),
    AudioSource.HIGH_ENERGY: _attr("high_energy"),
    AudioSource.LOW_ENERGY: _attr("low_energy"),
}
for _i in range(DEFAULT_BIN_COUNT):
    _ACCESSORS[AudioSource(f"freq{_i + 1}")] = _bin("smoothed_freq_bins", _i)
    _ACCESSORS[AudioSource(f"freq{_i + 1}Raw")] = _bin("freq_bins", _i)

_missing = set(AudioSource) - set(_ACCESSORS)
if _missing:
    raise RuntimeError(f"Audio sources without accessor: {sorted(s.value for s in _missing)}")


def get_audio_value(sample: Optional[BandSample], source: AudioSource) -> float:
    """Read a named metric from a sample; a missing sample reads as silence."""
    if sample is None:
        return 0.0
    return _ACCESSORS[source](sample)
