"""
beatreactor - Tempo-relative smoothing
Turns musical note fractions into time constants and applies asymmetric
attack/release exponential smoothing.

A note fraction of 1/4 (a quarter note) equals exactly one beat at the
current BPM; when BPM is unknown a fixed fallback time constant is used.
"""

import math
from dataclasses import dataclass
from typing import Optional

from logging_utils import log_event

DEFAULT_ATTACK_FALLBACK_S = 0.01
DEFAULT_RELEASE_FALLBACK_S = 0.1


@dataclass(frozen=True)
class SmoothingPreset:
    """Attack/release note fractions with fallback time constants (seconds)"""
    attack_note: float
    release_note: float
    attack_fallback_s: float
    release_fallback_s: float


SMOOTHING_PRESETS = {
    "volume": SmoothingPreset(1.0 / 128.0, 1.0 / 16.0, 0.005, 0.100),
    "frequencyBands": SmoothingPreset(1.0 / 128.0, 1.0 / 2.0, 0.002, 0.100),
    "colorModulation": SmoothingPreset(1.0 / 32.0, 1.0 / 4.0, 0.020, 0.200),
    "timeOffset": SmoothingPreset(1.0 / 128.0, 1.0 / 4.0, 0.010, 0.150),
    "feed": SmoothingPreset(1.0 / 128.0, 1.0 / 16.0, 0.010, 0.100),
    "cellBrightnessIntensity": SmoothingPreset(1.0 / 32.0, 1.0 / 16.0, 0.005, 0.200),
    "rippleBrightness": SmoothingPreset(1.0 / 128.0, 1.0 / 4.0, 0.005, 0.150),
    "fbmZoom": SmoothingPreset(1.0 / 32.0, 1.0 / 16.0, 0.010, 0.100),
    "strings": SmoothingPreset(1.0 / 64.0, 1.0 / 8.0, 0.010, 0.100),
    "noiseBrightness": SmoothingPreset(1.0 / 128.0, 1.0 / 16.0, 0.005, 0.100),
    "contrast": SmoothingPreset(1.0 / 128.0, 1.0 / 16.0, 0.005, 0.100),
    "arc": SmoothingPreset(1.0 / 128.0, 1.0 / 16.0, 0.010, 0.100),
    "raymarchTimeModulation": SmoothingPreset(1.0 / 64.0, 1.0 / 8.0, 0.010, 0.100),
    "raymarchSteps": SmoothingPreset(1.0 / 32.0, 1.0 / 4.0, 0.020, 0.150),
    "raymarchDepthResponse": SmoothingPreset(1.0 / 128.0, 1.0 / 16.0, 0.005, 0.100),
}

_NOTE_NAMES = (
    (1.0, "whole note"),
    (0.5, "half note"),
    (0.25, "quarter note"),
    (0.125, "eighth note"),
    (0.0625, "sixteenth note"),
    (0.03125, "thirty-second note"),
    (0.015625, "sixty-fourth note"),
    (0.0078125, "hundred-twenty-eighth note"),
)


def note_name(note_fraction: float) -> str:
    """Human-readable name for a note fraction (e.g. 0.25 -> 'quarter note')."""
    for fraction, name in _NOTE_NAMES:
        if abs(note_fraction - fraction) < 1e-4:
            return name
    if note_fraction <= 0:
        return "invalid note"
    return f"1/{round(1.0 / note_fraction)} note"


def time_constant(note_fraction: float, bpm: float, fallback_seconds: float) -> float:
    """Seconds for a note fraction at ``bpm``; ``fallback_seconds`` when BPM is unknown."""
    if not (bpm > 0 and math.isfinite(bpm)) or not (note_fraction > 0 and math.isfinite(note_fraction)):
        return fallback_seconds

    seconds_per_beat = 60.0 / bpm
    return seconds_per_beat * (note_fraction * 4.0)


def smooth(current: float, target: float, delta_time: float,
           attack_tau: float, release_tau: float) -> float:
    """One step of asymmetric exponential smoothing toward ``target``.

    Returns ``current`` unchanged when ``delta_time`` is not positive or the
    result is not finite.
    """
    if not (delta_time > 0) or not math.isfinite(delta_time):
        return current

    tau = attack_tau if target > current else release_tau
    if not (tau > 0):
        result = target
    else:
        result = current + (target - current) * (1.0 - math.exp(-delta_time / tau))

    if not math.isfinite(result):
        return current
    return result


class EnvelopeSmoother:
    """Stateful attack/release envelope holding the last valid value."""

    def __init__(self, initial: float = 0.0):
        self.value = initial
        self._logged_bpm: Optional[float] = None

    def update(self, target: float, delta_time: float,
               attack_tau: float, release_tau: float) -> float:
        if not math.isfinite(target):
            log_event("DEBUG", "Tempo", "Non-finite smoothing target ignored", target=target)
            return self.value
        self.value = smooth(self.value, target, delta_time, attack_tau, release_tau)
        return self.value

    def update_tempo(self, target: float, delta_time: float, bpm: float,
                     attack_note: Optional[float], release_note: Optional[float],
                     attack_fallback_s: float = DEFAULT_ATTACK_FALLBACK_S,
                     release_fallback_s: float = DEFAULT_RELEASE_FALLBACK_S) -> float:
        """Smooth with time constants derived from note fractions at ``bpm``."""
        attack = time_constant(attack_note, bpm, attack_fallback_s) if attack_note else attack_fallback_s
        release = time_constant(release_note, bpm, release_fallback_s) if release_note else release_fallback_s
        if bpm != self._logged_bpm and bpm > 0 and math.isfinite(bpm):
            log_event("DEBUG", "Tempo", f"Using BPM {bpm:.1f}",
                      attack_note=note_name(attack_note) if attack_note else "fallback",
                      attack_ms=f"{attack * 1000.0:.2f}", release_ms=f"{release * 1000.0:.2f}")
            self._logged_bpm = bpm
        return self.update(target, delta_time, attack, release)

    def reset(self, value: float = 0.0) -> None:
        self.value = value
        self._logged_bpm = None
