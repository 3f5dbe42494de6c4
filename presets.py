"""Building ReactivityConfig values from in-memory preset dicts.

Presets may use camelCase keys (``attackNote``) or snake_case keys
(``attack_note``). Curves can be named (``"easeOut"``), a ``{x1, y1, x2, y2}``
dict or a 4-item list. Note fractions can be numbers or ``"1/16"`` strings.
"""
from __future__ import annotations

from fractions import Fraction
from typing import Any

from audio_sources import AudioSource
from bezier_curve import BEZIER_PRESETS, CubicBezier
from config import ReactivityConfig, ReactivityMode

MIN_NOTE_FRACTION = 1.0 / 256.0
MAX_NOTE_FRACTION = 1.0

_KEY_ALIASES = {
    "attackNote": "attack_note",
    "releaseNote": "release_note",
    "startValue": "start_value",
    "targetValue": "target_value",
}


def _pick(data: dict, key: str) -> Any:
    """Value for a snake_case key, accepting its camelCase alias."""
    if key in data:
        return data[key]
    for alias, name in _KEY_ALIASES.items():
        if name == key and alias in data:
            return data[alias]
    return None


def parse_note_fraction(value) -> float | None:
    """Resolve a note fraction (0.0625, "1/16") or None; raises ValueError when out of range."""
    if value is None or value == 0:
        return None
    if isinstance(value, str):
        try:
            fraction = float(Fraction(value.strip()))
        except (ValueError, ZeroDivisionError):
            raise ValueError(f"Invalid note fraction: {value!r}") from None
    else:
        fraction = float(value)
    if not (MIN_NOTE_FRACTION <= fraction <= MAX_NOTE_FRACTION):
        raise ValueError(f"Note fraction {value!r} outside 1/256..1")
    return fraction


def resolve_curve(value) -> CubicBezier | None:
    """Named preset, dict or 4-sequence -> CubicBezier (None stays None)."""
    if value is None:
        return None
    if isinstance(value, str):
        curve = BEZIER_PRESETS.get(value)
        if curve is None:
            raise ValueError(f"Unknown curve preset: {value!r}")
        return curve
    try:
        return CubicBezier.from_value(value)
    except (TypeError, ValueError):
        raise ValueError(f"Invalid curve: {value!r}") from None


def _optional_float(value) -> float | None:
    return None if value is None else float(value)


def reactivity_config_from_dict(data: dict) -> ReactivityConfig:
    """Build a ReactivityConfig from one parameter's preset entry."""
    if not isinstance(data, dict):
        raise ValueError(f"Reactivity preset must be a dict, got {type(data).__name__}")

    return ReactivityConfig(
        source=AudioSource.parse(data.get("source", AudioSource.VOLUME)),
        attack_note=parse_note_fraction(_pick(data, "attack_note")),
        release_note=parse_note_fraction(_pick(data, "release_note")),
        curve=resolve_curve(data.get("curve")),
        mode=ReactivityMode.parse(data.get("mode")),
        invert=bool(data.get("invert", False)),
        strength=_optional_float(data.get("strength")),
        min=_optional_float(data.get("min")),
        max=_optional_float(data.get("max")),
        start_value=_optional_float(_pick(data, "start_value")),
        target_value=_optional_float(_pick(data, "target_value")),
    )


def reactivity_configs_from_dict(preset: dict) -> dict[str, ReactivityConfig]:
    """Build configs for every parameter in a preset mapping (parameter key -> entry)."""
    return {key: reactivity_config_from_dict(entry) for key, entry in preset.items()}
