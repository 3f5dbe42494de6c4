"""
beatreactor - Bezier Response Curve
Cubic-bezier easing with endpoints pinned at (0,0) and (1,1).

Maps a 0-1 audio level to a 0-1 response. The curve is solved by bisection on
the bezier parameter t, so any control points whose x(t) is monotonic give a
continuous, monotonic mapping. A small bounded cache of quantized samples can
short-cut repeated solves; the exact solve is always used when no cached
neighbour is close enough.
"""

import math
from collections import OrderedDict
from dataclasses import dataclass
from typing import Optional

from logging_utils import log_once


@dataclass(frozen=True)
class CubicBezier:
    """Two free control points of a (0,0)-(1,1) cubic bezier"""
    x1: float = 0.0
    y1: float = 0.0
    x2: float = 1.0
    y2: float = 1.0

    def is_valid(self) -> bool:
        """True when the curve is a function of x (x(t) monotonic on [0,1])."""
        values = (self.x1, self.y1, self.x2, self.y2)
        if not all(isinstance(v, (int, float)) and math.isfinite(v) for v in values):
            return False
        return 0.0 <= self.x1 <= 1.0 and 0.0 <= self.x2 <= 1.0

    def cache_key(self) -> str:
        # Round to 4 decimal places to group near-identical curves
        return f"{self.x1:.4f},{self.y1:.4f},{self.x2:.4f},{self.y2:.4f}"

    @classmethod
    def from_value(cls, value) -> "CubicBezier":
        """Accept a CubicBezier, a {x1,y1,x2,y2} dict or a 4-sequence."""
        if isinstance(value, cls):
            return value
        if isinstance(value, dict):
            return cls(
                float(value.get("x1", 0.0)),
                float(value.get("y1", 0.0)),
                float(value.get("x2", 1.0)),
                float(value.get("y2", 1.0)),
            )
        x1, y1, x2, y2 = value
        return cls(float(x1), float(y1), float(x2), float(y2))


LINEAR = CubicBezier(0.0, 0.0, 1.0, 1.0)

BEZIER_PRESETS = {
    "linear": LINEAR,
    "easeOut": CubicBezier(0.6, 0.0, 0.8, 1.0),    # Slow start, fast finish
    "easeIn": CubicBezier(0.2, 0.0, 0.4, 1.0),     # Fast start, slow finish
    "easeInOut": CubicBezier(0.42, 0.0, 0.58, 1.0),
}


def _bezier_axis(t: float, p1: float, p2: float) -> float:
    u = 1.0 - t
    return 3.0 * u * u * t * p1 + 3.0 * u * t * t * p2 + t * t * t


def solve(x: float, x1: float, y1: float, x2: float, y2: float,
          epsilon: float = 1e-4, max_iterations: int = 20) -> float:
    """Find y for a given x on the curve by bisection over t.

    Stops once the bracket spans less than ``epsilon`` in x; the bracket
    always holds the root, so the result is monotonic in x.
    """
    x = min(1.0, max(0.0, x))
    t0, t1 = 0.0, 1.0
    lo, hi = 0.0, 1.0
    for _ in range(max_iterations):
        if hi - lo < epsilon:
            break
        t = (t0 + t1) / 2.0
        cx = _bezier_axis(t, x1, x2)
        if cx < x:
            t0, lo = t, cx
        else:
            t1, hi = t, cx
    return _bezier_axis((t0 + t1) / 2.0, y1, y2)


class BezierCache:
    """
    Bounded cache of quantized curve samples.

    Curves are keyed by their rounded signature; each curve keeps at most
    ``max_samples`` quantized points and at most ``max_curves`` curves are
    kept. Both levels evict oldest-first.
    """

    def __init__(self, resolution: int = 128, max_curves: int = 10, max_samples: Optional[int] = None):
        self.resolution = resolution
        self.max_curves = max_curves
        self.max_samples = max_samples if max_samples is not None else resolution * 2
        self._curves: "OrderedDict[str, OrderedDict[int, float]]" = OrderedDict()

    def __len__(self) -> int:
        return len(self._curves)

    def samples_for(self, key: str) -> int:
        samples = self._curves.get(key)
        return len(samples) if samples is not None else 0

    def _curve_samples(self, key: str) -> "OrderedDict[int, float]":
        samples = self._curves.get(key)
        if samples is None:
            samples = OrderedDict()
            self._curves[key] = samples
            if len(self._curves) > self.max_curves:
                self._curves.popitem(last=False)
        return samples

    def lookup(self, key: str, x: float) -> Optional[float]:
        """Return an approximation from cached neighbours, or None to force an exact solve.

        Interpolation only runs between the two bucket points around ``x``,
        which hold exact values, so cached results stay monotonic.
        """
        samples = self._curves.get(key)
        if not samples:
            return None

        bucket = self.bucket_of(x)
        cached = samples.get(bucket)
        if cached is None:
            return None

        distance = x - bucket / self.resolution
        if distance <= 0.0:
            return cached

        next_cached = samples.get(bucket + 1)
        if next_cached is None:
            return None
        frac = min(1.0, distance * self.resolution)
        return cached + (next_cached - cached) * frac

    def bucket_of(self, x: float) -> int:
        return int(math.floor(x * self.resolution))

    def store(self, key: str, bucket: int, y: float) -> None:
        """Store the curve's value at the quantized point ``bucket / resolution``."""
        samples = self._curve_samples(key)
        samples[bucket] = y
        if len(samples) > self.max_samples:
            samples.popitem(last=False)

    def clear(self) -> None:
        self._curves.clear()


class BezierResponseCurve:
    """A validated response curve with optional cached solving."""

    def __init__(self, curve: Optional[CubicBezier] = None, cache: Optional[BezierCache] = None):
        curve = CubicBezier.from_value(curve) if curve is not None else LINEAR
        if not curve.is_valid():
            log_once("WARNING", "Bezier", curve, "Curve is not a function of x, using linear",
                     curve=curve)
            curve = LINEAR
        self.curve = curve
        self.cache = cache
        self._key = curve.cache_key()

    @property
    def is_linear(self) -> bool:
        return self.curve == LINEAR

    def solve_exact(self, x: float) -> float:
        c = self.curve
        return solve(x, c.x1, c.y1, c.x2, c.y2)

    def solve(self, x: float) -> float:
        """Map a level to the curve's response; input is clamped to [0, 1]."""
        if not math.isfinite(x):
            x = 0.0
        x = min(1.0, max(0.0, x))
        if self.cache is None:
            return self.solve_exact(x)

        approx = self.cache.lookup(self._key, x)
        if approx is not None:
            return approx

        result = self.solve_exact(x)
        bucket = self.cache.bucket_of(x)
        point = bucket / self.cache.resolution
        self.cache.store(self._key, bucket, result if point == x else self.solve_exact(point))
        return result
