"""Small statistical helpers shared by the overlap engine.

All helpers return ``math.nan`` for statistically undefined results instead
of raising, so callers can render "insufficient data".
"""

from __future__ import annotations

import math
from typing import NamedTuple, Sequence

import numpy as np

from .config import z_score_for_confidence

__all__ = [
    "WilsonInterval",
    "wilson_interval",
    "pearson_correlation",
    "safe_ratio",
    "z_score_for_confidence",
]


class WilsonInterval(NamedTuple):
    lower: float
    upper: float

    @property
    def width(self) -> float:
        return self.upper - self.lower

    def contains(self, p: float) -> bool:
        return self.lower <= p <= self.upper


def wilson_interval(successes: int, trials: int, z: float = 1.96) -> WilsonInterval:
    """Wilson score interval for a binomial proportion.

    Formula:
        centre = (p + z²/2n) / (1 + z²/n)
        half   = z * sqrt(p(1-p)/n + z²/4n²) / (1 + z²/n)

    With no trials nothing is known and the full range ``(0, 1)`` is returned.

    Args:
        successes: Number of successful trials (0 <= successes <= trials).
        trials: Number of trials.
        z: Two-sided normal quantile (1.96 for 95%).

    Returns:
        Interval clamped to [0, 1].
    """
    if trials < 0 or successes < 0 or successes > trials:
        raise ValueError(
            f"Wilson interval needs 0 <= successes <= trials, "
            f"got successes={successes}, trials={trials}."
        )
    if not math.isfinite(z) or z < 0:
        raise ValueError(f"Wilson interval z-score must be a non-negative number, got {z}.")
    if trials == 0:
        return WilsonInterval(0.0, 1.0)

    n = float(trials)
    p = successes / n
    z2 = z * z
    denom = 1.0 + z2 / n
    centre = (p + z2 / (2.0 * n)) / denom
    half = z * math.sqrt(p * (1.0 - p) / n + z2 / (4.0 * n * n)) / denom
    return WilsonInterval(max(0.0, centre - half), min(1.0, centre + half))


def pearson_correlation(xs: Sequence[float] | np.ndarray, ys: Sequence[float] | np.ndarray) -> float:
    """Pearson correlation; NaN when n < 2 or either side has zero variance."""
    x = np.asarray(xs, dtype=float)
    y = np.asarray(ys, dtype=float)
    if x.shape != y.shape:
        raise ValueError(f"Correlation inputs differ in length: {x.size} vs {y.size}.")
    if x.size < 2:
        return math.nan
    dx = x - x.mean()
    dy = y - y.mean()
    sxx = float(np.dot(dx, dx))
    syy = float(np.dot(dy, dy))
    if sxx <= 0.0 or syy <= 0.0:
        return math.nan
    r = float(np.dot(dx, dy)) / math.sqrt(sxx * syy)
    # Rounding can push |r| a hair above 1.
    return max(-1.0, min(1.0, r))


def safe_ratio(numerator: float, denominator: float, default: float = 0.0) -> float:
    if denominator == 0:
        return default
    return numerator / denominator
