"""Structural conflict detection over a prototype catalog.

Three independent checks run over the same snapshot of prototypes:

- high_axis_loading: active-axis count above a Tukey fence ``Q3 + k*IQR``
- multi_axis_conflict: unusually many active axes split evenly by sign
- sign_tension: several high-magnitude axes pulling in opposite directions

The IQR is floored at ``min_iqr_floor`` before fencing. In a homogeneous
catalog the raw IQR is 0 and any prototype one axis above the median would
otherwise be flagged.
"""

from __future__ import annotations

import math
from dataclasses import dataclass, field
from typing import Any, Iterable, Mapping, NamedTuple

import numpy as np

from .config import DiagnosticsConfig
from .prototype import Prototype


class Quartiles(NamedTuple):
    q1: float
    median: float
    q3: float

    @property
    def iqr(self) -> float:
        return self.q3 - self.q1


def quartiles(values: Iterable[float]) -> Quartiles:
    """Median-of-halves quartiles; for odd n the median is excluded from both halves."""
    data = np.sort(np.asarray(list(values), dtype=float))
    n = data.size
    if n == 0:
        return Quartiles(math.nan, math.nan, math.nan)
    median = float(np.median(data))
    if n == 1:
        return Quartiles(median, median, median)
    lower = data[: n // 2]
    upper = data[(n + 1) // 2 :]
    return Quartiles(float(np.median(lower)), median, float(np.median(upper)))


@dataclass(slots=True)
class AxisProfile:
    """Per-prototype axis breakdown used by every check."""

    prototype_id: str
    weights: dict[str, float]
    active_axes: list[str]
    strong_axes: list[str]
    positive_axes: list[str]
    negative_axes: list[str]

    @property
    def active_axis_count(self) -> int:
        return len(self.active_axes)

    @property
    def sign_balance(self) -> float:
        """|pos - neg| / active; 0 is an even split, 1 a single sign."""
        return sign_balance(len(self.positive_axes), len(self.negative_axes))


def sign_balance(positive: int, negative: int) -> float:
    total = positive + negative
    if total == 0:
        return 0.0
    return abs(positive - negative) / total


@dataclass(slots=True)
class HighAxisLoading:
    prototype_id: str
    active_axis_count: int
    threshold: float
    strong_axes: list[str]
    positive_axes: list[str]
    negative_axes: list[str]
    sign_balance: float
    flag_reason: str = "high_axis_loading"


@dataclass(slots=True)
class MultiAxisConflict:
    prototype_id: str
    active_axis_count: int
    threshold: float
    positive_axes: list[str]
    negative_axes: list[str]
    sign_balance: float
    flag_reason: str = "multi_axis_conflict"


@dataclass(slots=True)
class SignTension:
    prototype_id: str
    high_magnitude_positive: list[str]
    high_magnitude_negative: list[str]
    sign_balance: float
    flag_reason: str = "sign_tension"

    @property
    def high_axis_count(self) -> int:
        return len(self.high_magnitude_positive) + len(self.high_magnitude_negative)


@dataclass(slots=True)
class ConflictReport:
    conflicts: list[MultiAxisConflict] = field(default_factory=list)
    high_axis_loadings: list[HighAxisLoading] = field(default_factory=list)
    sign_tensions: list[SignTension] = field(default_factory=list)

    def is_empty(self) -> bool:
        return not (self.conflicts or self.high_axis_loadings or self.sign_tensions)

    def flagged_prototype_ids(self) -> list[str]:
        seen: dict[str, None] = {}
        for item in [*self.conflicts, *self.high_axis_loadings, *self.sign_tensions]:
            seen.setdefault(item.prototype_id, None)
        return list(seen)


class MultiAxisConflictDetector:
    """Flag prototypes whose weight structure is unusual for the catalog."""

    def __init__(self, config: DiagnosticsConfig | None = None) -> None:
        self.config = config or DiagnosticsConfig()

    def profile(self, item: Any) -> AxisProfile | None:
        """Axis breakdown for a ``Prototype`` or ``{"id", "weights"}`` mapping.

        Returns None for items without an id or a weight mapping.
        """
        if isinstance(item, Prototype):
            prototype_id, weights = item.id, item.weights
        elif isinstance(item, Mapping):
            prototype_id, weights = item.get("id"), item.get("weights")
        else:
            return None
        if not isinstance(prototype_id, str) or not isinstance(weights, Mapping):
            return None

        clean = {
            str(axis): float(w)
            for axis, w in weights.items()
            if isinstance(w, (int, float)) and not isinstance(w, bool) and math.isfinite(w)
        }
        eps = self.config.active_axis_epsilon
        active = sorted(axis for axis, w in clean.items() if abs(w) > eps)
        return AxisProfile(
            prototype_id=prototype_id,
            weights=clean,
            active_axes=active,
            strong_axes=sorted(
                axis for axis, w in clean.items() if abs(w) >= self.config.strong_axis_threshold
            ),
            positive_axes=[axis for axis in active if clean[axis] > 0],
            negative_axes=[axis for axis in active if clean[axis] < 0],
        )

    def detect(self, prototypes: Iterable[Any] | None) -> ConflictReport:
        profiles: list[AxisProfile] = []
        seen: set[str] = set()
        for item in prototypes or ():
            profile = self.profile(item)
            if profile is None or profile.prototype_id in seen:
                continue
            seen.add(profile.prototype_id)
            profiles.append(profile)

        if len(profiles) < 2:
            return ConflictReport()

        return ConflictReport(
            conflicts=self.detect_multi_axis_conflicts(profiles),
            high_axis_loadings=self.detect_high_axis_loadings(profiles),
            sign_tensions=self.detect_sign_tensions(profiles),
        )

    def _effective_iqr(self, stats: Quartiles) -> float:
        return max(stats.iqr, self.config.min_iqr_floor)

    def detect_high_axis_loadings(self, profiles: list[AxisProfile]) -> list[HighAxisLoading]:
        stats = quartiles(p.active_axis_count for p in profiles)
        threshold = stats.q3 + self.config.high_axis_loading_threshold * self._effective_iqr(stats)
        return [
            HighAxisLoading(
                prototype_id=p.prototype_id,
                active_axis_count=p.active_axis_count,
                threshold=threshold,
                strong_axes=list(p.strong_axes),
                positive_axes=list(p.positive_axes),
                negative_axes=list(p.negative_axes),
                sign_balance=p.sign_balance,
            )
            for p in profiles
            if p.active_axis_count > threshold
        ]

    def detect_multi_axis_conflicts(self, profiles: list[AxisProfile]) -> list[MultiAxisConflict]:
        stats = quartiles(p.active_axis_count for p in profiles)
        threshold = stats.median + self.config.multi_axis_usage_threshold * self._effective_iqr(stats)
        limit = self.config.multi_axis_sign_balance_threshold
        return [
            MultiAxisConflict(
                prototype_id=p.prototype_id,
                active_axis_count=p.active_axis_count,
                threshold=threshold,
                positive_axes=list(p.positive_axes),
                negative_axes=list(p.negative_axes),
                sign_balance=p.sign_balance,
            )
            for p in profiles
            if p.active_axis_count > threshold and p.sign_balance <= limit
        ]

    def detect_sign_tensions(self, profiles: list[AxisProfile]) -> list[SignTension]:
        magnitude = self.config.sign_tension_min_magnitude
        tensions = []
        for p in profiles:
            positive = sorted(axis for axis, w in p.weights.items() if w >= magnitude)
            negative = sorted(axis for axis, w in p.weights.items() if w <= -magnitude)
            if not positive or not negative:
                continue
            if len(positive) + len(negative) < self.config.sign_tension_min_high_axes:
                continue
            balance = sign_balance(len(positive), len(negative))
            if balance > self.config.multi_axis_sign_balance_threshold:
                continue
            tensions.append(
                SignTension(
                    prototype_id=p.prototype_id,
                    high_magnitude_positive=positive,
                    high_magnitude_negative=negative,
                    sign_balance=balance,
                )
            )
        return tensions
