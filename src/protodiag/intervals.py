"""Closed intervals on a single state axis."""

from __future__ import annotations

from dataclasses import dataclass


MOOD_AXIS_RANGE = (-1.0, 1.0)
SEXUAL_AXIS_RANGE = (0.0, 1.0)


@dataclass(frozen=True, slots=True)
class AxisInterval:
    """Immutable closed interval ``[min, max]`` on one axis.

    Narrowing can leave the interval empty (``min > max``). Emptiness is a
    normal terminal state: it marks a contradictory gate set and flows into
    reachability as an unreachable branch rather than raising.
    """

    min: float
    max: float

    @classmethod
    def for_mood_axis(cls) -> "AxisInterval":
        """Full domain of a mood axis, normalized to [-1, 1]."""
        return cls(*MOOD_AXIS_RANGE)

    @classmethod
    def for_sexual_axis(cls) -> "AxisInterval":
        """Full domain of a sexual axis, normalized to [0, 1]."""
        return cls(*SEXUAL_AXIS_RANGE)

    @classmethod
    def for_prototype_type(cls, prototype_type: str) -> "AxisInterval":
        if prototype_type == "sexual":
            return cls.for_sexual_axis()
        return cls.for_mood_axis()

    @property
    def width(self) -> float:
        return self.max - self.min

    def is_empty(self) -> bool:
        return self.min > self.max

    def narrow(self, lower: float, upper: float) -> "AxisInterval":
        """Return ``[max(min, lower), min(max, upper)]``; may be empty."""
        return AxisInterval(max(self.min, lower), min(self.max, upper))

    def intersect(self, other: "AxisInterval") -> "AxisInterval":
        return self.narrow(other.min, other.max)

    def contains(self, value: float) -> bool:
        return self.min <= value <= self.max

    def is_subset_of(self, other: "AxisInterval") -> bool:
        # An empty interval is a subset of everything.
        if self.is_empty():
            return True
        return other.min <= self.min and self.max <= other.max

    def __str__(self) -> str:
        return f"[{self.min:.2f}, {self.max:.2f}]"
