"""Configuration primitives for prototype diagnostics."""

from __future__ import annotations

import math
import os
from dataclasses import dataclass, fields

from scipy import stats


def get_verbosity() -> int:
    """Get verbosity level from environment: 0=quiet, 1=normal, 2=verbose."""
    return int(os.environ.get("PROTODIAG_VERBOSITY", "1"))


def z_score_for_confidence(level: float) -> float:
    """Return the two-sided normal quantile for a confidence level in (0, 1)."""
    if not (0.0 < level < 1.0):
        raise ValueError(f"Confidence level must lie in (0, 1), got {level}.")
    return float(stats.norm.ppf((1.0 + level) / 2.0))


_PROBABILITY_FIELDS = (
    "multi_axis_sign_balance_threshold",
    "confidence_level",
)

_POSITIVE_INTEGER_FIELDS = (
    "sign_tension_min_high_axes",
    "sample_count_per_pair",
    "divergence_examples_k",
    "min_co_pass_samples",
    "min_pass_samples_for_conditional",
    "max_branches",
    "progress_chunk_size",
)

_POSITIVE_NUMBER_FIELDS = (
    "active_axis_epsilon",
    "strong_axis_threshold",
    "min_iqr_floor",
    "sign_tension_min_magnitude",
    "dominance_delta",
    "intensity_eps",
    "knife_edge_threshold",
)

# Fence multipliers; 0 puts the fence at Q3 or the median itself.
_NON_NEGATIVE_NUMBER_FIELDS = (
    "high_axis_loading_threshold",
    "multi_axis_usage_threshold",
)


@dataclass(frozen=True)
class DiagnosticsConfig:
    """Holds tunable constants for the reachability, conflict and overlap passes.

    **Structural conflict detection:**
    - active_axis_epsilon: |weight| above which an axis counts as active
    - strong_axis_threshold: |weight| at or above which an axis is strong
    - high_axis_loading_threshold: Tukey multiplier k for the Q3 + k*IQR fence
    - min_iqr_floor: lower bound applied to the IQR before fencing
    - multi_axis_usage_threshold: multiplier over the median for multi-axis conflicts
    - multi_axis_sign_balance_threshold: max |pos-neg|/total counted as a balanced split
    - sign_tension_min_magnitude, sign_tension_min_high_axes: sign tension criteria

    **Behavioral overlap sampling:**
    - sample_count_per_pair: default Monte Carlo trials per prototype pair
    - divergence_examples_k: number of divergence examples kept
    - dominance_delta: margin for one intensity to dominate the other
    - intensity_eps: |diff| counted as "within epsilon"
    - min_co_pass_samples: co-pass trials needed before correlation/error metrics
    - min_pass_samples_for_conditional: pass trials needed before P(A|B), P(B|A)
    - high_thresholds: intensity thresholds for the high co-activation table
    - confidence_level: level of the Wilson intervals on conditional probabilities

    **Reachability:**
    - knife_edge_threshold: interval width at or below which an axis is knife-edge
    - max_branches: branch explosion limit per analysis
    """

    active_axis_epsilon: float = 0.08
    strong_axis_threshold: float = 0.25
    high_axis_loading_threshold: float = 1.5
    min_iqr_floor: float = 0.5
    multi_axis_usage_threshold: float = 1.5
    multi_axis_sign_balance_threshold: float = 0.4
    sign_tension_min_magnitude: float = 0.25
    sign_tension_min_high_axes: int = 3

    sample_count_per_pair: int = 8000
    divergence_examples_k: int = 5
    dominance_delta: float = 0.05
    intensity_eps: float = 0.05
    min_co_pass_samples: int = 1
    min_pass_samples_for_conditional: int = 200
    high_thresholds: tuple[float, ...] = (0.4, 0.6, 0.75)
    confidence_level: float = 0.95

    knife_edge_threshold: float = 0.02
    max_branches: int = 100

    progress_chunk_size: int = 500
    random_seed: int = 1337

    def __post_init__(self) -> None:
        for name in _PROBABILITY_FIELDS:
            value = getattr(self, name)
            if not _is_number(value) or not (0.0 <= value <= 1.0):
                raise ValueError(
                    f"{name} must be a number in [0, 1], got {value!r}.\n"
                    f"It is a probability or ratio."
                )
        if self.confidence_level in (0.0, 1.0):
            raise ValueError(
                f"confidence_level must lie strictly inside (0, 1), got {self.confidence_level}."
            )

        for name in _POSITIVE_INTEGER_FIELDS:
            value = getattr(self, name)
            if not isinstance(value, int) or isinstance(value, bool) or value < 1:
                raise ValueError(f"{name} must be a positive integer (>= 1), got {value!r}.")

        for name in _POSITIVE_NUMBER_FIELDS:
            value = getattr(self, name)
            if not _is_number(value) or value <= 0:
                raise ValueError(f"{name} must be a positive number, got {value!r}.")

        for name in _NON_NEGATIVE_NUMBER_FIELDS:
            value = getattr(self, name)
            if not _is_number(value) or value < 0:
                raise ValueError(f"{name} must be a non-negative number, got {value!r}.")

        thresholds = tuple(self.high_thresholds)
        for t in thresholds:
            if not _is_number(t) or not (0.0 <= t <= 1.0):
                raise ValueError(
                    f"high_thresholds entries must lie in [0, 1], got {t!r}.\n"
                    f"Thresholds are compared against gated intensities."
                )
        object.__setattr__(self, "high_thresholds", thresholds)

        if not self.active_axis_epsilon < self.strong_axis_threshold:
            raise ValueError(
                "active_axis_epsilon must be less than strong_axis_threshold.\n"
                f"Got active_axis_epsilon={self.active_axis_epsilon}, "
                f"strong_axis_threshold={self.strong_axis_threshold}."
            )

    @property
    def z_score(self) -> float:
        """Two-sided z-score matching ``confidence_level`` (1.96 at 95%)."""
        return z_score_for_confidence(self.confidence_level)

    @classmethod
    def from_mapping(cls, values: dict) -> "DiagnosticsConfig":
        """Build a config from a mapping, rejecting unknown keys."""
        known = {f.name for f in fields(cls)}
        unknown = sorted(set(values) - known)
        if unknown:
            raise ValueError(f"Unknown configuration keys: {', '.join(unknown)}")
        return cls(**values)


def _is_number(value: object) -> bool:
    return (
        isinstance(value, (int, float))
        and not isinstance(value, bool)
        and math.isfinite(value)
    )
