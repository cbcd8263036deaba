"""Vectorised agreement metrics between two prototypes' sampled outputs.

Both the Monte Carlo evaluator and callers holding precomputed outputs reduce
to the same input: one boolean gate-pass vector and one intensity vector per
prototype, aligned sample by sample. Gated-out samples count as intensity 0.

Metrics fall into two families with different "no evidence" defaults:

- presence/count ratios (rates, Jaccard, dominance) default to 0
- distributional statistics (correlation, mean error, conditional
  probabilities) are NaN when the guardrail sample counts are not met
"""

from __future__ import annotations

import math
from dataclasses import dataclass, field
from typing import Sequence

import numpy as np

from .config import DiagnosticsConfig
from .stats import WilsonInterval, pearson_correlation, safe_ratio, wilson_interval


@dataclass(slots=True)
class PrototypeOutputVector:
    """Per-sample gate results and intensities for one prototype."""

    gate_results: np.ndarray
    intensities: np.ndarray

    def __post_init__(self) -> None:
        self.gate_results = np.asarray(self.gate_results, dtype=bool)
        self.intensities = np.asarray(self.intensities, dtype=float)
        if self.gate_results.ndim != 1 or self.intensities.ndim != 1:
            raise ValueError("PrototypeOutputVector arrays must be one-dimensional.")
        if self.gate_results.shape != self.intensities.shape:
            raise ValueError(
                "PrototypeOutputVector arrays must have equal length.\n"
                f"Got {self.gate_results.size} gate results and {self.intensities.size} intensities."
            )
        if not np.all(np.isfinite(self.intensities)):
            raise ValueError("PrototypeOutputVector intensities must be finite.")

    @property
    def size(self) -> int:
        return int(self.gate_results.size)

    @property
    def pass_count(self) -> int:
        return int(np.count_nonzero(self.gate_results))

    @property
    def gated_intensities(self) -> np.ndarray:
        """Intensities with gated-out samples set to 0."""
        return np.where(self.gate_results, self.intensities, 0.0)


@dataclass(slots=True)
class HighCoactivationEntry:
    """High-intensity co-activation at one threshold ``t``.

    Every rate except ``high_jaccard`` is over samples where either
    prototype's gates pass.
    """

    t: float
    p_high_a: float
    p_high_b: float
    p_high_both: float
    high_jaccard: float
    high_agreement: float


@dataclass(slots=True)
class AgreementMetrics:
    sample_count: int
    pass_a_count: int
    pass_b_count: int
    co_pass_count: int
    on_either_count: int
    activation_jaccard: float
    mae_co_pass: float
    rmse_co_pass: float
    pearson_co_pass: float
    pct_within_eps: float
    dominance_p: float
    dominance_q: float
    mae_global: float
    rmse_global: float
    pearson_global: float
    p_a_given_b: float
    p_b_given_a: float
    p_a_given_b_interval: WilsonInterval | None = None
    p_b_given_a_interval: WilsonInterval | None = None
    high_coactivation: list[HighCoactivationEntry] = field(default_factory=list)

    @property
    def pass_a_rate(self) -> float:
        return safe_ratio(self.pass_a_count, self.sample_count)

    @property
    def pass_b_rate(self) -> float:
        return safe_ratio(self.pass_b_count, self.sample_count)

    @property
    def co_pass_rate(self) -> float:
        return safe_ratio(self.co_pass_count, self.sample_count)

    @property
    def on_either_rate(self) -> float:
        return safe_ratio(self.on_either_count, self.sample_count)

    @property
    def p_only_count(self) -> int:
        return self.pass_a_count - self.co_pass_count

    @property
    def q_only_count(self) -> int:
        return self.pass_b_count - self.co_pass_count


def high_coactivation(
    gated_a: np.ndarray,
    gated_b: np.ndarray,
    on_either: np.ndarray,
    thresholds: Sequence[float],
) -> list[HighCoactivationEntry]:
    """High-intensity co-activation table over the on-either samples."""
    a = gated_a[on_either]
    b = gated_b[on_either]
    n = int(a.size)
    entries = []
    for t in thresholds:
        high_a = a >= t
        high_b = b >= t
        both = int(np.count_nonzero(high_a & high_b))
        either = int(np.count_nonzero(high_a | high_b))
        entries.append(
            HighCoactivationEntry(
                t=float(t),
                p_high_a=safe_ratio(int(np.count_nonzero(high_a)), n),
                p_high_b=safe_ratio(int(np.count_nonzero(high_b)), n),
                p_high_both=safe_ratio(both, n),
                high_jaccard=safe_ratio(both, either),
                high_agreement=safe_ratio(int(np.count_nonzero(high_a == high_b)), n),
            )
        )
    return entries


class AgreementMetricsCalculator:
    """Reduce two aligned output vectors to agreement metrics."""

    def __init__(self, config: DiagnosticsConfig | None = None) -> None:
        self.config = config or DiagnosticsConfig()

    def calculate(
        self,
        vector_a: PrototypeOutputVector,
        vector_b: PrototypeOutputVector,
    ) -> AgreementMetrics:
        if vector_a.size != vector_b.size:
            raise ValueError(
                "Output vectors must be aligned sample by sample.\n"
                f"Got {vector_a.size} and {vector_b.size} samples."
            )
        cfg = self.config
        n = vector_a.size
        pass_a = vector_a.gate_results
        pass_b = vector_b.gate_results
        out_a = vector_a.gated_intensities
        out_b = vector_b.gated_intensities

        co_pass = pass_a & pass_b
        on_either = pass_a | pass_b
        pass_a_count = int(np.count_nonzero(pass_a))
        pass_b_count = int(np.count_nonzero(pass_b))
        co_pass_count = int(np.count_nonzero(co_pass))
        on_either_count = int(np.count_nonzero(on_either))

        # Co-pass metrics
        mae = rmse = pearson = within = math.nan
        if co_pass_count >= cfg.min_co_pass_samples and co_pass_count > 0:
            diff = out_a[co_pass] - out_b[co_pass]
            abs_diff = np.abs(diff)
            mae = float(abs_diff.mean())
            rmse = float(np.sqrt(np.mean(diff * diff)))
            pearson = pearson_correlation(out_a[co_pass], out_b[co_pass])
            within = float(np.count_nonzero(abs_diff <= cfg.intensity_eps)) / co_pass_count

        dominance_p = dominance_q = 0.0
        if co_pass_count > 0:
            a_co, b_co = out_a[co_pass], out_b[co_pass]
            dominance_p = float(np.count_nonzero(a_co > b_co + cfg.dominance_delta)) / co_pass_count
            dominance_q = float(np.count_nonzero(b_co > a_co + cfg.dominance_delta)) / co_pass_count

        # Global metrics over every sample
        mae_global = rmse_global = math.nan
        if n > 0:
            global_diff = out_a - out_b
            mae_global = float(np.mean(np.abs(global_diff)))
            rmse_global = float(np.sqrt(np.mean(global_diff * global_diff)))
        pearson_global = pearson_correlation(out_a, out_b)

        # Conditional probabilities behind the pass-count guardrail
        z = cfg.z_score
        minimum = cfg.min_pass_samples_for_conditional
        p_a_given_b = p_b_given_a = math.nan
        ci_a_given_b = ci_b_given_a = None
        if pass_b_count >= minimum:
            p_a_given_b = co_pass_count / pass_b_count
            ci_a_given_b = wilson_interval(co_pass_count, pass_b_count, z)
        if pass_a_count >= minimum:
            p_b_given_a = co_pass_count / pass_a_count
            ci_b_given_a = wilson_interval(co_pass_count, pass_a_count, z)

        return AgreementMetrics(
            sample_count=n,
            pass_a_count=pass_a_count,
            pass_b_count=pass_b_count,
            co_pass_count=co_pass_count,
            on_either_count=on_either_count,
            activation_jaccard=safe_ratio(co_pass_count, on_either_count),
            mae_co_pass=mae,
            rmse_co_pass=rmse,
            pearson_co_pass=pearson,
            pct_within_eps=within,
            dominance_p=dominance_p,
            dominance_q=dominance_q,
            mae_global=mae_global,
            rmse_global=rmse_global,
            pearson_global=pearson_global,
            p_a_given_b=p_a_given_b,
            p_b_given_a=p_b_given_a,
            p_a_given_b_interval=ci_a_given_b,
            p_b_given_a_interval=ci_b_given_a,
            high_coactivation=high_coactivation(out_a, out_b, on_either, cfg.high_thresholds),
        )
