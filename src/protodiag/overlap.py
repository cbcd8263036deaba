"""Monte Carlo behavioral overlap between two gated prototypes.

Each trial draws a synthetic state through the injected collaborators,
checks both prototypes' gates and computes the intensity of every prototype
whose gates pass. Gated-out prototypes contribute intensity 0 to every
aggregate so that intensity comparisons stay defined when activation differs.

The collaborators are strategy objects:

- RandomStateGenerator.generate() -> SampledState
- ContextBuilder.build_context(current, previous, affect_traits) -> context
- PrototypeGateChecker.check_all_gates_pass(gates, context) -> bool
- PrototypeIntensityCalculator.compute_intensity(weights, context) -> float
- GateConstraintExtractor.extract(prototype) -> ParsedGates-like result
- GateImplicationEvaluator.evaluate(intervals_a, intervals_b) -> GateImplication

Deterministic stubs make the aggregation testable without randomness.
"""

from __future__ import annotations

import heapq
import itertools
import math
from dataclasses import dataclass, field
from typing import Any, Callable, Mapping, NamedTuple, Protocol, Sequence

import numpy as np
from tqdm import tqdm

from .agreement import (
    AgreementMetrics,
    AgreementMetricsCalculator,
    HighCoactivationEntry,
    PrototypeOutputVector,
)
from .config import DiagnosticsConfig, get_verbosity
from .gates import GateConstraintExtractor
from .implication import GateImplication, IntervalImplicationEvaluator
from .prototype import Prototype, axis_domain_resolver
from .stats import WilsonInterval


class SampledState(NamedTuple):
    current: Any
    previous: Any = None
    affect_traits: Any = None


class RandomStateGenerator(Protocol):
    def generate(self) -> SampledState: ...


class ContextBuilder(Protocol):
    def build_context(self, current: Any, previous: Any, affect_traits: Any) -> Any: ...


class PrototypeGateChecker(Protocol):
    def check_all_gates_pass(self, gates: Sequence[Any], context: Any) -> bool: ...


class PrototypeIntensityCalculator(Protocol):
    def compute_intensity(self, weights: Mapping[str, float], context: Any) -> float: ...


class GateConstraintExtractorProtocol(Protocol):
    def extract(self, source: Any) -> Any: ...


class GateImplicationEvaluatorProtocol(Protocol):
    def evaluate(self, intervals_a: Any, intervals_b: Any, domain_for_axis: Any = None) -> Any: ...


def _require_method(collaborator: object, role: str, method: str) -> None:
    if not callable(getattr(collaborator, method, None)):
        raise TypeError(
            f"{role} must provide a callable {method}(), "
            f"got {type(collaborator).__name__}."
        )


@dataclass(slots=True)
class GateOverlap:
    on_either_rate: float
    on_both_rate: float
    p_only_rate: float
    q_only_rate: float


@dataclass(slots=True)
class IntensityStats:
    """Intensity agreement. Co-pass statistics are NaN below the co-pass guardrail."""

    pearson_correlation: float
    mean_abs_diff: float
    rmse: float
    pct_within_eps: float
    dominance_p: float
    dominance_q: float
    global_mean_abs_diff: float
    global_l2_distance: float
    global_output_correlation: float


@dataclass(slots=True)
class PassRates:
    pass_a_rate: float
    pass_b_rate: float
    pass_a_count: int
    pass_b_count: int
    co_pass_count: int
    p_a_given_b: float
    p_b_given_a: float
    p_a_given_b_interval: WilsonInterval | None = None
    p_b_given_a_interval: WilsonInterval | None = None


@dataclass(slots=True)
class DivergenceExample:
    sample_index: int
    intensity_a: float
    intensity_b: float
    abs_diff: float
    context: Any = None
    context_summary: str = ""


@dataclass(slots=True)
class GateParseInfo:
    parse_status: str
    parsed_gate_count: int
    total_gate_count: int
    unparsed_gates: list[str] = field(default_factory=list)


@dataclass(slots=True)
class BehavioralOverlapResult:
    prototype_a_id: str
    prototype_b_id: str
    sample_count: int
    gate_overlap: GateOverlap
    intensity: IntensityStats
    pass_rates: PassRates
    high_coactivation: list[HighCoactivationEntry]
    divergence_examples: list[DivergenceExample]
    agreement: AgreementMetrics
    gate_implication: GateImplication | None = None
    gate_parse_info: dict[str, GateParseInfo] | None = None

    @property
    def activation_jaccard(self) -> float:
        return self.agreement.activation_jaccard


class BehavioralOverlapEvaluator:
    """Estimate how alike two prototypes behave over sampled states.

    Attributes:
        state_generator: Source of synthetic states.
        context_builder: Turns a state into the context gates and intensities read.
        gate_checker: Decides whether all of a prototype's gates pass.
        intensity_calculator: Computes a prototype's intensity in a context.
        gate_extractor: Extracts per-axis gate intervals for the implication check.
        implication_evaluator: Structural gate-set implication.
        agreement_calculator: Aggregates the sampled output vectors.
    """

    def __init__(
        self,
        state_generator: RandomStateGenerator,
        context_builder: ContextBuilder,
        gate_checker: PrototypeGateChecker,
        intensity_calculator: PrototypeIntensityCalculator,
        gate_extractor: GateConstraintExtractorProtocol | None = None,
        implication_evaluator: GateImplicationEvaluatorProtocol | None = None,
        agreement_calculator: AgreementMetricsCalculator | None = None,
        config: DiagnosticsConfig | None = None,
    ) -> None:
        self.config = config or DiagnosticsConfig()
        gate_extractor = gate_extractor or GateConstraintExtractor()
        implication_evaluator = implication_evaluator or IntervalImplicationEvaluator()
        agreement_calculator = agreement_calculator or AgreementMetricsCalculator(self.config)

        _require_method(state_generator, "RandomStateGenerator", "generate")
        _require_method(context_builder, "ContextBuilder", "build_context")
        _require_method(gate_checker, "PrototypeGateChecker", "check_all_gates_pass")
        _require_method(intensity_calculator, "PrototypeIntensityCalculator", "compute_intensity")
        _require_method(gate_extractor, "GateConstraintExtractor", "extract")
        _require_method(implication_evaluator, "GateImplicationEvaluator", "evaluate")
        _require_method(agreement_calculator, "AgreementMetricsCalculator", "calculate")

        self.state_generator = state_generator
        self.context_builder = context_builder
        self.gate_checker = gate_checker
        self.intensity_calculator = intensity_calculator
        self.gate_extractor = gate_extractor
        self.implication_evaluator = implication_evaluator
        self.agreement_calculator = agreement_calculator

    def resolve_sample_count(self, sample_count: Any) -> int:
        """Invalid or missing counts fall back to the configured default; others are floored."""
        if (
            not isinstance(sample_count, (int, float))
            or isinstance(sample_count, bool)
            or not math.isfinite(sample_count)
            or sample_count < 1
        ):
            return self.config.sample_count_per_pair
        return int(math.floor(sample_count))

    def evaluate(
        self,
        prototype_a: Prototype,
        prototype_b: Prototype,
        sample_count: int | None = None,
        on_progress: Callable[[int, int], None] | None = None,
    ) -> BehavioralOverlapResult:
        """Run the Monte Carlo comparison of two prototypes.

        Args:
            prototype_a: First prototype (``P`` in the dominance metrics).
            prototype_b: Second prototype (``Q``).
            sample_count: Number of trials; invalid values use the config default.
            on_progress: Called with ``(processed, total)`` after every chunk.

        Returns:
            Aggregated overlap result.
        """
        n = self.resolve_sample_count(sample_count)
        cfg = self.config
        verbosity = get_verbosity()

        gates_a, gates_b = prototype_a.gates, prototype_b.gates
        weights_a, weights_b = prototype_a.weights, prototype_b.weights
        relevant_axes = _relevant_axes(prototype_a, prototype_b)

        pass_a = np.zeros(n, dtype=bool)
        pass_b = np.zeros(n, dtype=bool)
        intensity_a = np.zeros(n, dtype=float)
        intensity_b = np.zeros(n, dtype=float)

        # Min-heap of (abs_diff, tiebreak, example) holding the top-K co-pass divergences.
        heap: list[tuple[float, int, DivergenceExample]] = []
        counter = itertools.count()
        k = cfg.divergence_examples_k

        progress = tqdm(
            total=n,
            desc=f"Sampling {prototype_a.id} vs {prototype_b.id}",
            disable=verbosity == 0,
            leave=False,
        )
        with progress:
            processed = 0
            while processed < n:
                chunk_end = min(processed + cfg.progress_chunk_size, n)
                for i in range(processed, chunk_end):
                    state = self.state_generator.generate()
                    context = self.context_builder.build_context(
                        state.current, state.previous, state.affect_traits
                    )
                    passed_a = bool(self.gate_checker.check_all_gates_pass(gates_a, context))
                    passed_b = bool(self.gate_checker.check_all_gates_pass(gates_b, context))
                    value_a = (
                        float(self.intensity_calculator.compute_intensity(weights_a, context))
                        if passed_a
                        else 0.0
                    )
                    value_b = (
                        float(self.intensity_calculator.compute_intensity(weights_b, context))
                        if passed_b
                        else 0.0
                    )
                    pass_a[i], pass_b[i] = passed_a, passed_b
                    intensity_a[i], intensity_b[i] = value_a, value_b

                    if passed_a and passed_b and k > 0:
                        abs_diff = abs(value_a - value_b)
                        if len(heap) < k or abs_diff > heap[0][0]:
                            example = DivergenceExample(
                                sample_index=i,
                                intensity_a=value_a,
                                intensity_b=value_b,
                                abs_diff=abs_diff,
                                context=context,
                                context_summary=summarize_context(context, relevant_axes),
                            )
                            entry = (abs_diff, next(counter), example)
                            if len(heap) < k:
                                heapq.heappush(heap, entry)
                            else:
                                heapq.heapreplace(heap, entry)

                progress.update(chunk_end - processed)
                processed = chunk_end
                if on_progress is not None:
                    on_progress(processed, n)

            metrics = self.agreement_calculator.calculate(
                PrototypeOutputVector(pass_a, intensity_a),
                PrototypeOutputVector(pass_b, intensity_b),
            )
            if verbosity >= 2:
                progress.set_postfix(
                    {
                        "onBoth": f"{metrics.co_pass_rate:.4f}",
                        "corr": _fmt(metrics.pearson_co_pass),
                    }
                )

        examples = [entry[2] for entry in sorted(heap, key=lambda e: (-e[0], e[1]))]
        implication, parse_info = self._gate_implication(prototype_a, prototype_b)
        return _build_result(
            prototype_a.id,
            prototype_b.id,
            metrics,
            examples,
            implication,
            parse_info,
        )

    def evaluate_vectors(
        self,
        prototype_a: Prototype,
        prototype_b: Prototype,
        vector_a: PrototypeOutputVector,
        vector_b: PrototypeOutputVector,
    ) -> BehavioralOverlapResult:
        """Aggregate precomputed output vectors with the same guardrails.

        Divergence examples need per-sample contexts and are left empty.
        """
        metrics = self.agreement_calculator.calculate(vector_a, vector_b)
        implication, parse_info = self._gate_implication(prototype_a, prototype_b)
        return _build_result(prototype_a.id, prototype_b.id, metrics, [], implication, parse_info)

    def _gate_implication(
        self, prototype_a: Prototype, prototype_b: Prototype
    ) -> tuple[GateImplication | None, dict[str, GateParseInfo]]:
        parsed_a = self.gate_extractor.extract(prototype_a)
        parsed_b = self.gate_extractor.extract(prototype_b)
        parse_info = {
            "a": _parse_info(prototype_a, parsed_a),
            "b": _parse_info(prototype_b, parsed_b),
        }
        # Partial parses would claim nesting from incomplete gate sets.
        if parsed_a.parse_status != "complete" or parsed_b.parse_status != "complete":
            return None, parse_info
        domain_for_axis = axis_domain_resolver((prototype_a, prototype_b))
        implication = self.implication_evaluator.evaluate(
            parsed_a.intervals, parsed_b.intervals, domain_for_axis
        )
        return implication, parse_info


def _parse_info(prototype: Prototype, parsed: Any) -> GateParseInfo:
    unparsed = [str(g) for g in getattr(parsed, "unparsed_gates", ()) or ()]
    total = len(prototype.gates) + len(prototype.unparsed_gates)
    return GateParseInfo(
        parse_status=parsed.parse_status,
        parsed_gate_count=max(total - len(unparsed), 0),
        total_gate_count=total,
        unparsed_gates=unparsed,
    )


def _build_result(
    id_a: str,
    id_b: str,
    metrics: AgreementMetrics,
    examples: list[DivergenceExample],
    implication: GateImplication | None,
    parse_info: dict[str, GateParseInfo] | None,
) -> BehavioralOverlapResult:
    n = metrics.sample_count

    def rate(count: int) -> float:
        return count / n if n > 0 else 0.0

    return BehavioralOverlapResult(
        prototype_a_id=id_a,
        prototype_b_id=id_b,
        sample_count=n,
        gate_overlap=GateOverlap(
            on_either_rate=rate(metrics.on_either_count),
            on_both_rate=rate(metrics.co_pass_count),
            p_only_rate=rate(metrics.p_only_count),
            q_only_rate=rate(metrics.q_only_count),
        ),
        intensity=IntensityStats(
            pearson_correlation=metrics.pearson_co_pass,
            mean_abs_diff=metrics.mae_co_pass,
            rmse=metrics.rmse_co_pass,
            pct_within_eps=metrics.pct_within_eps,
            dominance_p=metrics.dominance_p,
            dominance_q=metrics.dominance_q,
            global_mean_abs_diff=metrics.mae_global,
            global_l2_distance=metrics.rmse_global,
            global_output_correlation=metrics.pearson_global,
        ),
        pass_rates=PassRates(
            pass_a_rate=metrics.pass_a_rate,
            pass_b_rate=metrics.pass_b_rate,
            pass_a_count=metrics.pass_a_count,
            pass_b_count=metrics.pass_b_count,
            co_pass_count=metrics.co_pass_count,
            p_a_given_b=metrics.p_a_given_b,
            p_b_given_a=metrics.p_b_given_a,
            p_a_given_b_interval=metrics.p_a_given_b_interval,
            p_b_given_a_interval=metrics.p_b_given_a_interval,
        ),
        high_coactivation=list(metrics.high_coactivation),
        divergence_examples=examples,
        agreement=metrics,
        gate_implication=implication,
        gate_parse_info=parse_info,
    )


def _relevant_axes(prototype_a: Prototype, prototype_b: Prototype) -> list[str]:
    axes: dict[str, None] = {}
    for prototype in (prototype_a, prototype_b):
        for axis in prototype.weights:
            axes.setdefault(axis, None)
        for axis in prototype.gate_axes():
            axes.setdefault(axis, None)
    return list(axes)


def summarize_context(context: Any, axes: Sequence[str], limit: int = 3) -> str:
    """Render the ``limit`` relevant axes with the largest absolute value, e.g. ``"a: 0.90, b: -0.40"``."""
    entries = []
    for axis in axes:
        if isinstance(context, Mapping):
            value = context.get(axis)
        else:
            value = getattr(context, axis, None)
        if isinstance(value, (int, float)) and not isinstance(value, bool) and math.isfinite(value):
            entries.append((axis, float(value)))
    entries.sort(key=lambda item: abs(item[1]), reverse=True)
    return ", ".join(f"{axis}: {value:.2f}" for axis, value in entries[:limit])


def _fmt(value: float) -> str:
    return "NaN" if math.isnan(value) else f"{value:.4f}"
