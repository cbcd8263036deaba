"""Interval-arithmetic reachability analysis for gated prototypes.

For every branch (a set of prototypes whose gates are simultaneously in
force) the analyzer narrows each axis from its full domain by every applicable
gate, then answers whether each required prototype can reach its activation
threshold. Because activation is a weighted sum over box-constrained axes, the
maximum is the corner solution of a linear program: take the interval's upper
bound for non-negative coefficients and its lower bound otherwise. The
minimum mirrors it and matters for ``low`` requirements, which ask that a
prototype stay under its threshold; it drops to 0 whenever the prototype can
be gated out.

A branch whose gates leave some axis empty cannot occur. Its requirements
get finite sentinel bounds (max 0, min 1) rather than infinities.

Axes pinned by gates to a very thin interval are reported as knife-edges:
formally reachable, practically fragile.
"""

from __future__ import annotations

import math
from dataclasses import dataclass, field
from typing import Any, Callable, Iterable, Mapping, Sequence

from .config import DiagnosticsConfig
from .gates import fold_constraints
from .intervals import AxisInterval
from .prototype import Prototype, axis_domain_resolver


# Widths below this are treated as single points.
KNIFE_EDGE_POINT_EPSILON = 1.0e-9
KNIFE_EDGE_WARNING_WIDTH = 0.01
DEFAULT_KNIFE_EDGE_THRESHOLD = 0.02

DIRECTIONS = ("high", "low")

# Bounds reported for requirements on infeasible branches.
INFEASIBLE_MAX_POSSIBLE = 0.0
INFEASIBLE_MIN_POSSIBLE = 1.0


@dataclass(frozen=True, slots=True)
class KnifeEdge:
    """Pathologically narrow post-gate interval on one axis."""

    axis: str
    min: float
    max: float
    contributing_prototypes: tuple[str, ...] = ()
    contributing_gates: tuple[str, ...] = ()

    def __post_init__(self) -> None:
        if not isinstance(self.axis, str) or not self.axis.strip():
            raise ValueError("KnifeEdge requires non-empty axis string")
        for name in ("min", "max"):
            value = getattr(self, name)
            if not isinstance(value, (int, float)) or isinstance(value, bool) or math.isnan(value):
                raise ValueError(f"KnifeEdge requires numeric {name} value")
        if self.max < self.min:
            raise ValueError(f"KnifeEdge max ({self.max}) cannot be less than min ({self.min})")
        for name in ("contributing_prototypes", "contributing_gates"):
            value = getattr(self, name)
            if isinstance(value, str) or not isinstance(value, (list, tuple)):
                raise ValueError(f"KnifeEdge {name} must be a list")
            object.__setattr__(self, name, tuple(value))

    @property
    def width(self) -> float:
        return self.max - self.min

    @property
    def is_point(self) -> bool:
        return self.width < KNIFE_EDGE_POINT_EPSILON

    @property
    def severity(self) -> str:
        if self.is_point:
            return "critical"
        if self.width <= KNIFE_EDGE_WARNING_WIDTH:
            return "warning"
        return "info"

    def is_below_threshold(self, threshold: float = DEFAULT_KNIFE_EDGE_THRESHOLD) -> bool:
        return self.width <= threshold

    def format_interval(self) -> str:
        if self.is_point:
            return f"exactly {self.min:.2f}"
        return f"[{self.min:.2f}, {self.max:.2f}]"

    def format_contributors(self) -> str:
        if not self.contributing_prototypes:
            return "unknown"
        return " ∧ ".join(self.contributing_prototypes)

    def to_message(self) -> str:
        return (
            f"[{self.severity.upper()}] {self.axis} must be {self.format_interval()} "
            f"(width: {self.width:.3f}, caused by: {self.format_contributors()})"
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "axis": self.axis,
            "min": self.min,
            "max": self.max,
            "width": self.width,
            "contributingPrototypes": list(self.contributing_prototypes),
            "contributingGates": list(self.contributing_gates),
            "severity": self.severity,
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "KnifeEdge":
        return cls(
            axis=data.get("axis"),
            min=data.get("min"),
            max=data.get("max"),
            contributing_prototypes=list(data.get("contributingPrototypes") or ()),
            contributing_gates=list(data.get("contributingGates") or ()),
        )


@dataclass(frozen=True, slots=True)
class BranchReachability:
    """Reachability verdict for one (branch, prototype) requirement.

    ``is_reachable``, ``gap`` and ``status`` are never stored; they are derived
    from ``direction``, ``threshold`` and the two bounds, including after a
    round trip through ``to_dict``/``from_dict``.

    A ``high`` requirement is reachable when ``max_possible >= threshold``. A
    ``low`` requirement is reachable when ``min_possible < threshold``.
    """

    branch_id: str
    branch_description: str
    prototype_id: str
    type: str
    threshold: float
    max_possible: float
    knife_edges: tuple[KnifeEdge, ...] = ()
    direction: str = "high"
    min_possible: float = 0.0

    def __post_init__(self) -> None:
        for name in ("branch_id", "prototype_id"):
            value = getattr(self, name)
            if not isinstance(value, str) or not value.strip():
                raise ValueError(f"BranchReachability requires non-empty {name} string")
        for name in ("threshold", "max_possible", "min_possible"):
            value = getattr(self, name)
            if not isinstance(value, (int, float)) or isinstance(value, bool) or not math.isfinite(value):
                raise ValueError(f"BranchReachability requires finite numeric {name}, got {value!r}")
        if self.direction not in DIRECTIONS:
            raise ValueError(
                f"BranchReachability direction must be one of {', '.join(DIRECTIONS)}, "
                f"got {self.direction!r}"
            )
        object.__setattr__(self, "knife_edges", tuple(self.knife_edges))

    @property
    def is_reachable(self) -> bool:
        if self.direction == "low":
            return self.min_possible < self.threshold
        return self.max_possible >= self.threshold

    @property
    def gap(self) -> float:
        if self.is_reachable:
            return 0.0
        if self.direction == "low":
            return self.min_possible - self.threshold
        return self.threshold - self.max_possible

    @property
    def status(self) -> str:
        if not self.is_reachable:
            return "unreachable"
        if self.knife_edges:
            return "knife-edge"
        return "reachable"

    def to_summary(self) -> str:
        verdict = "REACHABLE" if self.is_reachable else "UNREACHABLE"
        if self.direction == "low":
            operator, detail = "<", f"min: {self.min_possible:.2f}"
        else:
            operator, detail = ">=", f"max: {self.max_possible:.2f}"
        if not self.is_reachable:
            detail += f", gap: {self.gap:.2f}"
        summary = (
            f"{self.prototype_id} {operator} {self.threshold:.2f}: {verdict} ({detail})"
            f" - {self.branch_description}"
        )
        if self.knife_edges:
            summary += f" [{len(self.knife_edges)} knife-edge(s)]"
        return summary

    def to_dict(self) -> dict[str, Any]:
        return {
            "branchId": self.branch_id,
            "branchDescription": self.branch_description,
            "prototypeId": self.prototype_id,
            "type": self.type,
            "direction": self.direction,
            "threshold": self.threshold,
            "maxPossible": self.max_possible,
            "minPossible": self.min_possible,
            "isReachable": self.is_reachable,
            "gap": self.gap,
            "status": self.status,
            "knifeEdges": [edge.to_dict() for edge in self.knife_edges],
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "BranchReachability":
        """Rebuild from primary fields; persisted derived fields are ignored."""
        return cls(
            branch_id=data.get("branchId"),
            branch_description=data.get("branchDescription", ""),
            prototype_id=data.get("prototypeId"),
            type=data.get("type", "emotion"),
            threshold=data.get("threshold"),
            max_possible=data.get("maxPossible"),
            knife_edges=tuple(KnifeEdge.from_dict(e) for e in data.get("knifeEdges") or ()),
            direction=data.get("direction", "high"),
            min_possible=data.get("minPossible", 0.0),
        )


@dataclass(frozen=True, slots=True)
class ThresholdRequirement:
    """``prototype_id`` must reach (``high``) or stay under (``low``) ``threshold``."""

    prototype_id: str
    threshold: float
    direction: str = "high"

    def __post_init__(self) -> None:
        if self.direction not in DIRECTIONS:
            raise ValueError(
                f"ThresholdRequirement direction must be one of {', '.join(DIRECTIONS)}, "
                f"got {self.direction!r} for {self.prototype_id!r}"
            )


@dataclass(slots=True)
class Branch:
    """One path whose prototypes' gates all hold at once.

    ``prototype_ids`` lists gate-enforcing prototypes; the prototypes named
    by ``high`` requirements are always added to it during analysis. A
    ``low`` requirement's prototype may be gated out, so its gates are not
    enforced.
    """

    branch_id: str
    description: str
    prototype_ids: list[str] = field(default_factory=list)
    requirements: list[ThresholdRequirement] = field(default_factory=list)

    def gate_prototype_ids(self) -> list[str]:
        ordered = dict.fromkeys(self.prototype_ids)
        for req in self.requirements:
            if req.direction == "high":
                ordered.setdefault(req.prototype_id, None)
        return list(ordered)


@dataclass(slots=True)
class AxisConflict:
    axis: str
    interval: AxisInterval

    @property
    def message(self) -> str:
        return (
            f"Impossible constraint: {self.axis} requires "
            f"[{self.interval.min:.2f}, {self.interval.max:.2f}]"
        )


@dataclass(slots=True)
class ReachabilityReport:
    """Reachability results for a set of branches."""

    branches: list[Branch]
    results: list[BranchReachability]
    conflicts: dict[str, list[AxisConflict]] = field(default_factory=dict)
    truncated_branch_count: int = 0

    def for_branch(self, branch_id: str) -> list[BranchReachability]:
        return [r for r in self.results if r.branch_id == branch_id]

    def for_prototype(self, prototype_id: str) -> list[BranchReachability]:
        return [r for r in self.results if r.prototype_id == prototype_id]

    def unreachable(self) -> list[BranchReachability]:
        return [r for r in self.results if not r.is_reachable]

    @property
    def fully_reachable_branch_ids(self) -> list[str]:
        ids = []
        for branch in self.branches:
            results = self.for_branch(branch.branch_id)
            if results and all(r.is_reachable for r in results):
                ids.append(branch.branch_id)
        return ids

    @property
    def all_knife_edges(self) -> list[KnifeEdge]:
        return [edge for r in self.results for edge in r.knife_edges]

    @property
    def overall_status(self) -> str:
        if self.fully_reachable_branch_ids:
            return "fully_reachable"
        if any(r.is_reachable for r in self.results):
            return "partially_reachable"
        return "unreachable"

    def to_summary(self) -> str:
        lines = [
            f"Status: {self.overall_status} "
            f"({len(self.fully_reachable_branch_ids)}/{len(self.branches)} branches fully reachable, "
            f"{len(self.all_knife_edges)} knife-edge(s))"
        ]
        lines.extend(f"  {r.to_summary()}" for r in self.results)
        return "\n".join(lines)


class ReachabilityAnalyzer:
    """Classify prototype activation branches as reachable, knife-edge or unreachable.

    Attributes:
        catalog: Prototype id -> prototype snapshot used for every analysis.
        config: Diagnostics configuration (knife-edge threshold, branch limit).
    """

    def __init__(
        self,
        catalog: Mapping[str, Prototype] | Iterable[Prototype],
        config: DiagnosticsConfig | None = None,
    ) -> None:
        if isinstance(catalog, Mapping):
            self.catalog = dict(catalog)
        else:
            self.catalog = {proto.id: proto for proto in catalog}
        self.config = config or DiagnosticsConfig()

    def _prototype(self, prototype_id: str) -> Prototype:
        try:
            return self.catalog[prototype_id]
        except KeyError:
            raise ValueError(
                f"Unknown prototype {prototype_id!r}.\n"
                f"The catalog holds {len(self.catalog)} prototypes."
            ) from None

    def compute_intervals(self, prototype_ids: Sequence[str]) -> dict[str, AxisInterval]:
        """Fold every gate of the listed prototypes over the axis domains.

        Each axis starts from the domain of the prototype type using it, so
        mood and sexual axes can share a branch.
        """
        prototypes = [self._prototype(prototype_id) for prototype_id in prototype_ids]
        domain_for_axis = axis_domain_resolver(prototypes)
        intervals: dict[str, AxisInterval] = {}
        for prototype in prototypes:
            intervals = fold_constraints(prototype.gates, domain_for_axis, intervals)
        return intervals

    @staticmethod
    def max_possible(
        weights: Mapping[str, float],
        intervals: Mapping[str, AxisInterval],
        domain: AxisInterval,
    ) -> float:
        """Maximum weighted sum over the box.

        An empty weighted axis yields ``INFEASIBLE_MAX_POSSIBLE``.
        """
        total = 0.0
        for axis, weight in weights.items():
            interval = intervals.get(axis, domain)
            if interval.is_empty():
                return INFEASIBLE_MAX_POSSIBLE
            bound = interval.max if weight >= 0 else interval.min
            total += weight * bound
        return total

    @staticmethod
    def min_possible(
        weights: Mapping[str, float],
        intervals: Mapping[str, AxisInterval],
        domain: AxisInterval,
    ) -> float:
        """Minimum weighted sum over the box, ignoring the prototype's own gates."""
        total = 0.0
        for axis, weight in weights.items():
            interval = intervals.get(axis, domain)
            if interval.is_empty():
                return INFEASIBLE_MIN_POSSIBLE
            bound = interval.min if weight >= 0 else interval.max
            total += weight * bound
        return total

    @staticmethod
    def can_be_inactive(prototype: Prototype, intervals: Mapping[str, AxisInterval]) -> bool:
        """True if some state in the box fails at least one of the prototype's gates.

        Ungated prototypes are always active.
        """
        for gate in prototype.gates:
            interval = intervals.get(gate.axis, prototype.domain)
            if gate.can_fail_within(interval):
                return True
        return False

    @staticmethod
    def is_infeasible(intervals: Mapping[str, AxisInterval]) -> bool:
        return any(interval.is_empty() for interval in intervals.values())

    @staticmethod
    def detect_conflicts(intervals: Mapping[str, AxisInterval]) -> list[AxisConflict]:
        return [
            AxisConflict(axis=axis, interval=interval)
            for axis, interval in intervals.items()
            if interval.is_empty()
        ]

    def detect_knife_edges(
        self,
        intervals: Mapping[str, AxisInterval],
        prototype_ids: Sequence[str],
    ) -> list[KnifeEdge]:
        threshold = self.config.knife_edge_threshold
        edges = []
        for axis, interval in intervals.items():
            width = interval.width
            if width < 0 or width > threshold:
                continue
            contributors = []
            gates = []
            for prototype_id in prototype_ids:
                axis_gates = self._prototype(prototype_id).gates_on(axis)
                if axis_gates:
                    contributors.append(prototype_id)
                    gates.extend(f"{prototype_id}: {gate.original_string}" for gate in axis_gates)
            edges.append(
                KnifeEdge(
                    axis=axis,
                    min=interval.min,
                    max=interval.max,
                    contributing_prototypes=contributors,
                    contributing_gates=gates,
                )
            )
        return edges

    def analyze_branch(self, branch: Branch) -> list[BranchReachability]:
        gate_ids = branch.gate_prototype_ids()
        intervals = self.compute_intervals(gate_ids)
        infeasible = self.is_infeasible(intervals)
        knife_edges = [] if infeasible else self.detect_knife_edges(intervals, gate_ids)

        results = []
        for req in branch.requirements:
            prototype = self._prototype(req.prototype_id)
            if infeasible:
                max_possible, min_possible = INFEASIBLE_MAX_POSSIBLE, INFEASIBLE_MIN_POSSIBLE
            else:
                max_possible = self.max_possible(prototype.weights, intervals, prototype.domain)
                if req.direction == "low" and self.can_be_inactive(prototype, intervals):
                    min_possible = 0.0
                else:
                    min_possible = self.min_possible(prototype.weights, intervals, prototype.domain)
            relevant = tuple(edge for edge in knife_edges if edge.axis in prototype.weights)
            results.append(
                BranchReachability(
                    branch_id=branch.branch_id,
                    branch_description=branch.description,
                    prototype_id=prototype.id,
                    type=prototype.type,
                    threshold=float(req.threshold),
                    max_possible=max_possible,
                    knife_edges=relevant,
                    direction=req.direction,
                    min_possible=min_possible,
                )
            )
        return results

    def analyze_prototype(
        self, prototype_id: str, threshold: float, direction: str = "high"
    ) -> BranchReachability:
        """Reachability of a single prototype; ``high`` enforces its own gates."""
        branch = Branch(
            branch_id=f"{prototype_id}:gates",
            description=f"{prototype_id} gates",
            prototype_ids=[prototype_id] if direction == "high" else [],
            requirements=[ThresholdRequirement(prototype_id, threshold, direction)],
        )
        return self.analyze_branch(branch)[0]

    def analyze(self, branches: Iterable[Branch]) -> ReachabilityReport:
        branches = list(branches)
        limit = self.config.max_branches
        truncated = max(len(branches) - limit, 0)
        branches = branches[:limit]

        results: list[BranchReachability] = []
        conflicts: dict[str, list[AxisConflict]] = {}
        for branch in branches:
            intervals = self.compute_intervals(branch.gate_prototype_ids())
            branch_conflicts = self.detect_conflicts(intervals)
            if branch_conflicts:
                conflicts[branch.branch_id] = branch_conflicts
            results.extend(self.analyze_branch(branch))

        return ReachabilityReport(
            branches=branches,
            results=results,
            conflicts=conflicts,
            truncated_branch_count=truncated,
        )

    @staticmethod
    def feasibility_volume(
        intervals: Mapping[str, AxisInterval],
        domain_for_axis: Callable[[str], AxisInterval] | None = None,
    ) -> float:
        """Product of normalized widths of the constrained axes.

        0 means some axis is impossible; 1 means nothing is constrained.
        """
        domain_for_axis = domain_for_axis or (lambda _axis: AxisInterval.for_mood_axis())
        volume = 1.0
        for axis, interval in intervals.items():
            if interval.is_empty():
                return 0.0
            normalized = interval.width / domain_for_axis(axis).width
            # Axes left at (nearly) full range do not count as constrained.
            if normalized < 0.99:
                volume *= normalized
        return volume

    @staticmethod
    def interpret_volume(volume: float) -> tuple[str, str]:
        """Return ``(category, description)`` for a feasibility volume."""
        if volume <= 0:
            return "impossible", "Cannot trigger: constraints are contradictory"
        if volume < 0.001:
            return "extremely_unlikely", "Extremely unlikely to trigger naturally (<0.1% of state space)"
        if volume < 0.01:
            return "very_unlikely", "Very unlikely to trigger naturally (0.1-1% of state space)"
        if volume < 0.1:
            return "unlikely", "Unlikely to trigger naturally (1-10% of state space)"
        if volume < 0.5:
            return "moderate", "Moderate trigger likelihood (10-50% of state space)"
        return "likely", "Likely to trigger naturally (>50% of state space)"
