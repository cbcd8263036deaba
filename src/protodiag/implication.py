"""Structural implication between two gate sets.

Gate set A implies gate set B when every state passing A also passes B. With
gates reduced to per-axis boxes this holds exactly when A's interval is a
subset of B's on every axis B constrains; an axis A leaves unconstrained keeps
its full domain, which depends on the axis (mood axes span [-1, 1], sexual
axes [0, 1]).
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Callable, Mapping

from .intervals import AxisInterval


RELATIONS = ("equal", "narrower", "wider", "disjoint", "overlapping")


@dataclass(slots=True)
class AxisEvidence:
    axis: str
    interval_a: AxisInterval
    interval_b: AxisInterval
    a_within_b: bool
    b_within_a: bool


@dataclass(slots=True)
class GateImplication:
    """Implication verdict between gate sets A and B.

    ``relation`` is ``narrower`` when A's region sits strictly inside B's,
    ``wider`` for the reverse, ``disjoint`` when no state passes both.
    """

    a_implies_b: bool
    b_implies_a: bool
    relation: str
    counter_example_axes: list[str] = field(default_factory=list)
    evidence: list[AxisEvidence] = field(default_factory=list)


class IntervalImplicationEvaluator:
    """Compare two ``axis -> AxisInterval`` maps produced by gate extraction."""

    def __init__(self, domain: AxisInterval | None = None) -> None:
        self.domain = domain or AxisInterval.for_mood_axis()

    def evaluate(
        self,
        intervals_a: Mapping[str, AxisInterval],
        intervals_b: Mapping[str, AxisInterval],
        domain_for_axis: Callable[[str], AxisInterval] | None = None,
    ) -> GateImplication:
        """Compare two gate boxes; unconstrained axes take ``domain_for_axis(axis)``."""
        domain_for_axis = domain_for_axis or (lambda _axis: self.domain)
        axes = sorted(set(intervals_a) | set(intervals_b))
        evidence = []
        counter_examples = []
        disjoint = False
        for axis in axes:
            domain = domain_for_axis(axis)
            a = intervals_a.get(axis, domain)
            b = intervals_b.get(axis, domain)
            a_within_b = a.is_subset_of(b)
            b_within_a = b.is_subset_of(a)
            if a.intersect(b).is_empty():
                disjoint = True
            if not a_within_b or not b_within_a:
                counter_examples.append(axis)
            evidence.append(AxisEvidence(axis, a, b, a_within_b, b_within_a))

        empty_a = any(i.is_empty() for i in intervals_a.values())
        empty_b = any(i.is_empty() for i in intervals_b.values())
        # An empty region passes no state and implies anything.
        a_implies_b = empty_a or all(e.a_within_b for e in evidence)
        b_implies_a = empty_b or all(e.b_within_a for e in evidence)

        if disjoint or empty_a or empty_b:
            relation = "disjoint"
        elif a_implies_b and b_implies_a:
            relation = "equal"
        elif a_implies_b:
            relation = "narrower"
        elif b_implies_a:
            relation = "wider"
        else:
            relation = "overlapping"

        return GateImplication(
            a_implies_b=a_implies_b,
            b_implies_a=b_implies_a,
            relation=relation,
            counter_example_axes=counter_examples,
            evidence=evidence,
        )
