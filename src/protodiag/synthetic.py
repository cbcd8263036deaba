"""Synthetic collaborators and a demo prototype catalog.

The overlap evaluator only sees the collaborator protocols in
``protodiag.overlap``. This module provides plain reference implementations:

- UniformStateGenerator: independent uniform draws per axis (numpy Generator)
- FlatContextBuilder: flattens state and traits into one ``axis -> value`` dict
- ContextGateChecker: evaluates GateConstraint objects against that dict
- LinearIntensityCalculator: normalized weighted sum clamped to [0, 1]

Example:
    >>> from protodiag.synthetic import load_synthetic_catalog
    >>>
    >>> catalog = load_synthetic_catalog()
    >>> for proto_id, proto in catalog.items():
    ...     print(f"{proto_id}: {len(proto.weights)} axes, {len(proto.gates)} gates")

Note: The catalog is an illustrative fixture that exercises every diagnostic
(a knife-edge gate, a contradictory gate pair, a sign-tension outlier), not a
tuned content set.
"""

from __future__ import annotations

from typing import Any, Dict, Iterable, Mapping, Sequence

import numpy as np

from .gates import GateConstraint
from .intervals import AxisInterval
from .overlap import SampledState
from .prototype import Prototype, axis_domain_resolver
from .reachability import Branch, ThresholdRequirement


class UniformStateGenerator:
    """Draw every axis independently and uniformly from its domain."""

    def __init__(self, axis_domains: Mapping[str, AxisInterval], seed: int | None = None) -> None:
        if not axis_domains:
            raise ValueError("UniformStateGenerator needs at least one axis to sample.")
        self.axes = list(axis_domains)
        self._low = np.array([axis_domains[a].min for a in self.axes], dtype=float)
        self._high = np.array([axis_domains[a].max for a in self.axes], dtype=float)
        self.rng = np.random.default_rng(seed)

    @classmethod
    def for_prototypes(cls, prototypes: Iterable[Prototype], seed: int | None = None) -> "UniformStateGenerator":
        """Cover every weighted or gated axis over the domain of the type using it."""
        prototypes = list(prototypes)
        resolve = axis_domain_resolver(prototypes)
        domains: Dict[str, AxisInterval] = {}
        for proto in prototypes:
            for axis in [*proto.weights, *proto.gate_axes()]:
                domains.setdefault(axis, resolve(axis))
        return cls(domains, seed=seed)

    def generate(self) -> SampledState:
        values = self.rng.uniform(self._low, self._high)
        current = {axis: float(v) for axis, v in zip(self.axes, values)}
        return SampledState(current=current, previous=None, affect_traits=None)


class FlatContextBuilder:
    def build_context(self, current: Any, previous: Any, affect_traits: Any) -> Dict[str, float]:
        context: Dict[str, float] = {}
        if isinstance(affect_traits, Mapping):
            context.update(affect_traits)
        if isinstance(current, Mapping):
            context.update(current)
        return context


class ContextGateChecker:
    """All gates must hold; a gate on an axis missing from the context fails."""

    def check_all_gates_pass(self, gates: Sequence[GateConstraint], context: Mapping[str, float]) -> bool:
        for gate in gates:
            value = context.get(gate.axis)
            if value is None or not gate.is_satisfied_by(value):
                return False
        return True


class LinearIntensityCalculator:
    """Intensity = sum(w * x) / sum(|w|), clamped to [0, 1]."""

    def compute_intensity(self, weights: Mapping[str, float], context: Mapping[str, float]) -> float:
        total = sum(abs(w) for w in weights.values())
        if total == 0:
            return 0.0
        raw = sum(w * float(context.get(axis, 0.0)) for axis, w in weights.items())
        return float(np.clip(raw / total, 0.0, 1.0))


_CATALOG = [
    {
        "id": "joy",
        "description": "Bright positive affect",
        "weights": {"valence": 0.8, "arousal": 0.3, "engagement": 0.2},
        "gates": ["valence >= 0.20"],
    },
    {
        "id": "contentment",
        "description": "Quiet satisfaction",
        "weights": {"valence": 0.6, "arousal": -0.3, "threat": -0.2},
        "gates": ["valence >= 0.15", "arousal <= 0.40"],
    },
    {
        "id": "fear",
        "description": "Acute threat response",
        "weights": {"threat": 0.9, "arousal": 0.5, "agency_control": -0.4, "valence": -0.3},
        "gates": ["threat >= 0.30"],
    },
    {
        "id": "anxiety",
        "description": "Diffuse anticipatory threat",
        "weights": {"threat": 0.6, "future_expectancy": -0.5, "arousal": 0.3, "agency_control": -0.3},
        "gates": ["threat >= 0.20", "future_expectancy <= 0.10"],
    },
    {
        "id": "pride",
        "description": "Positive self-evaluation",
        "weights": {"self_evaluation": 0.8, "agency_control": 0.4, "valence": 0.3},
        "gates": ["self_evaluation >= 0.25"],
    },
    {
        "id": "flow",
        "description": "Absorbed, competent engagement",
        "weights": {"engagement": 0.7, "agency_control": 0.5, "arousal": 0.3, "threat": -0.2},
        "gates": ["engagement >= 0.40", "agency_control >= 0.20", "threat <= 0.20"],
    },
    {
        "id": "resignation",
        "description": "Flat, low-energy surrender",
        "weights": {"valence": -0.5, "arousal": -0.5, "agency_control": -0.4},
        "gates": ["arousal <= -0.30", "arousal >= -0.31"],
    },
    {
        "id": "torn_longing",
        "description": "Yearning pulled in opposite directions",
        "weights": {
            "affiliation": 0.6,
            "valence": -0.5,
            "future_expectancy": 0.4,
            "self_evaluation": -0.4,
            "arousal": 0.3,
            "threat": -0.3,
            "engagement": 0.3,
            "agency_control": -0.2,
        },
        "gates": ["affiliation >= 0.30"],
    },
    {
        "id": "impossible_calm",
        "description": "Calm that demands high and low threat at once",
        "weights": {"valence": 0.5, "threat": -0.5},
        "gates": ["threat >= 0.60", "threat <= 0.20"],
    },
    {
        "id": "sexual_arousal",
        "description": "Sexual excitation outweighing inhibition",
        "type": "sexual",
        "weights": {"sex_excitation": 0.8, "baseline_libido": 0.3, "sex_inhibition": -0.5},
        "gates": ["sex_excitation >= 0.30"],
    },
    {
        "id": "sexual_restraint",
        "description": "Inhibition-dominated sexual state",
        "type": "sexual",
        "weights": {"sex_inhibition": 0.8, "sex_excitation": -0.3},
        "gates": ["sex_inhibition >= 0.50"],
    },
]


def load_synthetic_catalog() -> Dict[str, Prototype]:
    return {entry["id"]: Prototype.from_dict(entry) for entry in _CATALOG}


def load_synthetic_branches(threshold: float = 0.5) -> list[Branch]:
    """A few co-activation branches over the synthetic catalog."""
    return [
        Branch(
            branch_id="flow_with_joy",
            description="flow while joyful",
            prototype_ids=["flow", "joy"],
            requirements=[ThresholdRequirement("flow", threshold), ThresholdRequirement("joy", threshold)],
        ),
        Branch(
            branch_id="fear_in_contentment",
            description="fear gated by contentment",
            prototype_ids=["contentment", "fear"],
            requirements=[ThresholdRequirement("fear", threshold)],
        ),
        Branch(
            branch_id="resigned_pride",
            description="pride under resignation gates",
            prototype_ids=["resignation", "pride"],
            requirements=[
                ThresholdRequirement("pride", threshold),
                ThresholdRequirement("resignation", threshold),
            ],
        ),
        Branch(
            branch_id="joy_without_fear",
            description="joy while fear stays low",
            prototype_ids=["joy"],
            requirements=[
                ThresholdRequirement("joy", threshold),
                ThresholdRequirement("fear", threshold, "low"),
            ],
        ),
    ]
