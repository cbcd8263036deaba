"""Prototype definitions consumed by the diagnostics passes."""

from __future__ import annotations

import math
import types
from dataclasses import dataclass, field
from typing import Any, Callable, Iterable, Mapping

from .gates import GateConstraint, GateParseError
from .intervals import AxisInterval


PROTOTYPE_TYPES = ("emotion", "sexual")


@dataclass(frozen=True, slots=True)
class Prototype:
    """Gated linear response definition.

    A prototype weights a set of state axes into an intensity and only
    activates when every gate holds. Prototypes are loaded once per
    diagnostic run and never mutated by the analysis passes.

    Attributes:
        id: Unique identifier within a catalog (e.g. ``"flow"``).
        description: Free-text description.
        type: ``"emotion"`` (mood axes in [-1, 1]) or ``"sexual"`` (axes in [0, 1]).
        weights: Axis -> coefficient. Only nonzero axes need be present.
        gates: Parsed gate constraints in declaration order.
        unparsed_gates: Gate text that could not be parsed (lenient loading only).
    """

    id: str
    description: str = ""
    type: str = "emotion"
    weights: Mapping[str, float] = field(default_factory=dict)
    gates: tuple[GateConstraint, ...] = ()
    unparsed_gates: tuple[str, ...] = ()

    def __post_init__(self) -> None:
        if not isinstance(self.id, str) or not self.id.strip():
            raise ValueError(f"Prototype id must be a non-empty string, got {self.id!r}.")
        if self.type not in PROTOTYPE_TYPES:
            raise ValueError(
                f"Prototype {self.id!r} has unknown type {self.type!r}.\n"
                f"Expected one of: {', '.join(PROTOTYPE_TYPES)}."
            )
        if not isinstance(self.weights, Mapping):
            raise TypeError(
                f"Prototype {self.id!r} weights must be a mapping of axis -> coefficient, "
                f"got {type(self.weights).__name__}."
            )
        for axis, weight in self.weights.items():
            if (
                not isinstance(weight, (int, float))
                or isinstance(weight, bool)
                or not math.isfinite(weight)
            ):
                raise ValueError(
                    f"Prototype {self.id!r} has non-finite weight {weight!r} on axis {axis!r}."
                )
        for gate in self.gates:
            if not isinstance(gate, GateConstraint):
                raise TypeError(
                    f"Prototype {self.id!r} gates must be GateConstraint instances, "
                    f"got {type(gate).__name__}. Use Prototype.from_dict to parse gate text."
                )
        object.__setattr__(
            self, "weights", types.MappingProxyType({k: float(v) for k, v in self.weights.items()})
        )
        object.__setattr__(self, "gates", tuple(self.gates))
        object.__setattr__(self, "unparsed_gates", tuple(self.unparsed_gates))

    @classmethod
    def from_dict(cls, data: Mapping[str, Any], strict: bool = True, id: str | None = None) -> "Prototype":
        """Build a prototype from catalog JSON.

        With ``strict=True`` malformed gate text raises ``GateParseError``;
        otherwise it is kept in ``unparsed_gates``.
        """
        gates: list[GateConstraint] = []
        unparsed: list[str] = []
        for text in data.get("gates") or ():
            try:
                gates.append(GateConstraint.parse(text))
            except GateParseError:
                if strict:
                    raise
                unparsed.append(str(text))
        return cls(
            id=id if id is not None else data.get("id", ""),
            description=data.get("description", ""),
            type=data.get("type", "emotion"),
            weights=dict(data.get("weights") or {}),
            gates=tuple(gates),
            unparsed_gates=tuple(unparsed),
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "description": self.description,
            "type": self.type,
            "weights": dict(self.weights),
            "gates": [g.original_string for g in self.gates] + list(self.unparsed_gates),
        }

    @property
    def domain(self) -> AxisInterval:
        return AxisInterval.for_prototype_type(self.type)

    def active_axes(self, epsilon: float = 0.0) -> list[str]:
        """Axes with ``|weight| > epsilon``, sorted alphabetically."""
        return sorted(axis for axis, w in self.weights.items() if abs(w) > epsilon)

    def gate_axes(self) -> list[str]:
        seen: dict[str, None] = {}
        for gate in self.gates:
            seen.setdefault(gate.axis, None)
        return list(seen)

    def gates_on(self, axis: str) -> list[GateConstraint]:
        return [gate for gate in self.gates if gate.axis == axis]


def axis_domain_resolver(prototypes: Iterable[Prototype]) -> Callable[[str], AxisInterval]:
    """Map each axis to the domain of the prototype type that uses it.

    An axis belongs to the first prototype weighting it; axes that are only
    gated take the domain of the first prototype gating them. Axes nobody
    mentions fall back to the mood domain.
    """
    prototypes = list(prototypes)
    domains: dict[str, AxisInterval] = {}
    for prototype in prototypes:
        for axis in prototype.weights:
            domains.setdefault(axis, prototype.domain)
    for prototype in prototypes:
        for axis in prototype.gate_axes():
            domains.setdefault(axis, prototype.domain)
    fallback = AxisInterval.for_mood_axis()
    return lambda axis: domains.get(axis, fallback)
