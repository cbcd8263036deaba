"""Gate constraints: parsed ``axis OP value`` predicates on a single axis.

A gate is the textual threshold a prototype's state must satisfy before the
prototype may activate, for example ``"threat <= 0.20"``. This module parses
and validates gates, narrows axis intervals with them, evaluates them against
concrete values, and extracts per-axis intervals from a prototype's gate set.
"""

from __future__ import annotations

import math
import re
from dataclasses import dataclass, field
from typing import Iterable, Mapping

from .intervals import AxisInterval


OPERATORS = (">=", "<=", ">", "<", "==")

# Tolerance for "==" gates; exact float equality is never used.
EQUALITY_EPSILON = 1.0e-9

_GATE_PATTERN = re.compile(
    r"^\s*(?P<axis>\w+)\s*(?P<op>>=|<=|==|>|<)\s*(?P<value>[+-]?(?:\d+\.?\d*|\.\d+))\s*$"
)


class GateParseError(ValueError):
    """Raised when gate text does not match ``<axis> <op> <number>``."""

    def __init__(self, text: object, reason: str = "expected '<axis> <op> <number>'") -> None:
        self.text = text
        super().__init__(f"Cannot parse gate {text!r}: {reason}.")


@dataclass(frozen=True, slots=True)
class GateConstraint:
    """Validated threshold predicate ``axis OP value``.

    Attributes:
        axis: Name of the constrained axis (letters, digits, underscores).
        operator: One of ``>=``, ``<=``, ``>``, ``<``, ``==``.
        value: Finite threshold.
        original_string: Source text the gate was parsed from, or the
            canonical form when built directly.
    """

    axis: str
    operator: str
    value: float
    original_string: str = ""

    def __post_init__(self) -> None:
        if not isinstance(self.axis, str) or not self.axis.strip():
            raise ValueError(f"GateConstraint requires a non-empty axis name, got {self.axis!r}.")
        if self.operator not in OPERATORS:
            raise ValueError(
                f"GateConstraint operator must be one of {', '.join(OPERATORS)}, "
                f"got {self.operator!r}."
            )
        if (
            not isinstance(self.value, (int, float))
            or isinstance(self.value, bool)
            or not math.isfinite(self.value)
        ):
            raise ValueError(
                f"GateConstraint value must be a finite number, got {self.value!r} "
                f"for axis {self.axis!r}."
            )
        object.__setattr__(self, "value", float(self.value))
        if not self.original_string:
            object.__setattr__(self, "original_string", self.canonical())

    @classmethod
    def parse(cls, text: str) -> "GateConstraint":
        """Parse ``"<axis> <op> <value>"``; whitespace around tokens is optional."""
        if not isinstance(text, str):
            raise GateParseError(text, "gate must be a string")
        match = _GATE_PATTERN.match(text)
        if match is None:
            raise GateParseError(text)
        return cls(
            axis=match.group("axis"),
            operator=match.group("op"),
            value=float(match.group("value")),
            original_string=text,
        )

    def canonical(self) -> str:
        return f"{self.axis} {self.operator} {self.value:g}"

    def apply_to(self, interval: AxisInterval) -> AxisInterval:
        """Narrow ``interval`` by this gate.

        Strict operators narrow to the same bound as their non-strict
        counterparts, so ``x > 0.5`` yields ``[0.5, max]``. This slightly
        overstates reachability at the exact boundary.
        """
        if self.operator in (">=", ">"):
            return interval.narrow(self.value, interval.max)
        if self.operator in ("<=", "<"):
            return interval.narrow(interval.min, self.value)
        return interval.narrow(self.value, self.value)

    def is_satisfied_by(self, x: float) -> bool:
        if self.operator == ">=":
            return x >= self.value
        if self.operator == "<=":
            return x <= self.value
        if self.operator == ">":
            return x > self.value
        if self.operator == "<":
            return x < self.value
        return abs(x - self.value) <= EQUALITY_EPSILON

    def violation_amount(self, x: float) -> float:
        """Distance from ``x`` to the nearest value satisfying the gate (0 if satisfied)."""
        if self.is_satisfied_by(x):
            return 0.0
        if self.operator in (">=", ">"):
            return max(self.value - x, 0.0) or EQUALITY_EPSILON
        if self.operator in ("<=", "<"):
            return max(x - self.value, 0.0) or EQUALITY_EPSILON
        return abs(x - self.value)

    def can_fail_within(self, interval: AxisInterval) -> bool:
        """True if some value of a non-empty ``interval`` violates the gate."""
        if self.operator == ">=":
            return interval.min < self.value
        if self.operator == "<=":
            return interval.max > self.value
        if self.operator == ">":
            return interval.min <= self.value
        if self.operator == "<":
            return interval.max >= self.value
        return (
            interval.min < self.value - EQUALITY_EPSILON
            or interval.max > self.value + EQUALITY_EPSILON
        )

    def __str__(self) -> str:
        return self.original_string


@dataclass(slots=True)
class ParsedGates:
    """Result of extracting axis intervals from a gate set.

    ``parse_status`` is ``complete`` when every gate parsed (including an
    empty gate set), ``partial`` when some failed and ``failed`` when none
    parsed.
    """

    parse_status: str
    intervals: dict[str, AxisInterval]
    constraints: list[GateConstraint] = field(default_factory=list)
    unparsed_gates: list[str] = field(default_factory=list)


class GateConstraintExtractor:
    """Turn a prototype's gates into per-axis intervals.

    Accepts either an object with ``gates`` (parsed constraints),
    ``unparsed_gates`` and ``type`` attributes, or a plain iterable of gate
    strings / ``GateConstraint`` objects.
    """

    def __init__(self, domain: AxisInterval | None = None) -> None:
        self.domain = domain

    def extract(self, source: object) -> ParsedGates:
        constraints: list[GateConstraint] = []
        unparsed: list[str] = []
        domain = self.domain

        if hasattr(source, "gates"):
            gates: Iterable[object] = getattr(source, "gates") or ()
            unparsed.extend(str(g) for g in getattr(source, "unparsed_gates", ()) or ())
            if domain is None:
                domain = AxisInterval.for_prototype_type(getattr(source, "type", "emotion"))
        else:
            gates = source or ()

        for gate in gates:
            if isinstance(gate, GateConstraint):
                constraints.append(gate)
                continue
            try:
                constraints.append(GateConstraint.parse(gate))  # type: ignore[arg-type]
            except GateParseError:
                unparsed.append(str(gate))

        domain = domain or AxisInterval.for_mood_axis()
        intervals = fold_constraints(constraints, lambda _axis: domain)

        total = len(constraints) + len(unparsed)
        if not unparsed:
            status = "complete"
        elif constraints:
            status = "partial"
        else:
            status = "failed"
        return ParsedGates(
            parse_status=status if total else "complete",
            intervals=intervals,
            constraints=constraints,
            unparsed_gates=unparsed,
        )


def fold_constraints(
    constraints: Iterable[GateConstraint],
    domain_for_axis,
    intervals: Mapping[str, AxisInterval] | None = None,
) -> dict[str, AxisInterval]:
    """Fold every constraint's ``apply_to`` over its axis interval.

    Axes are initialised on first use from ``domain_for_axis(axis)``.
    """
    result = dict(intervals or {})
    for constraint in constraints:
        current = result.get(constraint.axis)
        if current is None:
            current = domain_for_axis(constraint.axis)
        result[constraint.axis] = constraint.apply_to(current)
    return result
