"""Unit tests for gates.py module."""

import math

import pytest

from protodiag.gates import (
    EQUALITY_EPSILON,
    GateConstraint,
    GateConstraintExtractor,
    GateParseError,
)
from protodiag.intervals import AxisInterval
from protodiag.prototype import Prototype


class TestGateParsing:
    """Test parsing gate text."""

    def test_parse_basic(self):
        """Test parsing a well-formed gate keeps the source text."""
        gate = GateConstraint.parse("threat <= 0.20")
        assert gate.axis == "threat"
        assert gate.operator == "<="
        assert gate.value == pytest.approx(0.2)
        assert gate.original_string == "threat <= 0.20"
        assert str(gate) == "threat <= 0.20"

    def test_parse_negative_value_without_spaces(self):
        """Test whitespace is optional and values may be negative."""
        gate = GateConstraint.parse("valence>=-0.5")
        assert gate.axis == "valence"
        assert gate.operator == ">="
        assert gate.value == pytest.approx(-0.5)

    @pytest.mark.parametrize("op", [">=", "<=", ">", "<", "=="])
    def test_parse_every_operator(self, op):
        """Test every supported operator parses."""
        assert GateConstraint.parse(f"arousal {op} 0.3").operator == op

    @pytest.mark.parametrize("text", ["threat is high", "threat >=", ">= 0.5", "threat => 0.5", ""])
    def test_parse_failure_echoes_text(self, text):
        """Test malformed text raises GateParseError naming the input."""
        with pytest.raises(GateParseError) as excinfo:
            GateConstraint.parse(text)
        assert repr(text) in str(excinfo.value)
        assert excinfo.value.text == text

    def test_parse_error_is_value_error(self):
        """Test GateParseError can be caught as ValueError."""
        with pytest.raises(ValueError):
            GateConstraint.parse("nonsense")

    def test_parse_non_string(self):
        """Test non-string input is rejected."""
        with pytest.raises(GateParseError):
            GateConstraint.parse(0.5)


class TestGateConstruction:
    """Test direct construction validation."""

    def test_blank_axis(self):
        """Test whitespace-only axis names are rejected."""
        with pytest.raises(ValueError, match="non-empty axis"):
            GateConstraint("   ", ">=", 0.5)

    def test_unknown_operator(self):
        """Test operators outside the allowed set are rejected."""
        with pytest.raises(ValueError, match="operator must be one of"):
            GateConstraint("threat", "=>", 0.5)

    @pytest.mark.parametrize("value", [math.nan, math.inf, -math.inf, "0.5", True])
    def test_non_finite_value(self, value):
        """Test non-finite or non-numeric values are rejected."""
        with pytest.raises(ValueError, match="finite number"):
            GateConstraint("threat", ">=", value)

    def test_canonical_original_string(self):
        """Test directly built gates get a canonical source string."""
        gate = GateConstraint("threat", "<", 0.25)
        assert gate.original_string == "threat < 0.25"


class TestGateApplyTo:
    """Test interval narrowing."""

    def test_lower_bound_operators(self):
        """Test >= and > narrow the lower bound to the same value."""
        domain = AxisInterval.for_mood_axis()
        assert GateConstraint.parse("x >= 0.3").apply_to(domain) == AxisInterval(0.3, 1.0)
        assert GateConstraint.parse("x > 0.3").apply_to(domain) == AxisInterval(0.3, 1.0)

    def test_upper_bound_operators(self):
        """Test <= and < narrow the upper bound."""
        domain = AxisInterval.for_mood_axis()
        assert GateConstraint.parse("x <= 0.2").apply_to(domain) == AxisInterval(-1.0, 0.2)
        assert GateConstraint.parse("x < 0.2").apply_to(domain) == AxisInterval(-1.0, 0.2)

    def test_equality_collapses_to_point(self):
        """Test == collapses the interval to a single point."""
        result = GateConstraint.parse("x == 0.1").apply_to(AxisInterval.for_mood_axis())
        assert result == AxisInterval(0.1, 0.1)

    @pytest.mark.parametrize("text", ["x >= 0.3", "x > -0.2", "x <= 0.2", "x < 0.9", "x == 0.1"])
    def test_idempotent_and_narrowing(self, text):
        """Test applying a gate twice changes nothing and never widens."""
        gate = GateConstraint.parse(text)
        domain = AxisInterval.for_mood_axis()
        once = gate.apply_to(domain)
        assert gate.apply_to(once) == once
        assert once.is_subset_of(domain)


class TestGateSatisfaction:
    """Test evaluation against concrete values."""

    def test_strict_boundaries(self):
        """Test strict and non-strict comparisons at the boundary."""
        assert GateConstraint.parse("x >= 0.5").is_satisfied_by(0.5)
        assert not GateConstraint.parse("x > 0.5").is_satisfied_by(0.5)
        assert GateConstraint.parse("x <= 0.5").is_satisfied_by(0.5)
        assert not GateConstraint.parse("x < 0.5").is_satisfied_by(0.5)

    def test_equality_uses_tolerance(self):
        """Test == accepts values within the fixed epsilon."""
        gate = GateConstraint.parse("x == 0.1")
        assert gate.is_satisfied_by(0.1 + EQUALITY_EPSILON / 2)
        assert not gate.is_satisfied_by(0.1 + 1.0e-6)

    def test_violation_amount_distance(self):
        """Test violation is the distance to the nearest satisfying value."""
        assert GateConstraint.parse("x >= 0.5").violation_amount(0.2) == pytest.approx(0.3)
        assert GateConstraint.parse("x <= 0.5").violation_amount(0.9) == pytest.approx(0.4)
        assert GateConstraint.parse("x == 0.5").violation_amount(0.1) == pytest.approx(0.4)

    @pytest.mark.parametrize("text", ["x >= 0.5", "x > 0.5", "x <= 0.5", "x < 0.5", "x == 0.5"])
    @pytest.mark.parametrize("value", [-1.0, 0.0, 0.49, 0.5, 0.51, 1.0])
    def test_satisfied_iff_zero_violation(self, text, value):
        """Test is_satisfied_by agrees with violation_amount == 0."""
        gate = GateConstraint.parse(text)
        assert gate.is_satisfied_by(value) == (gate.violation_amount(value) == 0)
        assert gate.violation_amount(value) >= 0

    @pytest.mark.parametrize(
        "text, bounds, expected",
        [
            ("x >= 0.5", (0.5, 1.0), False),
            ("x >= 0.5", (0.4, 1.0), True),
            ("x > 0.5", (0.5, 1.0), True),
            ("x <= 0.5", (-1.0, 0.5), False),
            ("x < 0.5", (-1.0, 0.5), True),
            ("x == 0.5", (0.5, 0.5), False),
            ("x == 0.5", (0.5, 0.6), True),
        ],
    )
    def test_can_fail_within(self, text, bounds, expected):
        """Test whether an interval holds a value violating the gate."""
        assert GateConstraint.parse(text).can_fail_within(AxisInterval(*bounds)) is expected


class TestGateConstraintExtractor:
    """Test per-axis interval extraction."""

    def test_complete_from_strings(self):
        """Test a fully parseable gate list."""
        parsed = GateConstraintExtractor().extract(["threat <= 0.2", "threat >= -0.5", "valence >= 0.1"])
        assert parsed.parse_status == "complete"
        assert parsed.intervals["threat"] == AxisInterval(-0.5, 0.2)
        assert parsed.intervals["valence"] == AxisInterval(0.1, 1.0)
        assert parsed.unparsed_gates == []

    def test_partial(self):
        """Test a mix of parseable and malformed gates."""
        parsed = GateConstraintExtractor().extract(["threat <= 0.2", "threat is low"])
        assert parsed.parse_status == "partial"
        assert parsed.unparsed_gates == ["threat is low"]
        assert "threat" in parsed.intervals

    def test_failed(self):
        """Test nothing parseable."""
        parsed = GateConstraintExtractor().extract(["mood: happy"])
        assert parsed.parse_status == "failed"
        assert parsed.intervals == {}

    def test_empty_gate_set_is_complete(self):
        """Test an ungated prototype counts as completely parsed."""
        assert GateConstraintExtractor().extract([]).parse_status == "complete"

    def test_from_prototype_uses_type_domain(self):
        """Test prototypes supply both unparsed gates and their axis domain."""
        proto = Prototype.from_dict(
            {"id": "s", "type": "sexual", "weights": {"sex_excitation": 1.0}, "gates": ["sex_excitation <= 0.5", "bad gate"]},
            strict=False,
        )
        parsed = GateConstraintExtractor().extract(proto)
        assert parsed.parse_status == "partial"
        assert parsed.intervals["sex_excitation"] == AxisInterval(0.0, 0.5)
        assert parsed.unparsed_gates == ["bad gate"]
