"""Unit tests for reachability.py module."""

import math

import pytest

from protodiag.config import DiagnosticsConfig
from protodiag.intervals import AxisInterval
from protodiag.prototype import Prototype
from protodiag.reachability import (
    Branch,
    BranchReachability,
    KnifeEdge,
    ReachabilityAnalyzer,
    ThresholdRequirement,
)


def create_test_prototype(proto_id="p", weights=None, gates=(), proto_type="emotion", description=""):
    """Helper function to create a test prototype from gate text."""
    return Prototype.from_dict(
        {
            "id": proto_id,
            "description": description,
            "type": proto_type,
            "weights": weights if weights is not None else {"valence": 1.0},
            "gates": list(gates),
        }
    )


def create_analyzer(*prototypes, **config_overrides):
    return ReachabilityAnalyzer(list(prototypes), DiagnosticsConfig(**config_overrides))


class TestMaxPossible:
    """Test the corner-solution maximum."""

    def test_corner_solution(self):
        """Test positive weights take the upper bound and negative the lower bound."""
        intervals = {"a": AxisInterval(0.0, 1.0), "b": AxisInterval(-1.0, 1.0)}
        result = ReachabilityAnalyzer.max_possible({"a": 1.0, "b": -1.0}, intervals, AxisInterval.for_mood_axis())
        assert result == pytest.approx(2.0)

    def test_unconstrained_axes_use_domain(self):
        """Test axes without gates use the full domain."""
        result = ReachabilityAnalyzer.max_possible({"a": 0.5, "b": -0.5}, {}, AxisInterval.for_sexual_axis())
        assert result == pytest.approx(0.5)

    def test_gated_axes_without_weight_contribute_nothing(self):
        """Test intervals on unweighted axes are ignored."""
        intervals = {"z": AxisInterval(0.9, 1.0)}
        result = ReachabilityAnalyzer.max_possible({"a": 1.0}, intervals, AxisInterval.for_mood_axis())
        assert result == pytest.approx(1.0)

    def test_empty_weighted_interval_is_finite_sentinel(self):
        """Test an impossible weighted axis gives the finite infeasible bounds."""
        intervals = {"a": AxisInterval(0.6, 0.2)}
        assert ReachabilityAnalyzer.max_possible({"a": 1.0}, intervals, AxisInterval.for_mood_axis()) == 0.0
        assert ReachabilityAnalyzer.min_possible({"a": 1.0}, intervals, AxisInterval.for_mood_axis()) == 1.0

    def test_min_corner_solution(self):
        """Test the minimum takes the lower bound for positive weights and the upper otherwise."""
        intervals = {"a": AxisInterval(0.2, 1.0), "b": AxisInterval(-1.0, 0.5)}
        result = ReachabilityAnalyzer.min_possible({"a": 1.0, "b": -1.0}, intervals, AxisInterval.for_mood_axis())
        assert result == pytest.approx(-0.3)


class TestAnalyzePrototype:
    """Test single-prototype reachability."""

    def test_unreachable_summary(self):
        """Test an upper gate below the threshold is unreachable with a gap."""
        analyzer = create_analyzer(create_test_prototype("p", {"valence": 1.0}, ["valence <= 0.4"]))
        result = analyzer.analyze_prototype("p", 0.5)
        assert not result.is_reachable
        assert result.max_possible == pytest.approx(0.4)
        assert result.gap == pytest.approx(0.1)
        assert result.status == "unreachable"
        assert result.to_summary() == "p >= 0.50: UNREACHABLE (max: 0.40, gap: 0.10) - p gates"

    def test_reachable_summary(self):
        """Test the summary omits the gap when reachable."""
        analyzer = create_analyzer(create_test_prototype("p", {"valence": 1.0}, ["valence <= 0.4"]))
        result = analyzer.analyze_prototype("p", 0.3)
        assert result.is_reachable
        assert result.gap == 0.0
        assert result.status == "reachable"
        assert result.to_summary() == "p >= 0.30: REACHABLE (max: 0.40) - p gates"

    def test_threshold_equal_to_max_is_reachable(self):
        """Test reaching exactly the threshold counts as reachable."""
        analyzer = create_analyzer(create_test_prototype("p", {"valence": 0.5}))
        assert analyzer.analyze_prototype("p", 0.5).is_reachable

    def test_strict_gate_relaxed_to_bound(self):
        """Test strict upper gates narrow like their non-strict counterparts."""
        analyzer = create_analyzer(create_test_prototype("p", {"valence": 1.0}, ["valence < 0.5"]))
        assert analyzer.analyze_prototype("p", 0.5).is_reachable

    def test_knife_edge_attached(self):
        """Test a pinned weighted axis is reported as a knife-edge."""
        proto = create_test_prototype("p", {"arousal": 1.0}, ["arousal >= 0.10", "arousal <= 0.115"])
        result = create_analyzer(proto).analyze_prototype("p", 0.1)
        assert result.is_reachable
        assert result.status == "knife-edge"
        assert len(result.knife_edges) == 1
        edge = result.knife_edges[0]
        assert edge.axis == "arousal"
        assert edge.contributing_prototypes == ("p",)
        assert edge.contributing_gates == ("p: arousal >= 0.10", "p: arousal <= 0.115")
        assert result.to_summary().endswith(" [1 knife-edge(s)]")

    def test_knife_edge_on_unweighted_axis_not_attached(self):
        """Test knife-edges only attach when the prototype weights the axis."""
        proto = create_test_prototype("p", {"valence": 1.0}, ["threat >= 0.10", "threat <= 0.11"])
        analyzer = create_analyzer(proto)
        result = analyzer.analyze_prototype("p", 0.5)
        assert result.knife_edges == ()
        edges = analyzer.detect_knife_edges(analyzer.compute_intervals(["p"]), ["p"])
        assert [e.axis for e in edges] == ["threat"]

    def test_sexual_domain(self):
        """Test sexual prototypes use the [0, 1] domain."""
        proto = create_test_prototype("s", {"sex_inhibition": -1.0}, proto_type="sexual")
        result = create_analyzer(proto).analyze_prototype("s", 0.1)
        assert result.max_possible == pytest.approx(0.0)
        assert not result.is_reachable

    def test_unknown_prototype(self):
        """Test unknown ids raise ValueError."""
        with pytest.raises(ValueError, match="Unknown prototype 'missing'"):
            create_analyzer(create_test_prototype()).analyze_prototype("missing", 0.5)


class TestAnalyzeBranch:
    """Test multi-prototype branches."""

    def test_gates_from_every_branch_prototype_apply(self):
        """Test a co-active prototype's gates constrain the requirement."""
        joy = create_test_prototype("joy", {"valence": 1.0}, ["valence >= 0.2"])
        gloom = create_test_prototype("gloom", {"valence": -1.0}, ["valence <= 0.3"])
        branch = Branch(
            branch_id="b1",
            description="joy during gloom",
            prototype_ids=["gloom"],
            requirements=[ThresholdRequirement("joy", 0.5)],
        )
        [result] = create_analyzer(joy, gloom).analyze_branch(branch)
        assert result.max_possible == pytest.approx(0.3)
        assert result.gap == pytest.approx(0.2)
        assert result.branch_description == "joy during gloom"

    def test_knife_edge_contributors_across_prototypes(self):
        """Test knife-edges list every prototype gating the axis."""
        a = create_test_prototype("a", {"x": 1.0}, ["x >= 0.5"])
        b = create_test_prototype("b", {"x": 1.0}, ["x <= 0.51"])
        branch = Branch("ab", "a with b", ["a", "b"], [ThresholdRequirement("a", 0.5)])
        [result] = create_analyzer(a, b).analyze_branch(branch)
        [edge] = result.knife_edges
        assert edge.contributing_prototypes == ("a", "b")
        assert edge.format_contributors() == "a ∧ b"
        assert edge.contributing_gates == ("a: x >= 0.5", "b: x <= 0.51")

    def test_contradictory_gates(self):
        """Test contradictory gates produce an unreachable result and a conflict."""
        proto = create_test_prototype("calm", {"threat": -0.5, "valence": 0.5}, ["threat >= 0.6", "threat <= 0.2"])
        analyzer = create_analyzer(proto)
        result = analyzer.analyze_prototype("calm", 0.1)
        assert result.max_possible == 0.0
        assert result.min_possible == 1.0
        assert not result.is_reachable
        assert result.gap == pytest.approx(0.1)
        assert math.isfinite(result.gap)
        assert result.to_summary() == "calm >= 0.10: UNREACHABLE (max: 0.00, gap: 0.10) - calm gates"
        conflicts = analyzer.detect_conflicts(analyzer.compute_intervals(["calm"]))
        assert [c.axis for c in conflicts] == ["threat"]
        assert "Impossible constraint: threat" in conflicts[0].message

    def test_infeasible_branch_uses_finite_sentinels(self):
        """Test an impossible co-active gate makes every requirement unreachable without infinities."""
        joy = create_test_prototype("joy", {"valence": 1.0, "arousal": 0.5}, ["valence >= 0.2"])
        stuck = create_test_prototype(
            "stuck", {"valence": 0.1}, ["threat >= 0.6", "threat <= 0.2", "arousal >= 0.5", "arousal <= 0.51"]
        )
        branch = Branch("b", "joy while stuck", ["stuck"], [ThresholdRequirement("joy", 0.5)])
        [result] = create_analyzer(joy, stuck).analyze_branch(branch)
        assert result.max_possible == 0.0
        assert result.min_possible == 1.0
        assert result.knife_edges == ()
        assert result.gap == pytest.approx(0.5)

    def test_mixed_types_use_per_axis_domains(self):
        """Test an emotion gate on a sexual axis narrows the sexual domain."""
        mood = create_test_prototype("m", {"valence": 1.0}, ["sex_excitation <= 0.4"])
        sexual = create_test_prototype("s", {"sex_excitation": 1.0}, proto_type="sexual")
        analyzer = create_analyzer(mood, sexual)
        intervals = analyzer.compute_intervals(["m", "s"])
        assert intervals["sex_excitation"] == AxisInterval(0.0, 0.4)
        branch = Branch("ms", "s under m", ["m"], [ThresholdRequirement("s", 0.3, "low")])
        [result] = analyzer.analyze_branch(branch)
        assert result.min_possible == pytest.approx(0.0)


class TestLowDirection:
    """Test requirements that a prototype stay under its threshold."""

    def test_low_prototype_gates_not_enforced(self):
        """Test a low requirement's own gates do not narrow the branch."""
        joy = create_test_prototype("joy", {"valence": 1.0}, ["valence >= 0.2"])
        gloom = create_test_prototype("gloom", {"valence": -1.0}, ["valence <= -0.5"])
        branch = Branch(
            "b",
            "joy without gloom",
            ["joy"],
            [ThresholdRequirement("joy", 0.5), ThresholdRequirement("gloom", 0.3, "low")],
        )
        assert branch.gate_prototype_ids() == ["joy"]
        analyzer = create_analyzer(joy, gloom)
        high, low = analyzer.analyze_branch(branch)
        assert high.is_reachable
        assert low.direction == "low"
        assert low.min_possible == 0.0
        assert low.is_reachable
        assert analyzer.analyze([branch]).conflicts == {}

    def test_always_active_low_prototype_unreachable(self):
        """Test a prototype that cannot be gated out is judged by its corner minimum."""
        alarm = create_test_prototype("alarm", {"threat": 1.0}, ["threat >= 0.6"])
        tense = create_test_prototype("tense", {"threat": 1.0}, ["threat >= 0.0"])
        branch = Branch("b", "alarm", ["alarm"], [ThresholdRequirement("tense", 0.5, "low")])
        [result] = create_analyzer(alarm, tense).analyze_branch(branch)
        assert result.min_possible == pytest.approx(0.6)
        assert not result.is_reachable
        assert result.gap == pytest.approx(0.1)
        assert result.to_summary() == "tense < 0.50: UNREACHABLE (min: 0.60, gap: 0.10) - alarm"

    def test_minimum_equal_to_threshold_is_unreachable(self):
        """Test staying under the threshold is strict."""
        fixed = create_test_prototype("fixed", {"valence": 0.5}, ["valence >= 1.0"])
        branch = Branch("b", "pinned", ["fixed"], [ThresholdRequirement("fixed", 0.5, "low")])
        [result] = create_analyzer(fixed).analyze_branch(branch)
        assert result.min_possible == pytest.approx(0.5)
        assert not result.is_reachable

    def test_ungated_low_prototype(self):
        """Test an ungated prototype is always active and uses its corner minimum."""
        analyzer = create_analyzer(create_test_prototype("restless", {"arousal": 0.5}))
        result = analyzer.analyze_prototype("restless", 0.2, direction="low")
        assert result.min_possible == pytest.approx(-0.5)
        assert result.is_reachable
        assert result.to_summary() == "restless < 0.20: REACHABLE (min: -0.50) - restless gates"

    def test_gated_low_prototype_can_be_inactive(self):
        """Test a gate that can fail drops the minimum to zero."""
        proto = create_test_prototype("p", {"valence": 1.0}, ["valence >= 0.8"])
        result = create_analyzer(proto).analyze_prototype("p", 0.1, direction="low")
        assert result.min_possible == 0.0
        assert result.is_reachable

    def test_invalid_direction(self):
        """Test unknown directions are rejected."""
        with pytest.raises(ValueError, match="direction must be one of high, low"):
            ThresholdRequirement("p", 0.5, "sideways")
        with pytest.raises(ValueError, match="direction must be one of high, low"):
            BranchReachability("b", "desc", "p", "emotion", 0.5, 0.4, direction="up")


class TestReachabilityReport:
    """Test whole-analysis reports."""

    def _analyzer(self, **overrides):
        return create_analyzer(
            create_test_prototype("high", {"valence": 1.0}),
            create_test_prototype("low", {"valence": 1.0}, ["valence <= 0.2"]),
            **overrides,
        )

    def _branches(self):
        return [
            Branch("b_high", "high alone", ["high"], [ThresholdRequirement("high", 0.5)]),
            Branch("b_low", "low alone", ["low"], [ThresholdRequirement("low", 0.5)]),
            Branch("b_both", "high with low", ["high", "low"], [ThresholdRequirement("high", 0.5)]),
        ]

    def test_status_and_queries(self):
        """Test overall status and result lookups."""
        report = self._analyzer().analyze(self._branches())
        assert report.overall_status == "fully_reachable"
        assert report.fully_reachable_branch_ids == ["b_high"]
        assert [r.branch_id for r in report.unreachable()] == ["b_low", "b_both"]
        assert len(report.for_prototype("high")) == 2
        assert len(report.for_branch("b_low")) == 1
        assert report.to_summary().startswith("Status: fully_reachable (1/3 branches fully reachable")

    def test_unreachable_status(self):
        """Test a report with no reachable result."""
        report = self._analyzer().analyze(self._branches()[1:])
        assert report.overall_status == "unreachable"

    def test_branch_limit(self):
        """Test branches beyond max_branches are skipped and counted."""
        report = self._analyzer(max_branches=2).analyze(self._branches())
        assert len(report.branches) == 2
        assert report.truncated_branch_count == 1

    def test_conflicts_recorded_per_branch(self):
        """Test empty intervals are listed under their branch."""
        analyzer = create_analyzer(create_test_prototype("x", {"a": 1.0}, ["a >= 0.5", "a <= 0.1"]))
        report = analyzer.analyze([Branch("bx", "x", ["x"], [ThresholdRequirement("x", 0.1)])])
        assert list(report.conflicts) == ["bx"]


class TestFeasibilityVolume:
    """Test feasibility volume estimation."""

    def test_product_of_constrained_widths(self):
        """Test normalized widths multiply."""
        intervals = {"a": AxisInterval(0.0, 0.5), "b": AxisInterval(-1.0, 0.0)}
        assert ReachabilityAnalyzer.feasibility_volume(intervals) == pytest.approx(0.25 * 0.5)

    def test_unconstrained_is_one(self):
        """Test full-range axes do not count as constrained."""
        assert ReachabilityAnalyzer.feasibility_volume({"a": AxisInterval(-1.0, 1.0)}) == 1.0

    def test_empty_is_zero(self):
        """Test an empty interval gives zero volume."""
        assert ReachabilityAnalyzer.feasibility_volume({"a": AxisInterval(0.5, 0.1)}) == 0.0

    @pytest.mark.parametrize(
        "volume, category",
        [
            (0.0, "impossible"),
            (0.0005, "extremely_unlikely"),
            (0.005, "very_unlikely"),
            (0.05, "unlikely"),
            (0.3, "moderate"),
            (0.8, "likely"),
        ],
    )
    def test_interpret_volume(self, volume, category):
        """Test volume categories."""
        assert ReachabilityAnalyzer.interpret_volume(volume)[0] == category


class TestKnifeEdge:
    """Test the knife-edge descriptor."""

    def test_severity(self):
        """Test severity tiers by width."""
        assert KnifeEdge("x", 0.1, 0.1).severity == "critical"
        assert KnifeEdge("x", 0.2, 0.205).severity == "warning"
        assert KnifeEdge("x", 0.2, 0.215).severity == "info"

    def test_formatting(self):
        """Test interval and contributor rendering."""
        assert KnifeEdge("x", 0.1, 0.1).format_interval() == "exactly 0.10"
        assert KnifeEdge("x", 0.25, 0.6).format_interval() == "[0.25, 0.60]"
        assert KnifeEdge("x", 0.1, 0.1).format_contributors() == "unknown"

    def test_threshold(self):
        """Test the below-threshold check is inclusive."""
        edge = KnifeEdge("x", 0.2, 0.215)
        assert edge.is_below_threshold()
        assert not edge.is_below_threshold(0.01)

    def test_validation(self):
        """Test invalid knife-edges are rejected."""
        with pytest.raises(ValueError, match="non-empty axis"):
            KnifeEdge("", 0.0, 0.1)
        with pytest.raises(ValueError, match="cannot be less than min"):
            KnifeEdge("x", 0.5, 0.4)
        with pytest.raises(ValueError, match="must be a list"):
            KnifeEdge("x", 0.1, 0.1, contributing_prototypes="a")

    def test_dict_round_trip(self):
        """Test serialization preserves primary fields."""
        edge = KnifeEdge("x", 0.1, 0.11, ("a",), ("a: x >= 0.1",))
        assert KnifeEdge.from_dict(edge.to_dict()) == edge


class TestBranchReachabilitySerialization:
    """Test derive-don't-trust deserialization."""

    def test_tampered_derived_fields_are_recomputed(self):
        """Test persisted isReachable, gap and status are ignored."""
        original = BranchReachability("b", "desc", "p", "emotion", threshold=0.5, max_possible=0.4)
        data = original.to_dict()
        assert data["isReachable"] is False
        data.update({"isReachable": True, "gap": 0.0, "status": "reachable"})
        restored = BranchReachability.from_dict(data)
        assert restored.is_reachable is False
        assert restored.gap == pytest.approx(0.1)
        assert restored.status == "unreachable"
        assert restored == original

    def test_knife_edges_survive(self):
        """Test knife-edges are restored."""
        edge = KnifeEdge("x", 0.1, 0.1, ("p",), ("p: x == 0.1",))
        original = BranchReachability("b", "desc", "p", "emotion", 0.1, 0.1, (edge,))
        restored = BranchReachability.from_dict(original.to_dict())
        assert restored.knife_edges == (edge,)
        assert restored.status == "knife-edge"

    def test_validation(self):
        """Test missing primary fields are rejected."""
        with pytest.raises(ValueError, match="branch_id"):
            BranchReachability.from_dict({"prototypeId": "p", "threshold": 0.5, "maxPossible": 0.1})
