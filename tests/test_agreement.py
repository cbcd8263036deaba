"""Unit tests for agreement.py module."""

import math

import numpy as np
import pytest

from protodiag.agreement import AgreementMetricsCalculator, PrototypeOutputVector
from protodiag.config import DiagnosticsConfig


def vector(gates, intensities):
    return PrototypeOutputVector(np.array(gates, dtype=bool), np.array(intensities, dtype=float))


class TestPrototypeOutputVector:
    """Test output vector validation."""

    def test_gated_intensities(self):
        """Test failed gates zero the intensity."""
        v = vector([True, False, True], [0.5, 0.9, 0.2])
        np.testing.assert_allclose(v.gated_intensities, [0.5, 0.0, 0.2])
        assert v.pass_count == 2
        assert v.size == 3

    def test_length_mismatch(self):
        """Test unequal arrays are rejected."""
        with pytest.raises(ValueError, match="equal length"):
            vector([True, False], [0.5])

    def test_non_finite(self):
        """Test NaN intensities are rejected."""
        with pytest.raises(ValueError, match="finite"):
            vector([True], [math.nan])


class TestAgreementMetricsCalculator:
    """Test vectorised agreement metrics."""

    def test_identical_vectors(self):
        """Test a vector compared with itself agrees perfectly."""
        v = vector([True, True, True, True], [0.1, 0.5, 0.8, 0.9])
        m = AgreementMetricsCalculator(DiagnosticsConfig(min_pass_samples_for_conditional=1)).calculate(v, v)
        assert m.co_pass_count == 4
        assert m.activation_jaccard == 1.0
        assert m.pearson_co_pass == pytest.approx(1.0)
        assert m.mae_co_pass == 0.0
        assert m.rmse_co_pass == 0.0
        assert m.pct_within_eps == 1.0
        assert m.dominance_p == 0.0
        assert m.mae_global == 0.0
        assert m.p_a_given_b == 1.0
        assert m.p_b_given_a == 1.0
        for entry in m.high_coactivation:
            assert entry.high_jaccard == 1.0
            assert entry.high_agreement == 1.0

    def test_counts_and_rates(self):
        """Test pass, co-pass and either counts."""
        a = vector([True, True, False, False], [0.6, 0.2, 0.0, 0.0])
        b = vector([True, False, True, False], [0.4, 0.0, 0.7, 0.0])
        m = AgreementMetricsCalculator().calculate(a, b)
        assert (m.pass_a_count, m.pass_b_count, m.co_pass_count, m.on_either_count) == (2, 2, 1, 3)
        assert m.activation_jaccard == pytest.approx(1 / 3)
        assert m.pass_a_rate == 0.5
        assert m.p_only_count == 1
        assert m.q_only_count == 1

    def test_co_pass_errors(self):
        """Test co-pass MAE and RMSE only use samples where both pass."""
        a = vector([True, True, True], [0.9, 0.5, 0.9])
        b = vector([True, True, False], [0.5, 0.4, 0.9])
        m = AgreementMetricsCalculator().calculate(a, b)
        assert m.mae_co_pass == pytest.approx((0.4 + 0.1) / 2)
        assert m.rmse_co_pass == pytest.approx(math.sqrt((0.16 + 0.01) / 2))
        assert m.dominance_p == 1.0
        assert m.dominance_q == 0.0
        # Global metrics see B's gated-out third sample as 0.
        assert m.mae_global == pytest.approx((0.4 + 0.1 + 0.9) / 3)

    def test_no_co_pass(self):
        """Test distributional metrics are NaN while dominance stays 0."""
        a = vector([True, False, True, False], [0.9, 0.0, 0.3, 0.0])
        b = vector([False, True, False, True], [0.0, 0.8, 0.0, 0.2])
        m = AgreementMetricsCalculator().calculate(a, b)
        assert m.co_pass_count == 0
        assert math.isnan(m.pearson_co_pass)
        assert math.isnan(m.mae_co_pass)
        assert math.isnan(m.rmse_co_pass)
        assert math.isnan(m.pct_within_eps)
        assert m.dominance_p == 0.0
        assert m.dominance_q == 0.0
        assert m.activation_jaccard == 0.0

    def test_min_co_pass_guardrail(self):
        """Test co-pass metrics stay NaN below min_co_pass_samples."""
        a = vector([True, True, False], [0.9, 0.5, 0.0])
        b = vector([True, True, False], [0.5, 0.48, 0.0])
        m = AgreementMetricsCalculator(DiagnosticsConfig(min_co_pass_samples=3)).calculate(a, b)
        assert math.isnan(m.mae_co_pass)
        assert m.dominance_p == pytest.approx(0.5)

    def test_conditional_guardrail_boundary(self):
        """Test conditional probabilities need the minimum pass count exactly."""
        config = DiagnosticsConfig(min_pass_samples_for_conditional=3)
        calculator = AgreementMetricsCalculator(config)
        always = vector([True] * 4, [0.5] * 4)
        m_short = calculator.calculate(vector([True, True, False, False], [0.5] * 4), always)
        assert math.isnan(m_short.p_b_given_a)
        assert m_short.p_b_given_a_interval is None
        assert m_short.p_a_given_b == pytest.approx(0.5)
        m_exact = calculator.calculate(vector([True, True, True, False], [0.5] * 4), always)
        assert m_exact.p_b_given_a == 1.0
        assert m_exact.p_b_given_a_interval is not None
        assert m_exact.p_b_given_a_interval.lower > 0.0
        assert m_exact.p_b_given_a_interval.upper == pytest.approx(1.0)

    def test_high_coactivation_denominators(self):
        """Test high rates use either-pass samples and Jaccard uses either-high."""
        config = DiagnosticsConfig(high_thresholds=(0.5,))
        a = vector([True, True, True, False], [0.8, 0.6, 0.2, 0.0])
        b = vector([True, False, True, False], [0.7, 0.0, 0.1, 0.0])
        [entry] = AgreementMetricsCalculator(config).calculate(a, b).high_coactivation
        # Three samples pass either; A is high twice, B once, both once.
        assert entry.p_high_a == pytest.approx(2 / 3)
        assert entry.p_high_b == pytest.approx(1 / 3)
        assert entry.p_high_both == pytest.approx(1 / 3)
        assert entry.high_jaccard == pytest.approx(1 / 2)
        assert entry.high_agreement == pytest.approx(2 / 3)

    def test_high_jaccard_zero_when_nobody_high(self):
        """Test no high samples gives a Jaccard of 0."""
        config = DiagnosticsConfig(high_thresholds=(0.9,))
        a = vector([True, True], [0.1, 0.2])
        [entry] = AgreementMetricsCalculator(config).calculate(a, a).high_coactivation
        assert entry.high_jaccard == 0.0
        assert entry.high_agreement == 1.0

    def test_empty_vectors(self):
        """Test zero samples give zero rates and NaN globals."""
        empty = vector([], [])
        m = AgreementMetricsCalculator().calculate(empty, empty)
        assert m.sample_count == 0
        assert m.pass_a_rate == 0.0
        assert math.isnan(m.mae_global)
        assert math.isnan(m.pearson_global)

    def test_misaligned_vectors(self):
        """Test vectors of different length are rejected."""
        with pytest.raises(ValueError, match="aligned"):
            AgreementMetricsCalculator().calculate(vector([True], [0.1]), vector([True, True], [0.1, 0.2]))
