"""Tests for Benjamini-Hochberg q-values in -log space.

Tests cover:
1. Known q-values for a small p-value list
2. Monotonicity from best to worst p-value
3. pi0 scaling
4. Mapping p-values back to q-values (ties, not-applicable values)
"""

import math

import numpy as np
import pytest

from alphapsm.constants import P_VALUE_NA
from alphapsm.match import Match, Peptide
from alphapsm.scoring.qvalue import (
    assign_qvalues,
    compute_log_qvalues,
    lookup_log_qvalues,
    qvalues_from_log,
)
from alphapsm.scoring.score_types import ScoreType
from alphapsm.spectrum import SpectrumReference


def bh_reference(pvalues, pi0=1.0):
    """Plain p-space BH for ascending p-values."""
    n = len(pvalues)
    q = np.array([p * n / (i + 1) * pi0 for i, p in enumerate(pvalues)])
    for i in range(n - 2, -1, -1):
        q[i] = min(q[i], q[i + 1])
    return q


class TestComputeLogQvalues:
    """BH step-up pass."""

    def test_known_values(self):
        log_p = np.array([5.0, 3.0, 1.0])

        q = qvalues_from_log(compute_log_qvalues(log_p))

        np.testing.assert_allclose(
            q, [3 * math.exp(-5.0), 1.5 * math.exp(-3.0), math.exp(-1.0)]
        )

    def test_matches_pspace_reference(self):
        rng = np.random.default_rng(0)
        pvalues = np.sort(rng.uniform(0.0, 1.0, 200))
        log_p = -np.log(pvalues)

        q = qvalues_from_log(compute_log_qvalues(log_p))

        np.testing.assert_allclose(q, bh_reference(pvalues), rtol=1e-10)

    def test_monotone_from_best_to_worst(self):
        rng = np.random.default_rng(1)
        log_p = np.sort(-np.log(rng.uniform(0.0, 1.0, 500)))[::-1]

        q = qvalues_from_log(compute_log_qvalues(log_p))

        assert np.all(np.diff(q) >= 0)

    def test_step_up_lowers_earlier_qvalues(self):
        # raw q of the first value (0.2 * 2 = 0.4) exceeds the second (0.3)
        log_p = -np.log(np.array([0.2, 0.3]))

        q = qvalues_from_log(compute_log_qvalues(log_p))

        np.testing.assert_allclose(q, [0.3, 0.3])

    def test_pi0_scales_qvalues(self):
        log_p = np.array([6.0, 4.0, 2.0])

        q_full = qvalues_from_log(compute_log_qvalues(log_p, pi0=1.0))
        q_half = qvalues_from_log(compute_log_qvalues(log_p, pi0=0.5))

        np.testing.assert_allclose(q_half, 0.5 * q_full)

    def test_invalid_pi0(self):
        with pytest.raises(ValueError):
            compute_log_qvalues(np.array([1.0]), pi0=0.0)

    def test_empty(self):
        assert len(compute_log_qvalues(np.array([]))) == 0


class TestLookup:
    """Back-mapping of p-values to q-values."""

    def test_lookup_in_original_order(self):
        sorted_log_p = np.array([5.0, 3.0, 1.0])
        log_q = compute_log_qvalues(sorted_log_p)

        result = lookup_log_qvalues(np.array([1.0, 5.0, 3.0]), sorted_log_p, log_q)

        np.testing.assert_allclose(result, log_q[[2, 0, 1]])

    def test_not_applicable_is_nan(self):
        sorted_log_p = np.array([5.0, 3.0])
        log_q = compute_log_qvalues(sorted_log_p)

        result = lookup_log_qvalues(np.array([P_VALUE_NA, 3.0]), sorted_log_p, log_q)

        assert np.isnan(result[0])
        assert result[1] == pytest.approx(log_q[1])

    def test_ties_take_first_entry(self):
        sorted_log_p = np.array([4.0, 2.0, 2.0, 1.0])
        log_q = compute_log_qvalues(sorted_log_p)

        result = lookup_log_qvalues(np.array([2.0]), sorted_log_p, log_q)

        assert result[0] == log_q[1]

    def test_unknown_value_is_nan(self):
        sorted_log_p = np.array([4.0, 2.0])
        log_q = compute_log_qvalues(sorted_log_p)

        assert np.isnan(lookup_log_qvalues(np.array([3.0]), sorted_log_p, log_q)[0])

    def test_infinite_pvalue_found(self):
        sorted_log_p = np.array([np.inf, 5.0, 1.0])
        log_q = compute_log_qvalues(sorted_log_p)

        result = lookup_log_qvalues(np.array([1.0, np.inf]), sorted_log_p, log_q)

        assert result[0] == pytest.approx(log_q[2])
        assert result[1] == np.inf


class TestAssignQvalues:
    """q-values stored on matches."""

    @staticmethod
    def make_matches(log_pvalues):
        matches = []
        for scan, log_p in enumerate(log_pvalues):
            match = Match(Peptide("PEPTIDEK", 927.45), SpectrumReference(scan, 464.7), 2)
            match.set_score(ScoreType.LOGP_BONF_WEIBULL_XCORR, log_p)
            matches.append(match)
        return matches

    def test_underflowed_pvalue_gets_qvalue(self):
        matches = self.make_matches([np.inf, 5.0, 1.0])

        n_pvalues = assign_qvalues(matches)

        log_q = [m.get_score(ScoreType.LOGP_QVALUE_WEIBULL_XCORR) for m in matches]
        assert n_pvalues == 3
        assert log_q[0] == np.inf
        assert log_q[1] == pytest.approx(5.0 - math.log(3) + math.log(2))
        assert log_q[2] == pytest.approx(1.0)

    def test_not_applicable_excluded_from_count(self):
        matches = self.make_matches([5.0, P_VALUE_NA, 1.0])

        n_pvalues = assign_qvalues(matches)

        assert n_pvalues == 2
        assert np.isnan(matches[1].get_score(ScoreType.LOGP_QVALUE_WEIBULL_XCORR))
        assert matches[0].get_score(ScoreType.LOGP_QVALUE_WEIBULL_XCORR) == pytest.approx(
            5.0 - math.log(2)
        )
