"""Benjamini-Hochberg q-values from calibrated p-values.

Works entirely in -log space: the input is the -log(p) score every match
carries for LOGP_BONF_WEIBULL_XCORR, the output is -log(q) stored as
LOGP_QVALUE_WEIBULL_XCORR.

Algorithm
---------
1. Collect -log(p) of all target matches, sort descending (best first)
2. -log q[i] = -log p[i] + log N - log i + log pi0   (i is 1-based)
3. Walk from worst to best: -log q[i] = max(-log q[i], -log q[i+1]),
   i.e. q is non-decreasing from best to worst
4. Map every match back by its -log(p) (first entry within 1e-14)

Examples
--------
>>> log_p = np.array([5.0, 3.0, 1.0])
>>> log_q = compute_log_qvalues(log_p, pi0=1.0)
>>> qvalues_from_log(log_q)
array([0.0202..., 0.0746..., 0.3678...])
"""

from __future__ import annotations

import logging
import math
from pathlib import Path
from typing import Iterable, Union

import numpy as np
from numba import njit

from ..constants import P_VALUE_NA, QVALUE_EPSILON
from .score_types import ScoreType

logger = logging.getLogger(__name__)


@njit
def _log_qvalues_core(sorted_log_p: np.ndarray, log_pi0: float) -> np.ndarray:
    """BH step-up in -log space for -log(p) sorted descending.

    Notes
    -----
    In p-space: q[i] = p[i] * N / i * pi0, then q[i] = min(q[i], q[i+1])
    from the worst rank upward.
    """
    n = len(sorted_log_p)
    log_q = np.empty(n, dtype=np.float64)
    if n == 0:
        return log_q
    log_n = np.log(n)
    for i in range(n):
        log_q[i] = sorted_log_p[i] - log_n + np.log(i + 1.0) - log_pi0

    # running max of -log q from the worst rank up
    for i in range(n - 2, -1, -1):
        if log_q[i] < log_q[i + 1]:
            log_q[i] = log_q[i + 1]
    return log_q


def compute_log_qvalues(sorted_log_pvalues: np.ndarray, pi0: float = 1.0) -> np.ndarray:
    """-log(q) for -log(p) values sorted descending.

    Parameters
    ----------
    sorted_log_pvalues : np.ndarray
        -log(p), best first
    pi0 : float, default=1.0
        Estimated proportion of null matches

    Returns
    -------
    log_q : np.ndarray
        -log(q), same order; q is non-decreasing along the array
    """
    if not 0.0 < pi0 <= 1.0:
        raise ValueError(f"pi0 must be in (0, 1], got {pi0}")
    values = np.asarray(sorted_log_pvalues, dtype=np.float64)
    return _log_qvalues_core(values, math.log(pi0))


def lookup_log_qvalues(
    log_pvalues: np.ndarray,
    sorted_log_pvalues: np.ndarray,
    log_qvalues: np.ndarray,
) -> np.ndarray:
    """Map -log(p) values to the -log(q) of the first sorted entry within 1e-14.

    Values equal to ``P_VALUE_NA`` (or without a match in the sorted array)
    map to NaN. With duplicate p-values the first (best ranked) entry wins.
    """
    log_pvalues = np.asarray(log_pvalues, dtype=np.float64)
    result = np.full(len(log_pvalues), np.nan)
    if len(sorted_log_pvalues) == 0:
        return result

    # sorted descending -> search the negated, ascending array
    ascending = -np.asarray(sorted_log_pvalues, dtype=np.float64)
    positions = np.searchsorted(ascending, -log_pvalues - QVALUE_EPSILON, side='left')
    for i, (value, pos) in enumerate(zip(log_pvalues, positions)):
        if value == P_VALUE_NA or np.isnan(value):
            continue
        # inclusive range test so that infinite -log(p) matches itself
        if pos < len(ascending) and (
            value - QVALUE_EPSILON <= -ascending[pos] <= value + QVALUE_EPSILON
        ):
            result[i] = log_qvalues[pos]
    return result


def qvalues_from_log(log_qvalues: np.ndarray) -> np.ndarray:
    return np.exp(-np.asarray(log_qvalues, dtype=np.float64))


def assign_qvalues(matches: Iterable, pi0: float = 1.0) -> int:
    """Compute q-values across ``matches`` and store them on every match.

    Matches must carry LOGP_BONF_WEIBULL_XCORR. Returns the number of
    p-values that entered the correction.
    """
    matches = list(matches)
    log_p = np.array(
        [m.get_score(ScoreType.LOGP_BONF_WEIBULL_XCORR) for m in matches],
        dtype=np.float64,
    )
    valid = log_p[(log_p != P_VALUE_NA) & ~np.isnan(log_p)]
    sorted_log_p = np.sort(valid)[::-1]
    log_q = compute_log_qvalues(sorted_log_p, pi0)

    for match, value in zip(matches, lookup_log_qvalues(log_p, sorted_log_p, log_q)):
        match.set_score(ScoreType.LOGP_QVALUE_WEIBULL_XCORR, value)

    return len(sorted_log_p)


def run_qvalue(directory: Union[str, Path], params):
    """q-values for every target match in a results directory.

    Parameters
    ----------
    directory : str or Path
        Directory with the binary result files of a search
    params : SearchParameters
        Provides ``pi0`` and the match capacity

    Returns
    -------
    MatchCollection
        Merged target collection, scored for LOGP_QVALUE_WEIBULL_XCORR
    """
    from ..collection.iterator import MatchCollectionIterator
    from ..collection.match_collection import MatchIterator

    collections = MatchCollectionIterator(directory, params)
    target = collections.next()
    if collections.num_decoy_sets:
        logger.warning(
            f"Ignoring {collections.num_decoy_sets} decoy set(s) in {directory}, "
            f"q-values use target matches only"
        )

    with MatchIterator(target, ScoreType.LOGP_BONF_WEIBULL_XCORR, sort=False) as it:
        n_pvalues = assign_qvalues(it, params.pi0)

    target.set_scored(ScoreType.LOGP_QVALUE_WEIBULL_XCORR)
    logger.info(f"Assigned q-values to {len(target):,} matches from {n_pvalues:,} p-values")
    return target
