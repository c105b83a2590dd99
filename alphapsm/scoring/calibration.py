"""Score distribution fitting and p-value conversion.

Raw SP and XCORR scores are turned into calibrated -log(p) values by
fitting a null distribution to the scores of all candidates of a spectrum:

- EVD (Gumbel) for XCORR, scale by Newton-Raphson, location in closed form
- Three-parameter Weibull (eta, beta, shift) by rank regression
- Exponential for SP, scaled by the mean of the top SP scores

P-values are Bonferroni-corrected against the number of candidates that
were scored for the spectrum.

All fitting functions raise ``SpectrumNotScoredError`` subclasses when a
fit is impossible; callers skip the spectrum.
"""

from __future__ import annotations

import logging
import math
import warnings
from typing import NamedTuple, Tuple

import numpy as np
from numba import njit

from ..constants import (
    BONFERRONI_P_CUTOFF,
    BONFERRONI_PN_CUTOFF,
    EVD_LOWER_CUTOFF,
    EVD_MAX_ITERATIONS,
    EVD_SMALL_P,
    EVD_TOLERANCE,
    EVD_UPPER_CUTOFF,
)
from ..exceptions import ConvergenceError, InsufficientSamplesError

logger = logging.getLogger(__name__)


class WeibullFit(NamedTuple):
    eta: float
    beta: float
    shift: float
    correlation: float


class EVDFit(NamedTuple):
    mu: float
    lambda_: float
    iterations: int


# =============================================================================
# EVD (Newton-Raphson)
# =============================================================================

@njit
def _evd_constraint(scores: np.ndarray, lambda_: float) -> Tuple[float, float, float]:
    """Maximum-likelihood constraint for the EVD scale and its derivative.

    Returns
    -------
    function : float
        1/L - mean(s) + sum(s e) / sum(e), with e = exp(-L s)
    derivative : float
        (sum(s e) / sum(e))^2 - sum(s^2 e) / sum(e) - 1 / L^2
    exp_sum : float
        sum(e), reused to compute the location parameter
    """
    n = len(scores)
    exp_sum = 0.0
    exp_score_sum = 0.0
    exp_score_sq_sum = 0.0
    score_sum = 0.0
    for i in range(n):
        s = scores[i]
        e = np.exp(-lambda_ * s)
        exp_sum += e
        exp_score_sum += s * e
        exp_score_sq_sum += s * s * e
        score_sum += s

    function = 1.0 / lambda_ - score_sum / n + exp_score_sum / exp_sum
    derivative = (
        (exp_score_sum * exp_score_sum) / (exp_sum * exp_sum)
        - exp_score_sq_sum / exp_sum
        - 1.0 / (lambda_ * lambda_)
    )
    return function, derivative, exp_sum


@njit
def _newton_raphson_lambda(scores: np.ndarray) -> Tuple[float, float, int, bool]:
    lambda_ = 1.0
    exp_sum = 0.0
    for iteration in range(EVD_MAX_ITERATIONS):
        function, derivative, exp_sum = _evd_constraint(scores, lambda_)
        if abs(function) < EVD_TOLERANCE:
            return lambda_, exp_sum, iteration, True
        lambda_ = lambda_ - function / derivative
    return lambda_, exp_sum, EVD_MAX_ITERATIONS, False


def fit_evd(scores: np.ndarray) -> EVDFit:
    """Fit an extreme value distribution to a sample of scores.

    Parameters
    ----------
    scores : np.ndarray
        Sampled raw scores (typically XCORR)

    Returns
    -------
    EVDFit
        Location ``mu``, scale ``lambda_`` and iterations used

    Raises
    ------
    InsufficientSamplesError
        If fewer than two scores are given
    ConvergenceError
        If Newton-Raphson does not reach the tolerance within the
        iteration ceiling
    """
    scores = np.asarray(scores, dtype=np.float64)
    if len(scores) < 2:
        raise InsufficientSamplesError(f"EVD fit needs >= 2 scores, got {len(scores)}")

    lambda_, exp_sum, iterations, converged = _newton_raphson_lambda(scores)
    if not converged or not np.isfinite(lambda_) or lambda_ <= 0:
        raise ConvergenceError(
            f"EVD lambda did not converge after {iterations} iterations"
        )

    mu = -1.0 / lambda_ * math.log(exp_sum / len(scores))
    logger.debug(f"EVD fit: mu={mu:.4f}, lambda={lambda_:.4f} ({iterations} iterations)")
    return EVDFit(mu, lambda_, iterations)


# =============================================================================
# Weibull (rank regression)
# =============================================================================

@njit
def fit_two_parameter_weibull(
    data: np.ndarray,
    fit_data_points: int,
    total_data_points: int,
    shift: float,
) -> Tuple[float, float, float]:
    """Fit eta and beta for a fixed shift by least-squares rank regression.

    Parameters
    ----------
    data : np.ndarray
        Scores sorted descending
    fit_data_points : int
        Number of top scores used for the fit
    total_data_points : int
        Number of scores the ranks refer to
    shift : float
        Location shift added to every score

    Returns
    -------
    eta, beta, correlation : float
        correlation is 0.0 when fewer than two points are usable
    """
    n_points = min(fit_data_points, len(data))
    x = np.empty(n_points, dtype=np.float64)
    n = 0
    for i in range(n_points):
        score = data[i] + shift
        if score <= 0.0:
            break
        x[n] = np.log(score)
        n += 1

    if n < 2:
        return 0.0, 0.0, 0.0

    y = np.empty(n, dtype=np.float64)
    for i in range(n):
        f_t = (total_data_points - i - 0.3) / (total_data_points + 0.4)
        y[i] = np.log(-np.log(1.0 - f_t))

    sum_x = 0.0
    sum_y = 0.0
    sum_xy = 0.0
    sum_xx = 0.0
    sum_yy = 0.0
    for i in range(n):
        sum_x += x[i]
        sum_y += y[i]
        sum_xy += x[i] * y[i]
        sum_xx += x[i] * x[i]
        sum_yy += y[i] * y[i]

    sxy = sum_xy - sum_x * sum_y / n
    sxx = sum_xx - sum_x * sum_x / n
    syy = sum_yy - sum_y * sum_y / n
    if sxx <= 0.0 or syy <= 0.0:
        return 0.0, 0.0, 0.0

    beta = sxy / sxx
    if beta == 0.0:
        return 0.0, 0.0, 0.0
    intercept = sum_y / n - beta * sum_x / n
    eta = np.exp(-intercept / beta)
    correlation = sxy / np.sqrt(sxx * syy)
    return eta, beta, correlation


def fit_three_parameter_weibull(
    data: np.ndarray,
    fit_data_points: int,
    total_data_points: int,
    min_shift: float,
    max_shift: float,
    step: float,
) -> WeibullFit:
    """Scan the shift from ``max_shift`` down to ``min_shift`` (exclusive).

    The shift with the highest rank-regression correlation wins.

    Raises
    ------
    InsufficientSamplesError
        If no shift yields a positive correlation
    """
    data = np.asarray(data, dtype=np.float64)
    n_steps = int(round((max_shift - min_shift) / step))

    best = WeibullFit(0.0, 0.0, 0.0, 0.0)
    for k in range(n_steps):
        shift = max_shift - k * step
        eta, beta, correlation = fit_two_parameter_weibull(
            data, fit_data_points, total_data_points, shift
        )
        if correlation > best.correlation:
            best = WeibullFit(eta, beta, shift, correlation)

    if best.correlation <= 0.0:
        raise InsufficientSamplesError(
            f"Weibull fit failed on {min(fit_data_points, len(data))} scores"
        )

    logger.debug(
        f"Weibull fit: eta={best.eta:.4f}, beta={best.beta:.4f}, "
        f"shift={best.shift:.2f}, correlation={best.correlation:.4f}"
    )
    return best


def fit_data_points(
    total: int,
    fraction_to_fit: float,
    number_to_fit: int,
) -> int:
    """Number of top scores used by the Weibull fit.

    A positive fraction wins over an absolute count.

    Raises
    ------
    InsufficientSamplesError
        If the absolute count exceeds ``total``
    """
    if fraction_to_fit > 0:
        return int(total * fraction_to_fit)
    if number_to_fit > total:
        warnings.warn(
            f"Asked to fit {number_to_fit} scores but only {total} are available, "
            f"skipping spectrum",
            RuntimeWarning,
        )
        raise InsufficientSamplesError(
            f"{number_to_fit} top scores requested, {total} available"
        )
    return number_to_fit


# =============================================================================
# Exponential SP
# =============================================================================

def fit_exp_sp(sp_scores_descending: np.ndarray, top_fit_sp: int) -> Tuple[float, float, int]:
    """Scale of the exponential tail of SP scores.

    Returns
    -------
    mean_sp : float
        Mean of the top SP scores minus ``base_sp``
    base_sp : float
        Lowest of the top SP scores
    top_count : int
        Number of scores used
    """
    top_count = min(top_fit_sp, len(sp_scores_descending))
    if top_count < 1:
        raise InsufficientSamplesError("No SP scores to fit")
    top = np.asarray(sp_scores_descending[:top_count], dtype=np.float64)
    base_sp = float(top[-1])
    mean_sp = float(top.mean()) - base_sp
    return mean_sp, base_sp, top_count


# =============================================================================
# p-values
# =============================================================================

def bonferroni_correct(p_value: float, n: int) -> float:
    """-log of the Bonferroni-corrected p-value for ``n`` tests.

    Uses 1 - (1 - p)^n unless p is tiny, where p * n avoids the
    cancellation.

    Examples
    --------
    >>> bonferroni_correct(1e-5, 100) == -math.log(1e-3)
    True
    """
    if p_value > BONFERRONI_P_CUTOFF or p_value * n > BONFERRONI_PN_CUTOFF:
        corrected = 1.0 - (1.0 - p_value) ** n
    else:
        corrected = p_value * n
    if corrected <= 0.0:
        return math.inf
    return -math.log(corrected)


def evd_pvalue(score: float, mu: float, lambda_: float) -> float:
    """P(S > score) under an EVD with location ``mu`` and scale ``lambda_``."""
    x = lambda_ * (score - mu)
    if x <= EVD_LOWER_CUTOFF:
        return 1.0
    if x >= EVD_UPPER_CUTOFF:
        return 0.0
    p_value = math.exp(-x)
    if p_value < EVD_SMALL_P:
        return p_value
    return 1.0 - math.exp(-p_value)


def logp_evd(score: float, mu: float, lambda_: float) -> float:
    p_value = evd_pvalue(score, mu, lambda_)
    return math.inf if p_value <= 0.0 else -math.log(p_value)


def logp_bonf_evd(score: float, mu: float, lambda_: float, n: int) -> float:
    return bonferroni_correct(evd_pvalue(score, mu, lambda_), n)


def weibull_pvalue(score: float, eta: float, beta: float, shift: float) -> float:
    """exp(-((score + shift) / eta)^beta), 1.0 for non-positive shifted scores."""
    shifted = score + shift
    if shifted <= 0.0:
        return 1.0
    return math.exp(-((shifted / eta) ** beta))


def logp_weibull(score: float, eta: float, beta: float, shift: float) -> float:
    shifted = score + shift
    if shifted <= 0.0:
        return 0.0
    return (shifted / eta) ** beta


def logp_bonf_weibull(score: float, eta: float, beta: float, shift: float, n: int) -> float:
    return bonferroni_correct(weibull_pvalue(score, eta, beta, shift), n)


def logp_exp_sp(sp_score: float, base_sp: float, mean_sp: float) -> float:
    return (sp_score - base_sp) / mean_sp


def logp_bonf_exp_sp(sp_score: float, base_sp: float, mean_sp: float, n: int) -> float:
    return bonferroni_correct(math.exp(-(sp_score - base_sp) / mean_sp), n)
