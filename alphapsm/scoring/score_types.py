"""Score types and their sort families.

The declaration order of ``ScoreType`` is part of the binary result-file
format (scored-type flags are written in this order) and must not change.
"""

from __future__ import annotations

from enum import Enum

from ..exceptions import UnsortableScoreTypeError


class ScoreType(Enum):
    """Closed set of scores a match can carry."""

    SP = 0
    XCORR = 1
    DOTP = 2
    LOGP_EXP_SP = 3
    LOGP_BONF_EXP_SP = 4
    LOGP_EVD_XCORR = 5
    LOGP_BONF_EVD_XCORR = 6
    LOGP_WEIBULL_SP = 7
    LOGP_BONF_WEIBULL_SP = 8
    LOGP_WEIBULL_XCORR = 9
    LOGP_BONF_WEIBULL_XCORR = 10
    Q_VALUE = 11
    PERCOLATOR_SCORE = 12
    LOGP_QVALUE_WEIBULL_XCORR = 13
    QRANKER_SCORE = 14
    QRANKER_Q_VALUE = 15


N_SCORE_TYPES = len(ScoreType)

XCORR_FAMILY = frozenset({
    ScoreType.XCORR,
    ScoreType.LOGP_EVD_XCORR,
    ScoreType.LOGP_BONF_EVD_XCORR,
    ScoreType.LOGP_WEIBULL_XCORR,
    ScoreType.LOGP_BONF_WEIBULL_XCORR,
})

SP_FAMILY = frozenset({
    ScoreType.SP,
    ScoreType.LOGP_EXP_SP,
    ScoreType.LOGP_BONF_EXP_SP,
    ScoreType.LOGP_WEIBULL_SP,
    ScoreType.LOGP_BONF_WEIBULL_SP,
    ScoreType.LOGP_QVALUE_WEIBULL_XCORR,
})

PERCOLATOR_FAMILY = frozenset({
    ScoreType.Q_VALUE,
    ScoreType.PERCOLATOR_SCORE,
})

QRANKER_FAMILY = frozenset({
    ScoreType.QRANKER_SCORE,
    ScoreType.QRANKER_Q_VALUE,
})

# p-value types and the raw score they are computed from
P_VALUE_TYPES = {
    ScoreType.LOGP_EXP_SP: ScoreType.SP,
    ScoreType.LOGP_BONF_EXP_SP: ScoreType.SP,
    ScoreType.LOGP_WEIBULL_SP: ScoreType.SP,
    ScoreType.LOGP_BONF_WEIBULL_SP: ScoreType.SP,
    ScoreType.LOGP_EVD_XCORR: ScoreType.XCORR,
    ScoreType.LOGP_BONF_EVD_XCORR: ScoreType.XCORR,
    ScoreType.LOGP_WEIBULL_XCORR: ScoreType.XCORR,
    ScoreType.LOGP_BONF_WEIBULL_XCORR: ScoreType.XCORR,
}

WEIBULL_TYPES = frozenset({
    ScoreType.LOGP_WEIBULL_SP,
    ScoreType.LOGP_BONF_WEIBULL_SP,
    ScoreType.LOGP_WEIBULL_XCORR,
    ScoreType.LOGP_BONF_WEIBULL_XCORR,
})

EVD_TYPES = frozenset({
    ScoreType.LOGP_EVD_XCORR,
    ScoreType.LOGP_BONF_EVD_XCORR,
})

EXP_SP_TYPES = frozenset({
    ScoreType.LOGP_EXP_SP,
    ScoreType.LOGP_BONF_EXP_SP,
})


def sort_key_type(score_type: ScoreType) -> ScoreType:
    """Return the score type whose values define the order of ``score_type``.

    Raises
    ------
    UnsortableScoreTypeError
        For DOTP, which has no defined order.
    """
    if score_type in XCORR_FAMILY:
        return ScoreType.XCORR
    if score_type in SP_FAMILY:
        return ScoreType.SP
    if score_type in PERCOLATOR_FAMILY:
        return ScoreType.PERCOLATOR_SCORE
    if score_type in QRANKER_FAMILY:
        return ScoreType.QRANKER_SCORE
    raise UnsortableScoreTypeError(f"Cannot sort by {score_type.name}.")


def is_same_order(first: ScoreType | None, second: ScoreType) -> bool:
    """True when a collection sorted by ``first`` is already sorted by ``second``."""
    if first is None:
        return False
    return sort_key_type(first) == sort_key_type(second)


def prerequisite(score_type: ScoreType) -> ScoreType | None:
    """Raw score that must be computed before ``score_type``."""
    return P_VALUE_TYPES.get(score_type)
