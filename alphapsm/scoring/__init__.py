"""Raw scores, score calibration and q-values.

Examples
--------
>>> from alphapsm.scoring import Scorer, ScoreType, bonferroni_correct
>>>
>>> scorer = Scorer(ScoreType.XCORR)
>>> xcorr = scorer.score(spectrum, 2, ions)
>>>
>>> bonferroni_correct(1e-5, 100)  # -log(1e-3), linear branch
"""

from .score_types import (
    N_SCORE_TYPES,
    P_VALUE_TYPES,
    ScoreType,
    is_same_order,
    prerequisite,
    sort_key_type,
)
from .scorer import (
    Scorer,
    preprocess_sp,
    preprocess_xcorr,
    theoretical_xcorr_array,
)
from .calibration import (
    EVDFit,
    WeibullFit,
    bonferroni_correct,
    fit_evd,
    fit_exp_sp,
    fit_three_parameter_weibull,
    fit_two_parameter_weibull,
)
from .qvalue import (
    compute_log_qvalues,
    lookup_log_qvalues,
    qvalues_from_log,
    run_qvalue,
)

__all__ = [
    # Score types
    "ScoreType",
    "N_SCORE_TYPES",
    "P_VALUE_TYPES",
    "sort_key_type",
    "is_same_order",
    "prerequisite",
    # Raw scores
    "Scorer",
    "preprocess_sp",
    "preprocess_xcorr",
    "theoretical_xcorr_array",
    # Calibration
    "EVDFit",
    "WeibullFit",
    "bonferroni_correct",
    "fit_evd",
    "fit_exp_sp",
    "fit_two_parameter_weibull",
    "fit_three_parameter_weibull",
    # q-values
    "compute_log_qvalues",
    "lookup_log_qvalues",
    "qvalues_from_log",
    "run_qvalue",
]
