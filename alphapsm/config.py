"""Search and calibration parameters.

All tunables of the scoring pipeline live in one dataclass that is passed
explicitly to every scoring, calibration and q-value call.
"""

from __future__ import annotations

from dataclasses import dataclass, fields
from typing import Any, Mapping

from .constants import MAX_MATCHES
from .scoring.score_types import P_VALUE_TYPES, ScoreType


@dataclass
class SearchParameters:
    """Parameters for candidate scoring, distribution fitting and q-values.

    Defaults reproduce the classic SEQUEST-style search settings.
    """

    # Truncation and reporting
    max_rank: int = 500          # matches kept after preliminary scoring
    top_match: int = 5           # matches serialized per spectrum
    max_sqt_result: int = 5      # matches reported per spectrum

    # Score types
    prelim_score_type: ScoreType = ScoreType.SP
    score_type: ScoreType = ScoreType.LOGP_BONF_WEIBULL_XCORR

    # Distribution fitting
    sample_count: int = 500                 # 0 = fit the whole collection
    fraction_top_scores_to_fit: float = 0.55
    number_top_scores_to_fit: int = -1      # used when fraction <= 0
    top_fit_sp: int = 1000

    # SP scoring
    beta: float = 0.075
    max_mz: float = 4000.0

    # Candidate selection (Da)
    mass_window: float = 3.0
    mass_offset: float = 0.0

    # Collections
    max_matches: int = MAX_MATCHES
    num_decoy_sets: int = 2

    # q-values
    pi0: float = 1.0

    def __post_init__(self):
        if isinstance(self.prelim_score_type, str):
            self.prelim_score_type = ScoreType[self.prelim_score_type]
        if isinstance(self.score_type, str):
            self.score_type = ScoreType[self.score_type]

        if self.prelim_score_type != ScoreType.SP:
            raise ValueError(
                f"Preliminary score must be SP, got {self.prelim_score_type.name}"
            )
        if self.score_type not in P_VALUE_TYPES and self.score_type not in (ScoreType.SP, ScoreType.XCORR):
            raise ValueError(
                f"Unsupported main score type: {self.score_type.name}"
            )
        if self.max_rank < 1:
            raise ValueError(f"max_rank must be positive, got {self.max_rank}")
        if self.top_match < 1 or self.max_sqt_result < 1:
            raise ValueError("top_match and max_sqt_result must be positive")
        if self.sample_count < 0:
            raise ValueError(f"sample_count must be >= 0, got {self.sample_count}")
        if self.fraction_top_scores_to_fit > 1.0:
            raise ValueError(
                f"fraction_top_scores_to_fit must be <= 1, "
                f"got {self.fraction_top_scores_to_fit}"
            )
        if self.fraction_top_scores_to_fit <= 0 and self.number_top_scores_to_fit <= 0:
            raise ValueError(
                "Either fraction_top_scores_to_fit or number_top_scores_to_fit "
                "must be positive"
            )
        if self.max_mz <= 0:
            raise ValueError(f"max_mz must be positive, got {self.max_mz}")
        if self.max_matches < 1:
            raise ValueError(f"max_matches must be positive, got {self.max_matches}")
        if not 0 <= self.num_decoy_sets <= 3:
            raise ValueError(
                f"num_decoy_sets must be between 0 and 3, got {self.num_decoy_sets}"
            )
        if not 0.0 < self.pi0 <= 1.0:
            raise ValueError(f"pi0 must be in (0, 1], got {self.pi0}")

    @property
    def top_rank_for_p_value(self) -> int:
        """Number of top matches that receive a p-value."""
        return max(self.top_match, self.max_sqt_result)

    @classmethod
    def from_dict(cls, values: Mapping[str, Any]) -> 'SearchParameters':
        """Create parameters from a mapping, e.g. a parsed config file.

        Raises
        ------
        ValueError
            If the mapping contains unknown keys.
        """
        known = {f.name for f in fields(cls)}
        unknown = set(values) - known
        if unknown:
            raise ValueError(f"Unknown search parameters: {sorted(unknown)}")
        return cls(**values)
