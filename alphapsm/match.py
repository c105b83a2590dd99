"""Peptide-spectrum match."""

from __future__ import annotations

import math
from dataclasses import dataclass, field
from typing import Dict, Tuple

from .exceptions import MissingScoreError
from .scoring.score_types import ScoreType
from .spectrum import SpectrumReference


@dataclass(frozen=True)
class Peptide:
    """Candidate peptide as handed out by a candidate source."""

    sequence: str
    neutral_mass: float
    protein_indices: Tuple[int, ...] = ()

    @property
    def key(self) -> str:
        """Key used for unique-peptide bookkeeping."""
        return self.sequence

    def __len__(self) -> int:
        return len(self.sequence)


@dataclass(eq=False)
class Match:
    """One peptide paired with one spectrum at one charge.

    Matches are shared by reference between a collection and the random
    samples drawn from it; they are never copied.
    """

    peptide: Peptide
    spectrum: SpectrumReference
    charge: int
    is_decoy: bool = False
    scores: Dict[ScoreType, float] = field(default_factory=dict)
    ranks: Dict[ScoreType, int] = field(default_factory=dict)

    # Snapshot of the owning collection, set when merging result files
    delta_cn: float = 0.0
    ln_delta_cn: float = 0.0
    ln_experiment_size: float = 0.0

    # SP ion statistics
    b_y_ion_matched: int = 0
    b_y_ion_possible: int = 0

    @property
    def b_y_ion_fraction_matched(self) -> float:
        if self.b_y_ion_possible == 0:
            return 0.0
        return self.b_y_ion_matched / self.b_y_ion_possible

    def has_score(self, score_type: ScoreType) -> bool:
        return score_type in self.scores

    def get_score(self, score_type: ScoreType) -> float:
        try:
            return self.scores[score_type]
        except KeyError:
            raise MissingScoreError(
                f"{score_type.name} not computed for {self.peptide.sequence}"
            ) from None

    def set_score(self, score_type: ScoreType, value: float) -> None:
        self.scores[score_type] = float(value)

    def get_rank(self, score_type: ScoreType) -> int:
        """Rank under ``score_type``, 0 if the match was never ranked."""
        return self.ranks.get(score_type, 0)

    def set_rank(self, score_type: ScoreType, rank: int) -> None:
        self.ranks[score_type] = int(rank)

    def set_collection_snapshot(
        self,
        delta_cn: float,
        ln_delta_cn: float,
        ln_experiment_size: float,
    ) -> None:
        self.delta_cn = delta_cn
        self.ln_delta_cn = ln_delta_cn
        self.ln_experiment_size = ln_experiment_size

    @property
    def scan(self) -> int:
        return self.spectrum.scan

    def __repr__(self) -> str:
        scores = ", ".join(
            f"{t.name}={v:.4g}" for t, v in self.scores.items() if not math.isnan(v)
        )
        decoy = " decoy" if self.is_decoy else ""
        return f"Match({self.peptide.sequence}/{self.charge}+ scan={self.scan}{decoy} {scores})"


def ln_or_zero(value: float) -> float:
    """Natural log of ``value`` or 0.0 for non-positive values."""
    return math.log(value) if value > 0 else 0.0
