"""Match collections: scoring, calibration, ranking and serialization.

A ``MatchCollection`` holds the candidate matches of one spectrum at one
charge (live search), or all matches of a merged set of result files
(post-processing). The pipeline for one spectrum:

1. SP-score every candidate (preliminary score)
2. Fit the score distribution on a random sample of all candidates
3. Truncate to the top ``max_rank`` matches by SP
4. XCORR-score the survivors
5. Convert the main score to -log(p) for the top matches and rank

Sort families
-------------
Score types that order matches identically share a sort key (see
``score_types.sort_key_type``), so a collection sorted by XCORR is already
sorted by any XCORR p-value. ``last_sorted`` holds the key the matches are
currently ordered by.

Iterator lock
-------------
At most one ``MatchIterator`` may be open on a collection. While it is open
every mutating call raises ``LockedCollectionError``.
"""

from __future__ import annotations

import logging
from collections import Counter
from pathlib import Path
from typing import BinaryIO, Callable, Iterable, List, Optional, Sequence, Set, Union

import numpy as np

from ..constants import (
    DELTA_CN_SINGLE_MATCH,
    MAX_MATCHES,
    P_VALUE_NA,
    WEIBULL_SP_SHIFT,
    WEIBULL_XCORR_SHIFT,
)
from ..exceptions import (
    CapacityExceededError,
    ContractError,
    InsufficientSamplesError,
    LockedCollectionError,
    MissingScoreError,
    NoCandidatesError,
    SpectrumNotScoredError,
)
from ..fragments.generator import IonConstraint, predict_ions
from ..io import csm
from ..match import Match, Peptide, ln_or_zero
from ..scoring import calibration
from ..scoring.score_types import (
    EVD_TYPES,
    EXP_SP_TYPES,
    P_VALUE_TYPES,
    XCORR_FAMILY,
    ScoreType,
    is_same_order,
    prerequisite,
    sort_key_type,
)
from ..scoring.scorer import Scorer
from ..spectrum import Spectrum

logger = logging.getLogger(__name__)


class MatchCollection:
    """Capacity-bounded, ordered set of matches.

    Parameters
    ----------
    charge : int
        Precursor charge of the spectrum (0 for merged collections)
    is_decoy : bool
        True if the matches are against decoy peptides
    max_matches : int
        Hard capacity; adding past it raises ``CapacityExceededError``
    post_process : bool
        Collection built by merging result files; keeps per-protein
        counters and unique-peptide bookkeeping

    Attributes
    ----------
    experiment_size : int
        Candidates scored before truncation, used for Bonferroni correction
    last_sorted : ScoreType or None
        Sort key the matches are currently ordered by
    mu, lambda_ : float
        EVD parameters
    eta, beta, shift, correlation : float
        Weibull parameters
    mean_sp, base_sp, top_fit_sp : float, float, int
        Exponential SP parameters
    """

    def __init__(
        self,
        charge: int = 0,
        is_decoy: bool = False,
        max_matches: int = MAX_MATCHES,
        post_process: bool = False,
    ):
        self.matches: List[Match] = []
        self.max_matches = max_matches
        self.charge = charge
        self.is_decoy = is_decoy

        self.experiment_size = 0
        self.last_sorted: Optional[ScoreType] = None
        self.iterator_lock = False
        self.scored_types: Set[ScoreType] = set()

        self.mu = 0.0
        self.lambda_ = 0.0
        self.eta = 0.0
        self.beta = 0.0
        self.shift = 0.0
        self.correlation = 0.0
        self.mean_sp = 0.0
        self.base_sp = 0.0
        self.top_fit_sp = 0
        self.sp_scores_mean = 0.0
        self._delta_cn = 0.0

        self.post_process = post_process
        self.protein_match_counts: Counter = Counter()
        self.protein_peptide_counts: Counter = Counter()
        self.seen_peptides: Set[str] = set()
        self.scored_types_reconciled = False

    def __len__(self) -> int:
        return len(self.matches)

    def __getitem__(self, idx: int) -> Match:
        return self.matches[idx]

    def __repr__(self) -> str:
        decoy = ", decoy" if self.is_decoy else ""
        sorted_by = self.last_sorted.name if self.last_sorted else None
        return (
            f"MatchCollection(n_matches={len(self.matches)}, charge={self.charge}{decoy}, "
            f"last_sorted={sorted_by})"
        )

    @property
    def is_empty(self) -> bool:
        return not self.matches

    # =========================================================================
    # Invariants
    # =========================================================================

    def _check_unlocked(self, action: str) -> None:
        if self.iterator_lock:
            raise LockedCollectionError(f"Cannot {action} while an iterator is open.")

    def is_scored(self, score_type: ScoreType) -> bool:
        return score_type in self.scored_types

    def require_scored(self, score_type: ScoreType) -> None:
        if score_type not in self.scored_types:
            raise MissingScoreError(
                f"{score_type.name} has not been computed for this collection."
            )

    def set_scored(self, score_type: ScoreType) -> None:
        """Flag ``score_type`` as computed for every match.

        Raises
        ------
        MissingScoreError
            If any match lacks the score
        """
        missing = sum(1 for m in self.matches if not m.has_score(score_type))
        if missing:
            raise MissingScoreError(
                f"Cannot flag {score_type.name}: {missing} of {len(self.matches)} "
                f"matches are not scored."
            )
        self.scored_types.add(score_type)

    # =========================================================================
    # Adding Matches
    # =========================================================================

    def add_match(self, match: Match) -> None:
        self._check_unlocked("add a match")
        if len(self.matches) >= self.max_matches:
            raise CapacityExceededError(
                f"Collection is full ({self.max_matches:,} matches)."
            )
        self.matches.append(match)
        self.last_sorted = None

    def add_post_process_match(self, match: Match) -> None:
        """Add a merged match and update the protein and peptide counters."""
        self.add_match(match)
        key = match.peptide.key
        unique = key not in self.seen_peptides
        for protein in match.peptide.protein_indices:
            self.protein_match_counts[protein] += 1
            if unique:
                self.protein_peptide_counts[protein] += 1
        self.seen_peptides.add(key)

    def extend_from_file(self, path: Union[str, Path]) -> int:
        """Merge all matches of one result file into this collection.

        Every match receives the delta_cn/ln_delta_cn/ln_experiment_size
        snapshot of its spectrum block. The scored-type flags of the first
        block are taken as they are; a later block that disagrees clears
        the disputed flags.
        A match whose charge differs from its block charge keeps its own
        charge and is reported.

        Returns
        -------
        int
            Number of spectrum blocks read
        """
        n_blocks = 0
        for _, block, matches in csm.iter_spectrum_blocks(path):
            self._reconcile_scored_types(block.scored, path)
            for match in matches:
                if match.charge != block.charge:
                    logger.error(
                        f"{Path(path).name}: scan {match.scan} match charge {match.charge} "
                        f"differs from spectrum block charge {block.charge}"
                    )
                match.set_collection_snapshot(
                    block.delta_cn, block.ln_delta_cn, block.ln_experiment_size
                )
                self.add_post_process_match(match)
            n_blocks += 1

        logger.info(
            f"Merged {n_blocks:,} spectra from {Path(path).name} "
            f"({len(self.matches):,} matches total)"
        )
        return n_blocks

    def _reconcile_scored_types(self, scored: Iterable[ScoreType], path) -> None:
        scored = set(scored)
        if not self.scored_types_reconciled:
            self.scored_types = scored
            self.scored_types_reconciled = True
            return
        for score_type in self.scored_types ^ scored:
            if score_type in self.scored_types:
                logger.error(
                    f"{Path(path).name}: {score_type.name} is not scored in every "
                    f"spectrum, clearing the flag"
                )
            self.scored_types.discard(score_type)

    # =========================================================================
    # Sorting and Ranking
    # =========================================================================

    def sort(self, score_type: ScoreType) -> None:
        """Sort best first by the sort key of ``score_type``.

        Raises
        ------
        LockedCollectionError
            If an iterator is open
        UnsortableScoreTypeError
            For DOTP
        MissingScoreError
            If a match lacks the sort key score
        """
        self._check_unlocked("sort")
        key_type = sort_key_type(score_type)
        self.matches.sort(key=lambda m: m.get_score(key_type), reverse=True)
        self.last_sorted = key_type

    def spectrum_sort(self, score_type: ScoreType) -> None:
        """Group matches by scan then charge, best first within a group.

        Q_VALUE is sorted ascending. The result is not a global score
        order, so ``last_sorted`` is cleared.
        """
        self._check_unlocked("sort")
        if score_type == ScoreType.Q_VALUE:
            def key(m):
                return (m.scan, m.charge, m.get_score(ScoreType.Q_VALUE))
        else:
            key_type = sort_key_type(score_type)

            def key(m):
                return (m.scan, m.charge, -m.get_score(key_type))

        self.matches.sort(key=key)
        self.last_sorted = None

    def _ensure_sorted(self, score_type: ScoreType) -> None:
        if not is_same_order(self.last_sorted, score_type):
            self.sort(score_type)

    def truncate(self, max_rank: int, score_type: ScoreType) -> None:
        """Keep the top ``max_rank`` matches by ``score_type``."""
        self._check_unlocked("truncate")
        if not self.matches:
            return
        self._ensure_sorted(score_type)
        del self.matches[max_rank:]

    def populate_ranks(self, score_type: ScoreType) -> None:
        """Assign rank 1..n by ``score_type`` (1 = best)."""
        self._check_unlocked("rank")
        self._ensure_sorted(score_type)
        for idx, match in enumerate(self.matches):
            match.set_rank(score_type, idx + 1)

    # =========================================================================
    # Raw Scores
    # =========================================================================

    def score_sp(
        self,
        spectrum: Spectrum,
        charge: int,
        candidates: Iterable[Peptide],
        scorer: Scorer,
    ) -> int:
        """Create one SP-scored match per candidate.

        Returns
        -------
        int
            Number of candidates scored (the experiment size)

        Raises
        ------
        ContractError
            If the collection already holds matches
        NoCandidatesError
            If no candidate was scored
        """
        if self.matches:
            raise ContractError("SP scoring requires an empty collection.")

        reference = spectrum.reference()
        constraint = IonConstraint.sequest_sp(charge)
        for peptide in candidates:
            ions = predict_ions(peptide.sequence, constraint)
            score = scorer.score(spectrum, charge, ions)
            match = Match(
                peptide=peptide,
                spectrum=reference,
                charge=charge,
                is_decoy=self.is_decoy,
                b_y_ion_matched=scorer.b_y_ion_matched,
                b_y_ion_possible=scorer.b_y_ion_possible,
            )
            match.set_score(ScoreType.SP, score)
            self.add_match(match)

        if not self.matches:
            raise NoCandidatesError(
                f"No candidates for scan {spectrum.scan} at charge {charge}"
            )

        self.sp_scores_mean = float(np.mean([m.get_score(ScoreType.SP) for m in self.matches]))
        self.experiment_size = len(self.matches)
        self.set_scored(ScoreType.SP)
        self.populate_ranks(ScoreType.SP)
        logger.debug(
            f"Scan {spectrum.scan} charge {charge}: SP-scored {self.experiment_size} "
            f"candidates (mean {self.sp_scores_mean:.3f})"
        )
        return self.experiment_size

    def _compute_missing_xcorr(self, spectrum: Spectrum, charge: int, scorer: Scorer) -> int:
        constraint = IonConstraint.sequest_xcorr(charge)
        n_scored = 0
        for match in self.matches:
            if match.has_score(ScoreType.XCORR):
                continue
            ions = predict_ions(match.peptide.sequence, constraint)
            match.set_score(ScoreType.XCORR, scorer.score(spectrum, charge, ions))
            n_scored += 1
        return n_scored

    def score_xcorr(self, spectrum: Spectrum, charge: int, scorer: Scorer) -> None:
        """XCORR-score every match that has no XCORR yet, rank and compute delta_cn.

        Matches scored during calibration keep their score.
        """
        self._check_unlocked("score")
        n_scored = self._compute_missing_xcorr(spectrum, charge, scorer)
        self.set_scored(ScoreType.XCORR)
        self.populate_ranks(ScoreType.XCORR)
        self.calculate_delta_cn()
        logger.debug(f"XCORR-scored {n_scored} of {len(self.matches)} matches")

    def calculate_delta_cn(self) -> float:
        """XCORR gap between the best and second best match."""
        self.require_scored(ScoreType.XCORR)
        if len(self.matches) == 0:
            self._delta_cn = 0.0
        elif len(self.matches) == 1:
            self._delta_cn = DELTA_CN_SINGLE_MATCH
        else:
            self._ensure_sorted(ScoreType.XCORR)
            self._delta_cn = (
                self.matches[0].get_score(ScoreType.XCORR)
                - self.matches[1].get_score(ScoreType.XCORR)
            )
        return self._delta_cn

    @property
    def delta_cn(self) -> float:
        """delta_cn of the collection; 0.0 (and an error log) before XCORR."""
        if not self.is_scored(ScoreType.XCORR):
            logger.error("delta_cn requested before XCORR was scored")
            return 0.0
        return self._delta_cn

    @delta_cn.setter
    def delta_cn(self, value: float) -> None:
        self._delta_cn = value

    # =========================================================================
    # Distribution Fitting
    # =========================================================================

    def _fit_sample(self, params, rng) -> 'MatchCollection':
        if params.sample_count == 0:
            return self
        return random_sample(self, params.sample_count, rng)

    def estimate_weibull(
        self,
        score_type: ScoreType,
        params,
        spectrum: Spectrum,
        charge: int,
        scorer: Optional[Scorer] = None,
        rng: Optional[np.random.Generator] = None,
    ) -> calibration.WeibullFit:
        """Fit a three-parameter Weibull to SP or XCORR scores of a sample.

        For XCORR the sampled matches are XCORR-scored first; the scores
        stay on the shared matches.
        """
        sample = self._fit_sample(params, rng)
        if score_type == ScoreType.XCORR:
            if scorer is None:
                raise ValueError("An XCORR scorer is required to fit XCORR scores")
            sample._compute_missing_xcorr(spectrum, charge, scorer)
            shift_range = WEIBULL_XCORR_SHIFT
        elif score_type == ScoreType.SP:
            shift_range = WEIBULL_SP_SHIFT
        else:
            raise ValueError(f"Weibull fit supports SP and XCORR, got {score_type.name}")

        scores = np.sort(np.array([m.get_score(score_type) for m in sample.matches]))[::-1]
        n_fit = calibration.fit_data_points(
            len(scores), params.fraction_top_scores_to_fit, params.number_top_scores_to_fit
        )
        fit = calibration.fit_three_parameter_weibull(scores, n_fit, len(scores), *shift_range)
        self.eta, self.beta, self.shift, self.correlation = fit
        return fit

    def estimate_evd(
        self,
        params,
        spectrum: Spectrum,
        charge: int,
        scorer: Scorer,
        rng: Optional[np.random.Generator] = None,
    ) -> calibration.EVDFit:
        """Fit an EVD to the XCORR scores of a sample."""
        sample = self._fit_sample(params, rng)
        sample._compute_missing_xcorr(spectrum, charge, scorer)
        scores = np.array([m.get_score(ScoreType.XCORR) for m in sample.matches])
        fit = calibration.fit_evd(scores)
        self.mu = fit.mu
        self.lambda_ = fit.lambda_
        return fit

    def estimate_exp_sp(self, params) -> None:
        """Scale the exponential SP tail from the top SP scores."""
        self.require_scored(ScoreType.SP)
        scores = np.sort(np.array([m.get_score(ScoreType.SP) for m in self.matches]))[::-1]
        self.mean_sp, self.base_sp, self.top_fit_sp = calibration.fit_exp_sp(
            scores, params.top_fit_sp
        )
        if self.mean_sp <= 0.0:
            raise InsufficientSamplesError(
                f"Top {self.top_fit_sp} SP scores have no spread"
            )

    def estimate_parameters(
        self,
        score_type: ScoreType,
        params,
        spectrum: Spectrum,
        charge: int,
        scorer: Scorer,
        rng: Optional[np.random.Generator] = None,
    ) -> None:
        """Run the fit ``score_type`` needs; raw score types need none."""
        base = prerequisite(score_type)
        if base is None:
            return
        if score_type in EVD_TYPES:
            self.estimate_evd(params, spectrum, charge, scorer, rng)
        elif score_type in EXP_SP_TYPES:
            self.estimate_exp_sp(params)
        else:
            self.estimate_weibull(base, params, spectrum, charge, scorer, rng)

    # =========================================================================
    # p-values
    # =========================================================================

    def _pvalue_function(self, score_type: ScoreType) -> Callable[[float], float]:
        n = self.experiment_size
        functions = {
            ScoreType.LOGP_EXP_SP: lambda s: calibration.logp_exp_sp(s, self.base_sp, self.mean_sp),
            ScoreType.LOGP_BONF_EXP_SP: lambda s: calibration.logp_bonf_exp_sp(
                s, self.base_sp, self.mean_sp, n),
            ScoreType.LOGP_EVD_XCORR: lambda s: calibration.logp_evd(s, self.mu, self.lambda_),
            ScoreType.LOGP_BONF_EVD_XCORR: lambda s: calibration.logp_bonf_evd(
                s, self.mu, self.lambda_, n),
            ScoreType.LOGP_WEIBULL_SP: lambda s: calibration.logp_weibull(
                s, self.eta, self.beta, self.shift),
            ScoreType.LOGP_WEIBULL_XCORR: lambda s: calibration.logp_weibull(
                s, self.eta, self.beta, self.shift),
            ScoreType.LOGP_BONF_WEIBULL_SP: lambda s: calibration.logp_bonf_weibull(
                s, self.eta, self.beta, self.shift, n),
            ScoreType.LOGP_BONF_WEIBULL_XCORR: lambda s: calibration.logp_bonf_weibull(
                s, self.eta, self.beta, self.shift, n),
        }
        return functions[score_type]

    def score_p_values(self, score_type: ScoreType, top_n: int) -> None:
        """-log(p) for the top ``top_n`` matches by the raw score of ``score_type``.

        Matches below ``top_n`` get ``P_VALUE_NA``.

        Raises
        ------
        ValueError
            If ``score_type`` is not a p-value type
        MissingScoreError
            If its raw score has not been computed
        """
        self._check_unlocked("score")
        if score_type not in P_VALUE_TYPES:
            raise ValueError(f"{score_type.name} is not a p-value score type")
        base = prerequisite(score_type)
        self.require_scored(base)

        pvalue = self._pvalue_function(score_type)
        self._ensure_sorted(base)
        for idx, match in enumerate(self.matches):
            if idx < top_n:
                match.set_score(score_type, pvalue(match.get_score(base)))
            else:
                match.set_score(score_type, P_VALUE_NA)
        self.set_scored(score_type)
        self.populate_ranks(score_type)

    # =========================================================================
    # External Scores
    # =========================================================================

    def fill_results(
        self,
        values: Sequence[float],
        score_type: ScoreType,
        preserve_order: bool = True,
    ) -> None:
        """Store externally computed scores, in current match order, and rank.

        Parameters
        ----------
        values : sequence of float
            One score per match, in the current match order
        score_type : ScoreType
            Type the values are stored as
        preserve_order : bool
            Restore the current match order after ranking
        """
        self._check_unlocked("fill results")
        if len(values) != len(self.matches):
            raise ValueError(
                f"Got {len(values)} values for {len(self.matches)} matches"
            )
        for match, value in zip(self.matches, values):
            match.set_score(score_type, value)

        saved_order = list(self.matches) if preserve_order else None
        saved_last_sorted = self.last_sorted
        self.populate_ranks(score_type)
        if saved_order is not None:
            self.matches = saved_order
            self.last_sorted = saved_last_sorted
        self.set_scored(score_type)

    # =========================================================================
    # Serialization
    # =========================================================================

    def write_spectrum(self, fh: BinaryIO, top_match: int, main_score_type: ScoreType) -> int:
        """Write one spectrum block with the top ``top_match`` matches.

        Returns
        -------
        int
            Number of match records written
        """
        delta_cn = self._delta_cn if self.is_scored(ScoreType.XCORR) else 0.0
        csm.write_spectrum_header(
            fh,
            charge=self.charge,
            match_total=len(self.matches),
            delta_cn=delta_cn,
            ln_delta_cn=ln_or_zero(delta_cn),
            ln_experiment_size=ln_or_zero(self.experiment_size),
            scored=frozenset(self.scored_types),
        )
        written = 0
        with MatchIterator(self, main_score_type) as matches:
            for match in matches:
                if written >= top_match:
                    break
                csm.write_match(fh, match)
                written += 1
        return written


# =============================================================================
# Module-level Operations
# =============================================================================

def random_sample(
    collection: MatchCollection,
    n: int,
    rng: Optional[np.random.Generator] = None,
) -> MatchCollection:
    """Draw ``n`` matches uniformly with replacement.

    Returns ``collection`` itself when ``n >= len(collection)``. Sampled
    matches are shared with the source, never copied.
    """
    total = len(collection)
    if n >= total:
        return collection

    rng = rng if rng is not None else np.random.default_rng()
    sample = MatchCollection(
        charge=collection.charge,
        is_decoy=collection.is_decoy,
        max_matches=collection.max_matches,
    )
    for idx in (rng.random(n) * total).astype(np.int64):
        sample.add_match(collection.matches[idx])
    sample.experiment_size = collection.experiment_size
    sample.scored_types = set(collection.scored_types)
    return sample


def build_from_spectrum(
    spectrum: Spectrum,
    charge: int,
    params,
    candidate_source,
    is_decoy: bool = False,
    rng: Optional[np.random.Generator] = None,
) -> Optional[MatchCollection]:
    """Score, calibrate and rank all candidates of one spectrum at one charge.

    Parameters
    ----------
    spectrum : Spectrum
        Observed spectrum
    charge : int
        Assumed precursor charge
    params : SearchParameters
        Truncation, score types and fitting settings
    candidate_source : object
        Provides ``candidates(neutral_mass, window, mass_offset)``
    is_decoy : bool
        Marks the matches as decoys
    rng : np.random.Generator, optional
        Random source for the calibration sample

    Returns
    -------
    MatchCollection or None
        None if the spectrum could not be scored (no candidates, too few
        samples to fit, no convergence)
    """
    main_type = params.score_type
    collection = MatchCollection(charge=charge, is_decoy=is_decoy, max_matches=params.max_matches)
    sp_scorer = Scorer.from_params(ScoreType.SP, params)
    xcorr_scorer = Scorer.from_params(ScoreType.XCORR, params)

    try:
        candidates = candidate_source.candidates(
            spectrum.neutral_mass(charge), params.mass_window, params.mass_offset
        )
        collection.score_sp(spectrum, charge, candidates, sp_scorer)
        collection.estimate_parameters(main_type, params, spectrum, charge, xcorr_scorer, rng)
    except SpectrumNotScoredError as e:
        logger.warning(f"Scan {spectrum.scan} charge {charge} not scored: {e}")
        return None

    collection.truncate(params.max_rank, params.prelim_score_type)

    if main_type in XCORR_FAMILY:
        collection.score_xcorr(spectrum, charge, xcorr_scorer)
    if main_type in P_VALUE_TYPES:
        collection.score_p_values(main_type, params.top_rank_for_p_value)
    return collection


# =============================================================================
# Iterator
# =============================================================================

class MatchIterator:
    """Read-only traversal of a collection, holding its iterator lock.

    Parameters
    ----------
    collection : MatchCollection
        Collection to traverse
    score_type : ScoreType
        Score the traversal is ordered by; must be scored
    sort : bool
        Sort by ``score_type`` first unless already in that order

    Raises
    ------
    LockedCollectionError
        If another iterator is open on the collection
    MissingScoreError
        If ``score_type`` has not been computed

    Examples
    --------
    >>> with MatchIterator(collection, ScoreType.XCORR) as matches:
    ...     best = next(matches)
    """

    def __init__(self, collection: MatchCollection, score_type: ScoreType, sort: bool = True):
        self._open = False
        if collection.iterator_lock:
            raise LockedCollectionError("Only one iterator may be open per collection.")
        collection.require_scored(score_type)
        if sort and not is_same_order(collection.last_sorted, score_type):
            collection.sort(score_type)

        self.collection = collection
        self.score_type = score_type
        self._idx = 0
        collection.iterator_lock = True
        self._open = True

    @classmethod
    def spectrum_sorted(cls, collection: MatchCollection, score_type: ScoreType) -> 'MatchIterator':
        """Iterator over matches grouped by scan and charge."""
        if collection.iterator_lock:
            raise LockedCollectionError("Only one iterator may be open per collection.")
        collection.require_scored(score_type)
        collection.spectrum_sort(score_type)
        return cls(collection, score_type, sort=False)

    def has_next(self) -> bool:
        return self._open and self._idx < len(self.collection.matches)

    def next(self) -> Match:
        if not self.has_next():
            raise StopIteration
        match = self.collection.matches[self._idx]
        self._idx += 1
        return match

    def __iter__(self) -> 'MatchIterator':
        return self

    def __next__(self) -> Match:
        return self.next()

    def close(self) -> None:
        if self._open:
            self.collection.iterator_lock = False
            self._open = False

    def __enter__(self) -> 'MatchIterator':
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()

    def __del__(self):
        if getattr(self, '_open', False):
            self.close()
