"""SP and XCORR scoring of predicted ion series against one spectrum.

A ``Scorer`` is bound to one raw score type. On the first call it turns the
observed spectrum into a binned intensity array (the expensive part), then
reuses that array for every candidate peptide of the same spectrum and
charge.

SP preprocessing
----------------
1. Bin peaks (bin width 1.0005079), sqrt intensity, max per bin; skip peaks
   above precursor_mz * charge + 50 and within precursor_mz +/- 15
2. Normalize to 100, 5-point smoothing (1, 4, 6, 4, 1) / 16
3. Two passes of zero-and-extract over a +/-50 bin window (k = 1, then 2)
4. Keep the top N bins, renormalize to 100
5. Equalize contiguous non-zero runs to their maximum

XCORR preprocessing
-------------------
1. Bin peaks with the same filters, sqrt intensity, max per bin
2. Normalize 10 m/z regions independently to 50
3. Subtract the mean background of the +/-75 flanking bins

Examples
--------
>>> scorer = Scorer(ScoreType.SP, beta=0.075, max_mz=4000.0)
>>> ions = predict_ions("PEPTIDE", IonConstraint.sequest_sp(2))
>>> sp = scorer.score(spectrum, 2, ions)
"""

from __future__ import annotations

import logging
from typing import Tuple

import numpy as np
import numba

from ..constants import (
    BIN_WIDTH_MONO,
    H2O_MASS,
    ION_TYPE_A,
    ION_TYPE_B,
    ION_TYPE_Y,
    MASS_CUTOFF_PADDING,
    NH3_MASS,
    PRECURSOR_EXCLUSION_WINDOW,
    SP_MAX_INTENSITY,
    SP_MAX_TOP_PEAKS,
    SP_PEAK_WINDOW,
    XCORR_A_ION_HEIGHT,
    XCORR_FLANK_HEIGHT,
    XCORR_LOSS_HEIGHT,
    XCORR_MAX_OFFSET,
    XCORR_NUM_REGIONS,
    XCORR_PRIMARY_HEIGHT,
    XCORR_REGION_MAX,
)
from ..fragments.generator import IonSeries
from ..spectrum import Spectrum
from .score_types import ScoreType

logger = logging.getLogger(__name__)


# =============================================================================
# Shared Helpers
# =============================================================================

@numba.jit(nopython=True, cache=True)
def mz_to_bin(mz: float) -> int:
    """Map an m/z value to its intensity-array bin."""
    return int(mz / BIN_WIDTH_MONO + 0.5)


def experimental_mass_cutoff(precursor_mz: float, charge: int) -> float:
    return precursor_mz * charge + MASS_CUTOFF_PADDING


def top_peak_count(cutoff: float) -> int:
    """Number of bins kept by SP peak extraction for a mass cut-off."""
    mass = cutoff - MASS_CUTOFF_PADDING
    if mass < 3200:
        return min(SP_MAX_TOP_PEAKS, int(np.sqrt(16.0 * max(mass, 0.0)) + 0.5))
    return int(mass / 14.0)


def xcorr_array_size(cutoff: float) -> int:
    """Observed array length: 512, or the next multiple of 1024 above cutoff."""
    if cutoff > 512:
        n_blocks = int(cutoff) // 1024
        size = n_blocks * 1024
        if cutoff - size > 0:
            size += 1024
        return size
    return 512


# =============================================================================
# SP Preprocessing (Numba-Compiled)
# =============================================================================

@numba.jit(nopython=True, cache=True)
def _bin_peaks_sp(
    mz: np.ndarray,
    intensity: np.ndarray,
    precursor_mz: float,
    cutoff: float,
    array_size: int,
) -> Tuple[np.ndarray, int, float]:
    """Binned sqrt-intensity array, highest filled bin and max intensity."""
    array = np.zeros(array_size, dtype=np.float64)
    last_idx = 0
    max_intensity = 0.0
    for i in range(len(mz)):
        peak = mz[i]
        if peak > cutoff:
            continue
        if precursor_mz - PRECURSOR_EXCLUSION_WINDOW < peak < precursor_mz + PRECURSOR_EXCLUSION_WINDOW:
            continue
        idx = mz_to_bin(peak)
        if idx >= array_size:
            continue
        value = np.sqrt(intensity[i])
        if array[idx] < value:
            array[idx] = value
            if value > max_intensity:
                max_intensity = value
        if last_idx < idx:
            last_idx = idx
    return array, last_idx, max_intensity


@numba.jit(nopython=True, cache=True)
def _smooth_peaks(array: np.ndarray, last_idx: int) -> Tuple[np.ndarray, int]:
    """(1, 4, 6, 4, 1) / 16 smoothing; stops at the first empty bin past last_idx."""
    size = len(array)
    smoothed = np.zeros(size, dtype=np.float64)
    for idx in range(2, size - 2):
        smoothed[idx] = (
            array[idx-2] + 4.0 * array[idx-1] + 6.0 * array[idx]
            + 4.0 * array[idx+1] + array[idx+2]
        ) / 16.0
        if last_idx < idx and smoothed[idx] == 0:
            last_idx = idx - 1
            break
    return smoothed, last_idx


@numba.jit(nopython=True, cache=True)
def _zero_peak_pass(
    original: np.ndarray,
    extracted: np.ndarray,
    step: int,
    last_idx: int,
) -> int:
    """Move peaks above mean + step * stdev of their window into ``extracted``.

    The mean divides by (window - 1) and the stdev by window, as in the
    classic SEQUEST preprocessing. Peaks extracted in the first pass are
    zeroed in ``original``, which affects the windows that follow.
    """
    size = len(original)
    for idx in range(size):
        start = idx - SP_PEAK_WINDOW
        end = idx + SP_PEAK_WINDOW
        if end >= size:
            end = size - 1
        if start <= 0:
            start = 0

        count = 0
        total = 0.0
        for j in range(start, end + 1):
            count += 1
            total += original[j]
        mean = total / (count - 1)

        variance = 0.0
        for j in range(start, end + 1):
            dev = original[j] - mean
            variance += dev * dev
        stdev = np.sqrt(variance / count)

        if original[idx] > mean + step * stdev:
            extracted[idx] = original[idx] - (mean - stdev)
            if last_idx < idx:
                last_idx = idx
            if step == 1:
                original[idx] = 0.0
    return last_idx


@numba.jit(nopython=True, cache=True)
def _extract_top_peaks(array: np.ndarray, top_rank: int) -> None:
    """Zero all but the ``top_rank`` highest bins, rescale the rest to 100."""
    positive = array[array > 0]
    if len(positive) == 0 or top_rank < 1:
        return
    ordered = np.sort(positive)[::-1]
    max_intensity = ordered[0]
    cut_off = ordered[top_rank - 1] if top_rank <= len(ordered) else 0.0
    for idx in range(len(array)):
        if array[idx] > 0:
            if array[idx] < cut_off:
                array[idx] = 0.0
            else:
                array[idx] = array[idx] / max_intensity * SP_MAX_INTENSITY


@numba.jit(nopython=True, cache=True)
def _equalize_peaks(array: np.ndarray, last_idx: int) -> None:
    """Set every contiguous non-zero run below last_idx to its maximum."""
    idx = 0
    while idx < last_idx:
        if array[idx] > 0:
            max_intensity = array[idx]
            end_idx = idx + 1
            while end_idx < last_idx and array[end_idx] > 0:
                if array[end_idx] > max_intensity:
                    max_intensity = array[end_idx]
                end_idx += 1
            for j in range(idx, end_idx):
                array[j] = max_intensity
            idx = end_idx
        else:
            idx += 1


def preprocess_sp(spectrum: Spectrum, charge: int, max_mz: float) -> np.ndarray:
    """SP intensity array of ``spectrum`` at ``charge``.

    Parameters
    ----------
    spectrum : Spectrum
        Observed spectrum
    charge : int
        Assumed precursor charge
    max_mz : float
        Array width in bins

    Returns
    -------
    intensity_array : np.ndarray (float64)
    """
    array_size = int(max_mz)
    cutoff = experimental_mass_cutoff(spectrum.precursor_mz, charge)

    array, last_idx, max_intensity = _bin_peaks_sp(
        spectrum.mz, spectrum.intensity, spectrum.precursor_mz, cutoff, array_size
    )

    if max_intensity >= 0.00001:
        array[:last_idx + 1] *= SP_MAX_INTENSITY / max_intensity

    array, last_idx = _smooth_peaks(array, last_idx)

    extracted = np.zeros(array_size, dtype=np.float64)
    last_idx = _zero_peak_pass(array, extracted, 1, last_idx)
    last_idx = _zero_peak_pass(array, extracted, 2, last_idx)

    _extract_top_peaks(extracted, top_peak_count(cutoff))
    _equalize_peaks(extracted, last_idx)
    return extracted


@numba.jit(nopython=True, cache=True)
def _score_sp_kernel(
    intensity_array: np.ndarray,
    ion_mz: np.ndarray,
    ion_type: np.ndarray,
    cleavage_idx: np.ndarray,
    ion_charge: np.ndarray,
    beta: float,
) -> Tuple[float, int]:
    """SP score and number of matched b/y ions."""
    size = len(intensity_array)
    max_charge = 1
    for i in range(len(ion_charge)):
        if ion_charge[i] > max_charge:
            max_charge = ion_charge[i]

    intensity_sum = 0.0
    ion_match = 0
    repeat_count = 0

    for frag_type in (ION_TYPE_B, ION_TYPE_Y):
        before_cleavage = np.full(max_charge, -1, dtype=np.int64)
        for i in range(len(ion_mz)):
            if ion_type[i] != frag_type:
                continue
            idx = mz_to_bin(ion_mz[i])
            if idx >= size:
                continue
            intensity = intensity_array[idx]
            if intensity > 0:
                ion_match += 1
                intensity_sum += intensity
                c = ion_charge[i] - 1
                if cleavage_idx[i] == before_cleavage[c] + 1:
                    repeat_count += 1
                before_cleavage[c] = cleavage_idx[i]

    n_ions = len(ion_mz)
    if ion_match == 0 or n_ions == 0:
        return 0.0, ion_match
    score = (intensity_sum * ion_match) * (1.0 + repeat_count * beta) / n_ions
    return score, ion_match


# =============================================================================
# XCORR Preprocessing (Numba-Compiled)
# =============================================================================

@numba.jit(nopython=True, cache=True)
def _bin_peaks_xcorr(
    mz: np.ndarray,
    intensity: np.ndarray,
    precursor_mz: float,
    cutoff: float,
    array_size: int,
    region_selector: int,
) -> Tuple[np.ndarray, np.ndarray]:
    """Binned sqrt-intensity array and max intensity per region."""
    observed = np.zeros(array_size, dtype=np.float64)
    region_max = np.zeros(XCORR_NUM_REGIONS, dtype=np.float64)
    for i in range(len(mz)):
        peak = mz[i]
        if peak > cutoff:
            continue
        if precursor_mz - PRECURSOR_EXCLUSION_WINDOW < peak < precursor_mz + PRECURSOR_EXCLUSION_WINDOW:
            continue
        idx = mz_to_bin(peak)
        if idx >= array_size:
            continue
        region = idx // region_selector
        if region > XCORR_NUM_REGIONS - 1:
            continue
        value = np.sqrt(intensity[i])
        if observed[idx] < value:
            observed[idx] = value
            if region_max[region] < value:
                region_max[region] = value
    return observed, region_max


@numba.jit(nopython=True, cache=True)
def _normalize_regions(
    observed: np.ndarray,
    region_max: np.ndarray,
    region_selector: int,
) -> None:
    region_idx = 0
    max_intensity = region_max[0]
    for idx in range(len(observed)):
        if idx >= region_selector * (region_idx + 1) and region_idx < XCORR_NUM_REGIONS - 1:
            region_idx += 1
            max_intensity = region_max[region_idx]
        if max_intensity != 0:
            observed[idx] = observed[idx] / max_intensity * XCORR_REGION_MAX
        if idx > XCORR_NUM_REGIONS * region_selector:
            return


@numba.jit(nopython=True, cache=True)
def _subtract_background(observed: np.ndarray) -> np.ndarray:
    """new[i] = obs[i] - sum(obs[j], 0 <= j < size, 0 < |j - i| <= 75) / 150."""
    size = len(observed)
    divisor = XCORR_MAX_OFFSET * 2.0
    result = np.empty(size, dtype=np.float64)
    for idx in range(size):
        background = 0.0
        for j in range(idx - XCORR_MAX_OFFSET, idx + XCORR_MAX_OFFSET + 1):
            if j < 0 or j >= size or j == idx:
                continue
            background += observed[j]
        result[idx] = observed[idx] - background / divisor
    return result


def preprocess_xcorr(spectrum: Spectrum, charge: int) -> np.ndarray:
    """Background-subtracted XCORR observed array of ``spectrum`` at ``charge``."""
    cutoff = experimental_mass_cutoff(spectrum.precursor_mz, charge)
    array_size = xcorr_array_size(cutoff)
    region_selector = max(1, int(spectrum.max_peak_mz / XCORR_NUM_REGIONS))

    observed, region_max = _bin_peaks_xcorr(
        spectrum.mz,
        spectrum.intensity,
        spectrum.precursor_mz,
        cutoff,
        array_size,
        region_selector,
    )
    _normalize_regions(observed, region_max, region_selector)
    return _subtract_background(observed)


@numba.jit(nopython=True, cache=True)
def _set_max(array: np.ndarray, idx: int, intensity: float) -> None:
    if 0 <= idx < len(array) and array[idx] < intensity:
        array[idx] = intensity


@numba.jit(nopython=True, cache=True)
def theoretical_xcorr_array(
    ion_mz: np.ndarray,
    ion_type: np.ndarray,
    array_size: int,
) -> np.ndarray:
    """Theoretical spectrum: b/y at 50 with +/-1 flanks at 25, losses and a-ions at 10.

    Neutral-loss bins are computed from the ion m/z minus the full H2O or
    NH3 mass (water loss for b-ions only).
    """
    theoretical = np.zeros(array_size, dtype=np.float64)
    for i in range(len(ion_mz)):
        mz = ion_mz[i]
        idx = mz_to_bin(mz)
        if idx >= array_size:
            continue
        if ion_type[i] == ION_TYPE_B or ion_type[i] == ION_TYPE_Y:
            _set_max(theoretical, idx, XCORR_PRIMARY_HEIGHT)
            _set_max(theoretical, idx + 1, XCORR_FLANK_HEIGHT)
            _set_max(theoretical, idx - 1, XCORR_FLANK_HEIGHT)
            if ion_type[i] == ION_TYPE_B:
                _set_max(theoretical, mz_to_bin(mz - H2O_MASS), XCORR_LOSS_HEIGHT)
            _set_max(theoretical, mz_to_bin(mz - NH3_MASS), XCORR_LOSS_HEIGHT)
        elif ion_type[i] == ION_TYPE_A:
            _set_max(theoretical, idx, XCORR_A_ION_HEIGHT)
    return theoretical


# =============================================================================
# Scorer
# =============================================================================

class Scorer:
    """Stateful scorer for one raw score type (SP or XCORR).

    Parameters
    ----------
    score_type : ScoreType
        ``ScoreType.SP`` or ``ScoreType.XCORR``
    beta : float
        SP repeat bonus factor
    max_mz : float
        Width of the SP intensity array in bins

    Attributes
    ----------
    b_y_ion_matched, b_y_ion_possible : int
        Ion statistics of the last SP score
    """

    def __init__(self, score_type: ScoreType, beta: float = 0.075, max_mz: float = 4000.0):
        if score_type not in (ScoreType.SP, ScoreType.XCORR):
            raise ValueError(
                f"Scorer supports SP and XCORR, got {score_type.name}"
            )
        self.score_type = score_type
        self.beta = beta
        self.max_mz = max_mz

        self._key = None
        self.intensity_array = None

        self.b_y_ion_matched = 0
        self.b_y_ion_possible = 0

    @classmethod
    def from_params(cls, score_type: ScoreType, params) -> 'Scorer':
        """Scorer configured from ``SearchParameters``."""
        return cls(score_type, beta=params.beta, max_mz=params.max_mz)

    @property
    def initialized(self) -> bool:
        return self.intensity_array is not None

    @property
    def b_y_ion_fraction_matched(self) -> float:
        if self.b_y_ion_possible == 0:
            return 0.0
        return self.b_y_ion_matched / self.b_y_ion_possible

    def initialize(self, spectrum: Spectrum, charge: int) -> None:
        """Preprocess ``spectrum`` for this scorer's score type."""
        if self.score_type == ScoreType.SP:
            self.intensity_array = preprocess_sp(spectrum, charge, self.max_mz)
        else:
            self.intensity_array = preprocess_xcorr(spectrum, charge)
        self._key = (spectrum.scan, spectrum.precursor_mz, charge)
        logger.debug(
            f"Initialized {self.score_type.name} scorer for scan {spectrum.scan} "
            f"charge {charge} ({len(self.intensity_array)} bins)"
        )

    def score(self, spectrum: Spectrum, charge: int, ions: IonSeries) -> float:
        """Score an ion series against ``spectrum`` at ``charge``.

        The spectrum is preprocessed on the first call and whenever a
        different spectrum or charge is scored.
        """
        if self._key != (spectrum.scan, spectrum.precursor_mz, charge):
            self.initialize(spectrum, charge)

        if self.score_type == ScoreType.SP:
            score, matched = _score_sp_kernel(
                self.intensity_array,
                ions.mz,
                ions.ion_type,
                ions.cleavage_idx,
                ions.ion_charge,
                self.beta,
            )
            self.b_y_ion_matched = int(matched)
            self.b_y_ion_possible = ions.n_ions
            return float(score)

        theoretical = theoretical_xcorr_array(
            ions.mz, ions.ion_type, len(self.intensity_array)
        )
        return float(np.dot(self.intensity_array, theoretical) / 10000.0)
