"""alphapsm - peptide-spectrum match scoring, calibration and ranking.

Numba-accelerated SEQUEST-style scoring (SP, XCORR), per-spectrum
calibration of raw scores into -log(p) values (Weibull, EVD, exponential
SP with Bonferroni correction), a binary result-file format to merge
searches, and Benjamini-Hochberg q-values across an experiment.
"""

__version__ = "0.1.0"

from alphapsm import fragments
from alphapsm import database
from alphapsm import scoring
from alphapsm import collection
from alphapsm import io

from alphapsm.config import SearchParameters
from alphapsm.spectrum import Spectrum
from alphapsm.match import Match, Peptide
from alphapsm.search import search_spectra

__all__ = [
    "fragments",
    "database",
    "scoring",
    "collection",
    "io",
    "SearchParameters",
    "Spectrum",
    "Match",
    "Peptide",
    "search_spectra",
]
