"""Pytest configuration for alphapsm tests.

Provides synthetic spectra built from predicted b/y ions, small candidate
sources and search parameters shared across the unit tests.
"""

import numpy as np
import pytest

from alphapsm.config import SearchParameters
from alphapsm.constants import PROTON_MASS
from alphapsm.fragments.generator import (
    IonConstraint,
    calculate_neutral_mass,
    encode_peptide_to_ord,
    predict_ions,
)
from alphapsm.match import Peptide
from alphapsm.spectrum import Spectrum


def make_spectrum(sequence, charge=2, scan=1, n_noise=40, seed=0):
    """Spectrum holding the singly charged b/y ions of ``sequence`` plus noise."""
    rng = np.random.default_rng(seed)
    neutral_mass = calculate_neutral_mass(encode_peptide_to_ord(sequence))
    precursor_mz = (neutral_mass + charge * PROTON_MASS) / charge

    ions = predict_ions(sequence, IonConstraint((0, 1), 1))
    signal_intensity = rng.uniform(500.0, 1000.0, ions.n_ions)

    noise_mz = rng.uniform(100.0, neutral_mass, n_noise)
    noise_intensity = rng.uniform(10.0, 100.0, n_noise)

    return Spectrum(
        scan=scan,
        precursor_mz=precursor_mz,
        mz=np.concatenate([ions.mz, noise_mz]),
        intensity=np.concatenate([signal_intensity, noise_intensity]),
        charges=(charge,),
    )


def shuffled_peptides(sequence, n, seed=0):
    """``n`` same-mass permutations of ``sequence`` (C-terminal residue kept)."""
    rng = np.random.default_rng(seed)
    neutral_mass = float(calculate_neutral_mass(encode_peptide_to_ord(sequence)))
    peptides = []
    body = list(sequence[:-1])
    for i in range(n):
        rng.shuffle(body)
        peptides.append(Peptide(''.join(body) + sequence[-1], neutral_mass, (i % 7,)))
    return peptides


class ListCandidateSource:
    """Candidate source handing out a fixed list regardless of the mass window."""

    def __init__(self, peptides):
        self.peptides = list(peptides)

    def candidates(self, neutral_mass, window, mass_offset=0.0):
        yield from self.peptides


@pytest.fixture
def target_sequence():
    """Tryptic peptide used as the true identification."""
    return "LGEHNIDVLEGNEQFINAAK"


@pytest.fixture
def target_spectrum(target_sequence):
    """Charge 2 spectrum of the target peptide."""
    return make_spectrum(target_sequence, charge=2, scan=7)


@pytest.fixture
def tryptic_peptides():
    """Collection of typical tryptic peptides."""
    return [
        "PEPTIDEK",
        "ACDEFGHIK",
        "TESTPEPTIDER",
        "YGGFMTSEK",
        "LGEHNIDVLEGNEQFINAAK",
    ]


@pytest.fixture
def params():
    """Search parameters sized for small synthetic tests."""
    return SearchParameters(
        max_rank=50,
        top_match=3,
        max_sqt_result=3,
        sample_count=0,
        num_decoy_sets=1,
    )


@pytest.fixture
def rng():
    return np.random.default_rng(42)


# Random seed for reproducibility
@pytest.fixture(scope="session", autouse=True)
def set_random_seed():
    """Set random seed for reproducible tests."""
    np.random.seed(42)
