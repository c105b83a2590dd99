"""Peptide candidate source with mass-indexed binary search.

Peptides are sorted by neutral mass so that the candidates of a spectrum
are found with two binary searches over the precursor mass window.
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Iterator, List, Optional, Sequence, Tuple

import numpy as np
import numba

from ..fragments.generator import calculate_neutral_mass, encode_peptide_to_ord
from ..match import Peptide

logger = logging.getLogger(__name__)


# =============================================================================
# Numba-Accelerated Binary Search
# =============================================================================

@numba.jit(nopython=True, cache=True)
def search_mass_range_numba(
    masses: np.ndarray,
    mass_min: float,
    mass_max: float,
) -> Tuple[int, int]:
    """Binary search for the index range of masses in [mass_min, mass_max].

    Parameters
    ----------
    masses : np.ndarray (float64)
        Sorted neutral masses
    mass_min, mass_max : float
        Inclusive mass bounds

    Returns
    -------
    start_idx : int
        First index in range (inclusive)
    end_idx : int
        Last index in range (exclusive, Python convention)

    Examples
    --------
    >>> masses = np.array([100.0, 200.0, 200.1, 300.0])
    >>> search_mass_range_numba(masses, 199.5, 200.5)
    (1, 3)
    """
    n = len(masses)
    if n == 0:
        return (0, 0)

    # first mass >= mass_min
    left, right = 0, n
    while left < right:
        mid = (left + right) // 2
        if masses[mid] < mass_min:
            left = mid + 1
        else:
            right = mid
    start_idx = left

    # first mass > mass_max
    left, right = start_idx, n
    while left < right:
        mid = (left + right) // 2
        if masses[mid] <= mass_max:
            left = mid + 1
        else:
            right = mid
    end_idx = left

    return (start_idx, end_idx)


# =============================================================================
# Peptide Database
# =============================================================================

class PeptideDatabase:
    """Mass-indexed peptide candidate source.

    Attributes
    ----------
    peptides : List[str]
        Peptide sequences in input order
    protein_indices : List[Tuple[int, ...]]
        Proteins each peptide occurs in
    neutral_masses : np.ndarray (float64)
        Neutral masses, sorted ascending
    sort_indices : np.ndarray (int64)
        peptides[sort_indices[i]] corresponds to neutral_masses[i]

    Examples
    --------
    >>> db = PeptideDatabase(["PEPTIDE", "SEQUENCE", "PROTEIN"])
    >>> [p.sequence for p in db.search_mass_window(799.36, 0.5)]
    ['PEPTIDE']
    """

    def __init__(
        self,
        peptides: Sequence[str],
        protein_indices: Optional[Sequence[Sequence[int]]] = None,
    ):
        self.peptides = list(peptides)
        self.n_peptides = len(self.peptides)

        if protein_indices is None:
            self.protein_indices = [() for _ in self.peptides]
        else:
            if len(protein_indices) != self.n_peptides:
                raise ValueError(
                    f"protein_indices has {len(protein_indices)} entries "
                    f"for {self.n_peptides} peptides"
                )
            self.protein_indices = [tuple(int(p) for p in idx) for idx in protein_indices]

        masses = np.array(
            [calculate_neutral_mass(encode_peptide_to_ord(pep)) for pep in self.peptides],
            dtype=np.float64,
        )
        self.sort_indices = np.argsort(masses, kind='stable')
        self.neutral_masses = masses[self.sort_indices]

        if self.n_peptides:
            logger.info(
                f"Indexed {self.n_peptides:,} peptides "
                f"({self.neutral_masses[0]:.2f} - {self.neutral_masses[-1]:.2f} Da)"
            )

    def get_peptide(self, idx: int) -> Peptide:
        """Peptide by original (input order) index."""
        sequence = self.peptides[idx]
        return Peptide(
            sequence,
            float(calculate_neutral_mass(encode_peptide_to_ord(sequence))),
            self.protein_indices[idx],
        )

    def search_mass_window(self, mass: float, window: float) -> List[Peptide]:
        """All peptides whose neutral mass lies within ``mass +/- window`` Da."""
        start_idx, end_idx = search_mass_range_numba(
            self.neutral_masses, mass - window, mass + window
        )
        return [
            Peptide(
                self.peptides[i],
                float(self.neutral_masses[pos]),
                self.protein_indices[i],
            )
            for pos, i in zip(range(start_idx, end_idx), self.sort_indices[start_idx:end_idx])
        ]

    def candidates(self, neutral_mass: float, window: float, mass_offset: float = 0.0) -> Iterator[Peptide]:
        """Iterate candidates for a precursor neutral mass shifted by ``mass_offset``."""
        yield from self.search_mass_window(neutral_mass + mass_offset, window)

    @classmethod
    def from_tsv(
        cls,
        tsv_path: str,
        peptide_column: str = 'peptide',
        protein_column: Optional[str] = None,
    ) -> 'PeptideDatabase':
        """Create database from a TSV file.

        Parameters
        ----------
        tsv_path : str
            Path to TSV file with a peptide column
        peptide_column : str
            Name of peptide column (default: 'peptide')
        protein_column : str, optional
            Column with ';'-separated integer protein indices
        """
        import pandas as pd

        df = pd.read_csv(tsv_path, sep='\t')
        peptides = df[peptide_column].astype(str).tolist()
        protein_indices = None
        if protein_column is not None:
            protein_indices = [
                tuple(int(p) for p in str(value).split(';') if p != '')
                for value in df[protein_column].fillna('')
            ]

        logger.info(f"Loaded {len(peptides):,} peptides from {Path(tsv_path).name}")

        return cls(peptides, protein_indices)

    def __len__(self) -> int:
        return self.n_peptides

    def __repr__(self) -> str:
        if self.n_peptides == 0:
            return "PeptideDatabase(n_peptides=0)"
        return (
            f"PeptideDatabase(n_peptides={self.n_peptides:,}, "
            f"mass_range=[{self.neutral_masses[0]:.2f}, "
            f"{self.neutral_masses[-1]:.2f}] Da)"
        )
