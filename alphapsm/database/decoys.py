"""Decoy peptide candidates for null (decoy) match collections.

Every decoy keeps the amino acid composition of its target, and therefore
its precursor mass, so decoys compete in exactly the same mass window as
the target candidates they were derived from.

Methods
-------
- shuffle: random permutation with the C-terminal residue kept (default,
  gives a different decoy for every decoy set)
- reverse: simple reversal
- pseudo_reverse: reversal with the C-terminal residue kept
"""

from __future__ import annotations

import logging
from typing import Iterator, Optional

import numpy as np

from ..match import Peptide
from .peptide_db import PeptideDatabase

logger = logging.getLogger(__name__)

DECOY_METHODS = ('shuffle', 'reverse', 'pseudo_reverse')


def generate_reverse_decoy(peptide: str) -> str:
    """Reverse the sequence.

    >>> generate_reverse_decoy("PEPTIDEK")
    'KEDITPEP'
    """
    return peptide[::-1]


def generate_pseudo_reverse_decoy(peptide: str) -> str:
    """Reverse all but the C-terminal residue.

    >>> generate_pseudo_reverse_decoy("PEPTIDEK")
    'EDITPEPK'

    Peptides of length 1-2 are returned unchanged.
    """
    if len(peptide) <= 2:
        return peptide
    return peptide[-2::-1] + peptide[-1]


def generate_shuffle_decoy(peptide: str, rng: np.random.Generator) -> str:
    """Randomly permute all but the C-terminal residue.

    The draw is retried a few times to avoid returning the target itself;
    sequences with a single distinct residue are returned unchanged.
    """
    if len(peptide) <= 2:
        return peptide
    body = list(peptide[:-1])
    for _ in range(10):
        rng.shuffle(body)
        decoy = ''.join(body) + peptide[-1]
        if decoy != peptide:
            return decoy
    return decoy


class DecoyCandidateSource:
    """Candidate source yielding decoys of a target database's candidates.

    Parameters
    ----------
    database : PeptideDatabase
        Target candidate source
    method : str
        One of 'shuffle', 'reverse', 'pseudo_reverse'
    seed : int, optional
        Seed for the shuffle; use a different seed per decoy set

    Examples
    --------
    >>> db = PeptideDatabase(["PEPTIDEK"])
    >>> source = DecoyCandidateSource(db, method='pseudo_reverse')
    >>> [p.sequence for p in source.candidates(927.455, 0.5)]
    ['EDITPEPK']
    """

    def __init__(
        self,
        database: PeptideDatabase,
        method: str = 'shuffle',
        seed: Optional[int] = None,
    ):
        if method not in DECOY_METHODS:
            raise ValueError(
                f"Unknown decoy method: {method}. "
                f"Must be one of {', '.join(DECOY_METHODS)}"
            )
        self.database = database
        self.method = method
        self.rng = np.random.default_rng(seed)

    def make_decoy(self, sequence: str) -> str:
        if self.method == 'shuffle':
            return generate_shuffle_decoy(sequence, self.rng)
        if self.method == 'reverse':
            return generate_reverse_decoy(sequence)
        return generate_pseudo_reverse_decoy(sequence)

    def candidates(self, neutral_mass: float, window: float, mass_offset: float = 0.0) -> Iterator[Peptide]:
        for target in self.database.candidates(neutral_mass, window, mass_offset):
            yield Peptide(
                self.make_decoy(target.sequence),
                target.neutral_mass,
                target.protein_indices,
            )
