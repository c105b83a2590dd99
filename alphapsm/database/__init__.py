"""Candidate peptide sources.

Mass-indexed target peptides with binary search over the precursor mass
window, and decoy sources that derive same-mass decoys from the targets.
"""

from .peptide_db import (
    PeptideDatabase,
    search_mass_range_numba,
)

from .decoys import (
    DECOY_METHODS,
    DecoyCandidateSource,
    generate_pseudo_reverse_decoy,
    generate_reverse_decoy,
    generate_shuffle_decoy,
)

__all__ = [
    # Target database
    'PeptideDatabase',
    'search_mass_range_numba',

    # Decoys
    'DECOY_METHODS',
    'DecoyCandidateSource',
    'generate_pseudo_reverse_decoy',
    'generate_reverse_decoy',
    'generate_shuffle_decoy',
]
