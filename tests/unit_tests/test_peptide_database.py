"""Tests for the mass-indexed peptide database and decoy candidate sources.

Tests the binary search over the precursor mass window, candidate
generation with a mass offset, TSV loading and same-mass decoys.
"""

import numpy as np
import pytest

from alphapsm.database.decoys import (
    DecoyCandidateSource,
    generate_pseudo_reverse_decoy,
    generate_reverse_decoy,
    generate_shuffle_decoy,
)
from alphapsm.database.peptide_db import PeptideDatabase, search_mass_range_numba
from alphapsm.fragments.generator import calculate_neutral_mass, encode_peptide_to_ord


def neutral_mass(sequence):
    return float(calculate_neutral_mass(encode_peptide_to_ord(sequence)))


class TestSearchMassRangeNumba:
    """Test Numba-accelerated binary search for a mass range."""

    def test_exact_match(self):
        masses = np.array([100.0, 200.0, 300.0, 400.0], dtype=np.float64)

        start, end = search_mass_range_numba(masses, 199.9, 200.1)

        assert start == 1
        assert end == 2

    def test_multiple_matches_in_range(self):
        masses = np.array([100.0, 200.0, 200.1, 200.2, 300.0], dtype=np.float64)

        start, end = search_mass_range_numba(masses, 199.5, 200.5)

        assert (start, end) == (1, 4)

    def test_bounds_are_inclusive(self):
        masses = np.array([100.0, 200.0, 300.0], dtype=np.float64)

        start, end = search_mass_range_numba(masses, 100.0, 300.0)

        assert (start, end) == (0, 3)

    def test_no_matches(self):
        masses = np.array([100.0, 200.0, 300.0, 400.0], dtype=np.float64)

        start, end = search_mass_range_numba(masses, 240.0, 260.0)

        assert start == end

    def test_empty_database(self):
        masses = np.array([], dtype=np.float64)

        assert search_mass_range_numba(masses, 0.0, 1000.0) == (0, 0)


class TestPeptideDatabase:
    """Test basic peptide database functionality."""

    def test_masses_are_sorted(self, tryptic_peptides):
        db = PeptideDatabase(tryptic_peptides)

        assert len(db) == len(tryptic_peptides)
        assert np.all(np.diff(db.neutral_masses) >= 0)

    def test_search_single_match(self):
        db = PeptideDatabase(["PEPTIDE", "SEQVENCE", "PROTEIN"])

        hits = db.search_mass_window(neutral_mass("PEPTIDE"), 0.5)

        assert [p.sequence for p in hits] == ["PEPTIDE"]
        assert hits[0].neutral_mass == pytest.approx(neutral_mass("PEPTIDE"))

    def test_search_window_in_dalton(self):
        # PEPTIDEK and PEPTIDEQ differ by 0.036 Da
        db = PeptideDatabase(["PEPTIDEK", "PEPTIDEQ", "ACDEFGHIK"])
        mass = neutral_mass("PEPTIDEK")

        narrow = db.search_mass_window(mass, 0.01)
        wide = db.search_mass_window(mass, 0.1)

        assert [p.sequence for p in narrow] == ["PEPTIDEK"]
        assert sorted(p.sequence for p in wide) == ["PEPTIDEK", "PEPTIDEQ"]

    def test_candidates_apply_mass_offset(self):
        db = PeptideDatabase(["PEPTIDEK"])
        mass = neutral_mass("PEPTIDEK")

        assert list(db.candidates(mass - 16.0, 0.5)) == []
        hits = list(db.candidates(mass - 16.0, 0.5, mass_offset=16.0))
        assert [p.sequence for p in hits] == ["PEPTIDEK"]

    def test_protein_indices_carried(self):
        db = PeptideDatabase(["PEPTIDEK", "ACDEFGHIK"], protein_indices=[[0, 3], [1]])

        hit = db.search_mass_window(neutral_mass("ACDEFGHIK"), 0.1)[0]

        assert hit.protein_indices == (1,)
        assert db.get_peptide(0).protein_indices == (0, 3)

    def test_protein_indices_length_mismatch(self):
        with pytest.raises(ValueError):
            PeptideDatabase(["PEPTIDEK", "ACDEFGHIK"], protein_indices=[[0]])

    def test_from_tsv(self, tmp_path):
        tsv = tmp_path / "peptides.tsv"
        tsv.write_text("peptide\tproteins\nPEPTIDEK\t0;2\nACDEFGHIK\t1\n")

        db = PeptideDatabase.from_tsv(str(tsv), protein_column="proteins")

        assert len(db) == 2
        assert db.get_peptide(0).protein_indices == (0, 2)
        assert db.get_peptide(1).sequence == "ACDEFGHIK"

    def test_repr(self):
        assert "n_peptides=0" in repr(PeptideDatabase([]))
        assert "n_peptides=2" in repr(PeptideDatabase(["PEPTIDEK", "ACDEFGHIK"]))


class TestDecoys:
    """Decoys keep the composition, and therefore the mass, of the target."""

    def test_reverse(self):
        assert generate_reverse_decoy("PEPTIDEK") == "KEDITPEP"

    def test_pseudo_reverse_keeps_c_terminus(self):
        assert generate_pseudo_reverse_decoy("PEPTIDEK") == "EDITPEPK"
        assert generate_pseudo_reverse_decoy("AK") == "AK"

    def test_shuffle_keeps_composition(self, rng):
        decoy = generate_shuffle_decoy("LGEHNIDVLEGNEQFINAAK", rng)

        assert decoy != "LGEHNIDVLEGNEQFINAAK"
        assert decoy[-1] == "K"
        assert sorted(decoy) == sorted("LGEHNIDVLEGNEQFINAAK")

    def test_decoy_source_same_mass(self, tryptic_peptides):
        db = PeptideDatabase(tryptic_peptides, protein_indices=[[i] for i in range(5)])
        source = DecoyCandidateSource(db, method='pseudo_reverse')
        mass = neutral_mass("TESTPEPTIDER")

        decoys = list(source.candidates(mass, 0.1))

        assert [p.sequence for p in decoys] == ["EDITPEPTSETR"]
        assert decoys[0].neutral_mass == pytest.approx(mass)
        assert neutral_mass(decoys[0].sequence) == pytest.approx(mass)
        assert decoys[0].protein_indices == (2,)

    def test_seeded_shuffle_is_reproducible(self, tryptic_peptides):
        db = PeptideDatabase(tryptic_peptides)
        mass = neutral_mass("LGEHNIDVLEGNEQFINAAK")

        first = list(DecoyCandidateSource(db, seed=3).candidates(mass, 0.1))
        second = list(DecoyCandidateSource(db, seed=3).candidates(mass, 0.1))

        assert first[0].sequence == second[0].sequence

    def test_unknown_method(self, tryptic_peptides):
        with pytest.raises(ValueError):
            DecoyCandidateSource(PeptideDatabase(tryptic_peptides), method='kr_swap')
