"""Tests for binary result files, directory traversal and q-values.

Tests cover:
1. Writing collections and merging them back
2. Scored-type flag reconciliation across spectrum blocks
3. Corrupt and inconsistent files
4. Target/decoy file discovery
5. q-values over a results directory and the search driver
"""

import logging
import math

import numpy as np
import pytest

from conftest import make_spectrum, shuffled_peptides

from alphapsm.collection import MatchCollectionIterator
from alphapsm.collection.match_collection import MatchCollection
from alphapsm.config import SearchParameters
from alphapsm.constants import P_VALUE_NA
from alphapsm.database.peptide_db import PeptideDatabase
from alphapsm.exceptions import CorruptResultFileError, NoResultFilesError
from alphapsm.io.csm import (
    ResultFileWriter,
    decoy_file_name,
    discover_result_files,
    iter_spectrum_blocks,
    read_file_header,
    target_file_name,
    write_file_header,
)
from alphapsm.match import Match, Peptide
from alphapsm.scoring.qvalue import run_qvalue
from alphapsm.scoring.score_types import ScoreType
from alphapsm.search import search_spectra
from alphapsm.spectrum import SpectrumReference

SEQUENCES = ["PEPTIDEK", "ACDEFGHIK", "TESTPEPTIDER", "YGGFMTSEK", "LGEHNIDVLEGNEQFINAAK"]


def scored_collection(scan, xcorr_scores, charge=2, is_decoy=False, p_values_for=None):
    """Collection with SP, XCORR and (optionally) Weibull p-values for the top matches."""
    collection = MatchCollection(charge=charge, is_decoy=is_decoy)
    for i, xcorr in enumerate(xcorr_scores):
        match = Match(
            Peptide(SEQUENCES[i % len(SEQUENCES)], 1000.0, (i, i + 1)),
            SpectrumReference(scan, 600.0 + scan),
            charge,
            is_decoy=is_decoy,
            b_y_ion_matched=i,
            b_y_ion_possible=20,
        )
        match.set_score(ScoreType.SP, 100.0 * xcorr)
        match.set_score(ScoreType.XCORR, xcorr)
        collection.add_match(match)
    collection.experiment_size = 10 * len(xcorr_scores)
    collection.set_scored(ScoreType.SP)
    collection.populate_ranks(ScoreType.SP)
    collection.set_scored(ScoreType.XCORR)
    collection.populate_ranks(ScoreType.XCORR)
    collection.calculate_delta_cn()
    if p_values_for is not None:
        collection.eta, collection.beta, collection.shift = 1.5, 2.0, 0.0
        collection.score_p_values(ScoreType.LOGP_BONF_WEIBULL_XCORR, p_values_for)
    return collection


def write_file(path, collections, top_match=3, main=ScoreType.LOGP_BONF_WEIBULL_XCORR):
    with ResultFileWriter(path, top_match) as writer:
        for collection in collections:
            writer.write_collection(collection, main)


class TestRoundTrip:
    """Collections written by a search come back as one merged collection."""

    @pytest.fixture
    def results_dir(self, tmp_path):
        write_file(
            tmp_path / target_file_name("run"),
            [
                scored_collection(1, [3.0, 2.5, 1.0, 0.5, 0.2], p_values_for=3),
                scored_collection(2, [4.0, 1.0, 0.5, 0.1, 0.0], charge=3, p_values_for=3),
            ],
        )
        return tmp_path

    def test_header_count_patched(self, results_dir):
        with open(results_dir / "run.csm", "rb") as fh:
            header = read_file_header(fh)

        assert header.num_spectra == 2
        assert header.matches_per_spectrum == 3

    def test_write_returns_matches_written(self, tmp_path):
        with ResultFileWriter(tmp_path / "run.csm", 3) as writer:
            assert writer.write_collection(scored_collection(1, [3.0, 2.0, 1.0, 0.5]), ScoreType.XCORR) == 3
            assert writer.write_collection(scored_collection(2, [3.0, 2.0]), ScoreType.XCORR) == 2
        assert writer.closed

    def test_blocks(self, results_dir):
        blocks = list(iter_spectrum_blocks(results_dir / "run.csm"))

        assert len(blocks) == 2
        _, first, matches = blocks[0]
        assert first.charge == 2
        assert first.match_total == 5
        assert first.delta_cn == pytest.approx(0.5, rel=1e-6)
        assert first.ln_experiment_size == pytest.approx(math.log(50), rel=1e-6)
        assert first.scored == {ScoreType.SP, ScoreType.XCORR, ScoreType.LOGP_BONF_WEIBULL_XCORR}
        assert [m.get_score(ScoreType.XCORR) for m in matches] == [3.0, 2.5, 1.0]
        assert blocks[1][1].charge == 3

    def test_merged_target(self, results_dir):
        collections = MatchCollectionIterator(results_dir)
        target = collections.next()

        assert not collections.has_next()
        assert not target.is_decoy
        assert len(target) == 6
        assert target.is_scored(ScoreType.LOGP_BONF_WEIBULL_XCORR)
        assert not target.is_scored(ScoreType.DOTP)

        best = target.matches[0]
        assert best.scan == 1
        assert best.spectrum.precursor_mz == pytest.approx(601.0)
        assert best.peptide.protein_indices == (0, 1)
        assert best.b_y_ion_fraction_matched == 0.0
        assert best.get_rank(ScoreType.XCORR) == 1
        assert best.delta_cn == pytest.approx(0.5, rel=1e-6)
        assert best.ln_delta_cn == pytest.approx(math.log(0.5), rel=1e-6)
        assert not best.has_score(ScoreType.DOTP)

        second_spectrum = [m for m in target.matches if m.scan == 2]
        assert all(m.charge == 3 for m in second_spectrum)
        assert second_spectrum[0].delta_cn == pytest.approx(3.0)

    def test_protein_counters(self, results_dir):
        target = MatchCollectionIterator(results_dir).next()

        # match i of each spectrum belongs to proteins (i, i + 1)
        assert target.protein_match_counts[1] == 4
        assert target.protein_peptide_counts[1] == 2
        assert target.seen_peptides == set(SEQUENCES[:3])

    def test_mass_recomputed_on_read(self, results_dir):
        target = MatchCollectionIterator(results_dir).next()

        assert target.matches[0].peptide.neutral_mass == pytest.approx(927.4549, abs=1e-3)

    def test_non_xcorr_collection_writes_zero_delta_cn(self, tmp_path):
        collection = MatchCollection(charge=2)
        match = Match(Peptide("PEPTIDEK", 927.45), SpectrumReference(1, 464.7), 2)
        match.set_score(ScoreType.SP, 12.0)
        collection.add_match(match)
        collection.set_scored(ScoreType.SP)

        write_file(tmp_path / "run.csm", [collection], main=ScoreType.SP)

        _, block, _ = next(iter_spectrum_blocks(tmp_path / "run.csm"))
        assert block.delta_cn == 0.0
        assert block.ln_delta_cn == 0.0


class TestFlagReconciliation:
    """Consistency between spectrum blocks, their flags and their matches."""

    def test_disagreeing_block_clears_flag(self, tmp_path, caplog):
        write_file(
            tmp_path / "run.csm",
            [
                scored_collection(1, [3.0, 2.0, 1.0], p_values_for=3),
                scored_collection(2, [3.0, 2.0, 1.0]),
            ],
            main=ScoreType.XCORR,
        )

        with caplog.at_level(logging.ERROR):
            target = MatchCollectionIterator(tmp_path).next()

        assert target.scored_types == {ScoreType.SP, ScoreType.XCORR}
        assert "LOGP_BONF_WEIBULL_XCORR" in caplog.text

    def test_flags_merge_across_files(self, tmp_path):
        write_file(tmp_path / "a.csm", [scored_collection(1, [3.0, 2.0], p_values_for=2)])
        write_file(tmp_path / "b.csm", [scored_collection(2, [3.0, 2.0], p_values_for=2)])

        target = MatchCollectionIterator(tmp_path).next()

        assert len(target) == 4
        assert target.is_scored(ScoreType.LOGP_BONF_WEIBULL_XCORR)


    def test_charge_disagreement_reported(self, tmp_path, caplog):
        collection = scored_collection(1, [3.0, 2.0], charge=2)
        collection.charge = 3
        write_file(tmp_path / "run.csm", [collection], main=ScoreType.XCORR)

        with caplog.at_level(logging.ERROR):
            target = MatchCollectionIterator(tmp_path).next()

        assert [m.charge for m in target.matches] == [2, 2]
        assert "differs from spectrum block charge 3" in caplog.text

    def test_consistent_charge_not_reported(self, tmp_path, caplog):
        write_file(tmp_path / "run.csm", [scored_collection(1, [3.0, 2.0], charge=3)],
                   main=ScoreType.XCORR)

        with caplog.at_level(logging.ERROR):
            MatchCollectionIterator(tmp_path).next()

        assert "differs from spectrum block charge" not in caplog.text


class TestCorruptFiles:
    """Short reads are fatal, count mismatches are warnings."""

    def test_truncated_match_record(self, tmp_path):
        path = tmp_path / "run.csm"
        write_file(path, [scored_collection(1, [3.0, 2.0, 1.0], p_values_for=3)])
        path.write_bytes(path.read_bytes()[:-10])

        with pytest.raises(CorruptResultFileError):
            list(iter_spectrum_blocks(path))

    def test_truncated_spectrum_header(self, tmp_path):
        path = tmp_path / "run.csm"
        write_file(path, [scored_collection(1, [3.0], p_values_for=1)])
        path.write_bytes(path.read_bytes() + b"\x02\x00\x00\x00")

        with pytest.raises(CorruptResultFileError):
            list(iter_spectrum_blocks(path))

    def test_truncated_file_header(self, tmp_path):
        path = tmp_path / "run.csm"
        path.write_bytes(b"\x01\x00\x00")

        with pytest.raises(CorruptResultFileError):
            list(iter_spectrum_blocks(path))

    def test_spectrum_count_mismatch_warns(self, tmp_path, caplog):
        path = tmp_path / "run.csm"
        write_file(path, [scored_collection(1, [3.0, 2.0], p_values_for=2)])
        with open(path, "r+b") as fh:
            write_file_header(fh, 3, 3)

        with caplog.at_level(logging.WARNING):
            blocks = list(iter_spectrum_blocks(path))

        assert len(blocks) == 1
        assert "announces 3 spectra" in caplog.text


class TestDiscovery:
    """Grouping of .csm files into target and decoy sets."""

    def test_groups_by_suffix(self, tmp_path):
        for name in ["a.csm", "b.csm", "a-decoy-1.csm", "a-decoy-3.csm", "notes.txt"]:
            (tmp_path / name).write_bytes(b"")

        result_files = discover_result_files(tmp_path)

        assert [p.name for p in result_files.target_paths] == ["a.csm", "b.csm"]
        assert result_files.num_decoy_sets == 3
        assert [p.name for p in result_files.paths_for_set(1)] == ["a-decoy-1.csm"]
        assert result_files.paths_for_set(2) == []

    def test_no_target_file(self, tmp_path):
        (tmp_path / "a-decoy-1.csm").write_bytes(b"")

        with pytest.raises(NoResultFilesError):
            discover_result_files(tmp_path)

    def test_missing_directory(self, tmp_path):
        with pytest.raises(FileNotFoundError):
            MatchCollectionIterator(tmp_path / "missing")

    def test_decoy_file_names(self):
        assert target_file_name("run") == "run.csm"
        assert decoy_file_name("run", 2) == "run-decoy-2.csm"
        with pytest.raises(ValueError):
            decoy_file_name("run", 4)

    def test_iterates_target_then_decoy_sets(self, tmp_path, caplog):
        write_file(tmp_path / "run.csm", [scored_collection(1, [3.0, 2.0], p_values_for=2)])
        write_file(
            tmp_path / "run-decoy-1.csm",
            [scored_collection(1, [1.0, 0.5], is_decoy=True, p_values_for=2)],
        )
        write_file(
            tmp_path / "run-decoy-3.csm",
            [scored_collection(1, [0.8], is_decoy=True, p_values_for=1)],
        )

        with caplog.at_level(logging.WARNING):
            collections = list(MatchCollectionIterator(tmp_path))

        assert [len(c) for c in collections] == [2, 2, 0, 1]
        assert [c.is_decoy for c in collections] == [False, True, True, True]
        assert all(m.is_decoy for m in collections[1].matches)
        assert "Decoy set 2 has no files" in caplog.text


class TestRunQvalue:
    """q-values over the merged target collection."""

    def test_qvalues_assigned(self, tmp_path, caplog):
        write_file(
            tmp_path / "run.csm",
            [
                scored_collection(1, [5.0, 2.0, 1.0], p_values_for=2),
                scored_collection(2, [3.0, 0.5, 0.1], p_values_for=2),
            ],
        )
        write_file(
            tmp_path / "run-decoy-1.csm",
            [scored_collection(1, [1.0, 0.5], is_decoy=True, p_values_for=2)],
        )

        with caplog.at_level(logging.WARNING):
            target = run_qvalue(tmp_path, SearchParameters())

        assert "Ignoring 1 decoy set" in caplog.text
        assert target.is_scored(ScoreType.LOGP_QVALUE_WEIBULL_XCORR)

        scored = [m for m in target.matches
                  if m.get_score(ScoreType.LOGP_BONF_WEIBULL_XCORR) != P_VALUE_NA]
        unscored = [m for m in target.matches
                    if m.get_score(ScoreType.LOGP_BONF_WEIBULL_XCORR) == P_VALUE_NA]
        assert len(scored) == 4
        assert len(unscored) == 2
        assert all(np.isnan(m.get_score(ScoreType.LOGP_QVALUE_WEIBULL_XCORR)) for m in unscored)

        scored.sort(key=lambda m: m.get_score(ScoreType.LOGP_BONF_WEIBULL_XCORR), reverse=True)
        log_q = [m.get_score(ScoreType.LOGP_QVALUE_WEIBULL_XCORR) for m in scored]
        assert log_q == sorted(log_q, reverse=True)

        # best match: q <= p * N / 1
        best_log_p = scored[0].get_score(ScoreType.LOGP_BONF_WEIBULL_XCORR)
        assert log_q[0] >= best_log_p - math.log(4) - 1e-12



class TestSearchSpectra:
    """End to end: search, write result files, compute q-values."""

    def test_search_writes_target_and_decoy_files(self, tmp_path, target_sequence, params):
        peptides = [p.sequence for p in shuffled_peptides(target_sequence, 150)]
        database = PeptideDatabase(peptides + [target_sequence])
        spectra = [
            make_spectrum(target_sequence, charge=2, scan=7),
            make_spectrum("PEPTIDEK", charge=2, scan=8),
        ]

        n_scored = search_spectra(
            spectra, database, params, tmp_path / "out", fileroot="run",
            decoy_method="pseudo_reverse", seed=1,
        )

        assert n_scored == 1
        assert (tmp_path / "out" / "run.csm").exists()
        assert (tmp_path / "out" / "run-decoy-1.csm").exists()

        collections = list(MatchCollectionIterator(tmp_path / "out"))
        target, decoys = collections
        assert len(target) == params.top_match
        assert target.matches[0].peptide.sequence == target_sequence
        assert target.matches[0].scan == 7
        assert all(m.is_decoy for m in decoys.matches)

        with open(tmp_path / "out" / "run.csm", "rb") as fh:
            assert read_file_header(fh).num_spectra == 1

        target = run_qvalue(tmp_path / "out", params)
        assert not np.isnan(target.matches[0].get_score(ScoreType.LOGP_QVALUE_WEIBULL_XCORR))
