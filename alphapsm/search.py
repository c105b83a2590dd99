"""Search driver: score every spectrum and write target/decoy result files.

For each spectrum and each of its candidate charges a target collection
and ``num_decoy_sets`` decoy collections are built and appended to
``<fileroot>.csm`` and ``<fileroot>-decoy-<k>.csm`` in ``output_dir``.

Examples
--------
>>> db = PeptideDatabase.from_tsv("peptides.tsv")
>>> n = search_spectra(spectra, db, SearchParameters(), "results/", "run1")
>>> target = run_qvalue("results/", SearchParameters())
"""

from __future__ import annotations

import logging
from contextlib import ExitStack
from pathlib import Path
from typing import Iterable, Optional, Union

import numpy as np

from .collection.match_collection import build_from_spectrum
from .config import SearchParameters
from .database.decoys import DecoyCandidateSource
from .database.peptide_db import PeptideDatabase
from .io.csm import ResultFileWriter, decoy_file_name, target_file_name
from .spectrum import Spectrum

logger = logging.getLogger(__name__)


def search_spectra(
    spectra: Iterable[Spectrum],
    database: PeptideDatabase,
    params: SearchParameters,
    output_dir: Union[str, Path],
    fileroot: str = 'search',
    decoy_method: str = 'shuffle',
    seed: Optional[int] = None,
) -> int:
    """Score all spectra against ``database`` and its decoys.

    Parameters
    ----------
    spectra : iterable of Spectrum
        Spectra to search, each with its candidate charges
    database : PeptideDatabase
        Target candidate source
    params : SearchParameters
        Search settings; ``num_decoy_sets`` decoy files are written
    output_dir : str or Path
        Created if missing
    fileroot : str
        Prefix of the result file names
    decoy_method : str
        'shuffle', 'reverse' or 'pseudo_reverse'
    seed : int, optional
        Seeds calibration sampling and decoy shuffling

    Returns
    -------
    int
        Number of spectrum/charge pairs with a scored target collection
    """
    output_dir = Path(output_dir)
    output_dir.mkdir(parents=True, exist_ok=True)

    rng = np.random.default_rng(seed)
    decoy_sources = [
        DecoyCandidateSource(
            database,
            method=decoy_method,
            seed=None if seed is None else seed + decoy_set,
        )
        for decoy_set in range(1, params.num_decoy_sets + 1)
    ]

    n_scored = 0
    n_skipped = 0
    with ExitStack() as stack:
        target_writer = stack.enter_context(
            ResultFileWriter(output_dir / target_file_name(fileroot), params.top_match)
        )
        decoy_writers = [
            stack.enter_context(
                ResultFileWriter(output_dir / decoy_file_name(fileroot, k), params.top_match)
            )
            for k in range(1, params.num_decoy_sets + 1)
        ]

        for spectrum in spectra:
            for charge in spectrum.charges:
                target = build_from_spectrum(spectrum, charge, params, database, rng=rng)
                if target is None:
                    n_skipped += 1
                    continue
                target_writer.write_collection(target, params.score_type)
                n_scored += 1

                for source, writer in zip(decoy_sources, decoy_writers):
                    decoys = build_from_spectrum(
                        spectrum, charge, params, source, is_decoy=True, rng=rng
                    )
                    if decoys is not None:
                        writer.write_collection(decoys, params.score_type)

    logger.info(
        f"Scored {n_scored:,} spectrum/charge pairs, skipped {n_skipped:,} "
        f"(results in {output_dir})"
    )
    return n_scored
