"""Binary result files (.csm) written by a search and merged for post-processing.

Layout (little-endian)
----------------------
File header::

    int32 num_spectra, int32 0 (unused feature count), int32 matches_per_spectrum

Per spectrum::

    int32 charge, int32 match_total,
    float32 delta_cn, float32 ln_delta_cn, float32 ln_experiment_size,
    int32[N_SCORE_TYPES] scored flags

followed by ``min(match_total, matches_per_spectrum)`` match records::

    int32 seq_len, bytes sequence, int32 n_proteins, int32[n] proteins,
    int32 scan, float64 precursor_mz, int32 is_decoy, int32 charge,
    float64[N_SCORE_TYPES] scores (NaN = unscored),
    int32[N_SCORE_TYPES] ranks (0 = unranked),
    int32 b_y_matched, int32 b_y_possible

Fixed-size parts are encoded with packed numpy structured dtypes.

File naming
-----------
One target file ``<root>.csm`` and up to three decoy files
``<root>-decoy-<k>.csm`` per search; a directory may hold several roots.
"""

from __future__ import annotations

import logging
import math
import re
from dataclasses import dataclass, field
from pathlib import Path
from typing import BinaryIO, Dict, FrozenSet, Iterator, List, NamedTuple, Optional, Tuple, Union

import numpy as np

from ..exceptions import CorruptResultFileError, NoResultFilesError
from ..fragments.generator import calculate_neutral_mass, encode_peptide_to_ord
from ..match import Match, Peptide
from ..scoring.score_types import N_SCORE_TYPES, ScoreType
from ..spectrum import SpectrumReference

logger = logging.getLogger(__name__)

RESULT_EXTENSION = '.csm'
MAX_DECOY_SETS = 3
_DECOY_PATTERN = re.compile(r'^(?P<root>.*)-decoy-(?P<k>[1-3])\.csm$')


# =============================================================================
# Record Layouts
# =============================================================================

FILE_HEADER_DTYPE = np.dtype([
    ('num_spectra', '<i4'),
    ('num_features', '<i4'),
    ('matches_per_spectrum', '<i4'),
])

SPECTRUM_HEADER_DTYPE = np.dtype([
    ('charge', '<i4'),
    ('match_total', '<i4'),
    ('delta_cn', '<f4'),
    ('ln_delta_cn', '<f4'),
    ('ln_experiment_size', '<f4'),
    ('scored', '<i4', (N_SCORE_TYPES,)),
])

MATCH_BODY_DTYPE = np.dtype([
    ('scan', '<i4'),
    ('precursor_mz', '<f8'),
    ('is_decoy', '<i4'),
    ('charge', '<i4'),
    ('scores', '<f8', (N_SCORE_TYPES,)),
    ('ranks', '<i4', (N_SCORE_TYPES,)),
    ('b_y_matched', '<i4'),
    ('b_y_possible', '<i4'),
])

_INT32 = np.dtype('<i4')


class ResultFileHeader(NamedTuple):
    num_spectra: int
    matches_per_spectrum: int


class SpectrumBlockHeader(NamedTuple):
    charge: int
    match_total: int
    delta_cn: float
    ln_delta_cn: float
    ln_experiment_size: float
    scored: FrozenSet[ScoreType]


# =============================================================================
# Low-level Reads
# =============================================================================

def _read_exact(fh: BinaryIO, n_bytes: int, what: str) -> bytes:
    data = fh.read(n_bytes)
    if len(data) != n_bytes:
        raise CorruptResultFileError(
            f"Short read in {getattr(fh, 'name', 'stream')}: expected {n_bytes} bytes "
            f"for {what}, got {len(data)}"
        )
    return data


def _read_record(fh: BinaryIO, dtype: np.dtype, what: str) -> np.void:
    return np.frombuffer(_read_exact(fh, dtype.itemsize, what), dtype=dtype)[0]


def _read_int32(fh: BinaryIO, what: str) -> int:
    return int(np.frombuffer(_read_exact(fh, 4, what), dtype=_INT32)[0])


def _read_count(fh: BinaryIO, what: str) -> int:
    value = _read_int32(fh, what)
    if value < 0:
        raise CorruptResultFileError(f"Negative {what}: {value}")
    return value


def _write_int32(fh: BinaryIO, value: int) -> None:
    fh.write(np.array([value], dtype=_INT32).tobytes())


# =============================================================================
# File Header
# =============================================================================

def write_file_header(fh: BinaryIO, num_spectra: int, matches_per_spectrum: int) -> None:
    header = np.zeros(1, dtype=FILE_HEADER_DTYPE)
    header['num_spectra'] = num_spectra
    header['matches_per_spectrum'] = matches_per_spectrum
    fh.write(header.tobytes())


def read_file_header(fh: BinaryIO) -> ResultFileHeader:
    """Read the file header; any short read is fatal."""
    record = _read_record(fh, FILE_HEADER_DTYPE, 'file header')
    num_spectra = int(record['num_spectra'])
    matches_per_spectrum = int(record['matches_per_spectrum'])
    if num_spectra < 0 or matches_per_spectrum < 0:
        raise CorruptResultFileError(
            f"Invalid file header: num_spectra={num_spectra}, "
            f"matches_per_spectrum={matches_per_spectrum}"
        )
    return ResultFileHeader(num_spectra, matches_per_spectrum)


# =============================================================================
# Spectrum Block Header
# =============================================================================

def write_spectrum_header(
    fh: BinaryIO,
    charge: int,
    match_total: int,
    delta_cn: float,
    ln_delta_cn: float,
    ln_experiment_size: float,
    scored: FrozenSet[ScoreType],
) -> None:
    header = np.zeros(1, dtype=SPECTRUM_HEADER_DTYPE)
    header['charge'] = charge
    header['match_total'] = match_total
    header['delta_cn'] = delta_cn
    header['ln_delta_cn'] = ln_delta_cn
    header['ln_experiment_size'] = ln_experiment_size
    for score_type in scored:
        header['scored'][0, score_type.value] = 1
    fh.write(header.tobytes())


def read_spectrum_header(fh: BinaryIO) -> Optional[SpectrumBlockHeader]:
    """Read one spectrum header, ``None`` at a clean end of file."""
    data = fh.read(SPECTRUM_HEADER_DTYPE.itemsize)
    if not data:
        return None
    if len(data) != SPECTRUM_HEADER_DTYPE.itemsize:
        raise CorruptResultFileError(
            f"Truncated spectrum header: {len(data)} of "
            f"{SPECTRUM_HEADER_DTYPE.itemsize} bytes"
        )
    record = np.frombuffer(data, dtype=SPECTRUM_HEADER_DTYPE)[0]
    match_total = int(record['match_total'])
    if match_total < 0:
        raise CorruptResultFileError(f"Negative match total: {match_total}")
    scored = frozenset(t for t in ScoreType if record['scored'][t.value])
    return SpectrumBlockHeader(
        charge=int(record['charge']),
        match_total=match_total,
        delta_cn=float(record['delta_cn']),
        ln_delta_cn=float(record['ln_delta_cn']),
        ln_experiment_size=float(record['ln_experiment_size']),
        scored=scored,
    )


# =============================================================================
# Match Records
# =============================================================================

def write_match(fh: BinaryIO, match: Match) -> None:
    sequence = match.peptide.sequence.encode('ascii')
    _write_int32(fh, len(sequence))
    fh.write(sequence)
    proteins = np.asarray(match.peptide.protein_indices, dtype=_INT32)
    _write_int32(fh, len(proteins))
    fh.write(proteins.tobytes())

    body = np.zeros(1, dtype=MATCH_BODY_DTYPE)
    body['scan'] = match.spectrum.scan
    body['precursor_mz'] = match.spectrum.precursor_mz
    body['is_decoy'] = int(match.is_decoy)
    body['charge'] = match.charge
    body['scores'] = np.nan
    for score_type, value in match.scores.items():
        body['scores'][0, score_type.value] = value
    for score_type, rank in match.ranks.items():
        body['ranks'][0, score_type.value] = rank
    body['b_y_matched'] = match.b_y_ion_matched
    body['b_y_possible'] = match.b_y_ion_possible
    fh.write(body.tobytes())


def read_match(fh: BinaryIO, scored: FrozenSet[ScoreType] = frozenset()) -> Match:
    """Read one match record.

    NaN scores are dropped unless their type is in ``scored``; a flagged
    type keeps NaN (e.g. the q-value of a match without p-value).
    """
    seq_len = _read_count(fh, 'sequence length')
    try:
        sequence = _read_exact(fh, seq_len, 'sequence').decode('ascii')
    except UnicodeDecodeError as e:
        raise CorruptResultFileError(f"Invalid peptide sequence bytes: {e}") from e
    n_proteins = _read_count(fh, 'protein count')
    proteins = np.frombuffer(_read_exact(fh, 4 * n_proteins, 'protein indices'), dtype=_INT32)
    body = _read_record(fh, MATCH_BODY_DTYPE, 'match record')

    neutral_mass = float(calculate_neutral_mass(encode_peptide_to_ord(sequence)))

    match = Match(
        peptide=Peptide(sequence, neutral_mass, tuple(int(p) for p in proteins)),
        spectrum=SpectrumReference(int(body['scan']), float(body['precursor_mz'])),
        charge=int(body['charge']),
        is_decoy=bool(body['is_decoy']),
        b_y_ion_matched=int(body['b_y_matched']),
        b_y_ion_possible=int(body['b_y_possible']),
    )
    for score_type in ScoreType:
        value = float(body['scores'][score_type.value])
        if not math.isnan(value) or score_type in scored:
            match.set_score(score_type, value)
        rank = int(body['ranks'][score_type.value])
        if rank > 0:
            match.set_rank(score_type, rank)
    return match


def iter_spectrum_blocks(path: Union[str, Path]) -> Iterator[Tuple[ResultFileHeader, SpectrumBlockHeader, List[Match]]]:
    """Yield ``(file_header, block_header, matches)`` for every spectrum in a file.

    At most ``matches_per_spectrum`` records are read per block.

    Raises
    ------
    CorruptResultFileError
        On a short read anywhere in the file
    """
    path = Path(path)
    with open(path, 'rb') as fh:
        file_header = read_file_header(fh)
        n_blocks = 0
        while True:
            block = read_spectrum_header(fh)
            if block is None:
                break
            n_records = min(block.match_total, file_header.matches_per_spectrum)
            matches = [read_match(fh, block.scored) for _ in range(n_records)]
            n_blocks += 1
            yield file_header, block, matches

    if file_header.num_spectra and n_blocks != file_header.num_spectra:
        logger.warning(
            f"{path.name}: header announces {file_header.num_spectra} spectra, "
            f"found {n_blocks}"
        )


# =============================================================================
# Writer
# =============================================================================

class ResultFileWriter:
    """Write spectrum blocks to one result file.

    The spectrum count in the file header is written as 0 and patched
    when the writer is closed.

    Examples
    --------
    >>> with ResultFileWriter(tmp / "run.csm", matches_per_spectrum=5) as writer:
    ...     writer.write_collection(collection, ScoreType.XCORR)
    """

    def __init__(self, path: Union[str, Path], matches_per_spectrum: int):
        self.path = Path(path)
        self.matches_per_spectrum = matches_per_spectrum
        self.num_spectra = 0
        self._fh = open(self.path, 'wb')
        write_file_header(self._fh, 0, matches_per_spectrum)

    def write_collection(self, collection, main_score_type: ScoreType) -> int:
        """Serialize the top matches of ``collection``; returns matches written."""
        written = collection.write_spectrum(self._fh, self.matches_per_spectrum, main_score_type)
        self.num_spectra += 1
        return written

    @property
    def closed(self) -> bool:
        return self._fh.closed

    def close(self) -> None:
        if self._fh.closed:
            return
        self._fh.seek(0)
        write_file_header(self._fh, self.num_spectra, self.matches_per_spectrum)
        self._fh.close()
        logger.debug(f"Wrote {self.num_spectra} spectra to {self.path.name}")

    def __enter__(self) -> 'ResultFileWriter':
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()


# =============================================================================
# Directory Discovery
# =============================================================================

def target_file_name(fileroot: str) -> str:
    return f"{fileroot}{RESULT_EXTENSION}"


def decoy_file_name(fileroot: str, decoy_set: int) -> str:
    if not 1 <= decoy_set <= MAX_DECOY_SETS:
        raise ValueError(f"decoy_set must be between 1 and {MAX_DECOY_SETS}, got {decoy_set}")
    return f"{fileroot}-decoy-{decoy_set}{RESULT_EXTENSION}"


@dataclass
class ResultFileSet:
    """Result files of one directory, grouped into target and decoy sets."""

    directory: Path
    target_paths: List[Path]
    decoy_paths: Dict[int, List[Path]] = field(default_factory=dict)

    @property
    def num_decoy_sets(self) -> int:
        """Highest decoy set index present."""
        return max(self.decoy_paths, default=0)

    def paths_for_set(self, decoy_set: int) -> List[Path]:
        """Files of decoy set ``decoy_set`` (0 = target)."""
        if decoy_set == 0:
            return self.target_paths
        return self.decoy_paths.get(decoy_set, [])


def discover_result_files(directory: Union[str, Path]) -> ResultFileSet:
    """Group the ``.csm`` files of ``directory`` by file name suffix.

    Raises
    ------
    FileNotFoundError
        If the directory does not exist
    NoResultFilesError
        If no target file is present
    """
    directory = Path(directory)
    if not directory.is_dir():
        raise FileNotFoundError(f"Result directory not found: {directory}")

    target_paths = []
    decoy_paths: Dict[int, List[Path]] = {}
    for path in sorted(directory.iterdir()):
        if not path.is_file() or path.suffix != RESULT_EXTENSION:
            continue
        decoy_match = _DECOY_PATTERN.match(path.name)
        if decoy_match:
            decoy_paths.setdefault(int(decoy_match.group('k')), []).append(path)
        else:
            target_paths.append(path)

    if not target_paths:
        raise NoResultFilesError(f"No target {RESULT_EXTENSION} file in {directory}")

    result_files = ResultFileSet(directory, target_paths, decoy_paths)
    logger.info(
        f"Found {len(target_paths)} target file(s) and "
        f"{result_files.num_decoy_sets} decoy set(s) in {directory}"
    )
    return result_files
