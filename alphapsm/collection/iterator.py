"""Traversal of the result files of a search directory.

One merged target collection is produced first, followed by one merged
collection per decoy set (``-decoy-1`` .. ``-decoy-3``).
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Iterator, Union

from ..constants import MAX_MATCHES
from ..io.csm import ResultFileSet, discover_result_files
from .match_collection import MatchCollection

logger = logging.getLogger(__name__)


class MatchCollectionIterator:
    """Yield the target collection, then every decoy collection, of a directory.

    Files are discovered once, when the iterator is created. Collections
    are read lazily; each is built in post-process mode from all files of
    its set.

    Parameters
    ----------
    directory : str or Path
        Directory holding ``.csm`` result files
    params : SearchParameters, optional
        Provides the capacity of the merged collections

    Raises
    ------
    FileNotFoundError
        If the directory does not exist
    NoResultFilesError
        If the directory holds no target file

    Examples
    --------
    >>> collections = MatchCollectionIterator("results/")
    >>> target = collections.next()
    >>> decoys = list(collections)
    """

    def __init__(self, directory: Union[str, Path], params=None):
        self.result_files: ResultFileSet = discover_result_files(directory)
        self.max_matches = params.max_matches if params is not None else MAX_MATCHES
        self._next_set = 0

    @property
    def num_decoy_sets(self) -> int:
        return self.result_files.num_decoy_sets

    @property
    def directory(self) -> Path:
        return self.result_files.directory

    def has_next(self) -> bool:
        return self._next_set <= self.num_decoy_sets

    def next(self) -> MatchCollection:
        if not self.has_next():
            raise StopIteration
        decoy_set = self._next_set
        self._next_set += 1

        collection = MatchCollection(
            is_decoy=decoy_set > 0,
            max_matches=self.max_matches,
            post_process=True,
        )
        paths = self.result_files.paths_for_set(decoy_set)
        if not paths:
            logger.warning(f"Decoy set {decoy_set} has no files in {self.directory}")
        for path in paths:
            collection.extend_from_file(path)
        return collection

    def __iter__(self) -> Iterator[MatchCollection]:
        return self

    def __next__(self) -> MatchCollection:
        return self.next()
