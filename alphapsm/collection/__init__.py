"""Match collections and their iterators."""

from .match_collection import (
    MatchCollection,
    MatchIterator,
    build_from_spectrum,
    random_sample,
)
from .iterator import MatchCollectionIterator

__all__ = [
    'MatchCollection',
    'MatchIterator',
    'MatchCollectionIterator',
    'build_from_spectrum',
    'random_sample',
]
