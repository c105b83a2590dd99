"""Binary result files."""

from .csm import (
    ResultFileSet,
    ResultFileWriter,
    discover_result_files,
    iter_spectrum_blocks,
)

__all__ = [
    'ResultFileSet',
    'ResultFileWriter',
    'discover_result_files',
    'iter_spectrum_blocks',
]
