"""Custom exceptions for scoring, ranking and result-file handling.

Two families are distinguished:

- ``ContractError``: an internal contract was violated (locked collection,
  capacity overflow, undefined sort order, missing prerequisite score,
  corrupt result file). These abort the run.
- ``SpectrumNotScoredError``: a spectrum/charge pair could not be scored
  (no candidates, too few samples to fit, no convergence). The caller
  discards the collection and continues with the next spectrum.
"""


class AlphaPSMError(Exception):
    """Base class for all alphapsm errors."""

    _error_code = ""
    _msg = ""
    _detail_msg = ""

    @property
    def error_code(self):
        return self._error_code

    @property
    def msg(self):
        return self._msg

    @property
    def detail_msg(self):
        return self._detail_msg

    def __init__(self, detail_msg: str = ""):
        self._detail_msg = detail_msg
        super().__init__(self._msg)

    def __str__(self):
        if self._detail_msg:
            return f"{self._error_code}: {self._msg} {self._detail_msg}"
        return f"{self._error_code}: {self._msg}"


class ContractError(AlphaPSMError):
    """Fatal error caused by misuse of a collection, scorer or file."""

    _error_code = "CONTRACT_VIOLATION"
    _msg = "Internal contract violated."


class LockedCollectionError(ContractError):
    """Raise when a collection is mutated or iterated while an iterator is open."""

    _error_code = "COLLECTION_LOCKED"
    _msg = "Match collection is locked by an open iterator."


class CapacityExceededError(ContractError):
    """Raise when a collection would grow past its match capacity."""

    _error_code = "CAPACITY_EXCEEDED"
    _msg = "Match collection capacity exceeded."


class UnsortableScoreTypeError(ContractError):
    """Raise when sorting by a score type without a defined order."""

    _error_code = "UNSORTABLE_SCORE_TYPE"
    _msg = "Score type has no defined sort order."


class MissingScoreError(ContractError):
    """Raise when a score is requested before it has been computed."""

    _error_code = "MISSING_SCORE"
    _msg = "Required score type has not been computed."


class CorruptResultFileError(ContractError):
    """Raise when a binary result file is truncated or malformed."""

    _error_code = "CORRUPT_RESULT_FILE"
    _msg = "Result file is truncated or malformed."


class NoResultFilesError(ContractError):
    """Raise when a results directory holds no target result file."""

    _error_code = "NO_RESULT_FILES"
    _msg = "No target result file found."


class SpectrumNotScoredError(AlphaPSMError):
    """Recoverable error: the current spectrum/charge pair is skipped."""

    _error_code = "SPECTRUM_NOT_SCORED"
    _msg = "Spectrum could not be scored."


class NoCandidatesError(SpectrumNotScoredError):
    """Raise when no candidate peptide was scored for a spectrum."""

    _error_code = "NO_CANDIDATES"
    _msg = "No candidate peptides scored."


class InsufficientSamplesError(SpectrumNotScoredError):
    """Raise when too few scores are available to fit a distribution."""

    _error_code = "INSUFFICIENT_SAMPLES"
    _msg = "Too few scores to fit a score distribution."


class ConvergenceError(SpectrumNotScoredError):
    """Raise when an iterative fit does not converge."""

    _error_code = "NO_CONVERGENCE"
    _msg = "Distribution fit did not converge."
