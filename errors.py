class LedgerError(Exception):
    """Base class for errors raised by the ledger engine."""


class InputAccessError(LedgerError):
    """Raised when the input file is missing, not a regular file, unreadable or has no usable header."""


class RecordFormatError(LedgerError):
    """Raised when a single input row cannot be parsed. The row is skipped."""


class StorageError(LedgerError):
    """Raised when the ledger store fails. Fatal for the run."""


class InvariantViolation(LedgerError):
    """Raised when the store and the state machine disagree about state that must exist."""
