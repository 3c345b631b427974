"""
Custom exceptions for sleep cycle detection.

Exceptions are organized in a hierarchy so that callers can either handle
one specific failure or catch everything the toolkit raises through
SleepCycleError.
"""

class SleepCycleError(Exception):
    """Base exception for sleep cycle detection errors."""
    pass

class ConfigurationError(SleepCycleError):
    """Raised when detection or file format settings are invalid."""
    pass

class StageCodeError(SleepCycleError):
    """Base exception for problems with the stage sequence itself."""
    pass

class UnrecognizedStageError(StageCodeError):
    """Raised when an epoch's stage code has no canonical mapping."""

    def __init__(self, code, epoch_index: int):
        self.code = code
        self.epoch_index = epoch_index
        super().__init__(
            f"Unrecognized sleep stage code {code!r} at epoch {epoch_index}. "
            "Use treat_as_w or treat_as_n3 to map additional codes."
        )

class EmptySequenceError(StageCodeError):
    """Raised when a stage sequence contains no epochs."""
    pass

class StageFileError(SleepCycleError):
    """Raised when a sleep staging file cannot be read or lacks stage data."""
    pass

class StaleResultsError(SleepCycleError):
    """Raised when results of a previous detection run are found."""
    pass
