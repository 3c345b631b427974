"""
Sleep cycle detection toolkit.

Detects NREM/REM sleep cycles in 30 s sleep staging results following
Feinberg & Floyd (1979), and annotates every epoch with its cycle, its
NREM/REM part and its percentile within that part.
"""

from .batch_processor import FileResult, SleepCycleBatchProcessor
from .config import CycleDetectionConfig, StageFileFormat
from .constants import PeriodMarkers, SleepStages
from .cycle_detector import CycleDetectionResult, SleepCycleDetector, detect_sleep_cycles
from .exceptions import (
    ConfigurationError, EmptySequenceError, SleepCycleError, StageCodeError, StageFileError,
    StaleResultsError, UnrecognizedStageError
)

__all__ = [
    'CycleDetectionConfig', 'CycleDetectionResult', 'ConfigurationError', 'EmptySequenceError',
    'FileResult', 'PeriodMarkers', 'SleepCycleBatchProcessor', 'SleepCycleDetector', 'SleepCycleError',
    'SleepStages', 'StageCodeError', 'StageFileError', 'StageFileFormat', 'StaleResultsError',
    'UnrecognizedStageError', 'detect_sleep_cycles',
]
