"""Detection of NREM period (NREMP) and REM period (REMP) starts.

NREM periods start with N1 (or N2, see sleep_start) at sleep onset and with W
or another NREM stage after a REM period. Apart from the first one, a NREMP
needs 15 min of NREM sleep; wake and REM episodes shorter than the REMP
minimum may interrupt it. Apart from the first one, a REMP needs at least
remp_length epochs of REM.

Both detectors overproduce starts around short interruptions, so the marker
channel is cleaned afterwards to alternate strictly between NREMP and REMP.
"""

import logging
from typing import List

import numpy as np

from sleep_cycle_toolkit.constants import (
    DEFAULT_REMP_LENGTH, MIN_NREMP_EPOCHS, PeriodMarkers, SleepStages
)
from sleep_cycle_toolkit.core.sequence import EpochSequence

logger = logging.getLogger(__name__)


def _contiguous_runs(indices: np.ndarray) -> List[np.ndarray]:
    """Split sorted epoch indices into runs of consecutive indices"""
    if indices.size == 0:
        return []
    breaks = np.flatnonzero(np.diff(indices) > 1) + 1
    return np.split(indices, breaks)


def sleep_onset_index(stages: np.ndarray, sleep_start: str = "N1"):
    """First epoch allowed to open the first NREMP, or None without sleep"""
    if sleep_start == "N2":
        hits = np.flatnonzero(stages == SleepStages.N2)
    else:
        hits = np.flatnonzero(np.isin(stages, SleepStages.NREM))
    return int(hits[0]) if hits.size else None


def nrem_content(stages: np.ndarray, start: int, remp_length: int = DEFAULT_REMP_LENGTH,
                 limit: int = MIN_NREMP_EPOCHS) -> int:
    """Count NREM epochs of the period that would start at `start`.

    Wake epochs are skipped without being counted. REM runs shorter than
    remp_length are skipped as well; the first REM run long enough to form a
    REMP ends the count.

    Args:
        stages: Canonical stage codes
        start: Candidate NREMP start index
        remp_length: Minimum REMP length in epochs
        limit: Stop counting once this many NREM epochs were seen

    Returns:
        Number of NREM epochs found (at most `limit`)
    """
    n_epochs = stages.size
    count = 0
    i = start
    while i < n_epochs and count < limit:
        if stages[i] == SleepStages.REM:
            run_end = i
            while run_end < n_epochs and stages[run_end] == SleepStages.REM:
                run_end += 1
            if run_end - i >= remp_length:
                break
            i = run_end
            continue
        if stages[i] != SleepStages.WAKE:
            count += 1
        i += 1
    return count


def find_nremp_starts(sequence: EpochSequence, sleep_start: str = "N1",
                      remp_length: int = DEFAULT_REMP_LENGTH) -> List[int]:
    """Find epochs that start a valid NREM period.

    Args:
        sequence: Normalized epoch sequence
        sleep_start: 'N1' or 'N2', the stage that opens the first NREMP
        remp_length: Minimum REMP length, bounds tolerated REM interruptions

    Returns:
        Ordered list of NREMP start indices
    """
    stages = sequence.stages
    onset = sleep_onset_index(stages, sleep_start)
    if onset is None:
        logger.warning(f"No {sleep_start} sleep onset found - no NREM periods detected")
        return []

    nrem_or_wake = np.flatnonzero(np.isin(stages, SleepStages.NREM + (SleepStages.WAKE,)))
    nrem_or_wake = nrem_or_wake[nrem_or_wake >= onset]
    runs = _contiguous_runs(nrem_or_wake)

    # The first NREMP has no minimum duration
    starts = [int(runs[0][0])]
    for run in runs[1:]:
        candidate = int(run[0])
        if nrem_content(stages, candidate, remp_length) >= MIN_NREMP_EPOCHS:
            starts.append(candidate)
        else:
            logger.debug(f"Rejected NREMP candidate at epoch {candidate}: shorter than 15 min")
    return starts


def find_remp_starts(sequence: EpochSequence, nremp_starts: List[int],
                     remp_length: int = DEFAULT_REMP_LENGTH) -> List[int]:
    """Find epochs that start a valid REM period.

    Only REM following the first NREMP start is considered. The first REM run
    is accepted whatever its length.

    Args:
        sequence: Normalized epoch sequence
        nremp_starts: Accepted NREMP starts
        remp_length: Minimum length of every REMP but the first, in epochs

    Returns:
        Ordered list of REMP start indices
    """
    if not nremp_starts:
        return []
    rem = np.flatnonzero(sequence.stages == SleepStages.REM)
    rem = rem[rem > nremp_starts[0]]

    starts = []
    for run in _contiguous_runs(rem):
        if not starts or run.size >= remp_length:
            starts.append(int(run[0]))
        else:
            logger.debug(f"Rejected REMP candidate at epoch {int(run[0])}: {run.size} < {remp_length} epochs")
    return starts


def remove_repeated_starts(sequence: EpochSequence) -> EpochSequence:
    """Keep only the first of consecutive same-type period starts"""
    result = sequence.copy()
    previous = PeriodMarkers.NONE
    removed = []
    for index in result.marker_indices():
        marker = result.period_starts[index]
        if marker == previous:
            result.period_starts[index] = PeriodMarkers.NONE
            removed.append(index)
        else:
            previous = marker
    if removed:
        logger.debug(f"Removed {len(removed)} repeated period starts at epochs {removed}")
    return result


def detect_periods(sequence: EpochSequence, sleep_start: str = "N1",
                   remp_length: int = DEFAULT_REMP_LENGTH) -> EpochSequence:
    """Mark NREMP and REMP starts and enforce their alternation.

    Args:
        sequence: Normalized epoch sequence
        sleep_start: 'N1' or 'N2'
        remp_length: Minimum REMP length in epochs

    Returns:
        Copy of the sequence with period start markers set
    """
    result = sequence.copy()
    result.period_starts[:] = PeriodMarkers.NONE

    nremp_starts = find_nremp_starts(result, sleep_start, remp_length)
    result.period_starts[nremp_starts] = PeriodMarkers.NREMP
    remp_starts = find_remp_starts(result, nremp_starts, remp_length)
    result.period_starts[remp_starts] = PeriodMarkers.REMP

    logger.info(f"Found {len(nremp_starts)} NREMP and {len(remp_starts)} REMP candidates")
    return remove_repeated_starts(result)
