"""Cycle numbering, end-of-night cleanup and percentile annotation.

A NREMP and the REMP following it form one sleep cycle. A NREMP directly
followed by another NREMP (the first part of a split period) forms a cycle on
its own. Each NREM and REM part of a cycle is then divided into ten
percentiles in temporal order.
"""

import logging
from typing import Optional

import numpy as np

from sleep_cycle_toolkit.constants import (
    INCOMPLETE_PERIOD_EPOCHS, N_PERCENTILES, PeriodMarkers, SleepStages
)
from sleep_cycle_toolkit.core.sequence import EpochSequence

logger = logging.getLogger(__name__)


def assign_cycles(sequence: EpochSequence) -> EpochSequence:
    """Number cycles and flag NREM (0) and REM (1) parts.

    Args:
        sequence: Sequence with final period start markers

    Returns:
        Copy of the sequence with cycles and rem_flags set
    """
    result = sequence.copy()
    result.cycles[:] = 0
    result.rem_flags[:] = 0
    result.percentiles[:] = 0

    cycle_id = 0
    for period in result.periods():
        if period.is_nremp:
            cycle_id += 1
            result.rem_flags[period.start:period.end] = 0
        else:
            result.rem_flags[period.start:period.end] = 1
        result.cycles[period.start:period.end] = cycle_id

    logger.info(f"Assigned {cycle_id} sleep cycles")
    return result


def _unassign(sequence: EpochSequence, mask: np.ndarray) -> None:
    sequence.cycles[mask] = 0
    sequence.rem_flags[mask] = 0
    sequence.percentiles[mask] = 0


def trim_end_of_night(sequence: EpochSequence, rm_incomplete_period: bool = False) -> EpochSequence:
    """Clean the end of the night in one of two exclusive modes.

    By default, epochs following the last REMP's REM (or the last NREMP's NREM
    sleep when no REMP followed) belong to no valid period and are unassigned.
    With rm_incomplete_period, a final cycle followed by less than 5 min of
    NREM or W is considered incomplete and removed entirely; a complete final
    cycle is left as it is.

    Args:
        sequence: Sequence with cycles assigned
        rm_incomplete_period: Remove an incomplete final cycle

    Returns:
        Copy of the sequence with trailing epochs or the incomplete cycle unassigned
    """
    result = sequence.copy()
    periods = result.periods()
    if not periods:
        return result

    last = periods[-1]
    last_cycle = int(result.cycles[last.start])
    span = result.stages[last.start:last.end]
    if last.is_nremp:
        # Keep up to the last NREM epoch, REM and W after it dangle
        kept = np.flatnonzero(np.isin(span, SleepStages.NREM))
        kept_end = last.start + int(kept[-1]) + 1 if kept.size else last.start
        trailing_run = kept_end - last.start
    else:
        kept = np.flatnonzero(span == SleepStages.REM)
        kept_end = last.start + int(kept[-1]) + 1 if kept.size else last.start
        trailing_run = last.end - kept_end

    if rm_incomplete_period:
        if trailing_run < INCOMPLETE_PERIOD_EPOCHS:
            logger.warning(
                f"Removing incomplete cycle {last_cycle}: followed by {trailing_run} epochs "
                f"(< {INCOMPLETE_PERIOD_EPOCHS}) of NREM or W"
            )
            _unassign(result, result.cycles == last_cycle)
        return result

    tail = np.zeros(len(result), dtype=bool)
    tail[kept_end:last.end] = True
    if tail.any():
        logger.info(f"Unassigned {int(tail.sum())} dangling epochs at the end of the night")
        _unassign(result, tail)
    return result


def percentile_labels(n_epochs: int, rng: np.random.Generator) -> np.ndarray:
    """Percentile (1-10) of each epoch of a period part in temporal order.

    Parts shorter than ten epochs are not binned (all epochs get 1). Otherwise
    every bin holds n_epochs // 10 epochs and the remaining n_epochs % 10
    epochs are added to randomly chosen bins, one each.
    """
    if n_epochs < N_PERCENTILES:
        return np.ones(n_epochs, dtype=np.int8)
    base, remainder = divmod(n_epochs, N_PERCENTILES)
    sizes = np.full(N_PERCENTILES, base, dtype=np.int64)
    sizes[rng.choice(N_PERCENTILES, size=remainder, replace=False)] += 1
    return np.repeat(np.arange(1, N_PERCENTILES + 1, dtype=np.int8), sizes)


def annotate_percentiles(sequence: EpochSequence, rng: Optional[np.random.Generator] = None) -> EpochSequence:
    """Assign percentiles within every NREM and REM part of each cycle.

    Args:
        sequence: Sequence with cycles assigned and trimmed
        rng: Random generator choosing which bins get a remainder epoch

    Returns:
        Copy of the sequence with percentiles set
    """
    if rng is None:
        rng = np.random.default_rng()
    result = sequence.copy()
    result.percentiles[:] = 0

    for cycle_id in np.unique(result.cycles[result.assigned]):
        for rem_flag in (0, 1):
            part = np.flatnonzero((result.cycles == cycle_id) & (result.rem_flags == rem_flag))
            if part.size:
                result.percentiles[part] = percentile_labels(part.size, rng)
    return result
