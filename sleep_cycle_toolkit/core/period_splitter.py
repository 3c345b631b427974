"""Splitting of NREM periods longer than 120 min (excluding wake).

A too long NREMP is split at a lightening of sleep: the first N3 epoch that
follows at least 12 min without N3 (cf. Rudzik et al., 2020; Jenni et al.,
2004; Kurth et al., 2010). The first part then forms a cycle without REM.

Instead of the first lightening of sleep, callers may request explicit split
epochs or no splitting at all.

Splitting runs at most twice. The second pass only runs when the first pass
changed which periods are too long; if periods are still too long after
that, they are kept and reported.
"""

import logging
from dataclasses import dataclass, field
from typing import Dict, List, Sequence, Tuple, Union

import numpy as np

from sleep_cycle_toolkit.constants import (
    LIGHTENING_EPOCHS, MAX_NREMP_EPOCHS, MAX_SPLIT_PASSES, SPLIT_FIRST, SPLIT_NONE, PeriodMarkers,
    SleepStages
)
from sleep_cycle_toolkit.core.sequence import EpochSequence, Period
from sleep_cycle_toolkit.exceptions import ConfigurationError

logger = logging.getLogger(__name__)

SplitPoints = Union[str, Sequence[int]]


@dataclass
class SplitReport:
    """Diagnostics of the long-period splitting passes"""
    overlong_before_split: List[int] = field(default_factory=list)  # NREMP starts
    second_pass_required: bool = False
    split_points: List[int] = field(default_factory=list)
    candidates: Dict[int, List[int]] = field(default_factory=dict)  # NREMP start -> possible split points
    overlong_after_retry: List[int] = field(default_factory=list)

    @property
    def has_overlong_periods(self) -> bool:
        return bool(self.overlong_after_retry)


def nrem_epoch_count(sequence: EpochSequence, period: Period) -> int:
    """Number of N1-N3 epochs inside a period"""
    span = sequence.stages[period.start:period.end]
    return int(np.count_nonzero(np.isin(span, SleepStages.NREM)))


def find_overlong_nremps(sequence: EpochSequence, max_epochs: int = MAX_NREMP_EPOCHS) -> List[Period]:
    """NREM periods holding more than max_epochs of NREM sleep"""
    return [
        period for period in sequence.periods()
        if period.is_nremp and nrem_epoch_count(sequence, period) > max_epochs
    ]


def find_split_candidates(sequence: EpochSequence, period: Period,
                          min_gap: int = LIGHTENING_EPOCHS) -> List[int]:
    """N3 epochs inside a period that follow at least min_gap epochs without N3.

    The stretch without N3 is measured from the previous N3 epoch of the same
    period, so the period's first N3 episode is never a candidate.
    """
    span = sequence.stages[period.start:period.end]
    n3_epochs = np.flatnonzero(span == SleepStages.N3) + period.start
    if n3_epochs.size < 2:
        return []
    epochs_without_n3 = np.diff(n3_epochs) - 1
    return [int(i) for i in n3_epochs[1:][epochs_without_n3 >= min_gap]]


def _chosen_split_points(period: Period, candidates: List[int], split_points: SplitPoints) -> List[int]:
    """Split points to apply to one over-long period for the configured choice"""
    if split_points == SPLIT_NONE:
        return []
    if split_points == SPLIT_FIRST:
        return candidates[:1]
    chosen = sorted(point for point in split_points if period.start < point < period.end)
    for point in chosen:
        if point not in candidates:
            logger.warning(
                f"Requested split point {point} is not a lightening of sleep "
                f"(suggested: {candidates})"
            )
    return chosen


def _check_requested_split_points(split_points: SplitPoints, overlong: List[Period]) -> None:
    if isinstance(split_points, str):
        return
    outside = [
        point for point in split_points
        if not any(period.start < point < period.end for period in overlong)
    ]
    if outside:
        raise ConfigurationError(
            f"Requested split points {outside} do not lie inside a NREMP longer than 120 min "
            f"(over-long NREMPs start at {[period.start for period in overlong]})"
        )


def _split_pass(sequence: EpochSequence, overlong: List[Period], report: SplitReport,
                split_points: SplitPoints = SPLIT_FIRST) -> EpochSequence:
    result = sequence.copy()
    for period in overlong:
        candidates = find_split_candidates(result, period)
        report.candidates[period.start] = candidates
        if not candidates and split_points == SPLIT_FIRST:
            logger.warning(
                f"NREMP starting at epoch {period.start} exceeds 120 min but has no "
                "lightening of sleep to split at"
            )
            continue
        chosen = _chosen_split_points(period, candidates, split_points)
        if not chosen:
            logger.info(f"NREMP starting at epoch {period.start} is not split (split points: {candidates})")
            continue
        result.period_starts[chosen] = PeriodMarkers.NREMP
        report.split_points.extend(chosen)
        logger.info(
            f"Split NREMP starting at epoch {period.start} at epochs {chosen} "
            f"({len(candidates)} possible split points)"
        )
    return result


def split_long_nremps(sequence: EpochSequence,
                      split_points: SplitPoints = SPLIT_FIRST) -> Tuple[EpochSequence, SplitReport]:
    """Split NREM periods longer than 120 min in at most two passes.

    Args:
        sequence: Sequence with period start markers
        split_points: 'first' to split at the first lightening of sleep,
            'none' to keep over-long periods, or explicit epoch indices

    Returns:
        Tuple of (sequence with split markers added, SplitReport)

    Raises:
        ConfigurationError: If an explicit split point is outside every over-long NREMP
    """
    report = SplitReport()
    overlong = find_overlong_nremps(sequence)
    report.overlong_before_split = [period.start for period in overlong]
    _check_requested_split_points(split_points, overlong)

    result = sequence
    passes = 0
    while overlong and passes < MAX_SPLIT_PASSES:
        result = _split_pass(result, overlong, report, split_points)
        passes += 1
        still_overlong = find_overlong_nremps(result)
        if [p.start for p in still_overlong] == [p.start for p in overlong]:
            # Nothing could be split, another pass would find the same periods
            overlong = still_overlong
            break
        overlong = still_overlong
        if overlong and passes < MAX_SPLIT_PASSES:
            logger.info("Still detected a NREMP > 120 min, running the splitting process again")
            report.second_pass_required = True

    report.overlong_after_retry = [period.start for period in overlong]
    if overlong:
        logger.warning(
            f"NREMPs starting at epochs {report.overlong_after_retry} still exceed 120 min "
            f"after {passes} splitting pass(es)"
        )
    return result, report
