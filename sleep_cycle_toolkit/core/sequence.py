"""Epoch sequence buffer shared by the cycle detection passes.

One EpochSequence holds every per-epoch column of a single recording. Each
pass receives the previous state and returns an updated copy, so passes can
be run and tested in isolation. Epochs are never removed: an epoch that
belongs to no cycle keeps cycle id 0 and is reported as unassigned.
"""

from dataclasses import dataclass
from typing import List, NamedTuple, Optional

import numpy as np
import pandas as pd

from sleep_cycle_toolkit.constants import (
    CYCLE_COLUMN, PERCENTILE_COLUMN, REM_FLAG_COLUMN, STAGE_COLUMN,
    PeriodMarkers, SleepStages
)


class Period(NamedTuple):
    """Contiguous span [start, end) of epochs opened by a period start marker."""
    kind: int  # PeriodMarkers.NREMP or PeriodMarkers.REMP
    start: int
    end: int

    @property
    def length(self) -> int:
        return self.end - self.start

    @property
    def is_nremp(self) -> bool:
        return self.kind == PeriodMarkers.NREMP


@dataclass
class EpochSequence:
    """Per-epoch stage codes plus the tags added by the detection passes"""
    raw_stages: np.ndarray  # original codes as read from the file
    stages: np.ndarray  # canonical codes (SleepStages)
    period_starts: np.ndarray  # PeriodMarkers per epoch
    cycles: np.ndarray  # cycle id, 0 = unassigned
    rem_flags: np.ndarray  # 0 = NREM part, 1 = REM part (meaningful where cycles > 0)
    percentiles: np.ndarray  # 1-10, 0 = unassigned

    @classmethod
    def from_stages(cls, stages, raw_stages=None) -> 'EpochSequence':
        """Create an untagged sequence from canonical stage codes"""
        stages = np.asarray(stages, dtype=np.int64).reshape(-1)
        if raw_stages is None:
            raw_stages = stages.copy()
        n_epochs = stages.size
        return cls(
            raw_stages=np.asarray(raw_stages, dtype=object).reshape(-1),
            stages=stages,
            period_starts=np.zeros(n_epochs, dtype=np.int8),
            cycles=np.zeros(n_epochs, dtype=np.int64),
            rem_flags=np.zeros(n_epochs, dtype=np.int8),
            percentiles=np.zeros(n_epochs, dtype=np.int8),
        )

    def __len__(self) -> int:
        return int(self.stages.size)

    def copy(self) -> 'EpochSequence':
        return EpochSequence(
            raw_stages=self.raw_stages.copy(),
            stages=self.stages.copy(),
            period_starts=self.period_starts.copy(),
            cycles=self.cycles.copy(),
            rem_flags=self.rem_flags.copy(),
            percentiles=self.percentiles.copy(),
        )

    @property
    def assigned(self) -> np.ndarray:
        """Boolean mask of epochs that belong to a cycle"""
        return self.cycles > 0

    @property
    def n_cycles(self) -> int:
        return int(np.unique(self.cycles[self.assigned]).size)

    def nrem_mask(self) -> np.ndarray:
        return np.isin(self.stages, SleepStages.NREM)

    def marker_indices(self, marker: Optional[int] = None) -> List[int]:
        """Indices carrying a period start marker (of one kind if given)"""
        if marker is None:
            hits = np.flatnonzero(self.period_starts != PeriodMarkers.NONE)
        else:
            hits = np.flatnonzero(self.period_starts == marker)
        return [int(i) for i in hits]

    def periods(self) -> List[Period]:
        """Periods in temporal order; each one ends where the next starts"""
        starts = self.marker_indices()
        ends = starts[1:] + [len(self)]
        return [Period(int(self.period_starts[s]), s, e) for s, e in zip(starts, ends)]

    def to_dataframe(self) -> pd.DataFrame:
        """Build the output table: one row per epoch, NA where unassigned"""
        assigned = self.assigned
        table = pd.DataFrame({
            STAGE_COLUMN: self.stages,
            CYCLE_COLUMN: pd.array(self.cycles, dtype="Int64"),
            REM_FLAG_COLUMN: pd.array(self.rem_flags.astype(np.int64), dtype="Int64"),
            PERCENTILE_COLUMN: pd.array(self.percentiles.astype(np.int64), dtype="Int64"),
        })
        table.loc[~assigned, [CYCLE_COLUMN, REM_FLAG_COLUMN, PERCENTILE_COLUMN]] = pd.NA
        return table
