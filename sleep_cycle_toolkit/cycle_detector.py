"""
Sleep cycle detection from sleep staging results.

Sleep cycles are detected according to the criteria of Feinberg & Floyd
(1979) as described in Blume & Cajochen (2021):

- NREM periods (NREMPs) start with N1 (default) or N2 at the beginning of the
  night and with W or another NREM stage after a REM period. They last at
  least 15 min (W and REM episodes < 5 min may be included), except for the
  first NREMP.
- REM following a NREMP is a potential REM period (REMP). REMPs last at least
  5 min, except for the first REMP.
- A NREMP and the following REMP form one cycle. NREMPs longer than 120 min
  (excluding W) are split at a lightening of sleep; the first part then forms
  a cycle without REM.
- The end of the night is cleaned, and each NREM and REM part is divided into
  ten percentiles.

The detector only works on an in-memory stage sequence; reading staging
files and writing results is handled by the batch processor.
"""

import logging
import warnings
from dataclasses import dataclass, field
from typing import List, Optional

import numpy as np
import pandas as pd

from sleep_cycle_toolkit.config import CycleDetectionConfig
from sleep_cycle_toolkit.constants import DEFAULT_REMP_LENGTH
from sleep_cycle_toolkit.core import (
    EpochSequence, SplitReport, annotate_percentiles, assign_cycles, detect_periods,
    normalize_stages, split_long_nremps, trim_end_of_night
)

logger = logging.getLogger(__name__)

SUMMARY_COLUMNS = ['cycle', 'nrem_start', 'nrem_epochs', 'rem_start', 'rem_epochs']


@dataclass
class CycleDetectionResult:
    """Annotated sequence of one recording plus its diagnostics"""
    sequence: EpochSequence
    split_report: SplitReport
    warnings: List[str] = field(default_factory=list)

    @property
    def n_epochs(self) -> int:
        return len(self.sequence)

    @property
    def n_cycles(self) -> int:
        return self.sequence.n_cycles

    def to_dataframe(self) -> pd.DataFrame:
        """Output table with one row per input epoch"""
        return self.sequence.to_dataframe()

    def cycle_summary(self) -> pd.DataFrame:
        """One row per cycle with the epoch ranges of its NREM and REM parts"""
        seq = self.sequence
        rows = []
        for cycle_id in np.unique(seq.cycles[seq.assigned]):
            in_cycle = seq.cycles == cycle_id
            nrem = np.flatnonzero(in_cycle & (seq.rem_flags == 0))
            rem = np.flatnonzero(in_cycle & (seq.rem_flags == 1))
            rows.append({
                'cycle': int(cycle_id),
                'nrem_start': int(nrem[0]) if nrem.size else None,
                'nrem_epochs': int(nrem.size),
                'rem_start': int(rem[0]) if rem.size else None,
                'rem_epochs': int(rem.size),
            })
        return pd.DataFrame(rows, columns=SUMMARY_COLUMNS)


class SleepCycleDetector:
    """Runs the detection passes on one stage sequence at a time."""

    def __init__(self, config: Optional[CycleDetectionConfig] = None):
        """Initialize the detector.

        Args:
            config: Detection settings (defaults follow the published algorithm)

        Raises:
            ConfigurationError: If the settings are invalid
        """
        self.config = config if config is not None else CycleDetectionConfig()
        self.config.validate()

        self.config_warnings = []
        if self.config.deviates_from_validated_remp_length:
            message = (
                f"WARNING: REMP minimum length decreased to {self.config.remp_length} epochs. "
                f"The algorithm was validated with {DEFAULT_REMP_LENGTH} epochs (5 min)."
            )
            warnings.warn(message, UserWarning, stacklevel=2)
            self.config_warnings.append(message)

    def detect(self, stage_codes) -> CycleDetectionResult:
        """Detect sleep cycles in a sequence of 30 s stage codes.

        Args:
            stage_codes: Raw stage codes in temporal order

        Returns:
            CycleDetectionResult with one annotated epoch per input code

        Raises:
            EmptySequenceError: If the sequence is empty
            UnrecognizedStageError: If a code cannot be mapped to a stage
            ConfigurationError: If requested split points lie outside every over-long NREMP
        """
        cfg = self.config
        sequence = normalize_stages(stage_codes, cfg.treat_as_w, cfg.treat_as_n3)
        sequence = detect_periods(sequence, cfg.sleep_start, cfg.remp_length)
        sequence, split_report = split_long_nremps(sequence, cfg.split_points)
        sequence = assign_cycles(sequence)
        sequence = trim_end_of_night(sequence, cfg.rm_incomplete_period)
        # Fresh generator per recording so seeded runs do not depend on file order
        sequence = annotate_percentiles(sequence, np.random.default_rng(cfg.random_seed))

        result_warnings = list(self.config_warnings)
        if split_report.has_overlong_periods:
            result_warnings.append(
                f"NREMPs starting at epochs {split_report.overlong_after_retry} exceed 120 min "
                "after the bounded splitting passes"
            )
        if split_report.second_pass_required:
            result_warnings.append(
                f"A second splitting pass was required (split points: {split_report.split_points})"
            )

        logger.info(f"Detected {sequence.n_cycles} sleep cycles in {len(sequence)} epochs")
        return CycleDetectionResult(sequence=sequence, split_report=split_report, warnings=result_warnings)


def detect_sleep_cycles(stage_codes, config: Optional[CycleDetectionConfig] = None) -> CycleDetectionResult:
    """Convenience wrapper running a fresh SleepCycleDetector once"""
    return SleepCycleDetector(config).detect(stage_codes)
