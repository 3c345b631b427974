"""
Results export for sleep cycle detection.

This module provides:
- Naming of the dated results folder and of per-recording result files
- The stale-result guard run once before a batch starts
- Assembly and writing of the per-epoch results table, with cycle labels
  as marker descriptions for BrainVision marker input
"""

import logging
from datetime import date
from pathlib import Path
from typing import Iterable, List, Optional, Union

import pandas as pd

from sleep_cycle_toolkit.constants import RESULT_FILE_SUFFIX, RESULTS_FOLDER_PREFIX
from sleep_cycle_toolkit.cycle_detector import CycleDetectionResult
from sleep_cycle_toolkit.exceptions import SleepCycleError, StaleResultsError

logger = logging.getLogger(__name__)

STALE_RESULT_PATTERN = f"*{RESULT_FILE_SUFFIX}.txt"
MARKER_DESCRIPTION_COLUMN = "Description"


def results_folder_name(run_date: Optional[date] = None) -> str:
    """Name of the results folder, e.g. 'SleepCycles_2024-03-01'"""
    run_date = run_date or date.today()
    return f"{RESULTS_FOLDER_PREFIX}_{run_date.isoformat()}"


def result_file_name(recording_name: str) -> str:
    """Result file for a recording: '<stem>_SCycles.txt'"""
    return f"{Path(recording_name).stem}_{RESULT_FILE_SUFFIX}.txt"


def plot_file_name(recording_name: str) -> str:
    return f"{Path(recording_name).stem}_{RESULT_FILE_SUFFIX}.png"


def find_stale_results(directories: Iterable[Union[str, Path]]) -> List[Path]:
    """Result files of previous runs found directly in the given directories"""
    stale = []
    for directory in directories:
        directory = Path(directory)
        if directory.is_dir():
            stale.extend(sorted(directory.glob(STALE_RESULT_PATTERN)))
    return stale


def ensure_no_stale_results(*directories: Union[str, Path]) -> None:
    """Abort before processing if previous results could be mixed up with new ones.

    Raises:
        StaleResultsError: If any '*SCycles.txt' file exists in the directories
    """
    stale = find_stale_results(directories)
    if stale:
        names = ", ".join(path.name for path in stale[:5])
        more = f" and {len(stale) - 5} more" if len(stale) > 5 else ""
        raise StaleResultsError(
            f"Please remove files from previous sleep cycle detections: {names}{more}"
        )


def cycle_marker_labels(result: CycleDetectionResult) -> pd.Series:
    """Marker description per epoch, e.g. 'NREM2_4' for the 4th percentile of cycle 2's NREM part.

    Unassigned epochs get NA.
    """
    seq = result.sequence
    labels = [
        f"{'REM' if rem_flag else 'NREM'}{cycle}_{percentile}" if cycle > 0 else None
        for cycle, rem_flag, percentile in zip(seq.cycles, seq.rem_flags, seq.percentiles)
    ]
    return pd.Series(labels, dtype=object, name=MARKER_DESCRIPTION_COLUMN)


def build_results_table(result: CycleDetectionResult, passthrough: Optional[pd.DataFrame] = None,
                        marker_descriptions: bool = False) -> pd.DataFrame:
    """Combine passthrough columns with the detection output, row by row.

    Args:
        result: Detection result of one recording
        passthrough: Columns of the staging file to keep
        marker_descriptions: Replace the marker Description with cycle labels
            so the markers can be loaded back into BrainVision Analyzer

    Raises:
        SleepCycleError: If the passthrough rows do not match the epochs
    """
    table = result.to_dataframe()
    if passthrough is None or passthrough.shape[1] == 0:
        return table
    if len(passthrough) != len(table):
        raise SleepCycleError(
            f"Passthrough columns have {len(passthrough)} rows but {len(table)} epochs were annotated"
        )
    if marker_descriptions and MARKER_DESCRIPTION_COLUMN in passthrough.columns:
        passthrough = passthrough.copy()
        passthrough[MARKER_DESCRIPTION_COLUMN] = cycle_marker_labels(result).to_numpy()
    return pd.concat([passthrough.reset_index(drop=True), table], axis=1)


def write_results(table: pd.DataFrame, output_path: Union[str, Path]) -> Path:
    """Write a results table as comma separated text with NA for unassigned epochs"""
    output_path = Path(output_path)
    if not output_path.parent.exists():
        raise SleepCycleError(f"Directory does not exist: {output_path.parent}")
    table.to_csv(output_path, index=False, na_rep="NA")
    logger.info(f"Saved results to {output_path}")
    return output_path
