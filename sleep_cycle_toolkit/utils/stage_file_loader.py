#!/usr/bin/env python3

"""
Sleep staging file loader.

Reads sleep staging results from delimited text files (txt, csv) and from
BrainVision Analyzer marker files (vmrk). Stages must be scored in 30 s
epochs, one row (or marker) per epoch. Columns other than the stage column
are passed through unchanged to the results table.

Functions:
    load_stage_file: Load stage codes plus passthrough columns from a file
"""

import logging
from pathlib import Path
from typing import List, NamedTuple, Union

import pandas as pd

from sleep_cycle_toolkit.config import StageFileFormat
from sleep_cycle_toolkit.constants import OUTPUT_COLUMNS
from sleep_cycle_toolkit.exceptions import StageFileError

logger = logging.getLogger(__name__)

VMRK_COLUMNS = ["Type", "Description", "Position", "Size", "Channel"]
# Size and Channel carry no information for 30 s stage markers
VMRK_DROPPED_COLUMNS = ["Size", "Channel"]


class StageFileData(NamedTuple):
    """Stage codes of one recording and the columns to pass through."""
    stage_codes: List
    passthrough: pd.DataFrame


def _read_delimited(path: Path, fmt: StageFileFormat) -> pd.DataFrame:
    """Read a txt/csv staging file into a string-typed DataFrame"""
    delimiter = fmt.delimiter
    try:
        return pd.read_csv(
            path,
            sep=delimiter if delimiter is not None else r"\s+",
            header=0 if fmt.header else None,
            dtype=str,
            engine="python",
            skipinitialspace=True,
        )
    except (OSError, pd.errors.ParserError, pd.errors.EmptyDataError, UnicodeDecodeError) as e:
        raise StageFileError(f"Could not read staging file {path}: {e}") from e


def _read_vmrk(path: Path) -> pd.DataFrame:
    """Read markers of a BrainVision marker file.

    Marker lines look like 'Mk2=SleepStage,2,3001,1,0'. Section headers,
    comments and [Common Infos] entries are skipped. Bare comma separated
    lines without the 'MkN=' prefix are accepted as well.
    """
    rows = []
    try:
        with open(path, "r", encoding="utf-8", errors="replace") as f:
            for line in f:
                line = line.strip()
                if not line or line.startswith(";") or line.startswith("["):
                    continue
                if line.startswith("Brain Vision"):
                    continue
                if "=" in line:
                    key, _, line = line.partition("=")
                    if not key.strip().lower().startswith("mk"):
                        continue
                rows.append([field.strip() for field in line.split(",")])
    except OSError as e:
        raise StageFileError(f"Could not read marker file {path}: {e}") from e

    if not rows:
        raise StageFileError(f"No markers found in {path}")

    n_fields = max(len(row) for row in rows)
    if n_fields < 2:
        raise StageFileError(f"Markers in {path} need at least a type and a description")
    columns = VMRK_COLUMNS[:n_fields] + [f"Extra{i}" for i in range(1, n_fields - len(VMRK_COLUMNS) + 1)]
    padded = [row + [None] * (n_fields - len(row)) for row in rows]
    return pd.DataFrame(padded, columns=columns)


def _select_stage_column(frame: pd.DataFrame, fmt: StageFileFormat, path: Path):
    if frame.shape[1] == 1:
        return frame.columns[0]
    if fmt.stage_column in frame.columns:
        return fmt.stage_column
    if not fmt.header and fmt.stage_column.isdigit() and int(fmt.stage_column) in frame.columns:
        return int(fmt.stage_column)
    raise StageFileError(
        f"Stage column '{fmt.stage_column}' not found in {path.name}. "
        f"Available columns: {list(frame.columns)}"
    )


def load_stage_file(path: Union[str, Path], fmt: StageFileFormat) -> StageFileData:
    """Load stage codes and passthrough columns from a staging file.

    Args:
        path: Staging file
        fmt: Layout of the file

    Returns:
        StageFileData with one stage code per epoch

    Raises:
        StageFileError: If the file cannot be read or has no stage data
    """
    path = Path(path)
    fmt.validate()

    if fmt.file_type == "vmrk":
        frame = _read_vmrk(path)
        stage_markers = frame["Type"].str.lower() == fmt.marker_type.lower()
        if stage_markers.any():
            frame = frame[stage_markers].reset_index(drop=True)
        else:
            logger.info(f"No '{fmt.marker_type}' markers in {path.name}, using all markers")
        stage_column = "Description"
        passthrough = frame.drop(columns=[c for c in VMRK_DROPPED_COLUMNS if c in frame.columns])
    else:
        frame = _read_delimited(path, fmt)
        stage_column = _select_stage_column(frame, fmt, path)
        passthrough = frame

    if frame.empty:
        raise StageFileError(f"No epochs found in {path}")

    stage_codes = frame[stage_column].tolist()
    # Results of an earlier run must not duplicate the output columns
    passthrough = passthrough.drop(columns=[c for c in passthrough.columns if c in OUTPUT_COLUMNS])
    logger.info(f"Loaded {len(stage_codes)} epochs from {path.name}")
    return StageFileData(stage_codes=stage_codes, passthrough=passthrough.reset_index(drop=True))
