"""
Batch processor for detecting sleep cycles in a directory of staging files.

Every file is processed on its own: it is loaded, its cycles are detected,
and the results table (plus an optional plot) is written to a dated results
folder inside the input directory. Previous results in the input directory
or the results folder abort the batch before any file is read.
"""

import logging
from datetime import date
from pathlib import Path
from typing import List, NamedTuple, Optional, Sequence, Union

from sleep_cycle_toolkit.config import CycleDetectionConfig, StageFileFormat
from sleep_cycle_toolkit.constants import RESULT_FILE_SUFFIX
from sleep_cycle_toolkit.cycle_detector import SleepCycleDetector
from sleep_cycle_toolkit.exceptions import ConfigurationError, SleepCycleError
from sleep_cycle_toolkit.export.results_writer import (
    build_results_table, ensure_no_stale_results, plot_file_name, result_file_name,
    results_folder_name, write_results
)
from sleep_cycle_toolkit.utils.stage_file_loader import load_stage_file

logger = logging.getLogger(__name__)


class FileResult(NamedTuple):
    """Outcome of processing a single staging file."""
    input_path: Path
    output_path: Optional[Path]
    plot_path: Optional[Path]
    n_epochs: int
    n_cycles: int
    warnings: List[str]
    error: Optional[str] = None

    @property
    def succeeded(self) -> bool:
        return self.error is None


class SleepCycleBatchProcessor:
    """Detects sleep cycles for all (or selected) staging files of a directory."""

    def __init__(self, config: Optional[CycleDetectionConfig] = None,
                 file_format: Optional[StageFileFormat] = None, plot: bool = True):
        """Initialize batch processor.

        Args:
            config: Detection settings shared by all files
            file_format: Layout of the staging files
            plot: Whether to save a cycle plot per file
        """
        self.config = config if config is not None else CycleDetectionConfig()
        self.file_format = file_format if file_format is not None else StageFileFormat()
        self.file_format.validate()
        self.plot = plot
        self.detector = SleepCycleDetector(self.config)

    def list_stage_files(self, directory: Union[str, Path]) -> List[Path]:
        """Staging files of the configured type, sorted by name"""
        directory = Path(directory)
        return sorted(
            path for path in directory.glob(f"*{self.file_format.extension}")
            if path.is_file() and not path.stem.endswith(RESULT_FILE_SUFFIX)
        )

    def select_files(self, available: List[Path], files: Optional[Sequence[Union[str, int]]]) -> List[Path]:
        """Pick files by name or by 0-based position in the sorted listing.

        Raises:
            ConfigurationError: If a selected file does not exist
        """
        if files is None:
            return available
        by_name = {path.name: path for path in available}
        selected = []
        for item in files:
            if isinstance(item, int):
                if not 0 <= item < len(available):
                    raise ConfigurationError(f"File position {item} out of range (0-{len(available) - 1})")
                selected.append(available[item])
            elif item in by_name:
                selected.append(by_name[item])
            else:
                raise ConfigurationError(f"Selected file '{item}' not found among {list(by_name)}")
        return selected

    def process_file(self, input_path: Union[str, Path], results_dir: Union[str, Path]) -> FileResult:
        """Detect cycles in one staging file and save its results.

        Raises:
            SleepCycleError: If the file cannot be loaded or contains invalid stages
        """
        input_path = Path(input_path)
        results_dir = Path(results_dir)
        logger.info(f"Processing: {input_path.name}")

        stage_data = load_stage_file(input_path, self.file_format)
        result = self.detector.detect(stage_data.stage_codes)
        for message in result.warnings:
            logger.warning(f"{input_path.name}: {message}")

        table = build_results_table(result, stage_data.passthrough,
                                    marker_descriptions=self.file_format.file_type == "vmrk")
        output_path = write_results(table, results_dir / result_file_name(input_path.name))

        plot_path = None
        if self.plot:
            # matplotlib is only loaded when plots are requested
            from sleep_cycle_toolkit.visualization.hypnogram import save_sleep_cycle_plot
            plot_path = save_sleep_cycle_plot(result, results_dir / plot_file_name(input_path.name),
                                              title=input_path.stem)

        return FileResult(
            input_path=input_path,
            output_path=output_path,
            plot_path=plot_path,
            n_epochs=result.n_epochs,
            n_cycles=result.n_cycles,
            warnings=list(result.warnings),
        )

    def process_directory(self, directory: Union[str, Path],
                          files: Optional[Sequence[Union[str, int]]] = None,
                          run_date: Optional[date] = None) -> List[FileResult]:
        """Process staging files of a directory one at a time.

        Args:
            directory: Directory holding the staging files
            files: Optional selection of file names or 0-based positions
            run_date: Date used for the results folder name (default: today)

        Returns:
            One FileResult per selected file; failed files carry an error message

        Raises:
            StaleResultsError: If results of a previous run are present
            ConfigurationError: If the directory or the selection is invalid
        """
        directory = Path(directory)
        if not directory.is_dir():
            raise ConfigurationError(f"Directory does not exist: {directory}")

        results_dir = directory / results_folder_name(run_date)
        ensure_no_stale_results(directory, results_dir)

        selected = self.select_files(self.list_stage_files(directory), files)
        if not selected:
            raise ConfigurationError(f"No {self.file_format.extension} files found in {directory}")

        results_dir.mkdir(exist_ok=True)
        logger.info(f"Detecting sleep cycles in {len(selected)} files, results in {results_dir}")

        file_results = []
        for number, path in enumerate(selected, 1):
            logger.info(f"File {number}/{len(selected)}")
            try:
                file_results.append(self.process_file(path, results_dir))
            except SleepCycleError as e:
                logger.error(f"Failed to process {path.name}: {e}")
                file_results.append(FileResult(
                    input_path=path, output_path=None, plot_path=None,
                    n_epochs=0, n_cycles=0, warnings=[], error=str(e),
                ))
        return file_results
