#!/usr/bin/env python3
"""
Detect sleep cycles in a directory of sleep staging files.

Every selected file is annotated with sleep cycles, NREM/REM parts and
percentiles. Results are written to a dated 'SleepCycles_<date>' folder
inside the input directory.

Usage:
    python -m sleep_cycle_toolkit.detect_sleep_cycles data/
    python -m sleep_cycle_toolkit.detect_sleep_cycles data/ --file-type vmrk --sleep-start N2 --quiet
"""

import argparse
import logging
import sys
from typing import List, Optional, Tuple, Union

from sleep_cycle_toolkit.batch_processor import SleepCycleBatchProcessor
from sleep_cycle_toolkit.config import (
    FILE_TYPES, SLEEP_START_OPTIONS, CycleDetectionConfig, StageFileFormat
)
from sleep_cycle_toolkit.constants import DEFAULT_REMP_LENGTH, SPLIT_FIRST, SPLIT_MODES
from sleep_cycle_toolkit.exceptions import ConfigurationError


def setup_logging(quiet: bool = False):
    """Setup logging configuration."""
    level = logging.WARNING if quiet else logging.INFO
    logging.basicConfig(
        level=level,
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
        datefmt='%H:%M:%S'
    )

    # Suppress font lookup output while plots are rendered
    logging.getLogger('matplotlib.font_manager').setLevel(logging.WARNING)


def parse_file_selection(files: Optional[List[str]]) -> Optional[List[Union[str, int]]]:
    """Treat digit-only entries as 0-based positions and everything else as file names."""
    if not files:
        return None
    return [int(item) if item.isdigit() else item for item in files]


def parse_split_option(values: List[str]) -> Union[str, Tuple[int, ...]]:
    """Return 'first' or 'none' unchanged, otherwise the epoch indices to split at."""
    if len(values) == 1 and values[0] in SPLIT_MODES:
        return values[0]
    try:
        return tuple(int(value) for value in values)
    except ValueError:
        raise ConfigurationError(
            f"--split takes 'first', 'none' or epoch indices, got {values}"
        )


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description='Detect sleep cycles (Feinberg & Floyd, 1979) in sleep staging files',
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
    # All txt files of a directory, stages in column 'Description'
    python -m sleep_cycle_toolkit.detect_sleep_cycles data/

    # Tab separated files without header, sleep onset at the first N2 epoch
    python -m sleep_cycle_toolkit.detect_sleep_cycles data/ --separator tabulator \\
        --no-header --stage-column 0 --sleep-start N2

    # Only the first and third file, movement time (code 6) counted as W
    python -m sleep_cycle_toolkit.detect_sleep_cycles data/ --files 0 2 --treat-as-w 6

    # One recording, long NREM period split at epoch 412 instead of the first suggestion
    python -m sleep_cycle_toolkit.detect_sleep_cycles data/ --files night1.txt --split 412
        """
    )

    parser.add_argument(
        'directory',
        help='Directory holding the sleep staging files'
    )
    parser.add_argument(
        '--files',
        nargs='+',
        help='File names or 0-based positions in the sorted file list (default: all files)'
    )

    # File layout
    parser.add_argument(
        '--file-type',
        choices=FILE_TYPES,
        default='txt',
        help='Type of the staging files'
    )
    parser.add_argument(
        '--separator',
        default=',',
        help="Column separator of txt/csv files ('tabulator' for tabs, 'NA' for whitespace)"
    )
    parser.add_argument(
        '--no-header',
        action='store_true',
        help='Staging files have no header row'
    )
    parser.add_argument(
        '--stage-column',
        default='Description',
        help='Column holding the stages (column position when --no-header is given)'
    )

    # Detection settings
    parser.add_argument(
        '--sleep-start',
        choices=SLEEP_START_OPTIONS,
        default='N1',
        help='Stage at which sleep (and the first NREM period) starts'
    )
    parser.add_argument(
        '--treat-as-w',
        nargs='+',
        default=[],
        help='Additional stage codes counted as W (e.g. movement time)'
    )
    parser.add_argument(
        '--treat-as-n3',
        nargs='+',
        default=[],
        help='Additional stage codes counted as N3 (e.g. R&K stage 4)'
    )
    parser.add_argument(
        '--remp-length',
        type=int,
        default=DEFAULT_REMP_LENGTH,
        help='Minimum REM period length in epochs (first REM period exempt)'
    )
    parser.add_argument(
        '--rm-incomplete-period',
        action='store_true',
        help='Drop the last cycle when its final period ends with less than 5 min of its stage'
    )
    parser.add_argument(
        '--split',
        nargs='+',
        default=[SPLIT_FIRST],
        help="How to split NREM periods > 120 min: 'first' lightening of sleep, 'none', "
             "or epoch indices (0-based) to split at"
    )
    parser.add_argument(
        '--seed',
        type=int,
        help='Seed for the placement of uneven percentile bins'
    )
    parser.add_argument(
        '--no-plot',
        action='store_true',
        help='Do not save a cycle plot per file'
    )
    parser.add_argument(
        '--quiet',
        action='store_true',
        help='Suppress progress output'
    )
    return parser


def main(argv: Optional[List[str]] = None):
    """Main entry point for the CLI."""
    args = build_parser().parse_args(argv)

    setup_logging(args.quiet)
    logger = logging.getLogger(__name__)

    try:
        config = CycleDetectionConfig(
            sleep_start=args.sleep_start,
            treat_as_w=tuple(args.treat_as_w),
            treat_as_n3=tuple(args.treat_as_n3),
            remp_length=args.remp_length,
            rm_incomplete_period=args.rm_incomplete_period,
            random_seed=args.seed,
            split_points=parse_split_option(args.split),
        )
        file_format = StageFileFormat(
            file_type=args.file_type,
            separator=args.separator,
            header=not args.no_header,
            stage_column=args.stage_column,
        )
        processor = SleepCycleBatchProcessor(config, file_format, plot=not args.no_plot)

        logger.info(f"Starting sleep cycle detection in {args.directory}")
        results = processor.process_directory(args.directory, files=parse_file_selection(args.files))

        failed = [result for result in results if not result.succeeded]
        if not args.quiet:
            for result in results:
                if result.succeeded:
                    print(f"{result.input_path.name}: {result.n_cycles} cycles in {result.n_epochs} epochs "
                          f"-> {result.output_path}")
                    for message in result.warnings:
                        print(f"    {message}")
                else:
                    print(f"{result.input_path.name}: FAILED ({result.error})")
            print(f"\nProcessed {len(results) - len(failed)}/{len(results)} files successfully")

        if failed:
            sys.exit(1)

    except KeyboardInterrupt:
        logger.info("Processing interrupted by user")
        sys.exit(1)
    except Exception as e:
        logger.error(f"Processing failed: {e}")
        sys.exit(1)


if __name__ == '__main__':
    main()
