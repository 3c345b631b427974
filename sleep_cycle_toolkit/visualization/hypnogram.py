import logging
from pathlib import Path
from typing import Optional, Union

import matplotlib.pyplot as plt
import numpy as np

from sleep_cycle_toolkit.constants import EPOCH_SECONDS, SleepStages
from sleep_cycle_toolkit.cycle_detector import CycleDetectionResult

logger = logging.getLogger(__name__)

NREM_COLOR = 'lightskyblue'
REM_COLOR = 'red'


def plot_sleep_cycles(result: CycleDetectionResult, title: str = "", ax_hypnogram=None, ax_cycles=None):
    """Plot the hypnogram with detected cycles shaded and NREM/REM parts below.

    Args:
        result: Detection result to visualise
        title: Figure title, usually the recording name
        ax_hypnogram: Optional axes for the hypnogram
        ax_cycles: Optional axes for the NREM/REM strip

    Returns:
        Tuple of (figure, (hypnogram axes, cycle strip axes))
    """
    seq = result.sequence
    if ax_hypnogram is None or ax_cycles is None:
        fig, (ax_hypnogram, ax_cycles) = plt.subplots(
            2, 1, figsize=(12, 5), sharex=True, gridspec_kw={'height_ratios': [3, 1]}
        )
    else:
        fig = ax_hypnogram.figure

    stage_to_row = {stage: row for row, stage in enumerate(SleepStages.PLOT_ORDER)}
    rows = np.array([stage_to_row[int(stage)] for stage in seq.stages])
    edges = np.arange(len(seq) + 1) * EPOCH_SECONDS / 3600.0

    # Hypnogram line with REM highlighted
    ax_hypnogram.stairs(rows, edges, baseline=None, color='black', lw=1)
    rem_rows = np.ma.masked_not_equal(rows, stage_to_row[SleepStages.REM])
    if not rem_rows.mask.all():
        ax_hypnogram.hlines(rem_rows, xmin=edges[:-1], xmax=edges[1:], color=REM_COLOR, lw=3)

    cycle_ids = np.unique(seq.cycles[seq.assigned])
    colors = plt.cm.tab10(np.linspace(0, 1, max(len(cycle_ids), 1)))
    for color, cycle_id in zip(colors, cycle_ids):
        epochs = np.flatnonzero(seq.cycles == cycle_id)
        start, end = edges[epochs[0]], edges[epochs[-1] + 1]
        ax_hypnogram.axvspan(start, end, alpha=0.15, color=color, label=f'Cycle {cycle_id}')

        for rem_flag, part_color in ((0, NREM_COLOR), (1, REM_COLOR)):
            part = np.flatnonzero((seq.cycles == cycle_id) & (seq.rem_flags == rem_flag))
            if part.size:
                ax_cycles.axvspan(edges[part[0]], edges[part[-1] + 1], color=part_color, alpha=0.8)
        ax_cycles.text((start + end) / 2, 0.5, str(cycle_id), ha='center', va='center', fontsize=8)

    report = result.split_report
    for split_point in report.split_points:
        ax_hypnogram.axvline(edges[split_point], color='black', linestyle='--', linewidth=1)
    # Suggested split points that were not used
    suggested = {point for points in report.candidates.values() for point in points} - set(report.split_points)
    for split_point in sorted(suggested):
        ax_hypnogram.axvline(edges[split_point], color='grey', linestyle=':', linewidth=1)

    ax_hypnogram.set_yticks(range(len(SleepStages.PLOT_ORDER)))
    ax_hypnogram.set_yticklabels([SleepStages.to_name(stage) for stage in SleepStages.PLOT_ORDER])
    ax_hypnogram.set_ylim(len(SleepStages.PLOT_ORDER) - 0.5, -0.5)
    ax_hypnogram.set_ylabel('Stage')
    ax_hypnogram.spines[['right', 'top']].set_visible(False)
    if len(cycle_ids):
        ax_hypnogram.legend(loc='upper right', fontsize=7, ncol=min(len(cycle_ids), 6))
    if title:
        ax_hypnogram.set_title(title)

    ax_cycles.set_yticks([])
    ax_cycles.set_ylim(0, 1)
    ax_cycles.set_ylabel('NREM/REM', rotation=0, ha='right', va='center', fontsize=8)
    ax_cycles.set_xlabel('Time [hrs]')
    ax_cycles.set_xlim(edges[0], edges[-1])

    return fig, (ax_hypnogram, ax_cycles)


def save_sleep_cycle_plot(result: CycleDetectionResult, output_path: Union[str, Path], title: Optional[str] = None) -> Path:
    """Render the cycle plot to an image file and close the figure"""
    output_path = Path(output_path)
    fig, _ = plot_sleep_cycles(result, title=title or output_path.stem)
    try:
        fig.tight_layout()
        fig.savefig(output_path, dpi=100)
    finally:
        plt.close(fig)
    logger.info(f"Saved cycle plot to {output_path}")
    return output_path
