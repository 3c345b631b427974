"""
Export module for sleep cycle detection results.

The results table holds one row per input epoch: passthrough columns of the
staging file followed by SleepStages, SleepCycle, N_REM and percentile.
Unassigned epochs are written as NA.

Note: import writer functions directly from the results_writer submodule:
    from sleep_cycle_toolkit.export.results_writer import write_results
"""

__all__ = []
