"""Unit tests for NREMP/REMP start detection and marker cleanup."""

import numpy as np
import pytest

from sleep_cycle_toolkit.constants import PeriodMarkers
from sleep_cycle_toolkit.core.period_detection import (
    detect_periods, find_nremp_starts, find_remp_starts, nrem_content, remove_repeated_starts,
    sleep_onset_index
)
from sleep_cycle_toolkit.core.sequence import EpochSequence
from sleep_cycle_toolkit.tests.test_utils import N1, N2, N3, REM, W, build_hypnogram, regular_night


def make_sequence(blocks):
    return EpochSequence.from_stages(build_hypnogram(blocks))


class TestSleepOnset:

    def test_n1_onset(self):
        stages = np.array(build_hypnogram([(W, 5), (N1, 3), (N2, 10)]))
        assert sleep_onset_index(stages, "N1") == 5

    def test_n2_onset_skips_n1(self):
        stages = np.array(build_hypnogram([(W, 5), (N1, 3), (N2, 10)]))
        assert sleep_onset_index(stages, "N2") == 8

    def test_no_sleep(self):
        stages = np.array(build_hypnogram([(W, 20), (REM, 5)]))
        assert sleep_onset_index(stages, "N1") is None


class TestNremContent:

    def test_counts_nrem_and_skips_wake(self):
        stages = np.array(build_hypnogram([(N2, 10), (W, 5), (N2, 25)]))
        assert nrem_content(stages, 0, limit=100) == 35

    def test_short_rem_is_tolerated(self):
        stages = np.array(build_hypnogram([(N2, 20), (REM, 4), (N2, 20)]))
        assert nrem_content(stages, 0, remp_length=10, limit=100) == 40

    def test_long_rem_ends_the_period(self):
        stages = np.array(build_hypnogram([(N2, 20), (REM, 10), (N2, 20)]))
        assert nrem_content(stages, 0, remp_length=10, limit=100) == 20

    def test_stops_at_limit(self):
        stages = np.array(build_hypnogram([(N3, 100)]))
        assert nrem_content(stages, 0, limit=30) == 30


class TestFindStarts:

    def test_first_nremp_at_sleep_onset(self):
        sequence = make_sequence([(W, 10), (N1, 2), (N2, 40)])
        assert find_nremp_starts(sequence, "N1") == [10]
        assert find_nremp_starts(sequence, "N2") == [12]

    def test_first_nremp_has_no_minimum_duration(self):
        sequence = make_sequence([(N2, 5), (REM, 10), (N2, 40)])
        assert find_nremp_starts(sequence) == [0, 15]

    def test_short_nremp_candidate_rejected(self):
        sequence = make_sequence([(N2, 40), (REM, 10), (N2, 20), (REM, 10), (N2, 40)])
        assert find_nremp_starts(sequence) == [0, 80]

    def test_no_onset_gives_no_periods(self):
        sequence = make_sequence([(W, 30)])
        assert find_nremp_starts(sequence) == []
        assert find_remp_starts(sequence, [], 10) == []

    def test_first_remp_is_exempt(self):
        sequence = make_sequence([(N2, 40), (REM, 3), (N2, 40), (REM, 5), (N2, 40), (REM, 12)])
        assert find_remp_starts(sequence, [0], 10) == [40, 128]

    def test_rem_before_first_nremp_ignored(self):
        sequence = make_sequence([(REM, 10), (N2, 40), (REM, 10)])
        assert find_remp_starts(sequence, [10], 10) == [50]


class TestRemoveRepeatedStarts:

    def test_keeps_first_of_each_run(self):
        sequence = EpochSequence.from_stages([N2] * 8)
        sequence.period_starts[[0, 2, 3, 5, 7]] = [
            PeriodMarkers.NREMP, PeriodMarkers.NREMP, PeriodMarkers.REMP, PeriodMarkers.REMP, PeriodMarkers.NREMP
        ]
        result = remove_repeated_starts(sequence)
        assert result.marker_indices() == [0, 3, 7]
        # Input is left untouched
        assert sequence.marker_indices() == [0, 2, 3, 5, 7]


class TestDetectPeriods:

    def test_regular_night_alternates(self):
        sequence = EpochSequence.from_stages(regular_night(n_cycles=5))
        result = detect_periods(sequence)
        assert result.marker_indices(PeriodMarkers.NREMP) == [0, 40, 80, 120, 160]
        assert result.marker_indices(PeriodMarkers.REMP) == [30, 70, 110, 150, 190]

    def test_markers_alternate(self):
        sequence = make_sequence([
            (W, 10), (N1, 4), (N2, 30), (W, 2), (N2, 20), (REM, 3), (N3, 30), (REM, 15),
            (W, 3), (N2, 35), (REM, 12), (N1, 5),
        ])
        result = detect_periods(sequence)
        kinds = [result.period_starts[i] for i in result.marker_indices()]
        assert kinds[0] == PeriodMarkers.NREMP
        assert all(a != b for a, b in zip(kinds, kinds[1:]))

    def test_remp_length_changes_detection(self):
        blocks = [(N2, 40), (REM, 10), (N2, 40), (REM, 6), (N2, 40), (REM, 10)]
        default = detect_periods(make_sequence(blocks), remp_length=10)
        short = detect_periods(make_sequence(blocks), remp_length=5)
        assert len(default.periods()) < len(short.periods())
