"""Integration tests for the batch processor and the detect_sleep_cycles CLI."""

from datetime import date

import matplotlib
matplotlib.use('Agg')
import matplotlib.pyplot as plt
import pandas as pd
import pytest

from sleep_cycle_toolkit.batch_processor import SleepCycleBatchProcessor
from sleep_cycle_toolkit.config import CycleDetectionConfig, StageFileFormat
from sleep_cycle_toolkit.cycle_detector import detect_sleep_cycles
from sleep_cycle_toolkit.detect_sleep_cycles import main, parse_file_selection, parse_split_option
from sleep_cycle_toolkit.exceptions import ConfigurationError, StaleResultsError
from sleep_cycle_toolkit.export.results_writer import (
    build_results_table, result_file_name, results_folder_name, write_results
)
from sleep_cycle_toolkit.tests.test_utils import (
    REM, W, N2, build_hypnogram, long_nrem_night, regular_night, write_stage_txt, write_stage_vmrk
)
from sleep_cycle_toolkit.visualization.hypnogram import plot_sleep_cycles, save_sleep_cycle_plot

RUN_DATE = date(2024, 3, 1)
RESULTS_FOLDER = "SleepCycles_2024-03-01"


@pytest.fixture
def staging_dir(tmp_path):
    """Directory with two valid nights and one with an unknown stage code"""
    write_stage_txt(tmp_path / "night1.txt", build_hypnogram([(W, 10)]) + regular_night(n_cycles=3))
    write_stage_txt(tmp_path / "night2.txt", long_nrem_night() + build_hypnogram([(REM, 12)]))
    write_stage_txt(tmp_path / "night3.txt", [2, 2, 9, 5])
    return tmp_path


@pytest.fixture
def processor():
    return SleepCycleBatchProcessor(CycleDetectionConfig(random_seed=3), StageFileFormat(), plot=False)


class TestResultsWriter:

    def test_names(self):
        assert results_folder_name(RUN_DATE) == RESULTS_FOLDER
        assert result_file_name("subject01.txt") == "subject01_SCycles.txt"

    def test_marker_descriptions_hold_cycle_labels(self):
        stages = build_hypnogram([(W, 3), (N2, 30), (REM, 10)])
        result = detect_sleep_cycles(stages)
        passthrough = pd.DataFrame({'Type': ['SleepStage'] * 43, 'Description': [str(s) for s in stages]})

        labelled = build_results_table(result, passthrough, marker_descriptions=True)
        assert labelled['Description'].isna().tolist()[:4] == [True, True, True, False]
        assert labelled.loc[3, 'Description'] == "NREM1_1"
        assert labelled.loc[32, 'Description'] == "NREM1_10"
        assert labelled.loc[33, 'Description'] == "REM1_1"
        assert labelled.loc[42, 'Description'] == "REM1_10"
        assert passthrough.loc[3, 'Description'] == "2"

        plain = build_results_table(result, passthrough)
        assert plain['Description'].tolist() == passthrough['Description'].tolist()

    def test_passthrough_columns_come_first(self, tmp_path):
        result = detect_sleep_cycles(regular_night(n_cycles=1))
        passthrough = pd.DataFrame({'Epoch': range(40)})
        table = build_results_table(result, passthrough)
        assert list(table.columns) == ['Epoch', 'SleepStages', 'SleepCycle', 'N_REM', 'percentile']

    def test_unassigned_written_as_na(self, tmp_path):
        result = detect_sleep_cycles(build_hypnogram([(W, 3), (N2, 30), (REM, 10)]))
        path = write_results(build_results_table(result), tmp_path / "out_SCycles.txt")
        lines = path.read_text().splitlines()
        assert lines[0] == "SleepStages,SleepCycle,N_REM,percentile"
        assert lines[1] == "0,NA,NA,NA"
        assert lines[4].startswith("2,1,0,")


class TestSleepCycleBatchProcessor:

    def test_process_directory(self, staging_dir, processor):
        results = processor.process_directory(staging_dir, run_date=RUN_DATE)
        results_dir = staging_dir / RESULTS_FOLDER

        assert [r.input_path.name for r in results] == ["night1.txt", "night2.txt", "night3.txt"]
        assert [r.succeeded for r in results] == [True, True, False]
        assert results[0].n_cycles == 3
        assert results[1].n_cycles == 3
        assert "Unrecognized sleep stage code" in results[2].error
        assert sorted(p.name for p in results_dir.iterdir()) == ["night1_SCycles.txt", "night2_SCycles.txt"]

        table = pd.read_csv(results_dir / "night1_SCycles.txt")
        assert len(table) == 130
        assert list(table.columns) == ['Description', 'SleepStages', 'SleepCycle', 'N_REM', 'percentile']
        assert table['SleepCycle'].isna().sum() == 10

    def test_select_files(self, staging_dir, processor):
        results = processor.process_directory(staging_dir, files=[1, "night1.txt"], run_date=RUN_DATE)
        assert [r.input_path.name for r in results] == ["night2.txt", "night1.txt"]

    def test_unknown_selection(self, staging_dir, processor):
        with pytest.raises(ConfigurationError):
            processor.process_directory(staging_dir, files=["night9.txt"], run_date=RUN_DATE)
        with pytest.raises(ConfigurationError):
            processor.process_directory(staging_dir, files=[7], run_date=RUN_DATE)

    def test_no_files(self, tmp_path, processor):
        with pytest.raises(ConfigurationError):
            processor.process_directory(tmp_path, run_date=RUN_DATE)
        assert not (tmp_path / RESULTS_FOLDER).exists()

    def test_stale_results_in_input_directory(self, staging_dir, processor):
        (staging_dir / "night0_SCycles.txt").write_text("old")
        with pytest.raises(StaleResultsError, match="Please remove files"):
            processor.process_directory(staging_dir, run_date=RUN_DATE)
        assert not (staging_dir / RESULTS_FOLDER).exists()

    def test_stale_results_in_results_folder(self, staging_dir, processor):
        processor.process_directory(staging_dir, files=[0], run_date=RUN_DATE)
        with pytest.raises(StaleResultsError):
            processor.process_directory(staging_dir, files=[1], run_date=RUN_DATE)

    def test_list_stage_files(self, staging_dir, processor):
        (staging_dir / "notes.csv").write_text("x")
        names = [path.name for path in processor.list_stage_files(staging_dir)]
        assert names == ["night1.txt", "night2.txt", "night3.txt"]

    def test_vmrk_directory_with_plots(self, tmp_path):
        write_stage_vmrk(tmp_path / "night.vmrk", regular_night(n_cycles=2))
        processor = SleepCycleBatchProcessor(file_format=StageFileFormat(file_type="vmrk"))
        [result] = processor.process_directory(tmp_path, run_date=RUN_DATE)

        assert result.succeeded
        assert result.plot_path.exists()
        assert result.plot_path.name == "night_SCycles.png"
        table = pd.read_csv(result.output_path)
        assert 'Size' not in table.columns
        assert table['SleepCycle'].tolist() == [1] * 40 + [2] * 40
        assert table.loc[0, 'Description'] == "NREM1_1"
        assert table.loc[30, 'Description'] == "REM1_1"
        assert table.loc[79, 'Description'] == "REM2_10"


class TestHypnogramPlot:

    def test_plot_sleep_cycles(self):
        result = detect_sleep_cycles(long_nrem_night() + build_hypnogram([(REM, 12)]))
        fig, (ax_hypnogram, ax_cycles) = plot_sleep_cycles(result, title="night")
        assert ax_hypnogram.get_title() == "night"
        assert [label.get_text() for label in ax_hypnogram.get_yticklabels()] == ["W", "REM", "N1", "N2", "N3"]
        assert ax_cycles.get_xlabel() == "Time [hrs]"
        plt.close(fig)

    def test_used_and_suggested_split_points_drawn(self):
        result = detect_sleep_cycles(long_nrem_night() + build_hypnogram([(REM, 12)]))
        fig, (ax_hypnogram, _) = plot_sleep_cycles(result)
        styles = [line.get_linestyle() for line in ax_hypnogram.get_lines()]
        # split at 100 and 190, epoch 280 only suggested
        assert styles.count('--') == 2
        assert styles.count(':') == 1
        plt.close(fig)

    def test_save_plot(self, tmp_path):
        result = detect_sleep_cycles(build_hypnogram([(W, 20)]))
        path = save_sleep_cycle_plot(result, tmp_path / "awake.png")
        assert path.exists()


class TestCommandLine:

    def test_parse_split_option(self):
        assert parse_split_option(["first"]) == "first"
        assert parse_split_option(["none"]) == "none"
        assert parse_split_option(["412", "900"]) == (412, 900)
        with pytest.raises(ConfigurationError):
            parse_split_option(["middle"])

    def test_split_disabled_from_command_line(self, tmp_path, capsys):
        write_stage_txt(tmp_path / "night.txt", long_nrem_night() + build_hypnogram([(REM, 12)]))
        main([str(tmp_path), "--no-plot", "--split", "none"])

        out = capsys.readouterr().out
        assert "night.txt: 1 cycles in 412 epochs" in out
        assert "exceed 120 min" in out

    def test_invalid_split_option_exits_with_error(self, tmp_path):
        write_stage_txt(tmp_path / "night.txt", regular_night(n_cycles=2))
        with pytest.raises(SystemExit) as exc_info:
            main([str(tmp_path), "--no-plot", "--quiet", "--split", "middle"])
        assert exc_info.value.code == 1

    def test_parse_file_selection(self):
        assert parse_file_selection(None) is None
        assert parse_file_selection(["0", "night2.txt"]) == [0, "night2.txt"]

    def test_successful_run(self, tmp_path, capsys):
        write_stage_txt(tmp_path / "night.txt", regular_night(n_cycles=2))
        main([str(tmp_path), "--no-plot", "--seed", "1"])

        out = capsys.readouterr().out
        assert "night.txt: 2 cycles in 80 epochs" in out
        assert "Processed 1/1 files successfully" in out
        assert len(list(tmp_path.glob("SleepCycles_*/night_SCycles.txt"))) == 1

    def test_failed_file_exits_with_error(self, staging_dir):
        with pytest.raises(SystemExit) as exc_info:
            main([str(staging_dir), "--no-plot", "--quiet"])
        assert exc_info.value.code == 1

    def test_stale_results_exit_with_error(self, staging_dir):
        (staging_dir / "old_SCycles.txt").write_text("old")
        with pytest.raises(SystemExit) as exc_info:
            main([str(staging_dir), "--no-plot", "--quiet", "--files", "0"])
        assert exc_info.value.code == 1
