from dataclasses import dataclass, field
from typing import Optional, Sequence, Union

from sleep_cycle_toolkit.constants import DEFAULT_REMP_LENGTH, SPLIT_FIRST, SPLIT_MODES
from sleep_cycle_toolkit.core.stage_normalizer import stage_code_key
from sleep_cycle_toolkit.exceptions import ConfigurationError

StageCode = Union[int, float, str]

SLEEP_START_OPTIONS = ("N1", "N2")
FILE_TYPES = ("txt", "csv", "vmrk")


@dataclass
class CycleDetectionConfig:
    """Settings of the sleep cycle detection passes"""
    sleep_start: str = "N1"  # stage that opens the first NREM period: 'N1' or 'N2'
    treat_as_w: Sequence[StageCode] = field(default_factory=tuple)
    treat_as_n3: Sequence[StageCode] = field(default_factory=tuple)
    remp_length: int = DEFAULT_REMP_LENGTH  # minimum REMP length in epochs (first REMP exempt)
    rm_incomplete_period: bool = False
    random_seed: Optional[int] = None  # only affects percentile bin placement
    # 'first' lightening of sleep, 'none', or explicit epoch indices to split over-long NREMPs at
    split_points: Union[str, Sequence[int]] = SPLIT_FIRST

    def validate(self):
        """Validate detection settings"""
        if self.sleep_start not in SLEEP_START_OPTIONS:
            raise ConfigurationError(
                f"Invalid sleep_start: {self.sleep_start!r}. Must be one of {SLEEP_START_OPTIONS}."
            )
        if isinstance(self.remp_length, bool) or not isinstance(self.remp_length, int):
            raise ConfigurationError(f"remp_length must be an integer number of epochs, got {self.remp_length!r}")
        if self.remp_length < 1:
            raise ConfigurationError(f"remp_length must be at least 1 epoch, got {self.remp_length}")
        if not isinstance(self.rm_incomplete_period, bool):
            raise ConfigurationError(f"rm_incomplete_period must be True or False, got {self.rm_incomplete_period!r}")

        w_keys = {stage_code_key(code) for code in self.treat_as_w}
        n3_keys = {stage_code_key(code) for code in self.treat_as_n3}
        if None in w_keys or None in n3_keys:
            raise ConfigurationError("treat_as_w and treat_as_n3 cannot contain empty, NaN or boolean codes")
        overlap = w_keys & n3_keys
        if overlap:
            raise ConfigurationError(f"Codes {sorted(map(str, overlap))} are listed in both treat_as_w and treat_as_n3")

        if isinstance(self.split_points, str):
            if self.split_points not in SPLIT_MODES:
                raise ConfigurationError(
                    f"Invalid split_points: {self.split_points!r}. Must be one of {SPLIT_MODES} or epoch indices."
                )
        else:
            points = list(self.split_points)
            if not points:
                raise ConfigurationError("split_points needs at least one epoch index")
            for point in points:
                if isinstance(point, bool) or not isinstance(point, int) or point < 1:
                    raise ConfigurationError(f"Split points must be positive epoch indices, got {point!r}")

    @property
    def deviates_from_validated_remp_length(self) -> bool:
        """True when the REMP minimum is shorter than the published 5 min"""
        return self.remp_length < DEFAULT_REMP_LENGTH


@dataclass
class StageFileFormat:
    """Describes how sleep staging files are laid out on disk"""
    file_type: str = "txt"  # 'txt', 'csv' or 'vmrk'
    separator: str = ","  # 'tabulator' for tabs, 'NA' for whitespace separated single columns
    header: bool = True
    stage_column: str = "Description"
    marker_type: str = "SleepStage"  # vmrk marker type carrying the stages

    def validate(self):
        """Validate file format settings"""
        if self.file_type not in FILE_TYPES:
            raise ConfigurationError(f"Invalid file_type: {self.file_type!r}. Must be one of {FILE_TYPES}.")
        if not self.separator:
            raise ConfigurationError("separator cannot be empty")

    @property
    def delimiter(self) -> Optional[str]:
        """Separator as understood by pandas (None means any whitespace)"""
        if self.separator == "tabulator":
            return "\t"
        if self.separator == "NA":
            return None
        return self.separator

    @property
    def extension(self) -> str:
        return f".{self.file_type}"
