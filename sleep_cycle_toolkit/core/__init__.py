"""Core passes of the sleep cycle detection."""

from .sequence import EpochSequence, Period
from .stage_normalizer import normalize_stages
from .period_detection import detect_periods
from .period_splitter import SplitReport, split_long_nremps
from .cycle_annotation import annotate_percentiles, assign_cycles, trim_end_of_night

__all__ = [
    'EpochSequence', 'Period', 'normalize_stages', 'detect_periods',
    'SplitReport', 'split_long_nremps', 'assign_cycles', 'trim_end_of_night',
    'annotate_percentiles'
]
