"""Mapping of raw sleep staging codes onto the canonical W/N1/N2/N3/REM codes.

Scoring exports code stages either numerically (0, 1, 2, 3, 5) or with
labels (W, N1, N2, N3, REM). Older Rechtschaffen & Kales scorings carry extra
codes such as S4 or movement time, which the caller maps with the treat-as-W
and treat-as-N3 overrides. Overrides are applied before the standard mapping.
"""

import logging
import math
from typing import Iterable, Optional, Set, Union

import numpy as np

from sleep_cycle_toolkit.constants import SleepStages
from sleep_cycle_toolkit.core.sequence import EpochSequence
from sleep_cycle_toolkit.exceptions import EmptySequenceError, UnrecognizedStageError

logger = logging.getLogger(__name__)

CodeKey = Union[int, float, str]


def stage_code_key(code) -> Optional[CodeKey]:
    """Normalize a raw stage code so that 2, 2.0, '2' and ' 2 ' compare equal.

    Args:
        code: Raw code from a staging file (number or string)

    Returns:
        int for integral codes, float for other numbers, upper-case string for
        labels, or None for missing values (None, NaN, empty string) and booleans
    """
    if code is None or isinstance(code, (bool, np.bool_)):
        return None
    if isinstance(code, (int, np.integer)):
        return int(code)
    if isinstance(code, (float, np.floating)):
        if math.isnan(code):
            return None
        return int(code) if float(code).is_integer() else float(code)
    text = str(code).strip()
    if not text:
        return None
    try:
        number = float(text)
    except ValueError:
        return text.upper()
    if math.isnan(number):
        return None
    return int(number) if number.is_integer() else number


def _code_keys(codes: Optional[Iterable]) -> Set[CodeKey]:
    if codes is None:
        return set()
    return {key for key in (stage_code_key(code) for code in codes) if key is not None}


def canonical_stage(code, w_keys: Set[CodeKey], n3_keys: Set[CodeKey]) -> Optional[int]:
    """Canonical stage for one raw code, or None if the code is unrecognized"""
    key = stage_code_key(code)
    if key is None:
        return None
    if key in w_keys:
        return SleepStages.WAKE
    if key in n3_keys:
        return SleepStages.N3
    if isinstance(key, int) and SleepStages.is_valid(key):
        return key
    if isinstance(key, str):
        return SleepStages.ALIASES.get(key)
    return None


def normalize_stages(raw_codes, treat_as_w=None, treat_as_n3=None) -> EpochSequence:
    """Build an EpochSequence from raw per-epoch stage codes.

    Args:
        raw_codes: Stage codes in temporal order, one per 30 s epoch
        treat_as_w: Codes to force to W
        treat_as_n3: Codes to force to N3

    Returns:
        EpochSequence with canonical stages and no period tags

    Raises:
        EmptySequenceError: If there are no epochs
        UnrecognizedStageError: For the first epoch whose code has no mapping
    """
    raw = list(raw_codes)
    if not raw:
        raise EmptySequenceError("Stage sequence contains no epochs")

    w_keys = _code_keys(treat_as_w)
    n3_keys = _code_keys(treat_as_n3)

    stages = np.empty(len(raw), dtype=np.int64)
    for epoch_index, code in enumerate(raw):
        stage = canonical_stage(code, w_keys, n3_keys)
        if stage is None:
            raise UnrecognizedStageError(code, epoch_index)
        stages[epoch_index] = stage

    counts = {SleepStages.to_name(s): int(np.count_nonzero(stages == s)) for s in SleepStages.ALL}
    logger.info(f"Normalized {len(raw)} epochs: {counts}")
    return EpochSequence.from_stages(stages, raw_stages=np.array(raw, dtype=object))
