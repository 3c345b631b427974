"""
Sleep stage and sleep cycle constants for the sleep cycle toolkit.

This module defines standardized constants for sleep stage codes, period
markers and the duration criteria of the Feinberg & Floyd (1979) cycle
definition, so that no pass hardcodes its own thresholds.

All durations are expressed in 30-second epochs.
"""

# =============================================================================
# Epoch Configuration
# =============================================================================

EPOCH_SECONDS = 30
EPOCHS_PER_MINUTE = 60 // EPOCH_SECONDS

# =============================================================================
# Sleep Cycle Criteria
# =============================================================================

# A NREM period (except the first one) needs 15 min of NREM sleep
MIN_NREMP_EPOCHS = 15 * EPOCHS_PER_MINUTE

# A REM period (except the first one) needs 5 min of REM sleep
DEFAULT_REMP_LENGTH = 5 * EPOCHS_PER_MINUTE

# NREM periods longer than 120 min (excluding wake) get split
MAX_NREMP_EPOCHS = 120 * EPOCHS_PER_MINUTE

# Lightening of sleep: at least 12 min without N3 before the split point
LIGHTENING_EPOCHS = 12 * EPOCHS_PER_MINUTE

# Cycles followed by less than 5 min of NREM or W are incomplete
INCOMPLETE_PERIOD_EPOCHS = 5 * EPOCHS_PER_MINUTE

# The published algorithm does not define behavior beyond two splitting passes
MAX_SPLIT_PASSES = 2

# Choice of split points for over-long NREMPs (besides explicit epoch indices)
SPLIT_FIRST = "first"
SPLIT_NONE = "none"
SPLIT_MODES = (SPLIT_FIRST, SPLIT_NONE)

N_PERCENTILES = 10

# =============================================================================
# Output Table
# =============================================================================

STAGE_COLUMN = "SleepStages"
CYCLE_COLUMN = "SleepCycle"
REM_FLAG_COLUMN = "N_REM"
PERCENTILE_COLUMN = "percentile"
OUTPUT_COLUMNS = [STAGE_COLUMN, CYCLE_COLUMN, REM_FLAG_COLUMN, PERCENTILE_COLUMN]

RESULT_FILE_SUFFIX = "SCycles"
RESULTS_FOLDER_PREFIX = "SleepCycles"

# =============================================================================
# Sleep Stage Classifications
# =============================================================================

class SleepStages:
    """Canonical sleep stage codes (standard PSG mapping 0,1,2,3,5)"""
    WAKE = 0
    N1 = 1
    N2 = 2
    N3 = 3
    REM = 5

    NREM = (N1, N2, N3)
    ALL = (WAKE, N1, N2, N3, REM)

    # Mapping for display/logging
    NAMES = {
        WAKE: "W",
        N1: "N1",
        N2: "N2",
        N3: "N3",
        REM: "REM"
    }

    # Alphabetic labels found in scoring exports (matched case-insensitively)
    ALIASES = {
        "W": WAKE,
        "WAKE": WAKE,
        "AWA": WAKE,
        "N1": N1,
        "N2": N2,
        "N3": N3,
        "R": REM,
        "REM": REM
    }

    # Order of stages on a hypnogram y-axis, top to bottom
    PLOT_ORDER = (WAKE, REM, N1, N2, N3)

    @classmethod
    def is_valid(cls, stage: int) -> bool:
        """Check if stage value is a canonical stage code"""
        return stage in cls.ALL

    @classmethod
    def is_nrem(cls, stage: int) -> bool:
        """Check if stage is N1, N2 or N3"""
        return stage in cls.NREM

    @classmethod
    def to_name(cls, stage: int) -> str:
        """Convert stage number to human-readable name"""
        return cls.NAMES.get(stage, f"Unknown({stage})")


class PeriodMarkers:
    """Period start markers stored per epoch"""
    NONE = 0
    NREMP = 1
    REMP = 2

    NAMES = {
        NONE: "none",
        NREMP: "NREMP",
        REMP: "REMP"
    }

    @classmethod
    def to_name(cls, marker: int) -> str:
        """Convert marker value to its period name"""
        return cls.NAMES.get(marker, f"Unknown({marker})")
