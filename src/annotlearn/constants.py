"""Application-wide constants.

Centralizes timing knobs, limits and markers used by the training workers.
"""

from enum import Enum
from typing import Final

# =============================================================================
# VERSION AND METADATA
# =============================================================================

APP_NAME: Final[str] = "annotlearn"

# =============================================================================
# WORKER TIMING (seconds)
# =============================================================================

# Delay before a worker's first pass after process start
FINGERPRINT_STARTUP_DELAY: Final[float] = 5.0
BUILDER_STARTUP_DELAY: Final[float] = 10.0

# Recheck interval while the fingerprint calculator reports busy
SHORT_PAUSE: Final[float] = 5.0

# Idle wait when there is nothing to do (bump or stop wakes early)
LONG_PAUSE: Final[float] = 3600.0

# Cooperative pause during a long model sweep
PAUSE_EVERY_TARGETS: Final[int] = 50
PAUSE_SECONDS: Final[float] = 5.0

# Pause taken by the correlation builder while the model builder pauses
CORRELATION_PAUSE_SECONDS: Final[float] = 1.0

# Back-off after an unexpected failure inside a worker loop
ERROR_SLEEP: Final[float] = 30.0

# Join timeout when stopping worker threads
STOP_JOIN_TIMEOUT: Final[float] = 10.0

# =============================================================================
# MODELLING
# =============================================================================

# Ceiling on distinct text fingerprints fed into a single NLP model
MAX_NLP_FINGERPRINTS: Final[int] = 10000

# Minimum gap between distinct estimates when placing ROC thresholds
THRESHOLD_EPSILON: Final[float] = 1e-6

# Consecutive ROC points closer than this on both axes are collapsed
ROC_POINT_EPSILON: Final[float] = 1e-5

# Fraction of the estimate range used to place the outer ROC thresholds
THRESHOLD_SENTINEL_FRACTION: Final[float] = 0.01

# Probabilities used when a model has a zero-width calibration band
DEGENERATE_HIGH_PROBABILITY: Final[float] = 0.7
DEGENERATE_LOW_PROBABILITY: Final[float] = 0.3

# =============================================================================
# TEXT
# =============================================================================

# Text after this marker is excluded from fingerprinting
CUTOFF_MARKER: Final[str] = "####"

# Separator for property/value keys in the annotation target table
TARGET_KEY_SEPARATOR: Final[str] = "::"

# Number of recent texts whose extracted blocks are kept in memory
BLOCK_CACHE_SIZE: Final[int] = 10

# Blocks longer than this are discarded
MAX_BLOCK_LENGTH: Final[int] = 200

# Sentences with more words are split before tagging
MAX_SENTENCE_WORDS: Final[int] = 100

# Blocks that appear so often they carry no signal (compared lowercase)
BLOCK_BLACKLIST: Final[frozenset[str]] = frozenset(
    block.lower()
    for block in (
        "(-RRB- -RRB-)", "(-LRB- -LRB-)", "(, ,)", "(CC and)", "(DT the)", "(IN of)",
        "(TO to)", "(VBD were)", "(IN in)", "(IN for)", "(DT a)", "(VBZ is)", "(IN at)",
        "(RB then)", "(VBD was)", "(POS .)", "(: :)", "(IN on)", "(DT each)", "(IN with)",
        "(IN as)", "(IN by)", "(VBP are)", "(IN from)", "(: ;)", "(NN part)", "(VBG using)",
        "(DT an)", "(CC or)", "(: -)", "(NNP .)", "(IN than)", "(NN well)", "(VBN used)",
        "(WDT which)", "(VB be)", "(SYM =)", "(VBP have)", "(IN into)", "(NN buffer)",
        "(VBZ has)", "(RB well)", "(RB only)", "(RB also)", "(IN that)", "(VBN been)",
        "(DT this)", "(MD will)", "(DT all)", "(DT these)", "(RB not)", "(DT no)",
        "(WRB where)", "(DT both)", "(MD can)", "(JJ such)", "(RB as)", "(IN after)",
        "(CC but)", "(MD would)", "(POS 's)", "(WDT that)", "(IN through)", "(PRP$ its)",
        "(NN /)", "(IN without)", "(PRP it)", "(JJ same)", "(DT that)", "(RB thus)",
        "(PRP we)", "(DT any)", "(VB see)", "(VBZ uses)", "(PRP they)", "(VBD did)",
        "(IN if)", "(JJ first)", "(VBN known)", "(IN over)", "(WRB when)", "(EX there)",
        "(NN type)", "(JJ many)", "(JJ various)", "(IN below)", "(NN use)", "(NN x)",
        "(VBD had)", "(VBN found)", "(RB therefore)", "(RB however)", "(RB either)",
        "(RB once)", "(RB here)", "(VBN done)", "(IN within)", "(VB get)", "(VBZ does)",
        "(DT every)", "(VB use)", "(IN across)", "(MD must)", "(VBZ remains)",
        "(JJ certain)", "(IN however)", "(IN although)", "(IN while)", "(RB unfortunately)",
        "(IN whereas)", "(VBG having)", "(IN unlike)", "(IN because)", "(VBG giving)",
        "(IN until)", "(RB now)", "(RB later)", "(RB first)", "(PRP itself)", "(RP on)",
        "(WP who)", "(NN etc)", "(DT which)", "(NN and/or)", "(RB so)",
    )
)

# Block prefixes for numbers, list markers and quote/comma debris
BLOCK_BLACKLIST_PREFIXES: Final[tuple[str, ...]] = (
    "(CD ",
    "(NP (CD ",
    "(LS ",
    "(LST (LS ",
    "('' ",
    "(, ",
)

# Tags never emitted as blocks on their own
SKIPPED_BLOCK_TAGS: Final[frozenset[str]] = frozenset({".", "_SP", "NFP", "HYPH"})

# =============================================================================
# STORAGE
# =============================================================================

DEFAULT_DB_NAME: Final[str] = "annotlearn.db"

# Watermark sequences start here when the schema is created
INITIAL_WATERMARK: Final[int] = 1

# =============================================================================
# CLI
# =============================================================================


class ExitCode(int, Enum):
    """CLI exit codes."""

    SUCCESS = 0
    GENERAL_ERROR = 1
    INVALID_INPUT = 3
    STORE_ERROR = 4
    KEYBOARD_INTERRUPT = 130
