"""
FSRS Constants and Parameters

All structural defaults for the dual-regime scheduler in one place.
Policy values that a learner or deployment can change live in config.py;
the values here are the fallbacks those policies are validated against.
"""

from enum import IntEnum
from typing import Final


# ---- Ratings ----

class Rating(IntEnum):
    """User rating for a retrieval attempt."""
    AGAIN = 1   # Retrieval failed
    HARD = 2    # Retrieved with high effort
    GOOD = 3    # Retrieved normally
    EASY = 4    # Retrieved fluently


SUCCESS_RATINGS: Final[tuple[Rating, ...]] = (Rating.HARD, Rating.GOOD, Rating.EASY)


# ---- Review state codes (optimizer log schema) ----

REVIEW_STATE_NEW = 0
REVIEW_STATE_LEARNING = 1
REVIEW_STATE_REVIEW = 2
REVIEW_STATE_RELEARNING = 3


# ---- Long-term model ----

WEIGHT_COUNT = 21
WEIGHT_PAD_VALUE = 1.0  # Structural default for missing tail coefficients

DEFAULT_WEIGHTS: Final[tuple[float, ...]] = (
    0.4,    # w0: initial stability, Again
    0.9,    # w1: initial stability, Hard
    2.3,    # w2: initial stability, Good
    10.9,   # w3: initial stability, Easy
    4.93,   # w4: initial difficulty base
    0.94,   # w5: initial difficulty spread
    0.86,   # w6: difficulty step
    0.01,   # w7: difficulty mean reversion
    1.49,   # w8: success stability base
    0.14,   # w9: success stability diminishing returns
    0.94,   # w10: success stability retrievability factor
    2.18,   # w11: failure stability base
    0.05,   # w12: failure stability difficulty factor
    0.34,   # w13: failure stability preservation
    1.26,   # w14: failure stability retrievability factor
    0.29,   # w15: hard interval modifier
    2.61,   # w16: easy interval modifier
    0.5,    # w17: same-day stability rate
    0.3,    # w18: same-day stability offset
    0.8,    # w19: same-day saturation
    9.0,    # w20: forgetting-curve decay
)

REFERENCE_RETENTION = 0.9  # R(S) == 0.9 by definition of stability

S_MIN = 0.01           # Minimum stability (days)
S_MAX = 36500.0        # Maximum stability (days)
D_MIN = 1.0            # Minimum difficulty
D_MAX = 10.0           # Maximum difficulty
DEFAULT_DIFFICULTY = 5.0

MIN_INTERVAL_DAYS = 1
MAX_INTERVAL_DAYS = 36500

SAME_DAY_THRESHOLD_DAYS = 1.0


# ---- Short-term model ----

INITIAL_S_SHORT_BY_RATING: Final[dict[Rating, float]] = {
    Rating.AGAIN: 5.0,
    Rating.HARD: 15.0,
    Rating.GOOD: 30.0,
    Rating.EASY: 60.0,
}

S_SHORT_AFTER_AGAIN = 5.0

GROWTH_BY_RATING: Final[dict[Rating, float]] = {
    Rating.HARD: 1.15,
    Rating.GOOD: 1.4,
    Rating.EASY: 1.7,
}

# Bounds applied to fitted overrides
INITIAL_S_SHORT_RANGE = (1.0, 120.0)
S_SHORT_AFTER_AGAIN_RANGE = (1.0, 30.0)
GROWTH_RANGE = (0.5, 3.0)

S_SHORT_MIN = 1.0
S_SHORT_MAX = 7 * 24 * 60.0      # One week in minutes
ELAPSED_FACTOR_CAP = 2.0

MINUTES_PER_DAY = 24 * 60
HOURS_PER_DAY = 24

# Smallest gap ever allowed between last_review and next_review
MIN_SCHEDULING_UNIT_MINUTES = 1
