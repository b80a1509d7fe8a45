"""
Short-Term Memory (STM) Updates

Exponential forgetting curve for the learning phase, in minutes.

The long-term power law is numerically unstable and semantically wrong at
very short horizons, so newly introduced or recently failed items are
scheduled here until their predicted interval reaches the graduation cap.

Key principle:
R_short(t) = exp(-t / S_short); the next interval is the t at which
R_short falls to the short-term target retention.
"""

from __future__ import annotations
from dataclasses import dataclass
from typing import Optional
import math

from recallcore.fsrs.constants import (
    Rating,
    INITIAL_S_SHORT_BY_RATING,
    S_SHORT_AFTER_AGAIN,
    GROWTH_BY_RATING,
    INITIAL_S_SHORT_RANGE,
    S_SHORT_AFTER_AGAIN_RANGE,
    GROWTH_RANGE,
    S_SHORT_MIN,
    S_SHORT_MAX,
    ELAPSED_FACTOR_CAP,
    MINUTES_PER_DAY,
)
from recallcore.fsrs.config import LearningConfig, ShortTermParams


@dataclass(frozen=True)
class ShortTermUpdate:
    """Result of one learning-phase review."""
    short_stability_minutes: float
    interval_minutes: float
    graduate: bool


def calculate_short_retrievability(elapsed_minutes: float, short_stability_minutes: float) -> float:
    """
    R_short = exp(-t / S_short)

    Args:
        elapsed_minutes: Minutes since the last review
        short_stability_minutes: Current S_short

    Returns:
        Retrievability between 0 and 1
    """
    if short_stability_minutes <= 0:
        return 0.0
    if elapsed_minutes <= 0:
        return 1.0
    return math.exp(-elapsed_minutes / short_stability_minutes)


# ---- Fitted parameter lookup ----

def _usable(value: Optional[float]) -> bool:
    return value is not None and math.isfinite(value)


def initial_short_stability(rating: Rating, params: Optional[ShortTermParams] = None) -> float:
    """
    Initial S_short (minutes) from the first rating.

    A finite fitted value overrides the table and is clamped to
    INITIAL_S_SHORT_RANGE.
    """
    low, high = INITIAL_S_SHORT_RANGE
    fitted = params.initial_by_rating.get(rating) if params else None
    if _usable(fitted):
        return max(low, min(high, fitted))
    return INITIAL_S_SHORT_BY_RATING[rating]


def short_stability_after_again(params: Optional[ShortTermParams] = None) -> float:
    low, high = S_SHORT_AFTER_AGAIN_RANGE
    fitted = params.after_again if params else None
    if _usable(fitted):
        return max(low, min(high, fitted))
    return S_SHORT_AFTER_AGAIN


def growth_factor(rating: Rating, params: Optional[ShortTermParams] = None) -> float:
    low, high = GROWTH_RANGE
    fitted = params.growth_by_rating.get(rating) if params else None
    if _usable(fitted):
        return max(low, min(high, fitted))
    return GROWTH_BY_RATING[rating]


def elapsed_factor(elapsed_minutes: float) -> float:
    """
    Bonus for longer gaps since the last learning review.

    1 + 0.5 * ln(1 + t / 60), capped at ELAPSED_FACTOR_CAP.
    """
    bonus = math.log(1.0 + max(0.0, elapsed_minutes) / 60.0) * 0.5 + 1.0
    return min(ELAPSED_FACTOR_CAP, bonus)


# ---- Updates ----

def update_short_stability(
    short_stability_minutes: float,
    elapsed_minutes: float,
    rating: Rating,
    params: Optional[ShortTermParams] = None
) -> float:
    """
    Update S_short after a learning-phase review.

    - Again resets to the after-Again value
    - Success multiplies by the rating's growth factor and the elapsed bonus

    Returns:
        New S_short in minutes, within [S_SHORT_MIN, one week]
    """
    if rating == Rating.AGAIN:
        return max(S_SHORT_MIN, short_stability_after_again(params))

    grown = short_stability_minutes * growth_factor(rating, params) * elapsed_factor(elapsed_minutes)
    if not math.isfinite(grown):
        grown = S_SHORT_MAX
    return max(S_SHORT_MIN, min(S_SHORT_MAX, grown))


def predict_interval_minutes(short_stability_minutes: float, target_retention: float) -> float:
    """
    Interval at which R_short equals the target.

    t = S_short * (-ln(target))
    """
    target = max(0.0, target_retention)
    if target >= 1.0:
        return 0.0
    if target == 0.0:
        return float(S_SHORT_MAX)
    return max(0.0, short_stability_minutes * -math.log(target))


def clamp_interval_minutes(interval_minutes: float, minimum: float, maximum: float) -> float:
    return max(minimum, min(maximum, interval_minutes))


def should_graduate(interval_minutes: float, graduation_cap_days: float) -> bool:
    """Graduate once the predicted interval reaches the cap."""
    return interval_minutes >= graduation_cap_days * MINUTES_PER_DAY


def apply_stm_update(
    short_stability_minutes: Optional[float],
    elapsed_minutes: float,
    rating: Rating,
    learning_review_count: int,
    config: LearningConfig,
    params: Optional[ShortTermParams] = None
) -> ShortTermUpdate:
    """
    Apply one learning-phase review.

    Main entry point for STM updates.

    Args:
        short_stability_minutes: Current S_short (None when entering learning)
        elapsed_minutes: Minutes since the previous review
        rating: User rating
        learning_review_count: Ratings already received in this learning phase
        config: Learning-phase policy
        params: Optional fitted overrides

    Returns:
        ShortTermUpdate with the new S_short, clamped interval and graduation flag
    """
    if short_stability_minutes is None:
        new_s_short = initial_short_stability(rating, params)
    else:
        new_s_short = update_short_stability(short_stability_minutes, elapsed_minutes, rating, params)

    raw_interval = predict_interval_minutes(new_s_short, config.target_retention_short)
    interval = clamp_interval_minutes(raw_interval, config.min_interval_minutes, config.max_interval_minutes)

    graduate = should_graduate(interval, config.graduation_cap_days)
    # Too many attempts: let a success hand the item to the long-term model
    if (
        not graduate
        and rating != Rating.AGAIN
        and learning_review_count + 1 >= config.max_attempts_before_graduate
    ):
        graduate = True

    return ShortTermUpdate(
        short_stability_minutes=new_s_short,
        interval_minutes=interval,
        graduate=graduate,
    )
