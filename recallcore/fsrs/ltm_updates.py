"""
Long-Term Memory (LTM) Updates

Power-law forgetting curve and the stability/difficulty updates for items
that have graduated out of the learning phase. Everything is in days and is
parameterized by the 21-coefficient weight vector.

Key principles:
- R(t, S) = (1 + f * t / S) ^ (-w20), with f chosen so that R(S, S) = 0.9
- Spaced, effortful success produces the largest stability gains
- Failures are penalized more when recall was expected (high R)
- Difficulty drifts with the rating and reverts slowly toward the Easy baseline
"""

from __future__ import annotations
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Optional, Sequence
import math

from loguru import logger

from recallcore.fsrs.constants import (
    Rating,
    SUCCESS_RATINGS,
    DEFAULT_WEIGHTS,
    REFERENCE_RETENTION,
    S_MIN,
    S_MAX,
    D_MIN,
    D_MAX,
    DEFAULT_DIFFICULTY,
    MIN_INTERVAL_DAYS,
    MAX_INTERVAL_DAYS,
    SAME_DAY_THRESHOLD_DAYS,
)


@dataclass(frozen=True)
class LongTermUpdate:
    """Result of one long-term review."""
    stability: float
    difficulty: float
    interval_days: int
    retrievability: float


# ---- Numeric safety ----

def _finite_or(value: float, fallback: float, label: str) -> float:
    """Replace NaN/inf with a structural default and say so."""
    if math.isfinite(value):
        return value
    logger.warning(f"Non-finite {label} ({value}); falling back to {fallback}")
    return fallback


def clamp_stability(stability: float) -> float:
    return max(S_MIN, min(S_MAX, _finite_or(stability, S_MIN, "stability")))


def clamp_difficulty(difficulty: float) -> float:
    return max(D_MIN, min(D_MAX, _finite_or(difficulty, DEFAULT_DIFFICULTY, "difficulty")))


def _decay(weights: Sequence[float]) -> float:
    w20 = weights[20]
    if not math.isfinite(w20) or w20 <= 0:
        logger.warning(f"Invalid decay weight w20={w20}; using default {DEFAULT_WEIGHTS[20]}")
        return DEFAULT_WEIGHTS[20]
    return w20


def _curve(weights: Sequence[float]) -> tuple[float, float]:
    """Decay and curve factor, reverting to the default decay when w20 makes the factor degenerate."""
    decay = _decay(weights)
    try:
        factor = math.pow(REFERENCE_RETENTION, -1.0 / decay) - 1.0
    except OverflowError:
        factor = float("inf")
    if not math.isfinite(factor) or factor <= 0:
        logger.warning(f"Degenerate curve factor for w20={decay}; using default {DEFAULT_WEIGHTS[20]}")
        decay = DEFAULT_WEIGHTS[20]
        factor = math.pow(REFERENCE_RETENTION, -1.0 / decay) - 1.0
    return decay, factor


def _d0_raw(weights: Sequence[float], rating: Rating) -> float:
    try:
        return weights[4] - math.exp(weights[5] * (int(rating) - 1)) + 1.0
    except OverflowError:
        # e^(w5 * (G - 1)) without bound drives D0 to the floor
        logger.warning(f"D0 overflows for w5={weights[5]}, rating={int(rating)}; using {D_MIN}")
        return D_MIN


# ---- Forgetting curve ----

def calculate_retrievability(
    elapsed_days: float,
    stability: float,
    weights: Sequence[float] = DEFAULT_WEIGHTS
) -> float:
    """
    Calculate retrievability using the power-law forgetting curve.

    Formula: R = (1 + f * t / S) ^ (-w20),  f = 0.9 ^ (-1 / w20) - 1

    Interpretation:
    - Immediately after review: R = 1.0
    - At t = S: R = 0.9
    - As t grows: R decays toward 0 but never reaches it

    Args:
        elapsed_days: Time since last review in days
        stability: Current stability in days
        weights: 21-coefficient weight vector

    Returns:
        Retrievability between 0 and 1
    """
    if not math.isfinite(stability) or stability <= 0:
        return 0.0
    if elapsed_days <= 0:
        return 1.0
    if not math.isfinite(elapsed_days):
        return 0.0

    decay, factor = _curve(weights)
    r = math.pow(1.0 + factor * (elapsed_days / stability), -decay)
    return max(0.0, min(1.0, _finite_or(r, 0.0, "retrievability")))


def next_interval_days(
    stability: float,
    target_retention: float,
    weights: Sequence[float] = DEFAULT_WEIGHTS
) -> float:
    """
    Invert the forgetting curve: the elapsed time at which R drops to target.

    Formula: t = S / f * (target ^ (-1 / w20) - 1)

    Returns the raw (unrounded) interval in days.
    """
    decay, factor = _curve(weights)
    try:
        raw = stability / factor * (math.pow(target_retention, -1.0 / decay) - 1.0)
    except OverflowError:
        raw = float("inf")
    if raw == float("inf"):
        logger.warning(f"Interval overflows for S={stability}, target={target_retention}; capping")
        return float(MAX_INTERVAL_DAYS)
    return max(0.0, _finite_or(raw, float(MIN_INTERVAL_DAYS), "interval"))


def scheduled_interval_days(
    stability: float,
    target_retention: float,
    rating: Rating,
    weights: Sequence[float] = DEFAULT_WEIGHTS
) -> int:
    """
    Whole-day interval for the next review.

    Hard shortens the interval by w15, Easy stretches it by w16. The result
    is rounded and kept within [MIN_INTERVAL_DAYS, MAX_INTERVAL_DAYS].
    """
    interval = next_interval_days(stability, target_retention, weights)
    if rating == Rating.HARD:
        interval *= weights[15]
    elif rating == Rating.EASY:
        interval *= weights[16]
    interval = _finite_or(interval, float(MIN_INTERVAL_DAYS), "interval")
    return int(max(MIN_INTERVAL_DAYS, min(MAX_INTERVAL_DAYS, round(interval))))


# ---- Initial state ----

def initial_stability(weights: Sequence[float], rating: Rating) -> float:
    """S0(G) = w[G-1]"""
    return clamp_stability(weights[int(rating) - 1])


def initial_difficulty(weights: Sequence[float], rating: Rating) -> float:
    """D0(G) = w4 - e^(w5 * (G - 1)) + 1"""
    return clamp_difficulty(_d0_raw(weights, rating))


# ---- Updates ----

def update_difficulty(
    weights: Sequence[float],
    difficulty: float,
    rating: Rating
) -> float:
    """
    Update difficulty after a review.

    Formula:
        delta = -w6 * (G - 3)
        D' = D + delta * (10 - D) / 9          (linear damping near the ceiling)
        D_new = w7 * D0(Easy) + (1 - w7) * D'  (mean reversion)

    Returns:
        New difficulty clipped to [1, 10]
    """
    delta = -weights[6] * (int(rating) - 3)
    damped = difficulty + delta * (10.0 - difficulty) / 9.0
    d0_easy = _d0_raw(weights, Rating.EASY)
    return clamp_difficulty(weights[7] * d0_easy + (1.0 - weights[7]) * damped)


def update_stability_on_success(
    weights: Sequence[float],
    stability: float,
    difficulty: float,
    retrievability: float
) -> float:
    """
    Update stability after a successful retrieval (Hard/Good/Easy).

    Formula:
        S_new = S * (1 + e^w8 * (11 - D) * S^(-w9) * (e^(w10 * (1 - R)) - 1))

    (1 - R) rewards well-spaced success; S^(-w9) gives diminishing returns
    for already-stable items.
    """
    growth = 1.0 + (
        math.exp(weights[8])
        * (11.0 - difficulty)
        * math.pow(stability, -weights[9])
        * (math.exp(weights[10] * (1.0 - retrievability)) - 1.0)
    )
    return clamp_stability(stability * growth)


def update_stability_on_failure(
    weights: Sequence[float],
    stability: float,
    difficulty: float,
    retrievability: float
) -> float:
    """
    Update stability after a failed retrieval (Again).

    Formula:
        S_new = min(S, w11 * D^(-w12) * ((S + 1)^w13 - 1) * e^(w14 * (1 - R)))

    A lapse can never increase stability.
    """
    post_lapse = (
        weights[11]
        * math.pow(difficulty, -weights[12])
        * (math.pow(stability + 1.0, weights[13]) - 1.0)
        * math.exp(weights[14] * (1.0 - retrievability))
    )
    post_lapse = _finite_or(post_lapse, S_MIN, "post-lapse stability")
    return clamp_stability(min(post_lapse, stability))


def update_stability_same_day(
    weights: Sequence[float],
    stability: float,
    rating: Rating
) -> float:
    """
    Stability change for a graduated item reviewed again within a day.

    Formula:
        S_inc = e^(w17 * (G - 3 + w18)) * S^(-w19)

    Good/Easy never lower stability; Again never raises it.
    """
    increment = math.exp(weights[17] * (int(rating) - 3 + weights[18])) * math.pow(stability, -weights[19])
    increment = _finite_or(increment, 1.0, "same-day increment")
    if rating >= Rating.GOOD:
        increment = max(1.0, increment)
    elif rating == Rating.AGAIN:
        increment = min(1.0, increment)
    return clamp_stability(stability * increment)


def apply_ltm_update(
    stability: Optional[float],
    difficulty: Optional[float],
    elapsed_days: float,
    rating: Rating,
    weights: Sequence[float],
    target_retention: float
) -> LongTermUpdate:
    """
    Apply a long-term review and compute the next interval.

    This is the main entry point for LTM updates.

    Args:
        stability: Current stability (None for the first long-term pass)
        difficulty: Current difficulty (None for the first long-term pass)
        elapsed_days: Days since the previous review
        rating: User rating
        weights: 21-coefficient weight vector
        target_retention: Desired recall probability at the next review

    Returns:
        LongTermUpdate with new S, D, whole-day interval and R before review
    """
    if stability is None or difficulty is None:
        new_stability = initial_stability(weights, rating)
        new_difficulty = initial_difficulty(weights, rating)
        retrievability = 1.0
    else:
        stability = clamp_stability(stability)
        difficulty = clamp_difficulty(difficulty)
        retrievability = calculate_retrievability(elapsed_days, stability, weights)
        try:
            new_difficulty = update_difficulty(weights, difficulty, rating)
            if elapsed_days < SAME_DAY_THRESHOLD_DAYS:
                new_stability = update_stability_same_day(weights, stability, rating)
            elif rating in SUCCESS_RATINGS:
                new_stability = update_stability_on_success(weights, stability, new_difficulty, retrievability)
            else:
                new_stability = update_stability_on_failure(weights, stability, new_difficulty, retrievability)
        except OverflowError:
            logger.warning(f"Overflow updating S={stability}, D={difficulty}; keeping previous values")
            new_stability, new_difficulty = stability, difficulty

    interval = scheduled_interval_days(new_stability, target_retention, rating, weights)
    return LongTermUpdate(
        stability=new_stability,
        difficulty=new_difficulty,
        interval_days=interval,
        retrievability=retrievability,
    )


def enforce_min_interval(
    last_review: datetime,
    next_review: datetime,
    minimum: timedelta
) -> datetime:
    """
    Guarantee next_review >= last_review + minimum.

    Degenerate inputs (tiny stability, odd weights) can otherwise produce a
    next review that is not in the future.
    """
    floor = last_review + minimum
    if next_review < floor:
        logger.warning(f"next_review {next_review.isoformat()} earlier than {floor.isoformat()}; corrected")
        return floor
    return next_review
