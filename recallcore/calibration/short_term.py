"""
In-process fit of short-term (learning phase) parameters.

Works backwards from the intervals learners actually left between
learning-phase reviews: an interval t implies S_short = t / -ln(0.85).
Medians keep single outliers (a learner walking away mid-session) from
dominating.
"""

from __future__ import annotations
import math
from typing import Iterable

import pandas as pd

from recallcore.fsrs.config import ShortTermParams
from recallcore.fsrs.constants import (
    Rating,
    REVIEW_STATE_NEW,
    REVIEW_STATE_LEARNING,
    REVIEW_STATE_RELEARNING,
    INITIAL_S_SHORT_RANGE,
    S_SHORT_AFTER_AGAIN_RANGE,
)
from recallcore.fsrs.memory_state import ReviewLogEntry, clamp, ensure_utc
from recallcore.fsrs.stm_updates import (
    elapsed_factor,
    initial_short_stability,
    update_short_stability,
)


LEARNING_REVIEW_STATES = (REVIEW_STATE_NEW, REVIEW_STATE_LEARNING, REVIEW_STATE_RELEARNING)
LN_TARGET = -math.log(0.85)
MIN_OBSERVED_INTERVAL_MINUTES = 0.1
FITTED_GROWTH_RANGE = (1.0, 2.5)


def learning_logs_df(logs: Iterable[ReviewLogEntry]) -> pd.DataFrame:
    """Learning-phase logs with per-item next-review gaps in minutes."""
    df = pd.DataFrame(
        [
            {
                "item_id": log.item_id,
                "review_time": ensure_utc(log.review_time),
                "rating": int(log.rating),
            }
            for log in logs
            if log.review_state in LEARNING_REVIEW_STATES
        ],
        columns=["item_id", "review_time", "rating"],
    )
    if df.empty:
        df["minutes_to_next"] = pd.Series(dtype="float64")
        df["minutes_since_prev"] = pd.Series(dtype="float64")
        return df

    df["review_time"] = pd.to_datetime(df["review_time"], utc=True)
    df = df.sort_values(["item_id", "review_time"], kind="stable").reset_index(drop=True)
    by_item = df.groupby("item_id")["review_time"]
    df["minutes_to_next"] = (by_item.shift(-1) - df["review_time"]).dt.total_seconds() / 60.0
    df["minutes_since_prev"] = (df["review_time"] - by_item.shift(1)).dt.total_seconds() / 60.0
    return df


def fit_short_term_params(logs: Iterable[ReviewLogEntry]) -> ShortTermParams:
    """
    Fit initial S_short per rating, the after-Again reset and growth factors.

    Ratings without usable observations are left out, so the structural
    defaults keep applying to them.
    """
    df = learning_logs_df(logs)
    initial: dict[Rating, list[float]] = {r: [] for r in Rating}
    again: list[float] = []
    growth: dict[Rating, list[float]] = {Rating.HARD: [], Rating.GOOD: [], Rating.EASY: []}

    for _, item_df in df.groupby("item_id", sort=False):
        s_short = None
        for position, row in enumerate(item_df.itertuples(index=False)):
            rating = Rating(row.rating)
            observed = row.minutes_to_next
            usable = not pd.isna(observed) and observed >= MIN_OBSERVED_INTERVAL_MINUTES
            since_prev = 0.0 if pd.isna(row.minutes_since_prev) else max(0.0, row.minutes_since_prev)

            if position == 0:
                if usable:
                    (again if rating == Rating.AGAIN else initial[rating]).append(observed)
                s_short = initial_short_stability(rating)
                continue

            if usable:
                if rating == Rating.AGAIN:
                    again.append(observed)
                else:
                    implied = observed / LN_TARGET
                    growth[rating].append(implied / (s_short * elapsed_factor(since_prev)))
            s_short = update_short_stability(s_short, since_prev, rating)

    fitted_initial = {
        rating: clamp(float(pd.Series(values).median()) / LN_TARGET, *INITIAL_S_SHORT_RANGE)
        for rating, values in initial.items()
        if values
    }
    fitted_after_again = (
        clamp(float(pd.Series(again).median()) / LN_TARGET, *S_SHORT_AFTER_AGAIN_RANGE)
        if again else None
    )
    fitted_growth = {
        rating: clamp(float(pd.Series(values).median()), *FITTED_GROWTH_RANGE)
        for rating, values in growth.items()
        if values
    }

    return ShortTermParams(
        initial_by_rating=fitted_initial,
        after_again=fitted_after_again,
        growth_by_rating=fitted_growth,
    )
