"""
Metric computations over review logs.

Builds the StatsSummary and WindowStats consumed by the adaptive retention
controller. A review passes when its rating is Hard, Good or Easy.
"""

from __future__ import annotations

from datetime import datetime, timedelta
from typing import Iterable, Optional

import pandas as pd

from recallcore.analytics.constants import (
    DEFAULT_SESSION_WINDOW,
    DEFAULT_SUMMARY_DAYS,
    LOW_RELIABILITY_BELOW,
    MEDIUM_RELIABILITY_BELOW,
    SESSION_GAP_MINUTES,
)
from recallcore.analytics.types import Reliability, StatsSummary, WindowStats
from recallcore.fsrs.constants import Rating
from recallcore.fsrs.memory_state import ReviewLogEntry, ensure_utc


LOG_COLUMNS = [
    "item_id",
    "review_time",
    "rating",
    "passed",
    "retrievability_before",
    "elapsed_days",
    "scheduled_days",
    "review_duration_ms",
    "review_state",
]


def reliability_from_sample_size(sample_size: int) -> Reliability:
    """
    Classify how far a statistic can be trusted from its sample size.
    """
    if sample_size < LOW_RELIABILITY_BELOW:
        return "low"
    if sample_size < MEDIUM_RELIABILITY_BELOW:
        return "medium"
    return "high"


def review_logs_df(logs: Iterable[ReviewLogEntry]) -> pd.DataFrame:
    """
    Review log entries as a DataFrame sorted by review_time (UTC).
    """
    rows = [
        {
            "item_id": log.item_id,
            "review_time": ensure_utc(log.review_time),
            "rating": int(log.rating),
            "passed": int(log.rating) != int(Rating.AGAIN),
            "retrievability_before": log.retrievability_before,
            "elapsed_days": log.elapsed_days,
            "scheduled_days": log.scheduled_days,
            "review_duration_ms": log.review_duration_ms,
            "review_state": log.review_state,
        }
        for log in logs
    ]
    if not rows:
        return pd.DataFrame(columns=LOG_COLUMNS)

    df = pd.DataFrame(rows, columns=LOG_COLUMNS)
    df["review_time"] = pd.to_datetime(df["review_time"], utc=True)
    df["retrievability_before"] = pd.to_numeric(df["retrievability_before"], errors="coerce")
    return df.sort_values("review_time", kind="stable").reset_index(drop=True)


def assign_sessions(df: pd.DataFrame, gap_minutes: float = SESSION_GAP_MINUTES) -> pd.DataFrame:
    """
    Add a session_id column: a new session starts after a gap longer than gap_minutes.
    """
    out = df.copy()
    if out.empty:
        out["session_id"] = pd.Series(dtype="int64")
        return out
    gaps = out["review_time"].diff().dt.total_seconds().div(60.0)
    out["session_id"] = (gaps.isna() | (gaps > gap_minutes)).cumsum().astype("int64")
    return out


def compute_observed_recall(df: pd.DataFrame) -> Optional[float]:
    if df.empty:
        return None
    return float(df["passed"].mean())


def compute_avg_predicted_recall(df: pd.DataFrame) -> Optional[float]:
    predicted = df["retrievability_before"].dropna() if not df.empty else pd.Series(dtype="float64")
    if predicted.empty:
        return None
    return float(predicted.mean())


def compute_brier_score(df: pd.DataFrame) -> Optional[float]:
    """
    Mean squared error between predicted recall and the realized outcome.

    Reviews without a prediction (first-ever ratings) are ignored.
    """
    if df.empty:
        return None
    scored = df.dropna(subset=["retrievability_before"])
    if scored.empty:
        return None
    outcome = scored["passed"].astype("float64")
    return float(((scored["retrievability_before"] - outcome) ** 2).mean())


def summarize_review_logs(
    logs: Iterable[ReviewLogEntry],
    now: datetime,
    days: int = DEFAULT_SUMMARY_DAYS
) -> StatsSummary:
    """
    Outcome statistics over the last `days` days.
    """
    df = review_logs_df(logs)
    if not df.empty:
        cutoff = pd.Timestamp(ensure_utc(now) - timedelta(days=days))
        df = df[df["review_time"] >= cutoff]

    review_count = int(len(df))
    pass_count = int(df["passed"].sum()) if review_count else 0

    return StatsSummary(
        review_count=review_count,
        pass_count=pass_count,
        fail_count=review_count - pass_count,
        observed_recall_rate=compute_observed_recall(df),
        avg_predicted_recall=compute_avg_predicted_recall(df),
        avg_brier_score=compute_brier_score(df),
        reliability=reliability_from_sample_size(review_count),
    )


def session_window(
    logs: Iterable[ReviewLogEntry],
    sessions: int = DEFAULT_SESSION_WINDOW,
    gap_minutes: float = SESSION_GAP_MINUTES
) -> WindowStats:
    """
    Statistics over the most recent `sessions` study sessions.

    avg_brier_score is the mean of per-session Brier scores.
    """
    df = assign_sessions(review_logs_df(logs), gap_minutes)
    if df.empty:
        return WindowStats(session_count=0, review_count=0)

    recent_ids = df["session_id"].drop_duplicates().tail(sessions)
    window = df[df["session_id"].isin(recent_ids)]

    per_session = [
        compute_brier_score(group)
        for _, group in window.groupby("session_id")
    ]
    per_session = [b for b in per_session if b is not None]

    return WindowStats(
        session_count=int(len(recent_ids)),
        review_count=int(len(window)),
        observed_recall_rate=compute_observed_recall(window),
        avg_brier_score=sum(per_session) / len(per_session) if per_session else None,
    )
