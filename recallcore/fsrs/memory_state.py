"""
Memory State - Item Scheduling State and Review Log

Defines the per-item scheduling state, the review log record, and the small
time/number helpers shared by both retention models.

Key concepts:
- Stability (S): days until long-term recall drops to 90%
- Difficulty (D): intrinsic item hardness (1-10 scale)
- Short stability (S_short): minutes-scale stability while learning
- Phase: NEW -> LEARNING -> GRADUATED (and back to LEARNING on a lapse)
"""

from __future__ import annotations
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from enum import Enum
from typing import Optional

from recallcore.fsrs.constants import (
    Rating,
    MINUTES_PER_DAY,
    HOURS_PER_DAY,
)
from recallcore.fsrs.errors import ValidationError


class Phase(str, Enum):
    """Which retention regime currently governs an item."""
    NEW = "new"
    LEARNING = "learning"
    GRADUATED = "graduated"


@dataclass
class ItemState:
    """
    Scheduling state for a single learnable item.

    Mutated only by the review state machine (which returns copies) and the
    management penalty (which only moves next_review).
    """
    item_id: str

    # Long-term memory parameters
    stability: Optional[float] = None   # S, in days
    difficulty: Optional[float] = None  # D, range 1-10

    # Short-term (learning phase) parameters
    short_stability_minutes: Optional[float] = None
    learning_review_count: int = 0

    # Scheduling timestamps
    last_review: Optional[datetime] = None
    next_review: Optional[datetime] = None

    # Edits applied outside of an active review
    management_count: int = 0

    # Bookkeeping
    review_count: int = 0
    lapses: int = 0

    @property
    def phase(self) -> Phase:
        return get_phase(self)


@dataclass(frozen=True)
class ReviewLogEntry:
    """Append-only record of one rating event."""
    item_id: str
    rating: Rating
    review_time: datetime
    elapsed_days: float
    scheduled_days: float
    stability_before: Optional[float]
    difficulty_before: Optional[float]
    stability_after: Optional[float]
    difficulty_after: Optional[float]
    retrievability_before: Optional[float]
    short_stability_before: Optional[float] = None
    short_stability_after: Optional[float] = None
    review_duration_ms: Optional[int] = None
    review_state: int = 0
    phase_before: Phase = Phase.NEW
    phase_after: Phase = Phase.NEW


@dataclass(frozen=True)
class ScheduleResult:
    """Outcome of one scheduling call."""
    state: ItemState
    log: ReviewLogEntry
    interval_minutes: float = 0.0
    message: str = field(default="")


# ---- Phase ----

def get_phase(state: ItemState) -> Phase:
    """
    Derive the item's phase from its stored fields.

    LEARNING wins over GRADUATED so that a relapsed item (which keeps its
    long-term S/D) is still driven by the short-term model.
    """
    if state.short_stability_minutes is not None:
        return Phase.LEARNING
    if state.stability is not None and state.last_review is not None:
        return Phase.GRADUATED
    return Phase.NEW


# ---- Ratings ----

def parse_rating(value) -> Rating:
    """
    Coerce an int-like value into a Rating.

    Raises:
        ValidationError: for anything outside 1-4 (booleans included)
    """
    if isinstance(value, Rating):
        return value
    if isinstance(value, bool) or not isinstance(value, int):
        raise ValidationError(f"Rating must be an integer 1-4, got {value!r}")
    try:
        return Rating(value)
    except ValueError as exc:
        raise ValidationError(f"Rating must be between 1 and 4, got {value}") from exc


# ---- Time helpers ----

def ensure_utc(timestamp: datetime) -> datetime:
    """Treat naive datetimes as UTC."""
    if timestamp.tzinfo is None:
        return timestamp.replace(tzinfo=timezone.utc)
    return timestamp


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def elapsed_days(since: Optional[datetime], now: datetime) -> float:
    """Days between two timestamps (0 when never reviewed or clock skew)."""
    if since is None:
        return 0.0
    delta = ensure_utc(now) - ensure_utc(since)
    return max(0.0, delta.total_seconds() / 86400.0)


def elapsed_minutes(since: Optional[datetime], now: datetime) -> float:
    return elapsed_days(since, now) * MINUTES_PER_DAY


def hours_between(start: datetime, end: datetime) -> float:
    """Signed hours from start to end."""
    return (ensure_utc(end) - ensure_utc(start)).total_seconds() / 3600.0


def add_days(timestamp: datetime, days: float) -> datetime:
    return timestamp + timedelta(days=days)


def add_minutes(timestamp: datetime, minutes: float) -> datetime:
    return timestamp + timedelta(minutes=minutes)


def add_hours(timestamp: datetime, hours: float) -> datetime:
    return timestamp + timedelta(hours=hours)


# ---- Numeric helpers ----

def clamp(value: float, low: float, high: float) -> float:
    return max(low, min(high, value))


# ---- Display ----

def format_interval_message(days: float) -> str:
    """
    Human-readable description of an interval.

    Args:
        days: Interval length in days (fractions allowed)

    Returns:
        Message such as "Review in 3 hours" or "Review in 2 weeks"
    """
    if days < 1:
        hours = round(days * HOURS_PER_DAY)
        if hours < 1:
            return "Review again soon"
        return f"Review in {hours} hour{'s' if hours != 1 else ''}"

    rounded = round(days)
    if rounded == 1:
        return "Review tomorrow"
    if rounded < 7:
        return f"Review in {rounded} days"
    if rounded < 30:
        weeks = round(rounded / 7)
        return f"Review in {weeks} week{'s' if weeks != 1 else ''}"
    months = round(rounded / 30)
    return f"Review in {months} month{'s' if months != 1 else ''}"


def initialize_new_item(item_id: str) -> ItemState:
    """State for an item that has never been rated."""
    return ItemState(item_id=item_id)
