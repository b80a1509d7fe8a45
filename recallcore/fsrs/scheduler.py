"""
Scheduler - Review State Machine

Pure scheduling and state transitions (no database calls).

Main workflow:
1. Caller loads the item state
2. Derive the phase (NEW / LEARNING / GRADUATED) and pick a model
3. Apply the short- or long-term update rules
4. Decide on the phase transition (stay / graduate / relapse)
5. Return a new state plus exactly one review log entry

Database I/O is handled by the database module; review_batch only talks to
an ItemStore passed in by the caller.
"""

from __future__ import annotations
from dataclasses import dataclass, replace
from datetime import datetime, timedelta
from typing import Iterable, Optional, Protocol, Sequence, Tuple

from loguru import logger

from recallcore.fsrs import ltm_updates, stm_updates
from recallcore.fsrs.management import current_retrievability
from recallcore.fsrs.config import (
    DEFAULT_SCHEDULER_CONFIG,
    LearningConfig,
    PolicyParams,
    SchedulerConfig,
)
from recallcore.fsrs.constants import (
    Rating,
    MINUTES_PER_DAY,
    MIN_INTERVAL_DAYS,
    MIN_SCHEDULING_UNIT_MINUTES,
    REVIEW_STATE_NEW,
    REVIEW_STATE_LEARNING,
    REVIEW_STATE_REVIEW,
    REVIEW_STATE_RELEARNING,
)
from recallcore.fsrs.memory_state import (
    ItemState,
    Phase,
    ReviewLogEntry,
    ScheduleResult,
    add_days,
    add_minutes,
    elapsed_days,
    elapsed_minutes,
    ensure_utc,
    format_interval_message,
    get_phase,
    parse_rating,
    utcnow,
)


# ---- Relapse policy ----

def should_apply_learning_to_lapse(
    state: ItemState,
    now: datetime,
    config: LearningConfig
) -> bool:
    """
    Whether a failed graduated item goes back through the learning phase.

    - "always": every lapse relearns
    - "within_days": only when the previous review was recent enough
    - "off": lapses stay in the long-term model
    """
    if config.apply_to_lapses == "always":
        return True
    if config.apply_to_lapses == "off":
        return False
    if config.lapse_within_days is None or state.last_review is None:
        return False
    return elapsed_days(state.last_review, now) <= config.lapse_within_days


def _review_state_code(state: ItemState, phase: Phase) -> int:
    if phase == Phase.NEW:
        return REVIEW_STATE_NEW
    if phase == Phase.LEARNING:
        return REVIEW_STATE_RELEARNING if state.stability is not None else REVIEW_STATE_LEARNING
    return REVIEW_STATE_REVIEW


# ---- Model paths ----

def _long_term_review(
    item: ItemState,
    rating: Rating,
    days_elapsed: float,
    params: PolicyParams,
    now: datetime
) -> float:
    """Apply the long-term model to item (modified in place). Returns interval minutes."""
    update = ltm_updates.apply_ltm_update(
        stability=item.stability,
        difficulty=item.difficulty,
        elapsed_days=days_elapsed,
        rating=rating,
        weights=params.weights,
        target_retention=params.target_retention
    )
    item.stability = update.stability
    item.difficulty = update.difficulty
    item.short_stability_minutes = None
    item.learning_review_count = 0
    item.next_review = ltm_updates.enforce_min_interval(
        now, add_days(now, update.interval_days), timedelta(days=MIN_INTERVAL_DAYS)
    )
    return float(update.interval_days * MINUTES_PER_DAY)


def _graduate(item: ItemState, rating: Rating, params: PolicyParams, now: datetime) -> float:
    """
    Hand a learning item to the long-term model.

    Items without long-term state start from the structural defaults of the
    graduating rating; relapsed items keep their post-lapse S/D.
    """
    if item.stability is None or item.difficulty is None:
        item.stability = ltm_updates.initial_stability(params.weights, rating)
        item.difficulty = ltm_updates.initial_difficulty(params.weights, rating)

    interval_days = ltm_updates.scheduled_interval_days(
        item.stability, params.target_retention, rating, params.weights
    )
    item.short_stability_minutes = None
    item.learning_review_count = 0
    item.next_review = ltm_updates.enforce_min_interval(
        now, add_days(now, interval_days), timedelta(days=MIN_INTERVAL_DAYS)
    )
    logger.debug(f"Item {item.item_id} graduated with S={item.stability:.2f}, interval={interval_days}d")
    return float(interval_days * MINUTES_PER_DAY)


def _short_term_review(
    item: ItemState,
    rating: Rating,
    minutes_elapsed: float,
    params: PolicyParams,
    config: LearningConfig,
    now: datetime
) -> float:
    """Apply the short-term model to item (modified in place). Returns interval minutes."""
    update = stm_updates.apply_stm_update(
        short_stability_minutes=item.short_stability_minutes,
        elapsed_minutes=minutes_elapsed,
        rating=rating,
        learning_review_count=item.learning_review_count,
        config=config,
        params=params.short_term_params
    )
    if update.graduate:
        return _graduate(item, rating, params, now)

    item.short_stability_minutes = update.short_stability_minutes
    item.learning_review_count += 1
    item.next_review = _schedule_minutes(now, update.interval_minutes, config)
    return update.interval_minutes


def _schedule_minutes(now: datetime, interval_minutes: float, config: LearningConfig) -> datetime:
    minimum = max(float(MIN_SCHEDULING_UNIT_MINUTES), config.min_interval_minutes)
    return ltm_updates.enforce_min_interval(
        now, add_minutes(now, interval_minutes), timedelta(minutes=minimum)
    )


def _relapse_review(
    item: ItemState,
    rating: Rating,
    days_elapsed: float,
    params: PolicyParams,
    config: LearningConfig,
    now: datetime
) -> float:
    """
    Graduated item failed and the relapse policy applies.

    The long-term failure path always runs so S/D carry the lapse. With the
    "relearn" strategy the item then re-enters the learning phase.
    """
    interval_minutes = _long_term_review(item, rating, days_elapsed, params, now)
    if config.relapse_strategy == "penalize":
        return interval_minutes

    item.short_stability_minutes = stm_updates.short_stability_after_again(params.short_term_params)
    item.learning_review_count = 1
    interval_minutes = stm_updates.clamp_interval_minutes(
        stm_updates.predict_interval_minutes(item.short_stability_minutes, config.target_retention_short),
        config.min_interval_minutes,
        config.max_interval_minutes
    )
    item.next_review = _schedule_minutes(now, interval_minutes, config)
    logger.debug(f"Item {item.item_id} relapsed into learning (S_short={item.short_stability_minutes})")
    return interval_minutes


# ---- Main entry point ----

def schedule_review(
    state: ItemState,
    rating,
    params: PolicyParams,
    now: Optional[datetime] = None,
    config: Optional[SchedulerConfig] = None,
    review_duration_ms: Optional[int] = None
) -> ScheduleResult:
    """
    Process one rating and return the new item state plus its log entry.

    This is the core scheduling algorithm. No database calls, and the input
    state is never mutated.

    Args:
        state: Current ItemState (may be new)
        rating: Rating or int 1-4
        params: Per-learner policy (weights, target retention, short-term overrides)
        now: Review timestamp (defaults to now, UTC)
        config: Scheduler configuration (defaults to DEFAULT_SCHEDULER_CONFIG)
        review_duration_ms: Wall-clock time spent answering

    Returns:
        ScheduleResult with the updated state, review log entry, interval
        in minutes and a human readable message

    Raises:
        ValidationError: if rating is not 1-4
    """
    rating = parse_rating(rating)
    now = ensure_utc(now) if now is not None else utcnow()
    config = config or DEFAULT_SCHEDULER_CONFIG
    learning = config.learning

    phase_before = get_phase(state)
    days_elapsed = elapsed_days(state.last_review, now)
    retrievability_before = current_retrievability(state, now, params)

    item = replace(state)

    if not params.short_term_enabled:
        interval_minutes = _long_term_review(item, rating, days_elapsed, params, now)
    elif phase_before in (Phase.NEW, Phase.LEARNING):
        interval_minutes = _short_term_review(
            item, rating, elapsed_minutes(state.last_review, now), params, learning, now
        )
    elif rating == Rating.AGAIN and should_apply_learning_to_lapse(state, now, learning):
        interval_minutes = _relapse_review(item, rating, days_elapsed, params, learning, now)
    else:
        interval_minutes = _long_term_review(item, rating, days_elapsed, params, now)

    if rating == Rating.AGAIN and phase_before == Phase.GRADUATED:
        item.lapses += 1
    item.review_count += 1
    item.last_review = now

    phase_after = get_phase(item)
    if phase_after != phase_before:
        logger.debug(f"Item {item.item_id}: {phase_before.value} -> {phase_after.value} on {rating.name}")

    log = ReviewLogEntry(
        item_id=item.item_id,
        rating=rating,
        review_time=now,
        elapsed_days=days_elapsed,
        scheduled_days=interval_minutes / MINUTES_PER_DAY,
        stability_before=state.stability,
        difficulty_before=state.difficulty,
        stability_after=item.stability,
        difficulty_after=item.difficulty,
        retrievability_before=retrievability_before,
        short_stability_before=state.short_stability_minutes,
        short_stability_after=item.short_stability_minutes,
        review_duration_ms=review_duration_ms,
        review_state=_review_state_code(state, phase_before),
        phase_before=phase_before,
        phase_after=phase_after,
    )

    return ScheduleResult(
        state=item,
        log=log,
        interval_minutes=interval_minutes,
        message=format_interval_message(interval_minutes / MINUTES_PER_DAY),
    )


# ---- Batch review ----

class ItemStore(Protocol):
    """Storage collaborator used by review_batch."""

    def load_item(self, item_id: str) -> Optional[ItemState]: ...

    def save_item(self, state: ItemState) -> None: ...

    def append_log(self, entry: ReviewLogEntry) -> None: ...


BATCH_OK = "ok"
BATCH_NOT_FOUND = "not_found"
BATCH_ERROR = "error"


@dataclass(frozen=True)
class BatchItemResult:
    """Outcome for one position of a batch."""
    item_id: str
    status: str
    state: Optional[ItemState] = None
    log: Optional[ReviewLogEntry] = None
    error: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.status == BATCH_OK


def review_batch(
    store: ItemStore,
    reviews: Sequence[Tuple[str, int]],
    params: PolicyParams,
    now: Optional[datetime] = None,
    config: Optional[SchedulerConfig] = None
) -> list[BatchItemResult]:
    """
    Apply (item_id, rating) pairs sequentially, in input order.

    Each position succeeds, reports not-found, or reports an error on its
    own; one failing item never aborts the rest.

    Returns:
        One BatchItemResult per input pair, in the same order
    """
    now = ensure_utc(now) if now is not None else utcnow()
    results: list[BatchItemResult] = []

    for item_id, rating in reviews:
        try:
            state = store.load_item(item_id)
            if state is None:
                results.append(BatchItemResult(item_id=item_id, status=BATCH_NOT_FOUND))
                continue

            result = schedule_review(state, rating, params, now, config)
            store.save_item(result.state)
            store.append_log(result.log)
            results.append(BatchItemResult(
                item_id=item_id,
                status=BATCH_OK,
                state=result.state,
                log=result.log,
            ))
        except Exception as exc:
            logger.exception(f"Batch review failed for item {item_id}")
            results.append(BatchItemResult(item_id=item_id, status=BATCH_ERROR, error=str(exc)))

    return results


# ---- Queue selection ----

CRAM_CRITICAL_BELOW = 0.85
CRAM_OPTIMAL_UP_TO = 0.92


@dataclass(frozen=True)
class QueuedItem:
    """An item selected for study, with its current retrievability."""
    state: ItemState
    retrievability: float
    label: str = ""


def due_items(
    items: Iterable[ItemState],
    now: datetime,
    params: PolicyParams
) -> list[QueuedItem]:
    """
    Items due for review, most at-risk first.

    Learning items are due once next_review has passed; graduated items once
    their retrievability has fallen to the target retention.
    """
    now = ensure_utc(now)
    due = []
    for state in items:
        r = current_retrievability(state, now, params)
        if r is None:
            continue
        phase = get_phase(state)
        if phase == Phase.LEARNING:
            is_due = state.next_review is None or ensure_utc(state.next_review) <= now
        else:
            is_due = r <= params.target_retention
        if is_due:
            due.append(QueuedItem(state=state, retrievability=r))
    return sorted(due, key=lambda q: q.retrievability)


def cram_items(
    items: Iterable[ItemState],
    now: datetime,
    params: PolicyParams,
    limit: int = 50
) -> list[QueuedItem]:
    """
    Every reviewed item ordered by retrievability (lowest first), ignoring due dates.

    Each item is labelled critical (R < 0.85), optimal (R <= 0.92) or safe.
    """
    now = ensure_utc(now)
    queued = []
    for state in items:
        r = current_retrievability(state, now, params)
        if r is None:
            continue
        if r < CRAM_CRITICAL_BELOW:
            label = "critical"
        elif r <= CRAM_OPTIMAL_UP_TO:
            label = "optimal"
        else:
            label = "safe"
        queued.append(QueuedItem(state=state, retrievability=r, label=label))
    queued.sort(key=lambda q: q.retrievability)
    return queued[:limit]
