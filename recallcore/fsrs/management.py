"""
Management Risk & Penalty Engine

Learners sometimes edit or browse items outside of a real review
("management"). Seeing the answer that way makes the next review artificially
easy, so:

- predict_risk scores how likely an item is to be forgotten right now
- apply_management_penalty pushes next_review later once an item has been
  managed too often
- deck_risk / pre_study_items summarise risk for study planning

Nothing here touches stability or difficulty.
"""

from __future__ import annotations
from dataclasses import dataclass, replace
from datetime import datetime
from random import Random
from typing import Iterable, Optional

from loguru import logger
from rapidfuzz.distance import Levenshtein

from recallcore.fsrs import ltm_updates, stm_updates
from recallcore.fsrs.config import ManagementPenaltyConfig, PolicyParams
from recallcore.fsrs.errors import ValidationError
from recallcore.fsrs.memory_state import (
    ItemState,
    Phase,
    add_hours,
    clamp,
    elapsed_days,
    elapsed_minutes,
    ensure_utc,
    get_phase,
    hours_between,
    initialize_new_item,
)


RISK_CRITICAL = 70.0
RISK_HIGH = 50.0
RISK_MEDIUM = 30.0

CONTENT_CHANGE_SIGNIFICANT = 30.0
CONTENT_CHANGE_RESET = 50.0

PRE_STUDY_RETENTION = 0.95


@dataclass(frozen=True)
class ManagementRisk:
    """Forgetting-risk assessment for one item (derived, never stored)."""
    item_id: str
    level: str                  # low / medium / high / critical
    percent: float              # 0-100
    action: str                 # safe / pre-study / avoid
    retrievability: float
    stability: Optional[float]
    hours_until_due: Optional[float]


@dataclass(frozen=True)
class DeckManagementRisk:
    total_items: int
    at_risk_items: int
    average_percent: float
    critical_items: int
    high_items: int
    medium_items: int
    low_items: int
    recommended_pre_study: int


@dataclass(frozen=True)
class ContentChange:
    change_percent: float
    is_significant: bool
    should_reset: bool


def current_retrievability(
    state: ItemState,
    now: datetime,
    params: PolicyParams
) -> Optional[float]:
    """
    Predicted recall probability right now, under whichever model governs.

    Returns None for items that have never been reviewed.
    """
    phase = get_phase(state)
    if phase == Phase.LEARNING:
        return stm_updates.calculate_short_retrievability(
            elapsed_minutes(state.last_review, now),
            state.short_stability_minutes
        )
    if phase == Phase.GRADUATED:
        return ltm_updates.calculate_retrievability(
            elapsed_days(state.last_review, now),
            state.stability,
            params.weights
        )
    return None


# ---- Risk ----

def risk_level(percent: float) -> tuple[str, str]:
    """Map a risk percent to (level, recommended action)."""
    if percent >= RISK_CRITICAL:
        return "critical", "avoid"
    if percent >= RISK_HIGH:
        return "high", "pre-study"
    if percent >= RISK_MEDIUM:
        return "medium", "pre-study"
    return "low", "safe"


def predict_risk(
    state: ItemState,
    now: datetime,
    params: PolicyParams = PolicyParams()
) -> ManagementRisk:
    """
    Score the risk of forgetting an item right now.

    Formula:
        risk = 100 * (0.5 * (1 - R) + 0.3 * elapsed_fraction + 0.2 * stability_factor)

    where elapsed_fraction is the share of the current interval already
    elapsed (0-1) and stability_factor is 1 below one day of stability,
    otherwise 1 / S.

    Args:
        state: Item to assess
        now: Assessment time
        params: Policy supplying the weight vector

    Returns:
        ManagementRisk (NEW items are always low risk)
    """
    now = ensure_utc(now)
    retrievability = current_retrievability(state, now, params)
    hours_until_due = hours_between(now, state.next_review) if state.next_review else None

    if retrievability is None:
        return ManagementRisk(
            item_id=state.item_id,
            level="low",
            percent=0.0,
            action="safe",
            retrievability=0.0,
            stability=state.stability,
            hours_until_due=hours_until_due,
        )

    elapsed_fraction = 0.0
    if state.last_review is not None and state.next_review is not None:
        scheduled_hours = hours_between(state.last_review, state.next_review)
        if scheduled_hours > 0:
            elapsed_fraction = clamp(hours_between(state.last_review, now) / scheduled_hours, 0.0, 1.0)

    stability = state.stability
    if stability is None or stability < 1:
        stability_factor = 1.0
    else:
        stability_factor = 1.0 / stability

    percent = 100.0 * (0.5 * (1.0 - retrievability) + 0.3 * elapsed_fraction + 0.2 * stability_factor)
    percent = clamp(percent, 0.0, 100.0)
    level, action = risk_level(percent)

    return ManagementRisk(
        item_id=state.item_id,
        level=level,
        percent=percent,
        action=action,
        retrievability=retrievability,
        stability=stability,
        hours_until_due=hours_until_due,
    )


def deck_risk(
    items: Iterable[ItemState],
    now: datetime,
    params: PolicyParams = PolicyParams()
) -> DeckManagementRisk:
    """Bucket counts and average risk over a set of items."""
    risks = [predict_risk(item, now, params) for item in items]
    counts = {"critical": 0, "high": 0, "medium": 0, "low": 0}
    for risk in risks:
        counts[risk.level] += 1

    total = len(risks)
    average = sum(r.percent for r in risks) / total if total else 0.0

    return DeckManagementRisk(
        total_items=total,
        at_risk_items=counts["critical"] + counts["high"] + counts["medium"],
        average_percent=average,
        critical_items=counts["critical"],
        high_items=counts["high"],
        medium_items=counts["medium"],
        low_items=counts["low"],
        recommended_pre_study=counts["critical"] + counts["high"],
    )


def pre_study_items(
    items: Iterable[ItemState],
    now: datetime,
    params: PolicyParams = PolicyParams(),
    target_retention: float = PRE_STUDY_RETENTION,
    limit: int = 50
) -> list[ManagementRisk]:
    """
    Items worth studying before a management session.

    Keeps items that are not low risk and whose retrievability is below
    target_retention, highest risk first.
    """
    risks = [predict_risk(item, now, params) for item in items]
    selected = [r for r in risks if r.level != "low" and r.retrievability < target_retention]
    selected.sort(key=lambda r: r.percent, reverse=True)
    return selected[:limit]


# ---- Penalty ----

def _fuzzing_floor(management_count: int, config: ManagementPenaltyConfig) -> float:
    """
    Lower bound of the penalty draw.

    With adaptive fuzzing the floor moves from fuzzing_hours_min toward
    fuzzing_hours_max as the count climbs past the threshold, reaching the
    max at twice the threshold.
    """
    if not config.adaptive_fuzzing:
        return config.fuzzing_hours_min
    excess = management_count - config.management_count_threshold
    span = max(1, config.management_count_threshold)
    share = clamp(excess / span, 0.0, 1.0)
    return config.fuzzing_hours_min + share * (config.fuzzing_hours_max - config.fuzzing_hours_min)


def apply_management_penalty(
    state: ItemState,
    management_count: int,
    config: ManagementPenaltyConfig = ManagementPenaltyConfig(),
    rng: Optional[Random] = None
) -> ItemState:
    """
    Push next_review later for an item managed too often.

    No-op below the threshold or for items never scheduled. A count equal
    to the threshold already applies the penalty. Otherwise next_review
    moves later by a random number of hours drawn from
    [floor, fuzzing_hours_max]. Stability and difficulty are untouched.

    Args:
        state: Item to penalize (not mutated)
        management_count: Edits made outside of review
        config: Threshold and fuzzing bounds
        rng: Randomness source; pass a seeded Random for reproducible draws

    Returns:
        New ItemState (or the same object when no penalty applies)
    """
    if config.fuzzing_hours_min <= 0 or config.fuzzing_hours_max < config.fuzzing_hours_min:
        raise ValidationError("Invalid fuzzing bounds")
    if management_count < 0:
        raise ValidationError(f"management_count must be >= 0, got {management_count}")

    if management_count < config.management_count_threshold or state.next_review is None:
        return state

    rng = rng or Random()
    low = _fuzzing_floor(management_count, config)
    hours = rng.uniform(low, config.fuzzing_hours_max)

    logger.debug(f"Management penalty for {state.item_id}: +{hours:.2f}h (count={management_count})")
    return replace(
        state,
        next_review=add_hours(state.next_review, hours),
        management_count=management_count,
    )


# ---- Content changes ----

def detect_content_change(old_content: str, new_content: str) -> ContentChange:
    """
    How much an item's content changed after an edit.

    More than 30% is significant; more than 50% means the item should be
    reset, since the learner is effectively studying something new.
    """
    if old_content == new_content:
        return ContentChange(change_percent=0.0, is_significant=False, should_reset=False)

    change = (1.0 - Levenshtein.normalized_similarity(old_content, new_content)) * 100.0
    return ContentChange(
        change_percent=change,
        is_significant=change > CONTENT_CHANGE_SIGNIFICANT,
        should_reset=change > CONTENT_CHANGE_RESET,
    )


def reset_item(state: ItemState, now: datetime) -> ItemState:
    """Forget all scheduling state; the item is due immediately as a new item."""
    fresh = initialize_new_item(state.item_id)
    fresh.next_review = ensure_utc(now)
    return fresh
