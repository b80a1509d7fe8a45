"""
Weight Calibration Gateway

Installs externally fitted weight vectors (and short-term parameters) as the
learner's active policy. The fitting itself is a black box behind the
WeightFitter protocol; this module only gates, validates, versions and
installs its output.

Eligibility follows the usual optimizer practice: the first run needs enough
history for stable weights, later runs need meaningful new data or time.
"""

from __future__ import annotations
import math
from dataclasses import dataclass, replace
from datetime import datetime
from enum import Enum
from typing import Mapping, Optional, Protocol, Sequence

from loguru import logger

from recallcore.fsrs.config import PolicyParams, ShortTermParams
from recallcore.fsrs.constants import (
    Rating,
    WEIGHT_COUNT,
    WEIGHT_PAD_VALUE,
    INITIAL_S_SHORT_RANGE,
    S_SHORT_AFTER_AGAIN_RANGE,
    GROWTH_RANGE,
)
from recallcore.fsrs.errors import ComputationUnavailable, ValidationError
from recallcore.fsrs.memory_state import ReviewLogEntry, elapsed_days, ensure_utc, utcnow


# ---- Eligibility thresholds ----

MIN_REVIEWS_FIRST = 400
MIN_REVIEWS_SUBSEQUENT = 200
MIN_DAYS_SINCE_LAST = 14

SHORT_TERM_MIN_REVIEWS_FIRST = 100
SHORT_TERM_MIN_REVIEWS_SUBSEQUENT = 50
SHORT_TERM_MIN_DAYS_SINCE_LAST = 7

# Weights that must be strictly positive: initial stabilities and decay
POSITIVE_WEIGHT_INDICES = (0, 1, 2, 3, 20)


class EligibilityStatus(str, Enum):
    NOT_READY = "NOT_READY"
    OPTIMIZED = "OPTIMIZED"
    READY_TO_UPGRADE = "READY_TO_UPGRADE"


@dataclass(frozen=True)
class CalibrationEligibility:
    status: EligibilityStatus
    total_reviews: int
    new_reviews_since_last: int
    days_since_last: float
    min_required_first: int
    min_required_subsequent: int
    min_days_since_last: float
    last_calibrated_at: Optional[datetime] = None

    @property
    def can_calibrate(self) -> bool:
        return self.status == EligibilityStatus.READY_TO_UPGRADE


@dataclass(frozen=True)
class WeightSnapshot:
    """Immutable record of an installed weight vector."""
    weights_version: int
    weights: tuple[float, ...]
    target_retention: float
    policy_version: str
    created_at: datetime


class WeightFitter(Protocol):
    """External computation turning review logs into a weight vector."""

    def is_available(self) -> bool: ...

    def fit(self, logs: Sequence[ReviewLogEntry]) -> Sequence[float]: ...


# ---- Eligibility ----

def _eligibility(
    total_reviews: int,
    new_reviews_since_last: Optional[int],
    last_calibrated_at: Optional[datetime],
    now: datetime,
    min_first: int,
    min_subsequent: int,
    min_days: float
) -> CalibrationEligibility:
    if last_calibrated_at is None:
        # Never calibrated: everything counts as new
        new_reviews = total_reviews
        days_since = 0.0
    else:
        new_reviews = total_reviews if new_reviews_since_last is None else new_reviews_since_last
        days_since = elapsed_days(last_calibrated_at, now)

    if total_reviews < min_first:
        status = EligibilityStatus.NOT_READY
    elif last_calibrated_at is None:
        status = EligibilityStatus.READY_TO_UPGRADE
    elif new_reviews < min_subsequent and days_since < min_days:
        status = EligibilityStatus.OPTIMIZED
    else:
        status = EligibilityStatus.READY_TO_UPGRADE

    return CalibrationEligibility(
        status=status,
        total_reviews=total_reviews,
        new_reviews_since_last=new_reviews,
        days_since_last=days_since,
        min_required_first=min_first,
        min_required_subsequent=min_subsequent,
        min_days_since_last=min_days,
        last_calibrated_at=last_calibrated_at,
    )


def calibration_eligibility(
    total_reviews: int,
    new_reviews_since_last: Optional[int] = None,
    last_calibrated_at: Optional[datetime] = None,
    now: Optional[datetime] = None
) -> CalibrationEligibility:
    """
    Whether the long-term weights may be recalibrated.

    - NOT_READY: fewer than 400 reviews in total
    - READY_TO_UPGRADE: first calibration, or at least 200 new reviews,
      or at least 14 days since the last one
    - OPTIMIZED: otherwise
    """
    return _eligibility(
        total_reviews, new_reviews_since_last, last_calibrated_at, now or utcnow(),
        MIN_REVIEWS_FIRST, MIN_REVIEWS_SUBSEQUENT, MIN_DAYS_SINCE_LAST,
    )


def short_term_eligibility(
    learning_reviews: int,
    new_learning_reviews_since_last: Optional[int] = None,
    last_calibrated_at: Optional[datetime] = None,
    now: Optional[datetime] = None
) -> CalibrationEligibility:
    """Same gating for short-term parameters, counting learning-phase reviews only."""
    return _eligibility(
        learning_reviews, new_learning_reviews_since_last, last_calibrated_at, now or utcnow(),
        SHORT_TERM_MIN_REVIEWS_FIRST, SHORT_TERM_MIN_REVIEWS_SUBSEQUENT, SHORT_TERM_MIN_DAYS_SINCE_LAST,
    )


# ---- Installation ----

def validate_weights(raw: Sequence[float]) -> tuple[float, ...]:
    """
    Check and normalize an externally supplied weight vector.

    Shorter vectors are right-padded with the structural default (1.0).

    Raises:
        ValidationError: empty, longer than 21, non-numeric or non-finite
            entries, or non-positive initial stability / decay weights
    """
    if raw is None or isinstance(raw, (str, bytes)):
        raise ValidationError("Weights must be a sequence of numbers")
    values = list(raw)
    if not values:
        raise ValidationError("Weight vector is empty")
    if len(values) > WEIGHT_COUNT:
        raise ValidationError(f"Expected at most {WEIGHT_COUNT} weights, got {len(values)}")

    weights = []
    for index, value in enumerate(values):
        if isinstance(value, bool) or not isinstance(value, (int, float)):
            raise ValidationError(f"Weight w{index} is not a number: {value!r}")
        if not math.isfinite(value):
            raise ValidationError(f"Weight w{index} is not finite: {value}")
        weights.append(float(value))

    weights.extend([WEIGHT_PAD_VALUE] * (WEIGHT_COUNT - len(weights)))

    for index in POSITIVE_WEIGHT_INDICES:
        if weights[index] <= 0:
            raise ValidationError(f"Weight w{index} must be positive, got {weights[index]}")

    return tuple(weights)


def install_weights(
    raw: Sequence[float],
    current: Optional[PolicyParams] = None,
    now: Optional[datetime] = None
) -> PolicyParams:
    """
    Install a weight vector as the active policy.

    Args:
        raw: Weight vector (at most 21 values)
        current: Policy to update (defaults to a fresh PolicyParams)
        now: Installation time

    Returns:
        New PolicyParams with the weights, a bumped weights_version and
        calibrated_at stamped
    """
    weights = validate_weights(raw)
    current = current or PolicyParams()
    installed = replace(
        current,
        weights=weights,
        weights_version=current.weights_version + 1,
        calibrated_at=ensure_utc(now) if now is not None else utcnow(),
    )
    logger.info(f"Installed weights v{installed.weights_version} ({installed.policy_version})")
    return installed


def snapshot_weights(params: PolicyParams, now: Optional[datetime] = None) -> WeightSnapshot:
    """Version record for the weights in params."""
    return WeightSnapshot(
        weights_version=params.weights_version,
        weights=tuple(params.weights),
        target_retention=params.target_retention,
        policy_version=params.policy_version,
        created_at=params.calibrated_at or (ensure_utc(now) if now is not None else utcnow()),
    )


def _rating_key(key) -> Optional[Rating]:
    try:
        return Rating(int(key))
    except (TypeError, ValueError):
        return None


def _in_range(value, bounds: tuple[float, float]) -> bool:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return False
    low, high = bounds
    return math.isfinite(value) and low <= value <= high


def _filter_by_rating(raw: Mapping, bounds: tuple[float, float], label: str) -> dict[Rating, float]:
    kept: dict[Rating, float] = {}
    for key, value in raw.items():
        rating = _rating_key(key)
        if rating is None or not _in_range(value, bounds):
            logger.warning(f"Dropping {label}[{key!r}]={value!r}: outside {bounds}")
            continue
        kept[rating] = float(value)
    return kept


def install_short_term_params(
    raw,
    current: Optional[PolicyParams] = None
) -> PolicyParams:
    """
    Install fitted short-term parameters.

    raw is a ShortTermParams or a mapping with any of "initial_by_rating",
    "after_again" and "growth_by_rating". Values outside their safe ranges
    are dropped, so the structural defaults apply for them.

    Raises:
        ValidationError: if raw is not a mapping or ShortTermParams
    """
    if isinstance(raw, ShortTermParams):
        raw = {
            "initial_by_rating": dict(raw.initial_by_rating),
            "after_again": raw.after_again,
            "growth_by_rating": dict(raw.growth_by_rating),
        }
    if not isinstance(raw, Mapping):
        raise ValidationError("Short-term parameters must be a mapping")

    initial = raw.get("initial_by_rating") or {}
    growth = raw.get("growth_by_rating") or {}
    if not isinstance(initial, Mapping) or not isinstance(growth, Mapping):
        raise ValidationError("Per-rating short-term parameters must be mappings")

    after_again = raw.get("after_again")
    if after_again is not None and not _in_range(after_again, S_SHORT_AFTER_AGAIN_RANGE):
        logger.warning(f"Dropping after_again={after_again!r}: outside {S_SHORT_AFTER_AGAIN_RANGE}")
        after_again = None

    params = ShortTermParams(
        initial_by_rating=_filter_by_rating(initial, INITIAL_S_SHORT_RANGE, "initial_by_rating"),
        after_again=float(after_again) if after_again is not None else None,
        growth_by_rating={
            r: v for r, v in _filter_by_rating(growth, GROWTH_RANGE, "growth_by_rating").items()
            if r != Rating.AGAIN
        },
    )
    current = current or PolicyParams()
    return replace(current, short_term_params=None if params.is_empty() else params)


# ---- Orchestration ----

def run_calibration(
    fitter: WeightFitter,
    logs: Sequence[ReviewLogEntry],
    eligibility: CalibrationEligibility,
    current: Optional[PolicyParams] = None,
    now: Optional[datetime] = None
) -> PolicyParams:
    """
    Check pre-conditions, run the fitter and install its output.

    Raises:
        ComputationUnavailable: reason "not_eligible", "fitter_unavailable",
            "fitter_failed", "fitter_timeout" or "malformed_output"
    """
    if not eligibility.can_calibrate:
        raise ComputationUnavailable(
            "not_eligible",
            f"Calibration status is {eligibility.status.value} "
            f"({eligibility.total_reviews} reviews, need {eligibility.min_required_first})"
        )
    if not fitter.is_available():
        raise ComputationUnavailable("fitter_unavailable", "Weight fitter is not available")

    try:
        raw = fitter.fit(logs)
    except ComputationUnavailable:
        raise
    except Exception as exc:
        logger.exception("Weight fitter raised")
        raise ComputationUnavailable("fitter_failed", str(exc)) from exc

    if raw is None or len(raw) != WEIGHT_COUNT:
        got = 0 if raw is None else len(raw)
        raise ComputationUnavailable("malformed_output", f"Expected {WEIGHT_COUNT} weights, got {got}")

    try:
        return install_weights(raw, current, now)
    except ValidationError as exc:
        raise ComputationUnavailable("malformed_output", str(exc)) from exc
