"""
Adaptive Retention Controller

Slow, session-level feedback loop: compares observed recall with the
model's predicted recall and recommends nudging the learner's target
retention by one quantization step per reason.

The recommendation is advisory. apply_recommendation is the explicit step
that turns it into new policy parameters.
"""

from __future__ import annotations

from typing import Optional

from loguru import logger

from recallcore.analytics.constants import (
    REASON_DISABLED,
    REASON_HIGH_BRIER,
    REASON_HIGH_LOAD_GOOD_RECALL,
    REASON_INSUFFICIENT_EVIDENCE,
    REASON_OBSERVED_ABOVE_PREDICTED,
    REASON_OBSERVED_BELOW_PREDICTED,
    REASON_STABLE,
)
from recallcore.analytics.metrics import reliability_from_sample_size
from recallcore.analytics.types import AdaptiveRetentionRecommendation, StatsSummary, WindowStats
from recallcore.fsrs.config import (
    DEFAULT_SCHEDULER_CONFIG,
    PolicyParams,
    SchedulerConfig,
    with_target_retention,
)


def recommend_retention_target(
    summary: Optional[StatsSummary],
    window: Optional[WindowStats],
    current_target: Optional[float] = None,
    config: Optional[SchedulerConfig] = None
) -> AdaptiveRetentionRecommendation:
    """
    Recommend a target retention from recent outcome statistics.

    Rules (each contributes at most one step):
    - observed recall more than gap_tolerance below predicted: +1 step
    - observed recall more than gap_tolerance above predicted: -1 step
    - Brier score above high_brier_threshold: +1 step
    - heavy load with good recall and good calibration: -1 step

    Missing statistics, or too few reviews and sessions, mean no change.

    Args:
        summary: Aggregate statistics over the recent period
        window: Statistics over the most recent sessions
        current_target: Learner's current target (bounds default when None)
        config: Scheduler configuration supplying bounds and thresholds

    Returns:
        AdaptiveRetentionRecommendation (never raises on missing data)
    """
    config = config or DEFAULT_SCHEDULER_CONFIG
    bounds = config.retention
    adaptive = config.adaptive

    current = bounds.default if current_target is None else current_target
    review_count = window.review_count if window is not None else 0
    session_count = window.session_count if window is not None else 0

    def _keep(confidence, reason, enabled=True):
        return AdaptiveRetentionRecommendation(
            recommended_target=current,
            current_target=current,
            confidence=confidence,
            reasons=[reason],
            enabled=enabled,
            review_count=review_count,
            session_count=session_count,
        )

    if not adaptive.enabled:
        return _keep("low", REASON_DISABLED, enabled=False)

    if summary is None or window is None:
        return _keep("low", REASON_INSUFFICIENT_EVIDENCE)

    confidence = reliability_from_sample_size(review_count)
    enough_evidence = (
        review_count >= adaptive.min_reviews_for_confidence
        or session_count >= adaptive.min_sessions_for_confidence
    )
    if not enough_evidence or confidence == "low" or summary.reliability == "low":
        return _keep("low", REASON_INSUFFICIENT_EVIDENCE)

    steps = 0
    reasons: list[str] = []
    observed = summary.observed_recall_rate
    predicted = summary.avg_predicted_recall
    brier = summary.avg_brier_score

    if observed is not None and predicted is not None:
        gap = observed - predicted
        if gap < -adaptive.gap_tolerance:
            steps += 1
            reasons.append(REASON_OBSERVED_BELOW_PREDICTED)
        elif gap > adaptive.gap_tolerance:
            steps -= 1
            reasons.append(REASON_OBSERVED_ABOVE_PREDICTED)

    if brier is not None and brier > adaptive.high_brier_threshold:
        steps += 1
        reasons.append(REASON_HIGH_BRIER)

    if (
        review_count > adaptive.high_load_review_count
        and observed is not None
        and observed > adaptive.good_recall_rate
        and (brier is None or brier < adaptive.good_brier_threshold)
    ):
        steps -= 1
        reasons.append(REASON_HIGH_LOAD_GOOD_RECALL)

    if not reasons:
        reasons.append(REASON_STABLE)

    recommended = bounds.quantize(current + steps * bounds.step)

    return AdaptiveRetentionRecommendation(
        recommended_target=recommended,
        current_target=current,
        confidence=confidence,
        reasons=reasons,
        enabled=True,
        review_count=review_count,
        session_count=session_count,
    )


def apply_recommendation(
    params: PolicyParams,
    recommendation: AdaptiveRetentionRecommendation,
    config: Optional[SchedulerConfig] = None
) -> PolicyParams:
    """
    Install a recommended target into the learner's policy.

    Returns params unchanged when the recommendation is disabled or keeps
    the current target.
    """
    config = config or DEFAULT_SCHEDULER_CONFIG
    if not recommendation.enabled or not recommendation.changed:
        return params

    logger.info(
        f"Target retention {params.target_retention:.2f} -> "
        f"{recommendation.recommended_target:.2f} ({', '.join(recommendation.reasons)})"
    )
    return with_target_retention(params, recommendation.recommended_target, config.retention)
