"""
Types for review statistics and retention recommendations.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Literal, Optional


Reliability = Literal["low", "medium", "high"]


@dataclass(frozen=True)
class StatsSummary:
    """
    Aggregate outcome statistics over a recent period (e.g. 30 days).
    """
    review_count: int
    pass_count: int
    fail_count: int
    observed_recall_rate: Optional[float]
    avg_predicted_recall: Optional[float]
    avg_brier_score: Optional[float]
    reliability: Reliability


@dataclass(frozen=True)
class WindowStats:
    """
    Rolling window over the learner's most recent sessions.
    """
    session_count: int
    review_count: int
    observed_recall_rate: Optional[float] = None
    avg_brier_score: Optional[float] = None


@dataclass(frozen=True)
class AdaptiveRetentionRecommendation:
    """
    Advisory target retention. Applying it is a separate, explicit step.
    """
    recommended_target: float
    current_target: float
    confidence: Reliability
    reasons: list[str] = field(default_factory=list)
    enabled: bool = True
    review_count: int = 0
    session_count: int = 0

    @property
    def changed(self) -> bool:
        return abs(self.recommended_target - self.current_target) > 1e-9
