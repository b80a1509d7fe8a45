"""
Analytics package exports.
"""

from recallcore.analytics.adaptive_retention import apply_recommendation, recommend_retention_target
from recallcore.analytics.metrics import (
    reliability_from_sample_size,
    session_window,
    summarize_review_logs,
)
from recallcore.analytics.types import AdaptiveRetentionRecommendation, StatsSummary, WindowStats

__all__ = [
    "apply_recommendation",
    "recommend_retention_target",
    "reliability_from_sample_size",
    "session_window",
    "summarize_review_logs",
    "AdaptiveRetentionRecommendation",
    "StatsSummary",
    "WindowStats",
]
