"""
Constants for review-log metrics and the adaptive retention controller.
"""

from __future__ import annotations

from typing import Final


# Sample-size reliability buckets
LOW_RELIABILITY_BELOW: Final[int] = 50
MEDIUM_RELIABILITY_BELOW: Final[int] = 200

# Reviews further apart than this start a new session
SESSION_GAP_MINUTES: Final[float] = 30.0

DEFAULT_SUMMARY_DAYS: Final[int] = 30
DEFAULT_SESSION_WINDOW: Final[int] = 20

# Recommendation reasons
REASON_DISABLED: Final[str] = "adaptive_retention_disabled"
REASON_INSUFFICIENT_EVIDENCE: Final[str] = "insufficient_evidence"
REASON_OBSERVED_BELOW_PREDICTED: Final[str] = "observed_below_predicted"
REASON_OBSERVED_ABOVE_PREDICTED: Final[str] = "observed_above_predicted"
REASON_HIGH_BRIER: Final[str] = "high_brier_score"
REASON_HIGH_LOAD_GOOD_RECALL: Final[str] = "high_load_with_good_recall"
REASON_STABLE: Final[str] = "stable_keep_current"
