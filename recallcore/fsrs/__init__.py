"""
FSRS - Dual-Regime Review Scheduler

Main API for scheduling reviews.

This package implements:
- Short-term (learning phase) exponential forgetting curve in minutes
- Long-term power-law forgetting curve in days, driven by 21 weights
- Review state machine: NEW -> LEARNING -> GRADUATED, with relapse policy
- Management risk scoring and fuzzed penalties for edits outside review

Quick start:
    from recallcore import fsrs

    params = fsrs.default_policy_params()
    state = fsrs.initialize_new_item("item-1")

    # Process a review (algorithm only, no DB calls)
    result = fsrs.schedule_review(state, fsrs.Rating.GOOD, params)
    result.state, result.log
"""

# Core scheduler API (algorithm logic)
from recallcore.fsrs.scheduler import (
    schedule_review,
    review_batch,
    should_apply_learning_to_lapse,
    due_items,
    cram_items,
    ItemStore,
    BatchItemResult,
    QueuedItem,
)

# Database API
from recallcore.fsrs.database import (
    init_db,
    reset_db,
    get_engine,
    is_test_mode,
    SqlItemStore,
)

# Management risk & penalty
from recallcore.fsrs.management import (
    predict_risk,
    deck_risk,
    apply_management_penalty,
    pre_study_items,
    detect_content_change,
    reset_item,
    current_retrievability,
    ManagementRisk,
    DeckManagementRisk,
    ContentChange,
)

# Configuration
from recallcore.fsrs.config import (
    PolicyParams,
    ShortTermParams,
    SchedulerConfig,
    LearningConfig,
    ManagementPenaltyConfig,
    RetentionBounds,
    AdaptiveRetentionConfig,
    DEFAULT_SCHEDULER_CONFIG,
    load_scheduler_config,
    default_policy_params,
    with_target_retention,
    normalize_policy_version,
)

# Constants and errors
from recallcore.fsrs.constants import Rating, DEFAULT_WEIGHTS, WEIGHT_COUNT
from recallcore.fsrs.errors import SchedulingError, ValidationError, ComputationUnavailable

# Memory state (for advanced usage)
from recallcore.fsrs.memory_state import (
    ItemState,
    Phase,
    ReviewLogEntry,
    ScheduleResult,
    initialize_new_item,
    format_interval_message,
)
from recallcore.fsrs.ltm_updates import calculate_retrievability
from recallcore.fsrs.stm_updates import calculate_short_retrievability


__all__ = [
    # Core algorithm
    "schedule_review",
    "review_batch",
    "should_apply_learning_to_lapse",
    "due_items",
    "cram_items",
    "ItemStore",
    "BatchItemResult",
    "QueuedItem",

    # Database operations
    "init_db",
    "reset_db",
    "get_engine",
    "is_test_mode",
    "SqlItemStore",

    # Management
    "predict_risk",
    "deck_risk",
    "apply_management_penalty",
    "pre_study_items",
    "detect_content_change",
    "reset_item",
    "current_retrievability",
    "ManagementRisk",
    "DeckManagementRisk",
    "ContentChange",

    # Configuration
    "PolicyParams",
    "ShortTermParams",
    "SchedulerConfig",
    "LearningConfig",
    "ManagementPenaltyConfig",
    "RetentionBounds",
    "AdaptiveRetentionConfig",
    "DEFAULT_SCHEDULER_CONFIG",
    "load_scheduler_config",
    "default_policy_params",
    "with_target_retention",
    "normalize_policy_version",

    # Enums, constants, errors
    "Rating",
    "DEFAULT_WEIGHTS",
    "WEIGHT_COUNT",
    "SchedulingError",
    "ValidationError",
    "ComputationUnavailable",

    # Memory state
    "ItemState",
    "Phase",
    "ReviewLogEntry",
    "ScheduleResult",
    "initialize_new_item",
    "format_interval_message",
    "calculate_retrievability",
    "calculate_short_retrievability",
]
