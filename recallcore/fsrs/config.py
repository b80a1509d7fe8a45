"""
Scheduler configuration and per-learner policy parameters.

Everything here is an immutable dataclass passed explicitly into each
scheduling call; nothing is cached at module level. Deployment defaults are
read from environment variables (a .env file is honoured via python-dotenv).
"""

from __future__ import annotations
import math
import os
import re
from dataclasses import dataclass, field, replace
from datetime import datetime
from typing import Literal, Mapping, Optional

from dotenv import load_dotenv

from recallcore.fsrs.constants import (
    Rating,
    DEFAULT_WEIGHTS,
    WEIGHT_COUNT,
    MINUTES_PER_DAY,
)
from recallcore.fsrs.errors import ValidationError

load_dotenv()


ApplyToLapses = Literal["always", "within_days", "off"]
RelapseStrategy = Literal["relearn", "penalize"]

POLICY_VERSION_FALLBACK = "baseline-v1"
POLICY_VERSION_PATTERN = re.compile(r"^[a-zA-Z0-9._-]{1,64}$")


# ---- Short-term model ----

@dataclass(frozen=True)
class ShortTermParams:
    """
    Fitted overrides for the short-term model.

    Missing entries fall back to the structural defaults in constants.py.
    Values are stored as given; range checks happen where they are read.
    """
    initial_by_rating: Mapping[Rating, float] = field(default_factory=dict)
    after_again: Optional[float] = None
    growth_by_rating: Mapping[Rating, float] = field(default_factory=dict)

    def is_empty(self) -> bool:
        return not self.initial_by_rating and self.after_again is None and not self.growth_by_rating


@dataclass(frozen=True)
class LearningConfig:
    """Learning-phase (short-term) scheduling policy."""
    target_retention_short: float = 0.85
    min_interval_minutes: float = 1.0
    max_interval_minutes: float = float(MINUTES_PER_DAY)
    graduation_cap_days: float = 1.0
    max_attempts_before_graduate: int = 7
    apply_to_lapses: ApplyToLapses = "always"
    lapse_within_days: Optional[float] = None
    relapse_strategy: RelapseStrategy = "relearn"

    def __post_init__(self):
        if not 0.0 < self.target_retention_short < 1.0:
            raise ValidationError("target_retention_short must be in (0, 1)")
        if self.min_interval_minutes < 1:
            raise ValidationError("min_interval_minutes must be at least 1")
        if self.max_interval_minutes < self.min_interval_minutes:
            raise ValidationError("max_interval_minutes must be >= min_interval_minutes")
        if self.graduation_cap_days <= 0:
            raise ValidationError("graduation_cap_days must be positive")
        if self.max_attempts_before_graduate < 1:
            raise ValidationError("max_attempts_before_graduate must be at least 1")
        if self.apply_to_lapses not in ("always", "within_days", "off"):
            raise ValidationError(f"Unknown apply_to_lapses policy: {self.apply_to_lapses!r}")
        if self.relapse_strategy not in ("relearn", "penalize"):
            raise ValidationError(f"Unknown relapse_strategy: {self.relapse_strategy!r}")


# ---- Management penalty ----

@dataclass(frozen=True)
class ManagementPenaltyConfig:
    """How hard to push next_review out when an item is edited outside review."""
    management_count_threshold: int = 3
    fuzzing_hours_min: float = 4.0
    fuzzing_hours_max: float = 8.0
    adaptive_fuzzing: bool = True

    def __post_init__(self):
        if self.management_count_threshold < 0:
            raise ValidationError("management_count_threshold must be >= 0")
        if not math.isfinite(self.fuzzing_hours_min) or self.fuzzing_hours_min <= 0:
            raise ValidationError("fuzzing_hours_min must be a positive number")
        if not math.isfinite(self.fuzzing_hours_max) or self.fuzzing_hours_max < self.fuzzing_hours_min:
            raise ValidationError("fuzzing_hours_max must be >= fuzzing_hours_min")


# ---- Retention target ----

@dataclass(frozen=True)
class RetentionBounds:
    """Allowed range and quantization for target retention."""
    minimum: float = 0.85
    maximum: float = 0.95
    step: float = 0.01
    default: float = 0.9

    def __post_init__(self):
        if not 0.0 < self.minimum <= self.maximum < 1.0:
            raise ValidationError(
                f"Retention bounds must satisfy 0 < min <= max < 1, got [{self.minimum}, {self.maximum}]"
            )
        if not 0.0 < self.step <= 0.1:
            raise ValidationError(f"Retention step must be in (0, 0.1], got {self.step}")
        if not self.minimum <= self.default <= self.maximum:
            raise ValidationError("Default retention must lie within bounds")

    def clamp(self, value: float) -> float:
        return max(self.minimum, min(self.maximum, value))

    def quantize(self, value: float) -> float:
        """Clamp, then snap to the nearest step."""
        snapped = round(self.clamp(value) / self.step) * self.step
        return round(self.clamp(snapped), 10)


@dataclass(frozen=True)
class AdaptiveRetentionConfig:
    """Thresholds for the adaptive retention controller."""
    enabled: bool = True
    gap_tolerance: float = 0.05
    high_brier_threshold: float = 0.22
    good_brier_threshold: float = 0.18
    min_reviews_for_confidence: int = 300
    min_sessions_for_confidence: int = 20
    high_load_review_count: int = 600
    good_recall_rate: float = 0.9


@dataclass(frozen=True)
class SchedulerConfig:
    """Deployment-wide scheduling configuration."""
    learning: LearningConfig = field(default_factory=LearningConfig)
    management: ManagementPenaltyConfig = field(default_factory=ManagementPenaltyConfig)
    retention: RetentionBounds = field(default_factory=RetentionBounds)
    adaptive: AdaptiveRetentionConfig = field(default_factory=AdaptiveRetentionConfig)


DEFAULT_SCHEDULER_CONFIG = SchedulerConfig()


# ---- Per-learner policy ----

@dataclass(frozen=True)
class PolicyParams:
    """
    Per-learner policy consumed by every scheduling call.

    Mutated only by the calibration gateway and by explicitly applying an
    adaptive retention recommendation; both return new instances.
    """
    weights: tuple[float, ...] = DEFAULT_WEIGHTS
    target_retention: float = 0.9
    short_term_enabled: bool = True
    short_term_params: Optional[ShortTermParams] = None
    weights_version: int = 0
    calibrated_at: Optional[datetime] = None
    policy_version: str = POLICY_VERSION_FALLBACK

    def __post_init__(self):
        if len(self.weights) != WEIGHT_COUNT:
            raise ValidationError(
                f"Policy requires exactly {WEIGHT_COUNT} weights, got {len(self.weights)}"
            )
        if not 0.0 < self.target_retention < 1.0:
            raise ValidationError(f"target_retention must be in (0, 1), got {self.target_retention}")


def with_target_retention(
    params: PolicyParams,
    target: float,
    bounds: RetentionBounds = RetentionBounds()
) -> PolicyParams:
    """Return params with a new target, clamped and quantized to bounds."""
    if not math.isfinite(target):
        raise ValidationError("target retention must be finite")
    return replace(params, target_retention=bounds.quantize(target))


def normalize_policy_version(raw) -> str:
    """Accept a short identifier, otherwise fall back to the baseline version."""
    candidate = raw.strip() if isinstance(raw, str) else ""
    if not candidate or not POLICY_VERSION_PATTERN.match(candidate):
        return POLICY_VERSION_FALLBACK
    return candidate


# ---- Environment ----

def _env_float(name: str, default: Optional[float]) -> Optional[float]:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        return float(raw)
    except ValueError as exc:
        raise ValidationError(f"{name} must be a number, got {raw!r}") from exc


def _env_int(name: str, default: int) -> int:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        return int(raw)
    except ValueError as exc:
        raise ValidationError(f"{name} must be an integer, got {raw!r}") from exc


def _env_bool(name: str, default: bool) -> bool:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    return raw.strip().lower() == "true"


def load_scheduler_config() -> SchedulerConfig:
    """
    Build a SchedulerConfig from RECALL_* environment variables.

    Unset variables keep their defaults; malformed ones raise ValidationError.
    """
    learning = LearningConfig(
        target_retention_short=_env_float("RECALL_TARGET_RETENTION_SHORT", 0.85),
        min_interval_minutes=_env_float("RECALL_MIN_INTERVAL_MINUTES", 1.0),
        max_interval_minutes=_env_float("RECALL_MAX_INTERVAL_MINUTES", float(MINUTES_PER_DAY)),
        graduation_cap_days=_env_float("RECALL_GRADUATION_CAP_DAYS", 1.0),
        max_attempts_before_graduate=_env_int("RECALL_MAX_ATTEMPTS_BEFORE_GRADUATE", 7),
        apply_to_lapses=os.getenv("RECALL_APPLY_TO_LAPSES", "always"),
        lapse_within_days=_env_float("RECALL_LAPSE_WITHIN_DAYS", None),
        relapse_strategy=os.getenv("RECALL_RELAPSE_STRATEGY", "relearn"),
    )
    management = ManagementPenaltyConfig(
        management_count_threshold=_env_int("RECALL_MANAGEMENT_THRESHOLD", 3),
        fuzzing_hours_min=_env_float("RECALL_FUZZING_HOURS_MIN", 4.0),
        fuzzing_hours_max=_env_float("RECALL_FUZZING_HOURS_MAX", 8.0),
        adaptive_fuzzing=_env_bool("RECALL_ADAPTIVE_FUZZING", True),
    )
    retention = RetentionBounds(
        minimum=_env_float("RECALL_RETENTION_MIN", 0.85),
        maximum=_env_float("RECALL_RETENTION_MAX", 0.95),
        step=_env_float("RECALL_RETENTION_STEP", 0.01),
        default=_env_float("RECALL_RETENTION_DEFAULT", 0.9),
    )
    adaptive = AdaptiveRetentionConfig(
        enabled=_env_bool("RECALL_ADAPTIVE_RETENTION_ENABLED", True),
    )
    return SchedulerConfig(
        learning=learning,
        management=management,
        retention=retention,
        adaptive=adaptive,
    )


def default_policy_params() -> PolicyParams:
    """Policy for a learner with no stored settings."""
    return PolicyParams(
        short_term_enabled=_env_bool("RECALL_SHORT_TERM_ENABLED", True),
        policy_version=normalize_policy_version(os.getenv("RECALL_POLICY_VERSION")),
    )
