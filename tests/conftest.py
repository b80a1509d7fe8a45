"""
Pytest Configuration and Fixtures.

Shared fixtures for the scheduling tests: a fixed clock, default policy and
config, a seeded random source and an in-memory item store.
"""

from datetime import datetime, timedelta, timezone
from random import Random

import pytest

from recallcore.fsrs.config import PolicyParams, SchedulerConfig
from recallcore.fsrs.constants import Rating
from recallcore.fsrs.memory_state import ItemState, ReviewLogEntry, Phase


class InMemoryItemStore:
    """Dict-backed ItemStore for batch tests."""

    def __init__(self, items=None):
        self.items = {item.item_id: item for item in (items or [])}
        self.logs = []

    def load_item(self, item_id):
        return self.items.get(item_id)

    def save_item(self, state):
        self.items[state.item_id] = state

    def append_log(self, entry):
        self.logs.append(entry)


@pytest.fixture
def now():
    return datetime(2024, 3, 1, 12, 0, tzinfo=timezone.utc)


@pytest.fixture
def params():
    return PolicyParams()


@pytest.fixture
def config():
    return SchedulerConfig()


@pytest.fixture
def rng():
    return Random(1234)


@pytest.fixture
def store():
    return InMemoryItemStore()


@pytest.fixture
def graduated_item(now):
    """Item that graduated a while ago and was last seen 10 days before now."""
    return ItemState(
        item_id="graduated",
        stability=12.0,
        difficulty=5.0,
        last_review=now - timedelta(days=10),
        next_review=now - timedelta(days=1),
        review_count=6,
    )


@pytest.fixture
def learning_item(now):
    return ItemState(
        item_id="learning",
        short_stability_minutes=30.0,
        learning_review_count=1,
        last_review=now - timedelta(minutes=10),
        next_review=now - timedelta(minutes=5),
        review_count=1,
    )


def make_log(
    item_id,
    rating,
    review_time,
    retrievability=None,
    review_state=2,
    duration_ms=None,
):
    """Minimal ReviewLogEntry for metrics and calibration tests."""
    return ReviewLogEntry(
        item_id=item_id,
        rating=Rating(rating),
        review_time=review_time,
        elapsed_days=0.0,
        scheduled_days=1.0,
        stability_before=None,
        difficulty_before=None,
        stability_after=None,
        difficulty_after=None,
        retrievability_before=retrievability,
        review_duration_ms=duration_ms,
        review_state=review_state,
        phase_before=Phase.GRADUATED,
        phase_after=Phase.GRADUATED,
    )
