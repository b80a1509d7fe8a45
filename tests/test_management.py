"""
Tests for management risk, the management penalty and content change handling.
"""

from dataclasses import replace
from datetime import timedelta
from random import Random

import pytest

from recallcore.fsrs.config import ManagementPenaltyConfig
from recallcore.fsrs.errors import ValidationError
from recallcore.fsrs.management import (
    apply_management_penalty,
    current_retrievability,
    deck_risk,
    detect_content_change,
    pre_study_items,
    predict_risk,
    reset_item,
    risk_level,
)
from recallcore.fsrs.memory_state import ItemState, Phase, initialize_new_item


@pytest.fixture
def overdue_item(now):
    return ItemState(
        item_id="overdue",
        stability=0.5,
        difficulty=5.0,
        last_review=now - timedelta(days=5),
        next_review=now - timedelta(days=4),
    )


@pytest.fixture
def halfway_item(now):
    return ItemState(
        item_id="halfway",
        stability=1.5,
        difficulty=5.0,
        last_review=now - timedelta(days=1.2),
        next_review=now + timedelta(days=0.3),
    )


@pytest.fixture
def solid_item(now):
    return ItemState(
        item_id="solid",
        stability=100.0,
        difficulty=3.0,
        last_review=now - timedelta(hours=1),
        next_review=now + timedelta(days=99),
    )


class TestRisk:

    def test_levels(self):
        assert risk_level(85) == ("critical", "avoid")
        assert risk_level(70) == ("critical", "avoid")
        assert risk_level(55) == ("high", "pre-study")
        assert risk_level(30) == ("medium", "pre-study")
        assert risk_level(29.9) == ("low", "safe")

    def test_new_item_is_low(self, now):
        risk = predict_risk(initialize_new_item("n"), now)
        assert risk.level == "low"
        assert risk.percent == 0.0
        assert risk.action == "safe"

    def test_overdue_fragile_item_is_critical(self, now, overdue_item):
        risk = predict_risk(overdue_item, now)
        assert risk.level == "critical"
        assert risk.percent == pytest.approx(81.6, abs=0.5)
        assert risk.hours_until_due == pytest.approx(-96.0)

    def test_halfway_item_is_medium(self, now, halfway_item):
        risk = predict_risk(halfway_item, now)
        assert risk.level == "medium"
        assert risk.percent == pytest.approx(41.4, abs=0.5)

    def test_solid_item_is_low(self, now, solid_item):
        risk = predict_risk(solid_item, now)
        assert risk.level == "low"
        assert risk.percent < 1.0

    def test_learning_item_uses_short_term_curve(self, now, params, learning_item):
        r = current_retrievability(learning_item, now, params)
        assert r == pytest.approx(0.7165, abs=1e-3)


class TestDeckRisk:

    def test_buckets(self, now, overdue_item, halfway_item, solid_item):
        deck = deck_risk([overdue_item, halfway_item, solid_item, initialize_new_item("n")], now)
        assert deck.total_items == 4
        assert deck.critical_items == 1
        assert deck.medium_items == 1
        assert deck.low_items == 2
        assert deck.at_risk_items == 2
        assert deck.recommended_pre_study == 1

    def test_empty(self, now):
        deck = deck_risk([], now)
        assert deck.total_items == 0
        assert deck.average_percent == 0.0

    def test_pre_study_orders_by_risk(self, now, overdue_item, halfway_item, solid_item):
        selected = pre_study_items([halfway_item, solid_item, overdue_item], now)
        assert [r.item_id for r in selected] == ["overdue", "halfway"]

    def test_pre_study_limit(self, now, overdue_item, halfway_item):
        assert len(pre_study_items([overdue_item, halfway_item], now, limit=1)) == 1


class TestManagementPenalty:

    def test_below_threshold_is_noop(self, graduated_item, rng):
        config = ManagementPenaltyConfig(management_count_threshold=3)
        assert apply_management_penalty(graduated_item, 2, config, rng) is graduated_item

    def test_count_at_threshold_applies(self, graduated_item, rng):
        config = ManagementPenaltyConfig(management_count_threshold=3)
        penalized = apply_management_penalty(graduated_item, 3, config, rng)
        assert penalized.next_review > graduated_item.next_review
        assert penalized.management_count == 3

    def test_unscheduled_item_is_noop(self, rng):
        item = initialize_new_item("n")
        assert apply_management_penalty(item, 10, rng=rng) is item

    def test_shift_within_bounds(self, graduated_item):
        config = ManagementPenaltyConfig(management_count_threshold=3, adaptive_fuzzing=False)
        for seed in range(20):
            # count == threshold is the first penalized count
            penalized = apply_management_penalty(graduated_item, 3, config, Random(seed))
            shift = (penalized.next_review - graduated_item.next_review).total_seconds() / 3600
            assert 4.0 <= shift <= 8.0

    def test_seeded_draw_is_reproducible(self, graduated_item):
        first = apply_management_penalty(graduated_item, 4, rng=Random(7))
        second = apply_management_penalty(graduated_item, 4, rng=Random(7))
        assert first.next_review == second.next_review

    def test_adaptive_floor_reaches_max(self, graduated_item, rng):
        penalized = apply_management_penalty(graduated_item, 6, rng=rng)
        assert penalized.next_review - graduated_item.next_review == timedelta(hours=8)

    def test_adaptive_floor_rises(self, graduated_item):
        config = ManagementPenaltyConfig()
        shifts = []
        for count in (3, 4, 5):
            penalized = apply_management_penalty(graduated_item, count, config, Random(0))
            shifts.append(penalized.next_review - graduated_item.next_review)
        assert shifts[0] < shifts[1] < shifts[2]

    def test_only_next_review_moves(self, graduated_item, rng):
        penalized = apply_management_penalty(graduated_item, 5, rng=rng)
        assert penalized is not graduated_item
        assert penalized.next_review > graduated_item.next_review
        assert penalized.stability == graduated_item.stability
        assert penalized.difficulty == graduated_item.difficulty
        assert penalized.last_review == graduated_item.last_review
        assert penalized.management_count == 5
        assert graduated_item.management_count == 0

    def test_invalid_config(self):
        with pytest.raises(ValidationError):
            ManagementPenaltyConfig(fuzzing_hours_min=0)
        with pytest.raises(ValidationError):
            ManagementPenaltyConfig(fuzzing_hours_min=8, fuzzing_hours_max=4)

    def test_negative_count(self, graduated_item):
        with pytest.raises(ValidationError):
            apply_management_penalty(graduated_item, -1)


class TestContentChange:

    def test_unchanged(self):
        change = detect_content_change("What is the capital of France?", "What is the capital of France?")
        assert change.change_percent == 0.0
        assert not change.is_significant

    def test_small_edit(self):
        change = detect_content_change("abcdefghij", "abcdefghXY")
        assert change.change_percent == pytest.approx(20.0)
        assert not change.is_significant
        assert not change.should_reset

    def test_rewrite_resets(self):
        change = detect_content_change("hello", "world")
        assert change.change_percent == pytest.approx(80.0)
        assert change.is_significant
        assert change.should_reset

    def test_edit_distance_scaled_by_longer_text(self):
        change = detect_content_change("kitten", "sitting")
        assert change.change_percent == pytest.approx(300 / 7)
        assert change.is_significant
        assert not change.should_reset

    def test_content_added_from_empty(self):
        change = detect_content_change("", "Paris")
        assert change.change_percent == pytest.approx(100.0)
        assert change.should_reset

    def test_reset_item(self, now, graduated_item):
        item = replace(graduated_item, lapses=3, management_count=5)
        fresh = reset_item(item, now)
        assert fresh.item_id == item.item_id
        assert fresh.phase == Phase.NEW
        assert fresh.stability is None
        assert fresh.lapses == 0
        assert fresh.next_review == now
