"""
Tests for the review state machine, batch review and queue selection.
"""

from dataclasses import replace
from datetime import timedelta

import pytest

from recallcore.fsrs.config import LearningConfig, PolicyParams, SchedulerConfig
from recallcore.fsrs.constants import (
    Rating,
    REVIEW_STATE_NEW,
    REVIEW_STATE_LEARNING,
    REVIEW_STATE_REVIEW,
    REVIEW_STATE_RELEARNING,
)
from recallcore.fsrs.errors import ValidationError
from recallcore.fsrs.memory_state import ItemState, Phase, initialize_new_item
from recallcore.fsrs.scheduler import (
    BATCH_ERROR,
    BATCH_NOT_FOUND,
    BATCH_OK,
    cram_items,
    due_items,
    review_batch,
    schedule_review,
    should_apply_learning_to_lapse,
)

from conftest import InMemoryItemStore


def lapse_config(**kwargs):
    return SchedulerConfig(learning=LearningConfig(**kwargs))


class TestNewItems:
    """First rating of a never-seen item."""

    def test_first_again_enters_learning(self, now, params):
        result = schedule_review(initialize_new_item("a"), Rating.AGAIN, params, now)
        state = result.state
        assert state.phase == Phase.LEARNING
        assert state.short_stability_minutes == 5.0
        assert state.learning_review_count == 1
        assert state.next_review >= state.last_review + timedelta(minutes=1)
        assert state.lapses == 0

    def test_first_good_enters_learning(self, now, params):
        result = schedule_review(initialize_new_item("a"), 3, params, now)
        assert result.state.phase == Phase.LEARNING
        assert result.state.short_stability_minutes == 30.0
        assert result.interval_minutes == pytest.approx(4.8755, abs=1e-3)

    def test_short_term_disabled_goes_straight_to_long_term(self, now):
        params = PolicyParams(short_term_enabled=False)
        result = schedule_review(initialize_new_item("a"), Rating.GOOD, params, now)
        state = result.state
        assert state.phase == Phase.GRADUATED
        assert state.stability == pytest.approx(2.3)
        assert state.difficulty == pytest.approx(1.0)
        assert state.next_review == now + timedelta(days=2)

    def test_invalid_rating(self, now, params):
        for bad in (0, 5, "3", True, None):
            with pytest.raises(ValidationError):
                schedule_review(initialize_new_item("a"), bad, params, now)


class TestGraduation:

    def test_max_attempts(self, now, params, learning_item):
        item = replace(learning_item, learning_review_count=6)
        result = schedule_review(item, Rating.GOOD, params, now)
        state = result.state
        assert state.phase == Phase.GRADUATED
        assert state.short_stability_minutes is None
        assert state.learning_review_count == 0
        assert state.stability == pytest.approx(2.3)
        assert state.next_review == now + timedelta(days=2)

    def test_interval_reaches_cap(self, now, params):
        item = ItemState(
            item_id="long",
            short_stability_minutes=8000.0,
            learning_review_count=2,
            last_review=now - timedelta(hours=10),
        )
        result = schedule_review(item, Rating.GOOD, params, now)
        assert result.state.phase == Phase.GRADUATED
        assert result.log.phase_after == Phase.GRADUATED

    def test_relapsed_item_keeps_long_term_state(self, now, params):
        item = ItemState(
            item_id="relapsed",
            stability=3.0,
            difficulty=7.0,
            short_stability_minutes=30.0,
            learning_review_count=6,
            last_review=now - timedelta(minutes=20),
        )
        result = schedule_review(item, Rating.GOOD, params, now)
        assert result.state.phase == Phase.GRADUATED
        assert result.state.stability == 3.0
        assert result.state.difficulty == 7.0


class TestLapses:

    def test_relearn_by_default(self, now, params, graduated_item):
        result = schedule_review(graduated_item, Rating.AGAIN, params, now)
        state = result.state
        assert state.phase == Phase.LEARNING
        assert state.short_stability_minutes == 5.0
        assert state.learning_review_count == 1
        assert state.stability < graduated_item.stability
        assert state.lapses == 1
        assert state.next_review == now + timedelta(minutes=1)
        assert result.log.review_state == REVIEW_STATE_REVIEW

    def test_penalize_strategy_stays_graduated(self, now, params, graduated_item):
        config = lapse_config(relapse_strategy="penalize")
        result = schedule_review(graduated_item, Rating.AGAIN, params, now, config)
        assert result.state.phase == Phase.GRADUATED
        assert result.state.stability < graduated_item.stability
        assert result.state.next_review >= now + timedelta(days=1)
        assert result.state.lapses == 1

    def test_policy_off(self, now, params, graduated_item):
        config = lapse_config(apply_to_lapses="off")
        result = schedule_review(graduated_item, Rating.AGAIN, params, now, config)
        assert result.state.phase == Phase.GRADUATED
        assert result.state.lapses == 1

    def test_within_days(self, now, graduated_item):
        config = LearningConfig(apply_to_lapses="within_days", lapse_within_days=3)
        assert not should_apply_learning_to_lapse(graduated_item, now, config)
        recent = replace(graduated_item, last_review=now - timedelta(days=2))
        assert should_apply_learning_to_lapse(recent, now, config)

    def test_within_days_without_window(self, now, graduated_item):
        config = LearningConfig(apply_to_lapses="within_days")
        assert not should_apply_learning_to_lapse(graduated_item, now, config)

    def test_relearning_log_state(self, now, params, graduated_item):
        relapsed = schedule_review(graduated_item, Rating.AGAIN, params, now).state
        later = now + timedelta(minutes=2)
        result = schedule_review(relapsed, Rating.GOOD, params, later)
        assert result.log.review_state == REVIEW_STATE_RELEARNING


class TestSchedulingInvariants:

    @pytest.mark.parametrize("rating", list(Rating))
    @pytest.mark.parametrize("shape", ["new", "learning", "graduated", "fragile", "tiny_short"])
    def test_next_review_in_future(self, now, params, rating, shape):
        items = {
            "new": initialize_new_item("x"),
            "learning": ItemState(
                item_id="x", short_stability_minutes=30.0, learning_review_count=1,
                last_review=now - timedelta(minutes=3),
            ),
            "graduated": ItemState(
                item_id="x", stability=12.0, difficulty=5.0, last_review=now - timedelta(days=10),
            ),
            "fragile": ItemState(
                item_id="x", stability=0.01, difficulty=10.0, last_review=now - timedelta(hours=1),
            ),
            "tiny_short": ItemState(
                item_id="x", short_stability_minutes=0.001, learning_review_count=1,
                last_review=now - timedelta(seconds=5),
            ),
        }
        result = schedule_review(items[shape], rating, params, now)
        state = result.state
        assert state.last_review == now
        assert state.next_review >= now + timedelta(minutes=1)
        if state.stability is not None:
            assert 0.01 <= state.stability <= 36500
            assert 1.0 <= state.difficulty <= 10.0

    def test_repeated_easy_never_relearns(self, now, params, graduated_item):
        config = lapse_config(apply_to_lapses="off")
        state = graduated_item
        clock = now
        for _ in range(12):
            state = schedule_review(state, Rating.EASY, params, clock, config).state
            assert state.phase == Phase.GRADUATED
            assert state.short_stability_minutes is None
            clock = state.next_review

    def test_same_day_review_keeps_stability(self, now, params, graduated_item):
        item = replace(graduated_item, last_review=now - timedelta(hours=2))
        result = schedule_review(item, Rating.GOOD, params, now)
        assert result.state.stability == pytest.approx(12.0)

    def test_spaced_success_grows_stability(self, now, params, graduated_item):
        result = schedule_review(graduated_item, Rating.GOOD, params, now)
        assert result.state.stability > graduated_item.stability
        assert result.state.review_count == graduated_item.review_count + 1

    def test_input_not_mutated(self, now, params, graduated_item, learning_item):
        for item in (graduated_item, learning_item):
            before = replace(item)
            schedule_review(item, Rating.AGAIN, params, now)
            assert item == before

    def test_management_count_untouched(self, now, params, graduated_item):
        item = replace(graduated_item, management_count=4)
        assert schedule_review(item, Rating.GOOD, params, now).state.management_count == 4

    def test_naive_now_treated_as_utc(self, now, params, graduated_item):
        naive = now.replace(tzinfo=None)
        assert schedule_review(graduated_item, Rating.GOOD, params, naive).state.last_review == now


class TestReviewLog:

    def test_new_item_log(self, now, params):
        log = schedule_review(initialize_new_item("a"), Rating.GOOD, params, now, review_duration_ms=4200).log
        assert log.item_id == "a"
        assert log.rating == Rating.GOOD
        assert log.review_time == now
        assert log.retrievability_before is None
        assert log.review_state == REVIEW_STATE_NEW
        assert log.phase_before == Phase.NEW
        assert log.phase_after == Phase.LEARNING
        assert log.review_duration_ms == 4200
        assert log.short_stability_after == 30.0

    def test_learning_log(self, now, params, learning_item):
        log = schedule_review(learning_item, Rating.GOOD, params, now).log
        assert log.review_state == REVIEW_STATE_LEARNING
        assert 0.0 < log.retrievability_before < 1.0
        assert log.short_stability_before == 30.0

    def test_graduated_log(self, now, params, graduated_item):
        result = schedule_review(graduated_item, Rating.GOOD, params, now)
        log = result.log
        assert log.elapsed_days == pytest.approx(10.0)
        assert log.stability_before == 12.0
        assert log.stability_after == result.state.stability
        assert log.scheduled_days == pytest.approx(result.interval_minutes / 1440)
        assert 0.85 < log.retrievability_before < 0.95

    def test_message(self, now, params, graduated_item):
        result = schedule_review(graduated_item, Rating.GOOD, params, now)
        assert result.message.startswith("Review")


class TestReviewBatch:

    def test_not_found_first_preserves_order(self, now, params, graduated_item):
        store = InMemoryItemStore([graduated_item])
        results = review_batch(store, [("missing", 3), ("graduated", 3)], params, now)
        assert len(results) == 2
        assert [r.item_id for r in results] == ["missing", "graduated"]
        assert results[0].status == BATCH_NOT_FOUND
        assert results[1].status == BATCH_OK
        assert results[1].ok
        assert store.items["graduated"].last_review == now
        assert len(store.logs) == 1

    def test_error_isolated(self, now, params, graduated_item, learning_item):
        store = InMemoryItemStore([graduated_item, learning_item])
        results = review_batch(
            store, [("graduated", 9), ("learning", Rating.GOOD)], params, now
        )
        assert results[0].status == BATCH_ERROR
        assert results[0].error
        assert results[1].status == BATCH_OK
        assert store.items["graduated"] == graduated_item

    def test_store_failure_isolated(self, now, params, graduated_item, learning_item):
        class FlakyStore(InMemoryItemStore):
            def save_item(self, state):
                if state.item_id == "graduated":
                    raise RuntimeError("disk full")
                super().save_item(state)

        store = FlakyStore([graduated_item, learning_item])
        results = review_batch(store, [("graduated", 3), ("learning", 3)], params, now)
        assert [r.status for r in results] == [BATCH_ERROR, BATCH_OK]
        assert "disk full" in results[0].error

    def test_same_item_twice_applies_sequentially(self, now, params, learning_item):
        store = InMemoryItemStore([learning_item])
        results = review_batch(store, [("learning", 1), ("learning", 3)], params, now)
        assert results[0].state.short_stability_minutes == 5.0
        assert results[1].log.short_stability_before == 5.0


class TestQueues:

    def test_due_items(self, now, params, graduated_item, learning_item):
        stale = replace(graduated_item, stability=5.0)
        fresh = ItemState(
            item_id="fresh", stability=50.0, difficulty=5.0,
            last_review=now - timedelta(days=1), next_review=now + timedelta(days=49),
        )
        waiting = replace(learning_item, item_id="waiting", next_review=now + timedelta(minutes=5))
        queue = due_items(
            [stale, learning_item, fresh, waiting, initialize_new_item("new")], now, params
        )
        ids = [q.state.item_id for q in queue]
        assert set(ids) == {"graduated", "learning"}
        assert queue[0].retrievability <= queue[1].retrievability

    def test_cram_items_labels(self, now, params):
        def graduated(item_id, stability, days_ago):
            return ItemState(
                item_id=item_id, stability=stability, difficulty=5.0,
                last_review=now - timedelta(days=days_ago),
            )

        queue = cram_items(
            [graduated("safe", 100.0, 1), graduated("critical", 1.0, 10), graduated("optimal", 10.0, 10)],
            now, params,
        )
        assert [(q.state.item_id, q.label) for q in queue] == [
            ("critical", "critical"), ("optimal", "optimal"), ("safe", "safe"),
        ]

    def test_cram_limit(self, now, params, graduated_item):
        items = [replace(graduated_item, item_id=str(i)) for i in range(5)]
        assert len(cram_items(items, now, params, limit=3)) == 3
