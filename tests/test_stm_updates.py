"""
Tests for the short-term (exponential) learning-phase model.
"""

import math

import pytest

from recallcore.fsrs import stm_updates
from recallcore.fsrs.config import LearningConfig, ShortTermParams
from recallcore.fsrs.constants import Rating, S_SHORT_MAX


class TestShortRetrievability:

    def test_exponential_curve(self):
        assert stm_updates.calculate_short_retrievability(0, 30) == 1.0
        assert stm_updates.calculate_short_retrievability(30, 30) == pytest.approx(math.exp(-1))
        assert stm_updates.calculate_short_retrievability(60, 30) == pytest.approx(math.exp(-2))

    def test_non_positive_stability(self):
        assert stm_updates.calculate_short_retrievability(5, 0) == 0.0


class TestInitialValues:

    def test_structural_table(self):
        assert stm_updates.initial_short_stability(Rating.AGAIN) == 5.0
        assert stm_updates.initial_short_stability(Rating.HARD) == 15.0
        assert stm_updates.initial_short_stability(Rating.GOOD) == 30.0
        assert stm_updates.initial_short_stability(Rating.EASY) == 60.0
        assert stm_updates.short_stability_after_again() == 5.0

    def test_fitted_values_override(self):
        params = ShortTermParams(initial_by_rating={Rating.GOOD: 42.0}, after_again=8.0)
        assert stm_updates.initial_short_stability(Rating.GOOD, params) == 42.0
        assert stm_updates.initial_short_stability(Rating.HARD, params) == 15.0
        assert stm_updates.short_stability_after_again(params) == 8.0

    def test_fitted_values_clamped(self):
        params = ShortTermParams(
            initial_by_rating={Rating.GOOD: 500.0, Rating.AGAIN: 0.2},
            after_again=50.0,
            growth_by_rating={Rating.EASY: 5.0, Rating.HARD: 0.1},
        )
        assert stm_updates.initial_short_stability(Rating.GOOD, params) == 120.0
        assert stm_updates.initial_short_stability(Rating.AGAIN, params) == 1.0
        assert stm_updates.short_stability_after_again(params) == 30.0
        assert stm_updates.growth_factor(Rating.EASY, params) == 3.0
        assert stm_updates.growth_factor(Rating.HARD, params) == 0.5

    def test_non_finite_fitted_value_ignored(self):
        params = ShortTermParams(initial_by_rating={Rating.GOOD: float("nan")})
        assert stm_updates.initial_short_stability(Rating.GOOD, params) == 30.0


class TestUpdateShortStability:

    def test_elapsed_factor(self):
        assert stm_updates.elapsed_factor(0) == 1.0
        assert stm_updates.elapsed_factor(60) == pytest.approx(1 + 0.5 * math.log(2))
        assert stm_updates.elapsed_factor(100000) == 2.0

    def test_again_resets(self):
        assert stm_updates.update_short_stability(300.0, 20.0, Rating.AGAIN) == 5.0

    def test_growth_without_elapsed_bonus(self):
        assert stm_updates.update_short_stability(30.0, 0.0, Rating.HARD) == pytest.approx(34.5)
        assert stm_updates.update_short_stability(30.0, 0.0, Rating.GOOD) == pytest.approx(42.0)
        assert stm_updates.update_short_stability(30.0, 0.0, Rating.EASY) == pytest.approx(51.0)

    def test_capped_at_one_week(self):
        assert stm_updates.update_short_stability(9000.0, 600.0, Rating.EASY) == S_SHORT_MAX

    def test_floor(self):
        assert stm_updates.update_short_stability(0.001, 0.0, Rating.GOOD) == 1.0


class TestIntervals:

    @pytest.mark.parametrize("s_short", [1.0, 5.0, 30.0, 600.0])
    def test_interval_reproduces_target(self, s_short):
        interval = stm_updates.predict_interval_minutes(s_short, 0.85)
        r = stm_updates.calculate_short_retrievability(interval, s_short)
        assert r == pytest.approx(0.85)

    def test_clamp(self):
        assert stm_updates.clamp_interval_minutes(0.3, 1, 1440) == 1
        assert stm_updates.clamp_interval_minutes(5000, 1, 1440) == 1440

    def test_should_graduate(self):
        assert stm_updates.should_graduate(1440, 1.0)
        assert not stm_updates.should_graduate(1439, 1.0)


class TestApplyStmUpdate:

    def test_first_again(self):
        update = stm_updates.apply_stm_update(None, 0.0, Rating.AGAIN, 0, LearningConfig())
        assert update.short_stability_minutes == 5.0
        assert update.interval_minutes == 1.0
        assert not update.graduate

    def test_first_good(self):
        update = stm_updates.apply_stm_update(None, 0.0, Rating.GOOD, 0, LearningConfig())
        assert update.short_stability_minutes == 30.0
        assert update.interval_minutes == pytest.approx(30.0 * -math.log(0.85))
        assert not update.graduate

    def test_graduates_at_cap(self):
        update = stm_updates.apply_stm_update(8000.0, 600.0, Rating.GOOD, 2, LearningConfig())
        assert update.short_stability_minutes == S_SHORT_MAX
        assert update.interval_minutes == 1440
        assert update.graduate

    def test_graduates_after_max_attempts(self):
        config = LearningConfig(max_attempts_before_graduate=7)
        assert apply_good(config, learning_review_count=5).graduate is False
        assert apply_good(config, learning_review_count=6).graduate is True

    def test_again_never_graduates_on_attempts(self):
        config = LearningConfig(max_attempts_before_graduate=2)
        update = stm_updates.apply_stm_update(30.0, 5.0, Rating.AGAIN, 10, config)
        assert not update.graduate


def apply_good(config, learning_review_count):
    return stm_updates.apply_stm_update(30.0, 5.0, Rating.GOOD, learning_review_count, config)
