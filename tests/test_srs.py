"""
Tests for utils/srs.py — pure Python, no DB, no archive.
"""
from datetime import datetime, timedelta, timezone

import pytest

from database.models import ReviewState
from utils.srs import (
    CORRECT, INCORRECT, DEFAULT_PARAMS, SchedulerParams,
    format_interval, is_due, parse_grade,
    schedule, schedule_all_grades, seed_state,
)

T0 = datetime(2024, 3, 1, 9, 0, tzinfo=timezone.utc)
DAY = timedelta(days=1)


# ── Shared helper ─────────────────────────────────────────────

def state(interval_days=0, ease_factor=2.5, reps=0, lapses=0, due=T0, last=None):
    return ReviewState(
        card_id=1,
        due_utc=due,
        interval_days=interval_days,
        ease_factor=ease_factor,
        reps=reps,
        lapses=lapses,
        last_review_utc=last,
    )


# ── Seeded state ──────────────────────────────────────────────

class TestSeed:
    def test_seed_defaults(self):
        s = seed_state(7, T0)
        assert s.card_id == 7
        assert s.interval_days == 0
        assert s.ease_factor == 2.5
        assert s.reps == 0
        assert s.lapses == 0
        assert s.last_review_utc is None
        assert s.due_utc == T0

    def test_seed_is_due_immediately(self):
        assert is_due(seed_state(1, T0), T0)

    def test_seed_uses_params_initial_ease(self):
        s = seed_state(1, T0, SchedulerParams(initial_ease=2.0))
        assert s.ease_factor == 2.0


# ── Correct answers ───────────────────────────────────────────

class TestCorrect:
    def test_first_correct_from_seed(self):
        r = schedule(seed_state(1, T0), CORRECT, T0)
        assert r.interval_days == 1
        assert r.reps == 1
        assert r.ease_factor == 2.6
        assert r.due_utc == T0 + DAY
        assert r.last_review_utc == T0

    def test_second_consecutive_correct(self):
        first = schedule(seed_state(1, T0), CORRECT, T0)
        second = schedule(first, CORRECT, T0 + DAY)
        assert second.interval_days == 3   # round(1 * 2.6)
        assert second.reps == 2
        assert second.ease_factor == 2.7
        assert second.due_utc == T0 + DAY + 3 * DAY

    def test_interval_uses_prior_ease(self):
        r = schedule(state(interval_days=10, ease_factor=2.0, reps=3), CORRECT, T0)
        assert r.interval_days == 20
        assert r.ease_factor == 2.1

    def test_half_rounds_up(self):
        # 1 * 2.5 = 2.5 -> 3, not banker's 2
        r = schedule(state(interval_days=1, ease_factor=2.5, reps=1), CORRECT, T0)
        assert r.interval_days == 3

    def test_ease_capped_at_ceiling(self):
        r = schedule(state(interval_days=5, ease_factor=3.0, reps=4), CORRECT, T0)
        assert r.ease_factor == 3.0

    def test_lapses_untouched(self):
        r = schedule(state(interval_days=5, lapses=2, reps=1), CORRECT, T0)
        assert r.lapses == 2

    def test_correct_never_due_before_last_review(self):
        r = schedule(state(interval_days=0, ease_factor=1.3), CORRECT, T0)
        assert r.due_utc > r.last_review_utc


# ── Incorrect answers ─────────────────────────────────────────

class TestIncorrect:
    def test_lapse_scenario(self):
        r = schedule(state(interval_days=10, ease_factor=2.0, reps=5, lapses=1), INCORRECT, T0)
        assert r.interval_days == 1
        assert r.reps == 0
        assert r.lapses == 2
        assert r.ease_factor == 1.8
        assert r.due_utc == T0 + DAY
        assert r.last_review_utc == T0

    def test_ease_never_below_floor(self):
        r = schedule(state(interval_days=3, ease_factor=1.4), INCORRECT, T0)
        assert r.ease_factor == 1.3
        r = schedule(r, INCORRECT, T0 + DAY)
        assert r.ease_factor == 1.3

    def test_recovery_after_lapse(self):
        lapsed = schedule(state(interval_days=10, ease_factor=2.0, reps=5), INCORRECT, T0)
        r = schedule(lapsed, CORRECT, T0 + DAY)
        assert r.reps == 1
        assert r.interval_days == 2   # round(1 * 1.8)


# ── Invariants ────────────────────────────────────────────────

class TestInvariants:
    @pytest.mark.parametrize('grades', [
        [CORRECT] * 8,
        [INCORRECT] * 8,
        [CORRECT, INCORRECT, CORRECT, CORRECT, INCORRECT, INCORRECT, CORRECT],
    ])
    def test_sequences_hold_invariants(self, grades):
        s = seed_state(1, T0)
        now = T0
        for grade in grades:
            s = schedule(s, grade, now)
            assert s.due_utc >= s.last_review_utc
            assert s.ease_factor >= DEFAULT_PARAMS.ease_floor
            assert s.interval_days >= 1
            now = s.due_utc

    def test_schedule_does_not_mutate_input(self):
        before = state(interval_days=4, ease_factor=2.2, reps=2)
        schedule(before, CORRECT, T0)
        assert before.interval_days == 4
        assert before.reps == 2

    def test_naive_now_is_treated_as_utc(self):
        r = schedule(seed_state(1, T0), CORRECT, datetime(2024, 3, 1, 9, 0))
        assert r.last_review_utc == T0

    def test_unknown_grade_rejected(self):
        with pytest.raises(ValueError):
            schedule(seed_state(1, T0), 'maybe', T0)

    def test_custom_params(self):
        params = SchedulerParams(correct_bonus=0.3, lapse_penalty=0.5, ease_floor=1.5)
        r = schedule(state(ease_factor=2.0), INCORRECT, T0, params)
        assert r.ease_factor == 1.5
        r = schedule(state(interval_days=2, ease_factor=2.0), CORRECT, T0, params)
        assert r.ease_factor == 2.3

    def test_lower_floor_is_honoured(self):
        params = SchedulerParams(ease_floor=1.1, lapse_penalty=0.5)
        r = state(ease_factor=1.5)
        for _ in range(3):
            r = schedule(r, INCORRECT, T0, params)
        assert r.ease_factor == 1.1

    @pytest.mark.parametrize('kwargs', [
        {'ease_floor': 0},
        {'ease_floor': 3.5},
        {'initial_ease': 1.0},
        {'lapse_interval_days': 0},
    ])
    def test_inconsistent_params_rejected(self, kwargs):
        with pytest.raises(ValueError):
            SchedulerParams(**kwargs)


# ── Helpers ───────────────────────────────────────────────────

class TestHelpers:
    def test_schedule_all_grades_has_both(self):
        preview = schedule_all_grades(state(interval_days=4, ease_factor=2.0), T0)
        assert set(preview) == {CORRECT, INCORRECT}
        assert preview[CORRECT].interval_days == 8
        assert preview[INCORRECT].interval_days == 1

    def test_is_due_boundary(self):
        s = state(due=T0)
        assert is_due(s, T0)
        assert not is_due(s, T0 - timedelta(seconds=1))

    @pytest.mark.parametrize('text, expected', [
        ('correct', CORRECT), ('CORRECT', CORRECT), (' y ', CORRECT), ('1', CORRECT),
        ('incorrect', INCORRECT), ('n', INCORRECT), ('0', INCORRECT),
    ])
    def test_parse_grade(self, text, expected):
        assert parse_grade(text) == expected

    @pytest.mark.parametrize('text', ['', 'good', 'again', '2'])
    def test_parse_grade_rejects_unknown(self, text):
        with pytest.raises(ValueError):
            parse_grade(text)

    @pytest.mark.parametrize('days, label', [
        (0, 'now'), (1, '1d'), (12, '12d'), (90, '3mo'), (548, '1.5y'),
    ])
    def test_format_interval(self, days, label):
        assert format_interval(days) == label
