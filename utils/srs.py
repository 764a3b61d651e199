"""
Spaced repetition scheduler over ReviewState rows.

Two grades: 'correct' and 'incorrect'.

    incorrect -> lapses + 1, reps = 0, interval 1 day, ease - penalty (floored)
    correct   -> reps + 1, ease + bonus (capped), interval = prior interval * prior ease

A never-reviewed card starts at interval 0 / ease 2.5, so the first correct
answer schedules it one day out.

`schedule` is pure: it returns a new state and the caller persists it.
"""

import math
from dataclasses import dataclass, replace
from datetime import datetime, timedelta

from database.models import ReviewState, as_utc

# Grade constants
CORRECT = 'correct'
INCORRECT = 'incorrect'
GRADES = (CORRECT, INCORRECT)

_GRADE_ALIASES = {
    'correct': CORRECT, 'c': CORRECT, 'y': CORRECT, 'yes': CORRECT, '1': CORRECT,
    'incorrect': INCORRECT, 'i': INCORRECT, 'n': INCORRECT, 'no': INCORRECT, '0': INCORRECT,
}


@dataclass(frozen=True)
class SchedulerParams:
    ease_floor: float = 1.3
    ease_ceiling: float = 3.0
    correct_bonus: float = 0.1
    lapse_penalty: float = 0.2
    initial_ease: float = 2.5
    lapse_interval_days: int = 1

    def __post_init__(self):
        if not 0 < self.ease_floor <= self.ease_ceiling:
            raise ValueError(f"need 0 < ease_floor <= ease_ceiling, got {self.ease_floor} / {self.ease_ceiling}")
        if not self.ease_floor <= self.initial_ease <= self.ease_ceiling:
            raise ValueError(f"initial_ease {self.initial_ease} is outside [{self.ease_floor}, {self.ease_ceiling}]")
        if self.lapse_interval_days < 1:
            raise ValueError(f"lapse_interval_days must be at least 1, got {self.lapse_interval_days}")


DEFAULT_PARAMS = SchedulerParams()


def parse_grade(text: str) -> str:
    """Map user input onto a grade; anything unrecognised is a ValueError."""
    grade = _GRADE_ALIASES.get(str(text).strip().lower())
    if grade is None:
        raise ValueError(f"unknown grade {text!r} (expected one of: {', '.join(GRADES)})")
    return grade


def seed_state(card_id: int, now: datetime, params: SchedulerParams = DEFAULT_PARAMS) -> ReviewState:
    """State of a card that has never been reviewed; due immediately."""
    return ReviewState(
        card_id=card_id,
        due_utc=as_utc(now),
        interval_days=0,
        ease_factor=params.initial_ease,
        reps=0,
        lapses=0,
        last_review_utc=None,
    )


def schedule(
    state: ReviewState,
    grade: str,
    now: datetime,
    params: SchedulerParams = DEFAULT_PARAMS,
) -> ReviewState:
    """Given the prior state and a grade, return the next state."""
    if grade not in GRADES:
        raise ValueError(f"unknown grade {grade!r}")
    now = as_utc(now)

    if grade == INCORRECT:
        interval = params.lapse_interval_days
        return replace(
            state,
            due_utc=now + timedelta(days=interval),
            interval_days=interval,
            ease_factor=_clamp_ease(state.ease_factor - params.lapse_penalty, params),
            reps=0,
            lapses=state.lapses + 1,
            last_review_utc=now,
        )

    # Interval grows by the ease the card had before this answer
    interval = max(1, _round_half_up(state.interval_days * state.ease_factor))
    return replace(
        state,
        due_utc=now + timedelta(days=interval),
        interval_days=interval,
        ease_factor=_clamp_ease(state.ease_factor + params.correct_bonus, params),
        reps=state.reps + 1,
        last_review_utc=now,
    )


def schedule_all_grades(
    state: ReviewState,
    now: datetime,
    params: SchedulerParams = DEFAULT_PARAMS,
) -> dict[str, ReviewState]:
    """Preview the outcome of every grade."""
    return {grade: schedule(state, grade, now, params) for grade in GRADES}


def is_due(state: ReviewState, now: datetime) -> bool:
    return state.due_utc <= as_utc(now)


def _clamp_ease(ease: float, params: SchedulerParams) -> float:
    return round(max(params.ease_floor, min(params.ease_ceiling, ease)), 2)


def _round_half_up(value: float) -> int:
    # round() would send 2.5 to 2
    return math.floor(value + 0.5)


def format_interval(days: int) -> str:
    """Human-readable interval label."""
    if days <= 0:
        return "now"
    elif days < 30:
        return f"{days}d"
    elif days < 365:
        months = round(days / 30)
        return f"{months}mo"
    else:
        years = round(days / 365, 1)
        return f"{years}y"
