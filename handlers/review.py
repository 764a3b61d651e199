import logging
from datetime import datetime

from database.database import Store
from database.models import Card, ReviewState, utc_now
from utils.srs import DEFAULT_PARAMS, SchedulerParams, parse_grade, schedule


def record_review(
    store: Store,
    card_id: int,
    grade: str,
    now: datetime | None = None,
    params: SchedulerParams = DEFAULT_PARAMS,
) -> ReviewState:
    """
    Apply one graded answer to a card and persist the new state.

    `grade` is raw user input; it is validated here so the scheduler only
    ever sees a known grade. Raises NotFound for an unknown card.
    """
    grade = parse_grade(grade)
    now = now or utc_now()

    prior = store.get_review_state(card_id)
    new_state = schedule(prior, grade, now, params)
    store.update_review_state(card_id, new_state)

    logging.info(
        f"Card {card_id} graded {grade}: interval {prior.interval_days}d -> {new_state.interval_days}d, "
        f"ease {prior.ease_factor} -> {new_state.ease_factor}"
    )
    return new_state


def next_due(store: Store, deck_id: int, as_of: datetime | None = None) -> tuple[Card, ReviewState] | None:
    """The card to show next, or None when nothing is due."""
    due = store.due_cards(deck_id, as_of or utc_now())
    return due[0] if due else None
