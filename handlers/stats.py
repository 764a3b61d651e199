from datetime import datetime, timedelta
from typing import Any

from database.database import Store
from database.models import as_utc


def deck_stats(store: Store, deck_id: int, now: datetime) -> dict[str, Any]:
    """Card totals for one deck as of `now`."""
    now = as_utc(now)
    cards = {card.id for card in store.cards_in_order(deck_id)}
    states = [s for s in store.list_review_states() if s.card_id in cards]

    total = len(states)
    return {
        'total': total,
        'new': sum(1 for s in states if s.last_review_utc is None),
        'due': sum(1 for s in states if s.due_utc <= now),
        'lapsed': sum(1 for s in states if s.lapses > 0),
        'mean_ease': round(sum(s.ease_factor for s in states) / total, 2) if total else None,
    }


def forecast(store: Store, deck_id: int, now: datetime, days: int = 7) -> list[dict[str, Any]]:
    """
    Cards falling due on each of `days` UTC days, starting today.

    Cards already due as of `now` are not counted.
    """
    now = as_utc(now)
    cards = {card.id for card in store.cards_in_order(deck_id)}
    counts: dict[str, int] = {}
    for state in store.list_review_states():
        if state.card_id in cards and state.due_utc > now:
            day = state.due_utc.date().isoformat()
            counts[day] = counts.get(day, 0) + 1

    today = now.date()
    return [
        {'day': (today + timedelta(d)).isoformat(), 'count': counts.get((today + timedelta(d)).isoformat(), 0)}
        for d in range(days)
    ]
