from datetime import datetime, timedelta, timezone

import pytest

import config
from database.models import (
    Bound, Card, DECK_WIDE, Deck, Media, MediaBlob, ReviewState,
)
from utils.constants import MediaKind

T0 = datetime(2024, 3, 1, 9, 0, tzinfo=timezone.utc)


@pytest.fixture(autouse=True)
def isolated_tmp(tmp_path, monkeypatch):
    """Keep every ephemeral file under the test's own tmp dir."""
    work = tmp_path / 'work'
    work.mkdir()
    monkeypatch.setattr(config, 'TMP_DIR', str(work))
    return work


def make_deck(deck_id=1):
    return Deck(
        id=deck_id,
        name='Capitals',
        description='European capitals',
        tags=['geo', 'europe', 'a1'],
        lang_front='en',
        lang_back='fr',
    )


def make_cards(deck_id=1):
    return [
        Card(id=1, deck_id=deck_id, term='France', definition='Paris', sort_order=2),
        Card(id=2, deck_id=deck_id, term='Spain', definition='Madrid', sort_order=0,
             example='Madrid is big.', notes='Since 1561', hyperlink='https://example.org/madrid'),
        Card(id=3, deck_id=deck_id, term='Italy', definition='Rome', sort_order=1,
             extra={'difficulty': 'easy', 'hint': ['R']}),
        Card(id=4, deck_id=deck_id, term='Portugal', definition='Lisbon', sort_order=1),
    ]


def make_media():
    return [
        MediaBlob(Media(id=1, file_name='paris.png', kind=MediaKind.IMAGE, binding=Bound(1),
                        mime_type='image/png', alt_text='Eiffel tower', caption='Paris'), b'\x89PNG fake'),
        MediaBlob(Media(id=2, file_name='intro.mp3', kind=MediaKind.AUDIO, binding=DECK_WIDE,
                        mime_type='audio/mpeg'), b'ID3 fake audio'),
    ]


def make_states():
    return [
        ReviewState(card_id=1, due_utc=T0 + timedelta(days=3), interval_days=3, ease_factor=2.6,
                    reps=2, lapses=0, last_review_utc=T0),
        ReviewState(card_id=2, due_utc=T0 - timedelta(days=1), interval_days=1, ease_factor=1.8,
                    reps=0, lapses=1, last_review_utc=T0 - timedelta(days=2)),
        ReviewState(card_id=3, due_utc=T0 - timedelta(hours=1), interval_days=0, ease_factor=2.5),
        ReviewState(card_id=4, due_utc=T0 + timedelta(days=10, microseconds=250), interval_days=10,
                    ease_factor=2.2, reps=4, lapses=0, last_review_utc=T0),
    ]


@pytest.fixture()
def deck_parts():
    return make_deck(), make_cards(), make_media(), make_states()
