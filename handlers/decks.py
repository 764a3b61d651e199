import logging
from datetime import datetime
from pathlib import Path
from typing import Any, Iterable

from container.codec import OpenDeck, export_deck
from database.models import Card, Deck, Manifest, Media, MediaBlob
from utils.constants import THEME_ENTRY, THUMBNAIL_ENTRY
from utils.errors import MediaFileMissing

logger = logging.getLogger(__name__)


def build_deck(
    records: Iterable[dict[str, Any]],
    deck_id: int,
    name: str,
    description: str | None = None,
    tags: Iterable[str] = (),
    lang_front: str | None = None,
    lang_back: str | None = None,
) -> tuple[Deck, list[Card]]:
    """
    Turn plain-text import records into a Deck and its Cards.

    Card ids count up from 1 and sort_order follows input order.
    """
    deck = Deck(
        id=deck_id,
        name=name,
        description=description,
        tags=list(tags),
        lang_front=lang_front,
        lang_back=lang_back,
    )
    cards = []
    for index, record in enumerate(records):
        cards.append(Card(
            id=index + 1,
            deck_id=deck_id,
            term=record['term'],
            definition=record['definition'],
            example=record.get('example'),
            notes=record.get('notes'),
            hyperlink=record.get('hyperlink'),
            sort_order=index,
        ))
    return deck, cards


def save_deck(
    opened: OpenDeck,
    destination: str | Path | None = None,
    now: datetime | None = None,
) -> Manifest:
    """
    Write an opened deck (including any reviews recorded since opening) back
    out as a container. Defaults to overwriting the file it came from.

    Media whose file was already absent stays absent; creation time and
    unknown manifest keys are carried over.
    """
    destination = Path(destination) if destination is not None else opened.source
    deck = opened.deck()

    blobs = [MediaBlob(media, _media_data(opened, media)) for media in opened.store.list_media()]
    manifest = export_deck(
        deck,
        opened.store.cards_in_order(deck.id),
        blobs,
        opened.store.list_review_states(),
        destination,
        thumbnail=opened.read_extra(THUMBNAIL_ENTRY),
        theme=opened.read_extra(THEME_ENTRY),
        created_at=opened.manifest.created_at_utc,
        manifest_extra=opened.manifest.extra,
        now=now,
    )
    logger.info(f"Saved deck {deck.id} to {destination}")
    return manifest


def _media_data(opened: OpenDeck, media: Media) -> bytes | None:
    try:
        return opened.read_media(media.file_name)
    except MediaFileMissing:
        return None
