"""
Plain value types moved between the deck store, the scheduler and the
container codec.

Timestamps are timezone-aware UTC datetimes in memory and RFC3339 text
('...Z') on disk.
"""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any

from utils.constants import DB_UTC_FORMAT, MediaKind, UTC_FORMAT
from utils.errors import IntegrityError


# ── Time helpers ──────────────────────────────────────────────

def utc_now() -> datetime:
    return datetime.now(timezone.utc).replace(microsecond=0)


def as_utc(value: datetime) -> datetime:
    """Naive datetimes are taken to already be UTC."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def to_utc_text(value: datetime | None) -> str | None:
    """Fixed-width text so that string order in SQL equals time order."""
    if value is None:
        return None
    return as_utc(value).strftime(DB_UTC_FORMAT)


def to_rfc3339(value: datetime) -> str:
    return as_utc(value).strftime(UTC_FORMAT)


def from_utc_text(text: str | None) -> datetime | None:
    if text is None:
        return None
    if text.endswith('Z'):
        text = text[:-1] + '+00:00'
    return as_utc(datetime.fromisoformat(text))


# ── Deck / Card ───────────────────────────────────────────────

@dataclass
class Deck:
    id: int
    name: str
    description: str | None = None
    tags: list[str] = field(default_factory=list)
    lang_front: str | None = None
    lang_back: str | None = None


@dataclass
class Card:
    id: int
    deck_id: int
    term: str
    definition: str
    example: str | None = None
    notes: str | None = None
    hyperlink: str | None = None
    sort_order: int = 0
    extra: dict[str, Any] | None = None


# ── Media ─────────────────────────────────────────────────────

@dataclass(frozen=True)
class Bound:
    """Media attached to a single card."""
    card_id: int


@dataclass(frozen=True)
class DeckWide:
    """Media that belongs to the deck as a whole (cover art, intro audio)."""


DECK_WIDE = DeckWide()


def media_binding(card_id: int | None, deck_wide: bool | int) -> Bound | DeckWide:
    """Decode the (card_id, deck_wide) column pair; exactly one must be set."""
    if card_id is not None and not deck_wide:
        return Bound(card_id)
    if card_id is None and deck_wide:
        return DECK_WIDE
    raise IntegrityError(
        f"media must be either card-bound or deck-wide (card_id={card_id}, deck_wide={deck_wide})"
    )


@dataclass
class Media:
    id: int
    file_name: str
    kind: MediaKind
    binding: Bound | DeckWide
    mime_type: str | None = None
    alt_text: str | None = None
    caption: str | None = None

    @property
    def card_id(self) -> int | None:
        return self.binding.card_id if isinstance(self.binding, Bound) else None

    @property
    def deck_wide(self) -> bool:
        return isinstance(self.binding, DeckWide)


@dataclass
class MediaBlob:
    """A media row plus its file content; data is None when the file is absent."""
    media: Media
    data: bytes | None


# ── Review state ──────────────────────────────────────────────

@dataclass(frozen=True)
class ReviewState:
    card_id: int
    due_utc: datetime
    interval_days: int = 0
    ease_factor: float = 2.5
    reps: int = 0
    lapses: int = 0
    last_review_utc: datetime | None = None


# ── Manifest ──────────────────────────────────────────────────

@dataclass
class Manifest:
    format: str
    version: int
    deck_id: int
    name: str
    card_count: int
    created_at_utc: str
    updated_at_utc: str
    description: str | None = None
    tags: list[str] = field(default_factory=list)
    lang_front: str | None = None
    lang_back: str | None = None
    has_thumbnail: bool = False
    has_deck_media: bool = False
    min_core_version: str | None = None
    generator: str | None = None
    # Keys this version does not know about, kept so a re-export can carry them
    extra: dict[str, Any] = field(default_factory=dict)
