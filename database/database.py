import json
import logging
import sqlite3
from contextlib import contextmanager
from datetime import datetime
from pathlib import Path
from typing import Iterable, Iterator

from database.models import (
    Card, Deck, Media, ReviewState,
    Bound, DeckWide, media_binding,
    from_utc_text, to_utc_text, utc_now,
)
from database.schema import all_schemas, index_schemas, REQUIRED_TABLES
from utils.constants import MediaKind, SCHEMA_VERSION
from utils.errors import CorruptDatabase, IntegrityError, NotFound

logger = logging.getLogger(__name__)

CARD_COLUMNS = 'id, deck_id, term, definition, example, notes, hyperlink, sort_order, extra_json'
REVIEW_COLUMNS = 'card_id, due_utc, interval_days, ease_factor, reps, lapses, last_review_utc'


class Store:
    """
    The deck store: one SQLite file holding a single deck's cards, media
    references and review state.

    Each operation opens its own connection and runs as one transaction, so a
    failed write never leaves anything behind for the next reader.
    """

    def __init__(self, path: str | Path):
        self.path = Path(path)

    def __repr__(self) -> str:
        return f"Store({str(self.path)!r})"

    # DB CONNECTION ==============================================

    def _connect(self) -> sqlite3.Connection:
        conn = sqlite3.connect(self.path)
        conn.row_factory = sqlite3.Row
        conn.execute('PRAGMA foreign_keys = ON')
        return conn

    @contextmanager
    def transaction(self) -> Iterator[sqlite3.Connection]:
        conn = self._connect()
        try:
            yield conn
            conn.commit()
        except Exception:
            conn.rollback()
            raise
        finally:
            conn.close()

    @classmethod
    def create_empty(cls, path: str | Path) -> 'Store':
        """Create the schema and indexes in a new file, with no deck rows."""
        store = cls(path)
        with store.transaction() as conn:
            for ddl in all_schemas:
                conn.execute(ddl)
            for ddl in index_schemas:
                conn.execute(ddl)
            conn.execute(
                'INSERT OR REPLACE INTO meta (key, value) VALUES (?, ?)',
                ('schema_version', str(SCHEMA_VERSION))
            )
        logger.debug(f"Created empty deck store at {store.path}")
        return store

    @classmethod
    def attach(cls, path: str | Path) -> 'Store':
        """Open an existing store, checking it really is one we understand."""
        store = cls(path)
        if not store.path.is_file():
            raise CorruptDatabase(f"no database file at {store.path}")
        try:
            with store.transaction() as conn:
                check = conn.execute('PRAGMA quick_check').fetchone()
                if check is None or check[0] != 'ok':
                    raise CorruptDatabase(f"integrity check failed: {check[0] if check else 'no result'}")

                rows = conn.execute("SELECT name FROM sqlite_master WHERE type = 'table'").fetchall()
                missing = set(REQUIRED_TABLES) - {row['name'] for row in rows}
                if missing:
                    raise CorruptDatabase(f"missing tables: {', '.join(sorted(missing))}")

                row = conn.execute("SELECT value FROM meta WHERE key = 'schema_version'").fetchone()
        except sqlite3.DatabaseError as e:
            raise CorruptDatabase(f"unreadable database: {e}") from e

        if row is None:
            raise CorruptDatabase('meta.schema_version is missing')
        try:
            version = int(row['value'])
        except ValueError as e:
            raise CorruptDatabase(f"bad schema_version {row['value']!r}") from e
        if version != SCHEMA_VERSION:
            raise CorruptDatabase(f"unsupported schema_version {version}")
        return store

    def snapshot(self, destination: str | Path) -> Path:
        """Write a compact, self-contained copy of the database file."""
        destination = Path(destination)
        conn = self._connect()
        try:
            conn.execute('VACUUM INTO ?', (str(destination),))
        finally:
            conn.close()
        return destination

    # META COMMANDS ==============================================

    def get_meta(self, key: str) -> str | None:
        with self.transaction() as conn:
            row = conn.execute('SELECT value FROM meta WHERE key = ?', (key,)).fetchone()
            return row['value'] if row else None

    def set_meta(self, key: str, value: str) -> None:
        with self.transaction() as conn:
            conn.execute('INSERT OR REPLACE INTO meta (key, value) VALUES (?, ?)', (key, value))

    # POPULATE ===================================================

    def populate(
        self,
        deck: Deck,
        cards: Iterable[Card],
        media: Iterable[Media] = (),
        review_states: Iterable[ReviewState] = (),
        now: datetime | None = None,
    ) -> None:
        """
        Insert a whole deck in one transaction.

        Cards without a review state get the seeded default, due at `now`.
        Any broken reference or constraint rolls everything back and raises
        IntegrityError.
        """
        cards = list(cards)
        media = list(media)
        review_states = list(review_states)
        seeded_at = to_utc_text(now or utc_now())

        for item in media:
            if not isinstance(item.binding, (Bound, DeckWide)):
                raise IntegrityError(f"media {item.id} has no valid card/deck binding: {item.binding!r}")
            try:
                MediaKind(item.kind)
            except ValueError as e:
                raise IntegrityError(f"media {item.id} has unknown kind {item.kind!r}") from e

        try:
            with self.transaction() as conn:
                if conn.execute('SELECT COUNT(*) FROM deck').fetchone()[0]:
                    raise IntegrityError('store already holds a deck')

                conn.execute(
                    'INSERT INTO deck (id, name, description, tags, lang_front, lang_back) VALUES (?, ?, ?, ?, ?, ?)',
                    (deck.id, deck.name, deck.description, json.dumps(list(deck.tags), ensure_ascii=False),
                     deck.lang_front, deck.lang_back)
                )
                conn.executemany(
                    f'INSERT INTO card ({CARD_COLUMNS}) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)',
                    [_card_params(card) for card in cards]
                )
                conn.executemany(
                    '''INSERT INTO media (id, file_name, kind, mime_type, card_id, deck_wide, alt_text, caption)
                       VALUES (?, ?, ?, ?, ?, ?, ?, ?)''',
                    [_media_params(item) for item in media]
                )
                conn.executemany(
                    f'INSERT INTO review_state ({REVIEW_COLUMNS}) VALUES (?, ?, ?, ?, ?, ?, ?)',
                    [_review_params(state) for state in review_states]
                )
                # Every card gets exactly one review state
                conn.execute(
                    '''INSERT INTO review_state (card_id, due_utc)
                       SELECT c.id, ? FROM card c
                       LEFT JOIN review_state r ON r.card_id = c.id
                       WHERE r.card_id IS NULL''',
                    (seeded_at,)
                )
        except sqlite3.IntegrityError as e:
            raise IntegrityError(f"populate rejected: {e}") from e

        logger.info(f"Populated deck {deck.id} with {len(cards)} cards and {len(media)} media rows")

    # DECK / CARD COMMANDS =======================================

    def get_deck(self) -> Deck:
        with self.transaction() as conn:
            row = conn.execute(
                'SELECT id, name, description, tags, lang_front, lang_back FROM deck ORDER BY id LIMIT 1'
            ).fetchone()
        if row is None:
            raise NotFound('store holds no deck')
        return Deck(
            id=row['id'],
            name=row['name'],
            description=row['description'],
            tags=json.loads(row['tags']),
            lang_front=row['lang_front'],
            lang_back=row['lang_back'],
        )

    def card_count(self, deck_id: int | None = None) -> int:
        with self.transaction() as conn:
            if deck_id is None:
                return conn.execute('SELECT COUNT(*) FROM card').fetchone()[0]
            return conn.execute('SELECT COUNT(*) FROM card WHERE deck_id = ?', (deck_id,)).fetchone()[0]

    def get_card(self, card_id: int) -> Card:
        with self.transaction() as conn:
            row = conn.execute(f'SELECT {CARD_COLUMNS} FROM card WHERE id = ?', (card_id,)).fetchone()
        if row is None:
            raise NotFound(f"no card {card_id}")
        return _card_from_row(row)

    def cards_in_order(self, deck_id: int) -> list[Card]:
        """Display order: sort_order, then id."""
        with self.transaction() as conn:
            rows = conn.execute(
                f'SELECT {CARD_COLUMNS} FROM card WHERE deck_id = ? ORDER BY sort_order, id',
                (deck_id,)
            ).fetchall()
        return [_card_from_row(row) for row in rows]

    # MEDIA COMMANDS =============================================

    def list_media(self) -> list[Media]:
        with self.transaction() as conn:
            rows = conn.execute(
                '''SELECT id, file_name, kind, mime_type, card_id, deck_wide, alt_text, caption
                   FROM media ORDER BY id'''
            ).fetchall()
        return [_media_from_row(row) for row in rows]

    def media_for_card(self, card_id: int) -> list[Media]:
        with self.transaction() as conn:
            rows = conn.execute(
                '''SELECT id, file_name, kind, mime_type, card_id, deck_wide, alt_text, caption
                   FROM media WHERE card_id = ? ORDER BY id''',
                (card_id,)
            ).fetchall()
        return [_media_from_row(row) for row in rows]

    def has_deck_media(self) -> bool:
        with self.transaction() as conn:
            return conn.execute('SELECT 1 FROM media WHERE deck_wide = 1 LIMIT 1').fetchone() is not None

    # REVIEW COMMANDS ============================================

    def get_review_state(self, card_id: int) -> ReviewState:
        with self.transaction() as conn:
            row = conn.execute(
                f'SELECT {REVIEW_COLUMNS} FROM review_state WHERE card_id = ?', (card_id,)
            ).fetchone()
        if row is None:
            raise NotFound(f"no review state for card {card_id}")
        return _review_from_row(row)

    def list_review_states(self) -> list[ReviewState]:
        with self.transaction() as conn:
            rows = conn.execute(f'SELECT {REVIEW_COLUMNS} FROM review_state ORDER BY card_id').fetchall()
        return [_review_from_row(row) for row in rows]

    def due_cards(self, deck_id: int, as_of: datetime) -> list[tuple[Card, ReviewState]]:
        """Cards whose due_utc <= as_of, earliest due first."""
        card_cols = ', '.join(f'c.{col.strip()}' for col in CARD_COLUMNS.split(','))
        review_cols = ', '.join(f'r.{col.strip()} AS r_{col.strip()}' for col in REVIEW_COLUMNS.split(','))
        with self.transaction() as conn:
            rows = conn.execute(
                f'''SELECT {card_cols}, {review_cols}
                    FROM card c
                    JOIN review_state r ON r.card_id = c.id
                    WHERE c.deck_id = ? AND r.due_utc <= ?
                    ORDER BY r.due_utc, c.id
                ''',
                (deck_id, to_utc_text(as_of))
            ).fetchall()
        return [(_card_from_row(row), _review_from_row(row, prefix='r_')) for row in rows]

    def update_review_state(self, card_id: int, new_state: ReviewState) -> None:
        if new_state.card_id != card_id:
            raise ValueError(f"state for card {new_state.card_id} passed as update for card {card_id}")
        try:
            with self.transaction() as conn:
                cursor = conn.execute(
                    '''UPDATE review_state
                       SET due_utc = ?, interval_days = ?, ease_factor = ?,
                           reps = ?, lapses = ?, last_review_utc = ?
                       WHERE card_id = ?
                    ''',
                    _review_params(new_state)[1:] + (card_id,)
                )
                if cursor.rowcount == 0:
                    raise NotFound(f"no review state for card {card_id}")
        except sqlite3.IntegrityError as e:
            raise IntegrityError(f"review state update rejected: {e}") from e


# ROW MAPPING ================================================

def _card_params(card: Card) -> tuple:
    extra = json.dumps(card.extra, ensure_ascii=False, sort_keys=True) if card.extra is not None else None
    return (card.id, card.deck_id, card.term, card.definition, card.example,
            card.notes, card.hyperlink, card.sort_order, extra)


def _card_from_row(row: sqlite3.Row) -> Card:
    return Card(
        id=row['id'],
        deck_id=row['deck_id'],
        term=row['term'],
        definition=row['definition'],
        example=row['example'],
        notes=row['notes'],
        hyperlink=row['hyperlink'],
        sort_order=row['sort_order'],
        extra=json.loads(row['extra_json']) if row['extra_json'] is not None else None,
    )


def _media_params(item: Media) -> tuple:
    return (item.id, item.file_name, MediaKind(item.kind).value, item.mime_type,
            item.card_id, int(item.deck_wide), item.alt_text, item.caption)


def _media_from_row(row: sqlite3.Row) -> Media:
    return Media(
        id=row['id'],
        file_name=row['file_name'],
        kind=MediaKind(row['kind']),
        binding=media_binding(row['card_id'], row['deck_wide']),
        mime_type=row['mime_type'],
        alt_text=row['alt_text'],
        caption=row['caption'],
    )


def _review_params(state: ReviewState) -> tuple:
    return (state.card_id, to_utc_text(state.due_utc), state.interval_days, state.ease_factor,
            state.reps, state.lapses, to_utc_text(state.last_review_utc))


def _review_from_row(row: sqlite3.Row, prefix: str = '') -> ReviewState:
    return ReviewState(
        card_id=row[f'{prefix}card_id'],
        due_utc=from_utc_text(row[f'{prefix}due_utc']),
        interval_days=row[f'{prefix}interval_days'],
        ease_factor=row[f'{prefix}ease_factor'],
        reps=row[f'{prefix}reps'],
        lapses=row[f'{prefix}lapses'],
        last_review_utc=from_utc_text(row[f'{prefix}last_review_utc']),
    )
