"""
Card sources other than a paste: Markdown notes, deck JSON and Anki
packages, plus picking a parser from the file extension.

Every parser yields the same records as utils.utils.parse_text:
{'term', 'definition'} plus any of 'example', 'notes', 'hyperlink'.
"""

import json
import logging
import re
import sqlite3
import tempfile
import zipfile
import zlib
from contextlib import closing
from pathlib import Path
from typing import Any, Callable

import config
from utils.errors import IOFailure, SourceError
from utils.utils import OPTIONAL_FIELDS, parse_csv, parse_paste, to_record

logger = logging.getLogger(__name__)

MARKDOWN_SUFFIXES = ('.md', '.markdown')

# Preferred first; collection.anki21b is zstd-compressed by newer Anki and
# only opens when it happens to be plain SQLite.
ANKI_COLLECTIONS = ('collection.anki21', 'collection.anki2', 'collection.anki21b')
ANKI_FIELD_SEPARATOR = '\x1f'

_SOUND_TAG = re.compile(r'\[sound:[^\]]*\]')
_TTS_BLOCK = re.compile(r'\[anki:tts[^\]]*\].*?\[/anki:tts\]', re.DOTALL)
_TABLE_SEPARATOR = re.compile(r'^\|?\s*:?-+:?\s*(\|\s*:?-+:?\s*)*\|?$')


# ── Dispatch ──────────────────────────────────────────────────

def read_deck_file(path: str | Path) -> dict[str, Any]:
    """
    Parse a deck source picked by extension.

    .apkg (or an unzipped Anki folder) -> Anki notes
    .json                              -> deck JSON
    .csv                               -> CSV rows
    .md / .markdown                    -> Markdown layouts
    anything else                      -> one card per line, as pasted

    returns: {'name': str | None, 'description': str | None, 'cards': [record, ...]}
    """
    path = Path(path)
    suffix = path.suffix.lower()

    if path.is_dir() or suffix == '.apkg':
        return {'name': None, 'description': None, 'cards': parse_apkg(path)}
    if suffix == '.xml':
        raise SourceError(f"{path.name}: XML decks are not supported")

    try:
        raw = path.read_text(encoding='utf-8-sig')
    except UnicodeDecodeError as e:
        raise SourceError(f"{path.name} is not UTF-8 text: {e}") from e
    except OSError as e:
        raise IOFailure(f"could not read {path}: {e}") from e

    if suffix == '.json':
        return parse_json_deck(raw)
    if suffix == '.csv':
        cards = parse_csv(raw)
    elif suffix in MARKDOWN_SUFFIXES:
        cards = parse_markdown(raw)
    else:
        cards = parse_paste(raw)
    return {'name': None, 'description': None, 'cards': cards}


# ── Deck JSON ─────────────────────────────────────────────────

def parse_json_deck(raw: str) -> dict[str, Any]:
    """
    A whole deck as JSON:

        {"name": "...", "description": "...", "cards": [{"term": ..., "definition": ...}, ...]}

    Card ids in the file are ignored; order is kept.
    """
    try:
        data = json.loads(raw)
    except json.JSONDecodeError as e:
        raise SourceError(f"deck JSON does not parse: {e}") from e
    if not isinstance(data, dict) or not isinstance(data.get('cards'), list):
        raise SourceError("deck JSON must be an object with a 'cards' list")

    for key in ('name', 'description'):
        if data.get(key) is not None and not isinstance(data[key], str):
            raise SourceError(f"deck JSON {key!r} must be a string")

    cards = []
    for index, item in enumerate(data['cards']):
        if not isinstance(item, dict):
            raise SourceError(f"deck JSON card {index} is not an object")
        fields = ('term', 'definition') + OPTIONAL_FIELDS
        values = [item.get(name) for name in fields]
        if any(v is not None and not isinstance(v, str) for v in values):
            raise SourceError(f"deck JSON card {index} has a non-string field")
        record = to_record([(v or '').strip() for v in values])
        if record is None:
            logger.warning(f"Skipping deck JSON card {index}: missing term or definition")
            continue
        cards.append(record)

    return {'name': data.get('name') or None, 'description': data.get('description') or None, 'cards': cards}


# ── Markdown ──────────────────────────────────────────────────

def parse_markdown(raw: str) -> list[dict[str, str]]:
    """
    Try each supported Markdown layout, strictest first, and return the
    cards of the first one that yields any:

        ## Term                     heading, next line is the definition
        - Term: definition          bullet list
        | Term | Definition |       table (first row is the header)
        ```card                     fenced blocks with Term:/Definition: lines
        **Term** — definition       glossary
        Term: definition            bare lines
    """
    for layout in _MARKDOWN_LAYOUTS:
        cards = layout(raw)
        if cards:
            return cards
    return []


def _is_block_syntax(line: str) -> bool:
    return line.startswith(('- ', '* ', '|', '```'))


def _md_headings(raw: str) -> list[dict[str, str]]:
    cards = []
    term = None
    for line in raw.splitlines():
        line = line.strip()
        if line.startswith('#'):
            term = line.lstrip('#').strip()
        elif line and term is not None and not _is_block_syntax(line):
            record = to_record([term, line])
            if record:
                cards.append(record)
            term = None
    return cards


def _md_bullets(raw: str) -> list[dict[str, str]]:
    cards = []
    for line in raw.splitlines():
        line = line.strip()
        if not line.startswith(('- ', '* ')):
            continue
        term, sep, definition = line[2:].partition(':')
        record = to_record([term.strip(), definition.strip()]) if sep else None
        if record:
            cards.append(record)
    return cards


def _md_table(raw: str) -> list[dict[str, str]]:
    lines = [line.strip() for line in raw.splitlines() if line.strip()]
    if not lines or not lines[0].startswith('|'):
        return []

    cards = []
    for line in lines[1:]:
        if _TABLE_SEPARATOR.match(line) or not line.startswith('|'):
            continue
        cells = [cell.strip() for cell in line.strip('|').split('|')]
        record = to_record(cells)
        if record:
            cards.append(record)
    return cards


def _md_card_blocks(raw: str) -> list[dict[str, str]]:
    cards = []
    block = None
    for line in raw.splitlines():
        line = line.strip()
        if line == '```card':
            block = {}
        elif line == '```':
            if block is not None:
                record = to_record([block.get(name, '') for name in ('term', 'definition') + OPTIONAL_FIELDS])
                if record:
                    cards.append(record)
            block = None
        elif block is not None:
            key, sep, value = line.partition(':')
            if sep:
                block[key.strip().lower()] = value.strip()
    return cards


def _md_glossary(raw: str) -> list[dict[str, str]]:
    cards = []
    for line in raw.splitlines():
        line = line.strip()
        if not line.startswith('**'):
            continue
        term, sep, definition = line.partition('—')
        record = to_record([term.strip().strip('*').strip(), definition.strip()]) if sep else None
        if record:
            cards.append(record)
    return cards


def _md_colon_lines(raw: str) -> list[dict[str, str]]:
    cards = []
    for line in raw.splitlines():
        term, sep, definition = line.strip().partition(':')
        record = to_record([term.strip(), definition.strip()]) if sep else None
        if record:
            cards.append(record)
    return cards


_MARKDOWN_LAYOUTS: tuple[Callable[[str], list[dict[str, str]]], ...] = (
    _md_headings,
    _md_bullets,
    _md_table,
    _md_card_blocks,
    _md_glossary,
    _md_colon_lines,
)


# ── Anki packages ─────────────────────────────────────────────

def parse_apkg(path: str | Path) -> list[dict[str, str]]:
    """
    Cards from an Anki .apkg file or a folder it was unzipped into.

    The first note field is the term, the second the definition; sound tags
    and TTS blocks are dropped.
    """
    path = Path(path)
    if path.is_dir():
        for name in ANKI_COLLECTIONS:
            candidate = path / name
            if candidate.is_file():
                cards = _notes_from_collection(candidate)
                if cards is not None:
                    return _require_cards(path, cards)
        raise SourceError(f"{path} holds no readable Anki collection")

    with tempfile.TemporaryDirectory(prefix='mflash-apkg-', dir=config.TMP_DIR) as workdir:
        try:
            with zipfile.ZipFile(path) as zf:
                names = zf.namelist()
                for wanted in ANKI_COLLECTIONS:
                    for name in names:
                        if name.rsplit('/', 1)[-1] != wanted:
                            continue
                        target = Path(workdir) / wanted
                        target.write_bytes(zf.read(name))
                        cards = _notes_from_collection(target)
                        if cards is not None:
                            return _require_cards(path, cards)
        except (zipfile.BadZipFile, zlib.error, NotImplementedError, RuntimeError) as e:
            raise SourceError(f"{path.name} is not a readable Anki package: {e}") from e
        except OSError as e:
            raise IOFailure(f"could not read {path}: {e}") from e

    raise SourceError(f"{path.name} holds no readable Anki collection")


def _notes_from_collection(db_path: Path) -> list[dict[str, str]] | None:
    """Records from one collection file, or None if it is not usable SQLite."""
    try:
        with closing(sqlite3.connect(db_path)) as conn:
            rows = conn.execute('SELECT flds FROM notes ORDER BY id').fetchall()
    except sqlite3.DatabaseError as e:
        logger.debug(f"Skipping {db_path.name}: {e}")
        return None

    cards = []
    for (fields,) in rows:
        parts = [strip_anki_markup(part).strip() for part in (fields or '').split(ANKI_FIELD_SEPARATOR)]
        record = to_record(parts[:2])
        if record:
            cards.append(record)
    return cards


def _require_cards(path: Path, cards: list[dict[str, str]]) -> list[dict[str, str]]:
    if not cards:
        raise SourceError(f"{path.name}: no note has both a term and a definition")
    logger.info(f"Read {len(cards)} notes from {path.name}")
    return cards


def strip_anki_markup(text: str) -> str:
    return _TTS_BLOCK.sub('', _SOUND_TAG.sub('', text))
