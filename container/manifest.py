"""
The container manifest: a JSON header summarising the deck inside a
.mflash archive.

It is derived from the deck store on every export and only ever
cross-checked on import; nothing in here touches storage.
"""

import json
import logging
from dataclasses import asdict, fields
from datetime import datetime
from typing import Any

from database.models import Deck, Manifest, as_utc, from_utc_text, to_rfc3339, utc_now
from utils.constants import CORE_VERSION, FORMAT_TAG, FORMAT_VERSION, SUPPORTED_VERSIONS
from utils.errors import IntegrityMismatch, MalformedManifest, UnsupportedFormat, UnsupportedVersion

logger = logging.getLogger(__name__)

_KNOWN_KEYS = {f.name for f in fields(Manifest)} - {'extra'}

# key -> accepted JSON types, for keys that must be present
_REQUIRED = {
    'format': (str,),
    'version': (int,),
    'deck_id': (int,),
    'name': (str,),
    'card_count': (int,),
    'created_at_utc': (str,),
    'updated_at_utc': (str,),
}

_OPTIONAL = {
    'description': (str,),
    'tags': (list,),
    'lang_front': (str,),
    'lang_back': (str,),
    'has_thumbnail': (bool,),
    'has_deck_media': (bool,),
    'min_core_version': (str,),
    'generator': (str,),
}


def build_manifest(
    deck: Deck,
    card_count: int,
    has_thumbnail: bool = False,
    has_deck_media: bool = False,
    generator: str | None = None,
    created_at: datetime | str | None = None,
    now: datetime | None = None,
    extra: dict[str, Any] | None = None,
) -> Manifest:
    """
    Build the manifest for a deck about to be packaged.

    `created_at` is kept from an earlier export when re-packaging; otherwise
    the deck is considered created now. updated_at is never earlier than
    created_at.
    """
    updated = as_utc(now) if now else utc_now()
    if created_at is None:
        created = updated
    elif isinstance(created_at, str):
        created = from_utc_text(created_at)
    else:
        created = as_utc(created_at)
    updated = max(updated, created)

    return Manifest(
        format=FORMAT_TAG,
        version=FORMAT_VERSION,
        deck_id=deck.id,
        name=deck.name,
        card_count=card_count,
        created_at_utc=to_rfc3339(created),
        updated_at_utc=to_rfc3339(updated),
        description=deck.description,
        tags=list(deck.tags),
        lang_front=deck.lang_front,
        lang_back=deck.lang_back,
        has_thumbnail=has_thumbnail,
        has_deck_media=has_deck_media,
        min_core_version=CORE_VERSION,
        generator=generator,
        extra=dict(extra or {}),
    )


def validate_manifest(manifest: Manifest, card_count: int | None = None) -> None:
    """
    Raise if the manifest is not something this version can open.

    Format and version are checked first and need nothing but the manifest;
    the card count check only runs once the caller has a database to count.
    """
    _check_compatible(manifest.format, manifest.version)
    if manifest.min_core_version and _version_tuple(manifest.min_core_version) > _version_tuple(CORE_VERSION):
        logger.warning(
            f"Container asks for core {manifest.min_core_version}, this is {CORE_VERSION}; opening anyway"
        )
    if card_count is not None and card_count != manifest.card_count:
        raise IntegrityMismatch(
            f"manifest says {manifest.card_count} cards, database holds {card_count}"
        )


def manifest_to_json(manifest: Manifest) -> bytes:
    """Canonical encoding: sorted keys, two-space indent, UTF-8, no null optionals."""
    data = {k: v for k, v in asdict(manifest).items() if k != 'extra' and v is not None}
    for key, value in manifest.extra.items():
        data.setdefault(key, value)
    return (json.dumps(data, ensure_ascii=False, indent=2, sort_keys=True) + '\n').encode('utf-8')


def manifest_from_json(raw: bytes | str) -> Manifest:
    try:
        data = json.loads(raw)
    except (json.JSONDecodeError, UnicodeDecodeError) as e:
        raise MalformedManifest(f"manifest is not valid JSON: {e}") from e
    if not isinstance(data, dict):
        raise MalformedManifest('manifest must be a JSON object')

    # Other formats and other versions have their own field sets; reject them
    # as such before holding them to the v1 layout.
    for key in ('format', 'version'):
        if key not in data:
            raise MalformedManifest(f"manifest is missing {key!r}")
        _check_type(key, data[key], _REQUIRED[key])
    _check_compatible(data['format'], data['version'])

    for key, types in _REQUIRED.items():
        if key not in data:
            raise MalformedManifest(f"manifest is missing {key!r}")
        _check_type(key, data[key], types)
    for key, types in _OPTIONAL.items():
        if data.get(key) is not None:
            _check_type(key, data[key], types)
    if not all(isinstance(tag, str) for tag in data.get('tags') or []):
        raise MalformedManifest("'tags' must be a list of strings")

    for key in ('created_at_utc', 'updated_at_utc'):
        try:
            from_utc_text(data[key])
        except ValueError as e:
            raise MalformedManifest(f"{key!r} is not an RFC3339 timestamp: {data[key]!r}") from e

    known = {k: v for k, v in data.items() if k in _KNOWN_KEYS and v is not None}
    known['tags'] = list(known.get('tags') or [])
    extra = {k: v for k, v in data.items() if k not in _KNOWN_KEYS}
    return Manifest(**known, extra=extra)


def _check_compatible(format_tag: str, version: int) -> None:
    if format_tag != FORMAT_TAG:
        raise UnsupportedFormat(f"expected format {FORMAT_TAG!r}, got {format_tag!r}")
    if version not in SUPPORTED_VERSIONS:
        raise UnsupportedVersion(
            f"unsupported container version {version} (supported: {list(SUPPORTED_VERSIONS)})"
        )


def _check_type(key: str, value: Any, types: tuple[type, ...]) -> None:
    # bool is an int subclass; never accept it for a numeric field
    if isinstance(value, bool) and bool not in types:
        raise MalformedManifest(f"{key!r} has wrong type {type(value).__name__}")
    if not isinstance(value, types):
        raise MalformedManifest(f"{key!r} has wrong type {type(value).__name__}")


def _version_tuple(text: str) -> tuple[int, ...]:
    parts = []
    for part in text.split('.'):
        digits = ''.join(ch for ch in part if ch.isdigit())
        parts.append(int(digits) if digits else 0)
    return tuple(parts)
