"""
Packing and unpacking .mflash containers.

A container is a ZIP archive:

    manifest.json     JSON header, see container.manifest
    deck.sqlite       snapshot of the deck store
    media/<name>      one entry per media file, <name> = media.file_name
    thumbnail.png     optional
    theme.toml        optional, carried along untouched

Export builds the store in a private temp directory, snapshots it, writes
the archive next to the destination and renames it into place, so the
destination is either the complete new container or whatever was there
before. Open validates everything before handing back an OpenDeck, which
owns the extracted database until it is closed.
"""

import logging
import os
import sqlite3
import stat
import tempfile
import zipfile
import zlib
from datetime import datetime
from pathlib import Path
from typing import Any, Iterable

import config
from container.manifest import build_manifest, manifest_from_json, manifest_to_json, validate_manifest
from database.database import Store
from database.models import Card, Deck, Manifest, Media, MediaBlob, ReviewState
from utils.constants import (
    DATABASE_ENTRY, MANIFEST_ENTRY, MEDIA_PREFIX,
    OPTIONAL_ENTRIES, THEME_ENTRY, THUMBNAIL_ENTRY,
)
from utils.errors import (
    CorruptDatabase, IOFailure, IntegrityError, IntegrityMismatch, MediaFileMissing,
    MissingDatabase, MissingManifest, NotAContainer, NotFound,
)

logger = logging.getLogger(__name__)


# EXPORT =====================================================

def export_deck(
    deck: Deck,
    cards: Iterable[Card],
    media_blobs: Iterable[MediaBlob],
    review_states: Iterable[ReviewState],
    destination: str | Path,
    *,
    thumbnail: bytes | None = None,
    theme: bytes | None = None,
    generator: str | None = None,
    created_at: datetime | str | None = None,
    manifest_extra: dict[str, Any] | None = None,
    now: datetime | None = None,
) -> Manifest:
    """
    Package a deck into a container at `destination` and return its manifest.

    Raises IntegrityError for bad deck data and IOFailure for storage
    problems; in both cases `destination` is left as it was.
    """
    destination = Path(destination)
    cards = list(cards)
    media_blobs = list(media_blobs)
    for blob in media_blobs:
        _check_media_name(blob.media.file_name)

    try:
        with tempfile.TemporaryDirectory(prefix='mflash-export-', dir=config.TMP_DIR) as workdir:
            logger.debug(f"Building deck store in {workdir}")
            store = Store.create_empty(Path(workdir) / 'build.sqlite')
            store.populate(deck, cards, [blob.media for blob in media_blobs], review_states, now=now)

            manifest = build_manifest(
                deck,
                card_count=store.card_count(),
                has_thumbnail=thumbnail is not None,
                has_deck_media=store.has_deck_media(),
                generator=generator or config.GENERATOR,
                created_at=created_at,
                now=now,
                extra=manifest_extra,
            )
            snapshot = store.snapshot(Path(workdir) / DATABASE_ENTRY)

            extras = {THUMBNAIL_ENTRY: thumbnail, THEME_ENTRY: theme}
            _write_archive(destination, manifest_to_json(manifest), snapshot, media_blobs, extras)
    except OSError as e:
        raise IOFailure(f"could not write {destination}: {e}") from e
    except sqlite3.Error as e:
        raise IOFailure(f"could not build deck database: {e}") from e

    logger.info(f"Wrote {destination} ({manifest.card_count} cards, {len(media_blobs)} media)")
    return manifest


def _write_archive(
    destination: Path,
    manifest_bytes: bytes,
    snapshot: Path,
    media_blobs: list[MediaBlob],
    extras: dict[str, bytes | None],
) -> None:
    tmp_path = None
    try:
        with tempfile.NamedTemporaryFile(
            'wb', dir=destination.parent, prefix=f'.{destination.name}.', suffix='.part', delete=False
        ) as tmp:
            tmp_path = Path(tmp.name)
            with zipfile.ZipFile(tmp, 'w', compression=zipfile.ZIP_DEFLATED) as zf:
                zf.writestr(MANIFEST_ENTRY, manifest_bytes)
                zf.write(snapshot, DATABASE_ENTRY)
                for blob in media_blobs:
                    if blob.data is not None:
                        zf.writestr(MEDIA_PREFIX + blob.media.file_name, blob.data)
                for name, data in extras.items():
                    if data is not None:
                        zf.writestr(name, data)
            tmp.flush()
            os.fsync(tmp.fileno())
        os.chmod(tmp_path, _target_mode(destination))
        os.replace(tmp_path, destination)
    except BaseException:
        if tmp_path is not None:
            tmp_path.unlink(missing_ok=True)
            logger.debug(f"Removed partial archive {tmp_path}")
        raise


def _target_mode(destination: Path) -> int:
    """Permissions for the finished archive: the replaced file's, else what open() would give."""
    try:
        return stat.S_IMODE(destination.stat().st_mode)
    except FileNotFoundError:
        umask = os.umask(0)
        os.umask(umask)
        return 0o666 & ~umask


def _check_media_name(file_name: str) -> None:
    if (not file_name or file_name in ('.', '..')
            or '/' in file_name or '\\' in file_name):
        raise IntegrityError(f"media file_name must be a bare file name, got {file_name!r}")


# IMPORT =====================================================

class OpenDeck:
    """
    An opened container: the validated manifest, the attached deck store and
    the names of the media files present in the archive.

    The store lives in a temp directory owned by this handle; close() (or
    leaving a `with` block) deletes it. Media content is read from the
    archive only when asked for.
    """

    def __init__(
        self,
        source: Path,
        manifest: Manifest,
        store: Store,
        media_names: Iterable[str],
        extra_entries: Iterable[str],
        workdir: tempfile.TemporaryDirectory,
    ):
        self.source = source
        self.manifest = manifest
        self.store = store
        self.media_names = tuple(sorted(media_names))
        self.extra_entries = tuple(extra_entries)
        self._workdir = workdir

    def __enter__(self) -> 'OpenDeck':
        return self

    def __exit__(self, *exc_info) -> None:
        self.close()

    def __repr__(self) -> str:
        state = 'closed' if self.closed else 'open'
        return f"<OpenDeck {self.manifest.name!r} from {str(self.source)!r} ({state})>"

    @property
    def closed(self) -> bool:
        return self._workdir is None

    def close(self) -> None:
        if self._workdir is not None:
            self._workdir.cleanup()
            logger.debug(f"Released {self._workdir.name}")
            self._workdir = None

    def _check_open(self) -> None:
        if self.closed:
            raise ValueError('operation on a closed deck')

    def deck(self) -> Deck:
        self._check_open()
        return self.store.get_deck()

    def has_media(self, file_name: str) -> bool:
        return file_name in self.media_names

    def read_media(self, file_name: str) -> bytes:
        self._check_open()
        if file_name not in self.media_names:
            raise MediaFileMissing(file_name)
        return self._read_entry(MEDIA_PREFIX + file_name)

    def extract_media(self, file_name: str) -> Path:
        """Copy one media file next to the extracted database and return its path."""
        data = self.read_media(file_name)
        media_dir = Path(self._workdir.name) / 'media'
        media_dir.mkdir(exist_ok=True)
        target = media_dir / file_name
        target.write_bytes(data)
        return target

    def missing_media(self) -> list[Media]:
        """Media rows whose file is not in the archive."""
        self._check_open()
        return [m for m in self.store.list_media() if m.file_name not in self.media_names]

    def read_extra(self, name: str) -> bytes | None:
        """Content of an optional entry (thumbnail.png, theme.toml), or None."""
        self._check_open()
        if name not in self.extra_entries:
            return None
        return self._read_entry(name)

    def _read_entry(self, name: str) -> bytes:
        try:
            with zipfile.ZipFile(self.source) as zf:
                return zf.read(name)
        except KeyError as e:
            raise MediaFileMissing(name.removeprefix(MEDIA_PREFIX)) from e
        except (zipfile.BadZipFile, zlib.error, NotImplementedError, RuntimeError) as e:
            raise NotAContainer(f"{self.source} is damaged: {e}") from e
        except OSError as e:
            raise IOFailure(f"could not read {name} from {self.source}: {e}") from e


def open_deck(source: str | Path) -> OpenDeck:
    """
    Open a container, validating it completely before returning.

    Order of checks: archive, manifest presence and shape, format/version,
    database presence and schema, card count and deck id against the
    manifest. The first failure raises and nothing is left behind.
    """
    source = Path(source)
    workdir = None
    try:
        try:
            zf = zipfile.ZipFile(source)
        except (zipfile.BadZipFile, zlib.error) as e:
            raise NotAContainer(f"{source} is not a .mflash container: {e}") from e

        with zf:
            names = set(zf.namelist())
            if MANIFEST_ENTRY not in names:
                raise MissingManifest(f"{source} has no {MANIFEST_ENTRY}")
            manifest = manifest_from_json(_read_member(zf, MANIFEST_ENTRY, NotAContainer))
            validate_manifest(manifest)

            if DATABASE_ENTRY not in names:
                raise MissingDatabase(f"{source} has no {DATABASE_ENTRY}")
            workdir = tempfile.TemporaryDirectory(prefix='mflash-open-', dir=config.TMP_DIR)
            db_path = Path(workdir.name) / DATABASE_ENTRY
            db_path.write_bytes(_read_member(zf, DATABASE_ENTRY, CorruptDatabase))
            logger.debug(f"Extracted {DATABASE_ENTRY} to {db_path}")

        store = Store.attach(db_path)
        try:
            deck = store.get_deck()
            card_count = store.card_count()
            media_rows = store.list_media()
        except NotFound as e:
            raise CorruptDatabase(f"{source}: {e}") from e
        except (sqlite3.DatabaseError, IntegrityError, ValueError) as e:
            raise CorruptDatabase(f"{source}: unreadable rows: {e}") from e
        if deck.id != manifest.deck_id:
            raise IntegrityMismatch(f"manifest is for deck {manifest.deck_id}, database holds deck {deck.id}")
        validate_manifest(manifest, card_count=card_count)

        media_names = _media_names(names)
        extra_entries = [name for name in OPTIONAL_ENTRIES if name in names]
    except OSError as e:
        _release(workdir)
        raise IOFailure(f"could not read {source}: {e}") from e
    except BaseException:
        _release(workdir)
        raise

    missing = [m.file_name for m in media_rows if m.file_name not in media_names]
    if missing:
        logger.warning(f"{source}: {len(missing)} media file(s) not in archive: {', '.join(missing)}")
    logger.info(f"Opened {source}: deck {deck.id} {deck.name!r}, {card_count} cards")
    return OpenDeck(source, manifest, store, media_names, extra_entries, workdir)


def _read_member(zf: zipfile.ZipFile, name: str, error: type[Exception]) -> bytes:
    try:
        return zf.read(name)
    except (zipfile.BadZipFile, zlib.error, NotImplementedError, RuntimeError) as e:
        # RuntimeError: encrypted entry; NotImplementedError: unknown compression
        raise error(f"cannot read {name}: {e}") from e


def _media_names(names: Iterable[str]) -> set[str]:
    found = set()
    for name in names:
        if not name.startswith(MEDIA_PREFIX):
            continue
        file_name = name[len(MEDIA_PREFIX):]
        # directory entries and nested paths are not addressable by file_name
        if file_name not in ('', '.', '..') and '/' not in file_name:
            found.add(file_name)
    return found


def _release(workdir: tempfile.TemporaryDirectory | None) -> None:
    if workdir is not None:
        workdir.cleanup()
