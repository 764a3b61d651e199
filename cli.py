"""Command-line interface for building, inspecting and reviewing .mflash decks."""

import logging
import mimetypes
from datetime import datetime
from pathlib import Path

import click

import config  # noqa: F401  (environment + logging setup)
from container.codec import export_deck, open_deck
from database.models import DECK_WIDE, Media, MediaBlob, as_utc, to_rfc3339, utc_now
from handlers.decks import build_deck, save_deck
from handlers.review import record_review
from handlers.stats import deck_stats, forecast
from utils.constants import CORE_VERSION, MediaKind
from utils.errors import MflashError
from utils.importers import read_deck_file
from utils.srs import format_interval


def _fail(error: Exception) -> click.ClickException:
    logging.debug('command failed', exc_info=error)
    return click.ClickException(f"{type(error).__name__}: {error}")


def _parse_instant(value: str | None) -> datetime:
    if value is None:
        return utc_now()
    try:
        return as_utc(datetime.fromisoformat(value.replace('Z', '+00:00')))
    except ValueError as e:
        raise click.BadParameter(f"not an ISO timestamp: {value}") from e


def _media_kind(mime_type: str | None) -> MediaKind:
    if mime_type:
        major = mime_type.split('/', 1)[0]
        if major in ('image', 'audio', 'video'):
            return MediaKind(major)
    return MediaKind.OTHER


@click.group()
@click.version_option(CORE_VERSION)
def cli() -> None:
    """Spaced-repetition flashcard decks in portable .mflash containers."""
    pass


@cli.command()
@click.argument('source', type=click.Path(exists=True, path_type=Path))
@click.argument('dest', type=click.Path(dir_okay=False, path_type=Path))
@click.option('--name', '-n', type=str, default=None, help='Deck name (default: from the source, else its file stem).')
@click.option('--description', '-d', type=str, default=None)
@click.option('--tag', '-t', 'tags', multiple=True, help='Deck tag; repeatable, order kept.')
@click.option('--lang-front', type=str, default=None)
@click.option('--lang-back', type=str, default=None)
@click.option('--deck-id', type=int, default=1, show_default=True)
@click.option(
    '--media', '-m', 'media_files', multiple=True,
    type=click.Path(exists=True, dir_okay=False, path_type=Path),
    help='Deck-wide media file; repeatable.',
)
@click.option('--thumbnail', type=click.Path(exists=True, dir_okay=False, path_type=Path), default=None)
def build(source, dest, name, description, tags, lang_front, lang_back, deck_id, media_files, thumbnail) -> None:
    """Build a container from SOURCE, chosen by extension.

    .txt/.tsv and unknown extensions hold one card per line, "term<TAB>definition"
    or "term - definition". .csv rows are term,definition[,example,notes,hyperlink].
    .md/.markdown may use headings, bullets, a table, ```card blocks, a
    **glossary** or "term: definition" lines. .json is a whole deck
    ({"name", "description", "cards"}). .apkg, or a folder it was unzipped
    into, is an Anki package.
    """
    try:
        parsed = read_deck_file(source)
    except MflashError as e:
        raise _fail(e) from e
    records = parsed['cards']
    if not records:
        raise click.ClickException(f"No cards found in {source}")

    deck, cards = build_deck(
        records, deck_id, name or parsed['name'] or source.stem,
        description=description or parsed['description'],
        tags=tags, lang_front=lang_front, lang_back=lang_back,
    )

    blobs = []
    for index, path in enumerate(media_files, start=1):
        mime_type, _ = mimetypes.guess_type(path.name)
        media = Media(id=index, file_name=path.name, kind=_media_kind(mime_type),
                      binding=DECK_WIDE, mime_type=mime_type)
        blobs.append(MediaBlob(media, path.read_bytes()))

    try:
        manifest = export_deck(
            deck, cards, blobs, [], dest,
            thumbnail=thumbnail.read_bytes() if thumbnail else None,
        )
    except MflashError as e:
        raise _fail(e) from e

    click.echo(f"Wrote {dest}: {manifest.card_count} cards")


@cli.command()
@click.argument('path', type=click.Path(exists=True, dir_okay=False, path_type=Path))
@click.option('--as-of', type=str, default=None, help='Reference instant (default: now).')
def info(path, as_of) -> None:
    """Show a container's manifest and review statistics."""
    now = _parse_instant(as_of)
    try:
        with open_deck(path) as opened:
            m = opened.manifest
            stats = deck_stats(opened.store, m.deck_id, now)
            upcoming = forecast(opened.store, m.deck_id, now)
            missing = opened.missing_media()
    except MflashError as e:
        raise _fail(e) from e

    click.echo(f"{m.name}  (deck {m.deck_id}, format {m.format} v{m.version})")
    if m.description:
        click.echo(f"  {m.description}")
    if m.tags:
        click.echo(f"  tags: {', '.join(m.tags)}")
    click.echo(f"  created {m.created_at_utc}, updated {m.updated_at_utc}")
    if m.generator:
        click.echo(f"  generator: {m.generator}")
    click.echo(f"  cards: {stats['total']}  new: {stats['new']}  due: {stats['due']}  lapsed: {stats['lapsed']}")
    if stats['mean_ease'] is not None:
        click.echo(f"  mean ease: {stats['mean_ease']}")
    for entry in upcoming:
        if entry['count']:
            click.echo(f"  {entry['day']}  {entry['count']} due")
    if missing:
        click.echo(click.style(f"  missing media: {', '.join(x.file_name for x in missing)}", fg='yellow'))


@cli.command()
@click.argument('path', type=click.Path(exists=True, dir_okay=False, path_type=Path))
def cards(path) -> None:
    """List cards in display order."""
    try:
        with open_deck(path) as opened:
            rows = opened.store.cards_in_order(opened.manifest.deck_id)
    except MflashError as e:
        raise _fail(e) from e

    for card in rows:
        click.echo(f"{card.id}\t{card.term}\t{card.definition}")


@cli.command()
@click.argument('path', type=click.Path(exists=True, dir_okay=False, path_type=Path))
@click.option('--as-of', type=str, default=None, help='Reference instant (default: now).')
def due(path, as_of) -> None:
    """List cards due for review, earliest first."""
    now = _parse_instant(as_of)
    try:
        with open_deck(path) as opened:
            rows = opened.store.due_cards(opened.manifest.deck_id, now)
    except MflashError as e:
        raise _fail(e) from e

    if not rows:
        click.echo('Nothing due.')
        return
    for card, state in rows:
        click.echo(f"{card.id}\t{card.term}\tdue {to_rfc3339(state.due_utc)}")


@cli.command()
@click.argument('path', type=click.Path(exists=True, dir_okay=False, path_type=Path))
@click.argument('card_id', type=int)
@click.argument('grade', type=str)
@click.option('--now', 'now_text', type=str, default=None, help='Review instant (default: now).')
def review(path, card_id, grade, now_text) -> None:
    """Record one review (GRADE is correct or incorrect) and save the deck."""
    now = _parse_instant(now_text)
    try:
        with open_deck(path) as opened:
            state = record_review(opened.store, card_id, grade, now=now)
            save_deck(opened, now=now)
    except ValueError as e:
        raise click.BadParameter(str(e), param_hint='GRADE') from e
    except MflashError as e:
        raise _fail(e) from e

    click.echo(
        f"Card {card_id}: next review in {format_interval(state.interval_days)} "
        f"({to_rfc3339(state.due_utc)}), ease {state.ease_factor}"
    )


def main() -> None:
    """Entry point for the morflash CLI."""
    cli()


if __name__ == '__main__':
    main()
