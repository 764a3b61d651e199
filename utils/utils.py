import csv
import io

OPTIONAL_FIELDS = ('example', 'notes', 'hyperlink')


def parse_text(content: str) -> dict[str, str] | None:
    """
    Parse one pasted line into a card record.

    Separators, first match wins: tab, '|', '-' (first occurrence only, so
    "pot-hole - a hole" still splits on the first dash). Extra tab columns
    fill example, notes, hyperlink in that order.

    returns: {'term': str, 'definition': str, ...} or None when either side is empty
    """
    text = content.strip()

    if '\t' in text:
        parts = [p.strip() for p in text.split('\t')]
    elif '|' in text:
        parts = [p.strip() for p in text.split('|', 1)]
    elif '-' in text:
        parts = [p.strip() for p in text.split('-', 1)]
    else:
        return None

    return to_record(parts)


def parse_paste(raw: str) -> list[dict[str, str]]:
    """One card per non-blank line; lines without both a term and a definition are skipped."""
    records = []
    for line in raw.splitlines():
        if not line.strip():
            continue
        record = parse_text(line)
        if record is not None:
            records.append(record)
    return records


def parse_csv(raw: str) -> list[dict[str, str]]:
    """Headerless rows: term,definition[,example,notes,hyperlink]."""
    records = []
    for row in csv.reader(io.StringIO(raw)):
        if not row:
            continue
        record = to_record([cell.strip() for cell in row])
        if record is not None:
            records.append(record)
    return records


def to_record(parts: list[str]) -> dict[str, str] | None:
    if len(parts) < 2 or not parts[0] or not parts[1]:
        return None
    record = {'term': parts[0], 'definition': parts[1]}
    for name, value in zip(OPTIONAL_FIELDS, parts[2:]):
        if value:
            record[name] = value
    return record
