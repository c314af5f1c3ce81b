"""Record model and the CSV import/export codec."""

from __future__ import annotations

import csv
import io
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Iterable, Mapping, Sequence

from .errors import RecordFormatError

EXPORT_HEADER = ("Author", "Title", "Affiliation")
_REQUIRED_COLUMNS = ("author", "title")


@dataclass(slots=True)
class Record:
    """One author/title pair and the affiliation resolved for it (if any)."""

    author: str
    title: str
    affiliation: str | None = None

    @property
    def has_affiliation(self) -> bool:
        return bool(self.affiliation)

    def to_dict(self) -> dict[str, str]:
        return {
            "author": self.author,
            "title": self.title,
            "affiliation": self.affiliation or "",
        }

    @classmethod
    def from_dict(cls, payload: Mapping[str, Any]) -> "Record":
        affiliation = payload.get("affiliation")
        return cls(
            author=str(payload.get("author") or ""),
            title=str(payload.get("title") or ""),
            affiliation=str(affiliation) if affiliation else None,
        )


def first_unresolved_index(records: Sequence[Record]) -> int:
    """Index of the first record lacking an affiliation, ``len(records)`` if none."""

    for index, record in enumerate(records):
        if not record.has_affiliation:
            return index
    return len(records)


def _match_column(headers: Sequence[str], needle: str) -> int | None:
    for index, header in enumerate(headers):
        if needle in header.strip().lower():
            return index
    return None


def parse_records(text: str) -> list[Record]:
    """Parse delimited text with a header row into records.

    Columns are located by case-insensitive substring match against
    ``author``, ``title`` and ``affiliation``; the affiliation column is
    optional. Blank lines and rows too short for the matched columns are
    skipped.
    """

    reader = csv.reader(io.StringIO(text))
    headers: list[str] | None = None
    for row in reader:
        if any(cell.strip() for cell in row):
            headers = row
            break
    if headers is None:
        raise RecordFormatError("Records file is empty; a header row is required.")

    positions = {name: _match_column(headers, name) for name in (*_REQUIRED_COLUMNS, "affiliation")}
    missing = [name for name in _REQUIRED_COLUMNS if positions[name] is None]
    if missing:
        raise RecordFormatError(
            "Records file must have author and title columns (missing: "
            + ", ".join(missing)
            + ")."
        )

    needed = max(index for index in positions.values() if index is not None) + 1
    affiliation_index = positions["affiliation"]
    records: list[Record] = []
    for row in reader:
        if not any(cell.strip() for cell in row):
            continue
        if len(row) < needed:
            continue
        affiliation = row[affiliation_index].strip() if affiliation_index is not None else ""
        records.append(
            Record(
                author=row[positions["author"]].strip(),
                title=row[positions["title"]].strip(),
                affiliation=affiliation or None,
            )
        )
    return records


def read_records(path: Path) -> list[Record]:
    # utf-8-sig 兼容 Excel 导出的 BOM
    return parse_records(path.read_text(encoding="utf-8-sig"))


def dump_records(records: Iterable[Record]) -> str:
    """Serialise records as ``Author,Title,Affiliation`` CSV text."""

    buffer = io.StringIO()
    writer = csv.writer(buffer, quoting=csv.QUOTE_MINIMAL, lineterminator="\n")
    writer.writerow(EXPORT_HEADER)
    for record in records:
        writer.writerow([record.author, record.title, record.affiliation or ""])
    return buffer.getvalue()


def write_records(records: Iterable[Record], path: Path) -> Path:
    path.parent.mkdir(parents=True, exist_ok=True)
    with path.open("w", encoding="utf-8", newline="") as stream:
        stream.write(dump_records(records))
    return path


__all__ = [
    "EXPORT_HEADER",
    "Record",
    "dump_records",
    "first_unresolved_index",
    "parse_records",
    "read_records",
    "write_records",
]
