"""Message contract between orchestrator, page agent and UI surfaces.

Each direction is a closed union of frozen dataclasses. The ``name`` tag is
the wire identifier; ``to_message`` / ``parse_message`` convert to and from
plain dictionaries.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, ClassVar, Mapping, Union

from .records import Record


@dataclass(frozen=True, slots=True)
class StartSearch:
    name: ClassVar[str] = "start-search"

    author: str
    title: str

    def to_message(self) -> dict[str, Any]:
        return {"name": self.name, "author": self.author, "title": self.title}


@dataclass(frozen=True, slots=True)
class ContinueSearch:
    name: ClassVar[str] = "continue-search"

    author: str
    title: str

    def to_message(self) -> dict[str, Any]:
        return {"name": self.name, "author": self.author, "title": self.title}


@dataclass(frozen=True, slots=True)
class ExtractAffiliation:
    name: ClassVar[str] = "extract-affiliation"

    author: str
    title: str

    def to_message(self) -> dict[str, Any]:
        return {"name": self.name, "author": self.author, "title": self.title}


@dataclass(frozen=True, slots=True)
class AffiliationFound:
    name: ClassVar[str] = "affiliation-found"

    affiliation: str

    def to_message(self) -> dict[str, Any]:
        return {"name": self.name, "affiliation": self.affiliation}


@dataclass(frozen=True, slots=True)
class MoveToNextEntry:
    name: ClassVar[str] = "move-to-next-entry"

    def to_message(self) -> dict[str, Any]:
        return {"name": self.name}


@dataclass(frozen=True, slots=True)
class StatusUpdate:
    name: ClassVar[str] = "status-update"

    is_running: bool
    current_index: int
    records: tuple[Record, ...] = field(default_factory=tuple)

    def to_message(self) -> dict[str, Any]:
        return {
            "name": self.name,
            "isRunning": self.is_running,
            "records": [record.to_dict() for record in self.records],
            "currentIndex": self.current_index,
        }

    @property
    def remaining(self) -> int:
        return max(0, len(self.records) - self.current_index)


@dataclass(frozen=True, slots=True)
class DiagnosticNote:
    name: ClassVar[str] = "diagnostic-note"

    content: str

    def to_message(self) -> dict[str, Any]:
        return {"name": self.name, "content": self.content}


Instruction = Union[StartSearch, ContinueSearch, ExtractAffiliation]
AgentMessage = Union[AffiliationFound, MoveToNextEntry, DiagnosticNote]
UiMessage = Union[StatusUpdate, DiagnosticNote]
Message = Union[
    StartSearch,
    ContinueSearch,
    ExtractAffiliation,
    AffiliationFound,
    MoveToNextEntry,
    StatusUpdate,
    DiagnosticNote,
]


def _require(payload: Mapping[str, Any], key: str) -> Any:
    if key not in payload:
        raise ValueError(f"Message {payload.get('name')!r} is missing field {key!r}")
    return payload[key]


def parse_message(payload: Mapping[str, Any]) -> Message:
    """Rebuild a message variant from its wire dictionary."""

    tag = payload.get("name")
    if tag in (StartSearch.name, ContinueSearch.name, ExtractAffiliation.name):
        cls = {
            StartSearch.name: StartSearch,
            ContinueSearch.name: ContinueSearch,
            ExtractAffiliation.name: ExtractAffiliation,
        }[tag]
        return cls(author=str(_require(payload, "author")), title=str(_require(payload, "title")))
    if tag == AffiliationFound.name:
        return AffiliationFound(affiliation=str(_require(payload, "affiliation")))
    if tag == MoveToNextEntry.name:
        return MoveToNextEntry()
    if tag == StatusUpdate.name:
        records = tuple(Record.from_dict(item) for item in payload.get("records") or [])
        return StatusUpdate(
            is_running=bool(_require(payload, "isRunning")),
            current_index=int(_require(payload, "currentIndex")),
            records=records,
        )
    if tag == DiagnosticNote.name:
        return DiagnosticNote(content=str(_require(payload, "content")))
    raise ValueError(f"Unknown message name: {tag!r}")


__all__ = [
    "AffiliationFound",
    "AgentMessage",
    "ContinueSearch",
    "DiagnosticNote",
    "ExtractAffiliation",
    "Instruction",
    "Message",
    "MoveToNextEntry",
    "StartSearch",
    "StatusUpdate",
    "UiMessage",
    "parse_message",
]
