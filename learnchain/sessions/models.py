"""
Session and event records produced by ingestion.

Events are immutable once produced; normalization returns new instances.
"""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from datetime import datetime
from enum import Enum
from pathlib import Path
from typing import Any


class ToolOrigin(str, Enum):
    """AI coding assistants whose session logs can be ingested."""

    CODEX = "codex"
    CLAUDE_CODE = "claude_code"

    @property
    def label(self) -> str:
        return _ORIGIN_LABELS[self]

    @classmethod
    def parse(cls, value: str | ToolOrigin) -> ToolOrigin:
        """Accept enum values, labels and common spellings ("claude-code")."""
        if isinstance(value, ToolOrigin):
            return value
        key = value.strip().lower().replace("-", "_").replace(" ", "_")
        aliases = {"codex_cli": cls.CODEX, "claude": cls.CLAUDE_CODE}
        if key in aliases:
            return aliases[key]
        return cls(key)


_ORIGIN_LABELS = {
    ToolOrigin.CODEX: "Codex CLI",
    ToolOrigin.CLAUDE_CODE: "Claude Code",
}


class EventKind(str, Enum):
    """Interaction kinds shared by every adapter."""

    PROMPT = "prompt"
    RESPONSE = "response"
    FILE_EDIT = "file_edit"
    TOOL_CALL = "tool_call"


@dataclass(frozen=True)
class RawEvent:
    """
    One interaction from an assistant log.

    `position` is the record's order in the source file; `sequence` is the
    index after normalization (equal to position until then).
    """

    tool_origin: ToolOrigin
    kind: EventKind
    payload: str
    position: int
    occurred_at: datetime | None = None
    raw_metadata: dict[str, Any] = field(default_factory=dict, compare=False, hash=False)
    sequence: int = -1

    @property
    def is_noise(self) -> bool:
        return bool(self.raw_metadata.get("noise"))

    @property
    def file_path(self) -> str | None:
        return self.raw_metadata.get("path")

    def with_order(self, occurred_at: datetime, sequence: int) -> RawEvent:
        return replace(self, occurred_at=occurred_at, sequence=sequence)

    def to_dict(self) -> dict[str, Any]:
        return {
            "tool_origin": self.tool_origin.value,
            "kind": self.kind.value,
            "payload": self.payload,
            "position": self.position,
            "sequence": self.sequence,
            "occurred_at": self.occurred_at.isoformat() if self.occurred_at else None,
            "raw_metadata": self.raw_metadata,
        }


@dataclass(frozen=True)
class Session:
    """An ordered, normalized collection of events from one log file."""

    id: str
    tool_origin: ToolOrigin
    events: tuple[RawEvent, ...]
    source_path: Path | None = None

    @property
    def started_at(self) -> datetime | None:
        return self.events[0].occurred_at if self.events else None

    def __len__(self) -> int:
        return len(self.events)


@dataclass
class ParsedLog:
    """Adapter output before normalization."""

    tool_origin: ToolOrigin
    events: list[RawEvent]
    session_id: str | None = None
    metadata: dict[str, Any] = field(default_factory=dict)
