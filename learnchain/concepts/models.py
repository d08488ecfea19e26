"""
Concept records extracted from a session.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Any

from learnchain.sessions.models import EventKind, RawEvent


class Difficulty(str, Enum):
    """Coarse difficulty hint passed to quiz generation."""
    INTRODUCTORY = "introductory"
    INTERMEDIATE = "intermediate"
    ADVANCED = "advanced"


@dataclass(frozen=True)
class Concept:
    """A deduplicated teachable unit. `fingerprint` is its identity within a session."""
    fingerprint: str
    title: str
    supporting_events: tuple[RawEvent, ...]
    difficulty_hint: Difficulty
    text: str

    @property
    def sequences(self) -> tuple[int, ...]:
        return tuple(event.sequence for event in self.supporting_events)

    @property
    def edited_paths(self) -> list[str]:
        paths = []
        for event in self.supporting_events:
            if event.kind == EventKind.FILE_EDIT and event.file_path and event.file_path not in paths:
                paths.append(event.file_path)
        return paths

    def to_dict(self) -> dict[str, Any]:
        return {
            "fingerprint": self.fingerprint,
            "title": self.title,
            "difficulty_hint": self.difficulty_hint.value,
            "sequences": list(self.sequences),
            "edited_paths": self.edited_paths,
            "text": self.text,
        }
