"""
Concept extractor.

Groups causally adjacent events into candidate teaching units in a single
pass over the session:

- a Prompt opens a new unit;
- a Response joins the unit of the nearest preceding Prompt within the
  look-back window, otherwise it opens its own unit;
- a FileEdit joins the unit of the nearest preceding Prompt or Response within
  the window, otherwise it forms an edit-only unit;
- ToolCall events contribute no text but still count as window distance.

Units whose whitespace-collapsed text is shorter than the minimum size are
dropped; the rest are fingerprinted and merged by fingerprint.
"""

from __future__ import annotations

import hashlib
from dataclasses import dataclass, field

from loguru import logger

from learnchain.concepts.models import Concept, Difficulty
from learnchain.sessions.models import EventKind, RawEvent, Session

FINGERPRINT_LENGTH = 16
TITLE_MAX_CHARS = 80

# Changed diff lines at or above which a unit counts as intermediate/advanced
INTERMEDIATE_CHANGED_LINES = 10
ADVANCED_CHANGED_LINES = 40


@dataclass
class _Unit:
    anchor: RawEvent
    events: list[RawEvent] = field(default_factory=list)


class ConceptExtractor:
    """Deterministic, pure extraction of Concepts from a normalized Session."""

    def __init__(
        self,
        look_back_events: int = 6,
        min_concept_chars: int = 40,
        max_concepts: int | None = None,
    ):
        if look_back_events < 1:
            raise ValueError("look_back_events must be at least 1")
        self.look_back_events = look_back_events
        self.min_concept_chars = min_concept_chars
        self.max_concepts = max_concepts or None

    @classmethod
    def from_settings(cls, settings) -> ConceptExtractor:
        return cls(
            look_back_events=settings.look_back_events,
            min_concept_chars=settings.min_concept_chars,
            max_concepts=settings.max_concepts,
        )

    def extract(self, session: Session) -> list[Concept]:
        units = self._group(session.events)

        concepts: dict[str, Concept] = {}
        dropped = 0
        for unit in units:
            text = "\n\n".join(event.payload.strip() for event in unit.events)
            normalized = normalize_text(text)
            if len(normalized) < self.min_concept_chars:
                dropped += 1
                continue

            fp = fingerprint(normalized)
            existing = concepts.get(fp)
            if existing is None:
                concepts[fp] = Concept(
                    fingerprint=fp,
                    title=make_title(unit.events),
                    supporting_events=tuple(unit.events),
                    difficulty_hint=difficulty_for(unit.events),
                    text=text,
                )
            else:
                merged = {event.sequence: event for event in existing.supporting_events + tuple(unit.events)}
                events = tuple(merged[key] for key in sorted(merged))
                concepts[fp] = Concept(
                    fingerprint=fp,
                    title=existing.title,
                    supporting_events=events,
                    difficulty_hint=difficulty_for(events),
                    text=existing.text,
                )

        result = list(concepts.values())
        if self.max_concepts is not None and len(result) > self.max_concepts:
            result = result[-self.max_concepts:]

        logger.debug(
            "Extracted {} concepts from {} units in session {} ({} below size threshold)",
            len(result),
            len(units),
            session.id,
            dropped,
        )
        return result

    def _group(self, events: tuple[RawEvent, ...]) -> list[_Unit]:
        units: list[_Unit] = []
        last_prompt: _Unit | None = None
        last_text: tuple[RawEvent, _Unit] | None = None

        for event in events:
            if event.kind == EventKind.PROMPT:
                unit = _Unit(anchor=event, events=[event])
                units.append(unit)
                last_prompt = unit
                last_text = (event, unit)

            elif event.kind == EventKind.RESPONSE:
                if last_prompt is not None and self._within(last_prompt.anchor, event):
                    unit = last_prompt
                    unit.events.append(event)
                else:
                    unit = _Unit(anchor=event, events=[event])
                    units.append(unit)
                last_text = (event, unit)

            elif event.kind == EventKind.FILE_EDIT:
                if last_text is not None and self._within(last_text[0], event):
                    last_text[1].events.append(event)
                else:
                    units.append(_Unit(anchor=event, events=[event]))

        return units

    def _within(self, earlier: RawEvent, later: RawEvent) -> bool:
        return later.sequence - earlier.sequence <= self.look_back_events


def extract_concepts(session: Session, **options) -> list[Concept]:
    """Shortcut for ConceptExtractor(**options).extract(session)."""
    return ConceptExtractor(**options).extract(session)


def normalize_text(text: str) -> str:
    """Collapse whitespace runs and trim. Case is preserved."""
    return " ".join(text.split())


def fingerprint(normalized: str) -> str:
    return hashlib.sha256(normalized.encode("utf-8")).hexdigest()[:FINGERPRINT_LENGTH]


def make_title(events: list[RawEvent]) -> str:
    for kind in (EventKind.PROMPT, EventKind.RESPONSE):
        for event in events:
            if event.kind == kind:
                line = next((line.strip() for line in event.payload.splitlines() if line.strip()), "")
                if line:
                    return _truncate(line)
    path = next((event.file_path for event in events if event.file_path), None)
    return _truncate(f"Edit to {path or 'file'}")


def difficulty_for(events: tuple[RawEvent, ...] | list[RawEvent]) -> Difficulty:
    changed = sum(changed_lines(event.payload) for event in events if event.kind == EventKind.FILE_EDIT)
    if changed >= ADVANCED_CHANGED_LINES:
        return Difficulty.ADVANCED
    if changed >= INTERMEDIATE_CHANGED_LINES:
        return Difficulty.INTERMEDIATE
    return Difficulty.INTRODUCTORY


def changed_lines(diff: str) -> int:
    """Count added/removed lines in a unified diff or apply_patch body."""
    count = 0
    for line in diff.splitlines():
        if line.startswith(("+++", "---", "***")):
            continue
        if line.startswith(("+", "-")):
            count += 1
    return count


def _truncate(text: str) -> str:
    if len(text) <= TITLE_MAX_CHARS:
        return text
    return text[:TITLE_MAX_CHARS - 3].rstrip() + "..."
