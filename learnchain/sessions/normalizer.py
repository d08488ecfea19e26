"""
Session normalizer.

Turns adapter output into a single ordered Session timeline. Pure function:
no I/O and no shared state.
"""

from __future__ import annotations

import hashlib
from datetime import datetime, timezone
from pathlib import Path

from loguru import logger

from learnchain.errors import EmptySession
from learnchain.sessions.models import ParsedLog, RawEvent, Session

SESSION_ID_LENGTH = 12


def normalize(parsed: ParsedLog, source_path: Path | None = None) -> Session:
    """
    Order events by timestamp, breaking ties by file position.

    Events without a timestamp take the last timestamp seen before them in
    file order (or the earliest timestamp in the log when none precedes them),
    so they stay next to their neighbours. Naive timestamps are read as UTC.

    Raises:
        EmptySession: if the log produced no events
    """
    if not parsed.events:
        where = f" in {source_path}" if source_path else ""
        raise EmptySession(f"No usable events{where}.")

    in_file_order = sorted(parsed.events, key=lambda event: event.position)
    known = [_as_utc(event.occurred_at) for event in in_file_order if event.occurred_at is not None]
    floor = min(known) if known else datetime.fromtimestamp(0, tz=timezone.utc)

    keyed: list[tuple[datetime, int, RawEvent]] = []
    carried = floor
    for event in in_file_order:
        if event.occurred_at is not None:
            carried = _as_utc(event.occurred_at)
        keyed.append((carried, event.position, event))

    keyed.sort(key=lambda item: (item[0], item[1]))
    events = tuple(
        event.with_order(occurred_at, sequence)
        for sequence, (occurred_at, _, event) in enumerate(keyed)
    )

    session_id = parsed.session_id or _digest(events)
    logger.debug(
        "Normalized {} {} events into session {}",
        len(events),
        parsed.tool_origin.label,
        session_id,
    )
    return Session(
        id=session_id,
        tool_origin=parsed.tool_origin,
        events=events,
        source_path=source_path,
    )


def _as_utc(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def _digest(events: tuple[RawEvent, ...]) -> str:
    hasher = hashlib.sha256()
    for event in events:
        hasher.update(event.kind.value.encode("utf-8"))
        hasher.update(b"\0")
        hasher.update(event.payload.encode("utf-8"))
        hasher.update(b"\0")
    return hasher.hexdigest()[:SESSION_ID_LENGTH]
