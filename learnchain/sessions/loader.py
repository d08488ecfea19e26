"""
Read, detect, parse and normalize a session log in one call.
"""

from __future__ import annotations

from pathlib import Path

from loguru import logger

from learnchain.errors import ParseError
from learnchain.sessions.adapters import detect_adapter, get_adapter
from learnchain.sessions.adapters.base import read_jsonl
from learnchain.sessions.models import Session, ToolOrigin
from learnchain.sessions.normalizer import normalize


def load_session(path: Path, tool: str | ToolOrigin | None = None) -> Session:
    """
    Load one log file into a Session.

    With `tool` unset the format is auto-detected.

    Raises:
        ParseError, UnrecognizedFormat, EmptySession
    """
    path = Path(path).expanduser()
    try:
        text = path.read_text(encoding="utf-8")
    except (OSError, UnicodeDecodeError) as e:
        raise ParseError(f"cannot read {path}: {e}") from e
    return load_session_text(text, tool=tool, source_path=path)


def load_session_text(
    text: str,
    tool: str | ToolOrigin | None = None,
    source_path: Path | None = None,
) -> Session:
    """Parse already-read log content. See load_session."""
    records = read_jsonl(text)
    if tool is None:
        adapter = detect_adapter(records, str(source_path or ""))
    else:
        adapter = get_adapter(tool)

    logger.debug("Parsing {} records with the {} adapter", len(records), adapter.tool_origin.label)
    parsed = adapter.parse(records)
    return normalize(parsed, source_path)
