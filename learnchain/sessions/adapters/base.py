"""
Base protocol and shared helpers for log adapters.

Both supported assistants write JSON Lines, so decoding happens once here and
adapters only interpret already-decoded records.
"""

from __future__ import annotations

import json
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Protocol

from learnchain.errors import ParseError
from learnchain.sessions.models import ParsedLog, ToolOrigin

# Records inspected by schema probes
PROBE_LIMIT = 20

EXECUTION_ERROR_PREFIX = "execution error:"
OPERATION_NOT_PERMITTED = "operation not permitted"


@dataclass(frozen=True)
class LogRecord:
    """One decoded JSON Lines record and its 1-based line number."""
    line: int
    data: dict[str, Any]


class LogAdapter(Protocol):
    """Protocol for per-tool log adapters."""

    tool_origin: ToolOrigin

    def probe(self, records: list[LogRecord]) -> bool:
        """Cheap schema check used for auto-detection. Must not raise."""
        ...

    def parse(self, records: list[LogRecord]) -> ParsedLog:
        """Convert every record or raise ParseError. Never partial."""
        ...


def read_jsonl(text: str) -> list[LogRecord]:
    """
    Decode JSON Lines content.

    Blank lines are skipped. A decode failure on the final line means the file
    was cut off mid-write; anywhere else it is malformed.

    Only "\\n" separates records: U+2028, U+2029 and NEL may appear raw inside
    JSON strings.

    Raises:
        ParseError: on undecodable or non-object lines
    """
    numbered = [
        (number, line.removesuffix("\r"))
        for number, line in enumerate(text.split("\n"), start=1)
        if line.strip()
    ]
    records: list[LogRecord] = []

    for index, (number, line) in enumerate(numbered):
        try:
            data = json.loads(line)
        except json.JSONDecodeError as e:
            if index == len(numbered) - 1:
                raise ParseError(f"truncated file: {e.msg}", line=number) from e
            raise ParseError(f"malformed JSON: {e.msg}", line=number) from e
        if not isinstance(data, dict):
            raise ParseError("expected a JSON object", line=number)
        records.append(LogRecord(line=number, data=data))

    return records


def parse_timestamp(value: Any, line: int) -> datetime | None:
    """Parse ISO-8601 strings (trailing Z allowed) or epoch seconds."""
    if value is None or value == "":
        return None
    if isinstance(value, bool):
        raise ParseError(f"invalid timestamp {value!r}", line=line)
    if isinstance(value, (int, float)):
        try:
            return datetime.fromtimestamp(value, tz=timezone.utc)
        except (OverflowError, OSError, ValueError) as e:
            raise ParseError(f"timestamp out of range {value!r}", line=line) from e
    if isinstance(value, str):
        text = value.strip()
        if text.endswith("Z"):
            text = text[:-1] + "+00:00"
        try:
            return datetime.fromisoformat(text)
        except ValueError as e:
            raise ParseError(f"invalid timestamp {value!r}", line=line) from e
    raise ParseError(f"invalid timestamp {value!r}", line=line)


def decode_output(value: Any) -> str:
    """
    Render a tool argument/output value as text.

    JSON strings are decoded once; an object carrying an `output` field is
    unwrapped to that field.
    """
    if value is None:
        return ""
    if not isinstance(value, str):
        return json.dumps(value, ensure_ascii=False)
    try:
        parsed = json.loads(value)
    except (json.JSONDecodeError, ValueError):
        return value
    if isinstance(parsed, dict):
        if "output" in parsed:
            inner = parsed["output"]
            return inner if isinstance(inner, str) else json.dumps(inner, ensure_ascii=False)
        return json.dumps(parsed, ensure_ascii=False)
    if isinstance(parsed, str):
        return parsed
    return json.dumps(parsed, ensure_ascii=False)


def is_noise(text: str) -> bool:
    """Tool output that carries no learning content (sandbox failures)."""
    stripped = text.strip().lower()
    return stripped.startswith(EXECUTION_ERROR_PREFIX) or OPERATION_NOT_PERMITTED in stripped


def require_type(record: LogRecord) -> str:
    record_type = record.data.get("type")
    if not isinstance(record_type, str):
        raise ParseError("record is missing a string 'type' field", line=record.line)
    return record_type
