"""
Codex CLI rollout log adapter.

Two layouts are accepted:
- wrapped: {"timestamp", "type": "response_item" | "session_meta" | ..., "payload": {...}}
- bare (older releases): each line is the response item itself, optionally
  preceded by a {"id", "timestamp", "instructions"} header line.
"""

from __future__ import annotations

import json
import re
from typing import Any

from learnchain.errors import ParseError
from learnchain.sessions.models import EventKind, ParsedLog, RawEvent, ToolOrigin

from . import register
from .base import (
    PROBE_LIMIT,
    LogRecord,
    decode_output,
    is_noise,
    parse_timestamp,
    require_type,
)

SUPPORTED_SCHEMA_VERSION = 1

WRAPPER_TYPES = {"session_meta", "response_item", "event_msg", "turn_context", "compacted"}
ITEM_TYPES = {
    "message",
    "reasoning",
    "function_call",
    "function_call_output",
    "custom_tool_call",
    "custom_tool_call_output",
    "local_shell_call",
    "web_search_call",
}
CALL_TYPES = {"function_call", "custom_tool_call", "local_shell_call"}
OUTPUT_TYPES = {"function_call_output", "custom_tool_call_output"}

# Injected by the CLI ahead of the user's first message
PREAMBLE_TAGS = ("<environment_context>", "<user_instructions>", "<user_shell_command>")

PATCH_BEGIN = "*** Begin Patch"
PATCH_END = "*** End Patch"
PATCH_FILE_RE = re.compile(r"^\*\*\* (?:Add|Update|Delete) File: (.+)$", re.MULTILINE)


@register(ToolOrigin.CODEX)
class CodexAdapter:
    """Adapter for ~/.codex/sessions rollout files."""

    tool_origin = ToolOrigin.CODEX

    def probe(self, records: list[LogRecord]) -> bool:
        for record in records[:PROBE_LIMIT]:
            data = record.data
            record_type = data.get("type")
            if record_type in WRAPPER_TYPES and "payload" in data:
                return True
            if record_type in ITEM_TYPES:
                return True
            if _is_header(data):
                return True
        return False

    def parse(self, records: list[LogRecord]) -> ParsedLog:
        events: list[RawEvent] = []
        session_id: str | None = None
        metadata: dict[str, Any] = {}

        for record in records:
            data = record.data

            if _is_header(data):
                _check_schema_version(data.get("schema_version"), record.line)
                session_id = session_id or _optional_str(data.get("id"))
                continue

            record_type = require_type(record)

            if "payload" in data and record_type not in ITEM_TYPES:
                payload = data["payload"]
                if not isinstance(payload, dict):
                    raise ParseError("'payload' must be an object", line=record.line)
                if record_type == "session_meta":
                    _check_schema_version(payload.get("schema_version"), record.line)
                    session_id = session_id or _optional_str(payload.get("id"))
                    for key in ("cwd", "cli_version", "originator"):
                        if payload.get(key) is not None:
                            metadata[key] = payload[key]
                    continue
                if record_type != "response_item":
                    continue
                item, timestamp = payload, data.get("timestamp")
            else:
                item, timestamp = data, data.get("timestamp")

            events.extend(self._item_events(item, timestamp, record.line, len(events)))

        return ParsedLog(
            tool_origin=self.tool_origin,
            events=events,
            session_id=session_id,
            metadata=metadata,
        )

    def _item_events(
        self, item: dict[str, Any], timestamp: Any, line: int, position: int
    ) -> list[RawEvent]:
        item_type = item.get("type")
        occurred_at = parse_timestamp(timestamp, line)

        if item_type == "message":
            role = item.get("role")
            text = _content_text(item.get("content"), line)
            if not text.strip():
                return []
            if role == "user":
                if text.lstrip().startswith(PREAMBLE_TAGS):
                    return []
                kind = EventKind.PROMPT
            elif role == "assistant":
                kind = EventKind.RESPONSE
            else:
                return []
            return [self._event(kind, text, occurred_at, line, position, {"role": role})]

        if item_type in CALL_TYPES:
            name = item.get("name") or item_type
            raw_arguments = item.get("arguments", item.get("input", item.get("action")))
            meta = {"call_id": item.get("call_id"), "name": name}
            patch = extract_patch(name, raw_arguments)
            if patch is not None:
                paths = PATCH_FILE_RE.findall(patch)
                meta["paths"] = paths
                meta["path"] = paths[0] if paths else None
                return [self._event(EventKind.FILE_EDIT, patch, occurred_at, line, position, meta)]
            return [self._event(EventKind.TOOL_CALL, decode_output(raw_arguments), occurred_at, line, position, meta)]

        if item_type in OUTPUT_TYPES:
            output = decode_output(item.get("output"))
            meta = {"call_id": item.get("call_id"), "noise": is_noise(output)}
            return [self._event(EventKind.TOOL_CALL, output, occurred_at, line, position, meta)]

        # reasoning, web searches and unknown item types carry no timeline text
        return []

    def _event(self, kind, payload, occurred_at, line, position, meta) -> RawEvent:
        meta = {key: value for key, value in meta.items() if value is not None}
        meta["line"] = line
        return RawEvent(
            tool_origin=self.tool_origin,
            kind=kind,
            payload=payload,
            position=position,
            occurred_at=occurred_at,
            raw_metadata=meta,
            sequence=position,
        )


def extract_patch(name: str, raw_arguments: Any) -> str | None:
    """
    Return the apply_patch body carried by a tool call, if any.

    Handles the custom `apply_patch` tool (raw patch text) and shell calls
    such as ["bash", "-lc", "apply_patch <<'PATCH'\\n*** Begin Patch..."].
    """
    candidates: list[str] = []
    parsed = raw_arguments
    if isinstance(raw_arguments, str):
        try:
            parsed = json.loads(raw_arguments)
        except (json.JSONDecodeError, ValueError):
            parsed = None

    if isinstance(parsed, dict):
        for key in ("input", "patch", "cmd", "command"):
            value = parsed.get(key)
            if isinstance(value, str):
                candidates.append(value)
            elif isinstance(value, list):
                candidates.append(" ".join(str(part) for part in value))
    elif isinstance(parsed, list):
        candidates.append(" ".join(str(part) for part in parsed))

    # Raw text last: JSON-encoded arguments would keep their escapes
    if isinstance(raw_arguments, str):
        candidates.append(raw_arguments)

    for candidate in candidates:
        start = candidate.find(PATCH_BEGIN)
        if start == -1:
            continue
        end = candidate.find(PATCH_END, start)
        body = candidate[start:] if end == -1 else candidate[start:end + len(PATCH_END)]
        return body.strip()

    if name == "apply_patch" and candidates and candidates[-1].strip():
        return candidates[-1].strip()
    return None


def _content_text(content: Any, line: int) -> str:
    if content is None:
        return ""
    if isinstance(content, str):
        return content
    if not isinstance(content, list):
        raise ParseError("message 'content' must be a list", line=line)
    parts = []
    for fragment in content:
        if isinstance(fragment, dict) and isinstance(fragment.get("text"), str):
            parts.append(fragment["text"])
    return "\n".join(parts)


def _check_schema_version(version: Any, line: int) -> None:
    if version is None:
        return
    if isinstance(version, bool) or not isinstance(version, int):
        raise ParseError(f"invalid schema_version {version!r}", line=line)
    if version > SUPPORTED_SCHEMA_VERSION:
        raise ParseError(
            f"unsupported schema version {version} (max {SUPPORTED_SCHEMA_VERSION})",
            line=line,
        )


def _is_header(data: dict[str, Any]) -> bool:
    return "type" not in data and "id" in data and ("instructions" in data or "timestamp" in data)


def _optional_str(value: Any) -> str | None:
    return value if isinstance(value, str) and value else None
