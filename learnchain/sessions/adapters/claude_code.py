"""
Claude Code transcript adapter.

Each line of ~/.claude/projects/<project>/<session>.jsonl is a record such as
{"type": "user" | "assistant" | "summary" | "system", "message": {...},
"timestamp", "uuid", "sessionId", ...}. One assistant record can hold several
content blocks, so one record may yield several events.
"""

from __future__ import annotations

import difflib
from typing import Any

from loguru import logger

from learnchain.errors import ParseError
from learnchain.sessions.models import EventKind, ParsedLog, RawEvent, ToolOrigin

from . import register
from .base import PROBE_LIMIT, LogRecord, is_noise, parse_timestamp, require_type

RECORD_TYPES = {"user", "assistant", "summary", "system"}
EDIT_TOOLS = {"Edit", "MultiEdit", "Write", "NotebookEdit"}


@register(ToolOrigin.CLAUDE_CODE)
class ClaudeCodeAdapter:
    """Adapter for Claude Code project transcripts."""

    tool_origin = ToolOrigin.CLAUDE_CODE

    def probe(self, records: list[LogRecord]) -> bool:
        for record in records[:PROBE_LIMIT]:
            data = record.data
            if data.get("type") in RECORD_TYPES and (
                "sessionId" in data or "uuid" in data or "leafUuid" in data
            ):
                return True
        return False

    def parse(self, records: list[LogRecord]) -> ParsedLog:
        events: list[RawEvent] = []
        session_id: str | None = None
        metadata: dict[str, Any] = {}

        for record in records:
            data = record.data
            record_type = require_type(record)

            if isinstance(data.get("sessionId"), str):
                session_id = session_id or data["sessionId"]
            if record_type == "summary" and isinstance(data.get("summary"), str):
                metadata.setdefault("summary", data["summary"])
            if record_type not in ("user", "assistant") or data.get("isMeta"):
                continue

            message = data.get("message")
            if not isinstance(message, dict):
                raise ParseError("'message' must be an object", line=record.line)

            content = message.get("content")
            if isinstance(content, str):
                blocks: list[Any] = [{"type": "text", "text": content}]
            elif isinstance(content, list):
                blocks = content
            else:
                raise ParseError("message 'content' must be a string or list", line=record.line)

            occurred_at = parse_timestamp(data.get("timestamp"), record.line)
            base_meta = {"uuid": data.get("uuid"), "line": record.line}
            if isinstance(data.get("cwd"), str):
                metadata.setdefault("cwd", data["cwd"])

            for block in blocks:
                if not isinstance(block, dict):
                    continue
                converted = (
                    _user_block(block, record.line)
                    if record_type == "user"
                    else _assistant_block(block, record.line)
                )
                if converted is None:
                    continue
                kind, payload, extra = converted
                meta = {**base_meta, **extra}
                events.append(
                    RawEvent(
                        tool_origin=self.tool_origin,
                        kind=kind,
                        payload=payload,
                        position=len(events),
                        occurred_at=occurred_at,
                        raw_metadata={k: v for k, v in meta.items() if v is not None},
                        sequence=len(events),
                    )
                )

        return ParsedLog(
            tool_origin=self.tool_origin,
            events=events,
            session_id=session_id,
            metadata=metadata,
        )


def _block_text(block: dict[str, Any], line: int) -> str:
    text = block.get("text")
    if text is None:
        return ""
    if not isinstance(text, str):
        raise ParseError("text block 'text' must be a string", line=line)
    return text


def _user_block(block: dict[str, Any], line: int) -> tuple[EventKind, str, dict[str, Any]] | None:
    block_type = block.get("type")
    if block_type == "text":
        text = _block_text(block, line)
        if not text.strip():
            return None
        return EventKind.PROMPT, text, {}
    if block_type == "tool_result":
        output = _tool_result_text(block.get("content"))
        return EventKind.TOOL_CALL, output, {
            "tool_use_id": block.get("tool_use_id"),
            "is_error": bool(block.get("is_error")),
            "noise": is_noise(output),
        }
    return None


def _assistant_block(block: dict[str, Any], line: int) -> tuple[EventKind, str, dict[str, Any]] | None:
    block_type = block.get("type")
    if block_type == "text":
        text = _block_text(block, line)
        if not text.strip():
            return None
        return EventKind.RESPONSE, text, {}
    if block_type == "tool_use":
        name = block.get("name") if isinstance(block.get("name"), str) else ""
        tool_input = block.get("input") if isinstance(block.get("input"), dict) else {}
        meta = {"tool_use_id": block.get("id"), "name": name}
        if name in EDIT_TOOLS:
            path, diff = edit_diff(name, tool_input, line)
            meta["path"] = path
            return EventKind.FILE_EDIT, diff, meta
        return EventKind.TOOL_CALL, _format_input(tool_input), meta
    # thinking blocks and unknown block types
    return None


def edit_diff(name: str, tool_input: dict[str, Any], line: int = 0) -> tuple[str | None, str]:
    """
    Render an edit tool invocation as a unified diff.

    Raises:
        ParseError: MultiEdit `edits` is present but not a list
    """
    path = tool_input.get("file_path") or tool_input.get("notebook_path")
    if path is not None and not isinstance(path, str):
        path = str(path)

    if name == "Edit":
        pairs = [(tool_input.get("old_string", ""), tool_input.get("new_string", ""))]
    elif name == "MultiEdit":
        edits = tool_input.get("edits") or []
        if not isinstance(edits, list):
            raise ParseError("MultiEdit 'edits' must be a list", line=line)
        pairs = [
            (edit.get("old_string", ""), edit.get("new_string", ""))
            for edit in edits
            if isinstance(edit, dict)
        ]
    elif name == "Write":
        pairs = [("", tool_input.get("content", ""))]
    else:
        pairs = [("", tool_input.get("new_source", ""))]

    label = path or "file"
    chunks = []
    for old, new in pairs:
        diff = difflib.unified_diff(
            str(old or "").splitlines(),
            str(new or "").splitlines(),
            fromfile=f"a/{label}",
            tofile=f"b/{label}",
            lineterm="",
        )
        chunks.append("\n".join(diff))

    if not any(chunks):
        logger.debug("Edit tool {} on {} produced an empty diff", name, label)
    return path, "\n".join(chunk for chunk in chunks if chunk)


def _tool_result_text(content: Any) -> str:
    if content is None:
        return ""
    if isinstance(content, str):
        return content
    if isinstance(content, list):
        return "\n".join(
            part["text"]
            for part in content
            if isinstance(part, dict) and isinstance(part.get("text"), str)
        )
    return str(content)


def _format_input(tool_input: dict[str, Any]) -> str:
    if "command" in tool_input and isinstance(tool_input["command"], str):
        return tool_input["command"]
    return ", ".join(f"{key}={value}" for key, value in tool_input.items())
