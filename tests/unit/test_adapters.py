"""
Unit tests for the session log adapters and the JSON Lines reader.
"""

import json

import pytest

from conftest import RECURSION_PATCH, codex_message, codex_record, to_jsonl
from learnchain.errors import ParseError, UnrecognizedFormat
from learnchain.sessions.adapters import ADAPTERS, PRIORITY, detect_adapter, get_adapter
from learnchain.sessions.adapters.base import decode_output, is_noise, read_jsonl
from learnchain.sessions.adapters.claude_code import edit_diff
from learnchain.sessions.adapters.codex import extract_patch
from learnchain.sessions.models import EventKind, ToolOrigin


def records_of(records):
    return read_jsonl(to_jsonl(records))


# =============================================================================
# Reader
# =============================================================================


class TestReadJsonl:
    """Tests for the shared JSON Lines decoder."""

    def test_skips_blank_lines(self):
        records = read_jsonl('{"a": 1}\n\n   \n{"b": 2}\n')
        assert [r.line for r in records] == [1, 4]
        assert records[1].data == {"b": 2}

    def test_malformed_middle_line_reports_line_number(self):
        with pytest.raises(ParseError) as exc_info:
            read_jsonl('{"a": 1}\n{not json}\n{"b": 2}\n')
        assert exc_info.value.line == 2
        assert "malformed" in exc_info.value.reason

    def test_bad_last_line_is_truncation(self):
        with pytest.raises(ParseError) as exc_info:
            read_jsonl('{"a": 1}\n{"b": ')
        assert exc_info.value.line == 2
        assert "truncated" in exc_info.value.reason

    def test_non_object_line_rejected(self):
        with pytest.raises(ParseError, match="JSON object"):
            read_jsonl('[1, 2]\n{"a": 1}\n')

    @pytest.mark.parametrize("separator", ["\u2028", "\u2029", "\x85"])
    def test_unicode_line_separators_stay_inside_strings(self, separator):
        records = [
            codex_record("2025-10-01T10:00:00Z", "session_meta", {"id": "s"}),
            codex_record("2025-10-01T10:00:01Z", "response_item", codex_message("user", f"explain recursion{separator}please")),
        ]
        text = "\n".join(json.dumps(record, ensure_ascii=False) for record in records) + "\n"

        decoded = read_jsonl(text)

        assert [r.line for r in decoded] == [1, 2]
        parsed = get_adapter("codex").parse(decoded)
        assert parsed.events[0].payload == f"explain recursion{separator}please"

    def test_crlf_line_endings(self):
        records = read_jsonl('{"a": 1}\r\n{"b": 2}\r\n')
        assert [r.data for r in records] == [{"a": 1}, {"b": 2}]


class TestDecodeOutput:
    """Tests for tool output decoding."""

    def test_unwraps_output_field(self):
        assert decode_output(json.dumps({"output": "hello", "metadata": {"exit_code": 0}})) == "hello"

    def test_plain_text_passes_through(self):
        assert decode_output("just text") == "just text"

    def test_json_string_is_unescaped(self):
        assert decode_output(json.dumps("line1\nline2")) == "line1\nline2"

    def test_non_string_values_serialized(self):
        assert decode_output({"command": ["ls"]}) == '{"command": ["ls"]}'

    def test_none_is_empty(self):
        assert decode_output(None) == ""

    @pytest.mark.parametrize(
        "text,expected",
        [
            ("execution error: sandbox denied", True),
            ("  Execution error: boom", True),
            ("mkdir: /etc/x: Operation not permitted", True),
            ("all tests passed", False),
        ],
    )
    def test_noise_rules(self, text, expected):
        assert is_noise(text) is expected


# =============================================================================
# Codex CLI
# =============================================================================


class TestCodexAdapter:
    """Tests for Codex CLI rollout parsing."""

    def test_wrapped_log_maps_prompt_response_and_patch(self, recursion_records):
        parsed = get_adapter("codex").parse(records_of(recursion_records))

        assert parsed.session_id == "sess-recursion"
        assert parsed.metadata["cwd"] == "/work"
        assert [e.kind for e in parsed.events] == [EventKind.PROMPT, EventKind.RESPONSE, EventKind.FILE_EDIT]
        assert parsed.events[0].payload == "explain recursion"
        assert parsed.events[2].payload == RECURSION_PATCH
        assert parsed.events[2].file_path == "mathutil.py"
        assert [e.position for e in parsed.events] == [0, 1, 2]

    def test_environment_preamble_skipped(self):
        records = [
            codex_record("2025-10-01T10:00:00Z", "response_item", codex_message("user", "<environment_context>\n  <cwd>/w</cwd>\n</environment_context>")),
            codex_record("2025-10-01T10:00:01Z", "response_item", codex_message("user", "add a test")),
        ]
        parsed = get_adapter(ToolOrigin.CODEX).parse(records_of(records))
        assert [e.payload for e in parsed.events] == ["add a test"]

    def test_unknown_record_and_item_types_ignored(self):
        records = [
            codex_record("2025-10-01T10:00:00Z", "turn_context", {"cwd": "/w"}),
            codex_record("2025-10-01T10:00:00Z", "event_msg", {"type": "token_count"}),
            codex_record("2025-10-01T10:00:01Z", "response_item", {"type": "reasoning", "summary": []}),
            codex_record("2025-10-01T10:00:02Z", "brand_new_type", {"anything": True}),
            codex_record("2025-10-01T10:00:03Z", "response_item", codex_message("assistant", "done")),
        ]
        parsed = get_adapter("codex").parse(records_of(records))
        assert [e.kind for e in parsed.events] == [EventKind.RESPONSE]

    def test_shell_apply_patch_becomes_file_edit(self):
        command = ["bash", "-lc", "apply_patch <<'PATCH'\n" + RECURSION_PATCH + "\nPATCH"]
        records = [
            codex_record(
                "2025-10-01T10:00:00Z",
                "response_item",
                {"type": "function_call", "name": "shell", "call_id": "c1", "arguments": json.dumps({"command": command})},
            )
        ]
        event = get_adapter("codex").parse(records_of(records)).events[0]
        assert event.kind == EventKind.FILE_EDIT
        assert event.payload == RECURSION_PATCH

    def test_other_calls_and_outputs_are_tool_calls(self):
        records = [
            codex_record(
                "2025-10-01T10:00:00Z",
                "response_item",
                {"type": "function_call", "name": "shell", "call_id": "c1", "arguments": json.dumps({"command": ["pytest"]})},
            ),
            codex_record(
                "2025-10-01T10:00:01Z",
                "response_item",
                {"type": "function_call_output", "call_id": "c1", "output": json.dumps({"output": "execution error: denied"})},
            ),
        ]
        events = get_adapter("codex").parse(records_of(records)).events
        assert [e.kind for e in events] == [EventKind.TOOL_CALL, EventKind.TOOL_CALL]
        assert events[1].payload == "execution error: denied"
        assert events[1].is_noise
        assert not events[0].is_noise

    def test_bare_legacy_layout(self):
        records = [
            {"id": "legacy-1", "timestamp": "2025-08-01T09:00:00Z", "instructions": None},
            codex_message("user", "rename the variable"),
            codex_message("assistant", "Renamed `x` to `count`."),
        ]
        parsed = get_adapter("codex").parse(records_of(records))
        assert parsed.session_id == "legacy-1"
        assert [e.kind for e in parsed.events] == [EventKind.PROMPT, EventKind.RESPONSE]
        assert all(e.occurred_at is None for e in parsed.events)

    def test_unsupported_schema_version_rejected(self):
        records = [codex_record("2025-10-01T10:00:00Z", "session_meta", {"id": "s", "schema_version": 99})]
        with pytest.raises(ParseError, match="unsupported schema version") as exc_info:
            get_adapter("codex").parse(records_of(records))
        assert exc_info.value.line == 1

    def test_record_without_type_rejected(self):
        records = [{"timestamp": "2025-10-01T10:00:00Z", "payload": {}}]
        with pytest.raises(ParseError, match="type"):
            get_adapter("codex").parse(records_of(records))

    def test_invalid_timestamp_rejected(self):
        records = [codex_record("yesterday", "response_item", codex_message("user", "hi"))]
        with pytest.raises(ParseError, match="timestamp"):
            get_adapter("codex").parse(records_of(records))

    @pytest.mark.parametrize("timestamp", [1e20, -1e20, float("nan")])
    def test_out_of_range_epoch_rejected(self, timestamp):
        records = [
            codex_record("2025-10-01T10:00:00Z", "session_meta", {"id": "s"}),
            codex_record(timestamp, "response_item", codex_message("user", "hi")),
        ]
        with pytest.raises(ParseError, match="timestamp") as exc_info:
            get_adapter("codex").parse(records_of(records))
        assert exc_info.value.line == 2

    def test_extract_patch_ignores_plain_commands(self):
        assert extract_patch("shell", json.dumps({"command": ["ls", "-la"]})) is None


# =============================================================================
# Claude Code
# =============================================================================


class TestClaudeCodeAdapter:
    """Tests for Claude Code transcript parsing."""

    def test_maps_blocks_to_events(self, claude_records):
        parsed = get_adapter("claude_code").parse(records_of(claude_records))

        assert parsed.session_id == "claude-session-1"
        assert parsed.metadata["summary"] == "Adding a retry helper"
        kinds = [e.kind for e in parsed.events]
        assert kinds == [EventKind.PROMPT, EventKind.RESPONSE, EventKind.FILE_EDIT, EventKind.TOOL_CALL]
        edit = parsed.events[2]
        assert edit.file_path == "app/http.py"
        assert "+for attempt in range(3):" in edit.payload
        assert "-return client.get(url)" in edit.payload

    def test_one_record_yields_several_positions(self, claude_records):
        parsed = get_adapter("claude_code").parse(records_of(claude_records))
        assert [e.position for e in parsed.events] == [0, 1, 2, 3]
        assert parsed.events[1].occurred_at == parsed.events[2].occurred_at

    def test_meta_records_skipped(self):
        records = [
            {
                "type": "user",
                "isMeta": True,
                "uuid": "m1",
                "sessionId": "s",
                "message": {"role": "user", "content": "Caveat: local command output"},
            },
            {
                "type": "user",
                "uuid": "m2",
                "sessionId": "s",
                "message": {"role": "user", "content": "real question"},
            },
        ]
        parsed = get_adapter("claude_code").parse(records_of(records))
        assert [e.payload for e in parsed.events] == ["real question"]

    def test_message_must_be_object(self):
        records = [{"type": "assistant", "uuid": "x", "sessionId": "s", "message": "oops"}]
        with pytest.raises(ParseError, match="message"):
            get_adapter("claude_code").parse(records_of(records))

    @pytest.mark.parametrize("record_type", ["user", "assistant"])
    def test_non_string_text_block_rejected(self, record_type):
        records = [
            {"type": "user", "uuid": "a", "sessionId": "s", "message": {"role": "user", "content": "question"}},
            {
                "type": record_type,
                "uuid": "b",
                "sessionId": "s",
                "message": {"role": record_type, "content": [{"type": "text", "text": 42}]},
            },
        ]
        with pytest.raises(ParseError, match="text") as exc_info:
            get_adapter("claude_code").parse(records_of(records))
        assert exc_info.value.line == 2

    def test_null_multiedit_edits_is_empty_edit(self):
        records = [
            {
                "type": "assistant",
                "uuid": "a",
                "sessionId": "s",
                "message": {
                    "role": "assistant",
                    "content": [{"type": "tool_use", "id": "t1", "name": "MultiEdit", "input": {"file_path": "m.py", "edits": None}}],
                },
            },
        ]
        parsed = get_adapter("claude_code").parse(records_of(records))
        assert [(e.kind, e.payload, e.file_path) for e in parsed.events] == [(EventKind.FILE_EDIT, "", "m.py")]

    def test_non_list_multiedit_edits_rejected(self):
        records = [
            {"type": "user", "uuid": "a", "sessionId": "s", "message": {"role": "user", "content": "question"}},
            {
                "type": "assistant",
                "uuid": "b",
                "sessionId": "s",
                "message": {
                    "role": "assistant",
                    "content": [{"type": "tool_use", "id": "t1", "name": "MultiEdit", "input": {"edits": {"old_string": "x"}}}],
                },
            },
        ]
        with pytest.raises(ParseError, match="edits") as exc_info:
            get_adapter("claude_code").parse(records_of(records))
        assert exc_info.value.line == 2

    def test_non_string_tool_name_is_tool_call(self):
        records = [
            {
                "type": "assistant",
                "uuid": "a",
                "sessionId": "s",
                "message": {"role": "assistant", "content": [{"type": "tool_use", "id": "t1", "name": ["Edit"], "input": {}}]},
            },
        ]
        parsed = get_adapter("claude_code").parse(records_of(records))
        assert parsed.events[0].kind == EventKind.TOOL_CALL

    def test_write_renders_added_lines(self):
        path, diff = edit_diff("Write", {"file_path": "new.py", "content": "a = 1\nb = 2\n"})
        assert path == "new.py"
        assert "+a = 1" in diff
        assert "+b = 2" in diff

    def test_multiedit_concatenates_diffs(self):
        _, diff = edit_diff(
            "MultiEdit",
            {
                "file_path": "m.py",
                "edits": [
                    {"old_string": "x = 1", "new_string": "x = 2"},
                    {"old_string": "y = 1", "new_string": "y = 3"},
                ],
            },
        )
        assert "+x = 2" in diff
        assert "+y = 3" in diff


# =============================================================================
# Detection
# =============================================================================


class TestDetection:
    """Tests for schema-probe auto-detection."""

    def test_registry_covers_every_origin(self):
        assert set(ADAPTERS) == set(ToolOrigin)
        assert PRIORITY[0] == ToolOrigin.CODEX

    def test_detects_codex(self, recursion_records):
        assert detect_adapter(records_of(recursion_records)).tool_origin == ToolOrigin.CODEX

    def test_detects_claude_code(self, claude_records):
        assert detect_adapter(records_of(claude_records)).tool_origin == ToolOrigin.CLAUDE_CODE

    def test_unrecognized_format(self):
        with pytest.raises(UnrecognizedFormat, match="--tool"):
            detect_adapter(records_of([{"hello": "world"}]), "mystery.jsonl")

    @pytest.mark.parametrize("value", ["codex", "Codex CLI", "claude-code", "claude_code", "claude"])
    def test_tool_origin_aliases(self, value):
        assert ToolOrigin.parse(value) in ToolOrigin

    def test_unknown_tool_raises(self):
        with pytest.raises(ValueError):
            get_adapter("cursor")
