"""
Pytest Configuration and Fixtures.

This file configures pytest and provides shared fixtures for all tests.
"""
import json
import sys
from pathlib import Path

import pytest

# Add project root to path
PROJECT_ROOT = Path(__file__).parent.parent
sys.path.insert(0, str(PROJECT_ROOT))


def pytest_configure(config):
    """Configure pytest markers."""
    config.addinivalue_line("markers", "unit: Unit tests")
    config.addinivalue_line("markers", "smoke: Smoke tests for CLI commands")
    config.addinivalue_line("markers", "slow: Slow tests")


def pytest_collection_modifyitems(config, items):
    """Automatically mark tests based on their location."""
    for item in items:
        if "unit" in str(item.fspath):
            item.add_marker(pytest.mark.unit)
        elif "smoke" in str(item.fspath):
            item.add_marker(pytest.mark.smoke)


@pytest.fixture(scope="session")
def project_root():
    """Return the project root directory."""
    return PROJECT_ROOT


@pytest.fixture(autouse=True)
def isolated_settings(tmp_path, monkeypatch):
    """Point the config file at a temp dir and drop ambient credentials."""
    from config import get_settings

    monkeypatch.setenv("LEARNCHAIN_CONFIG_FILE", str(tmp_path / "learnchain-config.json"))
    monkeypatch.delenv("OPENAI_API_KEY", raising=False)
    monkeypatch.delenv("LEARNCHAIN_OPENAI_API_KEY", raising=False)
    monkeypatch.chdir(tmp_path)
    get_settings.cache_clear()
    yield tmp_path / "learnchain-config.json"
    get_settings.cache_clear()


def to_jsonl(records: list[dict]) -> str:
    return "\n".join(json.dumps(record) for record in records) + "\n"


RECURSIVE_FUNCTION = (
    "def factorial(n):\n"
    "    if n <= 1:\n"
    "        return 1\n"
    "    return n * factorial(n - 1)\n"
)

RECURSION_PATCH = (
    "*** Begin Patch\n"
    "*** Add File: mathutil.py\n"
    "+def factorial(n):\n"
    "+    if n <= 1:\n"
    "+        return 1\n"
    "+    return n * factorial(n - 1)\n"
    "*** End Patch"
)


def codex_record(timestamp: str, record_type: str, payload: dict) -> dict:
    return {"timestamp": timestamp, "type": record_type, "payload": payload}


def codex_message(role: str, text: str) -> dict:
    fragment = "input_text" if role == "user" else "output_text"
    return {"type": "message", "role": role, "content": [{"type": fragment, "text": text}]}


@pytest.fixture
def recursion_records():
    """Prompt, Response with a recursive function, FileEdit adding it."""
    return [
        codex_record("2025-10-01T10:00:00.000Z", "session_meta", {"id": "sess-recursion", "cwd": "/work"}),
        codex_record("2025-10-01T10:00:01.000Z", "response_item", codex_message("user", "explain recursion")),
        codex_record(
            "2025-10-01T10:00:05.000Z",
            "response_item",
            codex_message("assistant", "Recursion is when a function calls itself:\n\n" + RECURSIVE_FUNCTION),
        ),
        codex_record(
            "2025-10-01T10:00:09.000Z",
            "response_item",
            {"type": "custom_tool_call", "name": "apply_patch", "call_id": "call_1", "input": RECURSION_PATCH},
        ),
    ]


@pytest.fixture
def recursion_log(tmp_path, recursion_records):
    path = tmp_path / "rollout-2025-10-01T10-00-00-recursion.jsonl"
    path.write_text(to_jsonl(recursion_records), encoding="utf-8")
    return path


@pytest.fixture
def tool_calls_only_log(tmp_path):
    """Two tool-call events and no prompt/response text."""
    records = [
        codex_record(
            "2025-10-01T11:00:00.000Z",
            "response_item",
            {"type": "function_call", "name": "shell", "call_id": "c1", "arguments": json.dumps({"command": ["ls"]})},
        ),
        codex_record(
            "2025-10-01T11:00:01.000Z",
            "response_item",
            {"type": "function_call_output", "call_id": "c1", "output": json.dumps({"output": "README.md\n"})},
        ),
    ]
    path = tmp_path / "rollout-tools-only.jsonl"
    path.write_text(to_jsonl(records), encoding="utf-8")
    return path


@pytest.fixture
def claude_records():
    return [
        {"type": "summary", "summary": "Adding a retry helper", "leafUuid": "u3"},
        {
            "type": "user",
            "uuid": "u1",
            "sessionId": "claude-session-1",
            "timestamp": "2025-10-02T09:00:00.000Z",
            "cwd": "/work/app",
            "message": {"role": "user", "content": "How do I retry a flaky HTTP call with exponential backoff?"},
        },
        {
            "type": "assistant",
            "uuid": "u2",
            "sessionId": "claude-session-1",
            "timestamp": "2025-10-02T09:00:04.000Z",
            "message": {
                "role": "assistant",
                "content": [
                    {"type": "thinking", "thinking": "The user wants a retry loop."},
                    {"type": "text", "text": "Wrap the call in a loop and double the delay after each failure."},
                    {
                        "type": "tool_use",
                        "id": "toolu_1",
                        "name": "Edit",
                        "input": {
                            "file_path": "app/http.py",
                            "old_string": "return client.get(url)",
                            "new_string": "for attempt in range(3):\n    try:\n        return client.get(url)\n    except Timeout:\n        time.sleep(2 ** attempt)",
                        },
                    },
                ],
            },
        },
        {
            "type": "user",
            "uuid": "u3",
            "sessionId": "claude-session-1",
            "timestamp": "2025-10-02T09:00:05.000Z",
            "message": {
                "role": "user",
                "content": [{"type": "tool_result", "tool_use_id": "toolu_1", "content": "File updated"}],
            },
        },
    ]


@pytest.fixture
def claude_log(tmp_path, claude_records):
    project = tmp_path / "projects" / "-work-app"
    project.mkdir(parents=True)
    path = project / "claude-session-1.jsonl"
    path.write_text(to_jsonl(claude_records), encoding="utf-8")
    return path
