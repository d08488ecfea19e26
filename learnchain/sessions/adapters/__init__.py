"""
Log adapters for supported AI coding assistants.

Each adapter module registers itself with @register and implements:
- probe(): cheap schema check for auto-detection
- parse(): full conversion into RawEvent records
"""

from __future__ import annotations

from typing import TYPE_CHECKING

from learnchain.errors import UnrecognizedFormat
from learnchain.sessions.models import ToolOrigin

if TYPE_CHECKING:
    from .base import LogAdapter, LogRecord

# Auto-detection tries adapters in this order
PRIORITY: tuple[ToolOrigin, ...] = (ToolOrigin.CODEX, ToolOrigin.CLAUDE_CODE)

# Adapter registry - populated by @register decorator
ADAPTERS: dict[ToolOrigin, "LogAdapter"] = {}


def register(tool_origin: ToolOrigin):
    """Decorator to register a log adapter."""
    def decorator(cls):
        ADAPTERS[tool_origin] = cls()
        return cls
    return decorator


def get_adapter(tool: str | ToolOrigin) -> "LogAdapter":
    """Get the adapter for a tool. Raises ValueError for unknown tools."""
    return ADAPTERS[ToolOrigin.parse(tool)]


def detect_adapter(records: list["LogRecord"], source: str = "") -> "LogAdapter":
    """Return the first adapter, in priority order, whose probe accepts the records."""
    for origin in PRIORITY:
        adapter = ADAPTERS.get(origin)
        if adapter is not None and adapter.probe(records):
            return adapter
    raise UnrecognizedFormat(source)


# Import adapters to trigger registration
from . import codex  # noqa: E402
from . import claude_code  # noqa: E402

__all__ = [
    "ADAPTERS",
    "PRIORITY",
    "detect_adapter",
    "get_adapter",
    "register",
]
