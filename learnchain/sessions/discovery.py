"""
Session log discovery.

Locates candidate transcript files for the session picker:
- Codex CLI: <codex_sessions_root>/YYYY/MM/DD/rollout-*.jsonl
- Claude Code: <claude_projects_root>/<project>/<session-id>.jsonl
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from pathlib import Path

from loguru import logger

from learnchain.sessions.models import ToolOrigin

LOG_PATTERN = "*.jsonl"


@dataclass(frozen=True)
class SessionFile:
    """A log file candidate, with the tool inferred from where it was found."""
    path: Path
    modified_at: datetime
    size: int
    tool_origin: ToolOrigin | None = None

    @property
    def label(self) -> str:
        tool = self.tool_origin.label if self.tool_origin else "Unknown tool"
        when = self.modified_at.strftime("%Y-%m-%d %H:%M")
        return f"{when}  {tool}  {self.path.parent.name}/{self.path.name}"


def find_session_files(path: Path, tool_origin: ToolOrigin | None = None) -> list[SessionFile]:
    """List log files at `path` (a file or a directory scanned recursively), newest first."""
    path = Path(path).expanduser()
    if path.is_file():
        candidates = [path]
    elif path.is_dir():
        candidates = [candidate for candidate in path.rglob(LOG_PATTERN) if candidate.is_file()]
    else:
        logger.debug("Session path {} does not exist", path)
        return []

    files = []
    for candidate in candidates:
        try:
            stat = candidate.stat()
        except OSError as e:
            logger.warning("Skipping unreadable session file {}: {}", candidate, e)
            continue
        files.append(
            SessionFile(
                path=candidate,
                modified_at=datetime.fromtimestamp(stat.st_mtime),
                size=stat.st_size,
                tool_origin=tool_origin,
            )
        )

    files.sort(key=lambda item: item.modified_at, reverse=True)
    return files


def discover_sessions(
    codex_root: Path,
    claude_root: Path,
    limit: int | None = None,
    preferred: ToolOrigin | str | None = None,
) -> list[SessionFile]:
    """
    Log files from both assistant roots, newest first.

    With `preferred` set, that tool's files are listed ahead of the other's.
    """
    found = find_session_files(codex_root, ToolOrigin.CODEX)
    found += find_session_files(claude_root, ToolOrigin.CLAUDE_CODE)
    found.sort(key=lambda item: item.modified_at, reverse=True)
    if preferred is not None:
        origin = ToolOrigin.parse(preferred)
        found.sort(key=lambda item: item.tool_origin != origin)
    logger.debug("Discovered {} session files", len(found))
    return found[:limit] if limit else found


def discover_from_settings(settings) -> list[SessionFile]:
    """Discovery over the configured roots, configured session source first."""
    return discover_sessions(
        settings.codex_sessions_root,
        settings.claude_projects_root,
        preferred=settings.session_source,
    )
