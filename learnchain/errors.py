"""
Error taxonomy for learnchain.

Parsing and extraction errors abort a single operation and are reported to the
view controller; generation errors are isolated to the job that raised them.
"""

from __future__ import annotations


class LearnchainError(Exception):
    """Base class for all learnchain errors."""


class ConfigError(LearnchainError):
    """Settings file could not be read or written."""


# =============================================================================
# Ingestion
# =============================================================================


class ParseError(LearnchainError):
    """Log content does not match the expected schema of its tool."""

    def __init__(self, reason: str, *, line: int | None = None):
        self.reason = reason
        self.line = line
        message = f"line {line}: {reason}" if line is not None else reason
        super().__init__(message)


class UnrecognizedFormat(LearnchainError):
    """No adapter's schema probe accepted the log."""

    def __init__(self, source: str = ""):
        self.source = source
        where = f" in {source}" if source else ""
        super().__init__(
            f"Unrecognized session log format{where}. "
            "Try selecting the tool manually (--tool codex or --tool claude_code)."
        )


class EmptySession(LearnchainError):
    """The log parsed but contained no usable events."""


# =============================================================================
# Generation
# =============================================================================


class GenerationError(LearnchainError):
    """Base class for quiz generation failures."""


class GenerationTransientError(GenerationError):
    """Network error, timeout, rate limit or malformed completion. Retried."""


class GenerationFatalError(GenerationError):
    """Rejected credential or content. Never retried."""


class CredentialMissing(GenerationError):
    """No API credential is configured; nothing is sent."""

    def __init__(self, message: str = "No OpenAI API key configured. Run `learnchain set-key`."):
        super().__init__(message)
