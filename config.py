"""
Configuration settings for learnchain.

Uses Pydantic Settings for environment variable management with .env file support,
plus a JSON config file that the config view and `learnchain set-key` write back to.

Precedence (highest first): constructor kwargs, LEARNCHAIN_* environment variables,
.env file, ~/.learnchain/config.json.
"""
from __future__ import annotations

import json
import os
from functools import lru_cache
from pathlib import Path
from typing import Any, Literal, get_args

from loguru import logger
from pydantic import AliasChoices, Field, ValidationInfo, field_validator, model_validator
from pydantic_settings import (
    BaseSettings,
    JsonConfigSettingsSource,
    PydanticBaseSettingsSource,
    SettingsConfigDict,
)

from learnchain.errors import ConfigError

DEFAULT_CONFIG_FILE = Path.home() / ".learnchain" / "config.json"

# Fields reset to their default when loaded below this floor
_MINIMUMS = {
    "quiz_concurrency": 1,
    "max_attempts": 1,
    "look_back_events": 1,
    "min_concept_chars": 1,
    "max_concepts": 0,
    "choices_per_question": 2,
    "request_timeout_seconds": 1,
}


def config_file_path() -> Path:
    """Location of the persisted JSON config (LEARNCHAIN_CONFIG_FILE overrides)."""
    override = os.environ.get("LEARNCHAIN_CONFIG_FILE")
    if override:
        return Path(override).expanduser()
    return DEFAULT_CONFIG_FILE


class Settings(BaseSettings):
    """Application settings loaded from environment variables and the config file."""

    model_config = SettingsConfigDict(
        env_prefix="LEARNCHAIN_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
        populate_by_name=True,
    )

    # ========================================
    # Generation endpoint
    # ========================================
    openai_api_key: str = Field(
        default="",
        validation_alias=AliasChoices(
            "openai_api_key", "LEARNCHAIN_OPENAI_API_KEY", "OPENAI_API_KEY"
        ),
        description="Bearer credential for the chat-completions endpoint",
    )
    openai_model: Literal["gpt-5-mini", "gpt-5"] = Field(
        default="gpt-5-mini",
        description="Model used for quiz generation",
    )
    openai_api_base: str = Field(
        default="https://api.openai.com/v1",
        description="Base URL of the OpenAI-compatible API",
    )
    request_timeout_seconds: float = Field(
        default=60.0,
        description="Per-request timeout for generation calls",
    )

    # ========================================
    # Session sources
    # ========================================
    session_source: Literal["codex", "claude_code"] = Field(
        default="codex",
        description="Assistant tool whose logs are listed first in the session picker",
    )
    codex_sessions_root: Path = Field(
        default=Path.home() / ".codex" / "sessions",
        description="Root of Codex CLI rollout logs (YYYY/MM/DD/*.jsonl)",
    )
    claude_projects_root: Path = Field(
        default=Path.home() / ".claude" / "projects",
        description="Root of Claude Code project transcripts (<project>/*.jsonl)",
    )

    # ========================================
    # Quiz pipeline
    # ========================================
    quiz_concurrency: int = Field(
        default=3,
        description="Maximum generation requests in flight at once",
    )
    max_attempts: int = Field(
        default=3,
        description="Attempt ceiling for transient generation failures",
    )
    backoff_base_seconds: float = Field(
        default=1.0,
        description="First retry delay; doubles on every further attempt",
    )
    backoff_max_seconds: float = Field(
        default=8.0,
        description="Upper bound for a single retry delay",
    )
    choices_per_question: int = Field(
        default=4,
        description="Number of answer options requested per question",
    )
    shuffle_choices: bool = Field(
        default=True,
        description="Shuffle answer options after generation",
    )

    # ========================================
    # Concept extraction
    # ========================================
    look_back_events: int = Field(
        default=6,
        description="How many events a file edit may look back for its prompt/response",
    )
    min_concept_chars: int = Field(
        default=40,
        description="Candidates with less normalized text than this are dropped",
    )
    max_concepts: int = Field(
        default=15,
        description="Keep only the most recent N concepts (0 for no limit)",
    )

    # ========================================
    # Logging
    # ========================================
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] = Field(
        default="WARNING",
        description="Console logging verbosity",
    )
    log_file: str | None = Field(
        default="output/learnchain-debug.log",
        description="Debug log file path (None disables the file sink)",
    )

    @field_validator("openai_model", "session_source", "log_level", mode="before")
    @classmethod
    def _known_choice(cls, value: Any, info: ValidationInfo) -> Any:
        """Unknown choices fall back to the field default instead of failing the load."""
        field = cls.model_fields[info.field_name]
        if value not in get_args(field.annotation):
            return field.default
        return value

    @model_validator(mode="after")
    def _normalize(self) -> Settings:
        """Reset out-of-range values to their defaults."""
        for name, minimum in _MINIMUMS.items():
            if getattr(self, name) < minimum:
                object.__setattr__(self, name, type(self).model_fields[name].default)
        return self

    @classmethod
    def settings_customise_sources(
        cls,
        settings_cls: type[BaseSettings],
        init_settings: PydanticBaseSettingsSource,
        env_settings: PydanticBaseSettingsSource,
        dotenv_settings: PydanticBaseSettingsSource,
        file_secret_settings: PydanticBaseSettingsSource,
    ) -> tuple[PydanticBaseSettingsSource, ...]:
        sources = [init_settings, env_settings, dotenv_settings]
        path = config_file_path()
        try:
            read_config_file(path)
        except ConfigError as e:
            # Defaults stand in for the file; save_settings refuses to overwrite it
            logger.warning("Ignoring configuration file: {}", e)
        else:
            sources.append(JsonConfigSettingsSource(settings_cls, json_file=path))
        sources.append(file_secret_settings)
        return tuple(sources)

    # ========================================
    # Helper Methods
    # ========================================
    def has_credential(self) -> bool:
        return bool(self.openai_api_key.strip())

    def masked_api_key(self) -> str:
        return mask_secret(self.openai_api_key)

    def get_pipeline_config(self) -> dict[str, Any]:
        """Quiz pipeline configuration as a dictionary."""
        return {
            "concurrency": self.quiz_concurrency,
            "max_attempts": self.max_attempts,
            "backoff_base": self.backoff_base_seconds,
            "backoff_max": self.backoff_max_seconds,
        }


def mask_secret(value: str) -> str:
    """Mask all but the last four characters of a secret."""
    if not value:
        return "<not set>"
    if len(value) <= 4:
        return "****"
    return "*" * (len(value) - 4) + value[-4:]


def read_config_file(path: Path) -> dict[str, Any]:
    """
    Read the JSON config file; a missing file is empty.

    Raises:
        ConfigError: unreadable file, invalid JSON, or a non-object document
    """
    if not path.exists():
        return {}
    try:
        data = json.loads(path.read_text(encoding="utf-8"))
    except (OSError, UnicodeDecodeError, json.JSONDecodeError) as e:
        raise ConfigError(f"failed to read configuration at {path}: {e}") from e
    if not isinstance(data, dict):
        raise ConfigError(f"failed to read configuration at {path}: expected a JSON object")
    return data


def save_settings(updates: dict[str, Any]) -> Settings:
    """
    Merge `updates` into the JSON config file and reload settings.

    Raises:
        ConfigError: unknown field, unreadable existing file, or write failure
    """
    unknown = sorted(set(updates) - set(Settings.model_fields))
    if unknown:
        raise ConfigError(f"unknown setting(s): {', '.join(unknown)}")

    path = config_file_path()
    current = read_config_file(path)
    current.update({key: _jsonable(value) for key, value in updates.items()})

    try:
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(json.dumps(current, indent=2, sort_keys=True), encoding="utf-8")
    except OSError as e:
        raise ConfigError(f"failed to write configuration to {path}: {e}") from e

    get_settings.cache_clear()
    return get_settings()


def _jsonable(value: Any) -> Any:
    return str(value) if isinstance(value, Path) else value


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
