"""
Editable settings shown in the Config view.

Edits are held in a draft until confirmed, then written in one save.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any

from config import Settings, mask_secret


@dataclass(frozen=True)
class ConfigField:
    key: str
    label: str
    kind: str  # "int", "choice" or "secret"
    minimum: int = 0
    maximum: int = 0
    step: int = 1
    choices: tuple[str, ...] = ()


CONFIG_FIELDS: tuple[ConfigField, ...] = (
    ConfigField("quiz_concurrency", "Concurrent requests", "int", minimum=1, maximum=16),
    ConfigField("look_back_events", "Look-back window (events)", "int", minimum=1, maximum=50),
    ConfigField("min_concept_chars", "Minimum concept size (chars)", "int", minimum=1, maximum=2000, step=10),
    ConfigField("max_concepts", "Concept limit (0 = none)", "int", minimum=0, maximum=200),
    ConfigField("openai_model", "Model", "choice", choices=("gpt-5-mini", "gpt-5")),
    ConfigField("session_source", "Session source", "choice", choices=("codex", "claude_code")),
    ConfigField("openai_api_key", "OpenAI API key", "secret"),
)


@dataclass
class ConfigForm:
    """Cursor plus draft values over CONFIG_FIELDS."""

    settings: Settings
    cursor: int = 0
    draft: dict[str, Any] = field(default_factory=dict)
    fields: tuple[ConfigField, ...] = CONFIG_FIELDS

    @property
    def focused(self) -> ConfigField:
        return self.fields[self.cursor]

    @property
    def dirty(self) -> bool:
        return any(self.draft[key] != getattr(self.settings, key) for key in self.draft)

    def value(self, key: str) -> Any:
        return self.draft.get(key, getattr(self.settings, key))

    def display(self, config_field: ConfigField) -> str:
        value = self.value(config_field.key)
        if config_field.kind == "secret":
            return mask_secret(value)
        return str(value)

    def move(self, offset: int) -> None:
        self.cursor = (self.cursor + offset) % len(self.fields)

    def focus(self, index: int) -> bool:
        if 0 <= index < len(self.fields):
            self.cursor = index
            return True
        return False

    def adjust(self, delta: int) -> None:
        config_field = self.focused
        current = self.value(config_field.key)
        if config_field.kind == "int":
            updated = current + delta * config_field.step
            self.draft[config_field.key] = max(config_field.minimum, min(config_field.maximum, updated))
        elif config_field.kind == "choice":
            options = config_field.choices
            index = options.index(current) if current in options else 0
            self.draft[config_field.key] = options[(index + delta) % len(options)]

    def edit(self, text: str) -> str | None:
        """Set the focused value from text. Returns an error message on bad input."""
        config_field = self.focused
        text = text.strip()
        if config_field.kind == "secret":
            if not text:
                return "API key cannot be empty."
            self.draft[config_field.key] = text
        elif config_field.kind == "int":
            try:
                number = int(text)
            except ValueError:
                return f"{config_field.label} must be a whole number."
            if not config_field.minimum <= number <= config_field.maximum:
                return f"{config_field.label} must be between {config_field.minimum} and {config_field.maximum}."
            self.draft[config_field.key] = number
        else:
            if text not in config_field.choices:
                return f"{config_field.label} must be one of: {', '.join(config_field.choices)}."
            self.draft[config_field.key] = text
        return None

    def changes(self) -> dict[str, Any]:
        return {key: value for key, value in self.draft.items() if value != getattr(self.settings, key)}
