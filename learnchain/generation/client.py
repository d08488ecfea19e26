"""
OpenAI-compatible chat-completions client for quiz generation.

Transport outcomes are mapped onto the generation error taxonomy:
- timeouts, connection errors, 429, 5xx and malformed completions are transient
- 401/403, other 4xx and model refusals are fatal
"""

from __future__ import annotations

import json
import random
from typing import Any

import httpx
from loguru import logger
from pydantic import ValidationError

from learnchain.errors import (
    CredentialMissing,
    GenerationFatalError,
    GenerationTransientError,
)
from learnchain.generation.models import GenerationConstraints, Quiz, QuizPayload
from learnchain.generation.prompts import QUIZ_SCHEMA, SCHEMA_NAME, SYSTEM_PROMPT

DEFAULT_API_BASE = "https://api.openai.com/v1"


class QuizGenerationClient:
    """HTTP client for the question-generation endpoint."""

    def __init__(
        self,
        api_key: str,
        model: str = "gpt-5-mini",
        api_base: str = DEFAULT_API_BASE,
        timeout_seconds: float = 60.0,
        shuffle_choices: bool = True,
        rng: random.Random | None = None,
    ):
        """
        Initialize the generation client.

        Args:
            api_key: Bearer credential; an empty key makes every call raise CredentialMissing
            model: Chat model name
            api_base: Base URL of the OpenAI-compatible API
            timeout_seconds: Per-request timeout
            shuffle_choices: Shuffle options after generation
            rng: Random source for shuffling (seed it in tests)
        """
        self.api_key = api_key
        self.model = model
        self.api_base = api_base.rstrip("/")
        self.shuffle_choices = shuffle_choices
        self._rng = rng or random.Random()
        self.client = httpx.AsyncClient(
            timeout=httpx.Timeout(timeout_seconds),
            follow_redirects=True,
        )

    @classmethod
    def from_settings(cls, settings) -> QuizGenerationClient:
        return cls(
            api_key=settings.openai_api_key,
            model=settings.openai_model,
            api_base=settings.openai_api_base,
            timeout_seconds=settings.request_timeout_seconds,
            shuffle_choices=settings.shuffle_choices,
        )

    @property
    def has_credential(self) -> bool:
        return bool(self.api_key and self.api_key.strip())

    @property
    def endpoint(self) -> str:
        return f"{self.api_base}/chat/completions"

    async def close(self) -> None:
        """Close the HTTP client."""
        await self.client.aclose()

    async def generate(self, prompt: str, constraints: GenerationConstraints) -> Quiz:
        """
        Request one quiz question.

        Raises:
            CredentialMissing: no API key configured (nothing is sent)
            GenerationTransientError: worth retrying
            GenerationFatalError: retrying cannot help
        """
        if not self.has_credential:
            raise CredentialMissing()

        payload = {
            "model": self.model,
            "messages": [
                {"role": "system", "content": SYSTEM_PROMPT},
                {"role": "user", "content": prompt},
            ],
            "response_format": {
                "type": "json_schema",
                "json_schema": {
                    "name": SCHEMA_NAME,
                    "schema": QUIZ_SCHEMA,
                    "strict": True,
                },
            },
        }

        logger.debug("Invoking {} with model {}", self.endpoint, self.model)
        try:
            response = await self.client.post(
                self.endpoint,
                json=payload,
                headers={"Authorization": f"Bearer {self.api_key}"},
            )
        except httpx.TimeoutException as e:
            raise GenerationTransientError(f"request timed out: {e}") from e
        except httpx.RequestError as e:
            raise GenerationTransientError(f"request failed: {e}") from e

        status = response.status_code
        if status == 429 or status >= 500:
            raise GenerationTransientError(f"OpenAI returned {status}")
        if status in (401, 403):
            raise GenerationFatalError(f"OpenAI rejected the API key ({status})")
        if status >= 400:
            raise GenerationFatalError(f"OpenAI returned {status}: {response.text[:300]}")

        try:
            data = response.json()
        except ValueError as e:
            raise GenerationTransientError("response body is not JSON") from e

        refusal = _refusal(data)
        if refusal:
            raise GenerationFatalError(f"content rejected: {refusal}")

        text = extract_completion_text(data)
        if text is None:
            raise GenerationTransientError("response did not include assistant content")

        try:
            draft = QuizPayload.model_validate_json(text)
        except ValidationError as e:
            raise GenerationTransientError(f"malformed completion: {e.error_count()} validation error(s)") from e

        if len(draft.choices) != constraints.choice_count:
            logger.debug(
                "Model returned {} choices for {} (asked for {})",
                len(draft.choices),
                constraints.concept_fingerprint,
                constraints.choice_count,
            )

        quiz = draft.to_quiz(constraints.concept_fingerprint)
        if self.shuffle_choices:
            quiz = quiz.shuffled(self._rng)
        return quiz


def extract_completion_text(data: Any) -> str | None:
    """First choice's message content (string or list of text parts)."""
    try:
        content = data["choices"][0]["message"]["content"]
    except (KeyError, IndexError, TypeError):
        return None
    if isinstance(content, str):
        return content or None
    if isinstance(content, list):
        text = "".join(
            part["text"] for part in content if isinstance(part, dict) and isinstance(part.get("text"), str)
        )
        return text or None
    return None


def _refusal(data: Any) -> str | None:
    try:
        refusal = data["choices"][0]["message"].get("refusal")
    except (KeyError, IndexError, TypeError, AttributeError):
        return None
    if refusal is None:
        return None
    return refusal if isinstance(refusal, str) else json.dumps(refusal)
