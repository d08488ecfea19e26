"""
Quiz generation records: jobs, quizzes and pipeline events.
"""

from __future__ import annotations

import random
from concurrent.futures import Future
from dataclasses import dataclass, field
from enum import Enum
from typing import TYPE_CHECKING, Any

from pydantic import BaseModel, ConfigDict, Field, model_validator

from learnchain.concepts.models import Difficulty

if TYPE_CHECKING:
    from learnchain.concepts.models import Concept


def option_label(index: int) -> str:
    """A, B, C... for option indices."""
    return chr(ord("A") + index)


# =============================================================================
# Quiz
# =============================================================================


@dataclass(frozen=True)
class Quiz:
    """A generated multiple-choice question tied to one Concept."""

    concept_fingerprint: str
    question_text: str
    choices: tuple[str, ...]
    correct_index: int
    explanation: str = ""

    def __post_init__(self):
        if len(self.choices) < 2:
            raise ValueError("a quiz needs at least two choices")
        if not 0 <= self.correct_index < len(self.choices):
            raise ValueError(
                f"correct_index {self.correct_index} out of range for {len(self.choices)} choices"
            )

    @property
    def correct_label(self) -> str:
        return option_label(self.correct_index)

    def is_correct(self, chosen_index: int) -> bool:
        return chosen_index == self.correct_index

    def shuffled(self, rng: random.Random) -> Quiz:
        """Copy with choices shuffled and correct_index remapped."""
        order = list(range(len(self.choices)))
        rng.shuffle(order)
        return Quiz(
            concept_fingerprint=self.concept_fingerprint,
            question_text=self.question_text,
            choices=tuple(self.choices[i] for i in order),
            correct_index=order.index(self.correct_index),
            explanation=self.explanation,
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "concept_fingerprint": self.concept_fingerprint,
            "question": self.question_text,
            "choices": list(self.choices),
            "correct_index": self.correct_index,
            "explanation": self.explanation,
        }


class QuizPayload(BaseModel):
    """Validated shape of the model's JSON answer."""

    model_config = ConfigDict(extra="ignore")

    question: str = Field(min_length=1)
    choices: list[str] = Field(min_length=2)
    correct_index: int = Field(ge=0)
    explanation: str = ""

    @model_validator(mode="after")
    def _index_in_range(self) -> QuizPayload:
        if self.correct_index >= len(self.choices):
            raise ValueError("correct_index must point at one of the choices")
        return self

    def to_quiz(self, concept_fingerprint: str) -> Quiz:
        return Quiz(
            concept_fingerprint=concept_fingerprint,
            question_text=self.question.strip(),
            choices=tuple(choice.strip() for choice in self.choices),
            correct_index=self.correct_index,
            explanation=self.explanation.strip(),
        )


@dataclass(frozen=True)
class GenerationConstraints:
    """What the generator must honour for one concept."""

    concept_fingerprint: str
    choice_count: int = 4
    difficulty: Difficulty = Difficulty.INTRODUCTORY


# =============================================================================
# Jobs
# =============================================================================


class JobState(str, Enum):
    """Lifecycle of a QuizJob."""

    QUEUED = "queued"
    IN_FLIGHT = "in_flight"
    SUCCEEDED = "succeeded"
    FAILED = "failed"
    CANCELLED = "cancelled"

    @property
    def is_active(self) -> bool:
        return self in (JobState.QUEUED, JobState.IN_FLIGHT)

    @property
    def is_terminal(self) -> bool:
        return not self.is_active


@dataclass(eq=False)
class QuizJob:
    """
    Tracking record for generating one Quiz from one Concept.

    Mutated only by the pipeline. `future` resolves with the job itself once
    it reaches a terminal state.
    """

    concept_fingerprint: str
    concept: Concept = field(repr=False)
    state: JobState = JobState.QUEUED
    attempt_count: int = 0
    result: Quiz | None = None
    failure_reason: str | None = None
    future: Future = field(default_factory=Future, repr=False)

    @property
    def done(self) -> bool:
        return self.state.is_terminal


# =============================================================================
# Events
# =============================================================================


class PipelineEventKind(str, Enum):
    SUBMITTED = "submitted"
    STARTED = "started"
    RETRYING = "retrying"
    SUCCEEDED = "succeeded"
    FAILED = "failed"
    CANCELLED = "cancelled"


@dataclass(frozen=True)
class PipelineEvent:
    """Message passed from the pipeline to the interactive loop."""

    kind: PipelineEventKind
    fingerprint: str
    attempt: int = 0
    reason: str | None = None
    quiz: Quiz | None = None

    @property
    def is_terminal(self) -> bool:
        return self.kind in (
            PipelineEventKind.SUCCEEDED,
            PipelineEventKind.FAILED,
            PipelineEventKind.CANCELLED,
        )
