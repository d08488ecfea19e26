"""
In-memory, session-scoped store of quizzes and answers.

Written by the pipeline's completion handler (quizzes) and the view
controller (answers). Every write swaps a whole record under a lock, so
readers never see a partially written quiz.
"""

from __future__ import annotations

import threading
from dataclasses import dataclass, field
from datetime import datetime, timezone

from learnchain.generation.models import Quiz


@dataclass(frozen=True)
class Answer:
    """The user's answer to one quiz. Re-answering replaces it."""
    concept_fingerprint: str
    chosen_index: int
    is_correct: bool
    answered_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))


@dataclass(frozen=True)
class ScoreSummary:
    total: int
    answered: int
    correct: int

    @property
    def percent(self) -> float:
        return (self.correct / self.answered * 100.0) if self.answered else 0.0


class QuizStore:
    """Keyed collection of Quiz and Answer records."""

    def __init__(self):
        self._quizzes: dict[str, Quiz] = {}
        self._answers: dict[str, Answer] = {}
        self._lock = threading.Lock()

    def insert(self, quiz: Quiz) -> None:
        """Insert, or replace the quiz for the same concept."""
        with self._lock:
            replaced = self._quizzes.get(quiz.concept_fingerprint)
            self._quizzes[quiz.concept_fingerprint] = quiz
            if replaced is not None and replaced != quiz:
                self._answers.pop(quiz.concept_fingerprint, None)

    def get(self, fingerprint: str) -> Quiz | None:
        with self._lock:
            return self._quizzes.get(fingerprint)

    def __contains__(self, fingerprint: object) -> bool:
        with self._lock:
            return fingerprint in self._quizzes

    def __len__(self) -> int:
        with self._lock:
            return len(self._quizzes)

    def quizzes(self, answered: bool | None = None, correct: bool | None = None) -> list[Quiz]:
        """
        Quizzes in insertion order.

        Args:
            answered: only answered (True) or unanswered (False) quizzes
            correct: only quizzes whose answer is correct (True) or wrong (False)
        """
        with self._lock:
            quizzes = list(self._quizzes.values())
            answers = dict(self._answers)

        result = []
        for quiz in quizzes:
            answer = answers.get(quiz.concept_fingerprint)
            if answered is not None and (answer is not None) != answered:
                continue
            if correct is not None and (answer is None or answer.is_correct != correct):
                continue
            result.append(quiz)
        return result

    def record_answer(self, fingerprint: str, chosen_index: int) -> Answer:
        """
        Record (or overwrite) the answer for a quiz.

        Raises:
            KeyError: no quiz for `fingerprint`
            ValueError: `chosen_index` is not one of the quiz's choices
        """
        with self._lock:
            quiz = self._quizzes[fingerprint]
            if not 0 <= chosen_index < len(quiz.choices):
                raise ValueError(f"choice {chosen_index} out of range for {len(quiz.choices)} choices")
            answer = Answer(
                concept_fingerprint=fingerprint,
                chosen_index=chosen_index,
                is_correct=quiz.is_correct(chosen_index),
            )
            self._answers[fingerprint] = answer
            return answer

    def answer(self, fingerprint: str) -> Answer | None:
        with self._lock:
            return self._answers.get(fingerprint)

    def score(self) -> ScoreSummary:
        with self._lock:
            answers = [self._answers[fp] for fp in self._quizzes if fp in self._answers]
            total = len(self._quizzes)
        return ScoreSummary(
            total=total,
            answered=len(answers),
            correct=sum(1 for answer in answers if answer.is_correct),
        )

    def clear(self) -> None:
        with self._lock:
            self._quizzes = {}
            self._answers = {}
