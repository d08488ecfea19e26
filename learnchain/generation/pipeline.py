"""
Bounded-concurrency quiz pipeline.

Turns Concepts into Quizzes with:
- at most `concurrency` generation calls in flight
- at most one job per concept fingerprint while it is queued or in flight
- cached results for succeeded fingerprints
- exponential backoff on transient failures, up to `max_attempts`
- synchronous cancellation of every active job

The job table is guarded by a threading lock so `submit` and `cancel_all` can
be called from the interactive loop while jobs run on the event loop thread.
"""

from __future__ import annotations

import asyncio
import threading
from collections import Counter
from functools import partial
from typing import TYPE_CHECKING, Awaitable, Callable, Iterable, Protocol

from loguru import logger

from learnchain.concepts.models import Concept
from learnchain.errors import (
    CredentialMissing,
    GenerationError,
    GenerationTransientError,
)
from learnchain.generation.models import (
    GenerationConstraints,
    JobState,
    PipelineEvent,
    PipelineEventKind,
    Quiz,
    QuizJob,
)
from learnchain.generation.prompts import build_prompt

if TYPE_CHECKING:
    from learnchain.quiz.store import QuizStore


class QuizGenerator(Protocol):
    """Anything that can turn a prompt into a Quiz."""

    @property
    def has_credential(self) -> bool:
        ...

    async def generate(self, prompt: str, constraints: GenerationConstraints) -> Quiz:
        ...


class QuizPipeline:
    """Asynchronous job runner from Concepts to Quizzes."""

    def __init__(
        self,
        client: QuizGenerator,
        *,
        concurrency: int = 3,
        max_attempts: int = 3,
        backoff_base: float = 1.0,
        backoff_max: float = 8.0,
        choice_count: int = 4,
        store: QuizStore | None = None,
        on_event: Callable[[PipelineEvent], None] | None = None,
        loop: asyncio.AbstractEventLoop | None = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        if concurrency < 1:
            raise ValueError("concurrency must be at least 1")
        if max_attempts < 1:
            raise ValueError("max_attempts must be at least 1")
        self.client = client
        self.concurrency = concurrency
        self.max_attempts = max_attempts
        self.backoff_base = backoff_base
        self.backoff_max = backoff_max
        self.choice_count = choice_count
        self.store = store
        self.on_event = on_event
        self._loop = loop
        self._sleep = sleep
        self._semaphore = asyncio.Semaphore(concurrency)
        self._jobs: dict[str, QuizJob] = {}
        self._tasks: dict[str, asyncio.Task] = {}
        self._lock = threading.Lock()

    def bind_loop(self, loop: asyncio.AbstractEventLoop) -> None:
        """Run jobs on `loop` (used when the pipeline is hosted on another thread)."""
        self._loop = loop

    # ========================================
    # Submission
    # ========================================

    def submit(self, concept: Concept) -> QuizJob:
        """
        Submit a concept for generation and return its job handle.

        Returns the existing job while one is queued or in flight, and the
        succeeded job (with its cached result) once one has completed.

        Raises:
            CredentialMissing: no API credential is configured
        """
        if not self.client.has_credential:
            raise CredentialMissing()

        fingerprint = concept.fingerprint
        with self._lock:
            existing = self._jobs.get(fingerprint)
            if existing is not None and (existing.state.is_active or existing.state == JobState.SUCCEEDED):
                logger.debug("Reusing {} job for {}", existing.state.value, fingerprint)
                return existing
            job = QuizJob(concept_fingerprint=fingerprint, concept=concept)
            self._jobs[fingerprint] = job

        self._emit(PipelineEvent(PipelineEventKind.SUBMITTED, fingerprint))
        self._schedule(job)
        return job

    def submit_many(self, concepts: Iterable[Concept]) -> list[QuizJob]:
        return [self.submit(concept) for concept in concepts]

    async def wait(self, job: QuizJob) -> QuizJob:
        """Wait until `job` is terminal."""
        return await asyncio.wrap_future(job.future)

    async def wait_all(self, jobs: Iterable[QuizJob] | None = None) -> list[QuizJob]:
        targets = list(jobs) if jobs is not None else self.jobs()
        return list(await asyncio.gather(*(self.wait(job) for job in targets)))

    # ========================================
    # Inspection
    # ========================================

    def job(self, fingerprint: str) -> QuizJob | None:
        with self._lock:
            return self._jobs.get(fingerprint)

    def jobs(self) -> list[QuizJob]:
        with self._lock:
            return list(self._jobs.values())

    def counts(self) -> dict[JobState, int]:
        with self._lock:
            tally = Counter(job.state for job in self._jobs.values())
        return {state: tally.get(state, 0) for state in JobState}

    @property
    def active_count(self) -> int:
        with self._lock:
            return sum(1 for job in self._jobs.values() if job.state.is_active)

    def backoff_delay(self, attempt: int) -> float:
        """Delay before retrying after failed attempt number `attempt` (1-based)."""
        return min(self.backoff_base * (2 ** (attempt - 1)), self.backoff_max)

    # ========================================
    # Cancellation
    # ========================================

    def cancel_all(self) -> int:
        """
        Move every queued or in-flight job to Cancelled before returning.

        Running calls are abandoned and any late result is discarded.
        Returns the number of jobs cancelled.
        """
        with self._lock:
            active = [job for job in self._jobs.values() if job.state.is_active]
            for job in active:
                job.state = JobState.CANCELLED
                job.failure_reason = "cancelled"
            tasks = [self._tasks.pop(job.concept_fingerprint) for job in active if job.concept_fingerprint in self._tasks]

        for job in active:
            self._emit(PipelineEvent(PipelineEventKind.CANCELLED, job.concept_fingerprint, job.attempt_count))
            self._resolve(job)

        for task in tasks:
            self._call_in_loop(task.cancel)

        if active:
            logger.info("Cancelled {} quiz jobs", len(active))
        return len(active)

    def reset(self) -> None:
        """Cancel everything and forget all jobs (session switch)."""
        self.cancel_all()
        with self._lock:
            self._jobs.clear()
        if self.store is not None:
            self.store.clear()
        logger.debug("Quiz pipeline reset")

    # ========================================
    # Job execution
    # ========================================

    def _schedule(self, job: QuizJob) -> None:
        if self._loop is None:
            self._loop = asyncio.get_running_loop()
        self._call_in_loop(partial(self._create_task, job))

    def _call_in_loop(self, callback: Callable[[], object]) -> None:
        loop = self._loop
        if loop is None or loop.is_closed():
            return
        if _running_loop() is loop:
            callback()
        else:
            loop.call_soon_threadsafe(callback)

    def _create_task(self, job: QuizJob) -> None:
        fingerprint = job.concept_fingerprint
        with self._lock:
            if job.state != JobState.QUEUED or self._jobs.get(fingerprint) is not job:
                return
            task = self._loop.create_task(self._run(job), name=f"quiz-{fingerprint}")
            self._tasks[fingerprint] = task
        task.add_done_callback(partial(self._forget_task, fingerprint))

    def _forget_task(self, fingerprint: str, task: asyncio.Task) -> None:
        with self._lock:
            if self._tasks.get(fingerprint) is task:
                del self._tasks[fingerprint]

    async def _run(self, job: QuizJob) -> None:
        try:
            async with self._semaphore:
                await self._attempts(job)
        except asyncio.CancelledError:
            self._finish(job, JobState.CANCELLED, reason="cancelled")
            raise
        except Exception as e:
            logger.exception("Quiz job {} crashed", job.concept_fingerprint)
            self._finish(job, JobState.FAILED, reason=f"unexpected error: {e}")

    async def _attempts(self, job: QuizJob) -> None:
        concept = job.concept
        prompt = build_prompt(concept, self.choice_count)
        constraints = GenerationConstraints(
            concept_fingerprint=concept.fingerprint,
            choice_count=self.choice_count,
            difficulty=concept.difficulty_hint,
        )

        while True:
            with self._lock:
                if not job.state.is_active:
                    return
                job.state = JobState.IN_FLIGHT
                job.attempt_count += 1
                attempt = job.attempt_count
            self._emit(PipelineEvent(PipelineEventKind.STARTED, job.concept_fingerprint, attempt))

            try:
                quiz = await self.client.generate(prompt, constraints)
            except GenerationTransientError as e:
                if attempt >= self.max_attempts:
                    self._finish(job, JobState.FAILED, reason=f"gave up after {attempt} attempts: {e}")
                    return
                delay = self.backoff_delay(attempt)
                logger.warning(
                    "Quiz generation for {} failed on attempt {}/{}: {}. Retrying in {}s...",
                    job.concept_fingerprint,
                    attempt,
                    self.max_attempts,
                    e,
                    delay,
                )
                self._emit(PipelineEvent(PipelineEventKind.RETRYING, job.concept_fingerprint, attempt, str(e)))
                await self._sleep(delay)
                continue
            except GenerationError as e:
                self._finish(job, JobState.FAILED, reason=str(e))
                return

            self._finish(job, JobState.SUCCEEDED, quiz=quiz)
            return

    def _finish(
        self,
        job: QuizJob,
        state: JobState,
        quiz: Quiz | None = None,
        reason: str | None = None,
    ) -> bool:
        fingerprint = job.concept_fingerprint
        with self._lock:
            if not job.state.is_active or self._jobs.get(fingerprint) is not job:
                if quiz is not None:
                    logger.debug("Discarding late result for {}", fingerprint)
                return False
            job.state = state
            job.result = quiz
            job.failure_reason = reason
            if quiz is not None and self.store is not None:
                self.store.insert(quiz)

        if state == JobState.SUCCEEDED:
            logger.info("Quiz ready for {} after {} attempt(s)", fingerprint, job.attempt_count)
            self._emit(PipelineEvent(PipelineEventKind.SUCCEEDED, fingerprint, job.attempt_count, quiz=quiz))
        elif state == JobState.FAILED:
            logger.error("Quiz job {} failed: {}", fingerprint, reason)
            self._emit(PipelineEvent(PipelineEventKind.FAILED, fingerprint, job.attempt_count, reason))
        else:
            self._emit(PipelineEvent(PipelineEventKind.CANCELLED, fingerprint, job.attempt_count))
        self._resolve(job)
        return True

    def _resolve(self, job: QuizJob) -> None:
        if not job.future.done():
            job.future.set_result(job)

    def _emit(self, event: PipelineEvent) -> None:
        logger.debug("Pipeline event {} for {}", event.kind.value, event.fingerprint)
        if self.on_event is not None:
            self.on_event(event)


def _running_loop() -> asyncio.AbstractEventLoop | None:
    try:
        return asyncio.get_running_loop()
    except RuntimeError:
        return None
