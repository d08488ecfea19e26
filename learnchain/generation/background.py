"""
Background host for the quiz pipeline.

Runs the pipeline's event loop in a daemon thread so the synchronous
interactive loop can submit work and poll for pipeline events.

Usage:
    background = BackgroundPipeline(client, store=store)
    background.start()
    background.submit_many(concepts)
    for event in background.drain_events():
        ...
    background.stop()
"""

from __future__ import annotations

import asyncio
import queue
import threading
from typing import Iterable

from loguru import logger

from learnchain.concepts.models import Concept
from learnchain.generation.models import JobState, PipelineEvent, QuizJob
from learnchain.generation.pipeline import QuizGenerator, QuizPipeline
from learnchain.quiz.store import QuizStore


class BackgroundPipeline:
    """QuizPipeline hosted on its own event loop thread."""

    def __init__(
        self,
        client: QuizGenerator,
        store: QuizStore | None = None,
        **pipeline_options,
    ):
        self.client = client
        self.events: queue.Queue[PipelineEvent] = queue.Queue()
        self.pipeline = QuizPipeline(
            client,
            store=store,
            on_event=self.events.put,
            **pipeline_options,
        )
        self._loop: asyncio.AbstractEventLoop | None = None
        self._thread: threading.Thread | None = None
        self._ready = threading.Event()

    @property
    def is_running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    def start(self) -> None:
        """Start the event loop thread. Safe to call twice."""
        if self.is_running:
            logger.warning("Quiz pipeline already running")
            return

        self._loop = asyncio.new_event_loop()
        self.pipeline.bind_loop(self._loop)
        self._ready.clear()
        self._thread = threading.Thread(
            target=self._run_loop,
            name="quiz-pipeline",
            daemon=True,
        )
        self._thread.start()
        self._ready.wait(timeout=5.0)
        logger.info("Quiz pipeline started (concurrency: {})", self.pipeline.concurrency)

    def stop(self) -> None:
        """Cancel active jobs, stop the loop and close the HTTP client."""
        if not self.is_running or self._loop is None:
            return

        logger.info("Stopping quiz pipeline...")
        self.pipeline.cancel_all()
        self._loop.call_soon_threadsafe(self._loop.stop)
        if self._thread:
            self._thread.join(timeout=5.0)
        logger.info("Quiz pipeline stopped")

    def _run_loop(self) -> None:
        loop = self._loop
        asyncio.set_event_loop(loop)
        loop.call_soon(self._ready.set)
        try:
            loop.run_forever()
        finally:
            pending = asyncio.all_tasks(loop)
            for task in pending:
                task.cancel()
            if pending:
                loop.run_until_complete(asyncio.gather(*pending, return_exceptions=True))
            close = getattr(self.client, "close", None)
            if close is not None:
                loop.run_until_complete(close())
            loop.close()

    # ========================================
    # Pipeline delegation
    # ========================================

    def submit(self, concept: Concept) -> QuizJob:
        return self.pipeline.submit(concept)

    def submit_many(self, concepts: Iterable[Concept]) -> list[QuizJob]:
        return self.pipeline.submit_many(concepts)

    def wait(self, job: QuizJob, timeout: float | None = None) -> QuizJob:
        """Block until `job` is terminal (raises TimeoutError on timeout)."""
        return job.future.result(timeout=timeout)

    def cancel_all(self) -> int:
        return self.pipeline.cancel_all()

    def reset(self) -> None:
        self.pipeline.reset()

    def counts(self) -> dict[JobState, int]:
        return self.pipeline.counts()

    @property
    def active_count(self) -> int:
        return self.pipeline.active_count

    def drain_events(self) -> list[PipelineEvent]:
        """Pop every event queued since the last call, without blocking."""
        drained = []
        while True:
            try:
                drained.append(self.events.get_nowait())
            except queue.Empty:
                return drained
