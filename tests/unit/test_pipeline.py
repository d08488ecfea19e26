"""
Unit tests for the quiz pipeline and its background host.
"""

import asyncio

import pytest

from learnchain.concepts.models import Concept, Difficulty
from learnchain.errors import CredentialMissing, GenerationFatalError, GenerationTransientError
from learnchain.generation.background import BackgroundPipeline
from learnchain.generation.models import JobState, PipelineEventKind, Quiz
from learnchain.generation.pipeline import QuizPipeline
from learnchain.quiz.store import QuizStore


def make_concept(name):
    return Concept(
        fingerprint=f"fp-{name}",
        title=name,
        supporting_events=(),
        difficulty_hint=Difficulty.INTRODUCTORY,
        text=f"Some session text about {name}.",
    )


def make_quiz(fingerprint):
    return Quiz(
        concept_fingerprint=fingerprint,
        question_text=f"Question for {fingerprint}?",
        choices=("right", "wrong", "also wrong", "nope"),
        correct_index=0,
    )


class FakeClient:
    """Scripted generator. `outcomes` maps fingerprint to a list of exceptions raised in order."""

    def __init__(self, outcomes=None, gates=None, gate=None):
        self.has_credential = True
        self.outcomes = outcomes or {}
        self.gates = gates or {}
        self.gate = gate
        self.calls = []
        self.in_flight = 0
        self.peak = 0
        self.closed = False

    async def generate(self, prompt, constraints):
        fingerprint = constraints.concept_fingerprint
        self.calls.append(fingerprint)
        self.in_flight += 1
        self.peak = max(self.peak, self.in_flight)
        try:
            gate = self.gates.get(fingerprint, self.gate)
            if gate is not None:
                await gate.wait()
            else:
                await asyncio.sleep(0)
            script = self.outcomes.get(fingerprint)
            if script:
                raise script.pop(0)
            return make_quiz(fingerprint)
        finally:
            self.in_flight -= 1

    async def close(self):
        self.closed = True


class SleepRecorder:
    def __init__(self):
        self.delays = []

    async def __call__(self, delay):
        self.delays.append(delay)


async def settle(rounds=10):
    for _ in range(rounds):
        await asyncio.sleep(0)


def kinds_for(events, fingerprint):
    return [event.kind for event in events if event.fingerprint == fingerprint]


# =============================================================================
# Submission and caching
# =============================================================================


class TestSubmission:
    """Tests for submit, deduplication and caching."""

    @pytest.mark.asyncio
    async def test_job_runs_to_success(self):
        store, events = QuizStore(), []
        pipeline = QuizPipeline(FakeClient(), store=store, on_event=events.append)

        job = pipeline.submit(make_concept("loops"))
        await pipeline.wait(job)

        assert job.state == JobState.SUCCEEDED
        assert job.attempt_count == 1
        assert store.get("fp-loops") == job.result
        assert kinds_for(events, "fp-loops") == [
            PipelineEventKind.SUBMITTED,
            PipelineEventKind.STARTED,
            PipelineEventKind.SUCCEEDED,
        ]

    @pytest.mark.asyncio
    async def test_duplicate_submit_returns_active_job(self):
        gate = asyncio.Event()
        client = FakeClient(gate=gate)
        pipeline = QuizPipeline(client)

        first = pipeline.submit(make_concept("loops"))
        await settle()
        second = pipeline.submit(make_concept("loops"))
        gate.set()
        await pipeline.wait(first)

        assert first is second
        assert client.calls == ["fp-loops"]

    @pytest.mark.asyncio
    async def test_succeeded_job_is_cached(self):
        client, events = FakeClient(), []
        pipeline = QuizPipeline(client, on_event=events.append)

        job = pipeline.submit(make_concept("loops"))
        await pipeline.wait(job)
        again = pipeline.submit(make_concept("loops"))

        assert again is job
        assert again.result is not None
        assert client.calls == ["fp-loops"]
        assert kinds_for(events, "fp-loops").count(PipelineEventKind.SUBMITTED) == 1

    @pytest.mark.asyncio
    async def test_failed_job_can_be_resubmitted(self):
        client = FakeClient(outcomes={"fp-loops": [GenerationFatalError("bad request")]})
        pipeline = QuizPipeline(client)

        failed = pipeline.submit(make_concept("loops"))
        await pipeline.wait(failed)
        retried = pipeline.submit(make_concept("loops"))
        await pipeline.wait(retried)

        assert failed.state == JobState.FAILED
        assert retried is not failed
        assert retried.state == JobState.SUCCEEDED

    @pytest.mark.asyncio
    async def test_missing_credential_rejects_submit(self):
        client = FakeClient()
        client.has_credential = False
        pipeline = QuizPipeline(client)

        with pytest.raises(CredentialMissing):
            pipeline.submit(make_concept("loops"))
        assert pipeline.jobs() == []
        assert client.calls == []

    def test_invalid_limits_rejected(self):
        with pytest.raises(ValueError):
            QuizPipeline(FakeClient(), concurrency=0)
        with pytest.raises(ValueError):
            QuizPipeline(FakeClient(), max_attempts=0)


# =============================================================================
# Retry
# =============================================================================


class TestRetry:
    """Tests for the transient/fatal retry policy."""

    @pytest.mark.asyncio
    async def test_transient_failures_stop_at_max_attempts(self):
        outcomes = {"fp-loops": [GenerationTransientError("503")] * 5}
        client, sleep = FakeClient(outcomes=outcomes), SleepRecorder()
        pipeline = QuizPipeline(client, max_attempts=3, backoff_base=1.0, backoff_max=8.0, sleep=sleep)

        job = pipeline.submit(make_concept("loops"))
        await pipeline.wait(job)

        assert job.state == JobState.FAILED
        assert job.attempt_count == 3
        assert len(client.calls) == 3
        assert sleep.delays == [1.0, 2.0]
        assert job.failure_reason.startswith("gave up after 3 attempts")

    @pytest.mark.asyncio
    async def test_transient_then_success(self):
        outcomes = {"fp-loops": [GenerationTransientError("timeout")]}
        events = []
        pipeline = QuizPipeline(FakeClient(outcomes=outcomes), sleep=SleepRecorder(), on_event=events.append)

        job = pipeline.submit(make_concept("loops"))
        await pipeline.wait(job)

        assert job.state == JobState.SUCCEEDED
        assert job.attempt_count == 2
        assert PipelineEventKind.RETRYING in kinds_for(events, "fp-loops")

    @pytest.mark.asyncio
    async def test_fatal_error_not_retried(self):
        outcomes = {"fp-loops": [GenerationFatalError("401")]}
        client, sleep = FakeClient(outcomes=outcomes), SleepRecorder()
        pipeline = QuizPipeline(client, sleep=sleep)

        job = pipeline.submit(make_concept("loops"))
        await pipeline.wait(job)

        assert job.state == JobState.FAILED
        assert job.attempt_count == 1
        assert job.failure_reason == "401"
        assert sleep.delays == []

    def test_backoff_is_capped(self):
        pipeline = QuizPipeline(FakeClient(), backoff_base=1.0, backoff_max=8.0)
        assert [pipeline.backoff_delay(n) for n in range(1, 7)] == [1.0, 2.0, 4.0, 8.0, 8.0, 8.0]

    @pytest.mark.asyncio
    async def test_unexpected_error_fails_only_that_job(self):
        outcomes = {"fp-broken": [RuntimeError("boom")]}
        store = QuizStore()
        pipeline = QuizPipeline(FakeClient(outcomes=outcomes), store=store)

        jobs = pipeline.submit_many([make_concept("broken"), make_concept("fine")])
        await pipeline.wait_all(jobs)

        assert [job.state for job in jobs] == [JobState.FAILED, JobState.SUCCEEDED]
        assert "boom" in jobs[0].failure_reason
        assert "fp-fine" in store
        assert "fp-broken" not in store


# =============================================================================
# Concurrency and cancellation
# =============================================================================


class TestConcurrency:
    """Tests for the in-flight bound, ordering and cancellation."""

    @pytest.mark.asyncio
    async def test_in_flight_never_exceeds_limit(self):
        gate = asyncio.Event()
        client = FakeClient(gate=gate)
        pipeline = QuizPipeline(client, concurrency=2)

        jobs = pipeline.submit_many([make_concept(f"c{i}") for i in range(5)])
        await settle()
        counts = pipeline.counts()

        assert counts[JobState.IN_FLIGHT] == 2
        assert counts[JobState.QUEUED] == 3
        assert pipeline.active_count == 5

        gate.set()
        await pipeline.wait_all(jobs)

        assert client.peak == 2
        assert all(job.state == JobState.SUCCEEDED for job in jobs)

    @pytest.mark.asyncio
    async def test_events_follow_completion_order(self):
        gates = {"fp-slow": asyncio.Event(), "fp-fast": asyncio.Event()}
        events = []
        pipeline = QuizPipeline(FakeClient(gates=gates), on_event=events.append)

        slow, fast = pipeline.submit_many([make_concept("slow"), make_concept("fast")])
        await settle()
        gates["fp-fast"].set()
        await pipeline.wait(fast)
        gates["fp-slow"].set()
        await pipeline.wait(slow)

        finished = [event.fingerprint for event in events if event.is_terminal]
        assert finished == ["fp-fast", "fp-slow"]

    @pytest.mark.asyncio
    async def test_cancel_all_leaves_nothing_active(self):
        gate = asyncio.Event()
        store, events = QuizStore(), []
        pipeline = QuizPipeline(FakeClient(gate=gate), concurrency=1, store=store, on_event=events.append)

        jobs = pipeline.submit_many([make_concept(f"c{i}") for i in range(3)])
        await settle()

        assert pipeline.cancel_all() == 3
        assert pipeline.active_count == 0
        assert all(job.state == JobState.CANCELLED for job in jobs)
        assert all(job.future.done() for job in jobs)

        gate.set()
        await settle()

        assert len(store) == 0
        assert all(job.state == JobState.CANCELLED for job in jobs)
        cancelled = [event for event in events if event.kind == PipelineEventKind.CANCELLED]
        assert len(cancelled) == 3

    @pytest.mark.asyncio
    async def test_cancel_with_nothing_active(self):
        pipeline = QuizPipeline(FakeClient())
        job = pipeline.submit(make_concept("loops"))
        await pipeline.wait(job)

        assert pipeline.cancel_all() == 0
        assert job.state == JobState.SUCCEEDED

    @pytest.mark.asyncio
    async def test_reset_forgets_jobs_and_quizzes(self):
        store = QuizStore()
        client = FakeClient()
        pipeline = QuizPipeline(client, store=store)

        job = pipeline.submit(make_concept("loops"))
        await pipeline.wait(job)
        pipeline.reset()

        assert pipeline.jobs() == []
        assert len(store) == 0

        again = pipeline.submit(make_concept("loops"))
        await pipeline.wait(again)
        assert again is not job
        assert client.calls == ["fp-loops", "fp-loops"]


# =============================================================================
# Background host
# =============================================================================


class TestBackgroundPipeline:
    """Tests for the daemon-thread host."""

    def test_submit_and_wait_from_caller_thread(self):
        client, store = FakeClient(), QuizStore()
        background = BackgroundPipeline(client, store=store, concurrency=2)
        background.start()
        try:
            jobs = background.submit_many([make_concept("a"), make_concept("b")])
            for job in jobs:
                background.wait(job, timeout=5.0)

            assert [job.state for job in jobs] == [JobState.SUCCEEDED, JobState.SUCCEEDED]
            assert len(store) == 2
            kinds = [event.kind for event in background.drain_events()]
            assert kinds.count(PipelineEventKind.SUCCEEDED) == 2
            assert background.drain_events() == []
        finally:
            background.stop()

        assert not background.is_running
        assert client.closed

    def test_stop_cancels_active_jobs(self):
        # The gate is never set: jobs stay in flight until stop()
        client = FakeClient(gate=asyncio.Event())
        background = BackgroundPipeline(client, concurrency=1)
        background.start()
        jobs = background.submit_many([make_concept("a"), make_concept("b")])

        background.stop()

        assert background.active_count == 0
        assert all(job.state == JobState.CANCELLED for job in jobs)
