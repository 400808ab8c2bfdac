"""Unit tests for InMemoryJobStore: the JobStore contract without PostgreSQL."""

from __future__ import annotations

from dataclasses import replace
from datetime import timedelta

import pytest

from picket.core.brokers.memory import InMemoryJobStore
from picket.core.models.job import JobOutcome
from picket.core.types.status import JobStatus, JobType
from tests.helpers import T0, FakeClock, make_job


async def _claimed(store: InMemoryJobStore, job_id: str = 'a', token: str = 'tok'):  # type: ignore[no-untyped-def]
    store.add_job(make_job(job_id))
    result = await store.try_claim(job_id, token)
    job = result.ok_value
    assert job is not None
    return job


@pytest.mark.unit
class TestEnqueue:
    @pytest.mark.asyncio
    async def test_enqueue_creates_claimable_job_and_event(
        self, store: InMemoryJobStore
    ) -> None:
        result = await store.enqueue_async(
            JobType.MAPPING_SHEET_SCAN, {'scanId': 's1'}, priority=3, max_attempts=2
        )
        job_id = result.ok_value
        job = store.jobs[job_id]

        assert job.status == JobStatus.QUEUED
        assert job.attempts == 0
        assert job.run_at == T0
        assert job.is_claimable(T0)
        assert [e.event_type for e in store.events] == ['queued']


@pytest.mark.unit
class TestOwnershipGuards:
    @pytest.mark.asyncio
    async def test_second_claim_of_running_job_loses(self, store: InMemoryJobStore) -> None:
        await _claimed(store)
        assert (await store.try_claim('a', 'other')).ok_value is None

    @pytest.mark.asyncio
    async def test_mark_succeeded_requires_token(self, store: InMemoryJobStore) -> None:
        await _claimed(store)

        assert (await store.mark_succeeded('a', 'wrong')).ok_value is False
        assert store.jobs['a'].status == JobStatus.RUNNING

        assert (await store.mark_succeeded('a', 'tok')).ok_value is True
        job = store.jobs['a']
        assert job.status == JobStatus.SUCCEEDED
        assert job.completed_at == T0
        assert job.lock_token is None and job.locked_at is None
        assert job.last_error is None

    @pytest.mark.asyncio
    async def test_apply_outcome_requeue_keeps_attempts(
        self, store: InMemoryJobStore
    ) -> None:
        await _claimed(store)
        run_at = T0 + timedelta(seconds=5)

        applied = await store.apply_outcome(
            'a', 'tok', JobOutcome(JobStatus.QUEUED, 'boom', run_at)
        )

        job = store.jobs['a']
        assert applied.ok_value is True
        assert job.status == JobStatus.QUEUED
        assert job.attempts == 1
        assert job.run_at == run_at
        assert job.last_error == 'boom'
        assert job.lock_token is None
        assert job.completed_at is None

    @pytest.mark.asyncio
    async def test_apply_outcome_failed_is_terminal(self, store: InMemoryJobStore) -> None:
        await _claimed(store)

        await store.apply_outcome('a', 'tok', JobOutcome(JobStatus.FAILED, 'gave up'))

        job = store.jobs['a']
        assert job.status == JobStatus.FAILED
        assert job.status.is_terminal
        assert job.completed_at == T0
        assert job.lock_token is None

    @pytest.mark.asyncio
    async def test_stale_owner_cannot_overwrite_new_owner(
        self, store: InMemoryJobStore, clock: FakeClock
    ) -> None:
        await _claimed(store, token='first')
        clock.advance(minutes=10)
        await store.reclaim_stale(JobType.FWC_LOOKUP, 60_000, 'stale')
        second = (await store.try_claim('a', 'second')).ok_value
        assert second is not None

        late = await store.apply_outcome('a', 'first', JobOutcome(JobStatus.FAILED, 'late'))

        assert late.ok_value is False
        assert store.jobs['a'].lock_token == 'second'
        assert store.jobs['a'].status == JobStatus.RUNNING


@pytest.mark.unit
class TestReleaseLock:
    @pytest.mark.asyncio
    async def test_running_row_keeps_its_lock(self, store: InMemoryJobStore) -> None:
        await _claimed(store)
        assert (await store.release_lock('a', 'tok')).ok_value is False
        assert store.jobs['a'].lock_token == 'tok'

    @pytest.mark.asyncio
    async def test_after_completion_is_a_no_op(self, store: InMemoryJobStore) -> None:
        await _claimed(store)
        await store.mark_succeeded('a', 'tok')
        assert (await store.release_lock('a', 'tok')).ok_value is False
        assert store.jobs['a'].status == JobStatus.SUCCEEDED

    @pytest.mark.asyncio
    async def test_clears_lock_left_by_an_outside_status_change(
        self, store: InMemoryJobStore
    ) -> None:
        job = await _claimed(store)
        store.jobs['a'] = replace(job, status=JobStatus.CANCELLED)

        assert (await store.release_lock('a', 'other')).ok_value is False
        assert (await store.release_lock('a', 'tok')).ok_value is True
        assert store.jobs['a'].lock_token is None
        assert store.jobs['a'].locked_at is None


@pytest.mark.unit
class TestCancel:
    @pytest.mark.asyncio
    async def test_cancel_queued(self, store: InMemoryJobStore) -> None:
        store.add_job(make_job('a'))
        job = (await store.cancel_job('a')).ok_value
        assert job is not None
        assert job.status == JobStatus.CANCELLED
        assert job.completed_at == T0
        assert [e.event_type for e in store.events] == ['cancelled']

    @pytest.mark.asyncio
    async def test_cancel_running_drops_lock(self, store: InMemoryJobStore) -> None:
        await _claimed(store)
        await store.cancel_job('a')
        assert store.jobs['a'].lock_token is None
        assert (await store.mark_succeeded('a', 'tok')).ok_value is False

    @pytest.mark.asyncio
    async def test_terminal_job_returned_unchanged(self, store: InMemoryJobStore) -> None:
        store.add_job(make_job('a', status=JobStatus.SUCCEEDED))
        job = (await store.cancel_job('a')).ok_value
        assert job is not None and job.status == JobStatus.SUCCEEDED
        assert store.events == []

    @pytest.mark.asyncio
    async def test_unknown_job(self, store: InMemoryJobStore) -> None:
        assert (await store.cancel_job('nope')).ok_value is None


@pytest.mark.unit
class TestProgress:
    @pytest.mark.asyncio
    async def test_total_kept_when_omitted(self, store: InMemoryJobStore) -> None:
        await store.update_progress('missing', 1)
        store.add_job(make_job('a'))
        await store.update_progress('a', 1, 3)
        await store.update_progress('a', 2)
        assert store.jobs['a'].progress_completed == 2
        assert store.jobs['a'].progress_total == 3
