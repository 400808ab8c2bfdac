# picket/core/brokers/memory.py
"""In-process job store for tests and local runs without PostgreSQL."""

from __future__ import annotations

import asyncio
import uuid
from dataclasses import replace
from datetime import datetime, timedelta
from typing import Any, Sequence

from result import Ok

from picket.core.brokers.result_types import StoreResult
from picket.core.models.job import JobEvent, JobOutcome, JobRecord
from picket.core.types.status import JobStatus
from picket.core.utils.clock import Clock, utc_now


class InMemoryJobStore:
    """
    Dict-backed implementation of the JobStore contract.

    Every conditional write checks and mutates without awaiting in between,
    which makes it atomic on a single event loop: concurrent workers in one
    loop race exactly like separate processes do against PostgreSQL.

    The clock is injectable so tests can step time past run_at and lock
    timeouts.
    """

    def __init__(self, clock: Clock = utc_now) -> None:
        self.clock = clock
        self.jobs: dict[str, JobRecord] = {}
        self.events: list[JobEvent] = []
        self._next_event_id = 1
        self.closed = False

    def _insert_event(
        self, job_id: str, event_type: str, payload: dict[str, Any] | None
    ) -> None:
        self.events.append(
            JobEvent(
                id=self._next_event_id,
                job_id=job_id,
                event_type=event_type,
                payload=payload,
                created_at=self.clock(),
            )
        )
        self._next_event_id += 1

    def _owned_running(self, job_id: str, lock_token: str) -> JobRecord | None:
        job = self.jobs.get(job_id)
        if job is None or job.lock_token != lock_token or job.status != JobStatus.RUNNING:
            return None
        return job

    def add_job(self, job: JobRecord) -> JobRecord:
        """Insert a prepared record as is."""
        self.jobs[job.id] = job
        return job

    async def ensure_schema_initialized(self) -> StoreResult[None]:
        return Ok(None)

    async def ping(self) -> StoreResult[None]:
        return Ok(None)

    async def enqueue_async(
        self,
        job_type: str,
        payload: dict[str, Any],
        *,
        priority: int,
        max_attempts: int,
        run_at: datetime | None = None,
        progress_total: int | None = None,
    ) -> StoreResult[str]:
        now = self.clock()
        job = JobRecord(
            id=str(uuid.uuid4()),
            job_type=str(job_type),
            status=JobStatus.QUEUED,
            payload=dict(payload),
            priority=priority,
            run_at=run_at or now,
            attempts=0,
            max_attempts=max_attempts,
            created_at=now,
            updated_at=now,
            progress_total=progress_total,
        )
        self.jobs[job.id] = job
        self._insert_event(
            job.id, 'queued', {'priority': priority, 'max_attempts': max_attempts}
        )
        return Ok(job.id)

    async def fetch_candidates(
        self, job_types: Sequence[str], limit: int
    ) -> StoreResult[list[str]]:
        now = self.clock()
        wanted = {str(t) for t in job_types}
        candidates = sorted(
            (
                job
                for job in self.jobs.values()
                if job.job_type in wanted and job.is_claimable(now)
            ),
            key=lambda job: (job.priority, job.created_at),
        )
        ids = [job.id for job in candidates[:limit]]
        # a real read is a suspension point; let racing workers interleave
        await asyncio.sleep(0)
        return Ok(ids)

    async def try_claim(
        self, job_id: str, lock_token: str
    ) -> StoreResult[JobRecord | None]:
        now = self.clock()
        job = self.jobs.get(job_id)
        if job is None or not job.is_claimable(now):
            return Ok(None)
        claimed = replace(
            job,
            lock_token=lock_token,
            status=JobStatus.RUNNING,
            attempts=job.attempts + 1,
            locked_at=now,
            last_error=None,
            updated_at=now,
        )
        self.jobs[job_id] = claimed
        return Ok(claimed)

    async def mark_succeeded(self, job_id: str, lock_token: str) -> StoreResult[bool]:
        job = self._owned_running(job_id, lock_token)
        if job is None:
            return Ok(False)
        now = self.clock()
        self.jobs[job_id] = replace(
            job,
            status=JobStatus.SUCCEEDED,
            completed_at=now,
            lock_token=None,
            locked_at=None,
            last_error=None,
            updated_at=now,
        )
        return Ok(True)

    async def apply_outcome(
        self, job_id: str, lock_token: str, outcome: JobOutcome
    ) -> StoreResult[bool]:
        job = self._owned_running(job_id, lock_token)
        if job is None:
            return Ok(False)
        now = self.clock()
        if outcome.will_retry:
            updated = replace(
                job,
                status=JobStatus.QUEUED,
                run_at=outcome.run_at or now,
                last_error=outcome.last_error,
                lock_token=None,
                locked_at=None,
                updated_at=now,
            )
        else:
            updated = replace(
                job,
                status=JobStatus.FAILED,
                completed_at=now,
                last_error=outcome.last_error,
                lock_token=None,
                locked_at=None,
                updated_at=now,
            )
        self.jobs[job_id] = updated
        return Ok(True)

    async def release_lock(self, job_id: str, lock_token: str) -> StoreResult[bool]:
        job = self.jobs.get(job_id)
        if job is None or job.lock_token != lock_token or job.status == JobStatus.RUNNING:
            return Ok(False)
        self.jobs[job_id] = replace(
            job, lock_token=None, locked_at=None, updated_at=self.clock()
        )
        return Ok(True)

    async def reclaim_stale(
        self, job_type: str, lock_timeout_ms: int, message: str
    ) -> StoreResult[list[str]]:
        now = self.clock()
        cutoff = now - timedelta(milliseconds=lock_timeout_ms)
        reclaimed: list[str] = []
        for job in list(self.jobs.values()):
            if (
                job.status == JobStatus.RUNNING
                and job.job_type == str(job_type)
                and job.locked_at is not None
                and job.locked_at < cutoff
            ):
                self.jobs[job.id] = replace(
                    job,
                    status=JobStatus.QUEUED,
                    lock_token=None,
                    locked_at=None,
                    last_error=message,
                    run_at=now,
                    updated_at=now,
                )
                reclaimed.append(job.id)
        return Ok(reclaimed)

    async def force_requeue(
        self, job_id: str, lock_token: str, message: str
    ) -> StoreResult[bool]:
        job = self._owned_running(job_id, lock_token)
        if job is None:
            return Ok(False)
        now = self.clock()
        self.jobs[job_id] = replace(
            job,
            status=JobStatus.QUEUED,
            lock_token=None,
            locked_at=None,
            last_error=message,
            run_at=now,
            updated_at=now,
        )
        return Ok(True)

    async def update_progress(
        self, job_id: str, completed: int, total: int | None = None
    ) -> StoreResult[None]:
        job = self.jobs.get(job_id)
        if job is not None:
            self.jobs[job_id] = replace(
                job,
                progress_completed=completed,
                progress_total=total if total is not None else job.progress_total,
                updated_at=self.clock(),
            )
        return Ok(None)

    async def append_event(
        self, job_id: str, event_type: str, payload: dict[str, Any] | None = None
    ) -> StoreResult[None]:
        self._insert_event(job_id, event_type, payload)
        return Ok(None)

    async def get_job(self, job_id: str) -> StoreResult[JobRecord | None]:
        return Ok(self.jobs.get(job_id))

    async def list_events(self, job_id: str) -> StoreResult[list[JobEvent]]:
        return Ok([event for event in self.events if event.job_id == job_id])

    async def cancel_job(self, job_id: str) -> StoreResult[JobRecord | None]:
        job = self.jobs.get(job_id)
        if job is None or job.status.is_terminal:
            return Ok(job)
        now = self.clock()
        cancelled = replace(
            job,
            status=JobStatus.CANCELLED,
            completed_at=now,
            lock_token=None,
            locked_at=None,
            updated_at=now,
        )
        self.jobs[job_id] = cancelled
        self._insert_event(job_id, 'cancelled', None)
        return Ok(cancelled)

    async def close_async(self) -> StoreResult[None]:
        self.closed = True
        return Ok(None)
