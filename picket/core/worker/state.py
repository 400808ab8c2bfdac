# picket/core/worker/state.py
"""Worker state shared by the loop, the shutdown coordinator and /health."""

from __future__ import annotations

import asyncio
from dataclasses import dataclass
from datetime import datetime

from picket.core.models.job import JobRecord
from picket.core.utils.clock import Clock, utc_now


@dataclass(slots=True, frozen=True)
class CurrentJob:
    job_id: str
    lock_token: str
    job_type: str
    started_at: datetime


@dataclass(slots=True, frozen=True)
class WorkerStateView:
    """Read-only snapshot handed to the health endpoint."""

    current_job_id: str | None
    current_job_ids: tuple[str, ...]
    shutting_down: bool
    started_at: datetime
    uptime_seconds: float


class WorkerState:
    """
    Jobs in flight plus the shutting-down flag.

    Owned by the Worker. The shutdown coordinator flips the flag and reads
    the in-flight jobs; everything else gets snapshots.
    """

    def __init__(self, clock: Clock = utc_now) -> None:
        self._clock = clock
        self.started_at: datetime = clock()
        self.current_jobs: dict[str, CurrentJob] = {}
        self.shutting_down: bool = False
        self._stop_event = asyncio.Event()

    @property
    def current_job_id(self) -> str | None:
        return next(iter(self.current_jobs), None)

    @property
    def idle(self) -> bool:
        return not self.current_jobs

    def begin(self, job: JobRecord) -> CurrentJob:
        """Register a claimed job as in flight. Calling it twice is harmless."""
        existing = self.current_jobs.get(job.id)
        if existing is not None:
            return existing
        if job.lock_token is None:
            raise ValueError(f'job {job.id} has no lock token; only claimed jobs can be in flight')
        current = CurrentJob(
            job_id=job.id,
            lock_token=job.lock_token,
            job_type=job.job_type,
            started_at=self._clock(),
        )
        self.current_jobs[job.id] = current
        return current

    def finish(self, job_id: str) -> None:
        self.current_jobs.pop(job_id, None)

    def request_shutdown(self) -> bool:
        """Set the flag and wake idle sleeps. Returns False if already set."""
        if self.shutting_down:
            return False
        self.shutting_down = True
        self._stop_event.set()
        return True

    async def sleep(self, seconds: float) -> None:
        """Sleep, returning early once shutdown is requested."""
        if self.shutting_down:
            return
        try:
            await asyncio.wait_for(self._stop_event.wait(), timeout=seconds)
        except asyncio.TimeoutError:
            pass

    def snapshot(self) -> WorkerStateView:
        ids = tuple(self.current_jobs)
        return WorkerStateView(
            current_job_id=ids[0] if ids else None,
            current_job_ids=ids,
            shutting_down=self.shutting_down,
            started_at=self.started_at,
            uptime_seconds=(self._clock() - self.started_at).total_seconds(),
        )
