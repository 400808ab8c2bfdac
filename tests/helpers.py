"""Test doubles shared by unit and integration tests."""

from __future__ import annotations

from datetime import datetime, timedelta, timezone
from typing import Any

from sqlalchemy import text

from picket.core.brokers.postgres import PostgresJobStore
from picket.core.models.job import JobRecord
from picket.core.types.status import JobStatus, JobType

T0 = datetime(2026, 1, 5, 9, 0, 0, tzinfo=timezone.utc)


class FakeClock:
    """Wall clock that only moves when a test advances it."""

    def __init__(self, start: datetime = T0) -> None:
        self.now = start

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs: float) -> datetime:
        self.now = self.now + timedelta(**kwargs)
        return self.now


def make_job(
    job_id: str = 'job-1',
    *,
    job_type: str = JobType.FWC_LOOKUP,
    status: JobStatus = JobStatus.QUEUED,
    payload: dict[str, Any] | None = None,
    priority: int = 5,
    attempts: int = 0,
    max_attempts: int = 5,
    run_at: datetime = T0,
    created_at: datetime = T0,
    lock_token: str | None = None,
    locked_at: datetime | None = None,
) -> JobRecord:
    return JobRecord(
        id=job_id,
        job_type=str(job_type),
        status=status,
        payload=payload if payload is not None else {'employerIds': ['e1']},
        priority=priority,
        run_at=run_at,
        attempts=attempts,
        max_attempts=max_attempts,
        created_at=created_at,
        updated_at=created_at,
        lock_token=lock_token,
        locked_at=locked_at,
    )


async def backdate_lock(store: PostgresJobStore, job_id: str, minutes: int) -> None:
    """Pretend a PostgreSQL job was claimed `minutes` ago."""
    async with store.async_engine.begin() as conn:
        await conn.execute(
            text(
                'UPDATE scraper_jobs SET locked_at = now() - make_interval(mins => :m) '
                'WHERE id = :id'
            ),
            {'m': minutes, 'id': job_id},
        )
