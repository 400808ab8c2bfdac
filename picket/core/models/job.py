# picket/core/models/job.py
"""Plain value objects passed between the job store, the worker and processors."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Mapping

from picket.core.types.status import JobStatus


@dataclass(slots=True, frozen=True)
class JobRecord:
    """Snapshot of a scraper_jobs row.

    A record returned by a successful claim carries the lock_token that
    proves ownership; every later write for the job passes it back.
    """

    id: str
    job_type: str
    status: JobStatus
    payload: dict[str, Any]
    priority: int
    run_at: datetime
    attempts: int
    max_attempts: int
    created_at: datetime
    updated_at: datetime
    locked_at: datetime | None = None
    lock_token: str | None = None
    last_error: str | None = None
    progress_completed: int = 0
    progress_total: int | None = None
    completed_at: datetime | None = None

    def is_claimable(self, now: datetime) -> bool:
        return (
            self.status == JobStatus.QUEUED
            and self.run_at <= now
            and self.lock_token is None
        )

    @classmethod
    def from_row(cls, row: Mapping[str, Any]) -> JobRecord:
        status = row['status']
        return cls(
            id=row['id'],
            job_type=row['job_type'],
            status=status if isinstance(status, JobStatus) else JobStatus(status),
            payload=dict(row['payload'] or {}),
            priority=row['priority'],
            run_at=row['run_at'],
            attempts=row['attempts'],
            max_attempts=row['max_attempts'],
            created_at=row['created_at'],
            updated_at=row['updated_at'],
            locked_at=row['locked_at'],
            lock_token=row['lock_token'],
            last_error=row['last_error'],
            progress_completed=row['progress_completed'],
            progress_total=row['progress_total'],
            completed_at=row['completed_at'],
        )


@dataclass(slots=True, frozen=True)
class JobOutcome:
    """What the retry policy decided after a processor failure.

    run_at is None when the job fails permanently (run_at is left as is).
    """

    next_status: JobStatus
    last_error: str
    run_at: datetime | None = None

    @property
    def will_retry(self) -> bool:
        return self.next_status == JobStatus.QUEUED


@dataclass(slots=True, frozen=True)
class JobEvent:
    job_id: str
    event_type: str
    payload: dict[str, Any] | None
    created_at: datetime
    id: int | None = None


@dataclass(slots=True)
class ProcessResult:
    """Counts reported by a processor on success."""

    succeeded: int = 0
    failed: int = 0
    details: dict[str, Any] = field(default_factory=lambda: {})

    def as_event_payload(self) -> dict[str, Any]:
        return {'succeeded': self.succeeded, 'failed': self.failed, **self.details}
