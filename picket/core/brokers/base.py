"""The datastore contract the worker depends on."""

from __future__ import annotations

from datetime import datetime
from typing import Any, Protocol, Sequence

from picket.core.brokers.result_types import StoreResult
from picket.core.models.job import JobEvent, JobOutcome, JobRecord


class JobStore(Protocol):
    """Handle over the scraper_jobs / scraper_job_events tables.

    Injected into the reservation service, the worker loop, the reclaimer,
    the shutdown coordinator and the event sink. Every method reports
    infrastructure failures as Err(StoreOperationError) instead of raising.

    Writes made after a claim take the job's lock_token and only apply while
    the caller still owns the job. They return Ok(False) when ownership was
    lost (force requeue, stale reclaim, cancel).
    """

    async def ensure_schema_initialized(self) -> StoreResult[None]: ...

    async def enqueue_async(
        self,
        job_type: str,
        payload: dict[str, Any],
        *,
        priority: int,
        max_attempts: int,
        run_at: datetime | None = None,
        progress_total: int | None = None,
    ) -> StoreResult[str]: ...

    async def fetch_candidates(
        self, job_types: Sequence[str], limit: int
    ) -> StoreResult[list[str]]: ...

    async def try_claim(
        self, job_id: str, lock_token: str
    ) -> StoreResult[JobRecord | None]: ...

    async def mark_succeeded(self, job_id: str, lock_token: str) -> StoreResult[bool]: ...

    async def apply_outcome(
        self, job_id: str, lock_token: str, outcome: JobOutcome
    ) -> StoreResult[bool]: ...

    async def release_lock(self, job_id: str, lock_token: str) -> StoreResult[bool]: ...

    async def reclaim_stale(
        self, job_type: str, lock_timeout_ms: int, message: str
    ) -> StoreResult[list[str]]: ...

    async def force_requeue(
        self, job_id: str, lock_token: str, message: str
    ) -> StoreResult[bool]: ...

    async def update_progress(
        self, job_id: str, completed: int, total: int | None = None
    ) -> StoreResult[None]: ...

    async def append_event(
        self, job_id: str, event_type: str, payload: dict[str, Any] | None = None
    ) -> StoreResult[None]: ...

    async def get_job(self, job_id: str) -> StoreResult[JobRecord | None]: ...

    async def list_events(self, job_id: str) -> StoreResult[list[JobEvent]]: ...

    async def cancel_job(self, job_id: str) -> StoreResult[JobRecord | None]: ...

    async def ping(self) -> StoreResult[None]: ...

    async def close_async(self) -> StoreResult[None]: ...
