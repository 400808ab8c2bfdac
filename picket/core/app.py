# picket/core/app.py
from __future__ import annotations

import asyncio
import inspect
import os
from datetime import datetime
from typing import Any, Callable, Optional

from result import Err, Ok, is_err

from picket.core.brokers.base import JobStore
from picket.core.brokers.postgres import PostgresJobStore
from picket.core.brokers.result_types import StoreResult
from picket.core.defaults import DEFAULT_PRIORITY, MAX_PRIORITY, MIN_PRIORITY
from picket.core.errors import (
    ConfigurationError,
    ErrorCode,
    PicketError,
    RegistryError,
)
from picket.core.events import EventSink, StoreEventSink
from picket.core.logging import get_logger
from picket.core.models.app import AppConfig
from picket.core.models.job import JobRecord
from picket.core.models.payloads import (
    FwcLookupPayload,
    IncolinkSyncPayload,
    decode_payload,
    encode_payload,
)
from picket.core.registry.processors import ProcessorNotRegistered, ProcessorRegistry
from picket.core.types.status import JobType
from picket.core.utils.url import mask_database_url
from picket.core.worker.config import WorkerConfig
from picket.core.worker.context import Processor
from picket.core.worker.reclaimer import StaleLockReclaimer
from picket.core.worker.worker import Worker


def _source_of(fn: Any) -> str | None:
    """'path:line' of a processor definition, for duplicate diagnostics."""
    target = fn if inspect.isfunction(fn) or inspect.ismethod(fn) else type(fn)
    try:
        path = inspect.getsourcefile(target)
        _, line = inspect.getsourcelines(target)
    except (OSError, TypeError):
        return None
    if path is None:
        return None
    return f'{os.path.realpath(path)}:{line}'


def _validate_processor(fn: Any, job_type: str) -> None:
    if inspect.isfunction(fn) or inspect.ismethod(fn):
        is_async = inspect.iscoroutinefunction(fn)
    else:
        is_async = callable(fn) and inspect.iscoroutinefunction(getattr(fn, '__call__', None))
    if not is_async:
        raise RegistryError(
            message=f"processor for '{job_type}' is not an async callable",
            code=ErrorCode.PROCESSOR_INVALID,
            notes=[f'got {type(fn).__name__}'],
            help_text='processors are `async def process(ctx: JobContext) -> ProcessResult`\nor objects with an async __call__',
        )


class Picket:
    """
    Configuration-driven worker app.

    Holds the processor registry and the job store, enqueues and cancels
    jobs, and builds the Worker that the CLI runs.
    """

    def __init__(self, config: AppConfig, *, store: JobStore | None = None):
        self.config = config
        self._store: Optional[JobStore] = store
        self.processors = ProcessorRegistry()
        self.logger = get_logger('app')
        self.logger.info(
            f'picket initialized for {[str(t) for t in config.job_types]} '
            f'({mask_database_url(config.database.database_url)})'
        )

    # -------- processors --------

    def processor(self, job_type: JobType | str) -> Callable[[Processor], Processor]:
        """Decorator registering the processor for one job type.

        @app.processor(JobType.FWC_LOOKUP)
        async def lookup(ctx: JobContext) -> ProcessResult: ...
        """

        def decorator(fn: Processor) -> Processor:
            return self.register_processor(job_type, fn)

        return decorator

    def register_processor(self, job_type: JobType | str, fn: Processor) -> Processor:
        try:
            key = JobType(str(job_type))
        except ValueError:
            raise RegistryError(
                message=f"unknown job type '{job_type}'",
                code=ErrorCode.PAYLOAD_UNKNOWN_JOB_TYPE,
                notes=[f'known job types: {[t.value for t in JobType]}'],
            )
        _validate_processor(fn, key)
        return self.processors.register(fn, job_type=key, source=_source_of(fn))

    def list_processors(self) -> list[str]:
        return list(self.processors)

    # -------- store --------

    def get_store(self) -> JobStore:
        """Get the job store, creating the PostgreSQL store on first use."""
        if self._store is None:
            self._store = PostgresJobStore(self.config.database)
        return self._store

    # -------- producer side --------

    async def enqueue_async(
        self,
        job_type: JobType | str,
        payload: dict[str, Any],
        *,
        priority: int = DEFAULT_PRIORITY,
        max_attempts: int | None = None,
        run_at: datetime | None = None,
        progress_total: int | None = None,
    ) -> StoreResult[str]:
        """Validate the payload and insert a queued job.

        Raises:
            PayloadValidationError: payload does not match the job type.
        """
        decoded = decode_payload(str(job_type), payload)
        requested = self.config.default_max_attempts if max_attempts is None else max_attempts
        attempts = max(1, requested)
        clamped = min(max(priority, MIN_PRIORITY), MAX_PRIORITY)
        if progress_total is None and isinstance(decoded, (FwcLookupPayload, IncolinkSyncPayload)):
            progress_total = len(decoded.employer_ids)

        result = await self.get_store().enqueue_async(
            str(job_type),
            encode_payload(decoded),
            priority=clamped,
            max_attempts=attempts,
            run_at=run_at,
            progress_total=progress_total,
        )
        if not is_err(result):
            self.logger.info(f'Enqueued {job_type} job {result.ok_value} (priority {clamped})')
        return result

    async def cancel_async(self, job_id: str) -> StoreResult[JobRecord | None]:
        """Cancel a job. Terminal jobs come back unchanged; None if unknown."""
        result = await self.get_store().cancel_job(job_id)
        match result:
            case Ok(JobRecord() as job):
                self.logger.info(f'Job {job_id} is {job.status.value}')
            case Ok(None):
                self.logger.warning(f'Job {job_id} not found')
            case Err(err):
                self.logger.error(f'Cancel of job {job_id} failed: {err.message}')
        return result

    async def get_job_async(self, job_id: str) -> StoreResult[JobRecord | None]:
        return await self.get_store().get_job(job_id)

    # -------- worker side --------

    def build_worker(
        self,
        cfg: WorkerConfig | None = None,
        *,
        events: EventSink | None = None,
    ) -> Worker:
        store = self.get_store()
        cfg = cfg or WorkerConfig.from_app_config(self.config)
        return Worker(
            store,
            self.processors,
            cfg,
            events=events or StoreEventSink(store),
        )

    async def reclaim_async(self, lock_timeout_ms: int | None = None) -> int:
        """One stale-lock sweep across the configured job types."""
        store = self.get_store()
        reclaimer = StaleLockReclaimer(store, StoreEventSink(store), self.config.recovery)
        total = 0
        for job_type in self.config.job_types:
            total += await reclaimer.reclaim_stale_locks(str(job_type), lock_timeout_ms)
        return total

    # -------- validation --------

    def check(self, *, live: bool = False) -> list[PicketError]:
        """Return every problem that would stop a worker from starting.

        Phase 1: Config - already validated at construction.
        Phase 2: Every configured job type has a processor.
        Phase 3 (if live): Datastore connectivity via SELECT 1.
        """
        errors: list[PicketError] = []
        for job_type in self.processors.missing([str(t) for t in self.config.job_types]):
            errors.append(ProcessorNotRegistered(job_type))
        if errors:
            return errors

        if live:
            errors.extend(self._check_connectivity())
        return errors

    def _check_connectivity(self) -> list[PicketError]:
        """SELECT 1 through a short-lived store so the app's pool is untouched."""
        injected = self._store is not None and not isinstance(self._store, PostgresJobStore)
        store: JobStore = self._store if injected else PostgresJobStore(self.config.database)  # type: ignore[assignment]

        async def _ping() -> StoreResult[None]:
            try:
                return await store.ping()
            finally:
                if not injected:
                    await store.close_async()

        result = asyncio.run(_ping())
        if is_err(result):
            return [
                ConfigurationError(
                    message='datastore connectivity check failed',
                    code=ErrorCode.DATABASE_INVALID_URL,
                    notes=[
                        mask_database_url(self.config.database.database_url),
                        result.err_value.message,
                    ],
                    help_text='check DATABASE_URL and that PostgreSQL is reachable',
                )
            ]
        return []
