# picket/core/brokers/postgres.py
from __future__ import annotations

import hashlib
import uuid
from datetime import datetime, timezone
from typing import Any, Awaitable, Callable, Sequence, TypeVar

from result import Err, Ok
from sqlalchemy.ext.asyncio import async_sessionmaker, create_async_engine

from picket.core.brokers.result_types import (
    StoreErrorCode,
    StoreOperationError,
    StoreResult,
)
from picket.core.brokers.sql import (
    CANCEL_JOB_SQL,
    CLAIM_JOB_SQL,
    FORCE_REQUEUE_SQL,
    HEALTH_CHECK_SQL,
    MARK_FAILED_SQL,
    MARK_SUCCEEDED_SQL,
    RECLAIM_STALE_SQL,
    RELEASE_LOCK_SQL,
    REQUEUE_JOB_SQL,
    SCHEMA_ADVISORY_LOCK_SQL,
    SELECT_CANDIDATES_SQL,
    SELECT_EVENTS_SQL,
    SELECT_JOB_SQL,
    UPDATE_PROGRESS_SQL,
)
from picket.core.logging import get_logger
from picket.core.models.database import PostgresConfig
from picket.core.models.job import JobEvent, JobOutcome, JobRecord
from picket.core.models.job_pg import Base, JobEventModel, JobModel
from picket.core.types.status import JobStatus
from picket.core.utils.db import is_retryable_connection_error
from picket.core.utils.url import mask_database_url

T = TypeVar('T')


class PostgresJobStore:
    """
    Job store over PostgreSQL (SQLAlchemy asyncio + psycopg 3).

    Claims use a conditional UPDATE ... RETURNING, so any number of worker
    processes can share the table without row locks or advisory locks.
    Schema creation is serialized across processes with an advisory lock.
    """

    def __init__(self, config: PostgresConfig):
        self.config = config
        self.logger = get_logger('store')

        engine_cfg = self.config.model_dump(exclude={'database_url'}, exclude_none=True)
        self.async_engine = create_async_engine(self.config.database_url, **engine_cfg)
        self.session_factory = async_sessionmaker(
            self.async_engine, expire_on_commit=False
        )
        self._initialized = False

        self.logger.info(
            f'PostgresJobStore initialized ({mask_database_url(self.config.database_url)})'
        )

    def _schema_advisory_key(self) -> int:
        """Stable 64-bit advisory lock key, distinct per database URL."""
        basis = self.config.database_url.encode('utf-8', errors='ignore')
        digest = hashlib.sha256(b'picket-schema:' + basis).digest()
        return int.from_bytes(digest[:8], byteorder='big', signed=True)

    async def _guarded(
        self,
        code: StoreErrorCode,
        message: str,
        operation: Callable[[], Awaitable[T]],
    ) -> StoreResult[T]:
        """Run one datastore round trip, mapping exceptions to Err."""
        try:
            return Ok(await operation())
        except Exception as exc:
            self.logger.debug(f'{message}: {exc!r}')
            return Err(
                StoreOperationError(
                    code=code,
                    message=f'{message}: {exc}',
                    retryable=is_retryable_connection_error(exc),
                    exception=exc,
                )
            )

    async def _execute_owned_update(self, statement: Any, params: dict[str, Any]) -> bool:
        async with self.session_factory() as session:
            result = await session.execute(statement, params)
            updated = result.first() is not None
            await session.commit()
            return updated

    # ----------------- Schema -----------------

    async def ensure_schema_initialized(self) -> StoreResult[None]:
        """Create tables and indexes if missing.

        Safe to call from many processes at once.
        """

        async def _init() -> None:
            if self._initialized:
                return
            async with self.async_engine.begin() as conn:
                await conn.execute(
                    SCHEMA_ADVISORY_LOCK_SQL, {'key': self._schema_advisory_key()}
                )
                await conn.run_sync(Base.metadata.create_all)
            self._initialized = True

        return await self._guarded(
            StoreErrorCode.SCHEMA_INIT_FAILED, 'schema initialization failed', _init
        )

    async def ping(self) -> StoreResult[None]:
        async def _ping() -> None:
            async with self.session_factory() as session:
                await session.execute(HEALTH_CHECK_SQL)

        return await self._guarded(
            StoreErrorCode.JOB_QUERY_FAILED, 'database ping failed', _ping
        )

    # ----------------- Enqueue -----------------

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
        job_id = str(uuid.uuid4())
        now = datetime.now(timezone.utc)

        async def _insert() -> str:
            async with self.session_factory() as session:
                session.add(
                    JobModel(
                        id=job_id,
                        job_type=job_type,
                        status=JobStatus.QUEUED,
                        payload=payload,
                        priority=priority,
                        run_at=run_at or now,
                        attempts=0,
                        max_attempts=max_attempts,
                        progress_completed=0,
                        progress_total=progress_total,
                        created_at=now,
                        updated_at=now,
                    )
                )
                # flush so the event's foreign key sees the job row
                await session.flush()
                session.add(
                    JobEventModel(
                        job_id=job_id,
                        event_type='queued',
                        payload={'priority': priority, 'max_attempts': max_attempts},
                    )
                )
                await session.commit()
            return job_id

        return await self._guarded(
            StoreErrorCode.ENQUEUE_FAILED, f'enqueue of {job_type} job failed', _insert
        )

    # ----------------- Reservation -----------------

    async def fetch_candidates(
        self, job_types: Sequence[str], limit: int
    ) -> StoreResult[list[str]]:
        async def _select() -> list[str]:
            async with self.session_factory() as session:
                result = await session.execute(
                    SELECT_CANDIDATES_SQL,
                    {'job_types': [str(t) for t in job_types], 'lim': limit},
                )
                return [row[0] for row in result.fetchall()]

        return await self._guarded(
            StoreErrorCode.CANDIDATE_QUERY_FAILED, 'candidate query failed', _select
        )

    async def try_claim(
        self, job_id: str, lock_token: str
    ) -> StoreResult[JobRecord | None]:
        async def _claim() -> JobRecord | None:
            async with self.session_factory() as session:
                result = await session.execute(
                    CLAIM_JOB_SQL, {'id': job_id, 'lock_token': lock_token}
                )
                row = result.mappings().first()
                await session.commit()
                return JobRecord.from_row(row) if row is not None else None

        return await self._guarded(
            StoreErrorCode.CLAIM_FAILED, f'claim of job {job_id} failed', _claim
        )

    # ----------------- Completion -----------------

    async def mark_succeeded(self, job_id: str, lock_token: str) -> StoreResult[bool]:
        return await self._guarded(
            StoreErrorCode.COMPLETION_FAILED,
            f'marking job {job_id} succeeded failed',
            lambda: self._execute_owned_update(
                MARK_SUCCEEDED_SQL, {'id': job_id, 'lock_token': lock_token}
            ),
        )

    async def apply_outcome(
        self, job_id: str, lock_token: str, outcome: JobOutcome
    ) -> StoreResult[bool]:
        params: dict[str, Any] = {
            'id': job_id,
            'lock_token': lock_token,
            'last_error': outcome.last_error,
        }
        if outcome.will_retry:
            statement = REQUEUE_JOB_SQL
            params['run_at'] = outcome.run_at
        else:
            statement = MARK_FAILED_SQL

        return await self._guarded(
            StoreErrorCode.COMPLETION_FAILED,
            f'recording {outcome.next_status.value} for job {job_id} failed',
            lambda: self._execute_owned_update(statement, params),
        )

    async def release_lock(self, job_id: str, lock_token: str) -> StoreResult[bool]:
        return await self._guarded(
            StoreErrorCode.LOCK_RELEASE_FAILED,
            f'lock release for job {job_id} failed',
            lambda: self._execute_owned_update(
                RELEASE_LOCK_SQL, {'id': job_id, 'lock_token': lock_token}
            ),
        )

    # ----------------- Recovery -----------------

    async def reclaim_stale(
        self, job_type: str, lock_timeout_ms: int, message: str
    ) -> StoreResult[list[str]]:
        async def _reclaim() -> list[str]:
            async with self.session_factory() as session:
                result = await session.execute(
                    RECLAIM_STALE_SQL,
                    {
                        'job_type': str(job_type),
                        'timeout_ms': int(lock_timeout_ms),
                        'last_error': message,
                    },
                )
                ids = [row[0] for row in result.fetchall()]
                await session.commit()
                return ids

        return await self._guarded(
            StoreErrorCode.RECLAIM_FAILED, f'stale lock reclaim for {job_type} failed', _reclaim
        )

    async def force_requeue(
        self, job_id: str, lock_token: str, message: str
    ) -> StoreResult[bool]:
        return await self._guarded(
            StoreErrorCode.COMPLETION_FAILED,
            f'force requeue of job {job_id} failed',
            lambda: self._execute_owned_update(
                FORCE_REQUEUE_SQL,
                {'id': job_id, 'lock_token': lock_token, 'last_error': message},
            ),
        )

    # ----------------- Progress, events, queries -----------------

    async def update_progress(
        self, job_id: str, completed: int, total: int | None = None
    ) -> StoreResult[None]:
        async def _update() -> None:
            async with self.session_factory() as session:
                await session.execute(
                    UPDATE_PROGRESS_SQL,
                    {'id': job_id, 'completed': completed, 'total': total},
                )
                await session.commit()

        return await self._guarded(
            StoreErrorCode.PROGRESS_UPDATE_FAILED,
            f'progress update for job {job_id} failed',
            _update,
        )

    async def append_event(
        self, job_id: str, event_type: str, payload: dict[str, Any] | None = None
    ) -> StoreResult[None]:
        async def _insert() -> None:
            async with self.session_factory() as session:
                session.add(
                    JobEventModel(job_id=job_id, event_type=event_type, payload=payload)
                )
                await session.commit()

        return await self._guarded(
            StoreErrorCode.EVENT_APPEND_FAILED,
            f'{event_type} event for job {job_id} not recorded',
            _insert,
        )

    async def get_job(self, job_id: str) -> StoreResult[JobRecord | None]:
        async def _select() -> JobRecord | None:
            async with self.session_factory() as session:
                result = await session.execute(SELECT_JOB_SQL, {'id': job_id})
                row = result.mappings().first()
                return JobRecord.from_row(row) if row is not None else None

        return await self._guarded(
            StoreErrorCode.JOB_QUERY_FAILED, f'loading job {job_id} failed', _select
        )

    async def list_events(self, job_id: str) -> StoreResult[list[JobEvent]]:
        async def _select() -> list[JobEvent]:
            async with self.session_factory() as session:
                result = await session.execute(SELECT_EVENTS_SQL, {'job_id': job_id})
                return [
                    JobEvent(
                        id=row['id'],
                        job_id=row['job_id'],
                        event_type=row['event_type'],
                        payload=row['payload'],
                        created_at=row['created_at'],
                    )
                    for row in result.mappings().all()
                ]

        return await self._guarded(
            StoreErrorCode.JOB_QUERY_FAILED, f'loading events of job {job_id} failed', _select
        )

    async def cancel_job(self, job_id: str) -> StoreResult[JobRecord | None]:
        """Cancel a queued or running job.

        Terminal jobs come back unchanged; unknown ids give Ok(None).
        """

        async def _cancel() -> JobRecord | None:
            async with self.session_factory() as session:
                result = await session.execute(CANCEL_JOB_SQL, {'id': job_id})
                row = result.mappings().first()
                if row is not None:
                    session.add(JobEventModel(job_id=job_id, event_type='cancelled'))
                    await session.commit()
                    return JobRecord.from_row(row)
                await session.commit()
                current = await session.execute(SELECT_JOB_SQL, {'id': job_id})
                existing = current.mappings().first()
                return JobRecord.from_row(existing) if existing is not None else None

        return await self._guarded(
            StoreErrorCode.CANCEL_FAILED, f'cancelling job {job_id} failed', _cancel
        )

    async def close_async(self) -> StoreResult[None]:
        return await self._guarded(
            StoreErrorCode.CLOSE_FAILED, 'engine dispose failed', self.async_engine.dispose
        )
