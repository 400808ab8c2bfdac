"""Unit tests for the PostgreSQL store's SQL guards and error mapping (no database)."""

from __future__ import annotations

import re

import pytest
from psycopg import OperationalError
from result import Err, Ok

from picket.core.brokers import sql
from picket.core.brokers.postgres import PostgresJobStore
from picket.core.brokers.result_types import StoreErrorCode
from picket.core.models.database import PostgresConfig


def _normalized(statement: object) -> str:
    return re.sub(r'\s+', ' ', str(statement)).strip()


OWNER_GUARD = 'WHERE id = :id AND lock_token = :lock_token AND status = \'running\''


@pytest.mark.unit
class TestClaimSql:
    def test_claim_rechecks_claimability_at_write_time(self) -> None:
        claim = _normalized(sql.CLAIM_JOB_SQL)
        assert "status = 'queued'" in claim
        assert 'run_at <= now()' in claim
        assert 'lock_token IS NULL' in claim
        assert 'attempts = attempts + 1' in claim
        assert 'RETURNING' in claim

    def test_candidates_use_no_row_locks(self) -> None:
        candidates = _normalized(sql.SELECT_CANDIDATES_SQL)
        assert 'FOR UPDATE' not in candidates
        assert 'ORDER BY priority ASC, created_at ASC' in candidates


@pytest.mark.unit
class TestOwnerGuards:
    @pytest.mark.parametrize(
        'statement',
        [
            sql.MARK_SUCCEEDED_SQL,
            sql.MARK_FAILED_SQL,
            sql.REQUEUE_JOB_SQL,
            sql.FORCE_REQUEUE_SQL,
        ],
    )
    def test_completion_writes_require_owner(self, statement: object) -> None:
        assert OWNER_GUARD in _normalized(statement)

    def test_release_lock_skips_running_rows(self) -> None:
        release = _normalized(sql.RELEASE_LOCK_SQL)
        assert "status <> 'running'" in release
        assert 'lock_token = :lock_token' in release

    def test_requeues_leave_attempts_alone(self) -> None:
        for statement in (sql.FORCE_REQUEUE_SQL, sql.RECLAIM_STALE_SQL, sql.REQUEUE_JOB_SQL):
            assert 'attempts' not in _normalized(statement)

    def test_stale_sweep_scoped_to_running_jobs_of_one_type(self) -> None:
        reclaim = _normalized(sql.RECLAIM_STALE_SQL)
        assert "WHERE status = 'running' AND job_type = :job_type" in reclaim


@pytest.fixture
def pg_store() -> PostgresJobStore:
    # the engine connects lazily; nothing here touches a server
    return PostgresJobStore(
        PostgresConfig(database_url='postgresql+psycopg://user:pw@localhost:1/none')
    )


@pytest.mark.unit
class TestGuardedMapping:
    @pytest.mark.asyncio
    async def test_success_wrapped_in_ok(self, pg_store: PostgresJobStore) -> None:
        async def op() -> int:
            return 7

        assert await pg_store._guarded(StoreErrorCode.CLAIM_FAILED, 'claim', op) == Ok(7)

    @pytest.mark.asyncio
    async def test_connection_error_is_retryable_err(self, pg_store: PostgresJobStore) -> None:
        async def op() -> int:
            raise OperationalError('server closed the connection unexpectedly')

        result = await pg_store._guarded(StoreErrorCode.CLAIM_FAILED, 'claim of job a failed', op)

        assert isinstance(result, Err)
        assert result.err_value.code == StoreErrorCode.CLAIM_FAILED
        assert result.err_value.retryable is True
        assert result.err_value.message.startswith('claim of job a failed: ')

    @pytest.mark.asyncio
    async def test_bug_is_non_retryable_err(self, pg_store: PostgresJobStore) -> None:
        async def op() -> int:
            raise KeyError('id')

        result = await pg_store._guarded(StoreErrorCode.JOB_QUERY_FAILED, 'select', op)

        assert isinstance(result, Err)
        assert result.err_value.retryable is False

    def test_advisory_key_is_stable_per_url(self, pg_store: PostgresJobStore) -> None:
        other = PostgresJobStore(
            PostgresConfig(database_url='postgresql+psycopg://user:pw@localhost:1/other')
        )
        assert pg_store._schema_advisory_key() == pg_store._schema_advisory_key()
        assert pg_store._schema_advisory_key() != other._schema_advisory_key()
