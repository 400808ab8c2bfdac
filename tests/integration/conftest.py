"""Integration test fixtures: a PostgresJobStore on a clean scraper_jobs table."""

from __future__ import annotations

import os
from typing import AsyncGenerator

import pytest
import pytest_asyncio
from result import is_err
from sqlalchemy import text

from picket.core.brokers.postgres import PostgresJobStore
from picket.core.models.database import PostgresConfig

DB_URL = os.environ.get('DATABASE_URL', '')


@pytest.fixture(scope='session')
def db_url() -> str:
    if not DB_URL:
        pytest.skip('DATABASE_URL is not set')
    return DB_URL


@pytest_asyncio.fixture
async def pg_store(db_url: str) -> AsyncGenerator[PostgresJobStore, None]:
    """Store with schema initialized and both tables emptied."""
    store = PostgresJobStore(PostgresConfig(database_url=db_url, pool_size=10))
    init = await store.ensure_schema_initialized()
    if is_err(init):
        await store.close_async()
        pytest.skip(f'PostgreSQL unavailable: {init.err_value.message}')
    async with store.async_engine.begin() as conn:
        await conn.execute(text('TRUNCATE scraper_job_events, scraper_jobs CASCADE'))
    yield store
    await store.close_async()

