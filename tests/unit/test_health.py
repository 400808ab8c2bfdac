"""Unit tests for the worker's /health and /metrics endpoints."""

from __future__ import annotations

import pytest
from fastapi.testclient import TestClient

from picket.core.types.status import JobStatus
from picket.core.worker.config import WorkerConfig
from picket.core.worker.health import create_health_app
from picket.core.worker.state import WorkerState
from tests.helpers import FakeClock, make_job


def _client(state: WorkerState) -> TestClient:
    cfg = WorkerConfig(
        job_types=['fwc_lookup'],
        processing_timeout_ms={'fwc_lookup': 60_000},
        worker_id='host:1:abc',
    )
    return TestClient(create_health_app(state, cfg))


@pytest.mark.unit
class TestHealthEndpoint:
    def test_idle_worker(self) -> None:
        clock = FakeClock()
        state = WorkerState(clock)
        clock.advance(seconds=90)

        body = _client(state).get('/health').json()

        assert body['status'] == 'ok'
        assert body['worker_id'] == 'host:1:abc'
        assert body['current_job_id'] is None
        assert body['current_job_ids'] == []
        assert body['shutting_down'] is False
        assert body['uptime_seconds'] == 90.0
        assert body['config']['job_types'] == ['fwc_lookup']
        assert body['config']['processing_timeout_ms'] == {'fwc_lookup': 60_000}
        assert body['config']['lock_timeout_ms'] == 300_000

    def test_reports_current_job_and_shutdown(self) -> None:
        state = WorkerState(FakeClock())
        state.begin(make_job('job-9', status=JobStatus.RUNNING, lock_token='t', attempts=1))
        state.request_shutdown()

        response = _client(state).get('/health')

        assert response.status_code == 200
        body = response.json()
        assert body['status'] == 'shutting_down'
        assert body['current_job_id'] == 'job-9'
        assert body['current_job_ids'] == ['job-9']


@pytest.mark.unit
class TestMetricsEndpoint:
    def test_exposes_worker_metrics(self) -> None:
        response = _client(WorkerState(FakeClock())).get('/metrics')
        assert response.status_code == 200
        assert response.headers['content-type'].startswith('text/plain')
        assert 'picket_jobs_in_flight' in response.text
