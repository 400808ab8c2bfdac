# picket/core/worker/health.py
"""Liveness endpoint for the worker process: GET /health and GET /metrics."""

from __future__ import annotations

import asyncio
import contextlib
from typing import Any, Iterator

import uvicorn
from fastapi import FastAPI
from fastapi.responses import Response
from prometheus_client import CONTENT_TYPE_LATEST, generate_latest

from picket.core.logging import get_logger
from picket.core.worker.config import WorkerConfig
from picket.core.worker.state import WorkerState

logger = get_logger('health')


def create_health_app(state: WorkerState, cfg: WorkerConfig) -> FastAPI:
    """Build the app. It only reads snapshots of the worker state."""
    app = FastAPI(title='picket worker', docs_url=None, redoc_url=None)

    @app.get('/health')
    def health() -> dict[str, Any]:
        view = state.snapshot()
        return {
            'status': 'shutting_down' if view.shutting_down else 'ok',
            'worker_id': cfg.worker_id,
            'current_job_id': view.current_job_id,
            'current_job_ids': list(view.current_job_ids),
            'shutting_down': view.shutting_down,
            'started_at': view.started_at.isoformat(),
            'uptime_seconds': round(view.uptime_seconds, 3),
            'config': {
                'job_types': list(cfg.job_types),
                'poll_interval_ms': cfg.poll_interval_ms,
                'candidate_limit': cfg.candidate_limit,
                'concurrency': cfg.concurrency,
                'lock_timeout_ms': cfg.recovery_config.lock_timeout_ms,
                'shutdown_max_wait_ms': cfg.shutdown_max_wait_ms,
                'processing_timeout_ms': {
                    job_type: cfg.timeout_ms_for(job_type) for job_type in cfg.job_types
                },
            },
        }

    @app.get('/metrics')
    def metrics() -> Response:
        return Response(generate_latest(), media_type=CONTENT_TYPE_LATEST)

    return app


class _EmbeddedServer(uvicorn.Server):
    """uvicorn server that leaves SIGTERM/SIGINT to the worker's handlers."""

    @contextlib.contextmanager
    def capture_signals(self) -> Iterator[None]:
        yield

    def install_signal_handlers(self) -> None:
        return None


class HealthServer:
    def __init__(self, app: FastAPI, *, host: str = '0.0.0.0', port: int = 8080) -> None:
        self.host = host
        self.port = port
        self._server = _EmbeddedServer(
            uvicorn.Config(app, host=host, port=port, log_level='warning', lifespan='off')
        )
        self._task: asyncio.Task[None] | None = None

    async def start(self) -> None:
        self._task = asyncio.create_task(self._server.serve(), name='picket-health')
        logger.info(f'Health endpoint listening on http://{self.host}:{self.port}/health')

    async def stop(self) -> None:
        if self._task is None:
            return
        self._server.should_exit = True
        await asyncio.gather(self._task, return_exceptions=True)
        self._task = None
