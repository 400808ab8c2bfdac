# picket/core/worker/config.py
from __future__ import annotations

import os
import socket
import uuid
from dataclasses import dataclass, field
from typing import Any

from picket.core.defaults import (
    DEFAULT_CANDIDATE_LIMIT,
    DEFAULT_POLL_INTERVAL_MS,
    DEFAULT_PROCESSING_TIMEOUT_MS,
    DEFAULT_SHUTDOWN_MAX_WAIT_MS,
    DEFAULT_SHUTDOWN_POLL_INTERVAL_MS,
)
from picket.core.models.app import AppConfig
from picket.core.models.recovery import RecoveryConfig
from picket.core.models.retry import RetryConfig


def default_worker_id() -> str:
    return f'{socket.gethostname()}:{os.getpid()}:{uuid.uuid4().hex[:8]}'


@dataclass
class WorkerConfig:
    job_types: list[str]  # capabilities: job types this worker reserves
    poll_interval_ms: int = DEFAULT_POLL_INTERVAL_MS  # idle / error backoff sleep
    candidate_limit: int = DEFAULT_CANDIDATE_LIMIT  # rows read per reservation
    concurrency: int = 1  # loop slots, each with at most one job in flight
    # job type -> processor timeout, DEFAULT_PROCESSING_TIMEOUT_MS otherwise
    processing_timeout_ms: dict[str, int] = field(default_factory=lambda: {})
    shutdown_max_wait_ms: int = DEFAULT_SHUTDOWN_MAX_WAIT_MS
    shutdown_poll_interval_ms: int = DEFAULT_SHUTDOWN_POLL_INTERVAL_MS
    retry_config: RetryConfig = field(default_factory=RetryConfig)
    recovery_config: RecoveryConfig = field(default_factory=RecoveryConfig)
    worker_id: str = field(default_factory=default_worker_id)
    loglevel: int = 20  # logging.INFO

    def timeout_ms_for(self, job_type: str) -> int:
        return self.processing_timeout_ms.get(str(job_type), DEFAULT_PROCESSING_TIMEOUT_MS)

    @classmethod
    def from_app_config(cls, config: AppConfig, **overrides: Any) -> WorkerConfig:
        values: dict[str, Any] = {
            'job_types': [str(t) for t in config.job_types],
            'poll_interval_ms': config.poll_interval_ms,
            'candidate_limit': config.candidate_limit,
            'concurrency': config.concurrency,
            'processing_timeout_ms': {
                str(t): config.timeout_for(t) for t in config.job_types
            },
            'shutdown_max_wait_ms': config.shutdown_max_wait_ms,
            'retry_config': config.retry,
            'recovery_config': config.recovery,
        }
        values.update(overrides)
        return cls(**values)
