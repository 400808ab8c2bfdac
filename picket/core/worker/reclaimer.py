# picket/core/worker/reclaimer.py
"""
Stale lock recovery.

A worker that dies mid-job (crash, OOM kill, container restart) never runs
its failure handler, so its job would stay 'running' with a lock forever.
The sweep returns any running job whose lock is older than the lock
timeout to the queue.
"""

from __future__ import annotations

import time
from typing import Callable, Collection

from result import Err, Ok

from picket.core import metrics
from picket.core.brokers.base import JobStore
from picket.core.defaults import STALE_LOCK_MESSAGE
from picket.core.events import EventSink
from picket.core.logging import get_logger
from picket.core.models.recovery import RecoveryConfig

logger = get_logger('reclaimer')


class StaleLockReclaimer:
    def __init__(
        self,
        store: JobStore,
        events: EventSink,
        config: RecoveryConfig | None = None,
        *,
        monotonic: Callable[[], float] = time.monotonic,
    ) -> None:
        self.store = store
        self.events = events
        self.config = config or RecoveryConfig()
        self._monotonic = monotonic
        self._next_run_at: float | None = None

    async def reclaim_stale_locks(
        self, job_type: str, lock_timeout_ms: int | None = None
    ) -> int:
        """Requeue running jobs of one type whose lock outlived the timeout.

        Best effort: a failed sweep is logged and counts as 0.
        """
        timeout_ms = lock_timeout_ms or self.config.lock_timeout_ms
        try:
            result = await self.store.reclaim_stale(job_type, timeout_ms, STALE_LOCK_MESSAGE)
        except Exception as exc:
            logger.error(f'Stale lock sweep for {job_type} raised: {exc!r}')
            return 0

        match result:
            case Err(err):
                logger.error(f'Stale lock sweep for {job_type} failed: {err.message}')
                return 0
            case Ok(job_ids):
                pass

        if job_ids:
            logger.warning(
                f'Reclaimed {len(job_ids)} stale {job_type} job(s) locked for more than {timeout_ms}ms: {job_ids}'
            )
            metrics.stale_locks_reclaimed.labels(job_type=str(job_type)).inc(len(job_ids))
        for job_id in job_ids:
            await self.events.record(
                job_id, 'lock_reclaimed', {'lock_timeout_ms': timeout_ms}
            )
        return len(job_ids)

    async def run_once(self, job_types: Collection[str]) -> int:
        total = 0
        for job_type in job_types:
            total += await self.reclaim_stale_locks(job_type)
        return total

    async def run_due(self, job_types: Collection[str]) -> int | None:
        """Sweep if check_interval_ms has passed since the last sweep.

        The first call always sweeps. Returns None when not due.
        """
        now = self._monotonic()
        if self._next_run_at is not None and now < self._next_run_at:
            return None
        self._next_run_at = now + self.config.check_interval_ms / 1000.0
        return await self.run_once(job_types)
