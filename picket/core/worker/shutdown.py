# picket/core/worker/shutdown.py
"""
Graceful shutdown.

On SIGTERM the worker stops reserving, gives the in-flight job a bounded
time to finish, and otherwise hands it back to the queue itself so no lock
outlives the process.
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass

from result import Err, Ok

from picket.core import metrics
from picket.core.brokers.base import JobStore
from picket.core.defaults import DEFAULT_SHUTDOWN_POLL_INTERVAL_MS, SHUTDOWN_REQUEUE_MESSAGE
from picket.core.events import EventSink
from picket.core.logging import get_logger
from picket.core.worker.state import WorkerState

logger = get_logger('shutdown')


@dataclass(slots=True, frozen=True)
class ShutdownOutcome:
    """
    - forced: the wait budget ran out with work still in flight
    - requeued_job_ids: jobs handed back to the queue by this coordinator
    - waited_ms: time spent waiting for in-flight work
    """

    forced: bool
    requeued_job_ids: tuple[str, ...] = ()
    waited_ms: int = 0


class ShutdownCoordinator:
    def __init__(
        self,
        state: WorkerState,
        store: JobStore,
        events: EventSink,
        *,
        poll_interval_ms: int = DEFAULT_SHUTDOWN_POLL_INTERVAL_MS,
    ) -> None:
        self.state = state
        self.store = store
        self.events = events
        self.poll_interval_ms = poll_interval_ms
        self._task: asyncio.Task[ShutdownOutcome] | None = None

    async def graceful_shutdown(self, max_wait_ms: int) -> ShutdownOutcome:
        """Run the shutdown sequence once; later calls get the same outcome."""
        if self._task is None:
            self._task = asyncio.ensure_future(self._shutdown(max_wait_ms))
        return await asyncio.shield(self._task)

    async def _shutdown(self, max_wait_ms: int) -> ShutdownOutcome:
        self.state.request_shutdown()
        loop = asyncio.get_running_loop()
        started = loop.time()
        deadline = started + max_wait_ms / 1000.0

        if not self.state.idle:
            logger.info(
                f'Shutdown requested, waiting up to {max_wait_ms}ms for job(s) {list(self.state.current_jobs)}'
            )

        while not self.state.idle:
            remaining = deadline - loop.time()
            if remaining <= 0:
                break
            await asyncio.sleep(min(self.poll_interval_ms / 1000.0, remaining))

        waited_ms = int((loop.time() - started) * 1000)
        if self.state.idle:
            logger.info(f'No job in flight, shutting down cleanly (waited {waited_ms}ms)')
            return ShutdownOutcome(forced=False, waited_ms=waited_ms)

        requeued = await self.force_requeue_in_flight()
        return ShutdownOutcome(forced=True, requeued_job_ids=requeued, waited_ms=waited_ms)

    async def force_requeue_in_flight(self) -> tuple[str, ...]:
        """Hand every in-flight job back to the queue; attempts are left as claimed."""
        requeued: list[str] = []
        for current in list(self.state.current_jobs.values()):
            result = await self.store.force_requeue(
                current.job_id, current.lock_token, SHUTDOWN_REQUEUE_MESSAGE
            )
            match result:
                case Ok(True):
                    requeued.append(current.job_id)
                    metrics.shutdown_requeues.inc()
                    logger.warning(
                        f'Job {current.job_id} did not finish in time, returned to queue'
                    )
                    await self.events.record(
                        current.job_id,
                        'shutdown_requeued',
                        {'reason': SHUTDOWN_REQUEUE_MESSAGE},
                    )
                case Ok(False):
                    logger.info(f'Job {current.job_id} left running state before requeue')
                case Err(err):
                    # lock stays; the stale sweep of another worker recovers it
                    logger.error(f'Could not requeue job {current.job_id}: {err.message}')
        return tuple(requeued)
