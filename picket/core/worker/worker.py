# picket/core/worker/worker.py
from __future__ import annotations

import asyncio
from typing import Any

from result import Err, Ok

from picket.core import metrics
from picket.core.brokers.base import JobStore
from picket.core.events import EventSink, StoreEventSink
from picket.core.logging import get_logger
from picket.core.models.job import JobRecord, ProcessResult
from picket.core.models.payloads import decode_payload
from picket.core.registry.processors import ProcessorRegistry
from picket.core.utils.clock import Clock, utc_now
from picket.core.worker.config import WorkerConfig
from picket.core.worker.context import (
    JobContext,
    ProcessingTimeoutError,
    normalize_result,
)
from picket.core.worker.reclaimer import StaleLockReclaimer
from picket.core.worker.reservation import JobReserver, ReservationError
from picket.core.worker.retry import RetryPolicy
from picket.core.worker.shutdown import ShutdownCoordinator, ShutdownOutcome
from picket.core.worker.state import WorkerState

logger = get_logger('worker')


class Worker:
    """
    Polling worker for the scraper_jobs queue.

    Each loop slot repeats: sweep stale locks when due, reserve one job,
    run its processor, record success or apply the retry policy, release
    the lock. The loop only ends once shutdown is requested; per-job errors
    never leave process_job().

    Construction does no I/O. serve() runs until request_stop() (wired to
    SIGTERM/SIGINT by the CLI) and the shutdown coordinator finishes.
    """

    def __init__(
        self,
        store: JobStore,
        processors: ProcessorRegistry,
        cfg: WorkerConfig,
        *,
        events: EventSink | None = None,
        clock: Clock = utc_now,
    ) -> None:
        self.store = store
        self.processors = processors
        self.cfg = cfg
        self.events: EventSink = events or StoreEventSink(store)
        self.state = WorkerState(clock)
        self.reserver = JobReserver(
            store,
            self.events,
            candidate_limit=cfg.candidate_limit,
            worker_id=cfg.worker_id,
            state=self.state,
        )
        self.retry_policy = RetryPolicy(cfg.retry_config, clock)
        self.reclaimer = StaleLockReclaimer(store, self.events, cfg.recovery_config)
        self.coordinator = ShutdownCoordinator(
            self.state,
            store,
            self.events,
            poll_interval_ms=cfg.shutdown_poll_interval_ms,
        )
        self._stop_requested = asyncio.Event()

    def request_stop(self) -> None:
        """Ask serve() to begin graceful shutdown. Safe from a signal handler."""
        self._stop_requested.set()

    # ----------------- Loop -----------------

    async def run_once(self) -> JobRecord | None:
        """One iteration without the idle sleep.

        Returns the processed job, or None when nothing was claimable.

        Raises:
            ReservationError: candidates could not be read.
        """
        await self.reclaimer.run_due(self.cfg.job_types)

        job = await self.reserver.reserve_next_job(self.cfg.job_types)
        if job is None:
            return None
        await self.process_job(job)
        return job

    async def _run_slot(self, slot: int) -> None:
        poll_s = self.cfg.poll_interval_ms / 1000.0
        while not self.state.shutting_down:
            try:
                job = await self.run_once()
            except ReservationError as exc:
                metrics.reservation_errors.inc()
                kind = 'transient' if exc.retryable else 'unexpected'
                logger.error(
                    f'[slot {slot}] Reservation failed ({kind}), retrying in {self.cfg.poll_interval_ms}ms: {exc}'
                )
                await self.state.sleep(poll_s)
                continue
            except Exception as exc:
                logger.exception(f'[slot {slot}] Worker iteration failed: {exc}')
                await self.state.sleep(poll_s)
                continue

            if job is None:
                await self.state.sleep(poll_s)

        logger.debug(f'[slot {slot}] stopped')

    async def run_forever(self) -> None:
        """Run cfg.concurrency loop slots until shutdown is requested."""
        logger.info(
            f'Worker {self.cfg.worker_id} polling for {self.cfg.job_types} '
            f'(poll={self.cfg.poll_interval_ms}ms, candidates={self.cfg.candidate_limit}, '
            f'concurrency={self.cfg.concurrency})'
        )
        await asyncio.gather(
            *(self._run_slot(slot) for slot in range(self.cfg.concurrency))
        )

    async def serve(self) -> ShutdownOutcome | None:
        """Run the loop; on request_stop() drain or force-requeue, then close.

        Returns the shutdown outcome, or None if the loop ended on its own.
        """
        run_task = asyncio.create_task(self.run_forever(), name='picket-worker-loop')
        stop_task = asyncio.create_task(self._stop_requested.wait(), name='picket-stop')
        try:
            done, _ = await asyncio.wait(
                {run_task, stop_task}, return_when=asyncio.FIRST_COMPLETED
            )
            if run_task in done:
                run_task.result()
                return None

            outcome = await self.coordinator.graceful_shutdown(self.cfg.shutdown_max_wait_ms)
            if not outcome.forced:
                # a claim that landed while the flag was being set gets the same budget
                budget_ms = max(
                    self.cfg.shutdown_max_wait_ms, self.cfg.shutdown_poll_interval_ms
                )
                _, pending = await asyncio.wait({run_task}, timeout=budget_ms / 1000.0)
                if pending and not self.state.idle:
                    requeued = await self.coordinator.force_requeue_in_flight()
                    outcome = ShutdownOutcome(
                        forced=True,
                        requeued_job_ids=requeued,
                        waited_ms=outcome.waited_ms + budget_ms,
                    )
            return outcome
        finally:
            stop_task.cancel()
            if not run_task.done():
                # abandon the in-flight processor; its job was requeued above
                run_task.cancel()
            await asyncio.gather(run_task, stop_task, return_exceptions=True)
            await self.close()
            logger.info('Worker stopped')

    async def close(self) -> None:
        match await self.store.close_async():
            case Err(err):
                logger.warning(f'Closing job store failed: {err.message}')
            case Ok(_):
                pass

    # ----------------- One job -----------------

    async def process_job(self, job: JobRecord) -> None:
        """Run one claimed job to an outcome. Never raises for job failures."""
        token = job.lock_token
        if token is None:
            raise ValueError(f'job {job.id} is not claimed')
        self.state.begin(job)
        metrics.jobs_in_flight.inc()
        try:
            try:
                result = await self._invoke_processor(job)
            except Exception as exc:
                await self._handle_failure(job, token, exc)
            else:
                await self._handle_success(job, token, result)
        finally:
            await self._release_lock(job, token)
            self.state.finish(job.id)
            metrics.jobs_in_flight.dec()

    async def _invoke_processor(self, job: JobRecord) -> ProcessResult:
        processor = self.processors[job.job_type]
        payload = decode_payload(job.job_type, job.payload)
        ctx = JobContext(job=job, payload=payload, events=self.events, store=self.store)

        timeout_ms = self.cfg.timeout_ms_for(job.job_type)
        scope = asyncio.timeout(timeout_ms / 1000.0)
        try:
            async with scope:
                value = await processor(ctx)
        except TimeoutError:
            # a TimeoutError raised by the processor itself is an ordinary failure
            if scope.expired():
                raise ProcessingTimeoutError(job.job_type, timeout_ms)
            raise
        return normalize_result(value)

    async def _handle_success(self, job: JobRecord, token: str, result: ProcessResult) -> None:
        match await self.store.mark_succeeded(job.id, token):
            case Ok(True):
                metrics.jobs_succeeded.labels(job_type=job.job_type).inc()
                logger.info(
                    f'Job {job.id} succeeded ({result.succeeded} succeeded, {result.failed} failed)'
                )
                await self.events.record(job.id, 'succeeded', result.as_event_payload())
            case Ok(False):
                logger.warning(
                    f'Job {job.id} finished but is no longer owned by this worker; result not recorded'
                )
            case Err(err):
                # row stays running with our lock; the stale sweep requeues it
                logger.error(f'Job {job.id} succeeded but could not be marked: {err.message}')

    async def _handle_failure(self, job: JobRecord, token: str, error: Exception) -> None:
        outcome = self.retry_policy.decide_outcome(job, error)
        retry_at = outcome.run_at.isoformat() if outcome.run_at is not None else None
        payload: dict[str, Any] = {
            'attempts': job.attempts,
            'max_attempts': job.max_attempts,
            'error': outcome.last_error,
        }

        match await self.store.apply_outcome(job.id, token, outcome):
            case Ok(True) if outcome.will_retry:
                metrics.retries_scheduled.labels(job_type=job.job_type).inc()
                logger.warning(
                    f'Job {job.id} failed (attempt {job.attempts}/{job.max_attempts}), '
                    f'retrying at {retry_at}: {outcome.last_error}'
                )
                payload['run_at'] = retry_at
                await self.events.record(job.id, 'retry_scheduled', payload)
            case Ok(True):
                metrics.jobs_failed.labels(job_type=job.job_type).inc()
                logger.error(
                    f'Job {job.id} failed permanently after {job.attempts} attempt(s): {outcome.last_error}'
                )
                await self.events.record(job.id, 'failed', payload)
            case Ok(False):
                logger.warning(
                    f'Job {job.id} failed but is no longer owned by this worker: {outcome.last_error}'
                )
            case Err(err):
                logger.error(f'Could not record failure of job {job.id}: {err.message}')

    async def _release_lock(self, job: JobRecord, token: str) -> None:
        # outcome writes clear the lock themselves; this only catches a row
        # moved out of running by another writer with the lock still set
        match await self.store.release_lock(job.id, token):
            case Err(err):
                logger.warning(f'Lock release for job {job.id} failed: {err.message}')
            case Ok(_):
                pass
