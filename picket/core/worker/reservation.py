# picket/core/worker/reservation.py
"""
Job reservation: read a few claimable candidates, then race for them.

Exclusive ownership comes from the conditional claim in the store (the
WHERE clause re-checks status, run_at and lock_token at write time), not
from row locks. Losing a race is normal under contention and simply moves
on to the next candidate.
"""

from __future__ import annotations

import uuid
from typing import Callable, Collection

from result import Err, Ok

from picket.core import metrics
from picket.core.brokers.base import JobStore
from picket.core.brokers.result_types import StoreOperationError
from picket.core.defaults import DEFAULT_CANDIDATE_LIMIT
from picket.core.events import EventSink
from picket.core.logging import get_logger
from picket.core.models.job import JobRecord
from picket.core.worker.state import WorkerState

logger = get_logger('reservation')


class ReservationError(Exception):
    """Candidate read failed; the worker loop backs off and tries again."""

    def __init__(self, error: StoreOperationError) -> None:
        super().__init__(error.message)
        self.error = error

    @property
    def retryable(self) -> bool:
        return self.error.retryable


def new_lock_token() -> str:
    return str(uuid.uuid4())


class JobReserver:
    def __init__(
        self,
        store: JobStore,
        events: EventSink,
        *,
        candidate_limit: int = DEFAULT_CANDIDATE_LIMIT,
        worker_id: str | None = None,
        state: WorkerState | None = None,
        token_factory: Callable[[], str] = new_lock_token,
    ) -> None:
        self.store = store
        self.events = events
        self.candidate_limit = candidate_limit
        self.worker_id = worker_id
        # when given, a won claim is registered as in flight before anything
        # else awaits, so shutdown never misses it
        self.state = state
        self._token_factory = token_factory

    async def reserve_next_job(self, capabilities: Collection[str]) -> JobRecord | None:
        """Claim the best claimable job among the given job types.

        Returns:
            The claimed record (status running, lock_token set, attempts
            incremented) or None when nothing could be claimed.

        Raises:
            ReservationError: the candidate read failed.
        """
        if not capabilities:
            return None

        match await self.store.fetch_candidates(list(capabilities), self.candidate_limit):
            case Err(err):
                raise ReservationError(err)
            case Ok(candidate_ids):
                pass

        for job_id in candidate_ids:
            if self.state is not None and self.state.shutting_down:
                return None

            match await self.store.try_claim(job_id, self._token_factory()):
                case Ok(None):
                    metrics.claim_races_lost.inc()
                    logger.debug(f'Lost claim race for job {job_id}')
                    continue
                case Err(err):
                    logger.warning(f'Claim of job {job_id} failed, trying next candidate: {err.message}')
                    continue
                case Ok(job):
                    pass

            if self.state is not None:
                self.state.begin(job)
            metrics.jobs_claimed.labels(job_type=job.job_type).inc()
            logger.info(
                f'Claimed {job.job_type} job {job.id} (attempt {job.attempts}/{job.max_attempts})'
            )
            await self.events.record(
                job.id,
                'job_locked',
                {'attempts': job.attempts, 'worker_id': self.worker_id},
            )
            return job

        return None
