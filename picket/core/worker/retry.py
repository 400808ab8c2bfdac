# picket/core/worker/retry.py
"""Retry decision after a processor failure."""

from __future__ import annotations

from datetime import datetime, timedelta

from picket.core.defaults import MAX_ERROR_MESSAGE_LENGTH
from picket.core.errors import PicketError
from picket.core.models.job import JobOutcome, JobRecord
from picket.core.models.retry import RetryConfig
from picket.core.types.status import JobStatus
from picket.core.utils.clock import Clock, utc_now

# 2**30 already dwarfs any configurable max delay
_MAX_EXPONENT = 30


def backoff_ms(attempts: int, base_delay_ms: int, max_delay_ms: int) -> int:
    """min(base * 2^(attempts-1), max). Attempts below 1 count as 1."""
    exponent = min(max(attempts, 1) - 1, _MAX_EXPONENT)
    return min(base_delay_ms * (2**exponent), max_delay_ms)


def error_message(error: BaseException) -> str:
    """Text stored in last_error for a failure."""
    if isinstance(error, PicketError):
        message = error.message
    else:
        message = str(error) or type(error).__name__
    if len(message) > MAX_ERROR_MESSAGE_LENGTH:
        message = message[: MAX_ERROR_MESSAGE_LENGTH - 3] + '...'
    return message


class RetryPolicy:
    """Requeue with exponential backoff while attempts remain, then fail.

    The policy only decides. Writing the outcome and releasing the lock is
    the worker loop's job.
    """

    def __init__(
        self,
        config: RetryConfig | None = None,
        clock: Clock = utc_now,
    ) -> None:
        self.config = config or RetryConfig()
        self._clock = clock

    def backoff_ms(self, attempts: int) -> int:
        return backoff_ms(attempts, self.config.base_delay_ms, self.config.max_delay_ms)

    def decide_outcome(
        self,
        job: JobRecord,
        error: BaseException,
        now: datetime | None = None,
    ) -> JobOutcome:
        """
        Args:
            job: The claimed record; attempts already includes this claim.
            error: What the processor raised.
            now: Reference time for run_at, defaults to the policy clock.
        """
        message = error_message(error)
        if job.attempts < job.max_attempts:
            base = now or self._clock()
            return JobOutcome(
                next_status=JobStatus.QUEUED,
                run_at=base + timedelta(milliseconds=self.backoff_ms(job.attempts)),
                last_error=message,
            )
        return JobOutcome(next_status=JobStatus.FAILED, last_error=message)
