# picket/core/worker/context.py
"""What a processor receives for one job."""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass
from typing import Any, Awaitable, Callable

from result import is_err

from picket.core.brokers.base import JobStore
from picket.core.events import EventSink
from picket.core.logging import get_logger
from picket.core.models.job import JobRecord, ProcessResult
from picket.core.models.payloads import JobPayload

logger = get_logger('worker')


@dataclass(slots=True)
class JobContext:
    """
    - job: the claimed record (attempts already counts this claim)
    - payload: the job's payload decoded for its job type
    - events: sink for processor-specific events
    - store: used for progress reporting only
    """

    job: JobRecord
    payload: JobPayload
    events: EventSink
    store: JobStore

    @property
    def job_id(self) -> str:
        return self.job.id

    async def event(self, event_type: str, payload: dict[str, Any] | None = None) -> None:
        await self.events.record(self.job.id, event_type, payload)

    async def report_progress(self, completed: int, total: int | None = None) -> None:
        """Best effort, like events: a failed write is logged."""
        result = await self.store.update_progress(self.job.id, completed, total)
        if is_err(result):
            logger.warning(
                f'Progress update for job {self.job.id} dropped: {result.err_value.message}'
            )


ProcessorReturn = ProcessResult | Mapping[str, int] | None

# Raise to fail the job; the exception text becomes last_error.
Processor = Callable[[JobContext], Awaitable[ProcessorReturn]]


class ProcessingTimeoutError(Exception):
    """The processor exceeded the job type's processing timeout."""

    def __init__(self, job_type: str, timeout_ms: int) -> None:
        super().__init__(f'{job_type} processing timed out after {timeout_ms}ms')
        self.job_type = job_type
        self.timeout_ms = timeout_ms


def normalize_result(value: ProcessorReturn) -> ProcessResult:
    match value:
        case ProcessResult():
            return value
        case None:
            return ProcessResult()
        case Mapping():
            extra = {k: v for k, v in value.items() if k not in ('succeeded', 'failed')}
            return ProcessResult(
                succeeded=int(value.get('succeeded', 0)),
                failed=int(value.get('failed', 0)),
                details=extra,
            )
        case _:
            raise TypeError(
                f'processor returned {type(value).__name__}; expected ProcessResult, a mapping or None'
            )
