# picket/core/events.py
"""
Job event log.

The worker and processors report lifecycle events through an EventSink.
Sinks never raise: an audit row that could not be written is logged and
dropped, so recording an event cannot change what happens to the job.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Protocol

from result import is_err

from picket.core.brokers.base import JobStore
from picket.core.logging import get_logger

logger = get_logger('events')


class EventSink(Protocol):
    async def record(
        self, job_id: str, event_type: str, payload: dict[str, Any] | None = None
    ) -> None: ...


class StoreEventSink:
    """Appends events to scraper_job_events through the job store."""

    def __init__(self, store: JobStore) -> None:
        self.store = store

    async def record(
        self, job_id: str, event_type: str, payload: dict[str, Any] | None = None
    ) -> None:
        try:
            result = await self.store.append_event(job_id, event_type, payload)
        except Exception as exc:
            logger.warning(f'Dropped {event_type} event for job {job_id}: {exc!r}')
            return
        if is_err(result):
            logger.warning(
                f'Dropped {event_type} event for job {job_id}: {result.err_value.message}'
            )


@dataclass(slots=True, frozen=True)
class RecordedEvent:
    job_id: str
    event_type: str
    payload: dict[str, Any] | None


class MemoryEventSink:
    """Keeps events in a list. Used by tests and dry runs."""

    def __init__(self) -> None:
        self.events: list[RecordedEvent] = []

    async def record(
        self, job_id: str, event_type: str, payload: dict[str, Any] | None = None
    ) -> None:
        self.events.append(RecordedEvent(job_id, event_type, payload))

    def types_for(self, job_id: str) -> list[str]:
        return [e.event_type for e in self.events if e.job_id == job_id]


class NullEventSink:
    async def record(
        self, job_id: str, event_type: str, payload: dict[str, Any] | None = None
    ) -> None:
        return None
