"""Typed error types for job store operations.

Result propagation policy
-------------------------
* **Store layer** -- returns ``StoreResult``.  Never raises for operational
  failures (only for ``asyncio.CancelledError``).

* **Worker internals** -- handle ``StoreResult`` with real decisions: a
  failed candidate read becomes ``ReservationError`` and a poll-interval
  sleep, a failed single claim moves on to the next candidate, a failed
  reclaim counts as zero, a failed event append is logged and dropped.

* **Process boundaries** (CLI) -- convert ``Err`` to an exception and exit
  non-zero.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import TypeVar

from result import Result


class StoreErrorCode(str, Enum):
    """Categorized store operation failure codes."""

    SCHEMA_INIT_FAILED = 'SCHEMA_INIT_FAILED'
    ENQUEUE_FAILED = 'ENQUEUE_FAILED'
    CANDIDATE_QUERY_FAILED = 'CANDIDATE_QUERY_FAILED'
    CLAIM_FAILED = 'CLAIM_FAILED'
    COMPLETION_FAILED = 'COMPLETION_FAILED'
    LOCK_RELEASE_FAILED = 'LOCK_RELEASE_FAILED'
    RECLAIM_FAILED = 'RECLAIM_FAILED'
    PROGRESS_UPDATE_FAILED = 'PROGRESS_UPDATE_FAILED'
    EVENT_APPEND_FAILED = 'EVENT_APPEND_FAILED'
    JOB_QUERY_FAILED = 'JOB_QUERY_FAILED'
    CANCEL_FAILED = 'CANCEL_FAILED'
    CLOSE_FAILED = 'CLOSE_FAILED'


@dataclass(slots=True, frozen=True)
class StoreOperationError:
    """Error payload carried inside Err(...) for store operations.

    Fields:
        code: which operation category failed
        message: human-readable description
        retryable: whether the caller can retry this operation
        exception: the original cause (if any)
    """

    code: StoreErrorCode
    message: str
    retryable: bool
    exception: BaseException | None = None


T = TypeVar('T')

StoreResult = Result[T, StoreOperationError]
