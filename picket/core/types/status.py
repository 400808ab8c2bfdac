# core/types/status.py
"""
Core enums shared by the queue, the worker and the processors.
This module should not import from other application modules.
"""

from enum import Enum, StrEnum


class JobStatus(Enum):
    """Job lifecycle status"""

    QUEUED = 'queued'  # Waiting for run_at to pass and a worker to claim it.

    RUNNING = 'running'  # Claimed by a worker holding the lock token.

    SUCCEEDED = 'succeeded'  # Processor finished without raising.

    FAILED = 'failed'  # Retry budget exhausted.
    CANCELLED = 'cancelled'  # Cancelled before it could finish.

    @property
    def is_terminal(self) -> bool:
        """Whether this status represents a final state (no further transitions)."""
        return self in JOB_TERMINAL_STATES


JOB_TERMINAL_STATES: frozenset[JobStatus] = frozenset({
    JobStatus.SUCCEEDED,
    JobStatus.FAILED,
    JobStatus.CANCELLED,
})


class JobType(StrEnum):
    """Discriminator selecting the processor (and payload schema) for a job."""

    FWC_LOOKUP = 'fwc_lookup'
    MAPPING_SHEET_SCAN = 'mapping_sheet_scan'
    INCOLINK_SYNC = 'incolink_sync'
