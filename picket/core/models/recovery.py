# picket/core/models/recovery.py
from __future__ import annotations

from typing import Annotated

from pydantic import BaseModel, Field

from picket.core.defaults import DEFAULT_LOCK_TIMEOUT_MS, DEFAULT_STALE_CHECK_INTERVAL_MS


class RecoveryConfig(BaseModel):
    """
    Stale lock recovery for jobs whose worker died mid-flight.

    A RUNNING job whose locked_at is older than lock_timeout_ms is returned to
    QUEUED. The timeout is the only stale-lock threshold in the system; it
    must exceed every processing timeout (checked by AppConfig).

    Fields:
    - lock_timeout_ms: Lock age after which a RUNNING job is presumed abandoned
    - check_interval_ms: How often the worker loop runs the sweep
    """

    lock_timeout_ms: Annotated[int, Field(ge=1_000, le=86_400_000)] = Field(
        default=DEFAULT_LOCK_TIMEOUT_MS,
        description='Milliseconds a lock may be held before it is reclaimed (1s-24hr)',
    )
    check_interval_ms: Annotated[int, Field(ge=1_000, le=3_600_000)] = Field(
        default=DEFAULT_STALE_CHECK_INTERVAL_MS,
        description='How often the stale lock sweep runs in milliseconds (1s-1hr)',
    )
