"""Time source shared by the worker components."""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Callable

Clock = Callable[[], datetime]


def utc_now() -> datetime:
    """Timezone-aware current time; the default Clock."""
    return datetime.now(timezone.utc)
