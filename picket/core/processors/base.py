# picket/core/processors/base.py
"""Helpers shared by the built-in processors."""

from __future__ import annotations

import asyncio
from typing import Awaitable, Callable, TypeVar

from picket.core.logging import get_logger
from picket.core.utils.backoff import RetryBackoff

logger = get_logger('processors')

T = TypeVar('T')

Sleep = Callable[[float], Awaitable[None]]


async def with_timeout_retry(
    fn: Callable[[], Awaitable[T]],
    *,
    timeout_ms: int,
    backoff: RetryBackoff,
    label: str = 'call',
    retry_on: tuple[type[BaseException], ...] = (Exception,),
    sleep: Sleep = asyncio.sleep,
) -> T:
    """Await fn() with a per-call timeout, retrying failures with backoff.

    Each retry calls fn() again. A timed-out call raises TimeoutError, which
    is retried like any other error in retry_on. Once backoff is exhausted
    the last error propagates to the processor.

    backoff is used as a template: every call counts its own attempts on a
    fresh copy, so one RetryBackoff can be shared across concurrent jobs.

    This budget lives inside the processor; the job's processing timeout
    must cover timeout_ms * (backoff.max_attempts + 1) plus the delays.
    """
    backoff = backoff.fresh()
    while True:
        try:
            async with asyncio.timeout(timeout_ms / 1000.0):
                return await fn()
        except retry_on as exc:
            if not backoff.can_retry():
                logger.warning(
                    f'{label} failed after {backoff.attempts + 1} attempt(s): {exc!r}'
                )
                raise
            delay = backoff.next_delay_seconds()
            logger.info(
                f'{label} failed ({exc!r}), retrying in {delay:.1f}s '
                f'(attempt {backoff.attempts}/{backoff.max_attempts or "inf"})'
            )
            await sleep(delay)
