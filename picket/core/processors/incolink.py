# picket/core/processors/incolink.py
"""
Incolink invoice member sync.

For each employer in the job, read the members listed on one of its Incolink
invoices and match them to workers and placements. Employers without an
Incolink number, and employers whose sync raises, fail individually; the job
itself only fails when the employer rows cannot be loaded.
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass, field
from typing import Awaitable, Callable, Mapping

from picket.core.logging import get_logger
from picket.core.models.job import ProcessResult
from picket.core.models.payloads import IncolinkSyncPayload
from picket.core.processors.base import Sleep
from picket.core.worker.context import JobContext

logger = get_logger('incolink')

DEFAULT_DELAY_BETWEEN_MS = 1500
COUNT_KEYS = ('createdWorkers', 'matchedWorkers', 'placementsCreated', 'placementsSkipped')


@dataclass(slots=True, frozen=True)
class IncolinkEmployer:
    name: str
    incolink_id: str | None = None


@dataclass(slots=True)
class InvoiceSync:
    """What one employer's sync did: the invoice it read and the row counts."""

    invoice_number: str | None = None
    invoice_date: str | None = None
    counts: dict[str, int] = field(default_factory=lambda: {})


# employer ids -> {employer id: IncolinkEmployer}; missing ids are left out
ResolveEmployers = Callable[[list[str]], Awaitable[Mapping[str, IncolinkEmployer]]]
# (employer id, incolink number, invoice number or None)
SyncMembers = Callable[[str, str, str | None], Awaitable[InvoiceSync]]


class IncolinkSyncProcessor:
    def __init__(
        self,
        resolve_employers: ResolveEmployers,
        sync: SyncMembers,
        *,
        delay_between_ms: int = DEFAULT_DELAY_BETWEEN_MS,
        sleep: Sleep = asyncio.sleep,
    ) -> None:
        self.resolve_employers = resolve_employers
        self.sync = sync
        self.delay_between_ms = delay_between_ms
        self.sleep = sleep

    async def __call__(self, ctx: JobContext) -> ProcessResult:
        payload = ctx.payload
        if not isinstance(payload, IncolinkSyncPayload):
            raise TypeError(f'expected IncolinkSyncPayload, got {type(payload).__name__}')

        totals = dict.fromkeys(COUNT_KEYS, 0)
        employer_ids = payload.employer_ids
        if not employer_ids:
            await ctx.event('incolink_no_employers')
            return ProcessResult(details=totals)

        try:
            employers = await self.resolve_employers(employer_ids)
        except Exception as exc:
            raise RuntimeError(f'Failed to load employers: {exc}') from exc

        succeeded = 0
        failed = 0
        for index, employer_id in enumerate(employer_ids):
            employer = employers.get(employer_id)
            if employer is None or not employer.incolink_id:
                failed += 1
                await ctx.event(
                    'incolink_employer_missing_id',
                    {
                        'employerId': employer_id,
                        'employerName': employer.name if employer else employer_id,
                    },
                )
                await ctx.report_progress(index + 1)
                continue

            await ctx.event(
                'incolink_employer_started',
                {
                    'employerId': employer_id,
                    'employerName': employer.name,
                    'incolinkId': employer.incolink_id,
                },
            )
            try:
                outcome = await self.sync(
                    employer_id, employer.incolink_id, payload.invoice_number
                )
            except Exception as exc:
                failed += 1
                await ctx.event(
                    'incolink_employer_failed',
                    {'employerId': employer_id, 'error': str(exc) or type(exc).__name__},
                )
                logger.error(f'Incolink sync for employer {employer_id} failed: {exc!r}')
            else:
                succeeded += 1
                for key in COUNT_KEYS:
                    totals[key] += int(outcome.counts.get(key, 0))
                await ctx.event(
                    'incolink_employer_succeeded',
                    {
                        'employerId': employer_id,
                        'invoiceNumber': outcome.invoice_number,
                        'invoiceDate': outcome.invoice_date,
                        'counts': dict(outcome.counts),
                    },
                )

            await ctx.report_progress(index + 1)
            if index + 1 < len(employer_ids):
                await self.sleep(self.delay_between_ms / 1000.0)

        logger.info(
            f'Incolink job {ctx.job_id} finished: {succeeded} succeeded, {failed} failed, {totals}'
        )
        return ProcessResult(succeeded=succeeded, failed=failed, details=totals)
