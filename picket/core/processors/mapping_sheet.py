# picket/core/processors/mapping_sheet.py
from __future__ import annotations

from typing import Any, Awaitable, Callable

from picket.core.logging import get_logger
from picket.core.models.job import ProcessResult
from picket.core.models.payloads import MappingSheetScanPayload
from picket.core.worker.context import JobContext

logger = get_logger('scanner')

# payload -> extracted fields; raise to fail the attempt
Extract = Callable[[MappingSheetScanPayload], Awaitable[dict[str, Any]]]
# (scan id, extracted fields) -> None
StoreResult = Callable[[str, dict[str, Any]], Awaitable[None]]


class MappingSheetScanProcessor:
    """Runs an uploaded mapping sheet through the extraction collaborator.

    The whole scan is one unit of work: any error fails the attempt and the
    retry policy decides whether the scan is tried again.
    """

    def __init__(self, extract: Extract, store_result: StoreResult | None = None) -> None:
        self.extract = extract
        self.store_result = store_result

    async def __call__(self, ctx: JobContext) -> ProcessResult:
        payload = ctx.payload
        if not isinstance(payload, MappingSheetScanPayload):
            raise TypeError(f'expected MappingSheetScanPayload, got {type(payload).__name__}')

        await ctx.event(
            'scan_started',
            {'scanId': payload.scan_id, 'fileName': payload.file_name, 'attempt': ctx.job.attempts},
        )
        extracted = await self.extract(payload)
        if self.store_result is not None:
            await self.store_result(payload.scan_id, extracted)

        logger.info(f'Scan {payload.scan_id} extracted {len(extracted)} field(s)')
        await ctx.event(
            'scan_extracted',
            {'scanId': payload.scan_id, 'fields': sorted(extracted)},
        )
        return ProcessResult(succeeded=1, details={'scan_id': payload.scan_id})
