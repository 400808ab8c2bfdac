# picket/core/models/payloads.py
"""
Typed payloads, one per job type.

Jobs store their payload as an opaque JSON object; decode_payload() turns it
into the model for the job's type once, at the processor boundary.
"""

from __future__ import annotations

from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field, ValidationError

from picket.core.errors import ErrorCode, PayloadValidationError
from picket.core.types.status import JobType


class _Payload(BaseModel):
    # Producers write camelCase keys; accept both spellings
    model_config = ConfigDict(populate_by_name=True, extra='ignore', frozen=True)


class FwcLookupOptions(_Payload):
    search_overrides: dict[str, str] = Field(default_factory=lambda: {}, alias='searchOverrides')
    auto_link: bool = Field(default=True, alias='autoLink')


class FwcLookupPayload(_Payload):
    """Employers to look up in the Fair Work Commission agreement search."""

    job_type: Literal[JobType.FWC_LOOKUP] = JobType.FWC_LOOKUP
    employer_ids: list[str] = Field(default_factory=lambda: [], alias='employerIds')
    options: FwcLookupOptions = Field(default_factory=FwcLookupOptions)


class MappingSheetScanPayload(_Payload):
    """Uploaded mapping sheet PDF to run through structured extraction."""

    job_type: Literal[JobType.MAPPING_SHEET_SCAN] = JobType.MAPPING_SHEET_SCAN
    scan_id: str = Field(alias='scanId', min_length=1)
    file_url: str = Field(alias='fileUrl', min_length=1)
    project_id: str | None = Field(default=None, alias='projectId')
    file_name: str | None = Field(default=None, alias='fileName')


class IncolinkSyncPayload(_Payload):
    """Employers whose Incolink invoice members should be synchronised.

    invoice_number pins one invoice; otherwise the sync picks one from the
    employer's invoice list.
    """

    job_type: Literal[JobType.INCOLINK_SYNC] = JobType.INCOLINK_SYNC
    employer_ids: list[str] = Field(default_factory=lambda: [], alias='employerIds')
    invoice_number: str | None = Field(default=None, alias='invoiceNumber')


JobPayload = FwcLookupPayload | MappingSheetScanPayload | IncolinkSyncPayload

PAYLOAD_MODELS: dict[JobType, type[_Payload]] = {
    JobType.FWC_LOOKUP: FwcLookupPayload,
    JobType.MAPPING_SHEET_SCAN: MappingSheetScanPayload,
    JobType.INCOLINK_SYNC: IncolinkSyncPayload,
}


def decode_payload(job_type: str, raw: dict[str, Any] | None) -> JobPayload:
    """Validate a stored payload against the schema of its job type.

    Raises:
        PayloadValidationError: unknown job type or a payload that does not
            match the schema. The message names the offending fields so it
            can be stored in last_error.
    """
    try:
        model = PAYLOAD_MODELS[JobType(job_type)]
    except (ValueError, KeyError):
        raise PayloadValidationError(
            message=f"unknown job type '{job_type}'",
            code=ErrorCode.PAYLOAD_UNKNOWN_JOB_TYPE,
            notes=[f'known job types: {[t.value for t in JobType]}'],
        )

    # The discriminator comes from the row, never from the blob
    data = {k: v for k, v in (raw or {}).items() if k != 'job_type'}
    try:
        payload = model.model_validate(data)
    except ValidationError as exc:
        fields = sorted({'.'.join(str(p) for p in e['loc']) for e in exc.errors()})
        raise PayloadValidationError(
            message=f'invalid {job_type} payload: {", ".join(fields)}',
            code=ErrorCode.PAYLOAD_INVALID,
            notes=[e['msg'] for e in exc.errors()],
        ) from exc
    return payload  # type: ignore[return-value]


def encode_payload(payload: JobPayload) -> dict[str, Any]:
    """Serialise a payload model the way producers write it (camelCase)."""
    return payload.model_dump(mode='json', by_alias=True, exclude={'job_type'})
