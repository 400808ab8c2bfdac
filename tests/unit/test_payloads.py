"""Unit tests for per-job-type payload decoding."""

from __future__ import annotations

import pytest

from picket.core.errors import ErrorCode, PayloadValidationError
from picket.core.models.payloads import (
    FwcLookupPayload,
    IncolinkSyncPayload,
    MappingSheetScanPayload,
    decode_payload,
    encode_payload,
)
from picket.core.types.status import JobType


@pytest.mark.unit
class TestDecodePayload:
    def test_fwc_lookup_camel_case(self) -> None:
        payload = decode_payload(
            'fwc_lookup',
            {
                'employerIds': ['e1', 'e2'],
                'options': {'searchOverrides': {'e1': 'Acme'}, 'autoLink': False},
            },
        )
        assert isinstance(payload, FwcLookupPayload)
        assert payload.employer_ids == ['e1', 'e2']
        assert payload.options.search_overrides == {'e1': 'Acme'}
        assert payload.options.auto_link is False

    def test_fwc_lookup_defaults(self) -> None:
        payload = decode_payload('fwc_lookup', {})
        assert isinstance(payload, FwcLookupPayload)
        assert payload.employer_ids == []
        assert payload.options.auto_link is True

    def test_snake_case_accepted(self) -> None:
        payload = decode_payload('incolink_sync', {'employer_ids': ['e9'], 'invoice_number': '42'})
        assert isinstance(payload, IncolinkSyncPayload)
        assert payload.employer_ids == ['e9']
        assert payload.invoice_number == '42'

    def test_mapping_sheet_scan(self) -> None:
        payload = decode_payload(
            JobType.MAPPING_SHEET_SCAN,
            {'scanId': 's1', 'fileUrl': 'https://files/s1.pdf', 'fileName': 's1.pdf'},
        )
        assert isinstance(payload, MappingSheetScanPayload)
        assert payload.file_name == 's1.pdf'
        assert payload.project_id is None

    def test_discriminator_comes_from_row(self) -> None:
        payload = decode_payload('fwc_lookup', {'job_type': 'incolink_sync', 'employerIds': []})
        assert payload.job_type == JobType.FWC_LOOKUP

    def test_unknown_keys_ignored(self) -> None:
        payload = decode_payload('incolink_sync', {'employerIds': ['e1'], 'legacy': True})
        assert isinstance(payload, IncolinkSyncPayload)

    def test_none_payload_is_empty(self) -> None:
        assert isinstance(decode_payload('fwc_lookup', None), FwcLookupPayload)

    def test_unknown_job_type(self) -> None:
        with pytest.raises(PayloadValidationError) as exc_info:
            decode_payload('bci_scrape', {})
        assert exc_info.value.code == ErrorCode.PAYLOAD_UNKNOWN_JOB_TYPE

    def test_missing_required_fields_named(self) -> None:
        with pytest.raises(PayloadValidationError) as exc_info:
            decode_payload('mapping_sheet_scan', {'scanId': 's1'})
        assert exc_info.value.code == ErrorCode.PAYLOAD_INVALID
        assert exc_info.value.message == 'invalid mapping_sheet_scan payload: fileUrl'

    def test_employer_ids_must_be_a_list(self) -> None:
        with pytest.raises(PayloadValidationError) as exc_info:
            decode_payload('incolink_sync', {'employerIds': 'e1'})
        assert exc_info.value.message == 'invalid incolink_sync payload: employerIds'


@pytest.mark.unit
class TestEncodePayload:
    def test_writes_camel_case_without_discriminator(self) -> None:
        payload = IncolinkSyncPayload(employer_ids=['e1'], invoice_number='i1')
        assert encode_payload(payload) == {'employerIds': ['e1'], 'invoiceNumber': 'i1'}

    def test_fwc_options_nested(self) -> None:
        encoded = encode_payload(decode_payload('fwc_lookup', {'employerIds': ['e1']}))
        assert encoded == {
            'employerIds': ['e1'],
            'options': {'searchOverrides': {}, 'autoLink': True},
        }
