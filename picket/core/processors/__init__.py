"""Built-in processors for the scraper job types."""

from picket.core.processors.base import with_timeout_retry
from picket.core.processors.fwc import (
    FwcLookupProcessor,
    FwcSearchError,
    SearchResult,
    build_query_candidates,
    simplify_company_name,
)
from picket.core.processors.incolink import IncolinkEmployer, IncolinkSyncProcessor, InvoiceSync
from picket.core.processors.mapping_sheet import MappingSheetScanProcessor

__all__ = [
    'FwcLookupProcessor',
    'FwcSearchError',
    'IncolinkEmployer',
    'IncolinkSyncProcessor',
    'InvoiceSync',
    'MappingSheetScanProcessor',
    'SearchResult',
    'build_query_candidates',
    'simplify_company_name',
    'with_timeout_retry',
]
