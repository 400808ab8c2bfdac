"""picket - job queue and worker lifecycle for the scraper workers"""

# Install Rust-style error handler on import
from .core.errors import install_error_handler as _install_error_handler

_install_error_handler()

from .core.app import Picket
from .core.models.app import AppConfig
from .core.models.database import PostgresConfig
from .core.models.retry import RetryConfig
from .core.models.recovery import RecoveryConfig
from .core.models.job import JobRecord, JobOutcome, JobEvent, ProcessResult
from .core.models.payloads import (
    FwcLookupPayload,
    FwcLookupOptions,
    MappingSheetScanPayload,
    IncolinkSyncPayload,
    JobPayload,
    decode_payload,
)
from .core.types.status import JobStatus, JobType, JOB_TERMINAL_STATES
from .core.errors import (
    ErrorCode,
    PicketError,
    ConfigurationError,
    PayloadValidationError,
    ValidationReport,
    MultipleValidationErrors,
)
from .core.brokers import (
    JobStore,
    InMemoryJobStore,
    PostgresJobStore,
    StoreErrorCode,
    StoreOperationError,
    StoreResult,
)
from .core.events import EventSink, StoreEventSink, MemoryEventSink, NullEventSink
from .core.worker.context import JobContext, ProcessingTimeoutError
from .core.worker.config import WorkerConfig
from .core.worker.worker import Worker
from .core.worker.shutdown import ShutdownOutcome
from .core.worker.retry import RetryPolicy, backoff_ms
from .core.processors import (
    FwcLookupProcessor,
    FwcSearchError,
    SearchResult,
    MappingSheetScanProcessor,
    IncolinkSyncProcessor,
    IncolinkEmployer,
    InvoiceSync,
)

__all__ = [
    # Core
    'Picket',
    'AppConfig',
    'PostgresConfig',
    'RetryConfig',
    'RecoveryConfig',
    # Jobs
    'JobRecord',
    'JobOutcome',
    'JobEvent',
    'ProcessResult',
    'JobStatus',
    'JobType',
    'JOB_TERMINAL_STATES',
    # Payloads
    'FwcLookupPayload',
    'FwcLookupOptions',
    'MappingSheetScanPayload',
    'IncolinkSyncPayload',
    'JobPayload',
    'decode_payload',
    # Errors
    'ErrorCode',
    'PicketError',
    'ConfigurationError',
    'PayloadValidationError',
    'ValidationReport',
    'MultipleValidationErrors',
    # Store
    'JobStore',
    'InMemoryJobStore',
    'PostgresJobStore',
    'StoreErrorCode',
    'StoreOperationError',
    'StoreResult',
    # Events
    'EventSink',
    'StoreEventSink',
    'MemoryEventSink',
    'NullEventSink',
    # Worker
    'JobContext',
    'ProcessingTimeoutError',
    'WorkerConfig',
    'Worker',
    'ShutdownOutcome',
    'RetryPolicy',
    'backoff_ms',
    # Processors
    'FwcLookupProcessor',
    'FwcSearchError',
    'SearchResult',
    'MappingSheetScanProcessor',
    'IncolinkSyncProcessor',
    'IncolinkEmployer',
    'InvoiceSync',
]
