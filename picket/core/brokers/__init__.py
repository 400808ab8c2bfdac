from picket.core.brokers.base import JobStore
from picket.core.brokers.memory import InMemoryJobStore
from picket.core.brokers.postgres import PostgresJobStore
from picket.core.brokers.result_types import (
    StoreErrorCode,
    StoreOperationError,
    StoreResult,
)

__all__ = [
    'JobStore',
    'InMemoryJobStore',
    'PostgresJobStore',
    'StoreErrorCode',
    'StoreOperationError',
    'StoreResult',
]
