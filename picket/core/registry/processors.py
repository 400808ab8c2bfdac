# picket/core/registry/processors.py
from __future__ import annotations

from typing import Dict, Iterator, MutableMapping

from picket.core.errors import ErrorCode, RegistryError
from picket.core.worker.context import Processor


class ProcessorNotRegistered(RegistryError, KeyError):
    """Raised when no processor handles a job type.

    Inherits from KeyError so MutableMapping.__contains__ works correctly
    (it catches KeyError to implement the ``in`` operator).
    """

    def __init__(self, job_type: str) -> None:
        RegistryError.__init__(
            self,
            message=f"no processor registered for job type '{job_type}'",
            code=ErrorCode.PROCESSOR_NOT_REGISTERED,
            notes=[f"requested job type: '{job_type}'"],
            help_text='register one with @app.processor(JobType.X)\nor drop the job type from WORKER_JOB_TYPES',
        )
        self.job_type = job_type

    def __str__(self) -> str:
        return self.message


class DuplicateProcessorError(RegistryError):
    """Raised when a job type gets a second, different processor."""

    def __init__(self, job_type: str, source: str = '') -> None:
        super().__init__(
            message=f"job type '{job_type}' already has a processor",
            code=ErrorCode.PROCESSOR_DUPLICATE,
            notes=[f'first registered at {source}'] if source else [],
            help_text='each job type is handled by exactly one processor per worker',
        )
        self.job_type = job_type


class ProcessorRegistry(MutableMapping[str, Processor]):
    """Registry mapping job type -> processor.

    Registering the same processor object again is a no-op (module
    re-import); a different one raises DuplicateProcessorError.
    """

    def __init__(self) -> None:
        self._data: Dict[str, Processor] = {}
        self._sources: Dict[str, str] = {}

    def __getitem__(self, key: str) -> Processor:
        try:
            return self._data[str(key)]
        except KeyError:
            raise ProcessorNotRegistered(str(key))

    def __setitem__(self, key: str, value: Processor) -> None:
        self.register(value, job_type=key)

    def __delitem__(self, key: str) -> None:
        del self._data[str(key)]
        self._sources.pop(str(key), None)

    def __iter__(self) -> Iterator[str]:
        return iter(self._data)

    def __len__(self) -> int:
        return len(self._data)

    def register(self, processor: Processor, *, job_type: str, source: str | None = None) -> Processor:
        key = str(job_type)
        existing = self._data.get(key)
        if existing is not None:
            if existing is processor:
                return existing
            raise DuplicateProcessorError(key, self._sources.get(key, ''))
        self._data[key] = processor
        if source:
            self._sources[key] = source
        return processor

    def missing(self, job_types: list[str]) -> list[str]:
        """Job types with no processor."""
        return [str(t) for t in job_types if str(t) not in self._data]
