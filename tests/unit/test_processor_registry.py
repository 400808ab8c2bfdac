"""Unit tests for ProcessorRegistry and processor registration on the app."""

from __future__ import annotations

import pytest

from picket.core.app import Picket
from picket.core.brokers.memory import InMemoryJobStore
from picket.core.errors import ErrorCode, RegistryError
from picket.core.models.app import AppConfig
from picket.core.models.database import PostgresConfig
from picket.core.registry.processors import (
    DuplicateProcessorError,
    ProcessorNotRegistered,
    ProcessorRegistry,
)
from picket.core.types.status import JobType
from picket.core.worker.context import JobContext


async def lookup(ctx: JobContext) -> None:
    return None


async def scan(ctx: JobContext) -> None:
    return None


def _app() -> Picket:
    config = AppConfig(
        database=PostgresConfig(database_url='postgresql+psycopg://u:p@localhost/db')
    )
    return Picket(config, store=InMemoryJobStore())


@pytest.mark.unit
class TestProcessorRegistry:
    def test_lookup_by_str_or_enum(self) -> None:
        registry = ProcessorRegistry()
        registry.register(lookup, job_type=JobType.FWC_LOOKUP)
        assert registry['fwc_lookup'] is lookup
        assert registry[JobType.FWC_LOOKUP] is lookup
        assert 'fwc_lookup' in registry
        assert len(registry) == 1

    def test_missing_key_raises_not_registered(self) -> None:
        registry = ProcessorRegistry()
        with pytest.raises(ProcessorNotRegistered) as exc_info:
            registry['incolink_sync']
        assert exc_info.value.job_type == 'incolink_sync'
        assert 'incolink_sync' not in registry

    def test_same_processor_twice_is_a_no_op(self) -> None:
        registry = ProcessorRegistry()
        registry.register(lookup, job_type='fwc_lookup')
        assert registry.register(lookup, job_type='fwc_lookup') is lookup

    def test_different_processor_for_same_type_rejected(self) -> None:
        registry = ProcessorRegistry()
        registry.register(lookup, job_type='fwc_lookup', source='jobs.py:3')
        with pytest.raises(DuplicateProcessorError) as exc_info:
            registry['fwc_lookup'] = scan
        assert exc_info.value.notes == ['first registered at jobs.py:3']

    def test_missing_lists_unhandled_types(self) -> None:
        registry = ProcessorRegistry()
        registry.register(lookup, job_type='fwc_lookup')
        assert registry.missing(['fwc_lookup', 'mapping_sheet_scan']) == ['mapping_sheet_scan']

    def test_delete(self) -> None:
        registry = ProcessorRegistry()
        registry.register(lookup, job_type='fwc_lookup')
        del registry['fwc_lookup']
        assert list(registry) == []


@pytest.mark.unit
class TestAppRegistration:
    def test_decorator_registers_and_returns_function(self) -> None:
        app = _app()

        @app.processor(JobType.MAPPING_SHEET_SCAN)
        async def process(ctx: JobContext) -> None:
            return None

        assert app.processors['mapping_sheet_scan'] is process
        assert app.list_processors() == ['mapping_sheet_scan']

    def test_duplicate_source_points_at_definition(self) -> None:
        app = _app()
        app.register_processor('fwc_lookup', lookup)
        with pytest.raises(DuplicateProcessorError) as exc_info:
            app.register_processor('fwc_lookup', scan)
        assert exc_info.value.notes[0].startswith('first registered at ')
        assert 'test_processor_registry.py' in exc_info.value.notes[0]

    def test_async_callable_object_accepted(self) -> None:
        class Processor:
            async def __call__(self, ctx: JobContext) -> None:
                return None

        app = _app()
        instance = Processor()
        assert app.register_processor('incolink_sync', instance) is instance

    def test_sync_function_rejected(self) -> None:
        def not_async(ctx: JobContext) -> None:
            return None

        with pytest.raises(RegistryError) as exc_info:
            _app().register_processor('fwc_lookup', not_async)  # type: ignore[arg-type]
        assert exc_info.value.code == ErrorCode.PROCESSOR_INVALID

    def test_unknown_job_type_rejected(self) -> None:
        with pytest.raises(RegistryError) as exc_info:
            _app().register_processor('bci_scrape', lookup)
        assert exc_info.value.code == ErrorCode.PAYLOAD_UNKNOWN_JOB_TYPE
