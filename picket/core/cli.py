# picket/core/cli.py
"""
CLI for the picket worker and its maintenance commands.

Module path resolution follows Celery's approach:
1. User provides dotted module path: `picket worker scrapers.app:app`
2. User is responsible for PYTHONPATH / running from correct directory
3. Convenience: if cwd has pyproject.toml, we add cwd to sys.path
"""

import argparse
import asyncio
import importlib
import json
import logging
import os
import signal
import sys
from typing import Any

from result import Err, Ok, is_err

from picket.core.app import Picket
from picket.core.errors import (
    ConfigurationError,
    ErrorCode,
    PicketError,
    ValidationReport,
)
from picket.core.logging import get_logger, setup_logging
from picket.core.registry.processors import ProcessorNotRegistered
from picket.core.types.status import JobType
from picket.core.utils.imports import import_file_path, setup_sys_path_from_cwd
from picket.core.worker.config import WorkerConfig
from picket.core.worker.health import HealthServer, create_health_app


def _resolve_module_argument(args: argparse.Namespace) -> str:
    """Return module path from --module or positional, error if missing."""
    module_path = getattr(args, 'module', None) or getattr(args, 'module_pos', None)
    if not module_path:
        raise ConfigurationError(
            message='module path is required',
            code=ErrorCode.CLI_INVALID_ARGS,
            notes=['no --module flag or positional module argument provided'],
            help_text=(
                'provide module path in one of these formats:\n'
                '  picket worker scrapers.app:app  (recommended)\n'
                '  picket worker scrapers/app.py:app  (file path)\n'
                '  picket worker scrapers.app  (auto-discover app variable)'
            ),
        )
    return module_path


def _parse_locator(locator: str) -> tuple[str, str | None]:
    """
    Parse a module locator into (module_path, attribute_name).

    - "scrapers.app:app" -> ("scrapers.app", "app")
    - "scrapers/app.py" -> ("scrapers/app.py", None)
    """
    if ':' in locator:
        module_part, attr = locator.rsplit(':', 1)
        return (module_part, attr)
    return (locator, None)


def _is_file_path(path: str) -> bool:
    return path.endswith('.py') or os.path.sep in path or '/' in path


def discover_app(module_locator: str) -> tuple[Picket, str]:
    """
    Import a module and find its Picket instance.

    Returns:
        (app_instance, variable_name)

    Raises:
        ConfigurationError: the module cannot be imported, or it holds no
            Picket instance / more than one without a variable name.
    """
    logger = get_logger('cli')

    project_root = setup_sys_path_from_cwd()
    if project_root:
        logger.info(f'Added project root to sys.path: {project_root}')

    module_path, attr_name = _parse_locator(module_locator)

    if _is_file_path(module_path):
        if not module_path.endswith('.py'):
            module_path += '.py'
        module = import_file_path(module_path)
    else:
        try:
            module = importlib.import_module(module_path)
        except ModuleNotFoundError as e:
            raise ConfigurationError(
                message=f'module not found: {module_path}',
                code=ErrorCode.WORKER_INVALID_LOCATOR,
                notes=[str(e), f'sys.path: {sys.path[:5]}...'],
                help_text=(
                    'ensure you are running from the correct directory\n'
                    'or set PYTHONPATH to include your project root'
                ),
            )
    module_name = module.__name__

    if attr_name:
        obj = getattr(module, attr_name, None)
        if not isinstance(obj, Picket):
            raise ConfigurationError(
                message=f"'{attr_name}' in module '{module_name}' is not a Picket instance",
                code=ErrorCode.WORKER_INVALID_LOCATOR,
                notes=[f'got {type(obj).__name__}'],
            )
        app, var_name = obj, attr_name
    else:
        found = [
            (obj, name)
            for name, obj in vars(module).items()
            if not name.startswith('_') and isinstance(obj, Picket)
        ]
        if len(found) != 1:
            raise ConfigurationError(
                message=f'expected one Picket instance in {module_name}, found {len(found)}',
                code=ErrorCode.WORKER_INVALID_LOCATOR,
                notes=[f'candidates: {[name for _, name in found]}'] if found else [],
                help_text='specify the variable name: module.path:variable',
            )
        app, var_name = found[0]

    logger.info(f"Discovered picket app '{var_name}' from {module_name}")
    return app, var_name


def _discover_or_exit(args: argparse.Namespace) -> Picket:
    logger = get_logger('cli')
    try:
        app, _ = discover_app(_resolve_module_argument(args))
    except PicketError as e:
        print(e.format_rust_style(), file=sys.stderr)
        sys.exit(1)
    except Exception as e:
        logger.error(f'Failed to discover app: {e}')
        sys.exit(1)
    return app


def _parse_job_types(raw: str | None) -> list[str] | None:
    if raw is None:
        return None
    names = [name.strip() for name in raw.split(',') if name.strip()]
    known = {t.value for t in JobType}
    unknown = [name for name in names if name not in known]
    if unknown or not names:
        raise ConfigurationError(
            message='invalid --job-types',
            code=ErrorCode.CLI_INVALID_ARGS,
            notes=[f'unknown: {unknown}' if unknown else 'empty list'],
            help_text=f'choose from {sorted(known)}',
        )
    return names


def _build_worker_config(app: Picket, args: argparse.Namespace) -> WorkerConfig:
    overrides: dict[str, Any] = {
        'loglevel': getattr(logging, args.loglevel, logging.INFO),
    }
    job_types = _parse_job_types(args.job_types)
    if job_types is not None:
        overrides['job_types'] = job_types
    if args.concurrency is not None:
        if args.concurrency < 1:
            raise ConfigurationError(
                message='--concurrency must be at least 1',
                code=ErrorCode.CLI_INVALID_ARGS,
                notes=[f'got {args.concurrency}'],
            )
        overrides['concurrency'] = args.concurrency
    return WorkerConfig.from_app_config(app.config, **overrides)


def worker_command(args: argparse.Namespace) -> None:
    """Handle worker command."""
    logger = get_logger('cli')
    setup_logging(args.loglevel)
    logger.info(f'Starting picket worker with loglevel={args.loglevel}')

    app = _discover_or_exit(args)
    try:
        cfg = _build_worker_config(app, args)
    except PicketError as e:
        print(e.format_rust_style(), file=sys.stderr)
        sys.exit(1)

    missing = app.processors.missing(cfg.job_types)
    if missing:
        report = ValidationReport('worker')
        for job_type in missing:
            report.add(ProcessorNotRegistered(job_type))
        print(report.format_rust_style(), file=sys.stderr)
        sys.exit(1)

    health_port: int | None = (
        args.health_port if args.health_port is not None else app.config.health_port
    )

    async def run_worker() -> None:
        store = app.get_store()
        logger.info('Ensuring scraper_jobs schema is initialized...')
        init = await store.ensure_schema_initialized()
        if is_err(init):
            err = init.err_value
            raise err.exception or RuntimeError(err.message)

        worker = app.build_worker(cfg)

        loop = asyncio.get_running_loop()

        def signal_handler() -> None:
            logger.info('Received interrupt signal, stopping worker...')
            worker.request_stop()

        for sig in (signal.SIGTERM, signal.SIGINT):
            try:
                loop.add_signal_handler(sig, signal_handler)
            except NotImplementedError:
                pass

        health: HealthServer | None = None
        if health_port is not None:
            health = HealthServer(create_health_app(worker.state, cfg), port=health_port)
            await health.start()
        try:
            outcome = await worker.serve()
        finally:
            if health is not None:
                await health.stop()

        if outcome is not None and outcome.forced:
            logger.warning(
                f'Shutdown forced after {outcome.waited_ms}ms; requeued {list(outcome.requeued_job_ids)}'
            )

    try:
        asyncio.run(run_worker())
    except KeyboardInterrupt:
        logger.info('Worker interrupted by user')
    except Exception as e:
        logger.error(f'Worker failed: {e}')
        sys.exit(1)


def check_command(args: argparse.Namespace) -> None:
    """Handle check command: validate the app without starting a worker."""
    setup_logging(args.loglevel)
    app = _discover_or_exit(args)

    errors = app.check(live=args.live)
    if errors:
        report = ValidationReport('check')
        for error in errors:
            report.add(error)
        print(report.format_rust_style(), file=sys.stderr)
        sys.exit(1)

    print(
        f'ok: all validations passed\n  {len(app.list_processors())} processor(s) registered'
    )
    sys.exit(0)


def reclaim_command(args: argparse.Namespace) -> None:
    """Handle reclaim command: one stale-lock sweep, then exit."""
    setup_logging(args.loglevel)
    app = _discover_or_exit(args)

    async def run() -> int:
        try:
            return await app.reclaim_async(args.lock_timeout_ms)
        finally:
            await app.get_store().close_async()

    count = asyncio.run(run())
    print(f'reclaimed {count} job(s)')


def enqueue_command(args: argparse.Namespace) -> None:
    """Handle enqueue command."""
    setup_logging(args.loglevel)
    app = _discover_or_exit(args)

    try:
        payload = json.loads(args.payload)
    except json.JSONDecodeError as e:
        print(
            ConfigurationError(
                message='--payload is not valid JSON',
                code=ErrorCode.CLI_INVALID_ARGS,
                notes=[str(e)],
            ).format_rust_style(),
            file=sys.stderr,
        )
        sys.exit(1)

    async def run() -> None:
        try:
            result = await app.enqueue_async(
                args.job_type,
                payload,
                priority=args.priority,
                max_attempts=args.max_attempts,
            )
        finally:
            await app.get_store().close_async()
        match result:
            case Ok(job_id):
                print(job_id)
            case Err(err):
                print(f'error: {err.message}', file=sys.stderr)
                sys.exit(1)

    try:
        asyncio.run(run())
    except PicketError as e:
        print(e.format_rust_style(), file=sys.stderr)
        sys.exit(1)


def cancel_command(args: argparse.Namespace) -> None:
    """Handle cancel command."""
    setup_logging(args.loglevel)
    app = _discover_or_exit(args)

    async def run() -> None:
        try:
            result = await app.cancel_async(args.job_id)
        finally:
            await app.get_store().close_async()
        match result:
            case Ok(None):
                print(f'error: job {args.job_id} not found', file=sys.stderr)
                sys.exit(1)
            case Ok(job):
                print(f'{job.id} {job.status.value}')
            case Err(err):
                print(f'error: {err.message}', file=sys.stderr)
                sys.exit(1)

    asyncio.run(run())


def _add_common_arguments(parser: argparse.ArgumentParser, default_level: str) -> None:
    parser.add_argument(
        '-m',
        '--module',
        dest='module',
        help='Module path (e.g., scrapers.app:app)',
    )
    parser.add_argument(
        '--loglevel',
        choices=['DEBUG', 'INFO', 'WARNING', 'ERROR', 'CRITICAL'],
        default=default_level,
        type=str.upper,
        help=f'Logging level (default: {default_level})',
    )


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog='picket',
        description='picket scraper job queue - worker and queue maintenance',
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  picket worker scrapers.app:app
  picket worker scrapers.app:app --job-types fwc_lookup --health-port 8080
  picket check scrapers.app:app --live
  picket enqueue scrapers.app:app --job-type fwc_lookup --payload '{"employerIds": ["e1"]}'
  picket cancel scrapers.app:app 5d6f...
""",
    )
    subparsers = parser.add_subparsers(dest='command', help='Available commands')

    worker_parser = subparsers.add_parser('worker', help='Start a picket worker')
    worker_parser.add_argument('module_pos', nargs='?', help='Module path (e.g., scrapers.app:app)')
    _add_common_arguments(worker_parser, 'INFO')
    worker_parser.add_argument(
        '--job-types',
        default=None,
        help='Comma-separated job types to reserve (default: WORKER_JOB_TYPES / all)',
    )
    worker_parser.add_argument(
        '--concurrency',
        type=int,
        default=None,
        help='Jobs processed at once by this process (default: WORKER_CONCURRENCY / 1)',
    )
    worker_parser.add_argument(
        '--health-port',
        type=int,
        default=None,
        help='Serve /health and /metrics on this port (default: HEALTH_PORT / off)',
    )

    check_parser = subparsers.add_parser(
        'check', help='Validate app configuration without starting a worker'
    )
    check_parser.add_argument('module_pos', nargs='?', help='Module path (e.g., scrapers.app:app)')
    _add_common_arguments(check_parser, 'WARNING')
    check_parser.add_argument(
        '--live',
        action='store_true',
        default=False,
        help='Also check datastore connectivity (SELECT 1)',
    )

    reclaim_parser = subparsers.add_parser(
        'reclaim', help='Return stale running jobs to the queue once'
    )
    reclaim_parser.add_argument('module_pos', nargs='?', help='Module path (e.g., scrapers.app:app)')
    _add_common_arguments(reclaim_parser, 'INFO')
    reclaim_parser.add_argument(
        '--lock-timeout-ms',
        type=int,
        default=None,
        help='Override LOCK_TIMEOUT_MS for this sweep',
    )

    enqueue_parser = subparsers.add_parser('enqueue', help='Queue a job')
    enqueue_parser.add_argument('module_pos', nargs='?', help='Module path (e.g., scrapers.app:app)')
    _add_common_arguments(enqueue_parser, 'WARNING')
    enqueue_parser.add_argument(
        '--job-type', required=True, choices=[t.value for t in JobType]
    )
    enqueue_parser.add_argument('--payload', required=True, help='JSON object')
    enqueue_parser.add_argument('--priority', type=int, default=5, help='1 (first) .. 10')
    enqueue_parser.add_argument('--max-attempts', type=int, default=None)

    cancel_parser = subparsers.add_parser('cancel', help='Cancel a job')
    cancel_parser.add_argument('module_pos', nargs='?', help='Module path (e.g., scrapers.app:app)')
    _add_common_arguments(cancel_parser, 'WARNING')
    cancel_parser.add_argument('job_id')

    return parser


def main() -> None:
    """Main CLI entry point."""
    try:
        parser = build_parser()
        args = parser.parse_args()

        match args.command:
            case 'worker':
                worker_command(args)
            case 'check':
                check_command(args)
            case 'reclaim':
                reclaim_command(args)
            case 'enqueue':
                enqueue_command(args)
            case 'cancel':
                cancel_command(args)
            case _:
                parser.print_help()
                sys.exit(1)
    except KeyboardInterrupt:
        print('\nInterrupted by user')
        sys.exit(0)


if __name__ == '__main__':
    main()
