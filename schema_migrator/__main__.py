#!/usr/bin/env python3
"""Command-line host for the migration engine.

Usage:
    python -m schema_migrator [--config FILE] [--database URL] status
    python -m schema_migrator migrate [VERSION|latest]
    python -m schema_migrator rollback VERSION
    python -m schema_migrator history [--limit N]
    python -m schema_migrator cleanup [--days N]
    python -m schema_migrator validate
    python -m schema_migrator versions

Every command prints JSON to stdout and exits 0 on success, 1 on failure.
Logs go to stderr (or the configured log file).
"""
import argparse
import asyncio
import dataclasses
import json
import logging
import sys

from sqlalchemy.exc import SQLAlchemyError

from .config import configure_logger, load_config
from .database import create_engine, create_session_factory
from .errors import MigrationError
from .migrator import create_migrator

logger = logging.getLogger(__name__)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog='schema_migrator',
        description='Apply, roll back and inspect schema versions'
    )
    parser.add_argument('--config', help='Path to JSON or YAML config file')
    parser.add_argument(
        '--database',
        help='Database URL or SQLite file path (overrides config)'
    )
    parser.add_argument(
        '--log-level',
        choices=['debug', 'info', 'warning', 'error'],
        help='Logging level (overrides config)'
    )

    commands = parser.add_subparsers(dest='command', required=True)

    commands.add_parser('status', help='Show current and latest version')
    commands.add_parser('versions', help='List catalog versions')

    migrate = commands.add_parser('migrate', help='Migrate to a version')
    migrate.add_argument(
        'version',
        nargs='?',
        default='latest',
        help="Target version (default: latest)"
    )

    rollback = commands.add_parser('rollback', help='Roll back to an older version')
    rollback.add_argument('version', help='Target version')

    history = commands.add_parser('history', help='Show recent migration attempts')
    history.add_argument('--limit', type=int, help='Number of attempts to show')

    cleanup = commands.add_parser('cleanup', help='Delete old attempt logs')
    cleanup.add_argument('--days', type=int, help='Keep logs for N days')

    commands.add_parser('validate', help='Check schema integrity')

    return parser


async def _status(migrator, args) -> tuple:
    current = await migrator.get_current_version()
    comparison = await migrator.get_version_comparison(
        migrator.get_latest_version()
    )
    return True, {
        'current_version': current,
        'latest_version': migrator.get_latest_version(),
        'needs_upgrade': comparison.needs_upgrade,
        'pending_versions': comparison.migration_path
        if comparison.needs_upgrade else [],
    }


async def _versions(migrator, args) -> tuple:
    return True, [
        {
            'version': v.version,
            'description': v.description,
            'release_date': v.release_date.isoformat(),
            'scripts': [s.id for s in v.ordered_scripts()],
            'rollback_available': v.has_rollback,
        }
        for v in migrator.get_available_versions()
    ]


async def _migrate(migrator, args) -> tuple:
    if args.version == 'latest':
        result = await migrator.migrate_to_latest()
    else:
        result = await migrator.migrate_to(args.version)
    return result.success, result.to_dict()


async def _rollback(migrator, args) -> tuple:
    result = await migrator.rollback_to_version(args.version)
    return result.success, result.to_dict()


async def _history(migrator, args) -> tuple:
    logs = await migrator.get_migration_history(limit=args.limit)
    return True, [log.to_dict() for log in logs]


async def _cleanup(migrator, args) -> tuple:
    deleted = await migrator.cleanup_migration_logs(days_to_keep=args.days)
    return True, {'deleted': deleted}


async def _validate(migrator, args) -> tuple:
    report = await migrator.validate_database_integrity()
    return report.valid, report.to_dict()


COMMANDS = {
    'status': _status,
    'versions': _versions,
    'migrate': _migrate,
    'rollback': _rollback,
    'history': _history,
    'cleanup': _cleanup,
    'validate': _validate,
}


async def run(args, config) -> tuple:
    """
    Execute one command against the configured database.

    Returns:
        Tuple of (success, JSON-serializable payload)
    """
    engine = create_engine(config.database_url)
    session_factory = create_session_factory(engine)

    try:
        async with session_factory() as session:
            migrator = create_migrator(session, config=config)
            return await COMMANDS[args.command](migrator, args)
    finally:
        await engine.dispose()


def main(argv=None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)

    try:
        config = load_config(args.config)
        overrides = {}
        if args.database:
            overrides['database_url'] = args.database
        if args.log_level:
            overrides['log_level'] = args.log_level
        if overrides:
            config = dataclasses.replace(config, **overrides)
    except MigrationError as e:
        print(json.dumps({'error': str(e), 'error_type': type(e).__name__}))
        return 1

    configure_logger(
        'schema_migrator',
        log_file=config.log_file,
        log_level=config.logging_level
    )

    try:
        success, payload = asyncio.run(run(args, config))
    except (MigrationError, SQLAlchemyError, ValueError) as e:
        logger.error('%s failed: %s', args.command, e)
        print(json.dumps({'error': str(e), 'error_type': type(e).__name__}))
        return 1

    print(json.dumps(payload, indent=2, default=str))
    return 0 if success else 1


if __name__ == '__main__':
    sys.exit(main())
