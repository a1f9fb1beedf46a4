#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""
Configuration and logging setup for the migration engine.

Configuration comes from an optional JSON or YAML file, then from
SCHEMA_MIGRATOR_* environment variables, which win over the file.

Example config.yaml:

    database_url: sqlite+aiosqlite:///app.db
    applied_by: deploy-bot
    catalog_dir: ./migrations
    log_retention_days: 14
    log_level: debug
"""
import json
import logging
import os
import pathlib
import urllib.parse
from dataclasses import dataclass, field, fields
from typing import List, Optional

import yaml

from .errors import ConfigurationError

ENV_PREFIX = 'SCHEMA_MIGRATOR_'

# Environment variable suffix -> (field name, type)
ENV_OVERRIDES = {
    'DATABASE_URL': ('database_url', str),
    'APPLIED_BY': ('applied_by', str),
    'CATALOG_DIR': ('catalog_dir', str),
    'LOG_LEVEL': ('log_level', str),
    'LOG_FILE': ('log_file', str),
    'HISTORY_LIMIT': ('history_limit', int),
    'LOG_RETENTION_DAYS': ('log_retention_days', int),
}

DEFAULT_LOG_FORMAT = '[%(asctime).19s] [%(name)s] [%(levelname)s] %(message)s'


@dataclass
class MigratorConfig:
    """
    Settings for the migrator and its command-line host.

    Attributes:
        database_url: SQLAlchemy URL or SQLite file path (CLI only)
        applied_by: Actor recorded on applied versions
        catalog_dir: Directory to load versions from (None = built-in)
        history_limit: Default number of attempts returned by history
        log_retention_days: Default retention for attempt-log cleanup
        required_tables: Extra tables integrity validation expects
        min_index_ratio: Index heuristic threshold (0.0 - 1.0)
        log_level: Logging level name
        log_file: Log file path (None = stderr)
    """
    database_url: str = 'sqlite+aiosqlite:///schema.db'
    applied_by: str = 'system'
    catalog_dir: Optional[str] = None
    history_limit: int = 50
    log_retention_days: int = 30
    required_tables: List[str] = field(default_factory=list)
    min_index_ratio: float = 1.0
    log_level: str = 'info'
    log_file: Optional[str] = None

    def __post_init__(self):
        if self.history_limit < 1:
            raise ConfigurationError(
                f"history_limit must be >= 1, got {self.history_limit}"
            )
        if self.log_retention_days < 0:
            raise ConfigurationError(
                f"log_retention_days must be >= 0, got {self.log_retention_days}"
            )
        if not 0.0 <= self.min_index_ratio <= 1.0:
            raise ConfigurationError(
                f"min_index_ratio must be between 0 and 1, got {self.min_index_ratio}"
            )
        if not isinstance(getattr(logging, self.log_level.upper(), None), int):
            raise ConfigurationError(f"Unknown log level: {self.log_level}")

    @property
    def logging_level(self) -> int:
        return getattr(logging, self.log_level.upper())


def _read_config_file(path: str) -> dict:
    """Load a JSON or YAML config file (format chosen by extension)."""
    if not os.path.exists(path):
        raise ConfigurationError(f"Config file not found: {path}")

    with open(path, 'r', encoding='utf-8') as fp:
        if path.endswith(('.yaml', '.yml')):
            conf = yaml.safe_load(fp) or {}
        else:
            conf = json.load(fp)

    if not isinstance(conf, dict):
        raise ConfigurationError(
            f"Config file {path} must contain a mapping at the top level"
        )
    return conf


def load_config(path: Optional[str] = None, env=None) -> MigratorConfig:
    """
    Build a MigratorConfig from a file and environment overrides.

    Args:
        path: JSON/YAML config file (optional)
        env: Environment mapping (defaults to os.environ)

    Returns:
        MigratorConfig

    Raises:
        ConfigurationError: On unknown keys, bad values or missing file
    """
    env = os.environ if env is None else env
    conf = _read_config_file(path) if path else {}

    known = {f.name for f in fields(MigratorConfig)}
    unknown = sorted(set(conf) - known)
    if unknown:
        raise ConfigurationError(
            f"Unknown configuration keys: {', '.join(unknown)}"
        )

    for suffix, (name, cast) in ENV_OVERRIDES.items():
        raw = env.get(ENV_PREFIX + suffix)
        if raw is None or raw == '':
            continue
        try:
            conf[name] = cast(raw)
        except ValueError:
            raise ConfigurationError(
                f"{ENV_PREFIX + suffix} must be {cast.__name__}, got {raw!r}"
            )

    try:
        return MigratorConfig(**conf)
    except TypeError as e:
        raise ConfigurationError(f"Invalid configuration: {e}")


def normalize_database_url(database_url: str) -> str:
    """
    Convert SQLite file paths to SQLAlchemy async URLs.

    Args:
        database_url: SQLAlchemy URL, ':memory:' or a file path

    Returns:
        URL usable with create_async_engine

    Example:
        >>> normalize_database_url(':memory:')
        'sqlite+aiosqlite:///:memory:'
    """
    if database_url.startswith(('sqlite+', 'postgresql+', 'mysql+')):
        return database_url

    if database_url == ':memory:':
        return 'sqlite+aiosqlite:///:memory:'

    # Convert file path to URL (works for relative and absolute paths)
    path_obj = pathlib.Path(database_url)
    if not path_obj.is_absolute():
        path_obj = path_obj.resolve()
    path_str = path_obj.as_posix()
    encoded_path = urllib.parse.quote(path_str, safe='/:')
    return f'sqlite+aiosqlite:///{encoded_path}'


def configure_logger(logger,
                     log_file=None,
                     log_format=None,
                     log_level=logging.INFO):
    """Configure a logger with a file or stream handler

    Args:
        logger: Logger instance or logger name string
        log_file: File path string or file-like object (None for stderr)
        log_format: Format string for log messages
        log_level: Logging level (e.g., logging.INFO, logging.DEBUG)

    Returns:
        Configured logger instance
    """
    if isinstance(log_file, str):
        handler = logging.FileHandler(
            log_file,
            mode='a',
            encoding='utf-8',
            errors='replace'
        )
    else:
        handler = logging.StreamHandler(log_file)  # Default to stderr if None

    handler.setFormatter(logging.Formatter(log_format or DEFAULT_LOG_FORMAT))

    if isinstance(logger, str):
        logger = logging.getLogger(logger)

    # Reconfiguring replaces the previous handler instead of stacking
    for old_handler in list(logger.handlers):
        logger.removeHandler(old_handler)
        old_handler.close()

    logger.addHandler(handler)
    logger.setLevel(log_level)

    return logger
