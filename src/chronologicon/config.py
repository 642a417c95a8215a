"""
Configuration management for Chronologicon.

Handles data directory resolution, environment detection, database path
selection and the tunable ingestion/analysis settings, all driven by
environment variables.
"""

from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path

from chronologicon.constants import (
    DATA_DIR_NAME,
    DATABASE_DIR_NAME,
    DATABASE_FILE_NAME,
    DEFAULT_BATCH_SIZE,
    DEFAULT_MAX_PATH_HOPS,
    ENV_BATCH_SIZE,
    ENV_COUNT_LINES,
    ENV_DATA_DIR,
    ENV_DATABASE,
    ENV_DEV_MODE,
    ENV_LOG_LEVEL,
    ENV_MAX_PATH_HOPS,
    IN_MEMORY_DATABASE,
    INCOMING_DIR_NAME,
    TRUTHY_VALUES,
)
from chronologicon.logger import get_logger

config_logger = get_logger("chronologicon.config")


@dataclass(frozen=True)
class Settings:
    """Runtime settings resolved from the environment."""

    database_path: str
    batch_size: int = DEFAULT_BATCH_SIZE
    max_path_hops: int = DEFAULT_MAX_PATH_HOPS
    count_lines_upfront: bool = True
    log_level: str = "INFO"


def get_data_dir() -> Path:
    """
    Returns the data directory for the database and incoming files.

    Logic:
    - CHRONOLOGICON_DATA_DIR when set
    - Development mode: .chronologicon in repository root
    - Production mode: ~/.chronologicon

    Returns:
        Path: The data directory path
    """
    explicit = os.environ.get(ENV_DATA_DIR)
    if explicit:
        return Path(explicit).expanduser()

    if is_development_mode():
        return get_repository_root() / DATA_DIR_NAME

    return Path.home() / DATA_DIR_NAME


def is_development_mode() -> bool:
    """
    Check if running from a repository checkout rather than an installed package.

    Detection logic:
    1. CHRONOLOGICON_DEV_MODE environment variable override
    2. Repository root with pyproject.toml and src/chronologicon

    Returns:
        bool: True if in development mode, False if in production
    """
    env_dev_mode = os.environ.get(ENV_DEV_MODE)
    if env_dev_mode is not None:
        return env_dev_mode.lower() in TRUTHY_VALUES

    try:
        repo_root = get_repository_root()
    except RuntimeError:
        return False

    has_pyproject = (repo_root / "pyproject.toml").exists()
    has_src_dir = (repo_root / "src" / "chronologicon").exists()
    return has_pyproject and has_src_dir


def get_repository_root() -> Path:
    """
    Find the repository root by looking for .git directory or pyproject.toml.

    Returns:
        Path: Repository root directory

    Raises:
        RuntimeError: If repository root cannot be found
    """
    current = Path(__file__).resolve()

    for parent in [current, *current.parents]:
        if (parent / ".git").exists() or (parent / "pyproject.toml").exists():
            return parent

    cwd = Path.cwd()
    if (cwd / ".git").exists() or (cwd / "pyproject.toml").exists():
        return cwd

    msg = "Could not find repository root (no .git or pyproject.toml found)"
    raise RuntimeError(msg)


def get_database_path() -> str:
    """
    Get the DuckDB database location.

    Returns:
        str: File path, or ':memory:' when configured for an in-memory store
    """
    explicit = os.environ.get(ENV_DATABASE)
    if explicit:
        return explicit
    return str(get_data_dir() / DATABASE_DIR_NAME / DATABASE_FILE_NAME)


def get_incoming_dir() -> Path:
    """Directory watched for dropped ingestion files."""
    return get_data_dir() / INCOMING_DIR_NAME


def ensure_directory_structure() -> None:
    """
    Ensure all necessary directories exist.

    Creates:
    - Main data directory (.chronologicon)
    - Database directory
    - Incoming drop directory
    """
    data_dir = get_data_dir()

    for directory in [
        data_dir,
        data_dir / DATABASE_DIR_NAME,
        data_dir / INCOMING_DIR_NAME,
    ]:
        directory.mkdir(parents=True, exist_ok=True)


def _int_from_env(name: str, default: int) -> int:
    raw = os.environ.get(name)
    if raw is None or not raw.strip():
        return default
    try:
        return int(raw)
    except ValueError:
        config_logger.warning(f"Ignoring non-integer {name}={raw!r}, using {default}")
        return default


def load_settings() -> Settings:
    """Resolve settings from the environment."""
    count_lines = os.environ.get(ENV_COUNT_LINES)
    settings = Settings(
        database_path=get_database_path(),
        batch_size=_int_from_env(ENV_BATCH_SIZE, DEFAULT_BATCH_SIZE),
        max_path_hops=_int_from_env(ENV_MAX_PATH_HOPS, DEFAULT_MAX_PATH_HOPS),
        count_lines_upfront=(
            True if count_lines is None else count_lines.lower() in TRUTHY_VALUES
        ),
        log_level=os.environ.get(ENV_LOG_LEVEL, "INFO").upper(),
    )
    config_logger.config(
        f"Settings: database={settings.database_path}, batch_size={settings.batch_size}, "
        f"max_path_hops={settings.max_path_hops}"
    )
    return settings


def is_in_memory(database_path: str | Path) -> bool:
    return str(database_path) == IN_MEMORY_DATABASE
