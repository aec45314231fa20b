"""Environment-driven configuration, read at call time.

Variables:
- POSTGRES_URL (required for dump/restore): live collection database
- DATABASE_URL (optional): SQLAlchemy URL of the metadata store; defaults to a
  SQLite file inside BACKUP_DIR so records survive a schema reset of the live DB
- BACKUP_DIR (optional; default ./backups)
- PG_DUMP_PATH / PSQL_PATH (optional; default pg_dump / psql)
- BACKUP_COMMAND_TIMEOUT (optional; seconds, default 3600)
- BACKUP_MAX_OUTPUT_BYTES (optional; default 10 MiB)
- ITEM_COUNT_TABLE (optional; default "Item")
- BACKUP_SCHEDULER_CRON (optional; default hourly "0 * * * *")
- BACKUP_SCHEDULER_AUTOSTART (optional; default "true")
"""

from __future__ import annotations

import os
from pathlib import Path

from collector_backup.core.errors import ConfigurationError

DEFAULT_COMMAND_TIMEOUT = 3600.0
DEFAULT_MAX_OUTPUT_BYTES = 10 * 1024 * 1024
DEFAULT_SCHEDULER_CRON = "0 * * * *"
METADATA_DB_FILENAME = "collector_backup.db"


def _get_bool(env_value: str | None, default: bool) -> bool:
    if env_value is None:
        return default
    return env_value.strip().lower() in {"1", "true", "yes", "on"}


def get_postgres_url() -> str:
    url = os.getenv("POSTGRES_URL", "").strip()
    if not url:
        raise ConfigurationError("POSTGRES_URL environment variable not set")
    return url


def get_backup_dir() -> Path:
    return Path(os.getenv("BACKUP_DIR", "backups")).resolve()


def get_metadata_db_url() -> str:
    url = os.getenv("DATABASE_URL", "").strip()
    if url:
        return url
    return f"sqlite:///{get_backup_dir() / METADATA_DB_FILENAME}"


def get_pg_dump_path() -> str:
    return os.getenv("PG_DUMP_PATH", "pg_dump")


def get_psql_path() -> str:
    return os.getenv("PSQL_PATH", "psql")


def get_command_timeout() -> float:
    raw = os.getenv("BACKUP_COMMAND_TIMEOUT", "").strip()
    if not raw:
        return DEFAULT_COMMAND_TIMEOUT
    try:
        value = float(raw)
    except ValueError as exc:
        raise ConfigurationError(f"Invalid BACKUP_COMMAND_TIMEOUT: {raw!r}") from exc
    if value <= 0:
        raise ConfigurationError("BACKUP_COMMAND_TIMEOUT must be positive")
    return value


def get_max_output_bytes() -> int:
    raw = os.getenv("BACKUP_MAX_OUTPUT_BYTES", "").strip()
    if not raw:
        return DEFAULT_MAX_OUTPUT_BYTES
    try:
        return int(raw)
    except ValueError as exc:
        raise ConfigurationError(f"Invalid BACKUP_MAX_OUTPUT_BYTES: {raw!r}") from exc


def get_item_count_table() -> str:
    return os.getenv("ITEM_COUNT_TABLE", "Item")


def get_scheduler_cron() -> str:
    return os.getenv("BACKUP_SCHEDULER_CRON", DEFAULT_SCHEDULER_CRON)


def scheduler_autostart() -> bool:
    return _get_bool(os.getenv("BACKUP_SCHEDULER_AUTOSTART"), True)
