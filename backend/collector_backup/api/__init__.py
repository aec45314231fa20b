"""API package exports for routers."""

from . import health, backups, scheduler, settings  # noqa: F401
