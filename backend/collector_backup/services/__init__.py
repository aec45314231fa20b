"""Service layer for backups, restores, retention and settings.

Exposes:
- BackupRecordStore
- BackupService
- RestoreService
- RetentionService
- SettingsService
"""

from .backup_store import BackupRecordStore
from .backup_service import BackupService, CreateBackupResult
from .restores import RestoreResult, RestoreService
from .retention import RetentionService
from .settings import SettingsService

__all__ = [
    "BackupRecordStore",
    "BackupService",
    "CreateBackupResult",
    "RestoreResult",
    "RestoreService",
    "RetentionService",
    "SettingsService",
]
