"""Pydantic schemas package.

Public re-exports keep import paths short for the routers.
"""

from .backups import (
    Backup,
    BackupList,
    CloudUpload,
    CreateBackupResponse,
    Pagination,
    RestoreResponse,
    SortField,
    UploadBackupResponse,
)  # noqa: F401
from .scheduler import (
    ScheduleLogEntry,
    SchedulerAction,
    SchedulerActionResponse,
    SchedulerStatus,
)  # noqa: F401
from .settings import (
    BackupSettings,
    BackupSettingsResponse,
    ConnectionTestRequest,
    ConnectionTestResponse,
)  # noqa: F401
