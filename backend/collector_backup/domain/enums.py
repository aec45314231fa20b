from __future__ import annotations

from enum import Enum


class BackupType(str, Enum):
    MANUAL = "manual"
    SCHEDULED = "scheduled"
    SAFETY = "safety"


class BackupFrequency(str, Enum):
    DAILY = "daily"
    WEEKLY = "weekly"
    MONTHLY = "monthly"


class CloudProvider(str, Enum):
    NONE = "none"
    S3 = "s3"
    R2 = "r2"
    DROPBOX = "dropbox"


class ScheduleOutcome(str, Enum):
    RAN = "ran"
    SKIPPED = "skipped"
    FAILED = "failed"


class RestoreStep(str, Enum):
    START = "start"
    SAFETY_BACKUP = "safety_backup"
    MATERIALIZE = "materialize"
    SCHEMA_RESET = "schema_reset"
    RESTORE = "restore"
    VERIFY = "verify"
    DONE = "done"
    FAILED = "failed"
