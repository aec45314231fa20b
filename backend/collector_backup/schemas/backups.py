"""Schemas for backup records and the backup / restore use cases."""

from datetime import datetime
from typing import Any, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field

from collector_backup.domain.enums import BackupType


SortField = Literal["id", "filename", "size_bytes", "item_count", "location", "type", "created_at"]


class Backup(BaseModel):
    """One backup record."""

    model_config = ConfigDict(from_attributes=True)

    id: str
    filename: str
    size_bytes: int = Field(..., description="Size of the dump file in bytes")
    item_count: Optional[int] = Field(None, description="Domain row count captured before the dump; null when unknown")
    location: str = Field(..., description="Absolute local path or remote URL")
    type: BackupType
    created_at: datetime


class Pagination(BaseModel):
    page: int
    limit: int
    total_count: int
    total_pages: int
    has_next_page: bool
    has_previous_page: bool


class BackupList(BaseModel):
    backups: list[Backup]
    pagination: Pagination


class CloudUpload(BaseModel):
    success: bool
    url: Optional[str] = None
    error: Optional[str] = None
    error_kind: Optional[str] = None


class CreateBackupResponse(BaseModel):
    success: bool = True
    backup: Backup
    cloud_upload: Optional[CloudUpload] = None


class UploadBackupResponse(BaseModel):
    success: bool
    backup: Backup
    cloud_upload: CloudUpload


class RestoreResponse(BaseModel):
    """Outcome of one restore attempt; failures carry the safety backup."""

    success: bool
    backup_id: str
    step: str = Field(..., description="Final state: done or failed")
    safety_backup: Optional[str] = Field(None, description="Filename of the pre-restore safety backup")
    safety_backup_id: Optional[str] = None
    failed_step: Optional[str] = None
    error: Optional[str] = None
    error_kind: Optional[str] = None
    destructive: bool = Field(False, description="Whether the schema reset was reached")
    original_item_count: Optional[int] = None
    restored_item_count: Optional[int] = None
    warnings: list[dict[str, Any]] = Field(default_factory=list)
