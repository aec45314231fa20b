"""Schemas for backup settings (schedule, retention, cloud provider credentials)."""

from __future__ import annotations

from typing import Optional
from datetime import datetime

from pydantic import BaseModel, Field, ConfigDict

from collector_backup.domain.enums import BackupFrequency, CloudProvider


SECRET_FIELDS = (
    "s3_secret_access_key",
    "r2_secret_access_key",
    "dropbox_access_token",
)
SECRET_MASK = "********"


class BackupSettings(BaseModel):
    """Backup settings document stored in the singleton settings row."""

    model_config = ConfigDict(use_enum_values=False, extra="ignore")

    automatic_backups: bool = Field(default=False, description="Run backups on the schedule")
    backup_frequency: BackupFrequency = Field(default=BackupFrequency.WEEKLY)
    backup_retention: int = Field(default=5, ge=1, description="How many scheduled backups to keep")
    cloud_storage_enabled: bool = Field(default=False)
    cloud_provider: CloudProvider = Field(default=CloudProvider.NONE)

    s3_bucket: Optional[str] = None
    s3_region: Optional[str] = None
    s3_access_key_id: Optional[str] = None
    s3_secret_access_key: Optional[str] = None

    r2_account_id: Optional[str] = None
    r2_access_key_id: Optional[str] = None
    r2_secret_access_key: Optional[str] = None
    r2_bucket_name: Optional[str] = None

    dropbox_access_token: Optional[str] = None

    @property
    def cloud_active(self) -> bool:
        return self.cloud_storage_enabled and self.cloud_provider != CloudProvider.NONE

    def masked(self) -> "BackupSettings":
        data = self.model_dump()
        for name in SECRET_FIELDS:
            if data.get(name):
                data[name] = SECRET_MASK
        return BackupSettings(**data)


class BackupSettingsResponse(BaseModel):
    settings: BackupSettings
    updated_at: Optional[datetime] = None


class ConnectionTestRequest(BaseModel):
    """Credentials to probe; omitted fields fall back to the stored settings."""

    model_config = ConfigDict(extra="allow")

    provider: CloudProvider = Field(..., description="Provider to test: s3, r2 or dropbox")


class ConnectionTestResponse(BaseModel):
    success: bool
    message: Optional[str] = None
    error: Optional[str] = None
    error_kind: Optional[str] = None
    missing_fields: list[str] = Field(default_factory=list)
