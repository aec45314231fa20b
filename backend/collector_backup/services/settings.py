from __future__ import annotations

import logging
from datetime import datetime
from typing import Any, Mapping, Optional, Tuple

from pydantic import ValidationError
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from collector_backup.cloud import test_cloud_connection
from collector_backup.cloud.base import ConnectionTestResult
from collector_backup.cloud.configs import settings_values
from collector_backup.core.errors import ConfigurationError
from collector_backup.domain.enums import CloudProvider
from collector_backup.models.settings import SETTINGS_ROW_ID, Settings as SettingsModel
from collector_backup.schemas.settings import SECRET_FIELDS, SECRET_MASK, BackupSettings


logger = logging.getLogger(__name__)


def _get_or_create_settings(db: Session) -> SettingsModel:
    """Get the singleton settings row, creating it if needed."""
    settings = db.query(SettingsModel).filter(SettingsModel.id == SETTINGS_ROW_ID).first()
    if settings is None:
        settings = SettingsModel(id=SETTINGS_ROW_ID)
        db.add(settings)
        db.commit()
        db.refresh(settings)
    return settings


def load_backup_settings(db: Session) -> Optional[BackupSettings]:
    """Stored settings, or None when absent or unreadable.

    Never raises: callers treat None as "automatic backups off, cloud disabled".
    """
    try:
        row = db.query(SettingsModel).filter(SettingsModel.id == SETTINGS_ROW_ID).first()
    except SQLAlchemyError as exc:
        logger.warning("settings_load_failed | error=%s", exc)
        return None
    if row is None or not row.backup_settings_json:
        return None
    try:
        return BackupSettings.model_validate_json(row.backup_settings_json)
    except ValidationError as exc:
        logger.warning("settings_invalid | errors=%s", exc.error_count())
        return None


class SettingsService:
    """Read and write the backup settings document of the singleton row."""

    def __init__(self, db: Session) -> None:
        self.db = db

    def get(self) -> Tuple[BackupSettings, Optional[datetime]]:
        row = _get_or_create_settings(self.db)
        stored = load_backup_settings(self.db)
        return stored or BackupSettings(), row.updated_at

    def update(self, payload: BackupSettings) -> Tuple[BackupSettings, Optional[datetime]]:
        """Replace the settings document; masked secrets keep their stored value."""
        row = _get_or_create_settings(self.db)
        current = load_backup_settings(self.db) or BackupSettings()
        data = payload.model_dump(mode="json")
        for name in SECRET_FIELDS:
            if data.get(name) == SECRET_MASK:
                data[name] = getattr(current, name)
        updated = BackupSettings.model_validate(data)
        row.backup_settings_json = updated.model_dump_json()
        self.db.add(row)
        self.db.commit()
        self.db.refresh(row)
        logger.info(
            "settings_updated | automatic_backups=%s frequency=%s cloud_enabled=%s provider=%s",
            updated.automatic_backups,
            updated.backup_frequency.value,
            updated.cloud_storage_enabled,
            updated.cloud_provider.value,
        )
        return updated, row.updated_at

    def test_connection(self, provider: Any, overrides: Mapping[str, Any]) -> ConnectionTestResult:
        """Probe `provider` with `overrides` layered over the stored credentials."""
        current = load_backup_settings(self.db) or BackupSettings()
        data = current.model_dump(mode="json")
        for key, value in overrides.items():
            if key in data and value not in (None, SECRET_MASK):
                data[key] = value
        try:
            merged = BackupSettings.model_validate(data)
            kind = CloudProvider(provider)
        except (ValidationError, ValueError) as exc:
            error = ConfigurationError(f"Invalid connection test request: {exc}", user_supplied=True)
            return ConnectionTestResult(success=False, error=error.message, error_kind=error.kind)
        return test_cloud_connection(kind, settings_values(merged, kind))
