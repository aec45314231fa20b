from __future__ import annotations

from sqlalchemy import Column, DateTime, Integer, Text

from collector_backup.core.db import Base
from .common import _utcnow


SETTINGS_ROW_ID = 1


class Settings(Base):
    """Single row (id=1) holding the backup settings as a JSON document.

    The document is validated by `schemas.settings.BackupSettings` on every
    read; an unreadable document counts as absent.
    """

    __tablename__ = "settings"

    id = Column(Integer, primary_key=True, default=SETTINGS_ROW_ID)
    backup_settings_json = Column(Text, nullable=True)
    created_at = Column(DateTime(timezone=True), nullable=False, default=_utcnow)
    updated_at = Column(DateTime(timezone=True), nullable=False, default=_utcnow, onupdate=_utcnow)

    def __repr__(self) -> str:
        return f"<Settings(id={self.id}, configured={self.backup_settings_json is not None})>"
