from __future__ import annotations

from sqlalchemy import BigInteger, Column, DateTime, Integer, String

from collector_backup.core.db import Base
from .common import _new_id, _utcnow


class Backup(Base):
    """One physical backup artifact.

    `location` is an absolute local path, or the remote URL once uploaded.
    """

    __tablename__ = "backups"

    id = Column(String(32), primary_key=True, default=_new_id)
    filename = Column(String(255), nullable=False, unique=True, index=True)
    size_bytes = Column(BigInteger, nullable=False, default=0)
    # NULL when the live database could not be counted before the dump
    item_count = Column(Integer, nullable=True)
    location = Column(String(1000), nullable=False)
    type = Column(String(20), nullable=False, index=True)  # "manual", "scheduled", "safety"
    created_at = Column(DateTime(timezone=True), nullable=False, default=_utcnow, index=True)

    def __repr__(self) -> str:
        return f"<Backup(id={self.id}, filename='{self.filename}', type='{self.type}')>"
