from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Iterable, List, Optional, Tuple

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from collector_backup.core.errors import NotFoundError
from collector_backup.domain.enums import BackupType
from collector_backup.models import Backup


logger = logging.getLogger(__name__)

SORTABLE_FIELDS = ("id", "filename", "size_bytes", "item_count", "location", "type", "created_at")
_UPDATABLE_FIELDS = {"size_bytes", "item_count", "location"}


def ensure_utc(dt: datetime) -> datetime:
    """Timezone-aware UTC datetime; naive values (SQLite) are taken as UTC."""
    if dt.tzinfo is None:
        return dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc)


def backup_filename(captured_at: datetime, *, safety: bool = False) -> str:
    """`backup-<ts>.sql` / `backup-safety-<ts>.sql` with `:` and `.` replaced by `-`.

    The timestamp keeps milliseconds so two captures in the same second differ.
    """
    ts = ensure_utc(captured_at)
    stamp = ts.strftime("%Y-%m-%dT%H:%M:%S") + f".{ts.microsecond // 1000:03d}Z"
    stamp = stamp.replace(":", "-").replace(".", "-")
    prefix = "backup-safety-" if safety else "backup-"
    return f"{prefix}{stamp}.sql"


class BackupRecordStore:
    """Persistence boundary for backup metadata rows.

    Rules:
    - Records are written in their own commit so a record never exists for a
      dump that did not complete.
    - Only `location`, `size_bytes` and `item_count` are mutable after creation.
    """

    def __init__(self, db: Session) -> None:
        self.db = db

    def create(
        self,
        *,
        filename: str,
        size_bytes: int,
        item_count: Optional[int],
        location: str,
        backup_type: BackupType | str,
        created_at: Optional[datetime] = None,
    ) -> Backup:
        record = Backup(
            filename=filename,
            size_bytes=size_bytes,
            item_count=item_count,
            location=location,
            type=BackupType(backup_type).value,
            created_at=created_at or datetime.now(timezone.utc),
        )
        self.db.add(record)
        try:
            self.db.commit()
        except SQLAlchemyError:
            self.db.rollback()
            raise
        self.db.refresh(record)
        logger.info(
            "backup_record_created | id=%s filename=%s type=%s size_bytes=%s",
            record.id,
            record.filename,
            record.type,
            record.size_bytes,
        )
        return record

    def get(self, backup_id: str) -> Optional[Backup]:
        return self.db.get(Backup, backup_id)

    def get_or_raise(self, backup_id: str) -> Backup:
        record = self.get(backup_id)
        if record is None:
            raise NotFoundError(f"Backup not found: {backup_id}")
        return record

    def update(self, backup_id: str, **fields: object) -> Backup:
        unknown = set(fields) - _UPDATABLE_FIELDS
        if unknown:
            raise ValueError(f"Backup fields are not updatable: {', '.join(sorted(unknown))}")
        record = self.get_or_raise(backup_id)
        for key, value in fields.items():
            setattr(record, key, value)
        self.db.add(record)
        try:
            self.db.commit()
        except SQLAlchemyError:
            self.db.rollback()
            raise
        self.db.refresh(record)
        return record

    def delete(self, backup_id: str) -> bool:
        record = self.get(backup_id)
        if record is None:
            return False
        self.db.delete(record)
        self.db.commit()
        logger.info("backup_record_deleted | id=%s filename=%s", backup_id, record.filename)
        return True

    def list(
        self,
        *,
        page: int = 1,
        limit: int = 10,
        sort_by: str = "created_at",
        sort_order: str = "desc",
    ) -> Tuple[List[Backup], int]:
        """One page of records plus the total record count."""
        if sort_by not in SORTABLE_FIELDS:
            raise ValueError(f"Cannot sort backups by {sort_by!r}")
        column = getattr(Backup, sort_by)
        order = column.asc() if sort_order == "asc" else column.desc()
        query = self.db.query(Backup)
        total = query.count()
        # id as tiebreaker keeps pages stable for equal sort keys
        items = (
            query.order_by(order, Backup.id.asc())
            .offset((max(page, 1) - 1) * limit)
            .limit(limit)
            .all()
        )
        return list(items), total

    def latest(self, types: Iterable[BackupType | str]) -> Optional[Backup]:
        values = [BackupType(t).value for t in types]
        return (
            self.db.query(Backup)
            .filter(Backup.type.in_(values))
            .order_by(Backup.created_at.desc())
            .first()
        )

    def scheduled_beyond(self, keep: int) -> List[Backup]:
        """Scheduled records older than the newest `keep`, oldest last."""
        return list(
            self.db.query(Backup)
            .filter(Backup.type == BackupType.SCHEDULED.value)
            .order_by(Backup.created_at.desc(), Backup.id.desc())
            .offset(max(keep, 0))
            .all()
        )
