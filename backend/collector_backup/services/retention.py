"""Retention service: prune scheduled backups beyond the configured count.

Only records of type `scheduled` are candidates. Manual backups are operator
owned and safety backups are recovery points, so neither is ever pruned here.
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Any, Dict, List

from sqlalchemy.orm import Session

from collector_backup.cloud import is_remote_location
from collector_backup.services.backup_store import BackupRecordStore


logger = logging.getLogger(__name__)


def _delete_artifact(location: str) -> bool:
    """Delete a local artifact file.

    Returns True if deletion was successful or the file didn't exist.
    """
    path = Path(location)
    if not path.exists():
        return True
    try:
        path.unlink()
        logger.info("retention_artifact_deleted | path=%s", path)
    except OSError as exc:
        logger.error("retention_artifact_delete_failed | path=%s error=%s", path, exc)
        return False
    return True


def apply_retention(db: Session, keep: int, dry_run: bool = False) -> Dict[str, Any]:
    """Delete scheduled backups older than the newest `keep`.

    Remote artifacts are left in the bucket; their records are removed.

    Returns:
        {
            "deleted": List[str],   # filenames of removed records
            "errors": List[str],    # locations whose local file could not be removed
        }
    """
    store = BackupRecordStore(db)
    candidates = store.scheduled_beyond(keep)
    deleted: List[str] = []
    errors: List[str] = []

    if dry_run:
        return {"deleted": [b.filename for b in candidates], "errors": []}

    for record in candidates:
        if not is_remote_location(record.location) and not _delete_artifact(record.location):
            errors.append(record.location)
        store.delete(record.id)
        deleted.append(record.filename)

    logger.info("retention_applied | keep=%s deleted=%s errors=%s", keep, len(deleted), len(errors))
    return {"deleted": deleted, "errors": errors}


class RetentionService:
    """Service class for retention operations."""

    def __init__(self, db: Session) -> None:
        self.db = db

    def apply(self, keep: int) -> Dict[str, Any]:
        return apply_retention(self.db, keep)

    def preview(self, keep: int) -> Dict[str, Any]:
        """Preview what retention would delete (dry run)."""
        return apply_retention(self.db, keep, dry_run=True)
