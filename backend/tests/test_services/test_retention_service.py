"""Tests for retention service: candidate selection and cleanup."""

from __future__ import annotations

from datetime import datetime, timedelta, timezone
from pathlib import Path

from sqlalchemy.orm import Session

from collector_backup.domain.enums import BackupType
from collector_backup.models import Backup
from collector_backup.services.retention import RetentionService, apply_retention


NOW = datetime(2024, 6, 15, 12, 0, tzinfo=timezone.utc)


def _create_backup(
    db: Session,
    name: str,
    age: timedelta,
    backup_type: BackupType = BackupType.SCHEDULED,
    directory: Path | None = None,
    location: str | None = None,
) -> Backup:
    """Create a backup record, with a real file when `directory` is given."""
    if location is None:
        path = (directory or Path("/nonexistent")) / name
        if directory is not None:
            path.write_text("-- dump")
        location = str(path)
    record = Backup(
        filename=name,
        size_bytes=7,
        item_count=1,
        location=location,
        type=backup_type.value,
        created_at=NOW - age,
    )
    db.add(record)
    db.commit()
    db.refresh(record)
    return record


class TestApplyRetention:
    """Tests for apply_retention with actual file deletion."""

    def test_keeps_newest_scheduled_backups(self, db_session: Session, tmp_path: Path):
        for days in range(1, 6):
            _create_backup(db_session, f"scheduled-{days}.sql", timedelta(days=days), directory=tmp_path)

        result = apply_retention(db_session, keep=3)

        assert sorted(result["deleted"]) == ["scheduled-4.sql", "scheduled-5.sql"]
        assert result["errors"] == []
        remaining = sorted(b.filename for b in db_session.query(Backup).all())
        assert remaining == ["scheduled-1.sql", "scheduled-2.sql", "scheduled-3.sql"]
        assert not (tmp_path / "scheduled-5.sql").exists()
        assert (tmp_path / "scheduled-1.sql").exists()

    def test_manual_and_safety_backups_are_never_pruned(self, db_session: Session, tmp_path: Path):
        _create_backup(db_session, "manual-old.sql", timedelta(days=90), BackupType.MANUAL, tmp_path)
        _create_backup(db_session, "safety-old.sql", timedelta(days=90), BackupType.SAFETY, tmp_path)
        _create_backup(db_session, "scheduled-new.sql", timedelta(days=1), directory=tmp_path)
        _create_backup(db_session, "scheduled-old.sql", timedelta(days=2), directory=tmp_path)

        result = apply_retention(db_session, keep=1)

        assert result["deleted"] == ["scheduled-old.sql"]
        assert (tmp_path / "manual-old.sql").exists()
        assert (tmp_path / "safety-old.sql").exists()

    def test_remote_records_are_removed_without_touching_the_bucket(self, db_session: Session):
        _create_backup(db_session, "new.sql", timedelta(days=1), location="dropbox:/backups/new.sql")
        _create_backup(db_session, "old.sql", timedelta(days=2), location="s3://bucket/backups/old.sql")

        result = apply_retention(db_session, keep=1)

        assert result == {"deleted": ["old.sql"], "errors": []}
        assert db_session.query(Backup).count() == 1

    def test_missing_local_file_is_not_an_error(self, db_session: Session):
        _create_backup(db_session, "new.sql", timedelta(days=1))
        _create_backup(db_session, "gone.sql", timedelta(days=2))

        result = apply_retention(db_session, keep=1)

        assert result == {"deleted": ["gone.sql"], "errors": []}

    def test_dry_run_does_not_delete(self, db_session: Session, tmp_path: Path):
        _create_backup(db_session, "new.sql", timedelta(days=1), directory=tmp_path)
        _create_backup(db_session, "old.sql", timedelta(days=2), directory=tmp_path)

        result = apply_retention(db_session, keep=1, dry_run=True)

        assert result["deleted"] == ["old.sql"]
        assert db_session.query(Backup).count() == 2
        assert (tmp_path / "old.sql").exists()


class TestRetentionService:
    """Tests for RetentionService class."""

    def test_preview_returns_dry_run_result(self, db_session: Session, tmp_path: Path):
        _create_backup(db_session, "new.sql", timedelta(days=1), directory=tmp_path)
        _create_backup(db_session, "old.sql", timedelta(days=2), directory=tmp_path)
        svc = RetentionService(db_session)

        assert svc.preview(1)["deleted"] == ["old.sql"]
        assert db_session.query(Backup).count() == 2

        assert svc.apply(1)["deleted"] == ["old.sql"]
        assert db_session.query(Backup).count() == 1
