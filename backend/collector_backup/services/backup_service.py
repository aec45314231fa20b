"""Create-backup use case and artifact housekeeping.

`create_backup` composes the dump engine, the record store and the cloud
adapter. The dump and the record are fatal; the upload is not: a failed upload
is reported in the result while the record keeps pointing at the local file.
"""

from __future__ import annotations

import asyncio
import logging
import uuid
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Awaitable, Callable, Mapping, Optional, Tuple

import asyncpg
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from collector_backup.cloud import is_remote_location, storage_for_location, upload_to_cloud
from collector_backup.cloud.base import CloudStorage, UploadResult
from collector_backup.cloud.configs import cloud_config_from_settings, settings_values
from collector_backup.core import config
from collector_backup.core.errors import ConfigurationError, NotFoundError
from collector_backup.core.locks import database_lock
from collector_backup.core.logging import log_event
from collector_backup.core.pgtools import DumpEngine, count_items, parse_connection_url
from collector_backup.core.runner import run_sync
from collector_backup.domain.enums import BackupType
from collector_backup.models import Backup
from collector_backup.schemas.settings import BackupSettings
from collector_backup.services.backup_store import BackupRecordStore, backup_filename
from collector_backup.services.settings import load_backup_settings


logger = logging.getLogger(__name__)

ItemCounter = Callable[[str], Awaitable[int]]
Uploader = Callable[[Any, Path, str, Mapping[str, Any]], UploadResult]
StorageResolver = Callable[[str, BackupSettings], CloudStorage]

TMP_DIRNAME = "tmp"


@dataclass
class CreateBackupResult:
    success: bool
    backup: Backup
    cloud_upload: Optional[UploadResult] = None


def materialize_artifact(
    record: Backup,
    settings: Optional[BackupSettings],
    *,
    tmp_dir: Path,
    resolver: StorageResolver = storage_for_location,
) -> Tuple[Path, bool]:
    """Ensure the bytes of `record` are on local disk.

    Returns `(path, is_temporary)`; temporary files belong to the caller.
    Raises NotFoundError when the file is missing locally or the fetch leaves
    nothing behind, ConfigurationError when a remote location has no usable
    credentials, and TransportError / ProviderError from the fetch itself.
    """
    if not is_remote_location(record.location):
        path = Path(record.location)
        if not path.is_file():
            raise NotFoundError(f"Backup file not found on disk: {path}")
        return path, False

    if settings is None:
        raise ConfigurationError("Cloud credentials are not configured; cannot fetch remote backup")
    storage = resolver(record.location, settings)
    tmp_dir.mkdir(parents=True, exist_ok=True)
    destination = tmp_dir / f"{uuid.uuid4().hex}-{record.filename}"
    log_event(logger, "artifact_fetch_start", backup_id=record.id, location=record.location)
    try:
        storage.download(record.location, destination)
    except Exception:
        destination.unlink(missing_ok=True)
        raise
    if not destination.is_file() or destination.stat().st_size == 0:
        destination.unlink(missing_ok=True)
        raise NotFoundError(f"Remote backup could not be fetched: {record.location}")
    log_event(logger, "artifact_fetch_done", backup_id=record.id, bytes=destination.stat().st_size)
    return destination, True


class BackupService:
    """Backup lifecycle: create, upload, delete and open artifacts.

    Collaborators default to the real ones and are injectable for tests.
    """

    def __init__(
        self,
        db: Session,
        *,
        connection_url: Optional[str] = None,
        backup_dir: Optional[Path] = None,
        dump_engine: Optional[DumpEngine] = None,
        item_counter: Optional[ItemCounter] = None,
        uploader: Optional[Uploader] = None,
        storage_resolver: Optional[StorageResolver] = None,
        clock: Optional[Callable[[], datetime]] = None,
    ) -> None:
        self.db = db
        self.store = BackupRecordStore(db)
        self._connection_url = connection_url
        self.backup_dir = Path(backup_dir) if backup_dir is not None else config.get_backup_dir()
        self.dump_engine = dump_engine or DumpEngine()
        self._item_counter = item_counter or count_items
        self._uploader = uploader or upload_to_cloud
        self.storage_resolver = storage_resolver or storage_for_location
        self._clock = clock or (lambda: datetime.now(timezone.utc))

    @property
    def tmp_dir(self) -> Path:
        return self.backup_dir / TMP_DIRNAME

    def connection_url(self) -> str:
        return self._connection_url or config.get_postgres_url()

    def lock_key(self) -> str:
        return parse_connection_url(self.connection_url()).identity

    def count_items(self, connection_url: str) -> Optional[int]:
        """Domain row count, or None when the database cannot be counted."""
        try:
            return int(run_sync(lambda: self._item_counter(connection_url)))
        except (asyncpg.PostgresError, asyncpg.InterfaceError, OSError, asyncio.TimeoutError) as exc:
            logger.warning("item_count_failed | error=%s", exc)
            return None

    def capture(self, connection_url: str, backup_type: BackupType) -> Backup:
        """Dump the live database and persist its record.

        The caller holds the database lock. Nothing is persisted when the
        dump fails; a record that cannot be written removes its dump file.
        """
        captured_at = self._clock()
        filename = backup_filename(captured_at, safety=backup_type == BackupType.SAFETY)
        destination = self.backup_dir / filename
        item_count = self.count_items(connection_url)
        log_event(logger, "backup_capture_start", type=backup_type.value, filename=filename, item_count=item_count)

        dump = run_sync(lambda: self.dump_engine.dump(connection_url, destination))

        try:
            record = self.store.create(
                filename=filename,
                size_bytes=dump.size_bytes,
                item_count=item_count,
                location=str(destination.resolve()),
                backup_type=backup_type,
                created_at=captured_at,
            )
        except SQLAlchemyError:
            logger.exception("backup_record_persist_failed | filename=%s", filename)
            destination.unlink(missing_ok=True)
            raise
        log_event(
            logger,
            "backup_capture_done",
            backup_id=record.id,
            type=record.type,
            size_bytes=record.size_bytes,
        )
        return record

    def _upload(self, settings: BackupSettings, record: Backup) -> Tuple[Backup, UploadResult]:
        provider = settings.cloud_provider
        result = self._uploader(
            provider,
            Path(record.location),
            record.filename,
            settings_values(settings, provider),
        )
        if result.success and result.url:
            record = self.store.update(record.id, location=result.url)
            log_event(logger, "backup_uploaded", backup_id=record.id, provider=provider.value, url=result.url)
        else:
            log_event(
                logger,
                "backup_upload_failed",
                level=logging.WARNING,
                backup_id=record.id,
                provider=provider.value,
                error_kind=result.error_kind,
                error=result.error,
            )
        return record, result

    def create_backup(self, backup_type: BackupType = BackupType.MANUAL) -> CreateBackupResult:
        """Dump, persist and (when enabled) upload one backup.

        Raises ConfigurationError, DumpError or OperationInProgressError; an
        upload failure is returned in `cloud_upload`, never raised.
        """
        backup_type = BackupType(backup_type)
        if backup_type == BackupType.SAFETY:
            raise ValueError("Safety backups are only taken by a restore")
        url = self.connection_url()

        with database_lock(self.lock_key(), f"{backup_type.value} backup"):
            record = self.capture(url, backup_type)

        settings = load_backup_settings(self.db)
        cloud_upload: Optional[UploadResult] = None
        if settings is not None and settings.cloud_active:
            try:
                record, cloud_upload = self._upload(settings, record)
            except Exception as exc:
                # The backup is already persisted; the upload outcome is only reported
                logger.exception("backup_upload_crashed | backup_id=%s", record.id)
                cloud_upload = UploadResult(success=False, error=f"Upload failed: {exc}", error_kind="transport")
        return CreateBackupResult(success=True, backup=record, cloud_upload=cloud_upload)

    def upload_backup(self, backup_id: str) -> Tuple[Backup, UploadResult]:
        """Upload an existing local backup to the configured provider."""
        record = self.store.get_or_raise(backup_id)
        if is_remote_location(record.location):
            raise ConfigurationError("Backup is already stored in the cloud", user_supplied=True)
        if not Path(record.location).is_file():
            raise NotFoundError(f"Backup file not found on disk: {record.location}")
        settings = load_backup_settings(self.db)
        if settings is None or not settings.cloud_active:
            raise ConfigurationError("Cloud storage is not enabled", user_supplied=True)
        # Surface missing credentials as a configuration error before any I/O
        cloud_config_from_settings(settings)
        return self._upload(settings, record)

    def delete_backup(self, backup_id: str) -> bool:
        """Delete the record and its local file; remote objects are kept."""
        record = self.store.get_or_raise(backup_id)
        if not is_remote_location(record.location):
            path = Path(record.location)
            try:
                path.unlink(missing_ok=True)
            except OSError as exc:
                logger.warning("backup_file_delete_failed | path=%s error=%s", path, exc)
        return self.store.delete(record.id)

    def open_artifact(self, backup_id: str) -> Tuple[Backup, Path, bool]:
        """Local path of a backup for download, fetching remote ones first."""
        record = self.store.get_or_raise(backup_id)
        path, is_temporary = materialize_artifact(
            record,
            load_backup_settings(self.db),
            tmp_dir=self.tmp_dir,
            resolver=self.storage_resolver,
        )
        return record, path, is_temporary
