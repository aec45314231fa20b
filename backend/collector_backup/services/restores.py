"""Restore of a stored backup into the live database.

One attempt walks a fixed sequence of steps:

    START -> SAFETY_BACKUP -> MATERIALIZE -> SCHEMA_RESET -> RESTORE -> VERIFY -> DONE

A failing step ends the attempt in FAILED with `failed_step` set; no later
step runs. SCHEMA_RESET is the point of no return: it is only entered with a
present local file, and cancellation is honoured only before it. Once the
safety backup exists its filename is part of every result.
"""

from __future__ import annotations

import logging
import threading
from dataclasses import asdict, dataclass, field
from pathlib import Path
from typing import Callable, Dict, Optional

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from collector_backup.core.errors import BackupSystemError, NotFoundError, RestoreCancelled
from collector_backup.core.locks import database_lock
from collector_backup.core.logging import log_event
from collector_backup.core.pgtools import SqlRunner
from collector_backup.core.runner import run_sync
from collector_backup.domain.enums import BackupType, RestoreStep
from collector_backup.models import Backup
from collector_backup.services.backup_service import BackupService, materialize_artifact
from collector_backup.services.settings import load_backup_settings


logger = logging.getLogger(__name__)

_TRANSITIONS: Dict[RestoreStep, RestoreStep] = {
    RestoreStep.START: RestoreStep.SAFETY_BACKUP,
    RestoreStep.SAFETY_BACKUP: RestoreStep.MATERIALIZE,
    RestoreStep.MATERIALIZE: RestoreStep.SCHEMA_RESET,
    RestoreStep.SCHEMA_RESET: RestoreStep.RESTORE,
    RestoreStep.RESTORE: RestoreStep.VERIFY,
    RestoreStep.VERIFY: RestoreStep.DONE,
}
_TERMINAL = {RestoreStep.DONE, RestoreStep.FAILED}


def next_step(step: RestoreStep) -> RestoreStep:
    """Successor of a non-terminal step."""
    try:
        return _TRANSITIONS[step]
    except KeyError:
        raise ValueError(f"{step.value} is terminal") from None


@dataclass
class VerificationMismatch:
    """Row count after restore differs from the count recorded at capture."""

    expected: int
    actual: int
    kind: str = "verification_mismatch"

    @property
    def message(self) -> str:
        return f"Restored item count {self.actual} differs from backup item count {self.expected}"

    def to_dict(self) -> dict:
        return {**asdict(self), "message": self.message}


@dataclass
class RestoreResult:
    backup_id: str
    step: RestoreStep = RestoreStep.START
    safety_backup: Optional[str] = None
    safety_backup_id: Optional[str] = None
    failed_step: Optional[RestoreStep] = None
    error: Optional[str] = None
    error_kind: Optional[str] = None
    destructive: bool = False
    original_item_count: Optional[int] = None
    restored_item_count: Optional[int] = None
    warnings: list = field(default_factory=list)

    @property
    def success(self) -> bool:
        return self.step == RestoreStep.DONE

    def to_dict(self) -> dict:
        return {
            "success": self.success,
            "backup_id": self.backup_id,
            "step": self.step.value,
            "safety_backup": self.safety_backup,
            "safety_backup_id": self.safety_backup_id,
            "failed_step": self.failed_step.value if self.failed_step else None,
            "error": self.error,
            "error_kind": self.error_kind,
            "destructive": self.destructive,
            "original_item_count": self.original_item_count,
            "restored_item_count": self.restored_item_count,
            "warnings": list(self.warnings),
        }


@dataclass
class _Attempt:
    record: Backup
    connection_url: str
    result: RestoreResult
    local_path: Optional[Path] = None
    is_temporary: bool = False


class RestoreService:
    """Operator-triggered restore with a mandatory safety backup first."""

    def __init__(
        self,
        db: Session,
        *,
        backups: Optional[BackupService] = None,
        sql_runner: Optional[SqlRunner] = None,
    ) -> None:
        self.db = db
        self.backups = backups or BackupService(db)
        self.sql_runner = sql_runner or SqlRunner()
        self._handlers: Dict[RestoreStep, Callable[[_Attempt], None]] = {
            RestoreStep.SAFETY_BACKUP: self._safety_backup,
            RestoreStep.MATERIALIZE: self._materialize,
            RestoreStep.SCHEMA_RESET: self._schema_reset,
            RestoreStep.RESTORE: self._restore,
            RestoreStep.VERIFY: self._verify,
        }

    def restore(self, backup_id: str, *, cancel_event: Optional[threading.Event] = None) -> RestoreResult:
        """Run one restore attempt of `backup_id`.

        Raises NotFoundError for an unknown record, ConfigurationError for an
        unusable connection string and OperationInProgressError when another
        operation holds the database; every later failure is a FAILED result.
        """
        record = self.backups.store.get_or_raise(backup_id)
        url = self.backups.connection_url()

        with database_lock(self.backups.lock_key(), "restore"):
            attempt = _Attempt(
                record=record,
                connection_url=url,
                result=RestoreResult(backup_id=record.id, original_item_count=record.item_count),
            )
            log_event(logger, "restore_start", backup_id=record.id, filename=record.filename)
            try:
                self._run(attempt, cancel_event)
            finally:
                if attempt.is_temporary and attempt.local_path is not None:
                    attempt.local_path.unlink(missing_ok=True)
        return attempt.result

    def _run(self, attempt: _Attempt, cancel_event: Optional[threading.Event]) -> None:
        result = attempt.result
        while result.step not in _TERMINAL:
            step = next_step(result.step)
            if step == RestoreStep.DONE:
                result.step = step
                break
            if step == RestoreStep.SCHEMA_RESET and cancel_event is not None and cancel_event.is_set():
                self._fail(attempt, step, RestoreCancelled("Restore cancelled before schema reset"))
                return
            log_event(logger, "restore_step", backup_id=attempt.record.id, step=step.value)
            try:
                self._handlers[step](attempt)
            except BackupSystemError as exc:
                self._fail(attempt, step, exc)
                return
            except SQLAlchemyError as exc:
                self._fail(attempt, step, exc, kind="database")
                return
            except OSError as exc:
                self._fail(attempt, step, exc, kind="io")
                return
            result.step = step

        log_event(
            logger,
            "restore_done",
            backup_id=attempt.record.id,
            safety_backup=result.safety_backup,
            restored_item_count=result.restored_item_count,
            warnings=len(result.warnings),
        )

    def _fail(self, attempt: _Attempt, step: RestoreStep, exc: Exception, kind: Optional[str] = None) -> None:
        result = attempt.result
        result.step = RestoreStep.FAILED
        result.failed_step = step
        result.error = getattr(exc, "message", None) or str(exc)
        result.error_kind = kind or getattr(exc, "kind", "error")
        details = getattr(exc, "details", None)
        log_event(
            logger,
            "restore_failed",
            level=logging.ERROR,
            backup_id=attempt.record.id,
            failed_step=step.value,
            error_kind=result.error_kind,
            error=result.error,
            details=details,
            destructive=result.destructive,
            safety_backup=result.safety_backup,
        )

    def _safety_backup(self, attempt: _Attempt) -> None:
        safety = self.backups.capture(attempt.connection_url, BackupType.SAFETY)
        attempt.result.safety_backup = safety.filename
        attempt.result.safety_backup_id = safety.id

    def _materialize(self, attempt: _Attempt) -> None:
        path, is_temporary = materialize_artifact(
            attempt.record,
            load_backup_settings(self.db),
            tmp_dir=self.backups.tmp_dir,
            resolver=self.backups.storage_resolver,
        )
        attempt.local_path = path
        attempt.is_temporary = is_temporary

    def _schema_reset(self, attempt: _Attempt) -> None:
        if attempt.local_path is None or not attempt.local_path.is_file():
            raise NotFoundError("Backup file disappeared before schema reset")
        attempt.result.destructive = True
        run_sync(lambda: self.sql_runner.reset_schema(attempt.connection_url))

    def _restore(self, attempt: _Attempt) -> None:
        path = attempt.local_path
        run_sync(lambda: self.sql_runner.restore_file(attempt.connection_url, path))

    def _verify(self, attempt: _Attempt) -> None:
        result = attempt.result
        restored = self.backups.count_items(attempt.connection_url)
        result.restored_item_count = restored
        if restored is None:
            logger.warning("restore_verification_unavailable | backup_id=%s", attempt.record.id)
            result.warnings.append(
                {"kind": "verification_unavailable", "message": "Could not count items after restore"}
            )
        elif result.original_item_count is None:
            logger.warning("restore_verification_unavailable | backup_id=%s reason=no_baseline", attempt.record.id)
            result.warnings.append(
                {"kind": "verification_unavailable", "message": "Backup has no captured item count to compare"}
            )
        elif restored != result.original_item_count:
            mismatch = VerificationMismatch(expected=result.original_item_count, actual=restored)
            logger.warning("restore_verification_mismatch | %s", mismatch.message)
            result.warnings.append(mismatch.to_dict())
