"""Automatic backup scheduler.

Responsibilities:
- Own one APScheduler `BackgroundScheduler` with a single cron-driven tick job
- Decide on every tick whether a scheduled backup is due (`should_run`)
- Run the backup through `BackupService`, then retention and notification
- Keep a bounded in-memory ring of recent outcomes, most recent first

The object is created once by the application lifespan and stored on
`app.state`; nothing here is module-level mutable state.
"""

from __future__ import annotations

import logging
import threading
from collections import deque
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Any, Callable, Deque, List, Optional

from apscheduler.schedulers.background import BackgroundScheduler
from apscheduler.triggers.cron import CronTrigger
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from collector_backup.core import config
from collector_backup.core.db import new_session
from collector_backup.core.errors import BackupSystemError, OperationInProgressError
from collector_backup.core.logging import log_event
from collector_backup.core.notifier import notify_backup_result
from collector_backup.domain.enums import BackupFrequency, BackupType, ScheduleOutcome
from collector_backup.schemas.settings import BackupSettings
from collector_backup.services.backup_service import BackupService
from collector_backup.services.backup_store import ensure_utc
from collector_backup.services.retention import RetentionService
from collector_backup.services.settings import load_backup_settings


logger = logging.getLogger(__name__)

JOB_ID = "backup:automatic"
LOG_CAPACITY = 50
SKIP_LOG_INTERVAL = timedelta(hours=6)

# Slightly under the nominal period so an hourly tick does not drift a day late
FREQUENCY_THRESHOLDS = {
    BackupFrequency.DAILY: timedelta(hours=23),
    BackupFrequency.WEEKLY: timedelta(days=6, hours=12),
    BackupFrequency.MONTHLY: timedelta(days=29),
}


def should_run(
    settings: Optional[BackupSettings],
    last_backup_at: Optional[datetime],
    now: datetime,
) -> bool:
    """Whether an automatic backup is due at `now`."""
    if settings is None or not settings.automatic_backups:
        return False
    if last_backup_at is None:
        return True
    elapsed = ensure_utc(now) - ensure_utc(last_backup_at)
    return elapsed >= FREQUENCY_THRESHOLDS[BackupFrequency(settings.backup_frequency)]


@dataclass
class ScheduleLogEntry:
    timestamp: datetime
    outcome: ScheduleOutcome
    message: str
    error: Optional[str] = None

    def to_dict(self) -> dict:
        return {
            "timestamp": self.timestamp.isoformat(),
            "outcome": self.outcome.value,
            "message": self.message,
            "error": self.error,
        }


class BackupScheduler:
    """Start/stop lifecycle, periodic policy evaluation and the outcome log ring."""

    def __init__(
        self,
        *,
        session_factory: Callable[[], Session] = new_session,
        service_factory: Callable[[Session], BackupService] = BackupService,
        cron: Optional[str] = None,
        capacity: int = LOG_CAPACITY,
        skip_log_interval: timedelta = SKIP_LOG_INTERVAL,
        notifier: Callable[..., bool] = notify_backup_result,
        clock: Optional[Callable[[], datetime]] = None,
    ) -> None:
        self._session_factory = session_factory
        self._service_factory = service_factory
        self.cron = cron or config.get_scheduler_cron()
        self.skip_log_interval = skip_log_interval
        self._notifier = notifier
        self._clock = clock or (lambda: datetime.now(timezone.utc))
        self._lock = threading.RLock()
        self._scheduler: Optional[BackgroundScheduler] = None
        self._logs: Deque[ScheduleLogEntry] = deque(maxlen=capacity)
        self._last_skip_reason: Optional[str] = None
        self._last_skip_at: Optional[datetime] = None

    # Lifecycle
    def start(self) -> bool:
        """Install the periodic tick. Returns False when already running."""
        with self._lock:
            if self.is_running():
                log_event(logger, "scheduler_start_noop", job_id=JOB_ID)
                return False
            trigger = CronTrigger.from_crontab(self.cron, timezone=timezone.utc)
            scheduler = BackgroundScheduler(
                timezone=timezone.utc,
                job_defaults={"coalesce": True, "max_instances": 1},
            )
            scheduler.add_job(
                func=self._tick,
                trigger=trigger,
                id=JOB_ID,
                name="Automatic backup check",
                replace_existing=True,
                max_instances=1,
            )
            scheduler.start()
            self._scheduler = scheduler
            log_event(logger, "scheduler_started", job_id=JOB_ID, cron=self.cron)
            return True

    def stop(self) -> bool:
        """Remove the periodic tick. Returns False when not running."""
        with self._lock:
            scheduler = self._scheduler
            if scheduler is None:
                return False
            self._scheduler = None
            if scheduler.running:
                scheduler.shutdown(wait=False)
            log_event(logger, "scheduler_stopped", job_id=JOB_ID)
            return True

    def is_running(self) -> bool:
        scheduler = self._scheduler
        return scheduler is not None and scheduler.running and scheduler.get_job(JOB_ID) is not None

    def job_count(self) -> int:
        scheduler = self._scheduler
        return len(scheduler.get_jobs()) if scheduler is not None else 0

    def next_run_time(self) -> Optional[datetime]:
        scheduler = self._scheduler
        job = scheduler.get_job(JOB_ID) if scheduler is not None else None
        return job.next_run_time if job is not None else None

    # Log ring
    def get_logs(self) -> List[ScheduleLogEntry]:
        """Recent outcomes, most recent first."""
        with self._lock:
            return list(self._logs)

    def record(self, entry: ScheduleLogEntry) -> None:
        with self._lock:
            self._logs.appendleft(entry)
            if entry.outcome != ScheduleOutcome.SKIPPED:
                self._last_skip_reason = None
                self._last_skip_at = None

    def _skip(self, now: datetime, reason: str) -> ScheduleLogEntry:
        entry = ScheduleLogEntry(timestamp=now, outcome=ScheduleOutcome.SKIPPED, message=reason)
        with self._lock:
            recent = (
                self._last_skip_at is not None
                and self._last_skip_reason == reason
                and now - self._last_skip_at < self.skip_log_interval
            )
            if recent:
                logger.debug("scheduler_skip_suppressed | reason=%s", reason)
                return entry
            self._last_skip_reason = reason
            self._last_skip_at = now
            self._logs.appendleft(entry)
        log_event(logger, "scheduler_skipped", reason=reason)
        return entry

    # Tick
    def _tick(self) -> None:
        """Entry point for APScheduler; failures end up in the log ring."""
        now = self._clock()
        try:
            self.run_once(now)
        except Exception as exc:  # noqa: BLE001
            logger.exception("scheduler_tick_crashed")
            self.record(
                ScheduleLogEntry(
                    timestamp=now,
                    outcome=ScheduleOutcome.FAILED,
                    message="Scheduler tick failed unexpectedly",
                    error=str(exc),
                )
            )

    def run_once(self, now: Optional[datetime] = None) -> ScheduleLogEntry:
        """Evaluate the policy once and run a scheduled backup when due."""
        now = ensure_utc(now or self._clock())
        db = self._session_factory()
        try:
            settings = load_backup_settings(db)
            if settings is None or not settings.automatic_backups:
                return self._skip(now, "Automatic backups are disabled")

            service = self._service_factory(db)
            last = service.store.latest([BackupType.SCHEDULED, BackupType.MANUAL])
            last_at = last.created_at if last is not None else None
            if not should_run(settings, last_at, now):
                return self._skip(now, f"No {settings.backup_frequency.value} backup due yet")

            log_event(logger, "scheduled_backup_start", frequency=settings.backup_frequency.value, last_backup_at=last_at)
            try:
                result = service.create_backup(BackupType.SCHEDULED)
            except OperationInProgressError:
                return self._skip(now, "Another backup or restore is in progress")
            except (BackupSystemError, SQLAlchemyError) as exc:
                return self._failed(now, exc)

            message = f"Scheduled backup created: {result.backup.filename}"
            upload = result.cloud_upload
            if upload is not None:
                message += " (uploaded to cloud)" if upload.success else f" (cloud upload failed: {upload.error})"
            entry = ScheduleLogEntry(timestamp=now, outcome=ScheduleOutcome.RAN, message=message)
            self.record(entry)
            log_event(logger, "scheduled_backup_done", backup_id=result.backup.id, filename=result.backup.filename)

            try:
                RetentionService(db).apply(settings.backup_retention)
            except (SQLAlchemyError, OSError) as exc:
                db.rollback()
                logger.warning("scheduled_retention_failed | error=%s", exc)
            self._notify(True, filename=result.backup.filename)
            return entry
        finally:
            db.close()

    def _notify(self, success: bool, **fields: Any) -> None:
        try:
            self._notifier(success, **fields)
        except Exception:  # noqa: BLE001
            # The outcome is already recorded; a notification must not add a second entry
            logger.exception("scheduler_notification_failed | success=%s", success)

    def _failed(self, now: datetime, exc: Exception) -> ScheduleLogEntry:
        error = getattr(exc, "message", None) or str(exc)
        entry = ScheduleLogEntry(
            timestamp=now,
            outcome=ScheduleOutcome.FAILED,
            message="Scheduled backup failed",
            error=error,
        )
        self.record(entry)
        log_event(
            logger,
            "scheduled_backup_failed",
            level=logging.ERROR,
            error_kind=getattr(exc, "kind", type(exc).__name__),
            error=error,
        )
        self._notify(False, error=error)
        return entry
