from datetime import datetime, timedelta, timezone

import pytest

from collector_backup.core.errors import DumpProcessFailed
from collector_backup.core.locks import database_lock
from collector_backup.core.scheduler import (
    JOB_ID,
    BackupScheduler,
    ScheduleLogEntry,
    should_run,
)
from collector_backup.domain.enums import BackupFrequency, BackupType, ScheduleOutcome
from collector_backup.models import Backup
from collector_backup.schemas.settings import BackupSettings


NOW = datetime(2024, 6, 15, 12, 0, tzinfo=timezone.utc)


class _Notifier:
    def __init__(self):
        self.calls = []

    def __call__(self, success, **kwargs):
        self.calls.append((success, kwargs))
        return True


@pytest.fixture
def notifier():
    return _Notifier()


@pytest.fixture
def scheduler(db_session, make_backup_service, notifier):
    sched = BackupScheduler(
        session_factory=lambda: db_session,
        service_factory=lambda db: make_backup_service(db),
        cron="0 * * * *",
        notifier=notifier,
        clock=lambda: NOW,
    )
    yield sched
    sched.stop()


def test_should_run_weekly_scenarios():
    settings = BackupSettings(automatic_backups=True, backup_frequency=BackupFrequency.WEEKLY)
    assert should_run(settings, NOW - timedelta(days=8), NOW) is True
    assert should_run(settings, NOW - timedelta(days=2), NOW) is False


@pytest.mark.parametrize(
    "frequency,elapsed,expected",
    [
        (BackupFrequency.DAILY, timedelta(hours=23), True),
        (BackupFrequency.DAILY, timedelta(hours=22, minutes=59), False),
        (BackupFrequency.WEEKLY, timedelta(days=6, hours=12), True),
        (BackupFrequency.MONTHLY, timedelta(days=29), True),
        (BackupFrequency.MONTHLY, timedelta(days=28), False),
    ],
)
def test_should_run_thresholds(frequency, elapsed, expected):
    settings = BackupSettings(automatic_backups=True, backup_frequency=frequency)
    assert should_run(settings, NOW - elapsed, NOW) is expected


def test_should_run_never_backed_up_and_disabled():
    assert should_run(BackupSettings(automatic_backups=True), None, NOW) is True
    assert should_run(BackupSettings(automatic_backups=False), None, NOW) is False
    assert should_run(None, None, NOW) is False


def test_should_run_accepts_naive_timestamps_as_utc():
    settings = BackupSettings(automatic_backups=True, backup_frequency=BackupFrequency.DAILY)
    naive_last = (NOW - timedelta(days=2)).replace(tzinfo=None)
    assert should_run(settings, naive_last, NOW) is True


def test_start_is_idempotent_with_a_single_job(scheduler):
    assert scheduler.start() is True
    assert scheduler.start() is False
    assert scheduler.is_running() is True
    assert scheduler.job_count() == 1
    assert scheduler._scheduler.get_job(JOB_ID) is not None


def test_stop_is_idempotent_and_restart_works(scheduler):
    assert scheduler.stop() is False
    scheduler.start()
    assert scheduler.stop() is True
    assert scheduler.stop() is False
    assert scheduler.is_running() is False
    assert scheduler.start() is True
    assert scheduler.job_count() == 1


def test_log_ring_keeps_the_fifty_most_recent(scheduler):
    for i in range(60):
        scheduler.record(
            ScheduleLogEntry(timestamp=NOW + timedelta(minutes=i), outcome=ScheduleOutcome.RAN, message=f"entry {i}")
        )
    logs = scheduler.get_logs()
    assert len(logs) == 50
    assert logs[0].message == "entry 59"
    assert logs[-1].message == "entry 10"


def test_log_ring_survives_stop_and_start(scheduler):
    scheduler.record(ScheduleLogEntry(timestamp=NOW, outcome=ScheduleOutcome.RAN, message="kept"))
    scheduler.start()
    scheduler.stop()
    scheduler.start()
    assert [e.message for e in scheduler.get_logs()] == ["kept"]


def test_disabled_settings_skip_is_rate_limited(scheduler, save_settings):
    save_settings(automatic_backups=False)

    scheduler.run_once(NOW)
    scheduler.run_once(NOW + timedelta(hours=1))
    scheduler.run_once(NOW + timedelta(hours=2))
    assert len(scheduler.get_logs()) == 1
    assert scheduler.get_logs()[0].outcome == ScheduleOutcome.SKIPPED

    scheduler.run_once(NOW + timedelta(hours=7))
    assert len(scheduler.get_logs()) == 2


def test_skip_reason_change_is_logged_immediately(scheduler, save_settings, db_session):
    save_settings(automatic_backups=False)
    scheduler.run_once(NOW)

    save_settings(automatic_backups=True, backup_frequency=BackupFrequency.WEEKLY)
    db_session.add(
        Backup(
            filename="backup-recent.sql",
            size_bytes=1,
            item_count=1,
            location="/tmp/backup-recent.sql",
            type=BackupType.MANUAL.value,
            created_at=NOW - timedelta(days=1),
        )
    )
    db_session.commit()
    scheduler.run_once(NOW + timedelta(minutes=5))

    reasons = [e.message for e in scheduler.get_logs()]
    assert len(reasons) == 2
    assert reasons[0] != reasons[1]


def test_due_backup_runs_and_notifies(scheduler, save_settings, db_session, notifier):
    save_settings(automatic_backups=True, backup_frequency=BackupFrequency.DAILY)

    entry = scheduler.run_once(NOW)

    assert entry.outcome == ScheduleOutcome.RAN
    assert scheduler.get_logs()[0] is entry
    records = db_session.query(Backup).all()
    assert len(records) == 1
    assert records[0].type == BackupType.SCHEDULED.value
    assert notifier.calls == [(True, {"filename": records[0].filename})]


def test_notification_failure_does_not_add_a_failed_entry(db_session, make_backup_service, save_settings):
    def broken_notifier(success, **kwargs):
        raise ValueError("invalid literal for int() with base 10: 'smtp'")

    sched = BackupScheduler(
        session_factory=lambda: db_session,
        service_factory=lambda db: make_backup_service(db),
        cron="0 * * * *",
        notifier=broken_notifier,
        clock=lambda: NOW,
    )
    save_settings(automatic_backups=True, backup_frequency=BackupFrequency.DAILY)

    sched._tick()

    assert [e.outcome for e in sched.get_logs()] == [ScheduleOutcome.RAN]
    assert db_session.query(Backup).count() == 1


def test_manual_backup_counts_as_last_run(scheduler, save_settings, db_session):
    save_settings(automatic_backups=True, backup_frequency=BackupFrequency.WEEKLY)
    db_session.add(
        Backup(
            filename="backup-manual.sql",
            size_bytes=1,
            item_count=1,
            location="/tmp/backup-manual.sql",
            type=BackupType.MANUAL.value,
            created_at=NOW - timedelta(days=2),
        )
    )
    db_session.commit()

    entry = scheduler.run_once(NOW)
    assert entry.outcome == ScheduleOutcome.SKIPPED


def test_dump_failure_is_logged_as_failed(scheduler, save_settings, fake_dump, notifier, db_session):
    save_settings(automatic_backups=True)
    fake_dump.error = DumpProcessFailed("pg_dump failed with exit code 1", stderr="boom", returncode=1)

    entry = scheduler.run_once(NOW)

    assert entry.outcome == ScheduleOutcome.FAILED
    assert entry.error == "pg_dump failed with exit code 1"
    assert db_session.query(Backup).count() == 0
    assert notifier.calls[0][0] is False


def test_busy_database_is_skipped(scheduler, save_settings, postgres_url):
    save_settings(automatic_backups=True)
    from collector_backup.core.pgtools import parse_connection_url

    with database_lock(parse_connection_url(postgres_url).identity, "restore"):
        entry = scheduler.run_once(NOW)

    assert entry.outcome == ScheduleOutcome.SKIPPED
    assert "in progress" in entry.message


def test_retention_prunes_old_scheduled_backups_after_run(scheduler, save_settings, db_session, backup_dir):
    save_settings(automatic_backups=True, backup_frequency=BackupFrequency.DAILY, backup_retention=2)
    for days in (3, 4, 5):
        path = backup_dir / f"backup-old-{days}.sql"
        path.write_text("--")
        db_session.add(
            Backup(
                filename=path.name,
                size_bytes=2,
                item_count=1,
                location=str(path),
                type=BackupType.SCHEDULED.value,
                created_at=NOW - timedelta(days=days),
            )
        )
    db_session.commit()

    scheduler.run_once(NOW)

    remaining = {b.filename for b in db_session.query(Backup).all()}
    assert len(remaining) == 2
    assert "backup-old-3.sql" in remaining
    assert not (backup_dir / "backup-old-5.sql").exists()
