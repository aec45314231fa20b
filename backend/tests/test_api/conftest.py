from __future__ import annotations

from datetime import datetime, timezone
from typing import Generator

import pytest
from fastapi.testclient import TestClient
from sqlalchemy.orm import Session

from collector_backup.api.deps import get_backup_service, get_restore_service
from collector_backup.core.db import get_session
from collector_backup.core.pgtools import CommandResult
from collector_backup.core.scheduler import BackupScheduler
from collector_backup.main import app
from collector_backup.services.restores import RestoreService


class FakeSqlRunner:
    """psql stand-in: records calls, optionally fails the replay."""

    def __init__(self) -> None:
        self.calls: list[str] = []
        self.restore_error: Exception | None = None

    async def reset_schema(self, connection_url: str) -> CommandResult:
        self.calls.append("reset")
        return CommandResult(returncode=0, stdout="", stderr="")

    async def restore_file(self, connection_url: str, path) -> CommandResult:
        self.calls.append("restore")
        if self.restore_error is not None:
            raise self.restore_error
        return CommandResult(returncode=0, stdout="", stderr="")


@pytest.fixture
def sql_runner() -> FakeSqlRunner:
    return FakeSqlRunner()


@pytest.fixture
def api_scheduler(db_session: Session, make_backup_service) -> Generator[BackupScheduler, None, None]:
    scheduler = BackupScheduler(
        session_factory=lambda: db_session,
        service_factory=lambda db: make_backup_service(db),
        cron="0 * * * *",
        notifier=lambda success, **kwargs: True,
        clock=lambda: datetime(2024, 6, 15, 12, 0, tzinfo=timezone.utc),
    )
    yield scheduler
    scheduler.stop()


@pytest.fixture
def client(
    db_session: Session,
    make_backup_service,
    sql_runner: FakeSqlRunner,
    api_scheduler: BackupScheduler,
    monkeypatch: pytest.MonkeyPatch,
) -> Generator[TestClient, None, None]:
    """FastAPI TestClient with DB, service and scheduler overrides."""

    def override_get_session() -> Generator[Session, None, None]:
        try:
            yield db_session
        finally:
            pass

    def override_backup_service():
        return make_backup_service(db_session)

    def override_restore_service():
        return RestoreService(db_session, backups=make_backup_service(db_session), sql_runner=sql_runner)

    app.dependency_overrides[get_session] = override_get_session
    app.dependency_overrides[get_backup_service] = override_backup_service
    app.dependency_overrides[get_restore_service] = override_restore_service

    # Avoid touching the real metadata store or starting APScheduler on startup
    monkeypatch.setattr("collector_backup.main.init_db", lambda: None, raising=True)
    monkeypatch.setattr("collector_backup.main.BackupScheduler", lambda: api_scheduler, raising=True)
    monkeypatch.setenv("BACKUP_SCHEDULER_AUTOSTART", "false")

    with TestClient(app) as test_client:
        yield test_client

    app.dependency_overrides.clear()
