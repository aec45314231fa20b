"""Request-scoped dependencies shared by the routers."""

from fastapi import Depends, HTTPException, Request, status
from sqlalchemy.orm import Session

from collector_backup.core.db import get_session
from collector_backup.core.scheduler import BackupScheduler
from collector_backup.services.backup_service import BackupService
from collector_backup.services.restores import RestoreService
from collector_backup.services.settings import SettingsService


def get_backup_service(db: Session = Depends(get_session)) -> BackupService:
    return BackupService(db)


def get_restore_service(
    db: Session = Depends(get_session),
    backups: BackupService = Depends(get_backup_service),
) -> RestoreService:
    return RestoreService(db, backups=backups)


def get_settings_service(db: Session = Depends(get_session)) -> SettingsService:
    return SettingsService(db)


def get_backup_scheduler(request: Request) -> BackupScheduler:
    """The scheduler owned by the application lifespan."""
    scheduler = getattr(request.app.state, "scheduler", None)
    if scheduler is None:
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail="Scheduler not initialised")
    return scheduler
