"""Scheduler API router: status, start/stop, log ring and a one-shot tick."""

from fastapi import APIRouter, Depends

from collector_backup.api.deps import get_backup_scheduler
from collector_backup.core.scheduler import BackupScheduler
from collector_backup.schemas import (
    ScheduleLogEntry,
    SchedulerAction,
    SchedulerActionResponse,
    SchedulerStatus,
)


router = APIRouter(prefix="/scheduler", tags=["scheduler"])


@router.get("", response_model=SchedulerStatus)
def scheduler_status(scheduler: BackupScheduler = Depends(get_backup_scheduler)) -> SchedulerStatus:
    return SchedulerStatus(
        is_running=scheduler.is_running(),
        cron=scheduler.cron,
        next_run_time=scheduler.next_run_time(),
    )


@router.post("", response_model=SchedulerActionResponse)
def control_scheduler(
    payload: SchedulerAction,
    scheduler: BackupScheduler = Depends(get_backup_scheduler),
) -> SchedulerActionResponse:
    """Start or stop the automatic scheduler; repeating an action is a no-op."""
    changed = scheduler.start() if payload.action == "start" else scheduler.stop()
    return SchedulerActionResponse(changed=changed, is_running=scheduler.is_running())


@router.get("/logs", response_model=list[ScheduleLogEntry])
def scheduler_logs(scheduler: BackupScheduler = Depends(get_backup_scheduler)) -> list[ScheduleLogEntry]:
    """Recent scheduler outcomes, most recent first."""
    return [ScheduleLogEntry.model_validate(entry) for entry in scheduler.get_logs()]


@router.post("/run", response_model=ScheduleLogEntry)
def run_scheduler_once(scheduler: BackupScheduler = Depends(get_backup_scheduler)) -> ScheduleLogEntry:
    """Evaluate the backup policy now (for external cron triggers)."""
    return ScheduleLogEntry.model_validate(scheduler.run_once())
