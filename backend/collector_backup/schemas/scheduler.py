from datetime import datetime
from typing import Literal, Optional

from pydantic import BaseModel, ConfigDict, Field

from collector_backup.domain.enums import ScheduleOutcome


class ScheduleLogEntry(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    timestamp: datetime
    outcome: ScheduleOutcome
    message: str
    error: Optional[str] = None


class SchedulerStatus(BaseModel):
    is_running: bool
    cron: str
    next_run_time: Optional[datetime] = None


class SchedulerAction(BaseModel):
    action: Literal["start", "stop"] = Field(..., description="start or stop the automatic scheduler")


class SchedulerActionResponse(BaseModel):
    success: bool = True
    changed: bool = Field(..., description="False when the scheduler was already in the requested state")
    is_running: bool
