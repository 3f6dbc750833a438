from datetime import date, datetime
from typing import Optional

from pydantic import BaseModel, Field

from app.core.status import LogAction, LogStatus
from app.schemas.assignment_schema import Assignment


class TimeLog(BaseModel):
    """One contiguous work interval recorded against an assigned task."""

    id: str
    assigned_task_id: str
    user_id: str
    start_time: datetime
    end_time: Optional[datetime] = None
    log_status: LogStatus
    duration_minutes: Optional[int] = None
    action: Optional[LogAction] = None

    @property
    def is_open(self) -> bool:
        return self.end_time is None


class TaskTimeStats(BaseModel):
    status: Optional[LogStatus] = None
    total_minutes: int = 0
    completion_date: Optional[date] = None


class TaskTimeStatsOut(TaskTimeStats):
    assigned_task_id: str
    total_formatted: str


class StartPayload(BaseModel):
    assigned_task_id: str = Field(min_length=1)
    user_id: str = Field(min_length=1)


class ActiveSessionOut(BaseModel):
    log: Optional[TimeLog] = None
    task: Optional[Assignment] = None
    elapsed_seconds: int = 0
    elapsed_formatted: str = "00:00:00"
