from datetime import date
from typing import Optional

from pydantic import BaseModel, Field

from app.core.status import TaskStatus


class Assignment(BaseModel):
    """Assigned task as seen by the time-tracking engine.

    Optional links (executor, task template, completion) are flattened into
    plain nullable fields when the document is read from the store.
    """

    id: str
    task_id: str
    client_id: str
    executor_id: Optional[str] = None
    is_active: bool = True
    task_status: Optional[TaskStatus] = None
    completion_date: Optional[date] = None
    completion_time_minutes: Optional[int] = Field(default=None, ge=0)
    planned_date: Optional[date] = None


class AssignmentUpdate(BaseModel):
    task_status: Optional[TaskStatus] = None
    is_active: Optional[bool] = None


class TaskStatusOut(BaseModel):
    assigned_task_id: str
    status: TaskStatus
    total_minutes: Optional[int] = None
    total_formatted: Optional[str] = None
