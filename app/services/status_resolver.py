from __future__ import annotations

from datetime import date
from typing import Optional

from app.core.config import settings
from app.core.status import TaskStatus
from app.schemas.assignment_schema import Assignment
from app.schemas.time_log_schema import TaskTimeStats
from app.services.time_stats import TimeStatsService
from app.utils.time import local_today


def _overrides(assignment: Assignment, active_assigned_task_id: Optional[str]) -> Optional[TaskStatus]:
    if not assignment.is_active:
        return TaskStatus.inactive
    if active_assigned_task_id is not None and active_assigned_task_id == assignment.id:
        return TaskStatus.in_progress
    if assignment.task_status is not None:
        return assignment.task_status
    return None


def _fallback(assignment: Assignment, today: date) -> TaskStatus:
    if assignment.executor_id is None:
        return TaskStatus.no_executor
    if (
        assignment.planned_date is not None
        and assignment.planned_date < today
        and assignment.completion_date is None
    ):
        return TaskStatus.overdue
    return TaskStatus.not_started


def resolve_status(
    assignment: Assignment,
    active_assigned_task_id: Optional[str],
    stats: Optional[TaskTimeStats] = None,
    today: Optional[date] = None,
) -> TaskStatus:
    """Single display status for an assigned task. Never performs I/O."""
    status = _overrides(assignment, active_assigned_task_id)
    if status is not None:
        return status
    if stats is not None and stats.status is not None:
        return TaskStatus(stats.status.value)
    return _fallback(assignment, today or local_today(settings.TIMEZONE))


async def resolve_status_async(
    assignment: Assignment,
    active_assigned_task_id: Optional[str],
    stats_service: TimeStatsService,
    stats: Optional[TaskTimeStats] = None,
    today: Optional[date] = None,
) -> TaskStatus:
    """Same rules as resolve_status, loading stats only when they can matter."""
    if stats is None and _overrides(assignment, active_assigned_task_id) is None:
        # compute_task_time_stats degrades to empty stats on read failure
        stats = await stats_service.compute_task_time_stats(assignment.id)
    return resolve_status(assignment, active_assigned_task_id, stats, today)
