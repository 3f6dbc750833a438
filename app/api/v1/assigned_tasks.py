from __future__ import annotations

import logging
from datetime import date
from typing import Optional

from fastapi import APIRouter, Depends, Path, Query

from app.api.deps import (
    get_assignment_store,
    get_clock,
    get_session_controller,
    get_time_log_store,
    get_time_stats_service,
)
from app.core.config import settings
from app.core.errors import NotFoundError, TimeTrackingError
from app.db.assigned_tasks import AssignmentStore
from app.db.time_logs import TimeLogStore
from app.schemas.assignment_schema import Assignment, AssignmentUpdate, TaskStatusOut
from app.schemas.time_log_schema import TaskTimeStatsOut, TimeLog
from app.services.session_controller import SessionController
from app.services.status_resolver import resolve_status, resolve_status_async
from app.services.time_stats import TimeStatsService, effective_minutes
from app.utils.time import Clock, format_minutes, local_today


logger = logging.getLogger("uvicorn.error")

router = APIRouter(prefix="/assigned-tasks", tags=["assigned-tasks"])


async def _get_assignment(store: AssignmentStore, assigned_task_id: str) -> Assignment:
    assignment = await store.get(assigned_task_id)
    if assignment is None:
        raise NotFoundError(f"Assigned task {assigned_task_id} not found")
    return assignment


async def _active_task_id(controller: SessionController, user_id: Optional[str]) -> Optional[str]:
    if not user_id:
        return None
    try:
        log = await controller.get_active_for_user(user_id)
    except TimeTrackingError as exc:
        # Statuses are still shown, without the live-session rule
        logger.warning("Active time log unavailable for user %s: %s", user_id, exc)
        return None
    return log.assigned_task_id if log else None


async def _status_rows(
    listed: list[Assignment],
    active_id: Optional[str],
    stats_service: TimeStatsService,
    today: date,
) -> list[TaskStatusOut]:
    # Stats are loaded once per row; the resolver itself never does I/O
    items: list[TaskStatusOut] = []
    for assignment in listed:
        stats = await stats_service.compute_task_time_stats(assignment.id)
        minutes = effective_minutes(stats, assignment.completion_time_minutes)
        items.append(TaskStatusOut(
            assigned_task_id=assignment.id,
            status=resolve_status(assignment, active_id, stats, today),
            total_minutes=minutes,
            total_formatted=format_minutes(minutes),
        ))
    return items


@router.get("/statuses", response_model=list[TaskStatusOut])
async def list_statuses(
    ids: str = Query(..., description="Comma-separated assigned task ids"),
    user_id: Optional[str] = Query(None),
    assignments: AssignmentStore = Depends(get_assignment_store),
    controller: SessionController = Depends(get_session_controller),
    stats_service: TimeStatsService = Depends(get_time_stats_service),
    clock: Clock = Depends(get_clock),
):
    listed: list[Assignment] = []
    for aid in [i.strip() for i in ids.split(",") if i.strip()]:
        assignment = await assignments.get(aid)
        if assignment is not None:
            listed.append(assignment)
    active_id = await _active_task_id(controller, user_id)
    return await _status_rows(listed, active_id, stats_service, local_today(settings.TIMEZONE, clock()))


@router.get("/mine", response_model=list[TaskStatusOut])
async def my_task_statuses(
    user_id: str = Query(..., min_length=1),
    assignments: AssignmentStore = Depends(get_assignment_store),
    controller: SessionController = Depends(get_session_controller),
    stats_service: TimeStatsService = Depends(get_time_stats_service),
    clock: Clock = Depends(get_clock),
):
    listed = await assignments.list_for_executor(user_id)
    active_id = await _active_task_id(controller, user_id)
    return await _status_rows(listed, active_id, stats_service, local_today(settings.TIMEZONE, clock()))


@router.get("/{assigned_task_id}/active-log", response_model=Optional[TimeLog])
async def active_log_for_task(assigned_task_id: str = Path(...), store: TimeLogStore = Depends(get_time_log_store)):
    return await store.find_open_for_task(assigned_task_id)


@router.get("/{assigned_task_id}/time-logs", response_model=list[TimeLog])
async def list_time_logs(assigned_task_id: str = Path(...), store: TimeLogStore = Depends(get_time_log_store)):
    return await store.list_for_task(assigned_task_id)


@router.get("/{assigned_task_id}/stats", response_model=TaskTimeStatsOut)
async def task_time_stats(
    assigned_task_id: str = Path(...),
    stats_service: TimeStatsService = Depends(get_time_stats_service),
):
    stats = await stats_service.compute_task_time_stats(assigned_task_id)
    return TaskTimeStatsOut(
        assigned_task_id=assigned_task_id,
        total_formatted=format_minutes(stats.total_minutes),
        **stats.model_dump(),
    )


@router.get("/{assigned_task_id}/status", response_model=TaskStatusOut)
async def task_status(
    assigned_task_id: str = Path(...),
    user_id: Optional[str] = Query(None),
    assignments: AssignmentStore = Depends(get_assignment_store),
    controller: SessionController = Depends(get_session_controller),
    stats_service: TimeStatsService = Depends(get_time_stats_service),
    clock: Clock = Depends(get_clock),
):
    assignment = await _get_assignment(assignments, assigned_task_id)
    active_id = await _active_task_id(controller, user_id)
    today = local_today(settings.TIMEZONE, clock())
    status = await resolve_status_async(assignment, active_id, stats_service, today=today)
    return TaskStatusOut(assigned_task_id=assigned_task_id, status=status)


@router.patch("/{assigned_task_id}", response_model=Assignment)
async def update_assignment(
    payload: AssignmentUpdate,
    assigned_task_id: str = Path(...),
    assignments: AssignmentStore = Depends(get_assignment_store),
):
    await _get_assignment(assignments, assigned_task_id)
    updated = await assignments.update(assigned_task_id, payload.model_dump(exclude_unset=True))
    if updated is None:
        raise NotFoundError(f"Assigned task {assigned_task_id} not found")
    return updated
