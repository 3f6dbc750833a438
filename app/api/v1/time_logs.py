from __future__ import annotations

from fastapi import APIRouter, Depends, Path, Query, status

from app.api.deps import get_active_session_manager, get_session_controller
from app.schemas.time_log_schema import ActiveSessionOut, StartPayload, TimeLog
from app.services.active_session import ActiveSessionManager
from app.services.session_controller import SessionController


router = APIRouter(prefix="/time-logs", tags=["time-logs"])


@router.post("/start", response_model=TimeLog, status_code=status.HTTP_201_CREATED)
async def start_time_log(payload: StartPayload, controller: SessionController = Depends(get_session_controller)):
    return await controller.start_session(payload.assigned_task_id, payload.user_id)


@router.post("/resume", response_model=TimeLog, status_code=status.HTTP_201_CREATED)
async def resume_time_log(payload: StartPayload, controller: SessionController = Depends(get_session_controller)):
    return await controller.resume_session(payload.assigned_task_id, payload.user_id)


@router.post("/{log_id}/pause")
async def pause_time_log(log_id: str = Path(...), controller: SessionController = Depends(get_session_controller)):
    await controller.pause_session(log_id)
    return {"status": "ok"}


@router.post("/{log_id}/stop")
async def stop_time_log(log_id: str = Path(...), controller: SessionController = Depends(get_session_controller)):
    await controller.stop_session(log_id)
    return {"status": "ok"}


@router.get("/active", response_model=ActiveSessionOut)
async def active_time_log(
    user_id: str = Query(..., min_length=1),
    manager: ActiveSessionManager = Depends(get_active_session_manager),
):
    await manager.mount(user_id)
    snapshot = manager.snapshot
    return ActiveSessionOut(
        log=snapshot.log,
        task=snapshot.task,
        elapsed_seconds=snapshot.elapsed_seconds,
        elapsed_formatted=snapshot.elapsed_formatted,
    )
