from __future__ import annotations

import logging
from typing import Optional

from pymongo.errors import DuplicateKeyError

from app.core.errors import AlreadyActiveError, NotFoundError
from app.core.status import LogAction, LogStatus
from app.db.time_logs import TimeLogStore
from app.schemas.time_log_schema import TimeLog
from app.utils.time import Clock, utc_now, whole_minutes_between

logger = logging.getLogger("uvicorn.error")

ALREADY_ACTIVE_MESSAGE = (
    "You already have a task in progress. Pause or finish it before starting another one."
)


class SessionController:
    """Start/pause/resume/stop transitions for work sessions.

    A user may hold at most one open session across all tasks. The lookup
    before insert is advisory only; the store's partial unique index is what
    actually rejects a second open row, and that rejection is reported as
    AlreadyActiveError just like the advisory check.
    """

    def __init__(self, store: TimeLogStore, clock: Clock = utc_now) -> None:
        self.store = store
        self.clock = clock

    async def get_active_for_user(self, user_id: str) -> Optional[TimeLog]:
        return await self.store.find_open_for_user(user_id)

    async def start_session(self, assigned_task_id: str, user_id: str) -> TimeLog:
        return await self._open(assigned_task_id, user_id, LogAction.start)

    async def resume_session(self, assigned_task_id: str, user_id: str) -> TimeLog:
        # Always a fresh row; the paused row stays closed.
        return await self._open(assigned_task_id, user_id, LogAction.resume)

    async def pause_session(self, log_id: str) -> TimeLog:
        return await self._close(log_id, LogStatus.paused, LogAction.pause)

    async def stop_session(self, log_id: str) -> TimeLog:
        return await self._close(log_id, LogStatus.completed, LogAction.stop)

    async def _open(self, assigned_task_id: str, user_id: str, action: LogAction) -> TimeLog:
        active = await self.store.find_open_for_user(user_id)
        if active is not None:
            logger.debug(
                "Rejecting %s for user=%s task=%s: log %s already open",
                action.value, user_id, assigned_task_id, active.id,
            )
            raise AlreadyActiveError(ALREADY_ACTIVE_MESSAGE)
        try:
            log = await self.store.insert(assigned_task_id, user_id, self.clock(), action)
        except DuplicateKeyError as exc:
            logger.info("Concurrent %s for user=%s lost the open-session race", action.value, user_id)
            raise AlreadyActiveError(ALREADY_ACTIVE_MESSAGE) from exc
        logger.info("Time log %s opened (%s) for user=%s task=%s", log.id, action.value, user_id, assigned_task_id)
        return log

    async def _close(self, log_id: str, log_status: LogStatus, action: LogAction) -> TimeLog:
        log = await self.store.get(log_id)
        if log is None:
            raise NotFoundError(f"Time log {log_id} not found")
        if not log.is_open:
            raise NotFoundError(f"Time log {log_id} is already closed")

        end_time = self.clock()
        duration = max(0, whole_minutes_between(log.start_time, end_time))
        closed = await self.store.close(
            log_id,
            end_time=end_time,
            log_status=log_status,
            duration_minutes=duration,
            action=action,
        )
        if not closed:
            # Closed by a concurrent call between our read and write
            raise NotFoundError(f"Time log {log_id} is already closed")
        logger.info("Time log %s %s after %d min", log_id, log_status.value, duration)
        return log.model_copy(update={
            "end_time": end_time,
            "log_status": log_status,
            "duration_minutes": duration,
            "action": action,
        })
