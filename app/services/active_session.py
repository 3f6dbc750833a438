from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from typing import Callable, Optional

from app.core.config import settings
from app.core.errors import NotFoundError, TimeTrackingError
from app.db.assigned_tasks import AssignmentStore
from app.schemas.assignment_schema import Assignment
from app.schemas.time_log_schema import TimeLog
from app.services.session_controller import SessionController
from app.utils.time import Clock, format_elapsed, utc_now, whole_seconds_between

logger = logging.getLogger("uvicorn.error")


@dataclass(frozen=True)
class ActiveSessionSnapshot:
    log: Optional[TimeLog]
    task: Optional[Assignment]
    elapsed_seconds: int

    @property
    def active_task_id(self) -> Optional[str]:
        return self.log.assigned_task_id if self.log else None

    @property
    def elapsed_formatted(self) -> str:
        return format_elapsed(self.elapsed_seconds)


EMPTY_SNAPSHOT = ActiveSessionSnapshot(log=None, task=None, elapsed_seconds=0)

Listener = Callable[[ActiveSessionSnapshot], None]


class ActiveSessionManager:
    """Holds the signed-in user's open session and ticks its elapsed time.

    The open session is always reloaded from the controller rather than
    derived locally. Listeners are notified on every state change and on
    every tick. The elapsed counter is second-granular and display only.

    Reloads are guarded two ways: nothing is written back once the manager
    is closed (checked before and after each await), and a reload requested
    while another is in flight is dropped in favor of the in-flight one.
    The in-flight reload repeats if the user changed under it, and a user
    change clears the snapshot immediately.
    """

    def __init__(
        self,
        controller: SessionController,
        assignments: Optional[AssignmentStore] = None,
        clock: Clock = utc_now,
        tick_seconds: Optional[float] = None,
    ) -> None:
        self.controller = controller
        self.assignments = assignments
        self.clock = clock
        self.tick_seconds = tick_seconds or settings.ELAPSED_TICK_SECONDS
        self.user_id: Optional[str] = None
        self.snapshot: ActiveSessionSnapshot = EMPTY_SNAPSHOT
        self._listeners: list[Listener] = []
        self._alive = False
        self._busy = False
        self._ticker: Optional[asyncio.Task] = None

    # ----- Observers -----
    def subscribe(self, listener: Listener) -> Callable[[], None]:
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def _set(self, snapshot: ActiveSessionSnapshot) -> None:
        self.snapshot = snapshot
        for listener in list(self._listeners):
            listener(snapshot)

    # ----- Lifecycle -----
    @property
    def alive(self) -> bool:
        return self._alive

    async def mount(self, user_id: Optional[str]) -> None:
        self._alive = True
        self.user_id = user_id
        await self.reload()

    async def set_user(self, user_id: Optional[str]) -> None:
        if user_id == self.user_id:
            return
        self.user_id = user_id
        # The previous user's session is never shown to the new one
        if self.snapshot is not EMPTY_SNAPSHOT:
            self._set(EMPTY_SNAPSHOT)
        await self.reload()

    async def close(self) -> None:
        self._alive = False
        await self._stop_ticker()
        self._listeners.clear()

    # ----- Loading -----
    async def reload(self) -> None:
        if not self._alive or self._busy:
            return
        self._busy = True
        try:
            # A user change while loading makes the result stale; load again
            loaded = await self._reload_once()
            while self._alive and loaded != self.user_id:
                loaded = await self._reload_once()
        finally:
            self._busy = False
        if self._alive:
            self._sync_ticker()

    async def _reload_once(self) -> Optional[str]:
        """Load the open session for the current user; returns that user id."""
        user_id = self.user_id
        if user_id is None:
            self._set(EMPTY_SNAPSHOT)
            return None
        try:
            log = await self.controller.get_active_for_user(user_id)
            if not self._alive or user_id != self.user_id:
                return user_id
            task = None
            if log is not None and self.assignments is not None:
                task = await self.assignments.get(log.assigned_task_id)
                if not self._alive or user_id != self.user_id:
                    return user_id
        except TimeTrackingError as exc:
            # Keep the last confirmed state
            logger.warning("Could not load active time log for user %s: %s", user_id, exc)
            return user_id
        self._set(ActiveSessionSnapshot(log=log, task=task, elapsed_seconds=self._elapsed(log)))
        return user_id

    async def refresh_active_task(self) -> None:
        log = self.snapshot.log
        if not self._alive or log is None or self.assignments is None:
            return
        try:
            task = await self.assignments.get(log.assigned_task_id)
        except TimeTrackingError as exc:
            logger.warning("Could not refresh active task %s: %s", log.assigned_task_id, exc)
            return
        if self._alive and self.snapshot.log is log:
            self._set(ActiveSessionSnapshot(log=log, task=task, elapsed_seconds=self.snapshot.elapsed_seconds))

    # ----- Actions -----
    async def start(self, assigned_task_id: str) -> TimeLog:
        log = await self.controller.start_session(assigned_task_id, self._require_user())
        await self.reload()
        return log

    async def resume(self, assigned_task_id: str) -> TimeLog:
        log = await self.controller.resume_session(assigned_task_id, self._require_user())
        await self.reload()
        return log

    async def pause(self) -> TimeLog:
        return await self._close_active(self.controller.pause_session)

    async def stop(self) -> TimeLog:
        return await self._close_active(self.controller.stop_session)

    async def _close_active(self, close) -> TimeLog:
        confirmed = self.snapshot
        if confirmed.log is None:
            raise NotFoundError("No task in progress")
        # Optimistically show the session as closed; roll back on failure
        self._set(EMPTY_SNAPSHOT)
        try:
            closed = await close(confirmed.log.id)
        except TimeTrackingError:
            if self._alive:
                self._set(confirmed)
            raise
        await self.reload()
        return closed

    def _require_user(self) -> str:
        if self.user_id is None:
            raise NotFoundError("No signed-in user")
        return self.user_id

    # ----- Ticking -----
    def _elapsed(self, log: Optional[TimeLog]) -> int:
        if log is None:
            return 0
        return max(0, whole_seconds_between(log.start_time, self.clock()))

    def tick(self) -> None:
        log = self.snapshot.log
        if not self._alive or log is None:
            return
        self._set(ActiveSessionSnapshot(log=log, task=self.snapshot.task, elapsed_seconds=self._elapsed(log)))

    async def _run_ticker(self) -> None:
        while True:
            await asyncio.sleep(self.tick_seconds)
            self.tick()

    def _sync_ticker(self) -> None:
        running = self._ticker is not None and not self._ticker.done()
        if self.snapshot.log is not None and not running:
            self._ticker = asyncio.create_task(self._run_ticker())
        elif self.snapshot.log is None and running:
            self._ticker.cancel()
            self._ticker = None

    async def _stop_ticker(self) -> None:
        if self._ticker is None:
            return
        self._ticker.cancel()
        try:
            await self._ticker
        except asyncio.CancelledError:
            pass
        self._ticker = None
