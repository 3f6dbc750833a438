from __future__ import annotations

import logging
from datetime import datetime
from typing import Iterable, Optional

from app.core.errors import TimeTrackingError
from app.core.status import LogStatus
from app.db.time_logs import TimeLogStore
from app.schemas.time_log_schema import TaskTimeStats, TimeLog
from app.utils.time import Clock, as_utc, utc_now, whole_minutes_between

logger = logging.getLogger("uvicorn.error")


def _closed_minutes(logs: Iterable[TimeLog]) -> int:
    return sum(log.duration_minutes or 0 for log in logs if not log.is_open)


def fold_time_logs(logs: list[TimeLog], now: datetime) -> TaskTimeStats:
    """Fold the full session history of one task into its current stats.

    Precedence: an open row wins, then a paused latest row, then any
    completed row; no rows at all means the task has not been tracked.
    """
    open_log = next((log for log in logs if log.is_open), None)
    if open_log is not None:
        live = max(0, whole_minutes_between(open_log.start_time, now))
        return TaskTimeStats(
            status=LogStatus.in_progress,
            total_minutes=_closed_minutes(logs) + live,
        )

    if not logs:
        return TaskTimeStats()

    total = _closed_minutes(logs)
    latest = max(logs, key=lambda log: (as_utc(log.start_time), log.id))
    if latest.log_status == LogStatus.paused:
        return TaskTimeStats(status=LogStatus.paused, total_minutes=total)

    completed = [log for log in logs if log.log_status == LogStatus.completed]
    if completed:
        last = max(completed, key=lambda log: (as_utc(log.end_time or log.start_time), log.id))
        return TaskTimeStats(
            status=LogStatus.completed,
            total_minutes=total,
            completion_date=as_utc(last.end_time).date() if last.end_time else None,
        )

    return TaskTimeStats()


class TimeStatsService:
    def __init__(self, store: TimeLogStore, clock: Clock = utc_now) -> None:
        self.store = store
        self.clock = clock

    async def compute_task_time_stats(self, assigned_task_id: str) -> TaskTimeStats:
        # Full history is read fresh on every call; read errors degrade to
        # empty stats.
        try:
            logs = await self.store.list_for_task(assigned_task_id)
        except TimeTrackingError as exc:
            logger.warning("Time stats unavailable for task %s: %s", assigned_task_id, exc)
            return TaskTimeStats()
        return fold_time_logs(logs, self.clock())


def effective_minutes(stats: TaskTimeStats, completion_time_minutes: Optional[int]) -> int:
    """Tracked minutes when the task has sessions, else the manually entered figure."""
    if stats.status is not None:
        return stats.total_minutes
    return completion_time_minutes or 0
