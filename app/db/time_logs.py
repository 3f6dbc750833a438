from __future__ import annotations

from contextlib import contextmanager
from datetime import datetime
from typing import Iterator, Optional

from bson import ObjectId
from bson.errors import InvalidId
from motor.motor_asyncio import AsyncIOMotorDatabase
from pymongo import DESCENDING
from pymongo.errors import DuplicateKeyError, PyMongoError

from app.core.errors import NotFoundError, PersistenceError
from app.core.status import LogAction, LogStatus
from app.schemas.time_log_schema import TimeLog


def to_object_id(value: str, kind: str) -> ObjectId:
    try:
        return ObjectId(value)
    except (InvalidId, TypeError) as exc:
        raise NotFoundError(f"{kind} {value!r} not found") from exc


@contextmanager
def store_errors(operation: str) -> Iterator[None]:
    """Translate driver failures into PersistenceError.

    DuplicateKeyError is let through untouched: it carries a business meaning
    (the open-session unique index) that callers translate themselves.
    """
    try:
        yield
    except DuplicateKeyError:
        raise
    except PyMongoError as exc:
        raise PersistenceError(f"Failed to {operation}: {exc}") from exc


def _to_time_log(doc: dict) -> TimeLog:
    return TimeLog(
        id=str(doc["_id"]),
        assigned_task_id=str(doc["assigned_task_id"]),
        user_id=str(doc["user_id"]),
        start_time=doc["start_time"],
        end_time=doc.get("end_time"),
        log_status=doc["log_status"],
        duration_minutes=doc.get("duration_minutes"),
        action=doc.get("action"),
    )


class TimeLogStore:
    """Access to the task_time_logs collection.

    Rows are only ever inserted and closed; nothing here deletes or reopens.
    """

    collection_name = "task_time_logs"

    def __init__(self, db: AsyncIOMotorDatabase) -> None:
        self._coll = db[self.collection_name]

    def _open_query(self, **match) -> dict:
        return {**match, "log_status": LogStatus.in_progress.value, "end_time": None}

    async def find_open_for_user(self, user_id: str) -> Optional[TimeLog]:
        with store_errors("load open time log for user"):
            doc = await self._coll.find_one(
                self._open_query(user_id=user_id),
                sort=[("start_time", DESCENDING)],
            )
        return _to_time_log(doc) if doc else None

    async def find_open_for_task(self, assigned_task_id: str) -> Optional[TimeLog]:
        task_oid = to_object_id(assigned_task_id, "Assigned task")
        with store_errors("load open time log for task"):
            doc = await self._coll.find_one(
                self._open_query(assigned_task_id=task_oid),
                sort=[("start_time", DESCENDING)],
            )
        return _to_time_log(doc) if doc else None

    async def get(self, log_id: str) -> Optional[TimeLog]:
        oid = to_object_id(log_id, "Time log")
        with store_errors("load time log"):
            doc = await self._coll.find_one({"_id": oid})
        return _to_time_log(doc) if doc else None

    async def list_for_task(self, assigned_task_id: str) -> list[TimeLog]:
        task_oid = to_object_id(assigned_task_id, "Assigned task")
        items: list[TimeLog] = []
        with store_errors("list time logs"):
            cursor = self._coll.find({"assigned_task_id": task_oid}).sort(
                [("start_time", DESCENDING), ("_id", DESCENDING)]
            )
            async for doc in cursor:
                items.append(_to_time_log(doc))
        return items

    async def insert(
        self,
        assigned_task_id: str,
        user_id: str,
        start_time: datetime,
        action: LogAction,
    ) -> TimeLog:
        doc = {
            "assigned_task_id": to_object_id(assigned_task_id, "Assigned task"),
            "user_id": user_id,
            "start_time": start_time,
            "end_time": None,
            "log_status": LogStatus.in_progress.value,
            "duration_minutes": None,
            "action": action.value,
            "created_at": start_time,
            "updated_at": start_time,
        }
        with store_errors("create time log"):
            res = await self._coll.insert_one(doc)
        doc["_id"] = res.inserted_id
        return _to_time_log(doc)

    async def close(
        self,
        log_id: str,
        *,
        end_time: datetime,
        log_status: LogStatus,
        duration_minutes: int,
        action: LogAction,
    ) -> bool:
        """Close an open row. Returns False if no open row matched."""
        oid = to_object_id(log_id, "Time log")
        with store_errors("close time log"):
            res = await self._coll.update_one(
                {"_id": oid, "end_time": None},
                {"$set": {
                    "end_time": end_time,
                    "log_status": log_status.value,
                    "duration_minutes": duration_minutes,
                    "action": action.value,
                    "updated_at": end_time,
                }},
            )
        return res.matched_count == 1
