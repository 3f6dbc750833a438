from __future__ import annotations

import logging
from datetime import date, datetime
from typing import Any, Optional

from motor.motor_asyncio import AsyncIOMotorDatabase

from app.core.status import TaskStatus
from app.db.time_logs import store_errors, to_object_id
from app.schemas.assignment_schema import Assignment
from app.utils.time import utc_now

logger = logging.getLogger("uvicorn.error")


def _as_date(value: Any) -> Optional[date]:
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    return date.fromisoformat(str(value)[:10])


def _as_status(value: Any, assignment_id: str) -> Optional[TaskStatus]:
    if not value:
        return None
    try:
        return TaskStatus(value)
    except ValueError:
        logger.warning("Ignoring unknown task_status %r on assigned task %s", value, assignment_id)
        return None


def _ref(value: Any) -> Optional[str]:
    return str(value) if value is not None else None


def _to_assignment(doc: dict, template: Optional[dict]) -> Assignment:
    aid = str(doc["_id"])
    return Assignment(
        id=aid,
        task_id=str(doc.get("task_id")),
        client_id=str(doc.get("client_id")),
        executor_id=_ref(doc.get("executor_id")),
        is_active=bool(doc.get("is_active", True)),
        task_status=_as_status(doc.get("task_status"), aid),
        completion_date=_as_date(doc.get("completion_date")),
        completion_time_minutes=doc.get("completion_time_minutes"),
        planned_date=_as_date(template.get("planned_date")) if template else None,
    )


class AssignmentStore:
    """Read side of assigned tasks plus the two fields the engine may write."""

    def __init__(self, db: AsyncIOMotorDatabase) -> None:
        self._assigned = db["assigned_tasks"]
        self._tasks = db["tasks"]

    async def get(self, assigned_task_id: str) -> Optional[Assignment]:
        oid = to_object_id(assigned_task_id, "Assigned task")
        with store_errors("load assigned task"):
            doc = await self._assigned.find_one({"_id": oid})
            if not doc:
                return None
            template = None
            if doc.get("task_id") is not None:
                template = await self._tasks.find_one({"_id": doc["task_id"]}, {"planned_date": 1})
        return _to_assignment(doc, template)

    async def list_for_executor(self, user_id: str) -> list[Assignment]:
        with store_errors("list assigned tasks"):
            docs = [d async for d in self._assigned.find({"executor_id": user_id})]
            task_ids = list({d["task_id"] for d in docs if d.get("task_id") is not None})
            templates: dict = {}
            if task_ids:
                async for t in self._tasks.find({"_id": {"$in": task_ids}}, {"planned_date": 1}):
                    templates[t["_id"]] = t
        return [_to_assignment(d, templates.get(d.get("task_id"))) for d in docs]

    async def update(self, assigned_task_id: str, fields: dict) -> Optional[Assignment]:
        """Write task_status and/or is_active; other keys are ignored."""
        oid = to_object_id(assigned_task_id, "Assigned task")
        update: dict = {}
        if "task_status" in fields:
            status = fields["task_status"]
            update["task_status"] = status.value if isinstance(status, TaskStatus) else status
        if "is_active" in fields and fields["is_active"] is not None:
            update["is_active"] = bool(fields["is_active"])
        if update:
            update["updated_at"] = utc_now()
            with store_errors("update assigned task"):
                await self._assigned.update_one({"_id": oid}, {"$set": update})
        return await self.get(assigned_task_id)
