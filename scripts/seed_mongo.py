from __future__ import annotations

import asyncio
from datetime import datetime, timedelta, timezone
from typing import Sequence

from bson import ObjectId

from app.db.mongo import get_mongo_db, close_mongo_client
from app.db.mongo_indexes import ensure_indexes


async def seed_tasks(db) -> list[ObjectId]:
    now = datetime.now(timezone.utc)
    templates: Sequence[tuple[str, str, int]] = [
        ("6562a0f0a0a0a0a0a0a0b001", "Monthly VAT return", 7),
        ("6562a0f0a0a0a0a0a0a0b002", "Payroll report", -2),
        ("6562a0f0a0a0a0a0a0a0b003", "Annual balance sheet", 30),
    ]
    ids = []
    for raw_id, name, days in templates:
        oid = ObjectId(raw_id)  # stable ids for idempotence
        await db["tasks"].update_one(
            {"_id": oid},
            {"$setOnInsert": {
                "_id": oid,
                "task_name": name,
                "planned_date": now + timedelta(days=days),
                "created_at": now,
            }},
            upsert=True,
        )
        ids.append(oid)
    return ids


async def seed_assigned_tasks(db, task_ids: list[ObjectId]) -> None:
    now = datetime.now(timezone.utc)
    client_id = ObjectId("6562a0f0a0a0a0a0a0a0c001")
    executors = ["demo-user", "demo-user", None]
    for i, (task_id, executor_id) in enumerate(zip(task_ids, executors)):
        oid = ObjectId(f"6562a0f0a0a0a0a0a0a0d{i + 1:03d}")
        await db["assigned_tasks"].update_one(
            {"_id": oid},
            {"$setOnInsert": {
                "_id": oid,
                "task_id": task_id,
                "client_id": client_id,
                "executor_id": executor_id,
                "is_active": True,
                "task_status": None,
                "completion_date": None,
                "completion_time_minutes": None,
                "created_at": now,
                "updated_at": now,
            }},
            upsert=True,
        )


async def main() -> None:
    db = get_mongo_db()
    await ensure_indexes(db)
    task_ids = await seed_tasks(db)
    await seed_assigned_tasks(db, task_ids)
    close_mongo_client()
    print("Seed complete")


if __name__ == "__main__":
    asyncio.run(main())
