from motor.motor_asyncio import AsyncIOMotorDatabase
from app.db.mongo import get_mongo_db


async def ensure_indexes(db: AsyncIOMotorDatabase | None = None) -> None:
    """Create required MongoDB indexes (idempotent)."""
    if db is None:
        db = get_mongo_db()

    time_logs = db["task_time_logs"]
    # Open-session lookup per user
    await time_logs.create_index(
        [("user_id", 1), ("log_status", 1), ("start_time", -1)],
        name="idx_tl_user_status_start",
    )
    # History per task, newest first
    await time_logs.create_index(
        [("assigned_task_id", 1), ("start_time", -1)],
        name="idx_tl_task_start",
    )
    # At most one open session per user. A row is in_progress exactly while
    # end_time is null: closing sets both fields in a single update.
    await time_logs.create_index(
        [("user_id", 1)],
        unique=True,
        partialFilterExpression={"log_status": "in_progress"},
        name="uniq_open_log_per_user",
    )

    assigned_tasks = db["assigned_tasks"]
    await assigned_tasks.create_index([("executor_id", 1), ("is_active", 1)], name="idx_at_executor_active")
    await assigned_tasks.create_index([("client_id", 1)], name="idx_at_client")
