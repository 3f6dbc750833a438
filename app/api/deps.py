from fastapi import Depends
from motor.motor_asyncio import AsyncIOMotorDatabase

from app.db.assigned_tasks import AssignmentStore
from app.db.mongo import get_mongo_db
from app.db.time_logs import TimeLogStore
from app.services.active_session import ActiveSessionManager
from app.services.session_controller import SessionController
from app.services.time_stats import TimeStatsService
from app.utils.time import Clock, utc_now


def get_clock() -> Clock:
    return utc_now


def get_time_log_store(db: AsyncIOMotorDatabase = Depends(get_mongo_db)) -> TimeLogStore:
    return TimeLogStore(db)


def get_assignment_store(db: AsyncIOMotorDatabase = Depends(get_mongo_db)) -> AssignmentStore:
    return AssignmentStore(db)


def get_session_controller(
    store: TimeLogStore = Depends(get_time_log_store),
    clock: Clock = Depends(get_clock),
) -> SessionController:
    return SessionController(store, clock)


def get_time_stats_service(
    store: TimeLogStore = Depends(get_time_log_store),
    clock: Clock = Depends(get_clock),
) -> TimeStatsService:
    return TimeStatsService(store, clock)


async def get_active_session_manager(
    controller: SessionController = Depends(get_session_controller),
    assignments: AssignmentStore = Depends(get_assignment_store),
    clock: Clock = Depends(get_clock),
):
    # One manager per request; closing it stops the ticker
    manager = ActiveSessionManager(controller, assignments, clock=clock)
    try:
        yield manager
    finally:
        await manager.close()
