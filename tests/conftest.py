from __future__ import annotations

import pytest
from fastapi.testclient import TestClient

from app.api.deps import get_assignment_store, get_clock, get_time_log_store
from app.services.session_controller import SessionController
from app.services.time_stats import TimeStatsService
from main import app

from .fakes import FakeAssignmentStore, FakeClock, FakeTimeLogStore


@pytest.fixture()
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture()
def time_logs() -> FakeTimeLogStore:
    return FakeTimeLogStore()


@pytest.fixture()
def assignments() -> FakeAssignmentStore:
    return FakeAssignmentStore()


@pytest.fixture()
def controller(time_logs: FakeTimeLogStore, clock: FakeClock) -> SessionController:
    return SessionController(time_logs, clock)


@pytest.fixture()
def stats_service(time_logs: FakeTimeLogStore, clock: FakeClock) -> TimeStatsService:
    return TimeStatsService(time_logs, clock)


@pytest.fixture()
def client(time_logs: FakeTimeLogStore, assignments: FakeAssignmentStore, clock: FakeClock):
    """TestClient wired to the in-memory stores. Startup hooks are not run."""
    app.dependency_overrides[get_time_log_store] = lambda: time_logs
    app.dependency_overrides[get_assignment_store] = lambda: assignments
    app.dependency_overrides[get_clock] = lambda: clock
    try:
        yield TestClient(app)
    finally:
        app.dependency_overrides.clear()
