from fastapi import FastAPI, Request, status
from fastapi.responses import JSONResponse


class TimeTrackingError(Exception):
    """Base class for failures surfaced by the time-tracking engine."""

    status_code = status.HTTP_400_BAD_REQUEST

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message


class AlreadyActiveError(TimeTrackingError):
    """The user already holds an open session somewhere in the system."""

    status_code = status.HTTP_409_CONFLICT


class NotFoundError(TimeTrackingError):
    status_code = status.HTTP_404_NOT_FOUND


class PersistenceError(TimeTrackingError):
    """The underlying store rejected or failed an operation."""

    status_code = status.HTTP_503_SERVICE_UNAVAILABLE


async def _time_tracking_error_handler(request: Request, exc: TimeTrackingError) -> JSONResponse:
    return JSONResponse(status_code=exc.status_code, content={"detail": exc.message})


def register_error_handlers(app: FastAPI) -> None:
    app.add_exception_handler(TimeTrackingError, _time_tracking_error_handler)
