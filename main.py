import logging
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from app.core.config import settings
from app.core.errors import register_error_handlers
from app.api.v1.time_logs import router as time_logs_router
from app.api.v1.assigned_tasks import router as assigned_tasks_router
from app.db.mongo import get_mongo_client, close_mongo_client
from app.db.mongo_indexes import ensure_indexes

logging.getLogger("uvicorn.error").setLevel(settings.LOG_LEVEL)

app = FastAPI(title="TaskClock Backend")

# CORS: local frontend dev plus configured origins
_base_origins = {
    "http://localhost:5173",
    "http://127.0.0.1:5173",
}
if settings.FRONTEND_BASE_URL:
    _base_origins.add(settings.FRONTEND_BASE_URL)
for o in settings.ALLOWED_ORIGINS:
    _base_origins.add(o)
# Normalize by stripping trailing slashes to match Origin header format
_allowed_origins = sorted({o.rstrip('/') for o in _base_origins if o})

app.add_middleware(
    CORSMiddleware,
    allow_origins=_allowed_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

register_error_handlers(app)


@app.get("/health")
def health_check():
    return {"status": "ok"}


# Mount API routers
app.include_router(time_logs_router, prefix="/api/v1")
app.include_router(assigned_tasks_router, prefix="/api/v1")


@app.on_event("startup")
async def on_startup():
    get_mongo_client()
    # Create required indexes (non-fatal on failure)
    try:
        await ensure_indexes()
    except Exception as exc:
        logging.getLogger("uvicorn.error").warning(
            "Mongo index initialization failed: %s", exc
        )


@app.on_event("shutdown")
async def on_shutdown():
    close_mongo_client()
