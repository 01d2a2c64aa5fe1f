from contextlib import asynccontextmanager
import logging
from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from fastapi.encoders import jsonable_encoder
import sentry_sdk
from slowapi.errors import RateLimitExceeded

from planner.config import get_settings
from planner.database import init_db, dispose_db, async_session_maker
from planner.errors import PlannerError, ConflictError
from planner.rate_limiter import limiter
from planner.api import timeblocks, channels, tasks, sync, focus_sessions
from planner.schemas.timeblock import TimeBlockResponse
from planner.services.sync_scheduler import SyncScheduler

logger = logging.getLogger(__name__)

settings = get_settings()

# Initialize Sentry if DSN is provided
if settings.sentry_dsn:
    sentry_sdk.init(
        dsn=settings.sentry_dsn,
        environment=settings.environment,
        traces_sample_rate=0.1,
    )


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan handler."""
    # Startup
    await init_db()

    sync_scheduler = SyncScheduler(async_session_maker)
    if settings.calendar_poll_enabled:
        sync_scheduler.start()
    app.state.sync_scheduler = sync_scheduler

    yield

    # Shutdown
    sync_scheduler.stop()
    await dispose_db()


app = FastAPI(
    title="Planner API",
    description="Tasks, time blocks and calendar sync for personal planning",
    version="1.0.0",
    lifespan=lifespan,
    docs_url="/docs" if settings.environment == "development" else None,
    redoc_url="/redoc" if settings.environment == "development" else None,
    openapi_url="/openapi.json" if settings.environment == "development" else None,
)

app.state.limiter = limiter


def _error_response(status_code: int, message: str, details=None, **extra) -> JSONResponse:
    body = {"message": message, "details": details, **extra}
    return JSONResponse(status_code=status_code, content=jsonable_encoder({"error": body}))


@app.exception_handler(RateLimitExceeded)
async def rate_limit_handler(request: Request, exc: RateLimitExceeded):
    return JSONResponse(
        status_code=429,
        content={
            "detail": "Rate limit exceeded. Please slow down.",
            "retry_after": exc.detail,
        },
    )


@app.exception_handler(RequestValidationError)
async def request_validation_handler(request: Request, exc: RequestValidationError):
    details = [
        {"message": error.get("msg"), "path": list(error.get("loc", []))}
        for error in exc.errors()
    ]
    return _error_response(status.HTTP_400_BAD_REQUEST, "Validation failed", details)


@app.exception_handler(ConflictError)
async def conflict_handler(request: Request, exc: ConflictError):
    conflict = None
    if exc.conflict is not None:
        conflict = TimeBlockResponse.model_validate(exc.conflict).model_dump(mode="json", by_alias=True)
    return _error_response(
        exc.status_code,
        exc.message,
        exc.details,
        conflict=conflict,
        windowExhausted=exc.window_exhausted,
        retryable=exc.retryable,
    )


@app.exception_handler(PlannerError)
async def planner_error_handler(request: Request, exc: PlannerError):
    if exc.status_code >= 500:
        logger.error(f"Unhandled planner error on {request.url.path}: {exc.message}")
    return _error_response(exc.status_code, exc.message, exc.details)


app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["GET", "POST", "PUT", "DELETE", "PATCH", "OPTIONS"],
    allow_headers=["Authorization", "Content-Type", "Accept"],
)

# Include routers
app.include_router(timeblocks.router, prefix="/timeblocks", tags=["Time Blocks"])
app.include_router(channels.router, prefix="/channels", tags=["Channels"])
app.include_router(tasks.router, prefix="/tasks", tags=["Tasks"])
app.include_router(focus_sessions.router, prefix="/focus-sessions", tags=["Focus Sessions"])
app.include_router(sync.router, prefix="/sync/providers/google", tags=["Calendar Sync"])


@app.get("/health")
@limiter.exempt
async def health_check(request: Request):
    """Health check endpoint."""
    return {"status": "healthy", "version": "1.0.0"}
