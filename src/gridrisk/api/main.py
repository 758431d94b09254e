"""
FastAPI Main Application

GridRisk Monitor REST API.
"""
import uuid
from contextlib import asynccontextmanager
from datetime import datetime, timezone

from fastapi import FastAPI, Depends, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from sqlalchemy.orm import Session

from config.settings import settings
from src.gridrisk import __version__
from src.gridrisk.api.dependencies import get_db
from src.gridrisk.api.schemas import HealthCheck
from src.gridrisk.api.routers import activities, analysis, files, notifications, reports, search
from src.gridrisk.db.session import close_connections, health_check as database_health_check
from src.gridrisk.exceptions import (
    GridRiskError,
    InvalidFilterError,
    InvalidReportStateError,
    NotFoundError,
    PermissionDeniedError,
    StorageError,
)
from src.gridrisk.utils.logger import bind_request_context, get_logger, setup_logging

setup_logging()
logger = get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    logger.info("api_starting", version=__version__, environment=settings.environment)
    yield
    close_connections()


# Create FastAPI app
app = FastAPI(
    lifespan=lifespan,
    title="GridRisk Monitor API",
    description="REST API for utility consumer risk reports, search and notifications",
    version=__version__,
    docs_url="/docs",
    redoc_url="/redoc",
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.middleware("http")
async def request_logging_context(request: Request, call_next):
    request_id = request.headers.get("X-Request-Id") or uuid.uuid4().hex
    bind_request_context(
        request_id=request_id,
        method=request.method,
        path=request.url.path,
        user_id=request.headers.get("X-User-Id"),
    )
    response = await call_next(request)
    response.headers["X-Request-Id"] = request_id
    return response


# Include routers
app.include_router(reports.router)
app.include_router(search.router)
app.include_router(notifications.router)
app.include_router(files.router)
app.include_router(analysis.router)
app.include_router(activities.router)

_ERROR_STATUS = (
    (NotFoundError, 404),
    (InvalidFilterError, 422),
    (InvalidReportStateError, 409),
    (StorageError, 400),
    (PermissionDeniedError, 403),
)


@app.exception_handler(GridRiskError)
def handle_domain_error(request: Request, exc: GridRiskError):
    status_code = next((code for error, code in _ERROR_STATUS if isinstance(exc, error)), 500)
    if status_code >= 500:
        logger.error("request_failed", path=request.url.path, error=str(exc), error_type=type(exc).__name__)
    return JSONResponse(status_code=status_code, content={"detail": str(exc)})


@app.get("/health", response_model=HealthCheck, tags=["health"])
def health_check(db: Session = Depends(get_db)):
    """
    Health check endpoint.

    Returns:
        Health status with database connectivity check
    """
    connected = database_health_check(db)

    return HealthCheck(
        status="healthy" if connected else "degraded",
        version=__version__,
        database="connected" if connected else "unavailable",
        timestamp=datetime.now(timezone.utc),
    )


@app.get("/", tags=["root"])
def root():
    """
    Root endpoint.

    Returns:
        API information
    """
    return {
        "name": "GridRisk Monitor API",
        "version": __version__,
        "docs": "/docs",
        "health": "/health",
        "features": [
            "Risk Reports",
            "Unit Search",
            "Risk Alert Notifications",
            "File Storage",
        ]
    }


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "src.gridrisk.api.main:app",
        host="0.0.0.0",
        port=8000,
        reload=True,
    )
