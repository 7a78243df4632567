from contextlib import asynccontextmanager
import asyncio
import logging

from fastapi import FastAPI, Request, status
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from app.api.router import api_router
from app.core.config import configure_logging, get_settings
from app.core.db import AsyncSessionFactory, init_database, test_database_connection
from app.core.errors import NotFound, PartnerHubError, PermissionDenied, StateConflict, ValidationFailed
from app.services.commission_rates import CommissionRateService
from app.services.notification_events import register_notification_handlers

settings = get_settings()
configure_logging(settings)
logger = logging.getLogger(__name__)

ERROR_STATUS_CODES = [
    (ValidationFailed, status.HTTP_422_UNPROCESSABLE_ENTITY),
    (StateConflict, status.HTTP_409_CONFLICT),
    (NotFound, status.HTTP_404_NOT_FOUND),
    (PermissionDenied, status.HTTP_403_FORBIDDEN),
]


def status_code_for(exc: PartnerHubError) -> int:
    for error_class, status_code in ERROR_STATUS_CODES:
        if isinstance(exc, error_class):
            return status_code
    return status.HTTP_400_BAD_REQUEST


async def seed_business_types() -> None:
    """Seed the commission rate table if empty."""
    async with AsyncSessionFactory() as db:
        await CommissionRateService(db).seed_business_types()


db_initialized = False
db_error: str | None = None


@asynccontextmanager
async def lifespan(_: FastAPI):
    global db_initialized, db_error
    logger.info("[LIFESPAN] Starting application initialization...")

    try:
        logger.info("[LIFESPAN] Testing database connection...")
        if not await test_database_connection():
            db_error = "Database connection failed"
            logger.error(f"[LIFESPAN] {db_error}")
        else:
            await asyncio.wait_for(init_database(), timeout=30.0)
            if settings.seed_business_types:
                await asyncio.wait_for(seed_business_types(), timeout=10.0)
            db_initialized = True
            logger.info("[LIFESPAN] Database initialization complete")
    except asyncio.TimeoutError:
        db_error = "Database initialization timed out"
        logger.error(f"[LIFESPAN] {db_error}")

    register_notification_handlers()

    logger.info("[LIFESPAN] Application startup complete - ready to accept requests")
    yield
    logger.info("[LIFESPAN] Shutdown complete")


app = FastAPI(
    title=settings.project_name,
    debug=settings.debug,
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.backend_cors_origins,
    allow_credentials=True,
    allow_methods=["GET", "POST", "PUT", "PATCH", "DELETE", "OPTIONS"],
    allow_headers=["Content-Type", "Authorization", "Accept", "Origin", "X-Requested-With"],
)


@app.exception_handler(PartnerHubError)
async def partnerhub_error_handler(request: Request, exc: PartnerHubError) -> JSONResponse:
    status_code = status_code_for(exc)
    if status_code == status.HTTP_409_CONFLICT:
        logger.info(f"{request.method} {request.url.path} conflict: {exc.code} {exc.message}")
    return JSONResponse(status_code=status_code, content={"detail": exc.message, "code": exc.code})


app.include_router(api_router, prefix="/api")


@app.get("/health", tags=["Health"])
async def health_check() -> dict:
    """Health check endpoint - responds immediately, reports database status."""
    return {
        "status": "ok",
        "service": settings.project_name,
        "database_ready": db_initialized,
        "database_error": db_error,
    }


@app.get("/ready", tags=["Health"])
async def readiness_check() -> dict:
    """Readiness check - only returns ok when database is ready."""
    from fastapi import HTTPException
    if not db_initialized:
        raise HTTPException(
            status_code=503,
            detail={"status": "not_ready", "database_ready": False, "error": db_error}
        )
    return {"status": "ready", "database_ready": True}
