"""
RutaPay - Main FastAPI Application
"""
from fastapi import Depends, FastAPI
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from rutapay.core.config import settings
from rutapay.core.logging import setup_logging, get_logger
from rutapay.core.middleware import setup_middleware, setup_exception_handlers
from rutapay.api.routes import router as api_router
from rutapay.db.database import engine, Base, AsyncSessionLocal, get_db
from rutapay.db import models  # noqa: F401  registers every table on Base.metadata
from rutapay.domain.services.driver_service import DriverService
from rutapay.domain.services.outbox_service import OutboxService

setup_logging(
    level="DEBUG" if settings.DEBUG else "INFO",
    json_format=not settings.DEBUG,
    app_name=settings.APP_NAME
)

logger = get_logger(__name__)

_DEV_ORIGINS = ["http://localhost:5173", "http://localhost:3000", "http://127.0.0.1:5173"]

_OPENAPI_TAGS = [
    {"name": "payments", "description": "Fare payments from passengers to drivers."},
    {"name": "recharges", "description": "Wallet top-up requests and admin approval."},
    {"name": "notifications", "description": "Per-user notification log and read state."},
    {"name": "drivers", "description": "Driver creation and collected fares."},
    {"name": "Health", "description": "Liveness and readiness probes."},
]


def _parse_allowed_origins(raw: str) -> list[str]:
    return [origin.strip() for origin in raw.split(",") if origin.strip()]


app = FastAPI(
    title=settings.APP_NAME,
    version="1.0.0",
    description="Wallet, fare payment and recharge approval API for a minibus route association.",
    openapi_tags=_OPENAPI_TAGS,
)

setup_middleware(app)
setup_exception_handlers(app)

allowed_origins = _parse_allowed_origins(settings.ALLOWED_ORIGINS) or (_DEV_ORIGINS if settings.DEBUG else [])
if allowed_origins:
    app.add_middleware(
        CORSMiddleware,
        allow_origins=allowed_origins,
        allow_credentials=True,
        allow_methods=["GET", "POST", "PUT", "OPTIONS"],
        allow_headers=["Authorization", "Content-Type", "X-Correlation-ID"],
    )

app.include_router(api_router, prefix="/api")


@app.on_event("startup")
async def startup() -> None:
    logger.info(
        "Starting application",
        extra_data={
            "app_name": settings.APP_NAME,
            "payment_debits_wallet": settings.PAYMENT_DEBITS_WALLET,
            "driver_code_start": settings.DRIVER_CODE_START,
        }
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    logger.info("Database tables initialized")

    async with AsyncSessionLocal() as session:
        last_code = await DriverService(session).ensure_code_counter()
    logger.info("Driver code counter ready", extra_data={"last_code": last_code})


@app.on_event("shutdown")
async def shutdown() -> None:
    await engine.dispose()
    logger.info("Database connections disposed")


@app.get("/health", tags=["Health"])
async def health_check() -> dict[str, str]:
    """Liveness probe; touches no dependency"""
    return {"status": "healthy"}


@app.get("/health/ready", tags=["Health"])
async def readiness_check(db: AsyncSession = Depends(get_db)) -> JSONResponse:
    """
    Readiness probe: database reachable, plus the notification backlog.

    A growing ``outbox.failed`` count means notifications stopped reaching
    users; it does not make the service unready.
    """
    try:
        await db.execute(text("SELECT 1"))
        backlog = await OutboxService(db).backlog()
    except SQLAlchemyError as e:
        logger.error("Readiness check failed", extra_data={"error": str(e)}, exc_info=True)
        return JSONResponse(status_code=503, content={"status": "degraded", "db": "error"})
    return JSONResponse(content={"status": "healthy", "db": "ok", "outbox": backlog})
