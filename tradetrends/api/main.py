"""TradeTrends API — affiliate redirects, click analytics and trend snapshots."""
from __future__ import annotations

import logging

from tradetrends.logging_config import setup_logging
setup_logging()
from contextlib import asynccontextmanager

from fastapi import Depends, FastAPI, HTTPException, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from config.settings import settings
from tradetrends.api.deps import get_store
from tradetrends.db.engine import dispose_engine
from tradetrends.services.analytics import initialize_analytics
from tradetrends.storage import DatabaseStore, KeyValueStore

# ── Sentry Error Tracking ────────────────────────
if settings.SENTRY_DSN:
    import sentry_sdk
    from sentry_sdk.integrations.fastapi import FastApiIntegration
    from sentry_sdk.integrations.logging import LoggingIntegration
    from sentry_sdk.integrations.sqlalchemy import SqlalchemyIntegration

    sentry_sdk.init(
        dsn=settings.SENTRY_DSN,
        environment=settings.SENTRY_ENVIRONMENT,
        traces_sample_rate=settings.SENTRY_TRACES_SAMPLE_RATE,
        integrations=[
            FastApiIntegration(),
            SqlalchemyIntegration(),
            LoggingIntegration(level=logging.WARNING, event_level=logging.ERROR),
        ],
        # Never ship the loop cookie or raw client IPs
        send_default_pii=False,
        before_send=lambda event, hint: (
            {**event, "request": {**event.get("request", {}), "cookies": None}}
            if "request" in event else event
        ),
    )

logger = logging.getLogger(__name__)

VERSION = "1.0.0"


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Validate config, prepare storage and seed the analytics keys."""
    from tradetrends.startup_checks import validate_settings
    validate_settings()

    store = app.dependency_overrides.get(get_store, get_store)()
    if isinstance(store, DatabaseStore):
        try:
            await store.create_tables()
            logger.info("Database tables ready")
        except Exception:
            logger.exception("Could not create kv_store table — storage calls will fail soft")
    if await initialize_analytics(store):
        logger.info("Analytics storage initialized")

    yield

    logger.info("Shutting down — draining connections...")
    await dispose_engine()
    logger.info("Shutdown complete")


app = FastAPI(
    title="TradeTrends API",
    version=VERSION,
    description="Tracked affiliate redirects and click analytics for TradeTrends deals",
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.CORS_ORIGINS,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Security headers — outermost layer
from tradetrends.middleware.security_headers import SecurityHeadersMiddleware
app.add_middleware(SecurityHeadersMiddleware)

# Prometheus metrics
from tradetrends.middleware.metrics import MetricsMiddleware
app.add_middleware(MetricsMiddleware)

# Request ID tracing
from tradetrends.middleware.request_id import RequestIDMiddleware
app.add_middleware(RequestIDMiddleware)


# ---- Routes ----
from tradetrends.api.go import router as go_router
app.include_router(go_router)

from tradetrends.api.analytics import router as analytics_router
app.include_router(analytics_router)

from tradetrends.api.trends import router as trends_router
app.include_router(trends_router)

from tradetrends.api.resolve import router as resolve_router
app.include_router(resolve_router)

from tradetrends.api.admin import router as admin_router
app.include_router(admin_router)


@app.get("/health")
async def health(store: KeyValueStore = Depends(get_store)):
    """Liveness plus the storage backend in use."""
    return {"status": "ok", "storage": type(store).__name__, "version": VERSION}


@app.get("/ready")
async def readiness(store: KeyValueStore = Depends(get_store)):
    """Readiness probe for orchestrators.

    Returns 503 if storage cannot take a write.
    """
    if not await store.set("health:probe", {"ok": True}):
        return JSONResponse(status_code=503, content={"ready": False, "reason": "storage unavailable"})
    return {"ready": True}


# --- Structured Error Responses ---

@app.exception_handler(RequestValidationError)
async def validation_error_handler(request: Request, exc: RequestValidationError):
    """Return clean, structured validation errors instead of raw Pydantic output."""
    errors = []
    for err in exc.errors():
        field = " → ".join(str(loc) for loc in err["loc"]) if err.get("loc") else "unknown"
        errors.append({"field": field, "message": err["msg"]})
    return JSONResponse(status_code=422, content={
        "error": "validation_error",
        "message": "Invalid request data",
        "details": errors,
    })


@app.exception_handler(HTTPException)
async def http_error_handler(request: Request, exc: HTTPException):
    """Consistent error envelope for all HTTP errors."""
    return JSONResponse(status_code=exc.status_code, content={
        "error": exc.detail if isinstance(exc.detail, str) else "error",
        "message": exc.detail,
    }, headers=getattr(exc, "headers", None))


@app.exception_handler(Exception)
async def unhandled_error_handler(request: Request, exc: Exception):
    """Catch-all for unhandled exceptions — never leak stack traces."""
    logger.exception("Unhandled error on %s %s", request.method, request.url.path)
    return JSONResponse(status_code=500, content={
        "error": "internal_error",
        "message": "Something went wrong. Please try again.",
    })
