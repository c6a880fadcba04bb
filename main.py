"""
main.py
FastAPI application entry point.
Registers routers, middleware, exception handlers and startup/shutdown events.

Shutdown drains in-flight notification dispatch before the engine is
disposed, so a deploy does not silently drop notifications that were
already triggered.
"""

import logging
import time
import uuid
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.middleware.gzip import GZipMiddleware
from fastapi.responses import JSONResponse
from prometheus_fastapi_instrumentator import Instrumentator

from config.database import close_db, init_db, ping_db
from config.logging_config import configure_logging
from config.settings import settings
from shared.utils.background import dispatch_tracker
from shared.utils.errors import ServiceError

# Service routers
from services.booking.router import router as booking_router
from services.notification.router import router as notification_router

logger = logging.getLogger(__name__)


# ── Lifespan (startup/shutdown) ───────────────────────────────

@asynccontextmanager
async def lifespan(app: FastAPI):
    """Startup and shutdown lifecycle handler."""
    configure_logging()
    logger.info(f"Starting {settings.APP_NAME}...")

    await init_db()
    logger.info("Database connected")

    logger.info(f"{settings.APP_NAME} v{settings.APP_VERSION} is ready")
    yield

    cancelled = await dispatch_tracker.drain(timeout=settings.NOTIFICATION_DRAIN_TIMEOUT_SECONDS)
    if cancelled:
        logger.warning(f"{cancelled} notification task(s) were cancelled during shutdown")
    await close_db()
    logger.info("Server shutdown complete")


# ── App Factory ───────────────────────────────────────────────

def create_app() -> FastAPI:
    app = FastAPI(
        title=settings.APP_NAME,
        version=settings.APP_VERSION,
        description="""
## Booking Notifications API

- **Bookings**: status updates that fan out to customer and business notifications
- **Notifications**: direct sends by type and per-user channel settings

Notification delivery is best-effort: email via Resend, SMS via Twilio
(behind `SMS_DELIVERY_ENABLED`). Every attempted send is written to
`notification_logs`.
        """,
        docs_url="/docs",
        redoc_url="/redoc",
        openapi_url="/openapi.json",
        lifespan=lifespan,
    )

    # ── Middleware (order matters, outermost first) ────────────────
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.allowed_origins_list,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
        expose_headers=["X-Request-ID", "X-Process-Time"],
    )

    # GZip compression
    app.add_middleware(GZipMiddleware, minimum_size=500)

    # ── Custom Middleware ──────────────────────────────────────────

    @app.middleware("http")
    async def request_id_middleware(request: Request, call_next):
        """Add unique X-Request-ID to every request for tracing."""
        request_id = request.headers.get("X-Request-ID") or str(uuid.uuid4())
        request.state.request_id = request_id
        response = await call_next(request)
        response.headers["X-Request-ID"] = request_id
        return response

    @app.middleware("http")
    async def process_time_middleware(request: Request, call_next):
        """Track and expose request processing time."""
        start = time.perf_counter()
        response = await call_next(request)
        process_time = round((time.perf_counter() - start) * 1000, 2)
        response.headers["X-Process-Time"] = f"{process_time}ms"
        return response

    # ── Exception Handlers ─────────────────────────────────────────

    @app.exception_handler(ServiceError)
    async def service_error_handler(request: Request, exc: ServiceError):
        request_id = getattr(request.state, "request_id", None)
        if exc.status_code >= 500:
            logger.error(f"[{request_id}] {exc.message}: {exc.details}")
        else:
            logger.info(f"[{request_id}] {exc.status_code} {exc.message}")
        return JSONResponse(status_code=exc.status_code, content=exc.to_dict())

    @app.exception_handler(Exception)
    async def global_exception_handler(request: Request, exc: Exception):
        """Catch-all exception handler. Never expose stack traces in production."""
        request_id = getattr(request.state, "request_id", None)
        detail = str(exc) if settings.DEBUG else "An internal server error occurred"

        logger.error(f"[{request_id}] Exception: {str(exc)}", exc_info=True)

        return JSONResponse(
            status_code=500,
            content={
                "detail": detail,
                "request_id": request_id,
            },
        )

    # ── Routes ────────────────────────────────────────────────────

    @app.get("/health", tags=["Health"], include_in_schema=False)
    async def health_check():
        checks = {
            "status": "ok",
            "version": settings.APP_VERSION,
            "notifications_in_flight": dispatch_tracker.in_flight,
        }

        try:
            await ping_db()
            checks["database"] = "ok"
        except Exception:
            logger.exception("Health check: database unreachable")
            checks["database"] = "error"
            checks["status"] = "degraded"

        status_code = 200 if checks["status"] == "ok" else 503
        return JSONResponse(content=checks, status_code=status_code)

    @app.get("/", include_in_schema=False)
    async def root():
        return {
            "name": settings.APP_NAME,
            "version": settings.APP_VERSION,
            "docs": "/docs",
            "health": "/health",
        }

    app.include_router(booking_router)
    app.include_router(notification_router)

    # ── Prometheus Metrics ─────────────────────────────────────────
    Instrumentator().instrument(app).expose(app, endpoint="/metrics", tags=["Monitoring"])

    return app


# ── Entry Point ───────────────────────────────────────────────

app = create_app()

if __name__ == "__main__":
    import uvicorn
    uvicorn.run(
        "main:app",
        host=settings.HOST,
        port=settings.PORT,
        reload=settings.DEBUG,
        workers=1 if settings.DEBUG else settings.WORKERS,
        log_level="debug" if settings.DEBUG else "info",
        access_log=True,
    )
