"""
FastAPI application entry point.

Configures logging, registers middleware (in order), routes and exception
handlers, and validates the gateway configuration at startup.
"""
import logging

from fastapi import FastAPI, HTTPException, Request
from fastapi.responses import JSONResponse
from fastapi.middleware.cors import CORSMiddleware

from app.config import LOG_LEVEL, get_cors_origins, is_production, should_load_seed_data
from app.dependencies import get_engine
from app.middleware import (
    RequestSizeMiddleware,
    RequestIDMiddleware,
    StructuredLoggingMiddleware,
)
from app.routes.orders import router as orders_router
from app.routes.refunds import router as refunds_router
from seed_data import load_seed_data

logger = logging.getLogger(__name__)


def create_app() -> FastAPI:
    logging.basicConfig(level=LOG_LEVEL, format="%(asctime)s %(levelname)s %(name)s %(message)s")

    docs_url = None if is_production() else "/docs"
    redoc_url = None if is_production() else "/redoc"

    application = FastAPI(
        title="Marketplace Refund Reconciliation Service",
        description="Idempotent refunds and order reconciliation for single and hybrid orders.",
        version="1.0.0",
        docs_url=docs_url,
        redoc_url=redoc_url,
    )

    # ── Middleware stack (order matters) ────────────────────────────────────
    application.add_middleware(RequestSizeMiddleware, max_bytes=65536)
    application.add_middleware(RequestIDMiddleware)
    application.add_middleware(StructuredLoggingMiddleware)
    application.add_middleware(
        CORSMiddleware,
        allow_origins=get_cors_origins(),
        allow_credentials=False,
        allow_methods=["GET", "POST"],
        allow_headers=["Content-Type", "X-API-Key", "X-Request-ID", "X-Operator-ID", "Idempotency-Key"],
    )

    # ── Routes ──────────────────────────────────────────────────────────────
    application.include_router(refunds_router)
    application.include_router(orders_router)

    @application.get("/health", include_in_schema=False)
    async def health() -> dict:
        return {"status": "ok"}

    # ── Exception handlers ───────────────────────────────────────────────────
    @application.exception_handler(HTTPException)
    async def http_exception_handler(request: Request, exc: HTTPException):
        """Flatten ``{"error": ...}`` details so every error body has the same shape."""
        content = exc.detail if isinstance(exc.detail, dict) else {"error": str(exc.detail)}
        return JSONResponse(status_code=exc.status_code, content=content, headers=exc.headers)

    @application.exception_handler(Exception)
    async def generic_exception_handler(request: Request, exc: Exception):
        """Never leak stack traces to clients."""
        logger.exception("Unhandled error", extra={"path": request.url.path})
        return JSONResponse(
            status_code=500,
            content={"error": "An unexpected error occurred"},
        )

    # ── Startup ──────────────────────────────────────────────────────────────
    @application.on_event("startup")
    async def on_startup():
        # Fails fast on a malformed gateway configuration.
        get_engine()
        if should_load_seed_data():
            load_seed_data()

    return application


app = create_app()
