from __future__ import annotations

import logging
import os
import uuid
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI, HTTPException, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from billing.errors import CheckoutError, InvalidPlan
from config.settings import settings
from ops.structured_logger import setup_logging
from storage.entitlement_store import EntitlementStore
from utils.request_context import clear_request_id, set_request_id

from app.routers.access import router as access_router
from app.routers.billing import router as billing_router
from app.routers.health import router as health_router

setup_logging(settings.LOG_LEVEL)

log = logging.getLogger("snippets.api")


def _get_request_id(request: Request) -> str:
    return getattr(request.state, "request_id", None) or request.headers.get("x-request-id") or ""


@asynccontextmanager
async def lifespan(app: FastAPI):
    owned = app.state.store is None
    if owned:
        app.state.store = EntitlementStore.from_settings(settings)
        log.info("entitlement_store_ready", extra={"extra": {"project": settings.FIRESTORE_PROJECT_ID or "adc_default"}})
    try:
        yield
    finally:
        if owned:
            app.state.store.close()
            app.state.store = None


def create_app(store: Optional[EntitlementStore] = None) -> FastAPI:
    app = FastAPI(title="Snippets Billing API", version="1.0.0", lifespan=lifespan)
    app.state.store = store

    @app.middleware("http")
    async def request_id_middleware(request: Request, call_next):
        rid = request.headers.get("x-request-id") or str(uuid.uuid4())
        request.state.request_id = rid
        set_request_id(rid)
        try:
            response = await call_next(request)
        finally:
            clear_request_id()
        response.headers["X-Request-Id"] = rid
        return response

    @app.exception_handler(HTTPException)
    async def http_exception_handler(request: Request, exc: HTTPException):
        rid = _get_request_id(request)
        log.warning(
            "http_exception",
            extra={
                "extra": {
                    "event": "http_exception",
                    "status_code": exc.status_code,
                    "detail": exc.detail,
                    "path": request.url.path,
                    "method": request.method,
                    "request_id": rid,
                }
            },
        )
        return JSONResponse(
            status_code=exc.status_code,
            content={"detail": exc.detail, "request_id": rid, "revision": os.getenv("K_REVISION") or ""},
        )

    @app.exception_handler(RequestValidationError)
    async def validation_exception_handler(request: Request, exc: RequestValidationError):
        rid = _get_request_id(request)
        log.warning(
            "validation_error",
            extra={
                "extra": {
                    "event": "validation_error",
                    "path": request.url.path,
                    "method": request.method,
                    "request_id": rid,
                }
            },
        )
        return JSONResponse(
            status_code=422,
            content={"detail": exc.errors(), "request_id": rid, "revision": os.getenv("K_REVISION") or ""},
        )

    @app.exception_handler(InvalidPlan)
    async def invalid_plan_handler(request: Request, exc: InvalidPlan):
        log.warning("invalid_plan", extra={"extra": {"plan": exc.plan, "request_id": _get_request_id(request)}})
        return JSONResponse(status_code=400, content={"error": "Invalid plan or price not configured"})

    @app.exception_handler(CheckoutError)
    async def checkout_error_handler(request: Request, exc: CheckoutError):
        return JSONResponse(status_code=502, content={"error": str(exc), "request_id": _get_request_id(request)})

    @app.exception_handler(Exception)
    async def unhandled_exception_handler(request: Request, exc: Exception):
        rid = _get_request_id(request)
        log.error(
            "internal_unhandled_exception",
            extra={
                "extra": {
                    "event": "internal_unhandled_exception",
                    "error_type": type(exc).__name__,
                    "message": str(exc),
                    "path": request.url.path,
                    "method": request.method,
                    "request_id": rid,
                }
            },
            exc_info=True,
        )
        return JSONResponse(
            status_code=500,
            content={"error": "internal_unhandled_exception", "request_id": rid, "revision": os.getenv("K_REVISION") or ""},
        )

    # Storefront is served from a different origin.
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=False,
        allow_methods=["GET", "POST", "OPTIONS"],
        allow_headers=["*"],
    )

    app.include_router(health_router, tags=["health"])
    app.include_router(billing_router, tags=["billing"])
    app.include_router(access_router, prefix="/api", tags=["access"])
    return app


app = create_app()
