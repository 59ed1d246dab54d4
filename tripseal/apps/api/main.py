from __future__ import annotations

from datetime import datetime, timedelta, timezone
from email.utils import format_datetime
import logging
import time
from uuid import uuid4

from fastapi import FastAPI, HTTPException, Request
from fastapi.exceptions import RequestValidationError
from fastapi.openapi.docs import get_swagger_ui_html
from fastapi.openapi.utils import get_openapi
from fastapi.responses import HTMLResponse, JSONResponse, RedirectResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from tripseal.apps.api.errors import (
    domain_exception_handler,
    http_exception_handler,
    starlette_http_exception_handler,
    unhandled_exception_handler,
    validation_exception_handler,
)
from tripseal.apps.api.response import API_VERSION
from tripseal.apps.api.routes.coins import router as coins_router
from tripseal.apps.api.routes.comments import router as comments_router
from tripseal.apps.api.routes.health import router as health_router
from tripseal.apps.api.routes.images import router as images_router
from tripseal.apps.api.routes.reports import router as reports_router
from tripseal.apps.api.routes.seals import router as seals_router
from tripseal.apps.api.routes.sessions import router as sessions_router
from tripseal.apps.api.routes.users import router as users_router
from tripseal.core.errors import TripSealError
from tripseal.core.logging import configure_logging


logger = logging.getLogger(__name__)

_LEGACY_SUNSET_DAYS = 90
_LEGACY_EXEMPT_PREFIXES = (
    "/v1",
    "/api/images",
    "/docs",
    "/openapi.json",
    "/redoc",
)
_ROUTERS = (
    health_router,
    users_router,
    coins_router,
    sessions_router,
    seals_router,
    comments_router,
    images_router,
    reports_router,
)


def create_app() -> FastAPI:
    configure_logging()
    app = FastAPI(title="TripSeal API")

    @app.middleware("http")
    async def request_context_middleware(request: Request, call_next):  # type: ignore[override]
        # Preserve incoming request IDs or assign a new one for traceability.
        request_id = request.headers.get("X-Request-Id") or str(uuid4())
        request.state.request_id = request_id
        start = time.monotonic()
        response = await call_next(request)
        latency_ms = (time.monotonic() - start) * 1000.0
        logger.info(
            "request_completed method=%s path=%s status=%s latency_ms=%.1f",
            request.method,
            request.url.path,
            response.status_code,
            latency_ms,
        )
        response.headers.setdefault("X-Request-Id", request_id)
        # Mark legacy routes with deprecation headers to guide clients to /v1.
        if not request.url.path.startswith(_LEGACY_EXEMPT_PREFIXES):
            sunset_at = datetime.now(timezone.utc) + timedelta(days=_LEGACY_SUNSET_DAYS)
            response.headers["Deprecation"] = "true"
            response.headers["Sunset"] = format_datetime(sunset_at)
            response.headers["Link"] = '</v1/docs>; rel="successor-version"'
        return response

    @app.exception_handler(StarletteHTTPException)
    async def _starlette_http_exception_handler(request: Request, exc: StarletteHTTPException):
        return await starlette_http_exception_handler(request, exc)

    @app.exception_handler(Exception)
    async def _unhandled_exception_handler(request: Request, exc: Exception):
        return await unhandled_exception_handler(request, exc)

    @app.exception_handler(RequestValidationError)
    async def _validation_exception_handler(request: Request, exc: RequestValidationError):
        return await validation_exception_handler(request, exc)

    @app.exception_handler(HTTPException)
    async def _http_exception_handler(request: Request, exc: HTTPException):
        return await http_exception_handler(request, exc)

    @app.exception_handler(TripSealError)
    async def _domain_exception_handler(request: Request, exc: TripSealError):
        return await domain_exception_handler(request, exc)

    for router in _ROUTERS:
        app.include_router(router, prefix=f"/{API_VERSION}")
    # Retain unversioned legacy routes as deprecated compatibility aliases.
    for router in _ROUTERS:
        app.include_router(router, include_in_schema=False)
    # Stored image URLs point at /api/images/...; keep them resolvable.
    app.include_router(images_router, prefix="/api", include_in_schema=False)

    @app.get("/v1/openapi.json", include_in_schema=False)
    async def openapi_json() -> JSONResponse:
        return JSONResponse(app.openapi())

    @app.get("/v1/docs", include_in_schema=False)
    async def v1_docs() -> HTMLResponse:
        return get_swagger_ui_html(openapi_url="/v1/openapi.json", title="TripSeal API v1")

    @app.get("/docs", include_in_schema=False)
    async def docs_redirect() -> RedirectResponse:
        return RedirectResponse(url="/v1/docs")

    def custom_openapi() -> dict:
        # Inject bearer auth and version metadata into the OpenAPI schema.
        if app.openapi_schema:
            return app.openapi_schema
        schema = get_openapi(title="TripSeal API", version=API_VERSION, routes=app.routes)
        components = schema.setdefault("components", {})
        security_schemes = components.setdefault("securitySchemes", {})
        security_schemes["BearerAuth"] = {"type": "http", "scheme": "bearer"}
        public_paths = {"/v1/health"}
        for path, operations in schema.get("paths", {}).items():
            if path in public_paths:
                continue
            for operation in operations.values():
                operation.setdefault("security", [{"BearerAuth": []}])
        app.openapi_schema = schema
        return app.openapi_schema

    app.openapi = custom_openapi

    return app


app = create_app()
