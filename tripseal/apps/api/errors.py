from __future__ import annotations

import logging
from typing import Any

from fastapi import HTTPException, Request
from fastapi.exceptions import RequestValidationError
from fastapi.encoders import jsonable_encoder
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from tripseal.apps.api.response import error_response, is_versioned_request
from tripseal.core.errors import TripSealError


logger = logging.getLogger(__name__)

_DEFAULT_ERROR_CODES: dict[int, str] = {
    400: "BAD_REQUEST",
    401: "AUTH_UNAUTHORIZED",
    403: "AUTH_FORBIDDEN",
    404: "NOT_FOUND",
    409: "CONFLICT",
    413: "PAYLOAD_TOO_LARGE",
    422: "VALIDATION_ERROR",
    500: "INTERNAL_ERROR",
    503: "SERVICE_UNAVAILABLE",
}


def _default_code(status_code: int) -> str:
    return _DEFAULT_ERROR_CODES.get(status_code, "UNKNOWN_ERROR")


def _split_detail(detail: Any, status_code: int) -> tuple[str, str, dict[str, Any] | None]:
    # HTTPException details may be {"code", "message", ...} dicts or plain strings.
    if isinstance(detail, dict):
        code = str(detail.get("code") or _default_code(status_code))
        message = str(detail.get("message") or "Request failed")
        details = {k: v for k, v in detail.items() if k not in {"code", "message"}}
        return code, message, details or None
    if isinstance(detail, str):
        return _default_code(status_code), detail, None
    return _default_code(status_code), "Request failed", None


def _envelope(request: Request, *, status_code: int, detail: Any, headers: dict[str, str] | None = None) -> JSONResponse:
    if not is_versioned_request(request):
        return JSONResponse(content={"detail": detail}, status_code=status_code, headers=headers)
    code, message, details = _split_detail(detail, status_code)
    payload = error_response(request=request, code=code, message=message, details=details)
    return JSONResponse(content=payload, status_code=status_code, headers=headers)


async def http_exception_handler(request: Request, exc: HTTPException) -> JSONResponse:
    return _envelope(request, status_code=exc.status_code, detail=exc.detail, headers=exc.headers)


async def starlette_http_exception_handler(request: Request, exc: StarletteHTTPException) -> JSONResponse:
    return _envelope(request, status_code=exc.status_code, detail=exc.detail, headers=exc.headers)


async def domain_exception_handler(request: Request, exc: TripSealError) -> JSONResponse:
    # Service-layer errors carry their own status and stable code.
    if exc.status_code >= 500:
        logger.error("request_failed path=%s code=%s", request.url.path, exc.code, exc_info=exc)
    detail: dict[str, Any] = {"code": exc.code, "message": exc.message}
    if exc.details:
        detail.update(jsonable_encoder(exc.details))
    return _envelope(request, status_code=exc.status_code, detail=detail)


async def validation_exception_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    errors = jsonable_encoder(exc.errors())
    if not is_versioned_request(request):
        return JSONResponse(content={"detail": errors}, status_code=422)
    payload = error_response(
        request=request,
        code="REQUEST_VALIDATION_ERROR",
        message="Validation error",
        details={"errors": errors},
    )
    return JSONResponse(content=payload, status_code=422)


async def unhandled_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    # Log the trace server-side; clients only see a stable envelope.
    logger.error("unhandled_exception path=%s", request.url.path, exc_info=exc)
    if not is_versioned_request(request):
        return JSONResponse(content={"detail": "Internal Server Error"}, status_code=500)
    payload = error_response(request=request, code="INTERNAL_ERROR", message="Internal server error")
    return JSONResponse(content=payload, status_code=500)
