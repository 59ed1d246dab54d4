from __future__ import annotations

from typing import Any

from tripseal.apps.api.response import API_VERSION, ErrorEnvelope


def _error_example(*, code: str, message: str, details: dict[str, Any] | None = None) -> dict[str, Any]:
    payload: dict[str, Any] = {
        "error": {"code": code, "message": message},
        "meta": {"request_id": "req_example", "api_version": API_VERSION},
    }
    if details:
        payload["error"]["details"] = details
    return payload


def _error_response(description: str, *, code: str, message: str, details: dict[str, Any] | None = None) -> dict[str, Any]:
    return {
        "model": ErrorEnvelope,
        "description": description,
        "content": {"application/json": {"example": _error_example(code=code, message=message, details=details)}},
    }


DEFAULT_ERROR_RESPONSES: dict[int | str, dict[str, Any]] = {
    400: _error_response("Bad request", code="BAD_REQUEST", message="Amount must be a positive integer"),
    401: _error_response("Unauthorized", code="AUTH_UNAUTHORIZED", message="Missing or invalid bearer token"),
    403: _error_response(
        "Forbidden",
        code="AUTH_FORBIDDEN",
        message="You do not have access to this session",
        details={"reason": "employee_company_mismatch"},
    ),
    404: _error_response("Not found", code="NOT_FOUND", message="Session not found"),
    409: _error_response(
        "Conflict",
        code="SEAL_ALREADY_VERIFIED",
        message="Seal tag already verified by a guard",
    ),
    413: _error_response("Payload too large", code="PAYLOAD_TOO_LARGE", message="Image data exceeds 5000000 bytes"),
    422: _error_response("Validation error", code="REQUEST_VALIDATION_ERROR", message="Validation error"),
    500: _error_response("Internal server error", code="INTERNAL_ERROR", message="Internal server error"),
    503: _error_response("Service unavailable", code="DATABASE_UNAVAILABLE", message="Session creation failed"),
}
