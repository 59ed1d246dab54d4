from __future__ import annotations

import logging
from typing import Any
from uuid import uuid4

from sqlalchemy.ext.asyncio import AsyncSession
from starlette.requests import Request

from tripseal.domain.models import ActivityLog
from tripseal.services.timefmt import utc_now


logger = logging.getLogger(__name__)

_SENSITIVE_KEY_PATTERNS = ["api_key", "apikey", "authorization", "token", "secret", "password"]
_REDACTED_VALUE = "[REDACTED]"


def _is_sensitive_key(key: str) -> bool:
    lowered = key.lower()
    return any(pattern in lowered for pattern in _SENSITIVE_KEY_PATTERNS)


def sanitize_details(value: Any) -> Any:
    # Scrub credential-like keys recursively; image blobs and trip data pass through.
    if isinstance(value, dict):
        sanitized: dict[str, Any] = {}
        for raw_key, raw_value in value.items():
            key = str(raw_key)
            if _is_sensitive_key(key):
                sanitized[key] = _REDACTED_VALUE
            else:
                sanitized[key] = sanitize_details(raw_value)
        return sanitized
    if isinstance(value, list):
        return [sanitize_details(item) for item in value]
    return value


def get_request_context(request: Request | None) -> dict[str, str | None]:
    if request is None:
        return {"request_id": None, "ip_address": None, "user_agent": None}
    request_id = request.headers.get("X-Request-Id")
    ip_address = request.client.host if request.client else None
    user_agent = request.headers.get("user-agent")
    return {"request_id": request_id, "ip_address": ip_address, "user_agent": user_agent}


async def record_activity(
    *,
    session: AsyncSession,
    user_id: str | None,
    action: str,
    target_resource_id: str | None = None,
    target_resource_type: str | None = None,
    details: dict[str, Any] | None = None,
    request: Request | None = None,
) -> ActivityLog:
    """Append an activity log row; it commits or rolls back with the caller's transaction."""
    request_ctx = get_request_context(request)
    entry = ActivityLog(
        id=uuid4().hex,
        user_id=user_id,
        action=action,
        target_resource_id=target_resource_id,
        target_resource_type=target_resource_type,
        details=sanitize_details(details or {}),
        ip_address=request_ctx["ip_address"],
        user_agent=request_ctx["user_agent"],
        created_at=utc_now(),
    )
    session.add(entry)
    logger.debug(
        "activity_recorded action=%s target=%s request_id=%s",
        action,
        target_resource_id,
        request_ctx["request_id"],
    )
    return entry
