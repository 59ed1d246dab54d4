from __future__ import annotations

from dataclasses import dataclass
import logging
from typing import AsyncGenerator

from fastapi import Depends, HTTPException, Request, status
from pydantic import BaseModel
from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from tripseal.core.config import get_settings
from tripseal.core.errors import NotFoundError
from tripseal.domain.models import ApiKey, Seal, TripSession, User
from tripseal.persistence.db import get_session
from tripseal.persistence.repos.seals import get_seal_for_session
from tripseal.persistence.repos.sessions import get_trip_session
from tripseal.services.auth.api_keys import hash_api_key, normalize_role
from tripseal.services.authz.arbiter import (
    AccessDecision,
    Actor,
    ActorScope,
    SessionFacts,
    decide_read,
    load_actor_scope,
)


logger = logging.getLogger(__name__)


async def get_db() -> AsyncGenerator[AsyncSession, None]:
    # One AsyncSession per request; context manager ensures close on success/error.
    async with get_session() as session:
        yield session


class Principal(BaseModel):
    # Authenticated identity resolved from the bearer API key.
    user_id: str
    role: str
    subrole: str | None = None
    company_id: str | None = None
    name: str | None = None
    api_key_id: str
    auth_method: str = "api_key"

    @property
    def actor(self) -> Actor:
        return Actor(user_id=self.user_id, role=self.role, subrole=self.subrole, company_id=self.company_id)


def _auth_error(message: str) -> HTTPException:
    # Normalize auth errors for clients without leaking internal details.
    return HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail={"code": "AUTH_UNAUTHORIZED", "message": message},
        headers={"WWW-Authenticate": "Bearer"},
    )


def _parse_bearer_token(header_value: str | None) -> str | None:
    if not header_value:
        return None
    parts = header_value.split()
    if len(parts) != 2 or parts[0].lower() != "bearer":
        raise _auth_error("Missing or invalid bearer token")
    return parts[1]


def _principal_from_user(user: User, *, api_key_id: str, auth_method: str) -> Principal:
    try:
        role = normalize_role(user.role)
    except ValueError as exc:
        raise _auth_error("Account role is not recognized") from exc
    return Principal(
        user_id=user.id,
        role=role,
        subrole=user.subrole,
        company_id=user.company_id,
        name=user.name,
        api_key_id=api_key_id,
        auth_method=auth_method,
    )


async def _principal_from_dev_headers(request: Request, db: AsyncSession) -> Principal:
    # Trust X-User-Id only when explicitly enabled for local dev.
    user_id = request.headers.get("X-User-Id")
    if not user_id:
        raise _auth_error("X-User-Id header is required in dev bypass mode")
    user = await db.get(User, user_id)
    if user is None or not user.is_active:
        raise _auth_error("Unknown or inactive user")
    return _principal_from_user(user, api_key_id="dev-bypass", auth_method="dev_bypass")


async def get_current_principal(
    request: Request,
    db: AsyncSession = Depends(get_db),
) -> Principal:
    settings = get_settings()
    path = request.url.path
    try:
        bearer_token = _parse_bearer_token(request.headers.get(settings.auth_api_key_header))
    except HTTPException:
        logger.info("auth_failed path=%s reason=malformed_header", path)
        raise

    if not settings.auth_enabled or not bearer_token:
        if settings.auth_dev_bypass:
            return await _principal_from_dev_headers(request, db)
        logger.info("auth_failed path=%s reason=missing_key", path)
        raise _auth_error("Missing API key")

    try:
        result = await db.execute(
            select(ApiKey, User)
            .join(User, ApiKey.user_id == User.id)
            .where(ApiKey.key_hash == hash_api_key(bearer_token))
        )
    except SQLAlchemyError as exc:
        logger.error("auth_lookup_failed path=%s", path, exc_info=exc)
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail={"code": "AUTH_UNAVAILABLE", "message": "Authentication unavailable"},
        ) from exc

    row = result.first()
    if row is None:
        logger.info("auth_failed path=%s reason=unknown_key", path)
        raise _auth_error("Invalid API key")
    api_key, user = row
    if api_key.revoked_at is not None or not user.is_active:
        logger.info("auth_failed path=%s reason=revoked_or_inactive key_id=%s", path, api_key.id)
        raise _auth_error("API key is revoked or inactive")
    return _principal_from_user(user, api_key_id=api_key.id, auth_method="api_key")


@dataclass(frozen=True)
class SessionAccess:
    """A loaded session plus the caller's read decision for it."""

    trip_session: TripSession
    seal: Seal | None
    actor: Actor
    scope: ActorScope
    read: AccessDecision


async def load_session_access(db: AsyncSession, principal: Principal, session_id: str) -> SessionAccess:
    # Existence is checked before policy so unknown ids are 404 for everyone.
    trip_session = await get_trip_session(db, session_id)
    if trip_session is None:
        raise NotFoundError("Session not found")
    seal = await get_seal_for_session(db, session_id)
    actor = principal.actor
    scope = await load_actor_scope(db, actor)
    decision = decide_read(actor, SessionFacts.of(trip_session, seal), scope)
    if not decision.allowed:
        logger.info(
            "session_access_denied session_id=%s user_id=%s reason=%s",
            session_id,
            principal.user_id,
            decision.reason,
        )
    return SessionAccess(trip_session=trip_session, seal=seal, actor=actor, scope=scope, read=decision)
