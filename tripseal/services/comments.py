from __future__ import annotations

from typing import Any
from uuid import uuid4

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession
from starlette.requests import Request

from tripseal.core.errors import ValidationFailedError
from tripseal.domain.models import Comment, TripSession
from tripseal.domain.vocabulary import ACTION_CREATE, RESOURCE_SESSION
from tripseal.services.audit import record_activity
from tripseal.services.timefmt import isoformat_z, utc_now


URGENCY_LEVELS = ("NA", "LOW", "MEDIUM", "HIGH")


async def list_comments(session: AsyncSession, session_id: str) -> list[Comment]:
    # Newest first.
    result = await session.execute(
        select(Comment).where(Comment.session_id == session_id).order_by(Comment.created_at.desc(), Comment.id)
    )
    return list(result.scalars().all())


def serialize_comment(comment: Comment) -> dict[str, Any]:
    return {
        "id": comment.id,
        "sessionId": comment.session_id,
        "userId": comment.user_id,
        "message": comment.message,
        "imageUrl": comment.image_url,
        "urgency": comment.urgency,
        "createdAt": isoformat_z(comment.created_at),
    }


async def add_comment(
    session: AsyncSession,
    *,
    trip_session: TripSession,
    user_id: str,
    message: str | None,
    image_url: str | None = None,
    urgency: str | None = None,
    request: Request | None = None,
) -> Comment:
    if not (message or "").strip() and not image_url:
        raise ValidationFailedError("Comment message is required")
    resolved_urgency = (urgency or "NA").upper()
    if resolved_urgency not in URGENCY_LEVELS:
        raise ValidationFailedError(f"Unsupported urgency {urgency}")
    comment = Comment(
        id=uuid4().hex,
        session_id=trip_session.id,
        user_id=user_id,
        message=(message or "").strip(),
        image_url=image_url,
        urgency=resolved_urgency,
        created_at=utc_now(),
    )
    session.add(comment)
    await record_activity(
        session=session,
        user_id=user_id,
        action=ACTION_CREATE,
        target_resource_id=trip_session.id,
        target_resource_type=RESOURCE_SESSION,
        details={"comment": {"id": comment.id, "urgency": resolved_urgency}},
        request=request,
    )
    await session.commit()
    return comment
