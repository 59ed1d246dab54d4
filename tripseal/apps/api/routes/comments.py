from __future__ import annotations

from fastapi import APIRouter, Depends, Request
from pydantic import BaseModel, Field
from sqlalchemy.ext.asyncio import AsyncSession

from tripseal.apps.api.deps import Principal, get_current_principal, get_db, load_session_access
from tripseal.apps.api.openapi import DEFAULT_ERROR_RESPONSES
from tripseal.apps.api.response import success_response
from tripseal.services.authz.arbiter import enforce
from tripseal.services.comments import add_comment, list_comments, serialize_comment


router = APIRouter(prefix="/sessions", tags=["comments"], responses=DEFAULT_ERROR_RESPONSES)


class CommentRequest(BaseModel):
    message: str | None = Field(default=None, max_length=5000)
    imageUrl: str | None = Field(default=None)
    urgency: str | None = Field(default=None)


@router.get("/{session_id}/comments")
async def get_comments(
    session_id: str,
    request: Request,
    principal: Principal = Depends(get_current_principal),
    db: AsyncSession = Depends(get_db),
) -> dict:
    access = await load_session_access(db, principal, session_id)
    enforce(access.read, "You do not have access to this session")
    comments = await list_comments(db, session_id)
    return success_response(request=request, data=[serialize_comment(comment) for comment in comments])


@router.post("/{session_id}/comments", status_code=201)
async def post_comment(
    session_id: str,
    request: Request,
    payload: CommentRequest,
    principal: Principal = Depends(get_current_principal),
    db: AsyncSession = Depends(get_db),
) -> dict:
    # Anyone who can read the session may comment on it.
    access = await load_session_access(db, principal, session_id)
    enforce(access.read, "You do not have access to this session")
    comment = await add_comment(
        db,
        trip_session=access.trip_session,
        user_id=principal.user_id,
        message=payload.message,
        image_url=payload.imageUrl,
        urgency=payload.urgency,
        request=request,
    )
    return success_response(request=request, data=serialize_comment(comment))
