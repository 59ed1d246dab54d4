from __future__ import annotations

from fastapi import APIRouter, Depends, Response
from sqlalchemy.ext.asyncio import AsyncSession

from tripseal.apps.api.deps import Principal, get_current_principal, get_db, load_session_access
from tripseal.apps.api.openapi import DEFAULT_ERROR_RESPONSES
from tripseal.core.errors import NotFoundError
from tripseal.persistence.repos.activity import list_session_logs
from tripseal.persistence.repos.seals import get_guard_image_data
from tripseal.services.authz.arbiter import enforce
from tripseal.services.images import decode_blob, split_data_url
from tripseal.services.trip_details import image_blob


router = APIRouter(prefix="/images", tags=["images"], responses=DEFAULT_ERROR_RESPONSES)


async def _serve(db: AsyncSession, principal: Principal, session_id: str, kind: str, index: int | None) -> Response:
    access = await load_session_access(db, principal, session_id)
    enforce(access.read, "You do not have access to this session")
    blob = image_blob(await list_session_logs(db, session_id), kind, index)
    if blob is None:
        raise NotFoundError("Image not found")
    return _binary(blob)


def _binary(blob: dict) -> Response:
    content, content_type = decode_blob(blob)
    return Response(content=content, media_type=content_type, headers={"Cache-Control": "private, max-age=300"})


@router.get("/{session_id}/{kind}")
async def get_image(
    session_id: str,
    kind: str,
    principal: Principal = Depends(get_current_principal),
    db: AsyncSession = Depends(get_db),
) -> Response:
    return await _serve(db, principal, session_id, kind, None)


# Registered before the indexed route so "guardSealTag" is not read as an image kind.
@router.get("/{session_id}/guardSealTag/{tag_id}")
async def get_guard_seal_tag_image(
    session_id: str,
    tag_id: str,
    principal: Principal = Depends(get_current_principal),
    db: AsyncSession = Depends(get_db),
) -> Response:
    access = await load_session_access(db, principal, session_id)
    enforce(access.read, "You do not have access to this session")
    blob = split_data_url(await get_guard_image_data(db, session_id, tag_id))
    if blob is None:
        raise NotFoundError("Image not found")
    return _binary(blob)


@router.get("/{session_id}/{kind}/{index}")
async def get_indexed_image(
    session_id: str,
    kind: str,
    index: int,
    principal: Principal = Depends(get_current_principal),
    db: AsyncSession = Depends(get_db),
) -> Response:
    return await _serve(db, principal, session_id, kind, index)
