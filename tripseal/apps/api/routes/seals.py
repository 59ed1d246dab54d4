from __future__ import annotations

import logging

from fastapi import APIRouter, Depends, Query, Request
from pydantic import BaseModel, Field
from sqlalchemy.ext.asyncio import AsyncSession

from tripseal.apps.api.deps import Principal, get_current_principal, get_db, load_session_access
from tripseal.apps.api.openapi import DEFAULT_ERROR_RESPONSES
from tripseal.apps.api.response import success_response
from tripseal.core.errors import NotFoundError, ValidationFailedError
from tripseal.persistence.repos.seals import (
    get_seal,
    list_guard_seal_tags,
    list_guard_verified_tags,
    list_seal_tags,
    seal_tag_exists,
)
from tripseal.services.authz.arbiter import decide_guard_action, enforce
from tripseal.services.seals import extract_legacy_guard_tags, ingest_guard_scan, reconcile, record_guard_seal_tag
from tripseal.services.session_view import serialize_guard_seal_tag, serialize_seal_tag


logger = logging.getLogger(__name__)

router = APIRouter(tags=["seals"], responses=DEFAULT_ERROR_RESPONSES)


class GuardScanRequest(BaseModel):
    barcode: str | None = Field(default=None)
    method: str | None = Field(default=None)
    imageData: str | None = Field(default=None)


def _require_scan_fields(payload: GuardScanRequest) -> tuple[str, str]:
    barcode = (payload.barcode or "").strip()
    method = (payload.method or "").strip()
    if not barcode or not method:
        raise ValidationFailedError("Barcode and method are required")
    return barcode, method


@router.post("/sessions/{session_id}/seal-tags/verify")
async def verify_seal_tag(
    session_id: str,
    request: Request,
    payload: GuardScanRequest,
    principal: Principal = Depends(get_current_principal),
    db: AsyncSession = Depends(get_db),
) -> dict:
    barcode, method = _require_scan_fields(payload)
    access = await load_session_access(db, principal, session_id)
    enforce(decide_guard_action(access.actor, access.read), "Only guards of this company can scan seals")
    result = await ingest_guard_scan(
        db,
        trip_session=access.trip_session,
        barcode=barcode,
        method=method,
        actor_id=principal.user_id,
        image_data=payload.imageData,
        request=request,
    )
    data = {
        "sealTag": serialize_seal_tag(result.seal_tag),
        "matched": result.matched,
        "guardOnly": result.created,
    }
    return success_response(request=request, data=data)


@router.get("/sessions/{session_id}/seal-tags/verified")
async def list_verified_seal_tags(
    session_id: str,
    request: Request,
    principal: Principal = Depends(get_current_principal),
    db: AsyncSession = Depends(get_db),
) -> dict:
    access = await load_session_access(db, principal, session_id)
    enforce(access.read, "You do not have access to this session")
    tags = await list_guard_verified_tags(db, session_id)
    return success_response(request=request, data=[serialize_seal_tag(tag) for tag in tags])


@router.get("/sessions/{session_id}/guard-seal-tags")
async def list_session_guard_seal_tags(
    session_id: str,
    request: Request,
    principal: Principal = Depends(get_current_principal),
    db: AsyncSession = Depends(get_db),
) -> dict:
    access = await load_session_access(db, principal, session_id)
    enforce(access.read, "You do not have access to this session")
    tags = await list_guard_seal_tags(db, session_id)
    return success_response(request=request, data=[serialize_guard_seal_tag(tag) for tag in tags])


@router.post("/sessions/{session_id}/guard-seal-tags", status_code=201)
async def create_guard_seal_tag(
    session_id: str,
    request: Request,
    payload: GuardScanRequest,
    principal: Principal = Depends(get_current_principal),
    db: AsyncSession = Depends(get_db),
) -> dict:
    barcode, method = _require_scan_fields(payload)
    access = await load_session_access(db, principal, session_id)
    enforce(decide_guard_action(access.actor, access.read), "Only guards of this company can scan seals")
    tag = await record_guard_seal_tag(
        db,
        trip_session=access.trip_session,
        barcode=barcode,
        method=method,
        actor_id=principal.user_id,
        image_data=payload.imageData,
        request=request,
    )
    return success_response(request=request, data=serialize_guard_seal_tag(tag))


@router.get("/sessions/{session_id}/seal-reconciliation")
async def get_seal_reconciliation(
    session_id: str,
    request: Request,
    principal: Principal = Depends(get_current_principal),
    db: AsyncSession = Depends(get_db),
) -> dict:
    access = await load_session_access(db, principal, session_id)
    enforce(access.read, "You do not have access to this session")
    seal_tags = await list_seal_tags(db, session_id)
    guard_tags = await list_guard_seal_tags(db, session_id)
    return success_response(request=request, data={"sessionId": session_id, **reconcile(seal_tags, guard_tags)})


@router.get("/seals/{seal_id}/guard-tags")
async def get_seal_guard_tags(
    seal_id: str,
    request: Request,
    principal: Principal = Depends(get_current_principal),
    db: AsyncSession = Depends(get_db),
) -> dict:
    # Structured rows win; old sessions only have guardImages inside verificationData.
    seal = await get_seal(db, seal_id)
    if seal is None:
        raise NotFoundError("Seal not found")
    access = await load_session_access(db, principal, seal.session_id)
    enforce(access.read, "You do not have access to this session")
    guard_tags = await list_guard_seal_tags(db, seal.session_id)
    if guard_tags:
        data = {"sealId": seal_id, "legacy": False, "guardTags": [serialize_guard_seal_tag(tag) for tag in guard_tags]}
    else:
        extraction = extract_legacy_guard_tags(seal.verification_data)
        data = {"sealId": seal_id, "legacy": bool(extraction), "guardTags": extraction.tags}
    return success_response(request=request, data=data)


@router.get("/seal-tags/check")
async def check_seal_tag(
    request: Request,
    tag_id: str = Query(alias="tagId", min_length=1, max_length=200),
    principal: Principal = Depends(get_current_principal),
    db: AsyncSession = Depends(get_db),
) -> dict:
    if not tag_id.strip():
        raise ValidationFailedError("tagId is required")
    exists = await seal_tag_exists(db, tag_id)
    return success_response(request=request, data={"tagId": tag_id, "exists": exists})
