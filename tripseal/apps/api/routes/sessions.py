from __future__ import annotations

import json
import logging
import re
from typing import Any

from fastapi import APIRouter, Depends, Query, Request
from pydantic import BaseModel, Field
from sqlalchemy.ext.asyncio import AsyncSession
from starlette.datastructures import FormData, UploadFile

from tripseal.apps.api.deps import Principal, SessionAccess, get_current_principal, get_db, load_session_access
from tripseal.apps.api.openapi import DEFAULT_ERROR_RESPONSES
from tripseal.apps.api.response import Pagination, success_response
from tripseal.core.config import get_settings
from tripseal.core.errors import ValidationFailedError
from tripseal.domain.vocabulary import SESSION_STATUSES
from tripseal.persistence.repos.sessions import list_trip_sessions
from tripseal.persistence.repos.users import get_operator_permissions
from tripseal.services.authz.arbiter import (
    decide_create,
    decide_guard_action,
    decide_maintenance,
    decide_modify,
    enforce,
    list_scope,
    load_actor_scope,
)
from tripseal.services.images import RawImage, parse_client_base64
from tripseal.services.lifecycle import (
    SessionDraft,
    complete_verification,
    create_session,
    ensure_seal,
    repair_missing_seal,
)
from tripseal.services.repairs import repair_guard_seal_images, repair_seal_images, repair_seal_timestamps
from tripseal.services.session_view import build_session_detail, serialize_session_summary
from tripseal.services.trip_details import MULTI_IMAGE_FIELDS, SINGLE_IMAGE_FIELDS, TRIP_DETAIL_COLUMNS
from tripseal.services.trip_updates import update_field, update_session


logger = logging.getLogger(__name__)

router = APIRouter(prefix="/sessions", tags=["sessions"], responses=DEFAULT_ERROR_RESPONSES)

_INDEXED_KEY = re.compile(r"^(?P<field>\w+)\[(?P<key>[^\]]+)\]$")
_TIMESTAMP_SECTIONS = {
    "loadingDetailsTimestamps": "loadingDetails",
    "driverDetailsTimestamps": "driverDetails",
    "imagesFormTimestamps": "imagesForm",
}


class FieldUpdateRequest(BaseModel):
    fieldName: str | None = Field(default=None)
    value: Any = None


class SealUpdate(BaseModel):
    barcode: str | None = None


class SessionUpdateRequest(BaseModel):
    source: str | None = None
    destination: str | None = None
    tripDetails: dict[str, Any] | None = None
    images: dict[str, Any] | None = None
    seal: SealUpdate | None = None


class VerifyRequest(BaseModel):
    verificationData: dict[str, Any] | None = None


def _json_field(form: FormData, name: str, default: Any) -> Any:
    raw = form.get(name)
    if raw is None or isinstance(raw, UploadFile) or raw == "":
        return default
    try:
        return json.loads(raw)
    except ValueError as exc:
        raise ValidationFailedError(f"{name} must be valid JSON") from exc


async def _read_upload(field: str, upload: UploadFile, *, index: int | None = None, key: str | None = None) -> RawImage:
    content = await upload.read()
    return RawImage(
        field=field,
        content=content,
        content_type=upload.content_type or "application/octet-stream",
        index=index,
        key=key,
    )


async def _parse_session_form(form: FormData) -> SessionDraft:
    # Multipart form -> SessionDraft; JSON-encoded fields arrive as strings.
    trip_details = {
        name: form.get(name) for name in TRIP_DETAIL_COLUMNS if isinstance(form.get(name), str)
    }
    seal_tag_ids = _json_field(form, "sealTagIds", [])
    if not isinstance(seal_tag_ids, list):
        raise ValidationFailedError("sealTagIds must be a JSON array")
    seal_tag_methods = _json_field(form, "sealTagMethods", {})
    seal_tag_timestamps = _json_field(form, "sealTagTimestamps", {})
    if not isinstance(seal_tag_methods, dict) or not isinstance(seal_tag_timestamps, dict):
        raise ValidationFailedError("sealTagMethods and sealTagTimestamps must be JSON objects")

    section_timestamps: dict[str, dict[str, Any]] = {}
    for form_key, section in _TIMESTAMP_SECTIONS.items():
        value = _json_field(form, form_key, {})
        if not isinstance(value, dict):
            raise ValidationFailedError(f"{form_key} must be a JSON object")
        if value:
            section_timestamps[section] = value

    raw_base64 = form.get("imageBase64Data")
    client_base64 = parse_client_base64(raw_base64 if isinstance(raw_base64, str) else None)

    images: list[RawImage] = []
    for form_key, value in form.multi_items():
        if not isinstance(value, UploadFile):
            continue
        if form_key in SINGLE_IMAGE_FIELDS:
            images.append(await _read_upload(form_key, value))
            continue
        match = _INDEXED_KEY.match(form_key)
        if match is None:
            continue
        field, key = match.group("field"), match.group("key")
        if field == "sealTagImages":
            images.append(await _read_upload(field, value, key=key))
        elif field in MULTI_IMAGE_FIELDS and key.isdigit():
            images.append(await _read_upload(field, value, index=int(key)))

    source = form.get("source")
    destination = form.get("destination")
    return SessionDraft(
        trip_details=trip_details,
        source=source if isinstance(source, str) and source else None,
        destination=destination if isinstance(destination, str) and destination else None,
        seal_tag_ids=[str(item) for item in seal_tag_ids],
        seal_tag_methods={str(key): str(value) for key, value in seal_tag_methods.items()},
        seal_tag_timestamps=seal_tag_timestamps,
        section_timestamps=section_timestamps,
        client_base64=client_base64,
        images=images,
    )


async def _require_modify(db: AsyncSession, principal: Principal, access: SessionAccess) -> None:
    permissions = await get_operator_permissions(db, principal.user_id)
    enforce(decide_modify(access.actor, permissions, access.read), "You are not allowed to modify this session")


@router.get("")
async def list_sessions(
    request: Request,
    status: str | None = Query(default=None),
    search: str | None = Query(default=None, max_length=200),
    needs_verification: bool = Query(default=False),
    page: int = Query(default=1, ge=1),
    limit: int | None = Query(default=None, ge=1),
    principal: Principal = Depends(get_current_principal),
    db: AsyncSession = Depends(get_db),
) -> dict:
    settings = get_settings()
    if status is not None and status not in SESSION_STATUSES:
        raise ValidationFailedError(f"Unknown status {status}")
    page_size = min(limit or settings.sessions_page_size_default, settings.sessions_page_size_max)
    actor = principal.actor
    scope = await load_actor_scope(db, actor)
    rows, total = await list_trip_sessions(
        db,
        scope=list_scope(actor, scope),
        status=status,
        search=search or None,
        unverified_only=needs_verification,
        page=page,
        limit=page_size,
    )
    payload = {
        "sessions": [serialize_session_summary(trip_session, seal) for trip_session, seal in rows],
        "pagination": Pagination.of(total=total, page=page, limit=page_size).model_dump(),
    }
    return success_response(request=request, data=payload)


@router.post("", status_code=201)
async def create_trip_session(
    request: Request,
    principal: Principal = Depends(get_current_principal),
    db: AsyncSession = Depends(get_db),
) -> dict:
    draft = await _parse_session_form(await request.form())
    actor = principal.actor
    permissions = await get_operator_permissions(db, principal.user_id)
    enforce(decide_create(actor, permissions), "Only operators with create permission can create sessions")
    trip_session = await create_session(db, actor=actor, actor_name=principal.name, draft=draft, request=request)
    seal = await ensure_seal(db, trip_session)
    return success_response(request=request, data=serialize_session_summary(trip_session, seal))


@router.get("/{session_id}")
async def get_trip_session_detail(
    session_id: str,
    request: Request,
    principal: Principal = Depends(get_current_principal),
    db: AsyncSession = Depends(get_db),
) -> dict:
    access = await load_session_access(db, principal, session_id)
    enforce(access.read, "You do not have access to this session")
    seal = access.seal
    if seal is None:
        seal = await repair_missing_seal(db, access.trip_session)
    detail = await build_session_detail(db, trip_session=access.trip_session, seal=seal)
    return success_response(request=request, data=detail)


@router.put("/{session_id}/field")
async def put_session_field(
    session_id: str,
    request: Request,
    payload: FieldUpdateRequest,
    principal: Principal = Depends(get_current_principal),
    db: AsyncSession = Depends(get_db),
) -> dict:
    if not (payload.fieldName or "").strip():
        raise ValidationFailedError("fieldName is required")
    access = await load_session_access(db, principal, session_id)
    await _require_modify(db, principal, access)
    result = await update_field(
        db,
        trip_session=access.trip_session,
        actor_id=principal.user_id,
        field_name=payload.fieldName,
        value=payload.value,
        request=request,
    )
    data = {
        "sessionId": session_id,
        "fieldName": payload.fieldName,
        "changed": bool(result.changed_fields),
        "recordedFields": result.recorded_fields,
    }
    return success_response(request=request, data=data)


@router.put("/{session_id}")
async def put_session(
    session_id: str,
    request: Request,
    payload: SessionUpdateRequest,
    principal: Principal = Depends(get_current_principal),
    db: AsyncSession = Depends(get_db),
) -> dict:
    access = await load_session_access(db, principal, session_id)
    await _require_modify(db, principal, access)
    result = await update_session(
        db,
        trip_session=access.trip_session,
        actor_id=principal.user_id,
        source=payload.source,
        destination=payload.destination,
        trip_details=payload.tripDetails,
        images=payload.images,
        seal_barcode=payload.seal.barcode if payload.seal is not None else None,
        request=request,
    )
    data = {
        "sessionId": session_id,
        "changedFields": result.changed_fields,
        "recordedFields": result.recorded_fields,
    }
    return success_response(request=request, data=data)


@router.post("/{session_id}/verify")
async def verify_trip_session(
    session_id: str,
    request: Request,
    payload: VerifyRequest | None = None,
    principal: Principal = Depends(get_current_principal),
    db: AsyncSession = Depends(get_db),
) -> dict:
    access = await load_session_access(db, principal, session_id)
    enforce(decide_guard_action(access.actor, access.read), "Only guards of this company can verify the session")
    trip_session = await complete_verification(
        db,
        trip_session=access.trip_session,
        actor=access.actor,
        actor_name=principal.name,
        verification_data=payload.verificationData if payload is not None else None,
        request=request,
    )
    seal = await ensure_seal(db, trip_session)
    return success_response(request=request, data=serialize_session_summary(trip_session, seal))


async def _require_maintenance(db: AsyncSession, principal: Principal, session_id: str) -> SessionAccess:
    access = await load_session_access(db, principal, session_id)
    enforce(decide_maintenance(access.actor), "Only administrators can run session repairs")
    enforce(access.read, "You do not have access to this session")
    return access


@router.post("/{session_id}/repair/seal-timestamps")
async def repair_session_seal_timestamps(
    session_id: str,
    request: Request,
    principal: Principal = Depends(get_current_principal),
    db: AsyncSession = Depends(get_db),
) -> dict:
    access = await _require_maintenance(db, principal, session_id)
    fixed = await repair_seal_timestamps(db, trip_session=access.trip_session, actor_id=principal.user_id)
    return success_response(request=request, data={"sessionId": session_id, "fixed": fixed})


@router.post("/{session_id}/repair/guard-seal-images")
async def repair_session_guard_images(
    session_id: str,
    request: Request,
    principal: Principal = Depends(get_current_principal),
    db: AsyncSession = Depends(get_db),
) -> dict:
    access = await _require_maintenance(db, principal, session_id)
    fixed = await repair_guard_seal_images(db, trip_session=access.trip_session, actor_id=principal.user_id)
    return success_response(request=request, data={"sessionId": session_id, "fixed": fixed})


@router.post("/{session_id}/repair/seal-images")
async def repair_session_seal_images(
    session_id: str,
    request: Request,
    principal: Principal = Depends(get_current_principal),
    db: AsyncSession = Depends(get_db),
) -> dict:
    access = await _require_maintenance(db, principal, session_id)
    fixed = await repair_seal_images(db, trip_session=access.trip_session, actor_id=principal.user_id)
    return success_response(request=request, data={"sessionId": session_id, "fixed": fixed})
