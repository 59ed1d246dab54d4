from __future__ import annotations

from dataclasses import dataclass
import logging
from typing import Any
from uuid import uuid4

from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm.exc import StaleDataError
from starlette.requests import Request

from tripseal.core.config import get_settings
from tripseal.core.errors import ConflictError, PayloadTooLargeError, ValidationFailedError
from tripseal.domain.models import GuardSealTag, SealTag, TripSession
from tripseal.domain.vocabulary import (
    ACTION_CREATE,
    ACTION_UPDATE,
    RESOURCE_GUARD_SEAL_TAG,
    RESOURCE_SEAL_TAG,
    SEAL_METHOD_GUARD_ONLY,
    SEAL_STATUS_GUARD_ONLY,
    SEAL_STATUS_VERIFIED,
)
from tripseal.persistence.repos.seals import get_guard_seal_tag, list_seal_tags
from tripseal.services.audit import record_activity
from tripseal.services.images import split_data_url
from tripseal.services.seals.reconciliation import normalize_barcode
from tripseal.services.timefmt import isoformat_z, utc_now


logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class GuardScanResult:
    seal_tag: SealTag
    # True when the operator registered this barcode.
    matched: bool
    created: bool


def _check_image_size(image_data: str | None) -> None:
    limit = get_settings().max_image_bytes
    if image_data is not None and len(image_data) > limit:
        raise PayloadTooLargeError(f"Image data exceeds {limit} bytes")


async def ingest_guard_scan(
    session: AsyncSession,
    *,
    trip_session: TripSession,
    barcode: str,
    method: str,
    actor_id: str,
    image_data: str | None = None,
    request: Request | None = None,
) -> GuardScanResult:
    """Apply one guard scan to the session's seal tags.

    Known barcodes are verified in place (first scan wins; a second scan of a
    guard-verified tag is a conflict). Unknown barcodes become ``guard only``
    tags so the anomaly stays visible.
    """
    cleaned = (barcode or "").strip()
    if not normalize_barcode(cleaned):
        raise ValidationFailedError("barcode is required")
    if not (method or "").strip():
        raise ValidationFailedError("method is required")
    _check_image_size(image_data)

    now = utc_now()
    tags = await list_seal_tags(session, trip_session.id)
    target = next((tag for tag in tags if normalize_barcode(tag.barcode) == normalize_barcode(cleaned)), None)

    if target is not None and target.guard_user_id is not None:
        raise ConflictError("Seal tag already verified by a guard", code="SEAL_ALREADY_VERIFIED")

    created = target is None
    if target is None:
        target = SealTag(
            id=uuid4().hex,
            session_id=trip_session.id,
            barcode=cleaned,
            method=SEAL_METHOD_GUARD_ONLY,
            guard_method=method,
            guard_image_data=image_data,
            guard_timestamp=now,
            guard_user_id=actor_id,
            guard_status=SEAL_STATUS_GUARD_ONLY,
            created_at=now,
        )
        session.add(target)
    else:
        target.guard_method = method
        target.guard_timestamp = now
        target.guard_user_id = actor_id
        target.guard_status = SEAL_STATUS_VERIFIED
        if image_data:
            target.guard_image_data = image_data

    details: dict[str, Any] = {
        "entityType": RESOURCE_SEAL_TAG,
        "sessionId": trip_session.id,
        "sealTagVerification": {
            "barcode": cleaned,
            "method": method,
            "guardOnly": created,
            "verifiedBy": actor_id,
            "timestamp": isoformat_z(now),
        },
    }
    blob = split_data_url(image_data)
    if blob is not None:
        details["guardImageBase64Data"] = {"sealTagImages": {cleaned: blob}}
    await record_activity(
        session=session,
        user_id=actor_id,
        action=ACTION_CREATE if created else ACTION_UPDATE,
        target_resource_id=trip_session.id,
        target_resource_type=RESOURCE_SEAL_TAG,
        details=details,
        request=request,
    )

    try:
        await session.commit()
    except (StaleDataError, IntegrityError) as exc:
        await session.rollback()
        logger.info("guard_scan_conflict session_id=%s barcode=%s", trip_session.id, cleaned)
        raise ConflictError("Seal tag already verified by a guard", code="SEAL_ALREADY_VERIFIED") from exc

    logger.info(
        "guard_scan_recorded session_id=%s barcode=%s guard_only=%s",
        trip_session.id,
        cleaned,
        created,
    )
    return GuardScanResult(seal_tag=target, matched=not created, created=created)


async def record_guard_seal_tag(
    session: AsyncSession,
    *,
    trip_session: TripSession,
    barcode: str,
    method: str,
    actor_id: str,
    image_data: str | None = None,
    request: Request | None = None,
) -> GuardSealTag:
    # Structured guard scan; duplicate barcodes within a session are rejected.
    cleaned = (barcode or "").strip()
    if not cleaned or not (method or "").strip():
        raise ValidationFailedError("Barcode and method are required")
    _check_image_size(image_data)

    existing = await get_guard_seal_tag(session, trip_session.id, cleaned)
    if existing is not None:
        raise ConflictError("This seal has already been scanned for this session", code="DUPLICATE_SEAL_SCAN")

    tag = GuardSealTag(
        id=uuid4().hex,
        session_id=trip_session.id,
        barcode=cleaned,
        method=method,
        image_data=image_data,
        status=SEAL_STATUS_VERIFIED,
        verified_by_id=actor_id,
        created_at=utc_now(),
    )
    session.add(tag)
    await record_activity(
        session=session,
        user_id=actor_id,
        action=ACTION_CREATE,
        target_resource_id=trip_session.id,
        target_resource_type=RESOURCE_GUARD_SEAL_TAG,
        details={"sessionId": trip_session.id, "guardSealTag": {"barcode": cleaned, "method": method}},
        request=request,
    )
    try:
        await session.commit()
    except IntegrityError as exc:
        await session.rollback()
        raise ConflictError("This seal has already been scanned for this session", code="DUPLICATE_SEAL_SCAN") from exc
    return tag
