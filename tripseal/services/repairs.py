from __future__ import annotations

import logging
from typing import Any

from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm.exc import StaleDataError

from tripseal.core.errors import ConflictError
from tripseal.domain.models import TripSession
from tripseal.domain.vocabulary import ACTION_UPDATE, RESOURCE_SESSION
from tripseal.persistence.repos.activity import list_session_logs
from tripseal.persistence.repos.seals import list_seal_tags
from tripseal.services.audit import record_activity
from tripseal.services.images import to_data_url
from tripseal.services.seals.reconciliation import normalize_barcode
from tripseal.services.timefmt import as_utc, parse_timestamp


logger = logging.getLogger(__name__)


def _recorded_seal_timestamps(logs: list) -> dict[str, Any]:
    for log in logs:
        details = log.details if isinstance(log.details, dict) else {}
        seal_data = details.get("sealTagData")
        if isinstance(seal_data, dict) and isinstance(seal_data.get("sealTagTimestamps"), dict):
            return seal_data["sealTagTimestamps"]
    return {}


def _recorded_images(logs: list, payload_key: str) -> dict[str, Any]:
    # Newest payload wins per barcode.
    images: dict[str, Any] = {}
    for log in logs:
        details = log.details if isinstance(log.details, dict) else {}
        bundle = details.get(payload_key)
        if not isinstance(bundle, dict) or not isinstance(bundle.get("sealTagImages"), dict):
            continue
        for barcode, blob in bundle["sealTagImages"].items():
            images.setdefault(normalize_barcode(barcode), blob)
    return images


async def _finish(session: AsyncSession, *, trip_session: TripSession, actor_id: str, job: str, fixed: list[str]) -> None:
    if fixed:
        await record_activity(
            session=session,
            user_id=actor_id,
            action=ACTION_UPDATE,
            target_resource_id=trip_session.id,
            target_resource_type=RESOURCE_SESSION,
            details={"sessionId": trip_session.id, "repair": {"job": job, "barcodes": fixed}},
        )
    try:
        await session.commit()
    except StaleDataError as exc:
        await session.rollback()
        raise ConflictError("Seal tags changed during repair; retry") from exc
    logger.info("session_repair job=%s session_id=%s fixed=%s", job, trip_session.id, len(fixed))


async def repair_seal_timestamps(session: AsyncSession, *, trip_session: TripSession, actor_id: str) -> list[str]:
    """Restore seal tag creation times from the submitted ``sealTagData.sealTagTimestamps``."""
    logs = await list_session_logs(session, trip_session.id)
    recorded = {normalize_barcode(key): value for key, value in _recorded_seal_timestamps(logs).items()}
    fixed: list[str] = []
    for tag in await list_seal_tags(session, trip_session.id):
        parsed = parse_timestamp(recorded.get(normalize_barcode(tag.barcode)))
        if parsed is None or as_utc(tag.created_at) == parsed:
            continue
        tag.created_at = parsed
        fixed.append(tag.barcode)
    await _finish(session, trip_session=trip_session, actor_id=actor_id, job="seal_timestamps", fixed=fixed)
    return fixed


async def repair_guard_seal_images(session: AsyncSession, *, trip_session: TripSession, actor_id: str) -> list[str]:
    """Backfill guard images on verified seal tags from ``guardImageBase64Data`` payloads."""
    logs = await list_session_logs(session, trip_session.id)
    images = _recorded_images(logs, "guardImageBase64Data")
    fixed: list[str] = []
    for tag in await list_seal_tags(session, trip_session.id):
        if tag.guard_user_id is None or tag.guard_image_data:
            continue
        data_url = to_data_url(images.get(normalize_barcode(tag.barcode)))
        if data_url is None:
            continue
        tag.guard_image_data = data_url
        fixed.append(tag.barcode)
    await _finish(session, trip_session=trip_session, actor_id=actor_id, job="guard_seal_images", fixed=fixed)
    return fixed


async def repair_seal_images(session: AsyncSession, *, trip_session: TripSession, actor_id: str) -> list[str]:
    """Backfill operator seal tag images from ``imageBase64Data.sealTagImages``."""
    logs = await list_session_logs(session, trip_session.id)
    images = _recorded_images(logs, "imageBase64Data")
    fixed: list[str] = []
    for tag in await list_seal_tags(session, trip_session.id):
        if tag.image_data:
            continue
        data_url = to_data_url(images.get(normalize_barcode(tag.barcode)))
        if data_url is None:
            continue
        tag.image_data = data_url
        fixed.append(tag.barcode)
    await _finish(session, trip_session=trip_session, actor_id=actor_id, job="seal_images", fixed=fixed)
    return fixed
