from __future__ import annotations

from typing import Any

from sqlalchemy.ext.asyncio import AsyncSession

from tripseal.domain.models import ActivityLog, GuardSealTag, Seal, SealTag, TripSession
from tripseal.persistence.repos.activity import list_session_logs
from tripseal.persistence.repos.seals import list_guard_seal_tags, list_seal_tags
from tripseal.services.images import to_data_url
from tripseal.services.ledger import format_ledger, legacy_timestamps, load_ledger, split_field_name
from tripseal.services.seals.reconciliation import reconcile
from tripseal.services.timefmt import as_utc, format_timestamp_exact, isoformat_z
from tripseal.services.trip_details import (
    known_field_names,
    latest_payload,
    resolve_images,
    resolve_trip_details,
    resolve_verification_history,
)


def _seal_tag_images(logs: list[ActivityLog], payload_key: str) -> dict[str, Any]:
    # sealTagImages[barcode] from the newest log that carries them.
    for log in logs:
        details = log.details if isinstance(log.details, dict) else {}
        bundle = details.get(payload_key)
        if isinstance(bundle, dict) and isinstance(bundle.get("sealTagImages"), dict):
            return bundle["sealTagImages"]
    return {}


def serialize_seal(seal: Seal | None) -> dict[str, Any] | None:
    if seal is None:
        return None
    return {
        "id": seal.id,
        "barcode": seal.barcode,
        "verified": seal.verified,
        "scannedAt": isoformat_z(seal.scanned_at),
        "verifiedById": seal.verified_by_id,
        "verificationData": seal.verification_data,
    }


def serialize_seal_tag(
    tag: SealTag,
    *,
    operator_images: dict[str, Any] | None = None,
    guard_images: dict[str, Any] | None = None,
) -> dict[str, Any]:
    image_data = tag.image_data or to_data_url((operator_images or {}).get(tag.barcode))
    guard_image = tag.guard_image_data or to_data_url((guard_images or {}).get(tag.barcode))
    return {
        "id": tag.id,
        "barcode": tag.barcode,
        "method": tag.method,
        "imageData": image_data,
        "scannedById": tag.scanned_by_id,
        "scannedByName": tag.scanned_by_name,
        "createdAt": isoformat_z(tag.created_at),
        "formattedCreatedAt": format_timestamp_exact(as_utc(tag.created_at)),
        "guardMethod": tag.guard_method,
        "guardImageData": guard_image,
        "guardTimestamp": isoformat_z(tag.guard_timestamp),
        "guardUserId": tag.guard_user_id,
        "guardStatus": tag.guard_status,
    }


def serialize_guard_seal_tag(tag: GuardSealTag) -> dict[str, Any]:
    return {
        "id": tag.id,
        "sessionId": tag.session_id,
        "barcode": tag.barcode,
        "method": tag.method,
        "imageData": tag.image_data,
        "status": tag.status,
        "verifiedById": tag.verified_by_id,
        "createdAt": isoformat_z(tag.created_at),
    }


def serialize_session_summary(trip_session: TripSession, seal: Seal | None) -> dict[str, Any]:
    return {
        "id": trip_session.id,
        "status": trip_session.status,
        "source": trip_session.source,
        "destination": trip_session.destination,
        "companyId": trip_session.company_id,
        "createdById": trip_session.created_by_id,
        "createdAt": isoformat_z(trip_session.created_at),
        "seal": serialize_seal(seal),
    }


async def build_session_detail(
    session: AsyncSession,
    *,
    trip_session: TripSession,
    seal: Seal | None,
) -> dict[str, Any]:
    """Assemble the read model for one session from columns, ledger and logs."""
    logs = await list_session_logs(session, trip_session.id)
    seal_tags = await list_seal_tags(session, trip_session.id)
    guard_tags = await list_guard_seal_tags(session, trip_session.id)
    ledger = await load_ledger(session, trip_session.id)

    operator_images = _seal_tag_images(logs, "imageBase64Data")
    guard_images = _seal_tag_images(logs, "guardImageBase64Data")
    formatted, grouped = format_ledger(
        trip_session,
        ledger,
        field_names=known_field_names(),
        legacy=legacy_timestamps(logs),
    )
    written_fields = {split_field_name(name)[1] for name in ledger}

    qr_codes = latest_payload(logs, "qrCodes") or {}
    return {
        **serialize_session_summary(trip_session, seal),
        "tripDetails": resolve_trip_details(trip_session, logs, written_fields=written_fields),
        "images": resolve_images(trip_session.id, logs),
        "qrCodes": qr_codes,
        "sealTags": [
            serialize_seal_tag(tag, operator_images=operator_images, guard_images=guard_images) for tag in seal_tags
        ],
        "guardSealTags": [serialize_guard_seal_tag(tag) for tag in guard_tags],
        "sealReconciliation": reconcile(seal_tags, guard_tags),
        "fieldTimestamps": [
            {
                "fieldName": row.field_name,
                "timestamp": isoformat_z(row.timestamp),
                "updatedById": row.updated_by_id,
            }
            for row in ledger.values()
        ],
        "formattedFieldTimestamps": formatted,
        "timestamps": grouped,
        "verificationHistory": resolve_verification_history(logs),
    }
