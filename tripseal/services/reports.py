from __future__ import annotations

from typing import Any

from sqlalchemy.ext.asyncio import AsyncSession

from tripseal.domain.models import Company, Seal, TripSession, User
from tripseal.services.comments import list_comments, serialize_comment
from tripseal.services.session_view import build_session_detail
from tripseal.services.timefmt import format_timestamp_exact, isoformat_z, utc_now


REPORT_VERSION = 1

_IMAGE_KEYS = ("imageData", "guardImageData")


def _strip_blobs(tag: dict[str, Any]) -> dict[str, Any]:
    # The renderer gets references only; blobs are fetched through the image routes.
    stripped = {key: value for key, value in tag.items() if key not in _IMAGE_KEYS}
    stripped["hasImage"] = bool(tag.get("imageData"))
    stripped["hasGuardImage"] = bool(tag.get("guardImageData"))
    return stripped


async def build_report_bundle(
    session: AsyncSession,
    *,
    trip_session: TripSession,
    seal: Seal | None,
) -> dict[str, Any]:
    """Structured session + seal + comment + image-reference bundle for document rendering."""
    detail = await build_session_detail(session, trip_session=trip_session, seal=seal)
    creator = await session.get(User, trip_session.created_by_id)
    company = await session.get(Company, trip_session.company_id)
    comments = await list_comments(session, trip_session.id)
    generated_at = utc_now()
    return {
        "reportVersion": REPORT_VERSION,
        "generatedAt": isoformat_z(generated_at),
        "formattedGeneratedAt": format_timestamp_exact(generated_at),
        "session": {key: detail[key] for key in ("id", "status", "source", "destination", "createdAt")},
        "company": {"id": trip_session.company_id, "name": company.name if company else None},
        "createdBy": {"id": trip_session.created_by_id, "name": creator.name if creator else None},
        "tripDetails": detail["tripDetails"],
        "seal": detail["seal"],
        "sealTags": [_strip_blobs(tag) for tag in detail["sealTags"]],
        "guardSealTags": [_strip_blobs(tag) for tag in detail["guardSealTags"]],
        "sealReconciliation": detail["sealReconciliation"],
        "images": detail["images"],
        "timestamps": detail["timestamps"],
        "verificationHistory": detail["verificationHistory"],
        "comments": [serialize_comment(comment) for comment in comments],
    }
