from __future__ import annotations

from dataclasses import dataclass, field
import logging
from typing import Any
from uuid import uuid4

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession
from starlette.requests import Request

from tripseal.core.config import get_settings
from tripseal.core.errors import ConflictError, DatabaseError, InvalidTransitionError, ValidationFailedError
from tripseal.domain.models import CoinTransaction, Seal, SealTag, TripSession, Vehicle
from tripseal.domain.vocabulary import (
    ACTION_CREATE,
    ACTION_UPDATE,
    REASON_SESSION_CREATION,
    RESOURCE_SESSION,
    SEAL_METHOD_DEFAULT,
    STATUS_COMPLETED,
    STATUS_IN_PROGRESS,
    STATUS_PENDING,
    VEHICLE_STATUS_BUSY,
    VEHICLE_TYPE_TRUCK,
)
from tripseal.persistence.repos.seals import get_seal_for_session, list_guard_seal_tags, list_seal_tags
from tripseal.services.audit import record_activity
from tripseal.services.authz.arbiter import Actor
from tripseal.services.coins import debit_coins
from tripseal.services.images import RawImage, check_payload_size, encode_images, to_data_url
from tripseal.services.ledger import record_field_update
from tripseal.services.seals.reconciliation import normalize_barcode, reconcile
from tripseal.services.timefmt import isoformat_z, parse_timestamp, utc_now
from tripseal.services.trip_details import (
    TRIP_DETAIL_COLUMNS,
    coerce_trip_value,
    image_urls_from_base64,
)


logger = logging.getLogger(__name__)

# Forward-only status graph.
_TRANSITIONS: dict[str, frozenset[str]] = {
    STATUS_PENDING: frozenset({STATUS_IN_PROGRESS}),
    STATUS_IN_PROGRESS: frozenset({STATUS_COMPLETED}),
    STATUS_COMPLETED: frozenset(),
}
_SEALED_STATUSES = frozenset({STATUS_IN_PROGRESS, STATUS_COMPLETED})

# Form sections whose timestamps become namespaced ledger rows.
_SECTION_PREFIXES = {
    "loadingDetails": "loadingDetails",
    "driverDetails": "driverDetails",
    "imagesForm": "images",
}


def can_transition(current: str, target: str) -> bool:
    return target in _TRANSITIONS.get(current, frozenset())


def transition(trip_session: TripSession, target: str) -> None:
    if not can_transition(trip_session.status, target):
        raise InvalidTransitionError(
            f"Session cannot move from {trip_session.status} to {target}",
            details={"from": trip_session.status, "to": target},
        )
    logger.info("session_status_transition session_id=%s from=%s to=%s", trip_session.id, trip_session.status, target)
    trip_session.status = target


def _epoch_ms() -> int:
    return int(utc_now().timestamp() * 1000)


async def ensure_seal(session: AsyncSession, trip_session: TripSession) -> Seal | None:
    """Return the session's seal, creating a fallback seal when one is missing.

    Every IN_PROGRESS or COMPLETED session owns exactly one seal; the repair
    row is added to the caller's transaction.
    """
    seal = await get_seal_for_session(session, trip_session.id)
    if seal is not None or trip_session.status not in _SEALED_STATUSES:
        return seal
    tags = await list_seal_tags(session, trip_session.id)
    barcode = tags[0].barcode if tags else f"FALLBACK-{_epoch_ms()}"
    seal = Seal(id=uuid4().hex, session_id=trip_session.id, barcode=barcode, verified=False)
    session.add(seal)
    logger.warning("session_seal_repaired session_id=%s barcode=%s", trip_session.id, barcode)
    return seal


async def repair_missing_seal(session: AsyncSession, trip_session: TripSession) -> Seal | None:
    """Commit the fallback seal for a read path.

    A concurrent reader may insert the seal first; the unique session_id then
    rejects this one and the committed row is returned instead.
    """
    seal = await ensure_seal(session, trip_session)
    if seal is None or not session.new:
        return seal
    try:
        await session.commit()
    except IntegrityError:
        await session.rollback()
        await session.refresh(trip_session)
        logger.info("session_seal_repair_raced session_id=%s", trip_session.id)
        return await get_seal_for_session(session, trip_session.id)
    return seal


@dataclass
class SessionDraft:
    """Operator-submitted session payload, already parsed from the form."""

    trip_details: dict[str, Any] = field(default_factory=dict)
    source: str | None = None
    destination: str | None = None
    seal_tag_ids: list[str] = field(default_factory=list)
    seal_tag_methods: dict[str, str] = field(default_factory=dict)
    seal_tag_timestamps: dict[str, Any] = field(default_factory=dict)
    # loadingDetails / driverDetails / imagesForm -> {field: timestamp}
    section_timestamps: dict[str, dict[str, Any]] = field(default_factory=dict)
    client_base64: dict[str, Any] = field(default_factory=dict)
    images: list[RawImage] = field(default_factory=list)


def _validate_seal_ids(seal_tag_ids: list[str]) -> list[str]:
    cleaned: list[str] = []
    seen: set[str] = set()
    for raw in seal_tag_ids:
        barcode = str(raw).strip()
        if not barcode:
            continue
        norm = normalize_barcode(barcode)
        if norm in seen:
            raise ConflictError(f"Duplicate seal tag id {barcode}", code="DUPLICATE_SEAL_TAG")
        seen.add(norm)
        cleaned.append(barcode)
    return cleaned


async def _upsert_vehicle(session: AsyncSession, *, number_plate: str, company_id: str, actor_id: str) -> None:
    result = await session.execute(select(Vehicle).where(Vehicle.number_plate == number_plate))
    vehicle = result.scalar_one_or_none()
    if vehicle is None:
        session.add(
            Vehicle(
                id=uuid4().hex,
                number_plate=number_plate,
                company_id=company_id,
                created_by_id=actor_id,
                vehicle_type=VEHICLE_TYPE_TRUCK,
                status=VEHICLE_STATUS_BUSY,
            )
        )
    else:
        vehicle.status = VEHICLE_STATUS_BUSY


async def create_session(
    session: AsyncSession,
    *,
    actor: Actor,
    actor_name: str | None,
    draft: SessionDraft,
    request: Request | None = None,
) -> TripSession:
    """Create a trip session with its seal, tags, provenance rows and coin debit.

    Everything happens in one transaction: a failure anywhere (image limits,
    insufficient coins, DB errors) leaves no session and no debit behind.
    Authorization is the caller's job.
    """
    if not actor.company_id:
        raise ValidationFailedError("Employee is not associated with a company")
    seal_ids = _validate_seal_ids(draft.seal_tag_ids)

    # Encode before touching the database so oversized uploads fail fast.
    # Client-encoded blobs take precedence over server-side encoding of the same field.
    image_payload = {**(await encode_images(draft.images)), **draft.client_base64}
    check_payload_size(image_payload)

    trip_details = {name: coerce_trip_value(name, draft.trip_details.get(name)) for name in TRIP_DETAIL_COLUMNS}
    now = utc_now()
    session_id = uuid4().hex
    trip_session = TripSession(
        id=session_id,
        status=STATUS_PENDING,
        company_id=actor.company_id,
        created_by_id=actor.user_id,
        source=draft.source or trip_details.get("loadingSite"),
        destination=draft.destination or trip_details.get("receiverPartyName"),
        created_at=now,
        updated_at=now,
        **{TRIP_DETAIL_COLUMNS[name]: value for name, value in trip_details.items()},
    )

    try:
        await debit_coins(session, user_id=actor.user_id, amount=1)
        session.add(trip_session)
        primary_barcode = seal_ids[0] if seal_ids else f"GENERATED-{_epoch_ms()}"
        session.add(Seal(id=uuid4().hex, session_id=session_id, barcode=primary_barcode, verified=False))
        transition(trip_session, STATUS_IN_PROGRESS)

        seal_tag_images = image_payload.get("sealTagImages") if isinstance(image_payload.get("sealTagImages"), dict) else {}
        for barcode in seal_ids:
            created_at = parse_timestamp(draft.seal_tag_timestamps.get(barcode)) or now
            session.add(
                SealTag(
                    id=uuid4().hex,
                    session_id=session_id,
                    barcode=barcode,
                    method=draft.seal_tag_methods.get(barcode) or SEAL_METHOD_DEFAULT,
                    image_data=to_data_url(seal_tag_images.get(barcode)),
                    scanned_by_id=actor.user_id,
                    scanned_by_name=actor_name or "Unknown Operator",
                    created_at=created_at,
                )
            )
        await session.flush()
        await ensure_seal(session, trip_session)

        if trip_details.get("vehicleNumber"):
            await _upsert_vehicle(
                session,
                number_plate=str(trip_details["vehicleNumber"]),
                company_id=actor.company_id,
                actor_id=actor.user_id,
            )

        for section, fields in draft.section_timestamps.items():
            prefix = _SECTION_PREFIXES.get(section)
            if prefix is None or not isinstance(fields, dict):
                continue
            for field_name, raw_ts in fields.items():
                if str(field_name).startswith("sealTag"):
                    continue
                await record_field_update(
                    session,
                    session_id=session_id,
                    field_name=f"{prefix}.{field_name}",
                    actor_id=actor.user_id,
                    timestamp=parse_timestamp(raw_ts) or now,
                )

        session.add(
            CoinTransaction(
                id=uuid4().hex,
                from_user_id=actor.user_id,
                to_user_id=actor.user_id,
                amount=1,
                reason=REASON_SESSION_CREATION,
                reason_text=f"Session ID: {session_id} - Session creation cost",
            )
        )
        await record_activity(
            session=session,
            user_id=actor.user_id,
            action=ACTION_CREATE,
            target_resource_id=session_id,
            target_resource_type=RESOURCE_SESSION,
            details={
                "tripDetails": trip_details,
                "images": image_urls_from_base64(session_id, image_payload),
                "timestamps": {
                    "loadingDetails": draft.section_timestamps.get("loadingDetails", {}),
                    "driverDetails": draft.section_timestamps.get("driverDetails", {}),
                    "imagesForm": draft.section_timestamps.get("imagesForm", {}),
                },
                "qrCodes": {"primaryBarcode": primary_barcode, "additionalBarcodes": seal_ids[1:]},
                "sealTagData": {
                    "sealTagIds": seal_ids,
                    "sealTagMethods": draft.seal_tag_methods,
                    "sealTagTimestamps": draft.seal_tag_timestamps,
                },
            },
            request=request,
        )
        if image_payload:
            await record_activity(
                session=session,
                user_id=actor.user_id,
                action=ACTION_CREATE,
                target_resource_id=session_id,
                target_resource_type=RESOURCE_SESSION,
                details={"imageBase64Data": image_payload},
                request=request,
            )
        await session.commit()
    except SQLAlchemyError as exc:
        await session.rollback()
        logger.error("session_create_failed actor=%s", actor.user_id, exc_info=exc)
        raise DatabaseError("Session creation failed") from exc
    except Exception:
        await session.rollback()
        raise

    logger.info("session_created session_id=%s actor=%s seals=%s", session_id, actor.user_id, len(seal_ids))
    return trip_session


async def complete_verification(
    session: AsyncSession,
    *,
    trip_session: TripSession,
    actor: Actor,
    actor_name: str | None,
    verification_data: dict[str, Any] | None,
    request: Request | None = None,
) -> TripSession:
    """Close a session after guard verification.

    Writes the verification snapshot, marks the seal verified and moves the
    session to COMPLETED in one transaction. Authorization is the caller's job.
    """
    if not can_transition(trip_session.status, STATUS_COMPLETED):
        raise InvalidTransitionError(
            f"Session cannot move from {trip_session.status} to {STATUS_COMPLETED}",
            details={"from": trip_session.status, "to": STATUS_COMPLETED},
        )
    seal = await ensure_seal(session, trip_session)
    seal_tags = await list_seal_tags(session, trip_session.id)
    guard_tags = await list_guard_seal_tags(session, trip_session.id)
    summary = reconcile(seal_tags, guard_tags)
    if get_settings().verification_require_all_matched and not summary["allMatched"]:
        raise ConflictError(
            "All operator seals must be matched before completing verification",
            code="SEALS_NOT_RECONCILED",
            details={"mismatched": summary["mismatched"], "unscanned": summary["unscanned"]},
        )

    now = utc_now()
    payload = dict(verification_data or {})
    if seal is not None:
        seal.verified = True
        seal.verified_by_id = actor.user_id
        seal.scanned_at = now
        seal.verification_data = payload
    transition(trip_session, STATUS_COMPLETED)
    await record_activity(
        session=session,
        user_id=actor.user_id,
        action=ACTION_UPDATE,
        target_resource_id=trip_session.id,
        target_resource_type=RESOURCE_SESSION,
        details={
            "verification": {
                "completedBy": {
                    "id": actor.user_id,
                    "name": actor_name,
                    "role": actor.role,
                    "subrole": actor.subrole,
                },
                "completedAt": isoformat_z(now),
                "verificationData": payload,
                "sealReconciliation": {
                    "matched": summary["matched"],
                    "mismatched": summary["mismatched"],
                    "unscanned": summary["unscanned"],
                },
            }
        },
        request=request,
    )
    try:
        await session.commit()
    except SQLAlchemyError as exc:
        await session.rollback()
        logger.error("session_verify_failed session_id=%s", trip_session.id, exc_info=exc)
        raise DatabaseError("Verification could not be saved") from exc
    logger.info("session_verified session_id=%s guard=%s", trip_session.id, actor.user_id)
    return trip_session
