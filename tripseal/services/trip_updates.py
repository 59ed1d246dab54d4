from __future__ import annotations

from dataclasses import dataclass, field
import logging
from typing import Any

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm.exc import StaleDataError
from starlette.requests import Request

from tripseal.core.errors import ConflictError, DatabaseError, ValidationFailedError
from tripseal.domain.models import TripSession
from tripseal.domain.vocabulary import ACTION_UPDATE, RESOURCE_SESSION
from tripseal.persistence.repos.activity import list_session_logs
from tripseal.services.audit import record_activity
from tripseal.services.ledger import FieldChange, record_changed_fields, split_field_name, values_differ
from tripseal.services.lifecycle import ensure_seal
from tripseal.services.timefmt import isoformat_z, utc_now
from tripseal.services.trip_details import (
    MULTI_IMAGE_FIELDS,
    SESSION_COLUMNS,
    SINGLE_IMAGE_FIELDS,
    TRIP_DETAIL_COLUMNS,
    coerce_trip_value,
    column_for,
    namespace_for,
    resolve_images,
)


logger = logging.getLogger(__name__)


@dataclass
class UpdateResult:
    changed_fields: list[str] = field(default_factory=list)
    recorded_fields: list[str] = field(default_factory=list)


def ledger_name(field_name: str) -> str:
    # Bare wire names gain their form-section namespace.
    prefix, bare = split_field_name(field_name)
    if prefix is not None:
        return field_name
    return f"{namespace_for(bare)}.{bare}"


async def _commit(session: AsyncSession, trip_session: TripSession) -> None:
    try:
        await session.commit()
    except StaleDataError as exc:
        await session.rollback()
        raise ConflictError("Session was modified concurrently; reload and retry") from exc
    except SQLAlchemyError as exc:
        await session.rollback()
        logger.error("session_update_failed session_id=%s", trip_session.id, exc_info=exc)
        raise DatabaseError("Session update failed") from exc


async def update_field(
    session: AsyncSession,
    *,
    trip_session: TripSession,
    actor_id: str,
    field_name: str | None,
    value: Any,
    request: Request | None = None,
) -> UpdateResult:
    """Set one trip-detail column; value, provenance row and audit entry commit together."""
    if not field_name:
        raise ValidationFailedError("fieldName is required")
    column = column_for(field_name)
    if column is None:
        raise ValidationFailedError(f"Unknown field {field_name}")
    _prefix, bare = split_field_name(field_name)

    old_value = getattr(trip_session, column)
    new_value = coerce_trip_value(bare, value)
    if not values_differ(old_value, new_value):
        return UpdateResult()

    setattr(trip_session, column, new_value)
    name = ledger_name(field_name)
    recorded = await record_changed_fields(
        session,
        session_id=trip_session.id,
        actor_id=actor_id,
        changes=[FieldChange(name, old_value, new_value)],
    )
    await record_activity(
        session=session,
        user_id=actor_id,
        action=ACTION_UPDATE,
        target_resource_id=trip_session.id,
        target_resource_type=RESOURCE_SESSION,
        details={
            "entityType": RESOURCE_SESSION,
            "sessionId": trip_session.id,
            "fieldName": field_name,
            "oldValue": old_value,
            "newValue": new_value,
            "timestamp": isoformat_z(utc_now()),
        },
        request=request,
    )
    await _commit(session, trip_session)
    return UpdateResult(changed_fields=[name], recorded_fields=recorded)


async def update_session(
    session: AsyncSession,
    *,
    trip_session: TripSession,
    actor_id: str,
    source: str | None = None,
    destination: str | None = None,
    trip_details: dict[str, Any] | None = None,
    images: dict[str, Any] | None = None,
    seal_barcode: str | None = None,
    request: Request | None = None,
) -> UpdateResult:
    """Bulk edit; only fields whose value actually changed get a provenance row."""
    changes: list[FieldChange] = []
    updates: dict[str, Any] = {}

    for wire_name, value in (("source", source), ("destination", destination)):
        if value is None:
            continue
        column = SESSION_COLUMNS[wire_name]
        old_value = getattr(trip_session, column)
        if values_differ(old_value, value):
            setattr(trip_session, column, value)
            changes.append(FieldChange(ledger_name(wire_name), old_value, value))
            updates[wire_name] = value

    detail_updates: dict[str, Any] = {}
    for wire_name, raw in (trip_details or {}).items():
        column = TRIP_DETAIL_COLUMNS.get(wire_name)
        if column is None:
            raise ValidationFailedError(f"Unknown trip detail {wire_name}")
        old_value = getattr(trip_session, column)
        new_value = coerce_trip_value(wire_name, raw)
        if values_differ(old_value, new_value):
            setattr(trip_session, column, new_value)
            changes.append(FieldChange(ledger_name(wire_name), old_value, new_value))
            detail_updates[wire_name] = new_value
    if detail_updates:
        updates["tripDetails"] = detail_updates

    merged_images: dict[str, Any] | None = None
    if images:
        logs = await list_session_logs(session, trip_session.id)
        current = resolve_images(trip_session.id, logs)
        image_updates: dict[str, Any] = {}
        for wire_name, value in images.items():
            if wire_name not in SINGLE_IMAGE_FIELDS and wire_name not in MULTI_IMAGE_FIELDS:
                raise ValidationFailedError(f"Unknown image field {wire_name}")
            if values_differ(current.get(wire_name), value):
                changes.append(FieldChange(f"images.{wire_name}", current.get(wire_name), value))
                image_updates[wire_name] = value
        if image_updates:
            merged_images = {**current, **image_updates}
            updates["images"] = image_updates

    if seal_barcode is not None and seal_barcode.strip():
        seal = await ensure_seal(session, trip_session)
        if seal is not None and values_differ(seal.barcode, seal_barcode.strip()):
            if seal.verified:
                raise ConflictError("Seal has already been verified and cannot be changed", code="SEAL_VERIFIED")
            seal.barcode = seal_barcode.strip()
            updates["seal"] = {"barcode": seal.barcode}

    if not updates:
        return UpdateResult()

    recorded = await record_changed_fields(
        session,
        session_id=trip_session.id,
        actor_id=actor_id,
        changes=changes,
    )
    details: dict[str, Any] = {"sessionId": trip_session.id, "updates": updates, "changedFields": recorded}
    if merged_images is not None:
        details["images"] = merged_images
    await record_activity(
        session=session,
        user_id=actor_id,
        action=ACTION_UPDATE,
        target_resource_id=trip_session.id,
        target_resource_type=RESOURCE_SESSION,
        details=details,
        request=request,
    )
    await _commit(session, trip_session)
    return UpdateResult(changed_fields=[change.field_name for change in changes], recorded_fields=recorded)
