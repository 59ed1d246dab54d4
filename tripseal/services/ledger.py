from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
import logging
from typing import Any, Iterable, Mapping, Sequence
from uuid import uuid4

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from tripseal.domain.models import ActivityLog, FieldTimestamp, TripSession
from tripseal.persistence.repos.field_timestamps import get_field_timestamp, list_field_timestamps
from tripseal.services.timefmt import as_utc, format_timestamp_exact, is_poisoned, isoformat_z, parse_timestamp, utc_now


logger = logging.getLogger(__name__)

FIELD_PREFIXES = ("loadingDetails", "driverDetails", "images")

# Legacy log payloads group timestamps by form section; images live under imagesForm.
_LEGACY_SECTIONS = {
    "loadingDetails": ("loadingDetails", "driverDetails", "imagesForm"),
    "driverDetails": ("driverDetails", "loadingDetails", "imagesForm"),
    "images": ("imagesForm",),
}

SOURCE_LEDGER = "ledger"
SOURCE_ACTIVITY_LOG = "activity_log"
SOURCE_CREATED_AT = "created_at"


@dataclass(frozen=True)
class ResolvedTimestamp:
    timestamp: datetime
    source: str
    updated_by_id: str | None = None


@dataclass(frozen=True)
class FieldChange:
    field_name: str
    old_value: Any
    new_value: Any


def split_field_name(field_name: str) -> tuple[str | None, str]:
    if "." in field_name:
        prefix, bare = field_name.split(".", 1)
        if prefix in FIELD_PREFIXES:
            return prefix, bare
    return None, field_name


def candidate_names(field_name: str) -> list[str]:
    # Exact name first, then the bare name and every known namespace variant.
    prefix, bare = split_field_name(field_name)
    names = [field_name]
    if prefix is not None:
        names.append(bare)
    for candidate_prefix in FIELD_PREFIXES:
        name = f"{candidate_prefix}.{bare}"
        if name not in names:
            names.append(name)
    return names


def normalize_value(value: Any) -> str:
    # Compare values as strings; 12 and 12.0 are the same write.
    if value is None:
        return ""
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    return str(value).strip()


def values_differ(old_value: Any, new_value: Any) -> bool:
    return normalize_value(old_value) != normalize_value(new_value)


async def record_field_update(
    session: AsyncSession,
    *,
    session_id: str,
    field_name: str,
    actor_id: str,
    timestamp: datetime | None = None,
) -> bool:
    """Upsert the (session, field) provenance row inside the caller's transaction.

    Runs in a savepoint so a failed ledger write is rolled back on its own and
    never aborts the surrounding session mutation. Returns False on failure.
    """
    resolved_ts = as_utc(timestamp) or utc_now()
    try:
        async with session.begin_nested():
            row = await get_field_timestamp(session, session_id, field_name)
            if row is None:
                session.add(
                    FieldTimestamp(
                        id=uuid4().hex,
                        session_id=session_id,
                        field_name=field_name,
                        timestamp=resolved_ts,
                        updated_by_id=actor_id,
                    )
                )
            else:
                row.timestamp = resolved_ts
                row.updated_by_id = actor_id
    except SQLAlchemyError as exc:
        logger.warning(
            "field_timestamp_write_failed session_id=%s field=%s",
            session_id,
            field_name,
            exc_info=exc,
        )
        return False
    return True


async def record_changed_fields(
    session: AsyncSession,
    *,
    session_id: str,
    actor_id: str,
    changes: Iterable[FieldChange],
    timestamp: datetime | None = None,
) -> list[str]:
    # No-op writes are skipped so provenance only moves on real value changes.
    recorded: list[str] = []
    resolved_ts = timestamp or utc_now()
    for change in changes:
        if not values_differ(change.old_value, change.new_value):
            continue
        if await record_field_update(
            session,
            session_id=session_id,
            field_name=change.field_name,
            actor_id=actor_id,
            timestamp=resolved_ts,
        ):
            recorded.append(change.field_name)
    return recorded


async def load_ledger(session: AsyncSession, session_id: str) -> dict[str, FieldTimestamp]:
    rows = await list_field_timestamps(session, session_id)
    return {row.field_name: row for row in rows}


def legacy_timestamps(logs: Sequence[ActivityLog]) -> dict[str, dict[str, Any]]:
    # Newest log carrying a "timestamps" section; bad shapes degrade to empty.
    for log in logs:
        details = log.details if isinstance(log.details, dict) else {}
        timestamps = details.get("timestamps")
        if isinstance(timestamps, dict) and timestamps:
            return {key: value for key, value in timestamps.items() if isinstance(value, dict)}
    return {}


def resolve_field_timestamp(
    trip_session: TripSession,
    field_name: str,
    *,
    ledger: Mapping[str, FieldTimestamp],
    legacy: Mapping[str, Mapping[str, Any]] | None = None,
) -> ResolvedTimestamp:
    """Resolve when a field was last written.

    Priority: structured ledger rows (exact name, then prefix variants), then
    legacy per-section timestamps from the newest activity log, then the
    session creation time. Placeholder sentinel dates resolve to creation time.
    """
    created_at = as_utc(trip_session.created_at) or utc_now()
    fallback = ResolvedTimestamp(timestamp=created_at, source=SOURCE_CREATED_AT)

    for name in candidate_names(field_name):
        row = ledger.get(name)
        if row is not None:
            if is_poisoned(row.timestamp):
                return fallback
            return ResolvedTimestamp(
                timestamp=as_utc(row.timestamp),
                source=SOURCE_LEDGER,
                updated_by_id=row.updated_by_id,
            )

    prefix, bare = split_field_name(field_name)
    sections = _LEGACY_SECTIONS.get(prefix or "loadingDetails", ())
    for section in sections:
        raw = (legacy or {}).get(section, {}).get(bare)
        parsed = parse_timestamp(raw)
        if parsed is None:
            continue
        if is_poisoned(parsed):
            return fallback
        return ResolvedTimestamp(timestamp=parsed, source=SOURCE_ACTIVITY_LOG)

    return fallback


def _section_for(prefix: str | None) -> str:
    return "imagesForm" if prefix == "images" else (prefix or "loadingDetails")


def format_ledger(
    trip_session: TripSession,
    ledger: Mapping[str, FieldTimestamp],
    *,
    field_names: Sequence[str] = (),
    legacy: Mapping[str, Mapping[str, Any]] | None = None,
) -> tuple[dict[str, dict[str, Any]], dict[str, dict[str, str]]]:
    """Build ``formattedFieldTimestamps`` and the section-grouped ``timestamps`` view.

    Every name in ``field_names``, plus any ledger row or legacy entry they do
    not cover, goes through ``resolve_field_timestamp``.
    """
    names = list(field_names)
    covered = {split_field_name(name)[1] for name in names}
    for name in ledger:
        bare = split_field_name(name)[1]
        if bare not in covered:
            names.append(name)
            covered.add(bare)
    for section, fields in (legacy or {}).items():
        prefix = "images" if section == "imagesForm" else section
        if prefix not in FIELD_PREFIXES:
            continue
        for bare in fields:
            if bare not in covered:
                names.append(f"{prefix}.{bare}")
                covered.add(bare)

    formatted: dict[str, dict[str, Any]] = {}
    grouped: dict[str, dict[str, str]] = {"loadingDetails": {}, "driverDetails": {}, "imagesForm": {}}
    for field_name in names:
        resolved = resolve_field_timestamp(trip_session, field_name, ledger=ledger, legacy=legacy)
        formatted[field_name] = {
            "timestamp": isoformat_z(resolved.timestamp),
            "formattedTimestamp": format_timestamp_exact(resolved.timestamp),
            "updatedBy": resolved.updated_by_id,
            "source": resolved.source,
        }
        prefix, bare = split_field_name(field_name)
        grouped[_section_for(prefix)][bare] = formatted[field_name]["formattedTimestamp"]
    return formatted, grouped
