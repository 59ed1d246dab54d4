from __future__ import annotations

from datetime import datetime, timezone

from tripseal.domain.models import FieldTimestamp, TripSession
from tripseal.services.ledger import (
    SOURCE_ACTIVITY_LOG,
    SOURCE_CREATED_AT,
    SOURCE_LEDGER,
    candidate_names,
    format_ledger,
    normalize_value,
    resolve_field_timestamp,
    split_field_name,
    values_differ,
)

CREATED_AT = datetime(2025, 2, 1, 8, 0, 0, tzinfo=timezone.utc)


def _trip_session() -> TripSession:
    return TripSession(id="s-1", status="IN_PROGRESS", company_id="c-1", created_by_id="u-1", created_at=CREATED_AT)


def _row(field_name: str, ts: datetime, updated_by_id: str = "op-1") -> FieldTimestamp:
    return FieldTimestamp(id=f"ft-{field_name}", session_id="s-1", field_name=field_name, timestamp=ts, updated_by_id=updated_by_id)


def test_split_and_candidate_names() -> None:
    assert split_field_name("loadingDetails.driverName") == ("loadingDetails", "driverName")
    assert split_field_name("unknown.thing") == (None, "unknown.thing")
    assert candidate_names("driverName") == [
        "driverName",
        "loadingDetails.driverName",
        "driverDetails.driverName",
        "images.driverName",
    ]
    assert candidate_names("driverDetails.driverName")[:2] == ["driverDetails.driverName", "driverName"]


def test_values_compare_after_normalization() -> None:
    assert normalize_value(None) == ""
    assert normalize_value(12.0) == "12"
    assert normalize_value(" Coal ") == "Coal"
    assert values_differ(12, 12.0) is False
    assert values_differ(None, "") is False
    assert values_differ("0987", "987") is True


def test_ledger_row_wins_over_legacy_and_created_at() -> None:
    written = datetime(2025, 2, 2, 10, 0, 0, tzinfo=timezone.utc)
    ledger = {"loadingDetails.materialName": _row("loadingDetails.materialName", written)}
    legacy = {"loadingDetails": {"materialName": "2025-02-01T09:00:00Z"}}
    resolved = resolve_field_timestamp(_trip_session(), "materialName", ledger=ledger, legacy=legacy)
    assert resolved.source == SOURCE_LEDGER
    assert resolved.timestamp == written
    assert resolved.updated_by_id == "op-1"


def test_legacy_section_used_when_ledger_is_empty() -> None:
    legacy = {"loadingDetails": {"materialName": "2025-02-01T09:00:00Z"}}
    resolved = resolve_field_timestamp(_trip_session(), "loadingDetails.materialName", ledger={}, legacy=legacy)
    assert resolved.source == SOURCE_ACTIVITY_LOG
    assert resolved.timestamp == datetime(2025, 2, 1, 9, 0, 0, tzinfo=timezone.utc)


def test_missing_history_falls_back_to_created_at() -> None:
    resolved = resolve_field_timestamp(_trip_session(), "tpNumber", ledger={})
    assert resolved.source == SOURCE_CREATED_AT
    assert resolved.timestamp == CREATED_AT


def test_placeholder_dates_never_surface() -> None:
    poisoned = datetime(2024, 1, 15, 14, 30, 22, tzinfo=timezone.utc)
    ledger = {"loadingDetails.tpNumber": _row("loadingDetails.tpNumber", poisoned)}
    assert resolve_field_timestamp(_trip_session(), "tpNumber", ledger=ledger).timestamp == CREATED_AT
    legacy = {"loadingDetails": {"doNumber": "2024-01-15T14:30:22Z"}}
    assert resolve_field_timestamp(_trip_session(), "doNumber", ledger={}, legacy=legacy).timestamp == CREATED_AT


def test_format_ledger_groups_by_section() -> None:
    ts = datetime(2025, 2, 3, 7, 6, 5, tzinfo=timezone.utc)
    ledger = {
        "loadingDetails.materialName": _row("loadingDetails.materialName", ts),
        "images.gpsImeiPicture": _row("images.gpsImeiPicture", ts),
    }
    formatted, grouped = format_ledger(_trip_session(), ledger)
    assert formatted["loadingDetails.materialName"]["formattedTimestamp"] == "Feb 3, 2025 07:06:05"
    assert grouped["loadingDetails"] == {"materialName": "Feb 3, 2025 07:06:05"}
    assert grouped["imagesForm"] == {"gpsImeiPicture": "Feb 3, 2025 07:06:05"}
    assert grouped["driverDetails"] == {}


def test_format_ledger_resolves_every_known_field_through_one_order() -> None:
    ts = datetime(2025, 2, 3, 7, 6, 5, tzinfo=timezone.utc)
    ledger = {"loadingDetails.materialName": _row("loadingDetails.materialName", ts)}
    legacy = {"loadingDetails": {"driverName": "2023-03-03T10:00:00Z", "materialName": "2020-01-01T00:00:00Z"}}
    formatted, grouped = format_ledger(
        _trip_session(),
        ledger,
        field_names=["loadingDetails.materialName", "driverDetails.driverName", "loadingDetails.tpNumber"],
        legacy=legacy,
    )
    assert formatted["loadingDetails.materialName"]["source"] == SOURCE_LEDGER
    assert formatted["loadingDetails.materialName"]["formattedTimestamp"] == "Feb 3, 2025 07:06:05"
    assert formatted["driverDetails.driverName"]["source"] == SOURCE_ACTIVITY_LOG
    assert formatted["driverDetails.driverName"]["formattedTimestamp"] == "Mar 3, 2023 10:00:00"
    assert formatted["loadingDetails.tpNumber"]["source"] == SOURCE_CREATED_AT
    assert grouped["driverDetails"] == {"driverName": "Mar 3, 2023 10:00:00"}
    assert grouped["loadingDetails"]["tpNumber"] == "Feb 1, 2025 08:00:00"
