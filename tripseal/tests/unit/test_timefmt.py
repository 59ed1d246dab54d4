from __future__ import annotations

from datetime import datetime, timezone

from tripseal.services.timefmt import as_utc, format_timestamp_exact, is_poisoned, isoformat_z, parse_timestamp


def test_parse_timestamp_accepts_iso_z_and_epoch_ms() -> None:
    expected = datetime(2025, 3, 1, 9, 5, 7, tzinfo=timezone.utc)
    assert parse_timestamp("2025-03-01T09:05:07Z") == expected
    assert parse_timestamp(int(expected.timestamp() * 1000)) == expected
    assert parse_timestamp("") is None
    assert parse_timestamp("not a date") is None
    assert parse_timestamp(True) is None


def test_naive_datetimes_are_treated_as_utc() -> None:
    naive = datetime(2025, 1, 1, 12, 0, 0)
    assert as_utc(naive).tzinfo == timezone.utc
    assert isoformat_z(naive) == "2025-01-01T12:00:00.000Z"


def test_format_timestamp_exact() -> None:
    assert format_timestamp_exact("2024-01-05T04:03:02Z") == "Jan 5, 2024 04:03:02"
    assert format_timestamp_exact(None) == "N/A"


def test_placeholder_timestamp_is_poisoned_at_second_precision() -> None:
    assert is_poisoned(datetime(2024, 1, 15, 14, 30, 22, 450000, tzinfo=timezone.utc)) is True
    assert is_poisoned(datetime(2024, 1, 15, 14, 30, 23, tzinfo=timezone.utc)) is False
    assert is_poisoned(None) is False


def test_poisoned_timestamps_are_configurable(monkeypatch) -> None:
    from tripseal.core.config import get_settings

    monkeypatch.setenv("POISONED_TIMESTAMPS", '["2023-06-01T00:00:00Z"]')
    get_settings.cache_clear()
    assert is_poisoned(datetime(2023, 6, 1, tzinfo=timezone.utc)) is True
    assert is_poisoned(datetime(2024, 1, 15, 14, 30, 22, tzinfo=timezone.utc)) is False
