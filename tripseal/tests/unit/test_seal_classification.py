from __future__ import annotations

from datetime import datetime, timezone

from tripseal.domain.models import GuardSealTag, SealTag
from tripseal.domain.vocabulary import SEAL_METHOD_GUARD_ONLY, SEAL_STATUS_GUARD_ONLY, SEAL_STATUS_VERIFIED
from tripseal.services.seals.reconciliation import classify, collect_guard_scans, normalize_barcode, reconcile


def _seal_tag(barcode: str, *, method: str = "digitally scanned", guard_user_id: str | None = None, **kwargs) -> SealTag:
    return SealTag(
        id=f"tag-{barcode}",
        session_id="s-1",
        barcode=barcode,
        method=method,
        guard_user_id=guard_user_id,
        created_at=datetime(2025, 3, 1, tzinfo=timezone.utc),
        **kwargs,
    )


def test_normalize_barcode_trims_and_uppercases() -> None:
    assert normalize_barcode("  seal-001 ") == "SEAL-001"
    assert normalize_barcode(None) == ""


def test_classify_partitions_guard_scans() -> None:
    result = classify(["SEAL-001", "SEAL-002"], ["seal-001 ", "SEAL-999"])
    assert result.matched == ["seal-001 "]
    assert result.mismatched == ["SEAL-999"]
    assert result.unscanned == ["SEAL-002"]
    assert result.all_matched is False


def test_classify_collapses_duplicate_guard_scans() -> None:
    result = classify(["A1"], ["a1", "A1 ", "b2", "B2"])
    assert result.matched == ["a1"]
    assert result.mismatched == ["b2"]
    assert result.unscanned == []


def test_classify_all_matched_when_every_operator_seal_scanned() -> None:
    result = classify(["X", "Y"], ["y", "x"])
    assert result.all_matched is True
    assert result.to_dict()["allMatched"] is True


def test_guard_only_tags_are_not_operator_seals() -> None:
    tags = [
        _seal_tag("SEAL-001", guard_user_id="g-1", guard_status=SEAL_STATUS_VERIFIED),
        _seal_tag("SEAL-999", method=SEAL_METHOD_GUARD_ONLY, guard_user_id="g-1", guard_status=SEAL_STATUS_GUARD_ONLY),
    ]
    summary = reconcile(tags, [])
    assert summary["operatorSeals"] == ["SEAL-001"]
    assert summary["matched"] == ["SEAL-001"]
    assert summary["mismatched"] == ["SEAL-999"]


def test_structured_guard_rows_win_over_seal_tag_fields() -> None:
    tags = [_seal_tag("SEAL-001", guard_user_id="g-1", guard_method="manual")]
    structured = [
        GuardSealTag(
            id="gst-1",
            session_id="s-1",
            barcode="seal-001",
            method="digital",
            status=SEAL_STATUS_VERIFIED,
            verified_by_id="g-2",
            created_at=datetime(2025, 3, 1, tzinfo=timezone.utc),
        )
    ]
    scans = collect_guard_scans(tags, structured)
    assert len(scans) == 1
    assert scans[0].origin == "guard_seal_tag"
    assert scans[0].verified_by_id == "g-2"


def test_untouched_seal_tags_are_unscanned() -> None:
    summary = reconcile([_seal_tag("SEAL-001"), _seal_tag("SEAL-002")], [])
    assert summary["guardSeals"] == []
    assert summary["unscanned"] == ["SEAL-001", "SEAL-002"]
