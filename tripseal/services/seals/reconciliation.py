from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import Iterable

from tripseal.domain.models import GuardSealTag, SealTag
from tripseal.domain.vocabulary import SEAL_METHOD_GUARD_ONLY
from tripseal.services.timefmt import as_utc, isoformat_z


def normalize_barcode(barcode: str | None) -> str:
    # Barcodes are compared trimmed and case-insensitively.
    return (barcode or "").strip().upper()


@dataclass(frozen=True)
class GuardScanRecord:
    """A guard's scan of one barcode, whichever table it was stored in."""

    barcode: str
    method: str
    status: str | None
    verified_by_id: str | None
    scanned_at: datetime | None
    image_data: str | None = None
    origin: str = "seal_tag"
    record_id: str | None = None

    @property
    def normalized(self) -> str:
        return normalize_barcode(self.barcode)

    def to_dict(self) -> dict:
        return {
            "id": self.record_id,
            "barcode": self.barcode,
            "method": self.method,
            "status": self.status,
            "verifiedById": self.verified_by_id,
            "scannedAt": isoformat_z(self.scanned_at),
            "imageData": self.image_data,
            "origin": self.origin,
        }


def scan_from_seal_tag(tag: SealTag) -> GuardScanRecord | None:
    # Only seal tags a guard has touched carry a scan.
    if tag.guard_user_id is None:
        return None
    return GuardScanRecord(
        barcode=tag.barcode,
        method=tag.guard_method or tag.method,
        status=tag.guard_status,
        verified_by_id=tag.guard_user_id,
        scanned_at=as_utc(tag.guard_timestamp),
        image_data=tag.guard_image_data,
        origin="seal_tag",
        record_id=tag.id,
    )


def scan_from_guard_seal_tag(tag: GuardSealTag) -> GuardScanRecord:
    return GuardScanRecord(
        barcode=tag.barcode,
        method=tag.method,
        status=tag.status,
        verified_by_id=tag.verified_by_id,
        scanned_at=as_utc(tag.created_at),
        image_data=tag.image_data,
        origin="guard_seal_tag",
        record_id=tag.id,
    )


def operator_barcodes(seal_tags: Iterable[SealTag]) -> list[str]:
    # Guard-only rows were never applied by the operator.
    return [tag.barcode for tag in seal_tags if tag.method != SEAL_METHOD_GUARD_ONLY]


def collect_guard_scans(
    seal_tags: Iterable[SealTag],
    guard_seal_tags: Iterable[GuardSealTag],
) -> list[GuardScanRecord]:
    """Merge both guard-side representations, one record per normalized barcode.

    Structured GuardSealTag rows win over guard fields on SealTag rows.
    """
    merged: dict[str, GuardScanRecord] = {}
    for guard_tag in guard_seal_tags:
        record = scan_from_guard_seal_tag(guard_tag)
        merged.setdefault(record.normalized, record)
    for tag in seal_tags:
        record = scan_from_seal_tag(tag)
        if record is not None:
            merged.setdefault(record.normalized, record)
    return list(merged.values())


@dataclass(frozen=True)
class SealClassification:
    matched: list[str] = field(default_factory=list)
    mismatched: list[str] = field(default_factory=list)
    # Operator seals the guard has not scanned yet.
    unscanned: list[str] = field(default_factory=list)

    @property
    def all_matched(self) -> bool:
        return not self.mismatched and not self.unscanned

    def to_dict(self) -> dict:
        return {
            "matched": list(self.matched),
            "mismatched": list(self.mismatched),
            "unscanned": list(self.unscanned),
            "allMatched": self.all_matched,
        }


def classify(operator_seals: Iterable[str], guard_seals: Iterable[str]) -> SealClassification:
    """Partition guard-scanned barcodes into matched and mismatched.

    Every guard barcode lands in exactly one of the two lists (original
    spelling kept, duplicates collapsed). Operator barcodes no guard scan
    matched are reported as ``unscanned``.
    """
    operator_by_norm: dict[str, str] = {}
    for barcode in operator_seals:
        norm = normalize_barcode(barcode)
        if norm:
            operator_by_norm.setdefault(norm, barcode)

    matched: list[str] = []
    mismatched: list[str] = []
    seen: set[str] = set()
    for barcode in guard_seals:
        norm = normalize_barcode(barcode)
        if not norm or norm in seen:
            continue
        seen.add(norm)
        if norm in operator_by_norm:
            matched.append(barcode)
        else:
            mismatched.append(barcode)

    unscanned = [barcode for norm, barcode in operator_by_norm.items() if norm not in seen]
    return SealClassification(matched=matched, mismatched=mismatched, unscanned=unscanned)


def reconcile(
    seal_tags: list[SealTag],
    guard_seal_tags: list[GuardSealTag],
) -> dict:
    """Operator set, guard set and their classification for one session."""
    operator = operator_barcodes(seal_tags)
    scans = collect_guard_scans(seal_tags, guard_seal_tags)
    classification = classify(operator, [scan.barcode for scan in scans])
    return {
        "operatorSeals": operator,
        "guardSeals": [scan.to_dict() for scan in scans],
        **classification.to_dict(),
    }
