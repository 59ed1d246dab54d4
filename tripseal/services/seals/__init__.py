from __future__ import annotations

# Re-export seal services for centralized imports.

from tripseal.services.seals.ingest import GuardScanResult, ingest_guard_scan, record_guard_seal_tag
from tripseal.services.seals.legacy import LegacyExtraction, extract_legacy_guard_tags
from tripseal.services.seals.reconciliation import (
    GuardScanRecord,
    SealClassification,
    classify,
    collect_guard_scans,
    normalize_barcode,
    reconcile,
)

__all__ = [
    "GuardScanResult",
    "ingest_guard_scan",
    "record_guard_seal_tag",
    "LegacyExtraction",
    "extract_legacy_guard_tags",
    "GuardScanRecord",
    "SealClassification",
    "classify",
    "collect_guard_scans",
    "normalize_barcode",
    "reconcile",
]
