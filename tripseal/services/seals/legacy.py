from __future__ import annotations

from dataclasses import dataclass, field
import logging
from typing import Any


logger = logging.getLogger(__name__)

_TAG_KEY_HINTS = ("seal", "tag", "barcode")


@dataclass(frozen=True)
class LegacyExtraction:
    """Best-effort guard tags recovered from ``verificationData.guardImages``."""

    tags: list[dict[str, Any]] = field(default_factory=list)
    legacy: bool = True

    def __bool__(self) -> bool:
        return bool(self.tags)


def _looks_like_tag_key(key: str) -> bool:
    lowered = key.lower()
    return any(hint in lowered for hint in _TAG_KEY_HINTS)


def _extracted(index: int, *, barcode: str, method: str, image_url: Any, verified: Any) -> dict[str, Any]:
    return {
        "id": f"extracted-{index}",
        "barcode": barcode,
        "method": method,
        "imageUrl": image_url,
        "verified": verified,
        "legacy": True,
    }


def _extract(guard_images: dict[str, Any]) -> list[dict[str, Any]]:
    tags: list[dict[str, Any]] = []
    for raw_key, value in guard_images.items():
        key = str(raw_key)
        if not _looks_like_tag_key(key):
            continue
        if isinstance(value, str):
            tags.append(_extracted(len(tags), barcode=key, method="digital", image_url=value, verified=True))
        elif isinstance(value, list):
            for position, item in enumerate(value):
                if isinstance(item, str):
                    tags.append(
                        _extracted(
                            len(tags),
                            barcode=f"{key}_{position + 1}",
                            method="digital",
                            image_url=item,
                            verified=True,
                        )
                    )
        elif isinstance(value, dict):
            tags.append(
                _extracted(
                    len(tags),
                    barcode=str(value.get("id") or value.get("barcode") or key),
                    method=str(value.get("method") or "digital"),
                    image_url=value.get("imageUrl") or value.get("image"),
                    verified=value.get("verified", True),
                )
            )
    return tags


def extract_legacy_guard_tags(verification_data: Any) -> LegacyExtraction:
    # Any unexpected payload shape yields an empty result instead of an error.
    if not isinstance(verification_data, dict):
        return LegacyExtraction()
    guard_images = verification_data.get("guardImages")
    if not isinstance(guard_images, dict):
        return LegacyExtraction()
    try:
        return LegacyExtraction(tags=_extract(guard_images))
    except (TypeError, ValueError, AttributeError) as exc:
        logger.warning("legacy_guard_tag_extraction_failed", exc_info=exc)
        return LegacyExtraction()
