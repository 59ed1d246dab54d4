from __future__ import annotations

import asyncio
import base64
import binascii
from dataclasses import dataclass
import json
import logging
from typing import Any

from tripseal.core.config import get_settings
from tripseal.core.errors import PayloadTooLargeError, ValidationFailedError


logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class RawImage:
    """An uploaded file waiting to be encoded."""

    field: str
    content: bytes
    content_type: str
    index: int | None = None
    key: str | None = None


def _encode(image: RawImage, limit: int) -> dict[str, str]:
    if len(image.content) > limit:
        raise PayloadTooLargeError(f"Image {image.field} exceeds {limit} bytes")
    encoded = base64.b64encode(image.content).decode("ascii")
    if len(encoded) > limit:
        raise PayloadTooLargeError(f"Encoded image {image.field} exceeds {limit} bytes")
    return {"contentType": image.content_type or "application/octet-stream", "data": encoded}


async def encode_images(images: list[RawImage]) -> dict[str, Any]:
    """Base64-encode uploads in worker threads and assemble ``imageBase64Data``.

    Single images land under their field name, indexed ones in lists ordered
    by index, and seal tag images under ``sealTagImages[barcode]``.
    """
    settings = get_settings()
    limit = settings.max_image_bytes
    if not images:
        return {}
    try:
        encoded = await asyncio.wait_for(
            asyncio.gather(*(asyncio.to_thread(_encode, image, limit) for image in images)),
            timeout=settings.image_encode_timeout_s,
        )
    except asyncio.TimeoutError as exc:
        logger.warning("image_encoding_timed_out count=%s", len(images))
        raise PayloadTooLargeError("Image processing timed out; reduce image size or count") from exc

    payload: dict[str, Any] = {}
    indexed: dict[str, list[tuple[int, dict[str, str]]]] = {}
    for image, blob in zip(images, encoded):
        if image.key is not None:
            payload.setdefault(image.field, {})[image.key] = blob
        elif image.index is not None:
            indexed.setdefault(image.field, []).append((image.index, blob))
        else:
            payload[image.field] = blob
    for field, items in indexed.items():
        payload[field] = [blob for _index, blob in sorted(items, key=lambda item: item[0])]
    return payload


def check_payload_size(payload: dict[str, Any]) -> int:
    # Serialized size of the blob bundle persisted in the activity log.
    limit = get_settings().max_image_payload_bytes
    size = len(json.dumps(payload))
    if size > limit:
        raise PayloadTooLargeError(f"Image payload exceeds {limit} bytes")
    return size


def parse_client_base64(raw: str | None) -> dict[str, Any]:
    # Client-encoded bundles arrive as a JSON string form field.
    if not raw:
        return {}
    limit = get_settings().max_image_payload_bytes
    if len(raw) > limit:
        raise PayloadTooLargeError(f"Image payload exceeds {limit} bytes")
    try:
        parsed = json.loads(raw)
    except ValueError as exc:
        raise ValidationFailedError("imageBase64Data must be valid JSON") from exc
    if not isinstance(parsed, dict):
        raise ValidationFailedError("imageBase64Data must be a JSON object")
    return parsed


def to_data_url(blob: Any) -> str | None:
    if isinstance(blob, dict) and blob.get("data"):
        return f"data:{blob.get('contentType') or 'image/jpeg'};base64,{blob['data']}"
    return None


def split_data_url(value: str | None) -> dict[str, str] | None:
    # Inverse of to_data_url; plain URLs and malformed strings return None.
    if not value or not value.startswith("data:") or ";base64," not in value:
        return None
    header, data = value[5:].split(";base64,", 1)
    return {"contentType": header or "application/octet-stream", "data": data}


def decode_blob(blob: dict[str, Any]) -> tuple[bytes, str]:
    try:
        content = base64.b64decode(blob.get("data") or "", validate=False)
    except (binascii.Error, ValueError) as exc:
        raise ValidationFailedError("Stored image is not valid base64") from exc
    return content, str(blob.get("contentType") or "application/octet-stream")
