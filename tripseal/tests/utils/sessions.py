from __future__ import annotations

import json
from typing import Any

from httpx import AsyncClient


JPEG_BYTES = b"\xff\xd8\xff\xe0fake-jpeg-payload"


async def post_trip_session(
    client: AsyncClient,
    headers: dict[str, str],
    *,
    seal_tag_ids: list[str] | None = None,
    fields: dict[str, Any] | None = None,
    files: dict[str, Any] | None = None,
) -> Any:
    # Multipart session creation the way the operator app submits it.
    data: dict[str, Any] = {
        "materialName": "Coal",
        "vehicleNumber": "MH12AB1234",
        "loadingSite": "Pune Yard",
        "receiverPartyName": "Mumbai Steel",
        "grossWeight": "24.5",
        "sealTagIds": json.dumps(seal_tag_ids if seal_tag_ids is not None else ["SEAL-001", "SEAL-002"]),
        "sealTagMethods": json.dumps({"SEAL-001": "manual"}),
        "loadingDetailsTimestamps": json.dumps({"materialName": "2025-02-01T09:00:00Z"}),
    }
    data.update(fields or {})
    upload = files if files is not None else {"gpsImeiPicture": ("gps.jpg", JPEG_BYTES, "image/jpeg")}
    return await client.post("/v1/sessions", data=data, files=upload, headers=headers)
