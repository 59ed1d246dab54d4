from __future__ import annotations

from dataclasses import dataclass
import logging
from typing import Any, Callable, Collection, Iterable, Sequence

from tripseal.domain.models import ActivityLog, TripSession


logger = logging.getLogger(__name__)

# Wire names (camelCase, as stored in historical log payloads) to Session columns.
TRIP_DETAIL_COLUMNS: dict[str, str] = {
    "transporterName": "transporter_name",
    "materialName": "material_name",
    "receiverPartyName": "receiver_party_name",
    "vehicleNumber": "vehicle_number",
    "gpsImeiNumber": "gps_imei_number",
    "driverName": "driver_name",
    "driverContactNumber": "driver_contact_number",
    "loaderName": "loader_name",
    "challanRoyaltyNumber": "challan_royalty_number",
    "doNumber": "do_number",
    "freight": "freight",
    "qualityOfMaterials": "quality_of_materials",
    "tpNumber": "tp_number",
    "grossWeight": "gross_weight",
    "tareWeight": "tare_weight",
    "netMaterialWeight": "net_material_weight",
    "loaderMobileNumber": "loader_mobile_number",
    "loadingSite": "loading_site",
    "cargoType": "cargo_type",
    "numberOfPackages": "number_of_packages",
    "registrationCertificate": "registration_certificate",
    "driverLicense": "driver_license",
}
NUMERIC_TRIP_FIELDS = frozenset({"freight", "grossWeight", "tareWeight", "netMaterialWeight"})
DRIVER_DETAIL_FIELDS = frozenset({"driverName", "driverContactNumber", "driverLicense"})
SINGLE_IMAGE_FIELDS = ("gpsImeiPicture", "vehicleNumberPlatePicture", "driverPicture")
MULTI_IMAGE_FIELDS = ("sealingImages", "vehicleImages", "additionalImages")

# Session-level columns editable alongside trip details.
SESSION_COLUMNS: dict[str, str] = {"source": "source", "destination": "destination"}


def coerce_trip_value(field: str, value: Any) -> Any:
    # Numeric fields parse as floats; empty or unparseable input stores null.
    if value is None:
        return None
    if field in NUMERIC_TRIP_FIELDS:
        if isinstance(value, bool):
            return None
        try:
            return float(value)
        except (TypeError, ValueError):
            return None
    text = str(value)
    return text if text != "" else None


def namespace_for(field: str) -> str:
    if field in SINGLE_IMAGE_FIELDS or field in MULTI_IMAGE_FIELDS:
        return "images"
    if field in DRIVER_DETAIL_FIELDS:
        return "driverDetails"
    return "loadingDetails"


def column_for(field: str) -> str | None:
    # Accept wire names with or without a namespace prefix.
    bare = field.split(".", 1)[1] if "." in field else field
    return TRIP_DETAIL_COLUMNS.get(bare) or SESSION_COLUMNS.get(bare)


@dataclass(frozen=True)
class FieldSource:
    """One place a field value may live, tried in priority order."""

    name: str
    lookup: Callable[[str], Any]


@dataclass(frozen=True)
class ResolvedField:
    value: Any
    source: str | None


def resolve_field(field: str, sources: Sequence[FieldSource]) -> ResolvedField:
    # First source producing a non-empty value wins; broken sources are skipped.
    for source in sources:
        try:
            value = source.lookup(field)
        except (KeyError, TypeError, AttributeError, ValueError) as exc:
            logger.warning("field_source_failed source=%s field=%s", source.name, field, exc_info=exc)
            continue
        if value is not None and value != "":
            return ResolvedField(value=value, source=source.name)
    return ResolvedField(value=None, source=None)


def column_source(trip_session: TripSession) -> FieldSource:
    def _lookup(field: str) -> Any:
        column = column_for(field)
        return getattr(trip_session, column) if column else None

    return FieldSource(name="column", lookup=_lookup)


def payload_source(name: str, payload: dict[str, Any] | None) -> FieldSource:
    def _lookup(field: str) -> Any:
        if not isinstance(payload, dict):
            return None
        return payload.get(field)

    return FieldSource(name=name, lookup=_lookup)


def latest_payload(logs: Iterable[ActivityLog], key: str) -> dict[str, Any] | None:
    # Logs arrive newest first; malformed payload shapes degrade to None.
    for log in logs:
        details = log.details
        if not isinstance(details, dict):
            continue
        value = details.get(key)
        if isinstance(value, dict) and value:
            return value
    return None


def resolve_trip_details(
    trip_session: TripSession,
    logs: Sequence[ActivityLog],
    *,
    written_fields: Collection[str] = (),
) -> dict[str, Any]:
    """Trip details from columns first, then the newest log snapshot carrying ``tripDetails``.

    ``written_fields`` names fields with a provenance row; their column is the
    only source, so a cleared value stays cleared.
    """
    column = column_source(trip_session)
    sources = [column, payload_source("activity_log", latest_payload(logs, "tripDetails"))]
    details: dict[str, Any] = {}
    for field in TRIP_DETAIL_COLUMNS:
        resolved = resolve_field(field, [column] if field in written_fields else sources)
        details[field] = resolved.value
    return details


def known_field_names() -> list[str]:
    # Namespaced ledger names for every trip column and image field.
    names = [f"{namespace_for(field)}.{field}" for field in TRIP_DETAIL_COLUMNS]
    names.extend(f"images.{field}" for field in (*SINGLE_IMAGE_FIELDS, *MULTI_IMAGE_FIELDS))
    return names


def _image_url(session_id: str, kind: str, index: int | None = None) -> str:
    if index is None:
        return f"/api/images/{session_id}/{kind}"
    return f"/api/images/{session_id}/{kind}/{index}"


def image_urls_from_base64(session_id: str, base64_data: dict[str, Any]) -> dict[str, Any]:
    """Derive the stored image URL layout from an ``imageBase64Data`` payload."""
    urls: dict[str, Any] = {}
    if base64_data.get("gpsImeiPicture"):
        urls["gpsImeiPicture"] = _image_url(session_id, "gpsImei")
    if base64_data.get("vehicleNumberPlatePicture"):
        urls["vehicleNumberPlatePicture"] = _image_url(session_id, "vehicleNumber")
    if base64_data.get("driverPicture"):
        urls["driverPicture"] = _image_url(session_id, "driver")
    for field, kind in (("sealingImages", "sealing"), ("vehicleImages", "vehicle"), ("additionalImages", "additional")):
        items = base64_data.get(field)
        if isinstance(items, list) and items:
            urls[field] = [_image_url(session_id, kind, index) for index in range(len(items))]
    return urls


def resolve_images(session_id: str, logs: Sequence[ActivityLog]) -> dict[str, Any]:
    # Prefer explicit URL snapshots; otherwise derive URLs from stored base64 blobs.
    images = latest_payload(logs, "images")
    if images:
        return dict(images)
    base64_data = latest_payload(logs, "imageBase64Data")
    if base64_data:
        return image_urls_from_base64(session_id, base64_data)
    return {}


def image_blob(logs: Sequence[ActivityLog], kind: str, index: int | None = None) -> dict[str, Any] | None:
    """Find the stored ``{contentType, data}`` blob behind an image URL."""
    field_by_kind = {
        "gpsImei": "gpsImeiPicture",
        "vehicleNumber": "vehicleNumberPlatePicture",
        "driver": "driverPicture",
        "sealing": "sealingImages",
        "vehicle": "vehicleImages",
        "additional": "additionalImages",
    }
    field = field_by_kind.get(kind)
    if field is None:
        return None
    base64_data = latest_payload(logs, "imageBase64Data") or {}
    value = base64_data.get(field)
    if index is not None:
        if not isinstance(value, list) or not 0 <= index < len(value):
            return None
        value = value[index]
    if isinstance(value, dict) and value.get("data"):
        return value
    return None


def resolve_verification_history(logs: Sequence[ActivityLog]) -> list[dict[str, Any]]:
    # Verification summaries live in UPDATE logs under the "verification" key.
    history: list[dict[str, Any]] = []
    for log in logs:
        details = log.details if isinstance(log.details, dict) else {}
        verification = details.get("verification")
        if log.action == "UPDATE" and isinstance(verification, dict):
            history.append({"logId": log.id, "userId": log.user_id, **verification})
    return history
