from __future__ import annotations

from tripseal.services.audit import sanitize_details


def test_activity_details_redact_credentials_but_keep_trip_data() -> None:
    # Credential-like keys are scrubbed at any depth; payload keys the read path needs survive.
    payload = {
        "apiKey": "ts_abc_secret",
        "nested": [{"Authorization": "Bearer abc"}],
        "tripDetails": {"driverName": "Ravi"},
        "timestamps": {"loadingDetails": {"materialName": "2025-02-01T09:00:00Z"}},
        "imageBase64Data": {"sealTagImages": {"SEAL-1": {"data": "aGk=", "contentType": "image/png"}}},
    }
    sanitized = sanitize_details(payload)
    assert sanitized["apiKey"] == "[REDACTED]"
    assert sanitized["nested"][0]["Authorization"] == "[REDACTED]"
    assert sanitized["tripDetails"] == {"driverName": "Ravi"}
    assert sanitized["timestamps"] == payload["timestamps"]
    assert sanitized["imageBase64Data"] == payload["imageBase64Data"]
