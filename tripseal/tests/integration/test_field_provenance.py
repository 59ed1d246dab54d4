from __future__ import annotations

from datetime import datetime, timedelta, timezone
from uuid import uuid4

import pytest
from httpx import ASGITransport, AsyncClient
from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError

from tripseal.apps.api.main import create_app
from tripseal.domain.models import ActivityLog, FieldTimestamp
from tripseal.persistence.db import SessionLocal
from tripseal.services import ledger
from tripseal.tests.utils.auth import create_test_company, create_test_user
from tripseal.tests.utils.sessions import post_trip_session


async def _ledger(session_id: str) -> dict[str, str]:
    async with SessionLocal() as session:
        rows = (
            await session.execute(select(FieldTimestamp).where(FieldTimestamp.session_id == session_id))
        ).scalars().all()
        return {row.field_name: row.timestamp.isoformat() for row in rows}


async def _operator(*, can_modify: bool = True) -> dict[str, str]:
    admin_id, _ = await create_test_user(role="ADMIN")
    company_id = await create_test_company(created_by_id=admin_id)
    _operator_id, headers = await create_test_user(
        role="EMPLOYEE", subrole="OPERATOR", company_id=company_id, coins=2, can_modify=can_modify
    )
    return headers


@pytest.mark.asyncio
async def test_field_timestamp_moves_only_on_change() -> None:
    headers = await _operator()
    app = create_app()
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as client:
        session_id = (await post_trip_session(client, headers)).json()["data"]["id"]
        before = await _ledger(session_id)
        assert before["loadingDetails.materialName"].startswith("2025-02-01T09:00:00")

        changed = await client.put(
            f"/v1/sessions/{session_id}/field",
            json={"fieldName": "materialName", "value": "Iron Ore"},
            headers=headers,
        )
        assert changed.status_code == 200
        assert changed.json()["data"]["changed"] is True
        assert changed.json()["data"]["recordedFields"] == ["loadingDetails.materialName"]
        after_change = await _ledger(session_id)
        assert after_change["loadingDetails.materialName"] > before["loadingDetails.materialName"]

        unchanged = await client.put(
            f"/v1/sessions/{session_id}/field",
            json={"fieldName": "materialName", "value": "Iron Ore"},
            headers=headers,
        )
        assert unchanged.json()["data"]["changed"] is False
        assert unchanged.json()["data"]["recordedFields"] == []
        assert await _ledger(session_id) == after_change

        detail = (await client.get(f"/v1/sessions/{session_id}", headers=headers)).json()["data"]
        assert detail["tripDetails"]["materialName"] == "Iron Ore"
        assert "loadingDetails.materialName" in detail["formattedFieldTimestamps"]


@pytest.mark.asyncio
async def test_bulk_update_records_only_changed_fields() -> None:
    headers = await _operator()
    app = create_app()
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as client:
        session_id = (await post_trip_session(client, headers)).json()["data"]["id"]
        response = await client.put(
            f"/v1/sessions/{session_id}",
            json={"tripDetails": {"grossWeight": "24.5", "vehicleNumber": "MH12ZZ0001"}},
            headers=headers,
        )
        assert response.status_code == 200
        data = response.json()["data"]
        assert len(data["changedFields"]) == 1
        assert data["changedFields"][0].endswith("vehicleNumber")

        noop = await client.put(
            f"/v1/sessions/{session_id}",
            json={"tripDetails": {"vehicleNumber": "MH12ZZ0001"}},
            headers=headers,
        )
        assert noop.json()["data"]["changedFields"] == []

        unknown = await client.put(
            f"/v1/sessions/{session_id}",
            json={"tripDetails": {"notAField": "x"}},
            headers=headers,
        )
        assert unknown.status_code == 400


@pytest.mark.asyncio
async def test_blank_field_name_is_rejected_before_lookup() -> None:
    headers = await _operator()
    app = create_app()
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as client:
        response = await client.put("/v1/sessions/unknown/field", json={"fieldName": " ", "value": 1}, headers=headers)
    assert response.status_code == 400


@pytest.mark.asyncio
async def test_operator_without_modify_permission_is_forbidden() -> None:
    headers = await _operator(can_modify=False)
    app = create_app()
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as client:
        session_id = (await post_trip_session(client, headers)).json()["data"]["id"]
        response = await client.put(
            f"/v1/sessions/{session_id}/field",
            json={"fieldName": "materialName", "value": "Sand"},
            headers=headers,
        )
    assert response.status_code == 403
    assert response.json()["error"]["code"] == "AUTH_FORBIDDEN"


@pytest.mark.asyncio
async def test_cleared_field_stays_cleared_on_read() -> None:
    headers = await _operator()
    app = create_app()
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as client:
        session_id = (await post_trip_session(client, headers)).json()["data"]["id"]
        cleared = await client.put(
            f"/v1/sessions/{session_id}/field",
            json={"fieldName": "materialName", "value": ""},
            headers=headers,
        )
        assert cleared.status_code == 200
        assert cleared.json()["data"]["recordedFields"] == ["loadingDetails.materialName"]

        detail = (await client.get(f"/v1/sessions/{session_id}", headers=headers)).json()["data"]
        assert detail["tripDetails"]["materialName"] is None
        assert detail["tripDetails"]["vehicleNumber"] == "MH12AB1234"
        assert detail["formattedFieldTimestamps"]["loadingDetails.materialName"]["source"] == "ledger"


@pytest.mark.asyncio
async def test_legacy_log_timestamps_feed_formatted_provenance() -> None:
    headers = await _operator()
    app = create_app()
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as client:
        session_id = (await post_trip_session(client, headers)).json()["data"]["id"]
        async with SessionLocal() as session:
            session.add(
                ActivityLog(
                    id=uuid4().hex,
                    action="UPDATE",
                    target_resource_id=session_id,
                    target_resource_type="SESSION",
                    details={"timestamps": {"loadingDetails": {"driverName": "2023-03-03T10:00:00Z"}}},
                    created_at=datetime.now(timezone.utc) + timedelta(minutes=5),
                )
            )
            await session.commit()

        detail = (await client.get(f"/v1/sessions/{session_id}", headers=headers)).json()["data"]
    formatted = detail["formattedFieldTimestamps"]
    assert formatted["driverDetails.driverName"]["source"] == "activity_log"
    assert formatted["driverDetails.driverName"]["formattedTimestamp"] == "Mar 3, 2023 10:00:00"
    assert formatted["loadingDetails.materialName"]["source"] == "ledger"
    assert formatted["loadingDetails.tpNumber"]["source"] == "created_at"
    assert detail["timestamps"]["driverDetails"]["driverName"] == "Mar 3, 2023 10:00:00"
    assert detail["timestamps"]["loadingDetails"]["materialName"] == "Feb 1, 2025 09:00:00"


@pytest.mark.asyncio
async def test_ledger_write_failure_does_not_block_the_update(monkeypatch) -> None:
    headers = await _operator()

    async def _broken_lookup(session, session_id: str, field_name: str):
        raise SQLAlchemyError("field_timestamps unavailable")

    app = create_app()
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as client:
        session_id = (await post_trip_session(client, headers)).json()["data"]["id"]
        before = await _ledger(session_id)

        monkeypatch.setattr(ledger, "get_field_timestamp", _broken_lookup)
        response = await client.put(
            f"/v1/sessions/{session_id}/field",
            json={"fieldName": "materialName", "value": "Limestone"},
            headers=headers,
        )
        assert response.status_code == 200
        assert response.json()["data"]["changed"] is True
        assert response.json()["data"]["recordedFields"] == []
        monkeypatch.undo()

        detail = (await client.get(f"/v1/sessions/{session_id}", headers=headers)).json()["data"]
    assert detail["tripDetails"]["materialName"] == "Limestone"
    assert await _ledger(session_id) == before
