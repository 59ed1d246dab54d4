from __future__ import annotations

from datetime import datetime, timezone

import pytest
from httpx import ASGITransport, AsyncClient
from sqlalchemy import delete, select

from tripseal.apps.api.main import create_app
from tripseal.domain.models import Seal, SealTag, TripSession
from tripseal.persistence.db import SessionLocal
from tripseal.services import lifecycle
from tripseal.tests.utils.auth import create_test_company, create_test_user
from tripseal.tests.utils.sessions import JPEG_BYTES, post_trip_session


async def _setup() -> dict:
    admin_id, admin_headers = await create_test_user(role="ADMIN")
    company_id = await create_test_company(name="Harbor Freight", created_by_id=admin_id)
    _operator_id, operator_headers = await create_test_user(
        role="EMPLOYEE", subrole="OPERATOR", company_id=company_id, coins=3, name="Asha"
    )
    _guard_id, guard_headers = await create_test_user(role="EMPLOYEE", subrole="GUARD", company_id=company_id)
    return {"admin": admin_headers, "operator": operator_headers, "guard": guard_headers}


@pytest.mark.asyncio
async def test_comments_are_listed_newest_first() -> None:
    actors = await _setup()
    app = create_app()
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as client:
        session_id = (await post_trip_session(client, actors["operator"])).json()["data"]["id"]
        url = f"/v1/sessions/{session_id}/comments"

        first = await client.post(url, json={"message": "Loaded at dock 4"}, headers=actors["operator"])
        assert first.status_code == 201
        assert first.json()["data"]["urgency"] == "NA"

        second = await client.post(url, json={"message": "Seal looks scratched", "urgency": "high"}, headers=actors["guard"])
        assert second.json()["data"]["urgency"] == "HIGH"

        invalid = await client.post(url, json={"message": "?", "urgency": "CRITICAL"}, headers=actors["guard"])
        assert invalid.status_code == 400

        empty = await client.post(url, json={"message": "   "}, headers=actors["guard"])
        assert empty.status_code == 400

        listed = (await client.get(url, headers=actors["admin"])).json()["data"]
        assert [comment["message"] for comment in listed] == ["Seal looks scratched", "Loaded at dock 4"]


@pytest.mark.asyncio
async def test_missing_seal_is_repaired_on_read() -> None:
    actors = await _setup()
    app = create_app()
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as client:
        session_id = (await post_trip_session(client, actors["operator"])).json()["data"]["id"]
        async with SessionLocal() as session:
            await session.execute(delete(Seal).where(Seal.session_id == session_id))
            await session.commit()

        detail = (await client.get(f"/v1/sessions/{session_id}", headers=actors["operator"])).json()["data"]
        assert detail["seal"]["barcode"] == "SEAL-001"
        assert detail["seal"]["verified"] is False

    async with SessionLocal() as session:
        seals = (await session.execute(select(Seal).where(Seal.session_id == session_id))).scalars().all()
        assert len(seals) == 1


@pytest.mark.asyncio
async def test_seal_timestamp_repair_restores_submitted_times() -> None:
    actors = await _setup()
    app = create_app()
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as client:
        created = await post_trip_session(
            client,
            actors["operator"],
            fields={"sealTagTimestamps": '{"SEAL-001": "2025-01-10T10:00:00Z"}'},
        )
        session_id = created.json()["data"]["id"]
        async with SessionLocal() as session:
            tag = (
                await session.execute(
                    select(SealTag).where(SealTag.session_id == session_id, SealTag.barcode == "SEAL-001")
                )
            ).scalar_one()
            tag.created_at = datetime(2025, 3, 1, tzinfo=timezone.utc)
            await session.commit()

        denied = await client.post(f"/v1/sessions/{session_id}/repair/seal-timestamps", headers=actors["guard"])
        assert denied.status_code == 403

        repaired = await client.post(f"/v1/sessions/{session_id}/repair/seal-timestamps", headers=actors["admin"])
        assert repaired.status_code == 200
        assert repaired.json()["data"]["fixed"] == ["SEAL-001"]

        again = await client.post(f"/v1/sessions/{session_id}/repair/seal-timestamps", headers=actors["admin"])
        assert again.json()["data"]["fixed"] == []

        detail = (await client.get(f"/v1/sessions/{session_id}", headers=actors["admin"])).json()["data"]
        tag = next(tag for tag in detail["sealTags"] if tag["barcode"] == "SEAL-001")
        assert tag["formattedCreatedAt"] == "Jan 10, 2025 10:00:00"


@pytest.mark.asyncio
async def test_guard_image_repair_backfills_from_scan_payloads() -> None:
    actors = await _setup()
    app = create_app()
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as client:
        session_id = (await post_trip_session(client, actors["operator"])).json()["data"]["id"]
        await client.post(
            f"/v1/sessions/{session_id}/seal-tags/verify",
            json={"barcode": "SEAL-001", "method": "manual", "imageData": "data:image/png;base64,aGVsbG8="},
            headers=actors["guard"],
        )
        async with SessionLocal() as session:
            tag = (
                await session.execute(
                    select(SealTag).where(SealTag.session_id == session_id, SealTag.barcode == "SEAL-001")
                )
            ).scalar_one()
            tag.guard_image_data = None
            await session.commit()

        repaired = await client.post(f"/v1/sessions/{session_id}/repair/guard-seal-images", headers=actors["admin"])
        assert repaired.json()["data"]["fixed"] == ["SEAL-001"]

    async with SessionLocal() as session:
        tag = (
            await session.execute(select(SealTag).where(SealTag.session_id == session_id, SealTag.barcode == "SEAL-001"))
        ).scalar_one()
        assert tag.guard_image_data == "data:image/png;base64,aGVsbG8="


@pytest.mark.asyncio
async def test_report_bundle_references_images_without_blobs() -> None:
    actors = await _setup()
    app = create_app()
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as client:
        session_id = (
            await post_trip_session(
                client,
                actors["operator"],
                files={
                    "gpsImeiPicture": ("gps.jpg", JPEG_BYTES, "image/jpeg"),
                    "sealTagImages[SEAL-001]": ("seal.jpg", JPEG_BYTES, "image/jpeg"),
                },
            )
        ).json()["data"]["id"]
        await client.post(
            f"/v1/sessions/{session_id}/comments", json={"message": "Departed"}, headers=actors["operator"]
        )

        report = (await client.get(f"/v1/reports/sessions/{session_id}", headers=actors["admin"])).json()["data"]
        assert report["reportVersion"] == 1
        assert report["company"]["name"] == "Harbor Freight"
        assert report["createdBy"]["name"] == "Asha"
        assert report["images"]["gpsImeiPicture"] == f"/api/images/{session_id}/gpsImei"
        tags = {tag["barcode"]: tag for tag in report["sealTags"]}
        assert tags["SEAL-001"]["hasImage"] is True
        assert tags["SEAL-002"]["hasImage"] is False
        assert "imageData" not in tags["SEAL-001"]
        assert [comment["message"] for comment in report["comments"]] == ["Departed"]

        missing_image = await client.get(f"/api/images/{session_id}/driver", headers=actors["admin"])
        assert missing_image.status_code == 404


@pytest.mark.asyncio
async def test_seal_image_repair_backfills_operator_images() -> None:
    actors = await _setup()
    app = create_app()
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as client:
        session_id = (
            await post_trip_session(
                client,
                actors["operator"],
                files={"sealTagImages[SEAL-001]": ("seal.jpg", JPEG_BYTES, "image/jpeg")},
            )
        ).json()["data"]["id"]
        async with SessionLocal() as session:
            tags = (await session.execute(select(SealTag).where(SealTag.session_id == session_id))).scalars().all()
            for tag in tags:
                tag.image_data = None
            await session.commit()

        denied = await client.post(f"/v1/sessions/{session_id}/repair/seal-images", headers=actors["operator"])
        assert denied.status_code == 403

        repaired = await client.post(f"/v1/sessions/{session_id}/repair/seal-images", headers=actors["admin"])
        assert repaired.status_code == 200
        assert repaired.json()["data"]["fixed"] == ["SEAL-001"]

        again = await client.post(f"/v1/sessions/{session_id}/repair/seal-images", headers=actors["admin"])
        assert again.json()["data"]["fixed"] == []

    async with SessionLocal() as session:
        tags = {
            tag.barcode: tag
            for tag in (await session.execute(select(SealTag).where(SealTag.session_id == session_id))).scalars()
        }
    assert tags["SEAL-001"].image_data.startswith("data:image/jpeg;base64,")
    assert tags["SEAL-002"].image_data is None


@pytest.mark.asyncio
async def test_guard_seal_tag_images_replay_as_binary() -> None:
    actors = await _setup()
    app = create_app()
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as client:
        session_id = (await post_trip_session(client, actors["operator"])).json()["data"]["id"]
        await client.post(
            f"/v1/sessions/{session_id}/seal-tags/verify",
            json={"barcode": "SEAL-001", "method": "manual", "imageData": "data:image/png;base64,aGVsbG8="},
            headers=actors["guard"],
        )
        guard_tag = await client.post(
            f"/v1/sessions/{session_id}/guard-seal-tags",
            json={"barcode": "SEAL-002", "method": "digital", "imageData": "data:image/gif;base64,R0lG"},
            headers=actors["guard"],
        )
        detail = (await client.get(f"/v1/sessions/{session_id}", headers=actors["admin"])).json()["data"]
        seal_tag_id = next(tag["id"] for tag in detail["sealTags"] if tag["barcode"] == "SEAL-001")
        unscanned_id = next(tag["id"] for tag in detail["sealTags"] if tag["barcode"] == "SEAL-002")

        matched = await client.get(f"/api/images/{session_id}/guardSealTag/{seal_tag_id}", headers=actors["admin"])
        assert matched.status_code == 200
        assert matched.headers["content-type"] == "image/png"
        assert matched.content == b"hello"

        recorded = await client.get(
            f"/api/images/{session_id}/guardSealTag/{guard_tag.json()['data']['id']}", headers=actors["guard"]
        )
        assert recorded.status_code == 200
        assert recorded.headers["content-type"] == "image/gif"
        assert recorded.content == b"GIF"

        no_image = await client.get(f"/api/images/{session_id}/guardSealTag/{unscanned_id}", headers=actors["admin"])
        assert no_image.status_code == 404


@pytest.mark.asyncio
async def test_seal_repair_race_returns_the_committed_seal(monkeypatch) -> None:
    actors = await _setup()
    app = create_app()
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as client:
        session_id = (await post_trip_session(client, actors["operator"])).json()["data"]["id"]
    async with SessionLocal() as session:
        committed_id = (await session.execute(select(Seal.id).where(Seal.session_id == session_id))).scalar_one()

    real_lookup = lifecycle.get_seal_for_session
    calls = {"count": 0}

    async def _stale_first_read(session, trip_session_id: str):
        # The first read misses the seal another request already committed.
        calls["count"] += 1
        if calls["count"] == 1:
            return None
        return await real_lookup(session, trip_session_id)

    monkeypatch.setattr(lifecycle, "get_seal_for_session", _stale_first_read)
    async with SessionLocal() as session:
        trip_session = await session.get(TripSession, session_id)
        seal = await lifecycle.repair_missing_seal(session, trip_session)
        assert seal is not None
        assert seal.id == committed_id
        assert trip_session.status == "IN_PROGRESS"

    async with SessionLocal() as session:
        seals = (await session.execute(select(Seal).where(Seal.session_id == session_id))).scalars().all()
        assert len(seals) == 1
