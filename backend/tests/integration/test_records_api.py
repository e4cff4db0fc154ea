"""Integration tests for the /api/v1/records endpoints over an in-memory store."""

from datetime import datetime, timezone

import pytest
from httpx import ASGITransport, AsyncClient

from client_payments.application.interfaces import NotificationPublisher
from client_payments.application.services import RecordNormalizer, RecordsService, RecordStore
from client_payments.domain.entities import MigrationMode, PaymentEvent
from client_payments.infrastructure import dependencies
from client_payments.main import create_app
from tests.fakes.records_storage import InMemoryRecordsDatabase

NOW = datetime(2026, 3, 15, 12, 0, 0, tzinfo=timezone.utc)
NOW_ISO = "2026-03-15T12:00:00.000Z"


class RecordingPublisher(NotificationPublisher):
    def __init__(self):
        self.events: list[PaymentEvent] = []

    async def publish(self, events: list[PaymentEvent]) -> None:
        self.events.extend(events)


class ExplodingRecordsService(RecordsService):
    async def get_records(self):
        raise RuntimeError("unexpected")


def _build(mode=MigrationMode.LEGACY_ONLY):
    db = InMemoryRecordsDatabase()
    publisher = RecordingPublisher()
    store = RecordStore(db.unit_of_work, mode, clock=lambda: NOW)
    service = RecordsService(store, RecordNormalizer(), publisher)

    app = create_app()
    app.dependency_overrides[dependencies.get_records_service] = lambda: service
    client = AsyncClient(transport=ASGITransport(app=app), base_url="http://test")
    return client, db, publisher


@pytest.mark.asyncio
async def test_get_records_on_empty_collection():
    client, _, _ = _build()
    async with client:
        response = await client.get("/api/v1/records")

    assert response.status_code == 200
    assert response.json() == {"records": [], "updatedAt": None}
    assert response.headers["X-Records-Source"] == "legacy"


@pytest.mark.asyncio
async def test_get_records_reports_v2_source():
    client, _, _ = _build(MigrationMode.FULL_V2_NO_LEGACY_MIRROR)
    async with client:
        response = await client.get("/api/v1/records")

    assert response.headers["X-Records-Source"] == "v2"


@pytest.mark.asyncio
async def test_put_then_stale_put_returns_conflict_with_current_stamp():
    client, db, _ = _build()
    async with client:
        created = await client.put(
            "/api/v1/records",
            json={"records": [{"id": "a", "clientName": "First"}], "expectedUpdatedAt": None},
        )
        stale = await client.put(
            "/api/v1/records",
            json={"records": [{"id": "a", "clientName": "Second"}], "expectedUpdatedAt": None},
        )
        read = await client.get("/api/v1/records")

    assert created.status_code == 200
    assert created.json() == {"ok": True, "updatedAt": NOW_ISO}
    assert stale.status_code == 409
    assert stale.json()["code"] == "records_conflict"
    assert stale.json()["updatedAt"] == NOW_ISO
    assert read.json()["records"] == [{"id": "a", "clientName": "First"}]
    assert db.commits == 1


@pytest.mark.asyncio
async def test_put_without_precondition_returns_428():
    client, _, _ = _build()
    async with client:
        response = await client.put("/api/v1/records", json={"records": []})

    assert response.status_code == 428
    assert response.json() == {
        "error": "Payload must include `expectedUpdatedAt` from GET /api/v1/records.",
        "code": "records_precondition_required",
    }


@pytest.mark.asyncio
async def test_put_with_invalid_record_returns_validation_code():
    client, db, _ = _build()
    async with client:
        response = await client.put(
            "/api/v1/records",
            json={"records": [{"id": "a", "payment1": "-10"}], "expectedUpdatedAt": None},
        )

    assert response.status_code == 400
    assert response.json()["code"] == "records_payload_negative_amount"
    assert db.commits == 0


@pytest.mark.asyncio
async def test_put_publishes_payment_events_in_background():
    client, _, publisher = _build()
    async with client:
        response = await client.put(
            "/api/v1/records",
            json={
                "records": [{"id": "a", "clientName": "Jane", "payment1": "100", "payment1Date": "03/01/2026"}],
                "expectedUpdatedAt": None,
            },
        )

    assert response.status_code == 200
    assert [event.record_id for event in publisher.events] == ["a"]


@pytest.mark.asyncio
async def test_patch_applies_operations_and_rejects_stale_delete():
    client, db, _ = _build()
    async with client:
        created = await client.put(
            "/api/v1/records",
            json={"records": [{"id": "a"}, {"id": "b"}], "expectedUpdatedAt": None},
        )
        first_stamp = created.json()["updatedAt"]
        patched = await client.patch(
            "/api/v1/records",
            json={
                "operations": [
                    {"type": "upsert", "id": "a", "record": {"payment1": "25"}},
                    {"type": "delete", "id": "b"},
                ],
                "expectedUpdatedAt": first_stamp,
            },
        )
        stale = await client.patch(
            "/api/v1/records",
            json={"operations": [{"type": "delete", "id": "a"}], "expectedUpdatedAt": first_stamp},
        )

    assert patched.status_code == 200
    assert patched.json() == {"ok": True, "updatedAt": "2026-03-15T12:00:00.001Z", "appliedOperations": 2}
    assert stale.status_code == 409
    assert [record["id"] for record in db.legacy_records] == ["a"]
    assert db.legacy_records[0]["totalPayments"] == "$25.00"


@pytest.mark.asyncio
async def test_patch_checks_precondition_before_payload():
    client, _, _ = _build()
    async with client:
        response = await client.patch("/api/v1/records", json={"operations": "nope"})

    assert response.status_code == 428


@pytest.mark.asyncio
async def test_patch_rejects_invalid_operation_type():
    client, _, _ = _build()
    async with client:
        response = await client.patch(
            "/api/v1/records",
            json={"operations": [{"type": "merge", "id": "a"}], "expectedUpdatedAt": None},
        )

    assert response.status_code == 400
    assert response.json()["code"] == "records_patch_invalid_operation_type"


@pytest.mark.asyncio
async def test_unexpected_errors_become_generic_500():
    app = create_app()
    db = InMemoryRecordsDatabase()
    service = ExplodingRecordsService(RecordStore(db.unit_of_work), RecordNormalizer())
    app.dependency_overrides[dependencies.get_records_service] = lambda: service

    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as client:
        response = await client.get("/api/v1/records")

    assert response.status_code == 500
    assert response.json() == {"error": "Internal server error.", "code": "internal_error"}


@pytest.mark.asyncio
async def test_unconfigured_database_returns_503(monkeypatch):
    monkeypatch.setattr(dependencies, "async_session_factory", None)
    app = create_app()

    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as client:
        response = await client.get("/api/v1/records")

    assert response.status_code == 503
    assert response.json()["code"] == "records_storage_unavailable"
    assert response.json()["error"].startswith("Database is not configured")
