"""Unit tests for RecordsApiClient using httpx.MockTransport."""

import json
from datetime import datetime, timezone

import httpx
import pytest

from client_payments.application.interfaces import TransportError
from client_payments.domain.entities import StorageSource
from client_payments.domain.exceptions import (
    ConflictError,
    PreconditionRequiredError,
    RecordsError,
    RecordsValidationError,
    ServiceUnavailableError,
)
from client_payments.infrastructure.http.records_api_client import RecordsApiClient

STAMP = "2026-03-15T12:00:00.123Z"
STAMP_DT = datetime(2026, 3, 15, 12, 0, 0, 123000, tzinfo=timezone.utc)


def _client(handler) -> RecordsApiClient:
    http_client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    return RecordsApiClient("http://records.test/", http_client=http_client)


@pytest.mark.asyncio
async def test_fetch_parses_records_stamp_and_source():
    def handler(request: httpx.Request) -> httpx.Response:
        assert request.method == "GET"
        assert str(request.url) == "http://records.test/api/v1/records"
        return httpx.Response(
            200,
            json={"records": [{"id": "a"}], "updatedAt": STAMP},
            headers={"X-Records-Source": "v2"},
        )

    state = await _client(handler).fetch()

    assert state.records == [{"id": "a"}]
    assert state.updated_at == STAMP_DT
    assert state.source is StorageSource.V2


@pytest.mark.asyncio
async def test_replace_sends_records_and_precondition():
    seen: dict = {}

    def handler(request: httpx.Request) -> httpx.Response:
        seen["method"] = request.method
        seen["body"] = json.loads(request.content)
        return httpx.Response(200, json={"ok": True, "updatedAt": "2026-03-15T12:00:01.000Z"})

    updated_at = await _client(handler).replace([{"id": "a"}], STAMP_DT)

    assert seen["method"] == "PUT"
    assert seen["body"] == {"records": [{"id": "a"}], "expectedUpdatedAt": STAMP}
    assert updated_at == datetime(2026, 3, 15, 12, 0, 1, tzinfo=timezone.utc)


@pytest.mark.asyncio
async def test_replace_sends_null_precondition_for_new_collection():
    seen: dict = {}

    def handler(request: httpx.Request) -> httpx.Response:
        seen["body"] = json.loads(request.content)
        return httpx.Response(200, json={"ok": True, "updatedAt": STAMP})

    await _client(handler).replace([], None)

    assert seen["body"]["expectedUpdatedAt"] is None


@pytest.mark.asyncio
@pytest.mark.parametrize(
    ("status", "body", "error_type"),
    [
        (409, {"error": "stale", "code": "records_conflict", "updatedAt": STAMP}, ConflictError),
        (428, {"error": "need stamp", "code": "records_precondition_required"}, PreconditionRequiredError),
        (400, {"error": "bad", "code": "records_payload_invalid_amount"}, RecordsValidationError),
        (413, {"error": "big", "code": "records_payload_too_large"}, RecordsValidationError),
        (503, {"error": "down", "code": "records_storage_timeout"}, ServiceUnavailableError),
        (500, {"error": "oops", "code": "internal_error"}, RecordsError),
    ],
)
async def test_error_responses_map_to_typed_errors(status, body, error_type):
    client = _client(lambda request: httpx.Response(status, json=body))

    with pytest.raises(error_type) as exc_info:
        await client.replace([], None)

    assert exc_info.value.code == body["code"]
    assert exc_info.value.message == body["error"]


@pytest.mark.asyncio
async def test_conflict_carries_server_stamp():
    client = _client(
        lambda request: httpx.Response(
            409, json={"error": "stale", "code": "records_conflict", "updatedAt": STAMP}
        )
    )

    with pytest.raises(ConflictError) as exc_info:
        await client.replace([], None)

    assert exc_info.value.current_updated_at == STAMP_DT


@pytest.mark.asyncio
async def test_non_json_error_body_becomes_generic_records_error():
    client = _client(lambda request: httpx.Response(502, text="Bad Gateway"))

    with pytest.raises(RecordsError) as exc_info:
        await client.fetch()

    assert exc_info.value.http_status == 502


@pytest.mark.asyncio
async def test_network_errors_become_transport_errors():
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("connection refused", request=request)

    with pytest.raises(TransportError):
        await _client(handler).fetch()
