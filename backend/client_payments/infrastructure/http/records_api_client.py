"""Records API client: implements the RecordsTransport interface.

Talks to ``/api/v1/records`` over httpx and turns error bodies back into the
typed domain exceptions by their stable ``code``.
"""

import logging
from datetime import datetime

import httpx
from pydantic import ValidationError

from client_payments.application.interfaces import RecordsTransport, TransportError
from client_payments.application.schemas import ErrorResponse, RecordsResponse, RecordsWriteResponse
from client_payments.domain.dates import format_timestamp, parse_timestamp
from client_payments.domain.entities import ClientRecord, RecordsState, StorageSource
from client_payments.domain.exceptions import (
    ConflictError,
    PreconditionRequiredError,
    RecordsError,
    RecordsValidationError,
    ServiceUnavailableError,
)

logger = logging.getLogger(__name__)

RECORDS_PATH = "/api/v1/records"


class RecordsApiClient(RecordsTransport):
    """Infrastructure adapter: the browser-side sync loop's view of the server."""

    def __init__(
        self,
        base_url: str,
        http_client: httpx.AsyncClient | None = None,
        timeout: float = 30.0,
    ):
        self._base_url = base_url.rstrip("/")
        self._http_client = http_client
        self._timeout = timeout

    def _get_client(self) -> httpx.AsyncClient:
        """Return the injected client or create a new one."""
        if self._http_client is not None:
            return self._http_client
        return httpx.AsyncClient(timeout=self._timeout)

    async def _request(self, method: str, json: dict | None = None) -> httpx.Response:
        client = self._get_client()
        should_close = self._http_client is None
        try:
            response = await client.request(method, f"{self._base_url}{RECORDS_PATH}", json=json)
        except httpx.HTTPError as exc:
            logger.warning("Records API %s failed: %s", method, exc)
            raise TransportError(str(exc) or exc.__class__.__name__) from exc
        finally:
            if should_close:
                await client.aclose()

        if not response.is_success:
            self._raise_records_error(response)
        return response

    async def fetch(self) -> RecordsState:
        response = await self._request("GET")
        try:
            body = RecordsResponse.model_validate(response.json())
        except (ValueError, ValidationError) as exc:
            raise TransportError(f"Unexpected records response: {exc}") from exc

        source = response.headers.get("X-Records-Source", StorageSource.LEGACY.value)
        try:
            storage_source = StorageSource(source)
        except ValueError:
            storage_source = StorageSource.LEGACY
        return RecordsState(records=body.records, updated_at=body.updated_at, source=storage_source)

    async def replace(
        self,
        records: list[ClientRecord],
        expected_updated_at: datetime | None,
    ) -> datetime | None:
        payload = {
            "records": records,
            "expectedUpdatedAt": format_timestamp(expected_updated_at),
        }
        response = await self._request("PUT", json=payload)
        try:
            body = RecordsWriteResponse.model_validate(response.json())
        except (ValueError, ValidationError) as exc:
            raise TransportError(f"Unexpected records response: {exc}") from exc
        return body.updated_at

    @staticmethod
    def _raise_records_error(response: httpx.Response) -> None:
        """Rebuild the typed domain error from an API error response."""
        try:
            error = ErrorResponse.model_validate(response.json())
        except (ValueError, ValidationError):
            raise RecordsError(
                f"Records API returned HTTP {response.status_code}.",
                http_status=response.status_code,
            ) from None

        status = response.status_code
        if status == 409 or error.code == ConflictError.code:
            raise ConflictError(parse_timestamp(error.updated_at or ""), error.error)
        if status == 428 or error.code == PreconditionRequiredError.code:
            raise PreconditionRequiredError(error.error)
        if status == 503:
            raise ServiceUnavailableError(error.error, error.code)
        if status in (400, 413):
            raise RecordsValidationError(error.error, error.code, status)
        raise RecordsError(error.error, error.code, status)
