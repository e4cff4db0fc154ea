"""Records API — shared client-payments collection with optimistic concurrency."""

import logging
from typing import Any

from fastapi import APIRouter, BackgroundTasks, Body, Depends, Response
from fastapi.responses import StreamingResponse

from client_payments.application.schemas import (
    ErrorResponse,
    RecordsPatchResponse,
    RecordsResponse,
    RecordsWriteResponse,
)
from client_payments.application.services import RecordsService, SSEManager
from client_payments.domain.exceptions import InternalError, RecordsError
from client_payments.infrastructure.dependencies import get_records_service, get_sse_manager

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/records", tags=["Records"])

RECORDS_SOURCE_HEADER = "X-Records-Source"
EVENTS_KEEPALIVE_SECONDS = 25.0

_ERROR_RESPONSES: dict[int | str, dict[str, Any]] = {
    status_code: {"model": ErrorResponse}
    for status_code in (400, 409, 413, 428, 500, 503)
}


@router.get("", response_model=RecordsResponse, responses=_ERROR_RESPONSES)
async def get_records(
    response: Response,
    service: RecordsService = Depends(get_records_service),
) -> RecordsResponse:
    """Return the whole collection with its version stamp."""
    try:
        state = await service.get_records()
    except RecordsError:
        raise
    except Exception as exc:
        logger.exception("Failed to read records")
        raise InternalError() from exc

    response.headers[RECORDS_SOURCE_HEADER] = state.source.value
    return RecordsResponse(records=state.records, updated_at=state.updated_at)


@router.put("", response_model=RecordsWriteResponse, responses=_ERROR_RESPONSES)
async def replace_records(
    background_tasks: BackgroundTasks,
    payload: Any = Body(None),
    service: RecordsService = Depends(get_records_service),
) -> RecordsWriteResponse:
    """Replace the collection. Requires ``expectedUpdatedAt`` from the last read."""
    try:
        outcome = await service.replace_records(payload)
    except RecordsError:
        raise
    except Exception as exc:
        logger.exception("Failed to replace records")
        raise InternalError() from exc

    background_tasks.add_task(service.publish_events, outcome.events)
    return RecordsWriteResponse(updated_at=outcome.commit.updated_at)


@router.patch("", response_model=RecordsPatchResponse, responses=_ERROR_RESPONSES)
async def patch_records(
    background_tasks: BackgroundTasks,
    payload: Any = Body(None),
    service: RecordsService = Depends(get_records_service),
) -> RecordsPatchResponse:
    """Apply an ordered batch of upsert/delete operations atomically."""
    try:
        outcome = await service.patch_records(payload)
    except RecordsError:
        raise
    except Exception as exc:
        logger.exception("Failed to patch records")
        raise InternalError() from exc

    background_tasks.add_task(service.publish_events, outcome.events)
    return RecordsPatchResponse(
        updated_at=outcome.commit.updated_at,
        applied_operations=outcome.commit.applied_operations,
    )


@router.get("/events")
async def stream_record_events(
    sse: SSEManager = Depends(get_sse_manager),
) -> StreamingResponse:
    """SSE endpoint for real-time payment notifications.

    Clients connect via EventSource and receive 'payment_received' events
    after each write that posts a new payment.
    """
    return StreamingResponse(
        sse.subscribe(keepalive_seconds=EVENTS_KEEPALIVE_SECONDS),
        media_type="text/event-stream",
        headers={
            "Cache-Control": "no-cache",
            "Connection": "keep-alive",
            "X-Accel-Buffering": "no",
        },
    )
