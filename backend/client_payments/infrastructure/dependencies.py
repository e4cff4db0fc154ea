"""FastAPI dependency injection — wires infrastructure to application layer."""

from collections.abc import AsyncGenerator
from functools import lru_cache

from fastapi import Depends

from client_payments.config import get_settings
from client_payments.application.services import (
    RecordLimits,
    RecordNormalizer,
    RecordStore,
    RecordsService,
    SSEManager,
)
from client_payments.domain.entities import MigrationMode
from client_payments.domain.exceptions import ServiceUnavailableError
from client_payments.infrastructure.database.repositories import SQLAlchemyRecordsUnitOfWork
from client_payments.infrastructure.database.session import async_session_factory
from client_payments.infrastructure.notifications.sse_notification_publisher import (
    SSENotificationPublisher,
)


@lru_cache
def get_sse_manager() -> SSEManager:
    """Process-wide SSE broadcaster."""
    return SSEManager()


@lru_cache
def _build_record_store() -> RecordStore:
    settings = get_settings()
    session_factory = async_session_factory
    state_row_id = settings.records_state_row_id
    return RecordStore(
        lambda: SQLAlchemyRecordsUnitOfWork(session_factory, state_row_id=state_row_id),
        MigrationMode(settings.records_migration_mode),
        timeout_seconds=settings.records_storage_timeout_seconds,
        dual_read_compare=settings.records_dual_read_compare,
        money_max_absolute_cents=settings.records_money_max_absolute_cents,
    )


def get_record_store() -> RecordStore:
    """Shared RecordStore, so every request funnels writes through one lock."""
    if async_session_factory is None:
        raise ServiceUnavailableError("Database is not configured. Set DATABASE_URL.")
    return _build_record_store()


def get_record_normalizer() -> RecordNormalizer:
    settings = get_settings()
    limits = RecordLimits(
        max_count=settings.records_max_count,
        max_record_keys=settings.records_max_record_keys,
        max_record_chars=settings.records_max_record_chars,
        max_total_chars=settings.records_max_total_chars,
        default_field_max_length=settings.records_default_field_max_length,
        field_max_length=dict(settings.records_field_max_length),
        max_patch_operations=settings.records_max_patch_operations,
        money_max_absolute_cents=settings.records_money_max_absolute_cents,
    )
    return RecordNormalizer(limits)


async def get_records_service(
    store: RecordStore = Depends(get_record_store),
    normalizer: RecordNormalizer = Depends(get_record_normalizer),
    sse: SSEManager = Depends(get_sse_manager),
) -> AsyncGenerator[RecordsService, None]:
    """Provides a RecordsService wired to the shared store and SSE publisher."""
    yield RecordsService(
        store,
        normalizer,
        SSENotificationPublisher(sse),
        payment_link_href=get_settings().records_payment_link_href,
    )
