"""Application service (use case) for the records API."""

import logging
from dataclasses import dataclass, field
from typing import Any

from client_payments.application.interfaces import NotificationPublisher
from client_payments.application.services.payment_event_detector import (
    DEFAULT_PAYMENT_LINK_HREF,
    detect_payment_events,
)
from client_payments.application.services.record_normalizer import RecordNormalizer
from client_payments.application.services.record_store import RecordStore
from client_payments.domain.entities import PaymentEvent, RecordsCommit, RecordsState
from client_payments.infrastructure.logging.colored_logger import RecordsPipelineLogger, RecordsStage

logger = logging.getLogger(__name__)
plog = RecordsPipelineLogger("RecordsService")


@dataclass
class WriteOutcome:
    """A committed write plus the payment events it produced."""

    commit: RecordsCommit
    events: list[PaymentEvent] = field(default_factory=list)


class RecordsService:
    """Orchestrates normalize → store → detect → publish. Depends on ports (DI)."""

    def __init__(
        self,
        store: RecordStore,
        normalizer: RecordNormalizer,
        publisher: NotificationPublisher | None = None,
        *,
        payment_link_href: str = DEFAULT_PAYMENT_LINK_HREF,
    ):
        self._store = store
        self._normalizer = normalizer
        self._publisher = publisher
        self._payment_link_href = payment_link_href

    async def get_records(self) -> RecordsState:
        return await self._store.get()

    async def replace_records(self, body: Any) -> WriteOutcome:
        """Full replace from a ``{records, expectedUpdatedAt}`` body."""
        raw_records = body.get("records") if isinstance(body, dict) else None
        with plog.timed_step(RecordsStage.NORMALIZE, "Validating records payload"):
            records = self._normalizer.normalize_records(raw_records)
        expected_updated_at = self._normalizer.parse_expected_updated_at(body)

        commit = await self._store.replace(records, expected_updated_at)
        return WriteOutcome(commit=commit, events=self._detect(commit))

    async def patch_records(self, body: Any) -> WriteOutcome:
        """Atomic patch from an ``{operations, expectedUpdatedAt}`` body."""
        expected_updated_at = self._normalizer.parse_expected_updated_at(body)
        with plog.timed_step(RecordsStage.NORMALIZE, "Validating patch payload"):
            operations = self._normalizer.normalize_patch(body)

        commit = await self._store.patch(operations, expected_updated_at)
        return WriteOutcome(commit=commit, events=self._detect(commit))

    async def create_record(self, raw_record: Any) -> WriteOutcome:
        """Single-record create for approved submissions; no precondition."""
        with plog.timed_step(RecordsStage.NORMALIZE, "Validating submitted record"):
            (record,) = self._normalizer.normalize_records([raw_record])

        commit = await self._store.append(record)
        return WriteOutcome(commit=commit, events=self._detect(commit))

    def _detect(self, commit: RecordsCommit) -> list[PaymentEvent]:
        try:
            return detect_payment_events(
                commit.previous_records,
                commit.records,
                link_href=self._payment_link_href,
            )
        except Exception as exc:
            plog.step_warning(RecordsStage.NOTIFY, "Payment detection failed", error=exc)
            return []

    async def publish_events(self, events: list[PaymentEvent]) -> None:
        """Hand events to the publisher; failures are logged, never raised."""
        if not events or self._publisher is None:
            return
        try:
            await self._publisher.publish(events)
        except Exception as exc:
            plog.step_warning(RecordsStage.NOTIFY, "Failed to publish payment notifications", error=exc)
            return
        plog.step_complete(RecordsStage.NOTIFY, "Published payment notifications", count=len(events))
