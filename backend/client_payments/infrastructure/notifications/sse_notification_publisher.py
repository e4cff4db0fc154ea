"""NotificationPublisher adapter that broadcasts payment events over SSE."""

import logging

from client_payments.application.interfaces import NotificationPublisher
from client_payments.application.schemas import PaymentEventSchema
from client_payments.application.services.sse_manager import SSEManager
from client_payments.domain.entities import PaymentEvent

logger = logging.getLogger(__name__)

PAYMENT_RECEIVED_SSE_EVENT = "payment_received"


class SSENotificationPublisher(NotificationPublisher):
    """Implements the NotificationPublisher port on top of the in-process SSEManager."""

    def __init__(self, sse_manager: SSEManager):
        self._sse = sse_manager

    async def publish(self, events: list[PaymentEvent]) -> None:
        for event in events:
            payload = PaymentEventSchema.model_validate(event, from_attributes=True)
            try:
                delivered = await self._sse.broadcast(
                    PAYMENT_RECEIVED_SSE_EVENT,
                    payload.model_dump(by_alias=True),
                )
            except Exception:
                logger.exception("Failed to broadcast payment event for record %s", event.record_id)
                continue
            logger.debug(
                "Payment event for record %s (slot %d) delivered to %d clients",
                event.record_id,
                event.payment_slot,
                delivered,
            )
