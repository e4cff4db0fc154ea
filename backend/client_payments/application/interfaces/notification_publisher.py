"""Abstract notification publisher interface (port)."""

from abc import ABC, abstractmethod

from client_payments.domain.entities import PaymentEvent


class NotificationPublisher(ABC):
    """Port for delivering payment events: implemented in the infrastructure layer."""

    @abstractmethod
    async def publish(self, events: list[PaymentEvent]) -> None:
        """Deliver events to subscribers. Implementations must not raise."""
        ...
