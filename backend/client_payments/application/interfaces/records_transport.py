"""Abstract transport used by the client-side sync loop."""

from abc import ABC, abstractmethod
from datetime import datetime

from client_payments.domain.entities import ClientRecord, RecordsState


class TransportError(Exception):
    """The request never produced an answer from the server (network, timeout)."""


class RecordsTransport(ABC):
    """Port for talking to the records API: implemented with httpx."""

    @abstractmethod
    async def fetch(self) -> RecordsState:
        """Read the full collection and its version stamp."""
        ...

    @abstractmethod
    async def replace(
        self,
        records: list[ClientRecord],
        expected_updated_at: datetime | None,
    ) -> datetime | None:
        """Send a full replace; returns the new version stamp.

        Raises:
            RecordsError: Typed error rebuilt from the server's ``code``.
            TransportError: When the server could not be reached.
        """
        ...
