"""Abstract storage ports for the records collection.

Both storage representations live behind one unit of work so a write that
touches the legacy blob and the v2 rows commits or rolls back as a whole.
"""

from abc import ABC, abstractmethod
from contextlib import AbstractAsyncContextManager
from datetime import datetime

from client_payments.domain.entities import (
    ClientRecord,
    ClientRecordRow,
    LegacyRecordsState,
    SnapshotSyncSummary,
)


class LegacyRecordsRepository(ABC):
    """Port for the single-row legacy blob: implemented in the infrastructure layer.

    The state row also carries the collection version stamp in every
    migration mode.
    """

    @abstractmethod
    async def read_state(self, *, lock: bool = False) -> LegacyRecordsState | None:
        """Read the state row, optionally taking a row lock. ``None`` if absent."""
        ...

    @abstractmethod
    async def write_records(self, records: list[ClientRecord], updated_at: datetime) -> None:
        """Replace the blob contents and advance the version stamp."""
        ...

    @abstractmethod
    async def write_revision(self, updated_at: datetime) -> None:
        """Advance the version stamp only, leaving the records blob untouched."""
        ...


class RecordsV2Repository(ABC):
    """Port for the row-per-record representation: implemented in the infrastructure layer."""

    @abstractmethod
    async def list_records(self) -> list[ClientRecord]:
        """Return all records in collection order."""
        ...

    @abstractmethod
    async def list_rows(self) -> list[ClientRecordRow]:
        ...

    @abstractmethod
    async def sync_snapshot(
        self,
        records: list[ClientRecord],
        *,
        source_updated_at: datetime | None,
    ) -> SnapshotSyncSummary:
        """Make the rows equal to ``records``: upsert present ids, delete the rest.

        Raises:
            SnapshotDesyncError: If the row count afterwards differs from the input.
        """
        ...


class RecordsUnitOfWork(ABC):
    """One storage transaction spanning both records representations.

    Used as ``async with uow:``; leaving the block normally commits, leaving
    it with an exception rolls back and re-raises.
    """

    legacy: LegacyRecordsRepository
    v2: RecordsV2Repository

    @abstractmethod
    async def __aenter__(self) -> "RecordsUnitOfWork":
        ...

    @abstractmethod
    async def __aexit__(self, exc_type, exc, tb) -> bool | None:
        ...

    @abstractmethod
    def savepoint(self, name: str) -> AbstractAsyncContextManager[None]:
        """Nested transaction; an exception rolls back to the savepoint only."""
        ...
