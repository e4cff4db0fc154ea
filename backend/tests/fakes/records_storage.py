"""In-memory fakes of the records storage ports.

``InMemoryRecordsDatabase`` holds the committed state. Each unit of work
works on a private copy taken at ``__aenter__`` and publishes it on commit,
so a failed write leaves the database untouched. Savepoints snapshot the
working copy and restore it when their block raises.
"""

import asyncio
import copy
from contextlib import asynccontextmanager
from dataclasses import dataclass, field
from datetime import datetime

from client_payments.application.interfaces import (
    LegacyRecordsRepository,
    RecordsUnitOfWork,
    RecordsV2Repository,
)
from client_payments.application.services.records_snapshot import build_rows, compute_rows_checksum
from client_payments.domain.entities import (
    ClientRecord,
    ClientRecordRow,
    LegacyRecordsState,
    SnapshotSyncSummary,
)
from client_payments.domain.exceptions import ServiceUnavailableError, SnapshotDesyncError


@dataclass
class _Snapshot:
    state: LegacyRecordsState | None = None
    rows: list[ClientRecordRow] = field(default_factory=list)


class InMemoryRecordsDatabase:
    """Committed storage shared by every unit of work created from it."""

    def __init__(self):
        self.committed = _Snapshot()
        self.commits = 0
        self.rollbacks = 0
        self.savepoints: list[str] = []
        self.locked_reads = 0
        # Failure injection
        self.unavailable = False
        self.fail_v2_sync = False
        self.fail_legacy_write = False
        self.drop_v2_row_on_sync = False
        self.read_delay_seconds = 0.0

    # ── Seeding / inspection helpers ─────────────────────────────────

    def seed_legacy(self, records: list[ClientRecord], updated_at: datetime | None) -> None:
        self.committed.state = LegacyRecordsState(records=copy.deepcopy(records), updated_at=updated_at)

    def seed_v2(self, records: list[ClientRecord]) -> None:
        self.committed.rows = build_rows(copy.deepcopy(records))

    @property
    def legacy_records(self) -> list[ClientRecord]:
        return copy.deepcopy(self.committed.state.records) if self.committed.state else []

    @property
    def updated_at(self) -> datetime | None:
        return self.committed.state.updated_at if self.committed.state else None

    @property
    def v2_records(self) -> list[ClientRecord]:
        return [copy.deepcopy(row.record) for row in self.committed.rows]

    def unit_of_work(self) -> "InMemoryRecordsUnitOfWork":
        return InMemoryRecordsUnitOfWork(self)


class InMemoryLegacyRepository(LegacyRecordsRepository):
    def __init__(self, uow: "InMemoryRecordsUnitOfWork"):
        self._uow = uow

    async def read_state(self, *, lock: bool = False) -> LegacyRecordsState | None:
        db = self._uow.db
        if lock:
            db.locked_reads += 1
        await asyncio.sleep(db.read_delay_seconds)
        state = self._uow.working.state
        return copy.deepcopy(state) if state else None

    async def write_records(self, records: list[ClientRecord], updated_at: datetime) -> None:
        await asyncio.sleep(0)
        if self._uow.db.fail_legacy_write:
            raise RuntimeError("legacy write failed")
        self._uow.working.state = LegacyRecordsState(records=copy.deepcopy(records), updated_at=updated_at)

    async def write_revision(self, updated_at: datetime) -> None:
        await asyncio.sleep(0)
        working = self._uow.working
        if working.state is None:
            working.state = LegacyRecordsState(records=[], updated_at=updated_at)
        else:
            working.state.updated_at = updated_at


class InMemoryV2Repository(RecordsV2Repository):
    def __init__(self, uow: "InMemoryRecordsUnitOfWork"):
        self._uow = uow

    async def list_rows(self) -> list[ClientRecordRow]:
        await asyncio.sleep(0)
        return copy.deepcopy(self._uow.working.rows)

    async def list_records(self) -> list[ClientRecord]:
        return [row.record for row in await self.list_rows()]

    async def sync_snapshot(
        self,
        records: list[ClientRecord],
        *,
        source_updated_at: datetime | None,
    ) -> SnapshotSyncSummary:
        await asyncio.sleep(0)
        db = self._uow.db
        if db.fail_v2_sync:
            raise RuntimeError("v2 sync failed")

        rows = build_rows(copy.deepcopy(records))
        previous_ids = {row.id for row in self._uow.working.rows}
        next_ids = {row.id for row in rows}
        stored = rows[:-1] if db.drop_v2_row_on_sync and rows else rows
        self._uow.working.rows = stored

        summary = SnapshotSyncSummary(
            expected_count=len(next_ids),
            upserted_count=len(rows),
            deleted_count=len(previous_ids - next_ids),
            v2_count=len(stored),
            checksum=compute_rows_checksum(rows),
        )
        if not summary.in_sync:
            raise SnapshotDesyncError(summary.expected_count, summary.v2_count)
        return summary


class InMemoryRecordsUnitOfWork(RecordsUnitOfWork):
    def __init__(self, db: InMemoryRecordsDatabase):
        self.db = db
        self.working = _Snapshot()
        self.legacy = InMemoryLegacyRepository(self)
        self.v2 = InMemoryV2Repository(self)

    async def __aenter__(self) -> "InMemoryRecordsUnitOfWork":
        await asyncio.sleep(0)
        if self.db.unavailable:
            raise ServiceUnavailableError("Records storage is temporarily unavailable. Try again.")
        self.working = copy.deepcopy(self.db.committed)
        return self

    async def __aexit__(self, exc_type, exc, tb) -> bool:
        if exc is None:
            self.db.committed = self.working
            self.db.commits += 1
        else:
            self.db.rollbacks += 1
        return False

    @asynccontextmanager
    async def savepoint(self, name: str):
        self.db.savepoints.append(name)
        saved = copy.deepcopy(self.working)
        try:
            yield
        except BaseException:
            self.working = saved
            raise
