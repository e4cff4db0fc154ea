"""Record store: the authoritative records collection behind one version stamp.

Writes are serialised by an in-process ``asyncio.Lock`` and run inside a
single storage transaction that row-locks the state row, so the
precondition check and the commit happen atomically. Reads and writes are
routed across the legacy blob and the v2 rows according to the injected
:class:`MigrationMode`.
"""

import asyncio
import logging
import uuid
from collections.abc import Awaitable, Callable
from datetime import date, datetime
from typing import Any, Final

from client_payments.application.interfaces import RecordsUnitOfWork
from client_payments.application.services.derived_state import (
    derive_state,
    future_payment_cents,
    total_payment_cents,
)
from client_payments.application.services.records_patch import (
    apply_patch_operations,
    assign_missing_ids,
    carry_created_at,
    index_by_id,
)
from client_payments.application.services.records_snapshot import SnapshotComparison, compare_snapshots
from client_payments.domain.dates import format_timestamp, next_revision, same_revision, utc_now
from client_payments.domain.entities import (
    ClientRecord,
    LegacyRecordsState,
    MigrationMode,
    PatchOperation,
    PatchOperationType,
    RecordsCommit,
    RecordsState,
    SnapshotSyncSummary,
)
from client_payments.domain.entities.client_record import (
    CREATED_AT_FIELD,
    FUTURE_PAYMENTS_FIELD,
    TOTAL_PAYMENTS_FIELD,
)
from client_payments.domain.exceptions import (
    ConflictError,
    PreconditionRequiredError,
    RecordsValidationError,
    ServiceUnavailableError,
)
from client_payments.infrastructure.logging.colored_logger import RecordsPipelineLogger, RecordsStage

logger = logging.getLogger(__name__)
plog = RecordsPipelineLogger("RecordStore")

# Marks an omitted ``expected_updated_at`` (``None`` means "must not exist yet").
MISSING: Final[Any] = object()
# Writes that skip the precondition check (single-record creates).
_ANY_REVISION: Final[Any] = object()

LEGACY_MIRROR_SAVEPOINT = "legacy_mirror_write"
V2_SHADOW_SAVEPOINT = "v2_shadow_write"
DUAL_READ_SAVEPOINT = "dual_read_compare"

# Next records plus the ids to re-derive (``None``: all of them).
_Built = tuple[list[ClientRecord], set[str] | None]
_Builder = Callable[[list[ClientRecord], str], _Built | None]


class RecordStore:
    """Reads and writes the shared records collection with optimistic concurrency."""

    def __init__(
        self,
        uow_factory: Callable[[], RecordsUnitOfWork],
        mode: MigrationMode = MigrationMode.LEGACY_ONLY,
        *,
        timeout_seconds: float = 15.0,
        dual_read_compare: bool = False,
        clock: Callable[[], datetime] = utc_now,
        today: Callable[[], date] = date.today,
        id_factory: Callable[[], str] = lambda: str(uuid.uuid4()),
        money_max_absolute_cents: int | None = None,
    ):
        self._uow_factory = uow_factory
        self._mode = MigrationMode(mode)
        self._timeout_seconds = timeout_seconds
        self._dual_read_compare = dual_read_compare
        self._clock = clock
        self._today = today
        self._id_factory = id_factory
        self._money_max_absolute_cents = money_max_absolute_cents
        self._write_lock = asyncio.Lock()

    @property
    def mode(self) -> MigrationMode:
        return self._mode

    # ── Reads ───────────────────────────────────────────────────────

    async def get(self) -> RecordsState:
        """Read the collection from the mode's source, stamp first."""
        return await self._bounded(self._read())

    async def _read(self) -> RecordsState:
        async with self._uow_factory() as uow:
            state = await uow.legacy.read_state()
            updated_at = state.updated_at if state else None
            records = await self._load_records(uow, state)
            if self._mode.shadow_writes_v2 and self._dual_read_compare:
                await self._compare_dual_read(uow, records)
        return RecordsState(records=records, updated_at=updated_at, source=self._mode.read_source)

    async def _load_records(
        self, uow: RecordsUnitOfWork, state: LegacyRecordsState | None
    ) -> list[ClientRecord]:
        if self._mode.v2_authoritative:
            return await uow.v2.list_records()
        return [dict(record) for record in state.records] if state else []

    async def _compare_dual_read(self, uow: RecordsUnitOfWork, legacy_records: list[ClientRecord]) -> None:
        try:
            async with uow.savepoint(DUAL_READ_SAVEPOINT):
                rows = await uow.v2.list_rows()
        except Exception as exc:
            logger.warning("Dual-read comparison skipped: %s", exc)
            return

        comparison = compare_snapshots(legacy_records, rows)
        if comparison.matches:
            logger.debug("Dual-read comparison matched (%d records)", comparison.legacy_count)
            return
        logger.warning(
            "Dual-read mismatch: legacy=%d v2=%d missing_in_v2=%s extra_in_v2=%s hash_mismatches=%s",
            comparison.legacy_count,
            comparison.v2_count,
            comparison.missing_in_v2,
            comparison.extra_in_v2,
            comparison.hash_mismatches,
        )

    # ── Writes ──────────────────────────────────────────────────────

    async def replace(
        self,
        records: list[ClientRecord],
        expected_updated_at: datetime | None = MISSING,
    ) -> RecordsCommit:
        """Replace the whole collection if ``expected_updated_at`` is still current."""
        self._require_precondition(expected_updated_at)

        def build(current: list[ClientRecord], now_iso: str) -> _Built | None:
            incoming = assign_missing_ids(records, self._id_factory)
            return carry_created_at(incoming, current), None

        return await self._write(build, expected_updated_at, "replace", len(records))

    async def patch(
        self,
        operations: list[PatchOperation],
        expected_updated_at: datetime | None = MISSING,
    ) -> RecordsCommit:
        """Apply an ordered upsert/delete batch atomically under one precondition check."""
        self._require_precondition(expected_updated_at)

        def build(current: list[ClientRecord], now_iso: str) -> _Built | None:
            if not operations:
                return None
            upserted = {op.id for op in operations if op.type is PatchOperationType.UPSERT}
            return apply_patch_operations(current, operations, now_iso=now_iso), upserted

        return await self._write(build, expected_updated_at, "patch", len(operations))

    async def append(self, record: ClientRecord) -> RecordsCommit:
        """Create (or overwrite by id) a single record without a precondition.

        Used when a submission is approved: a new record goes to the front of
        the collection, an existing id is replaced where it stands.
        """

        def build(current: list[ClientRecord], now_iso: str) -> _Built | None:
            incoming = dict(assign_missing_ids([record], self._id_factory)[0])
            record_id = incoming["id"]
            stored = index_by_id(current).get(record_id)
            if not incoming.get(CREATED_AT_FIELD):
                incoming[CREATED_AT_FIELD] = (stored or {}).get(CREATED_AT_FIELD) or now_iso
            if stored is None:
                return [incoming, *current], {record_id}
            return [incoming if item.get("id") == record_id else item for item in current], {record_id}

        return await self._write(build, _ANY_REVISION, "append", 1)

    @staticmethod
    def _require_precondition(expected_updated_at: Any) -> None:
        if expected_updated_at is MISSING:
            raise PreconditionRequiredError()

    async def _write(
        self,
        build: _Builder,
        expected_updated_at: datetime | None,
        label: str,
        applied_operations: int,
    ) -> RecordsCommit:
        async with self._write_lock:
            return await self._bounded(
                self._commit(build, expected_updated_at, label, applied_operations)
            )

    async def _commit(
        self,
        build: _Builder,
        expected_updated_at: datetime | None,
        label: str,
        applied_operations: int,
    ) -> RecordsCommit:
        async with self._uow_factory() as uow:
            state = await uow.legacy.read_state(lock=True)
            current_updated_at = state.updated_at if state else None
            if expected_updated_at is not _ANY_REVISION and not same_revision(
                expected_updated_at, current_updated_at
            ):
                plog.step_warning(
                    RecordsStage.CONFLICT,
                    f"Rejected stale {label}: expected={format_timestamp(expected_updated_at)} "
                    f"current={format_timestamp(current_updated_at)}",
                )
                raise ConflictError(current_updated_at)

            current = await self._load_records(uow, state)
            now = self._clock()
            built = build(current, format_timestamp(now))
            if built is None:
                return RecordsCommit(
                    updated_at=current_updated_at,
                    records=current,
                    previous_records=current,
                    applied_operations=0,
                )

            next_records, touched_ids = built
            next_records = self._derive(next_records, current, touched_ids)
            self._check_derived_bounds(next_records, touched_ids)
            updated_at = next_revision(now, current_updated_at)

            await self._persist(uow, next_records, updated_at)

        plog.detail(
            f"Committed {label}",
            mode=self._mode.value,
            records=len(next_records),
            updated_at=format_timestamp(updated_at),
        )
        return RecordsCommit(
            updated_at=updated_at,
            records=next_records,
            previous_records=current,
            applied_operations=applied_operations,
        )

    def _derive(
        self,
        records: list[ClientRecord],
        current: list[ClientRecord],
        touched_ids: set[str] | None,
    ) -> list[ClientRecord]:
        previous_by_id = index_by_id(current)
        today = self._today()
        return [
            derive_state(record, previous_by_id.get(record.get("id", "")), today=today)
            if touched_ids is None or record.get("id") in touched_ids
            else record
            for record in records
        ]

    def _check_derived_bounds(
        self,
        records: list[ClientRecord],
        touched_ids: set[str] | None,
    ) -> None:
        limit = self._money_max_absolute_cents
        if limit is None:
            return
        for record in records:
            if touched_ids is not None and record.get("id") not in touched_ids:
                continue
            for field_name, cents in (
                (TOTAL_PAYMENTS_FIELD, total_payment_cents(record)),
                (FUTURE_PAYMENTS_FIELD, future_payment_cents(record)),
            ):
                if cents is not None and abs(cents) > limit:
                    raise RecordsValidationError(
                        f"Record {record.get('id', '')}: derived `{field_name}` exceeds the allowed amount.",
                        "records_payload_amount_too_large",
                    )

    async def _persist(
        self,
        uow: RecordsUnitOfWork,
        records: list[ClientRecord],
        updated_at: datetime,
    ) -> None:
        if self._mode.v2_authoritative:
            with plog.timed_step(RecordsStage.COMMIT, "Writing v2 snapshot", records=len(records)):
                await uow.v2.sync_snapshot(records, source_updated_at=updated_at)
                await uow.legacy.write_revision(updated_at)
            if self._mode.mirrors_legacy:
                await self._best_effort(
                    uow,
                    LEGACY_MIRROR_SAVEPOINT,
                    RecordsStage.MIRROR,
                    lambda: uow.legacy.write_records(records, updated_at),
                )
            return

        with plog.timed_step(RecordsStage.COMMIT, "Writing legacy records", records=len(records)):
            await uow.legacy.write_records(records, updated_at)
        if self._mode.shadow_writes_v2:
            await self._best_effort(
                uow,
                V2_SHADOW_SAVEPOINT,
                RecordsStage.SHADOW_WRITE,
                lambda: uow.v2.sync_snapshot(records, source_updated_at=updated_at),
            )

    @staticmethod
    async def _best_effort(
        uow: RecordsUnitOfWork,
        savepoint: str,
        stage: tuple[str, str, str],
        action: Callable[[], Awaitable[Any]],
    ) -> None:
        """Run a secondary write in a savepoint; failures roll back to it and are logged."""
        try:
            async with uow.savepoint(savepoint):
                await action()
        except Exception as exc:
            plog.step_warning(stage, f"{savepoint} failed, rolled back to savepoint", error=exc)

    # ── Migration tools ─────────────────────────────────────────────

    async def backfill_v2(self) -> SnapshotSyncSummary:
        """Copy the legacy blob into the v2 rows; the version stamp is left as is."""
        async with self._write_lock:
            return await self._bounded(self._backfill())

    async def _backfill(self) -> SnapshotSyncSummary:
        async with self._uow_factory() as uow:
            state = await uow.legacy.read_state(lock=True)
            records = [dict(record) for record in state.records] if state else []
            with plog.timed_step(RecordsStage.SHADOW_WRITE, "Backfilling v2 rows", records=len(records)):
                summary = await uow.v2.sync_snapshot(
                    records,
                    source_updated_at=state.updated_at if state else None,
                )
        plog.detail("Backfill finished", upserted=summary.upserted_count, deleted=summary.deleted_count)
        return summary

    async def verify_v2(self) -> SnapshotComparison:
        """Compare the legacy blob against the v2 rows without changing either."""
        return await self._bounded(self._verify())

    async def _verify(self) -> SnapshotComparison:
        async with self._uow_factory() as uow:
            state = await uow.legacy.read_state()
            rows = await uow.v2.list_rows()
        comparison = compare_snapshots(state.records if state else [], rows)
        if comparison.matches:
            logger.info("v2 rows match legacy records (%d)", comparison.legacy_count)
        else:
            logger.warning(
                "v2 rows differ from legacy: missing_in_v2=%s extra_in_v2=%s hash_mismatches=%s",
                comparison.missing_in_v2,
                comparison.extra_in_v2,
                comparison.hash_mismatches,
            )
        return comparison

    # ── Timeouts ────────────────────────────────────────────────────

    async def _bounded(self, operation: Awaitable[Any]) -> Any:
        try:
            return await asyncio.wait_for(operation, timeout=self._timeout_seconds)
        except asyncio.TimeoutError:
            logger.error("Records storage call exceeded %.1fs", self._timeout_seconds)
            raise ServiceUnavailableError(
                "Records storage did not respond in time. Try again.",
                "records_storage_timeout",
            ) from None
