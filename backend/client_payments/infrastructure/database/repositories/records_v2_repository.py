"""Concrete repository for the v2 row-per-record table backed by SQLAlchemy."""

import logging
from datetime import datetime

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from client_payments.application.interfaces import RecordsV2Repository
from client_payments.application.services.records_snapshot import build_rows, compute_rows_checksum
from client_payments.domain.entities import ClientRecord, ClientRecordRow, SnapshotSyncSummary
from client_payments.domain.exceptions import SnapshotDesyncError
from client_payments.infrastructure.database.models import ClientRecordV2Model
from client_payments.infrastructure.database.repositories.legacy_records_repository import as_utc

logger = logging.getLogger(__name__)


class SQLAlchemyRecordsV2Repository(RecordsV2Repository):
    """Implements the RecordsV2Repository port using SQLAlchemy async sessions."""

    def __init__(self, session: AsyncSession, source_row_id: int = 1):
        self._session = session
        self._source_row_id = source_row_id

    def _to_row(self, model: ClientRecordV2Model) -> ClientRecordRow:
        """Map ORM model → domain row."""
        return ClientRecordRow(
            id=model.id,
            position=model.position,
            record=dict(model.record or {}),
            record_hash=model.record_hash,
            client_name=model.client_name,
            company_name=model.company_name,
            closed_by=model.closed_by,
            created_at=as_utc(model.created_at),
        )

    async def list_rows(self) -> list[ClientRecordRow]:
        stmt = select(ClientRecordV2Model).order_by(
            ClientRecordV2Model.position, ClientRecordV2Model.id
        )
        result = await self._session.execute(stmt)
        return [self._to_row(model) for model in result.scalars().all()]

    async def list_records(self) -> list[ClientRecord]:
        return [row.record for row in await self.list_rows()]

    async def sync_snapshot(
        self,
        records: list[ClientRecord],
        *,
        source_updated_at: datetime | None,
    ) -> SnapshotSyncSummary:
        rows_by_id = {row.id: row for row in build_rows(records)}
        summary = SnapshotSyncSummary(expected_count=len(rows_by_id))

        result = await self._session.execute(select(ClientRecordV2Model))
        existing = {model.id: model for model in result.scalars().all()}

        for record_id, row in rows_by_id.items():
            model = existing.pop(record_id, None)
            if model is None:
                self._session.add(
                    ClientRecordV2Model(
                        id=row.id,
                        position=row.position,
                        record=row.record,
                        record_hash=row.record_hash,
                        client_name=row.client_name,
                        company_name=row.company_name,
                        closed_by=row.closed_by,
                        created_at=row.created_at,
                        source_state_updated_at=source_updated_at,
                        source_state_row_id=self._source_row_id,
                    )
                )
                summary.upserted_count += 1
                continue

            if model.record_hash != row.record_hash:
                model.record = row.record
                model.record_hash = row.record_hash
                model.client_name = row.client_name
                model.company_name = row.company_name
                model.closed_by = row.closed_by
                model.created_at = row.created_at
                summary.upserted_count += 1
            model.position = row.position
            model.source_state_updated_at = source_updated_at
            model.source_state_row_id = self._source_row_id

        for model in existing.values():
            await self._session.delete(model)
            summary.deleted_count += 1

        await self._session.flush()

        count_result = await self._session.execute(
            select(func.count()).select_from(ClientRecordV2Model)
        )
        summary.v2_count = int(count_result.scalar_one())
        summary.checksum = compute_rows_checksum(list(rows_by_id.values()))

        logger.debug(
            "v2 snapshot synced: expected=%d upserted=%d deleted=%d count=%d",
            summary.expected_count,
            summary.upserted_count,
            summary.deleted_count,
            summary.v2_count,
        )
        if not summary.in_sync:
            raise SnapshotDesyncError(summary.expected_count, summary.v2_count)
        return summary
