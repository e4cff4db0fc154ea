"""Concrete repository for the legacy records blob backed by SQLAlchemy."""

from datetime import datetime, timezone

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from client_payments.application.interfaces import LegacyRecordsRepository
from client_payments.domain.entities import ClientRecord, LegacyRecordsState
from client_payments.infrastructure.database.models import RecordsStateModel


def as_utc(value: datetime | None) -> datetime | None:
    """Attach UTC to naive values (SQLite drops the offset)."""
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


class SQLAlchemyLegacyRecordsRepository(LegacyRecordsRepository):
    """Implements the LegacyRecordsRepository port on the 'client_records_state' row."""

    def __init__(self, session: AsyncSession, row_id: int = 1):
        self._session = session
        self._row_id = row_id

    async def _get_model(self, *, lock: bool = False) -> RecordsStateModel | None:
        stmt = (
            select(RecordsStateModel)
            .where(RecordsStateModel.id == self._row_id)
            .execution_options(populate_existing=True)
        )
        if lock:
            stmt = stmt.with_for_update()
        result = await self._session.execute(stmt)
        return result.scalar_one_or_none()

    async def read_state(self, *, lock: bool = False) -> LegacyRecordsState | None:
        model = await self._get_model(lock=lock)
        if model is None:
            return None
        records = model.records if isinstance(model.records, list) else []
        return LegacyRecordsState(
            records=[dict(record) for record in records if isinstance(record, dict)],
            updated_at=as_utc(model.updated_at),
        )

    async def write_records(self, records: list[ClientRecord], updated_at: datetime) -> None:
        model = await self._get_model()
        if model is None:
            model = RecordsStateModel(id=self._row_id)
            self._session.add(model)
        model.records = [dict(record) for record in records]
        model.updated_at = updated_at
        await self._session.flush()

    async def write_revision(self, updated_at: datetime) -> None:
        model = await self._get_model()
        if model is None:
            model = RecordsStateModel(id=self._row_id, records=[])
            self._session.add(model)
        model.updated_at = updated_at
        await self._session.flush()
