"""SQLAlchemy ORM model for the legacy single-row records state."""

from datetime import datetime

from sqlalchemy import JSON, BigInteger, DateTime
from sqlalchemy.orm import Mapped, mapped_column

from client_payments.infrastructure.database.base import Base


class RecordsStateModel(Base):
    """ORM model — maps to the 'client_records_state' table.

    One row holds the whole collection as a JSON blob; its ``updated_at``
    is the collection version stamp in every migration mode.
    """

    __tablename__ = "client_records_state"

    id: Mapped[int] = mapped_column(BigInteger, primary_key=True, autoincrement=False)
    records: Mapped[list] = mapped_column(JSON, nullable=False, default=list)
    updated_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)

    def __repr__(self) -> str:
        count = len(self.records) if isinstance(self.records, list) else 0
        return f"<RecordsStateModel(id={self.id}, records={count}, updated_at={self.updated_at})>"
