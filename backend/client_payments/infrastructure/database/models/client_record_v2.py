"""SQLAlchemy ORM model for the row-per-record (v2) representation."""

from datetime import datetime, timezone

from sqlalchemy import JSON, BigInteger, DateTime, Index, Integer, String
from sqlalchemy.orm import Mapped, mapped_column

from client_payments.infrastructure.database.base import Base


class ClientRecordV2Model(Base):
    """ORM model — maps to the 'client_records_v2' table."""

    __tablename__ = "client_records_v2"

    id: Mapped[str] = mapped_column(String(180), primary_key=True)
    position: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    record: Mapped[dict] = mapped_column(JSON, nullable=False, default=dict)
    record_hash: Mapped[str] = mapped_column(String(64), nullable=False, default="")
    client_name: Mapped[str] = mapped_column(String(300), nullable=False, default="")
    company_name: Mapped[str] = mapped_column(String(300), nullable=False, default="")
    closed_by: Mapped[str] = mapped_column(String(220), nullable=False, default="")
    created_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    source_state_updated_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True
    )
    source_state_row_id: Mapped[int] = mapped_column(BigInteger, nullable=False, default=1)
    inserted_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        nullable=False,
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc),
        nullable=False,
    )

    __table_args__ = (
        Index("ix_client_records_v2_position", "position"),
        Index("ix_client_records_v2_client_name", "client_name"),
        Index("ix_client_records_v2_created_at", "created_at"),
        Index("ix_client_records_v2_source_state_updated_at", "source_state_updated_at"),
    )

    def __repr__(self) -> str:
        return f"<ClientRecordV2Model(id={self.id}, position={self.position}, client='{self.client_name}')>"
