"""Pydantic DTOs (Data Transfer Objects) for the records API.

Request bodies are validated by :class:`RecordNormalizer` so that every
failure carries a stable error code; these models describe responses.
"""

from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field, field_serializer

from client_payments.domain.dates import format_timestamp


class _CamelModel(BaseModel):
    model_config = ConfigDict(populate_by_name=True)


class RecordsResponse(_CamelModel):
    """Schema returned by GET /records."""

    records: list[dict[str, str]] = Field(default_factory=list)
    updated_at: datetime | None = Field(None, alias="updatedAt")

    @field_serializer("updated_at")
    def _serialize_updated_at(self, value: datetime | None) -> str | None:
        return format_timestamp(value)


class RecordsWriteResponse(_CamelModel):
    """Schema returned by an accepted PUT /records."""

    ok: bool = True
    updated_at: datetime | None = Field(None, alias="updatedAt")

    @field_serializer("updated_at")
    def _serialize_updated_at(self, value: datetime | None) -> str | None:
        return format_timestamp(value)


class RecordsPatchResponse(RecordsWriteResponse):
    """Schema returned by an accepted PATCH /records."""

    applied_operations: int = Field(0, alias="appliedOperations")


class ErrorResponse(_CamelModel):
    """Error body shared by every records endpoint."""

    error: str
    code: str
    updated_at: str | None = Field(None, alias="updatedAt")


class PaymentEventSchema(_CamelModel):
    """Payload of a ``payment_received`` server-sent event."""

    type: str
    title: str
    message: str
    tone: str
    record_id: str = Field(..., alias="recordId")
    client_name: str = Field("", alias="clientName")
    payment_slot: int = Field(..., alias="paymentSlot")
    payment_amount: str = Field("", alias="paymentAmount")
    payment_date: str = Field("", alias="paymentDate")
    link_href: str = Field(..., alias="linkHref")
    link_label: str = Field(..., alias="linkLabel")
