from .records import (
    ErrorResponse,
    PaymentEventSchema,
    RecordsPatchResponse,
    RecordsResponse,
    RecordsWriteResponse,
)

__all__ = [
    "ErrorResponse",
    "PaymentEventSchema",
    "RecordsPatchResponse",
    "RecordsResponse",
    "RecordsWriteResponse",
]
