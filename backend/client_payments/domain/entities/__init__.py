from .client_record import (
    ALLOWED_FIELDS,
    CHECKBOX_FIELDS,
    DATE_FIELDS,
    MONEY_FIELDS,
    PAYMENT_DATE_FIELDS,
    PAYMENT_FIELDS,
    ClientRecord,
    ClientRecordRow,
    LegacyRecordsState,
    PatchOperation,
    PatchOperationType,
    RecordsCommit,
    RecordsState,
    SnapshotSyncSummary,
    StorageSource,
)
from .migration_mode import MigrationMode
from .payment_event import PaymentEvent

__all__ = [
    "ALLOWED_FIELDS",
    "CHECKBOX_FIELDS",
    "DATE_FIELDS",
    "MONEY_FIELDS",
    "PAYMENT_DATE_FIELDS",
    "PAYMENT_FIELDS",
    "ClientRecord",
    "ClientRecordRow",
    "LegacyRecordsState",
    "PatchOperation",
    "PatchOperationType",
    "RecordsCommit",
    "RecordsState",
    "SnapshotSyncSummary",
    "StorageSource",
    "MigrationMode",
    "PaymentEvent",
]
