"""Domain entities for the client payment records collection."""

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum

# A client record is a flat mapping of allow-listed field name -> text value.
ClientRecord = dict[str, str]

PAYMENT_SLOT_COUNT = 7

PAYMENT_FIELDS: tuple[str, ...] = tuple(
    f"payment{slot}" for slot in range(1, PAYMENT_SLOT_COUNT + 1)
)
PAYMENT_DATE_FIELDS: tuple[str, ...] = tuple(
    f"payment{slot}Date" for slot in range(1, PAYMENT_SLOT_COUNT + 1)
)

CONTRACT_TOTALS_FIELD = "contractTotals"
TOTAL_PAYMENTS_FIELD = "totalPayments"
FUTURE_PAYMENTS_FIELD = "futurePayments"
DATE_WHEN_FULLY_PAID_FIELD = "dateWhenFullyPaid"
DATE_WHEN_WRITTEN_OFF_FIELD = "dateWhenWrittenOff"
WRITTEN_OFF_FIELD = "writtenOff"
AFTER_RESULT_FIELD = "afterResult"
CREATED_AT_FIELD = "createdAt"

CHECKBOX_YES = "Yes"

MONEY_FIELDS: frozenset[str] = frozenset({
    CONTRACT_TOTALS_FIELD,
    TOTAL_PAYMENTS_FIELD,
    FUTURE_PAYMENTS_FIELD,
    *PAYMENT_FIELDS,
})

DATE_FIELDS: frozenset[str] = frozenset({
    *PAYMENT_DATE_FIELDS,
    "dateOfCollection",
    DATE_WHEN_FULLY_PAID_FIELD,
    DATE_WHEN_WRITTEN_OFF_FIELD,
})

CHECKBOX_FIELDS: frozenset[str] = frozenset({WRITTEN_OFF_FIELD, AFTER_RESULT_FIELD})

TEXT_FIELDS: frozenset[str] = frozenset({
    "clientName",
    "closedBy",
    "companyName",
    "serviceType",
    "notes",
    "collection",
    "leadSource",
    "ssn",
    "clientPhoneNumber",
    "clientEmailAddress",
    "identityIq",
    "clientManager",
})

ALLOWED_FIELDS: frozenset[str] = frozenset({
    "id",
    CREATED_AT_FIELD,
    *TEXT_FIELDS,
    *MONEY_FIELDS,
    *DATE_FIELDS,
    *CHECKBOX_FIELDS,
})


class StorageSource(str, Enum):
    """Storage representation that served a read."""

    LEGACY = "legacy"
    V2 = "v2"


class PatchOperationType(str, Enum):
    """Kinds of instruction allowed inside a patch batch."""

    UPSERT = "upsert"
    DELETE = "delete"


@dataclass(frozen=True)
class PatchOperation:
    """One upsert-or-delete instruction of an atomic patch batch."""

    type: PatchOperationType
    id: str
    record: ClientRecord | None = None


@dataclass
class RecordsState:
    """A consistent read of the whole collection."""

    records: list[ClientRecord]
    updated_at: datetime | None
    source: StorageSource


@dataclass
class RecordsCommit:
    """Outcome of an accepted write.

    ``previous_records`` is the collection as it stood under the write lock,
    ``records`` what was committed; together they feed payment detection.
    """

    updated_at: datetime | None
    records: list[ClientRecord]
    previous_records: list[ClientRecord] = field(default_factory=list)
    applied_operations: int = 0


@dataclass
class LegacyRecordsState:
    """Contents of the single-row legacy blob (records + revision stamp)."""

    records: list[ClientRecord]
    updated_at: datetime | None


@dataclass
class ClientRecordRow:
    """A record laid out as one row of the v2 representation."""

    id: str
    position: int
    record: ClientRecord
    record_hash: str
    client_name: str = ""
    company_name: str = ""
    closed_by: str = ""
    created_at: datetime | None = None


@dataclass
class SnapshotSyncSummary:
    """Counters reported by a v2 snapshot sync."""

    expected_count: int
    upserted_count: int = 0
    deleted_count: int = 0
    v2_count: int = 0
    checksum: str = ""

    @property
    def in_sync(self) -> bool:
        return self.expected_count == self.v2_count
