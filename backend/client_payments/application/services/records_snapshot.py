"""Snapshot tools for the v2 row-per-record representation.

Records are hashed over a canonical JSON form (sorted keys, compact
separators) so legacy and v2 copies can be compared row by row.
"""

import hashlib
import json
from dataclasses import dataclass, field
from datetime import datetime

from client_payments.domain.dates import parse_timestamp
from client_payments.domain.entities import ClientRecord, ClientRecordRow


CLIENT_NAME_MAX_LENGTH = 300
COMPANY_NAME_MAX_LENGTH = 300
CLOSED_BY_MAX_LENGTH = 220
ID_MAX_LENGTH = 180


def stable_stringify(record: ClientRecord) -> str:
    return json.dumps(record, sort_keys=True, separators=(",", ":"), ensure_ascii=False)


def compute_record_hash(record: ClientRecord) -> str:
    return hashlib.sha256(stable_stringify(record).encode("utf-8")).hexdigest()


def compute_rows_checksum(rows: list[ClientRecordRow]) -> str:
    """Order-independent checksum over ``id:record_hash`` lines."""
    digest = hashlib.sha256()
    for row in sorted(rows, key=lambda item: item.id):
        if not row.id:
            continue
        digest.update(f"{row.id}:{row.record_hash}\n".encode("utf-8"))
    return digest.hexdigest()


def build_row(record: ClientRecord, position: int) -> ClientRecordRow | None:
    """Lay a record out as a v2 row. Records without an id have no row."""
    record_id = (record.get("id") or "").strip()[:ID_MAX_LENGTH]
    if not record_id:
        return None
    stored = {**record, "id": record_id}
    created_at: datetime | None = parse_timestamp(stored.get("createdAt", ""))
    return ClientRecordRow(
        id=record_id,
        position=position,
        record=stored,
        record_hash=compute_record_hash(stored),
        client_name=(stored.get("clientName") or "")[:CLIENT_NAME_MAX_LENGTH],
        company_name=(stored.get("companyName") or "")[:COMPANY_NAME_MAX_LENGTH],
        closed_by=(stored.get("closedBy") or "")[:CLOSED_BY_MAX_LENGTH],
        created_at=created_at,
    )


def build_rows(records: list[ClientRecord]) -> list[ClientRecordRow]:
    rows: list[ClientRecordRow] = []
    for position, record in enumerate(records):
        row = build_row(record, position)
        if row is not None:
            rows.append(row)
    return rows


@dataclass
class SnapshotComparison:
    """Result of comparing the legacy blob against the v2 rows."""

    legacy_count: int
    v2_count: int
    missing_in_v2: list[str] = field(default_factory=list)
    extra_in_v2: list[str] = field(default_factory=list)
    hash_mismatches: list[str] = field(default_factory=list)
    legacy_checksum: str = ""
    v2_checksum: str = ""

    @property
    def matches(self) -> bool:
        return (
            not self.missing_in_v2
            and not self.extra_in_v2
            and not self.hash_mismatches
            and self.legacy_count == self.v2_count
        )


def compare_snapshots(
    legacy_records: list[ClientRecord],
    v2_rows: list[ClientRecordRow],
    *,
    sample_size: int = 20,
) -> SnapshotComparison:
    """Diff legacy records against v2 rows by id and record hash.

    Id lists in the result are truncated to ``sample_size`` entries.
    """
    legacy_rows = {row.id: row for row in build_rows(legacy_records)}
    v2_by_id = {row.id: row for row in v2_rows}

    missing = sorted(set(legacy_rows) - set(v2_by_id))
    extra = sorted(set(v2_by_id) - set(legacy_rows))
    mismatched = sorted(
        record_id
        for record_id in set(legacy_rows) & set(v2_by_id)
        if legacy_rows[record_id].record_hash != v2_by_id[record_id].record_hash
    )

    return SnapshotComparison(
        legacy_count=len(legacy_rows),
        v2_count=len(v2_by_id),
        missing_in_v2=missing[:sample_size],
        extra_in_v2=extra[:sample_size],
        hash_mismatches=mismatched[:sample_size],
        legacy_checksum=compute_rows_checksum(list(legacy_rows.values())),
        v2_checksum=compute_rows_checksum(v2_rows),
    )
