"""Applying patch batches and building full-replace snapshots."""

from collections.abc import Callable, Iterable

from client_payments.domain.entities import ClientRecord, PatchOperation, PatchOperationType
from client_payments.domain.entities.client_record import CREATED_AT_FIELD


def index_by_id(records: Iterable[ClientRecord]) -> dict[str, ClientRecord]:
    """Map non-empty ids to records; later duplicates win."""
    return {record["id"]: record for record in records if record.get("id")}


def apply_patch_operations(
    current: list[ClientRecord],
    operations: list[PatchOperation],
    *,
    now_iso: str,
) -> list[ClientRecord]:
    """Apply an ordered batch of upserts and deletes to a copy of ``current``.

    Upserts merge onto the stored record with the same id (new ids are
    appended), so a supplied ``createdAt`` replaces the stored one and an
    omitted one is kept; deleting an unknown id is a no-op. Records that
    end up without ``createdAt`` are stamped with ``now_iso``.
    """
    records = [dict(record) for record in current]
    positions = {record["id"]: pos for pos, record in enumerate(records) if record.get("id")}

    for operation in operations:
        if operation.type is PatchOperationType.DELETE:
            position = positions.get(operation.id)
            if position is None:
                continue
            del records[position]
            positions = {record["id"]: pos for pos, record in enumerate(records) if record.get("id")}
            continue

        position = positions.get(operation.id)
        existing = records[position] if position is not None else {}
        merged = {**existing, **(operation.record or {}), "id": operation.id}
        if not merged.get(CREATED_AT_FIELD):
            merged[CREATED_AT_FIELD] = existing.get(CREATED_AT_FIELD) or now_iso

        if position is None:
            records.append(merged)
            positions[operation.id] = len(records) - 1
        else:
            records[position] = merged

    return records


def carry_created_at(
    incoming: list[ClientRecord],
    stored: list[ClientRecord],
) -> list[ClientRecord]:
    """Copy ``createdAt`` from stored records onto incoming ones that omit it."""
    stored_by_id = index_by_id(stored)
    result: list[ClientRecord] = []
    for record in incoming:
        copy = dict(record)
        previous = stored_by_id.get(copy.get("id", ""))
        if previous and previous.get(CREATED_AT_FIELD) and not copy.get(CREATED_AT_FIELD):
            copy[CREATED_AT_FIELD] = previous[CREATED_AT_FIELD]
        result.append(copy)
    return result


def assign_missing_ids(
    records: list[ClientRecord],
    id_factory: Callable[[], str],
) -> list[ClientRecord]:
    """Give every record without an id a fresh server-assigned one."""
    result: list[ClientRecord] = []
    for record in records:
        if record.get("id"):
            result.append(record)
        else:
            result.append({**record, "id": id_factory()})
    return result
