"""Field normalizer: turns raw JSON payloads into canonical client records.

All validation happens here, before any storage access. Every failure is a
:class:`RecordsValidationError` carrying a stable ``code`` and an HTTP status.
"""

import logging
import math
from collections.abc import Mapping
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any

from client_payments.domain.dates import format_timestamp, normalize_record_date, parse_timestamp
from client_payments.domain.entities import (
    ALLOWED_FIELDS,
    CHECKBOX_FIELDS,
    DATE_FIELDS,
    MONEY_FIELDS,
    PAYMENT_DATE_FIELDS,
    ClientRecord,
    PatchOperation,
    PatchOperationType,
)
from client_payments.domain.entities.client_record import (
    CHECKBOX_YES,
    CONTRACT_TOTALS_FIELD,
    CREATED_AT_FIELD,
    DATE_WHEN_FULLY_PAID_FIELD,
    FUTURE_PAYMENTS_FIELD,
)
from client_payments.domain.exceptions import PreconditionRequiredError, RecordsValidationError
from client_payments.domain.money import AmountTooLarge, InvalidAmount, parse_cents

logger = logging.getLogger(__name__)

EXPECTED_UPDATED_AT_KEY = "expectedUpdatedAt"
RECORD_ID_MAX_LENGTH = 180

DEFAULT_FIELD_MAX_LENGTH: dict[str, int] = {
    "id": RECORD_ID_MAX_LENGTH,
    "clientName": 300,
    "companyName": 300,
    "closedBy": 220,
    "notes": 8000,
}

_CHECKBOX_TRUE = frozenset({"yes", "true", "1"})
_CHECKBOX_FALSE = frozenset({"", "no", "false", "0"})


@dataclass(frozen=True)
class RecordLimits:
    """Size limits applied to write payloads."""

    max_count: int = 10_000
    max_record_keys: int = 120
    max_record_chars: int = 60_000
    max_total_chars: int = 20_000_000
    default_field_max_length: int = 4000
    field_max_length: dict[str, int] = field(default_factory=lambda: dict(DEFAULT_FIELD_MAX_LENGTH))
    max_patch_operations: int = 500
    money_max_absolute_cents: int = 10_000_000_000


def _checkbox_value(raw: Any, *, record_index: int, field_name: str) -> str:
    if raw is None or raw is False:
        return ""
    if raw is True:
        return CHECKBOX_YES
    if isinstance(raw, (int, float)) and raw in (0, 1):
        return CHECKBOX_YES if raw == 1 else ""
    if isinstance(raw, str):
        normalized = raw.strip().lower()
        if normalized in _CHECKBOX_TRUE:
            return CHECKBOX_YES
        if normalized in _CHECKBOX_FALSE:
            return ""
    raise RecordsValidationError(
        f'Record at index {record_index} has invalid checkbox value for "{field_name}".',
        "records_payload_invalid_checkbox",
    )


def _text_value(raw: Any) -> str | None:
    """Scalar to trimmed text; ``None`` when the type is not acceptable."""
    if raw is None:
        return ""
    if isinstance(raw, str):
        return raw.strip()
    if isinstance(raw, bool):
        return None
    if isinstance(raw, int):
        return str(raw)
    if isinstance(raw, float) and math.isfinite(raw):
        return str(int(raw)) if raw.is_integer() else repr(raw)
    return None


def _scalar_text(raw: Any, max_length: int) -> str:
    if isinstance(raw, str):
        return raw.strip()[:max_length]
    if isinstance(raw, int) and not isinstance(raw, bool):
        return str(raw)[:max_length]
    return ""


class RecordNormalizer:
    """Validates and canonicalises record batches, patch batches and preconditions."""

    def __init__(self, limits: RecordLimits | None = None):
        self._limits = limits or RecordLimits()

    @property
    def limits(self) -> RecordLimits:
        return self._limits

    # ── Full record batches ─────────────────────────────────────────

    def normalize_records(self, raw: Any) -> list[ClientRecord]:
        limits = self._limits
        if not isinstance(raw, list):
            raise RecordsValidationError("Payload must include `records` as an array.")
        if len(raw) > limits.max_count:
            raise RecordsValidationError(
                f"Records payload is too large. Maximum allowed records: {limits.max_count}.",
                "records_payload_too_many_items",
                413,
            )

        total_chars = 0
        seen_ids: set[str] = set()
        records: list[ClientRecord] = []

        for index, raw_record in enumerate(raw):
            if not isinstance(raw_record, Mapping):
                raise RecordsValidationError(
                    f"Record at index {index} must be an object.",
                    "records_payload_invalid_record",
                )
            if len(raw_record) > limits.max_record_keys:
                raise RecordsValidationError(
                    f"Record at index {index} contains too many fields.",
                    "records_payload_record_too_wide",
                    413,
                )

            record: ClientRecord = {}
            record_chars = 0
            for field_name, raw_value in raw_record.items():
                value = self._normalize_field(index, field_name, raw_value)

                record_chars += len(value) + len(field_name)
                if record_chars > limits.max_record_chars:
                    raise RecordsValidationError(
                        f"Record at index {index} is too large.",
                        "records_payload_record_too_large",
                        413,
                    )
                total_chars += len(value) + len(field_name)
                if total_chars > limits.max_total_chars:
                    raise RecordsValidationError(
                        "Records payload is too large.",
                        "records_payload_too_large",
                        413,
                    )
                record[field_name] = value

            record_id = record.get("id", "")
            if record_id:
                if record_id in seen_ids:
                    raise RecordsValidationError(
                        f'Record at index {index} has duplicate id "{record_id}".',
                        "records_payload_duplicate_id",
                    )
                seen_ids.add(record_id)

            self._validate_money(index, record)
            records.append(record)

        logger.debug("Normalized %d records (%d chars)", len(records), total_chars)
        return records

    def _normalize_field(self, index: int, field_name: Any, raw_value: Any) -> str:
        if field_name not in ALLOWED_FIELDS:
            raise RecordsValidationError(
                f'Record at index {index} contains unsupported field "{field_name}".',
                "records_payload_unknown_field",
            )

        if field_name in CHECKBOX_FIELDS:
            value = _checkbox_value(raw_value, record_index=index, field_name=field_name)
        else:
            text = _text_value(raw_value)
            if text is None:
                raise RecordsValidationError(
                    f'Record at index {index} has invalid type for "{field_name}".',
                    "records_payload_invalid_field_type",
                )
            value = text

        max_length = self._limits.field_max_length.get(
            field_name, self._limits.default_field_max_length
        )
        if len(value) > max_length:
            raise RecordsValidationError(
                f'Record at index {index} exceeds allowed length for "{field_name}".',
                "records_payload_field_too_long",
                413,
            )

        if field_name == CREATED_AT_FIELD and value:
            parsed = parse_timestamp(value)
            if parsed is None:
                raise RecordsValidationError(
                    f"Record at index {index} has invalid createdAt value.",
                    "records_payload_invalid_created_at",
                )
            value = format_timestamp(parsed)

        if field_name in DATE_FIELDS and value:
            normalized_date = normalize_record_date(value)
            if normalized_date is None:
                raise RecordsValidationError(
                    f'Record at index {index} has invalid date in "{field_name}". Use MM/DD/YYYY.',
                    "records_payload_invalid_date",
                )
            value = normalized_date

        return value

    def _validate_money(self, index: int, record: ClientRecord) -> None:
        contract_cents: int | None = None
        for field_name in sorted(MONEY_FIELDS & record.keys()):
            try:
                cents = parse_cents(
                    record[field_name],
                    max_absolute_cents=self._limits.money_max_absolute_cents,
                )
            except AmountTooLarge:
                raise RecordsValidationError(
                    f'Record at index {index} exceeds allowed amount range in "{field_name}".',
                    "records_payload_amount_too_large",
                ) from None
            except InvalidAmount:
                raise RecordsValidationError(
                    f'Record at index {index} has invalid amount in "{field_name}".',
                    "records_payload_invalid_amount",
                ) from None

            if cents is not None and cents < 0 and field_name != FUTURE_PAYMENTS_FIELD:
                raise RecordsValidationError(
                    f'Record at index {index} has negative amount in "{field_name}".',
                    "records_payload_negative_amount",
                )
            if field_name == CONTRACT_TOTALS_FIELD:
                contract_cents = cents

        if record.get(DATE_WHEN_FULLY_PAID_FIELD):
            has_payment_date = any(record.get(name) for name in PAYMENT_DATE_FIELDS)
            if not has_payment_date and contract_cents is not None and contract_cents > 0:
                raise RecordsValidationError(
                    f'Record at index {index} cannot include "{DATE_WHEN_FULLY_PAID_FIELD}" without payment dates.',
                    "records_payload_invalid_fully_paid_date",
                )

    # ── Patch batches ───────────────────────────────────────────────

    def normalize_patch(self, payload: Any) -> list[PatchOperation]:
        if not isinstance(payload, Mapping):
            raise RecordsValidationError("Payload must be an object.", "invalid_records_patch_payload")

        operations = payload.get("operations")
        if not isinstance(operations, list):
            raise RecordsValidationError(
                "Payload must include `operations` as an array.",
                "invalid_records_patch_payload",
            )
        if len(operations) > self._limits.max_patch_operations:
            raise RecordsValidationError(
                "Patch payload is too large. Maximum allowed operations: "
                f"{self._limits.max_patch_operations}.",
                "records_patch_too_many_operations",
                413,
            )

        normalized: list[PatchOperation] = []
        seen_ids: set[str] = set()
        for index, operation in enumerate(operations):
            if not isinstance(operation, Mapping):
                raise RecordsValidationError(
                    f"Operation at index {index} must be an object.",
                    "records_patch_invalid_operation",
                )

            raw_type = operation.get("type") or operation.get("op")
            type_text = _scalar_text(raw_type, 40).lower()
            try:
                operation_type = PatchOperationType(type_text)
            except ValueError:
                raise RecordsValidationError(
                    f"Operation at index {index} has invalid type. Allowed values: upsert, delete.",
                    "records_patch_invalid_operation_type",
                ) from None

            operation_id = _scalar_text(operation.get("id"), RECORD_ID_MAX_LENGTH)
            if not operation_id:
                raise RecordsValidationError(
                    f"Operation at index {index} must include `id`.",
                    "records_patch_missing_id",
                )
            if operation_id in seen_ids:
                raise RecordsValidationError(
                    f'Operation at index {index} repeats id "{operation_id}" in the same request.',
                    "records_patch_duplicate_operation_id",
                )
            seen_ids.add(operation_id)

            if operation_type is PatchOperationType.DELETE:
                normalized.append(PatchOperation(type=operation_type, id=operation_id))
                continue

            raw_record = operation.get("record")
            if not isinstance(raw_record, Mapping):
                raise RecordsValidationError(
                    f"Operation at index {index} must include `record` object for upsert.",
                    "records_patch_invalid_record",
                )
            try:
                record = self.normalize_records([raw_record])[0]
            except RecordsValidationError as exc:
                raise RecordsValidationError(
                    f"Operation at index {index}: {exc.message}",
                    exc.code,
                    exc.http_status,
                ) from exc

            record_id = record.get("id", "")
            if record_id and record_id != operation_id:
                raise RecordsValidationError(
                    f"Operation at index {index} has mismatched record id.",
                    "records_patch_id_mismatch",
                )
            record["id"] = operation_id
            normalized.append(PatchOperation(type=operation_type, id=operation_id, record=record))

        return normalized

    # ── Preconditions ───────────────────────────────────────────────

    @staticmethod
    def parse_expected_updated_at(body: Any) -> datetime | None:
        """Read the ``expectedUpdatedAt`` precondition from a write body.

        ``None`` means the caller expects the collection not to exist yet.
        """
        if not isinstance(body, Mapping) or EXPECTED_UPDATED_AT_KEY not in body:
            raise PreconditionRequiredError()

        raw = body[EXPECTED_UPDATED_AT_KEY]
        if raw is None:
            return None
        if not isinstance(raw, str):
            raise RecordsValidationError(
                "`expectedUpdatedAt` must be an ISO datetime string or null.",
                "invalid_expected_updated_at",
            )
        if not raw.strip():
            return None

        parsed = parse_timestamp(raw)
        if parsed is None:
            raise RecordsValidationError(
                "`expectedUpdatedAt` must be an ISO datetime string or null.",
                "invalid_expected_updated_at",
            )
        return parsed
