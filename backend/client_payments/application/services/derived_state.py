"""Derived-state engine: recomputes the computed money and date fields of a record.

Pure functions only: the input mapping is never mutated and the same input
always yields the same output for a fixed ``today``.
"""

from datetime import date

from client_payments.domain.dates import format_record_date, parse_record_date
from client_payments.domain.entities import PAYMENT_DATE_FIELDS, PAYMENT_FIELDS, ClientRecord
from client_payments.domain.entities.client_record import (
    AFTER_RESULT_FIELD,
    CHECKBOX_YES,
    CONTRACT_TOTALS_FIELD,
    DATE_WHEN_FULLY_PAID_FIELD,
    DATE_WHEN_WRITTEN_OFF_FIELD,
    FUTURE_PAYMENTS_FIELD,
    TOTAL_PAYMENTS_FIELD,
    WRITTEN_OFF_FIELD,
)
from client_payments.domain.money import format_cents, parse_cents_lenient

# Balance at or below this many cents counts as paid off.
PAID_OFF_TOLERANCE_CENTS = 0


def is_written_off(record: ClientRecord) -> bool:
    return (record.get(WRITTEN_OFF_FIELD) or "").strip() == CHECKBOX_YES


def total_payment_cents(record: ClientRecord) -> int | None:
    """Sum of present payment slots in cents, ``None`` when no slot holds an amount."""
    amounts = [parse_cents_lenient(record.get(name)) for name in PAYMENT_FIELDS]
    present = [cents for cents in amounts if cents is not None]
    return sum(present) if present else None


def latest_payment_date(record: ClientRecord) -> date | None:
    dates = [parse_record_date(record.get(name)) for name in PAYMENT_DATE_FIELDS]
    present = [value for value in dates if value is not None]
    return max(present) if present else None


def future_payment_cents(record: ClientRecord) -> int | None:
    """Signed remaining balance; zero when written off, ``None`` without a contract."""
    if is_written_off(record):
        return 0
    contract = parse_cents_lenient(record.get(CONTRACT_TOTALS_FIELD))
    if contract is None:
        return None
    return contract - (total_payment_cents(record) or 0)


def display_future_payments(record: ClientRecord) -> str:
    """Balance for display, clamped at zero."""
    cents = future_payment_cents(record)
    return "" if cents is None else format_cents(max(cents, 0))


def _fully_paid_date(
    record: ClientRecord,
    previous: ClientRecord | None,
    contract: int | None,
    total: int | None,
) -> str:
    latest = latest_payment_date(record)
    if latest is None:
        return ""

    if contract is not None:
        balance = contract - (total or 0)
        if balance > PAID_OFF_TOLERANCE_CENTS:
            return ""
        return format_record_date(latest)

    previous_value = (previous or {}).get(DATE_WHEN_FULLY_PAID_FIELD, "")
    if previous_value:
        return previous_value
    return record.get(DATE_WHEN_FULLY_PAID_FIELD, "")


def derive_state(
    record: ClientRecord,
    previous: ClientRecord | None = None,
    *,
    today: date | None = None,
) -> ClientRecord:
    """Return a copy of ``record`` with every derived field recomputed.

    Args:
        record: The record as it will be committed.
        previous: The stored record with the same id, if any.
        today: Local date used to default ``dateWhenWrittenOff``.
    """
    derived = dict(record)
    total = total_payment_cents(derived)
    contract = parse_cents_lenient(derived.get(CONTRACT_TOTALS_FIELD))
    written_off = is_written_off(derived)

    if total is None:
        derived.pop(TOTAL_PAYMENTS_FIELD, None)
    else:
        derived[TOTAL_PAYMENTS_FIELD] = format_cents(total)

    if written_off:
        derived[FUTURE_PAYMENTS_FIELD] = format_cents(0)
        if derived.get(AFTER_RESULT_FIELD):
            derived[AFTER_RESULT_FIELD] = ""
        if not (derived.get(DATE_WHEN_WRITTEN_OFF_FIELD) or "").strip():
            derived[DATE_WHEN_WRITTEN_OFF_FIELD] = format_record_date(today or date.today())
    elif contract is not None:
        derived[FUTURE_PAYMENTS_FIELD] = format_cents(contract - (total or 0))
    else:
        derived.pop(FUTURE_PAYMENTS_FIELD, None)

    fully_paid = _fully_paid_date(derived, previous, contract, total)
    if fully_paid or DATE_WHEN_FULLY_PAID_FIELD in derived:
        derived[DATE_WHEN_FULLY_PAID_FIELD] = fully_paid

    return derived
