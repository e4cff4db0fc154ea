"""Payment event detector: diffs two snapshots for newly posted payments."""

from client_payments.domain.entities import ClientRecord, PaymentEvent
from client_payments.domain.entities.client_record import PAYMENT_SLOT_COUNT
from client_payments.domain.money import parse_cents_lenient

DEFAULT_PAYMENT_LINK_HREF = "/app/client-payments"


def _text(record: ClientRecord | None, key: str) -> str:
    if not record:
        return ""
    value = record.get(key)
    return "" if value is None else str(value).strip()


def _is_payment_received(previous: ClientRecord | None, current: ClientRecord, slot: int) -> bool:
    amount_key = f"payment{slot}"
    date_key = f"payment{slot}Date"
    amount = _text(current, amount_key)
    paid_on = _text(current, date_key)
    if not amount and not paid_on:
        return False
    if previous is None:
        return True

    previous_amount = _text(previous, amount_key)
    if amount and not previous_amount:
        return True

    amount_cents = parse_cents_lenient(amount)
    if amount and amount_cents is not None:
        previous_cents = parse_cents_lenient(previous_amount)
        if previous_cents is None or amount_cents > previous_cents:
            return True

    return bool(amount and paid_on and not _text(previous, date_key))


def first_received_slot(previous: ClientRecord | None, current: ClientRecord) -> int | None:
    """Lowest slot number holding a newly observed payment, if any."""
    for slot in range(1, PAYMENT_SLOT_COUNT + 1):
        if _is_payment_received(previous, current, slot):
            return slot
    return None


def detect_payment_events(
    previous_records: list[ClientRecord],
    next_records: list[ClientRecord],
    *,
    link_href: str = DEFAULT_PAYMENT_LINK_HREF,
) -> list[PaymentEvent]:
    """Return at most one payment-received event per record of ``next_records``."""
    previous_by_id = {
        _text(record, "id"): record for record in previous_records if _text(record, "id")
    }
    events: list[PaymentEvent] = []

    for record in next_records:
        record_id = _text(record, "id")
        if not record_id:
            continue
        slot = first_received_slot(previous_by_id.get(record_id), record)
        if slot is None:
            continue

        client_name = _text(record, "clientName")
        amount = _text(record, f"payment{slot}")
        paid_on = _text(record, f"payment{slot}Date")

        message = f"Payment {slot} was posted."
        if amount:
            message += f" Amount: {amount}."
        if paid_on:
            message += f" Date: {paid_on}."

        events.append(
            PaymentEvent(
                record_id=record_id,
                client_name=client_name,
                payment_slot=slot,
                payment_amount=amount,
                payment_date=paid_on,
                title=f"Payment received from {client_name}" if client_name else "Payment received",
                message=message,
                link_href=link_href,
            )
        )

    return events
