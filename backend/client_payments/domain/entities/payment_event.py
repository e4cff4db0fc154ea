"""Domain entity for payment-received notifications."""

from dataclasses import dataclass

PAYMENT_RECEIVED_EVENT_TYPE = "client_payment_received"


@dataclass(frozen=True)
class PaymentEvent:
    """A newly observed payment on a client record, ready for a notifier."""

    record_id: str
    client_name: str
    payment_slot: int
    payment_amount: str
    payment_date: str
    title: str
    message: str
    link_href: str
    link_label: str = "Open"
    tone: str = "success"
    type: str = PAYMENT_RECEIVED_EVENT_TYPE
