"""Money parsing and formatting on integer cents.

Amounts are carried as integer cents so that sums and differences of
payment slots stay exact; the textual form is ``$1,234.56``.
"""

import re
from decimal import ROUND_HALF_UP, Decimal, InvalidOperation

# Largest integer a JSON number can carry exactly; amounts beyond it are invalid.
MAX_SAFE_INTEGER = 2**53 - 1

_DASHES = re.compile("[−–—]")
_PARENTHESISED = re.compile(r"\(([^)]+)\)")
_NOT_NUMERIC = re.compile(r"[^0-9.\-]")
_AMOUNT = re.compile(r"^-?\d+(?:\.\d{1,2})?$")
_CENT = Decimal("0.01")


class InvalidAmount(ValueError):
    """Raised when a money string cannot be read as an amount."""


class AmountTooLarge(InvalidAmount):
    """Raised when an amount exceeds the configured absolute ceiling."""


def _clean(raw: str) -> str:
    value = _DASHES.sub("-", raw)
    value = _PARENTHESISED.sub(r"-\1", value)
    return _NOT_NUMERIC.sub("", value)


def parse_cents(raw: str | None, *, max_absolute_cents: int | None = None) -> int | None:
    """Parse a money string to integer cents.

    Returns ``None`` for blank input. Currency symbols and grouping are
    ignored; unicode dashes and accounting parentheses mean negative.
    """
    value = (raw or "").strip()
    if not value:
        return None

    normalized = _clean(value)
    if not _AMOUNT.match(normalized):
        raise InvalidAmount(value)

    try:
        cents = int((Decimal(normalized) / _CENT).quantize(Decimal(1), rounding=ROUND_HALF_UP))
    except InvalidOperation as exc:
        raise InvalidAmount(value) from exc

    if abs(cents) > MAX_SAFE_INTEGER:
        raise InvalidAmount(value)
    if max_absolute_cents is not None and abs(cents) > max_absolute_cents:
        raise AmountTooLarge(value)
    return cents


def parse_cents_lenient(raw: str | None) -> int | None:
    """Like :func:`parse_cents` but returns ``None`` for unreadable input."""
    try:
        return parse_cents(raw)
    except InvalidAmount:
        return None


def format_cents(cents: int) -> str:
    """Format cents as ``$1,234.56`` (``-$5.00`` for negatives)."""
    sign = "-" if cents < 0 else ""
    dollars, remainder = divmod(abs(cents), 100)
    return f"{sign}${dollars:,}.{remainder:02d}"
