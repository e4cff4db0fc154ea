"""Calendar-date and timestamp helpers for record fields and version stamps."""

import re
from datetime import date, datetime, timedelta, timezone

MIN_YEAR = 1900
MAX_YEAR = 2100

_ISO_DATE = re.compile(r"^(\d{4})-(\d{2})-(\d{2})$")
_US_DATE = re.compile(r"^(\d{1,2})[/.\-](\d{1,2})[/.\-](\d{2}|\d{4})$")

ONE_MILLISECOND = timedelta(milliseconds=1)


def _build_date(year: int, month: int, day: int) -> date | None:
    if year < MIN_YEAR or year > MAX_YEAR:
        return None
    try:
        return date(year, month, day)
    except ValueError:
        return None


def parse_record_date(raw: str | None) -> date | None:
    """Parse ``MM/DD/YYYY``, ``M/D/YY``, ``M-D-YYYY``, ``M.D.YYYY`` or ``YYYY-MM-DD``.

    Two-digit years are read as 20YY. Returns ``None`` for blank or invalid input.
    """
    value = (raw or "").strip()
    if not value:
        return None

    match = _ISO_DATE.match(value)
    if match:
        year, month, day = (int(part) for part in match.groups())
        return _build_date(year, month, day)

    match = _US_DATE.match(value)
    if match:
        month, day = int(match.group(1)), int(match.group(2))
        year_text = match.group(3)
        year = int(year_text) + (2000 if len(year_text) == 2 else 0)
        return _build_date(year, month, day)

    return None


def format_record_date(value: date) -> str:
    return f"{value.month:02d}/{value.day:02d}/{value.year:04d}"


def normalize_record_date(raw: str | None) -> str | None:
    """Canonical ``MM/DD/YYYY`` form, ``""`` for blank input, ``None`` if invalid."""
    value = (raw or "").strip()
    if not value:
        return ""
    parsed = parse_record_date(value)
    return format_record_date(parsed) if parsed else None


def parse_timestamp(raw: str) -> datetime | None:
    """Parse an ISO-8601 timestamp to an aware UTC datetime.

    A trailing ``Z`` is accepted and naive values are taken as UTC.
    """
    value = (raw or "").strip()
    if not value:
        return None
    if value.endswith(("Z", "z")):
        value = value[:-1] + "+00:00"
    try:
        parsed = datetime.fromisoformat(value)
    except ValueError:
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return truncate_to_millis(parsed.astimezone(timezone.utc))


def truncate_to_millis(value: datetime) -> datetime:
    return value.replace(microsecond=(value.microsecond // 1000) * 1000)


def format_timestamp(value: datetime | None) -> str | None:
    """Serialise as ``YYYY-MM-DDTHH:MM:SS.mmmZ`` in UTC."""
    if value is None:
        return None
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    utc = value.astimezone(timezone.utc)
    return utc.strftime("%Y-%m-%dT%H:%M:%S.") + f"{utc.microsecond // 1000:03d}Z"


def next_revision(now: datetime, previous: datetime | None) -> datetime:
    """Next version stamp: ``max(now, previous + 1ms)`` at millisecond precision."""
    candidate = truncate_to_millis(now.astimezone(timezone.utc))
    if previous is None:
        return candidate
    floor = truncate_to_millis(previous.astimezone(timezone.utc)) + ONE_MILLISECOND
    return max(candidate, floor)


def same_revision(left: datetime | None, right: datetime | None) -> bool:
    """Compare two version stamps at millisecond precision."""
    if left is None or right is None:
        return left is None and right is None
    return truncate_to_millis(left.astimezone(timezone.utc)) == truncate_to_millis(
        right.astimezone(timezone.utc)
    )


def utc_now() -> datetime:
    return datetime.now(timezone.utc)
