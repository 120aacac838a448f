"""Clock helpers. All stored timestamps are naive UTC to match the DB columns."""

from datetime import date, datetime, timezone


def utcnow() -> datetime:
    """Current time as a naive UTC datetime."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


def today() -> date:
    """Current UTC calendar date."""
    return utcnow().date()
