"""Wall clock access, kept in one place so sweeps and tests agree on "now"."""
from datetime import date, datetime, timezone


def utcnow() -> datetime:
    """Current time as an aware UTC datetime."""
    return datetime.now(timezone.utc)


def utc_today() -> date:
    """Current calendar date in UTC."""
    return utcnow().date()
