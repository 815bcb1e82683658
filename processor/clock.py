"""Calendar helpers shared by reconciliation, annotation and validation."""
from datetime import date, datetime
from typing import Optional, Union

DateLike = Union[str, date, None]


def today_iso(today: DateLike = None) -> str:
    """
    Resolve "today" as an ISO 8601 calendar date (YYYY-MM-DD).

    Event dates are plain YYYY-MM-DD strings, so comparisons against the
    returned value are lexical.

    Args:
        today: Override for the current date (string or date)

    Returns:
        ISO 8601 date string
    """
    if today is None:
        return date.today().isoformat()
    if isinstance(today, datetime):
        return today.date().isoformat()
    if isinstance(today, date):
        return today.isoformat()
    return str(today)


def is_past(event_date: str, today: DateLike = None) -> bool:
    """Return True if event_date is strictly before today."""
    return event_date < today_iso(today)
