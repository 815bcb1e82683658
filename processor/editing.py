"""Edit-page access checks and the submission period gate."""
import logging
from datetime import date, timedelta
from typing import Iterable, List, Mapping, Optional

from processor.clock import DateLike, today_iso
from processor.models import EditAccess, Event, FeedResult

logger = logging.getLogger(__name__)

NOT_OWNER_MESSAGE = 'Du har inte rättighet att redigera denna aktivitet.'
NOT_FOUND_MESSAGE = 'Aktiviteten hittades inte i det aktuella schemat.'
PAST_MESSAGE = 'Aktiviteten har redan ägt rum och kan inte redigeras.'
FEED_UNAVAILABLE_MESSAGE = (
    'Kunde inte hämta schemadata. Kontrollera din internetanslutning.'
)
CLOSED_MESSAGE = 'Lägret är avslutat.'

MONTHS = (
    'januari', 'februari', 'mars', 'april', 'maj', 'juni',
    'juli', 'augusti', 'september', 'oktober', 'november', 'december',
)


def check_edit_access(
    event_id: str,
    owned_ids: Iterable[str],
    feed: FeedResult,
    today: DateLike = None
) -> EditAccess:
    """
    Decide whether the edit form may be shown for an event.

    Args:
        event_id: Id from the edit page URL
        owned_ids: Ids from the ownership ledger
        feed: Canonical dataset
        today: Override for the current date

    Returns:
        EditAccess with the event to populate the form, or a reason
    """
    if event_id not in set(owned_ids):
        logger.info(f"Edit of {event_id} denied: not in ownership ledger")
        return EditAccess(allowed=False, reason=NOT_OWNER_MESSAGE)

    if feed.degraded:
        return EditAccess(allowed=False, reason=FEED_UNAVAILABLE_MESSAGE)

    event = feed.events.get(event_id)
    if event is None:
        return EditAccess(allowed=False, reason=NOT_FOUND_MESSAGE)

    if event.date < today_iso(today):
        return EditAccess(allowed=False, event=event, reason=PAST_MESSAGE)

    return EditAccess(allowed=True, event=event)


def editable_events(
    events: Mapping[str, Event],
    owned_ids: Iterable[str],
    today: DateLike = None
) -> List[Event]:
    """
    List the owned events that have not yet taken place.

    Args:
        events: Canonical dataset keyed by id
        owned_ids: Ids from the ownership ledger
        today: Override for the current date

    Returns:
        Events in dataset order
    """
    owned = set(owned_ids)
    today = today_iso(today)
    return [
        event for event_id, event in events.items()
        if event_id in owned and event.date >= today
    ]


def add_one_day(date_str: str) -> str:
    return (date.fromisoformat(date_str) + timedelta(days=1)).isoformat()


def is_outside_editing_period(today: str, opens_for_editing: str, end_date: str) -> bool:
    """
    True when today is outside [opens_for_editing, end_date + 1 day].

    All values are YYYY-MM-DD strings and compared as text.
    """
    return today < opens_for_editing or today > add_one_day(end_date)


def format_swedish_date(date_str: str) -> str:
    """Format 2026-06-01 as '1 juni 2026'."""
    year, month, day = date_str.split('-')
    return f"{int(day)} {MONTHS[int(month) - 1]} {year}"


def gate_message(
    opens_for_editing: Optional[str],
    end_date: Optional[str],
    today: DateLike = None
) -> Optional[str]:
    """
    Message replacing the form outside the submission period.

    Args:
        opens_for_editing: First day the form is open
        end_date: Last day of the camp
        today: Override for the current date

    Returns:
        Message to show, or None if the form is open
    """
    if not opens_for_editing or not end_date:
        return None

    today = today_iso(today)
    if not is_outside_editing_period(today, opens_for_editing, end_date):
        return None

    if today < opens_for_editing:
        return f"Formuläret öppnar den {format_swedish_date(opens_for_editing)}."
    return CLOSED_MESSAGE
