"""Page flows for the event submission site: ownership on load, submission, editing."""
import asyncio
import json
import logging
import os
from dataclasses import dataclass
from datetime import datetime
from typing import Callable, List, Mapping, Optional, Tuple

import requests

from feed.events_feed import EventsFeedClient
from ownership.consent import ConsentGate, ConsentPrompt, ConsentStore
from ownership.edit_links import EditLinkAnnotator
from ownership.ledger import OwnershipLedger
from processor.clock import DateLike
from processor.editing import check_edit_access
from processor.models import EditAccess, FeedResult, SubmissionOutcome, SubmissionState
from processor.validation import FormValidator
from submission.orchestrator import SubmissionOrchestrator

# Attributes present on every LogRecord; anything else came in via extra=
_RECORD_ATTRS = set(vars(logging.makeLogRecord({}))) | {'message', 'asctime'}


class JsonFormatter(logging.Formatter):
    """Custom JSON formatter for structured logging."""

    def format(self, record: logging.LogRecord) -> str:
        """Format log record as JSON, including extra= fields."""
        log_data = {
            'timestamp': self.formatTime(record),
            'level': record.levelname,
            'message': record.getMessage(),
            'logger': record.name
        }

        for key, value in vars(record).items():
            if key not in _RECORD_ATTRS and key not in log_data:
                log_data[key] = value

        if record.exc_info:
            log_data['exception'] = self.formatException(record.exc_info)

        return json.dumps(log_data, default=str, ensure_ascii=False)


def setup_logging(log_level: str = 'INFO') -> None:
    """
    Configure logging with JSON formatter.

    Args:
        log_level: Logging level (DEBUG, INFO, WARNING, ERROR)
    """
    root_logger = logging.getLogger()

    for handler in root_logger.handlers[:]:
        root_logger.removeHandler(handler)

    handler = logging.StreamHandler()
    handler.setFormatter(JsonFormatter())
    root_logger.addHandler(handler)

    root_logger.setLevel(getattr(logging, log_level.upper(), logging.INFO))


logger = logging.getLogger(__name__)


@dataclass
class Settings:
    """Site configuration injected at build/deploy time."""
    site_url: str = 'http://localhost:3000'
    api_url: str = '/add-event'
    edit_api_url: str = '/edit-event'
    cookie_domain: str = ''
    owner_name: str = ''
    log_level: str = 'INFO'
    timeout_seconds: int = 30


def load_settings(environ: Optional[Mapping[str, str]] = None) -> Settings:
    """
    Read configuration from environment variables.

    Args:
        environ: Environment mapping (default: os.environ)

    Returns:
        Settings with defaults for unset variables
    """
    environ = os.environ if environ is None else environ
    return Settings(
        site_url=environ.get('SITE_URL', 'http://localhost:3000'),
        api_url=environ.get('API_URL', '/add-event'),
        edit_api_url=environ.get('EDIT_API_URL', '/edit-event'),
        cookie_domain=environ.get('COOKIE_DOMAIN', '').strip(),
        owner_name=environ.get('OWNER_NAME', ''),
        log_level=environ.get('LOG_LEVEL', 'INFO'),
        timeout_seconds=int(environ.get('TIMEOUT_SECONDS', '30'))
    )


class Browser:
    """
    One visitor's browser: cookie jar, consent storage and HTTP session.

    Everything that persists between page loads hangs off this object, so
    page flows receive it explicitly instead of reading globals.
    """

    def __init__(
        self,
        settings: Settings,
        session: Optional[requests.Session] = None,
        consent_storage: Optional[dict] = None
    ):
        self.settings = settings
        self.session = session or requests.Session()
        self.consent = ConsentStore(consent_storage)
        self.ledger = OwnershipLedger(
            self.session.cookies,
            consent=self.consent,
            domain=settings.cookie_domain
        )
        self.feed = EventsFeedClient(
            settings.site_url,
            timeout=settings.timeout_seconds,
            session=self.session
        )


async def load_ownership(browser: Browser, today: DateLike = None) -> List[str]:
    """
    Page-load ownership pass: read, reconcile against the dataset, persist.

    If the dataset cannot be fetched the unreconciled ids are returned and
    the cookie is left untouched.

    Args:
        browser: Visitor's browser
        today: Override for the current date

    Returns:
        Ids the visitor currently owns
    """
    read = browser.ledger.read()
    if read.degraded:
        logger.warning(f"Ownership cookie unreadable: {read.reason}")
    if not read.ids:
        return []

    feed = await asyncio.to_thread(browser.feed.fetch_events)
    if feed.degraded:
        logger.warning(
            "Canonical dataset unavailable, using unreconciled ownership",
            extra={'reason': feed.reason, 'owned': len(read.ids)}
        )
        return read.ids

    active = browser.ledger.reconcile(read.ids, feed.events, today)
    browser.ledger.write(active)
    logger.info(
        "Ownership reconciled",
        extra={'owned_before': len(read.ids), 'owned_after': len(active)}
    )
    return active


async def annotate_page(browser: Browser, html: str, today: DateLike = None) -> str:
    """
    Add edit links for the visitor's events to a rendered page.

    Args:
        browser: Visitor's browser
        html: Rendered page HTML
        today: Override for the current date

    Returns:
        Annotated HTML
    """
    owned = await load_ownership(browser, today)
    annotator = EditLinkAnnotator(html)
    annotator.annotate(owned, today)
    return annotator.render()


def build_submission(
    browser: Browser,
    prompt: Optional[ConsentPrompt] = None,
    clock: Callable[[], datetime] = datetime.now
) -> SubmissionOrchestrator:
    """
    Wire up the add-event form.

    Args:
        browser: Visitor's browser
        prompt: Shows the consent prompt; resolves True on accept
        clock: Wall-clock source for validation

    Returns:
        SubmissionOrchestrator for a new event
    """
    settings = browser.settings
    return SubmissionOrchestrator(
        browser.session,
        FormValidator(clock=clock),
        base_url=settings.site_url,
        endpoint=settings.api_url,
        consent_gate=ConsentGate(browser.consent, prompt),
        owner_name=settings.owner_name,
        timeout=settings.timeout_seconds
    )


async def open_edit_form(
    browser: Browser,
    event_id: str,
    clock: Callable[[], datetime] = datetime.now,
    today: DateLike = None
) -> Tuple[EditAccess, Optional[SubmissionOrchestrator]]:
    """
    Wire up the edit form for an owned event.

    Args:
        browser: Visitor's browser
        event_id: Id from the edit page URL
        clock: Wall-clock source for validation
        today: Override for the current date

    Returns:
        Tuple of (EditAccess, SubmissionOrchestrator or None when denied)
    """
    owned = browser.ledger.read().ids
    feed = FeedResult(events={})
    if event_id in owned:
        feed = await asyncio.to_thread(browser.feed.fetch_events)

    access = check_edit_access(event_id, owned, feed, today)
    if not access.allowed:
        logger.info(f"Edit form unavailable: {access.reason}")
        return access, None

    validator = FormValidator(clock=clock)
    event = access.event
    validator.update({
        'title': event.title,
        'date': event.date,
        'start': event.start,
        'end': event.end,
        'location': event.location,
        'responsible': event.responsible,
        'description': event.description,
        'link': event.link,
    })

    settings = browser.settings
    orchestrator = SubmissionOrchestrator(
        browser.session,
        validator,
        base_url=settings.site_url,
        endpoint=settings.edit_api_url,
        owner_name=settings.owner_name,
        event_id=event_id,
        timeout=settings.timeout_seconds
    )
    return access, orchestrator


def record_submission(browser: Browser, outcome: SubmissionOutcome) -> List[str]:
    """
    Pick up the new event id after a successful submission.

    The server normally sets the ownership cookie itself; this re-reads it
    and, with consent, makes sure the id returned in the response is present.

    Args:
        browser: Visitor's browser
        outcome: Result of the submission

    Returns:
        Ids owned after the submission
    """
    ids = browser.ledger.read().ids
    if outcome.state is not SubmissionState.SUCCEEDED or not outcome.event_id:
        return ids
    if not browser.consent.granted:
        return ids

    merged = browser.ledger.merge(ids, outcome.event_id)
    if merged != ids:
        browser.ledger.write(merged)
        logger.info(f"Recorded ownership of {outcome.event_id}")
    return merged


def bootstrap(environ: Optional[Mapping[str, str]] = None) -> Browser:
    """
    Load configuration, set up logging and open a browser session.

    Args:
        environ: Environment mapping (default: os.environ)

    Returns:
        Browser ready for the page flows
    """
    settings = load_settings(environ)
    setup_logging(settings.log_level)
    logger.info(
        "Client started",
        extra={
            'site_url': settings.site_url,
            'api_url': settings.api_url,
            'cookie_domain': settings.cookie_domain or None
        }
    )
    return Browser(settings)
