"""Client for the canonical events dataset published by the site build."""
import logging
import time
from typing import Dict, Optional

import requests

from processor.models import Event, FeedResult

logger = logging.getLogger(__name__)


class EventsFeedClient:
    """Fetches /events.json and indexes it by event id."""

    EVENTS_PATH = "/events.json"

    def __init__(
        self,
        base_url: str,
        timeout: int = 30,
        max_retries: int = 3,
        session: Optional[requests.Session] = None
    ):
        """
        Initialize the events feed client.

        Args:
            base_url: Site root, e.g. https://sommar.example.com
            timeout: HTTP request timeout in seconds (default: 30)
            max_retries: Attempts before giving up (default: 3)
            session: Shared browser session; a new one is created if omitted
        """
        self.base_url = base_url.rstrip('/')
        self.timeout = timeout
        self.max_retries = max_retries
        self.session = session or requests.Session()

    @property
    def url(self) -> str:
        return self.base_url + self.EVENTS_PATH

    def fetch_events(self) -> FeedResult:
        """
        Fetch the canonical dataset.

        Never raises: an unreachable or malformed dataset yields a degraded
        result so callers can fall back to unreconciled ownership data.

        Returns:
            FeedResult mapping event id to Event
        """
        try:
            response = self._fetch_response()
        except requests.RequestException as e:
            logger.warning(f"Events dataset unavailable: {e}")
            return FeedResult.unavailable(f"request failed: {e}")

        try:
            payload = response.json()
        except ValueError as e:
            logger.warning(f"Events dataset is not valid JSON: {e}")
            return FeedResult.unavailable("invalid json")

        if not isinstance(payload, list):
            logger.warning(
                f"Events dataset has unexpected type {type(payload).__name__}"
            )
            return FeedResult.unavailable("payload is not a list")

        events = self.build_event_map(payload)
        logger.info(f"Loaded {len(events)} events from {self.url}")
        return FeedResult(events=events)

    def _fetch_response(self) -> requests.Response:
        """
        Fetch events.json with retry logic.

        Returns:
            Successful HTTP response

        Raises:
            requests.RequestException: If all retry attempts fail
        """
        base_delay = 1  # seconds

        for attempt in range(self.max_retries):
            try:
                logger.debug(
                    f"Fetching events dataset (attempt {attempt + 1}/{self.max_retries})"
                )
                response = self.session.get(self.url, timeout=self.timeout)
                response.raise_for_status()
                return response

            except requests.RequestException as e:
                if attempt < self.max_retries - 1:
                    delay = base_delay * (2 ** attempt)
                    logger.warning(
                        f"Request failed (attempt {attempt + 1}/{self.max_retries}): {e}. "
                        f"Retrying in {delay} seconds..."
                    )
                    time.sleep(delay)
                else:
                    logger.error(
                        f"All {self.max_retries} retry attempts failed. Last error: {e}"
                    )
                    raise

    @staticmethod
    def build_event_map(records: list) -> Dict[str, Event]:
        """
        Index event records by id.

        Records without an id are skipped; the first record wins on a
        duplicate id.

        Args:
            records: Decoded events.json array

        Returns:
            Dictionary mapping event id to Event
        """
        events = {}
        for item in records:
            event = Event.from_dict(item)
            if event is None:
                continue
            if event.id in events:
                logger.warning(f"Duplicate event id in dataset: {event.id}")
                continue
            events[event.id] = event
        return events
