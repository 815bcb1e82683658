"""Ownership ledger stored in the sb_session cookie."""
import json
import logging
import time
from typing import Iterable, List, Mapping, Optional
from urllib.parse import quote, unquote

from requests.cookies import RequestsCookieJar

from ownership.consent import ConsentStore
from processor.clock import DateLike, today_iso
from processor.models import Event, LedgerRead

logger = logging.getLogger(__name__)

# Characters left unescaped by a browser's encodeURIComponent
_URI_COMPONENT_SAFE = "-_.!~*'()"


class OwnershipLedger:
    """
    Ordered set of event ids this browser has submitted and may edit.

    The ledger is the only writer of the ownership cookie. The server sets the
    same cookie after a successful submission, so the configured domain must
    match the one the server uses.
    """

    COOKIE_NAME = 'sb_session'
    MAX_AGE_SECONDS = 7 * 24 * 60 * 60  # 7 days

    def __init__(
        self,
        cookies: RequestsCookieJar,
        consent: Optional[ConsentStore] = None,
        domain: str = ''
    ):
        """
        Initialize the ledger over a browser cookie jar.

        Args:
            cookies: Cookie jar shared with the browser session
            consent: Consent decision; non-empty writes are refused without it
            domain: Cookie Domain attribute, empty for single-origin sites
        """
        self.cookies = cookies
        self.consent = consent
        self.domain = (domain or '').strip()

    def read(self) -> LedgerRead:
        """
        Decode the ownership cookie.

        Fails soft: a malformed cookie yields an empty, degraded result
        instead of an error.

        Returns:
            LedgerRead with the owned event ids
        """
        raw = self._raw_value()
        if raw is None:
            return LedgerRead(ids=[])

        try:
            parsed = json.loads(unquote(raw))
        except ValueError as e:
            logger.warning(f"Ignoring malformed ownership cookie: {e}")
            return LedgerRead(ids=[], degraded=True, reason="invalid json")

        if not isinstance(parsed, list):
            logger.warning(
                f"Ignoring ownership cookie of type {type(parsed).__name__}"
            )
            return LedgerRead(ids=[], degraded=True, reason="not a list")

        if not all(isinstance(event_id, str) and event_id for event_id in parsed):
            logger.warning("Ignoring ownership cookie with non-string or empty ids")
            return LedgerRead(ids=[], degraded=True, reason="invalid member")

        return LedgerRead(ids=self.normalize(parsed))

    def write(self, ids: Iterable[str]) -> Optional[str]:
        """
        Persist the ledger, replacing any existing ownership cookie.

        An empty ledger deletes the cookie rather than storing an empty
        array.

        Args:
            ids: Event ids to store

        Returns:
            The Set-Cookie string applied, or None if the write was refused
        """
        ids = self.normalize(ids)

        if not ids:
            self._remove_existing()
            logger.info("Ownership ledger empty, cookie deleted")
            return self.cookie_header('', 0)

        if self.consent is not None and not self.consent.granted:
            logger.info("Cookie consent not granted, ownership ledger not written")
            return None

        value = self.encode(ids)
        self._remove_existing()
        self.cookies.set(
            self.COOKIE_NAME,
            value,
            domain=self.domain,
            path='/',
            secure=True,
            expires=int(time.time()) + self.MAX_AGE_SECONDS,
            rest={'SameSite': 'Strict'}
        )
        logger.info(f"Ownership ledger written with {len(ids)} ids")
        return self.cookie_header(value, self.MAX_AGE_SECONDS)

    def clear(self) -> str:
        """Delete the ownership cookie, e.g. after consent is revoked."""
        return self.write([])

    @staticmethod
    def reconcile(
        ids: Iterable[str],
        canonical: Mapping[str, Event],
        today: DateLike = None
    ) -> List[str]:
        """
        Prune ids whose events have already taken place.

        Ids missing from the canonical dataset are kept: the dataset may not
        yet include a freshly submitted event while a deploy is in progress.

        Args:
            ids: Owned event ids
            canonical: Canonical dataset keyed by event id
            today: Override for the current date

        Returns:
            Ids still owned, in their original order
        """
        today = today_iso(today)
        kept = []
        for event_id in OwnershipLedger.normalize(ids):
            event = canonical.get(event_id)
            if event is None or event.date >= today:
                kept.append(event_id)
            else:
                logger.debug(f"Pruning expired event id {event_id} ({event.date})")
        return kept

    @staticmethod
    def merge(ids: Iterable[str], new_id: str) -> List[str]:
        """Append new_id to ids unless already present."""
        return OwnershipLedger.normalize(list(ids) + [new_id])

    @staticmethod
    def normalize(ids: Iterable) -> List[str]:
        """
        Drop non-string and empty members and collapse duplicates.

        Args:
            ids: Candidate ids

        Returns:
            Ordered list of unique non-empty string ids
        """
        seen = []
        for event_id in ids:
            if isinstance(event_id, str) and event_id and event_id not in seen:
                seen.append(event_id)
        return seen

    @staticmethod
    def encode(ids: List[str]) -> str:
        """URL-encode the ids as a compact JSON array."""
        payload = json.dumps(ids, separators=(',', ':'), ensure_ascii=False)
        return quote(payload, safe=_URI_COMPONENT_SAFE)

    def cookie_header(self, value: str, max_age: int) -> str:
        """
        Build the Set-Cookie string for the ownership cookie.

        Args:
            value: Encoded cookie value
            max_age: Lifetime in seconds, 0 to delete

        Returns:
            Cookie string with Path, Max-Age, Secure, SameSite and Domain
        """
        header = (
            f"{self.COOKIE_NAME}={value}; Path=/; Max-Age={max_age}; "
            f"Secure; SameSite=Strict"
        )
        if self.domain:
            header += f"; Domain={self.domain}"
        return header

    def _raw_value(self) -> Optional[str]:
        self.cookies.clear_expired_cookies()
        for cookie in self.cookies:
            if cookie.name == self.COOKIE_NAME:
                return cookie.value or ''
        return None

    def _remove_existing(self) -> None:
        stale = [c for c in self.cookies if c.name == self.COOKIE_NAME]
        for cookie in stale:
            self.cookies.clear(cookie.domain, cookie.path, cookie.name)
