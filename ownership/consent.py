"""Cookie-consent decision for the ownership cookie."""
import logging
from typing import Awaitable, Callable, MutableMapping, Optional

logger = logging.getLogger(__name__)

ConsentPrompt = Callable[[], Awaitable[bool]]


class ConsentStore:
    """
    Persisted consent decision.

    Only acceptance is stored. Declining is not persisted, so the visitor is
    asked again on the next submission and may change their mind.
    """

    STORAGE_KEY = 'sb_cookie_consent'
    ACCEPTED = 'accepted'

    def __init__(self, storage: Optional[MutableMapping[str, str]] = None):
        """
        Args:
            storage: Key/value storage surviving page loads (default: in-memory)
        """
        self.storage = storage if storage is not None else {}

    @property
    def granted(self) -> bool:
        return self.storage.get(self.STORAGE_KEY) == self.ACCEPTED

    def accept(self) -> None:
        self.storage[self.STORAGE_KEY] = self.ACCEPTED
        logger.info("Cookie consent accepted")

    def revoke(self) -> None:
        self.storage.pop(self.STORAGE_KEY, None)
        logger.info("Cookie consent revoked")


class ConsentGate:
    """Asks for consent once per browser before the first submission."""

    def __init__(self, store: ConsentStore, prompt: Optional[ConsentPrompt] = None):
        """
        Args:
            store: Where an accepted decision is remembered
            prompt: Coroutine function showing the consent prompt; resolves to
                True on accept and False on decline. Without a prompt the
                gate resolves to False and submission proceeds.
        """
        self.store = store
        self.prompt = prompt

    @property
    def decided(self) -> bool:
        return self.store.granted

    async def resolve(self) -> bool:
        """
        Return the consent decision, prompting if none is on record.

        Returns:
            True if the ownership cookie may be written
        """
        if self.store.granted:
            return True
        if self.prompt is None:
            logger.debug("No consent prompt available, proceeding without consent")
            return False

        accepted = bool(await self.prompt())
        if accepted:
            self.store.accept()
        else:
            logger.info("Cookie consent declined")
        return accepted
