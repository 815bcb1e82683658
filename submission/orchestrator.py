"""Submission of new and edited events to the site API."""
import asyncio
import logging
from typing import Any, Dict, List, Optional
from urllib.parse import urljoin

import requests

from ownership.consent import ConsentGate
from processor.models import SubmissionOutcome, SubmissionState
from processor.validation import FormValidator
from submission.progress import ProgressIndicator

logger = logging.getLogger(__name__)

GENERIC_FAILURE_MESSAGE = (
    'Något gick fel. Kontrollera din internetanslutning och försök igen.'
)
SERVER_FAILURE_FALLBACK = 'Något gick fel.'
ADDED_HEADING = 'Aktiviteten är tillagd!'
UPDATED_HEADING = 'Aktiviteten är uppdaterad!'
NO_EDIT_NOTE = (
    'Du valde att inte tillåta cookie, så aktiviteten kan inte redigeras från '
    'den här webbläsaren. Vill du ändra dig? Lägg till en ny aktivitet och '
    'välj Ja, det är okej när vi frågar.'
)


class SubmitAffordance:
    """
    The submit button. Disabled while a request is outstanding.

    history records every enabled/disabled transition in order, so the
    form view (or a test) can check that a succeeded form never re-enabled
    the button.
    """

    def __init__(self):
        self.enabled = True
        self.history: List[bool] = []

    def disable(self) -> None:
        if self.enabled:
            self.enabled = False
            self.history.append(False)

    def enable(self) -> None:
        if not self.enabled:
            self.enabled = True
            self.history.append(True)


class SubmissionOrchestrator:
    """
    Drives one submission form from validation to the server's answer.

    States: idle -> consent-pending -> in-flight -> succeeded | failed.
    A failed submission can be retried; a succeeded one is final until
    start_new() is called. At most one request is outstanding per form.
    """

    ADD_ENDPOINT = '/add-event'
    EDIT_ENDPOINT = '/edit-event'

    def __init__(
        self,
        session: requests.Session,
        validator: FormValidator,
        base_url: str = '',
        endpoint: Optional[str] = None,
        consent_gate: Optional[ConsentGate] = None,
        progress: Optional[ProgressIndicator] = None,
        owner_name: str = '',
        event_id: Optional[str] = None,
        timeout: int = 30
    ):
        """
        Initialize the orchestrator.

        Args:
            session: Browser session; its cookie jar receives the server's
                ownership cookie
            validator: Validation state of the form
            base_url: Site or API root that relative endpoints resolve against
            endpoint: Target path or URL; defaults to the add or edit endpoint
            consent_gate: Asked before the first submission; None skips consent
            progress: Staged progress indicator
            owner_name: Display name labelling the change, unless the form
                carries its own ownerName
            event_id: Id of the event being edited; None for a new event
            timeout: HTTP request timeout in seconds
        """
        self.session = session
        self.validator = validator
        self.event_id = event_id
        default_endpoint = self.EDIT_ENDPOINT if event_id else self.ADD_ENDPOINT
        self.url = urljoin(base_url, endpoint or default_endpoint)
        self.consent_gate = consent_gate
        self.progress = progress or ProgressIndicator()
        self.owner_name = owner_name
        self.timeout = timeout

        self.affordance = SubmitAffordance()
        self.state = SubmissionState.IDLE
        self.outcome = SubmissionOutcome(state=SubmissionState.IDLE)

    @property
    def is_edit(self) -> bool:
        return self.event_id is not None

    async def submit(self, values: Optional[Dict[str, str]] = None) -> SubmissionOutcome:
        """
        Validate, ask for consent if needed, and send the event.

        Args:
            values: Form values to apply before validating

        Returns:
            SubmissionOutcome describing what the form should show
        """
        if self.state not in (SubmissionState.IDLE, SubmissionState.FAILED):
            logger.warning(f"Submit ignored while {self.state.value}")
            return SubmissionOutcome(state=self.state)

        self.state = SubmissionState.IDLE
        if values:
            self.validator.update(values)

        result = self.validator.validate_all()
        if not result.ok:
            self.outcome = SubmissionOutcome(
                state=SubmissionState.IDLE,
                errors=result.errors
            )
            return self.outcome

        consent_given = None
        if self.consent_gate is not None:
            if not self.consent_gate.decided:
                self.state = SubmissionState.CONSENT_PENDING
            try:
                consent_given = await self.consent_gate.resolve()
            except Exception:
                logger.exception("Consent prompt failed")
                return self._fail(GENERIC_FAILURE_MESSAGE, None, server_message=False)

        self.affordance.disable()
        self.state = SubmissionState.IN_FLIGHT

        try:
            self.progress.start()
            body = self.build_body(consent_given)
            logger.info(
                f"Submitting event to {self.url}",
                extra={'edit': self.is_edit, 'cookie_consent': consent_given}
            )
            response = await asyncio.to_thread(
                self.session.post, self.url, json=body, timeout=self.timeout
            )
            payload = response.json()
        except (requests.RequestException, ValueError) as e:
            logger.error(
                f"Submission request failed: {e}",
                extra={'error_type': type(e).__name__}
            )
            return self._fail(GENERIC_FAILURE_MESSAGE, consent_given, server_message=False)
        except Exception:
            logger.exception("Unexpected error during submission")
            return self._fail(GENERIC_FAILURE_MESSAGE, consent_given, server_message=False)

        if not isinstance(payload, dict) or not isinstance(payload.get('success'), bool):
            logger.error(f"Uninterpretable submission response: {payload!r}")
            return self._fail(GENERIC_FAILURE_MESSAGE, consent_given, server_message=False)

        if not payload['success']:
            error = payload.get('error')
            logger.warning(f"Server rejected submission: {error}")
            if error:
                return self._fail(str(error), consent_given, server_message=True)
            return self._fail(SERVER_FAILURE_FALLBACK, consent_given, server_message=False)

        return self._succeed(payload, consent_given)

    def start_new(self) -> None:
        """Reset the form after a success to submit another event."""
        self.progress.cancel()
        self.validator.reset()
        self.state = SubmissionState.IDLE
        self.outcome = SubmissionOutcome(state=SubmissionState.IDLE)
        self.affordance.enable()

    def build_body(self, consent_given: Optional[bool]) -> Dict[str, Any]:
        """
        Build the JSON request body.

        Args:
            consent_given: Whether the server may set the ownership cookie

        Returns:
            Request body dictionary
        """
        values = self.validator.cleaned()
        body = {
            'title': values['title'],
            'date': values['date'],
            'start': values['start'],
            'end': values['end'],
            'location': values['location'],
            'responsible': values['responsible'],
            'description': values['description'],
            'link': values['link'],
            'ownerName': values['ownerName'] or self.owner_name,
        }
        if self.is_edit:
            body['id'] = self.event_id
        else:
            body['cookieConsent'] = bool(consent_given)
        return body

    def _succeed(self, payload: dict, consent_given: Optional[bool]) -> SubmissionOutcome:
        self.progress.complete()
        self.state = SubmissionState.SUCCEEDED

        note = None
        if not self.is_edit and consent_given is False:
            note = NO_EDIT_NOTE

        event_id = payload.get('eventId') or self.event_id
        logger.info("Submission succeeded", extra={'event_id': event_id})
        self.outcome = SubmissionOutcome(
            state=SubmissionState.SUCCEEDED,
            message=UPDATED_HEADING if self.is_edit else ADDED_HEADING,
            event_id=event_id,
            consent_given=consent_given,
            note=note
        )
        return self.outcome

    def _fail(
        self,
        message: str,
        consent_given: Optional[bool],
        server_message: bool
    ) -> SubmissionOutcome:
        self.progress.cancel()
        self.state = SubmissionState.FAILED
        self.affordance.enable()
        self.outcome = SubmissionOutcome(
            state=SubmissionState.FAILED,
            message=message,
            consent_given=consent_given,
            server_message=server_message
        )
        return self.outcome
