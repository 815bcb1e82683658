"""Unit tests for the page flows in client_app."""
import asyncio
import json
import logging
from datetime import datetime
from unittest.mock import patch

import pytest
import responses
from requests.exceptions import ConnectionError

from client_app import (
    Browser,
    JsonFormatter,
    Settings,
    annotate_page,
    bootstrap,
    build_submission,
    load_ownership,
    load_settings,
    open_edit_form,
    record_submission,
)
from ownership.ledger import OwnershipLedger
from processor.editing import NOT_OWNER_MESSAGE
from processor.models import SubmissionOutcome, SubmissionState

SITE_URL = "https://sommar.example.com"
EVENTS_URL = SITE_URL + "/events.json"
TODAY = '2026-07-01'

EVENTS = [
    {
        'id': 'kanot-2026-07-02-1000',
        'title': 'Kanotpaddling',
        'date': '2026-07-02',
        'start': '10:00',
        'end': '12:00',
        'location': 'Sjön',
        'responsible': 'Anna',
        'description': 'Ta med flytväst'
    },
    {
        'id': 'gammal-2026-06-20-1000',
        'title': 'Gammal aktivitet',
        'date': '2026-06-20',
        'start': '10:00',
        'end': '11:00',
        'location': 'Hallen',
        'responsible': 'Erik'
    },
]


@pytest.fixture
def browser():
    settings = Settings(site_url=SITE_URL, owner_name='Anna Andersson')
    return Browser(settings, consent_storage={'sb_cookie_consent': 'accepted'})


def set_owned(browser, ids):
    browser.session.cookies.set('sb_session', OwnershipLedger.encode(ids))


class TestSettings:
    """Test cases for configuration loading."""

    def test_defaults(self):
        """Test defaults when no variables are set."""
        settings = load_settings({})

        assert settings == Settings()
        assert settings.site_url == 'http://localhost:3000'
        assert settings.api_url == '/add-event'

    def test_environment_values(self):
        """Test reading every variable."""
        settings = load_settings({
            'SITE_URL': SITE_URL,
            'API_URL': 'https://api.example.com/add-event',
            'EDIT_API_URL': 'https://api.example.com/edit-event',
            'COOKIE_DOMAIN': ' .example.com ',
            'OWNER_NAME': 'Anna',
            'LOG_LEVEL': 'DEBUG',
            'TIMEOUT_SECONDS': '5'
        })

        assert settings.site_url == SITE_URL
        assert settings.edit_api_url == 'https://api.example.com/edit-event'
        assert settings.cookie_domain == '.example.com'
        assert settings.log_level == 'DEBUG'
        assert settings.timeout_seconds == 5


class TestJsonFormatter:
    """Test cases for structured logging."""

    def test_format_includes_extra_fields(self):
        """Test that extra= fields appear in the JSON line."""
        record = logging.makeLogRecord({
            'name': 'client_app',
            'levelname': 'INFO',
            'levelno': logging.INFO,
            'msg': 'Ownership reconciled',
            'owned_after': 2
        })

        data = json.loads(JsonFormatter().format(record))

        assert data['message'] == 'Ownership reconciled'
        assert data['level'] == 'INFO'
        assert data['logger'] == 'client_app'
        assert data['owned_after'] == 2
        assert 'msg' not in data

    def test_bootstrap_installs_formatter(self):
        """Test that bootstrap configures logging and returns a browser."""
        browser = bootstrap({'SITE_URL': SITE_URL, 'LOG_LEVEL': 'WARNING'})

        root = logging.getLogger()
        assert isinstance(root.handlers[0].formatter, JsonFormatter)
        assert root.level == logging.WARNING
        assert browser.feed.url == EVENTS_URL


class TestLoadOwnership:
    """Test cases for the page-load ownership pass."""

    @responses.activate
    def test_reconciles_and_rewrites_cookie(self, browser):
        """Test that passed events are pruned and unknown ids kept."""
        responses.add(responses.GET, EVENTS_URL, json=EVENTS, status=200)
        set_owned(browser, ['kanot-2026-07-02-1000', 'gammal-2026-06-20-1000', 'ny'])

        owned = asyncio.run(load_ownership(browser, TODAY))

        assert owned == ['kanot-2026-07-02-1000', 'ny']
        assert browser.ledger.read().ids == owned

    @responses.activate
    def test_no_cookie_skips_fetch(self, browser):
        """Test that an empty ledger needs no dataset."""
        owned = asyncio.run(load_ownership(browser, TODAY))

        assert owned == []
        assert len(responses.calls) == 0

    @responses.activate
    @patch('feed.events_feed.time.sleep')
    def test_feed_failure_keeps_cookie(self, mock_sleep, browser):
        """Test that an unreachable dataset leaves ownership unreconciled."""
        responses.add(responses.GET, EVENTS_URL, body=ConnectionError("offline"))
        set_owned(browser, ['gammal-2026-06-20-1000'])
        before = browser.ledger.read().ids

        owned = asyncio.run(load_ownership(browser, TODAY))

        assert owned == ['gammal-2026-06-20-1000']
        assert browser.ledger.read().ids == before

    @responses.activate
    def test_annotate_page(self, browser):
        """Test that owned rows get edit links after reconciliation."""
        responses.add(responses.GET, EVENTS_URL, json=EVENTS, status=200)
        set_owned(browser, ['kanot-2026-07-02-1000', 'gammal-2026-06-20-1000'])
        html = (
            '<ul>'
            '<li data-event-id="kanot-2026-07-02-1000" data-event-date="2026-07-02">A</li>'
            '<li data-event-id="gammal-2026-06-20-1000" data-event-date="2026-06-20">B</li>'
            '</ul>'
        )

        result = asyncio.run(annotate_page(browser, html, TODAY))

        assert result.count('class="edit-link"') == 1
        assert 'redigera.html?id=kanot-2026-07-02-1000' in result


class TestSubmissionFlow:
    """Test cases for wiring submission and editing."""

    def test_build_submission_uses_settings(self, browser):
        orchestrator = build_submission(browser)

        assert orchestrator.url == SITE_URL + '/add-event'
        assert orchestrator.owner_name == 'Anna Andersson'
        assert orchestrator.is_edit is False

    def test_record_submission_adds_id(self, browser):
        """Test that a successful add is recorded in the ledger."""
        set_owned(browser, ['kanot-2026-07-02-1000'])
        outcome = SubmissionOutcome(state=SubmissionState.SUCCEEDED, event_id='ny-2026-07-03-1000')

        owned = record_submission(browser, outcome)

        assert owned == ['kanot-2026-07-02-1000', 'ny-2026-07-03-1000']
        assert browser.ledger.read().ids == owned

    def test_record_submission_without_consent(self):
        """Test that nothing is written without consent."""
        browser = Browser(Settings(site_url=SITE_URL))
        outcome = SubmissionOutcome(state=SubmissionState.SUCCEEDED, event_id='ny')

        assert record_submission(browser, outcome) == []
        assert browser.ledger.read().ids == []

    def test_record_failed_submission(self, browser):
        """Test that a failed submission changes nothing."""
        outcome = SubmissionOutcome(state=SubmissionState.FAILED)

        assert record_submission(browser, outcome) == []

    @responses.activate
    def test_open_edit_form_populates_values(self, browser):
        """Test that an owned upcoming event opens a populated edit form."""
        responses.add(responses.GET, EVENTS_URL, json=EVENTS, status=200)
        set_owned(browser, ['kanot-2026-07-02-1000'])

        access, orchestrator = asyncio.run(open_edit_form(
            browser, 'kanot-2026-07-02-1000',
            clock=lambda: datetime(2026, 7, 1, 9, 0), today=TODAY
        ))

        assert access.allowed is True
        assert orchestrator.is_edit is True
        assert orchestrator.url == SITE_URL + '/edit-event'
        assert orchestrator.validator.values['title'] == 'Kanotpaddling'
        assert orchestrator.validator.values['link'] == ''
        assert orchestrator.validator.validate_all().ok

    @responses.activate
    def test_open_edit_form_not_owner(self, browser):
        """Test that a foreign id is refused without fetching the dataset."""
        access, orchestrator = asyncio.run(open_edit_form(browser, 'annans', today=TODAY))

        assert access.allowed is False
        assert access.reason == NOT_OWNER_MESSAGE
        assert orchestrator is None
        assert len(responses.calls) == 0
