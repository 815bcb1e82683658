"""Unit tests for EditLinkAnnotator."""
from bs4 import BeautifulSoup

from ownership.edit_links import EditLinkAnnotator

TODAY = '2026-07-01'

SCHEDULE_HTML = """
<html>
    <body>
        <ul>
            <li class="event" data-event-id="kanot-2026-07-01-1000" data-event-date="2026-07-01">
                Kanotpaddling
            </li>
            <li class="event" data-event-id="gammal-2026-06-30-1000" data-event-date="2026-06-30">
                Gammal aktivitet
            </li>
            <li class="event" data-event-id="annans-2026-07-02-1000" data-event-date="2026-07-02">
                Någon annans
            </li>
        </ul>
        <details class="event-row" data-event-id="lagerbal-2026-07-03-1900" data-event-date="2026-07-03">
            <summary>Lägerbål</summary>
            <p>Ta med korv</p>
        </details>
    </body>
</html>
"""

OWNED = [
    'kanot-2026-07-01-1000',
    'gammal-2026-06-30-1000',
    'lagerbal-2026-07-03-1900',
]


def row(soup, event_id):
    return soup.find(attrs={'data-event-id': event_id})


class TestEditLinkAnnotator:
    """Test cases for EditLinkAnnotator class."""

    def test_annotates_owned_current_rows(self):
        """Test that owned rows for today or later receive a link."""
        annotator = EditLinkAnnotator(SCHEDULE_HTML)

        added = annotator.annotate(OWNED, today=TODAY)

        assert added == 2
        link = row(annotator.soup, 'kanot-2026-07-01-1000').find('a', class_='edit-link')
        assert link is not None
        assert link['href'] == 'redigera.html?id=kanot-2026-07-01-1000'
        assert link.get_text() == 'Redigera'

    def test_skips_past_and_foreign_rows(self):
        """Test that passed events and other people's events get no link."""
        annotator = EditLinkAnnotator(SCHEDULE_HTML)

        annotator.annotate(OWNED, today=TODAY)

        assert row(annotator.soup, 'gammal-2026-06-30-1000').find('a') is None
        assert row(annotator.soup, 'annans-2026-07-02-1000').find('a') is None

    def test_details_link_goes_into_summary(self):
        """Test that collapsible rows get the link in the visible summary."""
        annotator = EditLinkAnnotator(SCHEDULE_HTML)

        annotator.annotate(OWNED, today=TODAY)

        details = row(annotator.soup, 'lagerbal-2026-07-03-1900')
        summary_link = details.summary.find('a', class_='edit-link')
        assert summary_link is not None
        assert details.p.find('a') is None
        assert len(details.find_all('a', class_='edit-link')) == 1

    def test_repeated_annotation_is_idempotent(self):
        """Test that annotating twice adds no duplicate links."""
        annotator = EditLinkAnnotator(SCHEDULE_HTML)

        first = annotator.annotate(OWNED, today=TODAY)
        second = annotator.annotate(OWNED, today=TODAY)

        assert first == 2
        assert second == 0
        assert len(annotator.soup.find_all('a', class_='edit-link')) == 2

    def test_row_without_date_is_annotated(self):
        """Test that a row lacking a date attribute is treated as current."""
        annotator = EditLinkAnnotator('<div data-event-id="x">X</div>')

        assert annotator.annotate(['x'], today=TODAY) == 1

    def test_no_owned_ids(self):
        """Test that an empty ownership set leaves the page untouched."""
        annotator = EditLinkAnnotator(SCHEDULE_HTML)

        assert annotator.annotate([], today=TODAY) == 0
        assert annotator.soup.find('a') is None

    def test_id_is_url_encoded(self):
        """Test that ids are encoded in the edit URL."""
        annotator = EditLinkAnnotator('<p data-event-id="a b&c">X</p>')

        annotator.annotate(['a b&c'], today=TODAY)

        assert annotator.soup.a['href'] == 'redigera.html?id=a%20b%26c'

    def test_accepts_parsed_document(self):
        """Test annotating an existing BeautifulSoup document in place."""
        soup = BeautifulSoup(SCHEDULE_HTML, 'html.parser')

        EditLinkAnnotator(soup).annotate(OWNED, today=TODAY)

        assert len(soup.find_all('a', class_='edit-link')) == 2
        assert 'Redigera' in EditLinkAnnotator(soup).render()
