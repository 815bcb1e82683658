"""Edit-link annotation for rendered event rows."""
import logging
from typing import Iterable, Union
from urllib.parse import quote

from bs4 import BeautifulSoup, Tag

from processor.clock import DateLike, today_iso

logger = logging.getLogger(__name__)


class EditLinkAnnotator:
    """
    Marks the rows of owned events with a "Redigera" link.

    Rows are elements carrying data-event-id and data-event-date, produced by
    the site build. Annotating the same page twice adds no second link.
    """

    ID_ATTR = 'data-event-id'
    DATE_ATTR = 'data-event-date'
    LINK_CLASS = 'edit-link'
    LINK_TEXT = 'Redigera'
    EDIT_PAGE = 'redigera.html'

    def __init__(self, page: Union[str, BeautifulSoup]):
        """
        Args:
            page: Rendered HTML or an already parsed document
        """
        if isinstance(page, BeautifulSoup):
            self.soup = page
        else:
            self.soup = BeautifulSoup(page, 'html.parser')

    def annotate(self, owned_ids: Iterable[str], today: DateLike = None) -> int:
        """
        Attach edit links to the rows of owned, not yet passed events.

        Args:
            owned_ids: Reconciled ownership set
            today: Override for the current date

        Returns:
            Number of links added
        """
        owned = {event_id for event_id in owned_ids if event_id}
        if not owned:
            return 0

        today = today_iso(today)
        added = 0

        for row in self.soup.find_all(attrs={self.ID_ATTR: True}):
            event_id = row.get(self.ID_ATTR)
            if event_id not in owned:
                continue

            event_date = row.get(self.DATE_ATTR)
            if event_date and event_date < today:
                continue

            target = self._link_target(row)
            href = self.edit_url(event_id)
            if self._has_link(target, href):
                continue

            target.append(self._make_link(href))
            added += 1

        logger.info(f"Added {added} edit links for {len(owned)} owned events")
        return added

    def render(self) -> str:
        return str(self.soup)

    @classmethod
    def edit_url(cls, event_id: str) -> str:
        return f"{cls.EDIT_PAGE}?id={quote(event_id, safe='')}"

    def _link_target(self, row: Tag) -> Tag:
        # Collapsed <details> rows: the link goes into the visible <summary>
        if row.name == 'details':
            summary = row.find('summary')
            if summary is not None:
                return summary
        return row

    def _has_link(self, target: Tag, href: str) -> bool:
        for link in target.find_all('a', class_=self.LINK_CLASS):
            if link.get('href') == href:
                return True
        return False

    def _make_link(self, href: str) -> Tag:
        link = self.soup.new_tag('a', href=href)
        link['class'] = [self.LINK_CLASS]
        link.string = self.LINK_TEXT
        return link
