"""Data models for event ownership, validation and submission."""
from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, List, Optional


@dataclass
class Event:
    """Event record from the canonical events dataset."""
    id: str
    date: str
    start: str
    end: str
    title: str
    location: str
    responsible: str
    description: Optional[str] = None
    link: Optional[str] = None

    @classmethod
    def from_dict(cls, item: dict) -> Optional['Event']:
        """
        Build an Event from a decoded events.json record.

        Args:
            item: Dictionary from the events dataset

        Returns:
            Event object or None if the record has no usable id
        """
        if not isinstance(item, dict):
            return None
        event_id = item.get('id')
        if not isinstance(event_id, str) or not event_id:
            return None
        return cls(
            id=event_id,
            date=str(item.get('date') or ''),
            start=str(item.get('start') or ''),
            end=str(item.get('end') or ''),
            title=str(item.get('title') or ''),
            location=str(item.get('location') or ''),
            responsible=str(item.get('responsible') or ''),
            description=item.get('description'),
            link=item.get('link')
        )


@dataclass
class FeedResult:
    """Result of fetching the canonical events dataset."""
    events: Dict[str, Event]
    degraded: bool = False
    reason: Optional[str] = None

    @classmethod
    def unavailable(cls, reason: str) -> 'FeedResult':
        return cls(events={}, degraded=True, reason=reason)


@dataclass
class LedgerRead:
    """Decoded ownership cookie."""
    ids: List[str]
    degraded: bool = False
    reason: Optional[str] = None


@dataclass
class FieldError:
    """A single validation error attached to a form field."""
    field: str
    kind: str
    message: str


@dataclass
class ValidationResult:
    """Consolidated outcome of a full form validation."""
    errors: List[FieldError] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return not self.errors

    @property
    def messages(self) -> List[str]:
        return [error.message for error in self.errors]

    def for_field(self, name: str) -> Optional[FieldError]:
        for error in self.errors:
            if error.field == name:
                return error
        return None


class SubmissionState(str, Enum):
    """States of one submission form instance."""
    IDLE = 'idle'
    CONSENT_PENDING = 'consent-pending'
    IN_FLIGHT = 'in-flight'
    SUCCEEDED = 'succeeded'
    FAILED = 'failed'


@dataclass
class SubmissionOutcome:
    """What the submission form shows after a submit attempt."""
    state: SubmissionState
    message: Optional[str] = None
    event_id: Optional[str] = None
    errors: List[FieldError] = field(default_factory=list)
    consent_given: Optional[bool] = None
    server_message: bool = False
    note: Optional[str] = None


@dataclass
class EditAccess:
    """Whether an event may be edited from this browser."""
    allowed: bool
    event: Optional[Event] = None
    reason: Optional[str] = None
