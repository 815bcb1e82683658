"""Live validation of the event submission form."""
import logging
import re
from datetime import datetime, timedelta
from typing import Callable, Dict, Mapping, Optional

from processor.models import FieldError, ValidationResult

logger = logging.getLogger(__name__)


class FormValidator:
    """
    Validation state for one submission form.

    Errors for required fields appear when a field loses focus. Cross-field
    rules (end after start, start not long passed) are re-evaluated as soon as
    either side changes. Any error disappears as soon as the value that caused
    it is corrected.
    """

    FIELDS = (
        'title', 'date', 'start', 'end', 'location', 'responsible',
        'description', 'link', 'ownerName',
    )
    REQUIRED_FIELDS = ('title', 'date', 'start', 'end', 'location', 'responsible')

    REQUIRED_MESSAGES = {
        'title': 'Rubrik är obligatoriskt.',
        'date': 'Datum är obligatoriskt.',
        'start': 'Starttid är obligatorisk.',
        'end': 'Sluttid är obligatorisk.',
        'location': 'Plats är obligatoriskt.',
        'responsible': 'Ansvarig är obligatoriskt.',
    }

    MAX_LENGTHS = {
        'title': 200,
        'location': 200,
        'responsible': 200,
        'description': 2000,
        'link': 500,
    }

    LABELS = {
        'title': 'Rubrik',
        'location': 'Plats',
        'responsible': 'Ansvarig',
        'description': 'Beskrivning',
        'link': 'Länk',
    }

    # Fields whose rules read the value of the key field
    DEPENDENTS = {
        'date': ('start',),
        'start': ('end',),
    }

    NEAR_PAST_GRACE_MINUTES = 120

    DATE_RE = re.compile(r'^\d{4}-\d{2}-\d{2}$')
    TIME_RE = re.compile(r'^\d{2}:\d{2}$')

    def __init__(self, clock: Callable[[], datetime] = datetime.now):
        """
        Args:
            clock: Returns the current local wall-clock time
        """
        self.clock = clock
        self.values: Dict[str, str] = {name: '' for name in self.FIELDS}
        self._errors: Dict[str, FieldError] = {}

    @property
    def errors(self) -> Dict[str, str]:
        """Currently displayed error message per field."""
        return {name: error.message for name, error in self._errors.items()}

    def error_for(self, name: str) -> Optional[str]:
        error = self._errors.get(name)
        return error.message if error else None

    def reset(self) -> None:
        """Empty every field and hide all errors."""
        self.values = {name: '' for name in self.FIELDS}
        self._errors = {}

    def update(self, values: Mapping[str, Optional[str]]) -> None:
        """
        Set several values at once without touching displayed errors.

        Used to populate the form, e.g. with an event being edited.
        """
        for name, value in values.items():
            if name in self.values:
                self.values[name] = value or ''

    def change(self, name: str, value: Optional[str]) -> Dict[str, str]:
        """
        Handle a value change of one field.

        Re-evaluates the field and the fields whose rules depend on it.

        Args:
            name: Field name
            value: New raw value

        Returns:
            Displayed errors after the change
        """
        self._require_known(name)
        self.values[name] = value or ''

        for affected in (name,) + self.DEPENDENTS.get(name, ()):
            error = self.check_field(affected)
            current = self._errors.get(affected)
            # A change never raises a new required-field error; that waits for blur
            if error is not None and error.kind == 'required':
                if current is None or current.kind != 'required':
                    error = None
            self._set_error(affected, error)

        return self.errors

    def blur(self, name: str) -> Optional[str]:
        """
        Handle a field losing focus.

        Args:
            name: Field name

        Returns:
            The field's error message, if any
        """
        self._require_known(name)
        self._set_error(name, self.check_field(name))
        return self.error_for(name)

    def validate_all(self) -> ValidationResult:
        """
        Re-evaluate every rule, replacing the live error state.

        Returns:
            ValidationResult listing errors in form order
        """
        errors = []
        self._errors = {}
        for name in self.FIELDS:
            error = self.check_field(name)
            if error is not None:
                errors.append(error)
                self._errors[name] = error

        if errors:
            logger.info(
                f"Form validation failed with {len(errors)} errors",
                extra={'fields': [error.field for error in errors]}
            )
        return ValidationResult(errors=errors)

    @property
    def is_submittable(self) -> bool:
        return all(self.check_field(name) is None for name in self.FIELDS)

    def cleaned(self) -> Dict[str, str]:
        """Values as sent to the server."""
        cleaned = {name: self.values[name].strip() for name in self.FIELDS}
        cleaned['description'] = self.values['description']
        return cleaned

    def check_field(self, name: str) -> Optional[FieldError]:
        """
        Evaluate the rules for one field against the current values.

        Args:
            name: Field name

        Returns:
            The first failing rule as a FieldError, or None
        """
        value = self.values[name].strip()

        if name in self.REQUIRED_FIELDS and not value:
            return FieldError(name, 'required', self.REQUIRED_MESSAGES[name])

        max_length = self.MAX_LENGTHS.get(name)
        if max_length is not None and len(value) > max_length:
            return FieldError(
                name, 'length',
                f"{self.LABELS[name]} får vara högst {max_length} tecken."
            )

        if name == 'date':
            return self._check_date(value)
        if name == 'start':
            return self._check_start(value)
        if name == 'end':
            return self._check_end(value)
        return None

    def _check_date(self, value: str) -> Optional[FieldError]:
        if self._parse_date(value) is None:
            return FieldError('date', 'format', 'Datum måste anges som ÅÅÅÅ-MM-DD.')
        if value < self._now().date().isoformat():
            return FieldError('date', 'past', 'Datum kan inte vara i det förflutna.')
        return None

    def _check_start(self, value: str) -> Optional[FieldError]:
        if self._parse_time(value) is None:
            return FieldError('start', 'format', 'Starttid måste anges som HH:MM.')
        if self._is_near_past(self.values['date'].strip(), value):
            return FieldError('start', 'past', 'Starttiden har redan passerat.')
        return None

    def _check_end(self, value: str) -> Optional[FieldError]:
        if self._parse_time(value) is None:
            return FieldError('end', 'format', 'Sluttid måste anges som HH:MM.')
        start = self.values['start'].strip()
        # Zero-padded HH:MM strings compare correctly as text
        if self._parse_time(start) is not None and value <= start:
            return FieldError('end', 'order', 'Sluttid måste vara efter starttid.')
        return None

    def _is_near_past(self, date_value: str, start_value: str) -> bool:
        """
        True if the event starts today more than the grace window ago.

        Future dates are never near-past, whatever the start time.
        """
        now = self._now()
        if date_value != now.date().isoformat():
            return False
        start_time = self._parse_time(start_value)
        if start_time is None:
            return False
        starts_at = datetime.combine(now.date(), start_time)
        return now - starts_at > timedelta(minutes=self.NEAR_PAST_GRACE_MINUTES)

    def _now(self) -> datetime:
        return self.clock().replace(second=0, microsecond=0)

    def _parse_date(self, value: str):
        if not self.DATE_RE.match(value):
            return None
        try:
            return datetime.strptime(value, '%Y-%m-%d').date()
        except ValueError:
            return None

    def _parse_time(self, value: str):
        if not self.TIME_RE.match(value):
            return None
        try:
            return datetime.strptime(value, '%H:%M').time()
        except ValueError:
            return None

    def _set_error(self, name: str, error: Optional[FieldError]) -> None:
        if error is None:
            self._errors.pop(name, None)
        else:
            self._errors[name] = error

    def _require_known(self, name: str) -> None:
        if name not in self.values:
            raise KeyError(f"Unknown form field: {name}")
