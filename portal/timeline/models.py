"""
Timeline Models - Employment periods and the gaps between them

Employment periods are built from the plain records the employment step
stores (ISO date strings) or from ``date`` objects directly. Dates that
cannot be parsed are treated as absent so malformed entries degrade to
"nothing to analyse" instead of raising.
"""

import logging
from dataclasses import dataclass
from datetime import date, datetime
from typing import Any, Dict, Hashable, Optional

logger = logging.getLogger(__name__)


def parse_date(value: Any) -> Optional[date]:
    """
    Parse a calendar date from a record value.

    Args:
        value: ``date``, ``datetime``, ISO string ("2020-06-30" or a full
            timestamp) or None

    Returns:
        The parsed date, or None when the value is missing or malformed
    """
    if value is None or value == '':
        return None
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    if isinstance(value, str):
        text = value.strip()
        try:
            return date.fromisoformat(text[:10])
        except ValueError:
            logger.debug(f"Ignoring unparseable date: {value!r}")
            return None
    logger.debug(f"Ignoring unsupported date value: {value!r}")
    return None


@dataclass
class EmploymentPeriod:
    """One job held by the applicant."""
    start_date: Optional[date]
    end_date: Optional[date] = None  # None means ongoing
    is_current: bool = False
    worked_with_vulnerable_people: bool = False
    employer: str = ''
    position: str = ''
    id: Optional[int] = None  # Set once persisted
    reference_name: str = ''
    reference_email: str = ''
    reference_phone: str = ''

    @property
    def key(self) -> Hashable:
        """Stable identity: the stored id, or employer and dates for unsaved entries."""
        if self.id is not None:
            return ('id', self.id)
        return ('entry', self.employer, self.start_date, self.end_date)

    @property
    def has_reference_contact(self) -> bool:
        return bool(self.reference_name.strip() and self.reference_email.strip())

    @classmethod
    def from_record(cls, record: Dict[str, Any]) -> 'EmploymentPeriod':
        """
        Build a period from a stored or submitted employment record.

        Args:
            record: Dict with start_date, end_date, is_current,
                worked_with_vulnerable_people and optional employer,
                position, id and reference contact fields

        Returns:
            EmploymentPeriod instance
        """
        return cls(
            start_date=parse_date(record.get('start_date')),
            end_date=parse_date(record.get('end_date')),
            is_current=bool(record.get('is_current')),
            worked_with_vulnerable_people=bool(record.get('worked_with_vulnerable_people')),
            employer=record.get('employer') or '',
            position=record.get('position') or '',
            id=record.get('id'),
            reference_name=record.get('reference_name') or '',
            reference_email=record.get('reference_email') or '',
            reference_phone=record.get('reference_phone') or '',
        )

    def to_record(self) -> Dict[str, Any]:
        """Plain, serializable representation."""
        return {
            'id': self.id,
            'employer': self.employer,
            'position': self.position,
            'start_date': self.start_date.isoformat() if self.start_date else None,
            'end_date': self.end_date.isoformat() if self.end_date else None,
            'is_current': self.is_current,
            'worked_with_vulnerable_people': self.worked_with_vulnerable_people,
            'reference_name': self.reference_name,
            'reference_email': self.reference_email,
            'reference_phone': self.reference_phone,
        }


@dataclass(frozen=True)
class EmploymentGap:
    """An unexplained span between two consecutive employment periods."""
    start_date: date  # Day after the earlier period ended
    end_date: date  # Start of the later period
    length_in_days: int

    @property
    def key(self) -> str:
        """Canonical ISO-8601 text of the date pair."""
        return f"{self.start_date.isoformat()}/{self.end_date.isoformat()}"

    def to_record(self) -> Dict[str, Any]:
        return {
            'start_date': self.start_date.isoformat(),
            'end_date': self.end_date.isoformat(),
            'length_in_days': self.length_in_days,
        }
