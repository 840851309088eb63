"""
Gap Explanation Store - Applicant explanations for employment gaps

Explanations are keyed by the exact date pair of the gap they explain.
When the employment history is edited so that a gap boundary moves, the
old explanation no longer matches any computed gap. Such orphaned entries
stay in the store but are ignored when checking completeness.
"""

import logging
from datetime import date
from typing import Any, Dict, Iterable, List, Optional, Tuple, Union

from .models import EmploymentGap, parse_date

logger = logging.getLogger(__name__)


def gap_key(start_date: date, end_date: date) -> str:
    """Canonical lookup key for a gap's date pair."""
    return f"{start_date.isoformat()}/{end_date.isoformat()}"


class GapExplanationStore:
    """
    In-memory explanations for one application session.

    Usage:
        store = GapExplanationStore()
        store.seed(saved_records)      # before any edits
        store.set_explanation(gap, "Travelling")
        store.all_explained(gaps)
    """

    def __init__(self, records: Optional[Iterable[Dict[str, Any]]] = None):
        self._explanations: Dict[str, str] = {}
        self._edited = set()
        if records:
            self.seed(records)

    def seed(self, records: Iterable[Dict[str, Any]]) -> int:
        """
        Load previously persisted explanations.

        Keys already edited in this session are left alone, so seeding
        late never clobbers the applicant's newer text.

        Args:
            records: Dicts with start_date, end_date and explanation

        Returns:
            Number of explanations loaded
        """
        loaded = 0
        for record in records:
            start = parse_date(record.get('start_date'))
            end = parse_date(record.get('end_date'))
            if start is None or end is None:
                logger.debug(f"Skipping persisted explanation without dates: {record!r}")
                continue

            key = gap_key(start, end)
            if key in self._edited:
                continue

            self._explanations[key] = record.get('explanation') or ''
            loaded += 1

        logger.debug(f"Seeded {loaded} gap explanation(s)")
        return loaded

    def set_explanation(self, gap: Union[EmploymentGap, Tuple[date, date]], text: str) -> None:
        key = self._key_for(gap)
        self._explanations[key] = text or ''
        self._edited.add(key)

    def get_explanation(self, gap: Union[EmploymentGap, Tuple[date, date]]) -> str:
        return self._explanations.get(self._key_for(gap), '')

    def all_explained(self, gaps: Iterable[EmploymentGap]) -> bool:
        """True when every gap has non-blank text (vacuously true for no gaps)."""
        return all(self.get_explanation(gap).strip() for gap in gaps)

    def explained_gaps(self, gaps: Iterable[EmploymentGap]) -> List[Tuple[EmploymentGap, str]]:
        """Pair each current gap with its explanation (empty string if none)."""
        return [(gap, self.get_explanation(gap)) for gap in gaps]

    def orphaned_keys(self, gaps: Iterable[EmploymentGap]) -> List[str]:
        """Stored keys that no longer match any of the given gaps."""
        current = {gap.key for gap in gaps}
        return sorted(key for key in self._explanations if key not in current)

    def to_records(self, gaps: Iterable[EmploymentGap]) -> List[Dict[str, Any]]:
        """
        Serializable explanation records for the given gaps.

        Orphaned explanations are not included.
        """
        records = []
        for gap, text in self.explained_gaps(gaps):
            record = gap.to_record()
            record['explanation'] = text
            records.append(record)
        return records

    def all_records(self) -> List[Dict[str, Any]]:
        """Every stored explanation, orphaned ones included, for persistence."""
        records = []
        for key, text in sorted(self._explanations.items()):
            start, end = key.split('/')
            records.append({'start_date': start, 'end_date': end, 'explanation': text})
        return records

    def __len__(self) -> int:
        return len(self._explanations)

    @staticmethod
    def _key_for(gap: Union[EmploymentGap, Tuple[date, date]]) -> str:
        if isinstance(gap, EmploymentGap):
            return gap.key
        start, end = gap
        return gap_key(start, end)
