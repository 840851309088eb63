"""
Reference Requirements - Which employers must supply a reference

Rules (each can be switched off in the policy):
- Current employer: always asked when present
- Previous employers: the last two employers overall, so one previous
  employer when a current one fills the first slot, otherwise two
- Vulnerable work: every employer where the applicant worked with
  vulnerable people, regardless of the limits above

An employer selected by more than one rule appears only once.
"""

import logging
from dataclasses import asdict, dataclass, fields, replace
from datetime import date
from typing import Any, Dict, List, Optional, Sequence

from .models import EmploymentPeriod

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ReferencePolicy:
    """Toggles selecting which categories of employer need a reference."""
    require_current_employer: bool = True
    require_previous_employer: bool = True
    require_vulnerable_work_employers: bool = True

    @classmethod
    def from_dict(cls, data: Optional[Dict[str, Any]]) -> 'ReferencePolicy':
        return cls().merged(data or {})

    def merged(self, partial: Dict[str, Any]) -> 'ReferencePolicy':
        """
        Return a copy with the given toggles replaced.

        Raises:
            ValueError: On unknown keys or non-boolean values
        """
        known = {f.name for f in fields(self)}
        for key, value in partial.items():
            if key not in known:
                raise ValueError(f"Unknown reference policy setting: {key}")
            if not isinstance(value, bool):
                raise ValueError(f"Reference policy setting '{key}' must be a boolean")
        return replace(self, **partial)

    def to_dict(self) -> Dict[str, bool]:
        return asdict(self)


def _most_recent_first(periods: Sequence[EmploymentPeriod]) -> List[EmploymentPeriod]:
    # Missing end dates count as oldest; reverse=True keeps ties in input order
    return sorted(periods, key=lambda p: p.end_date or date.min, reverse=True)


def _previous_limit(has_current: bool) -> int:
    return 1 if has_current else 2


class ReferenceResolver:
    """
    Derives required references from an employment history.

    Nothing is cached: every read recomputes from the current periods and
    policy, so results always reflect the latest update_policy() call.
    """

    def __init__(
        self,
        periods: Sequence[EmploymentPeriod] = (),
        policy: Optional[ReferencePolicy] = None,
    ):
        self.periods = list(periods)
        self.policy = policy or ReferencePolicy()

    def set_periods(self, periods: Sequence[EmploymentPeriod]) -> None:
        self.periods = list(periods)

    def update_policy(self, partial: Optional[Dict[str, Any]] = None, **toggles) -> ReferencePolicy:
        """
        Merge partial policy settings into the active policy.

        Args:
            partial: Dict of toggles to change
            **toggles: Same, as keyword arguments

        Returns:
            The new active policy
        """
        changes = dict(partial or {})
        changes.update(toggles)
        self.policy = self.policy.merged(changes)
        logger.debug(f"Reference policy updated: {self.policy.to_dict()}")
        return self.policy

    @property
    def current_employer(self) -> Optional[EmploymentPeriod]:
        """The first entry flagged current, if any."""
        return next((p for p in self.periods if p.is_current), None)

    @property
    def previous_employers(self) -> List[EmploymentPeriod]:
        return _most_recent_first([p for p in self.periods if not p.is_current])

    @property
    def vulnerable_work_employers(self) -> List[EmploymentPeriod]:
        return [p for p in self.periods if p.worked_with_vulnerable_people]

    @property
    def last_two_employers(self) -> List[EmploymentPeriod]:
        """Current employer plus the most recent previous ones, ignoring policy."""
        current = self.current_employer
        result = [current] if current else []
        return result + self.previous_employers[:_previous_limit(current is not None)]

    @property
    def required_references(self) -> List[EmploymentPeriod]:
        return resolve_references(self.periods, self.policy)


def resolve_references(
    periods: Sequence[EmploymentPeriod],
    policy: Optional[ReferencePolicy] = None,
) -> List[EmploymentPeriod]:
    """
    Select the employment periods that need a reference.

    Args:
        periods: The applicant's employment periods
        policy: Which rules apply (all of them by default)

    Returns:
        De-duplicated list ordered current, previous, then vulnerable-work
    """
    policy = policy or ReferencePolicy()
    resolver = ReferenceResolver(periods, policy)
    current = resolver.current_employer

    selected: Dict[Any, EmploymentPeriod] = {}

    include_current = policy.require_current_employer and current is not None
    if include_current:
        selected.setdefault(current.key, current)

    if policy.require_previous_employer:
        for period in resolver.previous_employers[:_previous_limit(include_current)]:
            selected.setdefault(period.key, period)

    if policy.require_vulnerable_work_employers:
        for period in resolver.vulnerable_work_employers:
            selected.setdefault(period.key, period)

    logger.debug(f"Resolved {len(selected)} required reference(s) from {len(periods)} period(s)")
    return list(selected.values())
