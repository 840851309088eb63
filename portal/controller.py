"""
Application Session - Form controller for one applicant

Composes the timeline rules with the step navigator:

1. Saved gap explanations are seeded first
2. Every change to the employment history recomputes the gaps and feeds
   the reference resolver
3. The navigator is gated by validate_step(), which holds the applicant on
   the employment step until every gap is explained and on the references
   step until every required referee has contact details

The session does no I/O. Routes load it from the database, run one
operation, and persist save_records().
"""

import logging
from typing import Any, Dict, Iterable, List, Optional, Sequence

from portal.stepper import ApplicationStep, StepNavigator
from portal.timeline import (
    EmploymentGap,
    EmploymentPeriod,
    GapExplanationStore,
    ReferencePolicy,
    ReferenceResolver,
    compute_gaps,
)

logger = logging.getLogger(__name__)

EMPLOYMENT_STEP = 'employment'
REFERENCES_STEP = 'references'


class ApplicationSession:
    """
    Owned state for one application session.

    Args:
        steps: Ordered application steps
        periods: Employment history
        persisted_explanations: Saved gap explanation records
        policy: Reference policy (all rules on by default)
        progress: Saved progress dict with current_step and completed_steps
    """

    def __init__(
        self,
        steps: Sequence[ApplicationStep],
        periods: Iterable[EmploymentPeriod] = (),
        persisted_explanations: Iterable[Dict[str, Any]] = (),
        policy: Optional[ReferencePolicy] = None,
        progress: Optional[Dict[str, Any]] = None,
    ):
        self.steps = list(steps)
        self.explanations = GapExplanationStore()
        self.resolver = ReferenceResolver(policy=policy)
        self.navigator = StepNavigator(
            total_steps=len(self.steps),
            validate_step=self.validate_step,
            on_step_change=self._log_step_change,
        )

        self.periods: List[EmploymentPeriod] = []
        self.gaps: List[EmploymentGap] = []

        # Seed before computing gaps so later edits win
        self.explanations.seed(persisted_explanations)
        self.set_employment(periods)

        if progress:
            self.navigator.restore(
                progress.get('current_step', 0),
                progress.get('completed_steps', ()),
            )

    # ===== EMPLOYMENT =====

    def set_employment(self, periods: Iterable[EmploymentPeriod]) -> List[EmploymentGap]:
        """Replace the employment history and recompute derived data."""
        self.periods = list(periods)
        self.gaps = compute_gaps(self.periods)
        self.resolver.set_periods(self.periods)
        return self.gaps

    def explain_gap(self, gap: EmploymentGap, text: str) -> None:
        self.explanations.set_explanation(gap, text)

    @property
    def all_gaps_explained(self) -> bool:
        return self.explanations.all_explained(self.gaps)

    # ===== REFERENCES =====

    @property
    def policy(self) -> ReferencePolicy:
        return self.resolver.policy

    def update_policy(self, partial: Dict[str, Any]) -> ReferencePolicy:
        return self.resolver.update_policy(partial)

    @property
    def required_references(self) -> List[EmploymentPeriod]:
        return self.resolver.required_references

    @property
    def missing_reference_contacts(self) -> List[EmploymentPeriod]:
        return [p for p in self.required_references if not p.has_reference_contact]

    # ===== NAVIGATION =====

    def step_index(self, step_id: str) -> Optional[int]:
        for index, step in enumerate(self.steps):
            if step.id == step_id:
                return index
        return None

    def validate_step(self, step_index: int) -> bool:
        """Gate for leaving a step; only employment and references have rules."""
        step_id = self.steps[step_index].id
        if step_id == EMPLOYMENT_STEP:
            return self.all_gaps_explained
        if step_id == REFERENCES_STEP:
            return not self.missing_reference_contacts
        return True

    async def go_to_step(self, target: int) -> bool:
        return await self.navigator.go_to_step(target)

    async def next_step(self) -> bool:
        return await self.navigator.next_step()

    async def previous_step(self) -> bool:
        return await self.navigator.previous_step()

    def mark_step_complete(self, step: int) -> bool:
        return self.navigator.mark_step_complete(step)

    def reset(self) -> None:
        self.navigator.reset()

    def submit(self) -> bool:
        """
        Complete the final step.

        Returns:
            True when the application is finished
        """
        if not self.navigator.is_last_step:
            logger.info("Submit rejected: applicant is not on the final step")
            return False
        if not self.validate_step(self.navigator.current_step):
            logger.info("Submit rejected: final step failed validation")
            return False
        self.navigator.mark_step_complete(self.navigator.current_step)
        return self.navigator.is_finished

    @property
    def is_finished(self) -> bool:
        return self.navigator.is_finished

    # ===== PROJECTIONS =====

    def progress_record(self) -> Dict[str, Any]:
        state = self.navigator.state.to_dict()
        state['steps'] = [{'id': s.id, 'label': s.label} for s in self.steps]
        state['current_step_id'] = self.steps[self.navigator.current_step].id
        state['is_finished'] = self.navigator.is_finished
        return state

    def snapshot(self) -> Dict[str, Any]:
        """Read-only view for the UI."""
        return {
            'gaps': self.explanations.to_records(self.gaps),
            'all_gaps_explained': self.all_gaps_explained,
            'orphaned_explanations': self.explanations.orphaned_keys(self.gaps),
            'required_references': [p.to_record() for p in self.required_references],
            'last_two_employers': [p.to_record() for p in self.resolver.last_two_employers],
            'reference_policy': self.policy.to_dict(),
            'progress': self.progress_record(),
        }

    def save_records(self) -> Dict[str, Any]:
        """Plain records for the persistence layer."""
        return {
            'explanations': self.explanations.all_records(),
            'required_references': [
                {
                    'employment_entry_id': p.id,
                    'employer': p.employer,
                    'reference_name': p.reference_name,
                    'reference_email': p.reference_email,
                    'reference_phone': p.reference_phone,
                }
                for p in self.required_references
            ],
            'reference_policy': self.policy.to_dict(),
            'progress': {
                'current_step': self.navigator.current_step,
                'completed_steps': self.navigator.completed_steps,
            },
        }

    def _log_step_change(self, new_step: int, previous_step: int) -> None:
        logger.info(
            f"Step change: {self.steps[previous_step].id} -> {self.steps[new_step].id}"
        )
