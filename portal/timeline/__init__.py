"""
Timeline Package - Employment history analysis

This module provides the rules applied to an applicant's employment
history before the application can move on:

- Gaps: unexplained breaks of a month or more between jobs
- Explanations: the applicant's text for each gap
- References: which employers must be contacted for a reference
"""

from .models import (
    EmploymentPeriod,
    EmploymentGap,
    parse_date,
)
from .gaps import (
    MIN_GAP_DAYS,
    compute_gaps,
)
from .explanations import (
    GapExplanationStore,
    gap_key,
)
from .references import (
    ReferencePolicy,
    ReferenceResolver,
    resolve_references,
)

__all__ = [
    # Models
    'EmploymentPeriod',
    'EmploymentGap',
    'parse_date',
    # Gaps
    'MIN_GAP_DAYS',
    'compute_gaps',
    # Explanations
    'GapExplanationStore',
    'gap_key',
    # References
    'ReferencePolicy',
    'ReferenceResolver',
    'resolve_references',
]
