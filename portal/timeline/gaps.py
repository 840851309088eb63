"""
Gap Analyzer - Unexplained gaps in an employment history

Periods are ordered by start date and each consecutive pair is compared:
the time between the end of one job and the start of the next is a gap.
Short breaks are normal transition time, so only gaps of
MIN_GAP_DAYS or more are reported.

Example:
    Jan-Jun 2020 then Jan 2021 onwards -> one gap, 2020-07-01 to
    2021-01-01, 184 days.
"""

import logging
from datetime import timedelta
from typing import Iterable, List

from .models import EmploymentGap, EmploymentPeriod

logger = logging.getLogger(__name__)

MIN_GAP_DAYS = 31


def compute_gaps(periods: Iterable[EmploymentPeriod]) -> List[EmploymentGap]:
    """
    Find unexplained gaps between consecutive employment periods.

    Pairs missing the earlier end date or the later start date are skipped,
    as are overlapping pairs. Pure: the same input always gives the same
    gaps in the same (chronological) order.

    Args:
        periods: Employment periods in any order

    Returns:
        List of EmploymentGap, oldest first
    """
    dated = [p for p in periods if p.start_date is not None]
    if len(dated) < 2:
        return []

    # sorted() is stable, ties keep their input order
    ordered = sorted(dated, key=lambda p: p.start_date)

    gaps = []
    for earlier, later in zip(ordered, ordered[1:]):
        if earlier.end_date is None or later.start_date is None:
            continue

        gap_start = earlier.end_date + timedelta(days=1)
        if later.start_date <= gap_start:
            continue

        length = (later.start_date - gap_start).days
        if length < MIN_GAP_DAYS:
            continue

        gaps.append(EmploymentGap(
            start_date=gap_start,
            end_date=later.start_date,
            length_in_days=length,
        ))

    logger.debug(f"Found {len(gaps)} employment gap(s) across {len(ordered)} dated period(s)")
    return gaps
