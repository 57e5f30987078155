"""
Write-path checks shared by the admin session (pre-flight) and the schedule
API (final authority).
"""

from collections import defaultdict
from collections.abc import Iterable

from shiftboard import config
from shiftboard.conflicts import find_overlaps
from shiftboard.errors import DailyCapExceeded, SlotConflict, ValidationError
from shiftboard.models import TimeInterval
from shiftboard.slots import duration_minutes, to_minutes


def minutes_by_date(intervals: Iterable[TimeInterval]) -> dict[str, int]:
    totals: dict[str, int] = defaultdict(int)
    for interval in intervals:
        totals[interval.date] += duration_minutes(
            interval.start_time, interval.end_time
        )
    return dict(totals)


def check_interval(
    interval: TimeInterval, step: int = config.SLOT_MINUTES
) -> None:
    start = to_minutes(interval.start_time)
    end = to_minutes(interval.end_time)
    if start >= end:
        raise ValidationError(
            f"{interval.date}: start {interval.start_time} must be before "
            f"end {interval.end_time}"
        )
    if start % step or end % step:
        raise ValidationError(
            f"{interval.date} {interval.start_time}-{interval.end_time} "
            f"is not aligned to {step} minutes"
        )


def check_daily_cap(
    candidates: Iterable[TimeInterval],
    existing: Iterable[TimeInterval],
    cap_minutes: int = config.DAILY_CAP_MINUTES,
) -> None:
    """Raise DailyCapExceeded for the first candidate date over the cap."""
    new = minutes_by_date(candidates)
    booked = minutes_by_date(existing)
    for day in sorted(new):
        total = new[day] + booked.get(day, 0)
        if total > cap_minutes:
            raise DailyCapExceeded(day, total, cap_minutes)


def check_no_overlap(
    candidates: Iterable[TimeInterval], existing: Iterable[TimeInterval]
) -> None:
    overlaps = find_overlaps(candidates, existing)
    if overlaps:
        candidate, _ = overlaps[0]
        raise SlotConflict(
            candidate.date, candidate.start_time, candidate.end_time
        )


def validate_bulk(
    candidates: Iterable[TimeInterval],
    existing: Iterable[TimeInterval],
    *,
    cap_minutes: int = config.DAILY_CAP_MINUTES,
    step: int = config.SLOT_MINUTES,
) -> None:
    """
    All-or-nothing validation of a bulk request for one doctor.

    `existing` must be that doctor's current shifts.
    """
    candidates = list(candidates)
    existing = list(existing)
    for candidate in candidates:
        check_interval(candidate, step)
    check_no_overlap(candidates, existing)
    check_daily_cap(candidates, existing, cap_minutes)
