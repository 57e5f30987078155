"""
Slot occupancy and interval overlap checks.

A slot is a (date, "HH:MM") pair. A shift covers a slot when the slot's
start falls inside the shift's half-open [start_time, end_time) range.
"""

from collections.abc import Iterable, Mapping, Set
from datetime import date as date_type
from datetime import datetime, time
from enum import StrEnum

from shiftboard import config
from shiftboard.models import Doctor, Shift, TimeInterval
from shiftboard.slots import from_minutes, to_minutes


class SlotState(StrEnum):
    PAST = "past"
    OCCUPIED = "occupied"
    SELECTED = "selected"
    AVAILABLE = "available"


def covers_slot(interval: TimeInterval, day: str, hhmm: str) -> bool:
    if interval.date != day:
        return False
    t = to_minutes(hhmm)
    return to_minutes(interval.start_time) <= t < to_minutes(interval.end_time)


def is_occupied(day: str, hhmm: str, shifts: Iterable[TimeInterval]) -> bool:
    return any(covers_slot(s, day, hhmm) for s in shifts)


def is_past(day: str, hhmm: str, now: datetime) -> bool:
    slot_at = datetime.combine(
        date_type.fromisoformat(day),
        time.fromisoformat(hhmm),
        tzinfo=now.tzinfo,
    )
    return slot_at < now


def slot_state(
    day: str,
    hhmm: str,
    *,
    shifts: Iterable[TimeInterval],
    selected: Set[tuple[str, str]] = frozenset(),
    now: datetime,
) -> SlotState:
    # precedence: past > occupied > selected > available
    if is_past(day, hhmm, now):
        return SlotState.PAST
    if is_occupied(day, hhmm, shifts):
        return SlotState.OCCUPIED
    if (day, hhmm) in selected:
        return SlotState.SELECTED
    return SlotState.AVAILABLE


def intervals_overlap(a: TimeInterval, b: TimeInterval) -> bool:
    if a.date != b.date:
        return False
    return to_minutes(a.start_time) < to_minutes(b.end_time) and to_minutes(
        b.start_time
    ) < to_minutes(a.end_time)


def find_overlaps(
    candidates: Iterable[TimeInterval], existing: Iterable[TimeInterval]
) -> list[tuple[TimeInterval, TimeInterval]]:
    """
    Pairs (candidate, other) that overlap, where other is either an existing
    interval or an earlier candidate of the same request.
    """
    seen = list(existing)
    hits = []
    for candidate in candidates:
        for other in seen:
            if intervals_overlap(candidate, other):
                hits.append((candidate, other))
                break
        seen.append(candidate)
    return hits


def slot_times(
    interval: TimeInterval, step: int = config.SLOT_MINUTES
) -> list[str]:
    return [
        from_minutes(m)
        for m in range(
            to_minutes(interval.start_time), to_minutes(interval.end_time), step
        )
    ]


def specialty_conflicts(
    candidates: Iterable[TimeInterval],
    *,
    doctor: Doctor,
    all_shifts: Iterable[Shift],
    doctors: Mapping[str, Doctor],
    step: int = config.SLOT_MINUTES,
) -> list[str]:
    """
    Labels of candidate intervals that collide with a shift held by another
    doctor of the same specialty. Doctors without a specialty never collide.
    """
    if not doctor.specialty:
        return []

    rivals = [
        s
        for s in all_shifts
        if s.doctor_id != doctor.id
        and (other := doctors.get(s.doctor_id)) is not None
        and other.specialty == doctor.specialty
    ]

    labels = []
    for candidate in candidates:
        if any(
            is_occupied(candidate.date, t, rivals)
            for t in slot_times(candidate, step)
        ):
            labels.append(
                f"{candidate.date} {candidate.start_time}-{candidate.end_time}"
            )
    return labels
