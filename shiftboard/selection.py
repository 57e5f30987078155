"""
Slot selection, merging selected slots into shifts, and replicating a day's
pattern onto the following days.
"""

from collections import defaultdict
from collections.abc import Iterable, Iterator
from datetime import datetime

from shiftboard import config
from shiftboard.conflicts import is_occupied, is_past
from shiftboard.models import CandidateShift, TimeInterval
from shiftboard.slots import SlotGrid, add_days, add_minutes

Slot = tuple[str, str]

MAX_REPLICATION_DAYS = config.WINDOW_DAYS - 1


def merge_slots(
    slots: Iterable[Slot], step: int = config.SLOT_MINUTES
) -> list[CandidateShift]:
    """
    Collapse selected slots into the fewest contiguous [start, end) intervals,
    one run per gap per date. Output is ordered by date, then start time.
    """
    by_date: dict[str, set[str]] = defaultdict(set)
    for day, hhmm in slots:
        by_date[day].add(hhmm)

    merged: list[CandidateShift] = []
    for day in sorted(by_date):
        times = sorted(by_date[day])
        start = prev = times[0]
        for current in times[1:]:
            if current != add_minutes(prev, step):
                merged.append(
                    CandidateShift(
                        date=day,
                        start_time=start,
                        end_time=add_minutes(prev, step),
                    )
                )
                start = current
            prev = current
        merged.append(
            CandidateShift(
                date=day, start_time=start, end_time=add_minutes(prev, step)
            )
        )
    return merged


class SlotSelection:
    """Set of (date, time) slots picked by the operator."""

    def __init__(self, slots: Iterable[Slot] = ()) -> None:
        self._slots: set[Slot] = set(slots)

    def __contains__(self, slot: object) -> bool:
        return slot in self._slots

    def __iter__(self) -> Iterator[Slot]:
        return iter(sorted(self._slots))

    def __len__(self) -> int:
        return len(self._slots)

    def __bool__(self) -> bool:
        return bool(self._slots)

    def as_set(self) -> frozenset[Slot]:
        return frozenset(self._slots)

    def clear(self) -> None:
        self._slots.clear()

    def dates(self) -> list[str]:
        return sorted({day for day, _ in self._slots})

    def discard_past(self, now: datetime) -> list[Slot]:
        """Drop slots that have slipped into the past; returns them sorted."""
        expired = sorted(s for s in self._slots if is_past(s[0], s[1], now))
        self._slots.difference_update(expired)
        return expired

    def toggle(
        self,
        day: str,
        hhmm: str,
        *,
        shifts: Iterable[TimeInterval],
        now: datetime,
        grid: SlotGrid | None = None,
    ) -> bool:
        """
        Flip membership of a slot. Past and occupied slots are left alone,
        as are slots outside `grid` when one is given.
        Returns True when the selection changed.
        """
        slot = (day, hhmm)
        if slot in self._slots:
            self._slots.discard(slot)
            return True
        if grid is not None and slot not in grid:
            return False
        if is_past(day, hhmm, now) or is_occupied(day, hhmm, shifts):
            return False
        self._slots.add(slot)
        return True

    def replicate(
        self,
        days: int,
        *,
        grid: SlotGrid,
        shifts: Iterable[TimeInterval],
        now: datetime,
    ) -> int:
        """
        Copy the earliest selected day's times onto the next `days` days.

        Target dates outside the grid are skipped, as are past or occupied
        target slots. Returns how many slots were added.
        """
        days = max(0, min(days, MAX_REPLICATION_DAYS))
        if days == 0 or not self._slots:
            return 0

        shifts = list(shifts)
        base_date = self.dates()[0]
        base_times = sorted(t for day, t in self._slots if day == base_date)

        added = 0
        for offset in range(1, days + 1):
            target = add_days(base_date, offset)
            if not grid.contains_date(target):
                continue
            for hhmm in base_times:
                slot = (target, hhmm)
                if slot in self._slots:
                    continue
                if is_past(target, hhmm, now) or is_occupied(
                    target, hhmm, shifts
                ):
                    continue
                self._slots.add(slot)
                added += 1
        return added

    def merged(self, step: int = config.SLOT_MINUTES) -> list[CandidateShift]:
        return merge_slots(self._slots, step)
