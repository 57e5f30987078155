"""
Time-slot grid: the fixed set of half-hour cells an admin can pick from.
"""

from collections.abc import Iterator
from datetime import date as date_type
from datetime import timedelta

from shiftboard import config


def to_minutes(hhmm: str) -> int:
    hours, _, minutes = hhmm.partition(":")
    return int(hours) * 60 + (int(minutes[:2]) if minutes else 0)


def from_minutes(total: int) -> str:
    return f"{total // 60:02d}:{total % 60:02d}"


def add_minutes(hhmm: str, delta: int) -> str:
    return from_minutes(to_minutes(hhmm) + delta)


def add_days(day: str, delta: int) -> str:
    return (date_type.fromisoformat(day) + timedelta(days=delta)).isoformat()


def duration_minutes(start_time: str, end_time: str) -> int:
    return to_minutes(end_time) - to_minutes(start_time)


def time_slots(
    start: str = config.DAY_START,
    end: str = config.DAY_END,
    step: int = config.SLOT_MINUTES,
) -> list[str]:
    """Every HH:MM from start to end inclusive."""
    return [
        from_minutes(m)
        for m in range(to_minutes(start), to_minutes(end) + 1, step)
    ]


def grid_dates(today: date_type, days: int = config.WINDOW_DAYS) -> list[str]:
    return [(today + timedelta(days=i)).isoformat() for i in range(days)]


class SlotGrid:
    """
    Cartesian product of grid_dates x time_slots, computed once per load.
    """

    def __init__(
        self,
        today: date_type,
        *,
        days: int = config.WINDOW_DAYS,
        start: str = config.DAY_START,
        end: str = config.DAY_END,
        step: int = config.SLOT_MINUTES,
    ) -> None:
        self.step = step
        self.dates = grid_dates(today, days)
        self.times = time_slots(start, end, step)
        self._date_set = frozenset(self.dates)
        self._time_set = frozenset(self.times)

    def contains_date(self, day: str) -> bool:
        return day in self._date_set

    def __contains__(self, slot: object) -> bool:
        if not isinstance(slot, tuple) or len(slot) != 2:
            return False
        day, hhmm = slot
        return day in self._date_set and hhmm in self._time_set

    def __iter__(self) -> Iterator[tuple[str, str]]:
        for day in self.dates:
            for t in self.times:
                yield day, t

    def __len__(self) -> int:
        return len(self.dates) * len(self.times)
