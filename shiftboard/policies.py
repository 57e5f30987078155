"""
Pluggable scheduling policies.

Neither policy here has verified business rules behind it, so both are
swappable: the overtime advisory is any callable with the OvertimePolicy
signature, and the replacement cap check is a flag on ReplacementPolicy.
"""

from collections.abc import Callable, Iterable
from dataclasses import dataclass
from datetime import date as date_type
from datetime import timedelta

from shiftboard import config
from shiftboard.models import TimeInterval

OvertimePolicy = Callable[[Iterable[TimeInterval], date_type], str | None]


@dataclass(frozen=True)
class ConsecutiveDaysPolicy:
    """
    Advisory when the doctor works every one of the `days` days starting
    today.
    """

    days: int = config.OVERTIME_DAYS

    def __call__(
        self, shifts: Iterable[TimeInterval], today: date_type
    ) -> str | None:
        window = {
            (today + timedelta(days=i)).isoformat() for i in range(self.days)
        }
        worked = {s.date for s in shifts if s.date in window}
        if len(worked) >= self.days:
            return (
                f"Doctor works {self.days} consecutive days starting "
                f"{today.isoformat()}. This is overtime."
            )
        return None


def no_overtime_advisory(
    shifts: Iterable[TimeInterval], today: date_type
) -> str | None:
    return None


@dataclass(frozen=True)
class ReplacementPolicy:
    enforce_daily_cap: bool = config.REPLACEMENT_ENFORCES_CAP
    cap_minutes: int = config.DAILY_CAP_MINUTES
