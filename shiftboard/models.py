"""
Domain models for doctors and their shifts.
"""

import re
from datetime import date as date_type
from datetime import datetime
from enum import StrEnum

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel

_HHMM = re.compile(r"^([0-9]{2}):([0-9]{2})$")


def normalize_date(value: str) -> str:
    # wire dates may carry a time component, e.g. 2024-06-01T00:00:00Z
    try:
        return date_type.fromisoformat(value[:10]).isoformat()
    except ValueError:
        raise ValueError(f"{value!r} is not a YYYY-MM-DD date") from None


def normalize_time(value: str) -> str:
    # HH:MM[:SS] -> HH:MM, 24:00 allowed as an end of day
    hhmm = value[:5]
    match = _HHMM.match(hhmm)
    if match is None:
        raise ValueError(f"{value!r} is not an HH:MM time")
    hours, minutes = int(match[1]), int(match[2])
    if minutes > 59 or hours > 24 or (hours == 24 and minutes):
        raise ValueError(f"{value!r} is outside 00:00-24:00")
    return hhmm


class CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class DoctorStatus(StrEnum):
    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"


class ShiftStatus(StrEnum):
    PENDING = "pending"
    ACCEPTED = "accepted"
    REJECTED = "rejected"
    BUSY = "busy"


# shifts an admin has to look at
ATTENTION_STATUSES = frozenset(
    {ShiftStatus.PENDING, ShiftStatus.REJECTED, ShiftStatus.BUSY}
)


class Doctor(CamelModel):
    id: str
    name: str
    email: str
    specialty: str | None = None
    status: DoctorStatus = DoctorStatus.PENDING

    @property
    def schedulable(self) -> bool:
        return self.status == DoctorStatus.APPROVED


class TimeInterval(CamelModel):
    date: str
    start_time: str
    end_time: str

    @field_validator("date")
    @classmethod
    def _normalize_date(cls, v: str) -> str:
        return normalize_date(v)

    @field_validator("start_time", "end_time")
    @classmethod
    def _normalize_time(cls, v: str) -> str:
        return normalize_time(v)


class CandidateShift(TimeInterval):
    """A merged run of selected slots, not yet persisted."""


class Shift(TimeInterval):
    id: str
    doctor_id: str
    status: ShiftStatus = ShiftStatus.PENDING
    rejection_reason: str | None = None
    busy_reason: str | None = None
    admin_note: str | None = None
    is_booked: bool = False  # booked shifts are read-only for admins
    version: int = 1  # bumped on every write
    created_at: datetime | None = None
    updated_at: datetime | None = None

    @property
    def needs_attention(self) -> bool:
        return self.status in ATTENTION_STATUSES


class ShiftStats(CamelModel):
    total: int = 0
    pending: int = 0
    accepted: int = 0
    rejected: int = 0
    busy: int = 0


class ShiftResponseAction(StrEnum):
    ACCEPT = "accept"
    REJECT = "reject"
    BUSY = "busy"


class ShiftUpdate(CamelModel):
    date: str | None = None
    start_time: str | None = None
    end_time: str | None = None
    admin_note: str | None = None

    @field_validator("date")
    @classmethod
    def _normalize_date(cls, v: str | None) -> str | None:
        return normalize_date(v) if v is not None else None

    @field_validator("start_time", "end_time")
    @classmethod
    def _normalize_time(cls, v: str | None) -> str | None:
        return normalize_time(v) if v is not None else None

    def changes(self) -> dict:
        return self.model_dump(exclude_none=True)


class BulkCreateRequest(CamelModel):
    doctor_id: str
    slots: list[CandidateShift] = Field(default_factory=list)


class CreateShiftRequest(TimeInterval):
    doctor_id: str


class ReplaceDoctorRequest(CamelModel):
    new_doctor_id: str
    admin_note: str | None = None
    force_replace: bool = False


class RespondRequest(CamelModel):
    doctor_id: str
    action: ShiftResponseAction
    reason: str | None = None
