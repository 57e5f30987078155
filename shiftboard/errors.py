class SchedulingError(Exception):
    """Base error; status_code is what the API answers with."""

    status_code = 500

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message


class ValidationError(SchedulingError):
    status_code = 400


class DoctorNotSelected(ValidationError):
    def __init__(self) -> None:
        super().__init__("Select a doctor first")


class EmptySelection(ValidationError):
    def __init__(self) -> None:
        super().__init__("Select at least one slot")


class DailyCapExceeded(ValidationError):
    def __init__(self, date: str, total_minutes: int, cap_minutes: int) -> None:
        super().__init__(
            f"Total shift time on {date} would be {total_minutes} minutes, "
            f"over the {cap_minutes} minute daily limit"
        )
        self.date = date
        self.total_minutes = total_minutes
        self.cap_minutes = cap_minutes


class SlotConflict(ValidationError):
    def __init__(self, date: str, start_time: str, end_time: str) -> None:
        super().__init__(
            f"{date} {start_time}-{end_time} overlaps an existing shift"
        )
        self.date = date
        self.start_time = start_time
        self.end_time = end_time


class SpecialtyConflict(ValidationError):
    def __init__(self, labels: list[str]) -> None:
        shown = ", ".join(labels[:3])
        more = f" and {len(labels) - 3} more" if len(labels) > 3 else ""
        super().__init__(
            f"Another doctor of the same specialty already covers: {shown}{more}"
        )
        self.labels = labels


class PastSlotsDropped(ValidationError):
    def __init__(self, slots: list[tuple[str, str]]) -> None:
        shown = ", ".join(f"{day} {hhmm}" for day, hhmm in slots[:3])
        more = f" and {len(slots) - 3} more" if len(slots) > 3 else ""
        super().__init__(
            f"Removed slots that are now in the past: {shown}{more}; "
            "review the selection and submit again"
        )
        self.slots = slots


class ReplacementError(ValidationError):
    pass


class NothingToReplicate(ValidationError):
    def __init__(self) -> None:
        super().__init__(
            "No free slot to replicate inside the visible days; "
            "increase the number of days or pick other slots"
        )


class ShiftBookedError(ValidationError):
    def __init__(self, shift_id: str) -> None:
        super().__init__(f"Shift {shift_id} is booked and cannot be changed")
        self.shift_id = shift_id


class NotFoundError(SchedulingError):
    status_code = 404


class StaleShiftError(SchedulingError):
    status_code = 409

    def __init__(self, shift_id: str, expected: int, actual: int) -> None:
        super().__init__(
            f"Shift {shift_id} was modified (version {actual}, expected {expected})"
        )
        self.shift_id = shift_id
        self.expected = expected
        self.actual = actual


class RepositoryError(SchedulingError):
    """A schedule API call failed; status_code mirrors the HTTP answer."""

    def __init__(self, message: str, status_code: int = 503) -> None:
        super().__init__(message)
        self.status_code = status_code
