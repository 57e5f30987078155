"""
Shift repository: the write path behind the schedule API.

Overlap and daily-cap rules are re-checked here, so they hold no matter
which client submits the request.
"""

import uuid
from collections import Counter
from collections.abc import Callable, Iterable
from datetime import UTC, datetime

from shiftboard import config
from shiftboard.conflicts import intervals_overlap
from shiftboard.database import InMemoryKeyValueDatabase
from shiftboard.errors import (
    NotFoundError,
    ReplacementError,
    ShiftBookedError,
    StaleShiftError,
    ValidationError,
)
from shiftboard.logging_config import get_logger
from shiftboard.models import (
    ATTENTION_STATUSES,
    Doctor,
    DoctorStatus,
    Shift,
    ShiftResponseAction,
    ShiftStats,
    ShiftStatus,
    TimeInterval,
)
from shiftboard.policies import ReplacementPolicy
from shiftboard.validation import check_daily_cap, validate_bulk

logger = get_logger(__name__)

NowFn = Callable[[], datetime]
IdFn = Callable[[], str]

# statuses that keep a doctor busy when checking a replacement target
_HOLDING_STATUSES = frozenset({ShiftStatus.PENDING, ShiftStatus.ACCEPTED})


def _sorted(shifts: Iterable[Shift]) -> list[Shift]:
    return sorted(shifts, key=lambda s: (s.date, s.start_time, s.id))


def _in_range(shift: Shift, date_from: str | None, date_to: str | None) -> bool:
    if date_from and shift.date < date_from:
        return False
    if date_to and shift.date > date_to:
        return False
    return True


class ShiftRepository:
    def __init__(
        self,
        db: InMemoryKeyValueDatabase[str, Shift | Doctor],
        *,
        now_fn: NowFn = lambda: datetime.now(UTC),
        id_fn: IdFn = lambda: uuid.uuid4().hex,
        cap_minutes: int = config.DAILY_CAP_MINUTES,
        slot_minutes: int = config.SLOT_MINUTES,
        replacement_policy: ReplacementPolicy | None = None,
    ) -> None:
        self.db = db
        self.now_fn = now_fn
        self.id_fn = id_fn
        self.cap_minutes = cap_minutes
        self.slot_minutes = slot_minutes
        self.replacement_policy = replacement_policy or ReplacementPolicy(
            cap_minutes=cap_minutes
        )

    # doctors

    def get_doctor(self, doctor_id: str) -> Doctor:
        doctor = self.db.get(f"doctor:{doctor_id}")
        if not doctor or not isinstance(doctor, Doctor):
            raise NotFoundError(f"Doctor {doctor_id} not found")
        return doctor

    def list_doctors(self, status: DoctorStatus | None = None) -> list[Doctor]:
        doctors = self.db.all_of(Doctor)
        if status is not None:
            doctors = [d for d in doctors if d.status == status]
        return sorted(doctors, key=lambda d: (d.name, d.id))

    def list_approved_doctors(self) -> list[Doctor]:
        return self.list_doctors(DoctorStatus.APPROVED)

    def _schedulable_doctor(self, doctor_id: str) -> Doctor:
        doctor = self.get_doctor(doctor_id)
        if not doctor.schedulable:
            raise ValidationError(
                f"Doctor {doctor_id} is {doctor.status}, only approved "
                "doctors can be scheduled"
            )
        return doctor

    # reads

    def get_shift(self, shift_id: str) -> Shift:
        shift = self.db.get(f"shift:{shift_id}")
        if not shift or not isinstance(shift, Shift):
            raise NotFoundError(f"Shift {shift_id} not found")
        return shift

    def list_shifts_for_doctor(
        self,
        doctor_id: str,
        date_from: str | None = None,
        date_to: str | None = None,
    ) -> list[Shift]:
        return _sorted(
            s
            for s in self.db.all_of(Shift)
            if s.doctor_id == doctor_id and _in_range(s, date_from, date_to)
        )

    def list_all_shifts(
        self, date_from: str | None = None, date_to: str | None = None
    ) -> list[Shift]:
        return _sorted(
            s for s in self.db.all_of(Shift) if _in_range(s, date_from, date_to)
        )

    def list_pending_attention_shifts(self) -> list[Shift]:
        return _sorted(
            s for s in self.db.all_of(Shift) if s.status in ATTENTION_STATUSES
        )

    def shift_stats(self, doctor_id: str) -> ShiftStats:
        counts = Counter(
            s.status for s in self.db.all_of(Shift) if s.doctor_id == doctor_id
        )
        return ShiftStats(
            total=sum(counts.values()),
            **{status.value: counts[status] for status in ShiftStatus},
        )

    # writes

    def bulk_create_shifts(
        self, doctor_id: str, slots: Iterable[TimeInterval]
    ) -> list[Shift]:
        """Create every slot as a pending shift, or none of them."""
        slots = list(slots)
        if not slots:
            raise ValidationError("No slots to create")
        self._schedulable_doctor(doctor_id)

        existing = self.list_shifts_for_doctor(doctor_id)
        try:
            validate_bulk(
                slots,
                existing,
                cap_minutes=self.cap_minutes,
                step=self.slot_minutes,
            )
        except ValidationError as exc:
            logger.warning(
                "bulk_create_rejected",
                doctor_id=doctor_id,
                slots=len(slots),
                reason=exc.message,
            )
            raise

        now = self.now_fn()
        created = [
            Shift(
                id=self.id_fn(),
                doctor_id=doctor_id,
                date=slot.date,
                start_time=slot.start_time,
                end_time=slot.end_time,
                created_at=now,
                updated_at=now,
            )
            for slot in slots
        ]
        self.db.put_many({f"shift:{s.id}": s for s in created})
        logger.info(
            "shifts_created",
            doctor_id=doctor_id,
            count=len(created),
            dates=sorted({s.date for s in created}),
        )
        return _sorted(created)

    def create_shift(self, doctor_id: str, slot: TimeInterval) -> Shift:
        return self.bulk_create_shifts(doctor_id, [slot])[0]

    def _save(
        self, current: Shift, updated: Shift, expected_version: int | None
    ) -> Shift:
        if expected_version is not None and current.version != expected_version:
            raise StaleShiftError(current.id, expected_version, current.version)

        updated = updated.model_copy(
            update={"version": current.version + 1, "updated_at": self.now_fn()}
        )
        if not self.db.replace_if_version(
            f"shift:{current.id}", updated, current.version
        ):
            latest = self.get_shift(current.id)
            raise StaleShiftError(current.id, current.version, latest.version)
        return updated

    def update_shift(
        self,
        shift_id: str,
        changes: dict,
        expected_version: int | None = None,
    ) -> Shift:
        shift = self.get_shift(shift_id)
        if shift.is_booked:
            raise ShiftBookedError(shift_id)

        updated = shift.model_copy(update=changes)
        # revalidate the shift's new bounds against the doctor's other shifts
        others = [
            s
            for s in self.list_shifts_for_doctor(shift.doctor_id)
            if s.id != shift.id
        ]
        validate_bulk(
            [updated],
            others,
            cap_minutes=self.cap_minutes,
            step=self.slot_minutes,
        )

        saved = self._save(shift, updated, expected_version)
        logger.info("shift_updated", shift_id=shift_id, fields=sorted(changes))
        return saved

    def delete_shift(self, shift_id: str, expected_version: int | None = None) -> None:
        shift = self.get_shift(shift_id)
        if shift.is_booked:
            raise ShiftBookedError(shift_id)
        if expected_version is not None and shift.version != expected_version:
            raise StaleShiftError(shift_id, expected_version, shift.version)
        self.db.delete(f"shift:{shift_id}")
        logger.info("shift_deleted", shift_id=shift_id, doctor_id=shift.doctor_id)

    def replace_shift_doctor(
        self,
        shift_id: str,
        new_doctor_id: str,
        admin_note: str | None = None,
        *,
        force_replace: bool = False,
        expected_version: int | None = None,
    ) -> Shift:
        """
        Hand a flagged shift to another approved doctor.

        The shift goes back to pending under the new doctor. Rejection and
        busy reasons are kept as history of why it was flagged.
        """
        shift = self.get_shift(shift_id)
        if not shift.needs_attention:
            raise ReplacementError(
                f"Shift {shift_id} is {shift.status}, only pending, rejected "
                "or busy shifts can be reassigned"
            )
        if new_doctor_id == shift.doctor_id:
            raise ReplacementError("New doctor must differ from the current one")
        self._schedulable_doctor(new_doctor_id)

        target_shifts = [
            s
            for s in self.list_shifts_for_doctor(new_doctor_id, shift.date, shift.date)
            if s.id != shift.id
        ]
        if not force_replace:
            clash = next(
                (
                    s
                    for s in target_shifts
                    if s.status in _HOLDING_STATUSES and intervals_overlap(s, shift)
                ),
                None,
            )
            if clash is not None:
                raise ReplacementError(
                    f"Doctor {new_doctor_id} already has a shift on {clash.date} "
                    f"{clash.start_time}-{clash.end_time}"
                )
        if self.replacement_policy.enforce_daily_cap:
            check_daily_cap(
                [shift], target_shifts, self.replacement_policy.cap_minutes
            )

        previous_doctor_id = shift.doctor_id
        updated = shift.model_copy(
            update={
                "doctor_id": new_doctor_id,
                "status": ShiftStatus.PENDING,
                "admin_note": admin_note
                or f"Replaced from doctor {previous_doctor_id}",
            }
        )
        saved = self._save(shift, updated, expected_version)
        logger.info(
            "shift_doctor_replaced",
            shift_id=shift_id,
            from_doctor_id=previous_doctor_id,
            to_doctor_id=new_doctor_id,
            forced=force_replace,
        )
        return saved

    def respond_to_shift(
        self,
        shift_id: str,
        doctor_id: str,
        action: ShiftResponseAction,
        reason: str | None = None,
    ) -> Shift:
        """Doctor-side answer to a pending shift."""
        shift = self.get_shift(shift_id)
        if shift.doctor_id != doctor_id or shift.status != ShiftStatus.PENDING:
            raise NotFoundError(f"No pending shift {shift_id} for doctor {doctor_id}")

        match action:
            case ShiftResponseAction.ACCEPT:
                changes = {"status": ShiftStatus.ACCEPTED}
            case ShiftResponseAction.REJECT:
                if not reason:
                    raise ValidationError("A rejection reason is required")
                changes = {"status": ShiftStatus.REJECTED, "rejection_reason": reason}
            case ShiftResponseAction.BUSY:
                if not reason:
                    raise ValidationError("A busy reason is required")
                changes = {"status": ShiftStatus.BUSY, "busy_reason": reason}

        saved = self._save(shift, shift.model_copy(update=changes), None)
        logger.info(
            "shift_answered", shift_id=shift_id, doctor_id=doctor_id, action=action.value
        )
        return saved
