"""
Admin scheduling session: the state behind the doctor schedule screen.

Holds the loaded doctors, cached shift snapshots, the operator's slot
selection and an inline error banner. Validation failures are reported
before any request is sent; repository failures are caught where the call
is made and leave local state as it was.
"""

from collections.abc import Awaitable, Callable
from datetime import datetime

from shiftboard import config
from shiftboard.client import ShiftRepositoryClient
from shiftboard.conflicts import SlotState, slot_state, specialty_conflicts
from shiftboard.errors import (
    DoctorNotSelected,
    EmptySelection,
    NothingToReplicate,
    PastSlotsDropped,
    ReplacementError,
    RepositoryError,
    SpecialtyConflict,
    ValidationError,
)
from shiftboard.logging_config import get_logger
from shiftboard.models import CandidateShift, Doctor, Shift
from shiftboard.policies import ConsecutiveDaysPolicy, OvertimePolicy
from shiftboard.selection import SlotSelection
from shiftboard.slots import SlotGrid
from shiftboard.validation import validate_bulk

logger = get_logger(__name__)

NowFn = Callable[[], datetime]

CREATE_FAILED = "Could not create shifts. Please try again."
DELETE_FAILED = "Could not delete the shift. Please try again."
REPLACE_FAILED = "Could not replace the doctor. Please try again."
LOAD_FAILED = "Could not load schedule data. Please try again."
STALE_SHIFT = "The shift was changed by someone else; the schedule has been reloaded."


class ShiftCache:
    """
    Last fetched snapshot of a shift list.

    Nothing pushes changes here: callers invalidate after every mutation and
    refresh before reading again.
    """

    def __init__(self, loader: Callable[[], Awaitable[list[Shift]]]) -> None:
        self._loader = loader
        self._items: list[Shift] = []
        self.stale = True

    @property
    def items(self) -> list[Shift]:
        return self._items

    def invalidate(self) -> None:
        self.stale = True

    def replace(self, items: list[Shift]) -> None:
        self._items = items
        self.stale = False

    async def refresh(self) -> list[Shift]:
        self._items = await self._loader()
        self.stale = False
        return self._items

    def find(self, shift_id: str) -> Shift | None:
        return next((s for s in self._items if s.id == shift_id), None)


class SchedulingSession:
    def __init__(
        self,
        repository: ShiftRepositoryClient,
        *,
        now_fn: NowFn = datetime.now,
        overtime_policy: OvertimePolicy | None = None,
        cap_minutes: int = config.DAILY_CAP_MINUTES,
        slot_minutes: int = config.SLOT_MINUTES,
        window_days: int = config.WINDOW_DAYS,
    ) -> None:
        self.repository = repository
        self.now_fn = now_fn
        self.overtime_policy = overtime_policy or ConsecutiveDaysPolicy()
        self.cap_minutes = cap_minutes
        self.slot_minutes = slot_minutes
        self.window_days = window_days

        self.grid = SlotGrid(now_fn().date(), days=window_days, step=slot_minutes)
        self.doctors: dict[str, Doctor] = {}
        self.selected_doctor_id: str | None = None
        self.selection = SlotSelection()

        self.doctor_shifts = ShiftCache(self._load_doctor_shifts)
        self.all_shifts = ShiftCache(self.repository.list_all_shifts)
        self.pending_shifts = ShiftCache(
            self.repository.list_pending_attention_shifts
        )

        self.error: str | None = None
        self.advisory: str | None = None
        self.busy = False

    async def _load_doctor_shifts(self) -> list[Shift]:
        if not self.selected_doctor_id:
            return []
        return await self.repository.list_shifts_for_doctor(self.selected_doctor_id)

    @property
    def selected_doctor(self) -> Doctor | None:
        if self.selected_doctor_id is None:
            return None
        return self.doctors.get(self.selected_doctor_id)

    @property
    def working_shifts(self) -> list[Shift]:
        """Shifts that occupy slots in the current view."""
        if self.selected_doctor_id:
            return self.doctor_shifts.items
        return self.all_shifts.items

    def _fail(self, message: str) -> None:
        # banner stays until the next successful action
        self.error = message

    def _succeed(self) -> None:
        self.error = None

    async def _refresh_after_mutation(self) -> bool:
        """Re-fetch every snapshot. On failure the banner asks for a reload."""
        for cache in (self.doctor_shifts, self.all_shifts, self.pending_shifts):
            cache.invalidate()
        try:
            await self.doctor_shifts.refresh()
            await self.all_shifts.refresh()
            await self.pending_shifts.refresh()
        except RepositoryError as exc:
            logger.warning("schedule_refresh_failed", error=exc.message)
            self._fail(LOAD_FAILED)
            return False
        return True

    async def load(self) -> None:
        """Initial load: approved doctors, every shift and the attention queue."""
        self.grid = SlotGrid(
            self.now_fn().date(), days=self.window_days, step=self.slot_minutes
        )
        try:
            doctors = await self.repository.list_approved_doctors()
            await self.all_shifts.refresh()
            await self.pending_shifts.refresh()
            await self.doctor_shifts.refresh()
        except RepositoryError as exc:
            logger.warning("schedule_load_failed", error=exc.message)
            self._fail(LOAD_FAILED)
            return
        self.doctors = {d.id: d for d in doctors}
        self._succeed()

    async def select_doctor(self, doctor_id: str | None) -> None:
        """Switch doctors. A failed fetch keeps the previous doctor and view."""
        doctor_id = doctor_id or None
        try:
            shifts = (
                await self.repository.list_shifts_for_doctor(doctor_id)
                if doctor_id
                else []
            )
        except RepositoryError as exc:
            logger.warning(
                "doctor_shifts_load_failed", doctor_id=doctor_id, error=exc.message
            )
            self._fail(LOAD_FAILED)
            return
        self.selected_doctor_id = doctor_id
        self.selection.clear()
        self.doctor_shifts.replace(shifts)

    # grid

    def slot_state(self, day: str, hhmm: str) -> SlotState:
        return slot_state(
            day,
            hhmm,
            shifts=self.working_shifts,
            selected=self.selection.as_set(),
            now=self.now_fn(),
        )

    def toggle_slot(self, day: str, hhmm: str) -> bool:
        if not self.selected_doctor_id:
            return False
        return self.selection.toggle(
            day,
            hhmm,
            shifts=self.working_shifts,
            now=self.now_fn(),
            grid=self.grid,
        )

    def replicate(self, days: int) -> int:
        """Copy the first selected day's pattern onto the next `days` days."""
        try:
            if not self.selected_doctor_id:
                raise DoctorNotSelected()
            if not self.selection:
                raise EmptySelection()
            if days <= 0:
                raise ValidationError("Number of days to replicate must be positive")
            added = self.selection.replicate(
                days,
                grid=self.grid,
                shifts=self.working_shifts,
                now=self.now_fn(),
            )
            if added == 0:
                raise NothingToReplicate()
        except ValidationError as exc:
            self._fail(exc.message)
            return 0
        self._succeed()
        return added

    def candidate_shifts(self) -> list[CandidateShift]:
        return self.selection.merged(self.slot_minutes)

    # mutations

    def _preflight(self) -> list[CandidateShift]:
        doctor = self.selected_doctor
        if doctor is None:
            raise DoctorNotSelected()
        if not self.selection:
            raise EmptySelection()
        expired = self.selection.discard_past(self.now_fn())
        if expired:
            raise PastSlotsDropped(expired)

        candidates = self.candidate_shifts()
        validate_bulk(
            candidates,
            self.doctor_shifts.items,
            cap_minutes=self.cap_minutes,
            step=self.slot_minutes,
        )
        clashes = specialty_conflicts(
            candidates,
            doctor=doctor,
            all_shifts=self.all_shifts.items,
            doctors=self.doctors,
            step=self.slot_minutes,
        )
        if clashes:
            raise SpecialtyConflict(clashes)
        return candidates

    async def submit_selection(self) -> list[Shift]:
        """
        Merge the selection into shifts and create them in one request.
        Returns the created shifts, or an empty list when nothing was created.
        """
        try:
            candidates = self._preflight()
        except ValidationError as exc:
            self._fail(exc.message)
            return []

        doctor_id = self.selected_doctor_id
        self.busy = True
        try:
            created = await self.repository.bulk_create_shifts(doctor_id, candidates)
        except RepositoryError as exc:
            logger.warning("bulk_create_failed", doctor_id=doctor_id, error=exc.message)
            self._fail(CREATE_FAILED)
            return []
        finally:
            self.busy = False

        self.selection.clear()
        self._succeed()
        if not await self._refresh_after_mutation():
            return created

        self.advisory = self.overtime_policy(
            self.doctor_shifts.items, self.now_fn().date()
        )
        if self.advisory:
            logger.info("overtime_advisory", doctor_id=doctor_id, message=self.advisory)
        return created

    def _known_shift(self, shift_id: str) -> Shift | None:
        for cache in (self.doctor_shifts, self.all_shifts, self.pending_shifts):
            shift = cache.find(shift_id)
            if shift is not None:
                return shift
        return None

    async def _report_failure(self, exc: RepositoryError, fallback: str) -> None:
        if exc.status_code == 409:
            # someone else wrote first: show their version, not ours
            await self._refresh_after_mutation()
            self._fail(STALE_SHIFT)
        else:
            self._fail(fallback)

    async def delete_shift(self, shift_id: str) -> bool:
        known = self._known_shift(shift_id)
        self.busy = True
        try:
            await self.repository.delete_shift(
                shift_id, known.version if known else None
            )
        except RepositoryError as exc:
            logger.warning("delete_shift_failed", shift_id=shift_id, error=exc.message)
            await self._report_failure(exc, DELETE_FAILED)
            return False
        finally:
            self.busy = False

        self._succeed()
        await self._refresh_after_mutation()
        return True

    async def replace_doctor(
        self,
        shift_id: str | None,
        new_doctor_id: str | None,
        admin_note: str | None = None,
        *,
        force: bool = False,
    ) -> Shift | None:
        shift = self._known_shift(shift_id) if shift_id else None
        try:
            if shift is None:
                raise ReplacementError("Choose a shift to reassign")
            if not new_doctor_id:
                raise ReplacementError("Choose a replacement doctor")
            if new_doctor_id == shift.doctor_id:
                raise ReplacementError(
                    "Replacement doctor must differ from the current one"
                )
            if new_doctor_id not in self.doctors:
                raise ReplacementError("Replacement doctor must be an approved doctor")
        except ValidationError as exc:
            self._fail(exc.message)
            return None

        self.busy = True
        try:
            replaced = await self.repository.replace_shift_doctor(
                shift.id,
                new_doctor_id,
                admin_note or None,
                force_replace=force,
                expected_version=shift.version,
            )
        except RepositoryError as exc:
            logger.warning(
                "replace_doctor_failed",
                shift_id=shift.id,
                new_doctor_id=new_doctor_id,
                error=exc.message,
            )
            await self._report_failure(exc, REPLACE_FAILED)
            return None
        finally:
            self.busy = False

        self._succeed()
        await self._refresh_after_mutation()
        return replaced
