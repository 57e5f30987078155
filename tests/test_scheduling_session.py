from datetime import datetime, timedelta

import httpx
import pytest
import pytest_asyncio
from freezegun import freeze_time
from httpx import ASGITransport, AsyncClient

from conftest import _p, dump_db, make_shift, put_shift
from shiftboard.client import ShiftApiClient
from shiftboard.conflicts import SlotState
from shiftboard.models import Shift, ShiftStatus
from shiftboard.policies import no_overtime_advisory
from shiftboard.repository import ShiftRepository
from shiftboard.session import (
    DELETE_FAILED,
    LOAD_FAILED,
    STALE_SHIFT,
    SchedulingSession,
)
from shiftboard.slots import add_days

NOW = datetime(2024, 6, 3, 7, 0)


@pytest_asyncio.fixture
async def api(app):
    async with AsyncClient(
        transport=ASGITransport(app=app), base_url="http://test"
    ) as http:
        yield ShiftApiClient(http)


@pytest_asyncio.fixture
async def session(api, doctors) -> SchedulingSession:
    s = SchedulingSession(api, now_fn=lambda: NOW)
    await s.load()
    return s


def _count(app) -> int:
    return len(app.state.database.all_of(Shift))


@pytest.mark.asyncio
async def test_load_lists_only_approved_doctors(session: SchedulingSession) -> None:
    assert sorted(session.doctors) == ["alice-id", "bob-id", "carol-id"]
    assert session.error is None
    assert session.grid.dates[0] == "2024-06-03"


@pytest.mark.asyncio
async def test_toggle_requires_a_selected_doctor(session: SchedulingSession) -> None:
    assert not session.toggle_slot("2024-06-04", "09:00")
    await session.select_doctor("alice-id")
    assert session.toggle_slot("2024-06-04", "09:00")
    assert session.slot_state("2024-06-04", "09:00") == SlotState.SELECTED


@pytest.mark.asyncio
async def test_submit_merges_selection_into_shifts(
    session: SchedulingSession, app
) -> None:
    await session.select_doctor("alice-id")
    for t in ("09:00", "09:30", "10:00", "11:00"):
        assert session.toggle_slot("2024-06-04", t)

    created = await session.submit_selection()
    dump_db(app)

    assert [(s.start_time, s.end_time) for s in created] == [
        ("09:00", "10:30"),
        ("11:00", "11:30"),
    ]
    assert session.error is None
    assert len(session.selection) == 0
    assert len(session.doctor_shifts.items) == 2
    assert len(session.pending_shifts.items) == 2
    # the grid now shows those slots as taken
    assert session.slot_state("2024-06-04", "10:00") == SlotState.OCCUPIED
    assert session.slot_state("2024-06-04", "10:30") == SlotState.AVAILABLE


@pytest.mark.asyncio
async def test_daily_cap_is_checked_before_any_request(
    session: SchedulingSession, app
) -> None:
    put_shift(app, make_shift("s1", "alice-id", "2024-06-04", "06:00", "13:30"))
    await session.select_doctor("alice-id")

    session.toggle_slot("2024-06-04", "14:00")
    session.toggle_slot("2024-06-04", "14:30")
    created = await session.submit_selection()

    assert created == []
    assert "2024-06-04" in session.error
    assert _count(app) == 1
    # the selection is kept so the operator can trim it
    assert len(session.selection) == 2

    session.toggle_slot("2024-06-04", "14:30")
    created = await session.submit_selection()
    assert len(created) == 1
    assert session.error is None


@pytest.mark.asyncio
async def test_empty_selection_and_missing_doctor(session: SchedulingSession) -> None:
    await session.submit_selection()
    assert session.error == "Select a doctor first"

    await session.select_doctor("alice-id")
    await session.submit_selection()
    assert session.error == "Select at least one slot"


@pytest.mark.asyncio
async def test_same_specialty_overlap_is_refused(
    session: SchedulingSession, app
) -> None:
    put_shift(app, make_shift("b1", "bob-id", "2024-06-04", "09:00", "10:00"))
    await session.load()

    await session.select_doctor("alice-id")
    session.toggle_slot("2024-06-04", "09:30")
    assert await session.submit_selection() == []
    assert "same specialty" in session.error

    await session.select_doctor("carol-id")
    session.toggle_slot("2024-06-04", "09:30")
    assert len(await session.submit_selection()) == 1
    assert session.error is None


@pytest.mark.asyncio
async def test_overtime_advisory_after_eight_straight_days(
    session: SchedulingSession, app
) -> None:
    for i in range(8):
        day = add_days("2024-06-03", i)
        if day != "2024-06-06":
            put_shift(app, make_shift(f"s{i}", "alice-id", day, "14:00", "15:00"))

    await session.select_doctor("alice-id")
    session.toggle_slot("2024-06-06", "10:00")
    await session.submit_selection()
    _p(f"advisory: {session.advisory}")

    assert session.error is None
    assert session.advisory is not None
    assert "overtime" in session.advisory


@pytest.mark.asyncio
async def test_overtime_policy_is_pluggable(api, doctors, app) -> None:
    for i in range(8):
        put_shift(
            app,
            make_shift(f"s{i}", "alice-id", add_days("2024-06-03", i), "14:00", "15:00"),
        )
    session = SchedulingSession(api, now_fn=lambda: NOW, overtime_policy=no_overtime_advisory)
    await session.load()
    await session.select_doctor("alice-id")
    session.toggle_slot("2024-06-04", "10:00")

    assert len(await session.submit_selection()) == 1
    assert session.advisory is None


@pytest.mark.asyncio
async def test_replicate_pattern_across_days(session: SchedulingSession, app) -> None:
    put_shift(app, make_shift("s1", "alice-id", "2024-06-05", "09:30", "10:00"))
    await session.select_doctor("alice-id")
    session.toggle_slot("2024-06-04", "09:00")
    session.toggle_slot("2024-06-04", "09:30")

    assert session.replicate(2) == 3
    assert session.error is None
    assert session.slot_state("2024-06-05", "09:30") == SlotState.OCCUPIED
    assert session.slot_state("2024-06-06", "09:30") == SlotState.SELECTED

    created = await session.submit_selection()
    assert [(s.date, s.start_time, s.end_time) for s in created] == [
        ("2024-06-04", "09:00", "10:00"),
        ("2024-06-05", "09:00", "09:30"),
        ("2024-06-06", "09:00", "10:00"),
    ]


@pytest.mark.asyncio
async def test_replicate_reports_why_nothing_happened(session: SchedulingSession) -> None:
    await session.select_doctor("alice-id")
    assert session.replicate(3) == 0
    assert session.error == "Select at least one slot"

    session.toggle_slot("2024-06-16", "09:00")
    assert session.replicate(0) == 0
    assert "positive" in session.error

    # last grid day: nothing left to copy onto
    assert session.replicate(3) == 0
    assert "No free slot" in session.error


@pytest.mark.asyncio
async def test_replace_doctor_refreshes_attention_queue(
    session: SchedulingSession, app
) -> None:
    put_shift(
        app,
        make_shift(
            "r1",
            "alice-id",
            "2024-06-04",
            "09:00",
            "10:00",
            status=ShiftStatus.REJECTED,
            rejection_reason="conference",
        ),
    )
    await session.load()

    replaced = await session.replace_doctor("r1", "carol-id", "covering")

    assert replaced is not None
    assert replaced.doctor_id == "carol-id"
    assert replaced.rejection_reason == "conference"
    assert session.error is None
    queued = session.pending_shifts.find("r1")
    assert queued is not None and queued.doctor_id == "carol-id"
    assert queued.status == ShiftStatus.PENDING


@pytest.mark.asyncio
async def test_replace_doctor_validation_never_reaches_the_api(
    session: SchedulingSession, app
) -> None:
    put_shift(
        app,
        make_shift("r1", "alice-id", "2024-06-04", "09:00", "10:00", status=ShiftStatus.BUSY),
    )
    await session.load()

    assert await session.replace_doctor(None, "carol-id") is None
    assert "shift" in session.error

    assert await session.replace_doctor("r1", "") is None
    assert "replacement doctor" in session.error

    assert await session.replace_doctor("r1", "alice-id") is None
    assert "differ" in session.error

    assert await session.replace_doctor("r1", "dave-id") is None
    assert "approved" in session.error

    assert app.state.database.get("shift:r1").version == 1


@pytest.mark.asyncio
async def test_stale_shift_reloads_before_reporting(
    session: SchedulingSession, app
) -> None:
    put_shift(
        app,
        make_shift("r1", "alice-id", "2024-06-04", "09:00", "10:00", status=ShiftStatus.BUSY),
    )
    await session.load()

    # another operator gets there first
    ShiftRepository(app.state.database).replace_shift_doctor("r1", "bob-id")

    assert await session.replace_doctor("r1", "carol-id") is None
    assert session.error == STALE_SHIFT
    fresh = session.pending_shifts.find("r1")
    assert fresh.doctor_id == "bob-id"
    assert fresh.version == 2
    assert app.state.database.get("shift:r1").doctor_id == "bob-id"


@pytest.mark.asyncio
async def test_delete_shift_and_generic_failure(session: SchedulingSession, app) -> None:
    put_shift(app, make_shift("s1", "alice-id", "2024-06-04", "09:00", "10:00"))
    put_shift(app, make_shift("s2", "alice-id", "2024-06-05", "09:00", "10:00"))
    await session.select_doctor("alice-id")
    await session.load()

    assert await session.delete_shift("s1")
    assert session.error is None
    assert [s.id for s in session.doctor_shifts.items] == ["s2"]

    # gone server-side behind our back
    app.state.database.delete("shift:s2")
    assert not await session.delete_shift("s2")
    assert session.error == DELETE_FAILED
    # cached snapshot left as it was
    assert [s.id for s in session.doctor_shifts.items] == ["s2"]

    # the banner stays until something succeeds
    session.toggle_slot("2024-06-06", "09:00")
    assert session.error == DELETE_FAILED
    await session.submit_selection()
    assert session.error is None


@pytest.mark.asyncio
async def test_unreachable_api_sets_banner(doctors) -> None:
    def refuse(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("connection refused", request=request)

    async with AsyncClient(
        transport=httpx.MockTransport(refuse), base_url="http://test"
    ) as http:
        session = SchedulingSession(ShiftApiClient(http), now_fn=lambda: NOW)
        await session.load()

    assert session.error == LOAD_FAILED
    assert session.doctors == {}


@pytest.mark.asyncio
async def test_past_slots_never_become_selectable(api, doctors) -> None:
    with freeze_time("2024-06-03 08:00:00", real_asyncio=True) as frozen:
        session = SchedulingSession(api, now_fn=datetime.now)
        await session.load()
        await session.select_doctor("alice-id")

        assert session.slot_state("2024-06-03", "08:30") == SlotState.AVAILABLE

        frozen.tick(delta=timedelta(hours=1))
        assert session.slot_state("2024-06-03", "08:30") == SlotState.PAST
        assert not session.toggle_slot("2024-06-03", "08:30")
        assert session.slot_state("2024-06-03", "08:30") == SlotState.PAST


@pytest.mark.asyncio
async def test_selected_slot_that_turns_past_is_not_submitted(api, doctors, app) -> None:
    with freeze_time("2024-06-03 08:00:00", real_asyncio=True) as frozen:
        session = SchedulingSession(api, now_fn=datetime.now)
        await session.load()
        await session.select_doctor("alice-id")
        assert session.toggle_slot("2024-06-03", "08:30")
        assert session.toggle_slot("2024-06-03", "10:00")

        frozen.tick(delta=timedelta(hours=1))
        assert await session.submit_selection() == []
        _p(f"error: {session.error}")

        assert "past" in session.error
        assert "2024-06-03 08:30" in session.error
        assert _count(app) == 0
        assert session.selection.as_set() == {("2024-06-03", "10:00")}

        created = await session.submit_selection()
        assert [(s.start_time, s.end_time) for s in created] == [("10:00", "10:30")]
        assert session.error is None


@pytest.mark.asyncio
async def test_toggle_outside_the_grid_is_ignored(session: SchedulingSession, app) -> None:
    await session.select_doctor("alice-id")

    assert not session.toggle_slot("2030-01-01", "09:00")
    assert not session.toggle_slot("2024-06-04", "23:30")
    assert len(session.selection) == 0

    await session.submit_selection()
    assert session.error == "Select at least one slot"
    assert _count(app) == 0


def _as_json(models) -> list[dict]:
    return [m.model_dump(mode="json", by_alias=True) for m in models]


@pytest.mark.asyncio
async def test_failed_doctor_switch_keeps_previous_view(doctors) -> None:
    booked = make_shift("s1", "alice-id", "2024-06-04", "09:00", "10:00")
    approved = [d for d in doctors.values() if d.schedulable]

    def serve(request: httpx.Request) -> httpx.Response:
        match request.url.path:
            case "/doctors":
                return httpx.Response(200, json=_as_json(approved))
            case "/schedules/alice-id" | "/schedules":
                return httpx.Response(200, json=_as_json([booked]))
            case "/schedules/bob-id":
                return httpx.Response(503, json={"detail": "database unavailable"})
        return httpx.Response(200, json=[])

    async with AsyncClient(
        transport=httpx.MockTransport(serve), base_url="http://test"
    ) as http:
        session = SchedulingSession(ShiftApiClient(http), now_fn=lambda: NOW)
        await session.load()
        await session.select_doctor("alice-id")
        session.toggle_slot("2024-06-04", "11:00")

        await session.select_doctor("bob-id")

    assert session.error == LOAD_FAILED
    assert session.selected_doctor_id == "alice-id"
    assert [s.id for s in session.doctor_shifts.items] == ["s1"]
    assert session.slot_state("2024-06-04", "09:00") == SlotState.OCCUPIED
    assert session.selection.as_set() == {("2024-06-04", "11:00")}


@pytest.mark.asyncio
async def test_successful_reload_clears_the_banner(doctors) -> None:
    down = True
    approved = [d for d in doctors.values() if d.schedulable]

    def serve(request: httpx.Request) -> httpx.Response:
        if down:
            raise httpx.ConnectError("connection refused", request=request)
        if request.url.path == "/doctors":
            return httpx.Response(200, json=_as_json(approved))
        return httpx.Response(200, json=[])

    async with AsyncClient(
        transport=httpx.MockTransport(serve), base_url="http://test"
    ) as http:
        session = SchedulingSession(ShiftApiClient(http), now_fn=lambda: NOW)
        await session.load()
        assert session.error == LOAD_FAILED

        down = False
        await session.load()

    assert session.error is None
    assert sorted(session.doctors) == ["alice-id", "bob-id", "carol-id"]
