from datetime import UTC, datetime

import pytest_asyncio
from httpx import ASGITransport, AsyncClient

from shiftboard.api import create_app
from shiftboard.database import InMemoryKeyValueDatabase
from shiftboard.models import Doctor, DoctorStatus, Shift


def _p(msg: str) -> None:
    # pytest captures stdout unless you run with -s
    print(msg, flush=True)


def dump_db(app) -> None:
    db: InMemoryKeyValueDatabase[str, Shift | Doctor] = app.state.database

    _p("db doctors:")
    for d in sorted(db.all_of(Doctor), key=lambda x: x.id):
        _p(f"  - {d.id} | {d.name} | specialty={d.specialty} | status={d.status}")

    _p("db shifts:")
    for s in sorted(db.all_of(Shift), key=lambda x: (x.date, x.start_time)):
        _p(
            f"  - {s.id} | doctor={s.doctor_id} | {s.date} "
            f"{s.start_time}-{s.end_time} | status={s.status} v{s.version}"
        )


def make_shift(
    shift_id: str,
    doctor_id: str,
    date: str,
    start_time: str,
    end_time: str,
    **extra,
) -> Shift:
    return Shift(
        id=shift_id,
        doctor_id=doctor_id,
        date=date,
        start_time=start_time,
        end_time=end_time,
        created_at=datetime(2024, 6, 1, tzinfo=UTC),
        **extra,
    )


def put_shift(app, shift: Shift) -> Shift:
    app.state.database.put(f"shift:{shift.id}", shift)
    return shift


@pytest_asyncio.fixture
async def app():
    return create_app(now_fn=lambda: datetime(2024, 6, 3, 5, 0, tzinfo=UTC))


@pytest_asyncio.fixture
async def client(app):
    async with AsyncClient(
        transport=ASGITransport(app=app), base_url="http://test"
    ) as async_client:
        yield async_client


@pytest_asyncio.fixture
async def doctors(app) -> dict[str, Doctor]:
    db: InMemoryKeyValueDatabase[str, Shift | Doctor] = app.state.database

    seeded = [
        Doctor(
            id="alice-id",
            name="Alice Nguyen",
            email="alice@clinic.test",
            specialty="cardiology",
            status=DoctorStatus.APPROVED,
        ),
        Doctor(
            id="bob-id",
            name="Bob Tran",
            email="bob@clinic.test",
            specialty="cardiology",
            status=DoctorStatus.APPROVED,
        ),
        Doctor(
            id="carol-id",
            name="Carol Le",
            email="carol@clinic.test",
            specialty="dermatology",
            status=DoctorStatus.APPROVED,
        ),
        Doctor(
            id="dave-id",
            name="Dave Pham",
            email="dave@clinic.test",
            specialty="dermatology",
            status=DoctorStatus.PENDING,
        ),
    ]
    for d in seeded:
        db.put(f"doctor:{d.id}", d)
    return {d.id: d for d in seeded}


