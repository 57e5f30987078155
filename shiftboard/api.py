from collections.abc import Callable
from datetime import UTC, datetime

from fastapi import (
    APIRouter,
    FastAPI,
    Header,
    HTTPException,
    Query,
    Request,
    Response,
)
from fastapi.responses import JSONResponse

from shiftboard import config
from shiftboard.database import InMemoryKeyValueDatabase
from shiftboard.errors import SchedulingError
from shiftboard.logging_config import (
    REQUEST_ID_HEADER,
    bind_request_context,
    get_logger,
    new_request_id,
    setup_structured_logging,
)
from shiftboard.models import (
    BulkCreateRequest,
    CreateShiftRequest,
    Doctor,
    DoctorStatus,
    ReplaceDoctorRequest,
    RespondRequest,
    Shift,
    ShiftStats,
    ShiftUpdate,
)
from shiftboard.policies import ReplacementPolicy
from shiftboard.repository import ShiftRepository

logger = get_logger(__name__)

router = APIRouter()

NowFn = Callable[[], datetime]


def _repository(request: Request) -> ShiftRepository:
    return request.app.state.repository


def _expected_version(if_match: str | None) -> int | None:
    if if_match is None:
        return None
    try:
        return int(if_match.strip().strip('"'))
    except ValueError:
        raise HTTPException(
            status_code=400, detail="If-Match must be a shift version number"
        ) from None


@router.get("/health")
async def health_check() -> dict[str, str]:
    return {"status": "ok"}


@router.get("/doctors", response_model=list[Doctor])
async def list_doctors(
    request: Request, status: DoctorStatus | None = None
) -> list[Doctor]:
    return _repository(request).list_doctors(status)


@router.post("/schedules", status_code=201, response_model=Shift)
async def create_shift(body: CreateShiftRequest, request: Request) -> Shift:
    return _repository(request).create_shift(body.doctor_id, body)


@router.post("/schedules/bulk", status_code=201, response_model=list[Shift])
async def bulk_create_shifts(
    body: BulkCreateRequest, request: Request
) -> list[Shift]:
    if not body.slots:
        raise HTTPException(status_code=400, detail="Missing slots")
    return _repository(request).bulk_create_shifts(body.doctor_id, body.slots)


@router.get("/schedules", response_model=list[Shift])
async def list_all_shifts(
    request: Request,
    date_from: str | None = Query(None, alias="from"),
    date_to: str | None = Query(None, alias="to"),
) -> list[Shift]:
    return _repository(request).list_all_shifts(date_from, date_to)


# registered before /schedules/{doctor_id} so "pending" is not read as an id
@router.get("/schedules/pending/all", response_model=list[Shift])
async def list_pending_shifts(request: Request) -> list[Shift]:
    return _repository(request).list_pending_attention_shifts()


@router.get("/schedules/{doctor_id}", response_model=list[Shift])
async def list_doctor_shifts(
    doctor_id: str,
    request: Request,
    date_from: str | None = Query(None, alias="from"),
    date_to: str | None = Query(None, alias="to"),
) -> list[Shift]:
    return _repository(request).list_shifts_for_doctor(
        doctor_id, date_from, date_to
    )


@router.get("/schedules/{doctor_id}/stats", response_model=ShiftStats)
async def doctor_shift_stats(doctor_id: str, request: Request) -> ShiftStats:
    return _repository(request).shift_stats(doctor_id)


@router.put("/schedules/{shift_id}", response_model=Shift)
async def update_shift(
    shift_id: str,
    body: ShiftUpdate,
    request: Request,
    if_match: str | None = Header(None),
) -> Shift:
    return _repository(request).update_shift(
        shift_id, body.changes(), _expected_version(if_match)
    )


@router.delete("/schedules/{shift_id}")
async def delete_shift(
    shift_id: str, request: Request, if_match: str | None = Header(None)
) -> dict[str, str]:
    _repository(request).delete_shift(shift_id, _expected_version(if_match))
    return {"message": "Shift deleted", "shift_id": shift_id}


@router.post("/schedules/{shift_id}/replace-doctor", response_model=Shift)
async def replace_doctor(
    shift_id: str,
    body: ReplaceDoctorRequest,
    request: Request,
    if_match: str | None = Header(None),
) -> Shift:
    return _repository(request).replace_shift_doctor(
        shift_id,
        body.new_doctor_id,
        body.admin_note,
        force_replace=body.force_replace,
        expected_version=_expected_version(if_match),
    )


@router.post("/schedules/{shift_id}/respond", response_model=Shift)
async def respond_to_shift(
    shift_id: str, body: RespondRequest, request: Request
) -> Shift:
    return _repository(request).respond_to_shift(
        shift_id, body.doctor_id, body.action, body.reason
    )


async def handle_scheduling_error(
    request: Request, exc: SchedulingError
) -> JSONResponse:
    logger.warning(
        "request_rejected",
        status_code=exc.status_code,
        error=type(exc).__name__,
        detail=exc.message,
    )
    return JSONResponse(
        status_code=exc.status_code,
        content={"detail": exc.message, "error": type(exc).__name__},
    )


def create_app(
    *,
    now_fn: NowFn | None = None,
    replacement_policy: ReplacementPolicy | None = None,
) -> FastAPI:
    setup_structured_logging(config.LOG_LEVEL, config.LOG_FORMAT)

    app = FastAPI(title="shiftboard")
    db: InMemoryKeyValueDatabase[str, Shift | Doctor] = (
        InMemoryKeyValueDatabase()
    )
    app.state.database = db
    app.state.now_fn = now_fn or (lambda: datetime.now(UTC))
    app.state.repository = ShiftRepository(
        db,
        # late-bound so tests can swap app.state.now_fn
        now_fn=lambda: app.state.now_fn(),
        replacement_policy=replacement_policy,
    )

    @app.middleware("http")
    async def tag_request(request: Request, call_next) -> Response:
        request_id = request.headers.get(REQUEST_ID_HEADER) or new_request_id()
        bind_request_context(request_id, request.method, request.url.path)
        response = await call_next(request)
        response.headers[REQUEST_ID_HEADER] = request_id
        return response

    app.add_exception_handler(SchedulingError, handle_scheduling_error)
    app.include_router(router)
    return app
