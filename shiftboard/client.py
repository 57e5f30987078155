"""
Async client for the schedule API.

Every failure (transport error or non-2xx answer) comes back as a
RepositoryError carrying the HTTP status and the server's detail message.
"""

from collections.abc import Iterable
from typing import Any, Protocol

import httpx
from pydantic import TypeAdapter

from shiftboard import config
from shiftboard.errors import RepositoryError
from shiftboard.logging_config import get_logger
from shiftboard.models import Doctor, Shift, ShiftStats, TimeInterval

logger = get_logger(__name__)

_shift_list = TypeAdapter(list[Shift])
_doctor_list = TypeAdapter(list[Doctor])


class ShiftRepositoryClient(Protocol):
    """What the scheduling session needs from the schedule backend."""

    async def list_shifts_for_doctor(self, doctor_id: str) -> list[Shift]: ...

    async def list_all_shifts(self) -> list[Shift]: ...

    async def list_pending_attention_shifts(self) -> list[Shift]: ...

    async def bulk_create_shifts(
        self, doctor_id: str, slots: Iterable[TimeInterval]
    ) -> list[Shift]: ...

    async def delete_shift(
        self, shift_id: str, expected_version: int | None = None
    ) -> None: ...

    async def replace_shift_doctor(
        self,
        shift_id: str,
        new_doctor_id: str,
        admin_note: str | None = None,
        *,
        force_replace: bool = False,
        expected_version: int | None = None,
    ) -> Shift: ...

    async def list_approved_doctors(self) -> list[Doctor]: ...


def _version_header(expected_version: int | None) -> dict[str, str]:
    if expected_version is None:
        return {}
    return {"If-Match": str(expected_version)}


class ShiftApiClient:
    def __init__(
        self,
        http: httpx.AsyncClient | None = None,
        *,
        base_url: str = config.API_URL,
    ) -> None:
        self._http = http or httpx.AsyncClient(
            base_url=base_url, timeout=config.API_TIMEOUT_SECONDS
        )

    async def aclose(self) -> None:
        await self._http.aclose()

    async def __aenter__(self) -> "ShiftApiClient":
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        await self.aclose()

    async def _request(self, method: str, url: str, **kwargs: Any) -> Any:
        try:
            resp = await self._http.request(method, url, **kwargs)
        except httpx.HTTPError as exc:
            logger.error("schedule_api_unreachable", method=method, url=url, error=str(exc))
            raise RepositoryError(f"Schedule API unreachable: {exc}") from exc

        if resp.is_error:
            try:
                detail = resp.json().get("detail", resp.text)
            except ValueError:
                detail = resp.text
            logger.warning(
                "schedule_api_error",
                method=method,
                url=url,
                status_code=resp.status_code,
                detail=detail,
            )
            raise RepositoryError(str(detail), status_code=resp.status_code)
        return resp.json()

    async def list_shifts_for_doctor(
        self,
        doctor_id: str,
        date_from: str | None = None,
        date_to: str | None = None,
    ) -> list[Shift]:
        params = {
            k: v for k, v in (("from", date_from), ("to", date_to)) if v
        }
        data = await self._request("GET", f"/schedules/{doctor_id}", params=params)
        return _shift_list.validate_python(data)

    async def list_all_shifts(
        self, date_from: str | None = None, date_to: str | None = None
    ) -> list[Shift]:
        params = {
            k: v for k, v in (("from", date_from), ("to", date_to)) if v
        }
        data = await self._request("GET", "/schedules", params=params)
        return _shift_list.validate_python(data)

    async def list_pending_attention_shifts(self) -> list[Shift]:
        data = await self._request("GET", "/schedules/pending/all")
        return _shift_list.validate_python(data)

    async def bulk_create_shifts(
        self, doctor_id: str, slots: Iterable[TimeInterval]
    ) -> list[Shift]:
        payload = {
            "doctorId": doctor_id,
            "slots": [
                s.model_dump(by_alias=True, include={"date", "start_time", "end_time"})
                for s in slots
            ],
        }
        data = await self._request("POST", "/schedules/bulk", json=payload)
        return _shift_list.validate_python(data)

    async def delete_shift(
        self, shift_id: str, expected_version: int | None = None
    ) -> None:
        await self._request(
            "DELETE",
            f"/schedules/{shift_id}",
            headers=_version_header(expected_version),
        )

    async def replace_shift_doctor(
        self,
        shift_id: str,
        new_doctor_id: str,
        admin_note: str | None = None,
        *,
        force_replace: bool = False,
        expected_version: int | None = None,
    ) -> Shift:
        payload = {
            "newDoctorId": new_doctor_id,
            "adminNote": admin_note,
            "forceReplace": force_replace,
        }
        data = await self._request(
            "POST",
            f"/schedules/{shift_id}/replace-doctor",
            json=payload,
            headers=_version_header(expected_version),
        )
        return Shift.model_validate(data)

    async def shift_stats(self, doctor_id: str) -> ShiftStats:
        data = await self._request("GET", f"/schedules/{doctor_id}/stats")
        return ShiftStats.model_validate(data)

    async def list_approved_doctors(self) -> list[Doctor]:
        data = await self._request("GET", "/doctors", params={"status": "approved"})
        return _doctor_list.validate_python(data)
