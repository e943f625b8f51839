from __future__ import annotations

import logging
from typing import Any

import httpx

from config import Settings
from services.errors import TransportError
from services.senior_store import (
    ATOMIC_FIELDS,
    CheckInRecord,
    SeniorStateSnapshot,
    SeniorStore,
    SqlSeniorStore,
)

logger = logging.getLogger(__name__)


class HttpSeniorStore(SeniorStore):
    """SeniorStore speaking to a remote document API over HTTP.

    Layout: ``/users/{uid}/seniorState`` is a single mergeable document,
    ``/users/{uid}/checkIns`` is a collection queried by year and month.
    """

    def __init__(
        self,
        base_url: str,
        token: str | None = None,
        timeout: float = 10.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        headers = {"Accept": "application/json"}
        if token:
            headers["Authorization"] = f"Bearer {token}"
        self._client = httpx.AsyncClient(
            base_url=base_url.rstrip("/"),
            headers=headers,
            timeout=timeout,
            transport=transport,
        )

    async def _request(self, method: str, path: str, **kwargs) -> httpx.Response:
        try:
            response = await self._client.request(method, path, **kwargs)
        except httpx.HTTPError as e:
            raise TransportError(f"{method} {path} failed: {e}") from e
        if response.status_code == 404 and method == "GET":
            return response
        if response.status_code in (401, 403):
            raise TransportError(f"{method} {path} denied ({response.status_code})")
        if response.status_code >= 400:
            raise TransportError(f"{method} {path} returned {response.status_code}")
        return response

    @staticmethod
    def _json(response: httpx.Response) -> Any:
        try:
            return response.json()
        except ValueError as e:
            raise TransportError(f"Malformed store response: {e}") from e

    async def get_senior_state(self, user_id: str) -> SeniorStateSnapshot | None:
        response = await self._request("GET", f"/users/{user_id}/seniorState")
        if response.status_code == 404:
            return None
        payload = self._json(response)
        if not isinstance(payload, dict):
            return SeniorStateSnapshot()
        return SeniorStateSnapshot.from_document(payload)

    async def get_check_ins_for_month(self, user_id: str, year: int, month: int) -> list[CheckInRecord]:
        response = await self._request(
            "GET",
            f"/users/{user_id}/checkIns",
            params={"year": year, "month": month},
        )
        if response.status_code == 404:
            return []
        payload = self._json(response)
        docs = payload.get("documents", []) if isinstance(payload, dict) else payload
        records: list[CheckInRecord] = []
        for doc in docs or []:
            if not isinstance(doc, dict):
                continue
            try:
                records.append(CheckInRecord.from_document(doc))
            except ValueError as e:
                logger.warning("Skipping malformed check-in document: %s", e)
        records.sort(key=lambda r: r.timestamp, reverse=True)
        return records

    async def atomic_update_senior_field(self, user_id: str, field: str, value: bool) -> None:
        if field not in ATOMIC_FIELDS:
            raise ValueError(f"Field {field!r} cannot be updated atomically")
        await self._request(
            "PATCH",
            f"/users/{user_id}/seniorState",
            json={field: bool(value)},
            params={"updateMask": field},
        )

    async def record_check_in(self, user_id: str, record: CheckInRecord) -> SeniorStateSnapshot:
        response = await self._request(
            "POST",
            f"/users/{user_id}/checkIns",
            json=record.to_document(),
        )
        payload = self._json(response)
        state = payload.get("seniorState") if isinstance(payload, dict) else None
        if isinstance(state, dict):
            return SeniorStateSnapshot.from_document(state)
        return await self.get_senior_state(user_id) or SeniorStateSnapshot()

    async def aclose(self) -> None:
        await self._client.aclose()


def build_senior_store(settings: Settings) -> SeniorStore:
    if settings.store_backend == "http":
        return HttpSeniorStore(
            base_url=settings.SENIOR_STORE_URL or "",
            token=settings.SENIOR_STORE_TOKEN,
            timeout=settings.SENIOR_STORE_TIMEOUT_SECONDS,
        )
    from db.database import SessionLocal

    return SqlSeniorStore(SessionLocal)
