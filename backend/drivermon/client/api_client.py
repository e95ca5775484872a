"""
Async HTTP client for the trip API
"""

from __future__ import annotations

import logging
from collections.abc import Sequence
from typing import TYPE_CHECKING, Any

import httpx

if TYPE_CHECKING:
    from drivermon.client.gps import GPSSample

logger = logging.getLogger(__name__)

STUN_FALLBACK = [{"urls": ["stun:stun.l.google.com:19302"]}]


class ApiError(Exception):
    def __init__(self, status_code: int | None, detail: str) -> None:
        self.status_code = status_code
        self.detail = detail
        super().__init__(f"{status_code or 'network'}: {detail}")


class TripApiClient:
    def __init__(
        self,
        base_url: str,
        token: str,
        client: httpx.AsyncClient | None = None,
        timeout: float = 30.0,
    ) -> None:
        self._client = client or httpx.AsyncClient(base_url=base_url, timeout=timeout)
        self._headers = {"Authorization": f"Bearer {token}"}

    async def aclose(self) -> None:
        await self._client.aclose()

    async def _request(self, method: str, path: str, **kwargs: Any) -> Any:
        try:
            response = await self._client.request(method, path, headers=self._headers, **kwargs)
        except httpx.HTTPError as exc:
            raise ApiError(None, str(exc)) from exc

        if response.is_error:
            try:
                detail = response.json().get("detail", response.text)
            except (ValueError, AttributeError):
                detail = response.text
            raise ApiError(response.status_code, str(detail))
        try:
            return response.json()
        except ValueError as exc:
            raise ApiError(response.status_code, "Invalid JSON in response") from exc

    async def create_trip(self, started_at: int | None = None) -> dict[str, Any]:
        body = {"startedAt": started_at} if started_at is not None else {}
        return await self._request("POST", "/api/trips", json=body)

    async def end_trip(
        self,
        trip_id: str,
        ended_at: int,
        total_distance: float,
        average_speed: float,
        status: str = "completed",
    ) -> dict[str, Any]:
        body = {
            "status": status,
            "endedAt": ended_at,
            "totalDistance": total_distance,
            "averageSpeed": average_speed,
        }
        return await self._request("PATCH", f"/api/trips/{trip_id}", json=body)

    async def send_location_batch(self, trip_id: str, samples: Sequence[GPSSample]) -> dict[str, Any]:
        body = {"locations": [s.to_payload() for s in samples]}
        return await self._request("POST", f"/api/trips/{trip_id}/locations", json=body)

    async def upload_video_clip(
        self,
        trip_id: str,
        data: bytes,
        start_time: int,
        end_time: int,
        mime_type: str = "video/webm",
    ) -> dict[str, Any]:
        files = {"video": (f"clip-{start_time}.webm", data, mime_type)}
        form = {"startTime": str(start_time), "endTime": str(end_time)}
        return await self._request("POST", f"/api/trips/{trip_id}/clips", files=files, data=form)

    async def fetch_ice_servers(self) -> list[dict[str, Any]]:
        try:
            body = await self._request("GET", "/api/turn-config")
        except ApiError as exc:
            logger.warning("TURN config unavailable, using STUN only: %s", exc)
            return list(STUN_FALLBACK)
        return body.get("iceServers") or list(STUN_FALLBACK)
