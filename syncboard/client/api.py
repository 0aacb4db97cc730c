"""HTTPX client for the dashboard API."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Mapping

import httpx
from pydantic import ValidationError

from syncboard.config import ClientConfig
from syncboard.schemas import (
    CandidateResponse,
    HealthResponse,
    LogEntryResponse,
    NetworkResponse,
    PlaylistDetailResponse,
    PlaylistSummaryResponse,
    RetryResponse,
    StatsResponse,
)

API_UNREACHABLE = "UNREACHABLE"
API_OFFLINE = "OFFLINE"
UNKNOWN = "UNKNOWN"


class DashboardClientError(RuntimeError):
    """Raised when a dashboard request failed or returned an unusable payload."""

    def __init__(self, message: str, *, status_code: int | None = None) -> None:
        super().__init__(message)
        self.status_code = status_code


def _error_message(response: httpx.Response, default: str) -> str:
    try:
        payload = response.json()
    except ValueError:
        return default
    if isinstance(payload, Mapping):
        error = payload.get("error")
        if isinstance(error, Mapping) and isinstance(error.get("message"), str):
            return error["message"]
        if isinstance(error, str) and error.strip():
            return error
    return default


@dataclass(slots=True)
class DashboardApi:
    """Typed access to the dashboard endpoints."""

    base_url: str
    transport: httpx.AsyncBaseTransport | None = None
    timeout_ms: int = 5_000

    @classmethod
    def from_config(
        cls, config: ClientConfig, *, transport: httpx.AsyncBaseTransport | None = None
    ) -> "DashboardApi":
        return cls(base_url=config.base_url, transport=transport, timeout_ms=config.timeout_ms)

    async def get_health(self) -> HealthResponse:
        """Return the health snapshot; unreachable or failing servers are reported, never raised."""

        target = f"{self.base_url.rstrip('/')}/health"
        try:
            response = await self._request("GET", "/health")
        except DashboardClientError:
            return HealthResponse(
                api=API_UNREACHABLE,
                db=UNKNOWN,
                tables={},
                cache=UNKNOWN,
                error=f"Could not reach {target}. Is the syncboard API running?",
            )
        if response.status_code != httpx.codes.OK:
            return HealthResponse(
                api=API_OFFLINE,
                db=UNKNOWN,
                tables={},
                cache=UNKNOWN,
                error=f"API returned status {response.status_code}",
            )
        try:
            return HealthResponse.model_validate(response.json())
        except (ValueError, ValidationError):
            return HealthResponse(
                api=API_OFFLINE,
                db=UNKNOWN,
                tables={},
                cache=UNKNOWN,
                error="API returned an invalid health payload",
            )

    async def get_stats(self) -> StatsResponse:
        return StatsResponse.model_validate(await self._get_json("/stats", "Stats unavailable"))

    async def get_network(self) -> NetworkResponse:
        return NetworkResponse.model_validate(await self._get_json("/network", "Network offline"))

    async def get_playlists(self) -> list[PlaylistSummaryResponse]:
        response = await self._request("GET", "/playlists")
        if response.status_code != httpx.codes.OK:
            return []
        payload = self._decode(response)
        if not isinstance(payload, list):
            return []
        return [PlaylistSummaryResponse.model_validate(item) for item in payload]

    async def get_playlist(self, playlist_id: str) -> PlaylistDetailResponse:
        payload = await self._get_json(f"/playlists/{playlist_id}", "Track query failed")
        return PlaylistDetailResponse.model_validate(payload)

    async def get_candidates(self, track_id: int) -> list[CandidateResponse]:
        payload = await self._get_json(f"/tracks/{track_id}/candidates", "Candidates unavailable")
        return [CandidateResponse.model_validate(item) for item in payload or []]

    async def get_logs(self, *, limit: int = 50) -> list[LogEntryResponse]:
        payload = await self._get_json("/logs", "Logs unavailable", params={"limit": limit})
        return [LogEntryResponse.model_validate(item) for item in payload or []]

    async def retry_track(self, track_id: int) -> RetryResponse:
        response = await self._request("POST", f"/tracks/{track_id}/retry")
        if response.status_code != httpx.codes.OK:
            raise DashboardClientError(
                _error_message(response, "Retry failed"), status_code=response.status_code
            )
        return RetryResponse.model_validate(self._decode(response))

    async def _get_json(
        self, path: str, default_error: str, *, params: Mapping[str, Any] | None = None
    ) -> Any:
        response = await self._request("GET", path, params=params)
        if response.status_code != httpx.codes.OK:
            raise DashboardClientError(
                _error_message(response, default_error), status_code=response.status_code
            )
        return self._decode(response)

    async def _request(
        self, method: str, path: str, *, params: Mapping[str, Any] | None = None
    ) -> httpx.Response:
        timeout = max(self.timeout_ms, 100) / 1000
        try:
            async with httpx.AsyncClient(
                base_url=self.base_url.rstrip("/"),
                timeout=httpx.Timeout(timeout),
                headers={"Accept": "application/json"},
                transport=self.transport,
            ) as client:
                return await client.request(method, path, params=params)
        except httpx.TimeoutException as exc:
            raise DashboardClientError(f"Request to {path} timed out") from exc
        except httpx.HTTPError as exc:
            raise DashboardClientError(f"Request to {path} failed: {exc}") from exc

    @staticmethod
    def _decode(response: httpx.Response) -> Any:
        try:
            return response.json()
        except ValueError as exc:
            raise DashboardClientError("API returned invalid JSON") from exc


__all__ = ["API_OFFLINE", "API_UNREACHABLE", "DashboardApi", "DashboardClientError"]
