"""Async client for the school schedule and lunch API."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any

import httpx

from .config import ApiConfig

LOGGER = logging.getLogger("schoolface.api")

SCHEDULE_ROUTE = "/schedule/get"
LUNCH_ROUTE = "/lunch/get"


class SchoolApiError(RuntimeError):
    """Generic schedule API failure."""


class SchoolApiAuthError(SchoolApiError):
    """Raised when the API rejects the bearer token (401/403)."""


@dataclass(slots=True)
class SchoolApiClient:
    config: ApiConfig
    transport: httpx.AsyncBaseTransport | None = None
    _client: httpx.AsyncClient = field(init=False, repr=False)
    _closed: bool = field(init=False, default=True, repr=False)

    def __post_init__(self) -> None:
        if not self.config.base_url:
            raise ValueError("School API base URL is not configured")
        self._client = httpx.AsyncClient(
            base_url=self.config.base_url.rstrip("/"),
            headers={"Content-Type": "application/json"},
            timeout=self.config.timeout,
            transport=self.transport,
        )
        self._closed = False

    @property
    def closed(self) -> bool:
        return self._closed

    async def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        await self._client.aclose()

    async def fetch_schedule(self, token: str) -> dict[str, Any]:
        """POST ``/schedule/get`` with the bearer token."""
        if not token:
            raise SchoolApiAuthError("No bearer token available for schedule request")
        return await self._post(SCHEDULE_ROUTE, headers={"Authorization": f"Bearer {token}"})

    async def fetch_lunch(self) -> dict[str, Any]:
        """POST ``/lunch/get``."""
        return await self._post(LUNCH_ROUTE)

    async def _post(self, path: str, headers: dict[str, str] | None = None) -> dict[str, Any]:
        LOGGER.debug("POST %s", path)
        try:
            response = await self._client.post(path, headers=headers)
        except httpx.RequestError as exc:
            raise SchoolApiError(f"Failed to contact school API: {exc}") from exc
        if response.status_code in (401, 403):
            raise SchoolApiAuthError("School API rejected the token")
        if response.status_code >= 400:
            raise SchoolApiError(f"School API error {response.status_code}: {response.text}")
        try:
            payload = response.json()
        except ValueError as exc:
            raise SchoolApiError(f"School API returned invalid JSON for {path}") from exc
        if not isinstance(payload, dict):
            raise SchoolApiError(f"School API returned {type(payload).__name__} for {path}, expected object")
        return payload
