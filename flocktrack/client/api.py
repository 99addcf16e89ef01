from __future__ import annotations

import asyncio
import logging
from typing import Any, Optional

import httpx

from .errors import (
    ApiValidationError,
    AuthenticationError,
    NetworkError,
    ServerError,
)

logger = logging.getLogger(__name__)

# snapshot field -> (endpoint, key inside the response's "data")
COLLECTIONS = {
    "egg_entries": ("/egg-entries/", "entries"),
    "expenses": ("/expenses/", "expenses"),
    "feed_inventory": ("/feed-inventory/", "feed"),
    "flock_profile": ("/flock-profile/", "profile"),
    "flock_events": ("/flock-events/", "events"),
    "customers": ("/customers/", "customers"),
    "sales": ("/sales/", "sales"),
    "flock_batches": ("/flock-batches/", "batches"),
    "death_records": ("/death-records/", "records"),
    "user_profile": ("/profile/", "profile"),
}


def response_data(body: dict, path: str) -> dict:
    data = body.get("data") or {}
    if not isinstance(data, dict):
        raise ServerError(f"Unexpected response body from {path}")
    return data


class FlockApiClient:
    """Thin async client for the flock API; every error becomes an ``ApiServiceError``."""

    def __init__(
        self,
        base_url: str,
        token: Optional[str] = None,
        *,
        client: Optional[httpx.AsyncClient] = None,
        timeout: float = 30.0,
    ):
        self.token = token
        self._client = client or httpx.AsyncClient(base_url=base_url, timeout=timeout)

    def set_token(self, token: Optional[str]) -> None:
        self.token = token

    def _headers(self) -> dict[str, str]:
        if not self.token:
            raise AuthenticationError("User not authenticated - please log in again")
        return {"Content-Type": "application/json", "Authorization": f"Bearer {self.token}"}

    async def request(self, method: str, path: str, payload: Any = None) -> dict:
        headers = self._headers()
        try:
            r = await self._client.request(method, path, json=payload, headers=headers)
        except httpx.RequestError as exc:
            logger.warning("%s %s failed: %s", method, path, exc)
            raise NetworkError(f"Unable to reach the server ({exc.__class__.__name__})", details=str(exc)) from exc

        try:
            body = r.json() if r.content else {}
        except ValueError:
            body = {}
        well_formed = isinstance(body, dict)
        if not well_formed:
            body = {}

        if r.status_code == 401:
            raise AuthenticationError(details=body.get("error"))
        if r.status_code >= 500:
            raise ServerError(body.get("error") or f"HTTP error {r.status_code}", r.status_code)
        if r.status_code >= 400:
            details = body.get("details")
            raise ApiValidationError(
                body.get("error") or f"HTTP error {r.status_code}",
                status_code=r.status_code,
                field_errors=details if isinstance(details, dict) else {},
            )
        if r.status_code >= 300:
            raise ServerError(f"Unexpected response status {r.status_code}", r.status_code)
        if not well_formed:
            raise ServerError(f"Unexpected response body from {path}", r.status_code)
        return body

    async def fetch_collection(self, name: str) -> Any:
        path, key = COLLECTIONS[name]
        return response_data(await self.request("GET", path), path).get(key)

    async def fetch_all(self) -> dict[str, Any]:
        """Fetch every collection concurrently; the first failure fails the whole batch."""
        names = list(COLLECTIONS)
        results = await asyncio.gather(*[self.fetch_collection(n) for n in names])
        return dict(zip(names, results))

    async def fetch_flock_summary(self) -> Optional[dict]:
        return response_data(await self.request("GET", "/flock-summary/"), "/flock-summary/").get("summary")

    async def aclose(self) -> None:
        await self._client.aclose()

    async def __aenter__(self):
        return self

    async def __aexit__(self, *exc_info):
        await self.aclose()

