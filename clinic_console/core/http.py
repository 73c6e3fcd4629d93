"""HTTP glue between the console and the clinic backend.

The backend wraps every payload in ``{"success": bool, "data": ..., "message": str}``.
``unwrap`` turns anything other than a successful envelope into a
``ConsoleError``; ``BackendClient`` adds the bearer token and replays a
request once after refreshing an expired access token.
"""
from typing import Any, Dict, Optional, TYPE_CHECKING
import logging

import httpx
from fastapi import status

from .config import Settings, settings as default_settings
from .errors import (
    BackendError, BackendUnavailableError, RateLimitedError,
    RequestTimeoutError, SessionExpiredError,
)
from .security import AuthenticationError

if TYPE_CHECKING:
    from ..services.session import Session

logger = logging.getLogger(__name__)


def create_http_client(
    settings: Settings = default_settings,
    transport: Optional[httpx.AsyncBaseTransport] = None,
) -> httpx.AsyncClient:
    """Shared async client for every backend call."""
    return httpx.AsyncClient(
        base_url=settings.BACKEND_API_URL,
        timeout=settings.REQUEST_TIMEOUT_SECONDS,
        transport=transport,
        headers={"Accept": "application/json"},
    )


def unwrap(response: httpx.Response) -> Dict[str, Any]:
    """Return the decoded envelope of a successful response."""
    try:
        body = response.json()
    except ValueError:
        body = None

    message = body.get("message") if isinstance(body, dict) else None

    if response.status_code == status.HTTP_429_TOO_MANY_REQUESTS:
        raise RateLimitedError(upstream_status=response.status_code)

    if response.status_code >= 400:
        raise BackendError(message, upstream_status=response.status_code)

    if not isinstance(body, dict):
        raise BackendError(upstream_status=response.status_code)

    if body.get("success") is False:
        raise BackendError(message, upstream_status=response.status_code)

    return body


async def send(
    http: httpx.AsyncClient,
    method: str,
    path: str,
    *,
    headers: Optional[Dict[str, str]] = None,
    **kwargs,
) -> httpx.Response:
    """Send one request, mapping transport failures onto console errors."""
    try:
        response = await http.request(method, path, headers=headers, **kwargs)
    except httpx.TimeoutException as e:
        logger.warning(f"{method} {path} timed out: {e!r}")
        raise RequestTimeoutError() from e
    except httpx.TransportError as e:
        logger.warning(f"{method} {path} failed: {e!r}")
        raise BackendUnavailableError() from e

    logger.info(f"backend {method} {path} - Status: {response.status_code}")
    return response


class BackendClient:
    """Authenticated access to the clinic backend."""

    def __init__(self, http: httpx.AsyncClient, session: "Session"):
        self.http = http
        self.session = session

    def _auth_headers(self) -> Dict[str, str]:
        token = self.session.access_token
        return {"Authorization": f"Bearer {token}"} if token else {}

    async def _refresh(self, stale_token: Optional[str]) -> None:
        try:
            await self.session.refresh(stale_token)
        except AuthenticationError as e:
            raise SessionExpiredError(upstream_status=e.status_code) from e

    async def request(self, method: str, path: str, **kwargs) -> Dict[str, Any]:
        if self.session.refresh_token and self.session.access_token_expired():
            await self._refresh(self.session.access_token)

        used_token = self.session.access_token
        response = await send(self.http, method, path, headers=self._auth_headers(), **kwargs)

        if response.status_code == status.HTTP_401_UNAUTHORIZED:
            if not self.session.refresh_token:
                raise SessionExpiredError(upstream_status=response.status_code)
            await self._refresh(used_token)
            response = await send(self.http, method, path, headers=self._auth_headers(), **kwargs)
            if response.status_code == status.HTTP_401_UNAUTHORIZED:
                raise SessionExpiredError(upstream_status=response.status_code)

        return unwrap(response)

    async def get(self, path: str, **kwargs) -> Dict[str, Any]:
        return await self.request("GET", path, **kwargs)

    async def post(self, path: str, **kwargs) -> Dict[str, Any]:
        return await self.request("POST", path, **kwargs)
