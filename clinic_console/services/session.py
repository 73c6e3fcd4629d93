from typing import Any, Awaitable, Callable, Dict, Optional, Tuple
from enum import Enum
import asyncio
import logging
import time

import httpx
from fastapi import status

from ..core import messages
from ..core.config import Settings, settings as default_settings
from ..core.errors import (
    BackendError, BackendUnavailableError, ConsoleError,
    RateLimitedError, RequestTimeoutError,
)
from ..core.http import send, unwrap
from ..core.security import AuthenticationError, AuthorizationError, Role, token_expired
from ..models.user import User

logger = logging.getLogger(__name__)

ClockFn = Callable[[], float]
SleepFn = Callable[[float], Awaitable[None]]

_RETRYABLE_STATUSES = {
    status.HTTP_429_TOO_MANY_REQUESTS,
    status.HTTP_500_INTERNAL_SERVER_ERROR,
    status.HTTP_502_BAD_GATEWAY,
    status.HTTP_503_SERVICE_UNAVAILABLE,
    status.HTTP_504_GATEWAY_TIMEOUT,
}

class SessionState(str, Enum):
    UNKNOWN = "unknown"
    RESTORING = "restoring"
    AUTHENTICATED = "authenticated"
    ANONYMOUS = "anonymous"

class Session:
    """The operator's session against the clinic backend.

    Ordering between a background restore and an explicit login is decided
    by a generation counter: every login/logout bumps it, and a restore or
    refresh that finishes under an older generation discards its result.
    """

    def __init__(
        self,
        http: httpx.AsyncClient,
        settings: Settings = default_settings,
        *,
        clock: ClockFn = time.monotonic,
        sleep: SleepFn = asyncio.sleep,
    ):
        self.http = http
        self.settings = settings
        self.clock = clock
        self.sleep = sleep

        self.state = SessionState.UNKNOWN
        self.user: Optional[User] = None
        self.access_token: Optional[str] = None
        self.refresh_token: Optional[str] = settings.REFRESH_TOKEN

        self._generation = 0
        self._refresh_lock = asyncio.Lock()
        self._last_refresh_attempt: Optional[float] = None

    @property
    def is_authenticated(self) -> bool:
        return self.state == SessionState.AUTHENTICATED

    def access_token_expired(self) -> bool:
        if not self.access_token:
            return True
        return token_expired(self.access_token, self.settings.ACCESS_TOKEN_LEEWAY_SECONDS)

    def require_user(self, *roles: Role) -> User:
        """Return the signed-in user, optionally restricted to ``roles``."""
        if not self.is_authenticated or self.user is None:
            raise AuthenticationError(messages.SESSION_EXPIRED)
        if roles and self.user.role not in roles:
            raise AuthorizationError(
                f"Access denied. Required roles: {[role.value for role in roles]}"
            )
        return self.user

    async def login(self, email: str, password: str) -> User:
        """Authenticate with email/password and adopt the returned tokens."""
        generation = self._bump()
        self._clear()
        self.state = SessionState.ANONYMOUS

        response = await send(
            self.http, "POST", "/auth/login",
            json={"email": email, "password": password},
        )
        try:
            body = unwrap(response)
        except RateLimitedError:
            raise
        except BackendError as e:
            raise AuthenticationError(_server_message(e) or messages.LOGIN_FAILED) from e

        tokens = body.get("tokens") or {}
        user = User.from_payload(body["user"])
        if generation == self._generation:
            self.access_token = tokens.get("accessToken")
            self.refresh_token = tokens.get("refreshToken")
            self.user = user
            self.state = SessionState.AUTHENTICATED
            logger.info(f"Operator {user.email} signed in as {user.role.value}")
        return user

    async def login_with_token(self, access_token: str, refresh_token: Optional[str] = None) -> User:
        """Adopt tokens issued elsewhere (OAuth callback) and load the profile."""
        generation = self._bump()
        self.access_token = access_token
        self.refresh_token = refresh_token

        try:
            user = await self._fetch_profile(access_token)
        except ConsoleError as e:
            if generation == self._generation:
                self._clear()
                self.state = SessionState.ANONYMOUS
            raise AuthenticationError(_server_message(e) or messages.LOGIN_FAILED) from e

        if generation == self._generation:
            self.user = user
            self.state = SessionState.AUTHENTICATED
        return user

    async def restore(self) -> SessionState:
        """Resume a previous session from the stored refresh token."""
        if self.state == SessionState.AUTHENTICATED:
            return self.state

        if not self.refresh_token:
            self.state = SessionState.ANONYMOUS
            return self.state

        generation = self._generation
        self.state = SessionState.RESTORING
        try:
            await self.refresh()
        except (AuthenticationError, ConsoleError) as e:
            logger.info(f"Session restore failed: {getattr(e, 'detail', e)}")
            if generation == self._generation:
                self._clear()
                self.state = SessionState.ANONYMOUS

        return self.state

    async def refresh(self, stale_token: Optional[str] = None) -> None:
        """Exchange the refresh token for a new access token.

        Concurrent callers are serialized; a caller holding ``stale_token``
        returns immediately when another caller already replaced it.
        """
        async with self._refresh_lock:
            if stale_token is not None and self.access_token and self.access_token != stale_token:
                return

            refresh_token = self.refresh_token
            if not refresh_token:
                raise AuthenticationError(messages.SESSION_EXPIRED)

            now = self.clock()
            if (
                self._last_refresh_attempt is not None
                and now - self._last_refresh_attempt < self.settings.MIN_REFRESH_INTERVAL_SECONDS
            ):
                raise RateLimitedError(messages.REFRESH_TOO_SOON)
            self._last_refresh_attempt = now

            generation = self._generation
            try:
                access_token, new_refresh_token, user_payload = await self._request_refresh(refresh_token)
            except AuthenticationError:
                if generation == self._generation:
                    self._clear()
                    self.state = SessionState.ANONYMOUS
                raise

            if generation != self._generation:
                logger.info("Discarding refresh result from a superseded session")
                return

            self.access_token = access_token
            if new_refresh_token:
                self.refresh_token = new_refresh_token

            if user_payload:
                self.user = User.from_payload(user_payload)
            elif self.user is None:
                self.user = await self._fetch_profile(access_token)

            self.state = SessionState.AUTHENTICATED

    async def logout(self) -> bool:
        """Revoke the refresh token (best effort) and forget local tokens."""
        self._bump()
        refresh_token, access_token = self.refresh_token, self.access_token
        self._clear()
        self.state = SessionState.ANONYMOUS

        if not refresh_token:
            return True

        headers = {"Authorization": f"Bearer {access_token}"} if access_token else None
        try:
            response = await send(
                self.http, "POST", "/auth/logout",
                json={"refreshToken": refresh_token}, headers=headers,
            )
            unwrap(response)
            return True
        except ConsoleError as e:
            logger.warning(f"Backend logout failed: {e.message}")
            return False

    async def _request_refresh(self, refresh_token: str) -> Tuple[str, Optional[str], Optional[Dict[str, Any]]]:
        delay = self.settings.REFRESH_INITIAL_DELAY_SECONDS
        attempts = self.settings.REFRESH_MAX_RETRIES + 1

        for attempt in range(1, attempts + 1):
            try:
                response = await send(
                    self.http, "POST", "/auth/refresh-token",
                    json={"refreshToken": refresh_token},
                )
                body = unwrap(response)
            except (BackendUnavailableError, RequestTimeoutError, RateLimitedError) as e:
                last_error: ConsoleError = e
            except BackendError as e:
                if e.upstream_status not in _RETRYABLE_STATUSES:
                    raise AuthenticationError(messages.SESSION_EXPIRED) from e
                last_error = e
            else:
                data = body.get("data") if isinstance(body.get("data"), dict) else {}
                access_token = body.get("accessToken") or data.get("accessToken")
                if not access_token:
                    raise AuthenticationError(messages.SESSION_EXPIRED)
                new_refresh = body.get("refreshToken") or data.get("refreshToken")
                return access_token, new_refresh, body.get("user") or data.get("user")

            if attempt < attempts:
                logger.warning(
                    f"Token refresh attempt {attempt} failed ({last_error.message}), "
                    f"retrying in {delay:.1f}s"
                )
                await self.sleep(delay)
                delay *= 2

        raise AuthenticationError(messages.SESSION_EXPIRED)

    async def _fetch_profile(self, access_token: str) -> User:
        response = await send(
            self.http, "GET", "/profile",
            headers={"Authorization": f"Bearer {access_token}"},
        )
        body = unwrap(response)
        payload = body.get("data") or body.get("user")
        if not isinstance(payload, dict):
            raise BackendError(upstream_status=response.status_code)
        return User.from_payload(payload)

    def _bump(self) -> int:
        self._generation += 1
        return self._generation

    def _clear(self) -> None:
        self.access_token = None
        self.refresh_token = None
        self.user = None

def _server_message(error: ConsoleError) -> Optional[str]:
    if error.message != error.default_message:
        return error.message
    return None
