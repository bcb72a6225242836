"""
OAuth2 Token Management for PMS Vendors
Token state machine with pre-expiry refresh, client_credentials fallback and
a single-flight guard so concurrent callers share one grant
"""

import asyncio
import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable, Dict, Mapping, Optional

import httpx

from .contracts import AuthenticationError
from .utils.logging import ConnectorLogger

DEFAULT_EXPIRES_IN = 3600


class TokenState(str, Enum):
    NO_TOKEN = "no_token"
    AUTHENTICATING = "authenticating"
    VALID = "valid"
    EXPIRING_SOON = "expiring_soon"
    REFRESHING = "refreshing"
    FALLBACK_GRANT = "fallback_grant"


@dataclass
class CredentialState:
    """Tokens held by one adapter instance"""

    access_token: Optional[str] = None
    refresh_token: Optional[str] = None
    expires_at: Optional[float] = None  # epoch seconds
    identifiers: Dict[str, Any] = field(default_factory=dict)

    def expires_in(self, now: Optional[float] = None) -> Optional[float]:
        if self.expires_at is None:
            return None
        return self.expires_at - (time.time() if now is None else now)

    def is_expiring(self, margin: float, now: Optional[float] = None) -> bool:
        remaining = self.expires_in(now)
        return remaining is None or remaining <= margin


@dataclass(frozen=True)
class OAuthClientConfig:
    """Token endpoint and client credentials"""

    token_url: str
    client_id: str
    client_secret: str
    scope: Optional[str] = None
    extra_headers: Mapping[str, str] = field(default_factory=dict)


class OAuthTokenManager:
    """
    Keeps an access token valid for one credential set.

    ``ensure_valid()`` refreshes when the token is within ``refresh_margin``
    seconds of expiry. A refresh uses the refresh_token grant when a refresh
    token is held and falls back to client_credentials when that fails.
    Concurrent callers wait on one lock; a caller that queued behind a
    completed refresh returns the new token without issuing another grant.
    """

    def __init__(
        self,
        vendor: str,
        config: OAuthClientConfig,
        timeout: float = 15.0,
        refresh_margin: float = 300.0,
        clock: Callable[[], float] = time.time,
        logger: Optional[ConnectorLogger] = None,
    ):
        self.vendor = vendor
        self.config = config
        self.timeout = timeout
        self.refresh_margin = refresh_margin
        self.credentials = CredentialState()
        self.version = 0  # bumped on every successful grant
        self._clock = clock
        self._lock = asyncio.Lock()
        self._phase: Optional[TokenState] = None
        self.logger = logger or ConnectorLogger(name="pms_connectors.auth", vendor=vendor)

    @property
    def state(self) -> TokenState:
        if self._phase is not None:
            return self._phase
        if not self.credentials.access_token:
            return TokenState.NO_TOKEN
        if self.credentials.is_expiring(self.refresh_margin, self._clock()):
            return TokenState.EXPIRING_SOON
        return TokenState.VALID

    @property
    def access_token(self) -> Optional[str]:
        return self.credentials.access_token

    def expires_in(self) -> Optional[float]:
        return self.credentials.expires_in(self._clock())

    def seed(
        self,
        access_token: Optional[str] = None,
        refresh_token: Optional[str] = None,
        expires_at: Optional[float] = None,
    ):
        """Load previously persisted tokens; a token without expiry is treated as expiring"""
        self.credentials = CredentialState(
            access_token=access_token or self.credentials.access_token,
            refresh_token=refresh_token or self.credentials.refresh_token,
            expires_at=float(expires_at) if expires_at is not None else self.credentials.expires_at,
            identifiers=dict(self.credentials.identifiers),
        )

    def _is_valid(self) -> bool:
        return self.state == TokenState.VALID

    async def ensure_valid(self) -> str:
        """Return a token that is not about to expire, refreshing if needed"""
        if self._is_valid():
            return self.credentials.access_token
        credentials = await self.refresh()
        return credentials.access_token

    async def refresh(self, force: bool = False) -> CredentialState:
        """
        Obtain a new token unless another caller already did.

        Args:
            force: Refresh even when the current token looks valid, e.g.
                after the vendor rejected it with a 401
        """
        observed = self.credentials.access_token
        async with self._lock:
            if self.credentials.access_token != observed and self._is_valid():
                return self.credentials
            if not force and self._is_valid():
                return self.credentials
            await self._obtain()
            return self.credentials

    async def _obtain(self):
        try:
            if self.credentials.refresh_token:
                self._phase = TokenState.REFRESHING
                try:
                    await self._grant(
                        {
                            "grant_type": "refresh_token",
                            "refresh_token": self.credentials.refresh_token,
                        },
                        keep_refresh_token=True,
                    )
                    return
                except AuthenticationError as e:
                    self.logger.warning("token_refresh_failed_falling_back", error=str(e))
                self._phase = TokenState.FALLBACK_GRANT
            else:
                self._phase = TokenState.AUTHENTICATING

            form = {"grant_type": "client_credentials"}
            if self.config.scope:
                form["scope"] = self.config.scope
            await self._grant(form, keep_refresh_token=False)
        finally:
            self._phase = None

    async def _grant(self, form: Dict[str, str], keep_refresh_token: bool):
        payload = {
            **form,
            "client_id": self.config.client_id,
            "client_secret": self.config.client_secret,
        }
        headers = {
            "Content-Type": "application/x-www-form-urlencoded",
            "Accept": "application/json",
            **self.config.extra_headers,
        }

        self.logger.info(
            "oauth_token_request",
            grant_type=form["grant_type"],
            client_id_prefix=self.config.client_id[:4] + "..." if self.config.client_id else None,
        )

        try:
            async with httpx.AsyncClient(timeout=self.timeout) as client:
                response = await client.post(self.config.token_url, data=payload, headers=headers)
        except httpx.HTTPError as e:
            raise AuthenticationError(
                f"Token request failed: {e}", vendor=self.vendor, operation="authenticate"
            ) from e

        if response.status_code >= 400:
            raise AuthenticationError(
                f"Token endpoint returned {response.status_code}",
                vendor=self.vendor,
                operation="authenticate",
                status_code=response.status_code,
            )

        try:
            data = response.json()
        except ValueError as e:
            raise AuthenticationError(
                "Token endpoint returned invalid JSON", vendor=self.vendor, operation="authenticate"
            ) from e

        access_token = data.get("access_token") if isinstance(data, dict) else None
        if not access_token:
            raise AuthenticationError(
                "Token response missing access_token", vendor=self.vendor, operation="authenticate"
            )

        refresh_token = data.get("refresh_token")
        if not refresh_token and keep_refresh_token:
            refresh_token = self.credentials.refresh_token

        expires_in = data.get("expires_in") or DEFAULT_EXPIRES_IN
        self.credentials = CredentialState(
            access_token=access_token,
            refresh_token=refresh_token,
            expires_at=self._clock() + float(expires_in),
            identifiers=dict(self.credentials.identifiers),
        )
        self.version += 1

        self.logger.info(
            "oauth_token_acquired", grant_type=form["grant_type"], expires_in=expires_in
        )
