"""Bearer token acquisition for the media-services REST API."""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import Callable, Protocol

import httpx

from ..exceptions import AuthenticationError

logger = logging.getLogger(__name__)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class TokenProvider(Protocol):
    """Source of bearer tokens for outbound service calls."""

    async def get_token(self) -> str:
        """Return a token that is valid for at least the refresh margin."""


@dataclass(slots=True)
class AccessToken:
    value: str
    expires_at: datetime

    def is_fresh(self, now: datetime, margin_seconds: int) -> bool:
        return now + timedelta(seconds=margin_seconds) < self.expires_at


@dataclass(slots=True)
class ClientCredentialsTokenProvider:
    """Request tokens with the OAuth2 client-credentials grant and cache them."""

    http: httpx.AsyncClient
    tenant_domain: str
    client_id: str
    client_secret: str
    resource: str = "https://rest.media.azure.net"
    authority_url: str = "https://login.microsoftonline.com"
    refresh_margin_seconds: int = 300
    clock: Callable[[], datetime] = field(default=_utcnow)
    log: logging.Logger = field(default_factory=lambda: logger)
    _token: AccessToken | None = field(default=None, init=False)
    _lock: asyncio.Lock = field(default_factory=asyncio.Lock, init=False)

    @property
    def token_url(self) -> str:
        return f"{self.authority_url.rstrip('/')}/{self.tenant_domain}/oauth2/token"

    async def get_token(self) -> str:
        async with self._lock:
            now = self.clock()
            if self._token is not None and self._token.is_fresh(
                now, self.refresh_margin_seconds
            ):
                return self._token.value
            self._token = await self._request_token(now)
            return self._token.value

    async def _request_token(self, now: datetime) -> AccessToken:
        if not self.tenant_domain or not self.client_id or not self.client_secret:
            raise AuthenticationError("Service principal credentials are not configured")

        form = {
            "grant_type": "client_credentials",
            "client_id": self.client_id,
            "client_secret": self.client_secret,
            "resource": self.resource,
        }
        try:
            response = await self.http.post(self.token_url, data=form)
        except httpx.HTTPError as exc:
            raise AuthenticationError(f"Token request failed: {exc}") from exc

        if response.status_code != 200:
            error_code, detail = _extract_oauth_error(response)
            self.log.error(
                "auth.token.rejected status=%s error=%s",
                response.status_code,
                error_code,
                extra={"tenant": self.tenant_domain, "detail": detail},
            )
            raise AuthenticationError(
                f"Token request rejected (status={response.status_code}): {detail}",
                status_code=response.status_code,
                error_code=error_code,
                operation="acquire_token",
            )

        body = response.json()
        value = body.get("access_token")
        if not value:
            raise AuthenticationError("Token response does not contain access_token")
        expires_in = int(body.get("expires_in", 3600))
        self.log.info(
            "auth.token.acquired",
            extra={"tenant": self.tenant_domain, "expires_in": expires_in},
        )
        return AccessToken(value=value, expires_at=now + timedelta(seconds=expires_in))


def _extract_oauth_error(response: httpx.Response) -> tuple[str | None, str]:
    try:
        data = response.json()
    except ValueError:
        return None, response.text[:500]
    code = data.get("error")
    description = (data.get("error_description") or "").strip().splitlines()
    return code, description[0] if description else str(code or data)
