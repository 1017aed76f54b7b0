from __future__ import annotations

from datetime import datetime, timedelta, timezone
from urllib.parse import parse_qs

import httpx
import pytest

from src.vidingest.auth.token_provider import ClientCredentialsTokenProvider
from src.vidingest.exceptions import AuthenticationError


class FakeClock:
    def __init__(self) -> None:
        self.now = datetime(2024, 5, 1, 12, 0, tzinfo=timezone.utc)

    def __call__(self) -> datetime:
        return self.now


def build_provider(handler, clock: FakeClock | None = None, **overrides) -> ClientCredentialsTokenProvider:
    params = dict(
        http=httpx.AsyncClient(transport=httpx.MockTransport(handler)),
        tenant_domain="contoso.onmicrosoft.com",
        client_id="client",
        client_secret="secret",
        clock=clock or FakeClock(),
    )
    params.update(overrides)
    return ClientCredentialsTokenProvider(**params)


@pytest.mark.asyncio
async def test_token_is_requested_with_client_credentials_and_cached():
    seen: list[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        return httpx.Response(200, json={"access_token": f"tok-{len(seen)}", "expires_in": "3599"})

    provider = build_provider(handler)

    assert await provider.get_token() == "tok-1"
    assert await provider.get_token() == "tok-1"
    assert len(seen) == 1
    request = seen[0]
    assert str(request.url) == "https://login.microsoftonline.com/contoso.onmicrosoft.com/oauth2/token"
    form = parse_qs(request.content.decode())
    assert form["grant_type"] == ["client_credentials"]
    assert form["resource"] == ["https://rest.media.azure.net"]


@pytest.mark.asyncio
async def test_token_is_refreshed_inside_margin():
    seen: list[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        return httpx.Response(200, json={"access_token": f"tok-{len(seen)}", "expires_in": 3600})

    clock = FakeClock()
    provider = build_provider(handler, clock, refresh_margin_seconds=300)

    await provider.get_token()
    clock.now += timedelta(minutes=56)

    assert await provider.get_token() == "tok-2"


@pytest.mark.asyncio
async def test_rejected_credentials_raise_authentication_error():
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(
            400,
            json={"error": "invalid_client", "error_description": "AADSTS7000215: Invalid client secret.\r\nTrace ID: x"},
        )

    with pytest.raises(AuthenticationError) as excinfo:
        await build_provider(handler).get_token()

    assert excinfo.value.error_code == "invalid_client"
    assert "AADSTS7000215" in str(excinfo.value)


@pytest.mark.asyncio
async def test_missing_credentials_fail_without_request():
    def handler(request: httpx.Request) -> httpx.Response:  # pragma: no cover - not reached
        raise AssertionError("token endpoint must not be called")

    with pytest.raises(AuthenticationError):
        await build_provider(handler, client_secret="").get_token()


@pytest.mark.asyncio
async def test_transport_error_is_authentication_error():
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("unreachable", request=request)

    with pytest.raises(AuthenticationError):
        await build_provider(handler).get_token()
