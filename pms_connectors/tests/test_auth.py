"""
Tests for the OAuth token state machine
"""

import asyncio

import pytest

from ..auth import OAuthClientConfig, OAuthTokenManager, TokenState
from ..contracts import AuthenticationError
from .fixtures import form_body

TOKEN_URL = "https://auth.test/oauth/token"


class FakeClock:
    def __init__(self):
        self.now = 1_700_000_000.0

    def __call__(self):
        return self.now


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def manager(clock):
    return OAuthTokenManager(
        "testvendor",
        OAuthClientConfig(
            token_url=TOKEN_URL,
            client_id="client-abc",
            client_secret="s3cret",
            scope="reservations",
            extra_headers={"x-app-key": "app-1"},
        ),
        refresh_margin=300.0,
        clock=clock,
    )


class TestClientCredentials:
    @pytest.mark.asyncio
    async def test_initial_grant(self, manager, httpx_mock, oauth_token_response):
        httpx_mock.add_response(method="POST", url=TOKEN_URL, json=oauth_token_response)
        assert manager.state == TokenState.NO_TOKEN

        token = await manager.ensure_valid()

        assert token == "test-token-123"
        assert manager.state == TokenState.VALID
        assert manager.version == 1
        assert manager.expires_in() == 3600

        request = httpx_mock.get_request()
        assert form_body(request) == {
            "grant_type": "client_credentials",
            "scope": "reservations",
            "client_id": "client-abc",
            "client_secret": "s3cret",
        }
        assert request.headers["x-app-key"] == "app-1"

    @pytest.mark.asyncio
    async def test_valid_token_is_cached(self, manager, httpx_mock, oauth_token_response):
        httpx_mock.add_response(method="POST", url=TOKEN_URL, json=oauth_token_response)

        await manager.ensure_valid()
        await manager.ensure_valid()

        assert len(httpx_mock.get_requests()) == 1

    @pytest.mark.asyncio
    async def test_missing_expiry_defaults_to_an_hour(self, manager, httpx_mock):
        httpx_mock.add_response(method="POST", url=TOKEN_URL, json={"access_token": "t"})

        await manager.ensure_valid()

        assert manager.expires_in() == 3600

    @pytest.mark.asyncio
    async def test_rejected_credentials(self, manager, httpx_mock):
        httpx_mock.add_response(method="POST", url=TOKEN_URL, status_code=401)

        with pytest.raises(AuthenticationError) as exc_info:
            await manager.ensure_valid()

        assert exc_info.value.status_code == 401
        assert manager.state == TokenState.NO_TOKEN

    @pytest.mark.asyncio
    async def test_missing_access_token(self, manager, httpx_mock):
        httpx_mock.add_response(method="POST", url=TOKEN_URL, json={"token_type": "Bearer"})

        with pytest.raises(AuthenticationError):
            await manager.ensure_valid()

    @pytest.mark.asyncio
    async def test_invalid_json(self, manager, httpx_mock):
        httpx_mock.add_response(method="POST", url=TOKEN_URL, text="<html>oops</html>")

        with pytest.raises(AuthenticationError):
            await manager.ensure_valid()


class TestRefresh:
    @pytest.mark.asyncio
    async def test_refresh_grant_near_expiry(self, manager, clock, httpx_mock):
        httpx_mock.add_response(
            method="POST",
            url=TOKEN_URL,
            json={"access_token": "first", "refresh_token": "rt-1", "expires_in": 3600},
        )
        httpx_mock.add_response(
            method="POST", url=TOKEN_URL, json={"access_token": "second", "expires_in": 3600}
        )

        await manager.ensure_valid()
        clock.now += 3400
        assert manager.state == TokenState.EXPIRING_SOON

        assert await manager.ensure_valid() == "second"
        assert manager.credentials.refresh_token == "rt-1"

        refresh_request = httpx_mock.get_requests()[1]
        assert form_body(refresh_request)["grant_type"] == "refresh_token"
        assert form_body(refresh_request)["refresh_token"] == "rt-1"

    @pytest.mark.asyncio
    async def test_failed_refresh_falls_back(self, manager, clock, httpx_mock):
        httpx_mock.add_response(
            method="POST",
            url=TOKEN_URL,
            json={"access_token": "first", "refresh_token": "rt-1", "expires_in": 600},
        )
        httpx_mock.add_response(method="POST", url=TOKEN_URL, status_code=400)
        httpx_mock.add_response(
            method="POST", url=TOKEN_URL, json={"access_token": "fresh", "expires_in": 3600}
        )

        await manager.ensure_valid()
        clock.now += 400

        assert await manager.ensure_valid() == "fresh"
        grants = [form_body(r)["grant_type"] for r in httpx_mock.get_requests()]
        assert grants == ["client_credentials", "refresh_token", "client_credentials"]
        assert manager.credentials.refresh_token is None

    @pytest.mark.asyncio
    async def test_forced_refresh(self, manager, httpx_mock):
        httpx_mock.add_response(method="POST", url=TOKEN_URL, json={"access_token": "first"})
        httpx_mock.add_response(method="POST", url=TOKEN_URL, json={"access_token": "second"})

        await manager.ensure_valid()
        credentials = await manager.refresh(force=True)

        assert credentials.access_token == "second"
        assert manager.version == 2

    @pytest.mark.asyncio
    async def test_concurrent_callers_share_one_grant(self, manager, httpx_mock, oauth_token_response):
        httpx_mock.add_response(method="POST", url=TOKEN_URL, json=oauth_token_response)

        tokens = await asyncio.gather(*(manager.ensure_valid() for _ in range(5)))

        assert set(tokens) == {"test-token-123"}
        assert len(httpx_mock.get_requests()) == 1
        assert manager.version == 1


class TestSeed:
    @pytest.mark.asyncio
    async def test_seeded_token_used(self, manager, clock):
        manager.seed(access_token="seeded", refresh_token="rt", expires_at=clock() + 3600)

        assert await manager.ensure_valid() == "seeded"
        assert manager.state == TokenState.VALID

    @pytest.mark.asyncio
    async def test_seeded_token_without_expiry_is_refreshed(self, manager, httpx_mock):
        httpx_mock.add_response(method="POST", url=TOKEN_URL, json={"access_token": "new"})
        manager.seed(access_token="stale")

        assert manager.state == TokenState.EXPIRING_SOON
        assert await manager.ensure_valid() == "new"
