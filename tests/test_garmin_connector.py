"""
Tests for GarminConnector against a mocked HTTP transport.
"""

from urllib.parse import parse_qs, urlparse

import httpx
import pytest

from config.settings import Settings
from connectors.errors import UpstreamError
from connectors.garmin import GarminConnector


def _settings(**overrides) -> Settings:
    values = dict(
        garmin_client_id="cid",
        garmin_client_secret="csecret",
        oauth_redirect_base="https://api.example.test",
        app_url="https://app.example.test",
    )
    values.update(overrides)
    return Settings(**values)


def _connector(handler, **overrides) -> GarminConnector:
    return GarminConnector(_settings(**overrides), transport=httpx.MockTransport(handler))


class TestAuthUrl:
    def test_contains_pkce_and_state(self):
        conn = GarminConnector(_settings())
        url = urlparse(conn.get_auth_url("abc123:user-42", "CHALLENGE"))
        params = {k: v[0] for k, v in parse_qs(url.query).items()}

        assert f"{url.scheme}://{url.netloc}{url.path}" == "https://connect.garmin.com/oauth2Confirm"
        assert params == {
            "response_type": "code",
            "client_id": "cid",
            "code_challenge": "CHALLENGE",
            "code_challenge_method": "S256",
            "redirect_uri": "https://api.example.test/api/v1/garmin/oauth/callback",
            "state": "abc123:user-42",
        }

    def test_is_configured(self):
        assert GarminConnector(_settings()).is_configured()
        assert not GarminConnector(_settings(garmin_client_secret="")).is_configured()


class TestExchangeCode:
    @pytest.mark.asyncio
    async def test_posts_form_and_returns_tokens(self):
        seen = {}

        def handler(request: httpx.Request) -> httpx.Response:
            seen["url"] = str(request.url)
            seen["form"] = {k: v[0] for k, v in parse_qs(request.content.decode()).items()}
            return httpx.Response(
                200, json={"access_token": "AT", "refresh_token": "RT", "expires_in": 3600}
            )

        tokens = await _connector(handler).exchange_code("xyz", "VERIFIER")

        assert seen["url"] == "https://diauth.garmin.com/di-oauth2-service/oauth/token"
        assert seen["form"] == {
            "grant_type": "authorization_code",
            "client_id": "cid",
            "client_secret": "csecret",
            "code": "xyz",
            "code_verifier": "VERIFIER",
            "redirect_uri": "https://api.example.test/api/v1/garmin/oauth/callback",
        }
        assert tokens == {"access_token": "AT", "refresh_token": "RT", "expires_in": 3600}

    @pytest.mark.asyncio
    async def test_non_2xx_raises_upstream(self):
        conn = _connector(lambda r: httpx.Response(400, text="invalid_grant"))
        with pytest.raises(UpstreamError) as info:
            await conn.exchange_code("xyz", "V")
        assert "invalid_grant" in info.value.detail
        assert "invalid_grant" not in info.value.message

    @pytest.mark.asyncio
    async def test_missing_refresh_token_raises(self):
        conn = _connector(lambda r: httpx.Response(200, json={"access_token": "AT"}))
        with pytest.raises(UpstreamError):
            await conn.exchange_code("xyz", "V")

    @pytest.mark.asyncio
    async def test_non_json_body_raises_upstream(self):
        conn = _connector(lambda r: httpx.Response(200, text="<html>maintenance</html>"))
        with pytest.raises(UpstreamError):
            await conn.exchange_code("xyz", "V")

    @pytest.mark.asyncio
    async def test_list_body_raises_upstream(self):
        conn = _connector(lambda r: httpx.Response(200, json=["AT", "RT"]))
        with pytest.raises(UpstreamError):
            await conn.exchange_code("xyz", "V")

    @pytest.mark.asyncio
    async def test_transport_error_raises_upstream(self):
        def handler(request):
            raise httpx.ConnectTimeout("timed out", request=request)

        with pytest.raises(UpstreamError):
            await _connector(handler).exchange_code("xyz", "V")


class TestFetchAccountId:
    @pytest.mark.asyncio
    async def test_uses_bearer_token(self):
        def handler(request: httpx.Request) -> httpx.Response:
            assert request.headers["Authorization"] == "Bearer AT"
            assert request.url.path == "/wellness-api/rest/user/id"
            return httpx.Response(200, json={"userId": "g-1"})

        assert await _connector(handler).fetch_account_id("AT") == "g-1"

    @pytest.mark.asyncio
    async def test_missing_user_id_raises(self):
        conn = _connector(lambda r: httpx.Response(200, json={}))
        with pytest.raises(UpstreamError):
            await conn.fetch_account_id("AT")

    @pytest.mark.asyncio
    async def test_non_object_body_raises(self):
        for resp in (httpx.Response(200, text="g-1"), httpx.Response(200, json=["g-1"])):
            conn = _connector(lambda r, resp=resp: resp)
            with pytest.raises(UpstreamError):
                await conn.fetch_account_id("AT")

    @pytest.mark.asyncio
    async def test_unauthorized_raises(self):
        conn = _connector(lambda r: httpx.Response(401))
        with pytest.raises(UpstreamError):
            await conn.fetch_account_id("AT")


class TestRefreshAndRevoke:
    @pytest.mark.asyncio
    async def test_refresh_returns_rotated_token(self):
        def handler(request: httpx.Request) -> httpx.Response:
            form = parse_qs(request.content.decode())
            assert form["grant_type"] == ["refresh_token"]
            assert form["refresh_token"] == ["RT"]
            return httpx.Response(
                200, json={"access_token": "AT2", "refresh_token": "RT2", "expires_in": 86400}
            )

        data = await _connector(handler).refresh_access_token("RT")
        assert data == {"access_token": "AT2", "refresh_token": "RT2", "expires_in": 86400}

    @pytest.mark.asyncio
    async def test_revoke_success(self):
        def handler(request: httpx.Request) -> httpx.Response:
            assert request.method == "DELETE"
            assert request.url.path == "/wellness-api/rest/user/registration"
            return httpx.Response(204)

        assert await _connector(handler).revoke_token("AT") is True

    @pytest.mark.asyncio
    async def test_revoke_tolerates_server_error(self):
        assert await _connector(lambda r: httpx.Response(500)).revoke_token("AT") is False

    @pytest.mark.asyncio
    async def test_revoke_tolerates_timeout(self):
        def handler(request):
            raise httpx.ReadTimeout("slow", request=request)

        assert await _connector(handler).revoke_token("AT") is False
