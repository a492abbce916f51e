"""
Tests for BackendIdentity against a mocked HTTP transport.
"""

import httpx
import pytest

from auth.identity import BackendIdentity
from config.settings import Settings
from connectors.errors import UnauthorizedError, UpstreamError


def _identity(handler) -> BackendIdentity:
    settings = Settings(
        backend_url="https://backend.example.test",
        backend_anon_key="anon",
        backend_service_key="service",
    )
    return BackendIdentity(settings, transport=httpx.MockTransport(handler))


class TestGetUserId:
    @pytest.mark.asyncio
    async def test_resolves_caller(self):
        def handler(request: httpx.Request) -> httpx.Response:
            assert request.url.path == "/auth/v1/user"
            assert request.headers["apikey"] == "anon"
            assert request.headers["Authorization"] == "Bearer T"
            return httpx.Response(200, json={"id": "user-42"})

        assert await _identity(handler).get_user_id("T") == "user-42"

    @pytest.mark.asyncio
    async def test_rejected_token_is_unauthorized(self):
        with pytest.raises(UnauthorizedError):
            await _identity(lambda r: httpx.Response(403)).get_user_id("T")

    @pytest.mark.asyncio
    async def test_non_json_body_raises_upstream(self):
        with pytest.raises(UpstreamError):
            await _identity(lambda r: httpx.Response(200, text="ok")).get_user_id("T")

    @pytest.mark.asyncio
    async def test_list_body_raises_upstream(self):
        with pytest.raises(UpstreamError):
            await _identity(lambda r: httpx.Response(200, json=[{"id": "user-42"}])).get_user_id("T")


class TestUserExists:
    @pytest.mark.asyncio
    async def test_uses_service_key(self):
        def handler(request: httpx.Request) -> httpx.Response:
            assert request.url.path == "/auth/v1/admin/users/user-42"
            assert request.headers["apikey"] == "service"
            assert request.headers["Authorization"] == "Bearer service"
            return httpx.Response(200, json={"id": "user-42"})

        assert await _identity(handler).user_exists("user-42") is True

    @pytest.mark.asyncio
    async def test_missing_user(self):
        assert await _identity(lambda r: httpx.Response(404)).user_exists("user-42") is False

    @pytest.mark.asyncio
    async def test_non_json_body_raises_upstream(self):
        with pytest.raises(UpstreamError):
            await _identity(lambda r: httpx.Response(200, text="<html/>")).user_exists("user-42")
