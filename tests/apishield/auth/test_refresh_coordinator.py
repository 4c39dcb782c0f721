"""Tests for single-flight token refresh."""

import asyncio
from unittest.mock import AsyncMock

import pytest

from apishield.auth.models import RefreshRequest, RefreshResponse
from apishield.auth.refresh import HttpRefreshProvider, RefreshCoordinator
from apishield.errors.exceptions import (
    MissingRefreshTokenError,
    NetworkError,
    TokenRefreshError,
)
from apishield.transport.models import Response


class GatedProvider:
    """Refresh provider that blocks until released."""

    def __init__(self, access_token="access-2", refresh_token=None, error=None):
        self.calls = []
        self.release = asyncio.Event()
        self.access_token = access_token
        self.refresh_token = refresh_token
        self.error = error

    async def refresh(self, refresh_token):
        self.calls.append(refresh_token)
        await self.release.wait()
        if self.error is not None:
            raise self.error
        return RefreshResponse(token=self.access_token, refreshToken=self.refresh_token)


class TestRefreshModels:

    def test_request_payload_uses_camel_case(self):
        assert RefreshRequest(refresh_token="r1").to_payload() == {"refreshToken": "r1"}

    @pytest.mark.parametrize("key", ["token", "accessToken", "access_token"])
    def test_access_token_aliases(self, key):
        assert RefreshResponse.model_validate({key: "abc"}).access_token == "abc"

    def test_rotated_refresh_token(self):
        response = RefreshResponse.model_validate({"token": "a", "refreshToken": "r2"})

        assert response.refresh_token == "r2"

    def test_blank_refresh_token_is_none(self):
        assert RefreshResponse.model_validate({"token": "a", "refresh_token": ""}).refresh_token is None

    def test_missing_or_blank_access_token_rejected(self):
        with pytest.raises(ValueError):
            RefreshResponse.model_validate({"refreshToken": "r2"})
        with pytest.raises(ValueError):
            RefreshResponse.model_validate({"token": "   "})


class TestRefreshCoordinator:
    """Tests for RefreshCoordinator."""

    @pytest.mark.asyncio
    async def test_concurrent_callers_share_one_refresh(self, logged_in_store):
        provider = GatedProvider()
        coordinator = RefreshCoordinator(logged_in_store, provider)

        waiters = [asyncio.ensure_future(coordinator.refresh()) for _ in range(5)]
        await asyncio.sleep(0)
        assert coordinator.is_refreshing
        provider.release.set()
        tokens = await asyncio.gather(*waiters)

        assert tokens == ["access-2"] * 5
        assert provider.calls == ["refresh-1"]
        assert not coordinator.is_refreshing

    @pytest.mark.asyncio
    async def test_success_stores_tokens_and_keeps_refresh_token(self, logged_in_store):
        provider = GatedProvider()
        provider.release.set()
        coordinator = RefreshCoordinator(logged_in_store, provider)

        await coordinator.refresh()

        credentials = logged_in_store.get_credentials()
        assert credentials.access_token == "access-2"
        assert credentials.refresh_token == "refresh-1"
        assert credentials.user_id == "42"

    @pytest.mark.asyncio
    async def test_rotated_refresh_token_stored(self, logged_in_store):
        provider = GatedProvider(refresh_token="refresh-2")
        provider.release.set()

        await RefreshCoordinator(logged_in_store, provider).refresh()

        assert logged_in_store.get_refresh_token() == "refresh-2"

    @pytest.mark.asyncio
    async def test_failure_reaches_every_waiter_and_clears_store(self, logged_in_store):
        provider = GatedProvider(error=TokenRefreshError("rejected", status=401))
        coordinator = RefreshCoordinator(logged_in_store, provider)

        waiters = [asyncio.ensure_future(coordinator.refresh()) for _ in range(3)]
        await asyncio.sleep(0)
        provider.release.set()
        results = await asyncio.gather(*waiters, return_exceptions=True)

        assert all(isinstance(r, TokenRefreshError) for r in results)
        assert len(provider.calls) == 1
        assert logged_in_store.get_credentials() is None
        assert not coordinator.is_refreshing

    @pytest.mark.asyncio
    async def test_unexpected_failure_wrapped(self, logged_in_store):
        provider = GatedProvider(error=RuntimeError("boom"))
        provider.release.set()

        with pytest.raises(TokenRefreshError) as exc_info:
            await RefreshCoordinator(logged_in_store, provider).refresh()

        assert isinstance(exc_info.value.cause, RuntimeError)

    @pytest.mark.asyncio
    async def test_missing_refresh_token(self, store):
        provider = GatedProvider()

        with pytest.raises(MissingRefreshTokenError):
            await RefreshCoordinator(store, provider).refresh()

        assert provider.calls == []

    @pytest.mark.asyncio
    async def test_new_refresh_after_previous_completes(self, logged_in_store):
        provider = GatedProvider()
        provider.release.set()
        coordinator = RefreshCoordinator(logged_in_store, provider)

        await coordinator.refresh()
        await coordinator.refresh()

        assert len(provider.calls) == 2

    @pytest.mark.asyncio
    async def test_cancelled_waiter_does_not_cancel_refresh(self, logged_in_store):
        provider = GatedProvider()
        coordinator = RefreshCoordinator(logged_in_store, provider)

        first = asyncio.ensure_future(coordinator.refresh())
        second = asyncio.ensure_future(coordinator.refresh())
        await asyncio.sleep(0)
        first.cancel()
        await asyncio.sleep(0)
        provider.release.set()

        assert await second == "access-2"
        assert first.cancelled()

    @pytest.mark.asyncio
    async def test_close_cancels_pending_refresh(self, logged_in_store):
        provider = GatedProvider()
        coordinator = RefreshCoordinator(logged_in_store, provider)
        waiter = asyncio.ensure_future(coordinator.refresh())
        await asyncio.sleep(0)

        await coordinator.close()

        with pytest.raises(asyncio.CancelledError):
            await waiter
        assert not coordinator.is_refreshing
        # Cancellation is not a refresh failure
        assert logged_in_store.get_access_token() == "access-1"


class TestHttpRefreshProvider:
    """Tests for HttpRefreshProvider."""

    @pytest.mark.asyncio
    async def test_posts_refresh_token(self):
        transport = AsyncMock()
        transport.send = AsyncMock(return_value=Response(200, body={"token": "new"}))
        provider = HttpRefreshProvider(transport, "/auth/refresh")

        result = await provider.refresh("r1")

        assert result.access_token == "new"
        request = transport.send.call_args[0][0]
        assert request.method == "POST"
        assert request.path == "/auth/refresh"
        assert request.body == {"refreshToken": "r1"}
        assert request.retry_disabled is True
        assert request.get_header("Authorization") is None

    @pytest.mark.asyncio
    async def test_stamps_correlation_id(self):
        transport = AsyncMock()
        transport.send = AsyncMock(return_value=Response(200, body={"token": "new"}))
        provider = HttpRefreshProvider(transport, correlation_header="X-Trace")

        await provider.refresh("r1")
        await provider.refresh("r1")

        first = transport.send.call_args_list[0][0][0]
        second = transport.send.call_args_list[1][0][0]
        assert first.get_header("X-Trace")
        assert first.get_header("X-Trace") == first.correlation_id
        assert second.get_header("X-Trace") != first.get_header("X-Trace")

    @pytest.mark.asyncio
    async def test_rejected_status(self):
        transport = AsyncMock()
        transport.send = AsyncMock(return_value=Response(401, body={"message": "expired"}))

        with pytest.raises(TokenRefreshError) as exc_info:
            await HttpRefreshProvider(transport).refresh("r1")

        assert exc_info.value.status == 401

    @pytest.mark.asyncio
    async def test_transport_failure(self):
        transport = AsyncMock()
        transport.send = AsyncMock(side_effect=NetworkError("down"))

        with pytest.raises(TokenRefreshError) as exc_info:
            await HttpRefreshProvider(transport).refresh("r1")

        assert isinstance(exc_info.value.cause, NetworkError)

    @pytest.mark.asyncio
    async def test_payload_without_token(self):
        transport = AsyncMock()
        transport.send = AsyncMock(return_value=Response(200, body={"ok": True}))

        with pytest.raises(TokenRefreshError):
            await HttpRefreshProvider(transport).refresh("r1")

    @pytest.mark.asyncio
    async def test_non_json_payload(self):
        transport = AsyncMock()
        transport.send = AsyncMock(return_value=Response(200, body="ok"))

        with pytest.raises(TokenRefreshError):
            await HttpRefreshProvider(transport).refresh("r1")
