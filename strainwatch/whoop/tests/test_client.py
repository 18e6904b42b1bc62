"""Tests for the WHOOP API client, against a mocked transport."""

from __future__ import annotations

import json
from typing import Callable
from urllib.parse import parse_qs

import httpx
import pytest

from strainwatch.errors import (
    AuthError,
    RefreshFailed,
    RefreshRejected,
    TransientNetworkError,
    TransientRefreshError,
    UpstreamError,
)
from strainwatch.whoop.client import WhoopClient

API_BASE = "https://whoop.test"

CYCLE = {
    "id": 93845,
    "user_id": 10129,
    "start": "2026-10-18T06:25:14.059Z",
    "end": None,
    "score_state": "SCORED",
    "score": {
        "strain": 5.2951527,
        "kilojoule": 8288.297,
        "average_heart_rate": 68,
        "max_heart_rate": 141,
    },
}


def _client(handler: Callable[[httpx.Request], httpx.Response]) -> WhoopClient:
    http_client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    return WhoopClient("client-id", "client-secret", api_base=API_BASE, http_client=http_client)


# ---------------------------------------------------------------------------
# Token refresh
# ---------------------------------------------------------------------------


class TestRefreshToken:
    @pytest.mark.asyncio
    async def test_posts_refresh_grant_form(self) -> None:
        seen: list[httpx.Request] = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append(request)
            return httpx.Response(
                200, json={"access_token": "at-new", "refresh_token": "rt-new", "expires_in": 7200}
            )

        grant = await _client(handler).refresh_token("10129", "rt-old")

        assert grant.access_token == "at-new"
        assert grant.refresh_token == "rt-new"
        assert grant.expires_in == 7200
        request = seen[0]
        assert request.method == "POST"
        assert request.url.path == "/oauth/oauth2/token"
        form = parse_qs(request.content.decode())
        assert form["grant_type"] == ["refresh_token"]
        assert form["refresh_token"] == ["rt-old"]
        assert form["client_id"] == ["client-id"]
        assert form["scope"] == ["offline"]

    @pytest.mark.asyncio
    async def test_missing_refresh_token_keeps_old_one(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(200, json={"access_token": "at-new"})

        grant = await _client(handler).refresh_token("10129", "rt-old")
        assert grant.refresh_token == "rt-old"
        assert grant.expires_in == 3600

    @pytest.mark.asyncio
    async def test_invalid_grant_is_rejection(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(400, json={"error": "invalid_grant"})

        with pytest.raises(RefreshRejected) as exc_info:
            await _client(handler).refresh_token("10129", "rt-old")
        assert exc_info.value.status_code == 400

    @pytest.mark.asyncio
    async def test_invalid_grant_in_plain_text_body(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(400, text="error=invalid_grant")

        with pytest.raises(RefreshRejected):
            await _client(handler).refresh_token("10129", "rt-old")

    @pytest.mark.asyncio
    @pytest.mark.parametrize("status", [429, 500, 503])
    async def test_retryable_status_is_transient(self, status: int) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(status, json={"error": "server_error"})

        with pytest.raises(TransientRefreshError):
            await _client(handler).refresh_token("10129", "rt-old")

    @pytest.mark.asyncio
    async def test_transport_failure_is_transient(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectTimeout("timed out", request=request)

        with pytest.raises(TransientRefreshError) as exc_info:
            await _client(handler).refresh_token("10129", "rt-old")
        assert isinstance(exc_info.value, TransientNetworkError)

    @pytest.mark.asyncio
    async def test_other_client_error_is_plain_failure(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(401, json={"error": "invalid_client"})

        with pytest.raises(RefreshFailed) as exc_info:
            await _client(handler).refresh_token("10129", "rt-old")
        assert not isinstance(exc_info.value, (RefreshRejected, TransientRefreshError))

    @pytest.mark.asyncio
    async def test_malformed_success_body_fails(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(200, json={"token_type": "bearer"})

        with pytest.raises(RefreshFailed):
            await _client(handler).refresh_token("10129", "rt-old")


# ---------------------------------------------------------------------------
# Data endpoints
# ---------------------------------------------------------------------------


class TestDataEndpoints:
    @pytest.mark.asyncio
    async def test_latest_cycle_sends_bearer_and_limit(self) -> None:
        seen: list[httpx.Request] = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append(request)
            return httpx.Response(200, json={"records": [CYCLE], "next_token": None})

        cycle = await _client(handler).fetch_latest_cycle("at-123")

        assert cycle == CYCLE
        assert seen[0].url.path == "/developer/v1/cycle"
        assert seen[0].url.params["limit"] == "1"
        assert seen[0].headers["Authorization"] == "Bearer at-123"

    @pytest.mark.asyncio
    async def test_latest_cycle_none_when_no_records(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(200, json={"records": []})

        assert await _client(handler).fetch_latest_cycle("at-123") is None

    @pytest.mark.asyncio
    @pytest.mark.parametrize("status", [401, 403])
    async def test_auth_rejection_raises_auth_error(self, status: int) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(status)

        with pytest.raises(AuthError):
            await _client(handler).fetch_profile("at-123")

    @pytest.mark.asyncio
    async def test_server_error_is_transient(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(502)

        with pytest.raises(TransientNetworkError):
            await _client(handler).fetch_latest_cycle("at-123")

    @pytest.mark.asyncio
    async def test_not_found_is_upstream_error(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(404, json={"message": "not found"})

        with pytest.raises(UpstreamError) as exc_info:
            await _client(handler).fetch_workout("w-1", "at-123")
        assert exc_info.value.status_code == 404

    @pytest.mark.asyncio
    async def test_webhook_follow_up_paths(self) -> None:
        paths: list[str] = []

        def handler(request: httpx.Request) -> httpx.Response:
            paths.append(request.url.path)
            return httpx.Response(200, json={"id": "x"})

        client = _client(handler)
        await client.fetch_workout("w-1", "at")
        await client.fetch_sleep("s-1", "at")
        await client.fetch_recovery("93845", "at")
        await client.fetch_body_measurement("at")

        assert paths == [
            "/developer/v1/activity/workout/w-1",
            "/developer/v1/activity/sleep/s-1",
            "/developer/v1/cycle/93845/recovery",
            "/developer/v1/user/measurement/body",
        ]

    @pytest.mark.asyncio
    async def test_revoke_accepts_empty_body(self) -> None:
        seen: list[httpx.Request] = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append(request)
            return httpx.Response(204)

        await _client(handler).revoke_access("at-123")
        assert seen[0].method == "DELETE"
        assert seen[0].url.path == "/developer/v1/user/access"

    @pytest.mark.asyncio
    async def test_list_body_wrapped_as_records(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(200, content=json.dumps([CYCLE]).encode())

        assert await _client(handler).fetch_latest_cycle("at-123") == CYCLE
