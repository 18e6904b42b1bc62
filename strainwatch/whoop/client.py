"""WHOOP API v1 client.

Uses OAuth2 bearer tokens obtained by the vault.

API base: https://api.prod.whoop.com

Endpoints used:
    /oauth/oauth2/token                      — refresh_token grant
    /developer/v1/cycle?limit=1              — latest physiological cycle (strain)
    /developer/v1/user/profile/basic         — name / email
    /developer/v1/user/measurement/body      — height, weight, max heart rate
    /developer/v1/activity/workout/{id}      — webhook follow-up
    /developer/v1/activity/sleep/{id}        — webhook follow-up
    /developer/v1/cycle/{id}/recovery        — webhook follow-up
    /developer/v1/user/access                — revoke (DELETE)
"""

from __future__ import annotations

import logging
from typing import Any

import httpx

from strainwatch.credentials.models import TokenGrant
from strainwatch.errors import (
    AuthError,
    RefreshFailed,
    RefreshRejected,
    TransientNetworkError,
    TransientRefreshError,
    UpstreamError,
)

logger = logging.getLogger("strainwatch.whoop")

_TOKEN_PATH = "/oauth/oauth2/token"
_CYCLE_PATH = "/developer/v1/cycle"
_PROFILE_PATH = "/developer/v1/user/profile/basic"
_BODY_PATH = "/developer/v1/user/measurement/body"
_ACCESS_PATH = "/developer/v1/user/access"

# OAuth error codes meaning the refresh token can never be used again
_REJECTION_CODES = {"invalid_grant"}


def _is_retryable_status(status_code: int) -> bool:
    return status_code >= 500 or status_code == 429


def _oauth_error_code(response: httpx.Response) -> str | None:
    try:
        body = response.json()
    except ValueError:
        text = response.text or ""
        return next((code for code in _REJECTION_CODES if code in text), None)
    if isinstance(body, dict):
        code = body.get("error")
        return code if isinstance(code, str) else None
    return None


class WhoopClient:
    """Thin async wrapper around the WHOOP REST API.

    All failures are translated into the ``strainwatch.errors`` taxonomy:
    401/403 become ``AuthError``, 5xx / 429 / transport problems become
    ``TransientNetworkError``, anything else non-2xx is an ``UpstreamError``.
    """

    def __init__(
        self,
        client_id: str,
        client_secret: str,
        api_base: str = "https://api.prod.whoop.com",
        http_client: httpx.AsyncClient | None = None,
        timeout: float = 15.0,
    ) -> None:
        """Initialize the client.

        Args:
            client_id:     OAuth2 client ID.
            client_secret: OAuth2 client secret.
            api_base:      Scheme + host of the WHOOP API.
            http_client:   Optional pre-configured httpx client (shared pool, tests).
            timeout:       Per-request timeout in seconds when no client is injected.
        """
        self._client_id = client_id
        self._client_secret = client_secret
        self._api_base = api_base.rstrip("/")
        self._http_client = http_client
        self._timeout = timeout

    # ------------------------------------------------------------------
    # OAuth
    # ------------------------------------------------------------------

    async def refresh_token(self, user_id: str, refresh_token: str) -> TokenGrant:
        """Exchange a refresh token for a new token pair.

        Args:
            user_id:       WHOOP user id (for error context only).
            refresh_token: Current refresh token.

        Returns:
            The new TokenGrant.

        Raises:
            RefreshRejected:      The grant is invalid; the credential is dead.
            TransientRefreshError: Network failure, timeout, 5xx or 429.
            RefreshFailed:        Any other non-2xx or an unusable body.
        """
        try:
            response = await self._request(
                "POST",
                _TOKEN_PATH,
                data={
                    "grant_type": "refresh_token",
                    "refresh_token": refresh_token,
                    "client_id": self._client_id,
                    "client_secret": self._client_secret,
                    "scope": "offline",
                },
                headers={"Content-Type": "application/x-www-form-urlencoded"},
            )
        except httpx.HTTPError as exc:
            raise TransientRefreshError(user_id, f"{type(exc).__name__}: {exc}") from exc

        status = response.status_code
        if response.is_success:
            try:
                data = response.json()
                return TokenGrant(
                    access_token=data["access_token"],
                    refresh_token=data.get("refresh_token") or refresh_token,
                    expires_in=int(data.get("expires_in", 3600)),
                )
            except (ValueError, KeyError, TypeError) as exc:
                raise RefreshFailed(user_id, "malformed token response", status) from exc

        if _is_retryable_status(status):
            raise TransientRefreshError(user_id, f"HTTP {status}", status)
        if _oauth_error_code(response) in _REJECTION_CODES:
            raise RefreshRejected(user_id, f"grant rejected (HTTP {status})", status)
        raise RefreshFailed(user_id, f"HTTP {status}", status)

    async def revoke_access(self, access_token: str) -> None:
        """Revoke the app's access for the token's user."""
        await self._call("DELETE", _ACCESS_PATH, access_token, expect_json=False)

    # ------------------------------------------------------------------
    # Data
    # ------------------------------------------------------------------

    async def fetch_latest_cycle(self, access_token: str) -> dict | None:
        """Return the most recent cycle record, or None when WHOOP has none yet."""
        data = await self._call("GET", _CYCLE_PATH, access_token, params={"limit": 1})
        records = data.get("records") or []
        return records[0] if records else None

    async def fetch_profile(self, access_token: str) -> dict:
        return await self._call("GET", _PROFILE_PATH, access_token)

    async def fetch_body_measurement(self, access_token: str) -> dict:
        return await self._call("GET", _BODY_PATH, access_token)

    async def fetch_workout(self, workout_id: str, access_token: str) -> dict:
        return await self._call("GET", f"/developer/v1/activity/workout/{workout_id}", access_token)

    async def fetch_sleep(self, sleep_id: str, access_token: str) -> dict:
        return await self._call("GET", f"/developer/v1/activity/sleep/{sleep_id}", access_token)

    async def fetch_recovery(self, cycle_id: str, access_token: str) -> dict:
        return await self._call("GET", f"/developer/v1/cycle/{cycle_id}/recovery", access_token)

    # ------------------------------------------------------------------
    # Private HTTP helpers
    # ------------------------------------------------------------------

    async def _request(self, method: str, path: str, **kwargs: Any) -> httpx.Response:
        url = f"{self._api_base}{path}"
        if self._http_client:
            return await self._http_client.request(method, url, **kwargs)
        async with httpx.AsyncClient(timeout=self._timeout) as client:
            return await client.request(method, url, **kwargs)

    async def _call(
        self,
        method: str,
        path: str,
        access_token: str,
        params: dict | None = None,
        expect_json: bool = True,
    ) -> dict:
        """Make an authenticated request and translate failures.

        Args:
            method:       HTTP method.
            path:         Path below the API base.
            access_token: Bearer token.
            params:       Query parameters.
            expect_json:  Parse and return the body as a dict.

        Returns:
            JSON response dict (empty when expect_json is False).
        """
        headers = {"Authorization": f"Bearer {access_token}"}
        try:
            response = await self._request(method, path, params=params, headers=headers)
        except httpx.HTTPError as exc:
            raise TransientNetworkError(f"WHOOP {method} {path} failed: {exc}") from exc

        status = response.status_code
        if status in (401, 403):
            raise AuthError(f"WHOOP rejected the access token (HTTP {status})")
        if _is_retryable_status(status):
            raise TransientNetworkError(f"WHOOP {method} {path} returned HTTP {status}")
        if not response.is_success:
            raise UpstreamError(f"WHOOP {method} {path} returned HTTP {status}", status)

        if not expect_json or not response.content:
            return {}
        try:
            data = response.json()
        except ValueError as exc:
            raise UpstreamError(f"WHOOP {method} {path} returned invalid JSON", status) from exc
        return data if isinstance(data, dict) else {"records": data}
