"""Error taxonomy shared by the vault, the WHOOP client, the sink and the scheduler.

Background polling cycles catch these at the cycle boundary and log them.
Request handlers let them propagate to the exception handlers registered in
``strainwatch.main``, which map them onto HTTP status codes.
"""

from __future__ import annotations


class StrainwatchError(Exception):
    """Base class for every error raised by this package."""


# ---------------------------------------------------------------------------
# Authentication
# ---------------------------------------------------------------------------


class AuthError(StrainwatchError):
    """Missing, invalid, or rejected credential."""


class CredentialNotFound(AuthError):
    """No usable credential is stored for the user."""

    def __init__(self, user_id: str) -> None:
        super().__init__(f"No credential stored for user {user_id}")
        self.user_id = user_id


class RefreshFailed(AuthError):
    """The token endpoint did not return a new token pair."""

    def __init__(self, user_id: str, detail: str, status_code: int | None = None) -> None:
        super().__init__(f"Token refresh failed for user {user_id}: {detail}")
        self.user_id = user_id
        self.status_code = status_code


class RefreshRejected(RefreshFailed):
    """The authorization server rejected the grant; the refresh token is dead."""


# ---------------------------------------------------------------------------
# Upstream / infrastructure
# ---------------------------------------------------------------------------


class TransientNetworkError(StrainwatchError):
    """Timeout, connection failure, or 5xx from an upstream service."""


class TransientRefreshError(RefreshFailed, TransientNetworkError):
    """Refresh failed for a reason a later attempt may not hit."""


class DataUnavailable(StrainwatchError):
    """The upstream call succeeded but returned no records yet."""


class PersistenceError(StrainwatchError):
    """Credential storage I/O failed."""


class CorruptionError(StrainwatchError):
    """A stored record failed authenticated decryption or could not be parsed."""


class SinkError(StrainwatchError):
    """The analytics sink refused or could not receive a record."""


class UpstreamError(StrainwatchError):
    """An upstream API answered with a non-retryable, non-auth error status."""

    def __init__(self, message: str, status_code: int | None = None) -> None:
        super().__init__(message)
        self.status_code = status_code
