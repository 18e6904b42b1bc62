"""Take one strain sample for a user: vault token → latest WHOOP cycle → Sample."""

from __future__ import annotations

import logging

from strainwatch.credentials.vault import TokenVault
from strainwatch.errors import DataUnavailable
from strainwatch.polling.models import Sample
from strainwatch.whoop.client import WhoopClient

logger = logging.getLogger("strainwatch.polling.collector")


class StrainCollector:
    def __init__(self, vault: TokenVault, client: WhoopClient) -> None:
        self._vault = vault
        self._client = client

    async def collect(self, user_id: str) -> Sample:
        """Fetch the user's current strain.

        Raises:
            AuthError:             No usable credential (including failed refresh).
            TransientNetworkError: WHOOP unreachable or answering 5xx.
            DataUnavailable:       WHOOP has no cycle for the user yet.
        """
        credential = await self._vault.get(user_id)
        cycle = await self._client.fetch_latest_cycle(credential.access_token)
        if cycle is None:
            raise DataUnavailable(f"No cycle data available for user {user_id}")
        return Sample.from_cycle(user_id, cycle)
