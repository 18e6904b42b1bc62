"""Forward-only analytics sink (Foundry-style stream ingestion).

Each record is posted as::

    {"records": [{"timestamp": "<ISO-8601>", "category": "strain",
                  "payload": "<JSON string>"}]}

``submit`` is what the polling path uses: it schedules the POST as a
background task and returns immediately.  Failures are logged and never
retried, so a slow or unavailable sink cannot stall a polling cycle.
"""

from __future__ import annotations

import asyncio
import json
import logging
from datetime import datetime, timezone

import httpx

from strainwatch.errors import SinkError

logger = logging.getLogger("strainwatch.sink")


class AnalyticsSink:
    def __init__(
        self,
        uri: str,
        token: str,
        http_client: httpx.AsyncClient | None = None,
        timeout: float = 15.0,
    ) -> None:
        self._uri = uri
        self._token = token
        self._http_client = http_client
        self._timeout = timeout
        self._pending: set[asyncio.Task] = set()

    @property
    def enabled(self) -> bool:
        return bool(self._uri)

    @property
    def pending(self) -> int:
        return len(self._pending)

    @staticmethod
    def build_record(category: str, payload: dict) -> dict:
        return {
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "category": category,
            "payload": json.dumps(payload, default=str),
        }

    async def forward(self, category: str, payload: dict) -> None:
        """POST one record and wait for the sink to accept it.

        Raises:
            SinkError: Transport failure or non-2xx response.
        """
        if not self.enabled:
            logger.debug("Sink disabled, dropping %s record", category)
            return

        body = {"records": [self.build_record(category, payload)]}
        headers = {"Authorization": f"Bearer {self._token}"}
        try:
            if self._http_client:
                response = await self._http_client.post(self._uri, json=body, headers=headers)
            else:
                async with httpx.AsyncClient(timeout=self._timeout) as client:
                    response = await client.post(self._uri, json=body, headers=headers)
        except httpx.HTTPError as exc:
            raise SinkError(f"Sink unreachable: {exc}") from exc

        if not response.is_success:
            raise SinkError(f"Sink returned HTTP {response.status_code}: {response.text[:200]}")
        logger.debug("Forwarded %s record to sink", category)

    def submit(self, category: str, payload: dict) -> asyncio.Task | None:
        """Forward in the background; never raises, never blocks the caller."""
        if not self.enabled:
            return None
        task = asyncio.create_task(self._forward_logged(category, payload))
        self._pending.add(task)
        task.add_done_callback(self._pending.discard)
        return task

    async def _forward_logged(self, category: str, payload: dict) -> None:
        try:
            await self.forward(category, payload)
        except SinkError as exc:
            logger.warning("Dropping %s record for sink: %s", category, exc)

    async def drain(self) -> None:
        """Wait for every submitted record to finish (shutdown, tests)."""
        if self._pending:
            await asyncio.gather(*list(self._pending), return_exceptions=True)
