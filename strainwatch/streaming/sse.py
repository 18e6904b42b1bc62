"""Server-Sent Events framing for live strain samples.

One connection = one hub subscription.  The generator writes a ``retry:``
hint, then ``event: strain`` frames as samples arrive and ``event: heartbeat``
frames when the stream is idle.  The subscription is removed as soon as the
client disconnects or the response is cancelled.
"""

from __future__ import annotations

import asyncio
import json
import logging
from typing import Any, AsyncIterator, Awaitable, Callable

from strainwatch.streaming.hub import BroadcastHub

logger = logging.getLogger("strainwatch.streaming.sse")

HEARTBEAT_FRAME = "event: heartbeat\ndata: {}\n\n"


def format_event(event: str, data: Any, event_id: int | None = None) -> str:
    """Encode one SSE frame; multi-line JSON is split across data lines."""
    text = json.dumps(data, separators=(",", ":"), default=str)
    parts = []
    if event_id is not None:
        parts.append(f"id: {event_id}\n")
    parts.append(f"event: {event}\n")
    parts.extend(f"data: {line}\n" for line in text.splitlines() or [""])
    parts.append("\n")
    return "".join(parts)


async def sample_stream(
    hub: BroadcastHub,
    user_id: str,
    is_disconnected: Callable[[], Awaitable[bool]],
    heartbeat_seconds: float = 15.0,
    retry_millis: int = 5000,
    queue_size: int = 32,
) -> AsyncIterator[str]:
    """Yield SSE frames for ``user_id`` until the client goes away.

    Args:
        hub:               Broadcast hub to subscribe to.
        user_id:           WHOOP user whose samples are streamed.
        is_disconnected:   Coroutine function reporting client disconnect
                           (``Request.is_disconnected`` in FastAPI).
        heartbeat_seconds: Idle time before a heartbeat frame is sent.
        retry_millis:      Reconnect delay advertised to the browser.
        queue_size:        Per-connection buffer before samples are dropped.
    """
    subscription, queue = hub.subscribe_queue(user_id, maxsize=queue_size)
    logger.info("Live stream opened for user %s", user_id)
    event_id = 0
    try:
        yield f"retry: {retry_millis}\n\n"
        while True:
            if await is_disconnected():
                break
            try:
                sample = await asyncio.wait_for(queue.get(), timeout=heartbeat_seconds)
            except asyncio.TimeoutError:
                yield HEARTBEAT_FRAME
                continue
            event_id += 1
            payload = sample.to_dict() if hasattr(sample, "to_dict") else sample
            yield format_event("strain", payload, event_id)
    finally:
        hub.unsubscribe(subscription)
        logger.info("Live stream closed for user %s", user_id)
