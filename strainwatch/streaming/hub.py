"""In-process publish/subscribe fan-out of samples to live viewers.

Delivery is best-effort and at-most-once: there is no buffering or replay,
so a subscriber that joins after a publish never sees that sample.  Each
delivery attempt is isolated; one failing subscriber never prevents delivery
to the others.  ``publish`` iterates a snapshot of the registry, so
subscribe/unsubscribe during dispatch neither crashes nor skips anyone else.

Delivery callables run synchronously inside ``publish`` and must not block.
Async consumers (the SSE endpoint) use ``subscribe_queue``, which delivers by
``put_nowait`` into a bounded per-subscriber queue.
"""

from __future__ import annotations

import asyncio
import itertools
import logging
import threading
from dataclasses import dataclass
from typing import Any, Callable

logger = logging.getLogger("strainwatch.streaming.hub")

Deliver = Callable[[Any], Any]


@dataclass(frozen=True)
class Subscription:
    """Handle returned by ``subscribe``; pass it back to ``unsubscribe``."""

    id: int
    user_id: str
    deliver: Deliver


class BroadcastHub:
    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._ids = itertools.count(1)
        # user_id -> {subscription id -> Subscription}, insertion ordered
        self._registry: dict[str, dict[int, Subscription]] = {}

    def subscribe(self, user_id: str, deliver: Deliver) -> Subscription:
        with self._lock:
            subscription = Subscription(id=next(self._ids), user_id=user_id, deliver=deliver)
            self._registry.setdefault(user_id, {})[subscription.id] = subscription
        logger.debug("Subscription %d opened for user %s", subscription.id, user_id)
        return subscription

    def subscribe_queue(self, user_id: str, maxsize: int = 32) -> tuple[Subscription, asyncio.Queue]:
        """Subscribe with a bounded queue; samples arriving while it is full are dropped."""
        queue: asyncio.Queue = asyncio.Queue(maxsize=maxsize)

        def _enqueue(sample: Any) -> None:
            try:
                queue.put_nowait(sample)
            except asyncio.QueueFull:
                logger.warning("Subscriber queue full for user %s, dropping sample", user_id)

        return self.subscribe(user_id, _enqueue), queue

    def unsubscribe(self, subscription: Subscription) -> bool:
        with self._lock:
            bucket = self._registry.get(subscription.user_id)
            if not bucket or bucket.pop(subscription.id, None) is None:
                return False
            if not bucket:
                del self._registry[subscription.user_id]
        logger.debug("Subscription %d closed for user %s", subscription.id, subscription.user_id)
        return True

    def publish(self, user_id: str, sample: Any) -> int:
        """Deliver ``sample`` to every current subscriber of ``user_id``.

        Returns:
            Number of subscribers that accepted the sample without raising.
        """
        with self._lock:
            snapshot = tuple(self._registry.get(user_id, {}).values())

        delivered = 0
        for subscription in snapshot:
            try:
                subscription.deliver(sample)
            except Exception:
                logger.exception(
                    "Subscriber %d for user %s failed, continuing", subscription.id, user_id
                )
                continue
            delivered += 1
        return delivered

    def subscriber_count(self, user_id: str | None = None) -> int:
        with self._lock:
            if user_id is not None:
                return len(self._registry.get(user_id, {}))
            return sum(len(bucket) for bucket in self._registry.values())
