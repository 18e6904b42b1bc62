"""Per-user background strain polling.

Each opted-in user gets exactly one asyncio task that runs a cycle
immediately and then every ``interval_seconds``:

1. Obtain a valid token from the vault (refreshing if expired)
2. Fetch the latest WHOOP cycle
3. Submit the sample to the analytics sink (background, never blocks)
4. Publish the sample to live viewers through the broadcast hub

Cycles of one user run strictly one after another inside that task; an
overrunning cycle delays the next one instead of overlapping it.  Different
users poll independently.  Any failure inside a cycle is logged and the
schedule stays armed.

Usage::

    scheduler = PollScheduler(collector, sink, hub, interval_seconds=600)
    scheduler.bootstrap(await vault.enabled_user_ids())
    scheduler.start_user_polling("10129")
    scheduler.stop_user_polling("10129")
    await scheduler.shutdown()
"""

from __future__ import annotations

import asyncio
import logging
from datetime import datetime, timezone
from typing import Iterable

from strainwatch.errors import DataUnavailable, StrainwatchError
from strainwatch.polling.collector import StrainCollector
from strainwatch.polling.models import Sample, ScheduleEntry
from strainwatch.services.sink import AnalyticsSink
from strainwatch.streaming.hub import BroadcastHub

logger = logging.getLogger("strainwatch.polling.scheduler")

DEFAULT_INTERVAL_SECONDS = 600.0


class PollScheduler:
    """Own at most one recurring polling task per user."""

    def __init__(
        self,
        collector: StrainCollector,
        sink: AnalyticsSink,
        hub: BroadcastHub,
        interval_seconds: float = DEFAULT_INTERVAL_SECONDS,
        sink_category: str = "strain",
    ) -> None:
        """Initialize the scheduler.

        Args:
            collector:        Produces one Sample per call (vault + WHOOP).
            sink:             Analytics sink receiving every sample.
            hub:              Broadcast hub for live viewers.
            interval_seconds: Time between cycle starts for one user.
            sink_category:    Category attached to forwarded records.
        """
        self._collector = collector
        self._sink = sink
        self._hub = hub
        self._interval = interval_seconds
        self._sink_category = sink_category
        self._entries: dict[str, ScheduleEntry] = {}
        # Tasks of stopped schedules still finishing an in-flight cycle
        self._draining: dict[str, asyncio.Task] = {}

    @property
    def interval_seconds(self) -> float:
        return self._interval

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def start_user_polling(self, user_id: str) -> bool:
        """Schedule polling for ``user_id``; a no-op if already scheduled.

        Must be called from a running event loop.

        Returns:
            True if a new schedule was created.
        """
        if user_id in self._entries:
            logger.debug("Strain polling already active for user %s", user_id)
            return False

        entry = ScheduleEntry(user_id=user_id, interval_seconds=self._interval)
        self._entries[user_id] = entry
        entry.task = asyncio.create_task(self._run(entry), name=f"strain-poll:{user_id}")
        logger.info("Started strain polling for user %s (every %.0fs)", user_id, self._interval)
        return True

    def stop_user_polling(self, user_id: str) -> bool:
        """Stop polling ``user_id``; a no-op if not scheduled.

        No new cycle starts after this returns.  A cycle already in flight
        finishes its network calls, but its sample is discarded.

        Returns:
            True if a schedule was removed.
        """
        entry = self._entries.pop(user_id, None)
        if entry is None:
            return False

        task = entry.task
        if task is not None and not task.done():
            if entry.in_cycle:
                self._draining[user_id] = task
                task.add_done_callback(lambda t, uid=user_id: self._drained(uid, t))
            else:
                task.cancel()
        logger.info("Stopped strain polling for user %s", user_id)
        return True

    def bootstrap(self, user_ids: Iterable[str]) -> int:
        """Resume schedules for users whose enabled flag survived a restart.

        Returns:
            Number of schedules created.
        """
        started = sum(1 for user_id in user_ids if self.start_user_polling(user_id))
        logger.info("Bootstrapped strain polling for %d user(s)", started)
        return started

    async def shutdown(self) -> None:
        """Cancel every schedule, in-flight cycles included, and wait for them."""
        entries = list(self._entries.values())
        self._entries.clear()
        tasks = [e.task for e in entries if e.task is not None]
        tasks.extend(self._draining.values())
        self._draining.clear()

        for task in tasks:
            task.cancel()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)
        for entry in entries:
            logger.info("Stopped strain polling for user %s", entry.user_id)

    # ------------------------------------------------------------------
    # Introspection
    # ------------------------------------------------------------------

    def is_polling(self, user_id: str) -> bool:
        return user_id in self._entries

    def active_users(self) -> list[str]:
        return sorted(self._entries)

    def entry(self, user_id: str) -> ScheduleEntry | None:
        return self._entries.get(user_id)

    # ------------------------------------------------------------------
    # Cycles
    # ------------------------------------------------------------------

    async def run_cycle(self, user_id: str, entry: ScheduleEntry | None = None) -> Sample | None:
        """Run one fetch → forward → broadcast cycle.

        Never raises for cycle-level failures; they are logged and None is
        returned.  When ``entry`` is given and has been stopped or replaced
        while the fetch was in flight, the sample is discarded.

        Args:
            user_id: WHOOP user id.
            entry:   Schedule the cycle belongs to (None for ad-hoc cycles).

        Returns:
            The published Sample, or None when the cycle produced nothing.
        """
        try:
            sample = await self._collector.collect(user_id)
        except DataUnavailable:
            logger.info("No cycle data available for user %s", user_id)
            return None
        except StrainwatchError as exc:
            logger.warning(
                "Strain cycle failed for user %s (%s): %s", user_id, type(exc).__name__, exc
            )
            if entry is not None:
                entry.last_error = f"{type(exc).__name__}: {exc}"
            return None
        except Exception as exc:
            logger.exception("Unexpected error in strain cycle for user %s", user_id)
            if entry is not None:
                entry.last_error = f"{type(exc).__name__}: {exc}"
            return None

        if entry is not None and self._entries.get(user_id) is not entry:
            logger.info("Discarding strain sample for stopped schedule of user %s", user_id)
            return None

        self.deliver(sample)
        if entry is not None:
            entry.last_sample_at = datetime.now(timezone.utc)
            entry.last_error = None
        return sample

    def deliver(self, sample: Sample) -> int:
        """Submit a sample to the sink and publish it to live viewers."""
        self._sink.submit(self._sink_category, sample.to_dict())
        viewers = self._hub.publish(sample.user_id, sample)
        logger.info(
            "Strain for user %s: %.2f (%d viewer(s))", sample.user_id, sample.strain, viewers
        )
        return viewers

    async def _run(self, entry: ScheduleEntry) -> None:
        previous = self._draining.get(entry.user_id)
        if previous is not None:
            # let the stopped schedule's in-flight cycle finish first
            await asyncio.wait({previous})

        loop = asyncio.get_running_loop()
        while self._entries.get(entry.user_id) is entry:
            started = loop.time()
            entry.in_cycle = True
            try:
                await self.run_cycle(entry.user_id, entry)
            finally:
                entry.in_cycle = False
            entry.cycles += 1

            if self._entries.get(entry.user_id) is not entry:
                return
            await asyncio.sleep(max(0.0, entry.interval_seconds - (loop.time() - started)))

    def _drained(self, user_id: str, task: asyncio.Task) -> None:
        if self._draining.get(user_id) is task:
            del self._draining[user_id]
