"""Rate broadcast channel.

Pushes the full active-rate table to every subscriber:
  - immediately when a subscriber joins,
  - every `interval_seconds`,
  - right after `trigger()` (admin rate mutations).

Triggers coalesce: several `trigger()` calls before the loop wakes produce a
single broadcast that reads the latest table state. Each subscriber owns an
unbounded asyncio queue; transports drain their queue at their own pace.

Message shape: {"event": "rates:update", "rates": [...], "timestamp": iso}
"""

from __future__ import annotations

import asyncio
from datetime import datetime, timezone
import logging
from typing import Any, Callable, Dict, List, Optional, Set

logger = logging.getLogger("app.rates.broadcast")

RATES_EVENT = "rates:update"

SnapshotSource = Callable[[], List[Dict[str, Any]]]


class RateBroadcaster:
    def __init__(self, snapshot_source: SnapshotSource, interval_seconds: float = 30.0):
        if interval_seconds <= 0:
            raise ValueError("interval_seconds must be positive")
        self._source = snapshot_source
        self.interval_seconds = interval_seconds
        self._subscribers: Set[asyncio.Queue] = set()
        self._wake: Optional[asyncio.Event] = None
        self._task: Optional[asyncio.Task] = None
        self._loop: Optional[asyncio.AbstractEventLoop] = None

    @property
    def subscriber_count(self) -> int:
        return len(self._subscribers)

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    async def snapshot(self) -> Dict[str, Any]:
        rates = await asyncio.to_thread(self._source)
        return {
            "event": RATES_EVENT,
            "rates": rates,
            "timestamp": datetime.now(timezone.utc).isoformat(),
        }

    async def send_snapshot(self, queue: asyncio.Queue) -> bool:
        """Push a fresh snapshot to one subscriber queue."""
        try:
            queue.put_nowait(await self.snapshot())
            return True
        except Exception:  # noqa: BLE001
            logger.exception("failed to build rate snapshot for subscriber")
            return False

    async def subscribe(self) -> asyncio.Queue:
        queue: asyncio.Queue = asyncio.Queue()
        self._subscribers.add(queue)
        await self.send_snapshot(queue)
        logger.info("rate subscriber added (%d total)", len(self._subscribers))
        return queue

    def unsubscribe(self, queue: asyncio.Queue) -> None:
        if queue in self._subscribers:
            self._subscribers.discard(queue)
            logger.info("rate subscriber removed (%d total)", len(self._subscribers))

    async def broadcast(self) -> int:
        message = await self.snapshot()
        targets = list(self._subscribers)
        for queue in targets:
            queue.put_nowait(message)
        logger.debug("broadcast %d rates to %d subscribers", len(message["rates"]), len(targets))
        return len(targets)

    def trigger(self) -> None:
        """Request an out-of-band broadcast (safe from any thread)."""
        if self._wake is None or self._loop is None:
            return
        try:
            current = asyncio.get_running_loop()
        except RuntimeError:
            current = None
        if current is self._loop:
            self._wake.set()
        else:
            self._loop.call_soon_threadsafe(self._wake.set)

    async def _run(self) -> None:
        assert self._wake is not None
        while True:
            try:
                await asyncio.wait_for(self._wake.wait(), timeout=self.interval_seconds)
            except asyncio.TimeoutError:
                pass
            self._wake.clear()
            try:
                await self.broadcast()
            except Exception:  # noqa: BLE001
                logger.exception("rate broadcast tick failed")

    async def start(self) -> None:
        if self.running:
            return
        self._loop = asyncio.get_running_loop()
        self._wake = asyncio.Event()
        self._task = asyncio.create_task(self._run(), name="rate-broadcaster")
        logger.info("rate broadcaster started (interval=%ss)", self.interval_seconds)

    async def stop(self) -> None:
        if self._task is None:
            return
        self._task.cancel()
        try:
            await self._task
        except asyncio.CancelledError:
            pass
        self._task = None
        self._wake = None
        self._loop = None
        logger.info("rate broadcaster stopped")
