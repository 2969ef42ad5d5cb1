"""In-process side-effect dispatcher.

Audit entries and customer notifications are fire-and-forget: services
`submit()` a message and return immediately. A worker task on the event loop
pulls messages off an asyncio queue and runs the registered handler in a
thread (handlers do blocking SMTP/HTTP/SQLite work). Handler failures are
logged and dropped; nothing is retried and nothing reaches the caller.

When the worker is not running (unit tests, scripts) messages are handled
inline with the same error swallowing.
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass, field
import logging
from typing import Any, Callable, Dict, Optional, Type

logger = logging.getLogger("app.dispatch")


@dataclass(frozen=True)
class AuditEntry:
    actor_id: Optional[int]
    action: str
    entity: str
    entity_id: str
    metadata: Dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class Notification:
    channel: str  # EMAIL | SMS
    recipient: str
    subject: str
    body: str


Handler = Callable[[Any], None]


class SideEffectDispatcher:
    def __init__(self, handlers: Optional[Dict[Type[Any], Handler]] = None):
        self._handlers: Dict[Type[Any], Handler] = dict(handlers or {})
        self._queue: Optional[asyncio.Queue] = None
        self._worker: Optional[asyncio.Task] = None
        self._loop: Optional[asyncio.AbstractEventLoop] = None

    def register(self, message_type: Type[Any], handler: Handler) -> None:
        self._handlers[message_type] = handler

    @property
    def running(self) -> bool:
        return self._worker is not None and not self._worker.done()

    def submit(self, message: Any) -> None:
        if not self.running or self._loop is None or self._queue is None:
            self._handle(message)
            return
        try:
            current = asyncio.get_running_loop()
        except RuntimeError:
            current = None
        if current is self._loop:
            self._queue.put_nowait(message)
        else:
            self._loop.call_soon_threadsafe(self._queue.put_nowait, message)

    def _handle(self, message: Any) -> None:
        handler = self._handlers.get(type(message))
        if handler is None:
            logger.warning("no handler for %s; dropping", type(message).__name__)
            return
        try:
            handler(message)
        except Exception:  # noqa: BLE001
            logger.exception("side effect %s failed", type(message).__name__)

    async def _run(self) -> None:
        assert self._queue is not None
        while True:
            message = await self._queue.get()
            try:
                await asyncio.to_thread(self._handle, message)
            finally:
                self._queue.task_done()

    async def start(self) -> None:
        if self.running:
            return
        self._loop = asyncio.get_running_loop()
        self._queue = asyncio.Queue()
        self._worker = asyncio.create_task(self._run(), name="side-effect-dispatcher")
        logger.info("dispatcher started")

    async def drain(self) -> None:
        if self._queue is not None:
            await self._queue.join()

    async def stop(self, timeout: float = 5.0) -> None:
        if self._worker is None:
            return
        try:
            await asyncio.wait_for(self.drain(), timeout=timeout)
        except asyncio.TimeoutError:
            logger.warning("dispatcher stopped with %d pending messages", self._queue.qsize())
        self._worker.cancel()
        try:
            await self._worker
        except asyncio.CancelledError:
            pass
        self._worker = None
        self._queue = None
        self._loop = None
        logger.info("dispatcher stopped")
