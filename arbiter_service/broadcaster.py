from __future__ import annotations

import asyncio
import logging
from typing import Any, Dict, Optional, Set

from arbiter_governance.ledger import ArbitrationLedger

from .models import StreamEnvelope

logger = logging.getLogger("arbiter.service.broadcaster")


class AuditBroadcaster:
    """Fan ledger appends out to websocket subscribers.

    Ledger hooks may fire on worker threads, so entries are handed to the
    event loop with ``call_soon_threadsafe``. Slow subscribers lose their
    oldest envelopes rather than blocking the engine.
    """

    def __init__(self, ledger: ArbitrationLedger, *, subscriber_queue_size: int = 256) -> None:
        self._ledger = ledger
        self._subscriber_queue_size = max(8, int(subscriber_queue_size))
        self._subscribers: Set["asyncio.Queue[StreamEnvelope]"] = set()
        self._loop: Optional[asyncio.AbstractEventLoop] = None

    @property
    def running(self) -> bool:
        return self._loop is not None

    async def start(self) -> None:
        if self._loop is not None:
            return
        self._loop = asyncio.get_running_loop()
        self._ledger.add_publish_hook(self._on_entry)

    async def stop(self) -> None:
        if self._loop is None:
            return
        self._ledger.remove_publish_hook(self._on_entry)
        self._loop = None
        self._subscribers.clear()

    def subscribe(self) -> "asyncio.Queue[StreamEnvelope]":
        queue: "asyncio.Queue[StreamEnvelope]" = asyncio.Queue(maxsize=self._subscriber_queue_size)
        self._subscribers.add(queue)
        return queue

    def unsubscribe(self, queue: "asyncio.Queue[StreamEnvelope]") -> None:
        self._subscribers.discard(queue)

    def _on_entry(self, entry: Dict[str, Any]) -> None:
        loop = self._loop
        if loop is None or loop.is_closed():
            return
        envelope = StreamEnvelope.from_entry(entry)
        loop.call_soon_threadsafe(self._fanout, envelope)

    def _fanout(self, envelope: StreamEnvelope) -> None:
        for subscriber in list(self._subscribers):
            self._enqueue_subscriber(subscriber, envelope)

    @staticmethod
    def _enqueue_subscriber(queue: "asyncio.Queue[StreamEnvelope]", envelope: StreamEnvelope) -> None:
        if queue.full():
            try:
                queue.get_nowait()
            except asyncio.QueueEmpty:
                pass
            logger.debug("Subscriber queue full; dropped oldest audit envelope")
        try:
            queue.put_nowait(envelope)
        except asyncio.QueueFull:
            logger.debug("Subscriber queue still full; dropped audit envelope seq=%s", envelope.data.get("seq"))
