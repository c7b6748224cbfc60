"""
Push feed of committed indexer events.

The ingestor publishes from its own thread; every WebSocket client reads from
a bounded queue on the API event loop. A slow client loses its oldest
messages instead of holding up ingestion.
"""

from __future__ import annotations

import asyncio
import logging
import threading
from datetime import datetime, timezone
from typing import Any, Dict, Optional, Set

from ..chain.events import announcement_to_dict, deposit_to_dict, withdrawal_to_dict
from .state import IndexerView, RangeResult

logger = logging.getLogger(__name__)

DEFAULT_QUEUE_SIZE = 256

Message = Dict[str, Any]


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


def make_message(kind: str, data: Any = None, **extra: Any) -> Message:
    message: Message = {"type": kind, "timestamp": _now()}
    if data is not None:
        message["data"] = data
    message.update(extra)
    return message


def status_data(view: IndexerView) -> Dict[str, Any]:
    return {
        "lastBlockScanned": str(view.last_block_scanned),
        "leafCount": view.tree.size,
        "merkleRoot": str(view.tree.root),
    }


class Subscription:
    """One client's bounded queue, owned by the event loop that created it."""

    def __init__(self, loop: asyncio.AbstractEventLoop, maxsize: int) -> None:
        self.loop = loop
        self.dropped = 0
        self._queue: asyncio.Queue = asyncio.Queue(maxsize)

    def offer(self, message: Message) -> None:
        """Enqueue on the owning loop, evicting the oldest message when full."""
        if self._queue.full():
            self._queue.get_nowait()
            self.dropped += 1
        self._queue.put_nowait(message)

    async def get(self) -> Message:
        return await self._queue.get()

    def qsize(self) -> int:
        return self._queue.qsize()


class EventFeed:
    """
    Thread-safe fan-out of indexer updates to subscribed clients.

    Args:
        queue_size: per-subscriber bound; older messages are dropped past it
    """

    def __init__(self, queue_size: int = DEFAULT_QUEUE_SIZE) -> None:
        if queue_size < 1:
            raise ValueError("queue_size must be >= 1")
        self.queue_size = queue_size
        self._subscriptions: Set[Subscription] = set()
        self._lock = threading.Lock()

    def subscribe(self, loop: Optional[asyncio.AbstractEventLoop] = None) -> Subscription:
        subscription = Subscription(loop or asyncio.get_running_loop(), self.queue_size)
        with self._lock:
            self._subscriptions.add(subscription)
        return subscription

    def unsubscribe(self, subscription: Subscription) -> None:
        with self._lock:
            self._subscriptions.discard(subscription)
        if subscription.dropped:
            logger.info("Feed subscriber left after dropping %d messages", subscription.dropped)

    def __len__(self) -> int:
        with self._lock:
            return len(self._subscriptions)

    def publish(self, message: Message) -> None:
        with self._lock:
            subscriptions = list(self._subscriptions)
        for subscription in subscriptions:
            try:
                subscription.loop.call_soon_threadsafe(subscription.offer, message)
            except RuntimeError:
                # loop already closed
                self.unsubscribe(subscription)

    def publish_range(self, result: RangeResult, view: IndexerView) -> None:
        """IndexerState listener: one message per event, then a status update."""
        for announcement in result.announcements:
            self.publish(make_message("announcement", announcement_to_dict(announcement)))
        for deposit in result.deposits:
            self.publish(make_message("deposit", deposit_to_dict(deposit)))
        for withdrawal in result.withdrawals:
            self.publish(make_message("withdrawal", withdrawal_to_dict(withdrawal)))
        self.publish(make_message("status", status_data(view)))
