"""
Book feed client: session -> codec -> order book -> throttle -> consumers.

Handles:
1. Connection lifecycle (delegated to ConnectionSession)
2. Re-subscription after every (re)connect
3. Snapshot + incremental updates into the local OrderBook
4. Throttled delivery of immutable Book values to listeners and the UI queue
"""

from __future__ import annotations

import asyncio
import logging
from typing import Callable

from ..config import Settings
from ..engine.throttle import UpdateThrottle
from ..errors import ConnectionLost, MalformedMessage
from ..types import EMPTY_BOOK, Book, ControlMessage, Subscription
from .codec import SNAPSHOT, FeedCodec
from .orderbook import OrderBook
from .session import ConnectionSession, WsConnect
from .subscriptions import SubscriptionManager

logger = logging.getLogger(__name__)

BookListener = Callable[[Book], None]


class BookClient:
    """
    Async client maintaining one order book for the active instrument.

    Usage:
        client = BookClient(Settings())
        client.add_listener(print)
        await client.run()
    """

    def __init__(self, settings: Settings, *, ws_connect: WsConnect | None = None) -> None:
        self.settings = settings
        self.instruments = list(settings.instruments)

        # Core components
        self.codec = FeedCodec(settings.feed)
        self.orderbook = OrderBook(self.instruments[0], depth=settings.depth)
        self.session = ConnectionSession(
            settings.ws_url,
            on_open=self._handle_open,
            on_message=self._handle_message,
            on_close=self._handle_close,
            reconnect=settings.reconnect,
            reconnect_delay=settings.reconnect_delay,
            reconnect_max_delay=settings.reconnect_max_delay,
            heartbeat=settings.heartbeat,
            ws_connect=ws_connect,
        )
        self.subscriptions = SubscriptionManager(
            self.session,
            settings.feed,
            self.instruments[0],
            on_switch=self._handle_switch,
        )
        self.throttle: UpdateThrottle[Book] = UpdateThrottle(settings.throttle_ms, self._publish)

        self._listeners: list[BookListener] = []
        self.malformed_count = 0

        # Output queue for UI: newest books win, oldest dropped when full
        self.snapshot_queue: asyncio.Queue[Book] = asyncio.Queue(maxsize=settings.snapshot_queue_size)

    @property
    def instrument(self) -> str:
        return self.orderbook.instrument

    @property
    def book(self) -> Book:
        return self.orderbook.book

    def add_listener(self, listener: BookListener) -> None:
        self._listeners.append(listener)

    def remove_listener(self, listener: BookListener) -> None:
        self._listeners.remove(listener)

    async def _handle_open(self) -> None:
        # Whatever we had is stale: the server starts over with a snapshot
        self._reset_book(self.instrument)
        await self.subscriptions.on_session_opened()

    def _handle_close(self, error: ConnectionLost) -> None:
        logger.warning("Book for %s is stale until reconnect: %s", self.instrument, error)

    def _handle_switch(self, subscription: Subscription) -> None:
        self._reset_book(subscription.instrument)

    def _reset_book(self, instrument: str) -> None:
        self.orderbook.reset(instrument)
        self.throttle.notify(EMPTY_BOOK)

    def _handle_message(self, raw: str) -> None:
        """
        Handle one incoming frame.

        HOT PATH - called for every frame, synchronously and in arrival order.
        """
        try:
            message = self.codec.decode(raw)
        except MalformedMessage as exc:
            self.malformed_count += 1
            logger.warning("Dropping malformed frame: %s", exc.reason)
            return

        if isinstance(message, ControlMessage):
            self.subscriptions.on_control(message)
            return

        if message.product_id is not None and message.product_id != self.instrument:
            logger.debug("Ignoring %s for %s (active %s)", message.kind, message.product_id, self.instrument)
            return

        before = self.orderbook.book
        if message.kind == SNAPSHOT:
            self.orderbook.load_snapshot(message)
        elif not self.orderbook.apply_update(message):
            logger.debug("Ignoring update for %s until snapshot arrives", self.instrument)
            return

        if self.orderbook.book is not before:
            self.throttle.notify(self.orderbook.book)

    def _publish(self, book: Book) -> None:
        for listener in list(self._listeners):
            try:
                listener(book)
            except Exception:
                logger.exception("Book listener %r failed", listener)

        # Non-blocking put (drop oldest if queue full)
        try:
            self.snapshot_queue.put_nowait(book)
        except asyncio.QueueFull:
            self.snapshot_queue.get_nowait()
            self.snapshot_queue.put_nowait(book)

    async def toggle_instrument(self) -> str:
        """Switch to the next configured instrument."""
        instrument = await self.subscriptions.cycle_instrument(self.instruments)
        logger.info("Switched to %s", instrument)
        return instrument

    async def pause(self) -> None:
        """Consumer not visible: stop the stream but keep the connection."""
        await self.subscriptions.on_app_background()

    async def resume(self) -> None:
        """Consumer visible again: restart the stream with a fresh snapshot."""
        if not self.subscriptions.background:
            return
        self._reset_book(self.instrument)
        await self.subscriptions.on_app_foreground()

    async def run(self) -> None:
        """Main run loop. Returns after stop()."""
        try:
            await self.session.run()
        finally:
            self.throttle.cancel()

    async def stop(self) -> None:
        """Signal the client to stop; no reconnect happens after this."""
        await self.session.close()
        self.throttle.cancel()
