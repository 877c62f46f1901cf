"""
Subscription management for the single active (feed, instrument) pair.

The server keeps no subscription state across connections, so the active
pair lives here and is re-sent after every (re)connect.
"""

from __future__ import annotations

import logging
from typing import Callable, Sequence

from ..errors import NotConnected
from ..types import ControlMessage, Subscription
from .codec import SUBSCRIBE, UNSUBSCRIBE, build_command
from .session import ConnectionSession

logger = logging.getLogger(__name__)


class SubscriptionManager:
    """
    Tracks the active subscription and emits subscribe/unsubscribe commands.

    on_switch(subscription) is called when the active instrument changes,
    before any command is sent, so the owner can drop the old book.
    """

    def __init__(
        self,
        session: ConnectionSession,
        feed: str,
        instrument: str,
        *,
        on_switch: Callable[[Subscription], None] | None = None,
    ) -> None:
        self._session = session
        self._feed = feed
        self._active: Subscription | None = Subscription(feed, instrument)
        self._background = False
        self.on_switch = on_switch

    @property
    def active(self) -> Subscription | None:
        return self._active

    @property
    def background(self) -> bool:
        return self._background

    async def _send(self, event: str, subscription: Subscription) -> None:
        await self._session.send(build_command(event, subscription))
        logger.info("Sent %s %s %s", event, subscription.feed, subscription.instrument)

    async def subscribe(self, feed: str, instrument: str) -> None:
        """
        Subscribe to (feed, instrument) and make it the active pair.

        The pair is recorded before sending, so if this raises NotConnected it
        is still subscribed on the next open.
        """
        self._feed = feed
        self._active = Subscription(feed, instrument)
        await self._send(SUBSCRIBE, self._active)

    async def unsubscribe(self, feed: str, instrument: str) -> None:
        """Unsubscribe; unsubscribing the active pair tears it down."""
        subscription = Subscription(feed, instrument)
        if subscription == self._active:
            self._active = None
        await self._send(UNSUBSCRIBE, subscription)

    async def switch_instrument(self, instrument: str) -> None:
        """
        Move the active subscription to another instrument on the same feed.

        Unsubscribe for the old instrument is always sent before subscribe for
        the new one. While disconnected or in background the commands are
        deferred to the next open / foreground. After the active pair was
        unsubscribed, the switch subscribes on the last feed used.
        """
        previous = self._active
        if previous is not None and previous.instrument == instrument:
            return

        self._active = Subscription(self._feed, instrument)
        if self.on_switch is not None:
            self.on_switch(self._active)
        logger.info("Switching %s -> %s", previous.instrument if previous else "(none)", instrument)

        if self._background or not self._session.is_open:
            logger.info("Not streaming; %s will be subscribed later", instrument)
            return

        try:
            if previous is not None:
                await self._send(UNSUBSCRIBE, previous)
            await self._send(SUBSCRIBE, self._active)
        except NotConnected:
            logger.info("Connection dropped during switch; %s will be subscribed on next open", instrument)

    async def cycle_instrument(self, instruments: Sequence[str]) -> str:
        """Switch to the instrument after the active one, wrapping around."""
        if not instruments:
            raise ValueError("no instruments to cycle through")
        current = self._active.instrument if self._active else None
        try:
            index = list(instruments).index(current)
        except ValueError:
            index = -1
        next_instrument = instruments[(index + 1) % len(instruments)]
        await self.switch_instrument(next_instrument)
        return next_instrument

    async def on_session_opened(self) -> None:
        """Re-send the last subscribe; the server forgets it on every reconnect."""
        if self._active is None:
            logger.info("Session opened with no active subscription")
            return
        if self._background:
            logger.info("Session opened in background; deferring subscribe")
            return
        await self._send(SUBSCRIBE, self._active)

    async def on_app_background(self) -> None:
        """Stop the stream while nobody is looking, keeping the connection."""
        if self._background:
            return
        self._background = True
        if self._active is None or not self._session.is_open:
            return
        await self._send(UNSUBSCRIBE, self._active)

    async def on_app_foreground(self) -> None:
        """Resume the stream for the active pair."""
        if not self._background:
            return
        self._background = False
        if self._active is None or not self._session.is_open:
            return
        await self._send(SUBSCRIBE, self._active)

    def on_control(self, message: ControlMessage) -> None:
        """Control frames are informational only."""
        if message.kind == "subscribed":
            logger.info("Subscribed to feed %s", message.feed)
        elif message.kind == "unsubscribed":
            logger.info("Unsubscribed from feed %s", message.feed)
        elif message.kind == "error":
            logger.warning("Feed error: %s", message.message or message.raw)
        else:
            logger.debug("Feed info: %s", message.raw)
