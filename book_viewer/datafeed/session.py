"""
WebSocket connection session with an explicit state machine.

    DISCONNECTED -> CONNECTING -> OPEN -> (CLOSING | RECONNECTING) -> DISCONNECTED

Handles:
1. Connect + frame pump, frames delivered to on_message strictly in order
2. Automatic reconnect with bounded exponential backoff after a drop
3. Intentional close() that stops reconnects immediately, even mid-backoff

All I/O is non-blocking (pure asyncio). The only suspension points are the
next frame, a send, and the reconnect wait.
"""

from __future__ import annotations

import asyncio
import inspect
import logging
from enum import Enum
from typing import Any, Awaitable, Callable

import aiohttp
import orjson

from ..errors import ConnectionLost, InvalidTransition, NotConnected

logger = logging.getLogger(__name__)

WsConnect = Callable[[str], Awaitable[Any]]


class SessionState(Enum):
    """WebSocket session states"""
    DISCONNECTED = "disconnected"
    CONNECTING = "connecting"
    OPEN = "open"
    CLOSING = "closing"
    RECONNECTING = "reconnecting"


_TRANSITIONS: dict[SessionState, frozenset[SessionState]] = {
    SessionState.DISCONNECTED: frozenset({SessionState.CONNECTING}),
    SessionState.CONNECTING: frozenset({
        SessionState.OPEN, SessionState.RECONNECTING,
        SessionState.CLOSING, SessionState.DISCONNECTED,
    }),
    SessionState.OPEN: frozenset({
        SessionState.CLOSING, SessionState.RECONNECTING, SessionState.DISCONNECTED,
    }),
    SessionState.RECONNECTING: frozenset({
        SessionState.CONNECTING, SessionState.CLOSING, SessionState.DISCONNECTED,
    }),
    SessionState.CLOSING: frozenset({SessionState.DISCONNECTED}),
}

# Handshake failures that are retried like a dropped connection
_CONNECT_ERRORS = (aiohttp.ClientError, OSError, asyncio.TimeoutError)

# Failures while open (on_open, sends, frame delivery) that count as a drop
_DROP_ERRORS = (NotConnected, ConnectionError, aiohttp.ClientError)


class ConnectionSession:
    """
    Owns one logical websocket connection across reconnects.

    Usage:
        session = ConnectionSession(url, on_open=..., on_message=...)
        task = asyncio.create_task(session.run())
        ...
        await session.close()
        await task

    Callbacks:
        on_open()          awaited after every successful handshake
        on_message(text)   called synchronously per text frame, in order
        on_close(error)    called on abnormal closure with a ConnectionLost
    """

    def __init__(
        self,
        url: str,
        *,
        on_open: Callable[[], Awaitable[None] | None] | None = None,
        on_message: Callable[[str], None] | None = None,
        on_close: Callable[[ConnectionLost], None] | None = None,
        reconnect: bool = True,
        reconnect_delay: float = 0.5,
        reconnect_max_delay: float = 30.0,
        heartbeat: float | None = 30.0,
        ws_connect: WsConnect | None = None,
    ) -> None:
        self.url = url
        self.on_open = on_open
        self.on_message = on_message
        self.on_close = on_close
        self.reconnect = reconnect
        self.reconnect_delay = reconnect_delay
        self.reconnect_max_delay = reconnect_max_delay
        self.heartbeat = heartbeat

        self._ws_connect = ws_connect
        self._state = SessionState.DISCONNECTED
        self._ws: Any = None
        self._closing = False
        self._close_requested = asyncio.Event()
        self.reconnect_count = 0

    @property
    def state(self) -> SessionState:
        return self._state

    @property
    def is_open(self) -> bool:
        return self._state is SessionState.OPEN and self._ws is not None

    def _transition(self, target: SessionState) -> None:
        if target not in _TRANSITIONS[self._state]:
            raise InvalidTransition(self._state, target)
        logger.debug("Session %s -> %s", self._state.value, target.value)
        self._state = target

    async def connect(self, url: str | None = None) -> None:
        """Connect to url (or the configured url) and run until closed."""
        if url is not None:
            self.url = url
        await self.run()

    async def run(self) -> None:
        """
        Main run loop: connect, pump frames, reconnect on drops.

        Returns once close() is called, or after the first drop when
        reconnect is disabled.
        """
        if self._state is not SessionState.DISCONNECTED:
            raise InvalidTransition(self._state, SessionState.CONNECTING)

        try:
            if self._closing:
                # close() landed before the loop started
                logger.info("Session closed before connecting to %s", self.url)
                return

            if self._ws_connect is not None:
                await self._run_loop(self._ws_connect)
                return

            async with aiohttp.ClientSession() as http:
                async def ws_connect(url: str) -> aiohttp.ClientWebSocketResponse:
                    return await http.ws_connect(url, heartbeat=self.heartbeat)

                await self._run_loop(ws_connect)
        finally:
            # One close() stops one run(); a later run() starts clean
            self._closing = False
            self._close_requested.clear()

    async def _run_loop(self, ws_connect: WsConnect) -> None:
        delay = self.reconnect_delay
        try:
            while True:
                self._transition(SessionState.CONNECTING)
                logger.info("Connecting to %s", self.url)

                try:
                    ws = await ws_connect(self.url)
                except _CONNECT_ERRORS as exc:
                    if self._closing:
                        return
                    logger.warning("Connect to %s failed: %s", self.url, exc)
                    if not await self._wait_reconnect(delay):
                        return
                    delay = self._next_delay(delay)
                    continue

                if self._closing:
                    # close() arrived during the handshake
                    await ws.close()
                    return

                self._ws = ws
                self._transition(SessionState.OPEN)
                logger.info("Connected to %s", self.url)
                delay = self.reconnect_delay

                error: BaseException | None = None
                try:
                    if self.on_open is not None:
                        result = self.on_open()
                        if inspect.isawaitable(result):
                            await result
                    error = await self._pump(ws)
                except _DROP_ERRORS as exc:
                    # Socket died under a send or a callback: same as a drop
                    error = exc
                    await ws.close()
                finally:
                    self._ws = None

                if self._closing:
                    return

                lost = ConnectionLost(self.url, error)
                logger.warning("%s", lost)
                if self.on_close is not None:
                    self.on_close(lost)

                if not await self._wait_reconnect(delay):
                    return
                delay = self._next_delay(delay)
        finally:
            if self._state is not SessionState.DISCONNECTED:
                if self._state is not SessionState.CLOSING and self._closing:
                    self._transition(SessionState.CLOSING)
                self._transition(SessionState.DISCONNECTED)
            logger.info("Session disconnected from %s", self.url)

    async def _pump(self, ws: Any) -> BaseException | None:
        """Deliver text frames in arrival order until the socket closes."""
        async for msg in ws:
            if msg.type == aiohttp.WSMsgType.TEXT:
                if self.on_message is not None:
                    self.on_message(msg.data)
            elif msg.type == aiohttp.WSMsgType.ERROR:
                error = ws.exception()
                await ws.close()
                return error
        return None

    async def _wait_reconnect(self, delay: float) -> bool:
        """
        Enter RECONNECTING and wait out the backoff.

        Returns False when the loop should stop instead (reconnect disabled
        or close() requested during the wait).
        """
        if not self.reconnect or self._closing:
            return False

        self._transition(SessionState.RECONNECTING)
        self.reconnect_count += 1
        if delay > 0:
            logger.info("Reconnecting in %.1fs...", delay)
            try:
                await asyncio.wait_for(self._close_requested.wait(), timeout=delay)
            except asyncio.TimeoutError:
                pass
        return not self._closing

    def _next_delay(self, delay: float) -> float:
        if delay <= 0:
            return delay
        return min(delay * 2, self.reconnect_max_delay)

    async def send(self, message: dict[str, Any]) -> None:
        """Send one JSON frame. Raises NotConnected unless the session is OPEN."""
        if not self.is_open:
            raise NotConnected(f"cannot send while {self._state.value}")
        await self._ws.send_str(orjson.dumps(message).decode())

    async def close(self) -> None:
        """
        Intentional shutdown: no further reconnects, socket closed.

        Safe to call from any state, including while a reconnect is pending
        or before the run() task has started (that run() then returns at once).
        """
        # Flag first, before any await, so no reconnect can start after this
        self._closing = True
        self._close_requested.set()

        if self._state in (SessionState.DISCONNECTED, SessionState.CLOSING):
            return

        self._transition(SessionState.CLOSING)
        ws = self._ws
        if ws is not None:
            await ws.close()
