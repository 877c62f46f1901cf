"""Shared test fixtures: in-memory websocket and connector."""

from __future__ import annotations

import asyncio
from types import SimpleNamespace
from typing import Any, Awaitable, Callable

import aiohttp
import orjson
import pytest

from book_viewer.config import Settings


class FakeWebSocket:
    """Stands in for aiohttp.ClientWebSocketResponse."""

    def __init__(self) -> None:
        self.sent: list[str] = []
        self.closed = False
        self._inbox: asyncio.Queue[Any] = asyncio.Queue()
        self._error: BaseException | None = None

    @property
    def sent_json(self) -> list[dict[str, Any]]:
        return [orjson.loads(s) for s in self.sent]

    def push(self, payload: dict[str, Any] | str) -> None:
        """Queue an incoming text frame."""
        data = payload if isinstance(payload, str) else orjson.dumps(payload).decode()
        self._inbox.put_nowait(SimpleNamespace(type=aiohttp.WSMsgType.TEXT, data=data))

    def drop(self) -> None:
        """Remote side closes the connection."""
        self._inbox.put_nowait(None)

    def fail(self, error: BaseException) -> None:
        """Transport error on the connection."""
        self._error = error
        self._inbox.put_nowait(SimpleNamespace(type=aiohttp.WSMsgType.ERROR, data=error))

    def exception(self) -> BaseException | None:
        return self._error

    async def send_str(self, data: str) -> None:
        if self.closed:
            raise ConnectionResetError("socket closed")
        self.sent.append(data)

    async def close(self) -> bool:
        self.closed = True
        self._inbox.put_nowait(None)
        return True

    def __aiter__(self) -> FakeWebSocket:
        return self

    async def __anext__(self) -> Any:
        msg = await self._inbox.get()
        if msg is None:
            self.closed = True
            raise StopAsyncIteration
        return msg


class FakeConnector:
    """Callable passed as ws_connect; hands out FakeWebSockets."""

    def __init__(self) -> None:
        self.sockets: list[FakeWebSocket] = []
        self.urls: list[str] = []
        self.failures = 0
        self._opened: asyncio.Queue[FakeWebSocket] = asyncio.Queue()

    async def __call__(self, url: str) -> FakeWebSocket:
        self.urls.append(url)
        if self.failures:
            self.failures -= 1
            raise aiohttp.ClientConnectionError("connection refused")
        ws = FakeWebSocket()
        self.sockets.append(ws)
        self._opened.put_nowait(ws)
        return ws

    async def next_socket(self, timeout: float = 1.0) -> FakeWebSocket:
        return await asyncio.wait_for(self._opened.get(), timeout)


async def _eventually(predicate: Callable[[], bool], timeout: float = 1.0) -> None:
    loop = asyncio.get_running_loop()
    deadline = loop.time() + timeout
    while not predicate():
        if loop.time() > deadline:
            raise AssertionError("condition not met in time")
        await asyncio.sleep(0.005)


@pytest.fixture
def connector() -> FakeConnector:
    return FakeConnector()


@pytest.fixture
def eventually() -> Callable[..., Awaitable[None]]:
    return _eventually


@pytest.fixture
def settings() -> Settings:
    return Settings(
        ws_url="ws://test.invalid/ws",
        feed="book_ui_1",
        instruments=["PI_XBTUSD", "PI_ETHUSD"],
        throttle_ms=0,
        reconnect=True,
        reconnect_delay=0,
        heartbeat=5.0,
        snapshot_queue_size=5,
    )


def snapshot_frame(bids: list, asks: list, product_id: str | None = "PI_XBTUSD") -> dict[str, Any]:
    frame: dict[str, Any] = {"feed": "book_ui_1_snapshot", "bids": bids, "asks": asks}
    if product_id is not None:
        frame["product_id"] = product_id
    return frame


def update_frame(bids: list | None = None, asks: list | None = None, product_id: str | None = "PI_XBTUSD") -> dict[str, Any]:
    frame: dict[str, Any] = {"feed": "book_ui_1", "bids": bids or [], "asks": asks or []}
    if product_id is not None:
        frame["product_id"] = product_id
    return frame


@pytest.fixture
def frames() -> SimpleNamespace:
    return SimpleNamespace(snapshot=snapshot_frame, update=update_frame)
