"""
Order book ladder TUI using Textual.

Displays:
- Top: asks, worst price first so the best ask sits next to the spread
- Middle: spread and spread percentage
- Bottom: bids, best price first
- Each row: price, size, cumulative total and a depth bar scaled to the
  deepest total on either side

Performance notes:
- Only redraws when the throttled client pushes a new Book
- Renders a single Rich Table per frame
"""

from __future__ import annotations

import asyncio
from decimal import Decimal
from typing import TYPE_CHECKING

from rich.console import Group, RenderableType
from rich.style import Style
from rich.table import Table
from rich.text import Text

from textual import events
from textual.app import App, ComposeResult
from textual.containers import Container
from textual.widgets import Footer, Static

if TYPE_CHECKING:
    from ..datafeed.client import BookClient
    from ..types import Book, PriceLevel, Side

# Color scheme (dark theme)
BID_COLOR = "#22c55e"      # Green
ASK_COLOR = "#ef4444"      # Red
BID_BAR = "#1d3434"
ASK_BAR = "#372028"
HEADER_COLOR = "#94a3b8"
BAR_BG = "#141718"

BAR_WIDTH = 16


def format_price(price: Decimal) -> str:
    return f"{price:,.2f}"


def format_size(size: Decimal) -> str:
    return f"{size:,.0f}"


def make_bar(value: Decimal, max_value: Decimal, width: int, color: str) -> Text:
    """Create a horizontal depth bar using block characters."""
    if max_value <= 0:
        return Text(" " * width)

    fill_width = int(min(Decimal(1), value / max_value) * width)
    bar = "█" * fill_width + " " * (width - fill_width)
    return Text(bar, style=Style(color=color, bgcolor=BAR_BG))


def ladder_table(book: Book, side: Side) -> Table:
    """Build the rows for one side of the book."""
    table = Table(
        show_header=side == "asks",
        header_style=HEADER_COLOR,
        box=None,
        padding=(0, 1),
        collapse_padding=True,
    )
    table.add_column("Price", justify="right", width=12)
    table.add_column("Size", justify="right", width=10)
    table.add_column("Total", justify="right", width=10)
    table.add_column("Depth", justify="left", width=BAR_WIDTH, no_wrap=True)

    levels: tuple[PriceLevel, ...] = book.side(side)
    if side == "asks":
        levels = tuple(reversed(levels))

    price_color = ASK_COLOR if side == "asks" else BID_COLOR
    bar_color = ASK_BAR if side == "asks" else BID_BAR
    max_total = book.max_total

    for level in levels:
        table.add_row(
            Text(format_price(level.price), style=price_color),
            Text(format_size(level.size)),
            Text(format_size(level.total)),
            make_bar(level.total, max_total, BAR_WIDTH, bar_color),
        )
    return table


def spread_text(book: Book) -> Text:
    if book.spread is None:
        return Text("Spread: -", style="dim")
    pct = book.spread_pct
    pct_text = f"{pct:.3f}%" if pct is not None else "-"
    return Text(
        f"Spread: {book.spread:.2f} ({pct_text})",
        style=HEADER_COLOR,
    )


class LadderView(Static):
    """Main order book ladder widget."""

    DEFAULT_CSS = """
    LadderView {
        width: 100%;
        height: 100%;
    }
    """

    def __init__(self) -> None:
        super().__init__()
        self._book: Book | None = None

    def update_book(self, book: Book) -> None:
        """Update with a new Book."""
        self._book = book
        self.refresh()

    def render(self) -> RenderableType:
        """Render the ladder as Rich Tables."""
        if self._book is None:
            return Text("Waiting for data...", style="dim")

        book = self._book
        if not book.bids and not book.asks:
            return Text("Loading book...", style="dim")

        return Group(
            ladder_table(book, "asks"),
            spread_text(book),
            ladder_table(book, "bids"),
        )


class StatusBar(Static):
    """Status bar showing instrument, connection state and update rate."""

    DEFAULT_CSS = """
    StatusBar {
        dock: top;
        height: 3;
        padding: 0 2;
        background: #0f172a;
    }
    """

    def __init__(self, client: BookClient) -> None:
        super().__init__()
        self._client = client

    def render(self) -> RenderableType:
        client = self._client
        paused = client.subscriptions.background

        result = Text()
        result.append(Text(f" {client.instrument} ", style="bold white on #5345d1"))
        result.append(Text("  "))
        result.append(Text("Session: ", style="dim"))
        result.append(Text(client.session.state.value, style="cyan"))
        if paused:
            result.append(Text("  (paused)", style="yellow"))
        result.append(Text("  │  ", style="dim"))
        result.append(Text("Updates/s: ", style="dim"))
        result.append(Text(f"{client.orderbook.get_updates_per_sec():.0f}", style="cyan"))
        return result


class BookApp(App):
    """Order book viewer application."""

    CSS = """
    Screen {
        background: #141718;
    }

    #main-container {
        width: 100%;
        height: 100%;
        padding: 1 2;
    }
    """

    BINDINGS = [
        ("q", "quit", "Quit"),
        ("t", "toggle_instrument", "Toggle Feed"),
        ("p", "toggle_pause", "Pause/Resume"),
    ]

    def __init__(self, client: BookClient) -> None:
        super().__init__()
        self.client = client
        self._status_bar: StatusBar | None = None
        self._ladder: LadderView | None = None

    def compose(self) -> ComposeResult:
        self._status_bar = StatusBar(self.client)
        self._ladder = LadderView()

        yield self._status_bar
        yield Container(self._ladder, id="main-container")
        yield Footer()

    async def on_mount(self) -> None:
        """Start the book consumer task."""
        self.run_worker(self._consume_books(), exclusive=True)

    async def _consume_books(self) -> None:
        """Consume books from the client queue and update UI."""
        while True:
            try:
                book = await asyncio.wait_for(self.client.snapshot_queue.get(), timeout=1.0)
            except asyncio.TimeoutError:
                if self._status_bar:
                    self._status_bar.refresh()
                continue

            if self._status_bar:
                self._status_bar.refresh()
            if self._ladder:
                self._ladder.update_book(book)

    async def action_toggle_instrument(self) -> None:
        """Switch instrument (bound to 't' key)."""
        await self.client.toggle_instrument()
        if self._status_bar:
            self._status_bar.refresh()

    async def action_toggle_pause(self) -> None:
        """Pause or resume the stream (bound to 'p' key)."""
        if self.client.subscriptions.background:
            await self.client.resume()
        else:
            await self.client.pause()
        if self._status_bar:
            self._status_bar.refresh()

    async def on_app_blur(self, event: events.AppBlur) -> None:
        await self.client.pause()

    async def on_app_focus(self, event: events.AppFocus) -> None:
        await self.client.resume()


async def run_ui(client: BookClient) -> None:
    """Run the TUI application."""
    app = BookApp(client)
    await app.run_async()
