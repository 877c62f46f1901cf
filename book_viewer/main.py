#!/usr/bin/env python3
"""
Book Viewer - Real-time order book ladder for a futures instrument.

Usage:
    python -m book_viewer.main PI_XBTUSD --throttle-ms 100

    Or headless (log top of book instead of the TUI):
    python -m book_viewer.main PI_ETHUSD --headless

Controls:
    q - Quit
    t - Toggle instrument
    p - Pause / resume the stream
"""

from __future__ import annotations

import argparse
import asyncio
import logging
import sys

from .config import Settings
from .types import Book

logger = logging.getLogger("book_viewer")


def setup_logging(level: str, *, tui: bool) -> None:
    """Route logs to the Textual console in TUI mode, stderr otherwise."""
    handlers: list[logging.Handler] | None = None
    if tui:
        from textual.logging import TextualHandler
        handlers = [TextualHandler()]

    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format="%(asctime)s %(levelname)-8s [%(name)s] %(message)s",
        handlers=handlers,
    )


def log_top_of_book(book: Book) -> None:
    if not book.bids and not book.asks:
        logger.info("Book empty, waiting for snapshot")
        return
    logger.info(
        "bid %s x %s | ask %s x %s | spread %s",
        book.best_bid, book.bids[0].size if book.bids else "-",
        book.best_ask, book.asks[0].size if book.asks else "-",
        book.spread,
    )


async def main(settings: Settings, *, headless: bool = False) -> None:
    """Main entry point - runs data feed and UI concurrently."""

    # Import here to avoid slow startup for --help
    from .datafeed.client import BookClient

    client = BookClient(settings)
    logger.info(
        "Starting Book Viewer for %s on %s (feed %s, depth %d, throttle %dms)",
        client.instrument, settings.ws_url, settings.feed, settings.depth, settings.throttle_ms,
    )

    if headless:
        client.add_listener(log_top_of_book)
        try:
            await client.run()
        finally:
            await client.stop()
        return

    from .ui.book_view import run_ui

    feed_task = asyncio.create_task(client.run())
    try:
        # Run UI (blocks until quit)
        await run_ui(client)
    finally:
        await client.stop()
        await feed_task


def cli() -> None:
    """CLI entry point."""
    parser = argparse.ArgumentParser(
        description="Book Viewer - Real-time order book ladder",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
    python -m book_viewer.main PI_XBTUSD
    python -m book_viewer.main PI_ETHUSD --throttle-ms 250
    python -m book_viewer.main --headless --log-level DEBUG
        """
    )

    parser.add_argument(
        "instrument",
        nargs="?",
        default=None,
        help="Instrument to start with (default: first configured instrument)"
    )

    parser.add_argument("--url", default=None, help="WebSocket URL")
    parser.add_argument("--feed", default=None, help="Feed name (default: book_ui_1)")

    parser.add_argument(
        "--throttle-ms",
        type=int,
        default=None,
        help="Minimum interval between UI refreshes, 0 = every update"
    )

    parser.add_argument(
        "--depth",
        type=int,
        default=None,
        help="Price levels kept per side (default: 12)"
    )

    parser.add_argument(
        "--headless",
        action="store_true",
        help="Log top of book instead of starting the TUI"
    )

    parser.add_argument("--log-level", default=None, help="Logging level (default: INFO)")

    args = parser.parse_args()

    overrides = {
        "ws_url": args.url,
        "feed": args.feed,
        "throttle_ms": args.throttle_ms,
        "depth": args.depth,
        "log_level": args.log_level,
    }
    settings = Settings(**{k: v for k, v in overrides.items() if v is not None})
    if args.instrument:
        instruments = [args.instrument] + [i for i in settings.instruments if i != args.instrument]
        settings = settings.model_copy(update={"instruments": instruments})

    setup_logging(settings.log_level, tui=not args.headless)

    try:
        asyncio.run(main(settings, headless=args.headless))
    except KeyboardInterrupt:
        logger.info("Shutdown requested.")
        sys.exit(0)


if __name__ == "__main__":
    cli()
