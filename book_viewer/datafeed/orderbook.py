"""
Depth-limited local order book.

HOT PATH: apply_delta() runs for every price level in every update frame.

Design:
1. A Book is an immutable value; apply_snapshot()/apply_delta() are pure
   transitions returning a new Book (or the same one when nothing changed)
2. Each side is kept sorted best-first, so a level is located with a
   binary search on its sort key instead of a scan
3. Decimal arithmetic end to end so cumulative totals never drift
4. OrderBook is the single mutable owner of the current Book
"""

from __future__ import annotations

import logging
import time
from bisect import bisect_left
from decimal import Decimal, InvalidOperation
from itertools import accumulate
from typing import Any, Iterable

from ..errors import InvalidLevel
from ..types import ASKS, BIDS, DEFAULT_DEPTH, EMPTY_BOOK, SIDES, Book, DataMessage, PriceLevel, Side
from .codec import SNAPSHOT

logger = logging.getLogger(__name__)


def to_decimal(value: Any, field: str) -> Decimal:
    """Coerce a wire number (int, float, numeric string) to a finite Decimal."""
    if isinstance(value, bool):
        raise InvalidLevel(f"{field} is not a number", value)

    if isinstance(value, Decimal):
        result = value
    elif isinstance(value, int):
        result = Decimal(value)
    elif isinstance(value, float):
        # str() gives the shortest repr, so 0.1 becomes Decimal("0.1")
        result = Decimal(str(value))
    elif isinstance(value, str):
        try:
            result = Decimal(value)
        except InvalidOperation:
            raise InvalidLevel(f"{field} is not a number", value) from None
    else:
        raise InvalidLevel(f"{field} is not a number", value)

    if not result.is_finite():
        raise InvalidLevel(f"{field} is not finite", value)
    return result


def parse_level(level: Any) -> tuple[Decimal, Decimal]:
    """
    Validate one raw [price, size] pair.

    Raises InvalidLevel for wrong shape, non-numeric or non-finite values,
    and negative sizes. Size 0 is valid here (it is the removal signal).
    """
    if not isinstance(level, (list, tuple)) or len(level) != 2:
        raise InvalidLevel("expected [price, size]", level)

    price = to_decimal(level[0], "price")
    size = to_decimal(level[1], "size")
    if size < 0:
        raise InvalidLevel("negative size", level)
    return price, size


def _check_side(side: str) -> None:
    if side not in SIDES:
        raise ValueError(f"unknown side {side!r}")


def _sort_key(side: Side, price: Decimal) -> Decimal:
    # Both sides sort ascending on this key: best price first
    return -price if side == BIDS else price


def _with_totals(pairs: Iterable[tuple[Decimal, Decimal]]) -> tuple[PriceLevel, ...]:
    """Build levels with best-first cumulative totals."""
    pairs = list(pairs)
    totals = accumulate(size for _, size in pairs)
    return tuple(PriceLevel(price, size, total) for (price, size), total in zip(pairs, totals))


def apply_snapshot(
    book: Book,
    side: Side,
    raw_levels: Iterable[Any],
    depth: int = DEFAULT_DEPTH,
) -> Book:
    """
    Replace one side wholesale from a snapshot.

    Invalid pairs and pairs with size <= 0 are dropped (logged); the rest are
    sorted best-first, truncated to depth and given fresh totals. Duplicate
    prices keep the last size seen.
    """
    _check_side(side)

    levels: dict[Decimal, Decimal] = {}
    for raw in raw_levels:
        try:
            price, size = parse_level(raw)
        except InvalidLevel as exc:
            logger.warning("Dropping snapshot %s level: %s", side, exc)
            continue
        if size == 0:
            logger.warning("Dropping snapshot %s level: zero size: %r", side, raw)
            continue
        levels[price] = size

    ordered = sorted(levels.items(), key=lambda item: _sort_key(side, item[0]))
    return book._replace(**{side: _with_totals(ordered[:depth])})


def _apply_delta(book: Book, side: Side, price: Decimal, size: Decimal, depth: int) -> Book:
    levels = book.side(side)
    keys = [_sort_key(side, level.price) for level in levels]
    pos = bisect_left(keys, _sort_key(side, price))
    present = pos < len(levels) and levels[pos].price == price

    if size == 0:
        if not present:
            return book
        pairs = [(level.price, level.size) for level in levels]
        del pairs[pos]
    elif present:
        pairs = [(level.price, level.size) for level in levels]
        pairs[pos] = (levels[pos].price, size)
    else:
        # Insert then truncate as one step: a level landing past the cap
        # is inserted and immediately dropped
        pairs = [(level.price, level.size) for level in levels]
        pairs.insert(pos, (price, size))
        del pairs[depth:]

    return book._replace(**{side: _with_totals(pairs)})


def apply_delta(
    book: Book,
    side: Side,
    price: Any,
    size: Any,
    depth: int = DEFAULT_DEPTH,
) -> Book:
    """
    Apply a single price-level change.

    size == 0 removes the level (no-op if absent), an existing price has its
    size replaced in place, a new price is inserted in order and the side is
    truncated to depth. Raises InvalidLevel without touching the book.
    """
    _check_side(side)
    price, size = parse_level((price, size))
    return _apply_delta(book, side, price, size, depth)


def apply_levels(
    book: Book,
    side: Side,
    raw_levels: Iterable[Any],
    depth: int = DEFAULT_DEPTH,
) -> Book:
    """Apply a batch of deltas one at a time in array order, skipping invalid pairs."""
    _check_side(side)
    for raw in raw_levels:
        try:
            price, size = parse_level(raw)
        except InvalidLevel as exc:
            logger.warning("Dropping %s delta: %s", side, exc)
            continue
        book = _apply_delta(book, side, price, size, depth)
    return book


def apply_message(book: Book, message: DataMessage, depth: int = DEFAULT_DEPTH) -> Book:
    """Apply a decoded snapshot (both sides replaced) or update (deltas)."""
    if message.kind == SNAPSHOT:
        book = apply_snapshot(book, BIDS, message.bids, depth)
        return apply_snapshot(book, ASKS, message.asks, depth)

    book = apply_levels(book, ASKS, message.asks, depth)
    return apply_levels(book, BIDS, message.bids, depth)


class OrderBook:
    """
    Current book for the active instrument.

    After reset() the book is empty and deltas are discarded until a fresh
    snapshot arrives, so a stale book is never patched into a wrong one.

    Thread-safety: NOT thread-safe. Designed for single-threaded async use.
    """

    __slots__ = (
        'instrument', 'depth', 'book', 'awaiting_snapshot',
        '_update_count', '_update_start_time',
    )

    def __init__(self, instrument: str, depth: int = DEFAULT_DEPTH) -> None:
        self.instrument = instrument
        self.depth = depth
        self.book: Book = EMPTY_BOOK
        self.awaiting_snapshot = True

        # Performance tracking
        self._update_count: int = 0
        self._update_start_time: float = time.perf_counter()

    def load_snapshot(self, message: DataMessage) -> Book:
        """Replace both sides from a snapshot frame."""
        self.book = apply_message(EMPTY_BOOK, message, self.depth)
        self.awaiting_snapshot = False
        self._update_count += 1
        logger.debug(
            "Snapshot loaded for %s: %d bids, %d asks",
            self.instrument, len(self.book.bids), len(self.book.asks),
        )
        return self.book

    def apply_update(self, message: DataMessage) -> bool:
        """
        Apply an incremental update frame.

        Returns False (and ignores the frame) while awaiting a snapshot.
        """
        if self.awaiting_snapshot:
            return False
        self.book = apply_message(self.book, message, self.depth)
        self._update_count += 1
        return True

    def reset(self, instrument: str | None = None) -> None:
        """Clear the book and wait for a snapshot (reconnect or instrument switch)."""
        if instrument is not None:
            self.instrument = instrument
        self.book = EMPTY_BOOK
        self.awaiting_snapshot = True

    def get_updates_per_sec(self) -> float:
        """Return update rate for performance monitoring."""
        elapsed = time.perf_counter() - self._update_start_time
        if elapsed < 0.001:
            return 0.0
        return self._update_count / elapsed

    def reset_perf_counters(self) -> None:
        """Reset performance counters."""
        self._update_count = 0
        self._update_start_time = time.perf_counter()
