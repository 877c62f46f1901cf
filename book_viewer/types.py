"""
Data types for Book Viewer.

Notes:
- Using NamedTuple for immutable, memory-efficient structures
- Prices, sizes and totals are Decimal so cumulative sums stay exact
- A Book is a value: every transition returns a new one, so a consumer
  holding a Book never sees it change underneath
"""

from __future__ import annotations

from decimal import Decimal
from typing import Any, Literal, NamedTuple

Side = Literal["bids", "asks"]

BIDS: Side = "bids"
ASKS: Side = "asks"
SIDES: tuple[Side, Side] = (BIDS, ASKS)

# Maximum number of price levels retained per side
DEFAULT_DEPTH = 12


class PriceLevel(NamedTuple):
    """Single price level on one side of the book."""
    price: Decimal
    size: Decimal
    total: Decimal  # Cumulative size from the best price down to this level


class Book(NamedTuple):
    """
    Two-sided, depth-limited order book.

    Bids are sorted by descending price, asks by ascending price, so index 0
    is always the best level on both sides.
    """
    bids: tuple[PriceLevel, ...] = ()
    asks: tuple[PriceLevel, ...] = ()

    def side(self, side: Side) -> tuple[PriceLevel, ...]:
        return self.bids if side == BIDS else self.asks

    @property
    def best_bid(self) -> Decimal | None:
        return self.bids[0].price if self.bids else None

    @property
    def best_ask(self) -> Decimal | None:
        return self.asks[0].price if self.asks else None

    @property
    def spread(self) -> Decimal | None:
        """Best ask minus best bid. None unless both sides are populated."""
        if self.best_bid is None or self.best_ask is None:
            return None
        return self.best_ask - self.best_bid

    @property
    def spread_pct(self) -> Decimal | None:
        """Spread as a percentage of the best ask."""
        spread = self.spread
        if spread is None or not self.best_ask:
            return None
        return spread / self.best_ask * 100

    @property
    def max_total(self) -> Decimal:
        """Deepest cumulative total across both sides (scales depth bars)."""
        totals = [levels[-1].total for levels in (self.bids, self.asks) if levels]
        return max(totals, default=Decimal(0))


EMPTY_BOOK = Book()


class Subscription(NamedTuple):
    """The (feed, instrument) pair the session is subscribed to."""
    feed: str
    instrument: str


class ControlMessage(NamedTuple):
    """
    Informational frame from the server: info, error, subscribed, unsubscribed.

    Never applied to the book.
    """
    kind: str
    feed: str | None
    message: str | None = None
    raw: dict[str, Any] | None = None


class DataMessage(NamedTuple):
    """
    Book data frame.

    kind is "snapshot" (full replace) or "update" (deltas, size 0 = remove).
    Level pairs are kept as received; the book store validates each one.
    """
    kind: str
    feed: str
    bids: list[Any]
    asks: list[Any]
    product_id: str | None = None
