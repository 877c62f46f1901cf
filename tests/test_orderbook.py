"""Tests for the book store: pure transitions and the OrderBook owner."""

from __future__ import annotations

import random
from decimal import Decimal

import pytest

from book_viewer.datafeed.codec import SNAPSHOT, UPDATE
from book_viewer.datafeed.orderbook import (
    OrderBook,
    apply_delta,
    apply_levels,
    apply_message,
    apply_snapshot,
    parse_level,
    to_decimal,
)
from book_viewer.errors import InvalidLevel
from book_viewer.types import ASKS, BIDS, DEFAULT_DEPTH, EMPTY_BOOK, Book, DataMessage

D = Decimal


def prices(book: Book, side: str) -> list[Decimal]:
    return [level.price for level in book.side(side)]


def totals(book: Book, side: str) -> list[Decimal]:
    return [level.total for level in book.side(side)]


def assert_invariants(book: Book, depth: int = DEFAULT_DEPTH) -> None:
    for side in (BIDS, ASKS):
        levels = book.side(side)
        assert len(levels) <= depth
        side_prices = [level.price for level in levels]
        assert len(set(side_prices)) == len(side_prices)
        expected_order = sorted(side_prices, reverse=(side == BIDS))
        assert side_prices == expected_order
        running = D(0)
        for level in levels:
            assert level.size > 0
            running += level.size
            assert level.total == running


@pytest.fixture
def scenario_a() -> Book:
    return apply_snapshot(EMPTY_BOOK, BIDS, [[100, 5], [99, 3], [98, 2]])


class TestScenarios:
    def test_a_snapshot_totals_best_first(self, scenario_a):
        assert prices(scenario_a, BIDS) == [100, 99, 98]
        assert totals(scenario_a, BIDS) == [5, 8, 10]

    def test_b_remove_middle_level(self, scenario_a):
        book = apply_delta(scenario_a, BIDS, 99, 0)
        assert prices(book, BIDS) == [100, 98]
        assert totals(book, BIDS) == [5, 7]

    def test_c_insert_new_best(self, scenario_a):
        book = apply_delta(scenario_a, BIDS, 101, 4)
        assert prices(book, BIDS) == [101, 100, 99, 98]
        assert totals(book, BIDS) == [4, 9, 12, 14]

    def test_d_thirteen_inserts_keep_twelve_closest(self):
        book = EMPTY_BOOK
        for i in range(13):
            book = apply_delta(book, BIDS, 100 - i, 1)
            assert len(book.bids) <= 12
        assert prices(book, BIDS) == [D(100 - i) for i in range(12)]
        assert book.bids[-1].total == 12


class TestApplySnapshot:
    def test_unsorted_input_is_sorted_per_side(self):
        book = apply_snapshot(EMPTY_BOOK, ASKS, [[103, 1], [101, 2], [102, 3]])
        assert prices(book, ASKS) == [101, 102, 103]
        assert totals(book, ASKS) == [2, 5, 6]

    def test_replaces_prior_side_completely(self, scenario_a):
        book = apply_snapshot(scenario_a, BIDS, [[50, 1]])
        assert prices(book, BIDS) == [50]
        assert totals(book, BIDS) == [1]

    def test_leaves_other_side_untouched(self, scenario_a):
        book = apply_snapshot(scenario_a, ASKS, [[110, 1]])
        assert book.bids == scenario_a.bids

    def test_truncates_to_depth_keeping_best(self):
        raw = [[100 + i, 1] for i in range(20)]
        book = apply_snapshot(EMPTY_BOOK, ASKS, raw)
        assert prices(book, ASKS) == [D(100 + i) for i in range(12)]

        book = apply_snapshot(EMPTY_BOOK, BIDS, raw)
        assert prices(book, BIDS) == [D(119 - i) for i in range(12)]

    def test_custom_depth(self):
        book = apply_snapshot(EMPTY_BOOK, BIDS, [[3, 1], [2, 1], [1, 1]], depth=2)
        assert prices(book, BIDS) == [3, 2]

    def test_drops_invalid_levels_and_keeps_the_rest(self):
        raw = [[100, 5], [99, 0], [98, -1], ["NaN", 1], [97, "abc"], [96], [95, 2]]
        book = apply_snapshot(EMPTY_BOOK, BIDS, raw)
        assert prices(book, BIDS) == [100, 95]
        assert totals(book, BIDS) == [5, 7]

    def test_duplicate_price_keeps_last(self):
        book = apply_snapshot(EMPTY_BOOK, BIDS, [[100, 5], [100, 7]])
        assert [(level.price, level.size) for level in book.bids] == [(100, 7)]

    def test_idempotent(self, scenario_a):
        again = apply_snapshot(scenario_a, BIDS, [[100, 5], [99, 3], [98, 2]])
        assert again == scenario_a

    def test_empty_snapshot_clears_side(self, scenario_a):
        assert apply_snapshot(scenario_a, BIDS, []).bids == ()

    def test_unknown_side_rejected(self):
        with pytest.raises(ValueError):
            apply_snapshot(EMPTY_BOOK, "middle", [[1, 1]])


class TestApplyDelta:
    def test_update_existing_in_place(self, scenario_a):
        book = apply_delta(scenario_a, BIDS, 99, 10)
        assert prices(book, BIDS) == [100, 99, 98]
        assert totals(book, BIDS) == [5, 15, 17]

    def test_remove_absent_price_is_noop(self, scenario_a):
        book = apply_delta(scenario_a, BIDS, 42, 0)
        assert book is scenario_a

    def test_remove_last_level(self):
        book = apply_snapshot(EMPTY_BOOK, ASKS, [[101, 1]])
        assert apply_delta(book, ASKS, 101, 0).asks == ()

    def test_insert_in_middle_of_asks(self):
        book = apply_snapshot(EMPTY_BOOK, ASKS, [[101, 1], [103, 1]])
        book = apply_delta(book, ASKS, 102, 2)
        assert prices(book, ASKS) == [101, 102, 103]
        assert totals(book, ASKS) == [1, 3, 4]

    def test_insert_past_cap_leaves_full_side_unchanged(self):
        book = apply_snapshot(EMPTY_BOOK, BIDS, [[100 - i, 1] for i in range(12)])
        after = apply_delta(book, BIDS, 50, 9)
        assert after == book

    def test_insert_better_price_evicts_worst(self):
        book = apply_snapshot(EMPTY_BOOK, BIDS, [[100 - i, 1] for i in range(12)])
        after = apply_delta(book, BIDS, 101, 1)
        assert len(after.bids) == 12
        assert after.bids[0].price == 101
        assert D(89) not in prices(after, BIDS)

    def test_equal_decimal_forms_are_the_same_price(self, scenario_a):
        book = apply_delta(scenario_a, BIDS, "100.0", 1)
        assert prices(book, BIDS) == [100, 99, 98]
        assert book.bids[0].size == 1

    def test_exact_decimal_totals(self):
        book = apply_delta(EMPTY_BOOK, ASKS, 1, 0.1)
        book = apply_delta(book, ASKS, 2, 0.2)
        assert book.asks[-1].total == D("0.3")

    @pytest.mark.parametrize("price, size", [
        (100, -1),
        (float("nan"), 1),
        (float("inf"), 1),
        ("Infinity", 1),
        (True, 1),
        (100, None),
        ("x", 1),
    ])
    def test_invalid_level_rejected_without_mutation(self, scenario_a, price, size):
        with pytest.raises(InvalidLevel):
            apply_delta(scenario_a, BIDS, price, size)
        assert totals(scenario_a, BIDS) == [5, 8, 10]


class TestApplyLevels:
    def test_invalid_pair_skipped_rest_applied(self, scenario_a):
        book = apply_levels(scenario_a, BIDS, [[101, 1], [99, -5], "junk", [98, 0]])
        assert prices(book, BIDS) == [101, 100, 99]
        assert totals(book, BIDS) == [1, 6, 9]

    def test_applied_one_at_a_time_in_order(self, scenario_a):
        # Insert then remove the same price within one batch
        book = apply_levels(scenario_a, BIDS, [[97, 1], [97, 0]])
        assert book == scenario_a
        # Remove then re-insert
        book = apply_levels(scenario_a, BIDS, [[100, 0], [100, 9]])
        assert totals(book, BIDS) == [9, 12, 14]

    def test_remove_frees_room_for_insert_in_same_batch(self):
        full = apply_snapshot(EMPTY_BOOK, ASKS, [[100 + i, 1] for i in range(12)])
        book = apply_levels(full, ASKS, [[100, 0], [200, 1]])
        assert len(book.asks) == 12
        assert book.asks[-1].price == 200


class TestApplyMessage:
    def test_snapshot_message_replaces_both_sides(self, scenario_a):
        message = DataMessage(SNAPSHOT, "book_ui_1", [[10, 1]], [[11, 2]])
        book = apply_message(scenario_a, message)
        assert prices(book, BIDS) == [10]
        assert prices(book, ASKS) == [11]

    def test_update_message_applies_deltas(self, scenario_a):
        message = DataMessage(UPDATE, "book_ui_1", [[99, 0]], [[105, 4]])
        book = apply_message(scenario_a, message)
        assert prices(book, BIDS) == [100, 98]
        assert prices(book, ASKS) == [105]


class TestInvariantsUnderRandomSequences:
    @pytest.mark.parametrize("seed", range(20))
    def test_random_operations_preserve_invariants(self, seed):
        rng = random.Random(seed)
        book = EMPTY_BOOK
        for _ in range(300):
            side = rng.choice((BIDS, ASKS))
            op = rng.random()
            if op < 0.05:
                raw = [[rng.randint(900, 1100) / 2, rng.randint(0, 50)] for _ in range(rng.randint(0, 30))]
                book = apply_snapshot(book, side, raw)
            else:
                price = rng.randint(900, 1100) / 2
                size = 0 if op < 0.35 else rng.randint(1, 1000)
                book = apply_delta(book, side, price, size)
            assert_invariants(book)

    def test_removing_absent_price_never_changes_book(self):
        rng = random.Random(7)
        book = apply_snapshot(EMPTY_BOOK, BIDS, [[i, 1] for i in range(1, 13)])
        for _ in range(50):
            price = rng.randint(100, 200)
            assert apply_delta(book, BIDS, price, 0) is book


class TestParsing:
    def test_float_goes_through_shortest_repr(self):
        assert to_decimal(0.1, "size") == D("0.1")

    def test_numeric_strings_accepted(self):
        assert parse_level(["39500.5", "12"]) == (D("39500.5"), D(12))

    def test_zero_size_is_valid_delta(self):
        assert parse_level([1, 0]) == (D(1), D(0))

    @pytest.mark.parametrize("level", [[1], [1, 2, 3], {"price": 1}, None, "1,2"])
    def test_wrong_shape(self, level):
        with pytest.raises(InvalidLevel):
            parse_level(level)


class TestBookDerivedValues:
    def test_spread_and_max_total(self):
        book = apply_snapshot(EMPTY_BOOK, BIDS, [[100, 5], [99, 3]])
        book = apply_snapshot(book, ASKS, [[102, 1], [103, 20]])
        assert book.best_bid == 100
        assert book.best_ask == 102
        assert book.spread == 2
        assert book.spread_pct == D(2) / D(102) * 100
        assert book.max_total == 21

    def test_empty_book(self):
        assert EMPTY_BOOK.spread is None
        assert EMPTY_BOOK.spread_pct is None
        assert EMPTY_BOOK.max_total == 0


class TestOrderBook:
    def test_updates_ignored_until_snapshot(self):
        ob = OrderBook("PI_XBTUSD")
        update = DataMessage(UPDATE, "book_ui_1", [[100, 1]], [])
        assert ob.apply_update(update) is False
        assert ob.book == EMPTY_BOOK

        ob.load_snapshot(DataMessage(SNAPSHOT, "book_ui_1", [[99, 1]], [[101, 1]]))
        assert ob.awaiting_snapshot is False
        assert ob.apply_update(update) is True
        assert prices(ob.book, BIDS) == [100, 99]

    def test_snapshot_discards_previous_state(self):
        ob = OrderBook("PI_XBTUSD")
        ob.load_snapshot(DataMessage(SNAPSHOT, "book_ui_1", [[99, 1], [98, 1]], [[101, 1]]))
        ob.load_snapshot(DataMessage(SNAPSHOT, "book_ui_1", [[50, 2]], []))
        assert prices(ob.book, BIDS) == [50]
        assert ob.book.asks == ()

    def test_reset_switches_instrument_and_waits_for_snapshot(self):
        ob = OrderBook("PI_XBTUSD")
        ob.load_snapshot(DataMessage(SNAPSHOT, "book_ui_1", [[99, 1]], [[101, 1]]))
        ob.reset("PI_ETHUSD")
        assert ob.instrument == "PI_ETHUSD"
        assert ob.book == EMPTY_BOOK
        assert ob.awaiting_snapshot is True

    def test_perf_counters(self):
        ob = OrderBook("PI_XBTUSD")
        ob.load_snapshot(DataMessage(SNAPSHOT, "book_ui_1", [[99, 1]], [[101, 1]]))
        assert ob.get_updates_per_sec() >= 0.0
        ob.reset_perf_counters()
        assert ob.get_updates_per_sec() == 0.0
