"""
订单簿数据模型单元测试
"""

import pytest
from decimal import Decimal

from orderbook_relay.exceptions import MalformedBookError
from orderbook_relay.models.book import Delta, LevelSet, PriceLevel, Side, to_decimal


def prices(level_set):
    return [level.price for level in level_set]


class TestToDecimal:
    """数值转换测试"""

    def test_float_goes_through_str(self):
        assert to_decimal(0.1) == Decimal("0.1")

    def test_string_and_int(self):
        assert to_decimal("101.5") == Decimal("101.5")
        assert to_decimal(7) == Decimal(7)

    @pytest.mark.parametrize("value", ["abc", None, float("nan"), float("inf"), "NaN", True])
    def test_invalid_values_raise(self, value):
        with pytest.raises(MalformedBookError):
            to_decimal(value)


class TestLevelSetOrdering:
    """LevelSet 排序规则测试"""

    def test_asks_strictly_ascending(self):
        asks = LevelSet.from_pairs(Side.ASK, [[102, 5], [100, 1], [101, 2]])
        assert prices(asks) == [Decimal(100), Decimal(101), Decimal(102)]

    def test_bids_strictly_descending(self):
        bids = LevelSet.from_pairs(Side.BID, [[98, 2], [99.5, 1], [97, 3]])
        assert prices(bids) == [Decimal("99.5"), Decimal(98), Decimal(97)]

    def test_duplicate_price_last_wins(self):
        asks = LevelSet.from_pairs(Side.ASK, [[100, 1], [101, 2], [100, 3]])
        assert len(asks) == 2
        assert asks.get(Decimal(100)) == Decimal(3)

    def test_zero_quantity_levels_dropped(self):
        bids = LevelSet.from_pairs(Side.BID, [[99, 0], [98, 1]])
        assert prices(bids) == [Decimal(98)]
        assert Decimal(99) not in bids

    def test_extra_fields_ignored(self):
        """OKX 档位带有订单数等额外字段"""
        asks = LevelSet.from_pairs(Side.ASK, [["100", "1.5", "0", "3"]])
        assert list(asks) == [PriceLevel(Decimal(100), Decimal("1.5"))]


class TestLevelSetValidation:
    """非法档位测试"""

    def test_negative_quantity_rejected(self):
        with pytest.raises(MalformedBookError):
            LevelSet.from_pairs(Side.ASK, [[100, -1]])

    def test_non_positive_price_rejected(self):
        with pytest.raises(MalformedBookError):
            LevelSet.from_pairs(Side.BID, [[0, 1]])

    def test_short_entry_rejected(self):
        with pytest.raises(MalformedBookError):
            LevelSet.from_pairs(Side.BID, [[100]])

    def test_none_is_empty(self):
        level_set = LevelSet.from_pairs(Side.BID, None)
        assert len(level_set) == 0
        assert not level_set
        assert level_set.best() is None


class TestLevelSetQueries:
    """best / top 查询测试"""

    def test_best_bid_is_highest(self):
        bids = LevelSet.from_pairs(Side.BID, [[98, 2], [99, 1]])
        assert bids.best() == PriceLevel(Decimal(99), Decimal(1))

    def test_best_ask_is_lowest(self):
        asks = LevelSet.from_pairs(Side.ASK, [[101, 2], [100, 1]])
        assert asks.best() == PriceLevel(Decimal(100), Decimal(1))

    def test_top_k_asks(self):
        asks = LevelSet.from_pairs(Side.ASK, [[p, 1] for p in range(100, 120)])
        assert [lvl.price for lvl in asks.top(3)] == [Decimal(100), Decimal(101), Decimal(102)]

    def test_top_k_bids(self):
        bids = LevelSet.from_pairs(Side.BID, [[p, 1] for p in range(80, 100)])
        assert [lvl.price for lvl in bids.top(3)] == [Decimal(99), Decimal(98), Decimal(97)]

    def test_top_k_larger_than_book(self):
        bids = LevelSet.from_pairs(Side.BID, [[99, 1], [98, 1]])
        assert len(bids.top(10)) == 2

    def test_top_zero(self):
        bids = LevelSet.from_pairs(Side.BID, [[99, 1]])
        assert bids.top(0) == ()

    def test_to_pairs(self):
        asks = LevelSet.from_pairs(Side.ASK, [[101, 2], [100, 1.5]])
        assert asks.to_pairs() == [[100.0, 1.5], [101.0, 2.0]]
        assert asks.to_pairs(1) == [[100.0, 1.5]]


class TestOrderBookSnapshot:
    """快照测试"""

    def test_not_crossed(self, snapshot_factory):
        snapshot = snapshot_factory(bids=[[99, 1]], asks=[[100, 1]])
        assert snapshot.is_crossed is False

    def test_crossed(self, snapshot_factory):
        snapshot = snapshot_factory(bids=[[100, 1]], asks=[[100, 1]])
        assert snapshot.is_crossed is True

    def test_one_side_empty_is_not_crossed(self, snapshot_factory):
        snapshot = snapshot_factory(bids=[[100, 1]], asks=[])
        assert snapshot.is_crossed is False

    def test_sides_must_match(self):
        from orderbook_relay.models.book import OrderBookSnapshot
        with pytest.raises(ValueError):
            OrderBookSnapshot(
                symbol="BTC/USDT",
                bids=LevelSet.from_pairs(Side.ASK, []),
                asks=LevelSet.from_pairs(Side.ASK, []),
                sequence=1,
                observed_at=0.0,
            )

    def test_to_depth(self, snapshot_factory):
        snapshot = snapshot_factory(
            bids=[[99, 1], [98, 2]], asks=[[100, 1], [101, 2]], sequence=7
        )
        depth = snapshot.to_depth(1)
        assert depth["sequence"] == 7
        assert depth["bids"] == [[99.0, 1.0]]
        assert depth["asks"] == [[100.0, 1.0]]


class TestDeltaMessage:
    """Delta 序列化测试"""

    def test_to_message_and_back(self):
        delta = Delta(
            symbol="BTC/USDT",
            sequence=3,
            bids=((Decimal("99.5"), Decimal("1.25")),),
            asks=((Decimal(101), Decimal(0)),),
        )
        message = delta.to_message()
        assert message == {
            "type": "delta",
            "symbol": "BTC/USDT",
            "sequence": 3,
            "bids": [[99.5, 1.25]],
            "asks": [[101.0, 0.0]],
        }
        assert Delta.from_message(message) == delta

    def test_reset_delta_is_snapshot_message(self):
        delta = Delta(symbol="BTC/USDT", sequence=4, asks=((Decimal(100), Decimal(1)),), reset=True)
        message = delta.to_message()
        assert message["type"] == "snapshot"
        assert Delta.from_message(message) == delta

    def test_from_message_missing_fields(self):
        with pytest.raises(MalformedBookError):
            Delta.from_message({"bids": []})

    def test_is_empty(self):
        assert Delta(symbol="BTC/USDT", sequence=1).is_empty
