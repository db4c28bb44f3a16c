"""
OrderBookStore 单元测试
"""

import logging
import threading

import pytest

from orderbook_relay.market.order_book_store import OrderBookStore


class TestReplace:
    """快照替换测试"""

    def test_initially_empty(self, store):
        assert store.current() is None
        assert store.next_sequence() == 1
        assert store.age() is None

    def test_first_replace_returns_none(self, store, snapshot_factory):
        snapshot = snapshot_factory(sequence=1)
        assert store.replace(snapshot) is None
        assert store.current() is snapshot

    def test_replace_returns_previous(self, store, snapshot_factory):
        first = snapshot_factory(sequence=1)
        second = snapshot_factory(sequence=2)
        store.replace(first)
        assert store.replace(second) is first
        assert store.current() is second
        assert store.next_sequence() == 3

    def test_sequence_must_increase(self, store, snapshot_factory):
        store.replace(snapshot_factory(sequence=5))
        with pytest.raises(ValueError):
            store.replace(snapshot_factory(sequence=5))
        assert store.current().sequence == 5

    def test_symbol_mismatch(self, store, snapshot_factory):
        with pytest.raises(ValueError):
            store.replace(snapshot_factory(symbol="ETH/USDT"))

    def test_empty_sides_are_installed(self, store, snapshot_factory):
        snapshot = snapshot_factory(bids=[], asks=[])
        store.replace(snapshot)
        assert store.current() is snapshot

    def test_crossed_book_installed_with_warning(self, store, snapshot_factory, caplog):
        crossed = snapshot_factory(bids=[[101, 1]], asks=[[100, 1]])
        with caplog.at_level(logging.WARNING):
            store.replace(crossed)
        assert store.current() is crossed
        assert store.get_stats()['crossed'] == 1
        assert any("交叉" in record.getMessage() for record in caplog.records)

    def test_age(self, store, snapshot_factory):
        store.replace(snapshot_factory(observed_at=1000.0))
        assert store.age(now=1002.5) == pytest.approx(2.5)
        # 时钟回拨不会得到负数
        assert store.age(now=999.0) == 0.0


class TestConcurrentReaders:
    """并发读写：读者只会看到完整的快照"""

    def test_readers_never_see_mixed_snapshot(self, snapshot_factory):
        store = OrderBookStore("BTC/USDT")
        store.replace(snapshot_factory(bids=[[1, 1]], asks=[[2, 1]], sequence=1))
        errors = []
        stop = threading.Event()

        def writer():
            for seq in range(2, 500):
                # 每个快照的买卖盘数量都等于 sequence，读者据此校验一致性
                store.replace(snapshot_factory(bids=[[1, seq]], asks=[[2, seq]], sequence=seq))
            stop.set()

        def reader():
            while not stop.is_set():
                snapshot = store.current()
                bid_qty = snapshot.bids.best().quantity
                ask_qty = snapshot.asks.best().quantity
                if bid_qty != ask_qty:
                    errors.append((bid_qty, ask_qty))

        readers = [threading.Thread(target=reader) for _ in range(4)]
        for t in readers:
            t.start()
        writer_thread = threading.Thread(target=writer)
        writer_thread.start()
        writer_thread.join()
        for t in readers:
            t.join()

        assert errors == []
        assert store.current().sequence == 499
