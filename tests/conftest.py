"""
Pytest Configuration and Fixtures for Order Book Relay Test Suite
"""
import pytest
from unittest.mock import Mock

from orderbook_relay.config.config_loader import RelayConfig
from orderbook_relay.market.order_book_store import OrderBookStore
from orderbook_relay.models.book import LevelSet, OrderBookSnapshot, Side

SYMBOL = "BTC/USDT"


@pytest.fixture
def symbol():
    return SYMBOL


@pytest.fixture
def snapshot_factory():
    """构造快照：snapshot_factory(bids=[[p, q]], asks=[[p, q]], sequence=1)"""

    def _make(bids=None, asks=None, sequence=1, observed_at=1700000000.0, symbol=SYMBOL):
        return OrderBookSnapshot(
            symbol=symbol,
            bids=LevelSet.from_pairs(Side.BID, bids or []),
            asks=LevelSet.from_pairs(Side.ASK, asks or []),
            sequence=sequence,
            observed_at=observed_at,
        )

    return _make


@pytest.fixture
def store():
    return OrderBookStore(SYMBOL)


@pytest.fixture
def connector():
    """Mock 行情客户端，默认返回一个简单的双边订单簿"""
    client = Mock()
    client.fetch_order_book = Mock(return_value={
        'bids': [[99.0, 1.0], [98.0, 2.0]],
        'asks': [[100.0, 1.0], [101.0, 2.0], [102.0, 5.0]],
        'timestamp': 1700000000000,
    })
    return client


@pytest.fixture
def relay_config():
    return RelayConfig(**{
        "feed": {"symbol": SYMBOL, "fetch_depth": 20},
        "poller": {"interval_seconds": 2.0, "max_attempts": 3, "retry_delay_seconds": 0},
        "book": {"top_k": 10},
        "broadcast": {"max_subscribers": 3, "send_timeout_seconds": 1.0},
    })


class RecordingSubscriber:
    """记录收到的消息；fail=True 时发送抛出异常，模拟断开的连接"""

    def __init__(self, fail=False):
        self.fail = fail
        self.messages = []

    async def send(self, message):
        if self.fail:
            raise ConnectionError("broken pipe")
        self.messages.append(message)


@pytest.fixture
def subscriber_factory():
    return RecordingSubscriber
