"""
行情源 REST 客户端

对外只提供一个能力：fetch_order_book(symbol, depth)，
返回 {'bids': [[price, qty], ...], 'asks': [[price, qty], ...], 'timestamp': ms}。
所有失败统一包装为 FeedError（可重试）。
"""

import logging
from typing import Any, Dict, Optional

import ccxt

from orderbook_relay.exceptions import FeedError, MalformedBookError


class RESTClient:
    """基于 ccxt 的公共行情客户端（只读取公开深度数据，不需要 API 密钥）"""

    def __init__(self, exchange_id: str = "okx", use_demo: bool = False,
                 timeout_ms: int = 10000, exchange: Optional[Any] = None):
        self.logger = logging.getLogger(__name__)
        self.exchange_id = exchange_id
        self.use_demo = use_demo

        if exchange is not None:
            self.exchange = exchange
            self.logger.info(f"RESTClient initialized with injected exchange ({exchange_id})")
            return

        exchange_class = getattr(ccxt, exchange_id, None)
        if exchange_class is None:
            raise ValueError(f"Unsupported exchange: {exchange_id}")

        exchange_config: Dict[str, Any] = {
            'enableRateLimit': True,
            'timeout': timeout_ms,
        }
        # OKX 模拟盘需要带上这个 Header
        if use_demo and exchange_id == "okx":
            exchange_config['headers'] = {'x-simulated-trading': '1'}

        self.exchange = exchange_class(exchange_config)
        if use_demo:
            self.exchange.set_sandbox_mode(True)
            self.logger.info(f"RESTClient initialized for {exchange_id} (demo environment)")
        else:
            self.logger.info(f"RESTClient initialized for {exchange_id} (production environment)")

    def fetch_order_book(self, symbol: str, depth: int = 50) -> Dict[str, Any]:
        """
        获取深度快照

        Raises:
            FeedError: 网络 / 交易所错误
            MalformedBookError: 返回结构不符合预期
        """
        try:
            book = self.exchange.fetch_order_book(symbol, limit=depth)
        except ccxt.BaseError as e:
            self.logger.warning(f"Failed to fetch orderbook for {symbol}: {e}")
            raise FeedError(f"{self.exchange_id} fetch_order_book failed: {e}") from e

        if not isinstance(book, dict):
            raise MalformedBookError(f"unexpected orderbook payload type: {type(book).__name__}")

        bids = book.get('bids')
        asks = book.get('asks')
        if not isinstance(bids, list) or not isinstance(asks, list):
            raise MalformedBookError(f"orderbook payload missing bids/asks for {symbol}")

        return {
            'bids': bids,
            'asks': asks,
            'timestamp': book.get('timestamp'),
        }
