"""
OrderBookStore - 当前订单簿快照的唯一数据源

职责：
- 持有当前不可变快照（OrderBookSnapshot）
- replace(): 原子替换快照，返回旧快照供差分计算
- current(): 无锁读取，调用方在整个查询过程中持有同一个快照

设计原则：
- 快照发布后不可变，读者永远看不到"新买盘 + 旧卖盘"的混合状态
- 替换只是一次引用赋值；锁只保护写者的"比较-交换"，读者从不加锁
"""

import logging
import threading
import time
from typing import Any, Dict, Optional

from orderbook_relay.models.book import OrderBookSnapshot

logger = logging.getLogger(__name__)


class OrderBookStore:
    """
    订单簿快照存储

    Example:
        >>> store = OrderBookStore("BTC/USDT")
        >>> store.current() is None
        True
    """

    def __init__(self, symbol: str):
        self.symbol = symbol
        self._current: Optional[OrderBookSnapshot] = None
        self._write_lock = threading.Lock()
        self._stats = {
            'replacements': 0,
            'crossed': 0,
        }
        logger.info(f"📊 OrderBookStore 初始化完成: {symbol}")

    def current(self) -> Optional[OrderBookSnapshot]:
        """获取当前快照（只读，不加锁；引用读取是原子操作）"""
        return self._current

    def next_sequence(self) -> int:
        """下一个快照应使用的序列号"""
        snapshot = self._current
        return snapshot.sequence + 1 if snapshot is not None else 1

    def replace(self, snapshot: OrderBookSnapshot) -> Optional[OrderBookSnapshot]:
        """
        原子安装新快照

        Args:
            snapshot: 新快照，sequence 必须大于当前快照

        Returns:
            被替换的旧快照；首次安装返回 None

        Raises:
            ValueError: symbol 不匹配或 sequence 未递增
        """
        if snapshot.symbol != self.symbol:
            raise ValueError(f"snapshot symbol {snapshot.symbol} does not match store symbol {self.symbol}")

        with self._write_lock:
            previous = self._current
            if previous is not None and snapshot.sequence <= previous.sequence:
                raise ValueError(
                    f"snapshot sequence must increase: {snapshot.sequence} <= {previous.sequence}"
                )
            self._current = snapshot
            self._stats['replacements'] += 1

        if snapshot.is_crossed:
            self._stats['crossed'] += 1
            logger.warning(
                f"⚠️ [数据质量] 订单簿交叉: {self.symbol} seq={snapshot.sequence} "
                f"best_bid={snapshot.best_bid.price} >= best_ask={snapshot.best_ask.price}"
            )

        logger.debug(
            f"📊 [OrderBookStore] 快照已替换: {self.symbol} seq={snapshot.sequence}, "
            f"bids={len(snapshot.bids)}, asks={len(snapshot.asks)}"
        )
        return previous

    def age(self, now: Optional[float] = None) -> Optional[float]:
        """当前快照距今的秒数；尚无快照返回 None"""
        snapshot = self._current
        if snapshot is None:
            return None
        now = time.time() if now is None else now
        return max(0.0, now - snapshot.observed_at)

    def get_stats(self) -> Dict[str, Any]:
        snapshot = self._current
        return {
            'symbol': self.symbol,
            'sequence': snapshot.sequence if snapshot else None,
            'replacements': self._stats['replacements'],
            'crossed': self._stats['crossed'],
        }
