"""
DeltaComputer - 快照差分

只比较两个快照各自的 Top-K 窗口：
- 当前窗口中新出现或数量变化的价位 -> (price, qty)
- 旧窗口中存在、当前窗口中消失的价位 -> (price, 0)

窗口外的变化如果不影响窗口，不产生任何条目；
仅排名变化而数量未变的价位也不产生条目。
"""

import logging
from dataclasses import replace
from decimal import Decimal
from typing import Any, Dict, List, Optional, Tuple

from orderbook_relay.models.book import Delta, LevelSet, OrderBookSnapshot

logger = logging.getLogger(__name__)

REMOVED = Decimal(0)


class DeltaComputer:
    """Top-K 快照差分计算器"""

    def __init__(self, top_k: int = 10):
        if top_k <= 0:
            raise ValueError(f"top_k must be positive, got {top_k}")
        self.top_k = top_k

    def diff(self, previous: Optional[OrderBookSnapshot], current: OrderBookSnapshot) -> Delta:
        """
        计算 previous -> current 的变更集

        previous 为 None（启动后首个 tick）时，返回 current 的完整 Top-K。
        """
        bids = self._diff_side(
            previous.bids if previous is not None else None, current.bids
        )
        asks = self._diff_side(
            previous.asks if previous is not None else None, current.asks
        )
        delta = Delta(symbol=current.symbol, sequence=current.sequence, bids=bids, asks=asks)

        if logger.isEnabledFor(logging.DEBUG):
            logger.debug(
                f"Delta seq={current.sequence}: bids={len(bids)} asks={len(asks)} "
                f"(prev_seq={previous.sequence if previous else None})"
            )
        return delta

    def _diff_side(
        self, previous: Optional[LevelSet], current: LevelSet
    ) -> Tuple[Tuple[Decimal, Decimal], ...]:
        before: Dict[Decimal, Decimal] = {}
        if previous is not None:
            before = {level.price: level.quantity for level in previous.top(self.top_k)}

        window = current.top(self.top_k)
        in_window = {level.price for level in window}

        changes: List[Tuple[Decimal, Decimal]] = [
            (level.price, level.quantity)
            for level in window
            if before.get(level.price) != level.quantity
        ]
        # 旧窗口按本方向有序，删除条目保持同样顺序
        changes.extend((price, REMOVED) for price in before if price not in in_window)
        return tuple(changes)

    def full(self, snapshot: OrderBookSnapshot) -> Delta:
        """完整 Top-K 视图（reset=True），接收方据此整体替换本地订单簿"""
        return replace(self.diff(None, snapshot), reset=True)

    def snapshot_view(self, snapshot: OrderBookSnapshot) -> Dict[str, Any]:
        """新订阅者的初始消息"""
        message = self.full(snapshot).to_message()
        message["timestamp"] = snapshot.observed_at
        return message
