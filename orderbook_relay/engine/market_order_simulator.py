"""
MarketOrderSimulator - 市价单模拟

对当前快照做只读遍历，计算成交数量、成交均价、滑点和成交状态。
每次调用只在开始时读取一次快照，遍历过程中即使有新的轮询完成，
结果也不会改变。
"""

import logging
from decimal import Decimal
from typing import Optional

from orderbook_relay.market.order_book_store import OrderBookStore
from orderbook_relay.models.book import LevelSet, OrderBookSnapshot
from orderbook_relay.models.orders import (
    FillStatus,
    MarketOrderRequest,
    MarketOrderResult,
    OrderSide,
)

logger = logging.getLogger(__name__)

DEFAULT_FILL_TOLERANCE = Decimal("1e-12")
HUNDRED = Decimal(100)


class MarketOrderSimulator:
    """
    市价单模拟器

    Example:
        >>> simulator = MarketOrderSimulator(store)
        >>> result = simulator.simulate(MarketOrderRequest(OrderSide.BUY, Decimal("2.5")))
        >>> result.status
        <FillStatus.FILLED: 'filled'>
    """

    def __init__(self, store: OrderBookStore, fill_tolerance: Decimal = DEFAULT_FILL_TOLERANCE):
        self.store = store
        self.fill_tolerance = Decimal(fill_tolerance)

    def simulate(self, request: MarketOrderRequest) -> MarketOrderResult:
        snapshot = self.store.current()
        result = self.simulate_against(snapshot, request)
        logger.debug(
            f"模拟市价单: side={request.side.value} amount={request.amount} -> "
            f"filled={result.filled} status={result.status.value} seq={result.sequence}"
        )
        return result

    def simulate_against(
        self, snapshot: Optional[OrderBookSnapshot], request: MarketOrderRequest
    ) -> MarketOrderResult:
        """在给定快照上模拟；snapshot 为 None 视为对手盘为空"""
        sequence = snapshot.sequence if snapshot is not None else None
        if snapshot is None:
            return MarketOrderResult(
                filled=Decimal(0), avg_price=None, slippage_pct=None,
                status=FillStatus.UNAVAILABLE, sequence=sequence,
            )

        # 买单吃卖盘（升序），卖单吃买盘（降序），即对手盘的自然顺序
        levels: LevelSet = snapshot.asks if request.side is OrderSide.BUY else snapshot.bids

        remaining = request.amount
        filled = Decimal(0)
        notional = Decimal(0)
        best_price: Optional[Decimal] = None
        consumed_levels = 0

        for level in levels:
            if remaining <= 0:
                break
            if best_price is None:
                best_price = level.price
            consumed = min(remaining, level.quantity)
            filled += consumed
            notional += consumed * level.price
            remaining -= consumed
            consumed_levels += 1

        if filled == 0:
            return MarketOrderResult(
                filled=filled, avg_price=None, slippage_pct=None,
                status=FillStatus.UNAVAILABLE, sequence=sequence,
            )

        avg_price = notional / filled
        if request.side is OrderSide.BUY:
            slippage_pct = (avg_price - best_price) / best_price * HUNDRED
        else:
            slippage_pct = (best_price - avg_price) / best_price * HUNDRED

        if request.amount - filled <= self.fill_tolerance:
            status = FillStatus.FILLED
        else:
            status = FillStatus.PARTIAL

        return MarketOrderResult(
            filled=filled,
            avg_price=avg_price,
            slippage_pct=slippage_pct,
            status=status,
            best_price=best_price,
            levels_consumed=consumed_levels,
            sequence=sequence,
        )
