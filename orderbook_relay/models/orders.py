"""
市价单模拟的请求 / 结果模型
"""

from dataclasses import dataclass
from decimal import Decimal, InvalidOperation
from enum import Enum
from typing import Any, Dict, Optional


class OrderSide(str, Enum):
    BUY = "buy"
    SELL = "sell"


class FillStatus(str, Enum):
    FILLED = "filled"
    PARTIAL = "partial"
    UNAVAILABLE = "unavailable"


@dataclass(frozen=True)
class MarketOrderRequest:
    side: OrderSide
    amount: Decimal

    def __post_init__(self):
        try:
            side = OrderSide(self.side)
        except ValueError:
            raise ValueError(f"side must be 'buy' or 'sell', got {self.side!r}") from None
        object.__setattr__(self, "side", side)
        try:
            amount = self.amount if isinstance(self.amount, Decimal) else Decimal(str(self.amount))
        except InvalidOperation:
            raise ValueError(f"amount must be a positive number, got {self.amount!r}") from None
        if isinstance(self.amount, bool) or not amount.is_finite() or amount <= 0:
            raise ValueError(f"amount must be a positive number, got {self.amount!r}")
        object.__setattr__(self, "amount", amount)


@dataclass(frozen=True)
class MarketOrderResult:
    """模拟结果（按请求计算，不持久化）"""
    filled: Decimal
    avg_price: Optional[Decimal]
    slippage_pct: Optional[Decimal]
    status: FillStatus
    best_price: Optional[Decimal] = None
    levels_consumed: int = 0
    sequence: Optional[int] = None

    def to_dict(self) -> Dict[str, Any]:
        def _num(value: Optional[Decimal]) -> Optional[float]:
            return float(value) if value is not None else None

        return {
            "filled": float(self.filled),
            "avg_price": _num(self.avg_price),
            "slippage_pct": _num(self.slippage_pct),
            "status": self.status.value,
            "best_price": _num(self.best_price),
            "levels_consumed": self.levels_consumed,
            "sequence": self.sequence,
        }
