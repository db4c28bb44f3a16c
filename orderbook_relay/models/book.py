"""
订单簿数据模型

- PriceLevel: 单个价格档位（不可变）
- LevelSet: 单边价格档位集合，按价格有序（买盘降序，卖盘升序）
- OrderBookSnapshot: 某一时刻完整的双边订单簿（不可变）
- Delta: 两个快照 Top-K 视图之间的最小变更集

排序规则是容器的遍历策略：底层 SortedDict 始终按价格升序保存，
卖盘正向遍历，买盘反向遍历，不对价格做任何数值编码。
"""

import math
from dataclasses import dataclass, field
from decimal import Decimal, InvalidOperation
from enum import Enum
from typing import Any, Dict, Iterable, Iterator, List, Optional, Sequence, Tuple

from sortedcontainers import SortedDict

from orderbook_relay.exceptions import MalformedBookError


class Side(str, Enum):
    """订单簿方向"""
    BID = "bid"
    ASK = "ask"


def to_decimal(value: Any) -> Decimal:
    """
    将行情源数值转换为 Decimal

    ccxt 返回 float，先转成 str 再构造 Decimal，避免二进制浮点误差。

    Raises:
        MalformedBookError: 无法解析或不是有限数值
    """
    if isinstance(value, bool):
        raise MalformedBookError(f"invalid numeric value: {value!r}")
    if isinstance(value, Decimal):
        result = value
    else:
        try:
            if isinstance(value, float) and not math.isfinite(value):
                raise MalformedBookError(f"non-finite numeric value: {value!r}")
            result = Decimal(str(value))
        except (InvalidOperation, TypeError, ValueError) as e:
            raise MalformedBookError(f"invalid numeric value: {value!r}") from e
    if not result.is_finite():
        raise MalformedBookError(f"non-finite numeric value: {value!r}")
    return result


@dataclass(frozen=True)
class PriceLevel:
    """价格档位（数量恒大于 0）"""
    price: Decimal
    quantity: Decimal

    def as_pair(self) -> List[float]:
        return [float(self.price), float(self.quantity)]


class LevelSet:
    """
    单边价格档位集合

    构造后只读：不暴露任何修改接口。同一价格重复出现时后者覆盖前者，
    数量为 0 的档位在构造时直接丢弃。

    Example:
        >>> asks = LevelSet.from_pairs(Side.ASK, [[101, 2], [100, 1]])
        >>> [str(level.price) for level in asks]
        ['100', '101']
    """

    __slots__ = ("_side", "_levels")

    def __init__(self, side: Side, levels: Optional[Dict[Decimal, Decimal]] = None):
        self._side = Side(side)
        self._levels = SortedDict()
        for price, quantity in (levels or {}).items():
            if price <= 0:
                raise MalformedBookError(f"{self._side.value} price must be positive: {price}")
            if quantity < 0:
                raise MalformedBookError(f"{self._side.value} quantity must not be negative: {quantity}")
            if quantity == 0:
                continue
            self._levels[price] = quantity

    @classmethod
    def from_pairs(cls, side: Side, pairs: Optional[Iterable[Sequence[Any]]]) -> "LevelSet":
        """
        从 [[price, qty], ...] 构造（顺序任意）

        行情源的档位可能附带额外字段（例如 OKX 的订单数），只取前两个。
        """
        levels: Dict[Decimal, Decimal] = {}
        for entry in pairs or []:
            if not isinstance(entry, (list, tuple)) or len(entry) < 2:
                raise MalformedBookError(f"invalid {Side(side).value} level: {entry!r}")
            levels[to_decimal(entry[0])] = to_decimal(entry[1])
        return cls(side, levels)

    @property
    def side(self) -> Side:
        return self._side

    @property
    def descending(self) -> bool:
        return self._side is Side.BID

    def __len__(self) -> int:
        return len(self._levels)

    def __bool__(self) -> bool:
        return bool(self._levels)

    def __iter__(self) -> Iterator[PriceLevel]:
        items = self._levels.items()
        ordered = reversed(items) if self.descending else iter(items)
        for price, quantity in ordered:
            yield PriceLevel(price, quantity)

    def __contains__(self, price: Decimal) -> bool:
        return price in self._levels

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, LevelSet):
            return NotImplemented
        return self._side is other._side and self._levels == other._levels

    def __repr__(self) -> str:
        return f"LevelSet({self._side.value}, {len(self)} levels)"

    def get(self, price: Decimal) -> Optional[Decimal]:
        """按价格查数量，不存在返回 None"""
        return self._levels.get(price)

    def best(self) -> Optional[PriceLevel]:
        """最优档位（买盘最高价 / 卖盘最低价）"""
        if not self._levels:
            return None
        index = -1 if self.descending else 0
        price, quantity = self._levels.peekitem(index)
        return PriceLevel(price, quantity)

    def top(self, k: int) -> Tuple[PriceLevel, ...]:
        """按本方向排序的前 k 档"""
        if k <= 0:
            return ()
        items = self._levels.items()
        if self.descending:
            window = reversed(items[-k:])
        else:
            window = items[:k]
        return tuple(PriceLevel(price, quantity) for price, quantity in window)

    def to_pairs(self, k: Optional[int] = None) -> List[List[float]]:
        levels = self if k is None else self.top(k)
        return [level.as_pair() for level in levels]


@dataclass(frozen=True)
class OrderBookSnapshot:
    """订单簿快照（不可变，发布后任何消费者都不得修改）"""
    symbol: str
    bids: LevelSet
    asks: LevelSet
    sequence: int
    observed_at: float

    def __post_init__(self):
        if self.bids.side is not Side.BID:
            raise ValueError("bids must be a bid-side LevelSet")
        if self.asks.side is not Side.ASK:
            raise ValueError("asks must be an ask-side LevelSet")

    @property
    def best_bid(self) -> Optional[PriceLevel]:
        return self.bids.best()

    @property
    def best_ask(self) -> Optional[PriceLevel]:
        return self.asks.best()

    @property
    def is_crossed(self) -> bool:
        """双边都非空且最优买价 >= 最优卖价"""
        bid, ask = self.best_bid, self.best_ask
        return bid is not None and ask is not None and bid.price >= ask.price

    def side(self, side: Side) -> LevelSet:
        return self.bids if Side(side) is Side.BID else self.asks

    def to_depth(self, k: int) -> Dict[str, Any]:
        """Top-K 深度视图（对外接口格式）"""
        return {
            "symbol": self.symbol,
            "sequence": self.sequence,
            "timestamp": self.observed_at,
            "bids": self.bids.to_pairs(k),
            "asks": self.asks.to_pairs(k),
        }


@dataclass(frozen=True)
class Delta:
    """
    快照间的变更集

    每个条目为 (price, quantity)，quantity 为 0 表示删除该价位。
    reset=True 时条目是完整的 Top-K 视图，接收方应整体替换本地订单簿
    （初始视图和发布失败后的重新同步）。
    """
    symbol: str
    sequence: int
    bids: Tuple[Tuple[Decimal, Decimal], ...] = field(default_factory=tuple)
    asks: Tuple[Tuple[Decimal, Decimal], ...] = field(default_factory=tuple)
    reset: bool = False

    @property
    def is_empty(self) -> bool:
        return not self.bids and not self.asks

    @property
    def message_type(self) -> str:
        return "snapshot" if self.reset else "delta"

    def to_message(self) -> Dict[str, Any]:
        return {
            "type": self.message_type,
            "symbol": self.symbol,
            "sequence": self.sequence,
            "bids": [[float(p), float(q)] for p, q in self.bids],
            "asks": [[float(p), float(q)] for p, q in self.asks],
        }

    @classmethod
    def from_message(cls, message: Dict[str, Any]) -> "Delta":
        """从通道消息还原 Delta（Redis 通道接收端使用）"""
        try:
            return cls(
                symbol=str(message["symbol"]),
                sequence=int(message["sequence"]),
                bids=tuple((to_decimal(p), to_decimal(q)) for p, q in message.get("bids", [])),
                asks=tuple((to_decimal(p), to_decimal(q)) for p, q in message.get("asks", [])),
                reset=message.get("type") == "snapshot",
            )
        except (KeyError, TypeError, ValueError, AttributeError) as e:
            raise MalformedBookError(f"invalid delta message: {e}") from e
