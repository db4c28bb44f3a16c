"""
模拟行情客户端

离线运行 / 本地联调使用：围绕一个随机游走的中间价生成深度数据，
并可按概率注入失败，用于演练重试和降级逻辑。
"""

import logging
import random
import time
from typing import Any, Dict, Optional

from orderbook_relay.exceptions import FeedError


class MockRESTClient:
    """与 RESTClient 接口一致的模拟客户端"""

    def __init__(self, mid_price: float = 50000.0, tick_size: float = 0.5,
                 failure_rate: float = 0.0, seed: Optional[int] = None):
        self.logger = logging.getLogger(__name__)
        self.mid_price = mid_price
        self.tick_size = tick_size
        self.failure_rate = failure_rate
        self._random = random.Random(seed)
        self.logger.info(f"MockRESTClient initialized: mid={mid_price}, failure_rate={failure_rate}")

    def fetch_order_book(self, symbol: str, depth: int = 50) -> Dict[str, Any]:
        if self.failure_rate and self._random.random() < self.failure_rate:
            raise FeedError(f"simulated feed failure for {symbol}")

        # 中间价随机游走，按 tick 对齐
        self.mid_price += self._random.choice((-1, 0, 1)) * self.tick_size
        best_bid = round(self.mid_price - self.tick_size, 8)
        best_ask = round(self.mid_price + self.tick_size, 8)

        bids = [
            [round(best_bid - i * self.tick_size, 8), round(self._random.uniform(0.01, 5.0), 4)]
            for i in range(depth)
        ]
        asks = [
            [round(best_ask + i * self.tick_size, 8), round(self._random.uniform(0.01, 5.0), 4)]
            for i in range(depth)
        ]
        return {
            'bids': bids,
            'asks': asks,
            'timestamp': int(time.time() * 1000),
        }
