"""
FeedPoller - 定时拉取深度快照

职责：
- 按固定间隔（默认 2 秒）调用行情客户端获取深度
- 单个 tick 内失败重试（默认最多 3 次），重试计数不跨 tick 累积
- 成功后构造快照并原子替换 OrderBookStore，再回调差分发布
- 整个 tick 失败时保留旧快照，记录错误并标记降级，不影响下一个 tick

调度使用 APScheduler 的 AsyncIOScheduler，显式 start()/stop()。
"""

import asyncio
import logging
import time
from typing import Any, Awaitable, Callable, Dict, Optional

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.interval import IntervalTrigger

from orderbook_relay.exceptions import FeedError, MalformedBookError
from orderbook_relay.market.order_book_store import OrderBookStore
from orderbook_relay.models.book import LevelSet, OrderBookSnapshot, Side

logger = logging.getLogger(__name__)

SnapshotCallback = Callable[[Optional[OrderBookSnapshot], OrderBookSnapshot], Awaitable[None]]

POLL_JOB_ID = "orderbook_poll"


def build_snapshot(symbol: str, raw: Dict[str, Any], sequence: int, observed_at: float) -> OrderBookSnapshot:
    """
    将行情源原始数据转换为快照（入库时排序、去重、丢弃零数量档位）

    Raises:
        MalformedBookError: 数据结构或数值非法
    """
    if not isinstance(raw, dict):
        raise MalformedBookError(f"unexpected orderbook payload: {raw!r}")
    return OrderBookSnapshot(
        symbol=symbol,
        bids=LevelSet.from_pairs(Side.BID, raw.get('bids')),
        asks=LevelSet.from_pairs(Side.ASK, raw.get('asks')),
        sequence=sequence,
        observed_at=observed_at,
    )


class FeedPoller:
    """
    深度快照轮询器

    Example:
        >>> poller = FeedPoller(client, store, "BTC/USDT", on_snapshot=service.on_snapshot)
        >>> poller.start()   # 需要在运行中的事件循环内调用
        >>> ...
        >>> poller.stop()
    """

    def __init__(
        self,
        connector: Any,
        store: OrderBookStore,
        symbol: str,
        depth: int = 50,
        interval_seconds: float = 2.0,
        max_attempts: int = 3,
        retry_delay_seconds: float = 0.2,
        on_snapshot: Optional[SnapshotCallback] = None,
        clock: Callable[[], float] = time.time,
    ):
        if max_attempts < 1:
            raise ValueError(f"max_attempts must be >= 1, got {max_attempts}")
        if interval_seconds <= 0:
            raise ValueError(f"interval_seconds must be positive, got {interval_seconds}")

        self.connector = connector
        self.store = store
        self.symbol = symbol
        self.depth = depth
        self.interval_seconds = interval_seconds
        self.max_attempts = max_attempts
        self.retry_delay_seconds = retry_delay_seconds
        self.on_snapshot = on_snapshot
        self._clock = clock

        self._scheduler: Optional[AsyncIOScheduler] = None

        # 健康状态
        self.total_ticks = 0
        self.failed_ticks = 0
        self.consecutive_failures = 0
        self.last_success_at: Optional[float] = None
        self.last_error: Optional[str] = None

        logger.info(
            f"FeedPoller 初始化完成: symbol={symbol}, depth={depth}, "
            f"interval={interval_seconds}s, max_attempts={max_attempts}"
        )

    @property
    def running(self) -> bool:
        return self._scheduler is not None and self._scheduler.running

    @property
    def degraded(self) -> bool:
        return self.consecutive_failures > 0

    def start(self):
        """启动定时任务（幂等）"""
        if self.running:
            logger.warning("FeedPoller 已在运行")
            return

        self._scheduler = AsyncIOScheduler(timezone='UTC')
        self._scheduler.add_job(
            self.poll_once,
            trigger=IntervalTrigger(seconds=self.interval_seconds),
            id=POLL_JOB_ID,
            name=f"poll {self.symbol}",
            max_instances=1,
            coalesce=True,
            replace_existing=True,
        )
        self._scheduler.start()
        logger.info(f"🚀 FeedPoller 已启动: 每 {self.interval_seconds}s 拉取 {self.symbol}")

    def stop(self):
        """停止定时任务；进行中的查询继续使用最后一个快照"""
        if self._scheduler is None:
            return
        if self._scheduler.running:
            self._scheduler.shutdown(wait=False)
        self._scheduler = None
        logger.info("FeedPoller 已停止")

    async def poll_once(self) -> bool:
        """
        执行一个 tick

        Returns:
            bool: 本 tick 是否成功安装了新快照
        """
        self.total_ticks += 1
        snapshot = await self._fetch_with_retry()

        if snapshot is None:
            self.failed_ticks += 1
            self.consecutive_failures += 1
            logger.error(
                f"❌ 本轮拉取失败 ({self.max_attempts} 次尝试均失败)，继续使用旧快照: "
                f"symbol={self.symbol}, 连续失败={self.consecutive_failures}, error={self.last_error}"
            )
            return False

        previous = self.store.replace(snapshot)
        if self.consecutive_failures:
            logger.info(f"✅ 行情恢复: {self.symbol} (此前连续失败 {self.consecutive_failures} 次)")
        self.consecutive_failures = 0
        self.last_success_at = snapshot.observed_at

        if not snapshot.bids or not snapshot.asks:
            logger.warning(
                f"⚠️ 薄市场: {self.symbol} seq={snapshot.sequence} "
                f"bids={len(snapshot.bids)} asks={len(snapshot.asks)}"
            )

        if self.on_snapshot is not None:
            try:
                await self.on_snapshot(previous, snapshot)
            except Exception as e:
                logger.error(f"快照回调失败 seq={snapshot.sequence}: {e}", exc_info=True)

        return True

    async def _fetch_with_retry(self) -> Optional[OrderBookSnapshot]:
        for attempt in range(1, self.max_attempts + 1):
            try:
                raw = await asyncio.to_thread(self.connector.fetch_order_book, self.symbol, self.depth)
                return build_snapshot(self.symbol, raw, self.store.next_sequence(), self._clock())
            except FeedError as e:
                self.last_error = str(e)
                logger.warning(f"拉取深度失败 (尝试 {attempt}/{self.max_attempts}): {e}")
            except Exception as e:
                self.last_error = f"{type(e).__name__}: {e}"
                logger.warning(
                    f"拉取深度出现未预期错误 (尝试 {attempt}/{self.max_attempts}): {self.last_error}",
                    exc_info=True,
                )

            if attempt < self.max_attempts and self.retry_delay_seconds > 0:
                await asyncio.sleep(self.retry_delay_seconds)

        return None

    def get_status(self) -> Dict[str, Any]:
        return {
            "running": self.running,
            "symbol": self.symbol,
            "interval_seconds": self.interval_seconds,
            "total_ticks": self.total_ticks,
            "failed_ticks": self.failed_ticks,
            "consecutive_failures": self.consecutive_failures,
            "last_success_at": self.last_success_at,
            "last_error": self.last_error,
            "degraded": self.degraded,
        }
