"""
订单簿中继服务核心

把各组件组装在一起并管理生命周期：

    FeedPoller -> OrderBookStore -> DeltaComputer -> ChangeChannel -> Broadcaster

MarketOrderSimulator 在请求时独立读取 OrderBookStore。
"""

import logging
import time
from decimal import Decimal
from typing import Any, Callable, Dict, Optional

import redis.asyncio as redis

from orderbook_relay.config.config_loader import RelayConfig
from orderbook_relay.core.broadcaster import Broadcaster, Subscriber
from orderbook_relay.core.change_channel import InProcessChannel, RedisChannel, channel_name
from orderbook_relay.data_manager.clients.mock_client import MockRESTClient
from orderbook_relay.data_manager.clients.rest_client import RESTClient
from orderbook_relay.data_manager.feed_poller import FeedPoller
from orderbook_relay.engine.delta_computer import DeltaComputer
from orderbook_relay.engine.market_order_simulator import MarketOrderSimulator
from orderbook_relay.market.order_book_store import OrderBookStore
from orderbook_relay.models.book import OrderBookSnapshot
from orderbook_relay.models.orders import MarketOrderRequest, MarketOrderResult


class OrderBookService:
    """订单簿中继服务 - 负责组件装配、启动和停止"""

    def __init__(self, config: Optional[RelayConfig] = None, connector: Any = None,
                 redis_client: Any = None, clock: Callable[[], float] = time.time):
        self.logger = logging.getLogger(__name__)
        self.config = config or RelayConfig()
        self.symbol = self.config.feed.symbol
        self._clock = clock
        self._started = False

        self.store = OrderBookStore(self.symbol)
        self.connector = connector if connector is not None else self._init_connector()
        self.delta_computer = DeltaComputer(top_k=self.config.book.top_k)
        self.simulator = MarketOrderSimulator(
            self.store, fill_tolerance=Decimal(str(self.config.book.fill_tolerance))
        )
        self.broadcaster = Broadcaster(
            snapshot_provider=self.snapshot_message,
            max_subscribers=self.config.broadcast.max_subscribers,
            send_timeout_seconds=self.config.broadcast.send_timeout_seconds,
            queue_size=self.config.broadcast.queue_size,
        )
        self.channel = self._init_channel(redis_client)
        self.channel.register(self.broadcaster.publish)

        # 发布失败或通道重连后，下一个 tick 发送完整视图而不是增量
        self._resync_pending = False
        self._stats = {
            'published': 0,
            'publish_failures': 0,
            'resyncs': 0,
        }

        poller_config = self.config.poller
        self.poller = FeedPoller(
            connector=self.connector,
            store=self.store,
            symbol=self.symbol,
            depth=self.config.feed.fetch_depth,
            interval_seconds=poller_config.interval_seconds,
            max_attempts=poller_config.max_attempts,
            retry_delay_seconds=poller_config.retry_delay_seconds,
            on_snapshot=self.on_snapshot,
            clock=clock,
        )

        self.logger.info("OrderBookService 初始化完成")

    def _init_connector(self):
        """初始化行情客户端"""
        feed = self.config.feed
        if feed.use_mock:
            self.logger.info("使用模拟行情源 (RELAY_USE_MOCK=true)")
            return MockRESTClient()
        try:
            return RESTClient(exchange_id=feed.exchange_id, use_demo=feed.use_demo,
                              timeout_ms=feed.timeout_ms)
        except Exception as e:
            self.logger.error(f"REST 客户端初始化失败: {e}")
            raise

    def _init_channel(self, redis_client):
        """初始化变更通知通道"""
        name = channel_name(self.symbol)
        if self.config.broadcast.channel != "redis":
            return InProcessChannel(name)

        if redis_client is None:
            redis_config = self.config.redis
            if redis_config.url:
                redis_client = redis.Redis.from_url(redis_config.url, decode_responses=True)
            else:
                redis_client = redis.Redis(
                    host=redis_config.host,
                    port=redis_config.port,
                    db=redis_config.db,
                    password=redis_config.password or None,
                    decode_responses=True,
                )
        self.logger.info(f"使用 Redis 通道: {name}")
        channel = RedisChannel(
            redis_client, name,
            reconnect_delay_seconds=self.config.redis.reconnect_delay_seconds,
        )
        channel.on_resubscribed = self.request_resync
        return channel

    # ========== 生命周期 ==========

    @property
    def started(self) -> bool:
        return self._started

    async def start(self):
        """先同步拉取一次，再启动通道监听和定时轮询"""
        if self._started:
            return
        await self.channel.start()
        await self.poller.poll_once()
        self.poller.start()
        self._started = True
        self.logger.info(f"🚀 OrderBookService 已启动: {self.symbol}")

    async def stop(self):
        """停止轮询；进行中的查询继续使用最后一个快照"""
        if not self._started:
            return
        self.poller.stop()
        await self.channel.stop()
        await self.broadcaster.close()
        self._started = False
        self.logger.info("OrderBookService 已停止")

    # ========== 轮询回调 ==========

    async def on_snapshot(self, previous: Optional[OrderBookSnapshot], current: OrderBookSnapshot):
        if self._resync_pending:
            delta = self.delta_computer.full(current)
        else:
            delta = self.delta_computer.diff(previous, current)
            if delta.is_empty:
                self.logger.debug(f"seq={current.sequence} Top-{self.delta_computer.top_k} 无变化")
                return

        try:
            await self.channel.publish(delta)
        except Exception as e:
            # 该 Delta 已丢失，订阅者只能通过完整视图重新对齐
            self._resync_pending = True
            self._stats['publish_failures'] += 1
            self.logger.error(f"❌ Delta 发布失败 seq={current.sequence}，下一个 tick 发送完整视图: {e}")
            return

        self._stats['published'] += 1
        if delta.reset:
            self._resync_pending = False
            self._stats['resyncs'] += 1
            self.logger.info(f"✅ 已发送完整视图 seq={current.sequence}")

    def request_resync(self):
        self._resync_pending = True

    # ========== 查询接口 ==========

    def snapshot_message(self) -> Optional[Dict[str, Any]]:
        snapshot = self.store.current()
        if snapshot is None:
            return None
        return self.delta_computer.snapshot_view(snapshot)

    def depth(self) -> Optional[Dict[str, Any]]:
        snapshot = self.store.current()
        if snapshot is None:
            return None
        return snapshot.to_depth(self.delta_computer.top_k)

    def simulate(self, side: str, amount: Any) -> MarketOrderResult:
        return self.simulator.simulate(MarketOrderRequest(side=side, amount=amount))

    async def subscribe(self, subscriber: Subscriber) -> Dict[str, Any]:
        return await self.broadcaster.subscribe(subscriber)

    async def unsubscribe(self, subscriber: Subscriber) -> bool:
        return await self.broadcaster.unsubscribe(subscriber)

    def health(self) -> Dict[str, Any]:
        """starting / ok / degraded（上一个 tick 失败或通道断开）/ stale"""
        age = self.store.age(self._clock())
        stale_after = self.config.poller.stale_after_seconds
        if age is None:
            status = "starting"
        elif self.poller.degraded or (self._started and not self.channel.healthy):
            status = "degraded"
        elif age > stale_after:
            status = "stale"
        else:
            status = "ok"

        return {
            "status": status,
            "symbol": self.symbol,
            "snapshot_age_seconds": age,
            "stale_after_seconds": stale_after,
            "store": self.store.get_stats(),
            "poller": self.poller.get_status(),
            "broadcaster": self.broadcaster.get_stats(),
            "channel": self.channel.get_stats(),
            "publisher": dict(self._stats, resync_pending=self._resync_pending),
        }
