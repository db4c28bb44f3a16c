"""
变更通知通道 (Change Channel)

轮询路径 -> 广播器 之间的具名通道，承载序列化后的 Delta。

- InProcessChannel: 进程内直接调用监听者
- RedisChannel: 通过 Redis Pub/Sub 转发，适合多进程部署

两种实现都按发布顺序把 Delta 交给监听者，保证每个订阅者看到的顺序一致。
"""

import asyncio
import json
import logging
from typing import Awaitable, Callable, List, Optional

from orderbook_relay.exceptions import MalformedBookError
from orderbook_relay.models.book import Delta

logger = logging.getLogger(__name__)

DeltaListener = Callable[[Delta], Awaitable[None]]


def channel_name(symbol: str) -> str:
    return f"orderbook:delta:{symbol}"


class InProcessChannel:
    """进程内通道"""

    def __init__(self, name: str):
        self.name = name
        self._listeners: List[DeltaListener] = []
        self._stats = {
            'published': 0,
            'errors': 0,
        }
        logger.info(f"InProcessChannel 初始化: {name}")

    def register(self, listener: DeltaListener):
        self._listeners.append(listener)
        logger.debug(f"注册监听者: {self.name} -> {getattr(listener, '__name__', listener)}")

    def unregister(self, listener: DeltaListener):
        if listener in self._listeners:
            self._listeners.remove(listener)

    @property
    def healthy(self) -> bool:
        return True

    async def start(self):
        """进程内通道无需启动"""

    async def stop(self):
        """进程内通道无需停止"""

    async def publish(self, delta: Delta):
        self._stats['published'] += 1
        await self._dispatch(delta)

    async def _dispatch(self, delta: Delta):
        for listener in list(self._listeners):
            try:
                await listener(delta)
            except Exception as e:
                self._stats['errors'] += 1
                logger.error(f"通道监听者处理失败 ({self.name}, seq={delta.sequence}): {e}", exc_info=True)

    def get_stats(self):
        return dict(self._stats, name=self.name, listeners=len(self._listeners), healthy=self.healthy)


class RedisChannel(InProcessChannel):
    """
    Redis Pub/Sub 通道

    publish() 只负责 PUBLISH；监听者由 start() 启动的后台任务驱动，
    因此同一进程内的广播器也是通过 Redis 收到 Delta。
    订阅连接断开时后台任务按指数退避重新订阅，不会静默退出。
    """

    def __init__(self, redis_client, name: str, reconnect_delay_seconds: float = 1.0,
                 max_reconnect_delay_seconds: float = 30.0):
        super().__init__(name)
        self.redis_client = redis_client
        self.reconnect_delay_seconds = reconnect_delay_seconds
        self.max_reconnect_delay_seconds = max_reconnect_delay_seconds
        self._pubsub = None
        self._task: Optional[asyncio.Task] = None
        self._listening = False
        self.reconnect_attempts = 0
        self.last_error: Optional[str] = None
        self._stats['listener_errors'] = 0
        self.on_resubscribed: Optional[Callable[[], None]] = None

    @property
    def healthy(self) -> bool:
        return self._task is not None and not self._task.done() and self._listening

    async def start(self):
        if self._task is not None:
            return
        self._task = asyncio.create_task(self._listen(), name=f"redis-listen-{self.name}")

    async def stop(self):
        if self._task is not None:
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
            except Exception as e:
                logger.warning(f"Redis 监听任务异常退出 ({self.name}): {e}")
            self._task = None

        await self._close_pubsub()
        self._listening = False
        logger.info(f"RedisChannel 已停止: {self.name}")

    async def publish(self, delta: Delta):
        payload = json.dumps(delta.to_message())
        await self.redis_client.publish(self.name, payload)
        self._stats['published'] += 1

    async def _listen(self):
        while True:
            try:
                self._pubsub = self.redis_client.pubsub()
                await self._pubsub.subscribe(self.name)
                self._listening = True
                if self.reconnect_attempts:
                    logger.info(f"RedisChannel 重新订阅成功: {self.name} (尝试 {self.reconnect_attempts})")
                    # 断线期间的 Delta 已丢失，通知上游发送完整视图
                    if self.on_resubscribed is not None:
                        self.on_resubscribed()
                else:
                    logger.info(f"RedisChannel 已订阅: {self.name}")
                self.reconnect_attempts = 0

                async for message in self._pubsub.listen():
                    if message.get('type') != 'message':
                        continue
                    await self.handle_message(message.get('data'))

                logger.info(f"RedisChannel 订阅流结束: {self.name}")
                self._listening = False
                return
            except asyncio.CancelledError:
                raise
            except Exception as e:
                self._listening = False
                self._stats['listener_errors'] += 1
                self.last_error = f"{type(e).__name__}: {e}"
                await self._close_pubsub()

                delay = min(
                    self.max_reconnect_delay_seconds,
                    self.reconnect_delay_seconds * (2 ** min(self.reconnect_attempts, 5)),
                )
                self.reconnect_attempts += 1
                logger.error(
                    f"❌ Redis 订阅中断 ({self.name}): {self.last_error}，"
                    f"{delay}s 后重连 (第 {self.reconnect_attempts} 次)"
                )
                await asyncio.sleep(delay)

    async def _close_pubsub(self):
        pubsub, self._pubsub = self._pubsub, None
        if pubsub is None:
            return
        try:
            await pubsub.unsubscribe(self.name)
            await pubsub.aclose()
        except Exception as e:
            logger.warning(f"关闭 Redis 订阅失败: {e}")

    async def handle_message(self, data):
        """解析一条 Pub/Sub 消息并分发；坏消息记录后跳过"""
        try:
            if isinstance(data, bytes):
                data = data.decode('utf-8')
            delta = Delta.from_message(json.loads(data))
        except (json.JSONDecodeError, UnicodeDecodeError, MalformedBookError, TypeError) as e:
            self._stats['errors'] += 1
            logger.warning(f"丢弃无法解析的通道消息 ({self.name}): {e}")
            return
        await self._dispatch(delta)

    def get_stats(self):
        return dict(
            super().get_stats(),
            listening=self._listening,
            reconnect_attempts=self.reconnect_attempts,
            last_error=self.last_error,
        )
