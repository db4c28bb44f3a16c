"""
广播器 (Broadcaster)

维护活跃订阅者注册表，把 Delta 推送给所有订阅者。

- 注册表有上限（默认 100），超出时在准入阶段直接拒绝
- 新订阅者先收到当前 Top-K 全量视图，再接收后续增量
- 每个订阅者有独立的有界队列和发送任务：publish 只入队，不等待任何订阅者
- 发送失败、发送超时或队列已满只移除该订阅者，并通知其句柄关闭连接
"""

import asyncio
import logging
from dataclasses import dataclass
from typing import Any, Callable, Dict, List, Optional, Protocol, Set

from orderbook_relay.exceptions import SubscriberLimitExceeded
from orderbook_relay.models.book import Delta

logger = logging.getLogger(__name__)

SnapshotProvider = Callable[[], Optional[Dict[str, Any]]]


class Subscriber(Protocol):
    """
    订阅者句柄：只需要一个异步 send 方法

    句柄还可以提供异步 close()：订阅者因发送失败被移除时会调用它，
    让客户端感知断开并重新订阅。
    """

    async def send(self, message: Dict[str, Any]) -> None:
        ...


@dataclass
class _Registration:
    subscriber: Subscriber
    baseline_sequence: int
    queue: asyncio.Queue
    task: Optional[asyncio.Task] = None


class Broadcaster:
    """
    Delta 广播器

    Example:
        >>> broadcaster = Broadcaster(snapshot_provider=service.snapshot_message, max_subscribers=100)
        >>> await broadcaster.subscribe(handle)
        >>> await broadcaster.publish(delta)
    """

    def __init__(self, snapshot_provider: SnapshotProvider, max_subscribers: int = 100,
                 send_timeout_seconds: float = 5.0, queue_size: int = 256):
        if max_subscribers < 1:
            raise ValueError(f"max_subscribers must be >= 1, got {max_subscribers}")
        if queue_size < 1:
            raise ValueError(f"queue_size must be >= 1, got {queue_size}")
        self.snapshot_provider = snapshot_provider
        self.max_subscribers = max_subscribers
        self.send_timeout_seconds = send_timeout_seconds
        self.queue_size = queue_size

        self._registrations: List[_Registration] = []
        self._closing: Set[asyncio.Task] = set()
        self._stats = {
            'published': 0,
            'queued': 0,
            'delivered': 0,
            'dropped_subscribers': 0,
            'rejected_subscribers': 0,
        }
        logger.info(f"Broadcaster 初始化完成 (max_subscribers={max_subscribers}, queue_size={queue_size})")

    @property
    def subscriber_count(self) -> int:
        return len(self._registrations)

    def has_capacity(self) -> bool:
        return self.subscriber_count < self.max_subscribers

    async def subscribe(self, subscriber: Subscriber) -> Dict[str, Any]:
        """
        注册订阅者并立即发送初始全量视图

        读取初始视图和登记之间没有 await，发送初始视图期间发布的 Delta
        先进入该订阅者的队列，发送任务在初始视图送达后才开始消费。

        Returns:
            发送给该订阅者的初始消息

        Raises:
            SubscriberLimitExceeded: 已达到订阅者上限
            Exception: 初始消息发送失败时原样抛出，订阅者不会被注册
        """
        if not self.has_capacity():
            self._stats['rejected_subscribers'] += 1
            logger.warning(f"订阅者已满 ({self.max_subscribers})，拒绝新连接")
            raise SubscriberLimitExceeded(self.max_subscribers)

        initial = self.snapshot_provider() or self._empty_snapshot()
        baseline = initial.get('sequence') or 0
        registration = _Registration(subscriber, baseline, asyncio.Queue(maxsize=self.queue_size))
        self._registrations.append(registration)

        try:
            await asyncio.wait_for(subscriber.send(initial), timeout=self.send_timeout_seconds)
        except BaseException:
            self._discard(registration)
            raise

        # 发送初始视图期间可能已因队列满被移除
        if not self._is_registered(registration):
            return initial

        registration.task = asyncio.create_task(self._sender(registration))
        logger.info(f"新订阅者已加入 (baseline seq={baseline})，当前 {self.subscriber_count} 个")
        return initial

    async def unsubscribe(self, subscriber: Subscriber) -> bool:
        """客户端主动断开：移除订阅者，不再通知句柄"""
        registration = self._find(subscriber)
        if registration is None:
            return False
        self._discard(registration)
        return True

    async def publish(self, delta: Delta) -> int:
        """
        把 Delta 放入每个订阅者的队列，不等待发送完成

        Returns:
            成功入队的订阅者数量
        """
        self._stats['published'] += 1
        message: Optional[Dict[str, Any]] = None
        queued = 0

        for registration in list(self._registrations):
            # 初始视图已经包含该序列号的订阅者跳过
            if delta.sequence <= registration.baseline_sequence:
                continue
            if message is None:
                message = delta.to_message()
            try:
                registration.queue.put_nowait(message)
            except asyncio.QueueFull:
                logger.warning(f"订阅者队列已满 ({self.queue_size})，移除")
                self._drop(registration)
                continue
            queued += 1

        self._stats['queued'] += queued
        return queued

    async def drain(self):
        """等待当前所有订阅者的队列发送完毕（关闭前和测试中使用）"""
        await asyncio.gather(*(r.queue.join() for r in list(self._registrations)))

    async def close(self):
        """关闭时清空注册表并停止所有发送任务"""
        registrations = list(self._registrations)
        for registration in registrations:
            self._discard(registration)

        tasks = [r.task for r in registrations if r.task is not None]
        tasks.extend(self._closing)
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)
        logger.info(f"Broadcaster 已关闭，移除 {len(registrations)} 个订阅者")

    async def _sender(self, registration: _Registration):
        queue = registration.queue
        while True:
            message = await queue.get()
            failed: Optional[BaseException] = None
            try:
                await asyncio.wait_for(
                    registration.subscriber.send(message), timeout=self.send_timeout_seconds
                )
            except Exception as e:
                failed = e
            finally:
                queue.task_done()

            if failed is not None:
                logger.warning(f"订阅者发送失败，移除: {type(failed).__name__}: {failed}")
                self._drop(registration)
                return
            self._stats['delivered'] += 1

    def _drop(self, registration: _Registration):
        """因发送失败移除订阅者，并在后台通知句柄关闭"""
        if not self._discard(registration):
            return
        self._stats['dropped_subscribers'] += 1

        close = getattr(registration.subscriber, 'close', None)
        if close is not None:
            task = asyncio.create_task(self._close_handle(close))
            self._closing.add(task)
            task.add_done_callback(self._closing.discard)

    @staticmethod
    async def _close_handle(close):
        try:
            await close()
        except Exception as e:
            logger.debug(f"关闭订阅者连接失败: {e}")

    def _discard(self, registration: _Registration) -> bool:
        if not self._is_registered(registration):
            return False
        self._registrations = [r for r in self._registrations if r is not registration]

        task = registration.task
        if task is not None and task is not asyncio.current_task():
            task.cancel()

        # 释放队列中剩余的消息，避免 drain() 等待已移除的订阅者
        queue = registration.queue
        while not queue.empty():
            queue.get_nowait()
            queue.task_done()
        return True

    def _is_registered(self, registration: _Registration) -> bool:
        return any(r is registration for r in self._registrations)

    def _find(self, subscriber: Subscriber) -> Optional[_Registration]:
        for registration in self._registrations:
            if registration.subscriber is subscriber:
                return registration
        return None

    @staticmethod
    def _empty_snapshot() -> Dict[str, Any]:
        return {"type": "snapshot", "symbol": None, "sequence": 0, "bids": [], "asks": []}

    def get_stats(self) -> Dict[str, Any]:
        return dict(
            self._stats,
            subscribers=self.subscriber_count,
            max_subscribers=self.max_subscribers,
            queue_size=self.queue_size,
        )
