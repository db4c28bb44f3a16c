"""
行情数据模块

- clients/: 行情源客户端（ccxt REST、模拟）
- feed_poller: 定时拉取并替换快照
"""

from .clients import MockRESTClient, RESTClient
from .feed_poller import FeedPoller, build_snapshot

__all__ = [
    'RESTClient',
    'MockRESTClient',
    'FeedPoller',
    'build_snapshot',
]
