"""
核心模块：广播、变更通道与服务装配
"""

from .broadcaster import Broadcaster, Subscriber
from .change_channel import InProcessChannel, RedisChannel, channel_name
from .service import OrderBookService

__all__ = [
    'Broadcaster',
    'Subscriber',
    'InProcessChannel',
    'RedisChannel',
    'channel_name',
    'OrderBookService',
]
