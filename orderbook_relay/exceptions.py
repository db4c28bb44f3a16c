"""
异常定义模块

所有业务异常都继承自 OrderBookRelayError，便于上层统一捕获。
"""


class OrderBookRelayError(Exception):
    """订单簿中继服务基础异常"""


class FeedError(OrderBookRelayError):
    """行情源获取失败（可重试）"""


class MalformedBookError(FeedError):
    """行情源返回的订单簿数据格式错误"""


class SubscriberLimitExceeded(OrderBookRelayError):
    """订阅者数量超过上限"""

    def __init__(self, limit: int):
        self.limit = limit
        super().__init__(f"subscriber limit reached ({limit})")


class ConfigError(OrderBookRelayError):
    """配置加载或校验失败"""
