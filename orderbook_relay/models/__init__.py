"""
数据模型
"""

from .book import Delta, LevelSet, OrderBookSnapshot, PriceLevel, Side, to_decimal
from .orders import FillStatus, MarketOrderRequest, MarketOrderResult, OrderSide

__all__ = [
    'Delta',
    'LevelSet',
    'OrderBookSnapshot',
    'PriceLevel',
    'Side',
    'to_decimal',
    'FillStatus',
    'MarketOrderRequest',
    'MarketOrderResult',
    'OrderSide',
]
