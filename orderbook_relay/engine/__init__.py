from .delta_computer import DeltaComputer
from .market_order_simulator import MarketOrderSimulator

__all__ = ['DeltaComputer', 'MarketOrderSimulator']
