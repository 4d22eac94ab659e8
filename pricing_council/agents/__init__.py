from .base_agent import BaseAgent
from .finance_agent import FinanceAgent
from .growth_agent import GrowthAgent
from .product_agent import ProductAgent
from .strategy_agent import StrategyAgent

__all__ = [
    "BaseAgent",
    "FinanceAgent",
    "GrowthAgent",
    "ProductAgent",
    "StrategyAgent",
]
