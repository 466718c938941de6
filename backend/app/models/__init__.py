"""
数据模型
"""
from app.models.product import Product
from app.models.agent import Agent
from app.models.ad_group import AdGroup
from app.models.order import Order, OrderStatus
from app.models.advertising_cost import AdvertisingCost
from app.models.profit_forecast_snapshot import ProfitForecastSnapshot

__all__ = [
    "Product",
    "Agent",
    "AdGroup",
    "Order",
    "OrderStatus",
    "AdvertisingCost",
    "ProfitForecastSnapshot",
]
