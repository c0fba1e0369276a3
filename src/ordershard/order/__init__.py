"""
Order

Orders, their items, and the transactional repository that writes and joins them.
"""

from ordershard.order.models import Order, OrderItem, WriteResult
from ordershard.order.repository import OrderRepository
from ordershard.order.service import DemoReport, DemoService

__all__ = ["DemoReport", "DemoService", "Order", "OrderItem", "OrderRepository", "WriteResult"]
