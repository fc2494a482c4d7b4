from private_orders.domain.actors import Actor, Role
from private_orders.domain.order import Order, OrderLineItem, OrderStatus
from private_orders.domain.stock import StockStatus

__all__ = ["Actor", "Role", "Order", "OrderLineItem", "OrderStatus", "StockStatus"]
