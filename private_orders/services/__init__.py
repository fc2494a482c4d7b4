from private_orders.services.dashboards import DashboardService
from private_orders.services.orders import OrderWorkflowService
from private_orders.services.recovery import RecoveryService
from private_orders.services.stock import StockWorkflowService

__all__ = ["DashboardService", "OrderWorkflowService", "RecoveryService", "StockWorkflowService"]
