"""
Expose ORM models for Django's auto-discovery while keeping real definitions
under the infra package.
"""
from private_orders.infra.activity import ActivityLogEntry
from private_orders.infra.models import (
    IdempotencyKey,
    OrderItemORM,
    OrderNumberSequenceORM,
    OrderORM,
    PartnerMemberORM,
    PartnerORM,
)
from private_orders.infra.notifications import Notification
from private_orders.infra.outbox import NotificationOutbox

__all__ = [
    "ActivityLogEntry",
    "IdempotencyKey",
    "Notification",
    "NotificationOutbox",
    "OrderItemORM",
    "OrderNumberSequenceORM",
    "OrderORM",
    "PartnerMemberORM",
    "PartnerORM",
]
