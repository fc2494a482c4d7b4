"""
Admin recovery service for suspended verifications.
"""
from __future__ import annotations

from uuid import UUID

from django.db import transaction
from django.utils import timezone

from private_orders.conf import get_setting
from private_orders.domain.actors import Actor, require_admin
from private_orders.domain.order import Order
from private_orders.domain.recovery import parse_recovery_target, reset_verification
from private_orders.services.orders import OrderWorkflowService


class RecoveryService(OrderWorkflowService):
    """Operator-only shortcuts back into the verification gate."""

    @transaction.atomic
    def reset_verification(self, order_id: UUID, actor: Actor, target: str, notes: str | None = None) -> Order:
        order = self._load(order_id)
        require_admin(actor)
        target_status = parse_recovery_target(target)
        expected = order.status
        event = reset_verification(
            order,
            target_status,
            actor.user_id,
            timezone.now(),
            notes,
            get_setting("DEFAULT_DISTRIBUTOR_CODE"),
        )
        return self._commit(order, expected, event, actor)
