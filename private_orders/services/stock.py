"""
Application services for the per-item stock sub-workflow.
"""
from __future__ import annotations

from datetime import datetime
from uuid import UUID

from django.db import transaction
from django.utils import timezone

from private_orders.domain.actors import Actor, require_admin, require_distributor_or_admin
from private_orders.domain.events import StockMovement
from private_orders.domain.order import Order
from private_orders.domain.stock import parse_stock_status
from private_orders.exceptions import NotFound, ValidationFailed
from private_orders.infra.activity import ActivityLogRepository
from private_orders.infra.locks import order_lock
from private_orders.infra.repositories import OrderRepository, PartnerRepository
from private_orders.services.notifications import NotificationEmitter
import logging


logger = logging.getLogger(__name__)


class StockWorkflowService:
    """Service for moving line items through the stock chain."""

    def __init__(
        self,
        order_repo: OrderRepository | None = None,
        activity_repo: ActivityLogRepository | None = None,
        notifier: NotificationEmitter | None = None,
    ):
        self.order_repo = order_repo or OrderRepository()
        self.activity_repo = activity_repo or ActivityLogRepository()
        self.notifier = notifier or NotificationEmitter(partner_repo=PartnerRepository())

    def _load(self, order_id: UUID) -> Order:
        with order_lock(order_id):
            return self.order_repo.get_or_raise(order_id)

    def _check_items(self, order_id: UUID, item_ids: list[UUID]) -> list[UUID]:
        """Deduplicate ids and make sure every one exists and belongs to this order."""
        unique_ids = list(dict.fromkeys(item_ids))
        if not unique_ids:
            raise ValidationFailed("At least one item id is required")
        owners = self.order_repo.item_owners(unique_ids)
        missing = [str(item_id) for item_id in unique_ids if item_id not in owners]
        if missing:
            raise NotFound(f"Items not found: {', '.join(missing)}", details={"itemIds": missing})
        foreign = [str(item_id) for item_id in unique_ids if owners[item_id] != order_id]
        if foreign:
            raise ValidationFailed(
                f"Items do not belong to this order: {', '.join(foreign)}",
                details={"itemIds": foreign},
            )
        return unique_ids

    def apply_movement(self, order: Order, movement: StockMovement, actor: Actor, now: datetime) -> StockMovement:
        """Persist a validated move, audit it and notify; runs in the caller's transaction."""
        self.order_repo.save_stock_move(
            movement.item_ids,
            movement.previous_statuses,
            target=parse_stock_status(movement.new_status),
            now=now,
            expected_at=movement.expected_at,
            notes=movement.notes,
        )
        self.activity_repo.record_event(order.id, actor, movement)
        self.notifier.stock_movement(order, movement, actor)
        logger.info(
            "stock_movement",
            extra={
                "order_id": str(order.id),
                "operation": movement.action,
                "status": movement.new_status,
                "item_count": movement.item_count,
            },
        )
        return movement

    @transaction.atomic
    def update_item(
        self,
        item_id: UUID,
        actor: Actor,
        target: str,
        expected_at: datetime | None = None,
        notes: str | None = None,
    ) -> Order:
        """Move a single line item."""
        owners = self.order_repo.item_owners([item_id])
        if item_id not in owners:
            raise NotFound(f"Item {item_id} not found")
        order = self._load(owners[item_id])
        require_admin(actor)
        status = parse_stock_status(target)
        now = timezone.now()
        movement = order.move_items([item_id], status, now, expected_at, notes, action="stock_status_updated")
        self.apply_movement(order, movement, actor, now)
        return order

    @transaction.atomic
    def bulk_update(
        self,
        order_id: UUID,
        item_ids: list[UUID],
        actor: Actor,
        target: str,
        expected_at: datetime | None = None,
        notes: str | None = None,
    ) -> Order:
        """Move several items of one order together, all or nothing."""
        order = self._load(order_id)
        require_admin(actor)
        status = parse_stock_status(target)
        unique_ids = self._check_items(order_id, item_ids)
        now = timezone.now()
        movement = order.move_items(unique_ids, status, now, expected_at, notes, action="stock_status_bulk_updated")
        self.apply_movement(order, movement, actor, now)
        return order

    @transaction.atomic
    def confirm_receipt(self, order_id: UUID, item_ids: list[UUID], actor: Actor, notes: str | None = None) -> Order:
        """Distributor confirms items arrived at its warehouse."""
        order = self._load(order_id)
        require_distributor_or_admin(actor, order.distributor_id)
        unique_ids = self._check_items(order_id, item_ids)
        now = timezone.now()
        movement = order.receive_items(unique_ids, now, notes)
        self.apply_movement(order, movement, actor, now)
        return order
