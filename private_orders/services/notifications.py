"""
Role-targeted notification fan-out for order and stock transitions.

Who hears about a transition depends only on where it lands:
``ORDER_STATUS_RULES`` for the order lifecycle and ``stock_audiences`` for
line items. Messages go to the outbox inside a savepoint, so a failure here
is logged and never undoes the transition.
"""
from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from uuid import UUID

from django.db import DatabaseError, transaction

from private_orders.conf import get_setting
from private_orders.domain.actors import Actor
from private_orders.domain.events import OrderTransition, StockMovement
from private_orders.domain.order import Order, OrderStatus
from private_orders.domain.stock import DISTRIBUTOR_STOCK_STATUSES, StockStatus
from private_orders.infra.notifications import NotificationDispatcher
from private_orders.infra.outbox import OutboxRepository
from private_orders.infra.repositories import PartnerRepository
import logging


logger = logging.getLogger(__name__)


class Audience(str, Enum):
    PARTNER = "partner"
    DISTRIBUTOR = "distributor"
    OPERATORS = "operators"


ACTION_PATHS = {
    Audience.PARTNER: "/platform/private-orders/{order_id}",
    Audience.DISTRIBUTOR: "/platform/distributor/orders/{order_id}",
    Audience.OPERATORS: "/platform/admin/private-orders/{order_id}",
}


@dataclass(frozen=True)
class NotificationRule:
    audiences: tuple[Audience, ...]
    notification_type: str
    title: str
    message: str


PARTNER = (Audience.PARTNER,)
DISTRIBUTOR = (Audience.DISTRIBUTOR,)
OPERATORS = (Audience.OPERATORS,)

ORDER_STATUS_RULES: dict[OrderStatus, NotificationRule] = {
    OrderStatus.SUBMITTED: NotificationRule(
        OPERATORS, "order_submitted", "New order submitted",
        "Order {order_number} for {client_name} is waiting for review.",
    ),
    OrderStatus.UNDER_REVIEW: NotificationRule(
        PARTNER, "order_under_review", "Order under review",
        "Order {order_number} is being reviewed.",
    ),
    OrderStatus.REVISION_REQUESTED: NotificationRule(
        PARTNER, "revision_requested", "Revision requested",
        "Order {order_number} needs changes: {notes}",
    ),
    OrderStatus.CC_APPROVED: NotificationRule(
        PARTNER, "order_approved", "Order approved",
        "Order {order_number} has been approved. A distributor will be assigned shortly.",
    ),
    OrderStatus.AWAITING_PARTNER_VERIFICATION: NotificationRule(
        PARTNER, "verification_required", "Client verification required",
        "Please confirm the client details for order {order_number}.",
    ),
    OrderStatus.AWAITING_DISTRIBUTOR_VERIFICATION: NotificationRule(
        DISTRIBUTOR, "verification_required", "Client verification required",
        "The partner has verified the client for order {order_number}. Please verify on your side.",
    ),
    OrderStatus.VERIFICATION_SUSPENDED: NotificationRule(
        PARTNER + OPERATORS, "action_required", "Verification suspended",
        "Verification for order {order_number} is suspended: {notes}",
    ),
    OrderStatus.AWAITING_CLIENT_PAYMENT: NotificationRule(
        PARTNER, "payment_required", "Awaiting client payment",
        "Order {order_number} is ready for client payment. Payment reference: {payment_reference}",
    ),
    OrderStatus.CLIENT_PAID: NotificationRule(
        DISTRIBUTOR, "client_paid", "Client payment received",
        "The client has paid for order {order_number}.",
    ),
    OrderStatus.AWAITING_DISTRIBUTOR_PAYMENT: NotificationRule(
        DISTRIBUTOR, "payment_required", "Payment due",
        "Please pay for order {order_number} (reference {payment_reference}).",
    ),
    OrderStatus.DISTRIBUTOR_PAID: NotificationRule(
        OPERATORS, "distributor_paid", "Distributor payment received",
        "The distributor has paid for order {order_number}.",
    ),
    OrderStatus.AWAITING_PARTNER_PAYMENT: NotificationRule(
        PARTNER, "partner_payment_pending", "Partner payment pending",
        "Your payment for order {order_number} is being processed.",
    ),
    OrderStatus.PARTNER_PAID: NotificationRule(
        PARTNER, "partner_paid", "Payment sent",
        "Payment for order {order_number} has been sent.",
    ),
    OrderStatus.STOCK_IN_TRANSIT: NotificationRule(
        PARTNER + DISTRIBUTOR, "stock_in_transit", "Stock in transit",
        "Stock for order {order_number} is on its way to the distributor.",
    ),
    OrderStatus.WITH_DISTRIBUTOR: NotificationRule(
        PARTNER, "stock_received", "Stock with distributor",
        "The distributor has received the stock for order {order_number}.",
    ),
    OrderStatus.SCHEDULING_DELIVERY: NotificationRule(
        PARTNER, "scheduling_delivery", "Scheduling delivery",
        "The distributor is arranging delivery of order {order_number}.",
    ),
    OrderStatus.DELIVERY_SCHEDULED: NotificationRule(
        PARTNER, "delivery_scheduled", "Delivery scheduled",
        "Delivery of order {order_number} is scheduled for {scheduled_for}.",
    ),
    OrderStatus.OUT_FOR_DELIVERY: NotificationRule(
        PARTNER, "out_for_delivery", "Out for delivery",
        "Order {order_number} is out for delivery.",
    ),
    OrderStatus.DELIVERED: NotificationRule(
        PARTNER + OPERATORS, "delivered", "Order delivered",
        "Order {order_number} has been delivered to {client_name}.",
    ),
    OrderStatus.CANCELLED: NotificationRule(
        PARTNER + DISTRIBUTOR, "order_cancelled", "Order cancelled",
        "Order {order_number} has been cancelled: {notes}",
    ),
}


# Wording for actions whose destination rule would misdescribe what happened.
ACTION_RULES: dict[tuple[str, OrderStatus], NotificationRule] = {
    ("admin_verification_reset", OrderStatus.AWAITING_PARTNER_VERIFICATION): NotificationRule(
        PARTNER, "verification_required", "Verification reset",
        "C&C has reset order {order_number}. Please confirm the client details again.",
    ),
    ("admin_verification_reset", OrderStatus.AWAITING_DISTRIBUTOR_VERIFICATION): NotificationRule(
        DISTRIBUTOR, "verification_required", "Verification reset",
        "C&C has reset order {order_number}. Please verify the client on your side.",
    ),
}


def stock_audiences(target: StockStatus) -> tuple[Audience, ...]:
    """The partner hears about every stock move; the distributor only about its own."""
    if target in DISTRIBUTOR_STOCK_STATUSES:
        return PARTNER + DISTRIBUTOR
    return PARTNER


class NotificationEmitter:
    """Turns transitions into outbox rows for every member of the targeted roles."""

    def __init__(
        self,
        partner_repo: PartnerRepository | None = None,
        outbox_repo: OutboxRepository | None = None,
    ):
        self.partner_repo = partner_repo or PartnerRepository()
        self.outbox_repo = outbox_repo or OutboxRepository()

    def order_transition(self, order: Order, event: OrderTransition, actor: Actor) -> list[UUID]:
        status = OrderStatus(event.new_status)
        rule = ACTION_RULES.get((event.action, status)) or ORDER_STATUS_RULES.get(status)
        if rule is None:
            return []
        message = rule.message.format(
            order_number=order.order_number,
            client_name=order.client_name or "the client",
            payment_reference=order.payment_reference or "",
            scheduled_for=order.delivery_scheduled_for.isoformat() if order.delivery_scheduled_for else "",
            notes=event.notes or "",
        )
        metadata = {
            "orderNumber": order.order_number,
            "action": event.action,
            "previousStatus": event.previous_status,
            "newStatus": event.new_status,
        }
        if order.payment_reference and OrderStatus(event.new_status) == OrderStatus.AWAITING_CLIENT_PAYMENT:
            metadata["paymentReference"] = order.payment_reference
        return self._fan_out(order, rule.audiences, rule.notification_type, rule.title, message, metadata, actor)

    def stock_movement(self, order: Order, movement: StockMovement, actor: Actor) -> list[UUID]:
        if not movement.changed:
            return []
        target = StockStatus(movement.new_status)
        label = target.value.replace("_", " ")
        if movement.item_count == 1:
            message = f"{movement.item_names[0]} on order {order.order_number} is now {label}."
        else:
            message = f"{movement.item_count} items on order {order.order_number} are now {label}."
        if movement.notes:
            message = f"{message} {movement.notes}"
        metadata = {
            "orderNumber": order.order_number,
            "action": movement.action,
            "itemCount": movement.item_count,
            "newStockStatus": movement.new_status,
        }
        return self._fan_out(
            order, stock_audiences(target), "stock_status_updated", "Stock update", message, metadata, actor,
        )

    def _fan_out(
        self,
        order: Order,
        audiences: tuple[Audience, ...],
        notification_type: str,
        title: str,
        message: str,
        metadata: dict,
        actor: Actor,
    ) -> list[UUID]:
        app_url = get_setting("APP_URL").rstrip("/")
        seen = {actor.user_id} if actor.user_id else set()
        queued = []
        try:
            with transaction.atomic():
                for audience in audiences:
                    partner_id, recipients = self._recipients(order, audience)
                    action_url = app_url + ACTION_PATHS[audience].format(order_id=order.id)
                    for user_id in recipients:
                        if user_id in seen:
                            continue
                        seen.add(user_id)
                        queued.append(self.outbox_repo.enqueue(
                            recipient_id=user_id,
                            partner_id=partner_id,
                            notification_type=notification_type,
                            title=title,
                            message=message,
                            entity_id=order.id,
                            action_url=action_url,
                            metadata=metadata,
                        ))
        except DatabaseError as e:
            logger.error(
                "notification_enqueue_failed",
                extra={"order_id": str(order.id), "operation": notification_type, "error": str(e)},
                exc_info=True,
            )
            return []

        if queued and get_setting("DISPATCH_ON_COMMIT"):
            transaction.on_commit(lambda: self._dispatch(queued), robust=True)
        return queued

    def _recipients(self, order: Order, audience: Audience) -> tuple[UUID | None, list[UUID]]:
        if audience == Audience.PARTNER:
            return order.partner_id, self.partner_repo.member_user_ids(order.partner_id)
        if audience == Audience.DISTRIBUTOR:
            return order.distributor_id, self.partner_repo.member_user_ids(order.distributor_id)
        return None, self.partner_repo.operator_user_ids()

    def _dispatch(self, ids: list[UUID]) -> None:
        try:
            NotificationDispatcher().process_outbox(limit=len(ids), ids=ids)
        except Exception as e:
            logger.error("notification_dispatch_failed", extra={"error": str(e)}, exc_info=True)
