"""
Infrastructure repositories for domain entities.
"""
from __future__ import annotations

from datetime import datetime
from uuid import UUID

from django.db import transaction
from django.db.models import Case, DateTimeField, F, Q, Value, When
from django.utils import timezone

from private_orders.domain.order import (
    Order,
    OrderLineItem,
    OrderStatus,
    VerificationResponse,
    VerificationSource,
)
from private_orders.domain.stock import StockSource, StockStatus
from private_orders.exceptions import Conflict, NotFound
from private_orders.infra.models import (
    OrderItemORM,
    OrderNumberSequenceORM,
    OrderORM,
    PartnerMemberORM,
    PartnerORM,
)
import logging


logger = logging.getLogger(__name__)

# Order columns written on every state save.
ORDER_STATE_FIELDS = (
    "status",
    "distributor_id",
    "client_name",
    "client_id",
    "total_usd",
    "total_aed",
    "payment_reference",
    "partner_verification_response",
    "partner_verification_at",
    "partner_verification_by",
    "partner_verification_notes",
    "distributor_verification_response",
    "distributor_verification_at",
    "distributor_verification_by",
    "distributor_verification_notes",
    "distributor_verification_source",
    "verification_requested_at",
    "suspended_from",
    "revision_reason",
    "cancellation_reason",
    "cc_approved_by",
    "submitted_at",
    "cc_approved_at",
    "distributor_assigned_at",
    "client_paid_at",
    "distributor_paid_at",
    "partner_paid_at",
    "stock_in_transit_at",
    "stock_received_at",
    "delivery_scheduled_at",
    "delivery_scheduled_for",
    "out_for_delivery_at",
    "delivered_at",
    "cancelled_at",
    "client_payment_reference",
    "distributor_payment_reference",
    "partner_payment_reference",
)


def _enum_value(value):
    return value.value if hasattr(value, "value") else value


class PartnerRepository:
    """Repository for partner organizations and their members."""

    def get_by_id(self, partner_id: UUID) -> PartnerORM | None:
        return PartnerORM.objects.filter(id=partner_id).first()

    def create(
        self,
        business_name: str,
        partner_type: str,
        distributor_code: str | None = None,
        requires_client_verification: bool = True,
    ) -> PartnerORM:
        return PartnerORM.objects.create(
            business_name=business_name,
            partner_type=partner_type,
            distributor_code=distributor_code,
            requires_client_verification=requires_client_verification,
        )

    def add_member(self, partner_id: UUID, user_id: UUID) -> None:
        PartnerMemberORM.objects.get_or_create(partner_id=partner_id, user_id=user_id)

    def member_user_ids(self, partner_id: UUID | None) -> list[UUID]:
        """Notifiable users of a partner or distributor organization."""
        if partner_id is None:
            return []
        return list(
            PartnerMemberORM.objects
            .filter(partner_id=partner_id)
            .order_by("created_at")
            .values_list("user_id", flat=True)
        )

    def operator_user_ids(self) -> list[UUID]:
        return list(
            PartnerMemberORM.objects
            .filter(partner__partner_type="operator")
            .order_by("created_at")
            .values_list("user_id", flat=True)
            .distinct()
        )

    def partner_for_user(self, user_id: UUID) -> PartnerORM | None:
        member = (
            PartnerMemberORM.objects
            .select_related("partner")
            .filter(user_id=user_id)
            .order_by("created_at")
            .first()
        )
        return member.partner if member else None


class OrderRepository:
    """Repository for Order aggregate."""

    def get_by_id(self, order_id: UUID) -> Order | None:
        """Get order by ID with items (optimized, no N+1)."""
        try:
            order_orm = (
                OrderORM.objects
                .select_related("distributor")
                .prefetch_related("items")
                .get(id=order_id)
            )
            return self._to_domain(order_orm)
        except OrderORM.DoesNotExist:
            return None

    def get_or_raise(self, order_id: UUID) -> Order:
        order = self.get_by_id(order_id)
        if order is None:
            raise NotFound(f"Order {order_id} not found")
        return order

    def get_by_number(self, order_number: str) -> Order | None:
        order_orm = (
            OrderORM.objects
            .select_related("distributor")
            .prefetch_related("items")
            .filter(order_number=order_number)
            .first()
        )
        return self._to_domain(order_orm) if order_orm else None

    def ids_in_status(self, statuses: list[OrderStatus], requested_before: datetime) -> list[UUID]:
        return list(
            OrderORM.objects
            .filter(
                status__in=[status.value for status in statuses],
                verification_requested_at__lt=requested_before,
            )
            .order_by("verification_requested_at")
            .values_list("id", flat=True)
        )

    def item_owners(self, item_ids: list[UUID]) -> dict[UUID, UUID]:
        """Map each existing item id to its order id."""
        return dict(
            OrderItemORM.objects
            .filter(id__in=item_ids)
            .values_list("id", "order_id")
        )

    @transaction.atomic
    def next_order_number(self) -> str:
        OrderNumberSequenceORM.objects.get_or_create(name="order")
        while True:
            OrderNumberSequenceORM.objects.filter(name="order").update(last_value=F("last_value") + 1)
            value = OrderNumberSequenceORM.objects.get(name="order").last_value
            order_number = f"ORD-{value:04d}"
            if not OrderORM.objects.filter(order_number=order_number).exists():
                return order_number

    @transaction.atomic
    def create(self, order: Order) -> UUID:
        """Insert a new order with its line items."""
        order_orm = OrderORM.objects.create(
            id=order.id,
            order_number=order.order_number,
            partner_id=order.partner_id,
            case_count=order.case_count,
            **{name: _enum_value(getattr(order, name)) for name in ORDER_STATE_FIELDS},
        )
        for item in order.items:
            self.insert_item(item)
        order.created_at = order_orm.created_at
        return order_orm.id

    def insert_item(self, item: OrderLineItem) -> None:
        OrderItemORM.objects.create(
            id=item.id,
            order_id=item.order_id,
            product_name=item.product_name,
            vintage=item.vintage,
            quantity=item.quantity,
            source=_enum_value(item.source),
            stock_status=item.stock_status.value,
            stock_expected_at=item.stock_expected_at,
            stock_notes=item.stock_notes,
            stock_confirmed_at=item.stock_confirmed_at,
        )

    def delete_item(self, item_id: UUID) -> None:
        OrderItemORM.objects.filter(id=item_id).delete()

    def save_state(self, order: Order, expected_status: OrderStatus) -> None:
        """
        Persist the order row only if its status is still ``expected_status``.

        Zero rows updated means another writer got there first (``Conflict``)
        or the order is gone (``NotFound``).
        """
        order.check_invariants()
        fields = {name: _enum_value(getattr(order, name)) for name in ORDER_STATE_FIELDS}
        updated = (
            OrderORM.objects
            .filter(id=order.id, status=expected_status.value)
            .update(case_count=order.case_count, updated_at=timezone.now(), **fields)
        )
        if updated == 0:
            if not OrderORM.objects.filter(id=order.id).exists():
                raise NotFound(f"Order {order.id} not found")
            logger.warning(
                "order_status_conflict",
                extra={"order_id": str(order.id), "status": expected_status.value},
            )
            raise Conflict(
                f"Order {order.order_number} changed while it was being updated",
                details={"expected_status": expected_status.value},
            )

    def save_item_details(self, items: list[OrderLineItem]) -> None:
        for item in items:
            OrderItemORM.objects.filter(id=item.id).update(
                source=_enum_value(item.source),
                stock_status=item.stock_status.value,
                stock_confirmed_at=item.stock_confirmed_at,
                stock_expected_at=item.stock_expected_at,
                updated_at=timezone.now(),
            )

    def save_stock_move(
        self,
        item_ids: list[UUID],
        previous_statuses: dict[str, str],
        target: StockStatus,
        now: datetime,
        expected_at: datetime | None = None,
        notes: str | None = None,
    ) -> None:
        """
        Apply one stock move to every item in a single conditional update.

        Each item must still hold the status it was validated against,
        otherwise nothing is written and ``Conflict`` is raised.
        """
        condition = Q()
        for item_id in item_ids:
            condition |= Q(id=item_id, stock_status=previous_statuses[str(item_id)])

        updates = {"stock_status": target.value, "updated_at": now}
        if expected_at is not None:
            updates["stock_expected_at"] = expected_at
        if notes is not None:
            updates["stock_notes"] = notes
        if target == StockStatus.CONFIRMED:
            updates["stock_confirmed_at"] = Case(
                When(stock_status=StockStatus.CONFIRMED.value, then=F("stock_confirmed_at")),
                default=Value(now),
                output_field=DateTimeField(),
            )

        with transaction.atomic():
            updated = OrderItemORM.objects.filter(condition).update(**updates)
            if updated != len(item_ids):
                raise Conflict(
                    "Stock status changed for some items while they were being updated",
                    details={"expected": len(item_ids), "updated": updated},
                )

    def _to_domain(self, order_orm: OrderORM) -> Order:
        """Convert ORM model to domain entity."""
        items = [
            OrderLineItem(
                id=item_orm.id,
                order_id=order_orm.id,
                product_name=item_orm.product_name,
                vintage=item_orm.vintage,
                quantity=item_orm.quantity,
                source=StockSource(item_orm.source) if item_orm.source else None,
                stock_status=StockStatus(item_orm.stock_status),
                stock_expected_at=item_orm.stock_expected_at,
                stock_notes=item_orm.stock_notes,
                stock_confirmed_at=item_orm.stock_confirmed_at,
            )
            for item_orm in sorted(order_orm.items.all(), key=lambda item: item.created_at)
        ]
        values = {name: getattr(order_orm, name) for name in ORDER_STATE_FIELDS}
        values["status"] = OrderStatus(order_orm.status)
        if values["suspended_from"]:
            values["suspended_from"] = OrderStatus(values["suspended_from"])
        for name in ("partner_verification_response", "distributor_verification_response"):
            if values[name]:
                values[name] = VerificationResponse(values[name])
        if values["distributor_verification_source"]:
            values["distributor_verification_source"] = VerificationSource(values["distributor_verification_source"])

        return Order(
            id=order_orm.id,
            order_number=order_orm.order_number,
            partner_id=order_orm.partner_id,
            distributor_code=order_orm.distributor.distributor_code if order_orm.distributor else None,
            items=items,
            created_at=order_orm.created_at,
            **values,
        )
