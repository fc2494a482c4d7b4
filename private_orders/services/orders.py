"""
Application services for the order lifecycle.

Every public method is one transition: load and lock the order, check the
actor, apply the domain operation, then save with a status compare-and-swap,
append the activity entry and queue notifications, all in one transaction.
"""
from __future__ import annotations

from datetime import date, datetime, timedelta
from decimal import Decimal
from uuid import UUID, uuid4

from django.db import transaction
from django.utils import timezone

from private_orders.conf import get_setting
from private_orders.domain.actors import (
    Actor,
    Role,
    SYSTEM_ACTOR,
    require_admin,
    require_partner_or_admin,
    require_party,
)
from private_orders.domain.events import OrderTransition
from private_orders.domain.order import (
    FULFILLMENT_STEPS,
    PAYMENT_STEPS,
    VERIFICATION_STATUSES,
    Order,
    OrderLineItem,
    OrderStatus,
    VerificationResponse,
    parse_status,
)
from private_orders.domain.stock import StockSource
from private_orders.exceptions import (
    Conflict,
    Forbidden,
    NotFound,
    PreconditionFailed,
    ValidationFailed,
)
from private_orders.infra.activity import ActivityLogRepository
from private_orders.infra.locks import order_lock
from private_orders.infra.repositories import OrderRepository, PartnerRepository
from private_orders.services.notifications import NotificationEmitter
from private_orders.services.stock import StockWorkflowService
import logging


logger = logging.getLogger(__name__)

ALL_PARTIES = frozenset({Role.ADMIN, Role.WINE_PARTNER, Role.DISTRIBUTOR})
ADMIN_AND_DISTRIBUTOR = frozenset({Role.ADMIN, Role.DISTRIBUTOR})
ADMIN_ONLY = frozenset({Role.ADMIN})

PAYMENT_STEP_ROLES: dict[OrderStatus, frozenset[Role]] = {
    OrderStatus.CLIENT_PAID: ALL_PARTIES,
    OrderStatus.AWAITING_DISTRIBUTOR_PAYMENT: ADMIN_AND_DISTRIBUTOR,
    OrderStatus.DISTRIBUTOR_PAID: ADMIN_ONLY,
    OrderStatus.AWAITING_PARTNER_PAYMENT: ADMIN_ONLY,
    OrderStatus.PARTNER_PAID: ADMIN_ONLY,
}

FULFILLMENT_STEP_ROLES: dict[OrderStatus, frozenset[Role]] = {
    OrderStatus.STOCK_IN_TRANSIT: ADMIN_ONLY,
    OrderStatus.WITH_DISTRIBUTOR: ADMIN_AND_DISTRIBUTOR,
    OrderStatus.SCHEDULING_DELIVERY: ADMIN_AND_DISTRIBUTOR,
    OrderStatus.DELIVERY_SCHEDULED: ADMIN_AND_DISTRIBUTOR,
    OrderStatus.OUT_FOR_DELIVERY: ADMIN_AND_DISTRIBUTOR,
    OrderStatus.DELIVERED: ADMIN_AND_DISTRIBUTOR,
}

# A partner may withdraw its own order until the operator has approved it.
PARTNER_CANCELLABLE = frozenset({
    OrderStatus.DRAFT,
    OrderStatus.SUBMITTED,
    OrderStatus.UNDER_REVIEW,
    OrderStatus.REVISION_REQUESTED,
})


def _parse_items(items: list[dict]) -> list[OrderLineItem]:
    parsed = []
    for item in items:
        try:
            quantity = int(item["quantity"])
            product_name = str(item["productName"]).strip()
        except (KeyError, TypeError, ValueError):
            raise ValidationFailed("Each item needs a productName and an integer quantity") from None
        parsed.append(OrderLineItem(
            product_name=product_name,
            quantity=quantity,
            vintage=str(item.get("vintage") or ""),
        ))
    return parsed


class OrderWorkflowService:
    """Service for order lifecycle transitions."""

    def __init__(
        self,
        order_repo: OrderRepository | None = None,
        partner_repo: PartnerRepository | None = None,
        activity_repo: ActivityLogRepository | None = None,
        notifier: NotificationEmitter | None = None,
    ):
        self.order_repo = order_repo or OrderRepository()
        self.partner_repo = partner_repo or PartnerRepository()
        self.activity_repo = activity_repo or ActivityLogRepository()
        self.notifier = notifier or NotificationEmitter(partner_repo=self.partner_repo)
        self.stock_workflow = StockWorkflowService(self.order_repo, self.activity_repo, self.notifier)

    # -- helpers --------------------------------------------------------

    def _load(self, order_id: UUID) -> Order:
        with order_lock(order_id):
            return self.order_repo.get_or_raise(order_id)

    def _commit(self, order: Order, expected: OrderStatus, event: OrderTransition, actor: Actor) -> Order:
        self.order_repo.save_state(order, expected)
        self.activity_repo.record_event(order.id, actor, event)
        self.notifier.order_transition(order, event, actor)
        logger.info(
            "order_transition",
            extra={
                "order_id": str(order.id),
                "user_id": str(actor.user_id) if actor.user_id else None,
                "operation": event.action,
                "status": event.new_status,
            },
        )
        return order

    @property
    def _default_code(self) -> str:
        return get_setting("DEFAULT_DISTRIBUTOR_CODE")

    # -- creation and editing -------------------------------------------

    @transaction.atomic
    def create_order(
        self,
        actor: Actor,
        items: list[dict],
        client_name: str = "",
        client_id: UUID | None = None,
        partner_id: UUID | None = None,
        order_number: str | None = None,
        total_usd: Decimal | None = None,
        total_aed: Decimal | None = None,
    ) -> Order:
        """Create a draft order for a wine partner."""
        if actor.role == Role.WINE_PARTNER:
            if partner_id is not None and partner_id != actor.partner_id:
                raise Forbidden("Partners can only create orders for their own organization")
            partner_id = actor.partner_id
        elif not actor.is_admin:
            raise Forbidden("Only wine partners and administrators create orders")
        if partner_id is None:
            raise ValidationFailed("partnerId is required")
        partner = self.partner_repo.get_by_id(partner_id)
        if partner is None:
            raise NotFound(f"Partner {partner_id} not found")
        if order_number and self.order_repo.get_by_number(order_number):
            raise Conflict(f"Order number {order_number} is already taken")

        order = Order(
            id=uuid4(),
            order_number=order_number or self.order_repo.next_order_number(),
            partner_id=partner_id,
            client_name=client_name,
            client_id=client_id,
            total_usd=total_usd or Decimal("0.00"),
            total_aed=total_aed or Decimal("0.00"),
        )
        for item in _parse_items(items):
            order.add_item(item)
        self.order_repo.create(order)
        self.activity_repo.record(
            order_id=order.id,
            actor_id=actor.user_id,
            action="order_created",
            previous_status=None,
            new_status=order.status.value,
            metadata={"itemCount": len(order.items), "caseCount": order.case_count},
            actor_partner_id=actor.partner_id,
            actor_role=actor.role.value,
        )
        logger.info("order_created", extra={"order_id": str(order.id), "operation": "create_order"})
        return order

    @transaction.atomic
    def add_item(self, order_id: UUID, actor: Actor, product_name: str, quantity: int, vintage: str = "") -> Order:
        order = self._load(order_id)
        require_partner_or_admin(actor, order.partner_id)
        item = _parse_items([{"productName": product_name, "quantity": quantity, "vintage": vintage}])[0]
        order.add_item(item)
        self.order_repo.save_state(order, order.status)
        self.order_repo.insert_item(item)
        self.activity_repo.record(
            order_id=order.id,
            actor_id=actor.user_id,
            action="item_added",
            previous_status=order.status.value,
            new_status=order.status.value,
            metadata={"itemId": str(item.id), "productName": item.label, "quantity": item.quantity},
            actor_partner_id=actor.partner_id,
            actor_role=actor.role.value,
        )
        return order

    @transaction.atomic
    def remove_item(self, order_id: UUID, item_id: UUID, actor: Actor) -> Order:
        order = self._load(order_id)
        require_partner_or_admin(actor, order.partner_id)
        item = order.remove_item(item_id)
        self.order_repo.save_state(order, order.status)
        self.order_repo.delete_item(item.id)
        self.activity_repo.record(
            order_id=order.id,
            actor_id=actor.user_id,
            action="item_removed",
            previous_status=order.status.value,
            new_status=order.status.value,
            metadata={"itemId": str(item.id), "productName": item.label},
            actor_partner_id=actor.partner_id,
            actor_role=actor.role.value,
        )
        return order

    # -- review ---------------------------------------------------------

    @transaction.atomic
    def submit(self, order_id: UUID, actor: Actor) -> Order:
        order = self._load(order_id)
        require_partner_or_admin(actor, order.partner_id)
        expected = order.status
        event = order.submit(timezone.now())
        return self._commit(order, expected, event, actor)

    @transaction.atomic
    def start_review(self, order_id: UUID, actor: Actor) -> Order:
        order = self._load(order_id)
        require_admin(actor)
        expected = order.status
        event = order.start_review(timezone.now())
        return self._commit(order, expected, event, actor)

    @transaction.atomic
    def approve(
        self,
        order_id: UUID,
        actor: Actor,
        notes: str | None = None,
        item_sources: dict[UUID, str] | None = None,
    ) -> Order:
        order = self._load(order_id)
        require_admin(actor)
        sources = {}
        for item_id, source in (item_sources or {}).items():
            try:
                sources[item_id] = StockSource(source)
            except ValueError:
                raise ValidationFailed(f"Unknown stock source: {source}") from None
        expected = order.status
        now = timezone.now()
        event = order.approve(actor.user_id, now, notes, sources)
        self._commit(order, expected, event, actor)
        if sources:
            self.order_repo.save_item_details([order.item(item_id) for item_id in sources])
            movement = order.confirm_inventory_items(now)
            if movement is not None:
                self.stock_workflow.apply_movement(order, movement, actor, now)
        return order

    @transaction.atomic
    def request_revision(self, order_id: UUID, actor: Actor, reason: str) -> Order:
        order = self._load(order_id)
        require_admin(actor)
        expected = order.status
        event = order.request_revision(reason, timezone.now())
        return self._commit(order, expected, event, actor)

    # -- verification gate ----------------------------------------------

    @transaction.atomic
    def assign_distributor(self, order_id: UUID, distributor_id: UUID, actor: Actor) -> Order:
        order = self._load(order_id)
        require_admin(actor)
        distributor = self.partner_repo.get_by_id(distributor_id)
        if distributor is None:
            raise NotFound(f"Distributor {distributor_id} not found")
        if distributor.partner_type != "distributor":
            raise ValidationFailed(f"{distributor.business_name} is not a distributor")
        expected = order.status
        event = order.assign_distributor(
            distributor.id,
            distributor.distributor_code,
            distributor.requires_client_verification,
            timezone.now(),
            self._default_code,
        )
        return self._commit(order, expected, event, actor)

    def respond_to_verification(
        self,
        order_id: UUID,
        actor: Actor,
        response: str,
        notes: str | None = None,
    ) -> Order:
        """Route a verification answer to the partner or distributor step by role."""
        if actor.role == Role.WINE_PARTNER:
            return self.respond_partner_verification(order_id, actor, response, notes)
        if actor.role == Role.DISTRIBUTOR:
            return self.respond_distributor_verification(order_id, actor, response, notes)
        raise Forbidden("Only the order's partner or distributor can answer verification")

    @transaction.atomic
    def respond_partner_verification(self, order_id: UUID, actor: Actor, response: str, notes: str | None = None) -> Order:
        order = self._load(order_id)
        if not actor.is_partner_of(order.partner_id):
            raise Forbidden("Order belongs to a different wine partner")
        answer = _parse_response(response)
        expected = order.status
        event = order.respond_partner_verification(answer, actor.user_id, timezone.now(), notes)
        return self._commit(order, expected, event, actor)

    @transaction.atomic
    def respond_distributor_verification(self, order_id: UUID, actor: Actor, response: str, notes: str | None = None) -> Order:
        order = self._load(order_id)
        if not actor.is_distributor_of(order.distributor_id):
            raise Forbidden("Order is not assigned to this distributor")
        answer = _parse_response(response)
        expected = order.status
        event = order.respond_distributor_verification(
            answer, actor.user_id, timezone.now(), notes, self._default_code,
        )
        return self._commit(order, expected, event, actor)

    @transaction.atomic
    def unlock_suspended(self, order_id: UUID, actor: Actor, notes: str | None = None) -> Order:
        order = self._load(order_id)
        if not actor.is_distributor_of(order.distributor_id):
            raise Forbidden("Only the assigned distributor can unlock a suspended order")
        expected = order.status
        event = order.unlock_suspended(actor.user_id, timezone.now(), notes, self._default_code)
        return self._commit(order, expected, event, actor)

    @transaction.atomic
    def time_out_verification(self, order_id: UUID, timeout_hours: int) -> Order:
        order = self._load(order_id)
        expected = order.status
        event = order.time_out_verification(timezone.now(), timeout_hours)
        return self._commit(order, expected, event, SYSTEM_ACTOR)

    def suspend_stale_verifications(self, timeout_hours: int | None = None, now: datetime | None = None) -> list[str]:
        """Suspend every order left in a verification step longer than the timeout."""
        hours = timeout_hours if timeout_hours is not None else int(get_setting("VERIFICATION_TIMEOUT_HOURS"))
        cutoff = (now or timezone.now()) - timedelta(hours=hours)
        suspended = []
        for order_id in self.order_repo.ids_in_status(list(VERIFICATION_STATUSES), cutoff):
            try:
                order = self.time_out_verification(order_id, hours)
            except (PreconditionFailed, Conflict, NotFound) as e:
                # Answered or cancelled since the scan
                logger.info("verification_timeout_skipped", extra={"order_id": str(order_id), "error": str(e)})
                continue
            suspended.append(order.order_number)
        return suspended

    # -- payment and fulfillment ----------------------------------------

    @transaction.atomic
    def record_payment_step(
        self,
        order_id: UUID,
        actor: Actor,
        target: str,
        bank_reference: str | None = None,
        notes: str | None = None,
    ) -> Order:
        order = self._load(order_id)
        step = parse_status(target)
        if step not in PAYMENT_STEPS:
            raise ValidationFailed(f"{step.value} is not a payment step")
        require_party(actor, PAYMENT_STEP_ROLES[step], order.partner_id, order.distributor_id)
        expected = order.status
        event = order.record_payment_step(step, timezone.now(), bank_reference, notes)
        return self._commit(order, expected, event, actor)

    @transaction.atomic
    def advance_fulfillment(
        self,
        order_id: UUID,
        actor: Actor,
        target: str,
        scheduled_for: date | None = None,
        notes: str | None = None,
    ) -> Order:
        order = self._load(order_id)
        step = parse_status(target)
        if step not in FULFILLMENT_STEPS:
            raise ValidationFailed(f"{step.value} is not a fulfillment step")
        require_party(actor, FULFILLMENT_STEP_ROLES[step], order.partner_id, order.distributor_id)
        expected = order.status
        event = order.advance_fulfillment(step, timezone.now(), scheduled_for, notes)
        return self._commit(order, expected, event, actor)

    @transaction.atomic
    def cancel(self, order_id: UUID, actor: Actor, reason: str) -> Order:
        order = self._load(order_id)
        if not actor.is_admin:
            if not actor.is_partner_of(order.partner_id):
                raise Forbidden("Only administrators or the order's partner can cancel it")
            if order.status not in PARTNER_CANCELLABLE:
                raise Forbidden("Approved orders can only be cancelled by an administrator")
        expected = order.status
        event = order.cancel(reason, timezone.now())
        return self._commit(order, expected, event, actor)

    # -- reads ----------------------------------------------------------

    def get_order(self, order_id: UUID, actor: Actor) -> Order:
        order = self.order_repo.get_or_raise(order_id)
        if actor.is_admin or actor.is_partner_of(order.partner_id) or actor.is_distributor_of(order.distributor_id):
            return order
        raise Forbidden("Order is not visible to this user")


def _parse_response(value) -> VerificationResponse:
    try:
        return VerificationResponse(value)
    except ValueError:
        raise ValidationFailed(f"Unknown verification response: {value}") from None
