"""
Domain model for the private client Order aggregate.

The order's macro status is a finite state machine. ``ORDER_TRANSITIONS``
lists every legal edge and ``OPERATION_SOURCES`` lists the statuses each
operation may start from; anything else raises ``PreconditionFailed``.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date, datetime
from decimal import Decimal
from enum import Enum
from uuid import UUID, uuid4

from private_orders.domain.events import OrderTransition, StockMovement
from private_orders.domain.stock import (
    StockSource,
    StockStatus,
    check_move,
    check_receipt,
)
from private_orders.exceptions import PreconditionFailed, ValidationFailed


class OrderStatus(str, Enum):
    """Order macro lifecycle."""
    DRAFT = "draft"
    SUBMITTED = "submitted"
    UNDER_REVIEW = "under_review"
    REVISION_REQUESTED = "revision_requested"
    CC_APPROVED = "cc_approved"
    AWAITING_PARTNER_VERIFICATION = "awaiting_partner_verification"
    AWAITING_DISTRIBUTOR_VERIFICATION = "awaiting_distributor_verification"
    VERIFICATION_SUSPENDED = "verification_suspended"
    AWAITING_CLIENT_PAYMENT = "awaiting_client_payment"
    CLIENT_PAID = "client_paid"
    AWAITING_DISTRIBUTOR_PAYMENT = "awaiting_distributor_payment"
    DISTRIBUTOR_PAID = "distributor_paid"
    AWAITING_PARTNER_PAYMENT = "awaiting_partner_payment"
    PARTNER_PAID = "partner_paid"
    STOCK_IN_TRANSIT = "stock_in_transit"
    WITH_DISTRIBUTOR = "with_distributor"
    SCHEDULING_DELIVERY = "scheduling_delivery"
    DELIVERY_SCHEDULED = "delivery_scheduled"
    OUT_FOR_DELIVERY = "out_for_delivery"
    DELIVERED = "delivered"
    CANCELLED = "cancelled"


class VerificationResponse(str, Enum):
    VERIFIED = "verified"
    DECLINED = "declined"


class VerificationSource(str, Enum):
    """Who produced the distributor verification answer."""
    DISTRIBUTOR = "distributor"
    DISTRIBUTOR_UNLOCK = "distributor_unlock"
    ADMIN_OVERRIDE = "admin_override"


S = OrderStatus

PAYMENT_STEPS: tuple[OrderStatus, ...] = (
    S.CLIENT_PAID,
    S.AWAITING_DISTRIBUTOR_PAYMENT,
    S.DISTRIBUTOR_PAID,
    S.AWAITING_PARTNER_PAYMENT,
    S.PARTNER_PAID,
)

FULFILLMENT_STEPS: tuple[OrderStatus, ...] = (
    S.STOCK_IN_TRANSIT,
    S.WITH_DISTRIBUTOR,
    S.SCHEDULING_DELIVERY,
    S.DELIVERY_SCHEDULED,
    S.OUT_FOR_DELIVERY,
    S.DELIVERED,
)

# Status each payment/fulfillment step must be entered from.
STEP_PREDECESSOR: dict[OrderStatus, OrderStatus] = {}
_chain = (S.AWAITING_CLIENT_PAYMENT, *PAYMENT_STEPS, *FULFILLMENT_STEPS)
for _previous, _next in zip(_chain, _chain[1:]):
    STEP_PREDECESSOR[_next] = _previous

TERMINAL_STATUSES = frozenset({S.DELIVERED, S.CANCELLED})

# Statuses that exist only after a payment gate was opened.
PAYMENT_REFERENCE_STATUSES = frozenset(_chain)

VERIFICATION_STATUSES = frozenset({
    S.AWAITING_PARTNER_VERIFICATION,
    S.AWAITING_DISTRIBUTOR_VERIFICATION,
})

# Statuses that require an assigned distributor.
DISTRIBUTOR_STATUSES = PAYMENT_REFERENCE_STATUSES | VERIFICATION_STATUSES | {S.VERIFICATION_SUSPENDED}

EDITABLE_STATUSES = frozenset({S.DRAFT, S.REVISION_REQUESTED})

# Stock cannot move while the order is still a draft or has been cancelled.
STOCK_LOCKED_STATUSES = frozenset({S.DRAFT, S.CANCELLED})

ORDER_TRANSITIONS: dict[OrderStatus, frozenset[OrderStatus]] = {
    S.DRAFT: frozenset({S.SUBMITTED, S.CANCELLED}),
    S.SUBMITTED: frozenset({S.UNDER_REVIEW, S.CC_APPROVED, S.REVISION_REQUESTED, S.CANCELLED}),
    S.UNDER_REVIEW: frozenset({S.CC_APPROVED, S.REVISION_REQUESTED, S.CANCELLED}),
    S.REVISION_REQUESTED: frozenset({S.UNDER_REVIEW, S.CANCELLED}),
    S.CC_APPROVED: frozenset({
        S.AWAITING_PARTNER_VERIFICATION,
        S.AWAITING_CLIENT_PAYMENT,
        S.CANCELLED,
    }),
    S.AWAITING_PARTNER_VERIFICATION: frozenset({
        S.AWAITING_DISTRIBUTOR_VERIFICATION,
        S.VERIFICATION_SUSPENDED,
        S.CANCELLED,
    }),
    S.AWAITING_DISTRIBUTOR_VERIFICATION: frozenset({
        S.AWAITING_CLIENT_PAYMENT,
        S.VERIFICATION_SUSPENDED,
        S.CANCELLED,
    }),
    S.VERIFICATION_SUSPENDED: frozenset({
        S.AWAITING_PARTNER_VERIFICATION,
        S.AWAITING_DISTRIBUTOR_VERIFICATION,
        S.AWAITING_CLIENT_PAYMENT,
        S.CANCELLED,
    }),
    S.DELIVERED: frozenset(),
    S.CANCELLED: frozenset(),
}
for _step, _previous in STEP_PREDECESSOR.items():
    ORDER_TRANSITIONS[_previous] = frozenset({_step, S.CANCELLED})

OPERATION_SOURCES: dict[str, frozenset[OrderStatus]] = {
    "edit_items": EDITABLE_STATUSES,
    "submit": frozenset({S.DRAFT}),
    "start_review": frozenset({S.SUBMITTED, S.REVISION_REQUESTED}),
    "approve": frozenset({S.SUBMITTED, S.UNDER_REVIEW}),
    "request_revision": frozenset({S.SUBMITTED, S.UNDER_REVIEW}),
    "assign_distributor": frozenset({S.CC_APPROVED}),
    "partner_verification": frozenset({S.AWAITING_PARTNER_VERIFICATION}),
    "distributor_verification": frozenset({S.AWAITING_DISTRIBUTOR_VERIFICATION}),
    "unlock_suspended": frozenset({S.VERIFICATION_SUSPENDED}),
    "time_out_verification": VERIFICATION_STATUSES,
    "admin_reset": frozenset({S.VERIFICATION_SUSPENDED}),
    "record_payment_step": frozenset(STEP_PREDECESSOR[step] for step in PAYMENT_STEPS),
    "advance_fulfillment": frozenset(STEP_PREDECESSOR[step] for step in FULFILLMENT_STEPS),
    "cancel": frozenset(set(OrderStatus) - TERMINAL_STATUSES),
    "update_stock": frozenset(set(OrderStatus) - STOCK_LOCKED_STATUSES),
}

STEP_ACTIONS: dict[OrderStatus, str] = {
    S.CLIENT_PAID: "client_payment_confirmed",
    S.AWAITING_DISTRIBUTOR_PAYMENT: "distributor_payment_requested",
    S.DISTRIBUTOR_PAID: "distributor_payment_confirmed",
    S.AWAITING_PARTNER_PAYMENT: "partner_payment_requested",
    S.PARTNER_PAID: "partner_payment_confirmed",
    S.STOCK_IN_TRANSIT: "stock_dispatched",
    S.WITH_DISTRIBUTOR: "stock_with_distributor",
    S.SCHEDULING_DELIVERY: "delivery_scheduling_started",
    S.DELIVERY_SCHEDULED: "delivery_scheduled",
    S.OUT_FOR_DELIVERY: "out_for_delivery",
    S.DELIVERED: "order_delivered",
}

# Order timestamp field stamped when a step is entered.
STEP_TIMESTAMPS: dict[OrderStatus, str] = {
    S.CLIENT_PAID: "client_paid_at",
    S.DISTRIBUTOR_PAID: "distributor_paid_at",
    S.PARTNER_PAID: "partner_paid_at",
    S.STOCK_IN_TRANSIT: "stock_in_transit_at",
    S.WITH_DISTRIBUTOR: "stock_received_at",
    S.DELIVERY_SCHEDULED: "delivery_scheduled_at",
    S.OUT_FOR_DELIVERY: "out_for_delivery_at",
    S.DELIVERED: "delivered_at",
}

# Per-step bank reference field, for the steps that confirm money received.
STEP_BANK_REFERENCES: dict[OrderStatus, str] = {
    S.CLIENT_PAID: "client_payment_reference",
    S.DISTRIBUTOR_PAID: "distributor_payment_reference",
    S.PARTNER_PAID: "partner_payment_reference",
}

PARTNER_VERIFICATION_FIELDS = (
    "partner_verification_response",
    "partner_verification_at",
    "partner_verification_by",
    "partner_verification_notes",
)

DISTRIBUTOR_VERIFICATION_FIELDS = (
    "distributor_verification_response",
    "distributor_verification_at",
    "distributor_verification_by",
    "distributor_verification_notes",
    "distributor_verification_source",
)


def parse_status(value) -> OrderStatus:
    try:
        return OrderStatus(value)
    except ValueError:
        raise ValidationFailed(f"Unknown order status: {value}") from None


def format_payment_reference(distributor_code: str | None, order_number: str, default_code: str = "ORD") -> str:
    return f"{distributor_code or default_code}-{order_number}"


@dataclass
class OrderLineItem:
    """One product/quantity entry within an order."""
    product_name: str
    quantity: int
    vintage: str = ""
    id: UUID = field(default_factory=uuid4)
    order_id: UUID | None = None
    source: StockSource | None = None
    stock_status: StockStatus = StockStatus.PENDING
    stock_expected_at: datetime | None = None
    stock_notes: str | None = None
    stock_confirmed_at: datetime | None = None

    def __post_init__(self):
        if self.quantity <= 0:
            raise ValidationFailed("Quantity must be a positive number of cases")
        if not self.product_name:
            raise ValidationFailed("Product name is required")

    @property
    def label(self) -> str:
        return f"{self.product_name} {self.vintage}".strip()

    def move_stock(
        self,
        target: StockStatus,
        now: datetime,
        expected_at: datetime | None = None,
        notes: str | None = None,
    ) -> StockStatus:
        """Apply a stock move and return the previous status."""
        check_move(self.stock_status, target, self.label)
        previous = self.stock_status
        self.stock_status = target
        if target == StockStatus.CONFIRMED and previous != StockStatus.CONFIRMED:
            self.stock_confirmed_at = now
        if expected_at is not None:
            self.stock_expected_at = expected_at
        if notes is not None:
            self.stock_notes = notes
        return previous

    def confirm_receipt(self, now: datetime, notes: str | None = None) -> StockStatus:
        check_receipt(self.stock_status, self.label)
        return self.move_stock(StockStatus.AT_DISTRIBUTOR, now, notes=notes)


@dataclass
class Order:
    """Order aggregate root."""
    order_number: str
    partner_id: UUID
    client_name: str = ""
    client_id: UUID | None = None
    id: UUID = field(default_factory=uuid4)
    status: OrderStatus = OrderStatus.DRAFT
    items: list[OrderLineItem] = field(default_factory=list)
    distributor_id: UUID | None = None
    distributor_code: str | None = None
    total_usd: Decimal = Decimal("0.00")
    total_aed: Decimal = Decimal("0.00")
    payment_reference: str | None = None

    partner_verification_response: VerificationResponse | None = None
    partner_verification_at: datetime | None = None
    partner_verification_by: UUID | None = None
    partner_verification_notes: str | None = None
    distributor_verification_response: VerificationResponse | None = None
    distributor_verification_at: datetime | None = None
    distributor_verification_by: UUID | None = None
    distributor_verification_notes: str | None = None
    distributor_verification_source: VerificationSource | None = None
    verification_requested_at: datetime | None = None
    suspended_from: OrderStatus | None = None

    revision_reason: str | None = None
    cancellation_reason: str | None = None
    cc_approved_by: UUID | None = None

    created_at: datetime | None = None
    submitted_at: datetime | None = None
    cc_approved_at: datetime | None = None
    distributor_assigned_at: datetime | None = None
    client_paid_at: datetime | None = None
    distributor_paid_at: datetime | None = None
    partner_paid_at: datetime | None = None
    stock_in_transit_at: datetime | None = None
    stock_received_at: datetime | None = None
    delivery_scheduled_at: datetime | None = None
    delivery_scheduled_for: date | None = None
    out_for_delivery_at: datetime | None = None
    delivered_at: datetime | None = None
    cancelled_at: datetime | None = None
    client_payment_reference: str | None = None
    distributor_payment_reference: str | None = None
    partner_payment_reference: str | None = None

    @property
    def case_count(self) -> int:
        return sum(item.quantity for item in self.items)

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_STATUSES

    def item(self, item_id: UUID) -> OrderLineItem | None:
        for item in self.items:
            if item.id == item_id:
                return item
        return None

    # -- guards ---------------------------------------------------------

    def require(self, operation: str) -> None:
        """Fail closed unless ``operation`` may start from the current status."""
        if self.status not in OPERATION_SOURCES[operation]:
            raise PreconditionFailed(
                f"Cannot {operation.replace('_', ' ')} order {self.order_number} "
                f"in status {self.status.value}",
                details={"operation": operation, "status": self.status.value},
            )

    def move_to(self, target: OrderStatus, action: str, notes: str | None = None, **metadata) -> OrderTransition:
        if target not in ORDER_TRANSITIONS[self.status]:
            raise PreconditionFailed(
                f"Illegal transition {self.status.value} -> {target.value}",
                details={"status": self.status.value, "target": target.value},
            )
        previous = self.status
        self.status = target
        return OrderTransition(
            action=action,
            previous_status=previous.value,
            new_status=target.value,
            notes=notes,
            metadata=metadata,
        )

    def check_invariants(self) -> None:
        if self.status in DISTRIBUTOR_STATUSES and self.distributor_id is None:
            raise ValueError(f"Order {self.order_number} in {self.status.value} has no distributor")
        if self.status == S.CANCELLED:
            return
        has_reference = self.payment_reference is not None
        if has_reference != (self.status in PAYMENT_REFERENCE_STATUSES):
            raise ValueError(
                f"Order {self.order_number} in {self.status.value} "
                f"{'must not' if has_reference else 'must'} carry a payment reference"
            )

    # -- editing --------------------------------------------------------

    def add_item(self, item: OrderLineItem) -> None:
        self.require("edit_items")
        item.order_id = self.id
        self.items.append(item)

    def remove_item(self, item_id: UUID) -> OrderLineItem:
        self.require("edit_items")
        item = self.item(item_id)
        if item is None:
            raise ValidationFailed(f"Item {item_id} is not part of order {self.order_number}")
        self.items.remove(item)
        return item

    # -- review ---------------------------------------------------------

    def submit(self, now: datetime) -> OrderTransition:
        self.require("submit")
        if not self.items:
            raise ValidationFailed("An order needs at least one line item before it can be submitted")
        self.submitted_at = now
        return self.move_to(S.SUBMITTED, "order_submitted", caseCount=self.case_count)

    def start_review(self, now: datetime) -> OrderTransition:
        self.require("start_review")
        return self.move_to(S.UNDER_REVIEW, "review_started")

    def approve(
        self,
        approved_by: UUID | None,
        now: datetime,
        notes: str | None = None,
        item_sources: dict[UUID, StockSource] | None = None,
    ) -> OrderTransition:
        self.require("approve")
        for item_id, source in (item_sources or {}).items():
            item = self.item(item_id)
            if item is None:
                raise ValidationFailed(f"Item {item_id} is not part of order {self.order_number}")
            item.source = source
        self.cc_approved_at = now
        self.cc_approved_by = approved_by
        self.revision_reason = None
        metadata = {}
        if item_sources:
            metadata["stockSources"] = {str(item_id): source.value for item_id, source in item_sources.items()}
        return self.move_to(S.CC_APPROVED, "order_approved", notes, **metadata)

    def confirm_inventory_items(self, now: datetime) -> StockMovement | None:
        """Confirm stock for pending items sourced from C&C inventory."""
        item_ids = [
            item.id for item in self.items
            if item.source == StockSource.CC_INVENTORY and item.stock_status == StockStatus.PENDING
        ]
        if not item_ids:
            return None
        return self.move_items(item_ids, StockStatus.CONFIRMED, now, action="stock_confirmed_from_inventory")

    def request_revision(self, reason: str, now: datetime) -> OrderTransition:
        if not reason or not reason.strip():
            raise ValidationFailed("A reason is required when requesting a revision")
        self.require("request_revision")
        self.revision_reason = reason.strip()
        return self.move_to(S.REVISION_REQUESTED, "revision_requested", self.revision_reason)

    # -- verification gate ----------------------------------------------

    def assign_distributor(
        self,
        distributor_id: UUID,
        distributor_code: str | None,
        requires_verification: bool,
        now: datetime,
        default_code: str = "ORD",
    ) -> OrderTransition:
        self.require("assign_distributor")
        self.distributor_id = distributor_id
        self.distributor_code = distributor_code
        self.distributor_assigned_at = now
        if requires_verification:
            self.verification_requested_at = now
            return self.move_to(
                S.AWAITING_PARTNER_VERIFICATION,
                "distributor_assigned",
                distributorId=str(distributor_id),
                requiresClientVerification=True,
            )
        self.issue_payment_reference(default_code)
        return self.move_to(
            S.AWAITING_CLIENT_PAYMENT,
            "distributor_assigned",
            distributorId=str(distributor_id),
            requiresClientVerification=False,
            paymentReference=self.payment_reference,
        )

    def respond_partner_verification(
        self,
        response: VerificationResponse,
        responded_by: UUID | None,
        now: datetime,
        notes: str | None = None,
    ) -> OrderTransition:
        _check_decline_notes(response, notes)
        self.require("partner_verification")
        self.partner_verification_response = response
        self.partner_verification_at = now
        self.partner_verification_by = responded_by
        self.partner_verification_notes = notes
        if response == VerificationResponse.VERIFIED:
            self.verification_requested_at = now
            return self.move_to(
                S.AWAITING_DISTRIBUTOR_VERIFICATION,
                "partner_verification_verified",
                notes,
                response=response.value,
            )
        self.suspended_from = S.AWAITING_PARTNER_VERIFICATION
        return self.move_to(
            S.VERIFICATION_SUSPENDED,
            "partner_verification_declined",
            notes,
            response=response.value,
        )

    def respond_distributor_verification(
        self,
        response: VerificationResponse,
        responded_by: UUID | None,
        now: datetime,
        notes: str | None = None,
        default_code: str = "ORD",
    ) -> OrderTransition:
        _check_decline_notes(response, notes)
        self.require("distributor_verification")
        if self.partner_verification_response is None:
            raise PreconditionFailed("The partner has not answered verification yet")
        self.distributor_verification_response = response
        self.distributor_verification_at = now
        self.distributor_verification_by = responded_by
        self.distributor_verification_notes = notes
        self.distributor_verification_source = VerificationSource.DISTRIBUTOR
        if response == VerificationResponse.VERIFIED:
            self.issue_payment_reference(default_code)
            return self.move_to(
                S.AWAITING_CLIENT_PAYMENT,
                "distributor_verification_verified",
                notes,
                response=response.value,
                paymentReference=self.payment_reference,
            )
        self.suspended_from = S.AWAITING_DISTRIBUTOR_VERIFICATION
        return self.move_to(
            S.VERIFICATION_SUSPENDED,
            "distributor_verification_declined",
            notes,
            response=response.value,
        )

    def unlock_suspended(
        self,
        unlocked_by: UUID | None,
        now: datetime,
        notes: str | None = None,
        default_code: str = "ORD",
    ) -> OrderTransition:
        """Distributor overrides its own earlier decline and opens the payment gate."""
        self.require("unlock_suspended")
        self.distributor_verification_response = VerificationResponse.VERIFIED
        self.distributor_verification_at = now
        self.distributor_verification_by = unlocked_by
        self.distributor_verification_notes = notes or "Verification unlocked by distributor"
        self.distributor_verification_source = VerificationSource.DISTRIBUTOR_UNLOCK
        suspended_from = self.suspended_from
        self.suspended_from = None
        self.issue_payment_reference(default_code)
        return self.move_to(
            S.AWAITING_CLIENT_PAYMENT,
            "verification_unlocked",
            notes,
            suspendedFrom=suspended_from.value if suspended_from else None,
            paymentReference=self.payment_reference,
        )

    def time_out_verification(self, now: datetime, timeout_hours: int) -> OrderTransition:
        self.require("time_out_verification")
        self.suspended_from = self.status
        return self.move_to(
            S.VERIFICATION_SUSPENDED,
            "verification_timed_out",
            f"No verification response within {timeout_hours} hours",
            timedOutAt=self.status.value,
            timeoutHours=timeout_hours,
        )

    def issue_payment_reference(self, default_code: str = "ORD") -> str:
        """Generate the payment reference once; later calls return the issued one."""
        if self.payment_reference is None:
            self.payment_reference = format_payment_reference(
                self.distributor_code, self.order_number, default_code
            )
        return self.payment_reference

    def clear_verification(self, field_names: tuple[str, ...]) -> list[str]:
        cleared = []
        for name in field_names:
            if getattr(self, name) is not None:
                cleared.append(name)
            setattr(self, name, None)
        return cleared

    # -- payment and fulfillment ----------------------------------------

    def record_payment_step(
        self,
        target: OrderStatus,
        now: datetime,
        bank_reference: str | None = None,
        notes: str | None = None,
    ) -> OrderTransition:
        if target not in PAYMENT_STEPS:
            raise ValidationFailed(f"{target.value} is not a payment step")
        self.require("record_payment_step")
        return self._advance(target, now, notes, bank_reference=bank_reference)

    def advance_fulfillment(
        self,
        target: OrderStatus,
        now: datetime,
        scheduled_for: date | None = None,
        notes: str | None = None,
    ) -> OrderTransition:
        if target not in FULFILLMENT_STEPS:
            raise ValidationFailed(f"{target.value} is not a fulfillment step")
        if target == S.DELIVERY_SCHEDULED and scheduled_for is None:
            raise ValidationFailed("A delivery date is required to schedule delivery")
        self.require("advance_fulfillment")
        if target == S.DELIVERY_SCHEDULED:
            self.delivery_scheduled_for = scheduled_for
        return self._advance(target, now, notes)

    def _advance(self, target: OrderStatus, now: datetime, notes: str | None, bank_reference: str | None = None) -> OrderTransition:
        expected = STEP_PREDECESSOR[target]
        if self.status != expected:
            raise PreconditionFailed(
                f"Order {self.order_number} must be {expected.value} to move to {target.value}, "
                f"it is {self.status.value}",
                details={"status": self.status.value, "target": target.value},
            )
        if target in STEP_TIMESTAMPS:
            setattr(self, STEP_TIMESTAMPS[target], now)
        metadata = {}
        if bank_reference and target in STEP_BANK_REFERENCES:
            setattr(self, STEP_BANK_REFERENCES[target], bank_reference)
            metadata["bankReference"] = bank_reference
        if target == S.DELIVERY_SCHEDULED:
            metadata["scheduledFor"] = self.delivery_scheduled_for.isoformat()
        return self.move_to(target, STEP_ACTIONS[target], notes, **metadata)

    def cancel(self, reason: str, now: datetime) -> OrderTransition:
        if not reason or not reason.strip():
            raise ValidationFailed("A reason is required to cancel an order")
        self.require("cancel")
        self.cancelled_at = now
        self.cancellation_reason = reason.strip()
        return self.move_to(S.CANCELLED, "order_cancelled", self.cancellation_reason)

    # -- stock ----------------------------------------------------------

    def move_items(
        self,
        item_ids: list[UUID],
        target: StockStatus,
        now: datetime,
        expected_at: datetime | None = None,
        notes: str | None = None,
        action: str = "stock_status_updated",
    ) -> StockMovement:
        """Validate every item first, then apply the move to all of them."""
        self.require("update_stock")
        items = self._items_for(item_ids)
        for item in items:
            check_move(item.stock_status, target, item.label)
        previous = {str(item.id): item.move_stock(target, now, expected_at, notes).value for item in items}
        return StockMovement(
            action=action,
            item_ids=[item.id for item in items],
            item_names=[item.label for item in items],
            previous_statuses=previous,
            new_status=target.value,
            expected_at=expected_at,
            notes=notes,
        )

    def receive_items(self, item_ids: list[UUID], now: datetime, notes: str | None = None) -> StockMovement:
        self.require("update_stock")
        items = self._items_for(item_ids)
        for item in items:
            check_receipt(item.stock_status, item.label)
        previous = {str(item.id): item.confirm_receipt(now, notes).value for item in items}
        return StockMovement(
            action="stock_received_at_distributor",
            item_ids=[item.id for item in items],
            item_names=[item.label for item in items],
            previous_statuses=previous,
            new_status=StockStatus.AT_DISTRIBUTOR.value,
            notes=notes,
        )

    def _items_for(self, item_ids: list[UUID]) -> list[OrderLineItem]:
        if not item_ids:
            raise ValidationFailed("At least one item id is required")
        items = []
        for item_id in dict.fromkeys(item_ids):
            item = self.item(item_id)
            if item is None:
                raise ValidationFailed(f"Item {item_id} does not belong to order {self.order_number}")
            items.append(item)
        return items


def _check_decline_notes(response: VerificationResponse, notes: str | None) -> None:
    if response == VerificationResponse.DECLINED and not (notes and notes.strip()):
        raise ValidationFailed("A reason is required when declining verification")
