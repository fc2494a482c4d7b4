"""
Admin recovery for orders parked in ``verification_suspended``.

``RECOVERY_PLANS`` maps ``(suspended_from, target)`` to what the reset does,
so adding a recovery target means adding rows, not branches.
"""
from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from uuid import UUID

from private_orders.domain.events import OrderTransition
from private_orders.domain.order import (
    DISTRIBUTOR_VERIFICATION_FIELDS,
    PARTNER_VERIFICATION_FIELDS,
    Order,
    OrderStatus,
    VerificationResponse,
    VerificationSource,
    parse_status,
)
from private_orders.exceptions import PreconditionFailed, ValidationFailed

ADMIN_OVERRIDE_NOTE = "Admin override - verification bypassed"


@dataclass(frozen=True)
class RecoveryPlan:
    clears: tuple[str, ...] = ()
    bypass: bool = False
    requires_partner_response: bool = False


_RESTART = RecoveryPlan(clears=PARTNER_VERIFICATION_FIELDS + DISTRIBUTOR_VERIFICATION_FIELDS)
_RETRY_DISTRIBUTOR = RecoveryPlan(clears=DISTRIBUTOR_VERIFICATION_FIELDS, requires_partner_response=True)
_BYPASS = RecoveryPlan(bypass=True)

RECOVERY_PLANS: dict[tuple[OrderStatus, OrderStatus], RecoveryPlan] = {
    (OrderStatus.AWAITING_PARTNER_VERIFICATION, OrderStatus.AWAITING_PARTNER_VERIFICATION): _RESTART,
    (OrderStatus.AWAITING_PARTNER_VERIFICATION, OrderStatus.AWAITING_DISTRIBUTOR_VERIFICATION): _RETRY_DISTRIBUTOR,
    (OrderStatus.AWAITING_PARTNER_VERIFICATION, OrderStatus.AWAITING_CLIENT_PAYMENT): _BYPASS,
    (OrderStatus.AWAITING_DISTRIBUTOR_VERIFICATION, OrderStatus.AWAITING_PARTNER_VERIFICATION): _RESTART,
    (OrderStatus.AWAITING_DISTRIBUTOR_VERIFICATION, OrderStatus.AWAITING_DISTRIBUTOR_VERIFICATION): _RETRY_DISTRIBUTOR,
    (OrderStatus.AWAITING_DISTRIBUTOR_VERIFICATION, OrderStatus.AWAITING_CLIENT_PAYMENT): _BYPASS,
}

RECOVERY_TARGETS = frozenset(target for _, target in RECOVERY_PLANS)


def parse_recovery_target(value) -> OrderStatus:
    target = parse_status(value)
    if target not in RECOVERY_TARGETS:
        raise ValidationFailed(
            f"{target.value} is not a recovery target",
            details={"allowed": sorted(t.value for t in RECOVERY_TARGETS)},
        )
    return target


def reset_verification(
    order: Order,
    target: OrderStatus,
    admin_id: UUID | None,
    now: datetime,
    notes: str | None = None,
    default_code: str = "ORD",
) -> OrderTransition:
    """Re-inject a suspended order at ``target`` according to its recovery plan."""
    order.require("admin_reset")
    # Orders suspended before the origin was tracked restart from the partner step.
    suspended_from = order.suspended_from or OrderStatus.AWAITING_PARTNER_VERIFICATION
    plan = RECOVERY_PLANS[(suspended_from, target)]
    if plan.requires_partner_response and order.partner_verification_response is None:
        raise PreconditionFailed("The partner has not answered verification yet")

    cleared = order.clear_verification(plan.clears)
    if plan.bypass:
        order.distributor_verification_response = VerificationResponse.VERIFIED
        order.distributor_verification_at = now
        order.distributor_verification_by = admin_id
        order.distributor_verification_notes = ADMIN_OVERRIDE_NOTE
        order.distributor_verification_source = VerificationSource.ADMIN_OVERRIDE
        order.issue_payment_reference(default_code)
    else:
        order.verification_requested_at = now
    order.suspended_from = None

    metadata = {
        "resetBy": "admin",
        "targetStatus": target.value,
        "suspendedFrom": suspended_from.value,
        "clearedFields": cleared,
    }
    if plan.bypass:
        metadata["paymentReference"] = order.payment_reference
    return order.move_to(target, "admin_verification_reset", notes, **metadata)
