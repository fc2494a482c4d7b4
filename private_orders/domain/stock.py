"""
Stock status sub-workflow for order line items.

Each line item moves through the physical custody chain independently of
its order's macro status.
"""
from __future__ import annotations

from enum import Enum

from private_orders.exceptions import PreconditionFailed, ValidationFailed


class StockStatus(str, Enum):
    """Physical location of one line item."""
    PENDING = "pending"
    CONFIRMED = "confirmed"
    IN_TRANSIT_TO_CC = "in_transit_to_cc"
    AT_CC_BONDED = "at_cc_bonded"
    AT_CC_READY_FOR_DISPATCH = "at_cc_ready_for_dispatch"
    IN_TRANSIT_TO_DISTRIBUTOR = "in_transit_to_distributor"
    AT_DISTRIBUTOR = "at_distributor"
    DELIVERED = "delivered"


class StockSource(str, Enum):
    """Where the operator sources an item from at approval time."""
    CC_INVENTORY = "cc_inventory"
    PARTNER_AIRFREIGHT = "partner_airfreight"


STOCK_SEQUENCE: tuple[StockStatus, ...] = tuple(StockStatus)

# Statuses the distributor must act on or expect stock in.
DISTRIBUTOR_STOCK_STATUSES = frozenset({
    StockStatus.AT_CC_BONDED,
    StockStatus.IN_TRANSIT_TO_DISTRIBUTOR,
    StockStatus.AT_DISTRIBUTOR,
})

RECEIPT_SOURCE_STATUSES = frozenset({
    StockStatus.IN_TRANSIT_TO_DISTRIBUTOR,
    StockStatus.AT_CC_BONDED,
})


def parse_stock_status(value) -> StockStatus:
    try:
        return StockStatus(value)
    except ValueError:
        raise ValidationFailed(f"Unknown stock status: {value}") from None


def can_move(current: StockStatus, target: StockStatus) -> bool:
    """Moves are forward-only; staying put is allowed for metadata updates."""
    return STOCK_SEQUENCE.index(target) >= STOCK_SEQUENCE.index(current)


def check_move(current: StockStatus, target: StockStatus, item_label: str = "") -> None:
    if not can_move(current, target):
        raise PreconditionFailed(
            f"Cannot move stock{' for ' + item_label if item_label else ''} "
            f"from {current.value} back to {target.value}",
            details={"current": current.value, "target": target.value},
        )


def check_receipt(current: StockStatus, item_label: str = "") -> None:
    if current not in RECEIPT_SOURCE_STATUSES:
        raise PreconditionFailed(
            f"Item {item_label} is {current.value}; only items in transit to the "
            f"distributor or at the bonded warehouse can be received",
            details={"current": current.value},
        )
