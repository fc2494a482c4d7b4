"""
Domain events produced by workflow transitions.

Each event becomes exactly one activity log entry and feeds the
notification policy.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from uuid import UUID


class ActivitySubject:
    ORDER = "order"
    STOCK = "stock"


@dataclass
class OrderTransition:
    """Order moved between macro statuses."""
    action: str
    previous_status: str | None
    new_status: str
    notes: str | None = None
    metadata: dict = field(default_factory=dict)
    subject: str = ActivitySubject.ORDER


@dataclass
class StockMovement:
    """One or more line items moved to a stock status in a single batch."""
    action: str
    item_ids: list[UUID]
    item_names: list[str]
    previous_statuses: dict[str, str]
    new_status: str
    expected_at: datetime | None = None
    notes: str | None = None
    subject: str = ActivitySubject.STOCK

    @property
    def item_count(self) -> int:
        return len(self.item_ids)

    @property
    def changed(self) -> bool:
        return any(status != self.new_status for status in self.previous_statuses.values())

    @property
    def metadata(self) -> dict:
        data = {
            "itemIds": [str(item_id) for item_id in self.item_ids],
            "itemCount": self.item_count,
            "itemNames": ", ".join(self.item_names),
            "previousStatuses": self.previous_statuses,
            "newStockStatus": self.new_status,
        }
        if self.expected_at is not None:
            data["stockExpectedAt"] = self.expected_at.isoformat()
        return data
