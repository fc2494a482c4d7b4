"""
Append-only activity log for orders.

Entries are inserted once per transition inside the transition's
transaction and are never updated or deleted.
"""
from __future__ import annotations

from uuid import UUID, uuid4

from django.db import models

from private_orders.domain.events import ActivitySubject, OrderTransition, StockMovement
from private_orders.infra.models import OrderORM
import logging


logger = logging.getLogger(__name__)


class AppendOnlyError(Exception):
    """Raised on any attempt to rewrite audit history."""


class ActivityLogQuerySet(models.QuerySet):
    def update(self, **kwargs):
        raise AppendOnlyError("Activity log entries cannot be updated")

    def delete(self):
        raise AppendOnlyError("Activity log entries cannot be deleted")

    def for_order(self, order_id: UUID):
        return self.filter(order_id=order_id)

    def stock(self):
        return self.filter(subject=ActivitySubject.STOCK)


class ActivityLogEntry(models.Model):
    """One audited transition of an order or of its line items."""
    SUBJECT_CHOICES = (
        (ActivitySubject.ORDER, "Order"),
        (ActivitySubject.STOCK, "Stock"),
    )

    id = models.UUIDField(primary_key=True, default=uuid4, editable=False)
    order = models.ForeignKey(
        OrderORM,
        on_delete=models.CASCADE,
        related_name="activity",
    )
    actor_id = models.UUIDField(null=True, blank=True)
    actor_partner_id = models.UUIDField(null=True, blank=True)
    actor_role = models.CharField(max_length=32, blank=True, default="")
    action = models.CharField(max_length=64)
    subject = models.CharField(max_length=16, choices=SUBJECT_CHOICES, default=ActivitySubject.ORDER)
    previous_status = models.CharField(max_length=40, null=True, blank=True)
    new_status = models.CharField(max_length=40, null=True, blank=True)
    notes = models.TextField(null=True, blank=True)
    metadata = models.JSONField(default=dict, blank=True)
    sequence_number = models.PositiveIntegerField()
    created_at = models.DateTimeField(auto_now_add=True)

    objects = ActivityLogQuerySet.as_manager()

    class Meta:
        unique_together = [("order", "sequence_number")]
        indexes = [
            models.Index(fields=("order", "sequence_number")),
            models.Index(fields=("order", "subject")),
        ]
        ordering = ["-sequence_number"]

    def save(self, *args, **kwargs):
        if not self._state.adding:
            raise AppendOnlyError("Activity log entries cannot be updated")
        return super().save(*args, **kwargs)

    def delete(self, *args, **kwargs):
        raise AppendOnlyError("Activity log entries cannot be deleted")


class ActivityLogRepository:
    """Insert-only access to the activity log."""

    def record(
        self,
        order_id: UUID,
        actor_id: UUID | None,
        action: str,
        previous_status: str | None,
        new_status: str | None,
        notes: str | None = None,
        metadata: dict | None = None,
        subject: str = ActivitySubject.ORDER,
        actor_partner_id: UUID | None = None,
        actor_role: str = "",
    ) -> ActivityLogEntry:
        """Append one entry; must run inside the transition's transaction."""
        last = (
            ActivityLogEntry.objects
            .filter(order_id=order_id)
            .order_by("-sequence_number")
            .values_list("sequence_number", flat=True)
            .first()
        )
        entry = ActivityLogEntry.objects.create(
            order_id=order_id,
            actor_id=actor_id,
            actor_partner_id=actor_partner_id,
            actor_role=actor_role,
            action=action,
            subject=subject,
            previous_status=previous_status,
            new_status=new_status,
            notes=notes,
            metadata=metadata or {},
            sequence_number=(last or 0) + 1,
        )
        logger.info(
            "activity_recorded",
            extra={"order_id": str(order_id), "operation": action, "status": new_status},
        )
        return entry

    def record_event(self, order_id: UUID, actor, event: OrderTransition | StockMovement) -> ActivityLogEntry:
        if isinstance(event, StockMovement):
            # Mixed batches keep only the per-item map in metadata.
            previous = set(event.previous_statuses.values())
            previous_status = previous.pop() if len(previous) == 1 else None
            new_status = event.new_status
        else:
            previous_status, new_status = event.previous_status, event.new_status
        return self.record(
            order_id=order_id,
            actor_id=actor.user_id,
            action=event.action,
            previous_status=previous_status,
            new_status=new_status,
            notes=event.notes,
            metadata=event.metadata,
            subject=event.subject,
            actor_partner_id=actor.partner_id,
            actor_role=actor.role.value,
        )

    def history(self, order_id: UUID, limit: int = 100) -> list[ActivityLogEntry]:
        """Entries newest first."""
        return list(ActivityLogEntry.objects.for_order(order_id).order_by("-sequence_number")[:limit])

    def stock_timeline(self, order_id: UUID) -> list[ActivityLogEntry]:
        """Stock entries oldest first, for the stock-flow view."""
        return list(ActivityLogEntry.objects.for_order(order_id).stock().order_by("sequence_number"))
