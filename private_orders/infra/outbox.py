"""
Transactional outbox for notifications.

Transitions enqueue one row per recipient inside their own transaction;
delivery is a separate consumer (see ``notifications.NotificationDispatcher``).
"""
from __future__ import annotations

from uuid import UUID, uuid4

from django.db import models
from django.db.models import F
from django.utils import timezone

from private_orders.infra.models import TimeStampedModel
import logging


logger = logging.getLogger(__name__)


class NotificationOutbox(TimeStampedModel):
    """Pending notification for one recipient."""
    id = models.UUIDField(primary_key=True, default=uuid4, editable=False)
    recipient_id = models.UUIDField()
    partner_id = models.UUIDField(null=True, blank=True)
    notification_type = models.CharField(max_length=64)
    title = models.CharField(max_length=255)
    message = models.TextField()
    entity_type = models.CharField(max_length=64, default="private_client_order")
    entity_id = models.UUIDField()
    action_url = models.CharField(max_length=500, blank=True, default="")
    metadata = models.JSONField(default=dict, blank=True)
    processed = models.BooleanField(default=False)
    processed_at = models.DateTimeField(null=True, blank=True)
    failed = models.BooleanField(default=False)
    retry_count = models.IntegerField(default=0)
    last_error = models.TextField(blank=True, default="")

    class Meta:
        indexes = [
            models.Index(fields=("processed", "failed", "created_at")),
            models.Index(fields=("entity_id",)),
        ]


class OutboxRepository:
    """Repository for notification outbox rows."""

    def enqueue(
        self,
        recipient_id: UUID,
        partner_id: UUID | None,
        notification_type: str,
        title: str,
        message: str,
        entity_id: UUID,
        action_url: str = "",
        metadata: dict | None = None,
    ) -> UUID:
        """Add a notification to the outbox (within the caller's transaction)."""
        row = NotificationOutbox.objects.create(
            recipient_id=recipient_id,
            partner_id=partner_id,
            notification_type=notification_type,
            title=title,
            message=message,
            entity_id=entity_id,
            action_url=action_url,
            metadata=metadata or {},
        )
        return row.id

    def get_pending(self, limit: int = 100, ids: list[UUID] | None = None) -> list[NotificationOutbox]:
        """Undelivered rows, oldest first."""
        queryset = NotificationOutbox.objects.filter(processed=False, failed=False)
        if ids is not None:
            queryset = queryset.filter(id__in=ids)
        return list(queryset.order_by("created_at")[:limit])

    def claim(self, row_id: UUID) -> NotificationOutbox | None:
        """
        Lock one undelivered row for the current transaction.

        Returns ``None`` when the row was delivered meanwhile or another
        consumer holds it. Must be called inside ``transaction.atomic``.
        """
        return (
            NotificationOutbox.objects
            .select_for_update(skip_locked=True)
            .filter(id=row_id, processed=False, failed=False)
            .first()
        )

    def mark_processed(self, row_id: UUID) -> None:
        NotificationOutbox.objects.filter(id=row_id).update(
            processed=True,
            processed_at=timezone.now(),
        )

    def record_failure(self, row_id: UUID, error: str, max_retries: int) -> None:
        """Count the failed attempt; give up once ``max_retries`` is reached."""
        NotificationOutbox.objects.filter(id=row_id).update(
            retry_count=F("retry_count") + 1,
            last_error=error[:2000],
        )
        NotificationOutbox.objects.filter(id=row_id, retry_count__gte=max_retries).update(failed=True)
