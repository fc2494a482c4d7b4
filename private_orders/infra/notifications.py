"""
Notification delivery: in-app and webhook backends plus the outbox consumer.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from uuid import UUID, uuid4

import requests
from django.db import models, transaction
from django.utils.module_loading import import_string

from private_orders.conf import get_setting
from private_orders.infra.models import TimeStampedModel
from private_orders.infra.outbox import NotificationOutbox, OutboxRepository
import logging


logger = logging.getLogger(__name__)


class Notification(TimeStampedModel):
    """In-app notification shown to one user."""
    id = models.UUIDField(primary_key=True, default=uuid4, editable=False)
    user_id = models.UUIDField()
    partner_id = models.UUIDField(null=True, blank=True)
    notification_type = models.CharField(max_length=64)
    title = models.CharField(max_length=255)
    message = models.TextField()
    entity_type = models.CharField(max_length=64)
    entity_id = models.UUIDField()
    action_url = models.CharField(max_length=500, blank=True, default="")
    metadata = models.JSONField(default=dict, blank=True)
    read_at = models.DateTimeField(null=True, blank=True)

    class Meta:
        indexes = [
            models.Index(fields=("user_id", "read_at")),
        ]


@dataclass
class NotificationMessage:
    recipient_id: UUID
    notification_type: str
    title: str
    message: str
    entity_type: str
    entity_id: UUID
    partner_id: UUID | None = None
    action_url: str = ""
    metadata: dict = field(default_factory=dict)

    @classmethod
    def from_outbox(cls, row: NotificationOutbox) -> "NotificationMessage":
        return cls(
            recipient_id=row.recipient_id,
            notification_type=row.notification_type,
            title=row.title,
            message=row.message,
            entity_type=row.entity_type,
            entity_id=row.entity_id,
            partner_id=row.partner_id,
            action_url=row.action_url,
            metadata=row.metadata,
        )

    def as_payload(self) -> dict:
        return {
            "recipientId": str(self.recipient_id),
            "partnerId": str(self.partner_id) if self.partner_id else None,
            "type": self.notification_type,
            "title": self.title,
            "message": self.message,
            "entityType": self.entity_type,
            "entityId": str(self.entity_id),
            "actionUrl": self.action_url,
            "metadata": self.metadata,
        }


class InAppNotificationBackend:
    """Stores the notification for the recipient's in-app inbox."""

    def send(self, message: NotificationMessage, timeout: float) -> None:
        Notification.objects.create(
            user_id=message.recipient_id,
            partner_id=message.partner_id,
            notification_type=message.notification_type,
            title=message.title,
            message=message.message,
            entity_type=message.entity_type,
            entity_id=message.entity_id,
            action_url=message.action_url,
            metadata=message.metadata,
        )


class WebhookNotificationBackend:
    """POSTs the notification as JSON to an external delivery service."""

    def __init__(self, url: str | None = None, session: requests.Session | None = None):
        self.url = url or get_setting("WEBHOOK_URL")
        self.session = session or requests.Session()

    def send(self, message: NotificationMessage, timeout: float) -> None:
        if not self.url:
            raise RuntimeError("NOTIFICATION_WEBHOOK_URL is not configured")
        response = self.session.post(self.url, json=message.as_payload(), timeout=timeout)
        response.raise_for_status()


def get_backend():
    return import_string(get_setting("NOTIFICATION_BACKEND"))()


class NotificationDispatcher:
    """
    Delivers pending outbox rows; a failed send never stops the batch.

    Each row is claimed with a row lock (skipped when held) and re-checked
    before sending, so the after-commit dispatch and the worker command
    never deliver the same row twice.
    """

    def __init__(self, outbox_repo: OutboxRepository | None = None, backend=None):
        self.outbox_repo = outbox_repo or OutboxRepository()
        self.backend = backend or get_backend()
        self.timeout = float(get_setting("NOTIFICATION_TIMEOUT_SECONDS"))
        self.max_retries = int(get_setting("MAX_NOTIFICATION_RETRIES"))

    def process_outbox(self, limit: int = 100, ids: list[UUID] | None = None) -> int:
        """Deliver up to ``limit`` pending rows and return how many were sent."""
        rows = self.outbox_repo.get_pending(limit=limit, ids=ids)
        delivered = 0

        for row in rows:
            try:
                with transaction.atomic():
                    # Another consumer delivered or is delivering this row.
                    claimed = self.outbox_repo.claim(row.id)
                    if claimed is None:
                        continue
                    self.backend.send(NotificationMessage.from_outbox(claimed), timeout=self.timeout)
                    self.outbox_repo.mark_processed(claimed.id)
                delivered += 1
            except Exception as e:
                self.outbox_repo.record_failure(row.id, str(e), self.max_retries)
                logger.error(
                    "notification_delivery_failed",
                    extra={
                        "notification_id": str(row.id),
                        "operation": row.notification_type,
                        "error": str(e),
                    },
                    exc_info=True,
                )

        return delivered
