from __future__ import annotations

from uuid import uuid4

from django.db import models

from private_orders.domain.order import OrderStatus, VerificationResponse, VerificationSource
from private_orders.domain.stock import StockSource, StockStatus


PARTNER_TYPE = (
    ("wine_partner", "Wine partner"),
    ("distributor", "Distributor"),
    ("operator", "Platform operator"),
)

OPERATION_TYPE = (
    ("CREATE_ORDER", "Create order"),
    ("ORDER_TRANSITION", "Order transition"),
    ("STOCK_UPDATE", "Stock update"),
    ("UNKNOWN", "Unknown"),
)

ORDER_STATUS_CHOICES = tuple((status.value, status.value.replace("_", " ").capitalize()) for status in OrderStatus)
STOCK_STATUS_CHOICES = tuple((status.value, status.value.replace("_", " ").capitalize()) for status in StockStatus)
STOCK_SOURCE_CHOICES = tuple((source.value, source.value.replace("_", " ").capitalize()) for source in StockSource)
VERIFICATION_CHOICES = tuple((response.value, response.value.capitalize()) for response in VerificationResponse)
VERIFICATION_SOURCE_CHOICES = tuple((source.value, source.value.replace("_", " ")) for source in VerificationSource)


class TimeStampedModel(models.Model):
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        abstract = True


class PartnerORM(TimeStampedModel):
    id = models.UUIDField(primary_key=True, default=uuid4, editable=False)
    business_name = models.CharField(max_length=255)
    partner_type = models.CharField(max_length=32, choices=PARTNER_TYPE)
    distributor_code = models.CharField(max_length=32, blank=True, null=True)
    requires_client_verification = models.BooleanField(default=True)

    class Meta:
        indexes = [
            models.Index(fields=("partner_type",)),
        ]

    def __str__(self) -> str:
        return self.business_name


class PartnerMemberORM(TimeStampedModel):
    id = models.UUIDField(primary_key=True, default=uuid4, editable=False)
    partner = models.ForeignKey(
        PartnerORM,
        on_delete=models.CASCADE,
        related_name="members",
    )
    user_id = models.UUIDField()

    class Meta:
        unique_together = [("partner", "user_id")]
        indexes = [
            models.Index(fields=("user_id",)),
        ]


class OrderORM(TimeStampedModel):
    id = models.UUIDField(primary_key=True, default=uuid4, editable=False)
    order_number = models.CharField(max_length=32, unique=True)
    partner = models.ForeignKey(
        PartnerORM,
        on_delete=models.PROTECT,
        related_name="orders",
    )
    distributor = models.ForeignKey(
        PartnerORM,
        on_delete=models.PROTECT,
        related_name="distributed_orders",
        null=True,
        blank=True,
    )
    client_id = models.UUIDField(null=True, blank=True)
    client_name = models.CharField(max_length=255, blank=True, default="")
    status = models.CharField(max_length=40, choices=ORDER_STATUS_CHOICES, default=OrderStatus.DRAFT.value)

    case_count = models.PositiveIntegerField(default=0)
    total_usd = models.DecimalField(max_digits=14, decimal_places=2, default=0)
    total_aed = models.DecimalField(max_digits=14, decimal_places=2, default=0)
    payment_reference = models.CharField(max_length=64, null=True, blank=True)

    partner_verification_response = models.CharField(max_length=16, choices=VERIFICATION_CHOICES, null=True, blank=True)
    partner_verification_at = models.DateTimeField(null=True, blank=True)
    partner_verification_by = models.UUIDField(null=True, blank=True)
    partner_verification_notes = models.TextField(null=True, blank=True)
    distributor_verification_response = models.CharField(max_length=16, choices=VERIFICATION_CHOICES, null=True, blank=True)
    distributor_verification_at = models.DateTimeField(null=True, blank=True)
    distributor_verification_by = models.UUIDField(null=True, blank=True)
    distributor_verification_notes = models.TextField(null=True, blank=True)
    distributor_verification_source = models.CharField(
        max_length=32, choices=VERIFICATION_SOURCE_CHOICES, null=True, blank=True,
    )
    verification_requested_at = models.DateTimeField(null=True, blank=True)
    suspended_from = models.CharField(max_length=40, choices=ORDER_STATUS_CHOICES, null=True, blank=True)

    revision_reason = models.TextField(null=True, blank=True)
    cancellation_reason = models.TextField(null=True, blank=True)
    cc_approved_by = models.UUIDField(null=True, blank=True)

    submitted_at = models.DateTimeField(null=True, blank=True)
    cc_approved_at = models.DateTimeField(null=True, blank=True)
    distributor_assigned_at = models.DateTimeField(null=True, blank=True)
    client_paid_at = models.DateTimeField(null=True, blank=True)
    distributor_paid_at = models.DateTimeField(null=True, blank=True)
    partner_paid_at = models.DateTimeField(null=True, blank=True)
    stock_in_transit_at = models.DateTimeField(null=True, blank=True)
    stock_received_at = models.DateTimeField(null=True, blank=True)
    delivery_scheduled_at = models.DateTimeField(null=True, blank=True)
    delivery_scheduled_for = models.DateField(null=True, blank=True)
    out_for_delivery_at = models.DateTimeField(null=True, blank=True)
    delivered_at = models.DateTimeField(null=True, blank=True)
    cancelled_at = models.DateTimeField(null=True, blank=True)
    client_payment_reference = models.CharField(max_length=128, null=True, blank=True)
    distributor_payment_reference = models.CharField(max_length=128, null=True, blank=True)
    partner_payment_reference = models.CharField(max_length=128, null=True, blank=True)

    class Meta:
        indexes = [
            models.Index(fields=("partner", "status")),
            models.Index(fields=("distributor", "status")),
            models.Index(fields=("status", "created_at")),
        ]

    def __str__(self) -> str:
        return self.order_number


class OrderItemORM(TimeStampedModel):
    id = models.UUIDField(primary_key=True, default=uuid4, editable=False)
    order = models.ForeignKey(
        OrderORM,
        on_delete=models.CASCADE,
        related_name="items",
    )
    product_name = models.CharField(max_length=255)
    vintage = models.CharField(max_length=16, blank=True, default="")
    quantity = models.PositiveIntegerField()
    source = models.CharField(max_length=32, choices=STOCK_SOURCE_CHOICES, null=True, blank=True)
    stock_status = models.CharField(max_length=40, choices=STOCK_STATUS_CHOICES, default=StockStatus.PENDING.value)
    stock_expected_at = models.DateTimeField(null=True, blank=True)
    stock_notes = models.TextField(null=True, blank=True)
    stock_confirmed_at = models.DateTimeField(null=True, blank=True)

    class Meta:
        indexes = [
            models.Index(fields=("order",)),
            models.Index(fields=("order", "stock_status")),
        ]


class IdempotencyKey(TimeStampedModel):
    key = models.CharField(max_length=255)
    user_id = models.UUIDField()
    operation = models.CharField(max_length=32, choices=OPERATION_TYPE)
    request_hash = models.CharField(max_length=255)
    response_payload = models.JSONField()

    class Meta:
        unique_together = [("key", "user_id", "operation")]
        indexes = [
            models.Index(fields=("request_hash",)),
        ]


class OrderNumberSequenceORM(models.Model):
    name = models.CharField(max_length=32, primary_key=True)
    last_value = models.PositiveIntegerField(default=0)
