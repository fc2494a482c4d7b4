"""
Read-only dashboard rollups per role.

Figures are recomputed from the orders table on every call; nothing here
locks or writes.
"""
from __future__ import annotations

from datetime import timedelta
from decimal import Decimal
from uuid import UUID

from django.db.models import Count, DecimalField, Q, QuerySet, Sum, Value
from django.db.models.functions import Coalesce
from django.utils import timezone

from private_orders.conf import get_setting
from private_orders.domain.order import (
    PAYMENT_REFERENCE_STATUSES,
    OrderStatus,
    VerificationResponse,
    VerificationSource,
)
from private_orders.infra.models import OrderORM

S = OrderStatus

ACTIVE_STATUSES = [status.value for status in OrderStatus if status not in (S.DRAFT, S.CANCELLED)]

STATUS_BUCKETS: dict[str, list[OrderStatus]] = {
    "drafts": [S.DRAFT],
    "pendingReview": [S.SUBMITTED, S.UNDER_REVIEW, S.REVISION_REQUESTED],
    "awaitingVerification": [
        S.CC_APPROVED,
        S.AWAITING_PARTNER_VERIFICATION,
        S.AWAITING_DISTRIBUTOR_VERIFICATION,
        S.VERIFICATION_SUSPENDED,
    ],
    "awaitingPayment": [S.AWAITING_CLIENT_PAYMENT, S.CLIENT_PAID, S.AWAITING_DISTRIBUTOR_PAYMENT],
    "inFulfillment": [
        S.DISTRIBUTOR_PAID,
        S.AWAITING_PARTNER_PAYMENT,
        S.PARTNER_PAID,
        S.STOCK_IN_TRANSIT,
        S.WITH_DISTRIBUTOR,
        S.SCHEDULING_DELIVERY,
        S.DELIVERY_SCHEDULED,
        S.OUT_FOR_DELIVERY,
    ],
    "completed": [S.DELIVERED],
    "cancelled": [S.CANCELLED],
}

DISTRIBUTOR_VISIBLE_STATUSES = [
    status.value for status in OrderStatus
    if status in PAYMENT_REFERENCE_STATUSES
    or status in (S.AWAITING_DISTRIBUTOR_VERIFICATION, S.VERIFICATION_SUSPENDED)
]

DISTRIBUTOR_BUCKETS: dict[str, list[OrderStatus]] = {
    "awaitingVerification": [S.AWAITING_DISTRIBUTOR_VERIFICATION, S.VERIFICATION_SUSPENDED],
    "pendingPayment": [S.AWAITING_CLIENT_PAYMENT, S.CLIENT_PAID, S.AWAITING_DISTRIBUTOR_PAYMENT],
    "inTransit": [S.DISTRIBUTOR_PAID, S.AWAITING_PARTNER_PAYMENT, S.PARTNER_PAID, S.STOCK_IN_TRANSIT],
    "atWarehouse": [S.WITH_DISTRIBUTOR, S.SCHEDULING_DELIVERY, S.DELIVERY_SCHEDULED],
    "inDelivery": [S.OUT_FOR_DELIVERY],
    "completed": [S.DELIVERED],
}

GENUINE_SOURCES = [VerificationSource.DISTRIBUTOR.value, VerificationSource.DISTRIBUTOR_UNLOCK.value]

ZERO = Value(Decimal("0.00"), output_field=DecimalField(max_digits=14, decimal_places=2))


def _totals(queryset: QuerySet) -> dict:
    result = queryset.aggregate(
        orders=Count("id"),
        cases=Coalesce(Sum("case_count"), 0),
        usd=Coalesce(Sum("total_usd"), ZERO),
        aed=Coalesce(Sum("total_aed"), ZERO),
    )
    return {
        "orders": result["orders"],
        "cases": result["cases"],
        "valueUsd": result["usd"],
        "valueAed": result["aed"],
    }


def _status_counts(queryset: QuerySet) -> dict[str, int]:
    rows = queryset.values("status").annotate(count=Count("id")).order_by("status")
    return {row["status"]: row["count"] for row in rows}


def _breakdown(counts: dict[str, int], buckets: dict[str, list[OrderStatus]]) -> dict[str, int]:
    return {
        name: sum(counts.get(status.value, 0) for status in statuses)
        for name, statuses in buckets.items()
    }


def _verified_clients(queryset: QuerySet) -> dict[str, int]:
    """Distinct clients with a positive distributor verification, split by provenance."""
    verified = queryset.filter(distributor_verification_response=VerificationResponse.VERIFIED.value)
    return {
        "verifiedClients": verified.filter(distributor_verification_source__in=GENUINE_SOURCES)
        .values("client_name").distinct().count(),
        "overriddenClients": verified.filter(
            distributor_verification_source=VerificationSource.ADMIN_OVERRIDE.value,
        ).values("client_name").distinct().count(),
    }


def _recent(queryset: QuerySet, order_by: str, limit: int = 8) -> list[dict]:
    rows = queryset.select_related("partner").order_by(order_by)[:limit]
    return [
        {
            "id": row.id,
            "orderNumber": row.order_number,
            "status": row.status,
            "clientName": row.client_name,
            "caseCount": row.case_count,
            "totalUsd": row.total_usd,
            "totalAed": row.total_aed,
            "partnerName": row.partner.business_name,
            "createdAt": row.created_at,
        }
        for row in rows
    ]


def _by_partner(queryset: QuerySet, limit: int = 10) -> list[dict]:
    rows = (
        queryset
        .values("partner_id", "partner__business_name")
        .annotate(
            orderCount=Count("id"),
            activeCount=Count("id", filter=~Q(status__in=[S.DRAFT.value, S.CANCELLED.value, S.DELIVERED.value])),
            totalCases=Coalesce(Sum("case_count"), 0),
            totalValueUsd=Coalesce(Sum("total_usd"), ZERO),
            totalValueAed=Coalesce(Sum("total_aed"), ZERO),
        )
        .order_by("-orderCount", "partner__business_name")[:limit]
    )
    return [
        {
            "partnerId": row["partner_id"],
            "partnerName": row["partner__business_name"] or "Unknown Partner",
            "orderCount": row["orderCount"],
            "activeCount": row["activeCount"],
            "totalCases": row["totalCases"],
            "totalValueUsd": row["totalValueUsd"],
            "totalValueAed": row["totalValueAed"],
        }
        for row in rows
    ]


def _kpis(totals: dict, monthly: dict) -> dict:
    return {
        "totalOrders": totals["orders"],
        "totalCases": totals["cases"],
        "totalValueUsd": totals["valueUsd"],
        "totalValueAed": totals["valueAed"],
        "monthlyOrders": monthly["orders"],
        "monthlyCases": monthly["cases"],
        "monthlyValueUsd": monthly["valueUsd"],
        "monthlyValueAed": monthly["valueAed"],
    }


class DashboardService:
    """Rollups for the admin, partner and distributor home screens."""

    def _window_start(self):
        return timezone.now() - timedelta(days=int(get_setting("DASHBOARD_WINDOW_DAYS")))

    def admin(self) -> dict:
        orders = OrderORM.objects.all()
        active = orders.filter(status__in=ACTIVE_STATUSES)
        counts = _status_counts(orders)
        kpis = _kpis(_totals(active), _totals(active.filter(created_at__gte=self._window_start())))
        kpis["pendingApprovals"] = orders.filter(status__in=[S.SUBMITTED.value, S.UNDER_REVIEW.value]).count()
        kpis.update(_verified_clients(orders))
        return {
            "kpis": kpis,
            "statusBreakdown": _breakdown(counts, STATUS_BUCKETS),
            "statusCounts": [{"status": status, "count": count} for status, count in counts.items()],
            "recentOrders": _recent(orders, "-created_at"),
            "ordersByPartner": _by_partner(orders),
        }

    def partner(self, partner_id: UUID) -> dict:
        orders = OrderORM.objects.filter(partner_id=partner_id)
        active = orders.filter(status__in=ACTIVE_STATUSES)
        counts = _status_counts(orders)
        kpis = _kpis(_totals(active), _totals(active.filter(created_at__gte=self._window_start())))
        kpis["totalClients"] = orders.exclude(client_name="").values("client_name").distinct().count()
        kpis.update(_verified_clients(orders))
        return {
            "partnerId": partner_id,
            "kpis": kpis,
            "statusBreakdown": _breakdown(counts, STATUS_BUCKETS),
            "statusCounts": [{"status": status, "count": count} for status, count in counts.items()],
            "recentOrders": _recent(orders, "-created_at"),
        }

    def distributor(self, distributor_id: UUID) -> dict:
        orders = OrderORM.objects.filter(distributor_id=distributor_id, status__in=DISTRIBUTOR_VISIBLE_STATUSES)
        counts = _status_counts(orders)
        kpis = _kpis(_totals(orders), _totals(orders.filter(distributor_assigned_at__gte=self._window_start())))
        return {
            "distributorId": distributor_id,
            "kpis": kpis,
            "statusBreakdown": _breakdown(counts, DISTRIBUTOR_BUCKETS),
            "statusCounts": [{"status": status, "count": count} for status, count in counts.items()],
            "recentOrders": _recent(orders, "-distributor_assigned_at"),
            "ordersByPartner": _by_partner(orders),
        }
