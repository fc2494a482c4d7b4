"""
GraphQL schema definition using Ariadne.
"""
from ariadne import (
    QueryType,
    MutationType,
    make_executable_schema,
    ScalarType,
    load_schema_from_path,
)
from datetime import date, datetime
from decimal import Decimal, InvalidOperation
from pathlib import Path
from uuid import UUID

from django.utils import timezone

from private_orders.api.serializers import serialize_activity, serialize_order
from private_orders.domain.actors import Actor, Role, require_admin
from private_orders.exceptions import Forbidden, ValidationFailed
from private_orders.infra.activity import ActivityLogRepository
from private_orders.services import (
    DashboardService,
    OrderWorkflowService,
    RecoveryService,
    StockWorkflowService,
)

# Load schema from .graphql files
SCHEMAS_DIR = Path(__file__).parent / "schemas"
type_defs = "\n".join([
    load_schema_from_path(SCHEMAS_DIR / "common.graphql"),
    load_schema_from_path(SCHEMAS_DIR / "query.graphql"),
    load_schema_from_path(SCHEMAS_DIR / "mutation.graphql"),
])

query = QueryType()
mutation = MutationType()


def _actor(info) -> Actor:
    actor = info.context.get("actor")
    if actor is None:
        raise Forbidden("X-User-ID and X-User-Role headers are required")
    return actor


def _orders() -> OrderWorkflowService:
    return OrderWorkflowService()


def _stock() -> StockWorkflowService:
    return StockWorkflowService()


# -- queries --------------------------------------------------------------


@query.field("order")
def resolve_order(_, info, id):
    return serialize_order(_orders().get_order(id, _actor(info)))


@query.field("orderActivity")
def resolve_order_activity(_, info, orderId, limit=100):
    """Audit history, newest first."""
    _orders().get_order(orderId, _actor(info))
    return [serialize_activity(entry) for entry in ActivityLogRepository().history(orderId, limit=limit)]


@query.field("stockTimeline")
def resolve_stock_timeline(_, info, orderId):
    _orders().get_order(orderId, _actor(info))
    return [serialize_activity(entry) for entry in ActivityLogRepository().stock_timeline(orderId)]


@query.field("adminDashboard")
def resolve_admin_dashboard(_, info):
    require_admin(_actor(info))
    return DashboardService().admin()


@query.field("partnerDashboard")
def resolve_partner_dashboard(_, info, partnerId=None):
    actor = _actor(info)
    if actor.role == Role.WINE_PARTNER:
        if partnerId is not None and partnerId != actor.partner_id:
            raise Forbidden("Partners can only view their own dashboard")
        partnerId = actor.partner_id
    elif not actor.is_admin:
        raise Forbidden("Only wine partners and administrators can view partner dashboards")
    if partnerId is None:
        raise ValidationFailed("partnerId is required")
    return DashboardService().partner(partnerId)


@query.field("distributorDashboard")
def resolve_distributor_dashboard(_, info, distributorId=None):
    actor = _actor(info)
    if actor.role == Role.DISTRIBUTOR:
        if distributorId is not None and distributorId != actor.partner_id:
            raise Forbidden("Distributors can only view their own dashboard")
        distributorId = actor.partner_id
    elif not actor.is_admin:
        raise Forbidden("Only distributors and administrators can view distributor dashboards")
    if distributorId is None:
        raise ValidationFailed("distributorId is required")
    return DashboardService().distributor(distributorId)


# -- order mutations ------------------------------------------------------


@mutation.field("createOrder")
def resolve_create_order(_, info, input: dict):
    """Resolve create order mutation."""
    order = _orders().create_order(
        _actor(info),
        items=input["items"],
        client_name=input.get("clientName") or "",
        client_id=input.get("clientId"),
        partner_id=input.get("partnerId"),
        order_number=input.get("orderNumber"),
        total_usd=input.get("totalUsd"),
        total_aed=input.get("totalAed"),
    )
    return serialize_order(order)


@mutation.field("addOrderItem")
def resolve_add_order_item(_, info, orderId, item: dict):
    order = _orders().add_item(
        orderId, _actor(info), item["productName"], item["quantity"], item.get("vintage") or "",
    )
    return serialize_order(order)


@mutation.field("removeOrderItem")
def resolve_remove_order_item(_, info, orderId, itemId):
    return serialize_order(_orders().remove_item(orderId, itemId, _actor(info)))


@mutation.field("submitOrder")
def resolve_submit_order(_, info, orderId):
    return serialize_order(_orders().submit(orderId, _actor(info)))


@mutation.field("startReview")
def resolve_start_review(_, info, orderId):
    return serialize_order(_orders().start_review(orderId, _actor(info)))


@mutation.field("approveOrder")
def resolve_approve_order(_, info, orderId, notes=None, itemSources=None):
    sources = {entry["itemId"]: entry["source"] for entry in itemSources or []}
    return serialize_order(_orders().approve(orderId, _actor(info), notes, sources))


@mutation.field("requestRevision")
def resolve_request_revision(_, info, orderId, reason):
    return serialize_order(_orders().request_revision(orderId, _actor(info), reason))


@mutation.field("assignDistributor")
def resolve_assign_distributor(_, info, orderId, distributorId):
    return serialize_order(_orders().assign_distributor(orderId, distributorId, _actor(info)))


@mutation.field("respondToVerification")
def resolve_respond_to_verification(_, info, orderId, response, notes=None):
    return serialize_order(_orders().respond_to_verification(orderId, _actor(info), response, notes))


@mutation.field("unlockSuspendedOrder")
def resolve_unlock_suspended_order(_, info, orderId, notes=None):
    return serialize_order(_orders().unlock_suspended(orderId, _actor(info), notes))


@mutation.field("recordPaymentStep")
def resolve_record_payment_step(_, info, orderId, status, bankReference=None, notes=None):
    return serialize_order(_orders().record_payment_step(orderId, _actor(info), status, bankReference, notes))


@mutation.field("advanceFulfillmentStep")
def resolve_advance_fulfillment_step(_, info, orderId, status, scheduledFor=None, notes=None):
    return serialize_order(_orders().advance_fulfillment(orderId, _actor(info), status, scheduledFor, notes))


@mutation.field("cancelOrder")
def resolve_cancel_order(_, info, orderId, reason):
    return serialize_order(_orders().cancel(orderId, _actor(info), reason))


@mutation.field("adminResetVerification")
def resolve_admin_reset_verification(_, info, orderId, targetStatus, notes=None):
    return serialize_order(RecoveryService().reset_verification(orderId, _actor(info), targetStatus, notes))


# -- stock mutations ------------------------------------------------------


@mutation.field("updateItemStockStatus")
def resolve_update_item_stock_status(_, info, itemId, status, expectedAt=None, notes=None):
    return serialize_order(_stock().update_item(itemId, _actor(info), status, expectedAt, notes))


@mutation.field("bulkUpdateItemStockStatus")
def resolve_bulk_update_item_stock_status(_, info, orderId, itemIds, status, expectedAt=None, notes=None):
    return serialize_order(_stock().bulk_update(orderId, itemIds, _actor(info), status, expectedAt, notes))


@mutation.field("confirmStockReceipt")
def resolve_confirm_stock_receipt(_, info, orderId, itemIds, notes=None):
    return serialize_order(_stock().confirm_receipt(orderId, itemIds, _actor(info), notes))


# Define custom scalars
decimal_scalar = ScalarType("Decimal")
uuid_scalar = ScalarType("UUID")
datetime_scalar = ScalarType("DateTime")
date_scalar = ScalarType("Date")
json_scalar = ScalarType("JSON")


@decimal_scalar.serializer
def serialize_decimal(value):
    """Serialize Decimal to string."""
    return str(value)


@decimal_scalar.value_parser
def parse_decimal_value(value):
    """Parse Decimal from string."""
    try:
        return Decimal(str(value))
    except InvalidOperation:
        raise ValueError(f"Invalid decimal: {value}") from None


@uuid_scalar.serializer
def serialize_uuid(value):
    """Serialize UUID to string."""
    return str(value)


@uuid_scalar.value_parser
def parse_uuid_value(value):
    """Parse UUID from string."""
    if isinstance(value, UUID):
        return value
    return UUID(str(value))


@datetime_scalar.serializer
def serialize_datetime(value):
    """Serialize DateTime to ISO format string."""
    if isinstance(value, datetime):
        return value.isoformat()
    return str(value)


@datetime_scalar.value_parser
def parse_datetime_value(value):
    """Parse DateTime from string; values without an offset use the server time zone."""
    if not isinstance(value, datetime):
        value = datetime.fromisoformat(str(value).replace("Z", "+00:00"))
    if timezone.is_naive(value):
        value = timezone.make_aware(value)
    return value


@date_scalar.serializer
def serialize_date(value):
    if isinstance(value, date):
        return value.isoformat()
    return str(value)


@date_scalar.value_parser
def parse_date_value(value):
    if isinstance(value, date):
        return value
    return date.fromisoformat(str(value))


@json_scalar.serializer
def serialize_json(value):
    return value


# Create executable schema
schema = make_executable_schema(
    type_defs,
    query,
    mutation,
    datetime_scalar,
    date_scalar,
    decimal_scalar,
    uuid_scalar,
    json_scalar,
)
