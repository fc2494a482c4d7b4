"""
Plain-dict views of domain objects for the GraphQL layer.
"""
from private_orders.domain.order import Order, OrderLineItem
from private_orders.infra.activity import ActivityLogEntry


def _value(value):
    return value.value if hasattr(value, "value") else value


def serialize_item(item: OrderLineItem) -> dict:
    return {
        "id": item.id,
        "productName": item.product_name,
        "vintage": item.vintage,
        "quantity": item.quantity,
        "source": _value(item.source),
        "stockStatus": item.stock_status.value,
        "stockExpectedAt": item.stock_expected_at,
        "stockNotes": item.stock_notes,
        "stockConfirmedAt": item.stock_confirmed_at,
    }


def serialize_order(order: Order) -> dict:
    return {
        "id": order.id,
        "orderNumber": order.order_number,
        "status": order.status.value,
        "partnerId": order.partner_id,
        "distributorId": order.distributor_id,
        "clientName": order.client_name,
        "clientId": order.client_id,
        "caseCount": order.case_count,
        "totalUsd": order.total_usd,
        "totalAed": order.total_aed,
        "paymentReference": order.payment_reference,
        "partnerVerification": {
            "response": _value(order.partner_verification_response),
            "respondedAt": order.partner_verification_at,
            "respondedBy": order.partner_verification_by,
            "notes": order.partner_verification_notes,
            "source": None,
        },
        "distributorVerification": {
            "response": _value(order.distributor_verification_response),
            "respondedAt": order.distributor_verification_at,
            "respondedBy": order.distributor_verification_by,
            "notes": order.distributor_verification_notes,
            "source": _value(order.distributor_verification_source),
        },
        "verificationRequestedAt": order.verification_requested_at,
        "suspendedFrom": _value(order.suspended_from),
        "revisionReason": order.revision_reason,
        "cancellationReason": order.cancellation_reason,
        "ccApprovedBy": order.cc_approved_by,
        "createdAt": order.created_at,
        "submittedAt": order.submitted_at,
        "ccApprovedAt": order.cc_approved_at,
        "distributorAssignedAt": order.distributor_assigned_at,
        "clientPaidAt": order.client_paid_at,
        "distributorPaidAt": order.distributor_paid_at,
        "partnerPaidAt": order.partner_paid_at,
        "stockInTransitAt": order.stock_in_transit_at,
        "stockReceivedAt": order.stock_received_at,
        "deliveryScheduledAt": order.delivery_scheduled_at,
        "deliveryScheduledFor": order.delivery_scheduled_for,
        "outForDeliveryAt": order.out_for_delivery_at,
        "deliveredAt": order.delivered_at,
        "cancelledAt": order.cancelled_at,
        "clientPaymentReference": order.client_payment_reference,
        "distributorPaymentReference": order.distributor_payment_reference,
        "partnerPaymentReference": order.partner_payment_reference,
        "items": [serialize_item(item) for item in order.items],
    }


def serialize_activity(entry: ActivityLogEntry) -> dict:
    return {
        "id": entry.id,
        "sequenceNumber": entry.sequence_number,
        "action": entry.action,
        "subject": entry.subject,
        "previousStatus": entry.previous_status,
        "newStatus": entry.new_status,
        "notes": entry.notes,
        "metadata": entry.metadata,
        "actorId": entry.actor_id,
        "actorRole": entry.actor_role,
        "createdAt": entry.created_at,
    }
