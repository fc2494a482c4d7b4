"""
GraphQL view with idempotency and logging support.
"""
import hashlib
import json
import logging
from uuid import UUID, uuid4

from ariadne import graphql_sync
from django.conf import settings
from django.db import DatabaseError, transaction
from django.http import JsonResponse
from django.views.decorators.csrf import csrf_exempt
from django.views.decorators.http import require_http_methods

from private_orders.api.middleware import ErrorHandler, format_graphql_error
from private_orders.api.schema import schema
from private_orders.domain.actors import Actor, Role
from private_orders.infra.models import IdempotencyKey
from private_orders.infra.pii_masker import mask_pii_in_dict, mask_uuid
from private_orders.infra.repositories import PartnerRepository

logger = logging.getLogger(__name__)

STOCK_MUTATIONS = ("updateItemStockStatus", "bulkUpdateItemStockStatus", "confirmStockReceipt")


def actor_from_request(request) -> Actor | None:
    """
    Build the acting user from ``X-User-ID`` and ``X-User-Role``.

    Partner and distributor users are resolved to their organization through
    membership; an unknown role, a malformed id or a member-less partner user
    yields no actor and every resolver answers ``FORBIDDEN``.
    """
    user_id = request.headers.get("X-User-ID")
    role_name = request.headers.get("X-User-Role")
    if not user_id or not role_name:
        return None
    try:
        user_uuid = UUID(user_id)
        role = Role(role_name)
    except ValueError:
        logger.warning("invalid_actor_headers", extra={"user_id": mask_uuid(user_id), "status": role_name})
        return None
    if role == Role.SYSTEM:
        return None
    if role == Role.ADMIN:
        return Actor(user_id=user_uuid, role=role)
    partner = PartnerRepository().partner_for_user(user_uuid)
    if partner is None:
        return None
    return Actor(user_id=user_uuid, role=role, partner_id=partner.id)


class PrivateOrdersGraphQLView:
    """GraphQL view with idempotency and structured logging."""

    def dispatch(self, request, *args, **kwargs):
        """Handle GraphQL request with idempotency."""
        request_id = request.headers.get("X-Request-ID") or str(uuid4())
        idempotency_key = request.headers.get("Idempotency-Key")
        user_id = request.headers.get("X-User-ID")

        log_data = {
            "request_id": request_id,
            "user_id": user_id,
            "idempotency_key": idempotency_key[:8] + "..." if idempotency_key else None,
            "operation": "graphql",
        }
        logger.info("graphql_request", extra=mask_pii_in_dict(log_data))

        try:
            if request.method == "GET":
                response = JsonResponse({"message": "GraphQL endpoint. Use POST for queries."})
            else:
                response = self._handle_post(request, request_id, idempotency_key)
        except Exception as e:
            response = ErrorHandler.handle_error(e)
            logger.error(
                "graphql_error",
                extra={"request_id": request_id, "user_id": mask_uuid(user_id or ""), "error": str(e)},
            )

        logger.info(
            "graphql_response",
            extra={"request_id": request_id, "status": response.status_code},
        )
        return response

    def _handle_post(self, request, request_id: str, idempotency_key: str | None):
        try:
            data = json.loads(request.body)
        except (json.JSONDecodeError, UnicodeDecodeError):
            return JsonResponse(
                {"error": {"code": "VALIDATION_FAILED", "message": "Invalid JSON"}},
                status=400,
            )
        if not isinstance(data, dict):
            return JsonResponse(
                {"error": {"code": "VALIDATION_FAILED", "message": "Request body must be a JSON object"}},
                status=400,
            )

        actor = actor_from_request(request)
        query = data.get("query") or ""
        is_mutation = query.lstrip().lower().startswith("mutation")
        if not (idempotency_key and is_mutation and actor):
            return self._execute(request, data, actor)

        operation = self._extract_operation(query)
        request_hash = self._create_request_hash(query, data.get("variables") or {})
        existing = IdempotencyKey.objects.filter(
            key=idempotency_key,
            user_id=actor.user_id,
            operation=operation,
        ).first()

        if existing:
            if existing.request_hash == request_hash:
                logger.info(
                    "idempotent_request_cached",
                    extra={
                        "request_id": request_id,
                        "idempotency_key": idempotency_key,
                        "operation": operation,
                    },
                )
                return JsonResponse(existing.response_payload, safe=False)
            logger.warning(
                "idempotency_key_conflict",
                extra={"request_id": request_id, "idempotency_key": idempotency_key},
            )
            return JsonResponse(
                {
                    "error": {
                        "code": "DUPLICATE_REQUEST",
                        "message": "Idempotency key already used with different request",
                    }
                },
                status=409,
            )

        response = self._execute(request, data, actor)
        response_data = json.loads(response.content)
        # Failed mutations may be retried with the same key.
        if response.status_code == 200 and not response_data.get("errors"):
            try:
                with transaction.atomic():
                    IdempotencyKey.objects.create(
                        key=idempotency_key,
                        user_id=actor.user_id,
                        operation=operation,
                        request_hash=request_hash,
                        response_payload=response_data,
                    )
            except DatabaseError as e:
                logger.error(
                    "failed_to_save_idempotency",
                    extra={"request_id": request_id, "error": str(e)},
                )
        return response

    def _create_request_hash(self, query: str, variables: dict) -> str:
        """Create hash of request for deduplication."""
        content = json.dumps({"query": query, "variables": variables}, sort_keys=True)
        return hashlib.sha256(content.encode()).hexdigest()

    def _extract_operation(self, query: str) -> str:
        """Classify a mutation for idempotency bookkeeping."""
        if "createOrder" in query:
            return "CREATE_ORDER"
        if any(name in query for name in STOCK_MUTATIONS):
            return "STOCK_UPDATE"
        if "mutation" in query.lower():
            return "ORDER_TRANSITION"
        return "UNKNOWN"

    def _execute(self, request, data: dict, actor: Actor | None):
        success, result = graphql_sync(
            schema,
            data,
            context_value={"request": request, "actor": actor},
            error_formatter=format_graphql_error,
            debug=settings.DEBUG,
        )
        status_code = 200 if success else 400
        return JsonResponse(result, status=status_code)


@csrf_exempt
@require_http_methods(["GET", "POST"])
def graphql_view(request):
    """GraphQL endpoint."""
    view = PrivateOrdersGraphQLView()
    return view.dispatch(request)
