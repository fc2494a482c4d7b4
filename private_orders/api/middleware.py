"""
Error rendering for API responses.
"""
import logging

from ariadne import format_error
from django.http import JsonResponse
from graphql import GraphQLError

from private_orders.exceptions import OrderWorkflowError

logger = logging.getLogger(__name__)


class ErrorHandler:
    """Error handler for API responses."""

    ERROR_CODES = {
        "VALIDATION_FAILED": 400,
        "FORBIDDEN": 403,
        "NOT_FOUND": 404,
        "PRECONDITION_FAILED": 409,
        "CONFLICT": 409,
        "DUPLICATE_REQUEST": 409,
        "INTERNAL_ERROR": 500,
    }

    @staticmethod
    def error_code(error: Exception) -> str:
        if isinstance(error, OrderWorkflowError):
            return error.error_code.upper()
        return "INTERNAL_ERROR"

    @classmethod
    def describe(cls, error: Exception) -> dict:
        """Code, message and details safe to hand to a client."""
        code = cls.error_code(error)
        if code == "INTERNAL_ERROR":
            logger.error(
                "unexpected_error",
                extra={"error": f"{type(error).__name__}: {error}"},
                exc_info=error,
            )
            return {"code": code, "message": "An internal error occurred"}
        return {"code": code, "message": error.message, "details": error.details}

    @classmethod
    def handle_error(cls, error: Exception) -> JsonResponse:
        """Handle error and return JSON response."""
        payload = cls.describe(error)
        return JsonResponse({"error": payload}, status=cls.ERROR_CODES.get(payload["code"], 400))


def format_graphql_error(error: GraphQLError, debug: bool = False) -> dict:
    """Ariadne error formatter adding ``extensions.code`` to every error."""
    original = error.original_error
    if original is None or error.path is None:
        # Parse, validation or variable coercion error from graphql-core.
        formatted = format_error(error, debug)
        formatted.setdefault("extensions", {})["code"] = "GRAPHQL_VALIDATION_FAILED"
        return formatted

    described = ErrorHandler.describe(original)
    formatted = error.formatted
    formatted["message"] = described["message"]
    extensions = formatted.setdefault("extensions", {})
    extensions["code"] = described["code"]
    if described.get("details"):
        extensions["details"] = described["details"]
    if debug and described["code"] == "INTERNAL_ERROR":
        extensions["exception"] = {"type": type(original).__name__, "message": str(original)}
    return formatted
