"""
Error taxonomy for the order workflow.

Every failure raised by a workflow operation is an ``OrderWorkflowError``
subclass carrying a stable ``error_code`` and the HTTP-ish ``status_code``
the API layer reports.
"""


class OrderWorkflowError(Exception):
    """Base class for workflow failures."""

    error_code = "workflow_error"
    status_code = 400

    def __init__(self, message: str, *, details: dict | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.details = details or {}


class NotFound(OrderWorkflowError):
    """Order or line item does not exist."""

    error_code = "not_found"
    status_code = 404


class ValidationFailed(OrderWorkflowError):
    """Input is malformed or a mandatory field is missing."""

    error_code = "validation_failed"
    status_code = 400


class Forbidden(OrderWorkflowError):
    """Actor's role or organization may not perform the operation."""

    error_code = "forbidden"
    status_code = 403


class PreconditionFailed(OrderWorkflowError):
    """Operation is not legal from the current status."""

    error_code = "precondition_failed"
    status_code = 409


class Conflict(OrderWorkflowError):
    """Row changed underneath the caller between read and write."""

    error_code = "conflict"
    status_code = 409
