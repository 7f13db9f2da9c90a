"""
Domain exceptions for the Procurement Plan Workflow Service.

All exceptions follow the standard error format:
{
    "error": {
        "code": "ERROR_CODE",
        "message": "Human-readable description",
        "details": {}
    }
"""

from rest_framework.views import exception_handler
from rest_framework.response import Response
from rest_framework import exceptions as drf_exceptions
from rest_framework import status
import logging

logger = logging.getLogger(__name__)


class DomainError(Exception):
    """Base exception for all domain errors."""

    def __init__(self, code, message, details=None):
        self.code = code
        self.message = message
        self.details = details or {}
        super().__init__(self.message)


class ValidationError(DomainError):
    """Validation error - request body or parameters fail validation."""

    def __init__(self, message, details=None):
        super().__init__("VALIDATION_ERROR", message, details)


class WorkflowViolation(DomainError):
    """
    Illegal transition or unauthorized actor for the current approval level.

    details always carry the current status, the attempted action and the
    actions currently legal for the requesting actor.
    """

    ILLEGAL_TRANSITION = "ILLEGAL_TRANSITION"
    UNAUTHORIZED_ACTOR = "UNAUTHORIZED_ACTOR"

    def __init__(
        self,
        message,
        current_status=None,
        action=None,
        legal_actions=None,
        reason=ILLEGAL_TRANSITION,
        details=None,
    ):
        self.reason = reason
        payload = {
            "status": current_status,
            "action": action,
            "legalActions": list(legal_actions or []),
            "reason": reason,
        }
        payload.update(details or {})
        super().__init__("WORKFLOW_VIOLATION", message, payload)


class ConflictError(DomainError):
    """Version mismatch - the client must refetch and reapply."""

    def __init__(self, message, details=None):
        super().__init__("CONFLICT", message, details)


class ConfigurationError(DomainError):
    """Approval threshold bands are misconfigured."""

    def __init__(self, message, details=None):
        super().__init__("CONFIGURATION_ERROR", message, details)


class StorageUnavailable(DomainError):
    """Backing store timed out or refused the connection. Safe to retry."""

    def __init__(self, message, details=None, retry_after=1):
        self.retry_after = retry_after
        super().__init__("STORAGE_UNAVAILABLE", message, details)


class NotFoundError(DomainError):
    """Requested resource does not exist."""

    def __init__(self, message, details=None):
        super().__init__("NOT_FOUND", message, details)


class PermissionDeniedError(DomainError):
    """Authenticated user lacks the required permission."""

    def __init__(self, message, details=None):
        super().__init__("FORBIDDEN", message, details)


class AuditRecordingFailure(Exception):
    """
    Raised inside the audit recorder when an entry cannot be persisted.

    Never propagated past apps.audit.services.record.
    """

    def __init__(self, message, payload=None):
        self.payload = payload or {}
        super().__init__(message)


STATUS_CODE_MAP = {
    "VALIDATION_ERROR": status.HTTP_400_BAD_REQUEST,
    "WORKFLOW_VIOLATION": status.HTTP_400_BAD_REQUEST,
    "CONFLICT": status.HTTP_409_CONFLICT,
    "CONFIGURATION_ERROR": status.HTTP_422_UNPROCESSABLE_ENTITY,
    "STORAGE_UNAVAILABLE": status.HTTP_503_SERVICE_UNAVAILABLE,
    "NOT_FOUND": status.HTTP_404_NOT_FOUND,
    "FORBIDDEN": status.HTTP_403_FORBIDDEN,
}


def _status_for(exc):
    if (
        isinstance(exc, WorkflowViolation)
        and exc.reason == WorkflowViolation.UNAUTHORIZED_ACTOR
    ):
        return status.HTTP_403_FORBIDDEN
    return STATUS_CODE_MAP.get(exc.code, status.HTTP_400_BAD_REQUEST)


def domain_exception_handler(exc, context):
    """
    Custom exception handler for domain exceptions.

    Returns standard error format:
    {
        "error": {
            "code": "ERROR_CODE",
            "message": "Human-readable description",
            "details": {}
        }
    }
    """
    if isinstance(exc, DomainError):
        response = Response(
            {
                "error": {
                    "code": exc.code,
                    "message": exc.message,
                    "details": exc.details,
                }
            },
            status=_status_for(exc),
        )
        if isinstance(exc, StorageUnavailable):
            response["Retry-After"] = str(exc.retry_after)
        return response

    response = exception_handler(exc, context)

    if response is not None:
        if isinstance(exc, drf_exceptions.ValidationError):
            code = "VALIDATION_ERROR"
        elif isinstance(
            exc, (drf_exceptions.NotAuthenticated, drf_exceptions.AuthenticationFailed)
        ):
            code = "UNAUTHORIZED"
        elif isinstance(exc, drf_exceptions.PermissionDenied):
            code = "FORBIDDEN"
        elif isinstance(exc, drf_exceptions.Throttled):
            code = "THROTTLED"
        elif isinstance(exc, drf_exceptions.NotFound):
            code = "NOT_FOUND"
        else:
            code = "INTERNAL_ERROR"

        if isinstance(response.data, dict) and "detail" in response.data:
            error_data = {
                "error": {
                    "code": code,
                    "message": str(response.data["detail"]),
                    "details": {},
                }
            }
        else:
            error_data = {
                "error": {
                    "code": code,
                    "message": "Request validation failed"
                    if code == "VALIDATION_ERROR"
                    else "An error occurred",
                    "details": response.data,
                }
            }

        response.data = error_data
        return response

    logger.exception("Unhandled exception", exc_info=exc)
    return Response(
        {
            "error": {
                "code": "INTERNAL_ERROR",
                "message": "An internal error occurred",
                "details": {},
            }
        },
        status=status.HTTP_500_INTERNAL_SERVER_ERROR,
    )
