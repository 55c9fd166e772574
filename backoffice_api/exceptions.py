"""
Domain error taxonomy for the back-office services and the DRF handler
that renders it.

Services raise these; views let them propagate and the handler maps each
kind to an HTTP status with the usual ``{'error', 'message', 'details'}``
response body.
"""

import logging

from rest_framework import status
from rest_framework.response import Response
from rest_framework.views import exception_handler

logger = logging.getLogger(__name__)


class BackofficeError(Exception):
    """Base class for errors raised by the back-office services"""

    default_message = 'Back-office operation failed'
    status_code = status.HTTP_400_BAD_REQUEST
    error_kind = 'error'

    def __init__(self, message=None, details=None):
        self.message = message or self.default_message
        self.details = details or {}
        super().__init__(self.message)

    def as_dict(self):
        payload = {'error': self.error_kind, 'message': self.message}
        if self.details:
            payload['details'] = self.details
        return payload


class ValidationError(BackofficeError):
    """Malformed or out-of-range input"""
    default_message = 'Invalid input'
    status_code = status.HTTP_400_BAD_REQUEST
    error_kind = 'validation_error'


class PermissionDeniedError(BackofficeError):
    """Caller may not perform the action (bad signed link, missing role)"""
    default_message = 'Permission denied'
    status_code = status.HTTP_403_FORBIDDEN
    error_kind = 'permission_denied'


class NotFoundError(BackofficeError):
    default_message = 'Resource not found'
    status_code = status.HTTP_404_NOT_FOUND
    error_kind = 'not_found'


class ConflictError(BackofficeError):
    """The request conflicts with the current state of a record"""
    default_message = 'Conflicting state'
    status_code = status.HTTP_409_CONFLICT
    error_kind = 'conflict'


class InvalidTransitionError(ConflictError):
    default_message = 'Status transition not allowed'
    error_kind = 'invalid_transition'

    def __init__(self, current_status, action, allowed=None):
        details = {'current_status': current_status, 'action': action}
        if allowed:
            details['allowed_statuses'] = list(allowed)
        super().__init__(
            f"Cannot {action} a purchase order in '{current_status}' status",
            details,
        )


class InsufficientStockError(BackofficeError):
    """A deduction would take stock below zero while policy forbids it"""
    default_message = 'Insufficient stock'
    status_code = status.HTTP_409_CONFLICT
    error_kind = 'insufficient_stock'

    def __init__(self, message=None, shortages=None):
        self.shortages = shortages or []
        super().__init__(message, {'shortages': self.shortages} if self.shortages else None)


class ExternalServiceError(BackofficeError):
    """A side effect (billing, notification) failed after the core change committed"""
    default_message = 'Downstream side effect failed'
    status_code = status.HTTP_502_BAD_GATEWAY
    error_kind = 'external_service_error'


def backoffice_exception_handler(exc, context):
    """Render domain errors; defer everything else to DRF"""
    if isinstance(exc, BackofficeError):
        view = context.get('view')
        logger.info(
            "%s in %s: %s",
            exc.__class__.__name__,
            view.__class__.__name__ if view else 'unknown view',
            exc.message,
        )
        return Response(exc.as_dict(), status=exc.status_code)

    return exception_handler(exc, context)
