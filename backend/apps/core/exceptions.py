# apps/core/exceptions.py

"""
Service-layer error taxonomy and its REST rendering.

Services raise these; viewsets never catch them. The DRF exception
handler below turns them into ``{"error": {"code", "message", "details"}}``.
"""

import logging
from typing import Any, Dict, List, Optional

from rest_framework import status
from rest_framework.response import Response
from rest_framework.views import exception_handler

logger = logging.getLogger(__name__)


class ServiceException(Exception):
    """Base exception for service layer errors"""

    default_code = 'SERVICE_ERROR'
    status_code = status.HTTP_400_BAD_REQUEST

    def __init__(self, message: str, code: str = None, details: Any = None):
        super().__init__(message)
        self.message = message
        self.code = code or self.default_code
        self.details = details

    def to_dict(self) -> Dict:
        payload = {'code': self.code, 'message': self.message}
        if self.details:
            payload['details'] = self.details
        return payload


class NotFoundError(ServiceException):
    """Entity is missing or belongs to another tenant"""

    default_code = 'NOT_FOUND'
    status_code = status.HTTP_404_NOT_FOUND

    def __init__(self, resource: str, identifier: Any = None):
        message = f"{resource} not found"
        if identifier is not None:
            message = f"{resource} with id '{identifier}' not found"
        super().__init__(message, details={'resource': resource, 'id': _jsonable(identifier)})
        self.resource = resource
        self.identifier = identifier


class InvalidStateTransition(ServiceException):
    """Status change outside the transition table, or an edit outside the editable window"""

    default_code = 'INVALID_STATUS_TRANSITION'
    status_code = status.HTTP_422_UNPROCESSABLE_ENTITY

    def __init__(self, entity_type: str, current: str, target: str = None,
                 entity_id: Any = None, message: str = None):
        if message is None:
            if target is not None:
                message = f"Cannot transition {entity_type} from '{current}' to '{target}'"
            else:
                message = f"Operation not allowed on {entity_type} in status '{current}'"
        super().__init__(
            message,
            code=self.default_code if target is not None else 'INVALID_STATE',
            details={
                'entity_type': entity_type,
                'entity_id': _jsonable(entity_id),
                'current_status': current,
                'target_status': target,
            },
        )
        self.entity_type = entity_type
        self.current = current
        self.target = target
        self.entity_id = entity_id


class ValidationError(ServiceException):
    """Structurally invalid input, raised before any write"""

    default_code = 'VALIDATION_ERROR'
    status_code = status.HTTP_400_BAD_REQUEST

    def __init__(self, message: str, details: Optional[List[Dict]] = None, field: str = None):
        if details is None and field is not None:
            details = [{'field': field, 'message': message}]
        super().__init__(message, details=details)


class ConflictError(ServiceException):
    default_code = 'CONFLICT'
    status_code = status.HTTP_409_CONFLICT


class PermissionDeniedError(ServiceException):
    default_code = 'FORBIDDEN'
    status_code = status.HTTP_403_FORBIDDEN

    def __init__(self, resource: str, action: str, role: str = None):
        super().__init__(
            f"Not allowed to {action} {resource}",
            details={'resource': resource, 'action': action, 'role': role},
        )
        self.resource = resource
        self.action = action


class ConcurrencyError(ServiceException):
    """Lock contention. Retried inside the service layer, never rendered."""

    default_code = 'CONCURRENCY_CONFLICT'
    status_code = status.HTTP_503_SERVICE_UNAVAILABLE


class OperationFailedError(ServiceException):
    """Generic failure surfaced once internal retries are exhausted"""

    default_code = 'OPERATION_FAILED'
    status_code = status.HTTP_503_SERVICE_UNAVAILABLE


def _jsonable(value):
    if value is None or isinstance(value, (int, str)):
        return value
    return str(value)


def service_exception_handler(exc, context):
    """DRF exception handler that renders ServiceException subclasses"""
    if isinstance(exc, ServiceException):
        view = context.get('view')
        if exc.status_code >= 500:
            logger.error(
                "Service failure in %s: %s", view.__class__.__name__ if view else '-', exc.message
            )
        return Response({'error': exc.to_dict()}, status=exc.status_code)

    response = exception_handler(exc, context)
    if response is not None and isinstance(response.data, dict) and 'error' not in response.data:
        code = getattr(exc, 'default_code', 'error')
        detail = response.data.get('detail')
        response.data = {
            'error': {
                'code': str(code).upper(),
                'message': str(detail) if detail is not None else 'Invalid request',
                'details': None if detail is not None else response.data,
            }
        }
    return response
