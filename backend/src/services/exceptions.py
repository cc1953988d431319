"""
Custom exceptions for service layer.

Provides specific exception types for business logic errors. Public
notification entry points convert these into typed outcomes or processor
results; they surface only from internal helpers and the job runner.
"""

from typing import Any, Optional


class ServiceError(Exception):
    """Base exception for service layer errors."""
    pass


class NotFoundError(ServiceError):
    """Raised when a requested resource is not found."""

    def __init__(self, resource: str, identifier: Any):
        self.resource = resource
        self.identifier = identifier
        super().__init__(f"{resource} {identifier} not found")


class TemplateNotFoundError(ServiceError):
    """Raised when a notification template id is not registered."""

    def __init__(self, template_id: str):
        self.template_id = template_id
        super().__init__(f"Unknown notification template: {template_id}")


class NotificationCacheError(ServiceError):
    """Raised when the gate cache (dedupe / cap store) is unreachable."""
    pass


class PushGatewayError(ServiceError):
    """Raised when a request to the push gateway fails as a whole.

    Covers timeouts, connection errors, non-2xx responses and malformed
    bodies. The whole chunk of messages is treated as failed.
    """

    def __init__(self, message: str, status_code: Optional[int] = None):
        self.message = message
        self.status_code = status_code
        super().__init__(message)
