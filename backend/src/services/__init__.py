"""
Service layer for business logic.

Exports the shared exception types and the category registry. Service
classes are imported from their own modules (they depend on utils modules
that themselves import the exception types).
"""

from backend.src.services.exceptions import (
    ServiceError,
    NotFoundError,
    TemplateNotFoundError,
    NotificationCacheError,
    PushGatewayError,
)
from backend.src.services.notification_categories import (
    NotificationCategory,
    Urgency,
    CategoryConfig,
    CATEGORY_CONFIG,
    get_category_config,
)

__all__ = [
    "ServiceError",
    "NotFoundError",
    "TemplateNotFoundError",
    "NotificationCacheError",
    "PushGatewayError",
    "NotificationCategory",
    "Urgency",
    "CategoryConfig",
    "CATEGORY_CONFIG",
    "get_category_config",
]
