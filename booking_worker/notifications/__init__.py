"""Email notification delivery.

This package provides:
- NotificationGateway: renders and sends transactional email via Brevo
- TemplateRenderer: Jinja2 plain-text templates shipped with the package
- DeliveryResult: outcome of one send attempt
"""

from .gateway import BREVO_API_URL, MISSING_API_KEY_ERROR, NotificationGateway
from .models import DeliveryResult, NotificationError, NotificationTemplateError
from .templates import FALLBACK_TEMPLATE, KNOWN_TEMPLATES, TemplateRenderer

__all__ = [
    "NotificationGateway",
    "TemplateRenderer",
    "DeliveryResult",
    "NotificationError",
    "NotificationTemplateError",
    "BREVO_API_URL",
    "MISSING_API_KEY_ERROR",
    "KNOWN_TEMPLATES",
    "FALLBACK_TEMPLATE",
]
