"""Plain-text email rendering with Jinja2.

Templates live in the ``booking_worker.notifications`` package under
``email_templates/<name>.txt.j2``. Template data comes from producers as a
free-form mapping, so missing keys render as empty and each template
supplies its own fallbacks.
"""

import logging
from typing import Any, Dict, Optional

from jinja2 import Environment, PackageLoader, TemplateError, select_autoescape

from .models import NotificationTemplateError

logger = logging.getLogger(__name__)

KNOWN_TEMPLATES = frozenset(
    {
        "booking_confirmation",
        "meeting_reminder",
        "session_feedback",
        "session_request",
        "meal_plan_sent",
        "booking_rescheduled",
        "booking_cancelled",
        "payment_confirmation",
    }
)
FALLBACK_TEMPLATE = "generic"


class TemplateRenderer:
    """Renders plain-text email bodies from the template registry.

    Unknown template names render the ``generic`` template, which prints
    ``data.message`` or a default line.
    """

    def __init__(self, brand_name: str = "Daiyet", template_dir: str = "email_templates"):
        self.brand_name = brand_name
        self.env = Environment(
            loader=PackageLoader("booking_worker.notifications", template_dir),
            autoescape=select_autoescape(enabled_extensions=("html",), default=False),
            trim_blocks=True,
            lstrip_blocks=True,
            keep_trailing_newline=False,
        )

    def resolve(self, template_name: Optional[str]) -> str:
        """Map a requested template name to the template that will render it."""
        if template_name in KNOWN_TEMPLATES:
            return template_name
        return FALLBACK_TEMPLATE

    def render(self, template_name: Optional[str], data: Optional[Dict[str, Any]] = None) -> str:
        """Render the plain-text body for ``template_name``.

        Args:
            template_name: Registry name such as "meeting_reminder"
            data: Template variables (camelCase keys, as producers send them)

        Returns:
            Rendered body with surrounding whitespace stripped

        Raises:
            NotificationTemplateError: If rendering fails
        """
        resolved = self.resolve(template_name)
        if resolved != template_name:
            logger.debug(
                f"Unknown email template '{template_name}', using {FALLBACK_TEMPLATE}",
                extra={"event": "notification.template.fallback", "template": template_name},
            )

        context = dict(data or {})
        context["brand_name"] = self.brand_name

        try:
            template = self.env.get_template(f"{resolved}.txt.j2")
            return template.render(context).strip()
        except TemplateError as e:
            logger.error(f"Template rendering failed for '{resolved}': {e}", exc_info=True)
            raise NotificationTemplateError(f"Template rendering failed: {e}") from e
