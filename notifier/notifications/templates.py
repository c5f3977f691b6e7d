"""Template rendering for email notifications using Jinja2.

This module wraps Jinja2 template rendering with caching and strict
undefined checking to catch template errors early.
"""

import logging
from typing import Any, Dict, Optional

from jinja2 import Environment, PackageLoader, StrictUndefined, TemplateError

from .models import NotificationTemplateError

logger = logging.getLogger(__name__)

TEMPLATE_SUFFIX = ".html.j2"


class TemplateRenderer:
    """Renders HTML email bodies from the notifier.notifications.email_templates package.

    Templates are addressed by short name ("email-template", "daily-report");
    the ``.html.j2`` suffix is added automatically. Templates are cached for
    reuse across multiple invocations.
    """

    def __init__(self, template_dir: str = "email_templates", environment: Optional[Environment] = None):
        """Initialize template renderer with Jinja2 environment.

        Args:
            template_dir: Directory name within notifier.notifications package
            environment: Pre-built Jinja2 environment (tests use a DictLoader)
        """
        self.env = environment or Environment(
            loader=PackageLoader("notifier.notifications", template_dir),
            autoescape=True,  # Auto-escape HTML for safety
            undefined=StrictUndefined,  # Raise errors for missing variables
        )

        logger.debug(f"Initialized TemplateRenderer with templates from {template_dir}")

    def render(self, template_name: str, variables: Dict[str, Any]) -> str:
        """Render one template to an HTML string.

        Args:
            template_name: Short template name, with or without suffix
            variables: Template variables

        Returns:
            Rendered HTML

        Raises:
            NotificationTemplateError: If the template is missing or rendering fails
        """
        if not template_name or not template_name.strip():
            raise NotificationTemplateError("Template name cannot be empty")

        file_name = template_name.strip()
        if not file_name.endswith(".j2"):
            file_name = f"{file_name}{TEMPLATE_SUFFIX}"

        try:
            template = self.env.get_template(file_name)
            html = template.render(**(variables or {}))
            logger.debug(f"Rendered template {file_name}")
            return html

        except TemplateError as e:
            error_msg = f"Template rendering failed for '{template_name}': {e}"
            logger.error(error_msg, exc_info=True)
            raise NotificationTemplateError(error_msg) from e
        except Exception as e:
            error_msg = f"Unexpected error during template rendering: {e}"
            logger.error(error_msg, exc_info=True)
            raise NotificationTemplateError(error_msg) from e
