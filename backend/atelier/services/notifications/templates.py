"""
Jinja2 template engine for notification emails.

Each email is three files in the template directory: ``<name>_subject.txt``,
``<name>.html`` and an optional ``<name>.txt`` plain-text body.
"""

from decimal import Decimal
from pathlib import Path
from typing import Any, Dict, Optional, Union

from jinja2 import (
    Environment,
    FileSystemLoader,
    StrictUndefined,
    Template,
    TemplateError,
    TemplateNotFound,
    select_autoescape,
)

from atelier.core.logging import get_logger

logger = get_logger(__name__)

DEFAULT_TEMPLATE_DIR = Path(__file__).resolve().parent.parent.parent / "templates" / "notifications"


class TemplateEngineError(Exception):
    """Base exception for template engine errors."""

    def __init__(self, message: str, template_name: Optional[str] = None):
        super().__init__(message)
        self.template_name = template_name


class TemplateNotFoundError(TemplateEngineError):
    pass


class TemplateRenderError(TemplateEngineError):
    pass


class TemplateEngine:
    """Loads and renders notification email templates."""

    def __init__(
        self,
        template_dir: Optional[Union[str, Path]] = None,
        currency_symbol: str = "₦",
    ):
        self.template_dir = Path(template_dir) if template_dir else DEFAULT_TEMPLATE_DIR
        self.currency_symbol = currency_symbol

        self.env = Environment(
            loader=FileSystemLoader(str(self.template_dir)),
            autoescape=select_autoescape(["html", "xml"]),
            undefined=StrictUndefined,
            trim_blocks=True,
            lstrip_blocks=True,
        )
        self.env.filters["currency"] = self._format_currency

    def render_email(self, template_name: str, context: Dict[str, Any]) -> Dict[str, str]:
        """
        Render an email template.

        Returns:
            Dictionary with ``subject``, ``html_body`` and, when a plain-text
            template exists, ``text_body``

        Raises:
            TemplateNotFoundError: Subject or HTML template missing
            TemplateRenderError: Rendering failed
        """
        try:
            subject = self._load(f"{template_name}_subject.txt").render(**context).strip()
            html_body = self._load(f"{template_name}.html").render(**context)

            result = {"subject": subject, "html_body": html_body}
            try:
                result["text_body"] = self._load(f"{template_name}.txt").render(**context)
            except TemplateNotFound:
                logger.debug("Text template not found, using HTML only", template_name=template_name)

            return result

        except TemplateNotFound as e:
            logger.error("Email template not found", template_name=template_name, error=str(e))
            raise TemplateNotFoundError(
                f"Email template not found: {template_name}",
                template_name=template_name,
            ) from e
        except TemplateError as e:
            logger.error(
                "Email template rendering failed",
                template_name=template_name,
                error=str(e),
                error_type=type(e).__name__,
            )
            raise TemplateRenderError(
                f"Failed to render email template: {e}",
                template_name=template_name,
            ) from e

    def _load(self, template_path: str) -> Template:
        return self.env.get_template(template_path)

    def _format_currency(self, value: Union[Decimal, float, int, None]) -> str:
        amount = Decimal(str(value or 0))
        return f"{self.currency_symbol}{amount:,.2f}"
