"""
Email content rendering with Jinja2.

Templates live next to this feature under ``templates/`` as
``<name>.html.j2`` / ``<name>.txt.j2`` pairs. ``StrictUndefined`` turns a
missing personalization value into a per-recipient skip instead of an email
that says "Hoi ,".
"""

from dataclasses import dataclass
from datetime import UTC, datetime
from pathlib import Path
from typing import Any
from urllib.parse import quote

from jinja2 import Environment, FileSystemLoader, StrictUndefined, select_autoescape
from jinja2.exceptions import TemplateNotFound, UndefinedError

from engagement.config import settings
from engagement.errors import MissingPersonalization, ValidationError
from engagement.infrastructure.observability.logging import get_logger

logger = get_logger(__name__)

TEMPLATE_DIR = Path(__file__).resolve().parent.parent / "templates"


@dataclass(slots=True)
class RenderedEmail:
    subject: str
    html: str
    text: str


class CampaignRenderer:
    def __init__(self, template_dir: Path = TEMPLATE_DIR, app_url: str | None = None):
        self.app_url = (app_url or settings.APP_URL).rstrip("/")
        self.env = Environment(
            loader=FileSystemLoader(str(template_dir)),
            autoescape=select_autoescape(["html", "html.j2"]),
            undefined=StrictUndefined,
            trim_blocks=True,
            lstrip_blocks=True,
        )
        self.env.filters["url_encode"] = quote
        # Subjects are plain text
        self._subject_env = Environment(undefined=StrictUndefined, autoescape=False)

    def _base_context(self, unsubscribe_token: str | None = None) -> dict[str, Any]:
        unsubscribe_url = f"{self.app_url}/unsubscribe"
        if unsubscribe_token:
            unsubscribe_url += f"?token={quote(unsubscribe_token, safe='')}"
        return {
            "app_url": self.app_url,
            "preferences_url": f"{self.app_url}/settings/notifications",
            "unsubscribe_url": unsubscribe_url,
            "year": datetime.now(UTC).year,
        }

    def render(
        self, template: str, subject: str, context: dict[str, Any], user_id: str | None = None
    ) -> RenderedEmail:
        """
        Render subject, HTML and text bodies for one recipient.

        ``None`` values count as missing.

        Raises:
            MissingPersonalization: A required value is absent for this recipient
            ValidationError: The template does not exist
        """
        values = self._base_context(context.get("unsubscribe_token"))
        values.update({k: v for k, v in context.items() if v is not None})

        try:
            return RenderedEmail(
                subject=self._subject_env.from_string(subject).render(values).strip(),
                html=self.env.get_template(f"{template}.html.j2").render(values),
                text=self.env.get_template(f"{template}.txt.j2").render(values),
            )
        except UndefinedError as e:
            logger.info("Missing personalization", template=template, user_id=user_id, error=str(e))
            raise MissingPersonalization("missing_personalization", user_id=user_id) from e
        except TemplateNotFound as e:
            raise ValidationError(f"Unknown template: {e}", operation="render") from e
