"""
Email Templates
Jinja2 rendering of the HTML files in app/templates/
"""

import asyncio
import logging
from pathlib import Path
from typing import Any, Optional, Union

from jinja2 import Environment, FileSystemLoader, StrictUndefined, TemplateError, select_autoescape

from .exceptions import RenderError

logger = logging.getLogger(__name__)

TEMPLATES_DIR = Path(__file__).resolve().parent / "templates"
CONFIRMATION_TEMPLATE = "confirmation.html"


class TemplateRenderer:
    """Renders email templates from a directory on disk"""

    def __init__(self, templates_dir: Optional[Union[str, Path]] = None):
        self.templates_dir = Path(templates_dir) if templates_dir else TEMPLATES_DIR
        self._env = Environment(
            loader=FileSystemLoader(self.templates_dir),
            autoescape=select_autoescape(["html", "xml"]),
            undefined=StrictUndefined,
        )

    def render_sync(self, name: str, **variables: Any) -> str:
        """
        Render a template file.

        Raises:
            RenderError: If the file is missing or unreadable, or the template is invalid
        """
        try:
            template = self._env.get_template(name)
            return template.render(**variables)
        except TemplateError as e:
            logger.error(f"❌ Failed to render template {name}: {e}")
            raise RenderError(f"Failed to render template {name}: {e}") from e
        except (OSError, UnicodeDecodeError) as e:
            logger.error(f"❌ Failed to read template {name}: {e}")
            raise RenderError(f"Failed to read template {name}: {e}") from e

    async def render(self, name: str, **variables: Any) -> str:
        # Run in thread pool to not block the event loop on file IO
        return await asyncio.to_thread(self.render_sync, name, **variables)

    async def render_confirmation(self, confirmation_url: str) -> str:
        """Render the registration confirmation email with the link bound in"""
        return await self.render(CONFIRMATION_TEMPLATE, confirmation_url=confirmation_url)
