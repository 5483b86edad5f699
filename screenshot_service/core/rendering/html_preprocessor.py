"""
HTML Preprocessor
=================

Light rewriting of caller HTML before it is injected into a session.
Complete documents get a minimal reset (no page margin, hidden scrollbars,
background); fragments are wrapped in a document that centers them in the
viewport.
"""

from pathlib import Path
from typing import Any, Optional
import re

import jinja2

from screenshot_service.config.logging import get_logger
from screenshot_service.core.rendering.modes import is_complete_document

logger = get_logger(__name__)

DEFAULT_BACKGROUND = "transparent"

# Colors, keywords and simple functions such as rgba(0, 0, 0, 0.5).
BACKGROUND_PATTERN = re.compile(r"^[#a-zA-Z0-9(),.%\s-]{1,64}$")


class HTMLPreprocessor:
    """Jinja2-based rewriting of caller markup."""

    def __init__(self) -> None:
        template_dir = Path(__file__).parent / "templates"
        self.env = jinja2.Environment(
            loader=jinja2.FileSystemLoader(str(template_dir)),
            autoescape=jinja2.select_autoescape(["html", "xml", "html.j2"]),
        )
        self.logger: Any = logger.bind(component="html_preprocessor")

    def _background(self, background_color: Optional[str]) -> str:
        if not background_color:
            return DEFAULT_BACKGROUND
        if not BACKGROUND_PATTERN.match(background_color):
            self.logger.warning("Ignoring unsafe background color", value=background_color)
            return DEFAULT_BACKGROUND
        return background_color.strip()

    def process(self, html_content: str, background_color: Optional[str] = None) -> str:
        """
        Prepare ``html_content`` for capture.

        Args:
            html_content: Caller-supplied markup
            background_color: CSS background, transparent when omitted

        Returns:
            HTML ready for ``set_content``
        """
        background = self._background(background_color)

        if not is_complete_document(html_content):
            template = self.env.get_template("fragment.html.j2")
            return template.render(content=html_content, background=background)

        reset = self.env.get_template("document_reset.html.j2").render(background=background)
        if "<head>" in html_content:
            return html_content.replace("<head>", f"<head>{reset}", 1)
        if "<body>" in html_content:
            return html_content.replace("<body>", f"{reset}<body>", 1)
        return f"{reset}{html_content}"
