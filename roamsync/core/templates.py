"""Jinja rendering of org files and highlight sections."""

from __future__ import annotations

import re
from pathlib import Path
from typing import Any, Sequence

from jinja2 import Environment, FileSystemLoader, StrictUndefined, select_autoescape

DEFAULT_TEMPLATES_DIR = Path(__file__).resolve().parent.parent / "templates"

DOCUMENT_TEMPLATE = "document.org.j2"
HIGHLIGHTS_TEMPLATE = "highlights.org.j2"

# Lines org would read as headings or keywords inside a quote block
_ORG_SPECIAL_LINE = re.compile(r"^(\*|#\+)", re.MULTILINE)


def org_escape(text: str) -> str:
    """Comma-escape lines starting with "*" or "#+" so they stay literal."""
    return _ORG_SPECIAL_LINE.sub(r",\1", text)


class TemplateRenderer:
    """Renders the two templates a sync needs.

    A user templates directory, when given, is searched before the
    packaged defaults, so either template can be overridden alone.
    """

    def __init__(self, templates_dir: Path | None = None) -> None:
        search_path = [str(DEFAULT_TEMPLATES_DIR)]
        if templates_dir is not None:
            search_path.insert(0, str(templates_dir))
        self._env = Environment(
            loader=FileSystemLoader(search_path),
            autoescape=select_autoescape(["html", "xml"]),
            undefined=StrictUndefined,
            trim_blocks=True,
            lstrip_blocks=True,
        )
        self._env.filters["org_escape"] = org_escape

    def render(self, template_name: str, **ctx: Any) -> str:
        template = self._env.get_template(template_name)
        return template.render(**ctx)

    def render_highlights(self, highlights: Sequence[Any]) -> str:
        return self.render(HIGHLIGHTS_TEMPLATE, highlights=highlights)

    def render_document(self, **ctx: Any) -> str:
        """Full new file; ctx must include highlights_block."""
        return self.render(DOCUMENT_TEMPLATE, **ctx)
