"""Theme rendering for Quire.

This module uses Jinja2 to turn rendered documents, sections and taxonomy
listings into HTML pages. Templates are looked up in the project's
``templates/`` directory first, then in the active theme, then in a small set
of built-in templates so a bare project still builds.

Key classes:
- RenderedPage: A document together with its rendered HTML.
- Paginator: One page of a paginated section listing.
- TemplateEngine: Handles template lookup and provides context to templates.
"""

from __future__ import annotations

import logging
from collections.abc import Callable, Sequence
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

from jinja2 import ChoiceLoader, DictLoader, Environment, FileSystemLoader, select_autoescape
from markupsafe import Markup
from pygments.formatters import HtmlFormatter

from .content import ContentDocument, Section
from .html_utils import escape_html, join_base_url
from .renderers import Heading
from .utils import slugify

__all__ = [
    "BUILTIN_TEMPLATES",
    "Paginator",
    "RenderedPage",
    "SectionPage",
    "TemplateEngine",
    "render_toc",
]

logger = logging.getLogger(__name__)

BUILTIN_TEMPLATES = {
    "base.html": (
        "<!doctype html>\n<html lang=\"{{ config.language }}\">\n<head>\n"
        "<meta charset=\"utf-8\">\n"
        "<title>{% block title %}{{ config.title }}{% endblock %}</title>\n"
        "</head>\n<body>\n{% block content %}{% endblock %}\n</body>\n</html>\n"
    ),
    "page.html": (
        "{% extends \"base.html\" %}\n"
        "{% block title %}{{ page.title }} | {{ config.title }}{% endblock %}\n"
        "{% block content %}<article>\n<h1>{{ page.title }}</h1>\n"
        "{% if page.date %}<time datetime=\"{{ page.date }}\">{{ page.date }}</time>{% endif %}\n"
        "{% if page.toc_enabled %}<nav class=\"toc\">{{ render_toc(page) }}</nav>{% endif %}\n"
        "{{ page.content | safe }}\n</article>{% endblock %}\n"
    ),
    "section.html": (
        "{% extends \"base.html\" %}\n"
        "{% block title %}{{ section.title }} | {{ config.title }}{% endblock %}\n"
        "{% block content %}<h1>{{ section.title }}</h1>\n<ul>\n"
        "{% for p in paginator.pages %}<li><a href=\"{{ p.permalink }}\">{{ p.title }}</a></li>\n"
        "{% endfor %}</ul>{% endblock %}\n"
    ),
    "index.html": (
        "{% extends \"base.html\" %}\n"
        "{% block content %}<h1>{{ section.title }}</h1>\n{{ section_content | safe }}\n"
        "{% set posts = get_section(\"posts\") %}{% if posts %}<ul>\n"
        "{% for p in posts.pages[:5] %}"
        "<li><a href=\"{{ p.permalink }}\">{{ p.title }}</a></li>\n"
        "{% endfor %}</ul>{% endif %}{% endblock %}\n"
    ),
    "taxonomy_list.html": (
        "{% extends \"base.html\" %}\n"
        "{% block content %}<h1>{{ taxonomy }}</h1>\n<ul>\n"
        "{% for term, pages in terms.items() %}"
        "<li><a href=\"{{ url_for('/' ~ taxonomy ~ '/' ~ (term | slugify) ~ '/') }}\">{{ term }}</a> ({{ pages | length }})</li>\n"
        "{% endfor %}</ul>{% endblock %}\n"
    ),
    "taxonomy_single.html": (
        "{% extends \"base.html\" %}\n"
        "{% block content %}<h1>{{ term }}</h1>\n<ul>\n"
        "{% for p in pages %}<li><a href=\"{{ p.permalink }}\">{{ p.title }}</a></li>\n"
        "{% endfor %}</ul>{% endblock %}\n"
    ),
    "404.html": (
        "{% extends \"base.html\" %}\n"
        "{% block content %}<h1>Page not found</h1>{% endblock %}\n"
    ),
}


@dataclass
class RenderedPage:
    """A document with its rendered HTML.

    Attribute access falls through to the underlying ContentDocument, so
    templates can use ``page.title``, ``page.date`` or ``page.tags``.

    Attributes:
        document: The source document.
        content: Rendered body HTML.
        toc: Headings collected while rendering.
        summary: HTML before the summary marker, if any.
        permalink: Absolute (or root-relative) URL of the page.
    """

    document: ContentDocument
    content: str
    toc: list[Heading] = field(default_factory=list)
    summary: str | None = None
    permalink: str = ""

    @property
    def toc_enabled(self) -> bool:
        return self.document.front_matter.toc

    @property
    def comments_enabled(self) -> bool:
        return self.document.front_matter.comment

    def __getattr__(self, name: str) -> Any:
        if name == "document":
            raise AttributeError(name)
        return getattr(self.document, name)


@dataclass
class SectionPage:
    """A section with its rendered, ordered documents.

    Attribute access falls through to the underlying Section.
    """

    section: Section
    pages: list[RenderedPage] = field(default_factory=list)

    def __getattr__(self, name: str) -> Any:
        if name == "section":
            raise AttributeError(name)
        return getattr(self.section, name)


@dataclass
class Paginator:
    """One page of a section listing.

    Attributes:
        pages: The documents on this page.
        current_index: 1-based page number.
        number_pagers: Total number of pages.
        previous: URL of the previous page, if any.
        next: URL of the next page, if any.
    """

    pages: Sequence[RenderedPage]
    current_index: int = 1
    number_pagers: int = 1
    previous: str | None = None
    next: str | None = None


def render_toc(page: RenderedPage) -> Markup:
    """Render a table of contents as nested HTML lists from page headings.

    Args:
        page: Page whose ``toc`` holds Heading objects.

    Returns:
        Markup-safe HTML of the nested TOC, or empty Markup without headings.
    """
    if not page.toc:
        return Markup("")

    html_parts: list[str] = []
    level_stack: list[int] = []
    for heading in page.toc:
        level = heading.level
        while level_stack and level_stack[-1] > level:
            level_stack.pop()
            html_parts.append("</li></ul>")
        if level_stack and level_stack[-1] == level:
            html_parts.append("</li>")
        else:
            html_parts.append("<ul>")
            level_stack.append(level)
        text = escape_html(Markup(heading.text).striptags())
        html_parts.append(f'<li><a href="#{escape_html(heading.id)}">{text}</a>')
    while level_stack:
        level_stack.pop()
        html_parts.append("</li></ul>")
    return Markup("".join(html_parts))


class TemplateEngine:
    """Template rendering engine using Jinja2.

    Attributes:
        project_root: Project directory holding ``templates/`` and ``themes/``.
        config: Site configuration.
        env: Jinja2 environment.
    """

    def __init__(
        self,
        project_root: Path,
        config: dict[str, Any],
        get_section: Callable[[str], Any] | None = None,
    ):
        self.project_root = project_root
        self.config = config
        search_path = [project_root / "templates"]
        theme = config.get("theme")
        if theme:
            theme_dir = project_root / "themes" / theme / "templates"
            if theme_dir.is_dir():
                search_path.append(theme_dir)
            else:
                logger.warning("Theme '%s' not found at %s; using built-in templates", theme, theme_dir)
        self.env = Environment(
            loader=ChoiceLoader(
                [FileSystemLoader([str(p) for p in search_path]), DictLoader(BUILTIN_TEMPLATES)]
            ),
            autoescape=select_autoescape(["html", "xml"]),
        )
        self.env.filters["slugify"] = slugify
        self.env.globals["config"] = config
        self.env.globals["url_for"] = self.url_for
        self.env.globals["render_toc"] = render_toc
        self.env.globals["pygments_css"] = self._pygments_css
        self.env.globals["get_section"] = get_section or (lambda name: None)

    @staticmethod
    def _pygments_css() -> str:
        return HtmlFormatter().get_style_defs(".highlight")

    def url_for(self, path: str) -> str:
        """Generate a URL for a site path, prefixed with ``base_url``."""
        if path.startswith(("http://", "https://", "//")):
            return path
        return join_base_url(self.config.get("base_url", ""), path)

    def render_page(self, page: RenderedPage) -> str:
        template = self.env.get_template(page.template or "page.html")
        return template.render(page=page, current_path=page.url)

    def render_section(
        self, section: Section, paginator: Paginator, section_content: str = ""
    ) -> str:
        default = "index.html" if section.name == "" else "section.html"
        template = self.env.get_template(section.template or default)
        return template.render(
            section=section,
            paginator=paginator,
            section_content=Markup(section_content),
            current_path=section.url,
        )

    def render_taxonomy_list(self, taxonomy: str, terms: dict[str, list[RenderedPage]]) -> str:
        template = self.env.get_template("taxonomy_list.html")
        return template.render(taxonomy=taxonomy, terms=terms, current_path=f"/{taxonomy}/")

    def render_taxonomy_single(self, taxonomy: str, term: str, pages: list[RenderedPage]) -> str:
        template = self.env.get_template("taxonomy_single.html")
        return template.render(
            taxonomy=taxonomy, term=term, pages=pages, current_path=f"/{taxonomy}/{slugify(term)}/"
        )

    def render_not_found(self) -> str:
        return self.env.get_template("404.html").render(current_path="/404.html")

    def render_string(self, template: str, context: dict[str, Any]) -> str:
        return self.env.from_string(template).render(**context)
