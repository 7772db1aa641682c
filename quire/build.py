"""Site building for Quire.

This module turns a project (configuration, content repository, templates
and static files) into a static site. Content is validated first; any error
aborts the build with the offending file named, so a page never ships with a
missing title or a broken date.

Key functions:
- build_site: Build the entire site.
- load_config: Load site configuration from quire.yaml.
"""

from __future__ import annotations

import logging
import shutil
from dataclasses import dataclass
from pathlib import Path
from typing import Any

import yaml
from jinja2 import TemplateNotFound, TemplateSyntaxError

from . import QuireError
from .collections import DocumentCollection, TagCollection, sort_documents
from .content import ContentDocument, ContentRepository
from .feeds import create_default_feed_registry
from .html_utils import join_base_url
from .renderers import MarkdownRenderer
from .templates import Paginator, RenderedPage, SectionPage, TemplateEngine
from .utils import build_tags_index, ensure_clean_dir, slugify
from .validation import ValidationError, validate_cname, validate_repository

logger = logging.getLogger(__name__)

CONFIG_FILE = "quire.yaml"

DEFAULT_CONFIG: dict[str, Any] = {
    "title": "",
    "description": "",
    "base_url": "",
    "language": "en",
    "theme": "",
    "output_dir": "public",
    "port": 1111,
    "required_keys": ["title", "date"],
    "taxonomies": ["tags"],
    "generate_feed": True,
    "feed_limit": 20,
    "extra": {},
}


class BuildError(QuireError):
    """Error during site build with file context.

    Attributes:
        source_path: Path to the source file that caused the error.
        message: Human-readable error message.
        original_error: The original exception that was caught.
    """

    def __init__(
        self,
        source_path: Path,
        message: str,
        original_error: Exception | None = None,
    ):
        self.source_path = source_path
        self.message = message
        self.original_error = original_error
        super().__init__(f"{source_path}: {message}")


@dataclass
class BuildResult:
    """Result of a site build.

    Attributes:
        pages: Every rendered document.
        output_dir: Directory the site was written to.
        config: Effective site configuration.
        feeds: Feed and sitemap filenames written.
    """

    pages: list[RenderedPage]
    output_dir: Path
    config: dict[str, Any]
    feeds: list[str]


def load_config(project_root: Path) -> dict[str, Any]:
    """Load site configuration from quire.yaml.

    Args:
        project_root: Root directory of the project.

    Returns:
        Configuration values with defaults applied.

    Raises:
        BuildError: If quire.yaml is not valid YAML.
    """
    config_path = project_root / CONFIG_FILE
    config = {k: (v.copy() if isinstance(v, (dict, list)) else v) for k, v in DEFAULT_CONFIG.items()}
    if config_path.exists():
        try:
            with open(config_path, encoding="utf-8") as f:
                loaded = yaml.safe_load(f) or {}
        except yaml.YAMLError as exc:
            raise BuildError(config_path, f"Invalid YAML: {exc}", exc) from exc
        if isinstance(loaded, dict):
            config.update(loaded)
        else:
            logger.warning("Ignoring %s: expected a mapping", config_path)
    return config


def build_site(
    project_root: Path,
    include_drafts: bool = False,
    base_url: str | None = None,
    clean_output: bool = True,
    output_dir_override: Path | None = None,
) -> BuildResult:
    """Build the entire static site.

    Args:
        project_root: Root directory of the project.
        include_drafts: Whether to render draft documents.
        base_url: Optional override for the configured ``base_url``.
        clean_output: Whether to wipe the output directory first.
        output_dir_override: Write here instead of the configured output_dir.

    Returns:
        BuildResult describing what was written.

    Raises:
        BuildError: If content fails validation or a template fails to render.
        FileNotFoundError: If the project has no content directory.
    """
    config = load_config(project_root)
    if base_url is not None:
        config["base_url"] = base_url
    content_dir = project_root / "content"
    if not content_dir.is_dir():
        raise FileNotFoundError(f"Expected content directory at {content_dir}")

    repository = ContentRepository(content_dir)
    report = validate_repository(
        repository, config.get("required_keys", []), include_drafts=include_drafts
    )
    for issue in report.warnings:
        logger.warning("%s", issue)
    if not report.ok:
        first = report.errors[0]
        raise BuildError(first.path, first.message, ValidationError(report.errors))

    static_dir = project_root / "static"
    cname = static_dir / "CNAME"
    if cname.is_file():
        problems = validate_cname(cname)
        if problems:
            raise BuildError(cname, problems[0].message)

    output_dir = output_dir_override or (project_root / config.get("output_dir", "public"))
    if clean_output:
        ensure_clean_dir(output_dir)
    else:
        output_dir.mkdir(parents=True, exist_ok=True)

    renderer = MarkdownRenderer()
    sections: dict[str, SectionPage] = {}
    for name in repository.sections():
        section = repository.section(name)
        pages = [
            _render_document(document, renderer, config)
            for document in repository.enumerate(name, include_drafts=include_drafts)
        ]
        sections[name] = SectionPage(section=section, pages=pages)
    all_pages = [page for view in sections.values() for page in view.pages]

    engine = TemplateEngine(project_root, config, get_section=sections.get)
    engine.env.globals["pages"] = DocumentCollection(all_pages)
    engine.env.globals["tags"] = TagCollection(build_tags_index(all_pages))
    for page in all_pages:
        html = _render(page.source_path, lambda p=page: engine.render_page(p))
        _write_html(output_dir, page.url, html)

    for view in sections.values():
        _write_section(output_dir, engine, renderer, view)

    for taxonomy in config.get("taxonomies") or []:
        _write_taxonomy(output_dir, engine, taxonomy, all_pages)

    _write_html(output_dir, "/404.html", _render(content_dir, engine.render_not_found), index=False)
    if static_dir.is_dir():
        shutil.copytree(static_dir, output_dir, dirs_exist_ok=True)

    registry = create_default_feed_registry(bool(config.get("generate_feed", True)))
    feeds = registry.generate_all(output_dir, all_pages, config)
    logger.info("Built %d pages into %s", len(all_pages), output_dir)
    return BuildResult(pages=all_pages, output_dir=output_dir, config=config, feeds=feeds)


def _render_document(
    document: ContentDocument, renderer: MarkdownRenderer, config: dict[str, Any]
) -> RenderedPage:
    content, toc = renderer.render(document.body)
    return RenderedPage(
        document=document,
        content=content,
        toc=toc,
        summary=renderer.summary(document.body),
        permalink=join_base_url(config.get("base_url", ""), document.url),
    )


def _render(source_path: Path, render) -> str:
    """Run a render callable, converting template failures to BuildError."""
    try:
        return render()
    except TemplateSyntaxError as exc:
        raise BuildError(
            source_path,
            f"Template syntax error in {exc.name or 'template'} on line {exc.lineno}: {exc.message}",
            exc,
        ) from exc
    except TemplateNotFound as exc:
        raise BuildError(source_path, f"Template not found: {exc.name}", exc) from exc
    except Exception as exc:
        raise BuildError(source_path, _format_error_message(exc), exc) from exc


def _format_error_message(exc: Exception) -> str:
    """Format an exception into a user-friendly error message."""
    error_type = type(exc).__name__
    if error_type == "UndefinedError":
        return f"Undefined variable: {exc}"
    if error_type == "TypeError":
        return f"Type error: {exc}"
    if error_type == "AttributeError":
        return f"Attribute error: {exc}"
    return f"{error_type}: {exc}"


def _write_html(output_dir: Path, url: str, html: str, index: bool = True) -> Path:
    """Write rendered HTML for a URL path.

    Directory URLs are written as ``<url>/index.html``; with ``index=False``
    the URL is used as a file name.
    """
    rel = url.strip("/")
    target = (output_dir / rel / "index.html") if index else (output_dir / rel)
    target.parent.mkdir(parents=True, exist_ok=True)
    target.write_text(html, encoding="utf-8")
    return target


def _write_section(
    output_dir: Path, engine: TemplateEngine, renderer: MarkdownRenderer, view: SectionPage
) -> None:
    section = view.section
    source = section.directory / "_index.md"
    section_content, _ = renderer.render(section.body) if section.body.strip() else ("", [])
    per_page = section.paginate_by or len(view.pages) or 1
    chunks = [view.pages[i : i + per_page] for i in range(0, len(view.pages), per_page)] or [[]]

    def page_url(number: int) -> str:
        return section.url if number == 1 else f"{section.url}page/{number}/"

    for number, chunk in enumerate(chunks, start=1):
        paginator = Paginator(
            pages=chunk,
            current_index=number,
            number_pagers=len(chunks),
            previous=engine.url_for(page_url(number - 1)) if number > 1 else None,
            next=engine.url_for(page_url(number + 1)) if number < len(chunks) else None,
        )
        html = _render(
            source, lambda p=paginator: engine.render_section(section, p, section_content)
        )
        _write_html(output_dir, page_url(number), html)


def _write_taxonomy(
    output_dir: Path, engine: TemplateEngine, taxonomy: str, pages: list[RenderedPage]
) -> None:
    terms: dict[str, list[RenderedPage]] = {}
    for page in pages:
        for term in page.front_matter.taxonomies.get(taxonomy, []):
            terms.setdefault(term, []).append(page)
    if not terms:
        return
    terms = {term: sort_documents(tagged, "date") for term, tagged in sorted(terms.items())}
    slugs: dict[str, str] = {}
    for term, tagged in terms.items():
        other = slugs.setdefault(slugify(term), term)
        if other != term:
            raise BuildError(
                tagged[0].source_path,
                f"{taxonomy} '{other}' and '{term}' both map to /{taxonomy}/{slugify(term)}/",
            )
    source = Path(taxonomy)
    html = _render(source, lambda: engine.render_taxonomy_list(taxonomy, terms))
    _write_html(output_dir, f"/{taxonomy}/", html)
    for term, tagged in terms.items():
        html = _render(source, lambda t=term, ps=tagged: engine.render_taxonomy_single(taxonomy, t, ps))
        _write_html(output_dir, f"/{taxonomy}/{slugify(term)}/", html)
