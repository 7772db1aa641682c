"""Feed generation for Quire.

This module generates sitemap.xml and syndication feeds (RSS 2.0 and Atom)
from rendered pages. Generators share a small abstract base class and are
collected in a registry, so the build runs whatever set is registered.

Classes:
    FeedGenerator: Abstract base class for feed generators.
    SitemapGenerator: Generates sitemap.xml.
    RSSGenerator: Generates rss.xml.
    AtomGenerator: Generates atom.xml.
    FeedRegistry: Registry for managing feed generators.

Functions:
    create_default_feed_registry: Create a registry with default generators.
"""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from collections.abc import Iterable
from datetime import date, datetime, time, timezone
from email.utils import format_datetime
from pathlib import Path
from typing import TYPE_CHECKING, Any

from .html_utils import escape_html, join_base_url

if TYPE_CHECKING:
    from .templates import RenderedPage

logger = logging.getLogger(__name__)


def _as_datetime(value: date) -> datetime:
    return datetime.combine(value, time(0, 0), tzinfo=timezone.utc)


def _feed_pages(pages: Iterable[RenderedPage], limit: int) -> list[RenderedPage]:
    """Dated, non-draft pages, newest first, capped at ``limit`` (0 = no cap)."""
    dated = [p for p in pages if p.date is not None and not p.draft]
    dated.sort(key=lambda p: p.date, reverse=True)
    return dated[:limit] if limit else dated


class FeedGenerator(ABC):
    """Abstract base class for feed generators."""

    @property
    @abstractmethod
    def filename(self) -> str:
        """Return the output filename for this feed."""
        ...

    @abstractmethod
    def generate(self, pages: Iterable[RenderedPage], config: dict[str, Any]) -> str | None:
        """Generate feed content from pages.

        Args:
            pages: Pages to include.
            config: Site configuration (``base_url``, ``title``, ...).

        Returns:
            Feed content, or None if the feed cannot be generated
            (e.g. no base URL configured).
        """
        ...

    def write(self, output_dir: Path, pages: Iterable[RenderedPage], config: dict[str, Any]) -> bool:
        """Generate and write the feed into ``output_dir``.

        Returns:
            True if the feed was written, False if skipped.
        """
        content = self.generate(pages, config)
        if content is None:
            logger.debug("Skipping %s: no base_url configured", self.filename)
            return False
        (output_dir / self.filename).write_text(content, encoding="utf-8")
        return True


class SitemapGenerator(FeedGenerator):
    """Generates sitemap.xml listing every page with its last modification date."""

    @property
    def filename(self) -> str:
        return "sitemap.xml"

    def generate(self, pages: Iterable[RenderedPage], config: dict[str, Any]) -> str | None:
        base_url = str(config.get("base_url", "")).rstrip("/")
        if not base_url:
            return None
        lines = [
            '<?xml version="1.0" encoding="UTF-8"?>',
            '<urlset xmlns="http://www.sitemaps.org/schemas/sitemap/0.9">',
        ]
        for page in pages:
            loc = escape_html(join_base_url(base_url, page.url))
            lastmod = page.updated or page.date
            if lastmod:
                lines.append(f"  <url><loc>{loc}</loc><lastmod>{lastmod.isoformat()}</lastmod></url>")
            else:
                lines.append(f"  <url><loc>{loc}</loc></url>")
        lines.append("</urlset>")
        return "\n".join(lines)


class RSSGenerator(FeedGenerator):
    """Generates an RSS 2.0 feed of dated pages, newest first."""

    @property
    def filename(self) -> str:
        return "rss.xml"

    def generate(self, pages: Iterable[RenderedPage], config: dict[str, Any]) -> str | None:
        base_url = str(config.get("base_url", "")).rstrip("/")
        if not base_url:
            return None
        title = escape_html(str(config.get("title", "")))
        items = []
        for page in _feed_pages(pages, int(config.get("feed_limit", 0))):
            link = escape_html(join_base_url(base_url, page.url))
            pub_date = format_datetime(_as_datetime(page.date))
            description = escape_html(page.description or page.title or "")
            items.append(
                f"<item><title>{escape_html(page.title or '')}</title><link>{link}</link>"
                f"<guid>{link}</guid><description>{description}</description>"
                f"<pubDate>{pub_date}</pubDate></item>"
            )
        build_date = format_datetime(datetime.now(timezone.utc))
        rss = [
            '<?xml version="1.0" encoding="UTF-8"?>',
            '<rss version="2.0"><channel>',
            f"<title>{title}</title>",
            f"<link>{escape_html(base_url)}</link>",
            f"<description>{escape_html(str(config.get('description', '')))}</description>",
            f"<lastBuildDate>{build_date}</lastBuildDate>",
        ]
        rss.extend(items)
        rss.append("</channel></rss>")
        return "\n".join(rss)


class AtomGenerator(FeedGenerator):
    """Generates an Atom feed of dated pages, newest first."""

    @property
    def filename(self) -> str:
        return "atom.xml"

    def generate(self, pages: Iterable[RenderedPage], config: dict[str, Any]) -> str | None:
        base_url = str(config.get("base_url", "")).rstrip("/")
        if not base_url:
            return None
        entries = _feed_pages(pages, int(config.get("feed_limit", 0)))
        if entries:
            updated = max(_as_datetime(p.updated or p.date) for p in entries)
        else:
            updated = datetime.now(timezone.utc)
        lines = [
            '<?xml version="1.0" encoding="UTF-8"?>',
            '<feed xmlns="http://www.w3.org/2005/Atom">',
            f"<title>{escape_html(str(config.get('title', '')))}</title>",
            f'<link href="{escape_html(join_base_url(base_url, "/atom.xml"))}" rel="self"/>',
            f'<link href="{escape_html(base_url)}/"/>',
            f"<id>{escape_html(base_url)}/</id>",
            f"<updated>{updated.isoformat()}</updated>",
        ]
        for page in entries:
            link = escape_html(join_base_url(base_url, page.url))
            lines.append(
                f"<entry><title>{escape_html(page.title or '')}</title>"
                f'<link href="{link}"/><id>{link}</id>'
                f"<published>{_as_datetime(page.date).isoformat()}</published>"
                f"<updated>{_as_datetime(page.updated or page.date).isoformat()}</updated>"
                f"<summary>{escape_html(page.description or '')}</summary></entry>"
            )
        lines.append("</feed>")
        return "\n".join(lines)


class FeedRegistry:
    """Registry of feed generators run at the end of a build."""

    def __init__(self) -> None:
        self._generators: list[FeedGenerator] = []

    def register(self, generator: FeedGenerator) -> None:
        self._generators.append(generator)

    def generate_all(
        self, output_dir: Path, pages: Iterable[RenderedPage], config: dict[str, Any]
    ) -> list[str]:
        """Generate all registered feeds.

        Returns:
            Filenames that were written.
        """
        pages_list = list(pages)
        return [g.filename for g in self._generators if g.write(output_dir, pages_list, config)]


def create_default_feed_registry(generate_feed: bool = True) -> FeedRegistry:
    """Create a registry with the sitemap and, unless disabled, the feeds."""
    registry = FeedRegistry()
    registry.register(SitemapGenerator())
    if generate_feed:
        registry.register(AtomGenerator())
        registry.register(RSSGenerator())
    return registry
