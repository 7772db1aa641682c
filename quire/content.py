"""Content repository for Quire.

This module owns the content tree: it discovers sections, parses documents
and their front-matter, lists a section's documents in the section's order,
resolves a single document by path and writes documents back to disk.

Key classes:
- ContentDocument: A Markdown document with front-matter.
- Section: A directory of documents plus its optional ``_index.md`` metadata.
- FileContentLoader: Implementation of the ContentLoader protocol for files.
- SectionListing: Lazy, restartable iterable over a section's documents.
- ContentRepository: Facade tying the pieces together.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable, Iterator
from dataclasses import dataclass, field
import datetime
from pathlib import Path
from typing import Any

from . import QuireError
from .collections import SORT_POLICIES, sort_documents
from .frontmatter import (
    FrontMatter,
    FrontMatterError,
    default_format,
    parse_document,
    serialize_document,
)
from .protocols import ContentLoader
from .utils import (
    SECTION_INDEX,
    extract_date_from_name,
    is_ignored_path,
    is_markdown,
    is_section_index,
    slugify,
    titleize,
)

logger = logging.getLogger(__name__)


class ContentNotFound(QuireError, LookupError):
    """Base class for lookups that found nothing in the repository."""


class SectionNotFound(ContentNotFound):
    """Raised when a section directory does not exist."""

    def __init__(self, name: str):
        self.name = name
        super().__init__(f"No such section: {name or '(home)'}")


class DocumentNotFound(ContentNotFound):
    """Raised when no document lives at the requested path."""

    def __init__(self, path: str):
        self.path = path
        super().__init__(f"No such document: {path}")


def _join(section: str, slug: str) -> str:
    return f"{section}/{slug}" if section else slug


@dataclass
class ContentDocument:
    """A content document: front-matter plus Markdown body.

    Attributes:
        section: Section name ('' for the home section).
        slug: URL-friendly slug.
        source_path: File the document was read from (and is written to).
        front_matter: Typed view over the metadata block.
        body: Unstructured Markdown body.
        date: Front-matter date, falling back to a filename date prefix.
        format: Front-matter codec the document is stored with.
    """

    section: str
    slug: str
    source_path: Path
    front_matter: FrontMatter
    body: str
    date: datetime.date | None = None
    format: Any = field(default=default_format, repr=False)

    @property
    def path(self) -> str:
        return _join(self.section, self.slug)

    @property
    def url(self) -> str:
        return f"/{self.path}/"

    @property
    def filename(self) -> str:
        return self.source_path.name

    @property
    def title(self) -> str | None:
        return self.front_matter.title

    @property
    def description(self) -> str | None:
        return self.front_matter.description

    @property
    def updated(self) -> datetime.date | None:
        return self.front_matter.updated

    @property
    def tags(self) -> list[str]:
        return self.front_matter.tags

    @property
    def draft(self) -> bool:
        return self.front_matter.draft

    @property
    def weight(self) -> int:
        return self.front_matter.weight

    @property
    def template(self) -> str | None:
        return self.front_matter.template

    @property
    def extra(self) -> dict[str, Any]:
        return self.front_matter.extra

    def to_text(self) -> str:
        """Serialize the document back to its on-disk text."""
        return serialize_document(self.front_matter.to_dict(), self.body, self.format)


@dataclass
class Section:
    """A content section.

    Attributes:
        name: Section name, the directory path relative to the content root.
        directory: Section directory on disk.
        front_matter: Metadata from ``_index.md`` (empty when absent).
        body: Markdown body of ``_index.md``.
    """

    name: str
    directory: Path
    front_matter: FrontMatter = field(default_factory=FrontMatter)
    body: str = ""

    @property
    def title(self) -> str:
        if self.front_matter.title:
            return self.front_matter.title
        return titleize(self.name.rsplit("/", 1)[-1]) if self.name else "Home"

    @property
    def description(self) -> str:
        return self.front_matter.description or ""

    @property
    def template(self) -> str | None:
        return self.front_matter.template

    @property
    def sort_by(self) -> str:
        return self.front_matter.get("sort_by", "date")

    @property
    def paginate_by(self) -> int:
        return self.front_matter.get("paginate_by", 0)

    @property
    def url(self) -> str:
        return f"/{self.name}/" if self.name else "/"

    @property
    def extra(self) -> dict[str, Any]:
        return self.front_matter.extra


class FileContentLoader:
    """Discovers sections and document files under a content directory.

    Attributes:
        content_dir: Root of the content tree.
    """

    def __init__(self, content_dir: Path):
        self.content_dir = content_dir

    def section_dir(self, section: str) -> Path:
        return self.content_dir / section if section else self.content_dir

    def sections(self) -> list[str]:
        """List section names, home ('') first, then alphabetically."""
        if not self.content_dir.is_dir():
            return []
        names = [""]
        for path in sorted(self.content_dir.rglob("*")):
            if not path.is_dir():
                continue
            rel = path.relative_to(self.content_dir)
            if any(part.startswith(("_", ".")) for part in rel.parts):
                continue
            names.append(rel.as_posix())
        return names

    def iter_files(self, section: str) -> list[Path]:
        """List the Markdown documents directly inside a section.

        Args:
            section: Section name.

        Returns:
            Sorted paths, excluding ``_index.md`` and hidden files.
        """
        directory = self.section_dir(section)
        files: list[Path] = []
        for path in sorted(directory.iterdir()):
            if not path.is_file() or not is_markdown(path) or is_section_index(path):
                continue
            if is_ignored_path(path.relative_to(self.content_dir)):
                continue
            files.append(path)
        return files


class SectionListing(Iterable[ContentDocument]):
    """Lazy, finite, restartable sequence of a section's documents.

    Nothing is read from disk until iteration starts, and each new iteration
    re-reads the section, so edits between passes are picked up.
    """

    def __init__(self, repository: ContentRepository, section: Section, include_drafts: bool = False):
        self.repository = repository
        self.section = section
        self.include_drafts = include_drafts

    def __iter__(self) -> Iterator[ContentDocument]:
        files = self.repository.loader.iter_files(self.section.name)
        documents = (self.repository.load(path) for path in files)
        if not self.include_drafts:
            documents = (d for d in documents if not d.draft)
        if self.section.sort_by == "none":
            yield from documents
        else:
            yield from sort_documents(documents, self.section.sort_by)

    def __repr__(self) -> str:  # pragma: no cover - for debugging
        return f"SectionListing({self.section.name!r})"


class ContentRepository:
    """Facade over the content tree.

    Attributes:
        content_dir: Root of the content tree.
        loader: ContentLoader used for file discovery.
    """

    def __init__(self, content_dir: Path, loader: ContentLoader | None = None):
        self.content_dir = content_dir
        self.loader = loader or FileContentLoader(content_dir)

    def sections(self) -> list[str]:
        return self.loader.sections()

    def section(self, name: str) -> Section:
        """Return a section with its ``_index.md`` metadata.

        Raises:
            SectionNotFound: If the section directory does not exist.
            FrontMatterError: If ``_index.md`` is malformed.
        """
        name = name.strip("/")
        directory = self.loader.section_dir(name)
        hidden = any(part.startswith(("_", ".")) for part in Path(name).parts)
        if hidden or not directory.is_dir():
            raise SectionNotFound(name)
        index = directory / SECTION_INDEX
        front_matter = FrontMatter()
        body = ""
        if index.exists():
            metadata, body, _ = parse_document(index.read_text(encoding="utf-8"), index)
            front_matter = FrontMatter(metadata, index)
            sort_by = front_matter.get("sort_by", "date")
            if sort_by not in SORT_POLICIES:
                raise FrontMatterError(f"Unknown sort_by policy: {sort_by!r}", index)
            paginate_by = front_matter.get("paginate_by", 0)
            if isinstance(paginate_by, bool) or not isinstance(paginate_by, int) or paginate_by < 0:
                raise FrontMatterError("'paginate_by' must be a non-negative integer", index)
        return Section(name=name, directory=directory, front_matter=front_matter, body=body)

    def enumerate(self, name: str, include_drafts: bool = False) -> SectionListing:
        """List a section's documents in the section's sort order.

        Args:
            name: Section name ('' for home).
            include_drafts: Whether draft documents are included.

        Raises:
            SectionNotFound: If the section directory does not exist.
        """
        return SectionListing(self, self.section(name), include_drafts)

    def documents(self, include_drafts: bool = False) -> list[ContentDocument]:
        """Load every document of every section."""
        documents: list[ContentDocument] = []
        for name in self.sections():
            documents.extend(self.enumerate(name, include_drafts=include_drafts))
        return documents

    def load(self, path: Path) -> ContentDocument:
        """Parse a document file.

        Args:
            path: Path to the Markdown file inside the content directory.

        Raises:
            FrontMatterError: If the front-matter is malformed.
        """
        text = path.read_text(encoding="utf-8")
        metadata, body, fmt = parse_document(text, path)
        front_matter = FrontMatter(metadata, path)
        rel = path.relative_to(self.content_dir)
        section = rel.parent.as_posix() if rel.parent != Path(".") else ""
        slug = front_matter.slug or slugify(path.stem)
        logger.debug("Loaded %s as %s", rel, _join(section, slug))
        return ContentDocument(
            section=section,
            slug=slug,
            source_path=path,
            front_matter=front_matter,
            body=body,
            date=front_matter.date or extract_date_from_name(path.stem),
            format=fmt,
        )

    def resolve(self, path: str) -> ContentDocument:
        """Resolve a document by ``<section>/<slug>`` or relative file path.

        Drafts are resolvable; only listings hide them.

        Raises:
            DocumentNotFound: If nothing lives at that path.
        """
        cleaned = path.strip().strip("/")
        if not cleaned:
            raise DocumentNotFound(path)
        if cleaned.endswith(".md"):
            candidate = self.content_dir / cleaned
            rel = Path(cleaned)
            if candidate.is_file() and not is_section_index(rel) and not is_ignored_path(rel):
                return self.load(candidate)
            raise DocumentNotFound(path)
        section, _, slug = cleaned.rpartition("/")
        try:
            listing = self.enumerate(section, include_drafts=True)
        except SectionNotFound:
            raise DocumentNotFound(path) from None
        for document in listing:
            if document.slug == slug:
                return document
        raise DocumentNotFound(path)

    def write(self, document: ContentDocument) -> Path:
        """Write a document to its source path.

        Returns:
            The path written.
        """
        target = document.source_path
        target.parent.mkdir(parents=True, exist_ok=True)
        target.write_text(document.to_text(), encoding="utf-8")
        logger.debug("Wrote %s", target)
        return target
