"""Utility functions for Quire.

This module contains small helpers used throughout the Quire codebase:
string processing, path handling, date coercion and indexing.

Key functions:
    slugify: Convert filenames or titles to URL slugs.
    titleize: Convert filenames to human-readable titles.
    extract_date_from_name: Extract date from a YYYY-MM-DD filename prefix.
    coerce_date: Normalise front-matter date values to ``datetime.date``.
    is_markdown: Check if a path is a Markdown file.
    is_section_index: Check if a path is a section's ``_index.md``.
    is_ignored_path: Check if a path is hidden from the content repository.
    ensure_clean_dir: Ensure a directory exists and is empty.
    build_tags_index: Build index of documents by tag.
"""

from __future__ import annotations

import re
import shutil
from collections.abc import Iterable
from datetime import date, datetime
from pathlib import Path

SECTION_INDEX = "_index.md"
_DATE_PREFIX_RE = re.compile(r"^(\d{4})-(\d{2})-(\d{2})(?:[-_](.*))?$")


def strip_date_prefix(name: str) -> str:
    """Remove a leading ``YYYY-MM-DD-`` prefix from a filename stem.

    Args:
        name: Filename stem.

    Returns:
        The stem without its date prefix, or the stem unchanged.
    """
    match = _DATE_PREFIX_RE.match(name)
    if match and match.group(4):
        return match.group(4)
    return name


def slugify(name: str) -> str:
    """Convert a filename stem (or title) to a slug, dropping any date prefix.

    Args:
        name: Filename stem or free text.

    Returns:
        URL-friendly slug.

    Examples:
        >>> slugify("2025-12-06-Hello World")
        'hello-world'
        >>> slugify("Café Münster")
        'café-münster'
    """
    cleaned = strip_date_prefix(name)
    cleaned = re.sub(r"[\W_]+", "-", cleaned)
    cleaned = cleaned.strip("-").lower()
    return cleaned or "index"


def titleize(filename: str) -> str:
    """Convert a filename to a human-readable title.

    Examples:
        >>> titleize("2024-01-15-hello-world.md")
        'Hello World'
    """
    base = strip_date_prefix(Path(filename).stem)
    words = re.split(r"[\s\-_]+", base)
    return " ".join(word.capitalize() for word in words if word) or "Untitled"


def extract_date_from_name(name: str) -> date | None:
    """Extract a date from a filename with YYYY-MM-DD prefix.

    Args:
        name: Filename stem (without extension).

    Returns:
        date object if a valid date prefix is found, None otherwise.
    """
    match = _DATE_PREFIX_RE.match(name)
    if not match:
        return None
    try:
        return date(int(match.group(1)), int(match.group(2)), int(match.group(3)))
    except ValueError:
        return None


def coerce_date(value: object) -> date | None:
    """Normalise a front-matter date value.

    TOML and YAML both decode bare dates to ``datetime.date``; quoted values
    arrive as ISO strings and datetimes are truncated to their date.

    Args:
        value: Raw front-matter value.

    Returns:
        The calendar date, or None when the value is empty.

    Raises:
        ValueError: If the value is not a recognisable calendar date.
    """
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    if isinstance(value, str):
        text = value.strip()
        try:
            return date.fromisoformat(text)
        except ValueError:
            return datetime.fromisoformat(text).date()
    raise ValueError(f"Not a calendar date: {value!r}")


def is_markdown(path: Path) -> bool:
    """Check if a path is a Markdown file (case-insensitive ``.md``)."""
    return path.suffix.lower() == ".md"


def is_section_index(path: Path) -> bool:
    """Check if a path is a section metadata file."""
    return path.name == SECTION_INDEX


def is_ignored_path(path: Path) -> bool:
    """Check if a relative content path is hidden from the repository.

    Directories starting with ``_`` or ``.`` are never part of a section,
    and neither are dot files.

    Args:
        path: Path relative to the content directory.

    Returns:
        True if the path should be skipped.
    """
    if any(part.startswith(("_", ".")) for part in path.parts[:-1]):
        return True
    return path.name.startswith(".")


def ensure_clean_dir(path: Path) -> None:
    """Ensure a directory exists and is empty.

    Args:
        path: Directory path to clean or create.
    """
    if path.exists():
        shutil.rmtree(str(path))
    path.mkdir(parents=True, exist_ok=True)


def build_tags_index(documents: Iterable) -> dict[str, list]:
    """Build an index mapping tags to lists of documents carrying that tag.

    Args:
        documents: Iterable of objects with a ``tags`` attribute.

    Returns:
        Dictionary mapping tag names to lists of documents, sorted by tag.
    """
    tags: dict[str, list] = {}
    for document in documents:
        for tag in document.tags:
            tags.setdefault(tag, []).append(document)
    return dict(sorted(tags.items()))
