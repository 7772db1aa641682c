"""Front-matter parsing and serialization for Quire.

A content document starts with a metadata block delimited by ``+++`` lines
(TOML) or ``---`` lines (YAML). The delimiter selects the codec, so both
flavours can live side by side in one repository.

Key classes:
- TomlFormat / YamlFormat: Codecs implementing the FrontMatterFormat protocol.
- FrontMatter: Typed view over a parsed metadata mapping.
- FrontMatterError: Raised for malformed or mistyped metadata.

Key functions:
- parse_document: Split raw text into (metadata, body, format).
- serialize_document: Inverse of parse_document.
"""

from __future__ import annotations

import re
import tomllib
from datetime import date
from pathlib import Path
from typing import Any

import tomli_w
import yaml

from . import QuireError
from .protocols import FrontMatterFormat
from .utils import coerce_date

__all__ = [
    "FrontMatter",
    "FrontMatterError",
    "TomlFormat",
    "YamlFormat",
    "default_format",
    "format_for_name",
    "parse_document",
    "serialize_document",
]


class FrontMatterError(QuireError):
    """Malformed front-matter in a content document.

    Attributes:
        message: Human-readable error message.
        source_path: File the metadata came from, when known.
    """

    def __init__(self, message: str, source_path: Path | None = None):
        self.message = message
        self.source_path = source_path
        prefix = f"{source_path}: " if source_path else ""
        super().__init__(f"{prefix}{message}")


class TomlFormat:
    """TOML front-matter between ``+++`` lines."""

    name = "toml"
    delimiter = "+++"

    def loads(self, text: str) -> Any:
        return tomllib.loads(text)

    def dumps(self, metadata: dict[str, Any]) -> str:
        return tomli_w.dumps(metadata)


class YamlFormat:
    """YAML front-matter between ``---`` lines."""

    name = "yaml"
    delimiter = "---"

    def loads(self, text: str) -> Any:
        loaded = yaml.safe_load(text)
        return {} if loaded is None else loaded

    def dumps(self, metadata: dict[str, Any]) -> str:
        return yaml.safe_dump(
            metadata, sort_keys=False, allow_unicode=True, default_flow_style=False
        )


_FORMATS: tuple[FrontMatterFormat, ...] = (TomlFormat(), YamlFormat())
default_format = _FORMATS[0]


def format_for_name(name: str) -> FrontMatterFormat:
    """Return the codec registered under ``name`` ('toml' or 'yaml').

    Raises:
        ValueError: If no codec has that name.
    """
    for fmt in _FORMATS:
        if fmt.name == name:
            return fmt
    raise ValueError(f"Unknown front-matter format: {name}")


def _block_re(delimiter: str) -> re.Pattern:
    d = re.escape(delimiter)
    return re.compile(
        rf"\A{d}[ \t]*\r?\n(?:(.*?)\r?\n)?{d}[ \t]*(?:\r?\n|\Z)", re.DOTALL
    )


_BLOCK_RES = {fmt.delimiter: _block_re(fmt.delimiter) for fmt in _FORMATS}
_OPENING_RE = re.compile(r"\A(\+\+\+|---)[ \t]*\r?$", re.MULTILINE)


def parse_document(text: str, source_path: Path | None = None):
    """Split a document into its metadata, body and front-matter format.

    Args:
        text: Raw file content.
        source_path: Optional path used in error messages.

    Returns:
        Tuple of (metadata dict, body string, format codec). Text without a
        front-matter block yields an empty mapping and the default format.

    Raises:
        FrontMatterError: If the block is unterminated, does not parse, or is
            not a mapping.
    """
    opening = _OPENING_RE.match(text)
    if not opening:
        return {}, text, default_format
    fmt = next(f for f in _FORMATS if f.delimiter == opening.group(1))
    match = _BLOCK_RES[fmt.delimiter].match(text)
    if not match:
        raise FrontMatterError(
            f"Unterminated {fmt.name.upper()} front-matter (missing closing "
            f"'{fmt.delimiter}')",
            source_path,
        )
    try:
        metadata = fmt.loads(match.group(1) or "")
    except (tomllib.TOMLDecodeError, yaml.YAMLError) as exc:
        raise FrontMatterError(
            f"Invalid {fmt.name.upper()} front-matter: {exc}", source_path
        ) from exc
    if not isinstance(metadata, dict):
        raise FrontMatterError(
            f"Front-matter must be a mapping, got {type(metadata).__name__}",
            source_path,
        )
    return metadata, text[match.end() :], fmt


def serialize_document(metadata: dict[str, Any], body: str, fmt=None) -> str:
    """Render metadata and body back into document text.

    Args:
        metadata: Front-matter mapping.
        body: Document body, written unchanged.
        fmt: Codec to use; defaults to TOML.

    Returns:
        Full document text.
    """
    fmt = fmt or default_format
    encoded = fmt.dumps(metadata)
    if encoded and not encoded.endswith("\n"):
        encoded += "\n"
    return f"{fmt.delimiter}\n{encoded}{fmt.delimiter}\n{body}"


def _optional_str(data: dict[str, Any], key: str, source_path: Path | None) -> str | None:
    value = data.get(key)
    if value is None or isinstance(value, str):
        return value
    raise FrontMatterError(
        f"'{key}' must be a string, got {type(value).__name__}", source_path
    )


class FrontMatter:
    """Typed view over a front-matter mapping.

    The mapping itself is kept as-is so that unknown keys survive a
    parse/serialize round trip; the attributes are derived from it and
    checked for type on construction.

    Attributes:
        title: Document title, or None when absent.
        description: Short description, or None.
        date: Publication date.
        updated: Last update date.
        tags: De-duplicated tags from ``taxonomies.tags`` (or YAML ``tags``).
        template: Template name override.
        draft: Whether the document is a draft.
        weight: Manual ordering weight.
        slug: Slug override.
        extra: The ``extra`` table (rendering flags such as toc/comment).
    """

    def __init__(self, data: dict[str, Any] | None = None, source_path: Path | None = None):
        self._data: dict[str, Any] = dict(data or {})
        data = self._data
        self.title = _optional_str(data, "title", source_path)
        self.description = _optional_str(data, "description", source_path)
        self.template = _optional_str(data, "template", source_path)
        self.slug = _optional_str(data, "slug", source_path)
        self.date = self._date(data, "date", source_path)
        self.updated = self._date(data, "updated", source_path)

        extra = data.get("extra", {})
        if not isinstance(extra, dict):
            raise FrontMatterError("'extra' must be a table", source_path)
        self.extra: dict[str, Any] = extra

        taxonomies = data.get("taxonomies", {})
        if not isinstance(taxonomies, dict):
            raise FrontMatterError("'taxonomies' must be a table", source_path)
        self.taxonomies: dict[str, list[str]] = {}
        for name, terms in taxonomies.items():
            self.taxonomies[name] = self._terms(terms, f"taxonomies.{name}", source_path)
        if "tags" in data and "tags" not in self.taxonomies:
            self.taxonomies["tags"] = self._terms(data["tags"], "tags", source_path)

        draft = data.get("draft", False)
        if not isinstance(draft, bool):
            raise FrontMatterError("'draft' must be a boolean", source_path)
        self.draft = draft

        weight = data.get("weight", 0)
        if isinstance(weight, bool) or not isinstance(weight, int):
            raise FrontMatterError("'weight' must be an integer", source_path)
        self.weight = weight

    @staticmethod
    def _date(data: dict[str, Any], key: str, source_path: Path | None) -> date | None:
        try:
            return coerce_date(data.get(key))
        except ValueError as exc:
            raise FrontMatterError(
                f"'{key}' is not a valid calendar date: {data.get(key)!r}", source_path
            ) from exc

    @staticmethod
    def _terms(value: Any, key: str, source_path: Path | None) -> list[str]:
        if not isinstance(value, list) or not all(isinstance(t, str) for t in value):
            raise FrontMatterError(f"'{key}' must be a list of strings", source_path)
        seen: list[str] = []
        for term in value:
            if term not in seen:
                seen.append(term)
        return seen

    @property
    def tags(self) -> list[str]:
        return self.taxonomies.get("tags", [])

    @property
    def toc(self) -> bool:
        return self.extra.get("toc", False) is True

    @property
    def comment(self) -> bool:
        return self.extra.get("comment", False) is True

    def get(self, key: str, default: Any = None) -> Any:
        return self._data.get(key, default)

    def __contains__(self, key: str) -> bool:
        return key in self._data

    def to_dict(self) -> dict[str, Any]:
        """Return a copy of the underlying metadata mapping."""
        return dict(self._data)

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, FrontMatter):
            return NotImplemented
        return self._data == other._data

    def __repr__(self) -> str:  # pragma: no cover - for debugging
        return f"FrontMatter(title={self.title!r}, date={self.date!r})"
