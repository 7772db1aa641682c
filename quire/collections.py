from __future__ import annotations

from collections.abc import Iterable, Iterator, Mapping, Sequence
from datetime import date
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from .content import ContentDocument

SORT_POLICIES = ("date", "title", "weight", "none")


def _by_date(documents: Iterable[ContentDocument], reverse: bool = True) -> list[ContentDocument]:
    """Date order; same-day documents by ascending weight, then filename."""
    ties = sorted(documents, key=lambda d: (d.weight, d.filename))
    return sorted(ties, key=lambda d: d.date or date.min, reverse=reverse)


def sort_documents(documents: Iterable[ContentDocument], sort_by: str = "date") -> list[ContentDocument]:
    """Order documents according to a section's ``sort_by`` policy.

    - date: newest first, undated documents last, ties by weight then filename.
    - title: alphabetical, case-insensitive.
    - weight: ascending weight, ties by title.
    - none: filename order.

    Raises:
        ValueError: If ``sort_by`` is not a known policy.
    """
    if sort_by not in SORT_POLICIES:
        raise ValueError(f"Unknown sort_by policy: {sort_by!r}")
    if sort_by == "date":
        return _by_date(documents)
    ordered = sorted(documents, key=lambda d: d.filename)
    if sort_by == "title":
        ordered.sort(key=lambda d: (d.title or "").lower())
    elif sort_by == "weight":
        ordered.sort(key=lambda d: (d.weight, (d.title or "").lower()))
    return ordered


class DocumentCollection(Sequence["ContentDocument"]):
    """Lightweight helper for working with lists of documents in templates and code."""

    def __init__(self, documents: Iterable[ContentDocument]):
        self._documents = list(documents)
        # Descending date order is requested repeatedly by templates
        self._sorted_cache: DocumentCollection | None = None

    def __iter__(self) -> Iterator[ContentDocument]:
        return iter(self._documents)

    def __len__(self) -> int:
        return len(self._documents)

    def __getitem__(self, item):
        return self._documents[item]

    def in_section(self, name: str) -> DocumentCollection:
        return DocumentCollection(d for d in self._documents if d.section == name)

    def with_tag(self, tag: str) -> DocumentCollection:
        return DocumentCollection(d for d in self._documents if tag in d.tags)

    def drafts(self) -> DocumentCollection:
        return DocumentCollection(d for d in self._documents if d.draft)

    def published(self) -> DocumentCollection:
        return DocumentCollection(d for d in self._documents if not d.draft)

    def sorted(self, reverse: bool = True) -> DocumentCollection:
        """Sort documents by date; same-day ties by weight, then filename.

        Ties are broken the same way as a section's ``date`` policy.

        Args:
            reverse: If True (default), newest first. If False, oldest first.

        Returns:
            A new DocumentCollection with sorted documents.
        """
        if reverse and self._sorted_cache is not None:
            return self._sorted_cache
        collection = DocumentCollection(_by_date(self._documents, reverse=reverse))
        if reverse:
            self._sorted_cache = collection
        return collection

    def latest(self, count: int = 5) -> DocumentCollection:
        """Return the ``count`` most recent documents, newest first."""
        return DocumentCollection(self.sorted()[:count])

    def __repr__(self) -> str:  # pragma: no cover - for debugging
        return f"DocumentCollection({len(self._documents)} documents)"


class TagCollection(Mapping[str, DocumentCollection]):
    """Mapping of tag name to DocumentCollection."""

    def __init__(self, mapping: dict[str, Iterable[ContentDocument]]):
        self._mapping = {k: DocumentCollection(v) for k, v in mapping.items()}

    def __getitem__(self, key: str) -> DocumentCollection:
        return self._mapping[key]

    def __iter__(self) -> Iterator[str]:
        return iter(self._mapping)

    def __len__(self) -> int:
        return len(self._mapping)

    def __repr__(self) -> str:  # pragma: no cover - for debugging
        return f"TagCollection({len(self._mapping)} tags)"
