"""Protocol definitions for Quire.

These protocols describe the seams between content storage, metadata codecs
and rendering, so alternative implementations (another front-matter flavour,
another Markdown engine, an in-memory loader for tests) can be swapped in
without touching the repository or build code.
"""

from __future__ import annotations

from abc import abstractmethod
from pathlib import Path
from typing import TYPE_CHECKING, Any, Protocol, runtime_checkable

if TYPE_CHECKING:
    from .renderers import Heading


@runtime_checkable
class FrontMatterFormat(Protocol):
    """Protocol for front-matter codecs.

    Attributes:
        name: Short identifier ('toml', 'yaml').
        delimiter: Line that opens and closes the metadata block.
    """

    name: str
    delimiter: str

    @abstractmethod
    def loads(self, text: str) -> Any:
        """Decode the text between the delimiters."""
        ...

    @abstractmethod
    def dumps(self, metadata: dict[str, Any]) -> str:
        """Encode a metadata mapping."""
        ...


@runtime_checkable
class ContentRenderer(Protocol):
    """Protocol for rendering document bodies to HTML."""

    @abstractmethod
    def render(self, content: str) -> tuple[str, list[Heading]]:
        """Render a body to HTML.

        Args:
            content: Source body text.

        Returns:
            Tuple of (rendered HTML, list of headings for the TOC).
        """
        ...


@runtime_checkable
class ContentLoader(Protocol):
    """Protocol for discovering content files.

    This separates file discovery from document parsing.
    """

    @abstractmethod
    def sections(self) -> list[str]:
        """Section names, home ('') first."""
        ...

    @abstractmethod
    def section_dir(self, section: str) -> Path:
        """Directory holding a section's documents."""
        ...

    @abstractmethod
    def iter_files(self, section: str) -> list[Path]:
        """List the document files of one section.

        Args:
            section: Section name ('' for the home section).

        Returns:
            Paths to the section's document files, excluding ``_index.md``.
        """
        ...
