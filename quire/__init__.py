"""Quire content repository and static site builder.

Quire keeps a personal website's content as Markdown documents with TOML or
YAML front-matter, grouped into sections, and renders them through a swappable
Jinja2 theme into a static HTML tree.

The main entry point is the CLI module, which provides commands for scaffolding
a project, checking content integrity, listing and resolving documents,
building the site and previewing it locally.
"""

__all__ = ["QuireError", "__version__"]
__version__ = "0.3.0"


class QuireError(Exception):
    """Base class for all errors raised by Quire."""
