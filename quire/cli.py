"""Command-line interface for Quire.

This module defines the CLI commands using the Click framework.

Commands:
- init: Scaffold a new Quire project.
- build: Build the site into the output directory.
- check: Validate content without building.
- list: List a section's documents.
- show: Show one document's metadata.
- new: Create a new document interactively.
- serve: Run the preview server with live reload.
- domain: Write the custom-domain (CNAME) file.
"""

from __future__ import annotations

import logging
import os
import shutil
import subprocess
from datetime import date
from pathlib import Path

import click
import questionary
import yaml

from . import __version__
from .build import CONFIG_FILE, BuildError, load_config
from .collections import DocumentCollection
from .content import ContentDocument, ContentNotFound, ContentRepository
from .frontmatter import FrontMatter, FrontMatterError, default_format, serialize_document
from .utils import slugify
from .validation import ERROR, hostname_problem, validate_cname, validate_repository

_HOME_CHOICE = ". (home)"


def _scaffold_files(title: str, today: date) -> dict[str, str]:
    """Contents of a new project, keyed by path relative to its root."""
    config = {
        "title": title,
        "description": "",
        "base_url": "",
        "theme": "",
        "output_dir": "public",
        "taxonomies": ["tags"],
    }
    first_post = {
        "title": "Hello World",
        "description": "The first post.",
        "date": today,
        "taxonomies": {"tags": ["meta"]},
        "extra": {"toc": False, "comment": False},
    }
    return {
        CONFIG_FILE: yaml.safe_dump(config, sort_keys=False, allow_unicode=True),
        "content/_index.md": serialize_document({"title": title}, ""),
        "content/posts/_index.md": serialize_document(
            {"title": "Posts", "sort_by": "date", "paginate_by": 10}, ""
        ),
        "content/projects/_index.md": serialize_document(
            {"title": "Projects", "sort_by": "weight"}, ""
        ),
        "content/support/_index.md": serialize_document({"title": "Support"}, ""),
        f"content/posts/{today.isoformat()}-hello-world.md": serialize_document(
            first_post, f"\nWelcome to {title}.\n"
        ),
        "templates/.gitkeep": "",
        "static/.gitkeep": "",
    }


@click.group()
@click.version_option(version=__version__, prog_name="quire")
@click.option("-v", "--verbose", is_flag=True, help="Show debug logging")
def cli(verbose: bool):
    """Quire content repository and static site builder."""
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format="%(levelname)s: %(message)s",
    )


@cli.command()
@click.argument("name")
@click.option("--domain", help="Custom domain to write into static/CNAME")
def init(name: str, domain: str | None):
    """Scaffold a new Quire project."""
    target = Path(name).resolve()
    if target.exists() and any(target.iterdir()):
        raise click.ClickException(f"Refusing to initialize into non-empty directory: {target}")
    if domain:
        _check_hostname(domain)
    _scaffold(target, title=target.name, today=date.today())
    if domain:
        (target / "static" / "CNAME").write_text(f"{domain}\n", encoding="utf-8")
    click.echo(f"New Quire site created at {target}")


@cli.command()
@click.option("--drafts", is_flag=True, help="Include draft content")
@click.option("--base-url", help="Override base_url from quire.yaml")
@click.option(
    "--output",
    type=click.Path(file_okay=False, path_type=Path),
    help="Write the site here instead of output_dir",
)
def build(drafts: bool, base_url: str | None, output: Path | None):
    """Build the site into the output directory."""
    project_root = Path.cwd()
    from .build import build_site

    try:
        result = build_site(
            project_root,
            include_drafts=drafts,
            base_url=base_url,
            output_dir_override=output.resolve() if output else None,
        )
    except BuildError as exc:
        _report_failure(project_root, exc.source_path, exc.message)
        raise SystemExit(1) from None
    except FileNotFoundError as exc:
        raise click.ClickException(str(exc)) from None
    click.echo(f"Built {len(result.pages)} pages into {result.output_dir}")


@cli.command()
def check():
    """Validate content front-matter and the custom-domain file."""
    project_root = Path.cwd()
    repository = _repository(project_root)
    try:
        config = load_config(project_root)
    except BuildError as exc:
        _report_failure(project_root, exc.source_path, exc.message)
        raise SystemExit(1) from None
    report = validate_repository(repository, config.get("required_keys", []))
    cname = project_root / "static" / "CNAME"
    if cname.is_file():
        report.issues.extend(validate_cname(cname))
    for issue in report.issues:
        color = "red" if issue.severity == ERROR else "yellow"
        click.echo(
            f"{_relative(project_root, issue.path)}: "
            f"{click.style(issue.severity, fg=color, bold=True)}: {issue.message}"
        )
    summary = (
        f"Checked {report.checked} documents: "
        f"{len(report.errors)} error(s), {len(report.warnings)} warning(s)"
    )
    if not report.ok:
        click.echo(click.style(summary, fg="red"), err=True)
        raise SystemExit(1)
    click.echo(summary)


@cli.command(name="list")
@click.argument("section", default="")
@click.option("--limit", type=int, default=0, help="Show at most this many documents")
@click.option("--tag", help="Only documents carrying this tag")
@click.option("--drafts", is_flag=True, help="Include draft content")
def list_documents(section: str, limit: int, tag: str | None, drafts: bool):
    """List a section's documents in the section's order."""
    repository = _repository(Path.cwd())
    try:
        documents = DocumentCollection(repository.enumerate(section, include_drafts=drafts))
    except (ContentNotFound, FrontMatterError) as exc:
        raise click.ClickException(str(exc)) from None
    if tag:
        documents = documents.with_tag(tag)
    if limit:
        documents = DocumentCollection(documents[:limit])
    for document in documents:
        when = document.date.isoformat() if document.date else "----------"
        marker = " (draft)" if document.draft else ""
        click.echo(f"{when}  {document.path}  {document.title or ''}{marker}")


@cli.command()
@click.argument("path")
def show(path: str):
    """Show the metadata of the document at PATH (section/slug)."""
    project_root = Path.cwd()
    repository = _repository(project_root)
    try:
        document = repository.resolve(path)
    except (ContentNotFound, FrontMatterError) as exc:
        raise click.ClickException(str(exc)) from None
    fields = [
        ("path", document.path),
        ("source", _relative(project_root, document.source_path)),
        ("title", document.title or ""),
        ("description", document.description or ""),
        ("date", document.date.isoformat() if document.date else ""),
        ("updated", document.updated.isoformat() if document.updated else ""),
        ("tags", ", ".join(document.tags)),
        ("template", document.template or ""),
        ("toc", str(document.front_matter.toc).lower()),
        ("comment", str(document.front_matter.comment).lower()),
        ("draft", str(document.draft).lower()),
    ]
    for key, value in fields:
        click.echo(f"{key:<12}{value}")


@cli.command()
def new():
    """Create a new document interactively."""
    project_root = Path.cwd()
    content_dir = project_root / "content"
    if not content_dir.is_dir():
        raise click.ClickException(
            "No content/ directory found. Run this command from a Quire project root."
        )
    repository = ContentRepository(content_dir)
    choices = [name or _HOME_CHOICE for name in repository.sections()]

    section = questionary.select("Select section:", choices=choices, style=_questionary_style()).ask()
    if section is None:
        raise click.Abort()
    section = "" if section == _HOME_CHOICE else section

    title = questionary.text(
        "Title:",
        validate=lambda x: len(x.strip()) > 0 or "Title cannot be empty",
        style=_questionary_style(),
    ).ask()
    if title is None:
        raise click.Abort()
    title = title.strip()

    tags = questionary.text("Tags (comma separated):", style=_questionary_style()).ask()
    if tags is None:
        raise click.Abort()

    toc = questionary.confirm("Show a table of contents?", default=False, style=_questionary_style()).ask()
    if toc is None:
        raise click.Abort()

    slug = slugify(title)
    try:
        existing = {d.slug: d for d in repository.enumerate(section, include_drafts=True)}
    except FrontMatterError as exc:
        raise click.ClickException(str(exc)) from None
    if slug in existing:
        raise click.ClickException(
            f"A document with slug '{slug}' already exists: {existing[slug].filename}"
        )

    today = date.today()
    metadata = {"title": title, "date": today}
    tag_list = [t.strip() for t in tags.split(",") if t.strip()]
    if tag_list:
        metadata["taxonomies"] = {"tags": tag_list}
    metadata["extra"] = {"toc": bool(toc), "comment": False}

    source = repository.loader.section_dir(section) / f"{today.isoformat()}-{slug}.md"
    document = ContentDocument(
        section=section,
        slug=slug,
        source_path=source,
        front_matter=FrontMatter(metadata, source),
        body="\n",
        date=today,
        format=default_format,
    )
    repository.write(document)
    click.echo(f"Created {_relative(project_root, source)}")


@cli.command()
@click.option("--drafts", is_flag=True, help="Include draft content")
@click.option("--port", type=int, required=False, help="HTTP port (overrides quire.yaml)")
@click.option("--ws-port", type=int, required=False, help="Live reload websocket port")
def serve(drafts: bool, port: int | None, ws_port: int | None):
    """Run the preview server with live reload."""
    project_root = Path.cwd()
    from .server import DevServer

    try:
        server = DevServer(project_root, http_port=port, ws_port=ws_port)
        server.start(include_drafts=drafts)
    except BuildError as exc:
        _report_failure(project_root, exc.source_path, exc.message)
        raise SystemExit(1) from None


@cli.command()
@click.argument("hostname")
def domain(hostname: str):
    """Write HOSTNAME to static/CNAME for the hosting platform."""
    hostname = hostname.strip()
    _check_hostname(hostname)
    static_dir = Path.cwd() / "static"
    static_dir.mkdir(parents=True, exist_ok=True)
    (static_dir / "CNAME").write_text(f"{hostname}\n", encoding="utf-8")
    click.echo(f"Custom domain set to {hostname}")


def _repository(project_root: Path) -> ContentRepository:
    content_dir = project_root / "content"
    if not content_dir.is_dir():
        raise click.ClickException(
            "No content/ directory found. Run this command from a Quire project root."
        )
    return ContentRepository(content_dir)


def _check_hostname(hostname: str) -> None:
    problem = hostname_problem(hostname)
    if problem:
        raise click.ClickException(problem)


def _relative(project_root: Path, path: Path) -> str:
    try:
        return str(path.relative_to(project_root))
    except ValueError:
        return str(path)


def _report_failure(project_root: Path, source_path: Path, message: str) -> None:
    click.echo(click.style("Build failed:", fg="red", bold=True), err=True)
    click.echo(click.style(f"  File: {_relative(project_root, source_path)}", fg="yellow"), err=True)
    click.echo(click.style(f"  Error: {message}", fg="white"), err=True)


def _questionary_style():
    """Return consistent questionary style."""
    return questionary.Style(
        [
            ("qmark", "fg:cyan bold"),
            ("question", "bold"),
            ("answer", "fg:cyan"),
            ("pointer", "fg:cyan bold"),
            ("highlighted", "fg:cyan bold"),
            ("selected", "fg:cyan"),
        ]
    )


def main():
    """Entry point for the CLI application."""
    cli()


def _scaffold(root: Path, title: str, today: date) -> None:
    """Create the directory structure and files for a new project."""
    for rel, text in _scaffold_files(title, today).items():
        dest = root / rel
        dest.parent.mkdir(parents=True, exist_ok=True)
        dest.write_text(text, encoding="utf-8")
    _try_git_init(root)


def _try_git_init(root: Path) -> None:
    """Initialize a git repository if git is available."""
    if os.environ.get("QUIRE_SKIP_GIT_INIT") == "1":
        return
    git_bin = shutil.which("git")
    if not git_bin:
        return
    try:
        subprocess.run([git_bin, "init"], cwd=root, check=True, capture_output=True)
    except (OSError, subprocess.CalledProcessError):
        # Non-fatal: user can run git init manually
        pass
