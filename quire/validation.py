"""Content-integrity checks for Quire.

The build refuses to render content that would come out wrong: a page with
no title, a post with an impossible date, tags that are not strings. These
checks run before anything is written and report every problem at once.

Key classes:
- Issue: A single problem tied to a source file.
- ValidationReport: All issues found in a repository.
- ValidationError: Raised by ``ValidationReport.raise_for_errors``.

Key functions:
- validate_document: Check one parsed document.
- validate_repository: Check every section and document on disk.
- validate_cname: Check a custom-domain file.
"""

from __future__ import annotations

import re
from collections.abc import Iterable, Sequence
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

from . import QuireError
from .content import ContentDocument, ContentRepository
from .frontmatter import FrontMatterError

DEFAULT_REQUIRED_KEYS = ("title", "date")
ALWAYS_REQUIRED = ("title",)
ERROR = "error"
WARNING = "warning"

_HOSTNAME_RE = re.compile(
    r"^(?=.{1,253}$)(?:[A-Za-z0-9](?:[A-Za-z0-9-]{0,61}[A-Za-z0-9])?\.)+[A-Za-z]{2,63}$"
)


@dataclass(frozen=True)
class Issue:
    """A validation problem.

    Attributes:
        path: Source file the problem was found in.
        severity: 'error' or 'warning'.
        message: Human-readable description.
    """

    path: Path
    severity: str
    message: str

    def __str__(self) -> str:
        return f"{self.path}: {self.severity}: {self.message}"


class ValidationError(QuireError):
    """Content failed validation.

    Attributes:
        issues: The error-severity issues found.
    """

    def __init__(self, issues: Sequence[Issue]):
        self.issues = list(issues)
        first = self.issues[0] if self.issues else None
        summary = f"{len(self.issues)} content error(s)"
        super().__init__(f"{summary}; first: {first}" if first else summary)

    @property
    def source_path(self) -> Path | None:
        return self.issues[0].path if self.issues else None


@dataclass
class ValidationReport:
    """All issues found while validating a repository."""

    issues: list[Issue] = field(default_factory=list)
    checked: int = 0

    @property
    def errors(self) -> list[Issue]:
        return [i for i in self.issues if i.severity == ERROR]

    @property
    def warnings(self) -> list[Issue]:
        return [i for i in self.issues if i.severity == WARNING]

    @property
    def ok(self) -> bool:
        return not self.errors

    def raise_for_errors(self) -> None:
        if self.errors:
            raise ValidationError(self.errors)


def _lookup(data: dict[str, Any], dotted: str) -> Any:
    value: Any = data
    for part in dotted.split("."):
        if not isinstance(value, dict):
            return None
        value = value.get(part)
    return value


def _is_empty(value: Any) -> bool:
    if value is None:
        return True
    if isinstance(value, str):
        return not value.strip()
    if isinstance(value, (list, dict)):
        return not value
    return False


def validate_document(
    document: ContentDocument, required_keys: Iterable[str] = DEFAULT_REQUIRED_KEYS
) -> list[Issue]:
    """Check a parsed document against the front-matter contract.

    Type errors in recognised keys are caught while parsing (see
    ``FrontMatter``); this covers presence and consistency.

    Args:
        document: Document to check.
        required_keys: Keys (dotted for nested tables) that must be non-empty.
            ``title`` is required whatever this lists.

    Returns:
        List of issues, empty when the document is fine.
    """
    issues: list[Issue] = []
    path = document.source_path
    data = document.front_matter.to_dict()

    keys = ALWAYS_REQUIRED + tuple(k for k in required_keys if k not in ALWAYS_REQUIRED)
    for key in keys:
        # a YYYY-MM-DD- filename prefix stands in for a missing date
        value = document.date if key == "date" else _lookup(data, key)
        if _is_empty(value):
            issues.append(Issue(path, ERROR, f"missing required front-matter key '{key}'"))

    for flag in ("toc", "comment"):
        value = document.extra.get(flag)
        if value is not None and not isinstance(value, bool):
            issues.append(Issue(path, ERROR, f"'extra.{flag}' must be a boolean"))

    if document.updated and document.date and document.updated < document.date:
        issues.append(
            Issue(path, WARNING, f"'updated' ({document.updated}) is before 'date' ({document.date})")
        )
    if "description" not in required_keys and not document.description:
        issues.append(Issue(path, WARNING, "no description"))
    return issues


def validate_repository(
    repository: ContentRepository,
    required_keys: Iterable[str] = DEFAULT_REQUIRED_KEYS,
    include_drafts: bool = True,
) -> ValidationReport:
    """Check every section index and document in a repository.

    Parse failures are reported as errors rather than raised, so one bad
    file does not hide problems in the others.

    Args:
        repository: Repository to check.
        required_keys: Keys every document must carry.
        include_drafts: Whether drafts are checked too.

    Returns:
        ValidationReport with every issue found.
    """
    required = tuple(required_keys)
    report = ValidationReport()
    for name in repository.sections():
        try:
            repository.section(name)
        except FrontMatterError as exc:
            report.issues.append(Issue(exc.source_path, ERROR, exc.message))
            continue
        seen: dict[str, Path] = {}
        for path in repository.loader.iter_files(name):
            report.checked += 1
            try:
                document = repository.load(path)
            except FrontMatterError as exc:
                report.issues.append(Issue(path, ERROR, exc.message))
                continue
            if document.draft and not include_drafts:
                continue
            if document.path in seen:
                report.issues.append(
                    Issue(
                        path,
                        ERROR,
                        f"duplicate path '{document.path}' (also {seen[document.path].name})",
                    )
                )
            else:
                seen[document.path] = path
            report.issues.extend(validate_document(document, required))
    return report


def validate_cname(path: Path) -> list[Issue]:
    """Check a custom-domain file holds exactly one bare hostname.

    Args:
        path: Path to the CNAME file.

    Returns:
        List of issues, empty when the file is fine.
    """
    lines = [line.strip() for line in path.read_text(encoding="utf-8").splitlines()]
    hosts = [line for line in lines if line]
    if len(hosts) != 1:
        return [Issue(path, ERROR, f"expected exactly one hostname, found {len(hosts)}")]
    problem = hostname_problem(hosts[0])
    return [Issue(path, ERROR, problem)] if problem else []


def hostname_problem(host: str) -> str | None:
    """Describe what is wrong with a custom-domain hostname.

    Returns:
        An error message, or None when ``host`` is a bare, valid hostname.
    """
    if "://" in host or "/" in host:
        return f"'{host}' must be a bare hostname without scheme or path"
    if not _HOSTNAME_RE.match(host):
        return f"'{host}' is not a valid hostname"
    return None
