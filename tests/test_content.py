from datetime import date
from pathlib import Path

import pytest

from quire.content import (
    ContentDocument,
    ContentRepository,
    DocumentNotFound,
    FileContentLoader,
    SectionNotFound,
)
from quire.frontmatter import FrontMatter, FrontMatterError, format_for_name
from quire.protocols import ContentLoader


def write(path: Path, text: str) -> Path:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(text, encoding="utf-8")
    return path


def post(title: str, when: str | None = None, extra: str = "") -> str:
    lines = ["+++", f'title = "{title}"']
    if when:
        lines.append(f"date = {when}")
    if extra:
        lines.append(extra)
    lines.append("+++")
    return "\n".join(lines) + "\n\nBody of " + title + "\n"


def make_repository(tmp_path: Path) -> ContentRepository:
    content = tmp_path / "content"
    write(content / "_index.md", '+++\ntitle = "Home"\n+++\nWelcome\n')
    write(content / "about.md", post("About"))
    write(content / "posts" / "_index.md", '+++\ntitle = "Posts"\nsort_by = "date"\n+++\n')
    write(content / "posts" / "2025-12-06-memoization.md", post("Memoization", "2025-12-06"))
    write(content / "posts" / "2024-05-01-lttb.md", post("LTTB", "2024-05-01"))
    write(
        content / "posts" / "2025-01-01-wip.md",
        post("Work in progress", "2025-01-01", "draft = true"),
    )
    write(content / "projects" / "_index.md", '+++\nsort_by = "weight"\n+++\n')
    write(content / "projects" / "b.md", post("Beta", extra="weight = 2"))
    write(content / "projects" / "a.md", post("Alpha", extra="weight = 1"))
    write(content / "projects" / "c.md", post("Gamma", extra="weight = 1"))
    (content / "support").mkdir()
    write(content / "_drafts" / "hidden.md", post("Hidden"))
    write(content / ".cache" / "junk.md", post("Junk"))
    return ContentRepository(content)


def test_sections_are_discovered(tmp_path):
    repository = make_repository(tmp_path)
    assert repository.sections() == ["", "posts", "projects", "support"]


def test_section_metadata(tmp_path):
    repository = make_repository(tmp_path)
    home = repository.section("")
    assert home.title == "Home"
    assert home.url == "/"
    assert home.body == "Welcome\n"

    projects = repository.section("projects")
    assert projects.title == "Projects"
    assert projects.sort_by == "weight"
    assert projects.paginate_by == 0
    assert projects.url == "/projects/"

    support = repository.section("support")
    assert support.title == "Support"
    assert support.sort_by == "date"


def test_missing_or_hidden_section_raises(tmp_path):
    repository = make_repository(tmp_path)
    with pytest.raises(SectionNotFound) as excinfo:
        repository.section("notes")
    assert "notes" in str(excinfo.value)
    assert isinstance(excinfo.value, LookupError)
    with pytest.raises(SectionNotFound):
        repository.enumerate("_drafts")


def test_enumerate_orders_posts_newest_first_and_hides_drafts(tmp_path):
    repository = make_repository(tmp_path)
    slugs = [d.slug for d in repository.enumerate("posts")]
    assert slugs == ["memoization", "lttb"]

    with_drafts = [d.slug for d in repository.enumerate("posts", include_drafts=True)]
    assert with_drafts == ["memoization", "wip", "lttb"]


def test_enumerate_orders_by_weight_then_title(tmp_path):
    repository = make_repository(tmp_path)
    assert [d.title for d in repository.enumerate("projects")] == ["Alpha", "Gamma", "Beta"]


def test_empty_section_enumerates_nothing(tmp_path):
    repository = make_repository(tmp_path)
    assert list(repository.enumerate("support")) == []


def test_enumeration_is_lazy_and_restartable(tmp_path):
    repository = make_repository(tmp_path)
    listing = repository.enumerate("posts")
    assert len(list(listing)) == 2
    write(
        repository.content_dir / "posts" / "2026-01-01-new.md",
        post("New", "2026-01-01"),
    )
    assert [d.slug for d in listing][0] == "new"


def test_enumeration_surfaces_malformed_front_matter(tmp_path):
    repository = make_repository(tmp_path)
    write(repository.content_dir / "posts" / "broken.md", "+++\ntitle = \n+++\n")
    with pytest.raises(FrontMatterError) as excinfo:
        list(repository.enumerate("posts"))
    assert excinfo.value.source_path.name == "broken.md"


def test_load_document_fields(tmp_path):
    repository = make_repository(tmp_path)
    document = repository.load(repository.content_dir / "posts" / "2025-12-06-memoization.md")
    assert document.section == "posts"
    assert document.slug == "memoization"
    assert document.path == "posts/memoization"
    assert document.url == "/posts/memoization/"
    assert document.title == "Memoization"
    assert document.date == date(2025, 12, 6)
    assert document.body == "\nBody of Memoization\n"
    assert document.format.name == "toml"


def test_date_falls_back_to_filename_prefix(tmp_path):
    repository = make_repository(tmp_path)
    path = write(repository.content_dir / "posts" / "2023-03-04-undated.md", post("Undated"))
    assert repository.load(path).date == date(2023, 3, 4)


def test_slug_override(tmp_path):
    repository = make_repository(tmp_path)
    write(
        repository.content_dir / "posts" / "2024-02-02-long-name.md",
        post("Short", "2024-02-02", 'slug = "short"'),
    )
    assert repository.resolve("posts/short").title == "Short"


def test_resolve_by_path_and_by_file(tmp_path):
    repository = make_repository(tmp_path)
    assert repository.resolve("posts/lttb").title == "LTTB"
    assert repository.resolve("/posts/lttb/").title == "LTTB"
    assert repository.resolve("about").section == ""
    assert repository.resolve("posts/2024-05-01-lttb.md").slug == "lttb"


def test_resolve_finds_drafts(tmp_path):
    repository = make_repository(tmp_path)
    assert repository.resolve("posts/wip").draft is True


@pytest.mark.parametrize(
    "path",
    ["posts/nope", "notes/anything", "", "posts/_index.md", "_drafts/hidden.md", "missing.md"],
)
def test_resolve_missing_document(tmp_path, path):
    repository = make_repository(tmp_path)
    with pytest.raises(DocumentNotFound):
        repository.resolve(path)


def test_write_round_trips_document(tmp_path):
    repository = make_repository(tmp_path)
    source = repository.content_dir / "posts" / "2025-06-01-written.md"
    document = ContentDocument(
        section="posts",
        slug="written",
        source_path=source,
        front_matter=FrontMatter(
            {"title": "Written", "date": date(2025, 6, 1), "taxonomies": {"tags": ["a", "b"]}}
        ),
        body="\nHello\n",
        date=date(2025, 6, 1),
    )
    repository.write(document)
    first = source.read_text(encoding="utf-8")

    loaded = repository.resolve("posts/written")
    assert loaded.front_matter == document.front_matter
    assert loaded.body == document.body
    repository.write(loaded)
    assert source.read_text(encoding="utf-8") == first


def test_write_keeps_yaml_format(tmp_path):
    repository = make_repository(tmp_path)
    source = write(
        repository.content_dir / "posts" / "2022-02-02-yaml.md",
        "---\ntitle: Yaml post\ndate: 2022-02-02\ncustom: kept\n---\nBody\n",
    )
    document = repository.load(source)
    assert document.format is format_for_name("yaml")
    repository.write(document)
    reloaded = repository.load(source)
    assert reloaded.front_matter.get("custom") == "kept"
    assert source.read_text(encoding="utf-8").startswith("---\n")


def test_invalid_section_index_is_reported(tmp_path):
    repository = make_repository(tmp_path)
    write(repository.content_dir / "support" / "_index.md", '+++\nsort_by = "random"\n+++\n')
    with pytest.raises(FrontMatterError, match="sort_by"):
        repository.section("support")
    write(repository.content_dir / "support" / "_index.md", "+++\npaginate_by = -1\n+++\n")
    with pytest.raises(FrontMatterError, match="paginate_by"):
        repository.section("support")


def test_loader_skips_index_and_hidden_files(tmp_path):
    repository = make_repository(tmp_path)
    write(repository.content_dir / "posts" / ".swap.md", post("Swap"))
    write(repository.content_dir / "posts" / "notes.txt", "not markdown")
    loader = FileContentLoader(repository.content_dir)
    assert isinstance(loader, ContentLoader)
    names = [p.name for p in loader.iter_files("posts")]
    assert names == ["2024-05-01-lttb.md", "2025-01-01-wip.md", "2025-12-06-memoization.md"]


def test_documents_collects_every_section(tmp_path):
    repository = make_repository(tmp_path)
    paths = {d.path for d in repository.documents()}
    assert paths == {
        "about",
        "posts/memoization",
        "posts/lttb",
        "projects/a",
        "projects/b",
        "projects/c",
    }
