import asyncio
import io
import logging
from pathlib import Path

from quire.build import BuildError
from quire.server import (
    WATCHED_DIRS,
    DevServer,
    LiveReloadHub,
    PreviewRequestHandler,
    SiteWatcher,
    inject_reload_snippet,
)


class DummyEvent:
    def __init__(self, path, is_directory=False):
        self.src_path = str(path)
        self.is_directory = is_directory


def make_handler(directory: Path, path: str) -> PreviewRequestHandler:
    """Build a request handler without a socket, recording status codes."""
    handler = PreviewRequestHandler.__new__(PreviewRequestHandler)
    handler.path = path
    handler.directory = str(directory)
    handler.command = "GET"
    handler.request_version = "HTTP/1.1"
    handler.headers = {}
    handler.rfile = io.BytesIO(b"")
    handler.wfile = io.BytesIO()
    handler.codes = []
    handler.send_response = lambda code, message=None: handler.codes.append(code)
    handler.send_header = lambda *args, **kwargs: None
    handler.end_headers = lambda: None
    handler.send_error = lambda code, message=None: handler.codes.append(("error", code))
    return handler


def stub_build(calls):
    def fake_build(root, include_drafts=False, base_url=None, clean_output=True, output_dir_override=None):
        calls.append(("build", include_drafts, base_url, output_dir_override))
        (output_dir_override / "index.html").write_text("new", encoding="utf-8")

    return fake_build


def test_ports_and_paths_from_config(tmp_path):
    (tmp_path / "quire.yaml").write_text("port: 4000\noutput_dir: site\n", encoding="utf-8")
    server = DevServer(tmp_path)
    assert server.http_port == 4000
    assert server.ws_port == 4001
    assert server.output_dir == tmp_path / "site"
    assert server.staging_dir == tmp_path / "site.staging"
    assert server.base_url == "http://localhost:4000"


def test_port_overrides(tmp_path):
    (tmp_path / "quire.yaml").write_text("ws_port: 9999\n", encoding="utf-8")
    assert DevServer(tmp_path).ws_port == 9999
    moved = DevServer(tmp_path, http_port=5055)
    assert (moved.http_port, moved.ws_port) == (5055, 5056)
    assert DevServer(tmp_path, http_port=5055, ws_port=6000).ws_port == 6000


def test_inject_reload_snippet():
    html = inject_reload_snippet("<html><body>Hi</body></html>", 7000)
    assert html.index(":7000/") < html.index("</body>")
    assert html.endswith("</body></html>")
    assert inject_reload_snippet("<p>bare</p>", 7000).startswith("<p>bare</p><script>")


def test_publish_swaps_staging_into_place(monkeypatch, tmp_path):
    server = DevServer(tmp_path)
    server.include_drafts = True
    server.output_dir.mkdir()
    (server.output_dir / "stale.html").write_text("old", encoding="utf-8")
    calls = []
    monkeypatch.setattr("quire.server.build_site", stub_build(calls))

    server.publish()
    assert calls == [("build", True, "http://localhost:1111", server.staging_dir)]
    assert (server.output_dir / "index.html").read_text(encoding="utf-8") == "new"
    assert not (server.output_dir / "stale.html").exists()
    assert not server.staging_dir.exists()


def test_rebuild_publishes_then_reloads(monkeypatch, tmp_path):
    server = DevServer(tmp_path)
    server.settle_seconds = 0.01
    server.snapshot = lambda: (("content/a.md", 1, 1),)
    events = []
    monkeypatch.setattr("quire.server.build_site", stub_build(events))
    monkeypatch.setattr(server.hub, "notify", lambda: events.append("reload"))
    slept = []
    monkeypatch.setattr("quire.server.time.sleep", lambda secs: slept.append(secs))

    assert server.rebuild(tmp_path / "content" / "a.md") is True
    assert [e if isinstance(e, str) else e[0] for e in events] == ["build", "reload"]
    assert slept == [0.01]


def test_failed_rebuild_keeps_last_good_site(monkeypatch, tmp_path, caplog):
    server = DevServer(tmp_path)
    server.snapshot = lambda: (("content/bad.md", 2, 2),)
    server.output_dir.mkdir()
    (server.output_dir / "index.html").write_text("good", encoding="utf-8")
    reloads = []
    monkeypatch.setattr(server.hub, "notify", lambda: reloads.append(True))

    def failing_build(root, **kwargs):
        raise BuildError(root / "content" / "bad.md", "missing required front-matter key 'title'")

    monkeypatch.setattr("quire.server.build_site", failing_build)
    with caplog.at_level(logging.INFO, logger="quire.server"):
        assert server.rebuild(tmp_path / "content" / "bad.md") is False

    assert reloads == []
    assert server._snapshot is None
    assert (server.output_dir / "index.html").read_text(encoding="utf-8") == "good"
    assert "Rebuilding after change to content/bad.md" in caplog.text
    assert "missing required front-matter key 'title'" in caplog.text


def test_half_saved_config_keeps_last_good_site(monkeypatch, tmp_path, caplog):
    server = DevServer(tmp_path)
    server.output_dir.mkdir()
    (server.output_dir / "index.html").write_text("good", encoding="utf-8")
    (tmp_path / "quire.yaml").write_text("title: [unclosed\n", encoding="utf-8")
    reloads = []
    monkeypatch.setattr(server.hub, "notify", lambda: reloads.append(True))

    with caplog.at_level(logging.INFO, logger="quire.server"):
        assert server.rebuild(tmp_path / "quire.yaml") is False

    assert reloads == []
    assert (server.output_dir / "index.html").read_text(encoding="utf-8") == "good"
    assert "Build failed:" in caplog.text
    assert "Invalid YAML" in caplog.text



def test_rebuild_skips_busy_and_unchanged(monkeypatch, tmp_path):
    server = DevServer(tmp_path)
    server.debounce_seconds = 0
    server.settle_seconds = 0
    calls = []
    monkeypatch.setattr("quire.server.build_site", lambda *args, **kwargs: calls.append("built"))
    monkeypatch.setattr(server.hub, "notify", lambda: calls.append("reloaded"))
    snapshots = [("a",), ("a",), ("b",)]
    server.snapshot = lambda: snapshots.pop(0) if snapshots else ("b",)

    assert server.rebuild() is True
    server._lock.acquire()
    assert server.rebuild() is False  # another rebuild is running
    server._lock.release()
    assert server.rebuild() is False  # nothing changed
    assert server.rebuild() is True
    assert calls == ["built", "reloaded", "built", "reloaded"]


def test_rebuild_debounces_bursts(monkeypatch, tmp_path):
    server = DevServer(tmp_path)
    server.debounce_seconds = 60
    monkeypatch.setattr("quire.server.build_site", lambda *args, **kwargs: None)
    monkeypatch.setattr(server.hub, "notify", lambda: None)
    server.settle_seconds = 0
    server.snapshot = lambda: None
    assert server.rebuild() is True
    assert server.rebuild() is False


def test_snapshot_covers_watched_files(tmp_path):
    server = DevServer(tmp_path)
    assert server.snapshot() is None

    (tmp_path / "quire.yaml").write_text("title: t\n", encoding="utf-8")
    (tmp_path / "content" / "posts").mkdir(parents=True)
    (tmp_path / "content" / "posts" / "a.md").write_text("hi", encoding="utf-8")
    (tmp_path / "themes" / "plain").mkdir(parents=True)
    (tmp_path / "themes" / "plain" / "page.html").write_text("x", encoding="utf-8")
    (tmp_path / "static").mkdir()
    (tmp_path / "static" / "dangling").symlink_to(tmp_path / "nope.txt")
    (tmp_path / "notes.txt").write_text("not watched", encoding="utf-8")

    names = [entry[0] for entry in server.snapshot()]
    assert names == ["quire.yaml", "content/posts/a.md", "themes/plain/page.html"]


def test_site_watcher_filters_events(tmp_path):
    server = DevServer(tmp_path)
    changed = []
    server.rebuild = lambda path=None: changed.append(path)
    watcher = SiteWatcher(server)

    for ignored in (
        DummyEvent(server.output_dir / "index.html"),
        DummyEvent(server.staging_dir / "posts" / "index.html"),
        DummyEvent(tmp_path / "README.md"),
        DummyEvent(tmp_path / "content" / "posts" / ".a.md.swp"),
        DummyEvent(tmp_path / "content" / "posts" / "a.md~"),
        DummyEvent(tmp_path / "content", is_directory=True),
    ):
        watcher.on_any_event(ignored)
    assert changed == []

    watcher.on_any_event(DummyEvent(tmp_path / "content" / "posts" / "a.md"))
    watcher.on_any_event(DummyEvent(tmp_path / "quire.yaml"))
    assert changed == [tmp_path / "content" / "posts" / "a.md", tmp_path / "quire.yaml"]


def test_watch_schedules_existing_dirs(monkeypatch, tmp_path):
    (tmp_path / "content").mkdir()
    (tmp_path / "themes").mkdir()
    server = DevServer(tmp_path)
    scheduled = []

    class DummyObserver:
        def schedule(self, handler, path, recursive):
            scheduled.append((path, recursive))

        def start(self):
            scheduled.append("started")

        def stop(self):
            scheduled.append("stopped")

        def join(self):
            scheduled.append("joined")

    monkeypatch.setattr("quire.server.Observer", DummyObserver)
    server.watch()
    assert scheduled == [
        (str(tmp_path / "content"), True),
        (str(tmp_path / "themes"), True),
        (str(tmp_path), False),
        "started",
    ]
    assert set(WATCHED_DIRS) == {"content", "templates", "themes", "static"}

    server.stop()
    assert scheduled[-2:] == ["stopped", "joined"]


def test_hub_drops_closed_clients():
    hub = LiveReloadHub(7001)

    class GoodWS:
        def __init__(self):
            self.messages = []

        async def send(self, msg):
            self.messages.append(msg)

    class GoneWS:
        async def send(self, msg):
            raise ConnectionResetError("gone")

    good, gone = GoodWS(), GoneWS()
    hub.clients = {good, gone}
    asyncio.run(hub._send_all('{"type": "reload"}'))
    assert good.messages == ['{"type": "reload"}']
    assert hub.clients == {good}


def test_hub_notify_schedules_on_its_loop(monkeypatch):
    hub = LiveReloadHub(7002)
    seen = {}

    def fake_runner(coro, loop):
        seen["loop"] = loop
        runner_loop = asyncio.new_event_loop()
        try:
            return runner_loop.run_until_complete(coro)
        finally:
            runner_loop.close()

    monkeypatch.setattr("quire.server.asyncio.run_coroutine_threadsafe", fake_runner)
    hub.notify()
    assert seen["loop"] is hub.loop


def test_hub_register_tracks_connection():
    hub = LiveReloadHub(7003)

    class DummyWS:
        def __init__(self):
            self.closed = False

        async def wait_closed(self):
            assert self in hub.clients
            self.closed = True

    ws = DummyWS()
    asyncio.run(hub._register(ws))
    assert ws.closed
    assert ws not in hub.clients


def test_hub_start_failure_is_logged(monkeypatch, caplog):
    hub = LiveReloadHub(7004)

    async def fake_serve():
        raise OSError("address in use")

    monkeypatch.setattr(hub, "_serve", fake_serve)
    hub.run()
    assert "failed to start on port 7004: address in use" in caplog.text


def test_html_is_served_with_reload_script(tmp_path):
    (tmp_path / "posts").mkdir()
    (tmp_path / "posts" / "index.html").write_text("<html><body>index</body></html>", encoding="utf-8")
    handler = make_handler(tmp_path, "/posts/")
    assert PreviewRequestHandler.send_head(handler) is None
    assert handler.codes == [200]
    assert b"WebSocket" in handler.wfile.getvalue()


def test_missing_path_serves_custom_404(tmp_path):
    (tmp_path / "404.html").write_text("<html><body>oops</body></html>", encoding="utf-8")
    handler = make_handler(tmp_path, "/missing/")
    assert PreviewRequestHandler.send_head(handler) is None
    assert handler.codes == [404]
    body = handler.wfile.getvalue().decode()
    assert "oops" in body
    assert "WebSocket" in body


def test_directory_without_index_is_plain_404(tmp_path):
    (tmp_path / "posts").mkdir()
    (tmp_path / "posts" / "note.txt").write_text("hi", encoding="utf-8")
    handler = make_handler(tmp_path, "/posts/")
    assert PreviewRequestHandler.send_head(handler) is None
    assert handler.codes == [("error", 404)]


def test_static_files_use_default_handler(tmp_path):
    (tmp_path / "style.css").write_text("body{}", encoding="utf-8")
    handler = make_handler(tmp_path, "/style.css")
    result = PreviewRequestHandler.send_head(handler)
    assert result is not None
    result.close()
    assert handler.codes == [200]
