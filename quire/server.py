"""Local preview server for Quire.

``quire serve`` builds the site, serves the output directory over HTTP and
rebuilds whenever content, templates, themes, static files or quire.yaml
change. Each rebuild goes to a staging directory that replaces the served
tree only when the build succeeds, so a half-edited post never takes the
preview down: the last good build stays up and the error is logged.

Key classes:
- DevServer: Builds, serves and rebuilds the site.
- LiveReloadHub: Websocket endpoint that tells open browsers to reload.
- PreviewRequestHandler: Static file handler that injects the reload snippet.
- SiteWatcher: File system event handler that triggers rebuilds.
"""

from __future__ import annotations

import asyncio
import functools
import json
import logging
import os
import shutil
import threading
import time
from http.server import SimpleHTTPRequestHandler, ThreadingHTTPServer
from pathlib import Path

import websockets
from watchdog.events import FileSystemEventHandler
from watchdog.observers import Observer

from .build import CONFIG_FILE, BuildError, build_site, load_config

logger = logging.getLogger(__name__)

WATCHED_DIRS = ("content", "templates", "themes", "static")
_EDITOR_SUFFIXES = (".swp", ".swx", ".tmp", "~")

_RELOAD_SNIPPET = """<script>
(function () {{
  var socket = new WebSocket("ws://" + location.hostname + ":{port}/");
  socket.addEventListener("message", function (event) {{
    if (JSON.parse(event.data).type === "reload") {{ location.reload(); }}
  }});
}})();
</script>
"""


def inject_reload_snippet(html: str, ws_port: int) -> str:
    """Insert the live reload script before ``</body>`` (or append it)."""
    snippet = _RELOAD_SNIPPET.format(port=ws_port)
    head, marker, tail = html.rpartition("</body>")
    if not marker:
        return html + snippet
    return f"{head}{snippet}{marker}{tail}"


def _is_within(path: Path, directory: Path) -> bool:
    return path == directory or directory in path.parents


class PreviewRequestHandler(SimpleHTTPRequestHandler):
    """Serves the built site without caching or directory listings.

    Attributes:
        ws_port: Port the injected reload script connects to.
    """

    ws_port = 1112

    def end_headers(self):
        self.send_header("Cache-Control", "no-cache, no-store, must-revalidate")
        super().end_headers()

    def log_message(self, format, *args):
        logger.debug("%s - %s", self.address_string(), format % args)

    def list_directory(self, path):  # pragma: no cover - send_head never lists
        self._not_found()
        return None

    def send_head(self):
        target = Path(self.translate_path(self.path))
        if target.is_dir():
            target = target / "index.html"
        if not target.is_file():
            self._not_found()
            return None
        if target.suffix != ".html":
            return super().send_head()
        self._write_html(200, target.read_text(encoding="utf-8"))
        return None

    def _not_found(self) -> None:
        page = Path(self.directory) / "404.html"
        if page.is_file():
            self._write_html(404, page.read_text(encoding="utf-8"))
        else:
            self.send_error(404, "File not found")

    def _write_html(self, status: int, html: str) -> None:
        body = inject_reload_snippet(html, self.ws_port).encode("utf-8")
        self.send_response(status)
        self.send_header("Content-Type", "text/html; charset=utf-8")
        self.send_header("Content-Length", str(len(body)))
        self.end_headers()
        self.wfile.write(body)


class LiveReloadHub:
    """Websocket endpoint that broadcasts reload messages.

    The hub runs its own event loop on a background thread; ``notify`` may
    be called from any thread.

    Attributes:
        port: Websocket port.
        clients: Currently connected sockets.
        loop: Event loop the websocket server runs on.
    """

    def __init__(self, port: int):
        self.port = port
        self.clients: set = set()
        self.loop = asyncio.new_event_loop()

    def run(self) -> None:
        asyncio.set_event_loop(self.loop)
        try:
            self.loop.run_until_complete(self._serve())
        except OSError as exc:
            logger.error("Live reload websocket failed to start on port %d: %s", self.port, exc)

    async def _serve(self) -> None:  # pragma: no cover - integration path
        async with websockets.serve(self._register, "0.0.0.0", self.port):
            await asyncio.Future()

    async def _register(self, websocket) -> None:
        self.clients.add(websocket)
        try:
            await websocket.wait_closed()
        finally:
            self.clients.discard(websocket)

    def notify(self) -> None:
        message = json.dumps({"type": "reload"})
        asyncio.run_coroutine_threadsafe(self._send_all(message), self.loop)

    async def _send_all(self, message: str) -> None:
        for client in list(self.clients):
            try:
                await client.send(message)
            except (websockets.ConnectionClosed, OSError) as exc:
                logger.debug("Dropping reload client: %s", exc)
                self.clients.discard(client)

    def close(self) -> None:
        self.loop.call_soon_threadsafe(self.loop.stop)


class DevServer:
    """Preview server with live reload.

    Attributes:
        project_root: Root directory of the project.
        config: Site configuration.
        output_dir: Directory the built site is served from.
        staging_dir: Directory rebuilds are written to before the swap.
        http_port: Port for the HTTP server.
        hub: Live reload websocket hub.
        base_url: URL prefix used for links in the preview build.
    """

    def __init__(self, project_root: Path, http_port: int | None = None, ws_port: int | None = None):
        self.project_root = project_root
        self.config = load_config(project_root)
        self.output_dir = project_root / self.config.get("output_dir", "public")
        self.staging_dir = self.output_dir.with_name(self.output_dir.name + ".staging")
        self.http_port = int(http_port or self.config.get("port", 1111))
        if ws_port is None:
            # An explicit --port moves the websocket along with it.
            default_ws = self.http_port + 1
            ws_port = default_ws if http_port is not None else self.config.get("ws_port", default_ws)
        self.hub = LiveReloadHub(int(ws_port))
        self.base_url = f"http://localhost:{self.http_port}"
        self.include_drafts = False
        self.debounce_seconds = 0.05
        self.settle_seconds = 0.05
        self._observer: Observer | None = None
        self._lock = threading.Lock()
        self._last_rebuild_at = float("-inf")
        self._snapshot: tuple | None = None

    @property
    def ws_port(self) -> int:
        return self.hub.port

    def start(self, include_drafts: bool = False) -> None:  # pragma: no cover - integration path
        self.include_drafts = include_drafts
        self.publish()
        self._snapshot = self.snapshot()
        threading.Thread(target=self._serve_http, daemon=True).start()
        threading.Thread(target=self.hub.run, daemon=True).start()
        self.watch()
        logger.info("Watching %s for changes (Ctrl+C to stop)", self.project_root)
        try:
            while True:
                time.sleep(1)
        except KeyboardInterrupt:
            self.stop()

    def stop(self) -> None:
        if self._observer is not None:
            self._observer.stop()
            self._observer.join()
        self.hub.close()

    def publish(self):
        """Build into the staging directory and swap it in as the served tree.

        Raises:
            BuildError: If the build fails; the served tree is left untouched.
        """
        if self.staging_dir.exists():
            shutil.rmtree(self.staging_dir)
        self.staging_dir.mkdir(parents=True)
        result = build_site(
            self.project_root,
            include_drafts=self.include_drafts,
            base_url=self.base_url,
            output_dir_override=self.staging_dir,
        )
        if self.output_dir.exists():
            shutil.rmtree(self.output_dir)
        os.replace(self.staging_dir, self.output_dir)
        return result

    def rebuild(self, changed: Path | None = None) -> bool:
        """Rebuild after a change and tell connected browsers to reload.

        Bursts of events are debounced, concurrent calls are dropped and
        events that leave every watched file unchanged are ignored.

        Args:
            changed: The file that triggered the rebuild, for logging.

        Returns:
            True if a new build was published.
        """
        if time.monotonic() - self._last_rebuild_at < self.debounce_seconds:
            return False
        if not self._lock.acquire(blocking=False):
            return False
        try:
            snapshot = self.snapshot()
            if snapshot is not None and snapshot == self._snapshot:
                return False
            if changed is not None:
                logger.info("Rebuilding after change to %s", _relative(self.project_root, changed))
            try:
                self.publish()
            except BuildError as exc:
                logger.error("Build failed: %s", exc)
                return False
            self._snapshot = snapshot
            if self.settle_seconds:
                time.sleep(self.settle_seconds)
            self.hub.notify()
            return True
        finally:
            self._last_rebuild_at = time.monotonic()
            self._lock.release()

    def snapshot(self) -> tuple | None:
        """Fingerprint every watched file as (path, mtime, size) entries."""
        files = [self.project_root / CONFIG_FILE]
        for name in WATCHED_DIRS:
            folder = self.project_root / name
            if folder.is_dir():
                files.extend(sorted(p for p in folder.rglob("*") if not p.is_dir()))
        entries = []
        for path in files:
            try:
                stat = path.stat()
            except OSError:
                continue
            rel = path.relative_to(self.project_root).as_posix()
            entries.append((rel, stat.st_mtime_ns, stat.st_size))
        return tuple(entries) or None

    def watch(self) -> None:
        handler = SiteWatcher(self)
        observer = Observer()
        for name in WATCHED_DIRS:
            folder = self.project_root / name
            if folder.is_dir():
                observer.schedule(handler, str(folder), recursive=True)
        # quire.yaml sits at the project root
        observer.schedule(handler, str(self.project_root), recursive=False)
        observer.start()
        self._observer = observer

    def _serve_http(self) -> None:  # pragma: no cover - integration path
        handler_cls = type("QuirePreviewHandler", (PreviewRequestHandler,), {"ws_port": self.ws_port})
        handler = functools.partial(handler_cls, directory=str(self.output_dir))
        httpd = ThreadingHTTPServer(("", self.http_port), handler)
        logger.info("Previewing %s at %s/", self.output_dir, self.base_url)
        httpd.serve_forever()


class SiteWatcher(FileSystemEventHandler):
    """Rebuilds the site when a project source file changes."""

    def __init__(self, server: DevServer):
        super().__init__()
        self.server = server

    def relevant(self, path: Path) -> bool:
        """Whether a change to ``path`` affects the built site."""
        if path.name.endswith(_EDITOR_SUFFIXES) or path.name.startswith(".#"):
            return False
        if path.parent == self.server.project_root:
            return path.name == CONFIG_FILE
        return not (
            _is_within(path, self.server.output_dir) or _is_within(path, self.server.staging_dir)
        )

    def on_any_event(self, event):
        if event.is_directory:
            return
        path = Path(os.fsdecode(event.src_path))
        if self.relevant(path):
            self.server.rebuild(path)


def _relative(root: Path, path: Path) -> str:
    try:
        return path.relative_to(root).as_posix()
    except ValueError:
        return str(path)
