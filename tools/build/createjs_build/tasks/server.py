"""Static development server with a reload generation endpoint."""

from __future__ import annotations

import asyncio
import json
import logging
import threading
from functools import partial
from http.server import SimpleHTTPRequestHandler, ThreadingHTTPServer
from pathlib import Path
from typing import Optional

from ..schemas.settings import ServeSettings

logger = logging.getLogger(__name__)

RELOAD_PATH = "/__reload"
HTML_SUFFIXES = (".html", ".htm")

# polls the generation counter and reloads the page once it moves
RELOAD_SCRIPT = (
    "<script>(function () {"
    "var seen = null;"
    "setInterval(function () {"
    f"fetch('{RELOAD_PATH}', {{cache: 'no-store'}})"
    ".then(function (res) { return res.json(); })"
    ".then(function (data) {"
    "if (seen !== null && data.generation !== seen) { location.reload(); }"
    "seen = data.generation;"
    "}).catch(function () {});"
    "}, 1000);"
    "})();</script>"
)


def inject_reload_script(html: str) -> str:
    """Insert :data:`RELOAD_SCRIPT` before ``</body>``, or append it when there is none."""

    index = html.lower().rfind("</body>")
    if index == -1:
        return html + RELOAD_SCRIPT
    return html[:index] + RELOAD_SCRIPT + html[index:]


class _DevRequestHandler(SimpleHTTPRequestHandler):
    dev_server: "DevServer"

    def do_GET(self) -> None:  # noqa: N802 - http.server naming
        if self.path.split("?", 1)[0] == RELOAD_PATH:
            body = json.dumps({"generation": self.dev_server.generation}).encode("utf-8")
            self._send_body(body, "application/json")
            return
        page = self._html_page()
        if page is not None:
            html = page.read_bytes().decode("utf-8", errors="surrogateescape")
            self._send_body(inject_reload_script(html).encode("utf-8", errors="surrogateescape"), "text/html; charset=utf-8")
            return
        super().do_GET()

    def _html_page(self) -> Optional[Path]:
        request_path = self.path.split("?", 1)[0].split("#", 1)[0]
        target = Path(self.translate_path(self.path))
        if target.is_dir():
            # without the slash the base handler redirects first
            if not request_path.endswith("/"):
                return None
            target = next((target / f"index{suffix}" for suffix in HTML_SUFFIXES if (target / f"index{suffix}").is_file()), target)
        if target.is_file() and target.suffix.lower() in HTML_SUFFIXES:
            return target
        return None

    def _send_body(self, body: bytes, content_type: str) -> None:
        self.send_response(200)
        self.send_header("Content-Type", content_type)
        self.send_header("Cache-Control", "no-store")
        self.send_header("Content-Length", str(len(body)))
        self.end_headers()
        self.wfile.write(body)

    def list_directory(self, path):  # type: ignore[override]
        if not self.dev_server.settings.directory_listing:
            self.send_error(404, "Directory listing disabled")
            return None
        return super().list_directory(path)

    def log_message(self, format: str, *args: object) -> None:  # noqa: A002 - signature from base class
        logger.debug("%s %s", self.address_string(), format % args)


class DevServer:
    """Serves the library root so examples, extras and tutorials load the fresh bundle.

    Pages poll ``/__reload`` and refresh when ``generation`` changes.
    """

    def __init__(self, root: Path, settings: Optional[ServeSettings] = None, *, label: str = "createjs") -> None:
        self.root = root
        self.settings = settings or ServeSettings()
        self.label = label
        self.generation = 0
        self._httpd: Optional[ThreadingHTTPServer] = None
        self._thread: Optional[threading.Thread] = None

    @property
    def address(self) -> tuple[str, int]:
        if self._httpd is None:
            return self.settings.host, self.settings.port
        host, port = self._httpd.server_address[:2]
        return str(host), int(port)

    @property
    def url(self) -> str:
        host, port = self.address
        return f"http://{host}:{port}/"

    def start(self) -> None:
        if self._httpd is not None:
            return
        handler = type("DevRequestHandler", (_DevRequestHandler,), {"dev_server": self})
        self._httpd = ThreadingHTTPServer(
            (self.settings.host, self.settings.port),
            partial(handler, directory=str(self.root)),
        )
        self._thread = threading.Thread(target=self._httpd.serve_forever, name="createjs-dev-server", daemon=True)
        self._thread.start()
        logger.info("[%s] Serving %s at %s", self.label, self.root, self.url)

    def stop(self) -> None:
        if self._httpd is None:
            return
        self._httpd.shutdown()
        self._httpd.server_close()
        if self._thread is not None:
            self._thread.join(timeout=5)
        self._httpd = None
        self._thread = None

    def reload(self) -> int:
        self.generation += 1
        logger.info("[%s] Reload #%d", self.label, self.generation)
        return self.generation

    async def serve_forever(self) -> None:
        self.start()
        try:
            await asyncio.Event().wait()
        finally:
            self.stop()
