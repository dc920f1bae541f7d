"""Development server for Stheno.

Serves the build output with live reload:
- Injects a reload script into HTML responses.
- Rejects directory listings and missing paths with a 404 (serving 404.html when present).
- Watches the output directory and tells connected browsers to reload.

Reload notifications are debounced on the trailing edge: a burst of file
events (Jekyll rewriting the whole site) yields one reload, sent once the
output has been quiet for ``debounce_seconds``.

Key classes:
- DevServer: HTTP, websocket and watcher threads for one output directory.
- _ReloadHandler: HTTP request handler that injects reload script and enforces 404s.
- _ChangeHandler: File system event handler feeding the debouncer.
"""

from __future__ import annotations

import asyncio
import functools
import json
import threading
from concurrent.futures import Future
from http.server import SimpleHTTPRequestHandler, ThreadingHTTPServer
from pathlib import Path

import websockets
from watchdog.events import FileSystemEventHandler
from watchdog.observers import Observer

RELOAD_SCRIPT_TEMPLATE = """
<script>
(() => {{
  const ws = new WebSocket('ws://' + location.hostname + ':{ws_port}');
  ws.onmessage = (event) => {{
    const data = JSON.parse(event.data || '{{}}');
    if (data.type === 'reload') location.reload();
  }};
}})();
</script>
"""


def inject_reload_script(content: str, script: str) -> str:
    """Insert the reload script before ``</body>``, or append it."""
    if "</body>" in content:
        return content.replace("</body>", f"{script}</body>")
    return content + script


class _ReloadHandler(SimpleHTTPRequestHandler):
    """HTTP request handler that injects live reload script into HTML pages."""

    reload_script = RELOAD_SCRIPT_TEMPLATE.format(ws_port=3001)

    def end_headers(self):
        self.send_header("Cache-Control", "no-cache, no-store, must-revalidate")
        super().end_headers()

    def log_message(self, format, *args):  # noqa: A002
        pass

    def list_directory(self, path):  # pragma: no cover - exercised via send_head
        return self._serve_404()

    def _send_html(self, status: int, content: str) -> None:
        encoded = inject_reload_script(content, self.reload_script).encode("utf-8")
        self.send_response(status)
        self.send_header("Content-type", "text/html; charset=utf-8")
        self.send_header("Content-Length", str(len(encoded)))
        self.end_headers()
        self.wfile.write(encoded)

    def _serve_404(self):
        """Serve 404.html (when present) with a 404 status."""
        error_page = Path(self.directory) / "404.html"
        if error_page.exists():
            self._send_html(404, error_page.read_text(encoding="utf-8"))
            return None
        self.send_error(404, "File not found")
        return None

    def send_head(self):
        path_obj = Path(self.translate_path(self.path))
        if path_obj.is_dir():
            path_obj = path_obj / "index.html"
            if not path_obj.exists():
                return self._serve_404()
        elif not path_obj.exists():
            # Jekyll permalinks without a trailing slash, e.g. /about -> /about.html
            html_variant = path_obj.with_name(path_obj.name + ".html")
            if not html_variant.exists():
                return self._serve_404()
            path_obj = html_variant

        if path_obj.suffix == ".html":
            self._send_html(200, path_obj.read_text(encoding="utf-8"))
            return None
        return super().send_head()


class DevServer:
    """Static server for the build output with live reload.

    Attributes:
        output_dir: Directory being served and watched.
        http_port: Port for the HTTP server.
        ws_port: Port for websocket reload notifications.
        debounce_seconds: Quiet period before a reload is broadcast.
    """

    def __init__(
        self,
        output_dir: Path,
        http_port: int = 3000,
        ws_port: int | None = None,
        debounce_seconds: float = 0.1,
    ):
        self.output_dir = output_dir
        self.http_port = http_port
        self.ws_port = ws_port if ws_port is not None else http_port + 1
        self.debounce_seconds = debounce_seconds
        self._reload_script = RELOAD_SCRIPT_TEMPLATE.format(ws_port=self.ws_port)
        self._observer: Observer | None = None
        self._httpd: ThreadingHTTPServer | None = None
        self._http_thread: threading.Thread | None = None
        self._ws_thread: threading.Thread | None = None
        self._ws_shutdown = asyncio.Event()
        self._ws_clients: set = set()
        self._loop = asyncio.new_event_loop()
        self._lock = threading.Lock()
        self._pending: threading.Timer | None = None

    def start(self, stop_event: threading.Event) -> None:
        """Serve until ``stop_event`` is set.

        Both ports are bound before this returns control to the wait, so a
        port already in use raises ``OSError`` here.
        """
        self.output_dir.mkdir(parents=True, exist_ok=True)
        self._bind()
        try:
            self._http_thread = threading.Thread(target=self._httpd.serve_forever, daemon=True)
            self._http_thread.start()
            print(f"Serving {self.output_dir} at http://localhost:{self.http_port}")
            self._start_watcher()
            stop_event.wait()
        finally:
            self.stop()

    def stop(self) -> None:
        with self._lock:
            if self._pending is not None:
                self._pending.cancel()
                self._pending = None
        if self._observer:
            self._observer.stop()
            self._observer.join()
            self._observer = None
        if self._httpd:
            if self._http_thread is not None:
                self._httpd.shutdown()
                self._http_thread = None
            self._httpd.server_close()
            self._httpd = None
        if self._ws_thread is not None:
            self._loop.call_soon_threadsafe(self._ws_shutdown.set)
            self._ws_thread.join(5)
            self._ws_thread = None

    def handler_class(self) -> type[_ReloadHandler]:
        """Request handler bound to this server's websocket port."""
        return type(
            "_ReloadHandlerWithPort",
            (_ReloadHandler,),
            {"reload_script": self._reload_script},
        )

    def _bind(self) -> None:
        handler = functools.partial(self.handler_class(), directory=str(self.output_dir))
        httpd = ThreadingHTTPServer(("", self.http_port), handler)
        try:
            self._start_ws()
        except OSError:
            httpd.server_close()
            raise
        self._httpd = httpd

    def _start_ws(self) -> None:
        ready: Future = Future()
        thread = threading.Thread(target=self._run_ws_loop, args=(ready,), daemon=True)
        thread.start()
        try:
            ready.result(timeout=10)
        except OSError:
            thread.join()
            raise
        self._ws_thread = thread

    def _run_ws_loop(self, ready: Future) -> None:
        asyncio.set_event_loop(self._loop)
        try:
            self._loop.run_until_complete(self._run_ws_server(ready))
        finally:
            self._loop.close()

    async def _run_ws_server(self, ready: Future) -> None:
        try:
            server = await websockets.serve(self._ws_handler, "0.0.0.0", self.ws_port)
        except OSError as exc:
            ready.set_exception(exc)
            return
        ready.set_result(None)
        try:
            await self._ws_shutdown.wait()
        finally:
            server.close()
            await server.wait_closed()

    async def _ws_handler(self, websocket):
        self._ws_clients.add(websocket)
        try:
            await websocket.wait_closed()
        finally:
            self._ws_clients.discard(websocket)

    def _broadcast_reload(self):
        if self._loop.is_closed():
            return
        message = json.dumps({"type": "reload"})
        asyncio.run_coroutine_threadsafe(self._async_broadcast(message), self._loop)

    async def _async_broadcast(self, message: str):
        stale = set()
        for ws in list(self._ws_clients):
            try:
                await ws.send(message)
            except Exception:
                stale.add(ws)
        for ws in stale:
            self._ws_clients.discard(ws)

    def _start_watcher(self) -> None:
        observer = Observer()
        observer.schedule(_ChangeHandler(self), str(self.output_dir), recursive=True)
        observer.start()
        self._observer = observer

    def notify_change(self) -> None:
        """Schedule a reload once changes settle; later changes reset the timer."""
        if self.debounce_seconds <= 0:
            self._broadcast_reload()
            return
        with self._lock:
            if self._pending is not None:
                self._pending.cancel()
            timer = threading.Timer(self.debounce_seconds, self._flush)
            timer.daemon = True
            self._pending = timer
            timer.start()

    def _flush(self) -> None:
        with self._lock:
            if self._pending is threading.current_thread():
                self._pending = None
        self._broadcast_reload()


class _ChangeHandler(FileSystemEventHandler):
    def __init__(self, server: DevServer):
        super().__init__()
        self.server = server

    def on_any_event(self, event):
        if event.is_directory:
            return
        if event.event_type in ("opened", "closed", "closed_no_write"):
            return
        self.server.notify_change()


def serve_task(context) -> None:
    """Task action for ``serve``: runs until the pipeline is stopped."""
    config = context.config
    server = DevServer(
        config.output_dir,
        http_port=config.port,
        ws_port=config.ws_port,
        debounce_seconds=config.serve.debounce,
    )
    context.log(f"Live reload on ws://localhost:{server.ws_port}")
    server.start(context.stop_event)
