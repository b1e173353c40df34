"""Development server: static files (or a proxy) plus live reload over SSE."""

from __future__ import annotations

import json
import queue
import threading
from pathlib import Path
from typing import Iterator, Optional

import httpx
from flask import Flask, Response, abort, request, send_from_directory
from werkzeug.serving import make_server

from .logging import get_logger
from .watch import ReloadEvent


log = get_logger("flowbuild.server")

SSE_CONTENT_TYPE = "text/event-stream"
CLIENT_PATH = "/__flow/client.js"
EVENTS_PATH = "/__flow/events"
HEARTBEAT_SECONDS = 15.0

CLIENT_JS = """(function () {
  var source = new EventSource("%s");
  source.addEventListener("reload", function () { window.location.reload(); });
})();
""" % EVENTS_PATH


class ReloadHub:
    """Fans reload events out to every connected browser.

    `notify` is called from the watch loop; each SSE response reads its own
    queue on a server thread.
    """

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._clients: list[queue.Queue] = []
        self.sent = 0

    def subscribe(self) -> queue.Queue:
        q: queue.Queue = queue.Queue()
        with self._lock:
            self._clients.append(q)
        return q

    def unsubscribe(self, q: queue.Queue) -> None:
        with self._lock:
            if q in self._clients:
                self._clients.remove(q)

    @property
    def clients(self) -> int:
        with self._lock:
            return len(self._clients)

    def notify(self, event: ReloadEvent) -> None:
        payload = json.dumps({"tasks": list(event.tasks), "paths": list(event.paths)})
        with self._lock:
            targets = list(self._clients)
            self.sent += 1
        log.info("Reloading %d client(s) after %s", len(targets), ", ".join(event.tasks))
        for q in targets:
            q.put(payload)


def _stream(hub: ReloadHub, q: queue.Queue, heartbeat: float) -> Iterator[str]:
    try:
        yield ": connected\n\n"
        while True:
            try:
                payload = q.get(timeout=heartbeat)
            except queue.Empty:
                yield ": keep-alive\n\n"
                continue
            yield f"event: reload\ndata: {payload}\n\n"
    finally:
        hub.unsubscribe(q)


def inject_client(html: str) -> str:
    tag = f'<script src="{CLIENT_PATH}"></script>'
    if tag in html:
        return html
    idx = html.lower().rfind("</body>")
    if idx == -1:
        return html + tag
    return html[:idx] + tag + html[idx:]


def create_app(
    hub: ReloadHub,
    public_dir: Path,
    proxy_url: Optional[str] = None,
    heartbeat: float = HEARTBEAT_SECONDS,
) -> Flask:
    app = Flask("flowbuild")
    root = Path(public_dir).resolve()

    @app.get(CLIENT_PATH)
    def client_js():
        return Response(CLIENT_JS, mimetype="application/javascript")

    @app.get(EVENTS_PATH)
    def events():
        q = hub.subscribe()
        return Response(
            _stream(hub, q, heartbeat),
            mimetype=SSE_CONTENT_TYPE,
            headers={"Cache-Control": "no-cache", "X-Accel-Buffering": "no"},
        )

    @app.route("/", defaults={"path": ""})
    @app.route("/<path:path>")
    def serve(path: str):
        if proxy_url:
            return _proxy(proxy_url, path)
        target = root / path
        if target.is_dir():
            path = (Path(path) / "index.html").as_posix()
            target = root / path
        if not target.is_file():
            abort(404)
        if target.suffix in (".html", ".htm"):
            html = target.read_text(encoding="utf-8")
            return Response(inject_client(html), mimetype="text/html")
        return send_from_directory(root, path)

    return app


def _proxy(base_url: str, path: str) -> Response:
    url = base_url.rstrip("/") + "/" + path
    try:
        upstream = httpx.get(
            url,
            params=list(request.args.items(multi=True)),
            headers={"Accept": request.headers.get("Accept", "*/*")},
            follow_redirects=True,
            timeout=30.0,
        )
    except httpx.RequestError as e:
        log.warning("Proxy to %s failed: %s", url, e)
        return Response(f"Upstream unreachable: {url}", status=502)
    content_type = upstream.headers.get("content-type", "application/octet-stream")
    body: bytes | str = upstream.content
    if content_type.startswith("text/html"):
        body = inject_client(upstream.text)
    return Response(body, status=upstream.status_code, content_type=content_type)


class DevServer:
    """Runs the Flask app on a werkzeug server in a daemon thread."""

    def __init__(self, app: Flask, host: str = "127.0.0.1", port: int = 3000, prefix: str = "Flow"):
        self.app = app
        self.host = host
        self.port = port
        self.prefix = prefix
        self._server = None
        self._thread: Optional[threading.Thread] = None

    def start(self) -> None:
        self._server = make_server(self.host, self.port, self.app, threaded=True)
        self._thread = threading.Thread(
            target=self._server.serve_forever, name="flow-dev-server", daemon=True
        )
        self._thread.start()
        log.info("[%s] Serving on http://%s:%d", self.prefix, self.host, self.port)

    def stop(self) -> None:
        if self._server is not None:
            self._server.shutdown()
            self._server = None
