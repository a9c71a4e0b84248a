"""
Read-only HTTP API over the known-product catalog.

Serves the current snapshot as JSON and as a server-sent-events stream for
the web front end.  Each connection gets its own thread.
"""

from __future__ import annotations

import json
import logging
import threading
import time
from http.server import BaseHTTPRequestHandler, ThreadingHTTPServer
from typing import Optional
from urllib.parse import urlparse

from .store import ProductStore

logger = logging.getLogger(__name__)

CORS_HEADERS = {
    "Access-Control-Allow-Origin": "*",
    "Access-Control-Allow-Methods": "GET, OPTIONS",
    "Access-Control-Allow-Headers": "Content-Type",
}


class _APIServer(ThreadingHTTPServer):
    daemon_threads = True

    def __init__(self, address, handler, store: ProductStore, heartbeat_seconds: float) -> None:
        super().__init__(address, handler)
        self.store = store
        self.heartbeat_seconds = heartbeat_seconds
        self.stopping = threading.Event()


class ProductsHandler(BaseHTTPRequestHandler):
    server: _APIServer

    def log_message(self, format, *args):
        """Override to use Python logging instead of stderr."""
        logger.info("%s - %s", self.address_string(), format % args)

    def _send_cors(self) -> None:
        for name, value in CORS_HEADERS.items():
            self.send_header(name, value)

    def _send_json(self, status: int, payload) -> None:
        body = json.dumps(payload).encode("utf-8")
        self.send_response(status)
        self.send_header("Content-Type", "application/json")
        self.send_header("Content-Length", str(len(body)))
        self._send_cors()
        self.end_headers()
        self.wfile.write(body)

    def _products_payload(self) -> list:
        # snapshot is copied under the store lock; serialization happens outside it
        return [p.to_dict() for p in self.server.store.get_products()]

    def do_OPTIONS(self):
        self.send_response(200)
        self.send_header("Content-Length", "0")
        self._send_cors()
        self.end_headers()

    def do_GET(self):
        path = urlparse(self.path).path.rstrip("/")
        try:
            if path == "/api/products":
                self._send_json(200, self._products_payload())
            elif path == "/api/products/updates":
                self._stream_updates()
            elif path == "/api/status":
                self._send_status()
            else:
                self._send_json(404, {"error": "not found"})
        except (BrokenPipeError, ConnectionResetError):
            logger.debug("Client %s disconnected", self.address_string())

    def _send_status(self) -> None:
        store = self.server.store
        self._send_json(200, {
            "status": "running",
            "total_products": store.known_count(),
            "pending_products": store.pending_count(),
            "initialized": store.initialized,
            "timestamp": time.time(),
        })

    def _write_event(self, payload: dict) -> None:
        self.wfile.write(b"data: " + json.dumps(payload).encode("utf-8") + b"\n\n")
        self.wfile.flush()

    def _stream_updates(self) -> None:
        self.send_response(200)
        self.send_header("Content-Type", "text/event-stream")
        self.send_header("Cache-Control", "no-cache")
        self._send_cors()
        interval = self.server.heartbeat_seconds
        if interval > 0:
            self.send_header("Connection", "keep-alive")
        else:
            self.close_connection = True
        self.end_headers()

        self._write_event({"type": "update", "products": self._products_payload()})
        if interval <= 0:
            return

        # A write to a dropped client raises, which ends the stream.
        while not self.server.stopping.wait(interval):
            self._write_event({"type": "heartbeat"})
        self.close_connection = True


class QueryServer:
    """Runs the API in a background thread."""

    def __init__(
        self,
        store: ProductStore,
        host: str = "127.0.0.1",
        port: int = 8080,
        heartbeat_seconds: float = 30,
    ) -> None:
        self.store = store
        self.host = host
        self.port = port
        self.heartbeat_seconds = heartbeat_seconds
        self.server: Optional[_APIServer] = None
        self.server_thread: Optional[threading.Thread] = None

    @property
    def running(self) -> bool:
        return self.server is not None

    def start(self) -> str:
        """Start the server and return the base URL."""
        if self.server is None:
            self.server = _APIServer(
                (self.host, self.port), ProductsHandler, self.store, self.heartbeat_seconds
            )
            # port 0 binds an ephemeral port
            self.port = self.server.server_address[1]
            self.server_thread = threading.Thread(
                target=self.server.serve_forever, name="api-server", daemon=True
            )
            self.server_thread.start()
            logger.info("API server started at http://%s:%d", self.host, self.port)
        return f"http://{self.host}:{self.port}"

    def stop(self) -> None:
        if self.server is None:
            return
        self.server.stopping.set()
        self.server.shutdown()
        self.server.server_close()
        self.server = None
        logger.info("API server stopped")


__all__ = ["ProductsHandler", "QueryServer"]
