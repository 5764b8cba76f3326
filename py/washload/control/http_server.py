"""Threaded HTTP server exposing the load-test control routes."""

from __future__ import annotations

import logging
import sys
import threading
from http import HTTPStatus
from http.server import BaseHTTPRequestHandler, ThreadingHTTPServer

from .router import ControlRouter, RouteResult

LOGGER = logging.getLogger(__name__)


class ControlHttpServer:
    """Small wrapper around ThreadingHTTPServer with router integration."""

    def __init__(self, host: str, port: int, router: ControlRouter) -> None:
        self._router = router
        handler_cls = _make_handler(router)
        self._server = _QuietThreadingHTTPServer((host, port), handler_cls)
        self._thread: threading.Thread | None = None

    @property
    def address(self) -> tuple[str, int]:
        host, port = self._server.server_address[:2]
        return str(host), int(port)

    def serve_forever(self) -> None:
        LOGGER.info("control surface listening on http://%s:%s", *self.address)
        try:
            self._server.serve_forever()
        except KeyboardInterrupt:
            LOGGER.info("shutting down (keyboard interrupt)")
        finally:
            self._server.server_close()

    def serve_in_background(self) -> threading.Thread:
        self._thread = threading.Thread(target=self._server.serve_forever, name="control-http", daemon=True)
        self._thread.start()
        return self._thread

    def shutdown(self) -> None:
        if self._thread is not None:
            self._server.shutdown()
            self._thread.join()
            self._thread = None
        self._server.server_close()


def _make_handler(router: ControlRouter) -> type[BaseHTTPRequestHandler]:
    class Handler(BaseHTTPRequestHandler):
        protocol_version = "HTTP/1.1"

        def do_GET(self) -> None:  # noqa: N802
            try:
                response = router.handle_get(self.path, self.headers)
            except Exception as exc:  # noqa: BLE001
                LOGGER.exception("control handler failed path=%s", self.path)
                body = f"Internal Server Error: {exc}".encode("utf-8")
                response = RouteResult(status_code=500, body=body, headers={"Content-Type": "text/plain; charset=utf-8"})
            self._send_response(response)

        def log_message(self, format: str, *args) -> None:  # noqa: A003
            LOGGER.debug("%s - %s", self.address_string(), format % args)

        def _send_response(self, result: RouteResult) -> None:
            try:
                status = HTTPStatus(result.status_code)
                self.send_response(status.value, status.phrase)
                for key, value in result.headers.items():
                    self.send_header(key, value)
                self.send_header("Content-Length", str(len(result.body)))
                self.end_headers()
                self.wfile.write(result.body)
            except (BrokenPipeError, ConnectionAbortedError, ConnectionResetError):
                return

    return Handler


class _QuietThreadingHTTPServer(ThreadingHTTPServer):
    """Suppress noisy tracebacks for client-aborted connections."""

    daemon_threads = True

    def handle_error(self, request, client_address) -> None:  # type: ignore[override]
        _exc = sys.exc_info()[1]
        if isinstance(_exc, (ConnectionAbortedError, ConnectionResetError, BrokenPipeError)):
            return
        super().handle_error(request, client_address)
