"""実機の rTC を使わずに試すための簡易コントローラ。

addTail / move / delete / getQueue をメモリ上のキューで処理し、1 リクエスト
につき 1 行の XML を返して接続を閉じる。delete には応答を返さない。
"""

from __future__ import annotations

import logging
import socketserver
import threading
from dataclasses import replace
from typing import Iterable

from .rtc_codec import (
    DecodeError,
    QueueEntry,
    RtcRequest,
    decode_request,
    encode_added_response,
    encode_queue_response,
)

LOGGER = logging.getLogger(__name__)

REQUEST_END = b"</src>"
MAX_REQUEST_BYTES = 64 * 1024


class DemoController:
    """Threaded TCP responder holding the wash queue in memory."""

    def __init__(
        self,
        host: str = "127.0.0.1",
        port: int = 0,
        *,
        cars: Iterable[QueueEntry] = (),
        state: str = "queued",
        timeout: float = 2.0,
    ) -> None:
        self._lock = threading.Lock()
        self._cars: list[QueueEntry] = list(cars)
        self._next_id = max((car.wash_id for car in self._cars), default=0) + 1
        self._state = state
        self._timeout = timeout
        self.requests: list[RtcRequest] = []
        self._server = _TcpServer((host, port), _make_handler(self))
        self._thread = threading.Thread(target=self._server.serve_forever, name="demo-controller", daemon=True)

    @property
    def address(self) -> tuple[str, int]:
        host, port = self._server.server_address[:2]
        return str(host), int(port)

    @property
    def cars(self) -> list[QueueEntry]:
        with self._lock:
            return list(self._cars)

    def start(self) -> None:
        self._thread.start()
        LOGGER.info("demo controller listening on %s:%s", *self.address)

    def stop(self) -> None:
        if self._thread.is_alive():
            self._server.shutdown()
            self._thread.join()
        self._server.server_close()

    def __enter__(self) -> "DemoController":
        self.start()
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        self.stop()

    def handle_document(self, data: bytes) -> bytes | None:
        """Apply one request and return the reply line, or None for no reply."""

        request = decode_request(data)
        with self._lock:
            self.requests.append(request)
            if request.kind == "addTail":
                wash_id = self._next_id
                self._next_id += 1
                self._cars.append(
                    QueueEntry(
                        wash_id=wash_id,
                        state=self._state,
                        position=len(self._cars),
                        package=request.fields.get("washPkgNum", 0),
                    )
                )
                return encode_added_response(wash_id)
            if request.kind == "getQueue":
                return encode_queue_response(self._cars)
            if request.kind == "move":
                self._move(request.fields.get("id"), request.fields.get("before", 0))
                return encode_queue_response(self._cars)
            if request.kind == "delete":
                self._remove(request.fields.get("id"))
                return None
        raise DecodeError(f"unsupported command <{request.kind}>")

    def _move(self, wash_id: int | None, before: int) -> None:
        index = self._index_of(wash_id)
        if index is None:
            return
        car = self._cars.pop(index)
        target = max(0, min(before, len(self._cars)))
        self._cars.insert(target, car)
        self._renumber()

    def _remove(self, wash_id: int | None) -> None:
        index = self._index_of(wash_id)
        if index is not None:
            del self._cars[index]
            self._renumber()

    def _index_of(self, wash_id: int | None) -> int | None:
        for index, car in enumerate(self._cars):
            if car.wash_id == wash_id:
                return index
        return None

    def _renumber(self) -> None:
        self._cars = [replace(car, position=index) for index, car in enumerate(self._cars)]


def _make_handler(controller: DemoController) -> type[socketserver.BaseRequestHandler]:
    class Handler(socketserver.BaseRequestHandler):
        def handle(self) -> None:
            sock = self.request
            sock.settimeout(controller._timeout)
            buffer = b""
            try:
                while REQUEST_END not in buffer and len(buffer) < MAX_REQUEST_BYTES:
                    chunk = sock.recv(4096)
                    if not chunk:
                        break
                    buffer += chunk
            except OSError:
                LOGGER.debug("demo controller read failed from %s", self.client_address, exc_info=True)
                return
            if not buffer.strip():
                return
            try:
                reply = controller.handle_document(buffer.strip())
            except DecodeError as exc:
                LOGGER.warning("demo controller rejected request from %s: %s", self.client_address, exc)
                return
            if reply is not None:
                sock.sendall(reply + b"\n")

    return Handler


class _TcpServer(socketserver.ThreadingTCPServer):
    allow_reuse_address = True
    daemon_threads = True
