"""TCP client for the rTC controller used by the load routines."""

from __future__ import annotations

import logging
import socket
import time
from dataclasses import dataclass
from typing import Any, Callable

from .rtc_codec import (
    GET_QUEUE_REQUEST,
    CodecError,
    DecodeError,
    QueueListing,
    decode_enqueue_response,
    decode_queue_response,
    encode_delete,
    encode_enqueue,
    encode_move,
)
from .timing import TimingRecord

LOGGER = logging.getLogger(__name__)

DEFAULT_CONNECT_TIMEOUT = 3.0
DEFAULT_IO_TIMEOUT = 1.5
DEFAULT_READ_TIMEOUT = 3.0
DEFAULT_CLOSE_GRACE = 5.0
MAX_RESPONSE_BYTES = 1 << 20

OP_QUEUE = "QUEUE"
OP_MOVE = "MOVE"
OP_DELETE = "DELETE"
OP_GET = "GET"


class RtcError(Exception):
    """Base class for controller I/O failures."""


class ConnectError(RtcError):
    """The controller could not be reached."""


class WriteError(RtcError):
    """Sending a request failed. Writes are best effort, so this is only logged."""


class ReadError(RtcError):
    """No usable reply line could be read."""


class CloseError(RtcError):
    """The connection could not be closed, even after the forced retry."""


@dataclass
class RtcOutcome:
    """Result of one controller operation.

    ``value`` is the decoded payload (``None`` when the controller sent an
    empty reply or when an earlier stage failed), ``record`` is always a
    complete timing record and ``error`` is the terminal error, if any.
    """

    value: Any
    record: TimingRecord
    error: Exception | None = None

    @property
    def ok(self) -> bool:
        return self.error is None


class RtcClient:
    """Open one short-lived connection per controller operation."""

    def __init__(
        self,
        host: str,
        port: int,
        *,
        connect_timeout: float = DEFAULT_CONNECT_TIMEOUT,
        io_timeout: float = DEFAULT_IO_TIMEOUT,
        read_timeout: float = DEFAULT_READ_TIMEOUT,
        close_grace: float = DEFAULT_CLOSE_GRACE,
        delete_reads_reply: bool = True,
        buffer_size: int = 4096,
        max_response_bytes: int = MAX_RESPONSE_BYTES,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self._address = (host, int(port))
        self._connect_timeout = connect_timeout
        self._io_timeout = io_timeout
        self._read_timeout = read_timeout
        self._close_grace = max(0.0, float(close_grace))
        self._delete_reads_reply = bool(delete_reads_reply)
        self._buffer_size = buffer_size
        self._max_response_bytes = max_response_bytes
        self._sleep = sleep

    @property
    def address(self) -> tuple[str, int]:
        return self._address

    # ------------------------------- operations -------------------------------
    def enqueue_wash(self, package_number: int) -> RtcOutcome:
        """Queue a wash at the tail; ``value`` is the new wash id."""

        outcome = self._call(OP_QUEUE, lambda: encode_enqueue(package_number))
        if outcome.ok and outcome.value is not None:
            outcome = self._decode(outcome, lambda reply: decode_enqueue_response(reply).wash_id)
        return outcome

    def move_wash(self, wash_id: int, before: int) -> RtcOutcome:
        """Move a wash in front of ``before``; ``value`` is the resulting queue."""

        outcome = self._call(OP_MOVE, lambda: encode_move(wash_id, before))
        if outcome.ok and outcome.value is not None:
            outcome = self._decode(outcome, decode_queue_response)
        return outcome

    def delete_wash(self, wash_id: int) -> RtcOutcome:
        outcome = self._call(OP_DELETE, lambda: encode_delete(wash_id), read_reply=self._delete_reads_reply)
        # delete replies are not parsed
        outcome.value = None
        return outcome

    def list_queue(self) -> RtcOutcome:
        outcome = self._call(OP_GET, lambda: GET_QUEUE_REQUEST)
        if outcome.ok and outcome.value is not None:
            outcome = self._decode(outcome, decode_queue_response)
        return outcome

    # ------------------------------- internals -------------------------------
    def _decode(self, outcome: RtcOutcome, decoder: Callable[[bytes], Any]) -> RtcOutcome:
        try:
            outcome.value = decoder(outcome.value)
        except DecodeError as exc:
            LOGGER.warning("could not decode %s reply from rTC: %s", outcome.record.command, exc)
            outcome.value = None
            outcome.error = exc
        return outcome

    def _call(self, command: str, build: Callable[[], bytes], *, read_reply: bool = True) -> RtcOutcome:
        """Encode, connect, write, read and close; ``value`` is the raw reply or None."""

        record = TimingRecord(command)
        try:
            payload = build()
        except CodecError as exc:
            LOGGER.error("error building %s request for rTC: %s", command, exc)
            record.fail(exc)
            return RtcOutcome(None, record, exc)
        LOGGER.debug("built %s request xml=%s", command, payload)

        try:
            conn = self._open_connection()
        except OSError as exc:
            error = ConnectError(f"unable to connect to rTC at {self._address[0]}:{self._address[1]}: {exc}")
            LOGGER.warning("%s", error)
            record.fail(error)
            return RtcOutcome(None, record, error)
        record.mark_connected()

        self._write(conn, payload)
        record.mark_command_initiated()

        reply: bytes | None = None
        if read_reply:
            try:
                reply = self._read_line(conn)
            except (OSError, ReadError) as exc:
                error = exc if isinstance(exc, ReadError) else ReadError(f"error reading reply from rTC: {exc}")
                LOGGER.error("%s command=%s", error, command)
                record.fail(error)
                self._teardown(conn, None)
                return RtcOutcome(None, record, error)
            record.mark_command_retrieved()
        else:
            record.mark_command_retrieved(at=record.command_initiated)

        close_error = self._teardown(conn, record)
        if close_error is not None:
            return RtcOutcome(None, record, close_error)
        # empty reply (EOF with no data) is a successful call without payload
        return RtcOutcome(reply or None, record, None)

    def _open_connection(self) -> socket.socket:
        conn = socket.create_connection(self._address, timeout=self._connect_timeout)
        LOGGER.debug("connection opened host=%s port=%s", *self._address)
        try:
            conn.settimeout(self._io_timeout)
        except OSError:
            LOGGER.error("error setting %ss I/O timeout on rTC connection", self._io_timeout, exc_info=True)
        return conn

    def _write(self, conn: socket.socket, payload: bytes) -> None:
        try:
            conn.sendall(payload)
        except OSError as exc:
            LOGGER.warning("%s", WriteError(f"error writing request to rTC: {exc}"))

    def _read_line(self, conn: socket.socket) -> bytes:
        try:
            conn.settimeout(self._read_timeout)
        except OSError:
            LOGGER.error("error setting %ss read timeout on rTC connection", self._read_timeout, exc_info=True)

        chunks: list[bytes] = []
        received = 0
        while True:
            chunk = conn.recv(self._buffer_size)
            if not chunk:
                break
            newline = chunk.find(b"\n")
            if newline >= 0:
                chunks.append(chunk[:newline])
                break
            chunks.append(chunk)
            received += len(chunk)
            if received > self._max_response_bytes:
                raise ReadError(f"reply from rTC exceeded {self._max_response_bytes} bytes without a newline")
        return b"".join(chunks).strip()

    def _teardown(self, conn: socket.socket, record: TimingRecord | None) -> CloseError | None:
        """Close ``conn``; on failure force the deadline, wait and retry once.

        When ``record`` is given its close timestamp and error columns are
        filled in from the result.
        """

        try:
            conn.close()
        except OSError as exc:
            LOGGER.error("error closing connection to rTC: %s", exc)
            self._force_deadline(conn)
            self._sleep(self._close_grace)
            try:
                conn.close()
            except OSError as retry_exc:
                error = CloseError(f"error forcefully closing connection to rTC: {retry_exc}")
                LOGGER.error("%s", error)
                if record is not None:
                    record.fail(error)
                return error

        if record is not None:
            record.mark_closed()
            record.succeed()
        return None

    def _force_deadline(self, conn: socket.socket) -> None:
        try:
            conn.settimeout(0.0)
            conn.shutdown(socket.SHUT_RDWR)
        except OSError as exc:
            LOGGER.info("error setting deadline when force closing rTC connection: %s", exc)
