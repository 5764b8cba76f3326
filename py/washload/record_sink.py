"""Bounded hand-off from the load routines to the single CSV writer."""

from __future__ import annotations

import csv
import logging
import queue
import threading
from datetime import datetime
from pathlib import Path
from typing import Sequence

from .timing import RECORD_HEADER, TimingRecord

LOGGER = logging.getLogger(__name__)

DEFAULT_CAPACITY = 100


def new_log_path(directory: str | Path, now: datetime | None = None) -> Path:
    stamp = (now or datetime.now()).strftime("%Y-%m-%d-%H-%M-%S")
    return Path(directory) / f"load-test-{stamp}.csv"


class CsvRecordStore:
    """Append-only CSV file, one row per timing record."""

    def __init__(self, path: str | Path, header: Sequence[str] = RECORD_HEADER) -> None:
        self._path = Path(path)
        self._lock = threading.Lock()
        self._path.parent.mkdir(parents=True, exist_ok=True)
        self._fh = self._path.open("w", encoding="utf-8", newline="")
        self._writer = csv.writer(self._fh)
        self._writer.writerow(list(header))
        self._fh.flush()

    @property
    def path(self) -> Path:
        return self._path

    def append(self, row: Sequence[str]) -> None:
        with self._lock:
            self._writer.writerow(list(row))
            self._fh.flush()

    def close(self) -> None:
        with self._lock:
            if not self._fh.closed:
                self._fh.close()


class RecordSink:
    """Many producers, one consumer thread persisting records in arrival order."""

    def __init__(self, store, *, capacity: int = DEFAULT_CAPACITY, put_timeout: float = 0.5, poll_interval: float = 0.2) -> None:
        self._store = store
        self._records: "queue.Queue[TimingRecord]" = queue.Queue(maxsize=max(1, int(capacity)))
        self._put_timeout = put_timeout
        self._poll_interval = poll_interval
        self._shutdown = threading.Event()
        self._thread: threading.Thread | None = None
        self._written = 0

    @property
    def written(self) -> int:
        return self._written

    @property
    def pending(self) -> int:
        return self._records.qsize()

    @property
    def closed(self) -> bool:
        return self._shutdown.is_set()

    def enqueue(self, record: TimingRecord) -> bool:
        """Queue ``record``; blocks only while the buffer is full.

        Returns False when the sink shut down before the record could be
        queued. Such records are logged instead of being written.
        """

        while not self._shutdown.is_set():
            try:
                self._records.put(record, timeout=self._put_timeout)
                return True
            except queue.Full:
                LOGGER.debug("record buffer full (capacity=%d), waiting for writer", self._records.maxsize)
        LOGGER.warning("record sink is shut down, record not persisted: %s", record.as_row())
        return False

    def run(self) -> None:
        LOGGER.info("records writer routine started")
        while True:
            try:
                record = self._records.get(timeout=self._poll_interval)
            except queue.Empty:
                if self._shutdown.is_set():
                    break
                continue
            self._persist(record)
            if self._shutdown.is_set():
                break
        self._drain()
        LOGGER.info("write routine received done signal (written=%d)", self._written)

    def start(self) -> threading.Thread:
        if self._thread is not None and self._thread.is_alive():
            return self._thread
        self._thread = threading.Thread(target=self.run, name="record-sink", daemon=True)
        self._thread.start()
        return self._thread

    def shutdown(self) -> None:
        self._shutdown.set()

    def join(self, timeout: float | None = None) -> bool:
        thread = self._thread
        if thread is None:
            return True
        thread.join(timeout)
        return not thread.is_alive()

    def _drain(self) -> None:
        # only what was already queued when shutdown was observed
        for _ in range(self._records.qsize()):
            try:
                record = self._records.get_nowait()
            except queue.Empty:
                break
            self._persist(record)

    def _persist(self, record: TimingRecord) -> None:
        row = record.as_row()
        LOGGER.debug("writing record to csv record=%s", row)
        try:
            self._store.append(row)
        except Exception:  # noqa: BLE001
            LOGGER.exception("failed to write record to csv record=%s", row)
            return
        self._written += 1
