"""In-memory stand-ins for the rTC client and the record sink used by the routine tests."""

from __future__ import annotations

import sys
import threading
from pathlib import Path

sys.path.insert(0, str(Path(__file__).resolve().parents[1] / "py"))

from washload.rtc_client import ConnectError, ReadError, RtcOutcome
from washload.rtc_codec import QueueEntry, QueueListing
from washload.timing import TimingRecord


def _record(command: str, error: Exception | None = None) -> TimingRecord:
    record = TimingRecord(command)
    if error is None:
        record.mark_connected()
        record.mark_command_initiated()
        record.mark_command_retrieved()
        record.mark_closed()
    else:
        record.fail(error)
    return record


class FakeRtcClient:
    """Records every call and answers from a scripted in-memory queue."""

    def __init__(self, cars=(), *, next_id: int = 100) -> None:
        self.cars: list[QueueEntry] = list(cars)
        self.calls: list[tuple] = []
        self.next_id = next_id
        self.fail_enqueue = False
        self.fail_list = False
        self.empty_list_reply = False
        self.listing_override: QueueListing | None = None
        self.missing_handle = False
        self.fail_delete_ids: set[int] = set()
        self.tick_delay = 0.0
        self._lock = threading.Lock()

    @property
    def address(self) -> tuple[str, int]:
        return ("10.0.0.1", 20250)

    def enqueue_wash(self, package_number: int) -> RtcOutcome:
        with self._lock:
            self.calls.append(("QUEUE", package_number))
            if self.fail_enqueue:
                error = ConnectError("refused")
                return RtcOutcome(None, _record("QUEUE", error), error)
            if self.missing_handle:
                return RtcOutcome(None, _record("QUEUE"))
            wash_id = self.next_id
            self.next_id += 1
            self.cars.append(QueueEntry(wash_id, "queued", len(self.cars), package_number))
        if self.tick_delay:
            threading.Event().wait(self.tick_delay)
        return RtcOutcome(wash_id, _record("QUEUE"))

    def list_queue(self) -> RtcOutcome:
        with self._lock:
            self.calls.append(("GET",))
            if self.fail_list:
                error = ReadError("timed out")
                return RtcOutcome(None, _record("GET", error), error)
            if self.listing_override is not None:
                return RtcOutcome(self.listing_override, _record("GET"))
            if self.empty_list_reply:
                return RtcOutcome(None, _record("GET"))
            return RtcOutcome(QueueListing(tuple(self.cars)), _record("GET"))

    def move_wash(self, wash_id: int, before: int) -> RtcOutcome:
        with self._lock:
            self.calls.append(("MOVE", wash_id, before))
            return RtcOutcome(QueueListing(tuple(self.cars)), _record("MOVE"))

    def delete_wash(self, wash_id: int) -> RtcOutcome:
        with self._lock:
            self.calls.append(("DELETE", wash_id))
            if wash_id in self.fail_delete_ids:
                error = ReadError("reset")
                return RtcOutcome(None, _record("DELETE", error), error)
            self.cars = [car for car in self.cars if car.wash_id != wash_id]
            return RtcOutcome(None, _record("DELETE"))

    def commands(self) -> list[str]:
        with self._lock:
            return [call[0] for call in self.calls]


class ListSink:
    """Collects records instead of writing them."""

    def __init__(self) -> None:
        self.records: list[TimingRecord] = []
        self.started = False
        self.stopped = False
        self._lock = threading.Lock()

    def enqueue(self, record: TimingRecord) -> bool:
        with self._lock:
            self.records.append(record)
        return True

    def commands(self) -> list[str]:
        with self._lock:
            return [record.command for record in self.records]

    def start(self) -> None:
        self.started = True

    def shutdown(self) -> None:
        self.stopped = True

    def join(self, timeout: float | None = None) -> bool:
        return True

    @property
    def pending(self) -> int:
        return 0

    @property
    def written(self) -> int:
        return len(self.records)

    @property
    def closed(self) -> bool:
        return self.stopped
