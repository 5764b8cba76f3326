"""Periodic load routines driving the rTC client."""

from __future__ import annotations

import abc
import enum
import logging
import random
import threading
import time

from .config import ConfigError, parse_interval
from .record_sink import RecordSink
from .rtc_client import RtcClient, RtcOutcome

LOGGER = logging.getLogger(__name__)


class RoutineState(str, enum.Enum):
    IDLE = "idle"
    WAITING = "waiting"
    EXECUTING = "executing"
    STOPPED = "stopped"


class _LoopRun:
    """One loop instance: the cancellation event and interval it was started with."""

    def __init__(self, interval: float) -> None:
        self.interval = interval
        self.cancel = threading.Event()
        self.state = RoutineState.IDLE
        self.thread: threading.Thread | None = None


class LoadRoutine(abc.ABC):
    """Runs ``tick()`` every ``interval`` seconds until stopped.

    A running loop is never retimed in place. ``stop()`` cancels the current
    instance and ``start()`` builds a new one with the current interval.
    """

    name = "routine"

    def __init__(self, client: RtcClient, sink: RecordSink, interval: float, *, default_interval: float | None = None) -> None:
        self._client = client
        self._sink = sink
        self._interval = _positive(interval)
        self.default_interval = _positive(default_interval) if default_interval is not None else self._interval
        self._lock = threading.Lock()
        self._run: _LoopRun | None = None

    @property
    def interval(self) -> float:
        return self._interval

    @property
    def state(self) -> RoutineState:
        run = self._run
        return run.state if run is not None else RoutineState.IDLE

    @property
    def running(self) -> bool:
        run = self._run
        return run is not None and not run.cancel.is_set()

    def start(self) -> bool:
        with self._lock:
            previous = self._run
            if previous is not None and not previous.cancel.is_set():
                return False
            run = _LoopRun(self._interval)
            run.thread = threading.Thread(
                target=self._loop,
                args=(run, previous),
                name=f"{self.name}-routine",
                daemon=True,
            )
            self._run = run
            run.thread.start()
        LOGGER.info("%s routine started interval=%ss", self.name, run.interval)
        return True

    def stop(self) -> bool:
        with self._lock:
            run = self._run
            if run is None or run.cancel.is_set():
                return False
            run.cancel.set()
        LOGGER.info("%s routine stop requested", self.name)
        return True

    def join(self, timeout: float | None = None) -> bool:
        run = self._run
        if run is None or run.thread is None:
            return True
        run.thread.join(timeout)
        return not run.thread.is_alive()

    def set_interval(self, seconds: float) -> None:
        with self._lock:
            self._interval = _positive(seconds)

    def update_interval(self, text: str) -> float:
        """Stop the running loop and store a new interval parsed from ``text``.

        Raises ConfigError when ``text`` is not a valid interval; the routine
        is left stopped and the caller decides which interval to restart with.
        """

        LOGGER.info("updating %s routine's ticker time new=%s", self.name, text)
        self.stop()
        seconds = parse_interval(text)
        self.set_interval(seconds)
        return seconds

    @abc.abstractmethod
    def tick(self) -> None:
        """One round of controller calls; every record goes to the sink."""

    def _loop(self, run: _LoopRun, previous: _LoopRun | None) -> None:
        if previous is not None and previous.thread is not None:
            previous.thread.join()
        run.state = RoutineState.WAITING
        next_tick = time.monotonic() + run.interval
        while True:
            if run.cancel.wait(max(0.0, next_tick - time.monotonic())):
                break
            run.state = RoutineState.EXECUTING
            try:
                self.tick()
            except Exception:
                LOGGER.exception("unexpected error in %s routine", self.name)
            run.state = RoutineState.WAITING
            now = time.monotonic()
            next_tick += run.interval
            if next_tick < now:
                # like a ticker: missed ticks collapse into one
                next_tick = now
        run.state = RoutineState.STOPPED
        LOGGER.info("%s routine received done signal", self.name)

    def _forward(self, outcome: RtcOutcome) -> RtcOutcome:
        self._sink.enqueue(outcome.record)
        return outcome


class EnqueueRoutine(LoadRoutine):
    """Queue a wash every tick, optionally deleting it straight away."""

    name = "queue"

    def __init__(self, client: RtcClient, sink: RecordSink, interval: float, *, package_number: int = 1, delete_after_enqueue: bool = True, default_interval: float | None = None) -> None:
        super().__init__(client, sink, interval, default_interval=default_interval)
        self.package_number = package_number
        self.delete_after_enqueue = delete_after_enqueue

    def tick(self) -> None:
        queued = self._forward(self._client.enqueue_wash(self.package_number))
        if not queued.ok:
            LOGGER.warning("unable to queue wash in queue routine: %s", queued.error)
            return
        if not self.delete_after_enqueue:
            return
        if queued.value is None:
            LOGGER.warning("rTC returned no wash id, nothing to delete in queue routine")
            return
        deleted = self._forward(self._client.delete_wash(queued.value))
        if not deleted.ok:
            LOGGER.warning("unable to delete queued wash in queue routine wash_id=%s: %s", queued.value, deleted.error)


class ListRoutine(LoadRoutine):
    name = "get"

    def tick(self) -> None:
        listed = self._forward(self._client.list_queue())
        if not listed.ok:
            LOGGER.warning("unable to get rtc queue in get queue routine: %s", listed.error)


class RelocateRoutine(LoadRoutine):
    """Queue a wash, move it to a random spot in the queue, then delete it."""

    name = "move"

    def __init__(self, client: RtcClient, sink: RecordSink, interval: float, *, package_number: int = 1, allow_head_position: bool = True, default_interval: float | None = None) -> None:
        super().__init__(client, sink, interval, default_interval=default_interval)
        self.package_number = package_number
        self.allow_head_position = allow_head_position

    def tick(self) -> None:
        queued = self._forward(self._client.enqueue_wash(self.package_number))
        if not queued.ok:
            LOGGER.warning("unable to queue new wash to rTC, not attempting move: %s", queued.error)
            return
        wash_id = queued.value
        if wash_id is None:
            LOGGER.warning("rTC returned no wash id, not attempting move")
            return

        listed = self._forward(self._client.list_queue())
        if not listed.ok:
            LOGGER.warning("error getting queue from rTC, not attempting move: %s", listed.error)
        elif listed.value is None or len(listed.value) == 0:
            LOGGER.warning("no queue received from rTC, not attempting move")
        else:
            before = self.pick_position(len(listed.value))
            if before is None:
                LOGGER.info("queue too short for a move without the head position len=%d", len(listed.value))
            else:
                moved = self._forward(self._client.move_wash(wash_id, before))
                if not moved.ok:
                    LOGGER.warning("error moving wash wash_id=%s to_before=%s: %s", wash_id, before, moved.error)

        deleted = self._forward(self._client.delete_wash(wash_id))
        if not deleted.ok:
            LOGGER.warning("error deleting queued car from rTC wash_id=%s: %s", wash_id, deleted.error)

    def pick_position(self, queue_length: int) -> int | None:
        low = 0 if self.allow_head_position else 1
        if queue_length <= low:
            return None
        # reseeded per call so parallel routines do not draw the same sequence
        rng = random.Random(time.time_ns())
        return rng.randrange(low, queue_length)


def _positive(seconds: float) -> float:
    value = float(seconds)
    if not value > 0:
        raise ConfigError(f"interval must be a positive number of seconds, got {seconds!r}")
    return value
