"""Owns the load routines, the record sink and the rTC client."""

from __future__ import annotations

import logging
import threading
from dataclasses import dataclass, field
from typing import Iterable, Mapping

from .config import ConfigError, RoutineConfig
from .record_sink import RecordSink
from .routines import EnqueueRoutine, ListRoutine, LoadRoutine, RelocateRoutine
from .rtc_client import RtcClient

LOGGER = logging.getLogger(__name__)

ROUTINE_NAMES = ("queue", "get", "move")
SUBSET_ALIASES = {
    "all": ROUTINE_NAMES,
    "queue-and-move": ("queue", "move"),
}


@dataclass
class IntervalUpdate:
    name: str
    interval: float
    fallback_applied: bool = False
    error: str | None = None

    @property
    def ok(self) -> bool:
        return not self.fallback_applied


@dataclass
class PurgeOutcome:
    """Result of deleting every queued wash with a given package."""

    package: int
    listed: int = 0
    deleted: list[int] = field(default_factory=list)
    failed: list[int] = field(default_factory=list)
    error: Exception | None = None

    @property
    def ok(self) -> bool:
        return self.error is None


def resolve_names(names: str | Iterable[str]) -> tuple[str, ...]:
    """Expand ``"queue-and-move"`` style selectors into routine names."""

    if isinstance(names, str):
        names = [names]
    resolved: list[str] = []
    for raw in names:
        name = raw.strip().lower()
        expanded = SUBSET_ALIASES.get(name, (name,))
        for item in expanded:
            if item not in ROUTINE_NAMES:
                raise KeyError(item)
            if item not in resolved:
                resolved.append(item)
    return tuple(resolved)


class Scheduler:
    """Control-plane entry point used by the HTTP surface and the CLI."""

    def __init__(self, client: RtcClient, sink: RecordSink, settings: RoutineConfig) -> None:
        self._client = client
        self._sink = sink
        self._settings = settings
        self._lock = threading.Lock()
        self._routines: dict[str, LoadRoutine] = {
            "queue": EnqueueRoutine(
                client,
                sink,
                settings.queue_interval,
                package_number=settings.package_number,
                delete_after_enqueue=settings.delete_after_enqueue,
            ),
            "get": ListRoutine(client, sink, settings.get_interval),
            "move": RelocateRoutine(
                client,
                sink,
                settings.move_interval,
                package_number=settings.package_number,
                allow_head_position=settings.allow_head_position,
            ),
        }

    @property
    def client(self) -> RtcClient:
        return self._client

    @property
    def sink(self) -> RecordSink:
        return self._sink

    def routine(self, name: str) -> LoadRoutine:
        return self._routines[name]

    def start(self) -> None:
        self._sink.start()
        if self._settings.autostart:
            self.start_all()

    def start_all(self) -> list[str]:
        return self.start_subset(ROUTINE_NAMES)

    def stop_all(self) -> list[str]:
        return self.stop_subset(ROUTINE_NAMES)

    def start_subset(self, names: str | Iterable[str]) -> list[str]:
        """Start the named routines; returns the ones that were not already running."""

        selected = resolve_names(names)
        with self._lock:
            return [name for name in selected if self._routines[name].start()]

    def stop_subset(self, names: str | Iterable[str]) -> list[str]:
        selected = resolve_names(names)
        with self._lock:
            return [name for name in selected if self._routines[name].stop()]

    def update_interval(self, name: str, text: str) -> IntervalUpdate:
        """Restart routine ``name`` with the interval parsed from ``text``.

        An unparsable interval never leaves the routine stopped: its default
        interval is applied instead and reported back.
        """

        routine = self._routines[resolve_names(name)[0]]
        with self._lock:
            try:
                seconds = routine.update_interval(text)
                result = IntervalUpdate(routine.name, seconds)
            except ConfigError as exc:
                LOGGER.warning("error updating %s time to %r, setting it to default %ss: %s", routine.name, text, routine.default_interval, exc)
                routine.set_interval(routine.default_interval)
                result = IntervalUpdate(routine.name, routine.default_interval, fallback_applied=True, error=str(exc))
            routine.start()
        LOGGER.info("updated %s routine's ticker time interval=%ss", routine.name, result.interval)
        return result

    def update_intervals(self, intervals: Mapping[str, str]) -> list[IntervalUpdate]:
        return [self.update_interval(name, text) for name, text in intervals.items()]

    def delete_all_matching_package(self, package: int | None = None) -> PurgeOutcome:
        """List the queue and delete every wash queued with ``package``."""

        package = self._settings.cleanup_package if package is None else package
        result = PurgeOutcome(package=package)

        listed = self._client.list_queue()
        self._sink.enqueue(listed.record)
        if not listed.ok:
            LOGGER.error("error getting queue to delete all washes queued by routine: %s", listed.error)
            result.error = listed.error
            return result
        if listed.value is None:
            LOGGER.info("rTC returned an empty reply, nothing to delete")
            return result

        result.listed = len(listed.value)
        for wash in listed.value.matching_package(package):
            deleted = self._client.delete_wash(wash.wash_id)
            self._sink.enqueue(deleted.record)
            if deleted.ok:
                result.deleted.append(wash.wash_id)
            else:
                LOGGER.error("error deleting wash from queue wash=%s: %s", wash, deleted.error)
                result.failed.append(wash.wash_id)
        LOGGER.info("deleted %d of %d queued washes with package=%s", len(result.deleted), result.listed, package)
        return result

    def status(self) -> dict[str, object]:
        host, port = self._client.address
        return {
            "controller": {"host": host, "port": port},
            "routines": {
                name: {
                    "state": routine.state.value,
                    "running": routine.running,
                    "interval": routine.interval,
                    "default_interval": routine.default_interval,
                }
                for name, routine in self._routines.items()
            },
            "sink": {
                "pending": self._sink.pending,
                "written": self._sink.written,
                "closed": self._sink.closed,
            },
        }

    def shutdown(self, timeout: float | None = 10.0) -> None:
        self.stop_all()
        for routine in self._routines.values():
            if not routine.join(timeout):
                LOGGER.warning("%s routine did not stop within %ss", routine.name, timeout)
        self._sink.shutdown()
        if not self._sink.join(timeout):
            LOGGER.warning("record sink did not stop within %ss", timeout)
