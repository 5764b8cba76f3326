"""Routing for the load-test control surface."""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass
from typing import Any, Mapping
from urllib.parse import unquote, urlsplit

import psutil

from ..scheduler import ROUTINE_NAMES, IntervalUpdate, Scheduler, resolve_names

CLEANUP_TRIGGERS = {"queue", "move"}


@dataclass
class RouteResult:
    status_code: int
    body: bytes
    headers: Mapping[str, str]


class ControlRouter:
    """Maps control URLs onto Scheduler operations."""

    def __init__(self, scheduler: Scheduler, *, cleanup_package: int = 1) -> None:
        self._logger = logging.getLogger(__name__)
        self._scheduler = scheduler
        self._cleanup_package = cleanup_package

    # ------------------------------- HTTP handlers -------------------------------
    def handle_get(self, path: str, headers: Mapping[str, str] | None = None) -> RouteResult:
        parts = [unquote(part) for part in urlsplit(path).path.split("/")[1:]]
        if parts and parts[-1] == "" and len(parts) > 1 and parts[0] != "update":
            parts = parts[:-1]
        head = parts[0] if parts else ""

        if head == "healthz" and len(parts) == 1:
            return self._text_response(200, "ok")
        if head == "status" and len(parts) == 1:
            return self._json_response(200, self._status_payload())
        if head == "start":
            return self._handle_start(parts[1:])
        if head == "stop":
            return self._handle_stop(parts[1:])
        if head == "delete" and len(parts) == 1:
            return self._handle_delete()
        if head == "update":
            return self._handle_update(parts[1:])
        return self._json_response(404, {"error": "not found"})

    # ------------------------------- routines -------------------------------
    def _handle_start(self, selector: list[str]) -> RouteResult:
        if not selector:
            started = self._scheduler.start_all()
            return self._json_response(200, {"status": "ok", "started": started})
        try:
            names = self._resolve(selector)
        except KeyError as exc:
            return self._json_response(400, {"error": f"unknown routine {exc.args[0]!r}"})
        started = self._scheduler.start_subset(names)
        return self._json_response(200, {"status": "ok", "started": started})

    def _handle_stop(self, selector: list[str]) -> RouteResult:
        if not selector:
            self._scheduler.stop_all()
            return self._redirect("/delete")
        try:
            names = self._resolve(selector)
        except KeyError as exc:
            return self._json_response(400, {"error": f"unknown routine {exc.args[0]!r}"})
        stopped = self._scheduler.stop_subset(names)
        if CLEANUP_TRIGGERS.intersection(names):
            # washes queued by these routines are cleaned up via /delete
            return self._redirect("/delete")
        return self._json_response(200, {"status": "ok", "stopped": stopped})

    def _handle_delete(self) -> RouteResult:
        outcome = self._scheduler.delete_all_matching_package(self._cleanup_package)
        if not outcome.ok:
            return self._json_response(500, {"error": "failed to fetch rtc queue"})
        return self._json_response(
            200,
            {
                "status": "ok",
                "package": outcome.package,
                "listed": outcome.listed,
                "deleted": outcome.deleted,
                "failed": outcome.failed,
            },
        )

    def _handle_update(self, args: list[str]) -> RouteResult:
        if len(args) == 2:
            name, seconds = args
            if not seconds.strip():
                return self._json_response(400, {"error": "no time span specified"})
            if name not in ROUTINE_NAMES:
                return self._json_response(400, {"error": f"unknown routine {name!r}"})
            update = self._scheduler.update_interval(name, seconds)
            return self._update_response([update])
        if len(args) == 3:
            for label, seconds in zip(("queue", "move", "get"), args):
                if not seconds.strip():
                    return self._json_response(400, {"error": f"no time span specified for {label} timer"})
            queue_time, move_time, get_time = args
            updates = self._scheduler.update_intervals({"queue": queue_time, "move": move_time, "get": get_time})
            return self._update_response(updates)
        return self._json_response(400, {"error": "no time span specified"})

    def _update_response(self, updates: list[IntervalUpdate]) -> RouteResult:
        payload = {
            update.name: {
                "interval": update.interval,
                "fallback_applied": update.fallback_applied,
                "error": update.error,
            }
            for update in updates
        }
        status = 200 if all(update.ok for update in updates) else 400
        return self._json_response(status, {"status": "ok" if status == 200 else "fallback", "routines": payload})

    # ------------------------------- helpers -------------------------------
    def _resolve(self, selector: list[str]) -> tuple[str, ...]:
        names: list[str] = []
        for part in selector:
            names.extend(item for item in part.split(",") if item)
        if not names:
            raise KeyError("")
        return resolve_names(names)

    def _status_payload(self) -> dict[str, Any]:
        payload = self._scheduler.status()
        process = psutil.Process()
        with process.oneshot():
            payload["process"] = {
                "pid": process.pid,
                "threads": process.num_threads(),
                "tcp_connections": len(process.net_connections(kind="tcp")),
                "rss_bytes": process.memory_info().rss,
            }
        return payload

    def _redirect(self, location: str) -> RouteResult:
        return RouteResult(status_code=302, body=b"", headers={"Location": location})

    def _json_response(self, status: int, payload: Mapping[str, Any]) -> RouteResult:
        body = json.dumps(payload, ensure_ascii=False).encode("utf-8")
        return RouteResult(status_code=status, body=body, headers={"Content-Type": "application/json; charset=utf-8"})

    def _text_response(self, status: int, message: str) -> RouteResult:
        body = message.encode("utf-8", errors="replace")
        return RouteResult(status_code=status, body=body, headers={"Content-Type": "text/plain; charset=utf-8"})
