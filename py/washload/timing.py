"""Per-operation timing records written to the load-test CSV."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime

RECORD_HEADER = (
    "Command",
    "Connected",
    "CommandInitiated",
    "CommandRetrieved",
    "Closed",
    "Error",
    "ErrorMessage",
)


def timestamp() -> str:
    return datetime.now().astimezone().isoformat(timespec="microseconds")


@dataclass
class TimingRecord:
    """Outcome of one controller operation, filled in stage by stage.

    Stages that were never reached keep an empty timestamp, so the row
    always has the same seven columns whichever stage failed.
    """

    command: str
    connected: str = ""
    command_initiated: str = ""
    command_retrieved: str = ""
    closed: str = ""
    error: bool = False
    error_message: str = ""

    def mark_connected(self) -> None:
        self.connected = timestamp()

    def mark_command_initiated(self) -> None:
        self.command_initiated = timestamp()

    def mark_command_retrieved(self, at: str | None = None) -> None:
        self.command_retrieved = at or timestamp()

    def mark_closed(self) -> None:
        self.closed = timestamp()

    def fail(self, exc: BaseException | str) -> None:
        self.error = True
        self.error_message = str(exc)

    def succeed(self) -> None:
        self.error = False
        self.error_message = ""

    def as_row(self) -> list[str]:
        return [
            self.command,
            self.connected,
            self.command_initiated,
            self.command_retrieved,
            self.closed,
            "true" if self.error else "false",
            self.error_message,
        ]
