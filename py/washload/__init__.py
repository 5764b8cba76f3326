"""Load generator for the rTC wash queue controller."""

from . import rtc_codec
from .rtc_client import (
    CloseError,
    ConnectError,
    ReadError,
    RtcClient,
    RtcError,
    RtcOutcome,
    WriteError,
)
from .rtc_codec import DecodeError, EncodeError, QueueEntry, QueueListing
from .record_sink import CsvRecordStore, RecordSink
from .routines import EnqueueRoutine, ListRoutine, LoadRoutine, RelocateRoutine, RoutineState
from .scheduler import Scheduler
from .timing import TimingRecord

__all__ = [
    "rtc_codec",
    "RtcClient",
    "RtcOutcome",
    "RtcError",
    "ConnectError",
    "WriteError",
    "ReadError",
    "CloseError",
    "DecodeError",
    "EncodeError",
    "QueueEntry",
    "QueueListing",
    "CsvRecordStore",
    "RecordSink",
    "LoadRoutine",
    "EnqueueRoutine",
    "ListRoutine",
    "RelocateRoutine",
    "RoutineState",
    "Scheduler",
    "TimingRecord",
]
