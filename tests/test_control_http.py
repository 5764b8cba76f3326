import csv
import sys
import tempfile
import unittest
from dataclasses import replace
from pathlib import Path

import requests

sys.path.insert(0, str(Path(__file__).resolve().parents[1] / "py"))

from washload.config import build_config
from washload.control import ControlHttpServer, ControlRouter
from washload.demo_controller import DemoController
from washload.record_sink import CsvRecordStore, RecordSink
from washload.rtc_client import RtcClient
from washload.rtc_codec import QueueEntry
from washload.scheduler import Scheduler


class ControlHttpEndToEndTest(unittest.TestCase):
    """Control surface over HTTP against the in-process demo controller."""

    def setUp(self) -> None:
        self._tmp = tempfile.TemporaryDirectory()
        self.addCleanup(self._tmp.cleanup)

        self.controller = DemoController(cars=[QueueEntry(1, "washing", 0, 1), QueueEntry(2, "queued", 1, 2)])
        self.controller.start()
        self.addCleanup(self.controller.stop)

        self.store = CsvRecordStore(Path(self._tmp.name) / "run.csv")
        self.addCleanup(self.store.close)
        host, port = self.controller.address
        client = RtcClient(host, port, close_grace=0.0)
        self.sink = RecordSink(self.store, poll_interval=0.05)
        settings = replace(build_config({}).routines, autostart=False, queue_interval=30.0, get_interval=30.0, move_interval=30.0)
        self.scheduler = Scheduler(client, self.sink, settings)
        self.scheduler.start()
        self.addCleanup(self.scheduler.shutdown, 5.0)

        self.server = ControlHttpServer("127.0.0.1", 0, ControlRouter(self.scheduler, cleanup_package=1))
        self.server.serve_in_background()
        self.addCleanup(self.server.shutdown)
        self.base = "http://%s:%s" % self.server.address

    def test_healthz(self) -> None:
        response = requests.get(f"{self.base}/healthz", timeout=5)
        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.text, "ok")

    def test_stop_follows_redirect_to_delete(self) -> None:
        requests.get(f"{self.base}/start", timeout=5)
        response = requests.get(f"{self.base}/stop", timeout=10)
        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.history[0].status_code, 302)
        self.assertEqual(response.json()["deleted"], [1])
        self.assertEqual([car.wash_id for car in self.controller.cars], [2])

    def test_records_reach_csv(self) -> None:
        requests.get(f"{self.base}/delete", timeout=10)
        self.scheduler.shutdown(5.0)
        with self.store.path.open(encoding="utf-8", newline="") as fh:
            rows = list(csv.reader(fh))
        self.assertEqual(rows[0][0], "Command")
        self.assertEqual([row[0] for row in rows[1:]], ["GET", "DELETE"])
        self.assertTrue(all(row[5] == "false" for row in rows[1:]))

    def test_update_over_http(self) -> None:
        response = requests.get(f"{self.base}/update/queue/0.5", timeout=5)
        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.json()["routines"]["queue"]["interval"], 0.5)
        self.assertEqual(self.scheduler.routine("queue").interval, 0.5)


if __name__ == "__main__":
    unittest.main()
