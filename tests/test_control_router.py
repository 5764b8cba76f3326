import json
import sys
import unittest
from dataclasses import replace
from pathlib import Path

sys.path.insert(0, str(Path(__file__).resolve().parents[1] / "py"))

from rtc_fakes import FakeRtcClient, ListSink
from washload.config import build_config
from washload.control.router import ControlRouter
from washload.rtc_codec import QueueEntry
from washload.scheduler import Scheduler


def _body(result) -> dict:
    return json.loads(result.body.decode("utf-8"))


class ControlRouterTest(unittest.TestCase):
    def setUp(self) -> None:
        self.client = FakeRtcClient([QueueEntry(1, "washing", 0, 1), QueueEntry(2, "queued", 1, 2), QueueEntry(3, "queued", 2, 1)])
        self.sink = ListSink()
        settings = replace(build_config({}).routines, autostart=False, queue_interval=30.0, get_interval=30.0, move_interval=30.0)
        self.scheduler = Scheduler(self.client, self.sink, settings)
        self.addCleanup(self.scheduler.shutdown, 5.0)
        self.router = ControlRouter(self.scheduler, cleanup_package=1)

    def test_healthz(self) -> None:
        result = self.router.handle_get("/healthz")
        self.assertEqual(result.status_code, 200)
        self.assertEqual(result.body, b"ok")

    def test_status_includes_process_info(self) -> None:
        payload = _body(self.router.handle_get("/status"))
        self.assertIn("routines", payload)
        self.assertIn("pid", payload["process"])
        self.assertGreaterEqual(payload["process"]["threads"], 1)

    def test_start_all_and_subset(self) -> None:
        result = self.router.handle_get("/start/get")
        self.assertEqual(_body(result)["started"], ["get"])
        result = self.router.handle_get("/start")
        self.assertEqual(_body(result)["started"], ["queue", "move"])
        self.assertEqual(_body(self.router.handle_get("/start/"))["started"], [])

    def test_start_unknown_routine(self) -> None:
        result = self.router.handle_get("/start/wash")
        self.assertEqual(result.status_code, 400)
        self.assertFalse(self.scheduler.routine("queue").running)

    def test_stop_all_redirects_to_delete(self) -> None:
        self.scheduler.start_all()
        result = self.router.handle_get("/stop")
        self.assertEqual(result.status_code, 302)
        self.assertEqual(result.headers["Location"], "/delete")
        self.assertFalse(self.scheduler.routine("get").running)

    def test_stop_subset_redirects_only_for_queueing_routines(self) -> None:
        self.scheduler.start_all()
        result = self.router.handle_get("/stop/get")
        self.assertEqual(result.status_code, 200)
        self.assertEqual(_body(result)["stopped"], ["get"])
        result = self.router.handle_get("/stop/queue-and-move")
        self.assertEqual(result.status_code, 302)

    def test_delete_removes_cleanup_package(self) -> None:
        result = self.router.handle_get("/delete")
        self.assertEqual(result.status_code, 200)
        payload = _body(result)
        self.assertEqual(payload["deleted"], [1, 3])
        self.assertEqual(payload["listed"], 3)
        self.assertEqual([car.wash_id for car in self.client.cars], [2])

    def test_delete_reports_list_failure(self) -> None:
        self.client.fail_list = True
        with self.assertLogs("washload.scheduler", level="ERROR"):
            result = self.router.handle_get("/delete")
        self.assertEqual(result.status_code, 500)
        self.assertEqual(_body(result), {"error": "failed to fetch rtc queue"})

    def test_update_single_routine(self) -> None:
        result = self.router.handle_get("/update/get/5")
        self.assertEqual(result.status_code, 200)
        self.assertEqual(_body(result)["routines"]["get"]["interval"], 5.0)
        self.assertTrue(self.scheduler.routine("get").running)

    def test_update_with_empty_time_span(self) -> None:
        result = self.router.handle_get("/update/get/")
        self.assertEqual(result.status_code, 400)
        self.assertEqual(_body(result), {"error": "no time span specified"})
        self.assertFalse(self.scheduler.routine("get").running)

    def test_update_bad_value_reports_fallback(self) -> None:
        with self.assertLogs("washload.scheduler", level="WARNING"):
            result = self.router.handle_get("/update/move/abc")
        self.assertEqual(result.status_code, 400)
        payload = _body(result)
        self.assertEqual(payload["status"], "fallback")
        self.assertTrue(payload["routines"]["move"]["fallback_applied"])
        self.assertTrue(self.scheduler.routine("move").running)

    def test_update_all_three(self) -> None:
        result = self.router.handle_get("/update/3/7/5")
        self.assertEqual(result.status_code, 200)
        self.assertEqual(self.scheduler.routine("queue").interval, 3.0)
        self.assertEqual(self.scheduler.routine("move").interval, 7.0)
        self.assertEqual(self.scheduler.routine("get").interval, 5.0)

    def test_update_unknown_routine(self) -> None:
        self.assertEqual(self.router.handle_get("/update/wash/5").status_code, 400)

    def test_unknown_path(self) -> None:
        self.assertEqual(self.router.handle_get("/nope").status_code, 404)


if __name__ == "__main__":
    unittest.main()
