"""
Tests for batch replay and reports.
"""

import asyncio
import json

import yaml

from uireplay.models import Rect, ReplayStatus, ScreenshotCheckpoint
from uireplay.replay import BatchRunner
from uireplay.serialization import save_test_case

from tests.fakes import BLUE, RED, FakeGrabber, clicks, make_orchestrator, solid


def write_suite(directory):
    solid(RED).save(directory / "ok.png")
    solid(BLUE).save(directory / "bad.png")
    save_test_case(
        clicks((1, 1), checkpoints=[ScreenshotCheckpoint(path="ok.png", region=Rect(w=8, h=8), after_event_index=0)]),
        directory / "a_pass.json",
    )
    save_test_case(
        clicks((1, 1), checkpoints=[ScreenshotCheckpoint(path="bad.png", region=Rect(w=8, h=8), after_event_index=0)]),
        directory / "b_fail.json",
    )
    (directory / "c_broken.json").write_text("{")


class TestBatchRunner:
    def test_discover_sorted(self, tmp_path):
        """Test that discovered test files come back sorted by name."""
        write_suite(tmp_path)
        names = [p.name for p in BatchRunner.discover(tmp_path)]
        assert names == ["a_pass.json", "b_fail.json", "c_broken.json"]

    def test_failures_do_not_stop_the_batch(self, tmp_path):
        """Test that failed and broken tests are reported and the batch continues."""
        write_suite(tmp_path)
        orchestrator, _ = make_orchestrator(grabber=FakeGrabber(solid(RED)))
        runner = BatchRunner(orchestrator)
        seen = []
        runner.on_result = seen.append

        report = asyncio.run(runner.run(BatchRunner.discover(tmp_path)))

        assert [r.status for r in report.results] == [
            ReplayStatus.PASSED,
            ReplayStatus.FAILED,
            ReplayStatus.FAILED,
        ]
        assert seen == report.results
        assert report.summary() == {"total": 3, "passed": 1, "failed": 2, "cancelled": 0}
        assert not report.all_passed

    def test_cancel_stops_remaining_tests(self, tmp_path):
        """Test that cancelling skips the tests not yet run."""
        write_suite(tmp_path)
        orchestrator, _ = make_orchestrator(grabber=FakeGrabber(solid(RED)))
        orchestrator.on_step = lambda i, event: orchestrator.cancel()
        runner = BatchRunner(orchestrator)

        report = asyncio.run(runner.run(BatchRunner.discover(tmp_path)))

        assert len(report.results) == 1
        assert report.results[0].status == ReplayStatus.CANCELLED
        assert report.cancelled == 1

    def test_undecodable_file_does_not_stop_the_batch(self, tmp_path):
        """Test that a file with invalid UTF-8 fails and the next file still runs."""
        (tmp_path / "a_garbled.json").write_bytes(b'{"name": "\xff\xfe"}')
        save_test_case(clicks((1, 1)), tmp_path / "b_good.json")
        orchestrator, _ = make_orchestrator(grabber=FakeGrabber(solid(RED)))

        report = asyncio.run(BatchRunner(orchestrator).run(BatchRunner.discover(tmp_path)))

        assert [(r.name, r.status) for r in report.results] == [
            ("a_garbled", ReplayStatus.FAILED),
            ("clicks", ReplayStatus.PASSED),
        ]


class TestBatchReport:
    def test_export_json_and_yaml(self, tmp_path):
        """Test that a batch report exports to JSON and YAML."""
        write_suite(tmp_path)
        orchestrator, _ = make_orchestrator(grabber=FakeGrabber(solid(RED)))
        report = asyncio.run(BatchRunner(orchestrator).run(BatchRunner.discover(tmp_path)))

        report.export(tmp_path / "out" / "report.json")
        report.export(tmp_path / "out" / "report.yaml", format="yaml")

        data = json.loads((tmp_path / "out" / "report.json").read_text())
        assert data["summary"]["passed"] == 1
        assert data["results"][1]["failed_step_index"] == 1
        assert data["results"][2]["name"] == "c_broken"

        with open(tmp_path / "out" / "report.yaml") as f:
            assert yaml.safe_load(f)["summary"] == data["summary"]
