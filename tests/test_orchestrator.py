"""
Tests for the replay orchestrator.
"""

import asyncio

import pytest

from uireplay.models import (
    ClickEvent,
    DragEvent,
    KeyEvent,
    LegacyBaseline,
    ObjectRef,
    Point,
    Rect,
    ReplayStatus,
    ScreenshotCheckpoint,
    Size,
    TestCase,
    WaitEvent,
    WindowMode,
    WindowState,
)
from uireplay.playback import MouseButton
from uireplay.serialization import save_test_case

from tests.fakes import (
    BLUE,
    RED,
    FakeBackend,
    FakeGrabber,
    FakeHitTester,
    FakeMapper,
    FakeWindow,
    clicks,
    make_orchestrator,
    solid,
)


class TestScaling:
    """Recorded positions follow the current viewport size and origin."""

    def test_same_size_no_scaling(self):
        """Test that an unchanged viewport replays positions as recorded."""
        orchestrator, backend = make_orchestrator()
        result = asyncio.run(orchestrator.run(clicks((100, 50))))
        assert result.passed
        assert backend.calls("down") == [("down", (100, 50), MouseButton.LEFT)]

    def test_double_size_viewport(self):
        """Test that positions scale with a larger viewport."""
        orchestrator, backend = make_orchestrator(window=FakeWindow(size=(1600, 1200)))
        result = asyncio.run(orchestrator.run(clicks((100, 50))))
        assert result.passed
        assert orchestrator.scale == (2.0, 2.0)
        assert backend.calls("down") == [("down", (200, 100), MouseButton.LEFT)]

    def test_origin_offset(self):
        """Test that the viewport origin offsets every position."""
        window = FakeWindow(size=(1600, 1200), origin=(10, 20))
        orchestrator, backend = make_orchestrator(window=window)
        asyncio.run(orchestrator.run(clicks((100, 50))))
        assert backend.calls("down") == [("down", (210, 120), MouseButton.LEFT)]

    def test_empty_recorded_viewport_means_unit_scale(self):
        """Test that an empty recorded viewport disables scaling."""
        orchestrator, _ = make_orchestrator(window=FakeWindow(size=(1600, 1200)))
        assert orchestrator.compute_scale(clicks(viewport=(0, 0))) == (1.0, 1.0)

    def test_checkpoint_region_scaled_and_offset(self, tmp_path):
        """Test that checkpoint regions scale and offset like positions."""
        solid(RED).save(tmp_path / "cp.png")
        grabber = FakeGrabber(solid(RED))
        window = FakeWindow(size=(1600, 1200), origin=(5, 5))
        orchestrator, _ = make_orchestrator(window=window, grabber=grabber)
        case = clicks(
            (1, 1),
            checkpoints=[ScreenshotCheckpoint(path="cp.png", region=Rect(x=10, y=10, w=20, h=20), after_event_index=0)],
        )
        asyncio.run(orchestrator.run(case, base_dir=tmp_path))
        assert grabber.regions[0].as_box() == (25, 25, 40, 40)


class TestCheckpoints:
    """Inline checkpoint validation."""

    def test_all_checkpoints_pass(self, tmp_path):
        """Test that a run with matching checkpoints passes."""
        solid(RED).save(tmp_path / "start.png")
        solid(RED).save(tmp_path / "after.png")
        orchestrator, _ = make_orchestrator(grabber=FakeGrabber(solid(RED)))
        case = clicks(
            (1, 1), (2, 2),
            checkpoints=[
                ScreenshotCheckpoint(path="start.png", region=Rect(w=8, h=8), after_event_index=-1),
                ScreenshotCheckpoint(path="after.png", region=Rect(w=8, h=8), after_event_index=1),
            ],
        )
        result = asyncio.run(orchestrator.run(case, base_dir=tmp_path))
        assert result.passed
        assert result.status == ReplayStatus.PASSED
        assert result.failed_step_index == -1

    def test_first_failure_stops_the_run(self, tmp_path):
        """Test that the first failed checkpoint ends the run."""
        solid(RED).save(tmp_path / "cp_a.png")
        solid(BLUE).save(tmp_path / "cp_b.png")
        solid(RED).save(tmp_path / "cp_c.png")
        grabber = FakeGrabber(solid(RED))
        orchestrator, backend = make_orchestrator(grabber=grabber)
        case = clicks(
            (1, 1), (2, 2), (3, 3), (4, 4),
            checkpoints=[
                ScreenshotCheckpoint(path="cp_a.png", region=Rect(w=8, h=8), after_event_index=1),
                ScreenshotCheckpoint(path="cp_b.png", region=Rect(w=8, h=8), after_event_index=1),
                ScreenshotCheckpoint(path="cp_c.png", region=Rect(w=8, h=8), after_event_index=1),
            ],
        )

        result = asyncio.run(orchestrator.run(case, base_dir=tmp_path))

        assert not result.passed
        assert result.status == ReplayStatus.FAILED
        assert result.failed_step_index == 2
        assert result.baseline_path == str(tmp_path / "cp_b.png")
        assert result.actual_path == str(tmp_path / "cp_b_actual.png")
        assert result.diff_path == str(tmp_path / "cp_b_diff.png")
        # cp_c and events 2 and 3 never ran
        assert len(grabber.regions) == 2
        assert len(backend.calls("down")) == 2

    def test_checkpoint_before_first_event(self, tmp_path):
        """Test that a start checkpoint runs before any input."""
        solid(BLUE).save(tmp_path / "start.png")
        orchestrator, backend = make_orchestrator(grabber=FakeGrabber(solid(RED)))
        case = clicks(
            (1, 1),
            checkpoints=[ScreenshotCheckpoint(path="start.png", region=Rect(w=8, h=8), after_event_index=-1)],
        )
        result = asyncio.run(orchestrator.run(case, base_dir=tmp_path))
        assert result.failed_step_index == 0
        assert backend.log == []

    def test_missing_baseline_fails(self, tmp_path):
        """Test that a missing baseline fails its step."""
        orchestrator, _ = make_orchestrator()
        case = clicks(
            (1, 1),
            checkpoints=[ScreenshotCheckpoint(path="gone.png", region=Rect(w=8, h=8), after_event_index=0)],
        )
        result = asyncio.run(orchestrator.run(case, base_dir=tmp_path))
        assert not result.passed
        assert result.failed_step_index == 1
        assert "not found" in result.error

    def test_legacy_baseline_failure_step(self, tmp_path):
        """Test that a failed legacy baseline points past the last event."""
        solid(BLUE).save(tmp_path / "final.png")
        orchestrator, _ = make_orchestrator(grabber=FakeGrabber(solid(RED)))
        case = clicks((1, 1), (2, 2), (3, 3), legacy_baseline=LegacyBaseline(path="final.png"))
        result = asyncio.run(orchestrator.run(case, base_dir=tmp_path))
        assert not result.passed
        assert result.failed_step_index == 3
        assert result.baseline_path == str(tmp_path / "final.png")

    def test_legacy_baseline_ignored_when_checkpoints_exist(self, tmp_path):
        """Test that checkpoints take precedence over a legacy baseline."""
        solid(RED).save(tmp_path / "cp.png")
        solid(BLUE).save(tmp_path / "final.png")
        orchestrator, _ = make_orchestrator(grabber=FakeGrabber(solid(RED)))
        case = clicks(
            (1, 1),
            checkpoints=[ScreenshotCheckpoint(path="cp.png", region=Rect(w=8, h=8), after_event_index=0)],
            legacy_baseline=LegacyBaseline(path="final.png"),
        )
        assert asyncio.run(orchestrator.run(case, base_dir=tmp_path)).passed


class TestWindowAndCancellation:
    """Window geometry restore and cancellation."""

    def test_recorded_window_applied_and_restored(self):
        """Test that the recorded window state is applied then restored."""
        window = FakeWindow(size=(1024, 768), origin=(0, 0))
        original = window.get_state()
        recorded = WindowState(mode=WindowMode.NORMAL, x=50, y=60, w=800, h=600)
        orchestrator, backend = make_orchestrator(window=window)
        case = clicks((10, 10), recorded_window_state=recorded)

        result = asyncio.run(orchestrator.run(case))

        assert result.passed
        assert window.history == [recorded, original]
        assert backend.calls("down") == [("down", (60, 70), MouseButton.LEFT)]

    def test_matching_window_left_alone(self):
        """Test that a window already in the recorded state is untouched."""
        window = FakeWindow()
        orchestrator, _ = make_orchestrator(window=window)
        asyncio.run(orchestrator.run(clicks((1, 1), recorded_window_state=window.get_state())))
        assert window.history == []

    def test_cancel_restores_window_and_releases_buttons(self):
        """Test that cancelling releases held buttons and restores the window."""
        window = FakeWindow(size=(1024, 768))
        original = window.get_state()
        recorded = WindowState(mode=WindowMode.NORMAL, x=0, y=0, w=800, h=600)
        orchestrator, backend = make_orchestrator(window=window)
        orchestrator.on_step = lambda i, event: orchestrator.cancel() if i == 1 else None
        case = TestCase(
            name="held",
            recorded_viewport_size=Size(w=800, h=600),
            recorded_window_state=recorded,
            events=[
                DragEvent(from_pos=Point(x=0, y=0), to_pos=Point(x=50, y=0), no_drop=True),
                ClickEvent(pos=Point(x=5, y=5)),
            ],
        )

        result = asyncio.run(orchestrator.run(case))

        assert result.status == ReplayStatus.CANCELLED
        assert not result.passed
        assert window.state == original
        assert backend.calls("up") == [("up", (50, 0), MouseButton.LEFT)]
        assert not orchestrator.player.is_holding()

    def test_step_error_becomes_failure(self):
        """Test that an exception in a step becomes a failed result."""
        orchestrator, _ = make_orchestrator()

        class BrokenBackend(FakeBackend):
            def key_down(self, key, char=None):
                raise OSError("input blocked")

        orchestrator.player.backend = BrokenBackend()
        case = TestCase(name="keys", events=[KeyEvent(keycode="a")])
        result = asyncio.run(orchestrator.run(case))
        assert result.status == ReplayStatus.FAILED
        assert result.failed_step_index == 1
        assert "input blocked" in result.error


class TestDragResolution:
    """Drag endpoints follow objects and world positions."""

    def test_object_found(self):
        """Test that a drag starts from the referenced object's position."""
        hit_tester = FakeHitTester(items={("card", "c1"): Point(x=300, y=200)})
        orchestrator, backend = make_orchestrator(hit_tester=hit_tester)
        event = DragEvent(
            from_pos=Point(x=100, y=100),
            to_pos=Point(x=400, y=100),
            object_ref=ObjectRef(type="card", id="c1", click_offset=Point(x=5, y=5)),
        )
        case = TestCase(name="drag", recorded_viewport_size=Size(w=800, h=600), events=[event])
        asyncio.run(orchestrator.run(case))
        assert backend.calls("down") == [("down", (305, 205), MouseButton.LEFT)]
        assert backend.calls("up") == [("up", (400, 100), MouseButton.LEFT)]

    def test_object_missing_falls_back(self):
        """Test that a missing object falls back to the recorded start."""
        orchestrator, backend = make_orchestrator(hit_tester=FakeHitTester())
        event = DragEvent(
            from_pos=Point(x=100, y=100),
            to_pos=Point(x=400, y=100),
            object_ref=ObjectRef(type="card", id="gone"),
        )
        assert orchestrator.resolve_drag(event) == (Point(x=100, y=100), Point(x=400, y=100))

    def test_cell_target_preferred(self):
        """Test that a cell target wins over the recorded drop point."""
        orchestrator, _ = make_orchestrator(coordinate_mapper=FakeMapper(camera=(120, 100)))
        event = DragEvent(
            from_pos=Point(x=10, y=10),
            to_pos=Point(x=53, y=27),
            world_to=Point(x=153, y=127),
            cell_to=Point(x=15, y=12),
        )
        _, end = orchestrator.resolve_drag(event)
        assert end == Point(x=35, y=25)

    def test_world_target(self):
        """Test that a world target is mapped back to the screen."""
        orchestrator, _ = make_orchestrator(coordinate_mapper=FakeMapper(camera=(120, 100)))
        event = DragEvent(from_pos=Point(), to_pos=Point(x=53, y=27), world_to=Point(x=153, y=127))
        _, end = orchestrator.resolve_drag(event)
        assert end == Point(x=33, y=27)

    def test_held_segments_replay_as_one_press(self):
        """Test that split drag segments replay as one press and release."""
        orchestrator, backend = make_orchestrator()
        case = TestCase(
            name="segments",
            recorded_viewport_size=Size(w=800, h=600),
            events=[
                DragEvent(from_pos=Point(x=0, y=0), to_pos=Point(x=50, y=0), no_drop=True),
                DragEvent(from_pos=Point(x=50, y=0), to_pos=Point(x=50, y=50), no_drop=True),
                DragEvent(from_pos=Point(x=50, y=50), to_pos=Point(x=100, y=50)),
            ],
        )
        assert asyncio.run(orchestrator.run(case)).passed
        assert len(backend.calls("down")) == 1
        assert backend.calls("up") == [("up", (100, 50), MouseButton.LEFT)]

    def test_short_final_segment_releases_without_new_press(self):
        """Test that a short drop segment after a split sends a single release."""
        orchestrator, backend = make_orchestrator()
        case = TestCase(
            name="short_drop",
            recorded_viewport_size=Size(w=800, h=600),
            events=[
                DragEvent(from_pos=Point(x=10, y=10), to_pos=Point(x=100, y=10), no_drop=True),
                DragEvent(from_pos=Point(x=100, y=10), to_pos=Point(x=101, y=10)),
            ],
        )
        assert asyncio.run(orchestrator.run(case)).passed
        assert backend.calls("down") == [("down", (10, 10), MouseButton.LEFT)]
        assert backend.calls("up") == [("up", (101, 10), MouseButton.LEFT)]


class TestEntryPoints:
    def test_run_file_missing(self, tmp_path):
        """Test that a missing file becomes a failed result."""
        orchestrator, _ = make_orchestrator()
        result = asyncio.run(orchestrator.run_file(tmp_path / "nope.json"))
        assert result.name == "nope"
        assert result.status == ReplayStatus.FAILED
        assert "not found" in result.error

    def test_run_file_undecodable(self, tmp_path):
        """Test that a file with invalid UTF-8 becomes a failed result."""
        path = tmp_path / "garbled.json"
        path.write_bytes(b'{"name": "\xff\xfe"}')
        orchestrator, _ = make_orchestrator()
        result = asyncio.run(orchestrator.run_file(path))
        assert result.name == "garbled"
        assert result.status == ReplayStatus.FAILED

    def test_run_file_unexpected_load_error(self, tmp_path, monkeypatch):
        """Test that any loader exception becomes a failed result."""
        def broken_loader(path):
            raise RuntimeError("disk on fire")

        monkeypatch.setattr("uireplay.replay.orchestrator.load_test_case", broken_loader)
        orchestrator, _ = make_orchestrator()
        result = asyncio.run(orchestrator.run_file(tmp_path / "any.json"))
        assert result.status == ReplayStatus.FAILED
        assert result.error == "RuntimeError: disk on fire"

    def test_run_file_resolves_relative_paths(self, tmp_path):
        """Test that checkpoint paths resolve against the test file's folder."""
        solid(RED).save(tmp_path / "cp.png")
        case = clicks(
            (1, 1),
            checkpoints=[ScreenshotCheckpoint(path="cp.png", region=Rect(w=8, h=8), after_event_index=0)],
        )
        save_test_case(case, tmp_path / "clicks.json")
        orchestrator, _ = make_orchestrator(grabber=FakeGrabber(solid(RED)))
        assert asyncio.run(orchestrator.run_file(tmp_path / "clicks.json")).passed

    def test_repeat_runs_are_identical(self, tmp_path):
        """Test that replaying twice sends the same input."""
        solid(BLUE).save(tmp_path / "cp.png")
        case = clicks(
            (1, 1), (2, 2),
            checkpoints=[ScreenshotCheckpoint(path="cp.png", region=Rect(w=8, h=8), after_event_index=0)],
        )
        before = case.model_copy(deep=True)
        orchestrator, _ = make_orchestrator(grabber=FakeGrabber(solid(RED)))

        first = asyncio.run(orchestrator.run(case, base_dir=tmp_path))
        second = asyncio.run(orchestrator.run(case, base_dir=tmp_path))

        assert case == before
        assert first.model_dump(exclude={"duration"}) == second.model_dump(exclude={"duration"})

    def test_wait_event_uses_real_time(self):
        """Test that wait events sleep in real time."""
        orchestrator, _ = make_orchestrator()
        case = TestCase(name="wait", events=[WaitEvent(duration=400)])
        asyncio.run(orchestrator.run(case))
        assert orchestrator.player.clock.slept == pytest.approx(0.4)

    def test_on_step_reports_every_event(self):
        """Test that the step callback sees every event."""
        orchestrator, _ = make_orchestrator()
        seen = []
        orchestrator.on_step = lambda i, event: seen.append(i)
        asyncio.run(orchestrator.run(clicks((1, 1), (2, 2), (3, 3))))
        assert seen == [0, 1, 2]
