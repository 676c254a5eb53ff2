"""
Tests for test case records and files.
"""

import json
from datetime import datetime

import pytest

from uireplay.exceptions import TestCaseLoadError
from uireplay.models import (
    ClickEvent,
    DragEvent,
    KeyEvent,
    LegacyBaseline,
    ObjectRef,
    PanEvent,
    Point,
    Rect,
    ScreenshotCheckpoint,
    ScrollDirection,
    ScrollEvent,
    SetClipboardImageEvent,
    Size,
    TestCase,
    WaitEvent,
    WindowMode,
    WindowState,
)
from uireplay.serialization import (
    case_from_record,
    case_to_record,
    event_from_record,
    event_to_record,
    load_test_case,
    save_test_case,
)


@pytest.fixture
def sample_case():
    return TestCase(
        name="drag_card",
        created=datetime(2024, 5, 1, 12, 30),
        recorded_viewport_size=Size(w=800, h=600),
        recorded_window_state=WindowState(mode=WindowMode.NORMAL, x=10, y=20, w=800, h=600),
        events=[
            ClickEvent(time=100, pos=Point(x=10, y=20), ctrl=True, note="select"),
            DragEvent(
                time=400,
                from_pos=Point(x=10, y=20),
                to_pos=Point(x=200, y=20),
                no_drop=True,
                object_ref=ObjectRef(type="card", id="c1", click_offset=Point(x=4, y=2)),
            ),
            PanEvent(time=900, from_pos=Point(x=0, y=0), to_pos=Point(x=50, y=50)),
            ScrollEvent(time=950, direction=ScrollDirection.DOWN, pos=Point(x=5, y=5), factor=2.0),
            KeyEvent(time=1000, keycode="z", ctrl=True, wait_after=250),
            WaitEvent(duration=500),
            SetClipboardImageEvent(path="assets/logo.png", mouse_pos=Point(x=1, y=1)),
        ],
        checkpoints=[
            ScreenshotCheckpoint(path="drag_card_cp1.png", region=Rect(w=800, h=600), after_event_index=1, time=450),
        ],
    )


class TestEventRecords:
    """Tests for single event records."""

    def test_drag_record_uses_from_and_to(self):
        """Test that drag records use from and to keys."""
        event = DragEvent(from_pos=Point(x=1, y=2), to_pos=Point(x=3, y=4))
        record = event_to_record(event)
        assert record["type"] == "drag"
        assert record["from"] == {"x": 1.0, "y": 2.0}
        assert record["to"] == {"x": 3.0, "y": 4.0}
        assert "object_ref" not in record
        assert "note" not in record

    def test_event_from_record_dispatches_on_type(self):
        """Test that records decode to the event class named by type."""
        event = event_from_record({"type": "key", "keycode": "enter", "time": 5})
        assert isinstance(event, KeyEvent)
        assert event.keycode == "enter"
        assert event.ctrl is False

    def test_missing_later_fields_default(self):
        """Test that older records without newer fields still load."""
        event = event_from_record({"type": "click", "pos": {"x": 1, "y": 2}, "time": 10})
        assert event.wait_after == 0
        assert event.note is None
        assert event.shift is False

    def test_unknown_fields_ignored(self):
        """Test that unknown record fields are ignored."""
        event = event_from_record({"type": "wait", "duration": 20, "color": "red"})
        assert event == WaitEvent(duration=20)


class TestCaseRecords:
    """Tests for whole test case records."""

    def test_round_trip(self, sample_case):
        """Test that a test case survives encoding and decoding."""
        record = json.loads(json.dumps(case_to_record(sample_case)))
        assert case_from_record(record) == sample_case

    def test_record_keys(self, sample_case):
        """Test the top-level keys of a test case record."""
        record = case_to_record(sample_case)
        assert record["recorded_viewport"] == {"w": 800.0, "h": 600.0}
        assert record["recorded_window"]["mode"] == "normal"
        assert record["baseline_path"] == ""
        assert record["screenshots"][0]["after_event_index"] == 1
        assert record["events"][0]["note"] == "select"

    def test_old_record_without_optional_sections(self):
        """Test that records without optional sections load."""
        record = {
            "name": "old",
            "recorded_viewport": {"w": 1024, "h": 768},
            "events": [{"type": "click", "pos": {"x": 1, "y": 1}, "time": 0}],
            "baseline_path": "old_final.png",
            "baseline_region": {"x": 0, "y": 0, "w": 100, "h": 100},
        }
        case = case_from_record(record)
        assert case.checkpoints == []
        assert case.recorded_window_state is None
        assert case.legacy_baseline == LegacyBaseline(path="old_final.png", region=Rect(w=100, h=100))

    def test_empty_baseline_path_means_no_legacy(self):
        """Test that an empty baseline path means no legacy baseline."""
        case = case_from_record({"name": "x", "baseline_path": "", "events": []})
        assert case.legacy_baseline is None

    def test_unknown_event_type_rejected(self):
        """Test that an unknown event type is a load error."""
        with pytest.raises(TestCaseLoadError):
            case_from_record({"name": "x", "events": [{"type": "teleport"}]})

    def test_non_object_rejected(self):
        """Test that a non-object record is a load error."""
        with pytest.raises(TestCaseLoadError):
            case_from_record(["not", "a", "case"])


class TestFiles:
    """Tests for loading and saving test case files."""

    def test_save_and_load(self, tmp_path, sample_case):
        """Test that a saved test case loads back equal."""
        path = tmp_path / "cases" / "drag_card.json"
        save_test_case(sample_case, path)
        assert path.exists()
        assert load_test_case(path) == sample_case

    def test_missing_file(self, tmp_path):
        """Test that a missing file is a load error."""
        with pytest.raises(TestCaseLoadError, match="not found"):
            load_test_case(tmp_path / "nope.json")

    def test_invalid_json(self, tmp_path):
        """Test that invalid JSON is a load error."""
        path = tmp_path / "broken.json"
        path.write_text("{ not json")
        with pytest.raises(TestCaseLoadError):
            load_test_case(path)

    def test_non_utf8_file(self, tmp_path):
        """Test that bytes that are not UTF-8 raise a load error."""
        path = tmp_path / "garbled.json"
        path.write_bytes(b'{"name": "\xff\xfe"}')
        with pytest.raises(TestCaseLoadError, match="Could not read"):
            load_test_case(path)

    def test_saved_file_is_utf8(self, tmp_path, sample_case):
        """Test that non-ASCII names survive a save and load."""
        path = tmp_path / "umlaut.json"
        case = sample_case.model_copy(update={"name": "Zählung"})
        save_test_case(case, path)
        assert load_test_case(path).name == "Zählung"
