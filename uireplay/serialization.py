"""
Mapping between in-memory test cases and their flat JSON records.

The record format is versioned informally by field presence: fields added
after the first release (``wait_after``, ``note``, ``screenshots``,
``recorded_window``) are optional on load and default sensibly.
"""

from __future__ import annotations
import json
import logging
from datetime import datetime
from pathlib import Path
from typing import Any, Dict

from pydantic import TypeAdapter, ValidationError

from uireplay.exceptions import TestCaseLoadError
from uireplay.models.events import RecordedEvent
from uireplay.models.geometry import Rect, Size, WindowState
from uireplay.models.testcase import LegacyBaseline, ScreenshotCheckpoint, TestCase

logger = logging.getLogger(__name__)

_EVENT_ADAPTER: TypeAdapter = TypeAdapter(RecordedEvent)


def event_to_record(event: RecordedEvent) -> Dict[str, Any]:
    """Flatten one event; positions become ``{x, y}`` objects."""
    return event.model_dump(mode="json", by_alias=True, exclude_none=True)


def event_from_record(record: Dict[str, Any]) -> RecordedEvent:
    """Rebuild a typed event from its record, dispatching on ``type``."""
    return _EVENT_ADAPTER.validate_python(record)


def case_to_record(test_case: TestCase) -> Dict[str, Any]:
    """Serialize a test case to a JSON-compatible dict."""
    legacy = test_case.legacy_baseline
    window = test_case.recorded_window_state
    return {
        "name": test_case.name,
        "created": test_case.created.isoformat(),
        "recorded_viewport": test_case.recorded_viewport_size.model_dump(mode="json"),
        "recorded_window": window.model_dump(mode="json") if window else None,
        "events": [event_to_record(e) for e in test_case.events],
        "baseline_path": legacy.path if legacy else "",
        "baseline_region": (
            legacy.region.model_dump(mode="json") if legacy and legacy.region else None
        ),
        "screenshots": [cp.model_dump(mode="json") for cp in test_case.checkpoints],
    }


def case_from_record(record: Dict[str, Any]) -> TestCase:
    """
    Deserialize a test case record.

    Raises:
        TestCaseLoadError: if the record is not a mapping or fails validation
    """
    if not isinstance(record, dict):
        raise TestCaseLoadError(f"Expected a JSON object, got {type(record).__name__}")

    try:
        viewport = record.get("recorded_viewport")
        window = record.get("recorded_window")
        baseline_path = record.get("baseline_path") or ""
        baseline_region = record.get("baseline_region")

        legacy = None
        if baseline_path:
            legacy = LegacyBaseline(
                path=baseline_path,
                region=Rect(**baseline_region) if baseline_region else None,
            )

        created = record.get("created")
        return TestCase(
            name=record.get("name") or "unnamed",
            created=datetime.fromisoformat(created) if created else datetime.now(),
            recorded_viewport_size=Size(**viewport) if viewport else Size(),
            recorded_window_state=WindowState(**window) if window else None,
            events=[event_from_record(e) for e in record.get("events", [])],
            checkpoints=[
                ScreenshotCheckpoint(**cp) for cp in record.get("screenshots", [])
            ],
            legacy_baseline=legacy,
        )
    except (ValidationError, TypeError, ValueError) as e:
        raise TestCaseLoadError(f"Malformed test case record: {e}") from e


def load_test_case(path: Path) -> TestCase:
    """Load a test case from a JSON file."""
    path = Path(path)
    if not path.is_file():
        raise TestCaseLoadError(f"Test case not found: {path}")

    try:
        with open(path, encoding="utf-8") as f:
            record = json.load(f)
    except (OSError, UnicodeDecodeError, json.JSONDecodeError) as e:
        raise TestCaseLoadError(f"Could not read {path}: {e}") from e

    test_case = case_from_record(record)
    logger.debug(
        f"Loaded {test_case.name}: {len(test_case.events)} events, "
        f"{len(test_case.checkpoints)} checkpoints"
    )
    return test_case


def save_test_case(test_case: TestCase, path: Path) -> None:
    """Write a test case to a JSON file, creating parent directories."""
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    with open(path, "w", encoding="utf-8") as f:
        json.dump(case_to_record(test_case), f, indent=2)
    logger.info(f"Saved test case {test_case.name} to {path}")
