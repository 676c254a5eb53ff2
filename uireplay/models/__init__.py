"""
Data models for recorded events, test cases and replay results.
"""

from uireplay.models.geometry import Point, Size, Rect, WindowMode, WindowState
from uireplay.models.events import (
    EventType,
    ScrollDirection,
    ObjectRef,
    ClickEvent,
    DoubleClickEvent,
    DragEvent,
    PanEvent,
    RightClickEvent,
    ScrollEvent,
    KeyEvent,
    WaitEvent,
    SetClipboardImageEvent,
    RecordedEvent,
)
from uireplay.models.testcase import (
    ScreenshotCheckpoint,
    LegacyBaseline,
    TestCase,
    TestResult,
    ReplayStatus,
)

__all__ = [
    "Point",
    "Size",
    "Rect",
    "WindowMode",
    "WindowState",
    "EventType",
    "ScrollDirection",
    "ObjectRef",
    "ClickEvent",
    "DoubleClickEvent",
    "DragEvent",
    "PanEvent",
    "RightClickEvent",
    "ScrollEvent",
    "KeyEvent",
    "WaitEvent",
    "SetClipboardImageEvent",
    "RecordedEvent",
    "ScreenshotCheckpoint",
    "LegacyBaseline",
    "TestCase",
    "TestResult",
    "ReplayStatus",
]
