"""
Test case, checkpoint and result models.
"""

from __future__ import annotations
from datetime import datetime
from enum import Enum
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field

from uireplay.models.events import RecordedEvent
from uireplay.models.geometry import Rect, Size, WindowState


class ScreenshotCheckpoint(BaseModel):
    """A reference screenshot validated after a given event during replay."""

    model_config = ConfigDict(frozen=True)

    path: str
    region: Rect
    after_event_index: int = Field(default=-1, ge=-1)
    time: int = 0


class LegacyBaseline(BaseModel):
    """Single end-of-run screenshot from before inline checkpoints existed."""

    model_config = ConfigDict(frozen=True)

    path: str
    region: Optional[Rect] = None


class TestCase(BaseModel):
    """A recorded test: ordered events plus the checkpoints interleaved with them."""

    __test__ = False  # not a pytest collection target

    model_config = ConfigDict(frozen=True)

    name: str
    created: datetime = Field(default_factory=datetime.now)
    recorded_viewport_size: Size = Field(default_factory=Size)
    recorded_window_state: Optional[WindowState] = None
    events: List[RecordedEvent] = Field(default_factory=list)
    checkpoints: List[ScreenshotCheckpoint] = Field(default_factory=list)
    legacy_baseline: Optional[LegacyBaseline] = None

    def checkpoints_after(self, index: int) -> List[ScreenshotCheckpoint]:
        """Checkpoints joined to the event at ``index``, in list order."""
        return [cp for cp in self.checkpoints if cp.after_event_index == index]


class ReplayStatus(str, Enum):
    IDLE = "idle"
    PREPARING = "preparing"
    RUNNING = "running"
    PASSED = "passed"
    FAILED = "failed"
    CANCELLED = "cancelled"


class TestResult(BaseModel):
    """Outcome of one replay run."""

    __test__ = False

    name: str
    passed: bool = False
    status: ReplayStatus = ReplayStatus.FAILED
    baseline_path: Optional[str] = None
    actual_path: Optional[str] = None
    diff_path: Optional[str] = None
    failed_step_index: int = -1
    error: Optional[str] = None
    duration: float = 0.0

    @classmethod
    def load_failure(cls, name: str, error: str) -> TestResult:
        return cls(name=name, passed=False, status=ReplayStatus.FAILED, error=error)
