"""
Configuration management for uireplay.
"""

from __future__ import annotations
from enum import Enum
from pathlib import Path
from typing import List, Optional, Tuple

from pydantic import BaseModel, Field
import yaml

from uireplay.models.geometry import Rect


class PlaybackSpeed(str, Enum):
    """Replay pacing presets."""

    INSTANT = "instant"
    FAST = "fast"
    NORMAL = "normal"
    SLOW = "slow"
    STEP = "step"

    @property
    def multiplier(self) -> float:
        """Duration multiplier; negative means wait for a manual advance."""
        return _SPEED_MULTIPLIERS[self]


_SPEED_MULTIPLIERS = {
    PlaybackSpeed.INSTANT: 0.0,
    PlaybackSpeed.FAST: 0.25,
    PlaybackSpeed.NORMAL: 1.0,
    PlaybackSpeed.SLOW: 2.5,
    PlaybackSpeed.STEP: -1.0,
}


class CompareMode(str, Enum):
    EXACT = "exact"
    TOLERANT = "tolerant"


DEFAULT_POLLED_KEYS = [
    "enter", "esc", "tab", "space", "backspace", "delete",
    "up", "down", "left", "right",
    "a", "c", "v", "x", "z", "y", "s",
]


class CaptureConfig(BaseModel):
    """Configuration for event capture."""

    drag_threshold: float = Field(default=5.0, description="Minimum travel in px for a drag or pan")
    double_click_interval: float = Field(default=0.3, description="Max seconds between presses of a double click")
    split_key: str = Field(default="f9", description="Key that splits a held drag into segments")
    record_hotkey: str = Field(default="f10", description="Key that stops and saves a recording")
    pause_hotkey: str = Field(default="f7", description="Key that toggles capture pause")
    checkpoint_hotkey: str = Field(default="f8", description="Key that captures a screenshot checkpoint")
    checkpoint_region: Optional[Rect] = Field(default=None, description="Viewport region grabbed for checkpoints (None = whole viewport)")
    ignore_regions: List[Rect] = Field(default_factory=list, description="Viewport regions whose clicks are never recorded")
    polled_keys: List[str] = Field(default_factory=lambda: list(DEFAULT_POLLED_KEYS), description="Shortcut keys re-checked every frame")
    key_poll_window_ms: int = Field(default=100, description="Window in which a polled key counts as already captured")
    frame_rate: int = Field(default=60, description="Capture loop ticks per second")


class PlaybackConfig(BaseModel):
    """Configuration for synthetic input playback."""

    speed: PlaybackSpeed = Field(default=PlaybackSpeed.NORMAL, description="Playback pacing")
    move_duration: float = Field(default=0.25, description="Nominal pointer travel time in seconds")
    drag_duration: float = Field(default=0.5, description="Nominal drag time in seconds")
    drag_hold: float = Field(default=0.0, description="Real-time hold at the drop point in seconds")
    step_delay: float = Field(default=0.1, description="Speed-scaled pause between events in seconds")
    frame_rate: int = Field(default=60, description="Frame ticks per second")
    fail_safe: bool = Field(default=True, description="Abort when the pointer hits a screen corner")


class ComparisonConfig(BaseModel):
    """Configuration for image comparison."""

    mode: CompareMode = Field(default=CompareMode.TOLERANT, description="Comparison mode")
    pixel_tolerance: float = Field(default=0.02, ge=0.0, le=1.0, description="Allowed fraction of mismatched pixels")
    color_threshold: int = Field(default=5, ge=0, le=255, description="Per-channel difference that marks a pixel as mismatched")
    write_diff: bool = Field(default=True, description="Write a diff image on failure")
    highlight_color: Tuple[int, int, int, int] = Field(default=(255, 0, 255, 255), description="RGBA used for differing pixels")


class ReplayConfig(BaseModel):
    """Configuration for the replay orchestrator."""

    restore_window: bool = Field(default=True, description="Apply the recorded window geometry before replay")
    window_title: Optional[str] = Field(default=None, description="Title of the window under test (None = whole screen)")
    window_settle: float = Field(default=0.3, description="Real-time wait after changing window geometry")
    checkpoint_settle: float = Field(default=0.1, description="Real-time wait before grabbing a checkpoint")


class HarnessConfig(BaseModel):
    """Main configuration for uireplay."""

    capture: CaptureConfig = Field(default_factory=CaptureConfig)
    playback: PlaybackConfig = Field(default_factory=PlaybackConfig)
    comparison: ComparisonConfig = Field(default_factory=ComparisonConfig)
    replay: ReplayConfig = Field(default_factory=ReplayConfig)

    verbose: bool = Field(default=False, description="Enable verbose logging")

    @classmethod
    def from_file(cls, path: Path) -> HarnessConfig:
        """Load configuration from a YAML file."""
        with open(path) as f:
            data = yaml.safe_load(f) or {}
        return cls(**data)

    def to_file(self, path: Path) -> None:
        """Save configuration to a YAML file."""
        with open(path, "w") as f:
            yaml.dump(self.model_dump(mode="json"), f, default_flow_style=False)
