"""
Geometry primitives shared by capture, playback and comparison.
"""

from __future__ import annotations
import math
from enum import Enum

from pydantic import BaseModel, Field


class Point(BaseModel):
    """A 2D position in viewport pixels."""

    x: float = 0.0
    y: float = 0.0

    def __add__(self, other: Point) -> Point:
        return Point(x=self.x + other.x, y=self.y + other.y)

    def __sub__(self, other: Point) -> Point:
        return Point(x=self.x - other.x, y=self.y - other.y)

    def distance_to(self, other: Point) -> float:
        return math.hypot(self.x - other.x, self.y - other.y)

    def scaled(self, sx: float, sy: float) -> Point:
        return Point(x=self.x * sx, y=self.y * sy)

    def lerp(self, other: Point, t: float) -> Point:
        return Point(
            x=self.x + (other.x - self.x) * t,
            y=self.y + (other.y - self.y) * t,
        )

    @property
    def rounded(self) -> tuple[int, int]:
        return (int(round(self.x)), int(round(self.y)))


class Size(BaseModel):
    """Width and height in pixels."""

    w: float = Field(default=0.0, ge=0)
    h: float = Field(default=0.0, ge=0)

    @property
    def is_empty(self) -> bool:
        return self.w <= 0 or self.h <= 0


class Rect(BaseModel):
    """Axis-aligned rectangle: origin plus size."""

    x: float = 0.0
    y: float = 0.0
    w: float = 0.0
    h: float = 0.0

    @property
    def position(self) -> Point:
        return Point(x=self.x, y=self.y)

    @property
    def size(self) -> Size:
        return Size(w=self.w, h=self.h)

    def contains(self, point: Point) -> bool:
        """Check whether a point lies inside the rectangle (right/bottom edges excluded)."""
        return (
            self.x <= point.x < self.x + self.w
            and self.y <= point.y < self.y + self.h
        )

    def scaled(self, sx: float, sy: float) -> Rect:
        return Rect(x=self.x * sx, y=self.y * sy, w=self.w * sx, h=self.h * sy)

    def offset(self, origin: Point) -> Rect:
        return Rect(x=self.x + origin.x, y=self.y + origin.y, w=self.w, h=self.h)

    def as_box(self) -> tuple[int, int, int, int]:
        """Integer (left, top, width, height) tuple for screen grabbers."""
        return (
            int(round(self.x)),
            int(round(self.y)),
            int(round(self.w)),
            int(round(self.h)),
        )


class WindowMode(str, Enum):
    NORMAL = "normal"
    MAXIMIZED = "maximized"
    MINIMIZED = "minimized"
    FULLSCREEN = "fullscreen"


class WindowState(BaseModel):
    """Snapshot of a top-level window's mode and geometry."""

    mode: WindowMode = WindowMode.NORMAL
    x: int = 0
    y: int = 0
    w: int = 0
    h: int = 0

    @property
    def origin(self) -> Point:
        return Point(x=self.x, y=self.y)

    @property
    def size(self) -> Size:
        return Size(w=self.w, h=self.h)
