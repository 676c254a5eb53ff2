"""
Interfaces to the application under test, plus window bindings.

The hit-test and coordinate-mapping collaborators are supplied by the host
application; there is no generic OS implementation of either. Window
geometry is available for the whole screen or, through pywinctl, for a
titled top-level window.
"""

from __future__ import annotations
import logging
from dataclasses import dataclass
from typing import Optional, Protocol

from PIL import Image

from uireplay.models.geometry import Point, Rect, Size, WindowMode, WindowState

logger = logging.getLogger(__name__)


@dataclass
class HitItem:
    """An application entity found under a screen position."""
    type: str
    id: str
    screen_pos: Point


class HitTester(Protocol):
    def find_item_at(self, pos: Point) -> Optional[HitItem]: ...

    def find_item_by_id(self, type: str, id: str) -> Optional[Point]: ...


class CoordinateMapper(Protocol):
    def screen_to_world(self, pos: Point) -> Point: ...

    def world_to_screen(self, pos: Point) -> Point: ...

    def world_to_cell(self, pos: Point) -> Optional[Point]: ...

    def cell_to_world(self, cell: Point) -> Point: ...


class FrameGrabber(Protocol):
    def capture(self, region: Rect) -> Image.Image: ...


class WindowController(Protocol):
    def get_state(self) -> WindowState: ...

    def set_state(self, state: WindowState) -> None: ...

    def viewport_size(self) -> Size: ...

    def viewport_origin(self) -> Point: ...


class ScreenWindow:
    """The whole primary screen as the viewport. Its geometry is fixed."""

    def __init__(self, screen_size: Size):
        self._size = screen_size

    def get_state(self) -> WindowState:
        return WindowState(
            mode=WindowMode.FULLSCREEN,
            x=0,
            y=0,
            w=int(self._size.w),
            h=int(self._size.h),
        )

    def set_state(self, state: WindowState) -> None:
        logger.debug("Screen viewport geometry cannot be changed; ignoring restore")

    def viewport_size(self) -> Size:
        return self._size

    def viewport_origin(self) -> Point:
        return Point()


class AppWindow:
    """
    A titled top-level window, controlled through pywinctl.

    Usage:
        window = AppWindow("Calculator")
        state = window.get_state()
        window.set_state(state.model_copy(update={"w": 800, "h": 600}))
    """

    def __init__(self, title: str):
        import pywinctl

        matches = pywinctl.getWindowsWithTitle(title)
        if not matches:
            raise RuntimeError(f"No window titled '{title}'")
        self.title = title
        self._window = matches[0]
        logger.info(f"Bound to window '{self._window.title}'")

    def get_state(self) -> WindowState:
        w = self._window
        if w.isMinimized:
            mode = WindowMode.MINIMIZED
        elif w.isMaximized:
            mode = WindowMode.MAXIMIZED
        else:
            mode = WindowMode.NORMAL
        return WindowState(mode=mode, x=w.left, y=w.top, w=w.width, h=w.height)

    def set_state(self, state: WindowState) -> None:
        w = self._window
        if state.mode == WindowMode.MINIMIZED:
            w.minimize()
            return
        if state.mode in (WindowMode.MAXIMIZED, WindowMode.FULLSCREEN):
            w.maximize()
        else:
            if w.isMaximized or w.isMinimized:
                w.restore()
            w.moveTo(state.x, state.y)
            w.resizeTo(state.w, state.h)
        w.activate()
        logger.debug(f"Window set to {state.mode.value} {state.w}x{state.h} at ({state.x}, {state.y})")

    def viewport_size(self) -> Size:
        return Size(w=self._window.width, h=self._window.height)

    def viewport_origin(self) -> Point:
        return Point(x=self._window.left, y=self._window.top)
