"""
OS-level controller for mouse, keyboard and screen capture.

Uses pyautogui for cross-platform injection of:
- Pointer press/release/motion (with a held button for drags)
- Key press/release
- Wheel scrolling
- Screen region capture

pynput is used as a fallback for input when pyautogui is unavailable.
"""

from __future__ import annotations
import logging
import platform
import shutil
import subprocess
from enum import Enum
from pathlib import Path
from typing import Optional

from PIL import Image, ImageGrab

from uireplay.models.events import ScrollDirection
from uireplay.models.geometry import Point, Rect, Size
from uireplay.playback.keys import normalize_key

logger = logging.getLogger(__name__)


class MouseButton(str, Enum):
    LEFT = "left"
    RIGHT = "right"
    MIDDLE = "middle"


class OSController:
    """
    Injects raw input primitives into the OS input pipeline.

    Every method is a single primitive; pacing between primitives is the
    caller's job, so pyautogui's implicit pause is switched off.

    Usage:
        controller = OSController()

        controller.mouse_move(Point(x=500, y=300))
        controller.mouse_down(Point(x=500, y=300))
        controller.mouse_move(Point(x=600, y=300), held=MouseButton.LEFT)
        controller.mouse_up(Point(x=600, y=300))

        image = controller.capture(Rect(x=0, y=0, w=200, h=100))
    """

    def __init__(self, fail_safe: bool = True):
        """
        Initialize the OS controller.

        Args:
            fail_safe: If True, moving mouse to corner aborts (pyautogui safety feature)
        """
        self._pyautogui = None
        self._pynput_mouse = None
        self._pynput_keyboard = None
        self.fail_safe = fail_safe
        self.platform = platform.system()

        self._init_backends()

    def _init_backends(self) -> None:
        """Initialize input control backends."""
        # Try pyautogui first (easier API)
        try:
            import pyautogui
            pyautogui.FAILSAFE = self.fail_safe
            pyautogui.PAUSE = 0
            self._pyautogui = pyautogui
            logger.info("Using pyautogui for OS control")
        except ImportError:
            logger.warning("pyautogui not available, trying pynput")

        # Fallback to pynput
        if self._pyautogui is None:
            try:
                from pynput.mouse import Controller as MouseController
                from pynput.keyboard import Controller as KeyboardController
                self._pynput_mouse = MouseController()
                self._pynput_keyboard = KeyboardController()
                logger.info("Using pynput for OS control")
            except ImportError:
                raise RuntimeError(
                    "No input control library available. "
                    "Install with: pip install pyautogui pynput"
                )

    # =========================================================================
    # Mouse Control
    # =========================================================================

    def get_mouse_position(self) -> Point:
        """Get current mouse cursor position."""
        if self._pyautogui:
            pos = self._pyautogui.position()
        else:
            pos = self._pynput_mouse.position
        return Point(x=pos[0], y=pos[1])

    def get_screen_size(self) -> Size:
        """Get primary screen dimensions."""
        if self._pyautogui:
            width, height = self._pyautogui.size()
            return Size(w=width, h=height)
        bbox = ImageGrab.grab().size
        return Size(w=bbox[0], h=bbox[1])

    def mouse_move(self, pos: Point, held: Optional[MouseButton] = None) -> None:
        """
        Move the pointer in one motion primitive.

        Args:
            pos: Screen position
            held: Button currently held, so the OS emits drag motion
        """
        x, y = pos.rounded
        if self._pyautogui:
            if held is not None:
                self._pyautogui.dragTo(x, y, duration=0, button=held.value, mouseDownUp=False)
            else:
                self._pyautogui.moveTo(x, y, duration=0)
        else:
            self._pynput_mouse.position = (x, y)

    def mouse_down(self, pos: Point, button: MouseButton = MouseButton.LEFT) -> None:
        """Press and hold a mouse button at ``pos``."""
        x, y = pos.rounded
        if self._pyautogui:
            self._pyautogui.mouseDown(x=x, y=y, button=button.value)
        else:
            self._pynput_mouse.position = (x, y)
            self._pynput_mouse.press(self._pynput_button(button))

    def mouse_up(self, pos: Point, button: MouseButton = MouseButton.LEFT) -> None:
        """Release a mouse button at ``pos``."""
        x, y = pos.rounded
        if self._pyautogui:
            self._pyautogui.mouseUp(x=x, y=y, button=button.value)
        else:
            self._pynput_mouse.position = (x, y)
            self._pynput_mouse.release(self._pynput_button(button))

    def scroll(self, direction: ScrollDirection, amount: float, pos: Point) -> None:
        """
        Scroll the mouse wheel at ``pos``.

        Args:
            direction: Wheel direction
            amount: Wheel factor; rounded to whole notches, at least one
        """
        clicks = max(1, int(round(amount)))
        if direction in (ScrollDirection.DOWN, ScrollDirection.LEFT):
            clicks = -clicks
        horizontal = direction in (ScrollDirection.LEFT, ScrollDirection.RIGHT)
        x, y = pos.rounded

        if self._pyautogui:
            if horizontal:
                self._pyautogui.hscroll(clicks, x=x, y=y)
            else:
                self._pyautogui.scroll(clicks, x=x, y=y)
        else:
            self._pynput_mouse.position = (x, y)
            if horizontal:
                self._pynput_mouse.scroll(clicks, 0)
            else:
                self._pynput_mouse.scroll(0, clicks)

    @staticmethod
    def _pynput_button(button: MouseButton):
        from pynput.mouse import Button
        return {
            MouseButton.LEFT: Button.left,
            MouseButton.RIGHT: Button.right,
            MouseButton.MIDDLE: Button.middle,
        }[button]

    # =========================================================================
    # Keyboard Control
    # =========================================================================

    def key_down(self, key: str, char: Optional[str] = None) -> None:
        """
        Press a key.

        Args:
            key: Key name (e.g., 'enter', 'tab', 'esc', 'a', 'f1')
            char: Printable payload of the key, if any
        """
        if self._pyautogui:
            self._pyautogui.keyDown(normalize_key(key))
        else:
            self._pynput_keyboard.press(self._pynput_key(key, char))

    def key_up(self, key: str, char: Optional[str] = None) -> None:
        """Release a key."""
        if self._pyautogui:
            self._pyautogui.keyUp(normalize_key(key))
        else:
            self._pynput_keyboard.release(self._pynput_key(key, char))

    @staticmethod
    def _pynput_key(key: str, char: Optional[str]):
        from pynput.keyboard import Key, KeyCode

        key_map = {
            'enter': Key.enter,
            'tab': Key.tab,
            'esc': Key.esc,
            'backspace': Key.backspace,
            'delete': Key.delete,
            'space': Key.space,
            'up': Key.up,
            'down': Key.down,
            'left': Key.left,
            'right': Key.right,
            'home': Key.home,
            'end': Key.end,
            'pageup': Key.page_up,
            'pagedown': Key.page_down,
            'shift': Key.shift,
            'ctrl': Key.ctrl,
            'alt': Key.alt,
            'command': Key.cmd,
        }
        name = normalize_key(key)
        if name in key_map:
            return key_map[name]
        if hasattr(Key, name):
            return getattr(Key, name)
        return KeyCode.from_char(char or name)

    # =========================================================================
    # Screen and clipboard
    # =========================================================================

    def capture(self, region: Rect) -> Image.Image:
        """Capture the rendered pixels of a screen region."""
        left, top, width, height = region.as_box()
        if self._pyautogui:
            image = self._pyautogui.screenshot(region=(left, top, width, height))
        else:
            image = ImageGrab.grab(bbox=(left, top, left + width, top + height))
        return image.convert("RGBA")

    def set_clipboard_image(self, path: Path) -> bool:
        """
        Place a PNG image on the system clipboard.

        Returns:
            True if the clipboard was set, False on unsupported platforms
        """
        path = Path(path)
        if not path.is_file():
            logger.warning(f"Clipboard image not found: {path}")
            return False

        if self.platform == "Darwin":
            script = f'set the clipboard to (read (POSIX file "{path.resolve()}") as «class PNGf»)'
            subprocess.run(["osascript", "-e", script], check=True, capture_output=True)
            return True

        if self.platform == "Linux" and shutil.which("xclip"):
            with open(path, "rb") as f:
                subprocess.run(
                    ["xclip", "-selection", "clipboard", "-t", "image/png", "-i"],
                    stdin=f,
                    check=True,
                    stdout=subprocess.DEVNULL,
                    stderr=subprocess.DEVNULL,
                )
            return True

        logger.warning(f"Setting a clipboard image is not supported on {self.platform}")
        return False
