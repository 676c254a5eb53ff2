"""
Live capture from OS input via pynput.

pynput listener threads only enqueue raw input. The capture loop drains the
queue once per frame on the asyncio loop, so the RecordingSession is only
ever touched from one place.
"""

from __future__ import annotations
import asyncio
import logging
import queue
import time
from pathlib import Path
from typing import Any, Optional, Set, Tuple

from uireplay.capture.session import Modifiers, RecordingSession
from uireplay.config import CaptureConfig
from uireplay.host import FrameGrabber, WindowController
from uireplay.models.events import ScrollDirection
from uireplay.models.geometry import Point, Rect
from uireplay.playback.keys import normalize_key, split_char
from uireplay.playback.os_controller import MouseButton

logger = logging.getLogger(__name__)

_CTRL_KEYS = {"ctrl", "ctrlleft", "ctrlright", "command"}
_SHIFT_KEYS = {"shift", "shiftleft", "shiftright"}
_ALT_KEYS = {"alt", "altleft", "altright"}


def key_name(key: Any) -> Tuple[str, bool]:
    """
    Translate a pynput key into (pyautogui key name, shift implied).

    Shifted characters map back to their base key, e.g. '!' -> ('1', True).
    """
    name = getattr(key, "name", None)
    if name:
        return normalize_key(name), False
    char = getattr(key, "char", None)
    if char:
        return split_char(char)
    vk = getattr(key, "vk", None)
    return (f"vk{vk}" if vk is not None else "unknown"), False


class CaptureListener:
    """
    Feeds a RecordingSession from global mouse and keyboard hooks.

    Recorder hotkeys are handled here: the record hotkey stops and saves,
    the pause hotkey toggles capture, the checkpoint hotkey grabs a
    screenshot of the viewport into ``checkpoint_dir``.

    Usage:
        listener = CaptureListener(session, window, grabber, Path("tests"), "login")
        saved = await listener.run()
    """

    def __init__(
        self,
        session: RecordingSession,
        window: WindowController,
        grabber: Optional[FrameGrabber] = None,
        checkpoint_dir: Optional[Path] = None,
        name: str = "test",
        config: Optional[CaptureConfig] = None,
    ):
        self.session = session
        self.window = window
        self.grabber = grabber
        self.checkpoint_dir = Path(checkpoint_dir or ".")
        self.name = name
        self.config = config or session.config

        self._queue: "queue.Queue[tuple]" = queue.Queue()
        self._held_keys: Set[str] = set()
        self._last_press: Optional[Tuple[float, Point]] = None
        self._origin = Point()
        self._mouse_listener = None
        self._key_listener = None
        self.finished = False
        self.saved = False

    # =========================================================================
    # pynput callbacks (listener threads)
    # =========================================================================

    def _on_move(self, x, y):
        self._queue.put(("move", x, y))

    def _on_click(self, x, y, button, pressed):
        self._queue.put(("button", getattr(button, "name", str(button)), pressed, x, y, time.monotonic()))

    def _on_scroll(self, x, y, dx, dy):
        self._queue.put(("scroll", dx, dy, x, y))

    def _on_press(self, key):
        self._queue.put(("key", key, True))

    def _on_release(self, key):
        self._queue.put(("key", key, False))

    def start(self) -> None:
        """Start the global input hooks."""
        from pynput import keyboard, mouse

        self._mouse_listener = mouse.Listener(
            on_move=self._on_move,
            on_click=self._on_click,
            on_scroll=self._on_scroll,
        )
        self._key_listener = keyboard.Listener(
            on_press=self._on_press,
            on_release=self._on_release,
        )
        self._mouse_listener.start()
        self._key_listener.start()
        logger.info("Input hooks started")

    def stop(self) -> None:
        for listener in (self._mouse_listener, self._key_listener):
            if listener is not None:
                listener.stop()
        self._mouse_listener = None
        self._key_listener = None
        logger.info("Input hooks stopped")

    # =========================================================================
    # Capture loop
    # =========================================================================

    async def run(self) -> bool:
        """
        Record until the record hotkey is pressed.

        Returns:
            True when the recording was stopped with the record hotkey
        """
        self.session.start()
        self.start()
        frame_time = 1.0 / self.config.frame_rate
        try:
            while not self.finished:
                self.pump()
                await asyncio.sleep(frame_time)
        finally:
            self.stop()
        return self.saved

    def pump(self) -> None:
        """Drain queued raw input into the session."""
        self._origin = self.window.viewport_origin()
        while True:
            try:
                item = self._queue.get_nowait()
            except queue.Empty:
                break
            self._dispatch(item)

    def _local(self, x: float, y: float) -> Point:
        return Point(x=x, y=y) - self._origin

    @property
    def modifiers(self) -> Modifiers:
        held = self._held_keys
        return Modifiers(
            ctrl=bool(held & _CTRL_KEYS),
            shift=bool(held & _SHIFT_KEYS),
            alt=bool(held & _ALT_KEYS),
        )

    def _dispatch(self, item: tuple) -> None:
        kind = item[0]

        if kind == "move":
            self.session.on_pointer_motion(self._local(item[1], item[2]))

        elif kind == "button":
            _, name, pressed, x, y, stamp = item
            pos = self._local(x, y)
            try:
                button = MouseButton(name)
            except ValueError:
                logger.debug(f"Ignoring unsupported button {name}")
                return
            double = False
            if button == MouseButton.LEFT and pressed:
                double = self._is_double_click(stamp, pos)
            self.session.on_pointer_button(button, pressed, pos, self.modifiers, double)

        elif kind == "scroll":
            _, dx, dy, x, y = item
            if dy:
                direction = ScrollDirection.UP if dy > 0 else ScrollDirection.DOWN
                factor = abs(dy)
            else:
                direction = ScrollDirection.RIGHT if dx > 0 else ScrollDirection.LEFT
                factor = abs(dx)
            self.session.on_scroll(direction, self._local(x, y), self.modifiers, float(factor))

        elif kind == "key":
            _, key, pressed = item
            name, implied_shift = key_name(key)
            if pressed:
                self._held_keys.add(name)
            else:
                self._held_keys.discard(name)
                return
            if self._handle_hotkey(name):
                return
            mods = self.modifiers
            if implied_shift and not mods.shift:
                mods = Modifiers(ctrl=mods.ctrl, shift=True, alt=mods.alt)
            self.session.on_key(name, True, mods, self.session.pointer_pos)

    def _is_double_click(self, stamp: float, pos: Point) -> bool:
        last = self._last_press
        self._last_press = (stamp, pos)
        if last is None:
            return False
        last_stamp, last_pos = last
        if (
            stamp - last_stamp <= self.config.double_click_interval
            and last_pos.distance_to(pos) < self.config.drag_threshold
        ):
            # a third press starts a fresh pair
            self._last_press = None
            return True
        return False

    def _handle_hotkey(self, name: str) -> bool:
        cfg = self.config
        if name == normalize_key(cfg.record_hotkey):
            self.session.stop()
            self.saved = True
            self.finished = True
            return True
        if name == normalize_key(cfg.pause_hotkey):
            self.session.toggle_pause()
            return True
        if name == normalize_key(cfg.checkpoint_hotkey):
            self.capture_checkpoint()
            return True
        return False

    def capture_checkpoint(self) -> Optional[Path]:
        """Grab the checkpoint region and attach it to the last event."""
        if self.grabber is None or not self.session.capturing:
            return None
        size = self.window.viewport_size()
        region = self.config.checkpoint_region or Rect(x=0, y=0, w=size.w, h=size.h)
        image = self.grabber.capture(region.offset(self._origin))

        index = len(self.session.checkpoints) + 1
        path = self.checkpoint_dir / f"{self.name}_cp{index}.png"
        path.parent.mkdir(parents=True, exist_ok=True)
        image.save(path)
        self.session.add_checkpoint(path.name, region)
        return path
