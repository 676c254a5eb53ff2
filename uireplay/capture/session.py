"""
Event capture state machine.

Turns raw pointer and keyboard input into typed recorded events. The
session owns its event and checkpoint buffers while recording; callers read
them after ``stop()`` and build a TestCase with ``to_test_case()``.
"""

from __future__ import annotations
import logging
import time
from dataclasses import dataclass
from datetime import datetime
from typing import Callable, Iterable, List, Optional

from uireplay.config import CaptureConfig
from uireplay.host import CoordinateMapper, HitTester
from uireplay.models.events import (
    ClickEvent,
    DoubleClickEvent,
    DragEvent,
    KeyEvent,
    ObjectRef,
    PanEvent,
    RecordedEvent,
    RightClickEvent,
    ScrollDirection,
    ScrollEvent,
)
from uireplay.models.geometry import Point, Rect, Size, WindowState
from uireplay.models.testcase import ScreenshotCheckpoint, TestCase
from uireplay.playback.keys import is_modifier, normalize_key
from uireplay.playback.os_controller import MouseButton

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Modifiers:
    ctrl: bool = False
    shift: bool = False
    alt: bool = False


NO_MODIFIERS = Modifiers()


class RecordingSession:
    """
    Classifies raw input into clicks, double clicks, drags, pans, scrolls
    and key presses.

    A primary-button release within ``drag_threshold`` pixels of its press is
    a click (or a double click when the press was flagged as one); anything
    further is a drag. The split key turns a held drag into several
    segments without releasing the button.

    Usage:
        session = RecordingSession(CaptureConfig())
        session.start()
        session.on_pointer_button(MouseButton.LEFT, True, Point(x=10, y=10))
        session.on_pointer_button(MouseButton.LEFT, False, Point(x=80, y=10))
        session.stop()
        test_case = session.to_test_case("drag_card", Size(w=800, h=600))
    """

    def __init__(
        self,
        config: Optional[CaptureConfig] = None,
        hit_tester: Optional[HitTester] = None,
        coordinate_mapper: Optional[CoordinateMapper] = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.config = config or CaptureConfig()
        self.hit_tester = hit_tester
        self.coordinate_mapper = coordinate_mapper
        self._clock = clock

        self.recording = False
        self.paused = False
        self.events: List[RecordedEvent] = []
        self.checkpoints: List[ScreenshotCheckpoint] = []

        # Primary button pairing
        self.pointer_down = False
        self.down_pos = Point()
        self.down_time = 0
        self.is_double_click = False
        self.down_modifiers = NO_MODIFIERS
        self._continued_segment = False

        # Middle button pairing
        self._pan_down = False
        self._pan_from = Point()

        self._last_pos = Point()
        self._start_time = clock()
        self._last_key_times: dict[str, int] = {}
        self._polled_held: set[str] = set()

        # Callbacks
        self.on_event: Optional[Callable[[RecordedEvent], None]] = None
        self.on_stopped: Optional[Callable[[RecordingSession], None]] = None

    # =========================================================================
    # Lifecycle
    # =========================================================================

    def start(self) -> None:
        """Clear buffers and begin recording."""
        self.events = []
        self.checkpoints = []
        self._start_time = self._clock()
        self.down_time = 0
        self.pointer_down = False
        self._pan_down = False
        self._last_key_times.clear()
        self._polled_held.clear()
        self.recording = True
        self.paused = False
        logger.info("Recording started")

    def stop(self) -> None:
        """Stop recording and keep the buffers for the caller."""
        if not self.recording:
            return
        self.recording = False
        self.pointer_down = False
        self._pan_down = False
        logger.info(
            f"Recording stopped: {len(self.events)} events, "
            f"{len(self.checkpoints)} checkpoints"
        )
        if self.on_stopped:
            self.on_stopped(self)

    def cancel(self) -> None:
        """Stop recording and discard everything captured."""
        self.recording = False
        self.pointer_down = False
        self._pan_down = False
        self.events = []
        self.checkpoints = []
        logger.info("Recording discarded")

    def pause(self) -> None:
        self.paused = True
        logger.info("Recording paused")

    def resume(self) -> None:
        self.paused = False
        logger.info("Recording resumed")

    def toggle_pause(self) -> bool:
        """Flip the pause state; returns the new value."""
        if self.paused:
            self.resume()
        else:
            self.pause()
        return self.paused

    @property
    def capturing(self) -> bool:
        return self.recording and not self.paused

    def _now(self) -> int:
        return int((self._clock() - self._start_time) * 1000)

    def _emit(self, event: RecordedEvent) -> None:
        self.events.append(event)
        logger.debug(f"Captured #{len(self.events) - 1}: {event.type}")
        if self.on_event:
            self.on_event(event)

    # =========================================================================
    # Pointer
    # =========================================================================

    @property
    def pointer_pos(self) -> Point:
        """Last pointer position seen by the session."""
        return self._last_pos

    def on_pointer_motion(self, pos: Point) -> None:
        self._last_pos = pos

    def on_pointer_button(
        self,
        button: MouseButton,
        pressed: bool,
        pos: Point,
        modifiers: Modifiers = NO_MODIFIERS,
        is_double_click: bool = False,
    ) -> None:
        """Route a raw button event to the matching pairing logic."""
        if button == MouseButton.RIGHT:
            if pressed:
                self.on_secondary_button_press(pos)
            return
        if button == MouseButton.MIDDLE:
            self.on_middle_button(pressed, pos)
            return
        if not self.capturing:
            return

        self._last_pos = pos
        if pressed:
            self._primary_press(pos, modifiers, is_double_click)
        else:
            self._primary_release(pos)

    def _primary_press(self, pos: Point, modifiers: Modifiers, is_double_click: bool) -> None:
        if self._in_ignored_region(pos):
            logger.debug(f"Ignoring press on recorder controls at ({pos.x}, {pos.y})")
            return
        self.pointer_down = True
        self.down_pos = pos
        self.down_time = self._now()
        self.down_modifiers = modifiers
        self.is_double_click = is_double_click
        self._continued_segment = False

    def _primary_release(self, pos: Point) -> None:
        if not self.pointer_down:
            return
        self.pointer_down = False
        now = self._now()
        mods = self.down_modifiers

        if self._continued_segment:
            # button still held from the split; the release is always the drop
            self._emit(self._build_drag(self.down_pos, pos, now, no_drop=False))
        elif self.down_pos.distance_to(pos) < self.config.drag_threshold:
            event_cls = DoubleClickEvent if self.is_double_click else ClickEvent
            self._emit(event_cls(time=now, pos=self.down_pos, ctrl=mods.ctrl, shift=mods.shift))
        else:
            self._emit(self._build_drag(self.down_pos, pos, now, no_drop=False))

    def _build_drag(self, start: Point, end: Point, now: int, no_drop: bool) -> DragEvent:
        object_ref = None
        world_to = None
        cell_to = None

        if not self._continued_segment and self.hit_tester is not None:
            item = self.hit_tester.find_item_at(start)
            if item is not None:
                object_ref = ObjectRef(
                    type=item.type,
                    id=item.id,
                    click_offset=start - item.screen_pos,
                )

        if object_ref is None and self.coordinate_mapper is not None:
            world_to = self.coordinate_mapper.screen_to_world(end)
            cell_to = self.coordinate_mapper.world_to_cell(world_to)

        return DragEvent(
            time=now,
            from_pos=start,
            to_pos=end,
            no_drop=no_drop,
            object_ref=object_ref,
            world_to=world_to,
            cell_to=cell_to,
        )

    def on_secondary_button_press(self, pos: Point) -> None:
        if not self.capturing or self._in_ignored_region(pos):
            return
        self._emit(RightClickEvent(time=self._now(), pos=pos))

    def on_middle_button(self, pressed: bool, pos: Point) -> None:
        """Middle-button drags become pans; short taps are dropped."""
        if not self.capturing:
            return
        if pressed:
            self._pan_down = True
            self._pan_from = pos
            return
        if not self._pan_down:
            return
        self._pan_down = False
        if self._pan_from.distance_to(pos) >= self.config.drag_threshold:
            self._emit(PanEvent(time=self._now(), from_pos=self._pan_from, to_pos=pos))

    def on_scroll(
        self,
        direction: ScrollDirection,
        pos: Point,
        modifiers: Modifiers = NO_MODIFIERS,
        factor: float = 1.0,
    ) -> None:
        if not self.capturing:
            return
        self._emit(ScrollEvent(
            time=self._now(),
            direction=direction,
            pos=pos,
            ctrl=modifiers.ctrl,
            shift=modifiers.shift,
            alt=modifiers.alt,
            factor=factor,
        ))

    def poll_pointer(self, primary_held: bool, pos: Point) -> None:
        """
        Per-frame fallback for a primary release the input pipeline never
        delivered (e.g. swallowed by a drop target).
        """
        if self.capturing and self.pointer_down and not primary_held:
            logger.debug("Synthesizing missed primary release")
            self.on_pointer_button(MouseButton.LEFT, False, pos)

    def _in_ignored_region(self, pos: Point) -> bool:
        return any(region.contains(pos) for region in self.config.ignore_regions)

    # =========================================================================
    # Keyboard
    # =========================================================================

    @property
    def control_keys(self) -> frozenset[str]:
        cfg = self.config
        return frozenset(
            normalize_key(k)
            for k in (cfg.record_hotkey, cfg.pause_hotkey, cfg.checkpoint_hotkey)
        )

    def on_key(
        self,
        keycode: str,
        pressed: bool,
        modifiers: Modifiers = NO_MODIFIERS,
        mouse_pos: Optional[Point] = None,
    ) -> None:
        """Record a key press; releases, modifiers and recorder hotkeys are ignored."""
        if not self.capturing or not pressed:
            return
        key = normalize_key(keycode)
        if is_modifier(key) or key in self.control_keys:
            return

        if key == normalize_key(self.config.split_key) and self.pointer_down:
            self._split_drag(mouse_pos or self._last_pos)
            return

        self._record_key(key, modifiers, mouse_pos)

    def _split_drag(self, current: Point) -> None:
        """End the held drag as a no-drop segment and start the next one here."""
        self._emit(self._build_drag(self.down_pos, current, self._now(), no_drop=True))
        self.down_pos = current
        self._continued_segment = True
        logger.debug(f"Drag split at ({current.x}, {current.y})")

    def _record_key(self, key: str, modifiers: Modifiers, mouse_pos: Optional[Point]) -> None:
        now = self._now()
        self._last_key_times[key] = now
        self._emit(KeyEvent(
            time=now,
            keycode=key,
            ctrl=modifiers.ctrl,
            shift=modifiers.shift,
            mouse_pos=mouse_pos,
        ))

    def poll_keys(
        self,
        held_keys: Iterable[str],
        modifiers: Modifiers = NO_MODIFIERS,
        mouse_pos: Optional[Point] = None,
    ) -> None:
        """
        Per-frame fallback for shortcut keys consumed before reaching
        ``on_key``. A newly held key is recorded unless the primary path
        captured it within ``key_poll_window_ms``.
        """
        if not self.capturing:
            return
        held = {normalize_key(k) for k in held_keys}
        now = self._now()
        for key in self.config.polled_keys:
            key = normalize_key(key)
            if key not in held:
                self._polled_held.discard(key)
                continue
            if key in self._polled_held:
                continue
            self._polled_held.add(key)
            last = self._last_key_times.get(key)
            if last is not None and now - last <= self.config.key_poll_window_ms:
                continue
            logger.debug(f"Recording key missed by primary path: {key}")
            self._record_key(key, modifiers, mouse_pos)

    # =========================================================================
    # Checkpoints and output
    # =========================================================================

    def add_checkpoint(self, path: str, region: Rect) -> Optional[ScreenshotCheckpoint]:
        """Attach a screenshot to the most recent event."""
        if not self.capturing:
            return None
        checkpoint = ScreenshotCheckpoint(
            path=path,
            region=region,
            after_event_index=len(self.events) - 1,
            time=self._now(),
        )
        self.checkpoints.append(checkpoint)
        logger.info(f"Checkpoint {len(self.checkpoints)} after event {checkpoint.after_event_index}")
        return checkpoint

    def to_test_case(
        self,
        name: str,
        viewport_size: Size,
        window_state: Optional[WindowState] = None,
    ) -> TestCase:
        return TestCase(
            name=name,
            created=datetime.now(),
            recorded_viewport_size=viewport_size,
            recorded_window_state=window_state,
            events=list(self.events),
            checkpoints=list(self.checkpoints),
        )
