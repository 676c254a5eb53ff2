"""
Synthetic input player.

Turns high-level steps (move, click, drag, key press) into timed sequences of
raw input primitives, paced by the frame clock and the playback speed.
"""

from __future__ import annotations
import logging
from pathlib import Path
from typing import Optional, Protocol, Set

from uireplay.config import PlaybackConfig, PlaybackSpeed
from uireplay.models.events import ScrollDirection
from uireplay.models.geometry import Point
from uireplay.playback.clock import FrameClock, PlaybackControl
from uireplay.playback.keys import printable_char
from uireplay.playback.os_controller import MouseButton

logger = logging.getLogger(__name__)

MIN_DRAG_WAYPOINTS = 5


class InputBackend(Protocol):
    """Raw input primitives of the host UI framework (see OSController)."""

    def mouse_move(self, pos: Point, held: Optional[MouseButton] = None) -> None: ...

    def mouse_down(self, pos: Point, button: MouseButton = MouseButton.LEFT) -> None: ...

    def mouse_up(self, pos: Point, button: MouseButton = MouseButton.LEFT) -> None: ...

    def key_down(self, key: str, char: Optional[str] = None) -> None: ...

    def key_up(self, key: str, char: Optional[str] = None) -> None: ...

    def scroll(self, direction: ScrollDirection, amount: float, pos: Point) -> None: ...

    def set_clipboard_image(self, path: Path) -> bool: ...


class InputPlayer:
    """
    Plays input steps through an InputBackend.

    Positions are viewport-local; the viewport origin is added when a
    primitive is dispatched. Each press is followed by at least one frame
    tick before its release so the host routes them in order.

    Usage:
        player = InputPlayer(OSController(), config=PlaybackConfig(speed=PlaybackSpeed.FAST))
        player.set_viewport_origin(Point(x=100, y=50))

        await player.move_to(Point(x=20, y=30))
        await player.click()
        await player.drag_to(Point(x=220, y=30))
    """

    def __init__(
        self,
        backend: InputBackend,
        clock: Optional[FrameClock] = None,
        control: Optional[PlaybackControl] = None,
        config: Optional[PlaybackConfig] = None,
    ):
        self.backend = backend
        self.config = config or PlaybackConfig()
        self.clock = clock or FrameClock(self.config.frame_rate)
        self.control = control or PlaybackControl()

        self.position = Point()
        self.origin = Point()
        self._held_buttons: Set[MouseButton] = set()
        self._held_keys: list[str] = []

    # =========================================================================
    # Speed and waiting
    # =========================================================================

    @property
    def speed(self) -> PlaybackSpeed:
        return self.config.speed

    @speed.setter
    def speed(self, value: PlaybackSpeed) -> None:
        self.config.speed = value

    @property
    def multiplier(self) -> float:
        return self.config.speed.multiplier

    def set_viewport_origin(self, origin: Point) -> None:
        """Set the screen position of the viewport's top-left corner."""
        self.origin = origin
        logger.debug(f"Viewport origin set to ({origin.x}, {origin.y})")

    def _screen(self, pos: Point) -> Point:
        return pos + self.origin

    async def wait(self, seconds: float, apply_speed: bool = True) -> None:
        """
        Wait at a suspension point.

        Args:
            seconds: Nominal duration
            apply_speed: Scale by the speed multiplier; False waits real time
        """
        self.control.check()
        if not apply_speed:
            await self._sleep_real(seconds)
            return

        multiplier = self.multiplier
        if multiplier < 0:
            await self.wait_for_advance()
        elif multiplier > 0:
            await self._sleep_real(seconds * multiplier)

    async def wait_for_advance(self) -> None:
        """Suspend until the control receives an advance (step mode)."""
        logger.debug("Waiting for advance")
        while not self.control.consume_advance():
            self.control.check()
            await self.clock.next_frame()
        self.control.check()

    async def _sleep_real(self, seconds: float) -> None:
        # sliced so cancellation is seen within a frame
        remaining = seconds
        while remaining > 0:
            self.control.check()
            chunk = min(remaining, self.clock.frame_time)
            await self.clock.sleep(chunk)
            remaining -= chunk
        self.control.check()

    # =========================================================================
    # Pointer
    # =========================================================================

    async def move_to(self, pos: Point, duration: Optional[float] = None) -> None:
        """Move the pointer to ``pos``, interpolating at the current speed."""
        self.control.check()
        duration = self.config.move_duration if duration is None else duration
        multiplier = self.multiplier
        held = self._drag_button()

        if multiplier < 0:
            await self.wait_for_advance()

        if multiplier <= 0 or duration <= 0:
            self.backend.mouse_move(self._screen(pos), held)
            self.position = pos
            return

        start = self.position
        steps = max(1, int(round(duration * multiplier * self.clock.frame_rate)))
        for i in range(1, steps + 1):
            self.control.check()
            point = start.lerp(pos, i / steps)
            self.backend.mouse_move(self._screen(point), held)
            self.position = point
            await self.clock.next_frame()

    async def click(
        self,
        ctrl: bool = False,
        shift: bool = False,
        button: MouseButton = MouseButton.LEFT,
    ) -> None:
        """Press and release ``button`` at the current position."""
        self.control.check()
        await self._press_modifiers(ctrl=ctrl, shift=shift)
        try:
            await self._press_release(button)
        finally:
            await self._release_modifiers()

    async def double_click(self, ctrl: bool = False, shift: bool = False) -> None:
        """Two press/release pairs, each primitive a frame apart."""
        self.control.check()
        await self._press_modifiers(ctrl=ctrl, shift=shift)
        try:
            await self._press_release(MouseButton.LEFT)
            await self._press_release(MouseButton.LEFT)
        finally:
            await self._release_modifiers()

    async def right_click(self) -> None:
        await self.click(button=MouseButton.RIGHT)

    async def _press_release(self, button: MouseButton) -> None:
        screen = self._screen(self.position)
        self.backend.mouse_down(screen, button)
        self._held_buttons.add(button)
        await self.clock.next_frame()
        self.backend.mouse_up(screen, button)
        self._held_buttons.discard(button)
        await self.clock.next_frame()

    def is_holding(self, button: MouseButton = MouseButton.LEFT) -> bool:
        return button in self._held_buttons

    def _drag_button(self) -> Optional[MouseButton]:
        for button in (MouseButton.LEFT, MouseButton.MIDDLE, MouseButton.RIGHT):
            if button in self._held_buttons:
                return button
        return None

    async def drag_to(
        self,
        to: Point,
        duration: Optional[float] = None,
        hold_at_end: float = 0.0,
        button: MouseButton = MouseButton.LEFT,
        release: bool = True,
    ) -> None:
        """
        Drag from the current position to ``to``.

        Presses (unless the button is already held from a previous segment),
        emits held-button motion at every waypoint, optionally holds at the
        drop point for ``hold_at_end`` real-time seconds, then releases.

        Args:
            release: False keeps the button held so a later segment continues the drag
        """
        self.control.check()
        duration = self.config.drag_duration if duration is None else duration
        multiplier = self.multiplier

        if button not in self._held_buttons:
            self.backend.mouse_down(self._screen(self.position), button)
            self._held_buttons.add(button)
            await self.clock.next_frame()

        try:
            if multiplier <= 0:
                if multiplier < 0:
                    await self.wait_for_advance()
                self.backend.mouse_move(self._screen(to), button)
                self.position = to
                await self.clock.next_frame()
            else:
                start = self.position
                count = max(
                    MIN_DRAG_WAYPOINTS,
                    int(round(duration * self.clock.frame_rate * multiplier)),
                )
                for i in range(1, count + 1):
                    if self.control.cancelled:
                        break
                    point = start.lerp(to, i / count)
                    self.backend.mouse_move(self._screen(point), button)
                    self.position = point
                    await self.clock.next_frame()

            if hold_at_end > 0 and not self.control.cancelled:
                await self.wait(hold_at_end, apply_speed=False)
        finally:
            if release or self.control.cancelled:
                await self._release_button(button)

        self.control.check()

    async def _release_button(self, button: MouseButton) -> None:
        if button not in self._held_buttons:
            return
        self.backend.mouse_up(self._screen(self.position), button)
        self._held_buttons.discard(button)
        await self.clock.next_frame()

    async def release_all(self) -> None:
        """Release every held button and modifier; used during teardown."""
        for button in list(self._held_buttons):
            logger.debug(f"Releasing held {button.value} button")
            await self._release_button(button)
        await self._release_modifiers()

    async def scroll(
        self,
        direction: ScrollDirection,
        factor: float = 1.0,
        ctrl: bool = False,
        shift: bool = False,
        alt: bool = False,
    ) -> None:
        """Emit one wheel primitive at the current position."""
        self.control.check()
        await self._press_modifiers(ctrl=ctrl, shift=shift, alt=alt)
        try:
            self.backend.scroll(direction, factor, self._screen(self.position))
            await self.clock.next_frame()
        finally:
            await self._release_modifiers()

    # =========================================================================
    # Keyboard
    # =========================================================================

    async def press_key(self, code: str, shift: bool = False, ctrl: bool = False) -> None:
        """Press then release a key one frame apart, with its printable payload."""
        self.control.check()
        char = None if ctrl else printable_char(code, shift)
        await self._press_modifiers(ctrl=ctrl, shift=shift)
        try:
            self.backend.key_down(code, char)
            await self.clock.next_frame()
            self.backend.key_up(code, char)
            await self.clock.next_frame()
        finally:
            await self._release_modifiers()

    async def _press_modifiers(self, ctrl: bool = False, shift: bool = False, alt: bool = False) -> None:
        pressed = False
        for name, active in (("ctrl", ctrl), ("shift", shift), ("alt", alt)):
            if active and name not in self._held_keys:
                self.backend.key_down(name)
                self._held_keys.append(name)
                pressed = True
        if pressed:
            await self.clock.next_frame()

    async def _release_modifiers(self) -> None:
        if not self._held_keys:
            return
        for name in reversed(self._held_keys):
            self.backend.key_up(name)
        self._held_keys.clear()
        await self.clock.next_frame()

    # =========================================================================
    # Clipboard
    # =========================================================================

    async def set_clipboard_image(self, path: Path) -> bool:
        self.control.check()
        ok = self.backend.set_clipboard_image(Path(path))
        await self.clock.next_frame()
        return ok
