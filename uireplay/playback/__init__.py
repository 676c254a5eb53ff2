"""
Synthetic input playback.

Replays recorded steps as real OS pointer and keyboard input, paced by an
asyncio frame clock.
"""

from uireplay.playback.clock import FrameClock, PlaybackControl
from uireplay.playback.os_controller import OSController, MouseButton
from uireplay.playback.player import InputPlayer, InputBackend

__all__ = [
    "FrameClock",
    "PlaybackControl",
    "OSController",
    "MouseButton",
    "InputPlayer",
    "InputBackend",
]
