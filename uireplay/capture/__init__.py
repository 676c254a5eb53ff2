"""
Event capture: classifies raw input into recorded events.
"""

from uireplay.capture.session import RecordingSession, Modifiers, NO_MODIFIERS
from uireplay.capture.listener import CaptureListener

__all__ = ["RecordingSession", "Modifiers", "NO_MODIFIERS", "CaptureListener"]
