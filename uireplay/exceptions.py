"""
Exception types raised inside the harness.

Replay never lets these escape to the caller; the orchestrator folds them
into a TestResult.
"""


class UIReplayError(Exception):
    """Base class for harness errors."""


class TestCaseLoadError(UIReplayError):
    """A test case file is missing or malformed."""

    __test__ = False


class PlaybackCancelled(UIReplayError):
    """Raised at a suspension point once cancellation has been requested."""
