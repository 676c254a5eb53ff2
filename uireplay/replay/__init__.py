"""
Replay of recorded test cases with visual checkpoint validation.
"""

from uireplay.replay.orchestrator import ReplayOrchestrator
from uireplay.replay.batch import BatchRunner, BatchReport

__all__ = ["ReplayOrchestrator", "BatchRunner", "BatchReport"]
