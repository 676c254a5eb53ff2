"""
Sequential replay of many test cases.
"""

from __future__ import annotations
import json
import logging
from datetime import datetime
from pathlib import Path
from typing import Callable, Iterable, List, Optional

from pydantic import BaseModel, Field
import yaml

from uireplay.models.testcase import ReplayStatus, TestResult
from uireplay.replay.orchestrator import ReplayOrchestrator

logger = logging.getLogger(__name__)


class BatchReport(BaseModel):
    """Ordered results of a batch run plus summary counts."""

    started_at: datetime = Field(default_factory=datetime.now)
    results: List[TestResult] = Field(default_factory=list)

    @property
    def passed(self) -> int:
        return sum(1 for r in self.results if r.status == ReplayStatus.PASSED)

    @property
    def failed(self) -> int:
        return sum(1 for r in self.results if r.status == ReplayStatus.FAILED)

    @property
    def cancelled(self) -> int:
        return sum(1 for r in self.results if r.status == ReplayStatus.CANCELLED)

    @property
    def all_passed(self) -> bool:
        return self.failed == 0 and self.cancelled == 0

    def summary(self) -> dict:
        return {
            "total": len(self.results),
            "passed": self.passed,
            "failed": self.failed,
            "cancelled": self.cancelled,
        }

    def export(self, path: Path, format: str = "json") -> None:
        """Write the report as JSON or YAML."""
        data = self.model_dump(mode="json")
        data["summary"] = self.summary()
        path = Path(path)
        path.parent.mkdir(parents=True, exist_ok=True)
        with open(path, "w") as f:
            if format == "yaml":
                yaml.dump(data, f, default_flow_style=False, sort_keys=False)
            else:
                json.dump(data, f, indent=2)


class BatchRunner:
    """
    Replays test files one after another with a single orchestrator.

    Tests never run concurrently: the player and the comparator both assume
    exclusive use of the display. A failed or unloadable test does not stop
    the batch; cancellation does, and the remaining tests are not run.
    """

    def __init__(self, orchestrator: ReplayOrchestrator):
        self.orchestrator = orchestrator
        self.on_result: Optional[Callable[[TestResult], None]] = None

    @staticmethod
    def discover(directory: Path, pattern: str = "*.json") -> List[Path]:
        """Test files in ``directory``, sorted by name."""
        return sorted(p for p in Path(directory).glob(pattern) if p.is_file())

    async def run(self, paths: Iterable[Path]) -> BatchReport:
        report = BatchReport()
        paths = list(paths)
        logger.info(f"Batch of {len(paths)} tests")

        for i, path in enumerate(paths):
            if self.orchestrator.control.cancelled:
                logger.info(f"Batch cancelled; {len(paths) - i} tests not run")
                break
            result = await self.orchestrator.run_file(path)
            report.results.append(result)
            if self.on_result:
                self.on_result(result)

        logger.info(f"Batch finished: {report.summary()}")
        return report
