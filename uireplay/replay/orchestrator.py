"""
Replay orchestrator.

Drives one test case through the input player, reconciling recorded and
current viewport geometry and validating screenshot checkpoints as soon as
the event they follow has been replayed.
"""

from __future__ import annotations
import logging
import time
from dataclasses import dataclass
from pathlib import Path
from typing import Callable, Optional, Tuple

from uireplay.compare.comparator import ComparisonResult, ImageComparator
from uireplay.config import PlaybackConfig, ReplayConfig
from uireplay.exceptions import PlaybackCancelled, TestCaseLoadError
from uireplay.host import CoordinateMapper, FrameGrabber, HitTester, WindowController
from uireplay.models.events import (
    ClickEvent,
    DoubleClickEvent,
    DragEvent,
    KeyEvent,
    PanEvent,
    RecordedEvent,
    RightClickEvent,
    ScrollEvent,
    SetClipboardImageEvent,
    WaitEvent,
)
from uireplay.models.geometry import Point, Rect, WindowState
from uireplay.models.testcase import ReplayStatus, TestCase, TestResult
from uireplay.playback.os_controller import MouseButton
from uireplay.playback.player import InputPlayer
from uireplay.serialization import load_test_case

logger = logging.getLogger(__name__)


@dataclass
class _Failure:
    """First failing validation of a run."""
    step: int
    baseline_path: Optional[str]
    comparison: Optional[ComparisonResult] = None
    error: Optional[str] = None


class ReplayOrchestrator:
    """
    Replays test cases and produces a TestResult for each run.

    States: idle -> preparing -> running -> passed | failed | cancelled.
    No exception escapes ``run`` or ``run_file``; load errors, step errors
    and cancellation all end up in the returned result.

    Usage:
        controller = OSController()
        orchestrator = ReplayOrchestrator(
            player=InputPlayer(controller),
            comparator=ImageComparator(),
            grabber=controller,
            window=ScreenWindow(controller.get_screen_size()),
        )
        result = asyncio.run(orchestrator.run_file(Path("tests/login.json")))
    """

    def __init__(
        self,
        player: InputPlayer,
        comparator: ImageComparator,
        grabber: FrameGrabber,
        window: WindowController,
        hit_tester: Optional[HitTester] = None,
        coordinate_mapper: Optional[CoordinateMapper] = None,
        config: Optional[ReplayConfig] = None,
    ):
        self.player = player
        self.comparator = comparator
        self.grabber = grabber
        self.window = window
        self.hit_tester = hit_tester
        self.coordinate_mapper = coordinate_mapper
        self.config = config or ReplayConfig()

        self.state = ReplayStatus.IDLE
        self.scale: Tuple[float, float] = (1.0, 1.0)
        self._saved_window: Optional[WindowState] = None
        self._window_changed = False
        self._base_dir = Path(".")

        # Callbacks
        self.on_step: Optional[Callable[[int, RecordedEvent], None]] = None

    @property
    def control(self):
        return self.player.control

    @property
    def playback_config(self) -> PlaybackConfig:
        return self.player.config

    def cancel(self) -> None:
        """Request cancellation; observed at the next suspension point."""
        self.control.cancel()

    # =========================================================================
    # Entry points
    # =========================================================================

    async def run_file(self, path: Path) -> TestResult:
        """Load a test case file and replay it."""
        path = Path(path)
        try:
            test_case = load_test_case(path)
        except TestCaseLoadError as e:
            logger.error(f"Could not load {path}: {e}")
            return TestResult.load_failure(path.stem, str(e))
        except Exception as e:
            logger.exception(f"Unexpected error loading {path}")
            return TestResult.load_failure(path.stem, f"{type(e).__name__}: {e}")
        return await self.run(test_case, base_dir=path.parent)

    async def run(self, test_case: TestCase, base_dir: Optional[Path] = None) -> TestResult:
        """
        Replay a test case.

        Args:
            test_case: The test to replay; not modified
            base_dir: Directory that relative screenshot paths are resolved against
        """
        started = time.monotonic()
        self._base_dir = Path(base_dir) if base_dir else Path(".")
        result = TestResult(name=test_case.name)
        logger.info(
            f"Replaying {test_case.name}: {len(test_case.events)} events, "
            f"{len(test_case.checkpoints)} checkpoints, speed {self.player.speed.value}"
        )

        try:
            self.state = ReplayStatus.PREPARING
            await self._prepare(test_case)

            self.state = ReplayStatus.RUNNING
            failure = await self._run_events(test_case, result)
            if failure is None and not test_case.checkpoints and test_case.legacy_baseline:
                failure = await self._validate_legacy(test_case, result)

            if failure is None:
                self.state = ReplayStatus.PASSED
            else:
                self.state = ReplayStatus.FAILED
                self._apply_failure(result, failure)

        except PlaybackCancelled:
            logger.info(f"Replay of {test_case.name} cancelled")
            self.state = ReplayStatus.CANCELLED

        except Exception as e:
            logger.exception(f"Replay of {test_case.name} aborted")
            self.state = ReplayStatus.FAILED
            result.error = f"{type(e).__name__}: {e}"

        finally:
            try:
                await self._teardown()
            except Exception as e:
                logger.exception("Teardown failed")
                result.error = result.error or f"Teardown failed: {e}"

        result.status = self.state
        result.passed = self.state == ReplayStatus.PASSED
        result.duration = time.monotonic() - started
        logger.info(f"{test_case.name}: {self.state.value} in {result.duration:.1f}s")
        return result

    # =========================================================================
    # Preparation and teardown
    # =========================================================================

    async def _prepare(self, test_case: TestCase) -> None:
        self._window_changed = False
        self._saved_window = None

        recorded = test_case.recorded_window_state
        if recorded is not None and self.config.restore_window:
            self._saved_window = self.window.get_state()
            if self._saved_window != recorded:
                logger.info(
                    f"Applying recorded window geometry {recorded.mode.value} "
                    f"{recorded.w}x{recorded.h} at ({recorded.x}, {recorded.y})"
                )
                self.window.set_state(recorded)
                self._window_changed = True
                await self.player.wait(self.config.window_settle, apply_speed=False)

        self.scale = self.compute_scale(test_case)
        self.player.set_viewport_origin(self.window.viewport_origin())
        logger.debug(f"Viewport scale: {self.scale[0]:.3f} x {self.scale[1]:.3f}")

    def compute_scale(self, test_case: TestCase) -> Tuple[float, float]:
        """Per-axis ratio of the current viewport to the recorded one."""
        recorded = test_case.recorded_viewport_size
        if recorded.is_empty:
            return (1.0, 1.0)
        current = self.window.viewport_size()
        return (current.w / recorded.w, current.h / recorded.h)

    async def _teardown(self) -> None:
        try:
            await self.player.release_all()
        finally:
            if self._window_changed and self._saved_window is not None:
                logger.info("Restoring original window geometry")
                self.window.set_state(self._saved_window)
            self._window_changed = False

    # =========================================================================
    # Event loop
    # =========================================================================

    async def _run_events(self, test_case: TestCase, result: TestResult) -> Optional[_Failure]:
        failure = await self._validate_checkpoints(test_case, -1, result)
        if failure is not None:
            return failure

        for index, event in enumerate(test_case.events):
            self.control.check()
            logger.debug(f"Step {index + 1}/{len(test_case.events)}: {event.type}")
            if self.on_step:
                self.on_step(index, event)

            try:
                await self.execute_event(event)
                if event.wait_after > 0:
                    await self.player.wait(event.wait_after / 1000, apply_speed=False)
                await self.player.wait(self.playback_config.step_delay)
            except PlaybackCancelled:
                raise
            except Exception as e:
                logger.exception(f"Step {index + 1} ({event.type}) raised")
                return _Failure(step=index + 1, baseline_path=None, error=f"{type(e).__name__}: {e}")

            failure = await self._validate_checkpoints(test_case, index, result)
            if failure is not None:
                return failure

        return None

    def _scaled(self, pos: Point) -> Point:
        return pos.scaled(*self.scale)

    async def execute_event(self, event: RecordedEvent) -> None:
        """Replay one event through the player."""
        player = self.player

        if isinstance(event, ClickEvent):
            await player.move_to(self._scaled(event.pos))
            await player.click(ctrl=event.ctrl, shift=event.shift)

        elif isinstance(event, DoubleClickEvent):
            await player.move_to(self._scaled(event.pos))
            await player.double_click(ctrl=event.ctrl, shift=event.shift)

        elif isinstance(event, RightClickEvent):
            await player.move_to(self._scaled(event.pos))
            await player.right_click()

        elif isinstance(event, DragEvent):
            await self._execute_drag(event)

        elif isinstance(event, PanEvent):
            await player.move_to(self._scaled(event.from_pos))
            await player.drag_to(self._scaled(event.to_pos), button=MouseButton.MIDDLE)

        elif isinstance(event, ScrollEvent):
            await player.move_to(self._scaled(event.pos))
            await player.scroll(
                event.direction,
                event.factor,
                ctrl=event.ctrl,
                shift=event.shift,
                alt=event.alt,
            )

        elif isinstance(event, KeyEvent):
            if event.mouse_pos is not None:
                await player.move_to(self._scaled(event.mouse_pos))
            await player.press_key(event.keycode, shift=event.shift, ctrl=event.ctrl)

        elif isinstance(event, WaitEvent):
            await player.wait(event.duration / 1000, apply_speed=False)

        elif isinstance(event, SetClipboardImageEvent):
            if event.mouse_pos is not None:
                await player.move_to(self._scaled(event.mouse_pos))
            await player.set_clipboard_image(self._resolve(event.path))

        else:
            raise TypeError(f"Unhandled event type: {type(event).__name__}")

    async def _execute_drag(self, event: DragEvent) -> None:
        player = self.player
        start, end = self.resolve_drag(event)

        # a continuation segment starts wherever the held pointer already is
        if not player.is_holding(MouseButton.LEFT):
            await player.move_to(start)

        await player.drag_to(
            end,
            hold_at_end=self.playback_config.drag_hold,
            release=not event.no_drop,
        )

    def resolve_drag(self, event: DragEvent) -> Tuple[Point, Point]:
        """
        Current start and end points for a recorded drag.

        The start follows the dragged object when it can be found; the end
        follows the recorded cell or world position when a coordinate mapper
        is available. Otherwise both fall back to scaled recorded positions.
        """
        start = self._scaled(event.from_pos)
        end = self._scaled(event.to_pos)

        ref = event.object_ref
        if ref is not None and self.hit_tester is not None:
            current = self.hit_tester.find_item_by_id(ref.type, ref.id)
            if current is not None:
                start = current + self._scaled(ref.click_offset)
            else:
                logger.warning(
                    f"Object {ref.type}:{ref.id} not found; using recorded position"
                )

        mapper = self.coordinate_mapper
        if mapper is not None:
            if event.cell_to is not None:
                end = mapper.world_to_screen(mapper.cell_to_world(event.cell_to))
            elif event.world_to is not None:
                end = mapper.world_to_screen(event.world_to)

        return start, end

    # =========================================================================
    # Validation
    # =========================================================================

    def _resolve(self, path: str) -> Path:
        p = Path(path)
        return p if p.is_absolute() else self._base_dir / p

    async def _capture(self, region: Optional[Rect]):
        await self.player.wait(self.config.checkpoint_settle, apply_speed=False)
        if region is None:
            size = self.window.viewport_size()
            region = Rect(x=0, y=0, w=size.w, h=size.h)
        screen_region = region.scaled(*self.scale).offset(self.window.viewport_origin())
        return self.grabber.capture(screen_region)

    async def _validate_checkpoints(
        self,
        test_case: TestCase,
        index: int,
        result: TestResult,
    ) -> Optional[_Failure]:
        for checkpoint in test_case.checkpoints_after(index):
            self.control.check()
            baseline = self._resolve(checkpoint.path)
            image = await self._capture(checkpoint.region)
            comparison = self.comparator.compare(image, baseline)
            result.baseline_path = str(baseline)
            if not comparison.passed:
                logger.info(f"Checkpoint {baseline.name} failed after step {index + 1}")
                return _Failure(step=index + 1, baseline_path=str(baseline), comparison=comparison)
            logger.info(f"Checkpoint {baseline.name} passed")
        return None

    async def _validate_legacy(self, test_case: TestCase, result: TestResult) -> Optional[_Failure]:
        legacy = test_case.legacy_baseline
        baseline = self._resolve(legacy.path)
        image = await self._capture(legacy.region)
        comparison = self.comparator.compare(image, baseline)
        result.baseline_path = str(baseline)
        if comparison.passed:
            logger.info(f"End-of-run baseline {baseline.name} passed")
            return None
        return _Failure(step=len(test_case.events), baseline_path=str(baseline), comparison=comparison)

    @staticmethod
    def _apply_failure(result: TestResult, failure: _Failure) -> None:
        result.failed_step_index = failure.step
        if failure.baseline_path:
            result.baseline_path = failure.baseline_path
        if failure.comparison is not None:
            result.actual_path = failure.comparison.actual_path
            result.diff_path = failure.comparison.diff_path
            result.error = failure.comparison.reason
        else:
            result.error = failure.error
