"""
Command-line interface for uireplay.
"""

from __future__ import annotations
import asyncio
import logging
import signal
import sys
import threading
import time
from pathlib import Path
from typing import Optional

import click

from uireplay.config import CompareMode, HarnessConfig, PlaybackSpeed
from uireplay.models.events import DragEvent, KeyEvent, PanEvent, RecordedEvent, WaitEvent
from uireplay.models.testcase import ReplayStatus, TestResult


def _setup_logging(verbose: bool) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


def _load_config(
    config: Optional[Path],
    speed: Optional[str] = None,
    compare_mode: Optional[str] = None,
    tolerance: Optional[float] = None,
    window_title: Optional[str] = None,
) -> HarnessConfig:
    """Load the YAML config (if any) and apply command-line overrides."""
    harness = HarnessConfig.from_file(config) if config else HarnessConfig()
    if speed:
        harness.playback.speed = PlaybackSpeed(speed)
    if compare_mode:
        harness.comparison.mode = CompareMode(compare_mode)
    if tolerance is not None:
        harness.comparison.pixel_tolerance = tolerance
    if window_title:
        harness.replay.window_title = window_title
    return harness


def _build_window(title: Optional[str], controller):
    from uireplay.host import AppWindow, ScreenWindow

    if title:
        return AppWindow(title)
    return ScreenWindow(controller.get_screen_size())


def _build_orchestrator(harness: HarnessConfig):
    from uireplay.compare import ImageComparator
    from uireplay.playback import FrameClock, InputPlayer, OSController
    from uireplay.replay import ReplayOrchestrator

    controller = OSController(fail_safe=harness.playback.fail_safe)
    player = InputPlayer(
        controller,
        clock=FrameClock(harness.playback.frame_rate),
        config=harness.playback,
    )
    return ReplayOrchestrator(
        player=player,
        comparator=ImageComparator(harness.comparison),
        grabber=controller,
        window=_build_window(harness.replay.window_title, controller),
        config=harness.replay,
    )


def describe_event(event: RecordedEvent) -> str:
    """One-line human readable description of an event."""
    if isinstance(event, (DragEvent, PanEvent)):
        text = (
            f"{event.type} ({event.from_pos.x:.0f}, {event.from_pos.y:.0f})"
            f" -> ({event.to_pos.x:.0f}, {event.to_pos.y:.0f})"
        )
        if isinstance(event, DragEvent):
            if event.no_drop:
                text += " [held]"
            if event.object_ref:
                text += f" [{event.object_ref.type}:{event.object_ref.id}]"
    elif isinstance(event, KeyEvent):
        mods = "".join(m for m, on in (("ctrl+", event.ctrl), ("shift+", event.shift)) if on)
        text = f"key {mods}{event.keycode}"
    elif isinstance(event, WaitEvent):
        text = f"wait {event.duration}ms"
    elif hasattr(event, "pos"):
        text = f"{event.type} at ({event.pos.x:.0f}, {event.pos.y:.0f})"
    else:
        text = event.type
    if event.wait_after:
        text += f" (+{event.wait_after}ms)"
    if event.note:
        text += f"  # {event.note}"
    return text


def _echo_result(result: TestResult) -> None:
    icon = {
        ReplayStatus.PASSED: "✅",
        ReplayStatus.FAILED: "❌",
        ReplayStatus.CANCELLED: "⏹️ ",
    }.get(result.status, "?")
    click.echo(f"{icon} {result.name}: {result.status.value} ({result.duration:.1f}s)")
    if result.status == ReplayStatus.FAILED:
        if result.failed_step_index >= 0:
            click.echo(f"   - failed at step {result.failed_step_index}")
        if result.error:
            click.echo(f"   - {result.error}")
        if result.baseline_path:
            click.echo(f"   - baseline: {result.baseline_path}")
        if result.actual_path:
            click.echo(f"   - actual:   {result.actual_path}")
        if result.diff_path:
            click.echo(f"   - diff:     {result.diff_path}")


def _start_step_reader(control) -> None:
    """Advance step mode each time Enter is pressed."""
    def read():
        for _ in sys.stdin:
            control.advance()

    threading.Thread(target=read, daemon=True).start()


async def _with_interrupt(orchestrator, coro):
    loop = asyncio.get_running_loop()
    try:
        loop.add_signal_handler(signal.SIGINT, orchestrator.cancel)
    except (NotImplementedError, RuntimeError):
        pass
    return await coro


def _countdown(seconds: int = 3) -> None:
    click.echo(f"\n⚠️  Starting playback in {seconds} seconds...")
    click.echo("   Move mouse to any corner to ABORT, or press Ctrl+C to cancel")
    for i in range(seconds, 0, -1):
        click.echo(f"   {i}...")
        time.sleep(1)


@click.group()
@click.version_option(version="0.1.0")
def main():
    """uireplay - record, replay and visually verify UI interactions."""
    pass


_config_option = click.option(
    "--config", "-c",
    type=click.Path(exists=True, path_type=Path),
    default=None,
    help="Path to YAML configuration file"
)
_verbose_option = click.option(
    "--verbose", "-v",
    is_flag=True,
    help="Enable verbose output"
)
_speed_option = click.option(
    "--speed", "-s",
    type=click.Choice([s.value for s in PlaybackSpeed]),
    default=None,
    help="Playback speed (step waits for Enter at every step)"
)
_compare_mode_option = click.option(
    "--compare-mode",
    type=click.Choice([m.value for m in CompareMode]),
    default=None,
    help="Screenshot comparison mode"
)
_tolerance_option = click.option(
    "--tolerance",
    type=float,
    default=None,
    help="Allowed fraction of mismatched pixels in tolerant mode"
)
_window_option = click.option(
    "--window-title", "-w",
    type=str,
    default=None,
    help="Title of the application window (default: whole screen)"
)


@main.command()
@click.option(
    "--output", "-o",
    type=click.Path(path_type=Path),
    required=True,
    help="Path of the test case file to write"
)
@click.option(
    "--name", "-n",
    type=str,
    default=None,
    help="Test name (default: output file name)"
)
@_window_option
@_config_option
@_verbose_option
def record(
    output: Path,
    name: Optional[str],
    window_title: Optional[str],
    config: Optional[Path],
    verbose: bool
):
    """Record a test case from live mouse and keyboard input."""
    from uireplay.capture import CaptureListener, RecordingSession
    from uireplay.playback import OSController
    from uireplay.serialization import save_test_case

    harness = _load_config(config, window_title=window_title)
    _setup_logging(verbose or harness.verbose)
    name = name or output.stem
    capture = harness.capture

    controller = OSController(fail_safe=False)
    window = _build_window(harness.replay.window_title, controller)
    session = RecordingSession(capture)
    session.on_event = lambda event: click.echo(f"   • {describe_event(event)}")
    listener = CaptureListener(
        session,
        window,
        grabber=controller,
        checkpoint_dir=output.parent,
        name=name,
    )

    click.echo(f"🔴 Recording '{name}'")
    click.echo(f"   {capture.record_hotkey.upper()} stop and save, "
               f"{capture.pause_hotkey.upper()} pause/resume, "
               f"{capture.checkpoint_hotkey.upper()} checkpoint, "
               f"{capture.split_key.upper()} split held drag, Ctrl+C discard")

    try:
        saved = asyncio.run(listener.run())
    except KeyboardInterrupt:
        saved = False

    if not saved:
        session.cancel()
        click.echo("🗑️  Recording discarded")
        raise SystemExit(1)

    test_case = session.to_test_case(
        name,
        window.viewport_size(),
        window.get_state() if harness.replay.window_title else None,
    )
    save_test_case(test_case, output)
    click.echo(f"✅ Test case saved to: {output}")
    click.echo(f"   - {len(test_case.events)} events")
    click.echo(f"   - {len(test_case.checkpoints)} checkpoints")


@main.command()
@click.option(
    "--test", "-t",
    type=click.Path(exists=True, path_type=Path),
    required=True,
    help="Path to test case file"
)
@_speed_option
@_compare_mode_option
@_tolerance_option
@_window_option
@click.option(
    "--dry-run",
    is_flag=True,
    help="Print steps without executing them"
)
@_config_option
@_verbose_option
def play(
    test: Path,
    speed: Optional[str],
    compare_mode: Optional[str],
    tolerance: Optional[float],
    window_title: Optional[str],
    dry_run: bool,
    config: Optional[Path],
    verbose: bool
):
    """
    Replay a test case using real OS mouse/keyboard control.

    This will actually move your mouse cursor and type on your keyboard.
    """
    from uireplay.exceptions import TestCaseLoadError
    from uireplay.serialization import load_test_case

    harness = _load_config(config, speed, compare_mode, tolerance, window_title)
    _setup_logging(verbose or harness.verbose)

    click.echo(f"🎮 Loading test: {test}")
    try:
        test_case = load_test_case(test)
    except TestCaseLoadError as e:
        click.echo(f"❌ {e}", err=True)
        raise SystemExit(1)
    click.echo(f"   - {len(test_case.events)} events")
    click.echo(f"   - {len(test_case.checkpoints)} checkpoints")

    if dry_run:
        click.echo("\n📋 Dry run - steps to be performed:")
        for i, event in enumerate(test_case.events):
            click.echo(f"   {i + 1}. {describe_event(event)}")
            for cp in test_case.checkpoints_after(i):
                click.echo(f"      📷 {cp.path}")
        return

    orchestrator = _build_orchestrator(harness)
    orchestrator.on_step = lambda i, event: click.echo(
        f"   [{i + 1}/{len(test_case.events)}] {describe_event(event)}"
    )
    if harness.playback.speed == PlaybackSpeed.STEP:
        click.echo("   Step mode: press Enter to advance")
        _start_step_reader(orchestrator.control)

    _countdown()
    click.echo("\n▶️  Playing...")
    result = asyncio.run(_with_interrupt(
        orchestrator,
        orchestrator.run(test_case, base_dir=test.parent),
    ))
    click.echo("")
    _echo_result(result)
    if not result.passed:
        raise SystemExit(1)


@main.command()
@click.option(
    "--dir", "-d", "directory",
    type=click.Path(exists=True, file_okay=False, path_type=Path),
    required=True,
    help="Directory containing test case files"
)
@click.option(
    "--report", "-r",
    type=click.Path(path_type=Path),
    default=None,
    help="Write a batch report to this file"
)
@click.option(
    "--format", "-f",
    type=click.Choice(["json", "yaml"]),
    default="json",
    help="Report format"
)
@_speed_option
@_compare_mode_option
@_tolerance_option
@_window_option
@_config_option
@_verbose_option
def batch(
    directory: Path,
    report: Optional[Path],
    format: str,
    speed: Optional[str],
    compare_mode: Optional[str],
    tolerance: Optional[float],
    window_title: Optional[str],
    config: Optional[Path],
    verbose: bool
):
    """Replay every test case in a directory, one after another."""
    from uireplay.replay import BatchRunner

    harness = _load_config(config, speed, compare_mode, tolerance, window_title)
    _setup_logging(verbose or harness.verbose)

    paths = BatchRunner.discover(directory)
    if not paths:
        click.echo(f"⚠️  No test cases found in {directory}")
        return
    click.echo(f"🧪 {len(paths)} test cases in {directory}")

    orchestrator = _build_orchestrator(harness)
    runner = BatchRunner(orchestrator)
    runner.on_result = _echo_result
    if harness.playback.speed == PlaybackSpeed.STEP:
        _start_step_reader(orchestrator.control)

    _countdown()
    batch_report = asyncio.run(_with_interrupt(orchestrator, runner.run(paths)))

    summary = batch_report.summary()
    click.echo(
        f"\n📊 {summary['passed']} passed, {summary['failed']} failed, "
        f"{summary['cancelled']} cancelled of {summary['total']}"
    )
    if report:
        batch_report.export(report, format=format)
        click.echo(f"   Report written to: {report}")
    if not batch_report.all_passed:
        raise SystemExit(1)


@main.command()
@click.option(
    "--current", "-a",
    type=click.Path(exists=True, path_type=Path),
    required=True,
    help="Captured image"
)
@click.option(
    "--baseline", "-b",
    type=click.Path(exists=True, path_type=Path),
    required=True,
    help="Reference image"
)
@_compare_mode_option
@_tolerance_option
@click.option(
    "--threshold",
    type=int,
    default=None,
    help="Per-channel difference that marks a pixel as mismatched"
)
@_config_option
def compare(
    current: Path,
    baseline: Path,
    compare_mode: Optional[str],
    tolerance: Optional[float],
    threshold: Optional[int],
    config: Optional[Path]
):
    """Compare a captured image with a baseline."""
    from uireplay.compare import ImageComparator

    harness = _load_config(config, compare_mode=compare_mode, tolerance=tolerance)
    if threshold is not None:
        harness.comparison.color_threshold = threshold

    result = ImageComparator(harness.comparison).compare_files(current, baseline)
    if result.passed:
        click.echo(f"✅ Images match ({result.mode.value}, {result.mismatch_ratio:.2%} differ)")
        return
    click.echo(f"❌ {result.reason}")
    if result.actual_path:
        click.echo(f"   - actual: {result.actual_path}")
    if result.diff_path:
        click.echo(f"   - diff:   {result.diff_path}")
    raise SystemExit(1)


@main.command()
@click.option(
    "--test", "-t",
    type=click.Path(exists=True, path_type=Path),
    required=True,
    help="Path to test case file"
)
def validate(test: Path):
    """Validate a test case file."""
    from uireplay.exceptions import TestCaseLoadError
    from uireplay.serialization import load_test_case

    click.echo(f"🔍 Validating test case: {test}")

    try:
        test_case = load_test_case(test)
    except TestCaseLoadError as e:
        click.echo(f"❌ Validation failed: {e}", err=True)
        raise SystemExit(1)

    click.echo("✅ Test case is valid!")
    click.echo(f"   - Name: {test_case.name}")
    click.echo(f"   - Created: {test_case.created:%Y-%m-%d %H:%M}")
    viewport = test_case.recorded_viewport_size
    click.echo(f"   - Viewport: {viewport.w:.0f}x{viewport.h:.0f}")
    click.echo(f"   - Events: {len(test_case.events)}")
    click.echo(f"   - Checkpoints: {len(test_case.checkpoints)}")
    if test_case.legacy_baseline:
        click.echo(f"   - Legacy baseline: {test_case.legacy_baseline.path}")


@main.command()
def check_playback():
    """Check if OS control is available for recording and playback."""
    click.echo("🔍 Checking playback dependencies...\n")

    # Check pyautogui
    try:
        import pyautogui
        click.echo("  ✅ pyautogui is available")
        screen_size = pyautogui.size()
        click.echo(f"     Screen size: {screen_size[0]}x{screen_size[1]}")
        pos = pyautogui.position()
        click.echo(f"     Mouse position: ({pos[0]}, {pos[1]})")
    except ImportError:
        click.echo("  ❌ pyautogui not installed")
        click.echo("     Install with: pip install pyautogui")
    except Exception as e:
        click.echo(f"  ⚠️  pyautogui error: {e}")
        click.echo("     On macOS, grant accessibility permissions in:")
        click.echo("     System Preferences > Security & Privacy > Privacy > Accessibility")

    # Check pynput (recording hooks, playback fallback)
    try:
        from pynput.mouse import Listener  # noqa: F401
        click.echo("  ✅ pynput is available")
    except ImportError:
        click.echo("  ❌ pynput not installed (required for recording)")
    except Exception as e:
        click.echo(f"  ⚠️  pynput error: {e}")

    # Check pywinctl (window geometry)
    try:
        import pywinctl  # noqa: F401
        click.echo("  ✅ pywinctl is available")
    except ImportError:
        click.echo("  ⚠️  pywinctl not installed (needed for --window-title)")
    except Exception as e:
        click.echo(f"  ⚠️  pywinctl error: {e}")

    click.echo("\n💡 Note: On macOS, you may need to grant accessibility permissions")
    click.echo("   to your terminal app for mouse/keyboard control to work.")


if __name__ == "__main__":
    main()
