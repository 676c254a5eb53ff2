"""
Tests for the OS controller's clipboard handling, with subprocess stubbed out.
"""

import subprocess

from uireplay.playback.os_controller import OSController

from tests.fakes import RED, solid


def make_controller(monkeypatch, system):
    monkeypatch.setattr(OSController, "_init_backends", lambda self: None)
    controller = OSController()
    controller.platform = system
    return controller


class TestClipboardImage:
    """Tests for placing a PNG on the clipboard."""

    def test_xclip_output_not_captured(self, tmp_path, monkeypatch):
        """Test that xclip runs with its output streams detached."""
        calls = []
        monkeypatch.setattr("uireplay.playback.os_controller.shutil.which", lambda name: "/usr/bin/xclip")
        monkeypatch.setattr(subprocess, "run", lambda args, **kwargs: calls.append((args, kwargs)))
        path = tmp_path / "paste.png"
        solid(RED).save(path)

        controller = make_controller(monkeypatch, "Linux")
        assert controller.set_clipboard_image(path)

        args, kwargs = calls[0]
        assert args[0] == "xclip"
        assert kwargs["stdout"] is subprocess.DEVNULL
        assert kwargs["stderr"] is subprocess.DEVNULL
        assert "capture_output" not in kwargs

    def test_missing_image(self, tmp_path, monkeypatch):
        """Test that a missing file leaves the clipboard alone."""
        controller = make_controller(monkeypatch, "Linux")
        assert not controller.set_clipboard_image(tmp_path / "gone.png")

    def test_unsupported_platform(self, tmp_path, monkeypatch):
        """Test that platforms without a clipboard tool report False."""
        path = tmp_path / "paste.png"
        solid(RED).save(path)
        controller = make_controller(monkeypatch, "Plan9")
        assert not controller.set_clipboard_image(path)
