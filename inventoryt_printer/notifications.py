"""Desktop notifications for command outcomes."""

from __future__ import annotations

import logging
import platform
import shutil
import textwrap
import time
from dataclasses import dataclass
from typing import Protocol

from inventoryt_printer.protocol_handler.shared import CommandRunner, run_command

APP_ID = "inventoryt-printer"
APP_TITLE = "Inventory Printer"
DISPLAY_SECONDS = 5.0

LOGGER = logging.getLogger(__name__)


@dataclass(frozen=True)
class NotificationOutcome:
    title: str
    message: str


class Notifier(Protocol):
    def show(self, title: str, message: str) -> None:
        """Display a notification. Never raises."""
        ...


def _ps_quote(value: str) -> str:
    return "'" + value.replace("'", "''") + "'"


def balloon_script(title: str, message: str, display_seconds: float = DISPLAY_SECONDS) -> str:
    milliseconds = int(display_seconds * 1000)
    return textwrap.dedent(
        f"""\
        Add-Type -AssemblyName System.Windows.Forms
        $notify = New-Object System.Windows.Forms.NotifyIcon
        $notify.Icon = [System.Drawing.SystemIcons]::Information
        $notify.BalloonTipIcon = "Info"
        $notify.BalloonTipTitle = {_ps_quote(title)}
        $notify.BalloonTipText = {_ps_quote(message)}
        $notify.Visible = $True
        $notify.ShowBalloonTip({milliseconds})
        Start-Sleep -Seconds {max(1, int(display_seconds))}
        $notify.Dispose()
        """
    )


class DesktopNotifier:
    """Show notifications through the tray icon, or a platform command as fallback.

    The tray path needs a pystray backend with notification support. Without
    one, Linux uses notify-send and Windows a PowerShell balloon tip. Other
    platforms only log.
    """

    def __init__(
        self,
        *,
        system: str | None = None,
        runner: CommandRunner = run_command,
        use_tray: bool = True,
        display_seconds: float = DISPLAY_SECONDS,
    ) -> None:
        self.system = system or platform.system()
        self._runner = runner
        self._use_tray = use_tray
        self._display_seconds = display_seconds

    def show(self, title: str, message: str) -> None:
        LOGGER.info("Notification: %s - %s", title, message)
        if self._use_tray and self._show_tray(title, message):
            return
        self._show_command(title, message)

    def _show_tray(self, title: str, message: str) -> bool:
        try:
            from PIL import Image
            import pystray
        except Exception as exc:
            LOGGER.debug("Tray notifications unavailable: %s", exc)
            return False

        if not getattr(pystray.Icon, "HAS_NOTIFICATION", False):
            return False

        image = Image.new("RGBA", (64, 64), (17, 22, 30, 255))
        icon = pystray.Icon(APP_ID, image, APP_TITLE)

        def _setup(tray_icon: "pystray.Icon") -> None:
            try:
                tray_icon.visible = True
                tray_icon.notify(message, title)
                time.sleep(self._display_seconds)
                tray_icon.remove_notification()
            finally:
                tray_icon.stop()

        try:
            icon.run(setup=_setup)
        except Exception as exc:
            LOGGER.warning("Tray notification failed: %s", exc)
            return False
        return True

    def _show_command(self, title: str, message: str) -> None:
        if self.system == "Linux":
            program = shutil.which("notify-send")
            if not program:
                LOGGER.info("notify-send not found; notification logged only.")
                return
            args = [program, title, message]
        elif self.system == "Windows":
            args = [
                "powershell",
                "-NoProfile",
                "-Command",
                balloon_script(title, message, self._display_seconds),
            ]
        else:
            return

        try:
            result = self._runner(args)
        except OSError as exc:
            LOGGER.warning("Failed to show %s notification: %s", self.system, exc)
            return
        if result.returncode != 0:
            LOGGER.warning(
                "Failed to show %s notification: exit status %s %s",
                self.system,
                result.returncode,
                result.output.strip(),
            )
