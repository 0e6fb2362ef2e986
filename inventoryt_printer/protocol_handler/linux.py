"""Linux protocol handler registration."""

from __future__ import annotations

import os
import shlex
import shutil
from pathlib import Path
from typing import Callable, Mapping

from inventoryt_printer.protocol_handler.shared import (
    APP_DISPLAY_NAME,
    LOGGER,
    SCHEME,
    CommandRunner,
    LaunchCommand,
    ProbeError,
    RegistrationError,
    RegistrationOutcome,
    RegistrationState,
    current_launch_command,
    run_command,
)

DESKTOP_FILE_NAME = f"{SCHEME}.desktop"
MIME_TYPE = f"x-scheme-handler/{SCHEME}"


def applications_dir(environ: Mapping[str, str] | None = None, home: Path | None = None) -> Path:
    """Return the per-user applications directory (XDG_DATA_HOME aware)."""
    environ = os.environ if environ is None else environ
    home = Path.home() if home is None else home
    xdg_data_home = environ.get("XDG_DATA_HOME")
    base = Path(xdg_data_home) if xdg_data_home else home / ".local" / "share"
    return base / "applications"


DESKTOP_RESERVED = " \t\n\"'\\$`"
DESKTOP_ESCAPED = "\"`$\\"


def _desktop_quote(argument: str) -> str:
    if argument and not any(char in DESKTOP_RESERVED for char in argument):
        return argument
    escaped = "".join("\\" + char if char in DESKTOP_ESCAPED else char for char in argument)
    return f'"{escaped}"'


def desktop_exec(launch: LaunchCommand) -> str:
    """Render the ``Exec=`` command, without the ``%u`` placeholder."""
    return " ".join(_desktop_quote(part) for part in (launch.executable, *launch.arguments))


def desktop_entry(launch: LaunchCommand) -> str:
    return (
        "[Desktop Entry]\n"
        f"Name={APP_DISPLAY_NAME}\n"
        f"Exec={desktop_exec(launch)} %u\n"
        "Type=Application\n"
        "Terminal=false\n"
        "Categories=Application;\n"
        f"MimeType={MIME_TYPE};\n"
    )


def exec_target(content: str) -> str | None:
    """Return the program from the first ``Exec=`` line.

    The program is the first token; a double-quoted program may contain spaces.
    """
    for line in content.splitlines():
        if line.startswith("Exec="):
            value = line[len("Exec=") :]
            try:
                tokens = shlex.split(value)
            except ValueError:
                return value.split(" ")[0] or None
            return tokens[0] if tokens else None
    return None


class LinuxRegistrationProbe:
    """Read the desktop entry that associates the scheme with an executable."""

    def __init__(
        self,
        desktop_file: Path | None = None,
        *,
        executable_resolver: Callable[[], LaunchCommand] = current_launch_command,
    ) -> None:
        self.desktop_file = desktop_file or applications_dir() / DESKTOP_FILE_NAME
        self._executable_resolver = executable_resolver

    def exists(self) -> bool:
        try:
            self.desktop_file.stat()
        except FileNotFoundError:
            return False
        except OSError as exc:
            # Present but unreadable; needs_update() will report it as stale.
            LOGGER.warning("Could not stat %s: %s", self.desktop_file, exc)
        return True

    def current_target(self) -> str | None:
        try:
            content = self.desktop_file.read_text(encoding="utf-8")
        except (OSError, UnicodeDecodeError) as exc:
            raise ProbeError(f"Unable to read {self.desktop_file}: {exc}") from exc
        return exec_target(content)

    def state(self) -> RegistrationState:
        if not self.exists():
            return RegistrationState(exists=False)
        try:
            return RegistrationState(exists=True, current_target_path=self.current_target())
        except ProbeError:
            return RegistrationState(exists=True)

    def needs_update(self) -> bool:
        """Return True unless the desktop entry points at the running executable.

        Paths are compared byte-for-byte. Any read failure counts as stale.
        """
        try:
            registered = self.current_target()
            executable = self._executable_resolver().executable
        except ProbeError as exc:
            LOGGER.warning("Registration probe failed, assuming stale: %s", exc)
            return True
        if registered is None:
            LOGGER.info("No Exec= line in %s", self.desktop_file)
            return True
        if registered != executable:
            LOGGER.info("Registered path %s differs from %s", registered, executable)
            return True
        return False


class LinuxRegistrationWriter:
    """Register the scheme by writing a .desktop file and calling xdg-mime.

    Side effects: creates ~/.local/share/applications/inventoryt-printer.desktop
    (or under XDG_DATA_HOME) and updates the MIME association via xdg-mime.
    """

    def __init__(
        self,
        desktop_file: Path | None = None,
        *,
        runner: CommandRunner = run_command,
        which: Callable[[str], str | None] = shutil.which,
    ) -> None:
        self.desktop_file = desktop_file or applications_dir() / DESKTOP_FILE_NAME
        self._runner = runner
        self._which = which

    def register(self, launch: LaunchCommand) -> RegistrationOutcome:
        try:
            self.desktop_file.parent.mkdir(parents=True, exist_ok=True)
        except OSError as exc:
            raise RegistrationError("create applications directory", exc) from exc

        try:
            self.desktop_file.write_text(desktop_entry(launch), encoding="utf-8")
            self.desktop_file.chmod(0o755)
        except OSError as exc:
            raise RegistrationError("write desktop entry", exc) from exc

        xdg_mime = self._which("xdg-mime")
        if not xdg_mime:
            raise RegistrationError("register MIME type", "xdg-mime not found")
        try:
            result = self._runner([xdg_mime, "default", DESKTOP_FILE_NAME, MIME_TYPE])
        except OSError as exc:
            raise RegistrationError("register MIME type", exc) from exc
        if result.returncode != 0:
            detail = result.output.strip() or f"exit status {result.returncode}"
            raise RegistrationError("register MIME type", detail)

        LOGGER.info("Linux protocol handler registered for %s", launch)
        return RegistrationOutcome.REGISTERED
