"""Print-sink implementations and the transient label file."""

from __future__ import annotations

import logging
import os
import platform
import re
import tempfile
from pathlib import Path
from typing import Protocol

from inventoryt_printer.protocol_handler.shared import CommandResult, CommandRunner, run_command

DEFAULT_PRINTER_SHARE = "ZD420"
LABELS_DIR = Path(tempfile.gettempdir()) / "inventoryt-printer-labels"
ACCESS_DENIED_MARKERS = ("access is denied", "access denied", "permission denied")
UNSAFE_NAME_RE = re.compile(r"[^A-Za-z0-9_.-]")

LOGGER = logging.getLogger(__name__)


class PrintError(RuntimeError):
    """Raised when the spooler rejects a print job."""


class PrintAccessDenied(PrintError):
    """Raised when the spooler refuses the job for lack of privileges."""


class PrintSink(Protocol):
    def print_file(self, file_path: Path) -> None:
        """Send ``file_path`` to the printer.

        Raises:
            PrintError: If the job could not be submitted.
        """
        ...


def _check(result: CommandResult, command: str) -> None:
    if result.returncode == 0:
        return
    output = result.output.strip()
    lowered = output.lower()
    if any(marker in lowered for marker in ACCESS_DENIED_MARKERS):
        raise PrintAccessDenied(output or "Access is denied.")
    detail = output or f"exit status {result.returncode}"
    raise PrintError(f"{command} failed: {detail}")


class CommandPrintSink:
    """Print by running a spooler command with the file path appended."""

    def __init__(self, command: list[str], *, runner: CommandRunner = run_command) -> None:
        self.command = command
        self._runner = runner

    def print_file(self, file_path: Path) -> None:
        args = [*self.command, str(file_path)]
        LOGGER.debug("Running print command: %s", args)
        try:
            result = self._runner(args)
        except PermissionError as exc:
            raise PrintAccessDenied(str(exc)) from exc
        except OSError as exc:
            raise PrintError(f"{self.command[0]} could not be started: {exc}") from exc
        _check(result, self.command[0])


class WindowsSharePrintSink:
    """Copy the raw payload to the printer share on the local machine."""

    def __init__(
        self,
        share: str = DEFAULT_PRINTER_SHARE,
        *,
        computer_name: str | None = None,
        runner: CommandRunner = run_command,
    ) -> None:
        self.share = share
        self.computer_name = computer_name or os.environ.get("COMPUTERNAME", "localhost")
        self._runner = runner

    @property
    def destination(self) -> str:
        return f"\\\\{self.computer_name}\\{self.share}"

    def print_file(self, file_path: Path) -> None:
        args = ["cmd", "/C", "copy", str(file_path), self.destination]
        try:
            result = self._runner(args)
        except OSError as exc:
            raise PrintError(f"copy could not be started: {exc}") from exc
        _check(result, "copy")


class UnsupportedPrintSink:
    def __init__(self, system: str) -> None:
        self.system = system

    def print_file(self, file_path: Path) -> None:
        raise PrintError(f"OS not supported: {self.system}")


def print_sink_for_platform(system: str | None = None, *, share: str = DEFAULT_PRINTER_SHARE) -> PrintSink:
    system = system or platform.system()
    if system == "Windows":
        return WindowsSharePrintSink(share)
    if system == "Linux":
        return CommandPrintSink(["lpr", "-l"])
    return UnsupportedPrintSink(system)


def write_label_file(payload: str, item_id: str, *, directory: Path = LABELS_DIR) -> Path:
    """Write ``payload`` to a new file in ``directory`` and return its path.

    The caller owns the file and must pass it to ``remove_label_file``.

    Raises:
        OSError: If the directory or file cannot be created. Nothing is left
            on disk in that case.
    """
    directory.mkdir(parents=True, exist_ok=True)
    prefix = UNSAFE_NAME_RE.sub("_", item_id)[:64] or "label"
    fd, name = tempfile.mkstemp(prefix=f"{prefix}-", suffix=".txt", dir=directory)
    path = Path(name)
    try:
        with os.fdopen(fd, "w", encoding="utf-8") as handle:
            handle.write(payload)
    except OSError:
        remove_label_file(path)
        raise
    return path


def remove_label_file(path: Path) -> None:
    try:
        path.unlink()
    except FileNotFoundError:
        pass
    except OSError as exc:
        LOGGER.warning("Failed to clean up temporary file %s: %s", path, exc)
