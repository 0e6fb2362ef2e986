"""Shared helpers for registering the inventoryt-printer:// protocol handler."""

from __future__ import annotations

import enum
import logging
import shutil
import subprocess
import sys
from dataclasses import dataclass
from pathlib import Path
from typing import Callable, Protocol, Sequence

SCHEME = "inventoryt-printer"
SCHEME_PREFIX = f"{SCHEME}://"
PROTOCOL_DESCRIPTION = "URL:Inventory Printer Protocol"
APP_DISPLAY_NAME = "Inventory Printer"
MODULE_NAME = "inventoryt_printer"
LOGGER = logging.getLogger(__name__)


class ProbeError(OSError):
    """Raised when the registration state cannot be read."""


class RegistrationError(RuntimeError):
    """Raised when writing the OS registration fails.

    ``step`` names the step that failed (e.g. ``"write desktop entry"``) and
    ``cause`` keeps the underlying platform error, if any.
    """

    def __init__(self, step: str, cause: BaseException | str | None = None) -> None:
        self.step = step
        self.cause = cause
        message = f"Failed to {step}"
        if cause:
            message = f"{message}: {cause}"
        super().__init__(message)


class RegistrationOutcome(enum.Enum):
    """Result of a registration attempt that did not fail.

    ``DELEGATED`` means an elevated copy of the process was launched to do the
    work; the caller must exit without reporting success or failure.
    """

    REGISTERED = "registered"
    DELEGATED = "delegated"
    UNSUPPORTED = "unsupported"


@dataclass(frozen=True)
class RegistrationState:
    """Snapshot of the OS scheme-handler registration."""

    exists: bool
    current_target_path: str | None = None


@dataclass(frozen=True)
class LaunchCommand:
    """What the OS runs for each activation, before the URL argument.

    ``executable`` is the absolute program path compared by the probes;
    ``arguments`` are fixed leading arguments such as ``-m inventoryt_printer``.
    """

    executable: str
    arguments: tuple[str, ...] = ()

    def __str__(self) -> str:
        return " ".join((self.executable, *self.arguments))


@dataclass(frozen=True)
class CommandResult:
    returncode: int
    output: str = ""


CommandRunner = Callable[[Sequence[str]], CommandResult]


class RegistrationProbe(Protocol):
    def exists(self) -> bool:
        ...

    def current_target(self) -> str | None:
        ...

    def needs_update(self) -> bool:
        ...


class RegistrationWriter(Protocol):
    def register(self, launch: LaunchCommand) -> RegistrationOutcome:
        """Create or update the registration.

        Raises:
            RegistrationError: If any platform step fails.
        """
        ...


def run_command(args: Sequence[str]) -> CommandResult:
    """Run an external command to completion and capture its combined output.

    Raises:
        FileNotFoundError: If the program does not exist.
    """
    result = subprocess.run(
        list(args),
        check=False,
        stdout=subprocess.PIPE,
        stderr=subprocess.STDOUT,
        text=True,
    )
    return CommandResult(returncode=result.returncode, output=result.stdout or "")




def _existing_file(candidate: str, which: Callable[[str], str | None]) -> str:
    # pip's Windows console-script wrapper strips ".exe" from argv[0].
    for option in (candidate, f"{candidate}.exe"):
        path = Path(option)
        if path.is_file():
            return str(path.resolve())
    found = which(candidate)
    if found:
        return str(Path(found).resolve())
    raise ProbeError(f"Unable to resolve executable path {candidate!r}")


def current_launch_command(
    argv: Sequence[str] | None = None,
    *,
    frozen: bool | None = None,
    interpreter: str | None = None,
    which: Callable[[str], str | None] = shutil.which,
) -> LaunchCommand:
    """Return the command the OS should launch for the scheme.

    Frozen builds register the bundled executable. Under ``python -m``,
    ``argv[0]`` is the package's ``__main__.py``, so the interpreter is
    registered with ``-m inventoryt_printer``. Otherwise ``argv[0]`` names the
    installed console script.

    Raises:
        ProbeError: If the program cannot be resolved to an existing file.
    """
    argv = sys.argv if argv is None else argv
    frozen = bool(getattr(sys, "frozen", False)) if frozen is None else frozen
    interpreter = sys.executable if interpreter is None else interpreter

    if frozen:
        if not interpreter:
            raise ProbeError("Unable to determine the running executable")
        return LaunchCommand(_existing_file(interpreter, which))

    candidate = argv[0] if argv else ""
    if not candidate:
        raise ProbeError("Unable to determine the running executable")
    if candidate.endswith((".py", ".pyw")):
        if not interpreter:
            raise ProbeError("Unable to determine the Python interpreter")
        return LaunchCommand(_existing_file(interpreter, which), ("-m", MODULE_NAME))
    return LaunchCommand(_existing_file(candidate, which))
