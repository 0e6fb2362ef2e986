"""Windows protocol handler registration."""

from __future__ import annotations

import os
import subprocess
from typing import Callable, Protocol

from inventoryt_printer.protocol_handler.registry import Registry, WinRegistry
from inventoryt_printer.protocol_handler.shared import (
    LOGGER,
    PROTOCOL_DESCRIPTION,
    SCHEME,
    LaunchCommand,
    ProbeError,
    RegistrationError,
    RegistrationOutcome,
    RegistrationState,
    current_launch_command,
)

SCHEME_KEY = SCHEME
COMMAND_KEY = f"{SCHEME}\\shell\\open\\command"
SW_NORMAL = 1


def open_command(launch: LaunchCommand) -> str:
    parts = [f'"{launch.executable}"']
    if launch.arguments:
        parts.append(subprocess.list2cmdline(launch.arguments))
    parts.append('"%1"')
    return " ".join(parts)


def command_target(command: str) -> str:
    """Extract the program from an ``"<exe>" [args] "%1"`` command value."""
    command = command.strip()
    if command.startswith('"'):
        return command[1:].split('"', 1)[0]
    return command.split(" ", 1)[0]


class Elevator(Protocol):
    def is_admin(self) -> bool:
        ...

    def relaunch_elevated(self, launch: LaunchCommand) -> None:
        """Start ``launch`` with the ``runas`` verb and return immediately."""
        ...


class ShellElevator:
    """Privilege check and UAC relaunch through shell32."""

    def is_admin(self) -> bool:
        import ctypes

        try:
            return bool(ctypes.windll.shell32.IsUserAnAdmin())
        except (AttributeError, OSError):
            return False

    def relaunch_elevated(self, launch: LaunchCommand) -> None:
        import ctypes

        # ShellExecuteW returns a value greater than 32 on success.
        code = ctypes.windll.shell32.ShellExecuteW(
            None,
            "runas",
            launch.executable,
            subprocess.list2cmdline(launch.arguments),
            os.getcwd(),
            SW_NORMAL,
        )
        if code <= 32:
            raise OSError(f"ShellExecuteW failed with code {code}")


class WindowsRegistrationProbe:
    """Read the machine-wide ``Classes\\inventoryt-printer`` registration."""

    def __init__(
        self,
        registry: Registry | None = None,
        *,
        executable_resolver: Callable[[], LaunchCommand] = current_launch_command,
    ) -> None:
        self._registry = registry or WinRegistry()
        self._executable_resolver = executable_resolver

    def exists(self) -> bool:
        try:
            return self._registry.exists(SCHEME_KEY)
        except OSError as exc:
            LOGGER.warning("Could not query registry key %s: %s", SCHEME_KEY, exc)
            return False

    def current_target(self) -> str | None:
        try:
            command = self._registry.read_default(COMMAND_KEY)
        except OSError as exc:
            raise ProbeError(f"Unable to read {COMMAND_KEY}: {exc}") from exc
        if command is None:
            return None
        return command_target(command)

    def state(self) -> RegistrationState:
        if not self.exists():
            return RegistrationState(exists=False)
        try:
            return RegistrationState(exists=True, current_target_path=self.current_target())
        except ProbeError:
            return RegistrationState(exists=True)

    def needs_update(self) -> bool:
        """Return True unless the open command targets the running executable.

        Windows paths are case-insensitive, so the comparison is too.
        """
        try:
            registered = self.current_target()
            executable = self._executable_resolver().executable
        except ProbeError as exc:
            LOGGER.warning("Registration probe failed, assuming stale: %s", exc)
            return True
        if registered is None:
            return True
        if registered.casefold() != executable.casefold():
            LOGGER.info("Registered path %s differs from %s", registered, executable)
            return True
        return False


class WindowsRegistrationWriter:
    """Register the scheme under HKLM\\SOFTWARE\\Classes.

    Side effects: needs administrator rights. Without them an elevated copy of
    the process is launched and ``RegistrationOutcome.DELEGATED`` is returned;
    the caller is expected to exit right away.
    """

    def __init__(self, registry: Registry | None = None, *, elevator: Elevator | None = None) -> None:
        self._registry = registry or WinRegistry()
        self._elevator = elevator or ShellElevator()

    def register(self, launch: LaunchCommand) -> RegistrationOutcome:
        if not self._elevator.is_admin():
            LOGGER.info("Administrator rights required; relaunching %s elevated", launch)
            try:
                self._elevator.relaunch_elevated(launch)
            except OSError as exc:
                LOGGER.error("Failed to elevate privileges: %s", exc)
            return RegistrationOutcome.DELEGATED

        try:
            self._registry.write(SCHEME_KEY, {None: PROTOCOL_DESCRIPTION, "URL Protocol": ""})
            self._registry.write(COMMAND_KEY, open_command(launch))
        except OSError as exc:
            raise RegistrationError("write registry keys", exc) from exc

        LOGGER.info("Windows protocol handler registered for %s", launch)
        return RegistrationOutcome.REGISTERED
