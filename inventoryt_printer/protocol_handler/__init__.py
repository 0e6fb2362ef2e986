"""Register the inventoryt-printer:// protocol handler for the current platform."""

from __future__ import annotations

import platform
from dataclasses import dataclass

from inventoryt_printer.protocol_handler.shared import (
    LOGGER,
    SCHEME,
    SCHEME_PREFIX,
    LaunchCommand,
    ProbeError,
    RegistrationError,
    RegistrationOutcome,
    RegistrationProbe,
    RegistrationState,
    RegistrationWriter,
    current_launch_command,
)

__all__ = (
    "SCHEME",
    "SCHEME_PREFIX",
    "LaunchCommand",
    "PlatformRegistration",
    "ProbeError",
    "RegistrationError",
    "RegistrationOutcome",
    "RegistrationState",
    "UnsupportedRegistration",
    "current_launch_command",
    "for_platform",
)


class UnsupportedRegistration:
    """Probe and writer for platforms without a registration mechanism."""

    def __init__(self, system: str) -> None:
        self.system = system

    def exists(self) -> bool:
        return False

    def current_target(self) -> str | None:
        return None

    def needs_update(self) -> bool:
        return False

    def register(self, launch: LaunchCommand) -> RegistrationOutcome:
        LOGGER.info("Protocol handler registration is not supported on %s.", self.system)
        return RegistrationOutcome.UNSUPPORTED


@dataclass(frozen=True)
class PlatformRegistration:
    system: str
    probe: RegistrationProbe
    writer: RegistrationWriter


def for_platform(system: str | None = None) -> PlatformRegistration:
    """Select the registration implementation once, at process start."""
    system = system or platform.system()
    if system == "Windows":
        from inventoryt_printer.protocol_handler.windows import (
            WindowsRegistrationProbe,
            WindowsRegistrationWriter,
        )

        return PlatformRegistration(system, WindowsRegistrationProbe(), WindowsRegistrationWriter())
    if system == "Linux":
        from inventoryt_printer.protocol_handler.linux import (
            LinuxRegistrationProbe,
            LinuxRegistrationWriter,
        )

        return PlatformRegistration(system, LinuxRegistrationProbe(), LinuxRegistrationWriter())

    unsupported = UnsupportedRegistration(system)
    return PlatformRegistration(system, unsupported, unsupported)
