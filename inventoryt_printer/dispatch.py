from __future__ import annotations

"""Top-level dispatch for a single process invocation.

One invocation either (a) checks and refreshes the OS scheme registration when
no activation URL is supplied, or (b) routes an inventoryt-printer:// URL to
the connection test, config update or print handler. Every branch ends with
a notification (or, for a failed connection test, a console prompt first).
"""

import logging
import sys
import time
from dataclasses import dataclass
from pathlib import Path
from typing import Callable, Protocol, Sequence

from inventoryt_printer.config import PrinterConfig
from inventoryt_printer.connectivity import (
    PROBE_TIMEOUT_SECONDS,
    HTTPProbe,
    diagnose,
    run_connection_test,
)
from inventoryt_printer.labels import build_label
from inventoryt_printer.logs import log_success
from inventoryt_printer.notifications import NotificationOutcome, Notifier
from inventoryt_printer.printing import (
    LABELS_DIR,
    PrintAccessDenied,
    PrintError,
    PrintSink,
    remove_label_file,
    write_label_file,
)
from inventoryt_printer.protocol_handler import (
    SCHEME_PREFIX,
    LaunchCommand,
    PlatformRegistration,
    ProbeError,
    RegistrationError,
    RegistrationOutcome,
    current_launch_command,
)
from inventoryt_printer.routing import (
    Command,
    ConfigCommand,
    ConnectionTestCommand,
    ParseError,
    PrintCommand,
    classify,
)

SERVICE_TITLE = "Printer Service"
ACCESS_DENIED_MESSAGE = "Access denied. Please run the application with elevated privileges."
ACK_PROMPT = "Press Enter to continue..."

EXIT_OK = 0
EXIT_FAILURE = 1


class ConfigStore(Protocol):
    def get(self) -> PrinterConfig:
        ...

    def set_test_endpoint(self, url: str) -> None:
        ...


def _wait_for_enter(prompt: str) -> None:
    # Windowless launches (pythonw, --noconsole builds) have no stdin to read.
    stdin = sys.stdin
    if stdin is None or stdin.closed:
        return
    try:
        input(prompt)
    except (EOFError, OSError):
        pass


@dataclass
class AppContext:
    """Collaborators for one invocation, built once at startup."""

    config_store: ConfigStore
    notifier: Notifier
    http_probe: HTTPProbe
    print_sink: PrintSink
    registration: PlatformRegistration
    executable_resolver: Callable[[], LaunchCommand] = current_launch_command
    acknowledge: Callable[[str], None] = _wait_for_enter
    console: Callable[[str], None] = print
    labels_dir: Path = LABELS_DIR
    probe_timeout: float = PROBE_TIMEOUT_SECONDS
    print_settle_seconds: float = 2.0
    sleep: Callable[[float], None] = time.sleep


class DispatchController:
    """Run the registration check or dispatch an activation URL."""

    def __init__(self, context: AppContext, *, logger: logging.Logger | None = None) -> None:
        self._context = context
        self._logger = logger or logging.getLogger(__name__)

    def run(self, args: Sequence[str]) -> int:
        """Handle one invocation and return the process exit status."""
        if args:
            if args[0].startswith(SCHEME_PREFIX):
                return self.handle_activation(args[0])
            self._logger.warning("Ignoring argument %r; it is not a %s URL", args[0], SCHEME_PREFIX)
        return self.ensure_registered()

    def _notify(self, outcome: NotificationOutcome) -> None:
        try:
            self._context.notifier.show(outcome.title, outcome.message)
        except Exception:
            self._logger.exception("Notification failed")

    # Registration -------------------------------------------------------

    def ensure_registered(self) -> int:
        """Create the scheme registration, or refresh it if it points elsewhere."""
        registration = self._context.registration
        if not registration.probe.exists():
            self._logger.info("Protocol handler not registered; registering")
            return self._register(
                NotificationOutcome(SERVICE_TITLE, "Application initialized and ready to print")
            )
        if registration.probe.needs_update():
            self._logger.info("Protocol handler path is stale; updating")
            return self._register(NotificationOutcome(SERVICE_TITLE, "Application path has been updated"))

        self._notify(NotificationOutcome(SERVICE_TITLE, "Printer service is already registered"))
        return EXIT_OK

    def _register(self, success: NotificationOutcome) -> int:
        try:
            launch = self._context.executable_resolver()
            outcome = self._context.registration.writer.register(launch)
        except ProbeError as exc:
            self._logger.error("Failed to get executable path: %s", exc)
            self._notify(NotificationOutcome("Registration Error", f"Failed to get executable path: {exc}"))
            return EXIT_FAILURE
        except RegistrationError as exc:
            self._logger.error("Protocol registration failed: %s", exc)
            self._notify(NotificationOutcome("Registration Error", str(exc)))
            return EXIT_FAILURE

        if outcome is RegistrationOutcome.DELEGATED:
            self._logger.info("Registration handed off to an elevated process; exiting")
            return EXIT_OK
        if outcome is RegistrationOutcome.UNSUPPORTED:
            self._notify(
                NotificationOutcome(
                    SERVICE_TITLE,
                    f"Protocol registration is not supported on {self._context.registration.system}",
                )
            )
            return EXIT_OK

        log_success(self._logger, "Protocol handler registered for %s", launch)
        self._notify(success)
        return EXIT_OK

    # Activation ---------------------------------------------------------

    def handle_activation(self, raw_url: str) -> int:
        self._logger.info("Received request: %s", raw_url)
        try:
            command = classify(raw_url)
        except ParseError as exc:
            self._logger.error("Failed to parse URL: %s", exc)
            self._notify(NotificationOutcome("Error", f"Failed to parse URL: {exc}"))
            return EXIT_FAILURE
        return self.dispatch(command)

    def dispatch(self, command: Command) -> int:
        if isinstance(command, ConnectionTestCommand):
            return self.handle_test()
        if isinstance(command, ConfigCommand):
            return self.handle_config(command)
        if isinstance(command, PrintCommand):
            return self.handle_print(command)

        self._logger.warning("Unknown command %r; nothing to do", command)
        self._notify(NotificationOutcome("Unknown Command", "The requested action is not supported"))
        return EXIT_OK

    def handle_test(self) -> int:
        endpoint = self._context.config_store.get().test_endpoint
        self._logger.info("Running connection test")
        result = run_connection_test(
            self._context.http_probe, endpoint, timeout=self._context.probe_timeout
        )
        if result.ok:
            log_success(self._logger, "Test successful")
            self._notify(NotificationOutcome("Test Success", "Connection test successful"))
            return EXIT_OK

        # The console window closes on exit.
        last = result.last
        for line in diagnose(last) if last else []:
            self._context.console(line)
        self._context.acknowledge(ACK_PROMPT)
        self._notify(NotificationOutcome("Test Failed", f"Connection test failed for {endpoint}"))
        return EXIT_FAILURE

    def handle_config(self, command: ConfigCommand) -> int:
        if not command.url:
            self._logger.error("Config request is missing the url parameter")
            self._notify(
                NotificationOutcome(
                    "Config Error",
                    f"Missing url parameter. Usage: {SCHEME_PREFIX}config?url=<endpoint>",
                )
            )
            return EXIT_FAILURE

        try:
            self._context.config_store.set_test_endpoint(command.url)
        except OSError as exc:
            self._logger.error("Failed to update config: %s", exc)
            self._notify(NotificationOutcome("Config Error", f"Failed to update config: {exc}"))
            return EXIT_FAILURE

        log_success(self._logger, "Test endpoint updated to %s", command.url)
        self._notify(NotificationOutcome("Config Updated", f"Test endpoint set to {command.url}"))
        return EXIT_OK

    def handle_print(self, command: PrintCommand) -> int:
        self._logger.info("Processing print request for item %r", command.item_id)
        payload = build_label(command.item_id, command.item_name)
        try:
            label_path = write_label_file(payload, command.item_id, directory=self._context.labels_dir)
        except OSError as exc:
            self._logger.error("Failed to create file: %s", exc)
            self._notify(NotificationOutcome("Print Error", f"Failed to create file: {exc}"))
            return EXIT_FAILURE
        try:
            return self._print_label(label_path, command)
        finally:
            remove_label_file(label_path)

    def _print_label(self, label_path: Path, command: PrintCommand) -> int:
        try:
            self._context.print_sink.print_file(label_path)
        except PrintAccessDenied as exc:
            self._logger.error("%s (%s)", ACCESS_DENIED_MESSAGE, exc)
            self._notify(NotificationOutcome("Print Error", ACCESS_DENIED_MESSAGE))
            return EXIT_FAILURE
        except PrintError as exc:
            self._logger.error("Print failed: %s", exc)
            self._notify(NotificationOutcome("Print Error", f"Print failed: {exc}"))
            return EXIT_FAILURE

        log_success(self._logger, "Successfully printed label for %s", command.item_name)
        self._notify(NotificationOutcome("Print Success", f"Successfully printed label for {command.item_name}"))
        # The spooler reads the file asynchronously.
        self._context.sleep(self._context.print_settle_seconds)
        return EXIT_OK
