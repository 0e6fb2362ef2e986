import io
import unittest
from dataclasses import replace
from pathlib import Path
from tempfile import TemporaryDirectory
from unittest import mock

from inventoryt_printer import dispatch
from inventoryt_printer.config import PrinterConfig
from inventoryt_printer.connectivity import NetworkError, ProbeResponse
from inventoryt_printer.dispatch import (
    ACCESS_DENIED_MESSAGE,
    ACK_PROMPT,
    EXIT_FAILURE,
    EXIT_OK,
    AppContext,
    DispatchController,
)
from inventoryt_printer.printing import PrintAccessDenied, PrintError
from inventoryt_printer.protocol_handler import (
    LaunchCommand,
    PlatformRegistration,
    ProbeError,
    RegistrationError,
    RegistrationOutcome,
    UnsupportedRegistration,
)
from inventoryt_printer.routing import UnknownCommand

EXE = LaunchCommand("/opt/inventoryt/bin/inventoryt-printer")


class FakeNotifier:
    def __init__(self) -> None:
        self.shown: list[tuple[str, str]] = []

    def show(self, title: str, message: str) -> None:
        self.shown.append((title, message))


class FakeConfigStore:
    def __init__(self, config: PrinterConfig | None = None, fail_writes: bool = False) -> None:
        self.config = config or PrinterConfig(test_endpoint="https://host/apptest")
        self.fail_writes = fail_writes
        self.updates: list[str] = []

    def get(self) -> PrinterConfig:
        return self.config

    def set_test_endpoint(self, url: str) -> None:
        if self.fail_writes:
            raise PermissionError("read-only file system")
        self.updates.append(url)
        self.config = replace(self.config, test_endpoint=url)


class ScriptedProbe:
    def __init__(self, answers: dict[str, object] | None = None) -> None:
        self.answers = answers or {}
        self.calls: list[str] = []

    def get(self, url: str, timeout: float) -> ProbeResponse:
        self.calls.append(url)
        answer = self.answers.get(url, NetworkError(url, "Connection refused"))
        if isinstance(answer, Exception):
            raise answer
        assert isinstance(answer, ProbeResponse)
        return answer


class RecordingPrintSink:
    """Captures the payload while the transient file still exists."""

    def __init__(self, error: Exception | None = None) -> None:
        self.error = error
        self.paths: list[Path] = []
        self.payloads: list[str] = []

    def print_file(self, file_path: Path) -> None:
        self.paths.append(file_path)
        self.payloads.append(file_path.read_text(encoding="utf-8"))
        if self.error is not None:
            raise self.error


class FakeProbe:
    def __init__(self, exists: bool, needs_update: bool = False) -> None:
        self._exists = exists
        self._needs_update = needs_update

    def exists(self) -> bool:
        return self._exists

    def current_target(self) -> str | None:
        return EXE.executable if self._exists else None

    def needs_update(self) -> bool:
        return self._needs_update


class FakeWriter:
    def __init__(
        self,
        outcome: RegistrationOutcome = RegistrationOutcome.REGISTERED,
        error: RegistrationError | None = None,
    ) -> None:
        self.outcome = outcome
        self.error = error
        self.registered: list[LaunchCommand] = []

    def register(self, launch: LaunchCommand) -> RegistrationOutcome:
        self.registered.append(launch)
        if self.error is not None:
            raise self.error
        return self.outcome


class DispatchTestCase(unittest.TestCase):
    temp_dir: TemporaryDirectory[str]

    def setUp(self) -> None:
        self.temp_dir = TemporaryDirectory()
        self.labels_dir = Path(self.temp_dir.name) / "labels"
        self.notifier = FakeNotifier()
        self.config_store = FakeConfigStore()
        self.http_probe = ScriptedProbe()
        self.print_sink = RecordingPrintSink()
        self.probe = FakeProbe(exists=True)
        self.writer = FakeWriter()
        self.console: list[str] = []
        self.prompts: list[str] = []
        self.sleeps: list[float] = []

    def tearDown(self) -> None:
        self.temp_dir.cleanup()

    def _controller(self, **overrides: object) -> DispatchController:
        context = AppContext(
            config_store=self.config_store,
            notifier=self.notifier,
            http_probe=self.http_probe,
            print_sink=self.print_sink,
            registration=PlatformRegistration("Linux", self.probe, self.writer),
            executable_resolver=lambda: EXE,
            acknowledge=self.prompts.append,
            console=self.console.append,
            labels_dir=self.labels_dir,
            sleep=self.sleeps.append,
        )
        for name, value in overrides.items():
            setattr(context, name, value)
        return DispatchController(context)


class RegistrationFlowTests(DispatchTestCase):
    """Runs without an activation URL."""

    def test_not_registered_registers_and_notifies(self) -> None:
        self.probe = FakeProbe(exists=False)
        status = self._controller().run([])

        self.assertEqual(status, EXIT_OK)
        self.assertEqual(self.writer.registered, [EXE])
        self.assertEqual(
            self.notifier.shown, [("Printer Service", "Application initialized and ready to print")]
        )

    def test_stale_registration_is_refreshed(self) -> None:
        self.probe = FakeProbe(exists=True, needs_update=True)
        status = self._controller().run([])

        self.assertEqual(status, EXIT_OK)
        self.assertEqual(self.writer.registered, [EXE])
        self.assertEqual(self.notifier.shown, [("Printer Service", "Application path has been updated")])

    def test_current_registration_only_notifies(self) -> None:
        status = self._controller().run([])

        self.assertEqual(status, EXIT_OK)
        self.assertEqual(self.writer.registered, [])
        self.assertEqual(self.notifier.shown, [("Printer Service", "Printer service is already registered")])

    def test_delegated_registration_exits_quietly(self) -> None:
        self.probe = FakeProbe(exists=False)
        self.writer = FakeWriter(RegistrationOutcome.DELEGATED)
        status = self._controller().run([])

        self.assertEqual(status, EXIT_OK)
        self.assertEqual(self.notifier.shown, [])

    def test_unsupported_platform_notifies(self) -> None:
        unsupported = UnsupportedRegistration("Darwin")
        controller = self._controller(registration=PlatformRegistration("Darwin", unsupported, unsupported))
        status = controller.run([])

        self.assertEqual(status, EXIT_OK)
        self.assertEqual(len(self.notifier.shown), 1)
        self.assertIn("not supported on Darwin", self.notifier.shown[0][1])

    def test_registration_error_is_reported(self) -> None:
        self.probe = FakeProbe(exists=False)
        self.writer = FakeWriter(error=RegistrationError("register MIME type", "xdg-mime not found"))
        status = self._controller().run([])

        self.assertEqual(status, EXIT_FAILURE)
        self.assertEqual(
            self.notifier.shown,
            [("Registration Error", "Failed to register MIME type: xdg-mime not found")],
        )

    def test_unresolvable_executable_is_reported(self) -> None:
        self.probe = FakeProbe(exists=False)

        def _fail() -> LaunchCommand:
            raise ProbeError("argv[0] is empty")

        status = self._controller(executable_resolver=_fail).run([])

        self.assertEqual(status, EXIT_FAILURE)
        self.assertEqual(self.writer.registered, [])
        self.assertEqual(self.notifier.shown[0][0], "Registration Error")
        self.assertIn("Failed to get executable path", self.notifier.shown[0][1])

    def test_non_scheme_argument_runs_registration(self) -> None:
        with self.assertLogs("inventoryt_printer.dispatch", level="WARNING"):
            status = self._controller().run(["--something-else"])

        self.assertEqual(status, EXIT_OK)
        self.assertEqual(self.notifier.shown, [("Printer Service", "Printer service is already registered")])

    def test_notifier_failure_does_not_change_status(self) -> None:
        class BrokenNotifier:
            def show(self, title: str, message: str) -> None:
                raise RuntimeError("no display")

        with self.assertLogs("inventoryt_printer.dispatch", level="ERROR"):
            status = self._controller(notifier=BrokenNotifier()).run([])
        self.assertEqual(status, EXIT_OK)


class ActivationTests(DispatchTestCase):
    def test_malformed_url_reports_parse_error(self) -> None:
        status = self._controller().run(["inventoryt-printer://print?id=%zz"])

        self.assertEqual(status, EXIT_FAILURE)
        self.assertEqual(len(self.notifier.shown), 1)
        self.assertEqual(self.notifier.shown[0][0], "Error")
        self.assertTrue(self.notifier.shown[0][1].startswith("Failed to parse URL: "))
        self.assertEqual(self.print_sink.paths, [])
        self.assertEqual(self.http_probe.calls, [])
        self.assertFalse(self.labels_dir.exists())

    def test_unknown_command_is_reported(self) -> None:
        status = self._controller().dispatch(UnknownCommand())

        self.assertEqual(status, EXIT_OK)
        self.assertEqual(self.notifier.shown[0][0], "Unknown Command")


class ConnectionTestCommandTests(DispatchTestCase):
    def test_success(self) -> None:
        self.http_probe = ScriptedProbe({"https://host/apptest": ProbeResponse(200)})
        status = self._controller().run(["inventoryt-printer://test"])

        self.assertEqual(status, EXIT_OK)
        self.assertEqual(self.notifier.shown, [("Test Success", "Connection test successful")])
        self.assertEqual(self.prompts, [])

    def test_insecure_fallback_success(self) -> None:
        self.http_probe = ScriptedProbe({"http://host/apptest": ProbeResponse(200)})
        status = self._controller().run(["inventoryt-printer://test"])

        self.assertEqual(status, EXIT_OK)
        self.assertEqual(self.http_probe.calls, ["https://host/apptest", "http://host/apptest"])
        self.assertEqual(self.notifier.shown, [("Test Success", "Connection test successful")])

    def test_failure_prints_diagnostics_and_waits(self) -> None:
        status = self._controller().run(["inventoryt-printer://test"])

        self.assertEqual(status, EXIT_FAILURE)
        self.assertEqual(len(self.http_probe.calls), 2)
        self.assertIn("Server is not accepting connections", self.console)
        self.assertEqual(self.prompts, [ACK_PROMPT])
        self.assertEqual(
            self.notifier.shown, [("Test Failed", "Connection test failed for https://host/apptest")]
        )


class ConfigCommandTests(DispatchTestCase):
    def test_missing_url(self) -> None:
        status = self._controller().run(["inventoryt-printer://config"])

        self.assertEqual(status, EXIT_FAILURE)
        self.assertEqual(self.config_store.updates, [])
        self.assertEqual(
            self.notifier.shown,
            [
                (
                    "Config Error",
                    "Missing url parameter. Usage: inventoryt-printer://config?url=<endpoint>",
                )
            ],
        )

    def test_url_is_persisted(self) -> None:
        status = self._controller().run(
            ["inventoryt-printer://config?url=https%3A%2F%2Fnew.example.com%2Fapptest"]
        )

        self.assertEqual(status, EXIT_OK)
        self.assertEqual(self.config_store.updates, ["https://new.example.com/apptest"])
        self.assertEqual(
            self.notifier.shown, [("Config Updated", "Test endpoint set to https://new.example.com/apptest")]
        )

    def test_write_failure_is_reported(self) -> None:
        self.config_store = FakeConfigStore(fail_writes=True)
        status = self._controller().run(["inventoryt-printer://config?url=http://x/apptest"])

        self.assertEqual(status, EXIT_FAILURE)
        self.assertEqual(self.notifier.shown[0][0], "Config Error")
        self.assertIn("Failed to update config: read-only file system", self.notifier.shown[0][1])


class PrintCommandTests(DispatchTestCase):
    """Label printing with the transient file checked before and after."""

    URL = "inventoryt-printer://print?id=ABC123&name=Widget"

    def test_success(self) -> None:
        status = self._controller().run([self.URL])

        self.assertEqual(status, EXIT_OK)
        self.assertEqual(
            self.print_sink.payloads,
            ["^XA^FT0,29^BY1^BCN,30,Y,N,N^FDABC123^FS^FT155,26^A0N,18,18^FDWidget^FS^XZ"],
        )
        self.assertFalse(self.print_sink.paths[0].exists())
        self.assertEqual(self.notifier.shown, [("Print Success", "Successfully printed label for Widget")])
        self.assertEqual(self.sleeps, [2.0])

    def test_access_denied(self) -> None:
        self.print_sink = RecordingPrintSink(PrintAccessDenied("Access is denied."))
        status = self._controller().run([self.URL])

        self.assertEqual(status, EXIT_FAILURE)
        self.assertEqual(self.notifier.shown, [("Print Error", ACCESS_DENIED_MESSAGE)])
        self.assertFalse(self.print_sink.paths[0].exists())
        self.assertEqual(self.sleeps, [])

    def test_generic_print_error(self) -> None:
        self.print_sink = RecordingPrintSink(PrintError("lpr failed: no default destination"))
        status = self._controller().run([self.URL])

        self.assertEqual(status, EXIT_FAILURE)
        self.assertEqual(
            self.notifier.shown, [("Print Error", "Print failed: lpr failed: no default destination")]
        )
        self.assertFalse(self.print_sink.paths[0].exists())

    def test_file_creation_failure(self) -> None:
        self.labels_dir.write_text("not a directory", encoding="utf-8")
        status = self._controller().run([self.URL])

        self.assertEqual(status, EXIT_FAILURE)
        self.assertEqual(self.print_sink.paths, [])
        self.assertEqual(self.notifier.shown[0][0], "Print Error")
        self.assertTrue(self.notifier.shown[0][1].startswith("Failed to create file: "))

    def test_missing_name_prints_empty_text(self) -> None:
        status = self._controller().run(["inventoryt-printer://print?id=ABC123"])

        self.assertEqual(status, EXIT_OK)
        self.assertIn("^FD^FS", self.print_sink.payloads[0])


class AcknowledgePromptTests(DispatchTestCase):
    """The failed-test prompt with and without a console."""

    def test_prompt_is_skipped_without_stdin(self) -> None:
        with mock.patch.object(dispatch.sys, "stdin", None):
            with mock.patch("builtins.input") as fake_input:
                dispatch._wait_for_enter(ACK_PROMPT)
        fake_input.assert_not_called()

    def test_prompt_is_skipped_when_stdin_is_closed(self) -> None:
        closed = io.StringIO()
        closed.close()
        with mock.patch.object(dispatch.sys, "stdin", closed):
            with mock.patch("builtins.input") as fake_input:
                dispatch._wait_for_enter(ACK_PROMPT)
        fake_input.assert_not_called()

    def test_end_of_input_counts_as_acknowledged(self) -> None:
        with mock.patch.object(dispatch.sys, "stdin", io.StringIO("")):
            with mock.patch("builtins.input", side_effect=EOFError) as fake_input:
                dispatch._wait_for_enter(ACK_PROMPT)
        fake_input.assert_called_once_with(ACK_PROMPT)

    def test_windowless_failed_test_still_notifies(self) -> None:
        controller = self._controller(acknowledge=dispatch._wait_for_enter)
        with mock.patch.object(dispatch.sys, "stdin", None):
            status = controller.run(["inventoryt-printer://test"])

        self.assertEqual(status, EXIT_FAILURE)
        self.assertEqual(
            self.notifier.shown, [("Test Failed", "Connection test failed for https://host/apptest")]
        )


if __name__ == "__main__":
    unittest.main()
