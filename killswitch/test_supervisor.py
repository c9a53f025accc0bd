"""Tests for killswitch.supervisor module"""
import signal
import threading
import unittest
from unittest.mock import Mock, patch

from killswitch.models import ProcessState, Readiness, SpawnError
from killswitch.supervisor import REASON_NOT_READY, ProcessSupervisor, build_client_command


class FakeProcess:
    """Popen stand-in; `stubborn` processes ignore SIGTERM"""

    def __init__(self, returncode=None, stubborn=False):
        self.pid = 4242
        self.returncode = returncode
        self.stubborn = stubborn
        self.signals = []

    def poll(self):
        return self.returncode

    def terminate(self):
        self.signals.append(signal.SIGTERM)
        if not self.stubborn:
            self.returncode = -signal.SIGTERM

    def kill(self):
        self.signals.append(signal.SIGKILL)
        self.returncode = -signal.SIGKILL

    def wait(self):
        return self.returncode


class FakeMonitor:
    """Readiness monitor that reports a fixed verdict on start"""

    def __init__(self, verdict, after=None):
        self.verdict = verdict
        self.after = after
        self.stopped = False

    def start(self, on_result):
        on_result(self.verdict)
        if self.after:
            self.after()

    def stop(self):
        self.stopped = True


class TestBuildClientCommand(unittest.TestCase):
    def test_plain(self):
        self.assertEqual(
            build_client_command("openvpn", "/config/client.ovpn", "/config"),
            ["openvpn", "--config", "/config/client.ovpn", "--cd", "/config"],
        )

    def test_with_hook_and_credentials(self):
        command = build_client_command(
            "openvpn",
            "/config/client.ovpn",
            "/config",
            route_up=["/usr/local/bin/tunnelguard", "killswitch", "10.10.0.0/24", "/config/my client.ovpn"],
            auth_secret="/run/secrets/vpn",
        )
        self.assertEqual(command[5:8], ["--script-security", "2", "--route-up"])
        self.assertEqual(
            command[8], "/usr/local/bin/tunnelguard killswitch 10.10.0.0/24 '/config/my client.ovpn'"
        )
        self.assertEqual(command[-2:], ["--auth-user-pass", "/run/secrets/vpn"])


class TestStart(unittest.TestCase):
    def test_start_records_pid(self):
        proc = FakeProcess()
        popen = Mock(return_value=proc)
        supervisor = ProcessSupervisor(popen=popen)

        handle = supervisor.start(["openvpn"], cwd="/config")

        popen.assert_called_once_with(["openvpn"], cwd="/config")
        self.assertEqual(handle.pid, 4242)
        self.assertEqual(handle.state, ProcessState.running)
        self.assertTrue(supervisor.is_alive())

    def test_spawn_failure(self):
        supervisor = ProcessSupervisor(popen=Mock(side_effect=FileNotFoundError("openvpn")))
        with self.assertRaises(SpawnError):
            supervisor.start(["openvpn"])
        self.assertEqual(supervisor.handle.state, ProcessState.failed)
        self.assertFalse(supervisor.is_alive())


class TestTerminate(unittest.TestCase):
    """Test graceful stop and escalation"""

    def test_graceful_exit(self):
        proc = FakeProcess()
        sleep = Mock()
        supervisor = ProcessSupervisor(popen=Mock(return_value=proc), sleep=sleep)
        supervisor.start(["openvpn"])

        code = supervisor.terminate()

        self.assertEqual(code, -signal.SIGTERM)
        self.assertEqual(proc.signals, [signal.SIGTERM])
        self.assertEqual(supervisor.handle.state, ProcessState.stopped)
        sleep.assert_not_called()

    def test_escalates_to_kill_after_grace_period(self):
        """SIGTERM ignored for the whole grace period -> SIGKILL"""
        proc = FakeProcess(stubborn=True)
        waited = []
        supervisor = ProcessSupervisor(grace_period=10, popen=Mock(return_value=proc), sleep=waited.append)
        supervisor.start(["openvpn"])

        with self.assertLogs("killswitch.supervisor", level="WARNING"):
            code = supervisor.terminate()

        self.assertEqual(proc.signals, [signal.SIGTERM, signal.SIGKILL])
        self.assertEqual(code, -signal.SIGKILL)
        self.assertEqual(sum(waited), 10)
        self.assertTrue(all(w == 1 for w in waited))

    def test_terminate_is_idempotent(self):
        proc = FakeProcess()
        supervisor = ProcessSupervisor(popen=Mock(return_value=proc), sleep=Mock())
        supervisor.start(["openvpn"])

        first = supervisor.terminate()
        second = supervisor.terminate()

        self.assertEqual(first, second)
        self.assertEqual(proc.signals, [signal.SIGTERM])

    def test_terminate_without_process(self):
        self.assertIsNone(ProcessSupervisor().terminate())


class TestShutdownRequests(unittest.TestCase):
    def test_first_reason_wins(self):
        supervisor = ProcessSupervisor()
        supervisor.request_shutdown("SIGTERM")
        supervisor.request_shutdown("SIGINT")
        self.assertEqual(supervisor.shutdown_reason, "SIGTERM")

    def test_signal_maps_to_request(self):
        supervisor = ProcessSupervisor()
        supervisor._on_signal(signal.SIGQUIT, None)
        self.assertEqual(supervisor.shutdown_reason, "SIGQUIT")

    def test_signal_while_lock_held(self):
        """The handler can interrupt the main thread inside terminate() or _mark_stopped()"""
        supervisor = ProcessSupervisor()

        def deliver():
            with supervisor._lock:
                supervisor._on_signal(signal.SIGTERM, None)

        worker = threading.Thread(target=deliver, daemon=True)
        worker.start()
        worker.join(2)

        self.assertFalse(worker.is_alive())
        self.assertEqual(supervisor.shutdown_reason, "SIGTERM")

    def test_nested_signal_during_handler(self):
        """A second signal arriving mid-request is a no-op"""
        supervisor = ProcessSupervisor()
        set_event = supervisor._shutdown.set
        nested = []

        def set_after_nested_signal():
            if not nested:
                nested.append(signal.SIGINT)
                supervisor._on_signal(signal.SIGINT, None)
            set_event()

        supervisor._shutdown.set = set_after_nested_signal
        worker = threading.Thread(target=supervisor._on_signal, args=(signal.SIGTERM, None), daemon=True)
        worker.start()
        worker.join(2)

        self.assertFalse(worker.is_alive())
        self.assertTrue(supervisor._shutdown.is_set())
        self.assertEqual(supervisor.shutdown_reason, "SIGTERM")

    @patch("killswitch.supervisor.signal.signal")
    def test_handlers_installed_for_all_signals(self, mock_signal):
        supervisor = ProcessSupervisor()
        supervisor.install_signal_handlers()
        installed = [c.args[0] for c in mock_signal.call_args_list]
        self.assertEqual(installed, [signal.SIGINT, signal.SIGTERM, signal.SIGQUIT])


@patch("killswitch.supervisor.signal.signal")
class TestRun(unittest.TestCase):
    """Test the supervision loop end to end"""

    def supervisor(self, proc, monitor=None):
        factory = (lambda is_alive, event: monitor) if monitor else None
        return ProcessSupervisor(popen=Mock(return_value=proc), readiness_factory=factory, sleep=Mock(), tick=0.01)

    def test_child_exit_code_propagates(self, _):
        supervisor = self.supervisor(FakeProcess(returncode=3))
        self.assertEqual(supervisor.run(["openvpn"]), 3)
        self.assertEqual(supervisor.handle.state, ProcessState.stopped)

    def test_killed_child_maps_to_shell_status(self, _):
        supervisor = self.supervisor(FakeProcess(returncode=-9))
        self.assertEqual(supervisor.run(["openvpn"]), 137)

    def test_readiness_failure_stops_client(self, _):
        """Never-ready tunnel -> client terminated and exit status 1"""
        proc = FakeProcess()
        monitor = FakeMonitor(Readiness.failed)
        supervisor = self.supervisor(proc, monitor)

        with self.assertLogs("killswitch.supervisor", level="ERROR"):
            code = supervisor.run(["openvpn"])

        self.assertEqual(code, 1)
        self.assertEqual(supervisor.shutdown_reason, REASON_NOT_READY)
        self.assertEqual(proc.signals, [signal.SIGTERM])
        self.assertTrue(monitor.stopped)

    def test_signal_shutdown_exits_zero(self, _):
        proc = FakeProcess()
        holder = {}
        monitor = FakeMonitor(Readiness.ready, after=lambda: holder["supervisor"]._on_signal(signal.SIGTERM, None))
        supervisor = self.supervisor(proc, monitor)
        holder["supervisor"] = supervisor

        self.assertEqual(supervisor.run(["openvpn"]), 0)
        self.assertEqual(supervisor.readiness, Readiness.ready)
        self.assertEqual(supervisor.shutdown_reason, "SIGTERM")
        self.assertEqual(proc.signals, [signal.SIGTERM])

    def test_readiness_failure_after_exit_is_ignored(self, _):
        supervisor = self.supervisor(FakeProcess(returncode=0), FakeMonitor(Readiness.failed))
        self.assertEqual(supervisor.run(["openvpn"]), 0)
        self.assertIsNone(supervisor.shutdown_reason)


if __name__ == "__main__":
    unittest.main()
