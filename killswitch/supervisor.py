"""
Lifecycle supervision of the tunnel client.

ProcessSupervisor spawns the client, lets ReadinessMonitor watch it from a
thread, and turns SIGINT/SIGTERM/SIGQUIT or a readiness failure into one
idempotent shutdown: SIGTERM, a grace period, then SIGKILL.
"""

import logging
import shlex
import signal
import subprocess
import threading
import time
from typing import Callable, List, Optional

from .constants import GRACE_PERIOD, SUPERVISOR_TICK, TERMINATE_POLL_INTERVAL
from .models import ProcessHandle, ProcessState, Readiness, SpawnError
from .readiness import ReadinessMonitor

logger = logging.getLogger(__name__)

SHUTDOWN_SIGNALS = (signal.SIGINT, signal.SIGTERM, signal.SIGQUIT)

REASON_NOT_READY = "tunnel not ready"

ReadinessFactory = Callable[[Callable[[], bool], threading.Event], ReadinessMonitor]


def build_client_command(
    openvpn_bin: str,
    config_file: str,
    config_dir: str,
    route_up: Optional[List[str]] = None,
    auth_secret: Optional[str] = None,
) -> List[str]:
    """
    Assemble the OpenVPN command line.

    Args:
        openvpn_bin: Client binary
        config_file: Resolved client configuration
        config_dir: Working directory for the client (--cd)
        route_up: Hook command run once routes are up (killswitch entry point)
        auth_secret: Credentials file for --auth-user-pass
    """
    command = [openvpn_bin, "--config", config_file, "--cd", config_dir]
    if route_up:
        command += ["--script-security", "2", "--route-up", shlex.join(route_up)]
    if auth_secret:
        command += ["--auth-user-pass", auth_secret]
    return command


class ProcessSupervisor:
    """Owns the single tunnel client process of this namespace."""

    def __init__(
        self,
        grace_period: float = GRACE_PERIOD,
        readiness_factory: Optional[ReadinessFactory] = None,
        popen: Callable[..., subprocess.Popen] = subprocess.Popen,
        sleep: Callable[[float], None] = time.sleep,
        tick: float = SUPERVISOR_TICK,
    ):
        """
        Initialize process supervisor.

        Args:
            grace_period: Seconds between SIGTERM and SIGKILL
            readiness_factory: Builds the ReadinessMonitor from (is_alive, shutdown_event);
                None disables readiness checking
            popen: Process factory
            sleep: Suspension used while waiting for the child to exit
            tick: How often the control loop checks the child
        """
        self.grace_period = grace_period
        self.handle = ProcessHandle()
        self.readiness: Optional[Readiness] = None
        self.shutdown_reason: Optional[str] = None
        self._readiness_factory = readiness_factory
        self._popen = popen
        self._sleep = sleep
        self._tick = tick
        self._proc: Optional[subprocess.Popen] = None
        self._shutdown = threading.Event()
        self._lock = threading.Lock()

    # Lifecycle

    def start(self, command: List[str], cwd: Optional[str] = None) -> ProcessHandle:
        """
        Spawn the client. Its stdout/stderr are inherited, not captured.

        Raises:
            SpawnError: If the process could not be started
        """
        logger.info(f"Starting tunnel client: {shlex.join(command)}")
        try:
            self._proc = self._popen(command, cwd=cwd)
        except OSError as e:
            self.handle.state = ProcessState.failed
            raise SpawnError(f"Failed to start {command[0]}: {e}") from e
        self.handle.pid = self._proc.pid
        self.handle.state = ProcessState.running
        logger.debug(f"Tunnel client running with pid {self._proc.pid}")
        return self.handle

    def is_alive(self) -> bool:
        return self._proc is not None and self._proc.poll() is None

    def _mark_stopped(self, code: int) -> None:
        with self._lock:
            self.handle.exit_code = code
            self.handle.state = ProcessState.stopped

    def terminate(self, grace_period: Optional[float] = None) -> Optional[int]:
        """
        Stop the client: SIGTERM, poll once per second, SIGKILL after the grace period.

        Idempotent: a call while already terminating or stopped returns at once.

        Returns:
            Exit code of the child
        """
        grace = self.grace_period if grace_period is None else grace_period
        with self._lock:
            if self._proc is None or self.handle.state != ProcessState.running:
                return self.handle.exit_code
            self.handle.state = ProcessState.terminating

        proc = self._proc
        if proc.poll() is None:
            logger.info(f"Stopping tunnel client (pid {proc.pid})...")
            try:
                proc.terminate()
            except ProcessLookupError:
                pass
            waited = 0.0
            while proc.poll() is None and waited < grace:
                self._sleep(TERMINATE_POLL_INTERVAL)
                waited += TERMINATE_POLL_INTERVAL
            if proc.poll() is None:
                logger.warning(f"Tunnel client did not exit after {grace:g}s, killing it")
                try:
                    proc.kill()
                except ProcessLookupError:
                    pass

        code = proc.wait()
        self._mark_stopped(code)
        logger.info(f"Tunnel client stopped (exit code {code})")
        return code

    def await_exit(self) -> int:
        """
        Wait for the child to exit on its own or for a shutdown request.

        Returns:
            Exit code of the child
        """
        if self._proc is None:
            raise RuntimeError("No process started")
        while True:
            code = self._proc.poll()
            if code is not None:
                self._mark_stopped(code)
                logger.info(f"Tunnel client exited with code {code}")
                return code
            if self._shutdown.wait(self._tick):
                logger.info(f"=== Shutting down ({self.shutdown_reason}) ===")
                code = self.terminate()
                return code if code is not None else 0

    # Shutdown requests

    def request_shutdown(self, reason: str) -> None:
        """
        Ask the control loop to stop the client. Repeated requests are ignored.

        Runs inside signal handlers, so it must not take _lock: the handler may
        interrupt the main thread while it holds it.
        """
        if self._shutdown.is_set():
            logger.debug(f"Shutdown already in progress, ignoring: {reason}")
            return
        if self.shutdown_reason is None:
            self.shutdown_reason = reason
        self._shutdown.set()

    def _on_signal(self, signum: int, frame) -> None:
        self.request_shutdown(signal.Signals(signum).name)

    def install_signal_handlers(self) -> None:
        """Map SIGINT, SIGTERM and SIGQUIT onto the same shutdown request."""
        for sig in SHUTDOWN_SIGNALS:
            signal.signal(sig, self._on_signal)

    def _on_readiness(self, verdict: Readiness) -> None:
        self.readiness = verdict
        if verdict == Readiness.failed and self.is_alive():
            logger.error("Tunnel never became ready, stopping the client so it is not left unprotected")
            self.request_shutdown(REASON_NOT_READY)

    # Entry point

    def run(self, command: List[str], cwd: Optional[str] = None) -> int:
        """
        Supervise the client until it exits or shutdown is requested.

        Returns:
            Process exit status for the supervisor: 0 after a signal-driven
            shutdown, 1 when the tunnel never became ready, otherwise the
            client's own status

        Raises:
            SpawnError: If the client could not be started
        """
        self.install_signal_handlers()
        self.start(command, cwd)

        monitor = None
        if self._readiness_factory is not None:
            monitor = self._readiness_factory(self.is_alive, self._shutdown)
            monitor.start(self._on_readiness)

        code = self.await_exit()

        if monitor is not None:
            monitor.stop()

        if self.shutdown_reason == REASON_NOT_READY:
            return 1
        if self.shutdown_reason is not None:
            return 0
        return code if code >= 0 else 128 - code
