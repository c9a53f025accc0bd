"""
Tunnel readiness detection.
"""

import logging
import threading
from typing import Callable, Optional

from .constants import READINESS_ATTEMPTS, READINESS_INTERVAL, TUNNEL_INTERFACE
from .models import Readiness, TunnelState
from .netstate import NetworkState
from .polling import PollStatus, poll_until

logger = logging.getLogger(__name__)


class ReadinessMonitor:
    """
    Watches for the tunnel to become usable while the client runs.

    Purely observational: it reads process and route state and reports a
    verdict; acting on a failure is the supervisor's job.
    """

    def __init__(
        self,
        is_alive: Callable[[], bool],
        tunnel: str = TUNNEL_INTERFACE,
        network: Optional[NetworkState] = None,
        stop_event: Optional[threading.Event] = None,
    ):
        """
        Initialize readiness monitor.

        Args:
            is_alive: Returns whether the supervised process is still running
            tunnel: Tunnel interface name
            network: Network state reader (defaults to the live namespace)
            stop_event: Set on shutdown; wakes the monitor between polls
        """
        self._is_alive = is_alive
        self.tunnel = tunnel
        self.network = network or NetworkState()
        self._stop = stop_event or threading.Event()
        self.state = TunnelState(interface_name=tunnel)
        self._thread: Optional[threading.Thread] = None

    def _tunnel_routed(self) -> bool:
        self.state.route_present = self.network.has_route_via(self.tunnel)
        return self.state.route_present

    def _should_abort(self) -> bool:
        return self._stop.is_set() or not self._is_alive()

    def verify(self, attempts: int = READINESS_ATTEMPTS, interval: float = READINESS_INTERVAL) -> Readiness:
        """
        Poll until the process is alive and a route via the tunnel exists.

        Returns within attempts x interval seconds. Returns FAILED as soon as
        the process dies or shutdown is requested.
        """
        result = poll_until(
            lambda: self._is_alive() and self._tunnel_routed(),
            attempts,
            interval,
            wait=self._stop.wait,
            abort=self._should_abort,
            label=f"{self.tunnel} readiness",
        )
        if result.ready:
            logger.info(f"Tunnel {self.tunnel} is ready after {result.attempts} checks")
            return Readiness.ready
        if result.status == PollStatus.aborted:
            logger.debug("Readiness check stopped early")
        else:
            logger.error(f"Tunnel {self.tunnel} not ready after {attempts * interval:g} seconds")
        return Readiness.failed

    def start(
        self,
        on_result: Callable[[Readiness], None],
        attempts: int = READINESS_ATTEMPTS,
        interval: float = READINESS_INTERVAL,
    ) -> threading.Thread:
        """Run verify() in a daemon thread and hand the verdict to on_result."""

        def _run() -> None:
            on_result(self.verify(attempts, interval))

        self._thread = threading.Thread(target=_run, name="readiness", daemon=True)
        self._thread.start()
        return self._thread

    def stop(self) -> None:
        self._stop.set()
