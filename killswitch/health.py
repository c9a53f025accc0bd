"""
Health probe for the tunnel and its killswitch.

Each run re-evaluates every check from scratch and stops at the first one
that fails, naming it so operators know which guarantee broke.
"""

import logging
from typing import Callable, List, Optional, Tuple

import requests

from lib.utils import Runner, run_command

from .constants import HEALTHCHECK_TIMEOUT, HEALTHCHECK_URL, PRIMARY_INTERFACE, ROUTE_PROBE_ADDRESS, TUNNEL_INTERFACE
from .firewall import FirewallController
from .models import HealthReport
from .netstate import NetworkState
from .rules import RuleStore

logger = logging.getLogger(__name__)

Check = Tuple[str, Callable[[], bool], str]


class HealthChecker:
    """Stateless composite health check."""

    def __init__(
        self,
        kill_switch: bool = True,
        tunnel: str = TUNNEL_INTERFACE,
        primary: str = PRIMARY_INTERFACE,
        url: str = HEALTHCHECK_URL,
        timeout: float = HEALTHCHECK_TIMEOUT,
        network: Optional[NetworkState] = None,
        runner: Runner = run_command,
        store_factory: Callable[[], RuleStore] = RuleStore,
    ):
        self.kill_switch = kill_switch
        self.tunnel = tunnel
        self.primary = primary
        self.url = url
        self.timeout = timeout
        self.network = network or NetworkState(runner)
        self._run = runner
        self._store_factory = store_factory

    def process_alive(self) -> bool:
        return self._run(["pgrep", "-f", "openvpn.*config"]).returncode == 0

    def interface_addressed(self) -> bool:
        return self.network.interface_address(self.tunnel) is not None

    def routed_via_tunnel(self) -> bool:
        device = self.network.route_device(ROUTE_PROBE_ADDRESS)
        return device == self.tunnel

    def reachable(self) -> bool:
        try:
            requests.get(self.url, timeout=self.timeout)
            return True
        except requests.RequestException as e:
            logger.debug(f"Connectivity probe failed: {e}")
            return False

    def killswitch_active(self) -> bool:
        # Fresh store per run: the probe must see the kernel, not a cached view
        controller = FirewallController(tunnel=self.tunnel, primary=self.primary, network=self.network, store=self._store_factory())
        return controller.rules_present()

    def checks(self) -> List[Check]:
        checks: List[Check] = [
            ("process", self.process_alive, "OpenVPN process not running"),
            ("interface", self.interface_addressed, f"Tunnel interface {self.tunnel} not ready or no IP assigned"),
            ("route", self.routed_via_tunnel, "Traffic not routing through VPN tunnel"),
            ("connectivity", self.reachable, "DNS resolution and external connectivity not working"),
        ]
        if self.kill_switch:
            checks.append(("killswitch", self.killswitch_active, f"Killswitch not active - {self.tunnel} ACCEPT or REJECT rule missing"))
        return checks

    def run(self) -> HealthReport:
        for name, check, reason in self.checks():
            try:
                passed = check()
            except Exception as e:  # a crashing check is a failing check
                logger.debug(f"Health check '{name}' raised: {e}")
                passed = False
            if not passed:
                return HealthReport(passed=False, check=name, reason=reason)
        return HealthReport(passed=True, reason="VPN tunnel fully established and protecting traffic")
