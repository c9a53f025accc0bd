"""
Killswitch firewall configuration.

FirewallController waits for the tunnel to be usable, then converges the
OUTPUT chain on:

    1. ACCEPT  -o tun0
    2. ACCEPT  tunnel servers (-d ip -p proto --dport port)
    3. ACCEPT  allowed subnets (-d cidr)
       ... rules owned by others ...
    N. REJECT  ! -o tun0, except LOCAL address types and the container network

Every rule is removed before it is inserted, so running the hook again after
a reconnect leaves the same chain behind.
"""

import logging
import time
from typing import Callable, Iterable, List, Optional

from .constants import (
    ENDPOINT_RULE_POSITION,
    PRIMARY_INTERFACE,
    ROUTE_DEBOUNCE_DELAY,
    TUNNEL_INTERFACE,
    WAIT_ATTEMPTS,
    WAIT_INTERVAL,
)
from .models import (
    Applied,
    ConfigureResult,
    EndpointAllowance,
    PartialFailure,
    RouteError,
    RouteErrorKind,
    RuleError,
    TunnelState,
)
from .netstate import NetworkState
from .polling import PollResult, poll_until
from .remotes import ip_version, read_remotes
from .rules import Action, FirewallRuleSpec, RuleStore
from .subnets import parse_allowed_subnets

logger = logging.getLogger(__name__)


class FirewallController:
    """Installs and maintains the default-deny-except-tunnel rule set."""

    def __init__(
        self,
        tunnel: str = TUNNEL_INTERFACE,
        primary: str = PRIMARY_INTERFACE,
        network: Optional[NetworkState] = None,
        store: Optional[RuleStore] = None,
        wait: Callable[[float], object] = time.sleep,
        attempts: int = WAIT_ATTEMPTS,
        interval: float = WAIT_INTERVAL,
        debounce: float = ROUTE_DEBOUNCE_DELAY,
        abort: Optional[Callable[[], bool]] = None,
    ):
        """
        Initialize firewall controller.

        Args:
            tunnel: Tunnel interface name
            primary: Container uplink interface name
            network: Network state reader (defaults to the live namespace)
            store: Rule store for the egress chain (defaults to iptables OUTPUT)
            wait: Suspension primitive for the polling loops
            attempts: Attempts per pre-condition wait
            interval: Delay between attempts
            debounce: Delay between the two route observations
            abort: Optional predicate that ends the waits early
        """
        self.tunnel = tunnel
        self.primary = primary
        self.network = network or NetworkState()
        self.store = store or RuleStore()
        self.state = TunnelState(interface_name=tunnel)
        self._wait = wait
        self._attempts = attempts
        self._interval = interval
        self._debounce = debounce
        self._abort = abort

    def _poll(self, predicate: Callable[[], bool], label: str) -> PollResult:
        return poll_until(predicate, self._attempts, self._interval, wait=self._wait, abort=self._abort, label=label)

    # Pre-condition waits

    def wait_for_network_stack(self) -> PollResult:
        logger.debug("Waiting for network stack to be ready...")
        result = self._poll(lambda: self.network.basic_stack_ready(self.primary), "network stack")
        if result.ready:
            logger.debug("Network stack is operational")
        else:
            logger.warning(f"Network stack not ready ({self.primary} or default route missing), continuing")
        return result

    def _tunnel_addressed(self) -> bool:
        if not self.network.interface_exists(self.tunnel):
            return False
        address = self.network.interface_address(self.tunnel)
        if address is None:
            logger.debug(f"{self.tunnel} interface exists but no IP assigned yet...")
            return False
        self.state.assigned_address = address
        return True

    def wait_for_tunnel_interface(self) -> PollResult:
        logger.debug(f"Waiting for {self.tunnel} interface...")
        result = self._poll(self._tunnel_addressed, f"{self.tunnel} address")
        if result.ready:
            logger.debug(f"{self.tunnel} interface is available with IP {self.state.assigned_address}")
        return result

    def _route_stable(self) -> bool:
        if not self.state.observe_route(self.network.has_route_via(self.tunnel)):
            if not self.state.route_present:
                return False
            self._wait(self._debounce)
            if not self.state.observe_route(self.network.has_route_via(self.tunnel)):
                logger.debug("VPN routes detected but unstable, continuing to wait...")
                return False
        return True

    def wait_for_stable_route(self) -> PollResult:
        logger.debug("Waiting for VPN routes to be established...")
        result = self._poll(self._route_stable, f"routes via {self.tunnel}")
        if result.ready:
            logger.debug("VPN routes confirmed and stable in routing table")
        else:
            logger.warning(f"VPN routes via {self.tunnel} not confirmed stable, applying killswitch anyway")
        return result

    # Rule installation

    def _catch_all_rules(self) -> List[FirewallRuleSpec]:
        """Reject rules carrying the killswitch signature, whatever container network they exempt."""
        return [
            e
            for e in self.store.entries
            if isinstance(e, FirewallRuleSpec)
            and e.action == Action.reject
            and e.interface == self.tunnel
            and e.negate_interface
            and e.exclude_local
        ]

    def install_killswitch(self, container_network: str) -> None:
        """
        Converge on exactly one tunnel ACCEPT (first) and one catch-all REJECT (last).

        Raises:
            RuleError: If iptables refuses a rule
        """
        self.store.remove(FirewallRuleSpec.tunnel_accept(self.tunnel))
        for rule in self._catch_all_rules():
            self.store.remove(rule)

        self.store.insert(FirewallRuleSpec.tunnel_accept(self.tunnel))
        self.store.insert(FirewallRuleSpec.catch_all(self.tunnel, container_network))
        logger.info(f"Killswitch rules applied: ACCEPT via {self.tunnel}, REJECT everything else except {container_network}")

    def allow_subnets(self, allowed_subnets_csv: str) -> List[str]:
        """
        Route and accept each valid subnet; invalid entries are skipped.

        Returns:
            The subnets that were allowed

        Raises:
            RouteError: If a route could not be added (other than "already exists")
            RuleError: If iptables refuses a rule
        """
        subnets = [s for s in parse_allowed_subnets(allowed_subnets_csv) if s.valid]
        if not subnets:
            return []

        logger.debug(f"Configuring allowed subnets: {allowed_subnets_csv}")
        gateway = self.network.default_gateway()
        allowed = []
        for subnet in subnets:
            try:
                self.network.add_route(subnet.cidr, gateway)
                logger.info(f"Added route for {subnet.cidr} via {gateway}")
            except RouteError as e:
                if e.kind != RouteErrorKind.already_exists:
                    logger.error(f"{e.detail} (exit code: {e.returncode})")
                    raise
                logger.info(f"Route for {subnet.cidr} already exists, continuing...")

            self.store.replace(FirewallRuleSpec.subnet_accept(subnet.cidr), ENDPOINT_RULE_POSITION)
            logger.debug(f"Added iptables rule for {subnet.cidr}")
            allowed.append(subnet.cidr)
        return allowed

    def resolve_endpoint(self, endpoint: EndpointAllowance) -> EndpointAllowance:
        """
        Fill in the IPs to allow for an endpoint.

        Literal IPv4 addresses are used as-is. Hostnames are not looked up;
        the client already resolved them and routed them around the tunnel,
        so the host routes over the primary interface are used instead.
        """
        version = ip_version(endpoint.address)
        if version == 4:
            ips = {endpoint.address}
        elif version == 6:
            logger.warning(f"Skipping IPv6 remote {endpoint.address}, only IPv4 egress is managed")
            ips = set()
        else:
            ips = set(self.network.host_routes_via(self.primary))
            if not ips:
                logger.warning(f"No resolved IPs found for hostname {endpoint.address}")
        return endpoint.model_copy(update={"resolved_ips": ips})

    def allow_endpoints(self, endpoints: Iterable[EndpointAllowance]) -> List[str]:
        """
        Accept traffic to the tunnel servers right after the tunnel rule.

        Raises:
            RuleError: If iptables refuses a rule
        """
        allowed = []
        for endpoint in endpoints:
            endpoint = self.resolve_endpoint(endpoint)
            for ip in sorted(endpoint.resolved_ips):
                rule = FirewallRuleSpec.endpoint_accept(ip, endpoint.protocol, endpoint.port, ENDPOINT_RULE_POSITION)
                if self.store.remove(rule):
                    logger.debug(f"Cleaned up existing rule for {ip}:{endpoint.port}")
                self.store.insert(rule)
                logger.info(f"Added rule for {ip}:{endpoint.port} ({endpoint.protocol.value})")
                allowed.append(f"{ip}:{endpoint.port}/{endpoint.protocol.value}")
        return allowed

    def configure(self, allowed_subnets_csv: str = "", config_path: Optional[str] = None) -> ConfigureResult:
        """
        Wait for the tunnel, then install the killswitch and its exceptions.

        Args:
            allowed_subnets_csv: Comma-separated CIDRs that bypass the tunnel
            config_path: Tunnel client config to read remote endpoints from

        Returns:
            Applied (skipped=True when the tunnel interface never came up) or
            PartialFailure when a rule could not be installed

        Raises:
            RouteError: If a required route could not be added
        """
        logger.debug(f"Starting killswitch configuration: allowed_subnets='{allowed_subnets_csv}' config='{config_path}'")

        container_network = self.network.container_network(self.primary)
        logger.debug(f"Container network detected: {container_network}")

        self.wait_for_network_stack()

        if not self.wait_for_tunnel_interface().ready:
            logger.warning(f"{self.tunnel} interface not ready, skipping killswitch rules")
            return Applied(skipped=True, container_network=container_network)

        route_confirmed = self.wait_for_stable_route().ready

        try:
            self.install_killswitch(container_network)
            subnets = self.allow_subnets(allowed_subnets_csv)
            endpoints = self.allow_endpoints(read_remotes(config_path)) if config_path else []
        except RuleError as e:
            logger.error(str(e))
            return PartialFailure(detail=str(e))

        logger.info(
            f"🛡️ Killswitch active: tunnel={self.tunnel} container={container_network} "
            f"subnets={','.join(subnets) or 'none'} servers={','.join(endpoints) or 'none'}"
        )
        return Applied(
            route_confirmed=route_confirmed,
            container_network=container_network,
            allowed_subnets=subnets,
            endpoints=endpoints,
        )

    def clear(self) -> int:
        """
        Remove the killswitch rule pair (operator command, not used on shutdown).

        Exceptions for subnets and servers stay; without the catch-all they are inert.
        """
        removed = self.store.remove(FirewallRuleSpec.tunnel_accept(self.tunnel))
        for rule in self._catch_all_rules():
            removed += self.store.remove(rule)
        return removed

    def rules_present(self) -> bool:
        """Whether both killswitch rules are in the chain."""
        return self.store.contains(FirewallRuleSpec.tunnel_accept(self.tunnel)) and bool(self._catch_all_rules())
