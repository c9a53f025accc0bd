"""
Tunnel killswitch - supervision and egress fencing of an OpenVPN client.

This package keeps every packet of the network namespace on the tunnel
(or an explicit allow-list) while supervising the tunnel client process.
"""

from .constants import (
    DEFAULT_CONTAINER_NETWORK,
    GRACE_PERIOD,
    IPTABLES_CHAIN,
    PRIMARY_INTERFACE,
    READINESS_ATTEMPTS,
    READINESS_INTERVAL,
    TUNNEL_INTERFACE,
)
from .firewall import FirewallController
from .health import HealthChecker
from .readiness import ReadinessMonitor
from .rules import FirewallRuleSpec, RuleStore
from .subnets import validate_subnet
from .supervisor import ProcessSupervisor

__all__ = [
    # Constants
    "DEFAULT_CONTAINER_NETWORK",
    "GRACE_PERIOD",
    "IPTABLES_CHAIN",
    "PRIMARY_INTERFACE",
    "READINESS_ATTEMPTS",
    "READINESS_INTERVAL",
    "TUNNEL_INTERFACE",
    # Classes
    "FirewallController",
    "FirewallRuleSpec",
    "HealthChecker",
    "ProcessSupervisor",
    "ReadinessMonitor",
    "RuleStore",
    # Functions
    "validate_subnet",
]
