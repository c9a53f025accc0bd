"""
Constants for the tunnel killswitch.

Defaults, retry budgets and iptables identifiers used across the package.
Anything an operator can change lives in lib.config.Settings instead.
"""

# Interfaces
TUNNEL_INTERFACE = "tun0"
PRIMARY_INTERFACE = "eth0"

# Tunnel client
OPENVPN_BIN = "openvpn"
CONFIG_DIR = "/config"
DEFAULT_REMOTE_PORT = 1194
DEFAULT_REMOTE_PROTOCOL = "udp"

# iptables
IPTABLES_CHAIN = "OUTPUT"  # Egress chain the killswitch owns
ENDPOINT_RULE_POSITION = 2  # Right after the tunnel ACCEPT, before the catch-all

# Container network detection
BRIDGE_MARKERS = ("docker",)  # Route descriptions that identify the bridge network
DEFAULT_CONTAINER_NETWORK = "172.17.0.0/16"  # Docker default bridge

# Readiness (seconds)
READINESS_ATTEMPTS = 30
READINESS_INTERVAL = 2

# Firewall pre-condition waits (seconds)
WAIT_ATTEMPTS = 30
WAIT_INTERVAL = 1
ROUTE_DEBOUNCE_DELAY = 0.5  # Gap between the two route observations

# Shutdown (seconds)
GRACE_PERIOD = 10
TERMINATE_POLL_INTERVAL = 1
SUPERVISOR_TICK = 0.5  # How often the control loop looks at the child

# Health check
HEALTHCHECK_URL = "http://google.com"
HEALTHCHECK_TIMEOUT = 8
ROUTE_PROBE_ADDRESS = "8.8.8.8"
