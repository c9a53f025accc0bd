"""
Data model and error types for the tunnel killswitch.
"""

from enum import Enum
from typing import List, Optional, Set, Union

from pydantic import BaseModel, Field


class TunnelGuardError(Exception):
    """Base class for all tunnelguard failures"""


class ConfigError(TunnelGuardError):
    """Configuration or credentials file missing or unreadable"""


class SpawnError(TunnelGuardError):
    """The tunnel client could not be started"""


class RuleError(TunnelGuardError):
    """An iptables rule could not be installed"""


class RouteErrorKind(str, Enum):
    """Why a route could not be added"""

    already_exists = "already_exists"
    failed = "failed"


class RouteError(TunnelGuardError):
    """A route addition failed, with a kind callers can match on"""

    def __init__(self, kind: RouteErrorKind, detail: str, returncode: Optional[int] = None):
        super().__init__(detail)
        self.kind = kind
        self.detail = detail
        self.returncode = returncode


class Protocol(str, Enum):
    """Transport protocol of a tunnel endpoint"""

    tcp = "tcp"
    udp = "udp"


class ProcessState(str, Enum):
    """Lifecycle of the supervised tunnel client"""

    starting = "starting"
    running = "running"
    terminating = "terminating"
    stopped = "stopped"
    failed = "failed"


class Readiness(str, Enum):
    """Verdict of the readiness monitor"""

    ready = "ready"
    failed = "failed"


class TunnelState(BaseModel):
    """Observed state of the tunnel interface and its routes"""

    interface_name: str
    assigned_address: Optional[str] = None
    route_present: bool = False
    stable_confirmed: bool = False
    """Only set after two consecutive positive route observations"""

    def observe_route(self, present: bool) -> bool:
        """
        Record one route observation.

        A negative observation resets the debounce. Returns whether the route
        is now confirmed stable.
        """
        if not present:
            self.route_present = False
            self.stable_confirmed = False
            return False
        if self.route_present:
            self.stable_confirmed = True
        self.route_present = True
        return self.stable_confirmed


class AllowedSubnet(BaseModel):
    """One entry of the operator's allowed-subnets list"""

    cidr: str
    valid: bool


class EndpointAllowance(BaseModel):
    """A tunnel server the client must be able to reach outside the tunnel"""

    address: str
    port: int
    protocol: Protocol = Protocol.udp
    resolved_ips: Set[str] = Field(default_factory=set)


class ProcessHandle(BaseModel):
    """Handle of the supervised child process"""

    pid: Optional[int] = None
    state: ProcessState = ProcessState.starting
    exit_code: Optional[int] = None


class Applied(BaseModel):
    """Killswitch configuration finished"""

    skipped: bool = False
    """True when the tunnel interface never came up and nothing was installed"""
    route_confirmed: bool = False
    container_network: Optional[str] = None
    allowed_subnets: List[str] = []
    endpoints: List[str] = []

    @property
    def ok(self) -> bool:
        return True


class PartialFailure(BaseModel):
    """Killswitch configuration stopped part way"""

    detail: str

    @property
    def ok(self) -> bool:
        return False


ConfigureResult = Union[Applied, PartialFailure]


class HealthReport(BaseModel):
    """Outcome of a health probe run"""

    passed: bool
    check: Optional[str] = None
    """Name of the first failing check"""
    reason: str

    def line(self) -> str:
        return f"PASS: {self.reason}" if self.passed else f"FAIL: {self.reason}"
