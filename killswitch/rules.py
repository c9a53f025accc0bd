"""
iptables rule tracking for the killswitch.

RuleStore mirrors the egress chain as a list of FirewallRuleSpec values and
applies inserts/removals through iptables, so "does this rule exist" is a
structured identity comparison instead of grepping listing output.
"""

import ipaddress
import logging
import shlex
from enum import Enum
from typing import List, Optional, Tuple, Union

from pydantic import BaseModel, ConfigDict, field_validator

from lib.utils import Runner, run_command

from .constants import IPTABLES_CHAIN
from .models import Protocol, RuleError

logger = logging.getLogger(__name__)


class Action(str, Enum):
    accept = "ACCEPT"
    reject = "REJECT"


class Position(str, Enum):
    first = "first"
    last = "last"


class FirewallRuleSpec(BaseModel):
    """
    One rule of the egress chain.

    Identity (used for idempotency) is every field except `position`.
    """

    model_config = ConfigDict(frozen=True)

    action: Action
    interface: Optional[str] = None
    """Egress interface match (-o)"""
    negate_interface: bool = False
    destination: Optional[str] = None
    exclude_destination: Optional[str] = None
    """Negated destination match (! -d)"""
    exclude_local: bool = False
    """Skip LOCAL destination address types (-m addrtype ! --dst-type LOCAL)"""
    protocol: Optional[Protocol] = None
    port: Optional[int] = None
    position: Union[Position, int] = Position.last

    @field_validator("destination", "exclude_destination")
    @classmethod
    def normalize_cidr(cls, v: Optional[str]) -> Optional[str]:
        if v is None:
            return v
        return str(ipaddress.ip_network(v, strict=False))

    @property
    def identity(self) -> Tuple:
        return (
            self.action,
            self.interface,
            self.negate_interface,
            self.destination,
            self.exclude_destination,
            self.exclude_local,
            self.protocol,
            self.port,
        )

    def same_rule(self, other: "FirewallRuleSpec") -> bool:
        return self.identity == other.identity

    def to_args(self) -> List[str]:
        """Rule body as iptables arguments (without the chain command)."""
        args: List[str] = []
        if self.interface:
            if self.negate_interface:
                args.append("!")
            args += ["-o", self.interface]
        if self.destination:
            args += ["-d", self.destination]
        if self.exclude_destination:
            args += ["!", "-d", self.exclude_destination]
        if self.protocol:
            args += ["-p", self.protocol.value]
        if self.exclude_local:
            args += ["-m", "addrtype", "!", "--dst-type", "LOCAL"]
        if self.port is not None:
            args += ["-m", self.protocol.value if self.protocol else "tcp", "--dport", str(self.port)]
        args += ["-j", self.action.value]
        return args

    def describe(self) -> str:
        return " ".join(self.to_args())

    @classmethod
    def from_rule_line(cls, line: str, chain: str = IPTABLES_CHAIN) -> Optional["FirewallRuleSpec"]:
        """
        Parse one `iptables -S` line.

        Returns:
            The rule, or None for rules the killswitch does not model
        """
        tokens = shlex.split(line)
        if len(tokens) < 2 or tokens[0] != "-A" or tokens[1] != chain:
            return None

        fields: dict = {}
        negate = False
        it = iter(tokens[2:])
        for token in it:
            if token == "!":
                negate = True
                continue
            if token in ("-o", "--out-interface"):
                fields["interface"] = next(it, None)
                fields["negate_interface"] = negate
            elif token in ("-d", "--destination"):
                fields["exclude_destination" if negate else "destination"] = next(it, None)
            elif token in ("-p", "--protocol"):
                value = next(it, None)
                if negate or value not in {p.value for p in Protocol}:
                    return None
                fields["protocol"] = Protocol(value)
            elif token in ("-m", "--match"):
                next(it, None)
            elif token == "--dst-type":
                if not negate or next(it, None) != "LOCAL":
                    return None
                fields["exclude_local"] = True
            elif token in ("--dport", "--destination-port"):
                value = next(it, None)
                if negate or value is None or not value.isdigit():
                    return None
                fields["port"] = int(value)
            elif token in ("-j", "--jump"):
                value = next(it, None)
                if value not in {a.value for a in Action}:
                    return None
                fields["action"] = Action(value)
            elif token == "--reject-with":
                next(it, None)
            else:
                return None
            negate = False

        if "action" not in fields:
            return None
        try:
            return cls(**fields)
        except ValueError:
            return None

    # Killswitch rule shapes

    @classmethod
    def tunnel_accept(cls, tunnel: str) -> "FirewallRuleSpec":
        return cls(action=Action.accept, interface=tunnel, position=Position.first)

    @classmethod
    def catch_all(cls, tunnel: str, container_network: str) -> "FirewallRuleSpec":
        return cls(
            action=Action.reject,
            interface=tunnel,
            negate_interface=True,
            exclude_local=True,
            exclude_destination=container_network,
            position=Position.last,
        )

    @classmethod
    def subnet_accept(cls, cidr: str) -> "FirewallRuleSpec":
        return cls(action=Action.accept, destination=cidr, position=Position.first)

    @classmethod
    def endpoint_accept(cls, ip: str, protocol: Protocol, port: int, position: int) -> "FirewallRuleSpec":
        return cls(action=Action.accept, destination=ip, protocol=protocol, port=port, position=position)


ChainEntry = Union[FirewallRuleSpec, str]


class RuleStore:
    """Tracked view of one iptables chain, with idempotent insert/remove."""

    def __init__(self, chain: str = IPTABLES_CHAIN, runner: Runner = run_command):
        self.chain = chain
        self._run = runner
        self._entries: List[ChainEntry] = []
        self._loaded = False

    def _iptables(self, *args: str):
        return self._run(["iptables", "-w", *args])

    def load(self) -> None:
        """
        Read the chain from the kernel.

        Rules the killswitch does not model are kept as raw lines so that
        positions stay correct.
        """
        result = self._iptables("-S", self.chain)
        if result.returncode != 0:
            raise RuleError(f"Could not list chain {self.chain}: {(result.stderr or '').strip()}")
        prefix = f"-A {self.chain} "
        self._entries = []
        for line in result.stdout.splitlines():
            if not line.startswith(prefix):
                continue
            spec = FirewallRuleSpec.from_rule_line(line, self.chain)
            self._entries.append(spec if spec is not None else line)
        self._loaded = True
        logger.debug(f"Loaded {len(self._entries)} rules from {self.chain}")

    def _ensure_loaded(self) -> None:
        if not self._loaded:
            self.load()

    @property
    def entries(self) -> List[ChainEntry]:
        self._ensure_loaded()
        return list(self._entries)

    def index_of(self, spec: FirewallRuleSpec) -> Optional[int]:
        """1-based position of the first matching rule, or None."""
        for i, entry in enumerate(self.entries, start=1):
            if isinstance(entry, FirewallRuleSpec) and entry.same_rule(spec):
                return i
        return None

    def contains(self, spec: FirewallRuleSpec) -> bool:
        return self.index_of(spec) is not None

    def count(self, spec: FirewallRuleSpec) -> int:
        return sum(1 for e in self.entries if isinstance(e, FirewallRuleSpec) and e.same_rule(spec))

    def insert(self, spec: FirewallRuleSpec, position: Union[Position, int, None] = None) -> None:
        """
        Insert a rule at FIRST, LAST or a 1-based index (clamped to the chain length).

        Raises:
            RuleError: If iptables refuses the rule
        """
        self._ensure_loaded()
        position = spec.position if position is None else position

        if position == Position.last:
            result = self._iptables("-A", self.chain, *spec.to_args())
            index = len(self._entries)
        else:
            index = 0 if position == Position.first else max(0, min(int(position) - 1, len(self._entries)))
            result = self._iptables("-I", self.chain, str(index + 1), *spec.to_args())

        if result.returncode != 0:
            raise RuleError(f"Failed to add rule '{spec.describe()}': {(result.stderr or '').strip()}")
        self._entries.insert(index, spec)

    def remove(self, spec: FirewallRuleSpec) -> int:
        """
        Remove every copy of a rule. Removing a missing rule is a no-op.

        Returns:
            Number of rules removed

        Raises:
            RuleError: If iptables fails for a reason other than "no such rule"
        """
        removed = 0
        while True:
            index = self.index_of(spec)
            if index is None:
                break
            result = self._iptables("-D", self.chain, *spec.to_args())
            if result.returncode == 1:
                # Gone behind our back
                logger.debug(f"Rule already absent: {spec.describe()}")
                self._entries.pop(index - 1)
                continue
            if result.returncode != 0:
                raise RuleError(f"Failed to remove rule '{spec.describe()}': {(result.stderr or '').strip()}")
            self._entries.pop(index - 1)
            removed += 1
        return removed

    def replace(self, spec: FirewallRuleSpec, position: Union[Position, int, None] = None) -> None:
        """Remove any copies, then insert once."""
        self.remove(spec)
        self.insert(spec, position)
