"""
Access to the network state of the namespace.

Interfaces and addresses come from netifaces, routes from iproute2's JSON
output (ip -j), so nothing here scrapes human-readable tool output.
"""

import ipaddress
import json
import logging
import re
from typing import List, Optional

import netifaces

from lib.utils import Runner, run_command

from .constants import BRIDGE_MARKERS, DEFAULT_CONTAINER_NETWORK
from .models import RouteError, RouteErrorKind

logger = logging.getLogger(__name__)

HOST_ROUTE_PATTERN = re.compile(r"^[0-9.]+(/32)?$")


class NetworkState:
    """Reads interfaces and routes, and adds routes when asked to."""

    def __init__(self, runner: Runner = run_command):
        self._run = runner

    # Interfaces

    def interface_exists(self, name: str) -> bool:
        return name in netifaces.interfaces()

    def interface_address(self, name: str) -> Optional[str]:
        """
        First IPv4 address of an interface in CIDR form.

        Returns:
            e.g. "10.8.0.2/24", or None if the interface is missing or unaddressed
        """
        try:
            addresses = netifaces.ifaddresses(name).get(netifaces.AF_INET, [])
        except ValueError:
            return None
        for entry in addresses:
            addr = entry.get("addr")
            if not addr:
                continue
            netmask = entry.get("netmask") or "255.255.255.255"
            try:
                return ipaddress.ip_interface(f"{addr}/{netmask}").with_prefixlen
            except ValueError:
                return f"{addr}/32"
        return None

    # Routes

    def routes(self) -> List[dict]:
        """IPv4 main table as a list of iproute2 JSON objects."""
        result = self._run(["ip", "-j", "-4", "route", "show"])
        if result.returncode != 0:
            logger.debug(f"ip route show failed: {result.stderr.strip()}")
            return []
        try:
            return json.loads(result.stdout or "[]")
        except json.JSONDecodeError as e:
            logger.debug(f"Could not decode ip route output: {e}")
            return []

    def default_route(self) -> Optional[dict]:
        return next((r for r in self.routes() if r.get("dst") == "default"), None)

    def default_gateway(self) -> Optional[str]:
        route = self.default_route()
        return route.get("gateway") if route else None

    def has_route_via(self, device: str) -> bool:
        """True if some route uses `device` with a next hop (a usable gateway)."""
        return any(r.get("dev") == device and r.get("gateway") for r in self.routes())

    def host_routes_via(self, device: str) -> List[str]:
        """
        Single-host destinations routed through a gateway on `device`.

        These are the tunnel servers the client resolved and routed around the
        tunnel when it connected.
        """
        ips = []
        for r in self.routes():
            dst = r.get("dst", "")
            if r.get("dev") == device and r.get("gateway") and HOST_ROUTE_PATTERN.match(dst):
                ip = dst.split("/")[0]
                if ip not in ips:
                    ips.append(ip)
        return ips

    def route_device(self, destination: str) -> Optional[str]:
        """Device the kernel would use to reach `destination`."""
        result = self._run(["ip", "-j", "route", "get", destination])
        if result.returncode != 0:
            return None
        try:
            entries = json.loads(result.stdout or "[]")
        except json.JSONDecodeError:
            return None
        return entries[0].get("dev") if entries else None

    def add_route(self, cidr: str, gateway: Optional[str]) -> None:
        """
        Add a route for `cidr` via `gateway`.

        Raises:
            RouteError: kind ALREADY_EXISTS if the kernel already has it, FAILED otherwise
        """
        if not gateway:
            raise RouteError(RouteErrorKind.failed, f"No default gateway to route {cidr} through")
        result = self._run(["ip", "route", "add", cidr, "via", gateway])
        if result.returncode == 0:
            return
        stderr = (result.stderr or "").strip()
        if "File exists" in stderr:
            raise RouteError(RouteErrorKind.already_exists, f"Route for {cidr} already exists", result.returncode)
        raise RouteError(
            RouteErrorKind.failed,
            f"Failed to add route for {cidr} via {gateway}: {stderr or 'unknown error'}",
            result.returncode,
        )

    # Composite observations

    def basic_stack_ready(self, primary: str) -> bool:
        return self.interface_exists(primary) and self.default_route() is not None

    def container_network(self, primary: str) -> str:
        """
        Subnet of the container network the namespace is attached to.

        Tries the primary interface's own prefix, then a bridge route, then
        the Docker default. A wrong guess only widens what counts as local.
        """
        address = self.interface_address(primary)
        if address:
            return str(ipaddress.ip_interface(address).network)

        for r in self.routes():
            dst = r.get("dst", "")
            if dst == "default":
                continue
            described = " ".join(str(v) for v in (r.get("dev"), r.get("gateway")) if v)
            if any(marker in described for marker in BRIDGE_MARKERS):
                return dst

        logger.info(f"Could not detect container network, falling back to {DEFAULT_CONTAINER_NETWORK}")
        return DEFAULT_CONTAINER_NETWORK
