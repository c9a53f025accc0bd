"""
Tunnel server endpoints from the OpenVPN client configuration.
"""

import ipaddress
import logging
from pathlib import Path
from typing import List, Optional, Union

from .constants import DEFAULT_REMOTE_PORT, DEFAULT_REMOTE_PROTOCOL
from .models import EndpointAllowance, Protocol

logger = logging.getLogger(__name__)


def _strip_comment(line: str) -> str:
    for marker in ("#", ";"):
        line = line.split(marker, 1)[0]
    return line.strip()


def _protocol(value: str) -> Optional[Protocol]:
    """Map OpenVPN proto names (udp4, tcp-client, ...) onto udp/tcp."""
    value = value.lower()
    if value.startswith("tcp"):
        return Protocol.tcp
    if value.startswith("udp"):
        return Protocol.udp
    return None


def _port(value: str) -> Optional[int]:
    if value.isdigit() and 0 < int(value) < 65536:
        return int(value)
    return None


def parse_remotes(text: str) -> List[EndpointAllowance]:
    """
    Extract `remote <host> [port] [proto]` directives.

    Missing port/proto fall back to the file's global `port`/`rport` and
    `proto` directives, then to 1194/udp.
    """
    default_port = DEFAULT_REMOTE_PORT
    default_protocol = Protocol(DEFAULT_REMOTE_PROTOCOL)
    directives = []

    for raw in text.splitlines():
        parts = _strip_comment(raw).split()
        if not parts:
            continue
        keyword = parts[0].lower()
        if keyword in ("port", "rport") and len(parts) >= 2:
            default_port = _port(parts[1]) or default_port
        elif keyword == "proto" and len(parts) >= 2:
            default_protocol = _protocol(parts[1]) or default_protocol
        elif keyword == "remote" and len(parts) >= 2:
            directives.append(parts[1:])

    endpoints = []
    for args in directives:
        port = default_port
        protocol = default_protocol
        if len(args) >= 2:
            parsed = _port(args[1])
            if parsed is None:
                logger.warning(f"Ignoring invalid port '{args[1]}' for remote {args[0]}")
            else:
                port = parsed
        if len(args) >= 3:
            protocol = _protocol(args[2]) or protocol
        endpoints.append(EndpointAllowance(address=args[0], port=port, protocol=protocol))
    return endpoints


def read_remotes(path: Union[str, Path]) -> List[EndpointAllowance]:
    """Parse remote directives from a config file; unreadable files yield no endpoints."""
    try:
        text = Path(path).read_text(encoding="utf-8", errors="replace")
    except OSError as e:
        logger.warning(f"Could not read tunnel config {path}: {e}")
        return []
    return parse_remotes(text)


def ip_version(address: str) -> Optional[int]:
    """4 or 6 for IP literals, None for hostnames."""
    try:
        return ipaddress.ip_address(address).version
    except ValueError:
        return None
