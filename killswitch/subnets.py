"""
Validation of operator-supplied subnets.
"""

import logging
import re
from typing import List

from .models import AllowedSubnet

logger = logging.getLogger(__name__)

CIDR_PATTERN = re.compile(r"([0-9]{1,3})\.([0-9]{1,3})\.([0-9]{1,3})\.([0-9]{1,3})/([0-9]{1,2})")


def validate_subnet(subnet: str) -> bool:
    """
    Check IPv4 CIDR syntax: A.B.C.D/P with octets 0-255 and prefix 0-32.

    Host bits are not checked.
    """
    match = CIDR_PATTERN.fullmatch(subnet)
    if not match:
        return False
    *octets, prefix = (int(g) for g in match.groups())
    return all(0 <= o <= 255 for o in octets) and 0 <= prefix <= 32


def parse_allowed_subnets(csv: str) -> List[AllowedSubnet]:
    """
    Split a comma list into validated subnets.

    Invalid entries are logged and reported with valid=False, never raised.
    """
    subnets = []
    for entry in (csv or "").split(","):
        entry = entry.strip()
        if not entry:
            continue
        valid = validate_subnet(entry)
        if not valid:
            logger.warning(f"Invalid subnet format: {entry} (expected format: 192.168.1.0/24), skipping")
        subnets.append(AllowedSubnet(cidr=entry, valid=valid))
    return subnets
