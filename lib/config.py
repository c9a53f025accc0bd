"""
Runtime settings for tunnelguard.

The environment (plus an optional .env file) is read exactly once into a
frozen Settings value that is handed to every component constructor.
"""

import logging
import os
from pathlib import Path
from typing import Mapping, Optional

from dotenv import load_dotenv
from pydantic import BaseModel, ConfigDict

from killswitch.constants import (
    CONFIG_DIR,
    GRACE_PERIOD,
    HEALTHCHECK_URL,
    OPENVPN_BIN,
    PRIMARY_INTERFACE,
    TUNNEL_INTERFACE,
)
from killswitch.models import ConfigError
from lib.utils import is_enabled

logger = logging.getLogger(__name__)


class Settings(BaseModel):
    """Immutable runtime configuration"""

    model_config = ConfigDict(frozen=True)

    kill_switch: bool = True
    """Whether the killswitch firewall is installed at all"""
    allowed_subnets: str = ""
    """Comma-separated CIDRs that may bypass the tunnel"""
    debug: bool = False
    """Widen log verbosity, no behavioral change"""
    log_level: str = "INFO"
    config_file: Optional[str] = None
    """Resolved tunnel client configuration file"""
    auth_secret: Optional[str] = None
    """Credentials file passed to the client, if any"""
    tunnel_interface: str = TUNNEL_INTERFACE
    primary_interface: str = PRIMARY_INTERFACE
    config_dir: str = CONFIG_DIR
    openvpn_bin: str = OPENVPN_BIN
    grace_period: float = GRACE_PERIOD
    healthcheck_url: str = HEALTHCHECK_URL

    @classmethod
    def from_env(cls, environ: Optional[Mapping[str, str]] = None, dotenv_path: Optional[str] = None) -> "Settings":
        """
        Build settings from environment variables.

        Args:
            environ: Mapping to read from, defaults to os.environ (after loading .env)
            dotenv_path: Optional .env file, defaults to ./.env

        Returns:
            Frozen Settings instance
        """
        if environ is None:
            load_dotenv(dotenv_path or os.path.join(os.getcwd(), ".env"))
            environ = os.environ

        def opt(name: str) -> Optional[str]:
            value = environ.get(name, "").strip()
            return value or None

        return cls(
            kill_switch=is_enabled(environ.get("KILL_SWITCH", "on")),
            allowed_subnets=environ.get("ALLOWED_SUBNETS", "").strip(),
            debug=is_enabled(environ.get("DEBUG", "false")),
            log_level=environ.get("LOG_LEVEL", "INFO").upper(),
            config_file=opt("CONFIG_FILE"),
            auth_secret=opt("AUTH_SECRET"),
            tunnel_interface=environ.get("TUNNEL_INTERFACE", TUNNEL_INTERFACE),
            primary_interface=environ.get("PRIMARY_INTERFACE", PRIMARY_INTERFACE),
            config_dir=environ.get("CONFIG_DIR", CONFIG_DIR),
            openvpn_bin=environ.get("OPENVPN_BIN", OPENVPN_BIN),
            grace_period=float(environ.get("GRACE_PERIOD", GRACE_PERIOD)),
            healthcheck_url=environ.get("HEALTHCHECK_URL", HEALTHCHECK_URL),
        )


def check_readable(path: str, what: str) -> Path:
    """
    Ensure a file handed over by discovery can be read.

    Raises:
        ConfigError: If the path is missing or unreadable
    """
    p = Path(path)
    if not p.is_file() or not os.access(p, os.R_OK):
        raise ConfigError(f"{what} not found or not readable: {path}")
    return p
