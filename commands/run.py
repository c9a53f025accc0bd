#!/usr/bin/env python3

"""Supervised startup of the tunnel client"""

import logging
import sys

import click

from commands.common import get_settings, hook_executable
from killswitch.models import ConfigError, SpawnError
from killswitch.readiness import ReadinessMonitor
from killswitch.supervisor import ProcessSupervisor, build_client_command
from lib.config import check_readable

logger = logging.getLogger(__name__)


@click.command()
@click.option("--config", "config_file", help="OpenVPN configuration file (defaults to CONFIG_FILE)")
@click.option("--auth-secret", help="Credentials file for --auth-user-pass (defaults to AUTH_SECRET)")
@click.pass_context
def run(ctx, config_file, auth_secret):
    """
    🚀 Run the OpenVPN client under supervision

    Starts the client, watches the tunnel come up and stops it again if it
    never becomes ready. With KILL_SWITCH on, the client's route-up hook
    installs the killswitch firewall.

    SIGINT, SIGTERM and SIGQUIT stop the client gracefully (SIGKILL after
    GRACE_PERIOD seconds).

    Examples:
        tunnelguard run                                  # Use CONFIG_FILE / AUTH_SECRET
        tunnelguard run --config /config/vpn.ovpn        # Explicit config
    """
    settings = get_settings(ctx)
    config_file = config_file or settings.config_file
    auth_secret = auth_secret or settings.auth_secret

    logger.info("Starting OpenVPN client supervisor...")

    if not config_file:
        logger.error("No openvpn configuration file found")
        sys.exit(1)

    try:
        check_readable(config_file, "OpenVPN configuration file")
        if auth_secret:
            check_readable(auth_secret, "AUTH_SECRET file")
    except ConfigError as e:
        logger.error(str(e))
        sys.exit(1)

    logger.info(f"Using openvpn configuration file: {config_file}")

    route_up = None
    if settings.kill_switch:
        route_up = [hook_executable(), "killswitch", settings.allowed_subnets, config_file]
    else:
        logger.warning("Killswitch disabled: traffic may leave outside the tunnel")

    command = build_client_command(
        settings.openvpn_bin,
        config_file,
        settings.config_dir,
        route_up=route_up,
        auth_secret=auth_secret,
    )

    supervisor = ProcessSupervisor(
        grace_period=settings.grace_period,
        readiness_factory=lambda is_alive, stop: ReadinessMonitor(
            is_alive, tunnel=settings.tunnel_interface, stop_event=stop
        ),
    )

    try:
        code = supervisor.run(command)
    except SpawnError as e:
        logger.error(str(e))
        sys.exit(1)

    sys.exit(code)
