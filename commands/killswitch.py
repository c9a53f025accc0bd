#!/usr/bin/env python3

"""Killswitch firewall commands"""

import logging
import sys

import click

from commands.common import get_settings
from killswitch.firewall import FirewallController
from killswitch.models import RouteError, RuleError

logger = logging.getLogger(__name__)


@click.command(name="killswitch")
@click.argument("allowed_subnets", required=False, default="")
@click.argument("config", required=False)
@click.pass_context
def apply_killswitch(ctx, allowed_subnets, config):
    """
    🛡️ Install the killswitch firewall (OpenVPN route-up hook)

    Waits for the tunnel interface and its routes, then allows only tunnel
    traffic, local traffic, the container network, ALLOWED_SUBNETS and the
    VPN servers listed in CONFIG. Safe to run repeatedly.

    \b
    Examples:
        tunnelguard killswitch                                  # Tunnel only
        tunnelguard killswitch 192.168.1.0/24 /config/vpn.ovpn  # With LAN + servers
    """
    settings = get_settings(ctx)
    controller = FirewallController(tunnel=settings.tunnel_interface, primary=settings.primary_interface)

    try:
        result = controller.configure(allowed_subnets or settings.allowed_subnets, config or settings.config_file)
    except RouteError as e:
        logger.error(f"Killswitch configuration aborted: {e.detail}")
        sys.exit(e.returncode or 1)
    except RuleError as e:
        logger.error(f"Killswitch configuration aborted: {e}")
        sys.exit(1)

    if not result.ok:
        sys.exit(1)


@click.command(name="killswitch-clear")
@click.pass_context
def clear_killswitch(ctx):
    """
    Remove the killswitch rules

    Removes the tunnel ACCEPT and catch-all REJECT rules. Traffic is no
    longer forced through the tunnel afterwards.

    \b
    Examples:
        tunnelguard killswitch-clear
    """
    settings = get_settings(ctx)
    controller = FirewallController(tunnel=settings.tunnel_interface, primary=settings.primary_interface)

    try:
        removed = controller.clear()
    except RuleError as e:
        logger.error(str(e))
        sys.exit(1)

    if removed:
        logger.info(f"Removed {removed} killswitch rules")
    else:
        logger.info("No killswitch rules found")
