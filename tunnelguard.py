#!/usr/bin/env python3

"""tunnelguard - OpenVPN client supervisor with a fail-closed killswitch"""

import click

from commands import apply_killswitch, clear_killswitch, healthcheck, run
from lib.config import Settings
from lib.logging_config import setup_logging

__version__ = "0.1.0"


@click.group()
@click.version_option(__version__, prog_name="tunnelguard")
@click.option("--verbose", "-v", is_flag=True, help="Enable debug logging")
@click.pass_context
def cli(ctx, verbose):
    """
    tunnelguard - OpenVPN supervisor with killswitch

    Runs the tunnel client in this network namespace and makes sure no
    traffic leaves except over the tunnel or to explicitly allowed subnets.

    \b
    Environment:
        KILL_SWITCH       on/off (default: on)
        ALLOWED_SUBNETS   comma-separated CIDRs allowed outside the tunnel
        DEBUG             verbose logging
        CONFIG_FILE       OpenVPN configuration file
        AUTH_SECRET       credentials file
    """
    settings = Settings.from_env()
    setup_logging(settings.log_level, debug=settings.debug or verbose)
    ctx.obj = settings


cli.add_command(run)
cli.add_command(apply_killswitch)
cli.add_command(clear_killswitch)
cli.add_command(healthcheck)


if __name__ == "__main__":
    cli()
