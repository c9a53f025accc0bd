#!/usr/bin/env python3

"""Container health probe"""

import sys

import click

from commands.common import get_settings
from killswitch.health import HealthChecker


@click.command()
@click.pass_context
def healthcheck(ctx):
    """
    Check that the tunnel is up and protecting traffic

    Prints PASS or FAIL with the first failing check and exits 0 or 1, for
    use as a Docker HEALTHCHECK.

    \b
    Examples:
        tunnelguard healthcheck
    """
    settings = get_settings(ctx)
    checker = HealthChecker(
        kill_switch=settings.kill_switch,
        tunnel=settings.tunnel_interface,
        primary=settings.primary_interface,
        url=settings.healthcheck_url,
    )
    report = checker.run()
    click.echo(report.line())
    sys.exit(0 if report.passed else 1)
