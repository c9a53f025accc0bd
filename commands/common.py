#!/usr/bin/env python3

"""Common utilities for CLI commands"""

import logging
import os
import shutil
import sys
from typing import Optional

import click

from lib.config import Settings

logger = logging.getLogger(__name__)


def get_settings(ctx: Optional[click.Context]) -> Settings:
    """
    Settings for a command.

    The root group stores them on ctx.obj; commands invoked on their own
    (tests, direct use) build them from the environment.
    """
    if ctx is not None and isinstance(ctx.obj, Settings):
        return ctx.obj
    return Settings.from_env()


def hook_executable() -> str:
    """Absolute path of the tunnelguard executable, for the route-up hook."""
    found = shutil.which("tunnelguard")
    if found:
        return found
    return os.path.abspath(sys.argv[0])
