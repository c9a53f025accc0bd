"""
tunnelguard CLI Commands

This module contains CLI command implementations for the tunnelguard tool.
"""

__all__ = ["run", "apply_killswitch", "clear_killswitch", "healthcheck"]

from commands.healthcheck import healthcheck
from commands.killswitch import apply_killswitch, clear_killswitch
from commands.run import run
