import logging
import subprocess
from typing import Callable, List, Optional

logger = logging.getLogger(__name__)

Runner = Callable[[List[str]], subprocess.CompletedProcess]

TRUTHY = ("true", "t", "yes", "y", "1", "on", "enable", "enabled")


def is_enabled(value: Optional[str]) -> bool:
    """Interpret an on/off style environment value."""
    return (value or "").strip().lower() in TRUTHY


def run_command(command: List[str], timeout: Optional[float] = None) -> subprocess.CompletedProcess:
    """
    Run a command and capture its output without raising on failure.

    Callers inspect returncode/stderr themselves, since "rule not found" and
    "route exists" are expected outcomes, not errors.
    """
    logger.debug(f"Running command: {' '.join(command)}")
    return subprocess.run(command, capture_output=True, text=True, check=False, timeout=timeout)
