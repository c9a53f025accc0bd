"""
Centralized logging configuration for tunnelguard.

TTY mode (interactive): Clean colored output with symbols
Non-TTY mode (container logs): Full structured timestamps and paths

Only the supervisor's own records go through here. The tunnel client's
stdout/stderr are inherited and never reformatted.
"""

import logging
import os
import sys
from datetime import datetime
from typing import Any, Optional

# Add TRACE level (below DEBUG)
TRACE = 5
logging.addLevelName(TRACE, "TRACE")


def trace(self: logging.Logger, message: str, *args: Any, **kwargs: Any) -> None:
    """Log trace message."""
    if self.isEnabledFor(TRACE):
        self._log(TRACE, message, args, **kwargs)  # pylint: disable=protected-access


# Add custom methods to Logger class
logging.Logger.trace = trace  # type: ignore[attr-defined]


class TTYAwareFormatter(logging.Formatter):
    """Formatter that adapts output based on TTY detection.

    TTY mode (interactive terminal):
        ✓ Killswitch active on tun0
        ⚠ VPN routes not confirmed stable
        ✗ Failed to add route for 10.10.0.0/24

    Non-TTY mode (docker logs, automation):
        2026-10-19 10:11:48.166 INFO > killswitch/firewall.py:97: Killswitch active on tun0
        2026-10-19 10:11:48.166 WARNING > killswitch/firewall.py:71: VPN routes not confirmed stable
    """

    # ANSI color codes
    GREY = "\033[90m"
    WHITE = "\033[97m"
    CYAN = "\033[96m"
    YELLOW = "\033[93m"
    RED = "\033[91m"
    GREEN = "\033[92m"
    RESET = "\033[0m"

    SYMBOLS = {
        "TRACE": "›",
        "DEBUG": "•",
        "INFO": "✓",
        "WARNING": "⚠",
        "ERROR": "✗",
        "CRITICAL": "✗",
    }

    COLORS = {
        "TRACE": GREY,
        "DEBUG": CYAN,
        "INFO": GREEN,
        "WARNING": YELLOW,
        "ERROR": RED,
        "CRITICAL": RED,
    }

    def __init__(self, is_tty: bool):
        self.is_tty = is_tty
        if is_tty:
            super().__init__("%(message)s")
        else:
            super().__init__("%(asctime)s %(levelname)s > %(custom_pathname)s:%(lineno)d: %(message)s")

    def formatTime(self, record: logging.LogRecord, datefmt: Optional[str] = None) -> str:
        """Format time with milliseconds support (for non-TTY mode)."""
        if not self.is_tty:
            ct = datetime.fromtimestamp(record.created)
            return ct.strftime("%Y-%m-%d %H:%M:%S") + f".{int(record.msecs):03d}"
        return super().formatTime(record, datefmt)

    def format(self, record: logging.LogRecord) -> str:
        if not self.is_tty:
            if record.name != "__main__":
                pathname = record.name.replace(".", "/") + ".py"
            else:
                pathname = os.path.relpath(record.pathname)
            record.custom_pathname = pathname

        message = super().format(record)

        if self.is_tty:
            symbol = self.SYMBOLS.get(record.levelname, "›")
            color = self.COLORS.get(record.levelname, self.WHITE)
            return f"{color}{symbol}{self.RESET} {message}"

        return message


def resolve_level(level: Optional[str] = None, debug: bool = False) -> int:
    """
    Resolve a level name to a logging constant.

    Args:
        level: Level name (TRACE, DEBUG, INFO, WARNING, ERROR, CRITICAL)
        debug: When set, DEBUG wins over a less verbose level

    Returns:
        Numeric log level
    """
    level = (level or "INFO").upper()
    if level == "TRACE":
        level_const = TRACE
    else:
        level_const = getattr(logging, level, logging.INFO)
    if debug and level_const > logging.DEBUG:
        level_const = logging.DEBUG
    return level_const


def setup_logging(level: Optional[str] = None, debug: bool = False) -> None:
    """
    Setup logging with TTY-aware formatting.

    Args:
        level: Log level name, defaults to INFO
        debug: Widen verbosity to DEBUG (the DEBUG flag of the container)

    Behavior:
        TTY (interactive): Clean colored output with symbols (✓ ⚠ ✗)
        Non-TTY (container): Full structured output with timestamps and paths
    """
    level_const = resolve_level(level, debug)

    is_tty = sys.stdout.isatty()

    handlers: list[logging.Handler] = []

    console = logging.StreamHandler()
    console.setFormatter(TTYAwareFormatter(is_tty))
    handlers.append(console)

    logging.root.setLevel(level_const)
    logging.root.handlers = handlers
