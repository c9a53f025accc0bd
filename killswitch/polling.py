"""
Bounded retry combinator.

Every "wait until X or give up" loop in the killswitch (readiness, network
stack, tunnel interface, route stability) goes through poll_until.
"""

import logging
import time
from dataclasses import dataclass
from enum import Enum
from typing import Callable, Optional

logger = logging.getLogger(__name__)


class PollStatus(str, Enum):
    ready = "ready"
    timeout = "timeout"
    aborted = "aborted"


@dataclass
class PollResult:
    status: PollStatus
    attempts: int

    @property
    def ready(self) -> bool:
        return self.status == PollStatus.ready


def poll_until(
    predicate: Callable[[], bool],
    attempts: int,
    interval: float,
    wait: Callable[[float], object] = time.sleep,
    abort: Optional[Callable[[], bool]] = None,
    label: str = "condition",
) -> PollResult:
    """
    Evaluate predicate up to `attempts` times, waiting `interval` between tries.

    Args:
        predicate: Returns True once the awaited condition holds
        attempts: Maximum number of evaluations
        interval: Delay between evaluations
        wait: Suspension primitive (time.sleep or threading.Event.wait)
        abort: Checked before each attempt; True ends the loop early
        label: Name used in debug logging

    Returns:
        PollResult tagged READY, TIMEOUT or ABORTED with the attempts used
    """
    for attempt in range(1, attempts + 1):
        if abort is not None and abort():
            logger.debug(f"Stopped waiting for {label} after {attempt - 1} attempts")
            return PollResult(PollStatus.aborted, attempt - 1)
        if predicate():
            logger.debug(f"{label} satisfied after {attempt} attempts")
            return PollResult(PollStatus.ready, attempt)
        if attempt < attempts:
            wait(interval)
    logger.debug(f"Gave up waiting for {label} after {attempts} attempts")
    return PollResult(PollStatus.timeout, attempts)
