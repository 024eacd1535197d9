"""
Sweep signal for the deadline sweeper.

The sweeper parks on the bus between ticks. trigger() cuts the wait short,
so an administrator (or a test) can force the next sweep without waiting
out the interval. Triggers that arrive while nobody waits are not lost: the
next wait returns immediately.
"""

import asyncio
import logging
from typing import Optional

logger = logging.getLogger(__name__)


class TournamentBus:
    def __init__(self):
        self.signal = asyncio.Event()
        self.last_reason: Optional[str] = None

    def trigger(self, reason: str = "manual"):
        self.last_reason = reason
        self.signal.set()

    async def wait_for_signal(self, timeout: float = 300.0) -> bool:
        """True if woken by trigger(), False once `timeout` seconds pass."""
        try:
            await asyncio.wait_for(self.signal.wait(), timeout=timeout)
        except asyncio.TimeoutError:
            return False
        self.signal.clear()
        logger.debug("Sweep requested early (%s)", self.last_reason)
        return True
