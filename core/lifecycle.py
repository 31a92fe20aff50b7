# PATH: core/lifecycle.py
"""
Background service lifecycle.

States:
  STOPPED → RUNNING  (start)
  RUNNING → STOPPED  (stop)

start() while RUNNING and stop() while STOPPED are no-ops, not errors.
Loops observe the stop signal instead of being aborted from outside.
"""

import asyncio
from enum import Enum
from typing import Dict, List


class ServiceState(str, Enum):
    """Background service states."""
    STOPPED = "STOPPED"
    RUNNING = "RUNNING"


VALID_TRANSITIONS: Dict[ServiceState, List[ServiceState]] = {
    ServiceState.STOPPED: [ServiceState.RUNNING],
    ServiceState.RUNNING: [ServiceState.STOPPED],
}


class ServiceLifecycle:
    """
    Tracks whether a background service is running and owns its stop signal.

    Usage:
        if not lifecycle.start():
            return  # already running
        ...
        while not lifecycle.stop_requested:
            await lifecycle.sleep(interval)
    """

    def __init__(self, name: str):
        self.name = name
        self.state = ServiceState.STOPPED
        self._stop_event = asyncio.Event()

    @property
    def is_running(self) -> bool:
        return self.state == ServiceState.RUNNING

    @property
    def stop_requested(self) -> bool:
        return self._stop_event.is_set()

    def _transition(self, new_state: ServiceState) -> bool:
        if new_state not in VALID_TRANSITIONS[self.state]:
            return False
        self.state = new_state
        return True

    def start(self) -> bool:
        """Enter RUNNING. Returns False if already running."""
        if not self._transition(ServiceState.RUNNING):
            return False
        self._stop_event.clear()
        return True

    def stop(self) -> bool:
        """Signal stop and enter STOPPED. Returns False if already stopped."""
        if not self._transition(ServiceState.STOPPED):
            return False
        self._stop_event.set()
        return True

    async def sleep(self, seconds: float) -> bool:
        """
        Sleep up to `seconds`, waking early on stop.

        Returns True if stop was requested.
        """
        try:
            await asyncio.wait_for(self._stop_event.wait(), timeout=seconds)
        except asyncio.TimeoutError:
            return False
        return True
