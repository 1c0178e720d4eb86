"""Cancellable repeating task used by the polling loops."""

import logging
import threading
from collections.abc import Callable

logger = logging.getLogger(__name__)


class RepeatingTask(threading.Thread):
    """Run a callback repeatedly on a background thread.

    The interval is recomputed from ``interval`` before every wait, so a
    change of state takes effect on the very next tick. ``cancel()`` wakes the
    thread immediately; a tick already running finishes but no further tick
    starts.
    """

    def __init__(self, interval: Callable[[], float], callback: Callable[[], None], name: str = "pbauto-poll"):
        """Initialize task.

        Args:
            interval: Returns the delay in seconds before the next tick
            callback: Called once per tick
            name: Thread name
        """
        super().__init__(name=name, daemon=True)
        self._interval = interval
        self._callback = callback
        self._cancelled = threading.Event()

    @property
    def cancelled(self) -> bool:
        return self._cancelled.is_set()

    def run(self):
        while not self._cancelled.wait(self._interval()):
            try:
                self._callback()
            except Exception:
                # keep ticking; the next tick gets a fresh attempt
                logger.exception("%s: tick failed", self.name)

    def cancel(self, wait: bool = True, timeout: float = 1.0) -> None:
        """Stop the task.

        Args:
            wait: Join the thread (skipped when called from the task itself)
            timeout: Join timeout in seconds
        """
        self._cancelled.set()
        if wait and self.is_alive() and threading.current_thread() is not self:
            self.join(timeout)
