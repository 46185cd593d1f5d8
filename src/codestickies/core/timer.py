"""Repeating timer on a daemon thread."""

import threading
from collections.abc import Callable

from loguru import logger


class RepeatingTimer:
    """Call ``callback`` every ``interval`` seconds until cancelled.

    Exceptions from the callback are logged and do not stop the timer.
    """

    def __init__(self, interval: float, callback: Callable[[], None], *, name: str = "timer") -> None:
        if interval <= 0:
            msg = f"interval must be positive, got {interval!r}"
            raise ValueError(msg)
        self.interval = interval
        self._callback = callback
        self._stopped = threading.Event()
        self._thread = threading.Thread(target=self._run, name=name, daemon=True)

    def start(self) -> "RepeatingTimer":
        self._thread.start()
        return self

    def cancel(self) -> None:
        self._stopped.set()

    @property
    def is_active(self) -> bool:
        return self._thread.is_alive() and not self._stopped.is_set()

    def _run(self) -> None:
        while not self._stopped.wait(self.interval):
            try:
                self._callback()
            except Exception:
                logger.exception("Timer {} callback failed", self._thread.name)
