"""Backup trigger messages, delivery channels, and the receiving handler."""

import os
import signal
import subprocess
import time
from collections.abc import Callable
from dataclasses import dataclass
from pathlib import Path
from typing import Any

from loguru import logger

from codestickies.config import LAUNCH_GRACE_SECONDS
from codestickies.protocols import TriggerChannelProtocol

TRIGGER_SIGNAL = signal.SIGUSR1


@dataclass(frozen=True)
class TriggerBackup:
    """Request to write one backup now."""


class CommandTriggerChannel:
    """Deliver triggers by spawning a command, as the LaunchAgent does."""

    def __init__(self, command: list[str]) -> None:
        self.command = command

    def send(self, message: object) -> None:
        if not isinstance(message, TriggerBackup):
            msg = f"unsupported message: {message!r}"
            raise TypeError(msg)
        try:
            subprocess.Popen(self.command, stdin=subprocess.DEVNULL)
        except OSError:
            logger.exception("Failed to spawn backup command {}", self.command)


class LocalTriggerChannel:
    """Deliver triggers to a handler in this process.

    ``on_exit`` is called when the handler decides the process should stop.
    """

    def __init__(
        self, handler: "TriggerHandler", *, on_exit: Callable[[], None] | None = None
    ) -> None:
        self.handler = handler
        self.on_exit = on_exit

    def send(self, message: object) -> None:
        if self.handler.handle(message) and self.on_exit is not None:
            self.on_exit()


def write_pid_file(path: Path) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(f"{os.getpid()}\n", encoding="utf-8")


def remove_pid_file(path: Path) -> None:
    """Remove the pid file if it still names this process."""
    if read_pid(path) == os.getpid():
        path.unlink(missing_ok=True)


def read_pid(path: Path) -> int | None:
    try:
        return int(path.read_text(encoding="utf-8").strip())
    except (OSError, ValueError):
        return None


def running_pid(path: Path) -> int | None:
    """Return the pid recorded in ``path`` if that process is alive."""
    pid = read_pid(path)
    if pid is None or pid <= 0:
        return None
    try:
        os.kill(pid, 0)
    except ProcessLookupError:
        logger.debug("Stale pid file {} (pid {})", path, pid)
        return None
    except PermissionError:
        # Alive, but not ours to signal.
        return None
    return pid


class SignalTriggerChannel:
    """Deliver triggers to a running ``codestickies run`` via a signal."""

    def __init__(self, pid_path: Path) -> None:
        self.pid_path = pid_path

    def deliver(self, message: object) -> bool:
        """Signal the running instance. Returns False if there is none."""
        if not isinstance(message, TriggerBackup):
            msg = f"unsupported message: {message!r}"
            raise TypeError(msg)
        pid = running_pid(self.pid_path)
        if pid is None:
            return False
        try:
            os.kill(pid, TRIGGER_SIGNAL)
        except OSError as e:
            logger.warning("Cannot signal running instance {}: {}", pid, e)
            return False
        logger.debug("Sent backup trigger to pid {}", pid)
        return True

    def send(self, message: object) -> None:
        self.deliver(message)


def listen_for_triggers(channel: TriggerChannelProtocol) -> Any:
    """Turn ``TRIGGER_SIGNAL`` into ``TriggerBackup`` messages on ``channel``.

    Must be called from the main thread. Returns the previous handler.
    """

    def _on_signal(signum: int, frame: object) -> None:
        channel.send(TriggerBackup())

    return signal.signal(TRIGGER_SIGNAL, _on_signal)


class TriggerHandler:
    """Receive triggers: run one backup, then decide whether to exit.

    A process that gets the trigger within ``grace`` seconds of launching was
    started only for the backup and should exit instead of lingering.
    """

    def __init__(
        self,
        run_backup: Callable[[], object],
        *,
        launch_time: float | None = None,
        grace: float = LAUNCH_GRACE_SECONDS,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._run_backup = run_backup
        self._clock = clock
        self.launch_time = clock() if launch_time is None else launch_time
        self.grace = grace

    def handle(self, message: object) -> bool:
        """Handle a message. Returns True if the process should now exit."""
        if not isinstance(message, TriggerBackup):
            logger.warning("Ignoring unknown message {!r}", message)
            return False
        self._run_backup()
        elapsed = self._clock() - self.launch_time
        should_exit = elapsed < self.grace
        logger.debug("Backup trigger handled {:.2f}s after launch, exit={}", elapsed, should_exit)
        return should_exit
